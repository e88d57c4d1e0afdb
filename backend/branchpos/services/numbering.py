"""Human-readable identifiers for sales, held orders and customers."""

import time
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from branchpos.db.base import utcnow
from branchpos.models.customer import Customer
from branchpos.models.held_order import HeldOrder
from branchpos.models.sale import Sale


def next_transaction_id(db: Session, now: Optional[datetime] = None) -> str:
    """``TXN-YYYYMMDD-NNNNNN``, sequential within the day."""
    now = now or utcnow()
    prefix = f"TXN-{now:%Y%m%d}-"
    last = db.scalar(
        select(func.max(Sale.transaction_id)).where(Sale.transaction_id.like(f"{prefix}%"))
    )
    seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:06d}"


def next_invoice_number(db: Session, branch_code: str) -> str:
    """``<BRANCH>-INV-NNNNNN``, sequential per branch store."""
    prefix = f"{branch_code}-INV-"
    last = db.scalar(
        select(func.max(Sale.invoice_number)).where(Sale.invoice_number.like(f"{prefix}%"))
    )
    seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:06d}"


def new_customer_code(db: Session) -> str:
    """``CUST-<last 8 digits of epoch millis>``, bumped past any collision."""
    stamp = int(time.time() * 1000) % 100_000_000
    while True:
        code = f"CUST-{stamp:08d}"
        exists = db.scalar(select(Customer.id).where(Customer.code == code))
        if exists is None:
            return code
        stamp = (stamp + 1) % 100_000_000


def next_held_order_number(db: Session, now: Optional[datetime] = None) -> str:
    """``PO-YYYYMMDD-NNNN``, sequential within the day."""
    now = now or utcnow()
    prefix = f"PO-{now:%Y%m%d}-"
    last = db.scalar(
        select(func.max(HeldOrder.order_number)).where(HeldOrder.order_number.like(f"{prefix}%"))
    )
    seq = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{seq:04d}"
