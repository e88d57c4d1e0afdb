"""Held Order Service - park a cart at the till and resume it later.

A held order is a priced snapshot of a checkout request. It reserves
nothing: stock, tables and invoice numbers are only touched when the order
is converted, which replays the stored request through the normal checkout.
Orders not converted within ``held_order_ttl_hours`` expire and are purged
by the scheduler.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from branchpos.core.config import settings
from branchpos.core.errors import InvalidStateError, NotFoundError, PermissionDeniedError
from branchpos.core.metrics import metrics
from branchpos.core.security import CurrentUser
from branchpos.db.base import as_utc, utcnow
from branchpos.db.session import SessionLocal
from branchpos.models.customer import Customer
from branchpos.models.held_order import HeldOrder, HeldOrderStatus
from branchpos.models.sale import Sale
from branchpos.schemas.held_order import HoldOrderRequest
from branchpos.schemas.sale import CreateSaleRequest
from branchpos.services.numbering import next_held_order_number
from branchpos.services.order_lifecycle_service import OrderLifecycleService

logger = logging.getLogger(__name__)

# Roles allowed to discard another cashier's held order
MANAGER_ROLES = {"manager", "admin"}


class HeldOrderService:
    def __init__(self, db: Session, lifecycle: Optional[OrderLifecycleService] = None):
        self.db = db
        self.lifecycle = lifecycle or OrderLifecycleService(db)

    def hold_order(self, data: HoldOrderRequest, created_by: str) -> HeldOrder:
        """Price and store a cart without creating a sale."""
        request = data.order
        _, _, totals = self.lifecycle.price_cart(request)

        customer_name, customer_phone = data.customer_name, data.customer_phone
        if request.customer_id is not None:
            customer = self.db.get(Customer, request.customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {request.customer_id} not found")
            customer_name = customer_name or customer.name_en
            customer_phone = customer_phone or customer.phone
        elif request.new_customer is not None:
            customer_name = customer_name or request.new_customer.name_en
            customer_phone = customer_phone or request.new_customer.phone

        now = utcnow()
        held = HeldOrder(
            order_number=next_held_order_number(self.db, now),
            order_type=request.order_type,
            status=data.status,
            customer_id=request.customer_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            table_number=request.table_number,
            guest_count=request.guest_count,
            cart=request.model_dump(mode="json"),
            item_count=len(request.line_items),
            subtotal=totals.subtotal,
            total_discount=totals.total_discount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            notes=request.notes,
            created_by=created_by,
            created_at=now,
            expires_at=now + timedelta(hours=settings.held_order_ttl_hours),
        )
        self.db.add(held)
        self.db.commit()
        self.db.refresh(held)

        metrics.inc("orders_held")
        logger.info(f"Held order {held.order_number} created by {created_by}: total {held.total}")
        return held

    def get_held_order(self, held_order_id: int) -> HeldOrder:
        held = self.db.get(HeldOrder, held_order_id)
        if held is None:
            raise NotFoundError(f"Held order {held_order_id} not found")
        return held

    def list_held_orders(
        self,
        status: Optional[HeldOrderStatus] = None,
        include_expired: bool = False,
        page: int = 1,
        page_size: int = 50,
        now: Optional[datetime] = None,
    ) -> Tuple[List[HeldOrder], int]:
        """Held orders, newest first. Without a status filter retrieved orders are left out."""
        stmt = select(HeldOrder)
        if status is not None:
            stmt = stmt.where(HeldOrder.status == status)
        else:
            stmt = stmt.where(HeldOrder.status != HeldOrderStatus.RETRIEVED)
        if not include_expired:
            stmt = stmt.where(HeldOrder.expires_at > (now or utcnow()))

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        items = self.db.scalars(
            stmt.order_by(HeldOrder.created_at.desc(), HeldOrder.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return list(items), total

    def retrieve(self, held_order_id: int, acting_user: str) -> HeldOrder:
        """Recall a held order to the till."""
        held = self._live(held_order_id)
        if held.status == HeldOrderStatus.RETRIEVED:
            raise InvalidStateError(f"Held order {held.order_number} was already retrieved by {held.retrieved_by}")
        held.status = HeldOrderStatus.RETRIEVED
        held.retrieved_at = utcnow()
        held.retrieved_by = acting_user
        self.db.commit()
        self.db.refresh(held)
        logger.info(f"Held order {held.order_number} retrieved by {acting_user}")
        return held

    def convert_to_sale(self, held_order_id: int, cashier_id: str) -> Sale:
        """Check out the held cart; the held order is deleted in the same transaction."""
        held = self._live(held_order_id)
        order_number = held.order_number
        request = CreateSaleRequest.model_validate(held.cart)

        sale = self.lifecycle.create_order(
            request, cashier_id=cashier_id, within_transaction=self._consume(held.id, order_number)
        )
        metrics.inc("held_orders_converted")
        logger.info(f"Held order {order_number} converted to sale {sale.invoice_number} by {cashier_id}")
        return sale

    def _consume(self, held_order_id: int, order_number: str) -> Callable[[Sale], None]:
        def consume(sale: Sale) -> None:
            result = self.db.execute(
                delete(HeldOrder)
                .where(HeldOrder.id == held_order_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateError(f"Held order {order_number} was already converted or deleted")

        return consume

    def delete_held_order(self, held_order_id: int, user: CurrentUser) -> None:
        """Discard a held order. Only its creator or a manager may do so."""
        held = self.get_held_order(held_order_id)
        if held.created_by != user.id and user.role not in MANAGER_ROLES:
            raise PermissionDeniedError(f"Held order {held.order_number} belongs to another cashier")
        order_number = held.order_number
        self.db.delete(held)
        self.db.commit()
        logger.info(f"Held order {order_number} deleted by {user.id}")

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Purge held orders past their expiry; returns how many were removed."""
        result = self.db.execute(
            delete(HeldOrder)
            .where(HeldOrder.expires_at <= (now or utcnow()))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount:
            metrics.inc("held_orders_expired", result.rowcount)
            logger.info(f"Purged {result.rowcount} expired held order(s)")
        return result.rowcount

    def _live(self, held_order_id: int) -> HeldOrder:
        held = self.get_held_order(held_order_id)
        if as_utc(held.expires_at) <= utcnow():
            raise InvalidStateError(f"Held order {held.order_number} has expired")
        return held


def purge_expired_held_orders(session_factory: Callable[[], Session] = SessionLocal) -> int:
    db = session_factory()
    try:
        return HeldOrderService(db).delete_expired()
    finally:
        db.close()


async def run_held_order_cleanup(session_factory: Callable[[], Session] = SessionLocal) -> int:
    """Scheduler entry point; the blocking database work runs in a worker thread."""
    return await asyncio.to_thread(purge_expired_held_orders, session_factory)
