"""Customer records and reporting-side purchase statistics."""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from branchpos.core.errors import NotFoundError
from branchpos.models.customer import Customer
from branchpos.models.sale import Sale, SaleStatus
from branchpos.schemas.customer import CustomerCreate
from branchpos.services.numbering import new_customer_code
from branchpos.services.payment_status import is_paid

logger = logging.getLogger(__name__)

# One loyalty point per 10 units of paid purchases
LOYALTY_UNIT = Decimal("10")


class CustomerService:
    """Customer CRUD used by checkout and the customer routes."""

    def __init__(self, db: Session):
        self.db = db

    def create_customer(
        self, data: CustomerCreate, created_by: Optional[str] = None, commit: bool = True
    ) -> Customer:
        """Persist a new customer with a generated ``CUST-`` code.

        With ``commit=False`` the row is only flushed, so it joins the
        caller's transaction (used by checkout's inline new-customer flow).
        """
        customer = Customer(
            code=new_customer_code(self.db),
            name_en=data.name_en.strip(),
            name_ar=data.name_ar,
            phone=data.phone,
            email=data.email,
            address_en=data.address_en,
            address_ar=data.address_ar,
            created_by=created_by,
        )
        self.db.add(customer)
        if commit:
            self.db.commit()
            self.db.refresh(customer)
        else:
            self.db.flush()
        logger.info(f"Customer {customer.code} created by {created_by}")
        return customer

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def search_customers(self, query: Optional[str] = None, limit: int = 50) -> List[Customer]:
        stmt = select(Customer).where(Customer.is_active.is_(True))
        if query:
            like = f"%{query.strip()}%"
            stmt = stmt.where(
                or_(
                    Customer.name_en.ilike(like),
                    Customer.name_ar.ilike(like),
                    Customer.phone.ilike(like),
                    Customer.code.ilike(like),
                )
            )
        return list(self.db.scalars(stmt.order_by(Customer.name_en).limit(limit)))

    def refresh_stats(self, customer_id: int) -> Customer:
        """Recompute aggregates from the customer's completed, paid sales."""
        customer = self.get_customer(customer_id)
        sales = self.db.scalars(
            select(Sale).where(
                Sale.customer_id == customer_id,
                Sale.status == SaleStatus.COMPLETED,
                Sale.is_voided.is_(False),
            )
        ).all()
        paid = [s for s in sales if is_paid(s)]

        total = sum((s.total for s in paid), Decimal("0"))
        customer.total_purchases = total
        customer.visit_count = len(paid)
        customer.last_visit_at = max((s.completed_at for s in paid if s.completed_at), default=None)
        customer.loyalty_points = int(total // LOYALTY_UNIT)
        self.db.commit()
        self.db.refresh(customer)
        logger.info(
            f"Customer {customer.code} stats refreshed: {customer.visit_count} visits, {total} total"
        )
        return customer
