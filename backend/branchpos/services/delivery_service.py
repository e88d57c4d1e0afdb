"""Delivery tracking: projection from sales, driver assignment, status flow."""

import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from branchpos.core.config import settings
from branchpos.core.errors import InvalidStateError, NotFoundError, OrderValidationError
from branchpos.db.base import utcnow
from branchpos.models.delivery import DeliveryOrder, DeliveryPriority, DeliveryStatus, Driver
from branchpos.models.sale import Sale
from branchpos.schemas.delivery import DeliveryInfo, DriverCreate

logger = logging.getLogger(__name__)

# Statuses from which no further change is accepted
TERMINAL_STATUSES = {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}
# Statuses that only make sense with a driver attached
DRIVER_STATUSES = {DeliveryStatus.ASSIGNED, DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.DELIVERED}


class DeliveryOrderProjector:
    """Derives the tracking record for a delivery sale.

    Runs inside the checkout transaction; it flushes but never commits.
    """

    def __init__(self, db: Session, default_minutes: Optional[int] = None):
        self.db = db
        self.default_minutes = default_minutes or settings.default_delivery_minutes

    def project(
        self,
        sale: Sale,
        info: DeliveryInfo,
        customer_name: str,
        customer_phone: str,
        delivery_address: str,
        created_by: Optional[str] = None,
    ) -> DeliveryOrder:
        if sale.id is not None:
            existing = self.db.scalar(select(DeliveryOrder.id).where(DeliveryOrder.sale_id == sale.id))
            if existing is not None:
                raise OrderValidationError(f"Sale {sale.id} already has a delivery order")

        minutes = info.estimated_delivery_minutes or self.default_minutes
        now = utcnow()
        delivery = DeliveryOrder(
            sale=sale,
            customer_id=sale.customer_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            pickup_address=(info.pickup_address or "").strip() or "Restaurant",
            delivery_address=delivery_address,
            special_instructions=info.special_instructions,
            estimated_delivery_minutes=minutes,
            estimated_delivery_time=now + timedelta(minutes=minutes),
            priority=info.priority if info.priority is not None else DeliveryPriority.NORMAL,
            delivery_status=DeliveryStatus.PENDING,
            driver_id=None,
            created_by=created_by,
        )
        self.db.add(delivery)
        self.db.flush()
        logger.info(f"Delivery order {delivery.id} projected for sale {sale.invoice_number}")
        return delivery


class DeliveryOrderService:
    """Read and update delivery orders and drivers."""

    def __init__(self, db: Session):
        self.db = db

    def list_delivery_orders(
        self,
        status: Optional[DeliveryStatus] = None,
        driver_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[DeliveryOrder], int]:
        stmt = select(DeliveryOrder)
        if status is not None:
            stmt = stmt.where(DeliveryOrder.delivery_status == status)
        if driver_id is not None:
            stmt = stmt.where(DeliveryOrder.driver_id == driver_id)

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        items = self.db.scalars(
            stmt.order_by(DeliveryOrder.created_at.desc(), DeliveryOrder.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return list(items), total

    def get_delivery_order(self, delivery_order_id: int) -> DeliveryOrder:
        delivery = self.db.get(DeliveryOrder, delivery_order_id)
        if delivery is None:
            raise NotFoundError(f"Delivery order {delivery_order_id} not found")
        return delivery

    def assign_driver(self, delivery_order_id: int, driver_id: int) -> DeliveryOrder:
        delivery = self.get_delivery_order(delivery_order_id)
        if delivery.delivery_status in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"Delivery order {delivery_order_id} is {delivery.delivery_status.name.lower()}"
            )

        driver = self.db.get(Driver, driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found")
        if not driver.is_active or not driver.is_available:
            raise InvalidStateError(f"Driver {driver.code} is not available")

        delivery.driver_id = driver.id
        delivery.delivery_status = DeliveryStatus.ASSIGNED
        self.db.commit()
        self.db.refresh(delivery)
        logger.info(f"Driver {driver.code} assigned to delivery order {delivery.id}")
        return delivery

    def update_status(self, delivery_order_id: int, status: DeliveryStatus) -> DeliveryOrder:
        delivery = self.get_delivery_order(delivery_order_id)
        current = delivery.delivery_status
        if current in TERMINAL_STATUSES and status != current:
            raise InvalidStateError(
                f"Delivery order {delivery_order_id} is already {current.name.lower()}"
            )
        if status in DRIVER_STATUSES and delivery.driver_id is None:
            raise InvalidStateError(
                f"Delivery order {delivery_order_id} has no driver; assign one before marking it {status.name.lower()}"
            )

        delivery.delivery_status = status
        if status == DeliveryStatus.PENDING:
            # Back in the queue: the driver is released
            delivery.driver_id = None
        if status == DeliveryStatus.DELIVERED and delivery.actual_delivery_time is None:
            delivery.actual_delivery_time = utcnow()
            if delivery.driver is not None:
                delivery.driver.total_deliveries += 1

        self.db.commit()
        self.db.refresh(delivery)
        logger.info(f"Delivery order {delivery.id} status {current.name} -> {status.name}")
        return delivery

    def create_driver(self, data: DriverCreate) -> Driver:
        code = data.code.strip().upper()
        if self.db.scalar(select(Driver.id).where(Driver.code == code)) is not None:
            raise OrderValidationError(f"Driver code {code} already exists")
        driver = Driver(
            code=code,
            name_en=data.name_en,
            name_ar=data.name_ar,
            phone=data.phone,
            vehicle_number=data.vehicle_number,
        )
        self.db.add(driver)
        self.db.commit()
        self.db.refresh(driver)
        return driver

    def list_drivers(self, available_only: bool = False) -> List[Driver]:
        stmt = select(Driver).where(Driver.is_active.is_(True))
        if available_only:
            stmt = stmt.where(Driver.is_available.is_(True))
        return list(self.db.scalars(stmt.order_by(Driver.code)))
