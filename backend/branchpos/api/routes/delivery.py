"""Delivery order and driver routes."""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from branchpos.core.security import ActingUser
from branchpos.db.session import DbSession
from branchpos.models.delivery import DeliveryStatus
from branchpos.schemas.delivery import (
    AssignDriverRequest,
    DeliveryOrderResponse,
    DeliveryStatusUpdate,
    DriverCreate,
    DriverResponse,
)
from branchpos.schemas.pagination import PaginatedResponse
from branchpos.services.delivery_service import DeliveryOrderService

router = APIRouter()
drivers_router = APIRouter()


@router.get("/", response_model=PaginatedResponse[DeliveryOrderResponse])
def list_delivery_orders(
    db: DbSession,
    current_user: ActingUser,
    delivery_status: Optional[DeliveryStatus] = Query(default=None, alias="status"),
    driver_id: Optional[int] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
):
    items, total = DeliveryOrderService(db).list_delivery_orders(
        status=delivery_status, driver_id=driver_id, page=page, page_size=page_size
    )
    return PaginatedResponse.create(
        [DeliveryOrderResponse.model_validate(d) for d in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{delivery_order_id}", response_model=DeliveryOrderResponse)
def get_delivery_order(delivery_order_id: int, db: DbSession, current_user: ActingUser):
    return DeliveryOrderService(db).get_delivery_order(delivery_order_id)


@router.post("/{delivery_order_id}/assign-driver", response_model=DeliveryOrderResponse)
def assign_driver(
    delivery_order_id: int, body: AssignDriverRequest, db: DbSession, current_user: ActingUser
):
    return DeliveryOrderService(db).assign_driver(delivery_order_id, body.driver_id)


@router.patch("/{delivery_order_id}/status", response_model=DeliveryOrderResponse)
def update_delivery_status(
    delivery_order_id: int, body: DeliveryStatusUpdate, db: DbSession, current_user: ActingUser
):
    return DeliveryOrderService(db).update_status(delivery_order_id, body.status)


@drivers_router.post("/", response_model=DriverResponse, status_code=status.HTTP_201_CREATED)
def create_driver(body: DriverCreate, db: DbSession, current_user: ActingUser):
    return DeliveryOrderService(db).create_driver(body)


@drivers_router.get("/", response_model=List[DriverResponse])
def list_drivers(db: DbSession, current_user: ActingUser, available_only: bool = False):
    return DeliveryOrderService(db).list_drivers(available_only=available_only)
