"""Held order routes: park a cart, recall it, check it out or discard it."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from branchpos.core.config import settings
from branchpos.core.rate_limit import limiter
from branchpos.core.security import ActingUser
from branchpos.db.session import DbSession
from branchpos.models.held_order import HeldOrderStatus
from branchpos.schemas.held_order import HeldOrderResponse, HoldOrderRequest
from branchpos.schemas.pagination import PaginatedResponse
from branchpos.schemas.sale import SaleResponse
from branchpos.services.held_order_service import HeldOrderService

router = APIRouter()


@router.post("/", response_model=HeldOrderResponse, status_code=status.HTTP_201_CREATED)
def hold_order(body: HoldOrderRequest, db: DbSession, current_user: ActingUser):
    """Park a cart. Nothing is reserved until it is converted."""
    return HeldOrderService(db).hold_order(body, created_by=current_user.id)


@router.get("/", response_model=PaginatedResponse[HeldOrderResponse])
def list_held_orders(
    db: DbSession,
    current_user: ActingUser,
    held_status: Optional[HeldOrderStatus] = Query(default=None, alias="status"),
    include_expired: bool = False,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
):
    items, total = HeldOrderService(db).list_held_orders(
        status=held_status, include_expired=include_expired, page=page, page_size=page_size
    )
    return PaginatedResponse.create(
        [HeldOrderResponse.model_validate(h) for h in items], total=total, page=page, page_size=page_size
    )


@router.get("/{held_order_id}", response_model=HeldOrderResponse)
def get_held_order(held_order_id: int, db: DbSession, current_user: ActingUser):
    return HeldOrderService(db).get_held_order(held_order_id)


@router.post("/{held_order_id}/retrieve", response_model=HeldOrderResponse)
def retrieve_held_order(held_order_id: int, db: DbSession, current_user: ActingUser):
    return HeldOrderService(db).retrieve(held_order_id, acting_user=current_user.id)


@router.post("/{held_order_id}/convert", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.order_rate_limit)
def convert_held_order(request: Request, held_order_id: int, db: DbSession, current_user: ActingUser):
    """Check out the held cart as a new sale and remove the held order."""
    sale = HeldOrderService(db).convert_to_sale(held_order_id, cashier_id=current_user.id)
    return SaleResponse.from_sale(sale)


@router.delete("/{held_order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_held_order(held_order_id: int, db: DbSession, current_user: ActingUser):
    HeldOrderService(db).delete_held_order(held_order_id, user=current_user)
