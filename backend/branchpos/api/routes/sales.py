"""Sales routes: checkout, payment, clearing and voids."""

from typing import Optional

from fastapi import APIRouter, Query, Request, status

from branchpos.core.config import settings
from branchpos.core.rate_limit import limiter
from branchpos.core.security import ActingUser
from branchpos.db.session import DbSession
from branchpos.models.sale import OrderType, SaleStatus
from branchpos.schemas.pagination import PaginatedResponse
from branchpos.schemas.sale import (
    ClearTableResponse,
    CreateSaleRequest,
    RecordPaymentRequest,
    SaleResponse,
    VoidSaleRequest,
)
from branchpos.services.order_lifecycle_service import OrderLifecycleService

router = APIRouter()


@router.post("/", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.order_rate_limit)
def create_sale(request: Request, body: CreateSaleRequest, db: DbSession, current_user: ActingUser):
    """Check out a new sale. Dine-in sales occupy their table."""
    sale = OrderLifecycleService(db).create_order(body, cashier_id=current_user.id)
    return SaleResponse.from_sale(sale)


@router.get("/", response_model=PaginatedResponse[SaleResponse])
def list_sales(
    db: DbSession,
    current_user: ActingUser,
    sale_status: Optional[SaleStatus] = Query(default=None, alias="status"),
    order_type: Optional[OrderType] = None,
    table_number: Optional[int] = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
):
    sales, total = OrderLifecycleService(db).list_sales(
        status=sale_status,
        order_type=order_type,
        table_number=table_number,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse.create(
        [SaleResponse.from_sale(s) for s in sales], total=total, page=page, page_size=page_size
    )


@router.get("/{sale_id}", response_model=SaleResponse)
def get_sale(sale_id: int, db: DbSession, current_user: ActingUser):
    return SaleResponse.from_sale(OrderLifecycleService(db).get_sale(sale_id))


@router.post("/{sale_id}/payment", response_model=SaleResponse)
def record_payment(sale_id: int, body: RecordPaymentRequest, db: DbSession, current_user: ActingUser):
    """Record payment. The sale stays open and its table stays occupied until cleared."""
    sale = OrderLifecycleService(db).record_payment(
        sale_id,
        payment_method=body.payment_method,
        amount_paid=body.amount_paid,
        change_returned=body.change_returned,
        payment_reference=body.payment_reference,
    )
    return SaleResponse.from_sale(sale)


@router.post("/{sale_id}/clear", response_model=ClearTableResponse)
def clear_sale(sale_id: int, db: DbSession, current_user: ActingUser):
    """Complete a sale by id; frees its table if it holds one."""
    service = OrderLifecycleService(db)
    cleared = service.clear_order(sale_id, acting_user=current_user.id)
    sale = service.get_sale(sale_id)
    return ClearTableResponse(cleared=cleared, table_number=sale.table_number, sale_id=sale.id)


@router.post("/{sale_id}/void", response_model=SaleResponse)
def void_sale(sale_id: int, body: VoidSaleRequest, db: DbSession, current_user: ActingUser):
    sale = OrderLifecycleService(db).void_order(sale_id, reason=body.reason, acting_user=current_user.id)
    return SaleResponse.from_sale(sale)
