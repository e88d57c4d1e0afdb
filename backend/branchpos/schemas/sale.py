"""Sale (order) schemas.

Structural checks live here; business rules (discount bounds, table
availability, cash sufficiency) are enforced by the order lifecycle service
so they surface as validation errors with a readable message.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from branchpos.models.sale import DiscountType, OrderType, PaymentMethod, Sale, SaleStatus
from branchpos.schemas.customer import CustomerCreate
from branchpos.schemas.delivery import DeliveryInfo, DeliveryOrderResponse
from branchpos.services.payment_status import balance_due, is_paid


class SaleLineItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    # Defaults to the product's current price
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class CreateSaleRequest(BaseModel):
    """Checkout request for a new sale."""

    order_type: OrderType
    line_items: List[SaleLineItemCreate] = Field(default_factory=list)
    payment_method: PaymentMethod = PaymentMethod.CASH
    amount_paid: Optional[Decimal] = None
    payment_reference: Optional[str] = Field(default=None, max_length=200)

    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Decimal("0")

    table_number: Optional[int] = None
    guest_count: Optional[int] = None

    customer_id: Optional[int] = None
    new_customer: Optional[CustomerCreate] = None
    delivery_info: Optional[DeliveryInfo] = None

    notes: Optional[str] = None


class RecordPaymentRequest(BaseModel):
    payment_method: PaymentMethod
    amount_paid: Decimal
    change_returned: Optional[Decimal] = None
    payment_reference: Optional[str] = Field(default=None, max_length=200)


class VoidSaleRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SaleLineItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    discount_amount: Decimal
    line_total: Decimal

    model_config = {"from_attributes": True}


class SaleResponse(BaseModel):
    """Sale as returned to clients, with the derived payment state."""

    id: int
    transaction_id: str
    invoice_number: str
    order_type: OrderType
    status: SaleStatus
    customer_id: Optional[int] = None
    table_id: Optional[int] = None
    table_number: Optional[int] = None
    guest_count: Optional[int] = None
    cashier_id: str
    subtotal: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal
    total_discount: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Optional[Decimal] = None
    change_returned: Optional[Decimal] = None
    payment_method: PaymentMethod
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    is_voided: bool
    void_reason: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    line_items: List[SaleLineItemResponse] = []
    delivery_order: Optional[DeliveryOrderResponse] = None

    is_paid: bool = False
    balance_due: Decimal = Decimal("0")

    model_config = {"from_attributes": True}

    @classmethod
    def from_sale(cls, sale: Sale) -> "SaleResponse":
        response = cls.model_validate(sale)
        response.is_paid = is_paid(sale)
        response.balance_due = balance_due(sale)
        return response


class ClearTableResponse(BaseModel):
    cleared: bool
    table_number: Optional[int] = None
    sale_id: Optional[int] = None


class ClearAllResponse(BaseModel):
    cleared: int
