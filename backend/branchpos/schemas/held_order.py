"""Held (parked) order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from branchpos.models.held_order import HeldOrderStatus
from branchpos.models.sale import OrderType
from branchpos.schemas.sale import CreateSaleRequest


class HoldOrderRequest(BaseModel):
    """Park a cart. ``order`` is replayed as a checkout when converted."""

    order: CreateSaleRequest
    status: HeldOrderStatus = HeldOrderStatus.PARKED
    customer_name: Optional[str] = Field(default=None, max_length=200)
    customer_phone: Optional[str] = Field(default=None, max_length=50)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: HeldOrderStatus) -> HeldOrderStatus:
        if v == HeldOrderStatus.RETRIEVED:
            raise ValueError("An order can only be held as parked or on_hold")
        return v


class HeldOrderResponse(BaseModel):
    id: int
    order_number: str
    order_type: OrderType
    status: HeldOrderStatus
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    table_number: Optional[int] = None
    guest_count: Optional[int] = None
    cart: Dict[str, Any]
    item_count: int
    subtotal: Decimal
    total_discount: Decimal
    tax_amount: Decimal
    total: Decimal
    notes: Optional[str] = None
    created_by: str
    created_at: datetime
    retrieved_at: Optional[datetime] = None
    retrieved_by: Optional[str] = None
    expires_at: datetime

    model_config = {"from_attributes": True}
