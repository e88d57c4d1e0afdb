"""Customer schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CustomerCreate(BaseModel):
    """Customer creation schema (also used inline when placing an order)."""

    name_en: str = Field(..., min_length=1, max_length=200)
    name_ar: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    email: Optional[str] = Field(default=None, max_length=255)
    address_en: Optional[str] = Field(default=None, max_length=500)
    address_ar: Optional[str] = Field(default=None, max_length=500)


class CustomerResponse(BaseModel):
    id: int
    code: str
    name_en: str
    name_ar: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address_en: Optional[str] = None
    address_ar: Optional[str] = None
    total_purchases: Decimal
    visit_count: int
    last_visit_at: Optional[datetime] = None
    loyalty_points: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
