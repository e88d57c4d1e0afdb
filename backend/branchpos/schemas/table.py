"""Table schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from branchpos.models.table import TableStatus


class TableCreate(BaseModel):
    number: int = Field(..., gt=0)
    name: Optional[str] = Field(default=None, max_length=100)
    capacity: int = Field(default=4, gt=0)
    zone: Optional[str] = Field(default=None, max_length=50)


class TableUpdate(BaseModel):
    """Partial update; omitted fields are left alone."""

    number: Optional[int] = Field(default=None, gt=0)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    capacity: Optional[int] = Field(default=None, gt=0)
    zone: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None


class TableResponse(BaseModel):
    id: int
    number: int
    name: str
    capacity: int
    zone: Optional[str] = None
    is_active: bool
    status: TableStatus
    current_sale_id: Optional[int] = None
    current_guest_count: Optional[int] = None
    occupied_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    updated_at: datetime

    model_config = {"from_attributes": True}


class TableWithStatus(TableResponse):
    """Table plus a read-only view of the sale occupying it."""

    invoice_number: Optional[str] = None
    order_total: Optional[Decimal] = None
    elapsed: Optional[str] = None
    is_paid: bool = False


class TransferRequest(BaseModel):
    sale_id: int
    to_table_number: int = Field(..., gt=0)
