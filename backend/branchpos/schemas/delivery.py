"""Delivery order and driver schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from branchpos.models.delivery import DeliveryPriority, DeliveryStatus


class DeliveryInfo(BaseModel):
    """Structured delivery payload carried by a delivery sale.

    Customer name and phone fall back to the order's customer when omitted.
    """

    customer_name: Optional[str] = Field(default=None, max_length=200)
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    delivery_address: Optional[str] = Field(default=None, max_length=500)
    pickup_address: Optional[str] = Field(default=None, max_length=500)
    special_instructions: Optional[str] = None
    estimated_delivery_minutes: Optional[int] = Field(default=None, gt=0, le=24 * 60)
    priority: DeliveryPriority = DeliveryPriority.NORMAL


class DeliveryOrderResponse(BaseModel):
    id: int
    sale_id: int
    customer_id: Optional[int] = None
    driver_id: Optional[int] = None
    customer_name: str
    customer_phone: str
    pickup_address: str
    delivery_address: str
    special_instructions: Optional[str] = None
    estimated_delivery_minutes: int
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    priority: DeliveryPriority
    delivery_status: DeliveryStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignDriverRequest(BaseModel):
    driver_id: int


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus


class DriverCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    name_en: str = Field(..., min_length=1, max_length=200)
    name_ar: Optional[str] = Field(default=None, max_length=200)
    phone: str = Field(..., min_length=1, max_length=50)
    vehicle_number: Optional[str] = Field(default=None, max_length=50)


class DriverResponse(BaseModel):
    id: int
    code: str
    name_en: str
    name_ar: Optional[str] = None
    phone: str
    vehicle_number: Optional[str] = None
    is_active: bool
    is_available: bool
    total_deliveries: int

    model_config = {"from_attributes": True}
