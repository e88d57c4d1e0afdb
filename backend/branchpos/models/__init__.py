"""Database models."""

from branchpos.models.customer import Customer
from branchpos.models.product import Product
from branchpos.models.table import Table, TableStatus
from branchpos.models.sale import (
    DiscountType,
    OrderType,
    PaymentMethod,
    Sale,
    SaleLineItem,
    SaleStatus,
)
from branchpos.models.delivery import DeliveryOrder, DeliveryPriority, DeliveryStatus, Driver
from branchpos.models.held_order import HeldOrder, HeldOrderStatus
from branchpos.models.user import BranchUser
from branchpos.models.head_office import Branch, HeadOfficeUser

__all__ = [
    "Customer",
    "Product",
    "Table",
    "TableStatus",
    "Sale",
    "SaleLineItem",
    "SaleStatus",
    "OrderType",
    "PaymentMethod",
    "DiscountType",
    "Driver",
    "DeliveryOrder",
    "DeliveryStatus",
    "DeliveryPriority",
    "HeldOrder",
    "HeldOrderStatus",
    "BranchUser",
    "Branch",
    "HeadOfficeUser",
]
