"""API routes."""

from fastapi import APIRouter

from branchpos.api.routes import auth, customers, delivery, held_orders, sales, sync, tables

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(held_orders.router, prefix="/held-orders", tags=["held-orders"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables"])
api_router.include_router(customers.router, prefix="/customers", tags=["customers"])
api_router.include_router(delivery.router, prefix="/delivery-orders", tags=["delivery"])
api_router.include_router(delivery.drivers_router, prefix="/drivers", tags=["delivery"])
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
