"""Customer routes."""

from typing import List, Optional

from fastapi import APIRouter, Query, status

from branchpos.core.security import ActingUser
from branchpos.db.session import DbSession
from branchpos.schemas.customer import CustomerCreate, CustomerResponse
from branchpos.services.customer_service import CustomerService

router = APIRouter()


@router.post("/", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(body: CustomerCreate, db: DbSession, current_user: ActingUser):
    return CustomerService(db).create_customer(body, created_by=current_user.id)


@router.get("/", response_model=List[CustomerResponse])
def search_customers(
    db: DbSession,
    current_user: ActingUser,
    q: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
):
    """Search by name, phone or code."""
    return CustomerService(db).search_customers(q, limit=limit)


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, db: DbSession, current_user: ActingUser):
    return CustomerService(db).get_customer(customer_id)


@router.post("/{customer_id}/refresh-stats", response_model=CustomerResponse)
def refresh_customer_stats(customer_id: int, db: DbSession, current_user: ActingUser):
    return CustomerService(db).refresh_stats(customer_id)
