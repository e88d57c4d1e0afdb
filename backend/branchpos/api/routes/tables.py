"""Table routes: management, occupancy view, clearing and transfers."""

from typing import List, Optional

from fastapi import APIRouter, status

from branchpos.core.security import ActingUser
from branchpos.db.session import DbSession
from branchpos.schemas.sale import ClearAllResponse, ClearTableResponse, SaleResponse
from branchpos.schemas.table import (
    TableCreate,
    TableResponse,
    TableUpdate,
    TableWithStatus,
    TransferRequest,
)
from branchpos.services.order_lifecycle_service import OrderLifecycleService
from branchpos.services.table_service import TableService

router = APIRouter()


@router.get("/", response_model=List[TableResponse])
def list_tables(db: DbSession, current_user: ActingUser, zone: Optional[str] = None):
    return TableService(db).list_tables(zone=zone)


@router.post("/", response_model=TableResponse, status_code=status.HTTP_201_CREATED)
def create_table(body: TableCreate, db: DbSession, current_user: ActingUser):
    return TableService(db).create_table(body)


@router.get("/status", response_model=List[TableWithStatus])
def get_tables_with_status(db: DbSession, current_user: ActingUser, zone: Optional[str] = None):
    """Every table with its open sale's invoice, total, elapsed time and paid flag."""
    return TableService(db).get_tables_with_status(zone=zone)


@router.post("/clear-all", response_model=ClearAllResponse)
def clear_all_tables(db: DbSession, current_user: ActingUser):
    cleared = OrderLifecycleService(db).clear_all_tables(acting_user=current_user.id)
    return ClearAllResponse(cleared=cleared)


@router.post("/transfer", response_model=SaleResponse)
def transfer_order(body: TransferRequest, db: DbSession, current_user: ActingUser):
    sale = OrderLifecycleService(db).transfer_order(
        body.sale_id, body.to_table_number, acting_user=current_user.id
    )
    return SaleResponse.from_sale(sale)


@router.get("/{table_number}", response_model=TableResponse)
def get_table(table_number: int, db: DbSession, current_user: ActingUser):
    return TableService(db).get_table_by_number(table_number)


@router.post("/{table_number}/clear", response_model=ClearTableResponse)
def clear_table(table_number: int, db: DbSession, current_user: ActingUser):
    """Complete the table's open sale and free the table. ``cleared`` is false if it was already clear."""
    cleared = OrderLifecycleService(db).clear_table(table_number, acting_user=current_user.id)
    return ClearTableResponse(cleared=cleared, table_number=table_number)


@router.patch("/{table_number}", response_model=TableResponse)
def update_table(table_number: int, body: TableUpdate, db: DbSession, current_user: ActingUser):
    return TableService(db).update_table(table_number, body)


@router.delete("/{table_number}", response_model=TableResponse)
def delete_table(table_number: int, db: DbSession, current_user: ActingUser):
    """Take the table out of service. Refused while it holds an open order."""
    return TableService(db).delete_table(table_number)
