"""Table management and the read-only occupancy projection."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from branchpos.core.errors import InvalidStateError, NotFoundError, OrderValidationError
from branchpos.db.base import as_utc, utcnow
from branchpos.models.sale import Sale, SaleStatus
from branchpos.models.table import Table, TableStatus
from branchpos.schemas.table import TableCreate, TableUpdate, TableWithStatus
from branchpos.services.payment_status import is_paid

logger = logging.getLogger(__name__)


def format_elapsed(delta: timedelta) -> str:
    """``"1h 5m"`` for an hour or more, otherwise ``"12m"``."""
    minutes = max(int(delta.total_seconds() // 60), 0)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


class TableService:
    def __init__(self, db: Session):
        self.db = db

    def create_table(self, data: TableCreate) -> Table:
        if self.db.scalar(select(Table.id).where(Table.number == data.number)) is not None:
            raise OrderValidationError(f"Table {data.number} already exists")
        table = Table(
            number=data.number,
            name=data.name or f"Table {data.number}",
            capacity=data.capacity,
            zone=data.zone,
        )
        self.db.add(table)
        self.db.commit()
        self.db.refresh(table)
        logger.info(f"Table {table.number} created")
        return table

    def update_table(self, number: int, data: TableUpdate) -> Table:
        """Apply a partial update.

        Renumbering or taking a table out of service is refused while it
        holds an open order, since the sale records the table number.
        """
        table = self.get_table_by_number(number)
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field == "zone"
        }
        renumbered = changes.get("number", table.number) != table.number
        if renumbered and self.db.scalar(select(Table.id).where(Table.number == changes["number"])) is not None:
            raise OrderValidationError(f"Table {changes['number']} already exists")

        leaves_service = changes.get("is_active") is False and table.is_active
        if changes.get("is_active") is True:
            changes["deleted_at"] = None
        if renumbered or leaves_service:
            self._ensure_no_open_sale(table)

        self._conditional_write(table, changes, require_free=renumbered or leaves_service)
        logger.info(f"Table {number} updated: {', '.join(sorted(changes)) or 'no changes'}")
        return table

    def delete_table(self, number: int) -> Table:
        """Soft delete: the table leaves service but stays for sales history."""
        table = self.get_table_by_number(number)
        if table.deleted_at is not None:
            return table
        self._ensure_no_open_sale(table)
        self._conditional_write(table, {"is_active": False, "deleted_at": utcnow()}, require_free=True)
        logger.info(f"Table {number} deleted")
        return table

    def _ensure_no_open_sale(self, table: Table) -> None:
        invoice = self.db.scalar(
            select(Sale.invoice_number).where(Sale.table_id == table.id, Sale.status == SaleStatus.OPEN)
        )
        if invoice is not None or table.status == TableStatus.OCCUPIED:
            raise InvalidStateError(
                f"Table {table.number} has an open order{f' ({invoice})' if invoice else ''}; "
                "clear or transfer it first"
            )

    def _conditional_write(self, table: Table, values: dict, require_free: bool) -> None:
        """Write guarded by ``version`` so a checkout landing in between is not overwritten."""
        conditions = [Table.id == table.id, Table.version == table.version]
        if require_free:
            conditions.append(Table.status != TableStatus.OCCUPIED)
        try:
            result = self.db.execute(
                update(Table)
                .where(*conditions)
                .values(**values, updated_at=utcnow(), version=Table.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateError(f"Table {table.number} changed concurrently; reload and retry")
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise OrderValidationError(f"Table {values.get('number')} already exists") from e
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(table)

    def list_tables(self, zone: Optional[str] = None, include_inactive: bool = False) -> List[Table]:
        stmt = select(Table)
        if not include_inactive:
            stmt = stmt.where(Table.is_active.is_(True))
        if zone:
            stmt = stmt.where(Table.zone == zone)
        return list(self.db.scalars(stmt.order_by(Table.number)))

    def get_table_by_number(self, number: int) -> Table:
        table = self.db.scalar(select(Table).where(Table.number == number))
        if table is None:
            raise NotFoundError(f"Table {number} not found")
        return table

    def get_tables_with_status(
        self, zone: Optional[str] = None, now: Optional[datetime] = None
    ) -> List[TableWithStatus]:
        """Tables with the invoice, total, elapsed time and paid flag of the sale occupying each."""
        now = now or utcnow()
        tables = self.list_tables(zone=zone)
        occupied_ids = [t.id for t in tables if t.current_sale_id is not None]
        open_sales = {}
        if occupied_ids:
            open_sales = {
                s.table_id: s
                for s in self.db.scalars(
                    select(Sale).where(Sale.table_id.in_(occupied_ids), Sale.status == SaleStatus.OPEN)
                )
            }

        rows = []
        for table in tables:
            row = TableWithStatus.model_validate(table)
            sale = open_sales.get(table.id)
            if sale is not None:
                row.invoice_number = sale.invoice_number
                row.order_total = sale.total
                row.is_paid = is_paid(sale)
                if table.occupied_at is not None:
                    row.elapsed = format_elapsed(now - as_utc(table.occupied_at))
            rows.append(row)
        return rows
