"""Order Lifecycle Service - create, pay and clear sales against tables.

A dine-in sale moves its table through:

    available --create--> occupied/unpaid --pay--> occupied/paid --clear--> available

Rules enforced here:
- Payment never touches the table; only clearing frees it.
- A table is ``occupied`` exactly when it points at an open sale. Every
  operation writes the sale and the table in the same transaction.
- Validation happens before anything is written, so a rejected checkout
  leaves no partial state.
- Two checkouts racing for the same table cannot both win: availability is
  re-checked with a conditional UPDATE on ``tables.version`` and the
  ``uq_sales_open_table`` index backs it up.

The payment predicate lives in ``payment_status``; nothing here compares
``amount_paid`` with ``total`` inline.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from branchpos.core.config import settings
from branchpos.core.errors import (
    InvalidStateError,
    NotFoundError,
    NumberingConflictError,
    OrderValidationError,
    TableUnavailableError,
)
from branchpos.core.metrics import metrics
from branchpos.db.base import utcnow
from branchpos.models.customer import Customer
from branchpos.models.product import Product
from branchpos.models.sale import OrderType, PaymentMethod, Sale, SaleLineItem, SaleStatus
from branchpos.models.table import Table, TableStatus
from branchpos.schemas.sale import CreateSaleRequest
from branchpos.services.customer_service import CustomerService
from branchpos.services.delivery_service import DeliveryOrderProjector
from branchpos.services.numbering import next_invoice_number, next_transaction_id
from branchpos.services.payment_status import is_paid
from branchpos.services.pricing import SaleTotals, calculate_totals, money

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# A sale number lost to a concurrent checkout is re-read this many times
NUMBERING_ATTEMPTS = 3


def is_open_table_clash(reason: str) -> bool:
    """True when a unique violation came from the one-open-sale-per-table index."""
    return "uq_sales_open_table" in reason or "sales.table_id" in reason


def is_numbering_clash(reason: str) -> bool:
    return "invoice_number" in reason or "transaction_id" in reason


@dataclass
class _DeliveryContact:
    name: str
    phone: str
    address: str


class OrderLifecycleService:
    """Owns every write to sales and table occupancy."""

    def __init__(
        self,
        db: Session,
        tax_rate: Optional[Decimal] = None,
        branch_code: Optional[str] = None,
    ):
        self.db = db
        self.tax_rate = settings.tax_rate if tax_rate is None else Decimal(str(tax_rate))
        self.branch_code = branch_code or settings.branch_code

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(
        self,
        request: CreateSaleRequest,
        cashier_id: str,
        within_transaction: Optional[Callable[[Sale], None]] = None,
    ) -> Sale:
        """Validate a checkout and persist the sale with its side effects.

        ``within_transaction`` is called with the staged sale just before the
        commit; its writes commit or roll back together with the sale.

        Raises:
            OrderValidationError: input the cashier can correct.
            NotFoundError: unknown product, customer or table.
            TableUnavailableError: the table is not free (or was just taken).
            NumberingConflictError: no unique sale number after retrying.
        """
        self._validate_shape(request)
        products, lines, totals = self.price_cart(request)

        if request.amount_paid is not None:
            self._check_payment_amount(request.payment_method, money(request.amount_paid), totals.total)

        customer = None
        if request.customer_id is not None:
            customer = self.db.get(Customer, request.customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {request.customer_id} not found")

        contact = None
        if request.order_type == OrderType.DELIVERY:
            contact = self._resolve_delivery_contact(request, customer)

        table = None
        if request.order_type == OrderType.DINE_IN:
            table = self._available_table(request.table_number)

        # Nothing has been written up to this point
        for attempt in range(1, NUMBERING_ATTEMPTS + 1):
            now = utcnow()
            try:
                sale = self._write_sale(request, cashier_id, products, lines, totals, customer, contact, table, now)
                if within_transaction is not None:
                    within_transaction(sale)
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                reason = str(e.orig)
                if is_open_table_clash(reason):
                    logger.warning(f"Table {request.table_number} taken concurrently: {reason}")
                    raise TableUnavailableError(f"Table {request.table_number} is no longer available") from e
                if not is_numbering_clash(reason):
                    raise
                logger.warning(f"Sale number collision on attempt {attempt}/{NUMBERING_ATTEMPTS}: {reason}")
                if attempt == NUMBERING_ATTEMPTS:
                    raise NumberingConflictError(
                        "Could not allocate a unique invoice number, please retry"
                    ) from e
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(sale)
        metrics.inc("orders_created")
        logger.info(
            f"Sale {sale.invoice_number} created: {sale.order_type.value}, total {sale.total}"
            + (f", table {sale.table_number}" if sale.table_number is not None else "")
        )
        return sale

    def _write_sale(
        self,
        request: CreateSaleRequest,
        cashier_id: str,
        products: Dict[int, Product],
        lines: List[Tuple[Decimal, Decimal, Decimal]],
        totals: SaleTotals,
        customer: Optional[Customer],
        contact: Optional[_DeliveryContact],
        table: Optional[Table],
        now: datetime,
    ) -> Sale:
        """Stage the sale and its side effects; the caller commits or rolls back."""
        if request.new_customer is not None:
            customer = CustomerService(self.db).create_customer(
                request.new_customer, created_by=cashier_id, commit=False
            )

        sale = Sale(
            transaction_id=next_transaction_id(self.db, now),
            invoice_number=next_invoice_number(self.db, self.branch_code),
            order_type=request.order_type,
            status=SaleStatus.OPEN,
            customer_id=customer.id if customer else None,
            table_id=table.id if table else None,
            table_number=table.number if table else None,
            guest_count=request.guest_count if table else None,
            cashier_id=cashier_id,
            subtotal=totals.subtotal,
            discount_type=request.discount_type,
            discount_value=money(request.discount_value or ZERO),
            total_discount=totals.total_discount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            payment_method=request.payment_method,
            payment_reference=request.payment_reference,
            notes=request.notes,
            created_at=now,
        )
        for item, (quantity, unit_price, discount), line_total in zip(
            request.line_items, lines, totals.line_totals
        ):
            product = products[item.product_id]
            sale.line_items.append(
                SaleLineItem(
                    product_id=product.id,
                    product_name=product.name_en,
                    quantity=quantity,
                    unit_price=money(unit_price),
                    discount_amount=money(discount or ZERO),
                    line_total=line_total,
                    notes=item.notes,
                )
            )
        self.db.add(sale)
        self.db.flush()

        if table is not None:
            self._occupy(table, sale, request.guest_count, now)

        if contact is not None:
            DeliveryOrderProjector(self.db).project(
                sale,
                request.delivery_info,
                customer_name=contact.name,
                customer_phone=contact.phone,
                delivery_address=contact.address,
                created_by=cashier_id,
            )

        self._decrement_stock(sale, products)

        if request.amount_paid is not None:
            self._apply_payment(
                sale,
                request.payment_method,
                money(request.amount_paid),
                None,
                request.payment_reference,
                now,
            )
        return sale

    def price_cart(
        self, request: CreateSaleRequest
    ) -> Tuple[Dict[int, Product], List[Tuple[Decimal, Decimal, Decimal]], SaleTotals]:
        """Load the cart's products and price it; raises before anything is written."""
        if not request.line_items:
            raise OrderValidationError("Cart is empty")
        products = self._load_products(request)
        lines = [
            (
                item.quantity,
                item.unit_price if item.unit_price is not None else products[item.product_id].price,
                item.discount_amount,
            )
            for item in request.line_items
        ]
        totals = calculate_totals(lines, self.tax_rate, request.discount_type, request.discount_value)
        return products, lines, totals

    def _validate_shape(self, request: CreateSaleRequest) -> None:
        if not request.line_items:
            raise OrderValidationError("Cart is empty")

        if request.order_type == OrderType.DELIVERY:
            if request.delivery_info is None:
                raise OrderValidationError("Delivery orders require delivery details")
        elif request.delivery_info is not None:
            raise OrderValidationError("Delivery details are only accepted on delivery orders")

        if request.order_type == OrderType.DINE_IN:
            if request.table_number is None:
                raise OrderValidationError("Dine-in orders require a table")
            if request.guest_count is None or request.guest_count <= 0:
                raise OrderValidationError("Guest count must be at least 1")
        elif request.table_number is not None:
            raise OrderValidationError("Only dine-in orders can be seated at a table")

        if request.customer_id is not None and request.new_customer is not None:
            raise OrderValidationError("Give either an existing customer or a new customer, not both")

    def _load_products(self, request: CreateSaleRequest) -> Dict[int, Product]:
        ids = {item.product_id for item in request.line_items}
        products = {p.id: p for p in self.db.scalars(select(Product).where(Product.id.in_(ids)))}
        missing = sorted(ids - products.keys())
        if missing:
            raise NotFoundError(f"Product(s) not found: {', '.join(str(i) for i in missing)}")
        inactive = [p.sku for p in products.values() if not p.is_active]
        if inactive:
            raise OrderValidationError(f"Product(s) not for sale: {', '.join(sorted(inactive))}")
        return products

    @staticmethod
    def _resolve_delivery_contact(
        request: CreateSaleRequest, customer: Optional[Customer]
    ) -> _DeliveryContact:
        """Delivery name, phone and address, falling back to the customer."""
        info = request.delivery_info
        source = customer or request.new_customer

        def pick(explicit: Optional[str], fallback_attr: str) -> str:
            value = explicit or (getattr(source, fallback_attr, None) if source else None)
            return (value or "").strip()

        contact = _DeliveryContact(
            name=pick(info.customer_name, "name_en"),
            phone=pick(info.customer_phone, "phone"),
            address=pick(info.delivery_address, "address_en"),
        )
        missing = [
            label
            for label, value in (
                ("customer name", contact.name),
                ("phone", contact.phone),
                ("delivery address", contact.address),
            )
            if not value
        ]
        if missing:
            raise OrderValidationError(f"Delivery order is missing: {', '.join(missing)}")
        return contact

    def _available_table(self, table_number: int) -> Table:
        table = self.db.scalar(select(Table).where(Table.number == table_number))
        if table is None:
            raise NotFoundError(f"Table {table_number} not found")
        if not table.is_active:
            raise TableUnavailableError(f"Table {table_number} is not in service")
        if table.status != TableStatus.AVAILABLE or table.current_sale_id is not None:
            raise TableUnavailableError(f"Table {table_number} is {table.status.value}")
        if self._open_sale_for_table(table) is not None:
            raise TableUnavailableError(f"Table {table_number} already has an open order")
        return table

    def _occupy(self, table: Table, sale: Sale, guest_count: Optional[int], now: datetime) -> None:
        """Conditionally mark the table occupied; fails if someone got there first."""
        result = self.db.execute(
            update(Table)
            .where(
                Table.id == table.id,
                Table.version == table.version,
                Table.status == TableStatus.AVAILABLE,
            )
            .values(
                status=TableStatus.OCCUPIED,
                current_sale_id=sale.id,
                current_guest_count=guest_count,
                occupied_at=now,
                updated_at=now,
                version=Table.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TableUnavailableError(f"Table {table.number} is no longer available")
        self.db.expire(table)

    def _decrement_stock(self, sale: Sale, products: Dict[int, Product]) -> None:
        for item in sale.line_items:
            product = products[item.product_id]
            product.stock_level = (product.stock_level or ZERO) - item.quantity
            if product.stock_level < 0 and not product.has_inventory_discrepancy:
                product.has_inventory_discrepancy = True
                logger.warning(
                    f"Product {product.sku} stock went negative ({product.stock_level}) on sale {sale.invoice_number}"
                )

    # ------------------------------------------------------------------
    # Pay
    # ------------------------------------------------------------------

    def record_payment(
        self,
        sale_id: int,
        payment_method: PaymentMethod,
        amount_paid: Decimal,
        change_returned: Optional[Decimal] = None,
        payment_reference: Optional[str] = None,
    ) -> Sale:
        """Record payment on an open sale. The sale stays open and its table stays occupied."""
        sale = self.get_sale(sale_id)
        if sale.is_voided:
            raise InvalidStateError(f"Sale {sale.invoice_number} is voided")
        if sale.status != SaleStatus.OPEN:
            raise InvalidStateError(f"Sale {sale.invoice_number} is already completed")
        if is_paid(sale):
            raise InvalidStateError(f"Sale {sale.invoice_number} is already paid")

        amount = money(amount_paid)
        self._check_payment_amount(payment_method, amount, sale.total)
        change = None
        if change_returned is not None:
            change = money(change_returned)
            if change < ZERO or change > amount:
                raise OrderValidationError(f"Change returned must be between 0 and {amount}")

        self._apply_payment(sale, payment_method, amount, change, payment_reference, utcnow())
        self.db.commit()
        self.db.refresh(sale)

        metrics.inc("payments_recorded")
        logger.info(
            f"Payment recorded on {sale.invoice_number}: {amount} {payment_method.value}, "
            f"paid={is_paid(sale)}"
        )
        return sale

    @staticmethod
    def _check_payment_amount(method: PaymentMethod, amount: Decimal, total: Decimal) -> None:
        if amount <= ZERO:
            raise OrderValidationError("Payment amount must be greater than zero")
        if method == PaymentMethod.CASH and amount < total:
            raise OrderValidationError(f"Cash received {amount} is less than the total {total}")

    @staticmethod
    def _apply_payment(
        sale: Sale,
        method: PaymentMethod,
        amount: Decimal,
        change: Optional[Decimal],
        reference: Optional[str],
        now: datetime,
    ) -> None:
        if change is None:
            change = max(amount - sale.total, ZERO) if method == PaymentMethod.CASH else ZERO
        sale.payment_method = method
        sale.amount_paid = amount
        sale.change_returned = change
        sale.paid_at = now
        if reference is not None:
            sale.payment_reference = reference

    # ------------------------------------------------------------------
    # Clear
    # ------------------------------------------------------------------

    def clear_table(self, table_number: int, acting_user: str) -> bool:
        """Complete the table's open sale and free the table.

        Returns False, without writing anything, when there is nothing to
        clear.
        """
        table = self.db.scalar(select(Table).where(Table.number == table_number))
        if table is None:
            raise NotFoundError(f"Table {table_number} not found")

        sale = self._open_sale_for_table(table)
        if sale is None:
            if table.status == TableStatus.OCCUPIED:
                logger.warning(
                    f"Table {table_number} is occupied but has no open sale (current_sale_id={table.current_sale_id})"
                )
            return False

        self._complete(sale, table, acting_user, utcnow())
        self.db.commit()
        self._log_cleared(sale, table_number, acting_user)
        return True

    def clear_order(self, sale_id: int, acting_user: str) -> bool:
        """Complete a sale by id, freeing its table if it holds one."""
        sale = self.get_sale(sale_id)
        if sale.status != SaleStatus.OPEN:
            return False

        table = self.db.get(Table, sale.table_id) if sale.table_id is not None else None
        self._complete(sale, table, acting_user, utcnow())
        self.db.commit()
        self._log_cleared(sale, sale.table_number, acting_user)
        return True

    def clear_all_tables(self, acting_user: str) -> int:
        """Clear every occupied table in one transaction; returns how many were cleared."""
        tables = self.db.scalars(
            select(Table).where(Table.status == TableStatus.OCCUPIED).order_by(Table.number)
        ).all()
        now = utcnow()
        cleared: List[Tuple[Sale, int]] = []
        for table in tables:
            sale = self._open_sale_for_table(table)
            if sale is None:
                continue
            self._complete(sale, table, acting_user, now)
            cleared.append((sale, table.number))

        if cleared:
            self.db.commit()
        for sale, number in cleared:
            self._log_cleared(sale, number, acting_user)
        return len(cleared)

    def _complete(self, sale: Sale, table: Optional[Table], acting_user: str, now: datetime) -> None:
        if not is_paid(sale) and not sale.is_voided:
            logger.warning(f"Clearing unpaid sale {sale.invoice_number} (balance {sale.total - (sale.amount_paid or ZERO)})")
        sale.status = SaleStatus.COMPLETED
        sale.completed_at = now
        sale.completed_by = acting_user
        if table is not None and table.current_sale_id == sale.id:
            self._release(table, now)

    @staticmethod
    def _release(table: Table, now: datetime) -> None:
        table.status = TableStatus.AVAILABLE
        table.current_sale_id = None
        table.current_guest_count = None
        table.occupied_at = None
        table.updated_at = now
        table.increment_version()

    def _log_cleared(self, sale: Sale, table_number: Optional[int], acting_user: str) -> None:
        metrics.inc("tables_cleared" if table_number is not None else "orders_completed")
        logger.info(
            f"Sale {sale.invoice_number} completed by {acting_user}"
            + (f", table {table_number} now available" if table_number is not None else "")
        )

    # ------------------------------------------------------------------
    # Transfer / void
    # ------------------------------------------------------------------

    def transfer_order(self, sale_id: int, to_table_number: int, acting_user: str) -> Sale:
        """Move an open dine-in sale to another free table."""
        sale = self.get_sale(sale_id)
        if sale.status != SaleStatus.OPEN or sale.table_id is None:
            raise InvalidStateError(f"Sale {sale.invoice_number} is not seated at a table")

        source = self.db.get(Table, sale.table_id)
        if source is not None and source.number == to_table_number:
            raise OrderValidationError(f"Sale is already at table {to_table_number}")
        target = self._available_table(to_table_number)

        now = utcnow()
        try:
            if source is not None and source.current_sale_id == sale.id:
                self._release(source, now)
            sale.table_id = target.id
            sale.table_number = target.number
            self.db.flush()
            self._occupy(target, sale, sale.guest_count, now)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise TableUnavailableError(f"Table {to_table_number} is no longer available") from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(sale)
        metrics.inc("orders_transferred")
        logger.info(
            f"Sale {sale.invoice_number} moved from table {source.number if source else '?'} "
            f"to {to_table_number} by {acting_user}"
        )
        return sale

    def void_order(self, sale_id: int, reason: str, acting_user: str) -> Sale:
        """Void a sale: restore stock and, if still open, complete it and free its table."""
        sale = self.get_sale(sale_id)
        if sale.is_voided:
            raise InvalidStateError(f"Sale {sale.invoice_number} is already voided")
        if not reason or not reason.strip():
            raise OrderValidationError("A void reason is required")

        now = utcnow()
        sale.is_voided = True
        sale.voided_at = now
        sale.voided_by = acting_user
        sale.void_reason = reason.strip()

        for item in sale.line_items:
            product = self.db.get(Product, item.product_id)
            if product is not None:
                product.stock_level = (product.stock_level or ZERO) + item.quantity

        if sale.status == SaleStatus.OPEN:
            table = self.db.get(Table, sale.table_id) if sale.table_id is not None else None
            self._complete(sale, table, acting_user, now)

        self.db.commit()
        self.db.refresh(sale)
        metrics.inc("orders_voided")
        logger.info(f"Sale {sale.invoice_number} voided by {acting_user}: {sale.void_reason}")
        return sale

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.db.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found")
        return sale

    def list_sales(
        self,
        status: Optional[SaleStatus] = None,
        order_type: Optional[OrderType] = None,
        table_number: Optional[int] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[Sale], int]:
        stmt = select(Sale)
        if status is not None:
            stmt = stmt.where(Sale.status == status)
        if order_type is not None:
            stmt = stmt.where(Sale.order_type == order_type)
        if table_number is not None:
            stmt = stmt.where(Sale.table_number == table_number)

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        items = self.db.scalars(
            stmt.order_by(Sale.created_at.desc(), Sale.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return list(items), total

    def _open_sale_for_table(self, table: Table) -> Optional[Sale]:
        return self.db.scalar(
            select(Sale).where(Sale.table_id == table.id, Sale.status == SaleStatus.OPEN)
        )
