"""Tests for the order/table lifecycle: create, pay, clear."""

import random
import re
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from branchpos.core.errors import (
    InvalidStateError,
    NotFoundError,
    NumberingConflictError,
    OrderValidationError,
    POSError,
    TableUnavailableError,
)
from branchpos.db.base import utcnow
from branchpos.models.customer import Customer
from branchpos.models.delivery import DeliveryOrder
from branchpos.models.product import Product
from branchpos.models.sale import (
    DiscountType,
    OrderType,
    PaymentMethod,
    Sale,
    SaleStatus,
)
from branchpos.models.table import Table, TableStatus
from branchpos.schemas.customer import CustomerCreate
from branchpos.schemas.sale import CreateSaleRequest, SaleLineItemCreate
from branchpos.services.order_lifecycle_service import (
    NUMBERING_ATTEMPTS,
    OrderLifecycleService,
    is_numbering_clash,
    is_open_table_clash,
)
from branchpos.services.payment_status import is_paid


def items(*products, quantity="1"):
    return [SaleLineItemCreate(product_id=p.id, quantity=Decimal(quantity)) for p in products]


def dine_in(products, table_number=5, guest_count=2, **kwargs):
    return CreateSaleRequest(
        order_type=OrderType.DINE_IN,
        line_items=items(*products),
        table_number=table_number,
        guest_count=guest_count,
        **kwargs,
    )


def table_by_number(db: Session, number: int) -> Table:
    return db.scalar(select(Table).where(Table.number == number))


def sale_count(db: Session) -> int:
    return db.scalar(select(func.count(Sale.id)))


def assert_occupancy_invariant(db: Session):
    db.expire_all()
    for table in db.scalars(select(Table)):
        assert (table.status == TableStatus.OCCUPIED) == (table.current_sale_id is not None), (
            f"table {table.number}: status={table.status} current_sale_id={table.current_sale_id}"
        )
        if table.current_sale_id is not None:
            sale = db.get(Sale, table.current_sale_id)
            assert sale.status == SaleStatus.OPEN
            assert sale.table_id == table.id
    for sale in db.scalars(select(Sale).where(Sale.status == SaleStatus.OPEN, Sale.table_id.is_not(None))):
        assert db.get(Table, sale.table_id).current_sale_id == sale.id


class TestDineInScenario:
    """Create -> pay -> clear -> clear again on table 5."""

    def test_create_occupies_table(self, service, db_session, tables, burger, fries):
        """Test checkout occupies the table with an unpaid open sale."""
        sale = service.create_order(dine_in([burger, fries]), cashier_id="cashier-1")

        assert sale.subtotal == Decimal("20.00")
        assert sale.tax_amount == Decimal("3.00")
        assert sale.total == Decimal("23.00")
        assert sale.status == SaleStatus.OPEN
        assert sale.amount_paid is None
        assert sale.change_returned is None
        assert is_paid(sale) is False

        table = table_by_number(db_session, 5)
        assert table.status == TableStatus.OCCUPIED
        assert table.current_sale_id == sale.id
        assert table.current_guest_count == 2
        assert table.occupied_at is not None
        assert table.version == 2

    def test_payment_leaves_table_occupied(self, service, db_session, tables, burger, fries):
        """Test payment marks the sale paid and leaves the table occupied."""
        sale = service.create_order(dine_in([burger, fries]), cashier_id="cashier-1")

        paid = service.record_payment(sale.id, PaymentMethod.CASH, Decimal("23"))

        assert paid.amount_paid == Decimal("23.00")
        assert paid.change_returned == Decimal("0.00")
        assert paid.status == SaleStatus.OPEN
        assert is_paid(paid) is True
        table = table_by_number(db_session, 5)
        assert table.status == TableStatus.OCCUPIED
        assert table.current_sale_id == sale.id

    def test_clear_completes_sale_and_frees_table(self, service, db_session, tables, burger, fries):
        """Test clearing completes the sale and frees the table."""
        sale = service.create_order(dine_in([burger, fries]), cashier_id="cashier-1")
        service.record_payment(sale.id, PaymentMethod.CASH, Decimal("23"))

        assert service.clear_table(5, acting_user="cashier-1") is True

        db_session.refresh(sale)
        assert sale.status == SaleStatus.COMPLETED
        assert sale.completed_at is not None
        assert sale.completed_by == "cashier-1"
        table = table_by_number(db_session, 5)
        assert table.status == TableStatus.AVAILABLE
        assert table.current_sale_id is None
        assert table.current_guest_count is None
        assert table.occupied_at is None

    def test_second_clear_returns_false_without_changes(self, service, db_session, tables, burger, fries):
        """Test clearing a cleared table writes nothing."""
        sale = service.create_order(dine_in([burger, fries]), cashier_id="cashier-1")
        service.record_payment(sale.id, PaymentMethod.CASH, Decimal("23"))
        assert service.clear_table(5, acting_user="cashier-1") is True

        table = table_by_number(db_session, 5)
        before = (table.status, table.version, table.updated_at)
        db_session.refresh(sale)
        completed_at = sale.completed_at

        assert service.clear_table(5, acting_user="cashier-1") is False

        db_session.expire_all()
        table = table_by_number(db_session, 5)
        assert (table.status, table.version, table.updated_at) == before
        assert db_session.get(Sale, sale.id).completed_at == completed_at

    def test_clearing_never_unpays(self, service, db_session, tables, burger):
        """Test clearing keeps the recorded payment."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        service.record_payment(sale.id, PaymentMethod.CARD, Decimal("11.50"))
        assert is_paid(sale)

        service.clear_table(5, acting_user="cashier-1")

        db_session.refresh(sale)
        assert is_paid(sale)
        assert sale.amount_paid == Decimal("11.50")

    def test_clear_unknown_table(self, service, tables):
        """Test clearing a table that does not exist."""
        with pytest.raises(NotFoundError):
            service.clear_table(99, acting_user="cashier-1")

    def test_clear_free_table_returns_false(self, service, tables):
        """Test clearing a free table reports nothing cleared."""
        assert service.clear_table(1, acting_user="cashier-1") is False


class TestCreateValidation:
    """Test checkout validation happens before anything is written."""

    def test_percentage_discount_150_rejected_before_persistence(self, service, db_session, tables, burger, fries):
        """Test a 150% discount leaves no sale, occupancy or stock change."""
        request = dine_in([burger, fries], discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("150"))

        with pytest.raises(OrderValidationError):
            service.create_order(request, cashier_id="cashier-1")

        db_session.expire_all()
        assert sale_count(db_session) == 0
        table = table_by_number(db_session, 5)
        assert table.status == TableStatus.AVAILABLE
        assert table.version == 1
        assert db_session.get(Product, burger.id).stock_level == Decimal("50")

    def test_fixed_discount_above_subtotal_rejected(self, service, db_session, tables, burger):
        """Test a fixed discount above the subtotal is rejected."""
        request = dine_in([burger], discount_type=DiscountType.FIXED, discount_value=Decimal("10.01"))
        with pytest.raises(OrderValidationError):
            service.create_order(request, cashier_id="cashier-1")
        assert sale_count(db_session) == 0

    def test_fixed_discount_equal_to_subtotal_accepted(self, service, tables, burger):
        """Test a fixed discount equal to the subtotal gives a zero total."""
        request = dine_in([burger], discount_type=DiscountType.FIXED, discount_value=Decimal("10.00"))
        sale = service.create_order(request, cashier_id="cashier-1")
        assert sale.total == Decimal("0.00")

    def test_empty_cart(self, service, tables):
        """Test an empty cart is rejected."""
        request = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=[])
        with pytest.raises(OrderValidationError, match="empty"):
            service.create_order(request, cashier_id="cashier-1")

    def test_dine_in_without_table(self, service, burger):
        """Test a dine-in order needs a table."""
        request = CreateSaleRequest(order_type=OrderType.DINE_IN, line_items=items(burger), guest_count=2)
        with pytest.raises(OrderValidationError, match="table"):
            service.create_order(request, cashier_id="cashier-1")

    @pytest.mark.parametrize("guests", [None, 0, -1])
    def test_dine_in_without_guests(self, service, tables, burger, guests):
        """Test a dine-in order needs at least one guest."""
        with pytest.raises(OrderValidationError):
            service.create_order(dine_in([burger], guest_count=guests), cashier_id="cashier-1")

    def test_takeaway_with_table_rejected(self, service, tables, burger):
        """Test only dine-in orders can name a table."""
        request = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger), table_number=5)
        with pytest.raises(OrderValidationError):
            service.create_order(request, cashier_id="cashier-1")

    def test_short_cash_rejected(self, service, db_session, tables, burger, fries):
        """Test cash below the total is rejected at checkout."""
        request = dine_in([burger, fries], payment_method=PaymentMethod.CASH, amount_paid=Decimal("20"))
        with pytest.raises(OrderValidationError, match="less than the total"):
            service.create_order(request, cashier_id="cashier-1")
        assert sale_count(db_session) == 0
        assert table_by_number(db_session, 5).status == TableStatus.AVAILABLE

    def test_unknown_product(self, service, tables):
        """Test a cart with an unknown product."""
        request = CreateSaleRequest(
            order_type=OrderType.TAKEAWAY,
            line_items=[SaleLineItemCreate(product_id=999, quantity=Decimal("1"))],
        )
        with pytest.raises(NotFoundError):
            service.create_order(request, cashier_id="cashier-1")

    def test_inactive_product(self, service, db_session, burger):
        """Test a product not for sale is rejected."""
        burger.is_active = False
        db_session.commit()
        request = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger))
        with pytest.raises(OrderValidationError):
            service.create_order(request, cashier_id="cashier-1")

    def test_unknown_customer(self, service, burger):
        """Test a sale for an unknown customer."""
        request = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger), customer_id=42)
        with pytest.raises(NotFoundError):
            service.create_order(request, cashier_id="cashier-1")

    def test_existing_and_new_customer_together_rejected(self, service, burger):
        """Test a sale cannot name both an existing and a new customer."""
        request = CreateSaleRequest(
            order_type=OrderType.TAKEAWAY,
            line_items=items(burger),
            customer_id=1,
            new_customer=CustomerCreate(name_en="Sam"),
        )
        with pytest.raises(OrderValidationError):
            service.create_order(request, cashier_id="cashier-1")


class TestTableAvailability:
    """Test a table holds at most one open sale."""

    def test_occupied_table_rejected(self, service, db_session, tables, burger):
        """Test an occupied table cannot be seated again."""
        service.create_order(dine_in([burger]), cashier_id="cashier-1")
        with pytest.raises(TableUnavailableError):
            service.create_order(dine_in([burger]), cashier_id="cashier-2")
        assert sale_count(db_session) == 1

    def test_inactive_table_rejected(self, service, tables, burger):
        """Test a table out of service cannot be seated."""
        with pytest.raises(TableUnavailableError):
            service.create_order(dine_in([burger], table_number=6), cashier_id="cashier-1")

    def test_unknown_table(self, service, tables, burger):
        """Test seating a table that does not exist."""
        with pytest.raises(NotFoundError):
            service.create_order(dine_in([burger], table_number=99), cashier_id="cashier-1")

    def test_reserved_table_rejected(self, service, db_session, tables, burger):
        """Test a reserved table cannot be seated."""
        table_by_number(db_session, 4).status = TableStatus.RESERVED
        db_session.commit()
        with pytest.raises(TableUnavailableError):
            service.create_order(dine_in([burger], table_number=4), cashier_id="cashier-1")

    def test_stale_table_version_loses(self, service, db_session, tables, burger):
        """Test a checkout based on a stale table version loses."""
        table = table_by_number(db_session, 5)
        stale = SimpleNamespace(id=table.id, number=5, version=table.version)
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")

        # A second checkout that read table 5 before the first one committed
        with pytest.raises(TableUnavailableError):
            service._occupy(stale, sale, 2, utcnow())

    def test_index_allows_one_open_sale_per_table(self, db_session, tables):
        """Test the database refuses two open sales on one table."""
        table = table_by_number(db_session, 5)
        for n in (1, 2):
            db_session.add(
                Sale(
                    transaction_id=f"TXN-20250101-00000{n}",
                    invoice_number=f"B001-INV-00000{n}",
                    order_type=OrderType.DINE_IN,
                    status=SaleStatus.OPEN,
                    table_id=table.id,
                    cashier_id="cashier-1",
                    subtotal=Decimal("10"),
                    tax_amount=Decimal("1.5"),
                    total=Decimal("11.5"),
                    payment_method=PaymentMethod.CASH,
                )
            )
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_index_violation_surfaces_as_table_unavailable(self, service, db_session, tables, burger, monkeypatch):
        """Test an open-table index violation is reported as table unavailable."""
        table = table_by_number(db_session, 5)
        # An open sale the availability check does not see
        db_session.add(
            Sale(
                transaction_id="TXN-20250101-999999",
                invoice_number="B001-INV-999999",
                order_type=OrderType.DINE_IN,
                status=SaleStatus.OPEN,
                table_id=table.id,
                cashier_id="other",
                subtotal=Decimal("10"),
                tax_amount=Decimal("1.5"),
                total=Decimal("11.5"),
                payment_method=PaymentMethod.CASH,
            )
        )
        db_session.commit()
        monkeypatch.setattr(service, "_open_sale_for_table", lambda table: None)

        with pytest.raises(TableUnavailableError):
            service.create_order(dine_in([burger]), cashier_id="cashier-1")

        db_session.expire_all()
        assert sale_count(db_session) == 1
        assert table_by_number(db_session, 5).status == TableStatus.AVAILABLE


class TestNumberingCollisions:
    """Test checkouts whose sale number is taken by a concurrent checkout."""

    @staticmethod
    def collide(monkeypatch, taken, times=None):
        from branchpos.services import order_lifecycle_service

        real = order_lifecycle_service.next_invoice_number
        calls = []

        def next_invoice_number(db, branch_code):
            calls.append(branch_code)
            if times is None or len(calls) <= times:
                return taken
            return real(db, branch_code)

        monkeypatch.setattr(order_lifecycle_service, "next_invoice_number", next_invoice_number)
        return calls

    def test_collision_retried_with_fresh_number(self, service, db_session, tables, burger, monkeypatch):
        """Test a dine-in checkout retries after an invoice number clash."""
        first = service.create_order(dine_in([burger], table_number=1), cashier_id="cashier-1")
        calls = self.collide(monkeypatch, first.invoice_number, times=1)

        sale = service.create_order(dine_in([burger], table_number=2), cashier_id="cashier-2")

        assert len(calls) == 2
        assert sale.invoice_number == "B001-INV-000002"
        assert table_by_number(db_session, 2).current_sale_id == sale.id
        db_session.refresh(burger)
        assert burger.stock_level == Decimal("48")

    def test_persistent_collision_is_not_a_table_error(self, service, db_session, tables, burger, monkeypatch):
        """Test repeated invoice clashes on a dine-in order raise a numbering conflict."""
        first = service.create_order(dine_in([burger], table_number=1), cashier_id="cashier-1")
        calls = self.collide(monkeypatch, first.invoice_number)

        with pytest.raises(NumberingConflictError):
            service.create_order(dine_in([burger], table_number=2), cashier_id="cashier-2")

        assert len(calls) == NUMBERING_ATTEMPTS
        db_session.expire_all()
        assert sale_count(db_session) == 1
        table = table_by_number(db_session, 2)
        assert table.status == TableStatus.AVAILABLE
        assert table.current_sale_id is None

    def test_takeaway_collision_surfaces_as_conflict(self, service, db_session, burger, monkeypatch):
        """Test an invoice clash on a takeaway order raises a numbering conflict."""
        takeaway = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger))
        first = service.create_order(takeaway, cashier_id="cashier-1")
        self.collide(monkeypatch, first.invoice_number)

        with pytest.raises(NumberingConflictError) as exc_info:
            service.create_order(takeaway, cashier_id="cashier-1")

        assert exc_info.value.status_code == 409
        assert sale_count(db_session) == 1

    @pytest.mark.parametrize(
        "reason, table_clash, numbering_clash",
        [
            ("UNIQUE constraint failed: sales.table_id", True, False),
            ('duplicate key value violates unique constraint "uq_sales_open_table"', True, False),
            ("UNIQUE constraint failed: sales.invoice_number", False, True),
            ('duplicate key value violates unique constraint "sales_transaction_id_key"', False, True),
            ("UNIQUE constraint failed: customers.code", False, False),
        ],
    )
    def test_violation_classification(self, reason, table_clash, numbering_clash):
        """Test unique violations are told apart by the constraint they name."""
        assert is_open_table_clash(reason) is table_clash
        assert is_numbering_clash(reason) is numbering_clash


class TestPayment:
    """Test recording payments."""

    def test_cash_at_checkout_computes_change(self, service, db_session, tables, burger, fries):
        """Test cash paid at checkout computes change."""
        request = dine_in([burger, fries], payment_method=PaymentMethod.CASH, amount_paid=Decimal("50"))
        sale = service.create_order(request, cashier_id="cashier-1")

        assert sale.amount_paid == Decimal("50.00")
        assert sale.change_returned == Decimal("27.00")
        assert is_paid(sale)
        assert sale.status == SaleStatus.OPEN
        assert table_by_number(db_session, 5).status == TableStatus.OCCUPIED

    def test_partial_card_payment_then_full(self, service, tables, burger, fries):
        """Test a partial card payment stays unpaid until the full amount."""
        sale = service.create_order(dine_in([burger, fries]), cashier_id="cashier-1")

        sale = service.record_payment(sale.id, PaymentMethod.CARD, Decimal("10"))
        assert not is_paid(sale)
        assert sale.change_returned == Decimal("0")

        sale = service.record_payment(sale.id, PaymentMethod.CARD, Decimal("23"), payment_reference="AUTH-1")
        assert is_paid(sale)
        assert sale.payment_reference == "AUTH-1"

    def test_paid_sale_stays_paid(self, service, tables, burger):
        """Test a paid sale refuses further payment."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        service.record_payment(sale.id, PaymentMethod.CASH, Decimal("20"))
        with pytest.raises(InvalidStateError):
            service.record_payment(sale.id, PaymentMethod.CARD, Decimal("1"))
        assert is_paid(service.get_sale(sale.id))

    def test_short_cash_payment_rejected(self, service, tables, burger):
        """Test cash below the total is rejected."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        with pytest.raises(OrderValidationError):
            service.record_payment(sale.id, PaymentMethod.CASH, Decimal("11.49"))

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_amount_rejected(self, service, tables, burger, amount):
        """Test zero and negative amounts are rejected."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        with pytest.raises(OrderValidationError):
            service.record_payment(sale.id, PaymentMethod.CARD, Decimal(amount))

    def test_explicit_change(self, service, tables, burger):
        """Test an explicit change amount is kept."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        sale = service.record_payment(sale.id, PaymentMethod.CASH, Decimal("20"), change_returned=Decimal("8.50"))
        assert sale.change_returned == Decimal("8.50")

    def test_change_larger_than_amount_rejected(self, service, tables, burger):
        """Test change cannot exceed the amount received."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        with pytest.raises(OrderValidationError):
            service.record_payment(sale.id, PaymentMethod.CASH, Decimal("20"), change_returned=Decimal("21"))

    def test_payment_on_completed_sale_rejected(self, service, tables, burger):
        """Test a completed sale refuses payment."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        service.clear_table(5, acting_user="cashier-1")
        with pytest.raises(InvalidStateError):
            service.record_payment(sale.id, PaymentMethod.CASH, Decimal("20"))

    def test_payment_on_unknown_sale(self, service):
        """Test paying a sale that does not exist."""
        with pytest.raises(NotFoundError):
            service.record_payment(123, PaymentMethod.CASH, Decimal("20"))


class TestClearingVariants:
    """Test clearing by sale id and clearing every table."""

    def test_clear_order_by_id(self, service, db_session, tables, burger):
        """Test clearing a sale by id frees its table once."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        assert service.clear_order(sale.id, acting_user="cashier-1") is True
        assert service.clear_order(sale.id, acting_user="cashier-1") is False
        assert table_by_number(db_session, 5).status == TableStatus.AVAILABLE

    def test_clear_takeaway_order(self, service, burger):
        """Test a takeaway sale can be completed by id."""
        sale = service.create_order(
            CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger)), cashier_id="cashier-1"
        )
        assert service.clear_order(sale.id, acting_user="cashier-1") is True
        assert service.get_sale(sale.id).status == SaleStatus.COMPLETED

    def test_clear_all_is_idempotent(self, service, db_session, tables, burger):
        """Test clearing all tables twice clears them once."""
        for number in (1, 2, 3):
            service.create_order(dine_in([burger], table_number=number), cashier_id="cashier-1")

        assert service.clear_all_tables(acting_user="manager") == 3
        assert service.clear_all_tables(acting_user="manager") == 0
        assert_occupancy_invariant(db_session)
        open_sales = db_session.scalar(select(func.count(Sale.id)).where(Sale.status == SaleStatus.OPEN))
        assert open_sales == 0


class TestTransferAndVoid:
    """Test moving and voiding sales."""

    def test_transfer_moves_occupancy(self, service, db_session, tables, burger):
        """Test a transfer frees the source table and occupies the target."""
        sale = service.create_order(dine_in([burger], guest_count=3), cashier_id="cashier-1")

        moved = service.transfer_order(sale.id, 2, acting_user="cashier-1")

        assert moved.table_number == 2
        source, target = table_by_number(db_session, 5), table_by_number(db_session, 2)
        assert source.status == TableStatus.AVAILABLE and source.current_sale_id is None
        assert target.status == TableStatus.OCCUPIED and target.current_sale_id == sale.id
        assert target.current_guest_count == 3
        assert_occupancy_invariant(db_session)

    def test_transfer_to_occupied_table_rejected(self, service, db_session, tables, burger):
        """Test a sale cannot move to an occupied table."""
        first = service.create_order(dine_in([burger], table_number=1), cashier_id="cashier-1")
        service.create_order(dine_in([burger], table_number=2), cashier_id="cashier-1")
        with pytest.raises(TableUnavailableError):
            service.transfer_order(first.id, 2, acting_user="cashier-1")
        assert table_by_number(db_session, 1).current_sale_id == first.id

    def test_transfer_to_same_table_rejected(self, service, tables, burger):
        """Test a sale cannot move to its own table."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        with pytest.raises(OrderValidationError):
            service.transfer_order(sale.id, 5, acting_user="cashier-1")

    def test_transfer_takeaway_rejected(self, service, tables, burger):
        """Test a takeaway sale cannot be transferred."""
        sale = service.create_order(
            CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger)), cashier_id="cashier-1"
        )
        with pytest.raises(InvalidStateError):
            service.transfer_order(sale.id, 2, acting_user="cashier-1")

    def test_void_frees_table_and_restores_stock(self, service, db_session, tables, burger):
        """Test voiding frees the table and restores stock once."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        assert db_session.get(Product, burger.id).stock_level == Decimal("49")

        voided = service.void_order(sale.id, reason="Customer left", acting_user="manager")

        assert voided.is_voided
        assert voided.status == SaleStatus.COMPLETED
        assert voided.void_reason == "Customer left"
        assert db_session.get(Product, burger.id).stock_level == Decimal("50")
        assert table_by_number(db_session, 5).status == TableStatus.AVAILABLE
        with pytest.raises(InvalidStateError):
            service.void_order(sale.id, reason="again", acting_user="manager")

    def test_void_requires_reason(self, service, tables, burger):
        """Test a void needs a reason."""
        sale = service.create_order(dine_in([burger]), cashier_id="cashier-1")
        with pytest.raises(OrderValidationError):
            service.void_order(sale.id, reason="  ", acting_user="manager")


class TestSideEffects:
    """Test stock, numbering and customer side effects of checkout."""

    def test_stock_decremented_and_negative_flagged(self, service, db_session, fries):
        """Test stock is decremented and negative stock flagged."""
        request = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(fries, quantity="3"))
        sale = service.create_order(request, cashier_id="cashier-1")

        product = db_session.get(Product, fries.id)
        assert product.stock_level == Decimal("-2")
        assert product.has_inventory_discrepancy is True
        assert sale.status == SaleStatus.OPEN

    def test_numbering(self, service, burger):
        """Test invoice and transaction numbers are sequential."""
        request = CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger))
        first = service.create_order(request, cashier_id="cashier-1")
        second = service.create_order(request, cashier_id="cashier-1")

        assert first.invoice_number == "B001-INV-000001"
        assert second.invoice_number == "B001-INV-000002"
        assert re.fullmatch(r"TXN-\d{8}-000001", first.transaction_id)
        assert re.fullmatch(r"TXN-\d{8}-000002", second.transaction_id)

    def test_inline_new_customer_created_with_sale(self, service, db_session, burger):
        """Test an inline new customer is created with the sale."""
        request = CreateSaleRequest(
            order_type=OrderType.TAKEAWAY,
            line_items=items(burger),
            new_customer=CustomerCreate(name_en="Layla", phone="0500000000"),
        )
        sale = service.create_order(request, cashier_id="cashier-1")

        customer = db_session.get(Customer, sale.customer_id)
        assert customer.name_en == "Layla"
        assert re.fullmatch(r"CUST-\d{8}", customer.code)
        assert customer.created_by == "cashier-1"

    def test_rejected_checkout_creates_no_customer(self, service, db_session, burger):
        """Test a rejected checkout leaves no new customer."""
        request = CreateSaleRequest(
            order_type=OrderType.TAKEAWAY,
            line_items=items(burger),
            new_customer=CustomerCreate(name_en="Layla"),
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("101"),
        )
        with pytest.raises(OrderValidationError):
            service.create_order(request, cashier_id="cashier-1")
        assert db_session.scalar(select(func.count(Customer.id))) == 0

    def test_lifecycle_leaves_customer_stats_alone(self, service, db_session, tables, burger):
        """Test the order lifecycle never updates customer stats."""
        customer = Customer(code="CUST-00000001", name_en="Omar")
        db_session.add(customer)
        db_session.commit()

        sale = service.create_order(dine_in([burger], customer_id=customer.id), cashier_id="cashier-1")
        service.record_payment(sale.id, PaymentMethod.CASH, Decimal("20"))
        service.clear_table(5, acting_user="cashier-1")

        db_session.refresh(customer)
        assert customer.total_purchases == Decimal("0")
        assert customer.visit_count == 0

    def test_list_sales_filters(self, service, tables, burger):
        """Test listing sales by type and status."""
        service.create_order(dine_in([burger]), cashier_id="cashier-1")
        service.create_order(
            CreateSaleRequest(order_type=OrderType.TAKEAWAY, line_items=items(burger)), cashier_id="cashier-1"
        )

        sales, total = service.list_sales(order_type=OrderType.DINE_IN)
        assert total == 1
        assert sales[0].table_number == 5
        _, total = service.list_sales(status=SaleStatus.OPEN)
        assert total == 2


class TestOccupancyInvariant:
    """Test occupancy stays consistent under random operations."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_random_operation_sequences(self, db_session, tables, burger, fries, seed):
        """Test every table is occupied exactly when it holds an open sale."""
        service = OrderLifecycleService(db_session, tax_rate=Decimal("0.15"), branch_code="B001")
        rng = random.Random(seed)
        numbers = [t.number for t in tables]

        def open_sale_ids():
            return list(db_session.scalars(select(Sale.id).where(Sale.status == SaleStatus.OPEN)))

        for _ in range(60):
            op = rng.choice(["create", "create", "pay", "clear", "clear_order", "transfer", "void"])
            try:
                if op == "create":
                    service.create_order(
                        dine_in([rng.choice([burger, fries])], table_number=rng.choice(numbers)),
                        cashier_id="cashier-1",
                    )
                elif op == "pay" and open_sale_ids():
                    sale = service.get_sale(rng.choice(open_sale_ids()))
                    service.record_payment(sale.id, PaymentMethod.CARD, sale.total)
                elif op == "clear":
                    service.clear_table(rng.choice(numbers), acting_user="cashier-1")
                elif op == "clear_order" and open_sale_ids():
                    service.clear_order(rng.choice(open_sale_ids()), acting_user="cashier-1")
                elif op == "transfer" and open_sale_ids():
                    service.transfer_order(rng.choice(open_sale_ids()), rng.choice(numbers), acting_user="cashier-1")
                elif op == "void" and open_sale_ids():
                    service.void_order(rng.choice(open_sale_ids()), reason="test", acting_user="manager")
            except POSError:
                db_session.rollback()
            assert_occupancy_invariant(db_session)
