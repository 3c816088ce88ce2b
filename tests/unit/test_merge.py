"""Unit tests for merge and replacement planning."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from backoffice.invoices.schema import (
    Invoice,
    InvoiceLineItem,
    PartialInvoice,
    PartialLineItem,
)
from backoffice.reconciliation.merge import (
    MergeOptions,
    merge_invoices,
    recompute_totals,
    replace_invoice,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
EARLIER = datetime(2024, 4, 1, 9, 30, tzinfo=UTC)


@pytest.fixture
def invoice() -> Invoice:
    """Stored invoice."""
    return Invoice(
        id="inv-1",
        supplier_id="s-1",
        invoice_number="INV-100",
        total_excl_vat=Decimal("10"),
        vat_amount=Decimal("2.1"),
        total_incl_vat=Decimal("12.1"),
        file_path="inv-1/inv-1-1.pdf",
        file_name="scan.pdf",
        created_at=EARLIER,
        updated_at=EARLIER,
    )


@pytest.fixture
def flour() -> InvoiceLineItem:
    """Stored line item: 5 x 2 = 10."""
    return InvoiceLineItem(
        id="li-1",
        invoice_id="inv-1",
        product_name="Flour",
        quantity=Decimal("5"),
        unit="kg",
        unit_price=Decimal("2"),
        total_price=Decimal("10"),
        vat_rate=Decimal("21"),
        created_at=EARLIER,
        updated_at=EARLIER,
    )


@pytest.fixture
def merge_all() -> MergeOptions:
    """Merge rows and recompute totals, keep the stored file."""
    return MergeOptions(merge_line_items=True, update_totals=True, keep_existing_file=True)


class TestMergeLineItems:
    """Test line-item merging."""

    def test_quantities_are_additive(
        self, invoice: Invoice, flour: InvoiceLineItem, merge_all: MergeOptions
    ) -> None:
        """5 x 2 merged with 3 x 2 gives 8 x 2 = 16."""
        new = [PartialLineItem(product_name="flour", quantity=3, unit_price=2, total_price=6)]

        result = merge_invoices(invoice, [flour], new, PartialInvoice(), merge_all, now=NOW)

        assert len(result.updated_line_items) == 1
        merged = result.updated_line_items[0]
        assert merged.id == "li-1"
        assert merged.quantity == Decimal("8")
        assert merged.total_price == Decimal("16")
        assert merged.unit_price == Decimal("2")
        assert merged.updated_at == NOW

    def test_unit_price_is_blended(self, invoice: Invoice, flour: InvoiceLineItem) -> None:
        """Unit price becomes total over quantity after merging different prices."""
        new = [PartialLineItem(product_name="Flour", quantity=5, unit_price=4)]

        result = merge_invoices(
            invoice, [flour], new, PartialInvoice(), MergeOptions(update_totals=False), now=NOW
        )

        merged = result.updated_line_items[0]
        assert merged.quantity == Decimal("10")
        assert merged.total_price == Decimal("30")
        assert merged.unit_price == Decimal("3")
        assert abs(merged.total_price - merged.quantity * merged.unit_price) < Decimal("0.01")

    def test_missing_total_derived_from_quantity_and_price(
        self, invoice: Invoice, flour: InvoiceLineItem, merge_all: MergeOptions
    ) -> None:
        """A row without a total contributes quantity x unit price."""
        new = [PartialLineItem(product_name="Flour", quantity=2, unit_price="2.5")]

        result = merge_invoices(invoice, [flour], new, PartialInvoice(), merge_all, now=NOW)

        assert result.updated_line_items[0].total_price == Decimal("15")

    def test_new_product_appended_with_defaults(
        self, invoice: Invoice, flour: InvoiceLineItem, merge_all: MergeOptions
    ) -> None:
        """Unmatched rows are appended and owned by the stored invoice."""
        new = [PartialLineItem(product_name="Yeast", quantity=4, unit_price="0.5")]

        result = merge_invoices(invoice, [flour], new, PartialInvoice(), merge_all, now=NOW)

        assert len(result.updated_line_items) == 2
        appended = result.updated_line_items[1]
        assert appended.invoice_id == "inv-1"
        assert appended.id not in ("", "li-1")
        assert appended.unit == "pcs"
        assert appended.vat_rate == Decimal("0")
        assert appended.total_price == Decimal("2")
        assert appended.created_at == NOW

    def test_appended_rows_get_distinct_ids(
        self, invoice: Invoice, merge_all: MergeOptions
    ) -> None:
        """Each appended row gets its own id."""
        new = [
            PartialLineItem(product_name="Yeast", quantity=1, unit_price=1),
            PartialLineItem(product_name="Salt", quantity=1, unit_price=1),
        ]

        result = merge_invoices(invoice, [], new, PartialInvoice(), merge_all, now=NOW)

        ids = {item.id for item in result.updated_line_items}
        assert len(ids) == 2

    def test_incomplete_rows_skipped(
        self, invoice: Invoice, flour: InvoiceLineItem, merge_all: MergeOptions
    ) -> None:
        """Rows without quantity or unit price are not merged as zero."""
        new = [
            PartialLineItem(product_name="Flour", unit_price=2),
            PartialLineItem(product_name="Sugar", quantity=1),
            PartialLineItem(quantity=1, unit_price=1),
        ]

        result = merge_invoices(invoice, [flour], new, PartialInvoice(), merge_all, now=NOW)

        assert len(result.updated_line_items) == 1
        assert result.updated_line_items[0].quantity == Decimal("5")

    def test_backfills_only_unset_fields(self, invoice: Invoice, merge_all: MergeOptions) -> None:
        """Stored description and VAT rate win; missing ones are filled in."""
        bare = InvoiceLineItem(
            id="li-2",
            invoice_id="inv-1",
            product_name="Butter",
            quantity=Decimal("1"),
            unit_price=Decimal("3"),
            total_price=Decimal("3"),
        )
        described = InvoiceLineItem(
            id="li-3",
            invoice_id="inv-1",
            product_name="Cream",
            description="35% fat",
            quantity=Decimal("1"),
            unit_price=Decimal("2"),
            total_price=Decimal("2"),
            vat_rate=Decimal("9"),
        )
        new = [
            PartialLineItem(
                product_name="Butter", quantity=1, unit_price=3, description="82%", vat_rate=21
            ),
            PartialLineItem(
                product_name="Cream", quantity=1, unit_price=2, description="30%", vat_rate=21
            ),
        ]

        result = merge_invoices(
            invoice, [bare, described], new, PartialInvoice(), merge_all, now=NOW
        )

        butter, cream = result.updated_line_items
        assert butter.description == "82%"
        assert butter.vat_rate == Decimal("21")
        assert cream.description == "35% fat"
        assert cream.vat_rate == Decimal("9")

    def test_inputs_not_mutated(
        self, invoice: Invoice, flour: InvoiceLineItem, merge_all: MergeOptions
    ) -> None:
        """Callers' objects are left untouched."""
        existing = [flour]
        new = [
            PartialLineItem(product_name="Flour", quantity=3, unit_price=2),
            PartialLineItem(product_name="Yeast", quantity=1, unit_price=1),
        ]

        merge_invoices(invoice, existing, new, PartialInvoice(), merge_all, now=NOW)

        assert len(existing) == 1
        assert flour.quantity == Decimal("5")
        assert flour.total_price == Decimal("10")
        assert invoice.total_excl_vat == Decimal("10")
        assert invoice.updated_at == EARLIER

    def test_merge_disabled_leaves_rows(self, invoice: Invoice, flour: InvoiceLineItem) -> None:
        """With merge_line_items off, incoming rows are ignored."""
        new = [PartialLineItem(product_name="Flour", quantity=3, unit_price=2)]

        result = merge_invoices(
            invoice,
            [flour],
            new,
            PartialInvoice(),
            MergeOptions(merge_line_items=False, update_totals=True),
            now=NOW,
        )

        assert result.updated_line_items[0].quantity == Decimal("5")
        assert result.updated_invoice.total_excl_vat == Decimal("10")


class TestTotals:
    """Test invoice totals recomputation."""

    def test_totals_recomputed_from_rows(
        self, invoice: Invoice, flour: InvoiceLineItem, merge_all: MergeOptions
    ) -> None:
        """Totals replace stored values and stay consistent."""
        new = [
            PartialLineItem(product_name="Flour", quantity=5, unit_price=2),
            PartialLineItem(product_name="Milk", quantity=10, unit_price=1, vat_rate=9),
        ]

        result = merge_invoices(invoice, [flour], new, PartialInvoice(), merge_all, now=NOW)

        updated = result.updated_invoice
        assert updated.total_excl_vat == Decimal("30")
        assert updated.vat_amount == Decimal("5.1")
        assert updated.total_incl_vat == Decimal("35.1")
        assert abs(updated.total_incl_vat - (updated.total_excl_vat + updated.vat_amount)) < Decimal(
            "0.01"
        )

    def test_rows_without_rate_use_default_vat_rate(self, invoice: Invoice) -> None:
        """Rows lacking a VAT rate are taxed at the configured standard rate."""
        rateless = InvoiceLineItem(
            id="li-9",
            invoice_id="inv-1",
            product_name="Eggs",
            quantity=Decimal("10"),
            unit_price=Decimal("1"),
            total_price=Decimal("10"),
        )

        result = merge_invoices(
            invoice,
            [rateless],
            [],
            PartialInvoice(),
            MergeOptions(merge_line_items=False, update_totals=True),
            default_vat_rate=Decimal("9"),
            now=NOW,
        )

        assert result.updated_invoice.vat_amount == Decimal("0.9")
        assert result.updated_invoice.total_incl_vat == Decimal("10.9")

    @pytest.mark.parametrize(
        "rows",
        [
            [("A", "3", "1.99", "21"), ("B", "0.75", "14.30", "9")],
            [("A", "1", "0.333", None), ("B", "7", "2.71", "5"), ("C", "2", "99.99", "21")],
            [],
        ],
    )
    def test_totals_invariant(self, invoice: Invoice, rows: list[tuple]) -> None:
        """Including-VAT total equals excluding-VAT total plus VAT."""
        items = [
            InvoiceLineItem(
                id=f"li-{name}",
                invoice_id="inv-1",
                product_name=name,
                quantity=Decimal(qty),
                unit_price=Decimal(price),
                total_price=Decimal(qty) * Decimal(price),
                vat_rate=Decimal(rate) if rate else None,
            )
            for name, qty, price, rate in rows
        ]

        recompute_totals(invoice, items, Decimal("21"))

        assert abs(invoice.total_incl_vat - (invoice.total_excl_vat + invoice.vat_amount)) < (
            Decimal("0.01")
        )


class TestFileAndTimestamp:
    """Test file replacement and timestamp handling."""

    def test_no_op_options_only_bump_timestamp(
        self, invoice: Invoice, flour: InvoiceLineItem
    ) -> None:
        """With everything off the result equals the input apart from updated_at."""
        new = [PartialLineItem(product_name="Flour", quantity=3, unit_price=2)]
        new_invoice = PartialInvoice(file_path="inv-1/inv-1-2.pdf")
        options = MergeOptions(merge_line_items=False, update_totals=False, keep_existing_file=True)

        result = merge_invoices(invoice, [flour], new, new_invoice, options, now=NOW)

        assert result.updated_invoice.updated_at == NOW
        assert result.updated_invoice.model_dump(exclude={"updated_at"}) == invoice.model_dump(
            exclude={"updated_at"}
        )
        assert result.updated_line_items == [flour]

    def test_new_file_taken_when_not_keeping(
        self, invoice: Invoice, merge_all: MergeOptions
    ) -> None:
        """The incoming document replaces the stored path."""
        options = merge_all.model_copy(update={"keep_existing_file": False})
        new_invoice = PartialInvoice(file_path="inv-1/inv-1-2.pdf", file_name="rescan.pdf")

        result = merge_invoices(invoice, [], [], new_invoice, options, now=NOW)

        assert result.updated_invoice.file_path == "inv-1/inv-1-2.pdf"
        assert result.updated_invoice.file_name == "rescan.pdf"

    def test_existing_file_kept(self, invoice: Invoice, merge_all: MergeOptions) -> None:
        """keep_existing_file leaves the stored path alone."""
        new_invoice = PartialInvoice(file_path="inv-1/inv-1-2.pdf")

        result = merge_invoices(invoice, [], [], new_invoice, merge_all, now=NOW)

        assert result.updated_invoice.file_path == "inv-1/inv-1-1.pdf"

    def test_missing_new_file_keeps_stored_path(self, invoice: Invoice) -> None:
        """Without an incoming path nothing changes even when not keeping."""
        options = MergeOptions(keep_existing_file=False)

        result = merge_invoices(invoice, [], [], PartialInvoice(), options, now=NOW)

        assert result.updated_invoice.file_path == "inv-1/inv-1-1.pdf"


class TestReplaceInvoice:
    """Test replace_invoice."""

    def test_replaces_rows_and_header(self, invoice: Invoice, merge_all: MergeOptions) -> None:
        """Incoming rows become the invoice content; identity is kept."""
        new_invoice = PartialInvoice(
            invoice_number="IGNORED",
            status="review",
            notes="rescanned",
            total_excl_vat=Decimal("999"),
        )
        new = [
            PartialLineItem(product_name="Rye Flour", quantity=2, unit_price=3, vat_rate=21),
            PartialLineItem(product_name="Broken row"),
        ]

        result = replace_invoice(invoice, new, new_invoice, merge_all, now=NOW)

        updated = result.updated_invoice
        assert updated.id == "inv-1"
        assert updated.invoice_number == "INV-100"
        assert updated.created_at == EARLIER
        assert updated.status == "review"
        assert updated.notes == "rescanned"
        assert [item.product_name for item in result.updated_line_items] == ["Rye Flour"]
        assert updated.total_excl_vat == Decimal("6")
        assert updated.vat_amount == Decimal("1.26")
        assert updated.total_incl_vat == Decimal("7.26")

    def test_keeps_extracted_totals_without_update(self, invoice: Invoice) -> None:
        """Without update_totals the incoming header totals are used."""
        new_invoice = PartialInvoice(
            total_excl_vat=Decimal("50"),
            vat_amount=Decimal("10.5"),
            total_incl_vat=Decimal("60.5"),
        )

        result = replace_invoice(
            invoice, [], new_invoice, MergeOptions(update_totals=False), now=NOW
        )

        assert result.updated_invoice.total_excl_vat == Decimal("50")
        assert result.updated_invoice.total_incl_vat == Decimal("60.5")
        assert result.updated_line_items == []
