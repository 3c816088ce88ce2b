"""Unit tests for line-item comparison and merge preview."""

from decimal import Decimal

import pytest

from backoffice.invoices.schema import Invoice, InvoiceLineItem, PartialLineItem
from backoffice.reconciliation.comparator import (
    compare_line_items,
    generate_merge_preview,
    normalize_product_name,
)


def make_item(item_id: str, name: str, quantity: str, unit_price: str) -> InvoiceLineItem:
    """Build a stored line item."""
    return InvoiceLineItem(
        id=item_id,
        invoice_id="inv-1",
        product_name=name,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        total_price=Decimal(quantity) * Decimal(unit_price),
        vat_rate=Decimal("21"),
    )


@pytest.fixture
def existing_items() -> list[InvoiceLineItem]:
    """Stored line items."""
    return [
        make_item("li-1", "Chicken Breast", "10", "8.50"),
        make_item("li-2", "Olive Oil, Extra Virgin", "2", "12.00"),
    ]


class TestNormalizeProductName:
    """Test normalize_product_name."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Chicken Breast!", "chicken breast"),
            ("  Olive  Oil,   Extra Virgin ", "olive oil extra virgin"),
            ("Pieno-produktai (1L)", "pienoproduktai 1l"),
            ("Vištiena", "vištiena"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        """Should lower-case, strip punctuation and collapse whitespace."""
        assert normalize_product_name(raw) == expected


class TestCompareLineItems:
    """Test compare_line_items."""

    def test_identical_row_keeps_existing(self, existing_items: list[InvoiceLineItem]) -> None:
        """Same quantity and unit price yields keep_existing."""
        new = [PartialLineItem(product_name="chicken breast", quantity=10, unit_price="8.5")]

        comparisons = compare_line_items(existing_items, new)

        assert len(comparisons) == 1
        assert comparisons[0].action == "keep_existing"
        assert comparisons[0].is_duplicate is True
        assert comparisons[0].existing.id == "li-1"

    def test_price_difference_requires_merge(self, existing_items: list[InvoiceLineItem]) -> None:
        """A one-cent difference is not tolerated."""
        new = [PartialLineItem(product_name="Chicken Breast", quantity=10, unit_price="8.51")]

        comparisons = compare_line_items(existing_items, new)

        assert comparisons[0].action == "merge_quantities"

    def test_quantity_difference_requires_merge(
        self, existing_items: list[InvoiceLineItem]
    ) -> None:
        """Different quantity yields merge_quantities."""
        new = [PartialLineItem(product_name="olive oil extra virgin", quantity=3, unit_price=12)]

        comparisons = compare_line_items(existing_items, new)

        assert comparisons[0].action == "merge_quantities"
        assert comparisons[0].existing.id == "li-2"

    def test_unmatched_rows_omitted(self, existing_items: list[InvoiceLineItem]) -> None:
        """Rows with no stored counterpart never appear."""
        new = [PartialLineItem(product_name="Salmon Fillet", quantity=1, unit_price=20)]

        assert compare_line_items(existing_items, new) == []

    @pytest.mark.parametrize(
        "item",
        [
            PartialLineItem(quantity=10, unit_price="8.5"),
            PartialLineItem(product_name="Chicken Breast", unit_price="8.5"),
            PartialLineItem(product_name="Chicken Breast", quantity=10),
        ],
    )
    def test_incomplete_rows_skipped(
        self, existing_items: list[InvoiceLineItem], item: PartialLineItem
    ) -> None:
        """Rows missing name, quantity or unit price are ignored."""
        assert compare_line_items(existing_items, [item]) == []

    def test_duplicate_stored_names_last_wins(self) -> None:
        """When stored rows share a normalized name the later one is used."""
        existing = [make_item("li-a", "Milk", "1", "1"), make_item("li-b", "milk.", "2", "1")]
        new = [PartialLineItem(product_name="MILK", quantity=2, unit_price=1)]

        comparisons = compare_line_items(existing, new)

        assert comparisons[0].existing.id == "li-b"
        assert comparisons[0].action == "keep_existing"


class TestGenerateMergePreview:
    """Test generate_merge_preview."""

    def test_counts(self, existing_items: list[InvoiceLineItem]) -> None:
        """Should summarize total, duplicate and new rows."""
        invoice = Invoice(id="inv-1", supplier_id="s-1", invoice_number="INV-100")
        new = [
            PartialLineItem(product_name="Chicken Breast", quantity=2, unit_price="8.5"),
            PartialLineItem(product_name="Salmon Fillet", quantity=1, unit_price=20),
            PartialLineItem(product_name="Lemons", quantity=5, unit_price="0.4"),
        ]

        preview = generate_merge_preview(invoice, existing_items, new)

        assert preview.duplicate_line_items == 1
        assert preview.new_line_items == 2
        assert preview.total_line_items == 4
        assert len(preview.comparisons) == 1

    def test_no_new_rows(self, existing_items: list[InvoiceLineItem]) -> None:
        """An empty upload leaves the stored count unchanged."""
        invoice = Invoice(id="inv-1", supplier_id="s-1", invoice_number="INV-100")

        preview = generate_merge_preview(invoice, existing_items, [])

        assert preview.total_line_items == 2
        assert preview.duplicate_line_items == 0
        assert preview.new_line_items == 0
