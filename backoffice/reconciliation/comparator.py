"""Line-item comparison for duplicate invoices.

Builds the preview shown to an operator before a merge: which incoming rows
refer to a product already on the stored invoice, and what should happen to
each. Side-effect free; nothing here is ever auto-applied.
"""

import re
from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel

from backoffice.invoices.schema import Invoice, InvoiceLineItem, PartialLineItem

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

LineItemAction = Literal["keep_existing", "replace_with_new", "merge_quantities"]


class LineItemComparison(BaseModel):
    """An incoming row paired with the stored row for the same product."""

    existing: InvoiceLineItem
    new: PartialLineItem
    is_duplicate: bool
    action: LineItemAction


class MergePreview(BaseModel):
    """Summary shown to the operator before committing a merge.

    Attributes:
        total_line_items: Row count on the invoice after a merge
        duplicate_line_items: Incoming rows matching a stored row
        new_line_items: Incoming rows that would be appended
        comparisons: Per-row detail for the duplicates
    """

    total_line_items: int
    duplicate_line_items: int
    new_line_items: int
    comparisons: list[LineItemComparison]


def normalize_product_name(name: str) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""
    normalized = _PUNCTUATION.sub("", name.lower())
    return _WHITESPACE.sub(" ", normalized).strip()


def index_by_product_name(items: Sequence[InvoiceLineItem]) -> dict[str, InvoiceLineItem]:
    """Map normalized product name to line item.

    If several stored rows share a normalized name, the last one wins.
    """
    return {normalize_product_name(item.product_name): item for item in items}


def compare_line_items(
    existing_items: Sequence[InvoiceLineItem], new_items: Sequence[PartialLineItem]
) -> list[LineItemComparison]:
    """Pair incoming rows with stored rows for the same product.

    Incoming rows missing a product name, quantity or unit price are ignored,
    as are rows with no stored counterpart.

    Returns:
        One comparison per matched incoming row, in incoming order
    """
    existing_by_name = index_by_product_name(existing_items)
    comparisons: list[LineItemComparison] = []

    for new_item in new_items:
        if not new_item.is_complete():
            continue

        existing = existing_by_name.get(normalize_product_name(new_item.product_name or ""))
        if existing is None:
            continue

        # Exact equality: any difference goes to the operator as a merge
        unchanged = (
            new_item.quantity == existing.quantity and new_item.unit_price == existing.unit_price
        )
        comparisons.append(
            LineItemComparison(
                existing=existing,
                new=new_item,
                is_duplicate=True,
                action="keep_existing" if unchanged else "merge_quantities",
            )
        )

    return comparisons


def generate_merge_preview(
    existing: Invoice,
    existing_items: Sequence[InvoiceLineItem],
    new_items: Sequence[PartialLineItem],
) -> MergePreview:
    """Summarize what merging new_items into the stored invoice would do."""
    comparisons = compare_line_items(existing_items, new_items)
    duplicate_count = len(comparisons)
    new_count = len(new_items) - duplicate_count

    return MergePreview(
        total_line_items=len(existing_items) + new_count,
        duplicate_line_items=duplicate_count,
        new_line_items=new_count,
        comparisons=comparisons,
    )
