"""Merge planning for duplicate invoices.

Computes the invoice and line items to persist once an operator has chosen
how to reconcile an incoming invoice with the stored duplicate. Nothing here
performs I/O and inputs are never mutated: callers persist the returned
objects, so a failed write leaves prior state untouched.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from backoffice.invoices.schema import (
    Invoice,
    InvoiceLineItem,
    PartialInvoice,
    PartialLineItem,
    utc_now,
)
from backoffice.reconciliation.comparator import index_by_product_name, normalize_product_name

logger = logging.getLogger(__name__)

DEFAULT_VAT_RATE = Decimal("21")

# Header fields a replacement may take over from the incoming invoice
_REPLACEABLE_FIELDS = (
    "invoice_date",
    "total_excl_vat",
    "vat_amount",
    "total_incl_vat",
    "discount_amount",
    "currency",
    "status",
    "notes",
)


class MergeOptions(BaseModel):
    """Operator choices for one merge. Not persisted."""

    merge_line_items: bool = True
    update_totals: bool = True
    keep_existing_file: bool = True


class MergeResult(BaseModel):
    """Invoice and full line-item collection to persist as one unit."""

    updated_invoice: Invoice
    updated_line_items: list[InvoiceLineItem]


def _line_total(item: PartialLineItem) -> Decimal:
    if item.total_price is not None:
        return item.total_price
    assert item.quantity is not None and item.unit_price is not None
    return item.quantity * item.unit_price


def _build_line_item(invoice_id: str, item: PartialLineItem, now: datetime) -> InvoiceLineItem:
    """Create a stored row from a complete incoming row."""
    assert item.product_name and item.quantity is not None and item.unit_price is not None
    return InvoiceLineItem(
        id=str(uuid.uuid4()),
        invoice_id=invoice_id,
        product_id=item.product_id,
        product_name=item.product_name,
        description=item.description,
        quantity=item.quantity,
        unit=item.unit or "pcs",
        unit_price=item.unit_price,
        total_price=_line_total(item),
        vat_rate=item.vat_rate if item.vat_rate is not None else Decimal("0"),
        notes=item.notes,
        created_at=now,
        updated_at=now,
    )


def _merge_into(existing: InvoiceLineItem, item: PartialLineItem, now: datetime) -> None:
    """Add an incoming row onto a copied stored row.

    Unit price becomes the blended rate. Stored description and VAT rate win
    over incoming ones.
    """
    assert item.quantity is not None
    existing.quantity += item.quantity
    existing.total_price += _line_total(item)
    existing.unit_price = (
        existing.total_price / existing.quantity if existing.quantity else Decimal("0")
    )
    if item.description and not existing.description:
        existing.description = item.description
    if item.vat_rate is not None and existing.vat_rate is None:
        existing.vat_rate = item.vat_rate
    existing.updated_at = now


def recompute_totals(
    invoice: Invoice, line_items: Sequence[InvoiceLineItem], default_vat_rate: Decimal
) -> None:
    """Replace the invoice totals with sums over its line items.

    Rows without a VAT rate are taxed at default_vat_rate.
    """
    total_excl_vat = Decimal("0")
    vat_amount = Decimal("0")
    total_incl_vat = Decimal("0")

    for item in line_items:
        rate = item.vat_rate if item.vat_rate is not None else default_vat_rate
        item_vat = item.total_price * rate / 100
        total_excl_vat += item.total_price
        vat_amount += item_vat
        total_incl_vat += item.total_price + item_vat

    invoice.total_excl_vat = total_excl_vat
    invoice.vat_amount = vat_amount
    invoice.total_incl_vat = total_incl_vat


def _take_file(invoice: Invoice, new_invoice: PartialInvoice, options: MergeOptions) -> None:
    if options.keep_existing_file or not new_invoice.file_path:
        return
    invoice.file_path = new_invoice.file_path
    if new_invoice.file_name:
        invoice.file_name = new_invoice.file_name


def merge_invoices(
    existing_invoice: Invoice,
    existing_line_items: Sequence[InvoiceLineItem],
    new_line_items: Sequence[PartialLineItem],
    new_invoice: PartialInvoice,
    options: MergeOptions,
    *,
    default_vat_rate: Decimal = DEFAULT_VAT_RATE,
    now: datetime | None = None,
) -> MergeResult:
    """Merge an incoming invoice into its stored duplicate.

    Rows naming a product already on the invoice are added onto it
    (quantities and totals summed); other complete rows are appended.
    Incomplete rows are skipped. With update_totals the invoice totals are
    recomputed from scratch over the final rows. The superseded file, if the
    incoming one replaces it, is left for the caller to delete.

    Args:
        existing_invoice: Stored invoice
        existing_line_items: Its stored line items
        new_line_items: Rows read from the incoming document
        new_invoice: Header read from the incoming document
        options: Operator choices
        default_vat_rate: Rate for rows without one when recomputing totals
        now: Timestamp to stamp, defaults to the current time

    Returns:
        MergeResult with the updated invoice and all its line items
    """
    now = now or utc_now()
    updated_invoice = existing_invoice.model_copy()
    updated_line_items = [item.model_copy() for item in existing_line_items]

    if options.merge_line_items:
        existing_by_name = index_by_product_name(updated_line_items)
        merged = appended = 0

        for new_item in new_line_items:
            if not new_item.is_complete():
                continue

            existing = existing_by_name.get(normalize_product_name(new_item.product_name or ""))
            if existing is not None:
                _merge_into(existing, new_item, now)
                merged += 1
            else:
                updated_line_items.append(_build_line_item(existing_invoice.id, new_item, now))
                appended += 1

        logger.info(
            f"Merged {merged} and appended {appended} line items into invoice "
            f"{existing_invoice.id}"
        )

    if options.update_totals:
        recompute_totals(updated_invoice, updated_line_items, default_vat_rate)

    _take_file(updated_invoice, new_invoice, options)
    updated_invoice.updated_at = now

    return MergeResult(updated_invoice=updated_invoice, updated_line_items=updated_line_items)


def replace_invoice(
    existing_invoice: Invoice,
    new_line_items: Sequence[PartialLineItem],
    new_invoice: PartialInvoice,
    options: MergeOptions,
    *,
    default_vat_rate: Decimal = DEFAULT_VAT_RATE,
    now: datetime | None = None,
) -> MergeResult:
    """Replace a stored invoice's content with the incoming invoice.

    The stored invoice keeps its identity and supplier. Header fields the
    incoming invoice supplies overwrite stored ones and the line items become
    the complete incoming rows. merge_line_items is ignored.

    Returns:
        MergeResult whose line items are all new; the stored rows are to be
        deleted by the caller
    """
    now = now or utc_now()
    updated_invoice = existing_invoice.model_copy()

    for field in _REPLACEABLE_FIELDS:
        value = getattr(new_invoice, field)
        if value is not None:
            setattr(updated_invoice, field, value)

    updated_line_items = [
        _build_line_item(existing_invoice.id, item, now)
        for item in new_line_items
        if item.is_complete()
    ]

    if options.update_totals:
        recompute_totals(updated_invoice, updated_line_items, default_vat_rate)

    _take_file(updated_invoice, new_invoice, options)
    updated_invoice.updated_at = now

    logger.info(
        f"Replaced content of invoice {existing_invoice.id} with "
        f"{len(updated_line_items)} line items"
    )
    return MergeResult(updated_invoice=updated_invoice, updated_line_items=updated_line_items)
