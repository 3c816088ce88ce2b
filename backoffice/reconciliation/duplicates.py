"""Duplicate invoice detection.

An incoming invoice duplicates a stored one when both share the exact
(supplier_id, invoice_number) pair. Fuzziness belongs to supplier matching,
which resolved supplier_id upstream; invoice numbers are compared as-is.
"""

import logging
from typing import Literal

from pydantic import BaseModel

from backoffice.invoices.schema import Invoice, InvoiceLineItem
from backoffice.store.base import InvoiceStore

logger = logging.getLogger(__name__)


class NoDuplicate(BaseModel):
    """No stored invoice shares the supplier and invoice number."""

    is_duplicate: Literal[False] = False


class DuplicateInvoice(BaseModel):
    """A stored invoice shares the supplier and invoice number.

    Attributes:
        existing: The stored invoice
        existing_line_items: Its line items, loaded eagerly for comparison
    """

    is_duplicate: Literal[True] = True
    existing: Invoice
    existing_line_items: list[InvoiceLineItem]


DuplicateCheckResult = DuplicateInvoice | NoDuplicate


def check_for_duplicate(
    store: InvoiceStore, supplier_id: str, invoice_number: str
) -> DuplicateCheckResult:
    """Check whether an invoice for this supplier and number is already on file.

    Args:
        store: Persistence collaborator
        supplier_id: Resolved supplier identifier
        invoice_number: Invoice number exactly as extracted

    Returns:
        DuplicateInvoice with the stored invoice and its line items, or NoDuplicate

    Raises:
        Whatever the store raises; lookup failures are not masked.
    """
    logger.info(f"Checking for duplicate invoice {invoice_number} from supplier {supplier_id}")

    existing = store.find_existing_invoice(supplier_id, invoice_number)
    if existing is None:
        logger.info("No duplicate found")
        return NoDuplicate()

    existing_line_items = store.get_invoice_line_items(existing.id)
    logger.warning(
        f"Duplicate invoice found: {existing.id} ({len(existing_line_items)} line items)"
    )
    return DuplicateInvoice(existing=existing, existing_line_items=existing_line_items)
