"""In-memory implementation of the invoice store.

Used by the API process when no external store is wired in, and by tests.
Records are copied on the way in and out so callers never hold references to
stored state.
"""

import logging

from backoffice.invoices.schema import Invoice, InvoiceLineItem, Supplier

logger = logging.getLogger(__name__)


class InMemoryInvoiceStore:
    """Dictionary-backed InvoiceStore."""

    def __init__(self) -> None:
        self._suppliers: dict[str, Supplier] = {}
        self._invoices: dict[str, Invoice] = {}
        self._line_items: dict[str, InvoiceLineItem] = {}

    # Suppliers

    def list_suppliers(self) -> list[Supplier]:
        return [s.model_copy() for s in self._suppliers.values()]

    def get_supplier(self, supplier_id: str) -> Supplier | None:
        supplier = self._suppliers.get(supplier_id)
        return supplier.model_copy() if supplier else None

    def create_supplier(self, supplier: Supplier) -> Supplier:
        if supplier.id in self._suppliers:
            raise ValueError(f"Supplier already exists: {supplier.id}")
        self._suppliers[supplier.id] = supplier.model_copy()
        return supplier.model_copy()

    # Invoices

    def find_existing_invoice(self, supplier_id: str, invoice_number: str) -> Invoice | None:
        for invoice in self._invoices.values():
            if invoice.supplier_id == supplier_id and invoice.invoice_number == invoice_number:
                return invoice.model_copy()
        return None

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        invoice = self._invoices.get(invoice_id)
        return invoice.model_copy() if invoice else None

    def create_invoice(self, invoice: Invoice) -> Invoice:
        """Store a new invoice.

        Raises:
            ValueError: If the id is taken or the supplier already has an
                invoice with the same number
        """
        if invoice.id in self._invoices:
            raise ValueError(f"Invoice already exists: {invoice.id}")
        if self.find_existing_invoice(invoice.supplier_id, invoice.invoice_number):
            raise ValueError(
                f"Invoice {invoice.invoice_number} already exists for supplier "
                f"{invoice.supplier_id}"
            )
        self._invoices[invoice.id] = invoice.model_copy()
        logger.debug(f"Created invoice {invoice.id}")
        return invoice.model_copy()

    def update_invoice(self, invoice: Invoice) -> Invoice:
        if invoice.id not in self._invoices:
            raise ValueError(f"Invoice not found: {invoice.id}")
        self._invoices[invoice.id] = invoice.model_copy()
        return invoice.model_copy()

    def delete_invoice(self, invoice_id: str) -> None:
        """Delete an invoice together with its line items."""
        if self._invoices.pop(invoice_id, None) is None:
            raise ValueError(f"Invoice not found: {invoice_id}")
        for item_id in [i.id for i in self._line_items.values() if i.invoice_id == invoice_id]:
            del self._line_items[item_id]

    # Line items

    def get_invoice_line_items(self, invoice_id: str) -> list[InvoiceLineItem]:
        items = [i for i in self._line_items.values() if i.invoice_id == invoice_id]
        items.sort(key=lambda i: i.created_at)
        return [i.model_copy() for i in items]

    def create_line_item(self, line_item: InvoiceLineItem) -> InvoiceLineItem:
        if line_item.invoice_id not in self._invoices:
            raise ValueError(f"Invoice not found: {line_item.invoice_id}")
        if line_item.id in self._line_items:
            raise ValueError(f"Line item already exists: {line_item.id}")
        self._line_items[line_item.id] = line_item.model_copy()
        return line_item.model_copy()

    def update_line_item(self, line_item: InvoiceLineItem) -> InvoiceLineItem:
        if line_item.id not in self._line_items:
            raise ValueError(f"Line item not found: {line_item.id}")
        self._line_items[line_item.id] = line_item.model_copy()
        return line_item.model_copy()

    def delete_line_item(self, line_item_id: str) -> None:
        if self._line_items.pop(line_item_id, None) is None:
            raise ValueError(f"Line item not found: {line_item_id}")
