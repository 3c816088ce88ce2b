"""Persistence contract consumed by invoice reconciliation.

The back-office store is an external collaborator. Reconciliation only needs
the operations below; transaction semantics are the store's concern.
"""

from typing import Protocol

from backoffice.invoices.schema import Invoice, InvoiceLineItem, Supplier


class InvoiceStore(Protocol):
    """Protocol for invoice, line-item and supplier persistence.

    Updates and deletes of unknown ids raise ValueError.
    """

    def list_suppliers(self) -> list[Supplier]: ...

    def get_supplier(self, supplier_id: str) -> Supplier | None: ...

    def create_supplier(self, supplier: Supplier) -> Supplier: ...

    def find_existing_invoice(self, supplier_id: str, invoice_number: str) -> Invoice | None:
        """Look up an invoice by exact (supplier_id, invoice_number)."""
        ...

    def get_invoice(self, invoice_id: str) -> Invoice | None: ...

    def create_invoice(self, invoice: Invoice) -> Invoice: ...

    def update_invoice(self, invoice: Invoice) -> Invoice: ...

    def delete_invoice(self, invoice_id: str) -> None: ...

    def get_invoice_line_items(self, invoice_id: str) -> list[InvoiceLineItem]:
        """Line items of an invoice, oldest first."""
        ...

    def create_line_item(self, line_item: InvoiceLineItem) -> InvoiceLineItem: ...

    def update_line_item(self, line_item: InvoiceLineItem) -> InvoiceLineItem: ...

    def delete_line_item(self, line_item_id: str) -> None: ...
