"""Invoice, line-item and supplier data models.

Stored records (Invoice, InvoiceLineItem, Supplier) mirror the back-office
store. Partial models carry what the extraction step managed to read from a
scanned document: every field is optional and may be noisy.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

InvoiceStatus = Literal["pending", "processing", "review", "approved", "rejected"]
Currency = Literal["EUR", "USD", "GBP"]
Unit = Literal["pcs", "kg", "g", "l", "ml"]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class Supplier(BaseModel):
    """Canonical supplier record as entered by a user."""

    id: str
    name: str
    email: str | None = None
    phone: str | None = None


class Invoice(BaseModel):
    """Invoice header stored in the back office.

    (supplier_id, invoice_number) is treated as the natural duplicate key.
    """

    id: str
    supplier_id: str
    invoice_number: str
    invoice_date: date | None = None

    # Financial details
    total_excl_vat: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    total_incl_vat: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    currency: Currency = "EUR"

    status: InvoiceStatus = "pending"

    # Source document
    file_path: str | None = Field(None, description="Object path of the scanned document")
    file_name: str | None = None

    notes: str | None = None
    supplier_name: str | None = Field(None, description="Display name joined from supplier")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class InvoiceLineItem(BaseModel):
    """One purchased product row on a stored invoice."""

    id: str
    invoice_id: str
    product_id: str | None = None
    product_name: str = Field(description="Product name as it appears on the invoice")
    description: str | None = None
    quantity: Decimal
    unit: Unit = "pcs"
    unit_price: Decimal
    total_price: Decimal
    vat_rate: Decimal | None = Field(None, description="VAT rate in percent, e.g. 21")
    needs_review: bool = False
    notes: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PartialInvoice(BaseModel):
    """Invoice header fields as read by the extraction step."""

    supplier_id: str | None = None
    supplier_name: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    total_excl_vat: Decimal | None = None
    vat_amount: Decimal | None = None
    total_incl_vat: Decimal | None = None
    discount_amount: Decimal | None = None
    currency: Currency | None = None
    status: InvoiceStatus | None = None
    file_path: str | None = None
    file_name: str | None = None
    notes: str | None = None


class PartialLineItem(BaseModel):
    """Line item as read by the extraction step.

    A missing quantity or unit price means the row could not be read and is
    skipped during reconciliation; it is never treated as zero.
    """

    product_id: str | None = None
    product_name: str | None = None
    description: str | None = None
    quantity: Decimal | None = None
    unit: Unit | None = None
    unit_price: Decimal | None = None
    total_price: Decimal | None = None
    vat_rate: Decimal | None = None
    notes: str | None = None

    def is_complete(self) -> bool:
        """Whether the row carries everything reconciliation needs."""
        return bool(self.product_name) and self.quantity is not None and self.unit_price is not None


class ExtractedInvoice(BaseModel):
    """Everything the extraction step hands over for one scanned invoice."""

    supplier_name: str | None = Field(None, description="Raw supplier block, possibly noisy")
    invoice: PartialInvoice = Field(default_factory=PartialInvoice)
    line_items: list[PartialLineItem] = Field(default_factory=list)
