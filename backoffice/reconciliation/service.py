"""Invoice reconciliation workflow.

Runs one extracted invoice through supplier matching, duplicate detection and
merge preview, then applies the operator's decision and persists it. The
pure steps live in sibling modules; this service owns the I/O around them.
Callers must serialize concurrent uploads for the same supplier and invoice
number.
"""

import logging

from prometheus_client import Counter
from pydantic import BaseModel

from backoffice.invoices.schema import ExtractedInvoice, Invoice
from backoffice.reconciliation.comparator import MergePreview, generate_merge_preview
from backoffice.reconciliation.duplicates import (
    DuplicateCheckResult,
    DuplicateInvoice,
    check_for_duplicate,
)
from backoffice.reconciliation.merge import (
    MergeOptions,
    MergeResult,
    merge_invoices,
    replace_invoice,
)
from backoffice.shared.config import Settings
from backoffice.storage.service import StorageService
from backoffice.store.base import InvoiceStore
from backoffice.suppliers.matcher import SupplierMatch, match_supplier

logger = logging.getLogger(__name__)


supplier_matches_total = Counter(
    "reconciliation_supplier_matches_total",
    "Supplier name resolutions by outcome",
    ["outcome"],  # exact, partial, none
)

duplicate_checks_total = Counter(
    "reconciliation_duplicate_checks_total",
    "Duplicate invoice checks by result",
    ["result"],  # duplicate, unique
)

reconciliations_applied_total = Counter(
    "reconciliation_applied_total",
    "Operator decisions applied to duplicate invoices",
    ["mode"],  # merge, replace
)


class ReconciliationReport(BaseModel):
    """Everything an operator needs to decide on an incoming invoice.

    Attributes:
        supplier_match: Resolved supplier, None if a human must pick one
        supplier_id: Supplier used for the duplicate check
        duplicate: Duplicate check result, None if it could not run
        preview: Merge preview when a duplicate exists
        warnings: Reasons steps were skipped
    """

    supplier_match: SupplierMatch | None = None
    supplier_id: str | None = None
    duplicate: DuplicateCheckResult | None = None
    preview: MergePreview | None = None
    warnings: list[str] = []


class ReconciliationService:
    """Detect, preview and apply reconciliation of duplicate invoices."""

    def __init__(
        self,
        store: InvoiceStore,
        settings: Settings,
        file_storage: StorageService | None = None,
    ) -> None:
        """Initialize reconciliation service.

        Args:
            store: Persistence collaborator
            settings: Application settings (standard VAT rate)
            file_storage: Invoice document storage, used to remove superseded files
        """
        self.store = store
        self.settings = settings
        self.file_storage = file_storage

    def resolve_supplier(self, raw_name: str | None) -> SupplierMatch | None:
        """Map an extracted supplier name onto a stored supplier."""
        match = match_supplier(raw_name, self.store.list_suppliers())
        supplier_matches_total.labels(outcome=match.match_kind if match else "none").inc()
        return match

    def check_for_duplicate(self, supplier_id: str, invoice_number: str) -> DuplicateCheckResult:
        result = check_for_duplicate(self.store, supplier_id, invoice_number)
        duplicate_checks_total.labels(
            result="duplicate" if result.is_duplicate else "unique"
        ).inc()
        return result

    def reconcile(
        self, extracted: ExtractedInvoice, supplier_id: str | None = None
    ) -> ReconciliationReport:
        """Run supplier matching, duplicate detection and preview.

        Args:
            extracted: Output of the extraction step
            supplier_id: Supplier chosen by an operator; skips name matching

        Returns:
            ReconciliationReport. Missing supplier or invoice number leaves the
            duplicate check unrun and is reported as a warning.
        """
        report = ReconciliationReport()

        if supplier_id is None:
            report.supplier_match = self.resolve_supplier(
                extracted.supplier_name or extracted.invoice.supplier_name
            )
            if report.supplier_match:
                supplier_id = report.supplier_match.supplier.id
            else:
                report.warnings.append("Supplier could not be matched; select one manually")

        report.supplier_id = supplier_id

        invoice_number = extracted.invoice.invoice_number
        if not invoice_number:
            report.warnings.append("Invoice number missing; duplicate check skipped")

        if supplier_id is None or not invoice_number:
            return report

        report.duplicate = self.check_for_duplicate(supplier_id, invoice_number)
        if isinstance(report.duplicate, DuplicateInvoice):
            report.preview = generate_merge_preview(
                report.duplicate.existing,
                report.duplicate.existing_line_items,
                extracted.line_items,
            )

        return report

    def load_duplicate(self, invoice_id: str) -> DuplicateInvoice:
        """Load a stored invoice with its line items.

        Raises:
            ValueError: If the invoice does not exist
        """
        invoice = self.store.get_invoice(invoice_id)
        if invoice is None:
            raise ValueError(f"Invoice not found: {invoice_id}")
        return DuplicateInvoice(
            existing=invoice, existing_line_items=self.store.get_invoice_line_items(invoice_id)
        )

    def apply_merge(
        self, duplicate: DuplicateInvoice, extracted: ExtractedInvoice, options: MergeOptions
    ) -> MergeResult:
        """Merge the incoming invoice into its stored duplicate and persist."""
        result = merge_invoices(
            duplicate.existing,
            duplicate.existing_line_items,
            extracted.line_items,
            extracted.invoice,
            options,
            default_vat_rate=self.settings.default_vat_rate,
        )

        existing_ids = {item.id for item in duplicate.existing_line_items}
        for item in result.updated_line_items:
            if item.id in existing_ids:
                self.store.update_line_item(item)
            else:
                self.store.create_line_item(item)
        self.store.update_invoice(result.updated_invoice)

        self._remove_superseded_file(duplicate.existing, result.updated_invoice)
        reconciliations_applied_total.labels(mode="merge").inc()
        logger.info(f"Applied merge to invoice {duplicate.existing.id}")
        return result

    def apply_replace(
        self, duplicate: DuplicateInvoice, extracted: ExtractedInvoice, options: MergeOptions
    ) -> MergeResult:
        """Replace the stored duplicate's content with the incoming invoice and persist."""
        result = replace_invoice(
            duplicate.existing,
            extracted.line_items,
            extracted.invoice,
            options,
            default_vat_rate=self.settings.default_vat_rate,
        )

        for item in duplicate.existing_line_items:
            self.store.delete_line_item(item.id)
        for item in result.updated_line_items:
            self.store.create_line_item(item)
        self.store.update_invoice(result.updated_invoice)

        self._remove_superseded_file(duplicate.existing, result.updated_invoice)
        reconciliations_applied_total.labels(mode="replace").inc()
        logger.info(f"Applied replacement to invoice {duplicate.existing.id}")
        return result

    def _remove_superseded_file(self, before: Invoice, after: Invoice) -> None:
        """Delete the old document once the invoice points at a new one.

        Failure is logged; the reconciliation itself has already been persisted.
        """
        if not before.file_path or before.file_path == after.file_path:
            return
        if self.file_storage is None or not self.file_storage.is_available():
            logger.warning(f"Storage unavailable; superseded file kept: {before.file_path}")
            return

        result = self.file_storage.delete_invoice_file(before.file_path)
        if not result.success:
            logger.warning(f"Could not delete superseded file {before.file_path}: {result.error}")
