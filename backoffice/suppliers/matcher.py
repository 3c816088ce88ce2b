"""Resolve an extracted supplier name onto an existing supplier record.

Matching runs two ordered passes over the candidates: exact comparison of
normalized names first, then containment in either direction (covers OCR
dropping a legal form such as "UAB" or adding a trailing fragment). The first
hit wins. No match is a normal outcome and is left to a human reviewer; this
module never creates suppliers.
"""

import logging
from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel

from backoffice.invoices.schema import Supplier
from backoffice.suppliers.normalizer import normalize_for_matching

logger = logging.getLogger(__name__)

MatchKind = Literal["exact", "partial"]


class SupplierMatch(BaseModel):
    """Supplier resolved for an extracted name.

    Attributes:
        supplier: Matched supplier record
        match_kind: Which pass produced the match
    """

    supplier: Supplier
    match_kind: MatchKind


def match_supplier(
    extracted_name: str | None, candidates: Sequence[Supplier]
) -> SupplierMatch | None:
    """Find the best existing supplier for an extracted name.

    Args:
        extracted_name: Supplier name as read from the document
        candidates: Known suppliers, in priority order

    Returns:
        SupplierMatch, or None if the name is empty or nothing matches
    """
    normalized_extracted = normalize_for_matching(extracted_name)
    if not normalized_extracted:
        return None

    normalized_candidates = [
        (supplier, normalize_for_matching(supplier.name)) for supplier in candidates
    ]
    # An empty key is contained in every name
    normalized_candidates = [(s, key) for s, key in normalized_candidates if key]

    for supplier, key in normalized_candidates:
        if key == normalized_extracted:
            logger.info(f"Exact supplier match: '{extracted_name}' -> '{supplier.name}'")
            return SupplierMatch(supplier=supplier, match_kind="exact")

    for supplier, key in normalized_candidates:
        if key in normalized_extracted or normalized_extracted in key:
            logger.info(f"Partial supplier match: '{extracted_name}' -> '{supplier.name}'")
            return SupplierMatch(supplier=supplier, match_kind="partial")

    logger.info(f"No supplier match for: '{extracted_name}'")
    return None


def find_matching_supplier(
    extracted_name: str | None, candidates: Sequence[Supplier]
) -> Supplier | None:
    """Return the matched supplier record, or None."""
    match = match_supplier(extracted_name, candidates)
    return match.supplier if match else None
