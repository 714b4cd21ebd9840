"""
Category extractors.

One operation per extractable category. Each asks the oracle for the
category's payload model and then checks the answer for elided repeated
records ("...", "and 12 more"), which are rejected as MalformedResponse
rather than stored as if they were data.
"""

import re
from typing import Optional

from loguru import logger

from ..core.errors import MalformedResponse
from ..models.document import DocumentCategory
from ..models.extraction import (
    LogisticsRecord,
    RemittanceAdviceRecord,
    ShippingBillRecord,
    is_extractable,
)
from .confidence import iter_leaves, to_node
from .intelligence.base import DocumentIntelligence, ExtractionResult, PageImage

_ELISION = re.compile(
    r"^\s*(?:\.{3}|…)\s*$"
    r"|\b(?:and|plus)\s+\d+\s+(?:more|others|additional)\b"
    r"|\((?:truncated|omitted)\)",
    re.IGNORECASE,
)


def find_elided_fields(payload) -> list[str]:
    """Field paths whose value stands in for omitted records."""
    return [
        path
        for path, leaf in iter_leaves(to_node(payload))
        if isinstance(leaf.value, str) and _ELISION.search(leaf.value)
    ]


class DocumentExtractor:
    def __init__(self, intelligence: DocumentIntelligence):
        self.intelligence = intelligence

    async def _extract(
        self,
        category: DocumentCategory,
        content: str,
        images: Optional[list[PageImage]],
    ) -> ExtractionResult:
        result = await self.intelligence.extract(category, content, images)

        elided = find_elided_fields(result.payload)
        if elided:
            raise MalformedResponse(
                f"{category.value} extraction summarized repeated records at: {', '.join(elided)}",
                raw_text=result.payload.model_dump_json(),
            )

        logger.info(
            "Extraction complete",
            category=category.value,
            confidence=round(result.confidence, 4),
        )
        return result

    async def extract_shipping_bill(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ExtractionResult:
        result = await self._extract(DocumentCategory.SHIPPING_BILL, content, images)
        payload: ShippingBillRecord = result.payload
        logger.debug(
            "Shipping bill records",
            invoices=len(payload.invoices),
            fob_values=len(payload.fob_value),
        )
        return result

    async def extract_invoice(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ExtractionResult:
        return await self._extract(DocumentCategory.INVOICE, content, images)

    async def extract_logistics(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ExtractionResult:
        result = await self._extract(DocumentCategory.LOGISTICS_DOCUMENT, content, images)
        payload: LogisticsRecord = result.payload
        logger.debug("Logistics transport type", transport_type=payload.transport_type_detected)
        return result

    async def extract_remittance_advice(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ExtractionResult:
        result = await self._extract(DocumentCategory.REMITTANCE_ADVICE, content, images)
        payload: RemittanceAdviceRecord = result.payload
        logger.debug("Remittance legs", transactions=len(payload.transaction_breakup))
        return result

    async def extract(
        self,
        category: DocumentCategory,
        content: str,
        images: Optional[list[PageImage]] = None,
    ) -> ExtractionResult:
        """Dispatch to the category's extractor. Raises ValueError for non-extractable categories."""
        if not is_extractable(category):
            raise ValueError(f"No extractor for category '{category.value}'")

        handlers = {
            DocumentCategory.SHIPPING_BILL: self.extract_shipping_bill,
            DocumentCategory.INVOICE: self.extract_invoice,
            DocumentCategory.LOGISTICS_DOCUMENT: self.extract_logistics,
            DocumentCategory.REMITTANCE_ADVICE: self.extract_remittance_advice,
        }
        return await handlers[category](content, images)
