"""
Document classification stage.

Two signals are combined by an ordered policy:

1. A weighted keyword scan of the text content. Categories are checked in
   priority order and the first one whose score reaches its threshold wins:
   Remittance Advice, Logistics Document, Shipping Bill, Invoice, Bank Statement.
   Remittance documents routinely list invoices, so remittance is checked before
   anything invoice-like.
2. The oracle's label (vision-first when page images are available).

The text scan overrides the oracle on remittance only when it is decisive: a
strong marker (FIRA/FIRC, foreign inward remittance, payee advice) backed by
at least one more remittance signal. A decisive text-only document skips the
oracle; with page images the oracle is always asked.
"""

import re
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ..models.document import DocumentCategory
from .intelligence.base import ClassificationResult, DocumentIntelligence, PageImage
from .intelligence.client import CLASSIFIED_CONFIDENCE, UNCLASSIFIED_CONFIDENCE


@dataclass(frozen=True)
class Indicator:
    pattern: re.Pattern
    weight: int


def _indicators(*pairs: tuple[str, int]) -> tuple[Indicator, ...]:
    return tuple(Indicator(re.compile(p, re.IGNORECASE), w) for p, w in pairs)


# (category, threshold, indicators) checked top to bottom
CLASSIFICATION_POLICY: tuple[tuple[DocumentCategory, int, tuple[Indicator, ...]], ...] = (
    (
        DocumentCategory.REMITTANCE_ADVICE,
        3,
        _indicators(
            (r"foreign\s+inward\s+remittance", 3),
            (r"\bFIR[AC]\b", 3),
            (r"payee\s+advice", 3),
            (r"remittance\s+advice", 2),
            (r"inward\s+remittance", 2),
            (r"\bUTR\b", 2),
            (r"\b(?:nostro|vostro)\b", 2),
            (r"\bremitter\b", 1),
            (r"\bbeneficiary\b", 1),
            (r"purpose\s+code", 1),
        ),
    ),
    (
        DocumentCategory.LOGISTICS_DOCUMENT,
        3,
        _indicators(
            (r"bill\s+of\s+lading", 3),
            (r"\bB/L\b", 3),
            (r"air\s*way\s*bill", 3),
            (r"\bM?AWB\b", 3),
            (r"sea\s+waybill", 3),
            (r"\bCN\s?2[23]\b", 3),
            (r"shipped\s+on\s+board", 2),
            (r"\bvessel\b", 1),
            (r"\bcarrier\b", 1),
            (r"port\s+of\s+discharge", 1),
            (r"\bconsignee\b", 1),
        ),
    ),
    (
        DocumentCategory.SHIPPING_BILL,
        3,
        _indicators(
            (r"shipping\s+bill", 3),
            (r"\bSB\s*NO\b", 3),
            (r"\bCSB\b", 3),
            (r"export\s+declaration", 3),
            (r"\bIEC\b", 2),
            (r"\bAD\s+code\b", 1),
            (r"port\s+of\s+loading", 1),
            (r"\bFOB\b", 1),
        ),
    ),
    (
        DocumentCategory.INVOICE,
        3,
        _indicators(
            (r"(?:commercial|tax|proforma)\s+invoice", 3),
            (r"invoice\s*(?:no|number|#)", 3),
            (r"\binvoice\b", 2),
            (r"\bbill\s+to\b", 1),
            (r"\bamount\s+due\b", 1),
            (r"\b(?:qty|quantity)\b", 1),
            (r"unit\s+price", 1),
        ),
    ),
    (
        DocumentCategory.BANK_STATEMENT,
        4,
        _indicators(
            (r"(?:bank|account)\s+statement", 3),
            (r"statement\s+of\s+account", 3),
            (r"opening\s+balance", 2),
            (r"closing\s+balance", 2),
            (r"\bdebit\b", 1),
            (r"\bcredit\b", 1),
        ),
    ),
)

STRONG_REMITTANCE_MARKERS = _indicators(
    (r"foreign\s+inward\s+remittance", 1),
    (r"\bFIR[AC]\b", 1),
    (r"payee\s+advice", 1),
)

# Oracle says Invoice, but the text carries transport or export-declaration signals
_INVOICE_DEMOTIONS = (DocumentCategory.LOGISTICS_DOCUMENT, DocumentCategory.SHIPPING_BILL)


def score_category(text: str, indicators: tuple[Indicator, ...]) -> int:
    return sum(indicator.weight for indicator in indicators if indicator.pattern.search(text))


def _matched(text: str, indicators: tuple[Indicator, ...]) -> int:
    return sum(1 for indicator in indicators if indicator.pattern.search(text))


def is_decisive_remittance(text: str) -> bool:
    """A strong remittance marker plus at least one other remittance signal."""
    if not text or not _matched(text, STRONG_REMITTANCE_MARKERS):
        return False
    remittance_indicators = CLASSIFICATION_POLICY[0][2]
    return _matched(text, remittance_indicators) >= 2


def detect_category(text: str) -> DocumentCategory:
    """
    Deterministic keyword classification.

    Args:
        text: Plain text content of the document (may be empty for scans)

    Returns:
        The first category in priority order reaching its threshold,
        otherwise NOT_SPECIFIED.
    """
    if not text or not text.strip():
        return DocumentCategory.NOT_SPECIFIED

    for category, threshold, indicators in CLASSIFICATION_POLICY:
        if score_category(text, indicators) >= threshold:
            return category
    return DocumentCategory.NOT_SPECIFIED


def resolve_category(
    text_category: DocumentCategory,
    oracle_category: DocumentCategory,
    decisive_remittance: bool = False,
) -> DocumentCategory:
    """
    Combine the keyword scan with the oracle label.

    A remittance result from the text wins over the oracle only when
    `decisive_remittance` is set; otherwise it is a fallback like any other
    keyword result.
    """
    if text_category == DocumentCategory.REMITTANCE_ADVICE and decisive_remittance:
        return text_category
    if oracle_category == DocumentCategory.REMITTANCE_ADVICE:
        return oracle_category
    if oracle_category == DocumentCategory.INVOICE and text_category in _INVOICE_DEMOTIONS:
        return text_category
    if oracle_category == DocumentCategory.NOT_SPECIFIED:
        return text_category
    return oracle_category


def _confidence_for(category: DocumentCategory) -> float:
    return CLASSIFIED_CONFIDENCE if category != DocumentCategory.NOT_SPECIFIED else UNCLASSIFIED_CONFIDENCE


class DocumentClassifier:
    def __init__(self, intelligence: DocumentIntelligence):
        self.intelligence = intelligence

    async def classify(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ClassificationResult:
        text_category = detect_category(content)
        decisive = is_decisive_remittance(content)

        if decisive and not images:
            logger.info("Remittance markers found in text, skipping oracle classification")
            return ClassificationResult(
                category=DocumentCategory.REMITTANCE_ADVICE,
                confidence=CLASSIFIED_CONFIDENCE,
                raw_label="keyword:remittance",
            )

        oracle_result = await self.intelligence.classify(content, images)
        category = resolve_category(text_category, oracle_result.category, decisive)

        if category != oracle_result.category:
            logger.info(
                "Classification overridden by keyword scan",
                oracle=oracle_result.category.value,
                keywords=text_category.value,
                resolved=category.value,
            )

        return ClassificationResult(
            category=category,
            confidence=_confidence_for(category),
            raw_label=oracle_result.raw_label,
        )
