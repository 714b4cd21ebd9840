"""
Persisted rows: documents, extraction records, review flags and manual corrections.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    CLASSIFIED = "classified"
    EXTRACTED = "extracted"
    FLAGGED = "flagged"
    COMPLETED = "completed"


# A run that dies while a document is in one of these never reached a terminal state
IN_FLIGHT_STATUSES = (DocumentStatus.PROCESSING, DocumentStatus.CLASSIFIED, DocumentStatus.EXTRACTED)


class DocumentCategory(str, Enum):
    """Classification labels, persisted as their display value."""
    LOGISTICS_DOCUMENT = "Logistics Document"
    INVOICE = "Invoice"
    BANK_STATEMENT = "Bank Statement"
    SHIPPING_BILL = "Shipping Bill"
    REMITTANCE_ADVICE = "Remittance Advice"
    NOT_SPECIFIED = "Not Specified"

    @classmethod
    def from_label(cls, label: str | None) -> "DocumentCategory":
        """Map a free-text oracle label onto a category; anything unknown is NOT_SPECIFIED."""
        if not label:
            return cls.NOT_SPECIFIED
        cleaned = label.strip().strip("*\"'`.").strip().lower()
        for category in cls:
            if cleaned == category.value.lower():
                return category
        return _CATEGORY_ALIASES.get(cleaned, cls.NOT_SPECIFIED)


_CATEGORY_ALIASES = {
    "fira/firc": DocumentCategory.REMITTANCE_ADVICE,
    "fira": DocumentCategory.REMITTANCE_ADVICE,
    "firc": DocumentCategory.REMITTANCE_ADVICE,
    "foreign inward remittance": DocumentCategory.REMITTANCE_ADVICE,
    "logistics": DocumentCategory.LOGISTICS_DOCUMENT,
    "export declaration": DocumentCategory.SHIPPING_BILL,
    "commercial invoice": DocumentCategory.INVOICE,
}


class IssueType(str, Enum):
    NOT_SPECIFIED = "Not Specified"
    LOW_CONFIDENCE = "Low Confidence"


class DocumentCreate(BaseModel):
    customer_id: int
    filename: str
    original_name: str
    file_url: str | None = None
    status: DocumentStatus = DocumentStatus.UPLOADED


class Document(DocumentCreate):
    id: str
    classification: DocumentCategory | None = None
    classification_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    processing_error: str | None = None
    uploaded_at: datetime
    processed_at: datetime | None = None

    @property
    def is_pdf(self) -> bool:
        return self.filename.lower().endswith(".pdf")


class ExtractionRecord(BaseModel):
    """Validated extraction payload for one document. Never rewritten after creation."""
    id: str
    document_id: str
    customer_id: int
    category: DocumentCategory
    data: dict[str, Any]
    confidence: float = Field(ge=0.0, le=1.0)
    extracted_at: datetime


class ReviewFlagCreate(BaseModel):
    document_id: str
    customer_id: int
    issue_type: IssueType
    field_name: str | None = None
    current_value: str | None = None


class ReviewFlag(ReviewFlagCreate):
    id: str
    corrected_value: str | None = None
    is_resolved: bool = False
    created_at: datetime
    resolved_at: datetime | None = None


class ManualCorrectionCreate(BaseModel):
    document_id: str
    customer_id: int
    field_name: str
    original_value: str | None = None
    corrected_value: str
    corrected_by: str


class ManualCorrection(ManualCorrectionCreate):
    id: str
    corrected_at: datetime
