"""
In-memory storage (for tests and demo runs).
Nothing survives a restart; use SQLiteStorage for anything else.
"""

import threading
import uuid
from datetime import datetime, UTC
from typing import Any, Dict, Iterable, Optional

from ...core.errors import NotFoundError
from ...models.document import (
    Document,
    DocumentCategory,
    DocumentCreate,
    DocumentStatus,
    ExtractionRecord,
    ManualCorrection,
    ManualCorrectionCreate,
    ReviewFlag,
    ReviewFlagCreate,
)
from .base import DuplicateExtractionError, StorageBase, check_document_changes


class InMemoryStorage(StorageBase):
    def __init__(self):
        # Pipeline runs write from worker threads
        self._lock = threading.Lock()
        self._documents: Dict[str, Document] = {}
        self._extractions: Dict[str, ExtractionRecord] = {}
        self._flags: Dict[str, ReviewFlag] = {}
        self._corrections: Dict[str, ManualCorrection] = {}

    def create_document(self, document: DocumentCreate) -> Document:
        row = Document(
            id=str(uuid.uuid4()),
            uploaded_at=datetime.now(UTC),
            **document.model_dump(),
        )
        with self._lock:
            self._documents[row.id] = row
        return row.model_copy()

    def get_document(self, document_id: str) -> Optional[Document]:
        with self._lock:
            row = self._documents.get(document_id)
        return row.model_copy() if row else None

    def update_document(self, document_id: str, **changes: Any) -> Document:
        check_document_changes(changes)
        with self._lock:
            row = self._documents.get(document_id)
            if row is None:
                raise NotFoundError(f"Document {document_id} not found")
            updated = Document.model_validate({**row.model_dump(), **changes})
            self._documents[document_id] = updated
        return updated.model_copy()

    def list_documents(self, customer_id: int) -> list[Document]:
        with self._lock:
            rows = [d for d in self._documents.values() if d.customer_id == customer_id]
        return [d.model_copy() for d in reversed(rows)]

    def list_documents_by_status(self, statuses: Iterable[DocumentStatus]) -> list[Document]:
        wanted = set(statuses)
        with self._lock:
            return [d.model_copy() for d in self._documents.values() if d.status in wanted]

    def create_extraction_record(
        self,
        document_id: str,
        customer_id: int,
        category: DocumentCategory,
        data: dict[str, Any],
        confidence: float,
    ) -> ExtractionRecord:
        record = ExtractionRecord(
            id=str(uuid.uuid4()),
            document_id=document_id,
            customer_id=customer_id,
            category=category,
            data=data,
            confidence=confidence,
            extracted_at=datetime.now(UTC),
        )
        with self._lock:
            if document_id in self._extractions:
                raise DuplicateExtractionError(f"Document {document_id} already has an extraction record")
            self._extractions[document_id] = record
        return record.model_copy(deep=True)

    def get_extraction_record(self, document_id: str) -> Optional[ExtractionRecord]:
        with self._lock:
            record = self._extractions.get(document_id)
        return record.model_copy(deep=True) if record else None

    def list_extraction_records(
        self, customer_id: int, category: Optional[DocumentCategory] = None
    ) -> list[ExtractionRecord]:
        with self._lock:
            rows = [
                r for r in self._extractions.values()
                if r.customer_id == customer_id and (category is None or r.category == category)
            ]
        return [r.model_copy(deep=True) for r in reversed(rows)]

    def create_review_flag(self, flag: ReviewFlagCreate) -> ReviewFlag:
        row = ReviewFlag(id=str(uuid.uuid4()), created_at=datetime.now(UTC), **flag.model_dump())
        with self._lock:
            self._flags[row.id] = row
        return row.model_copy()

    def get_review_flag(self, flag_id: str) -> Optional[ReviewFlag]:
        with self._lock:
            row = self._flags.get(flag_id)
        return row.model_copy() if row else None

    def list_review_flags(self, customer_id: int, unresolved_only: bool = True) -> list[ReviewFlag]:
        with self._lock:
            rows = [
                f for f in self._flags.values()
                if f.customer_id == customer_id and not (unresolved_only and f.is_resolved)
            ]
        return [f.model_copy() for f in reversed(rows)]

    def list_flags_for_document(self, document_id: str) -> list[ReviewFlag]:
        with self._lock:
            return [f.model_copy() for f in self._flags.values() if f.document_id == document_id]

    def resolve_review_flag(self, flag_id: str, corrected_value: Optional[str] = None) -> ReviewFlag:
        with self._lock:
            row = self._flags.get(flag_id)
            if row is None:
                raise NotFoundError(f"Review flag {flag_id} not found")
            updated = row.model_copy(update={
                "is_resolved": True,
                "corrected_value": corrected_value if corrected_value is not None else row.corrected_value,
                "resolved_at": datetime.now(UTC),
            })
            self._flags[flag_id] = updated
        return updated.model_copy()

    def create_manual_correction(self, correction: ManualCorrectionCreate) -> ManualCorrection:
        row = ManualCorrection(
            id=str(uuid.uuid4()),
            corrected_at=datetime.now(UTC),
            **correction.model_dump(),
        )
        with self._lock:
            self._corrections[row.id] = row
        return row.model_copy()

    def list_manual_corrections(self, document_id: str) -> list[ManualCorrection]:
        with self._lock:
            return [c.model_copy() for c in self._corrections.values() if c.document_id == document_id]
