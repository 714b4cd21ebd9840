"""
Abstract base class for pipeline storage.

Defines the persistence interface the pipeline and the API depend on,
enabling dependency injection and easy swapping of storage backends.
Every call is atomic on its own and returns the persisted row with
server-assigned identifiers and timestamps.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

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

# Columns a pipeline run or the API may change on an existing document
UPDATABLE_DOCUMENT_FIELDS = frozenset({
    "status",
    "classification",
    "classification_confidence",
    "processing_error",
    "processed_at",
    "file_url",
})


class DuplicateExtractionError(ValueError):
    """A document already has its extraction record."""


def check_document_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_DOCUMENT_FIELDS
    if unknown:
        raise ValueError(f"Cannot update document fields: {', '.join(sorted(unknown))}")


class StorageBase(ABC):
    """
    Abstract base class for storage.

    Implementations:
    - InMemoryStorage (for testing/demo)
    - SQLiteStorage (for single-instance deployments)
    """

    # ----- documents -----

    @abstractmethod
    def create_document(self, document: DocumentCreate) -> Document:
        pass

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[Document]:
        """Returns None if not found."""
        pass

    @abstractmethod
    def update_document(self, document_id: str, **changes: Any) -> Document:
        """
        Apply a partial update to a document.

        Args:
            document_id: Document identifier
            **changes: Subset of UPDATABLE_DOCUMENT_FIELDS

        Returns:
            The updated document

        Raises:
            NotFoundError: document does not exist
            ValueError: a field outside UPDATABLE_DOCUMENT_FIELDS was given
        """
        pass

    @abstractmethod
    def list_documents(self, customer_id: int) -> list[Document]:
        """Documents of one customer, newest upload first."""
        pass

    @abstractmethod
    def list_documents_by_status(self, statuses: Iterable[DocumentStatus]) -> list[Document]:
        pass

    # ----- extraction records -----

    @abstractmethod
    def create_extraction_record(
        self,
        document_id: str,
        customer_id: int,
        category: DocumentCategory,
        data: dict[str, Any],
        confidence: float,
    ) -> ExtractionRecord:
        """
        Persist the one extraction record of a document.

        Raises:
            DuplicateExtractionError: the document already has a record
        """
        pass

    @abstractmethod
    def get_extraction_record(self, document_id: str) -> Optional[ExtractionRecord]:
        pass

    @abstractmethod
    def list_extraction_records(
        self, customer_id: int, category: Optional[DocumentCategory] = None
    ) -> list[ExtractionRecord]:
        pass

    # ----- review flags -----

    @abstractmethod
    def create_review_flag(self, flag: ReviewFlagCreate) -> ReviewFlag:
        pass

    @abstractmethod
    def get_review_flag(self, flag_id: str) -> Optional[ReviewFlag]:
        pass

    @abstractmethod
    def list_review_flags(self, customer_id: int, unresolved_only: bool = True) -> list[ReviewFlag]:
        """Flags of one customer, newest first."""
        pass

    @abstractmethod
    def list_flags_for_document(self, document_id: str) -> list[ReviewFlag]:
        """Flags of one document in creation order."""
        pass

    @abstractmethod
    def resolve_review_flag(self, flag_id: str, corrected_value: Optional[str] = None) -> ReviewFlag:
        """
        Mark a flag resolved and stamp resolved_at.

        Raises:
            NotFoundError: flag does not exist
        """
        pass

    # ----- manual corrections (append-only) -----

    @abstractmethod
    def create_manual_correction(self, correction: ManualCorrectionCreate) -> ManualCorrection:
        pass

    @abstractmethod
    def list_manual_corrections(self, document_id: str) -> list[ManualCorrection]:
        pass
