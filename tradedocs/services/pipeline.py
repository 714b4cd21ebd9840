"""
Pipeline orchestrator.

Runs one document through the processing state machine:

    uploaded -> processing -> classified -> extracted -> completed
                                 `-> flagged (any stage)

Side effects go only through the storage collaborator. Any failure inside a
run is trapped here, written onto the document and turns it `flagged`, so a
run never leaves a document in `processing`.
"""

import asyncio
from datetime import datetime, UTC
from typing import Any, Optional

from loguru import logger

from ..core.errors import RasterizationFailure
from ..models.document import (
    Document,
    DocumentCategory,
    DocumentStatus,
    IssueType,
    ReviewFlagCreate,
)
from ..models.extraction import is_extractable
from .classifier import DocumentClassifier
from .confidence import triage
from .extractor import DocumentExtractor
from .file_store import FileStore
from .intelligence.base import PageImage
from .rasterizer import PdfRasterizer
from .storage.base import StorageBase

DOCUMENT_TYPE_FIELD = "Document Type"
CANCELLED_IN_FLIGHT = "Processing cancelled during shutdown"


def describe_error(error: BaseException) -> str:
    """Non-empty, human readable failure message for the document row."""
    message = str(error).strip()
    return f"{type(error).__name__}: {message}" if message else type(error).__name__


class DocumentPipeline:
    def __init__(
        self,
        storage: StorageBase,
        classifier: DocumentClassifier,
        extractor: DocumentExtractor,
        file_store: FileStore,
        rasterizer: Optional[PdfRasterizer] = None,
    ):
        self.storage = storage
        self.classifier = classifier
        self.extractor = extractor
        self.file_store = file_store
        self.rasterizer = rasterizer

    async def _update(self, document_id: str, **changes: Any) -> Document:
        return await asyncio.to_thread(self.storage.update_document, document_id, **changes)

    async def _flag(
        self,
        document: Document,
        issue_type: IssueType,
        field_name: Optional[str],
        current_value: Optional[str],
    ) -> None:
        flag = ReviewFlagCreate(
            document_id=document.id,
            customer_id=document.customer_id,
            issue_type=issue_type,
            field_name=field_name,
            current_value=current_value,
        )
        await asyncio.to_thread(self.storage.create_review_flag, flag)

    async def rasterize(self, document: Document) -> list[PageImage]:
        """Best-effort page images; any failure means text-only processing."""
        if self.rasterizer is None or not document.is_pdf:
            return []

        path = self.file_store.path_for(document.filename)
        try:
            images = await asyncio.to_thread(self.rasterizer.rasterize, path)
        except RasterizationFailure as e:
            logger.warning(
                "Rasterization failed, continuing with text only",
                document_id=document.id,
                error=str(e),
            )
            return []

        logger.info("Using vision-first processing", document_id=document.id, pages=len(images))
        return images

    async def record_failure(self, document: Document, message: str) -> Document:
        """Force a document to `flagged` with its failure message."""
        return await self._update(
            document.id,
            status=DocumentStatus.FLAGGED,
            processing_error=message or "Processing failed",
        )

    async def process(self, document: Document, content: str) -> Document:
        """
        Run the full state machine for one document.

        Args:
            document: The stored document row (status `uploaded`)
            content: Plain text of the document, possibly empty for scans

        Returns:
            The document in its terminal status (`completed` or `flagged`)
        """
        log = logger.bind(document_id=document.id, customer_id=document.customer_id)

        try:
            await self._update(document.id, status=DocumentStatus.PROCESSING, processing_error=None)
            log.info("Processing document", filename=document.original_name)

            images = await self.rasterize(document)

            classification = await self.classifier.classify(content, images)
            category = classification.category
            await self._update(
                document.id,
                status=DocumentStatus.CLASSIFIED,
                classification=category,
                classification_confidence=classification.confidence,
            )
            log.info("Document classified", category=category.value, confidence=classification.confidence)

            if category == DocumentCategory.NOT_SPECIFIED or not is_extractable(category):
                await self._flag(document, IssueType.NOT_SPECIFIED, DOCUMENT_TYPE_FIELD, category.value)
                log.info("Document needs manual classification", category=category.value)
                return await self._update(document.id, status=DocumentStatus.FLAGGED)

            result = await self.extractor.extract(category, content, images)
            await asyncio.to_thread(
                self.storage.create_extraction_record,
                document.id,
                document.customer_id,
                category,
                result.payload.model_dump(mode="json"),
                result.confidence,
            )
            await self._update(document.id, status=DocumentStatus.EXTRACTED)

            findings = triage(result.payload)
            for finding in findings:
                await self._flag(document, IssueType.LOW_CONFIDENCE, finding.field_path, finding.value)

            final = await self._update(
                document.id,
                status=DocumentStatus.COMPLETED,
                processed_at=datetime.now(UTC),
            )
            log.info(
                "Document processing completed",
                category=category.value,
                confidence=round(result.confidence, 4),
                low_confidence_fields=len(findings),
            )
            return final

        except asyncio.CancelledError:
            log.warning("Pipeline run cancelled")
            await self.record_failure(document, CANCELLED_IN_FLIGHT)
            raise
        except Exception as e:
            log.exception("Pipeline run failed")
            return await self.record_failure(document, describe_error(e))
