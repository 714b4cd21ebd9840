"""
Abstract seams around the document understanding oracle.

The pipeline depends on DocumentIntelligence (classify / extract). The
concrete client talks to an OracleTransport, which owns the wire protocol.
Tests replace either seam with a fake.
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ...models.document import DocumentCategory
from ...models.extraction import StrictModel


@dataclass(frozen=True)
class PageImage:
    """One rasterized page, self-describing (format + bytes)."""
    data: bytes
    media_type: str = "image/png"
    page_number: int = 0

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.to_base64()}"


@dataclass
class OracleRequest:
    operation: str
    model: str
    max_tokens: int
    prompt: str
    system: Optional[str] = None
    images: list[PageImage] = field(default_factory=list)


@dataclass
class OracleResponse:
    text: str
    usage: dict = field(default_factory=dict)
    stop_reason: Optional[str] = None
    model: Optional[str] = None


@dataclass
class ClassificationResult:
    category: DocumentCategory
    confidence: float
    raw_label: str = ""


@dataclass
class ExtractionResult:
    category: DocumentCategory
    payload: StrictModel
    confidence: float


class OracleTransport(ABC):
    """Sends one request to the oracle. Raises TransientOracleError for retryable failures."""

    @abstractmethod
    async def complete(self, request: OracleRequest) -> OracleResponse:
        pass

    async def aclose(self) -> None:
        """Release any pooled connections."""
        return None


class DocumentIntelligence(ABC):
    """Classification and extraction capability consumed by the pipeline stages."""

    @abstractmethod
    async def classify(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ClassificationResult:
        pass

    @abstractmethod
    async def extract(
        self,
        category: DocumentCategory,
        content: str,
        images: Optional[list[PageImage]] = None,
    ) -> ExtractionResult:
        pass
