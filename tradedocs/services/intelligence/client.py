"""
Document Intelligence client.

Wraps every oracle call with:
- a caller-enforced timeout
- exponential backoff (delay = base * 2**attempt) on TransientOracleError only
- an audit record for the request, the response and any error

MalformedResponse and non-transient OracleError are raised on first
occurrence.
"""

import asyncio
import json
import re
from typing import Awaitable, Callable, Optional

from loguru import logger
from pydantic import ValidationError

from ...core.config import Settings, settings as default_settings
from ...core.errors import MalformedResponse, TransientOracleError
from ...core.logging import audit_logger
from ...models.document import DocumentCategory
from ...models.extraction import StrictModel, get_schema_for_category
from ..confidence import overall_confidence
from .anthropic_transport import AnthropicMessagesTransport
from .base import (
    ClassificationResult,
    DocumentIntelligence,
    ExtractionResult,
    OracleRequest,
    OracleResponse,
    OracleTransport,
    PageImage,
)
from .prompts import JSON_ONLY_SYSTEM_PROMPT, build_classification_prompt, build_extraction_prompt

# Fixed values, not derived from any oracle signal.
# TODO: replace with a score from the oracle (e.g. label log-probabilities) once one is exposed.
CLASSIFIED_CONFIDENCE = 0.85
UNCLASSIFIED_CONFIDENCE = 0.5

OPERATION_NAMES = {
    DocumentCategory.SHIPPING_BILL: "SHIPPING_BILL_EXTRACTION",
    DocumentCategory.INVOICE: "INVOICE_EXTRACTION",
    DocumentCategory.LOGISTICS_DOCUMENT: "LOGISTICS_EXTRACTION",
    DocumentCategory.REMITTANCE_ADVICE: "REMITTANCE_ADVICE_EXTRACTION",
}

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _preview(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


class DocumentIntelligenceClient(DocumentIntelligence):
    """
    Stateless apart from its audit trail; safe to share across concurrent runs.

    Usage:
        client = DocumentIntelligenceClient.from_settings()
        result = await client.classify(text, images)
        extraction = await client.extract(result.category, text, images)
    """

    def __init__(
        self,
        transport: OracleTransport,
        model: str,
        classification_model: Optional[str] = None,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        timeout_seconds: Optional[float] = 120.0,
        text_preview_chars: int = 500,
        log_preview_chars: int = 200,
        classification_max_tokens: int = 100,
        extraction_max_tokens: Optional[Callable[[str], int]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.transport = transport
        self.model = model
        self.classification_model = classification_model or model
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.timeout_seconds = timeout_seconds
        self.text_preview_chars = text_preview_chars
        self.log_preview_chars = log_preview_chars
        self.classification_max_tokens = classification_max_tokens
        self.extraction_max_tokens = extraction_max_tokens or (lambda _category: 4000)
        self._sleep = sleep
        self._audit = audit_logger()

    @classmethod
    def from_settings(
        cls, config: Settings | None = None, transport: OracleTransport | None = None
    ) -> "DocumentIntelligenceClient":
        config = config or default_settings
        return cls(
            transport=transport or AnthropicMessagesTransport.from_settings(config),
            model=config.llm_deployment,
            classification_model=config.llm_classification_deployment,
            max_attempts=config.oracle_max_attempts,
            backoff_base_seconds=config.oracle_backoff_base_seconds,
            timeout_seconds=config.oracle_timeout_seconds,
            text_preview_chars=config.oracle_text_preview_chars,
            log_preview_chars=config.oracle_log_preview_chars,
            classification_max_tokens=config.classification_max_tokens,
            extraction_max_tokens=config.extraction_max_tokens,
        )

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def _log_interaction(
        self,
        phase: str,
        request: OracleRequest,
        attempt: int,
        response: Optional[OracleResponse] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self._audit.info(
            f"{request.operation}_{phase}",
            operation=request.operation,
            phase=phase,
            attempt=attempt + 1,
            max_attempts=self.max_attempts,
            request={
                "model": request.model,
                "max_tokens": request.max_tokens,
                "system": request.system or "none",
                "image_count": len(request.images),
                "prompt_length": len(request.prompt),
                "prompt_preview": _preview(request.prompt, self.log_preview_chars),
            },
            response={
                "content_length": len(response.text),
                "content_preview": _preview(response.text, self.log_preview_chars),
                "usage": response.usage,
                "stop_reason": response.stop_reason,
            } if response is not None else None,
            error={
                "type": type(error).__name__,
                "message": str(error),
            } if error is not None else None,
        )

    # ------------------------------------------------------------------
    # Retry / backoff
    # ------------------------------------------------------------------

    async def _send_once(self, request: OracleRequest) -> OracleResponse:
        if self.timeout_seconds is None:
            return await self.transport.complete(request)
        try:
            return await asyncio.wait_for(self.transport.complete(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise TransientOracleError(
                f"Oracle call {request.operation} exceeded {self.timeout_seconds}s"
            ) from e

    async def call(self, request: OracleRequest) -> OracleResponse:
        """Send a request, retrying transient failures with exponential backoff."""
        last_error: Optional[TransientOracleError] = None

        for attempt in range(self.max_attempts):
            self._log_interaction("REQUEST", request, attempt)
            try:
                response = await self._send_once(request)
            except TransientOracleError as e:
                last_error = e
                self._log_interaction("ERROR", request, attempt, error=e)
                if attempt < self.max_attempts - 1:
                    delay = self.backoff_base_seconds * (2 ** attempt)
                    logger.warning(
                        f"Oracle attempt {attempt + 1}/{self.max_attempts} failed, retrying in {delay:.1f}s",
                        operation=request.operation,
                        error=str(e),
                    )
                    await self._sleep(delay)
                continue
            except Exception as e:
                self._log_interaction("ERROR", request, attempt, error=e)
                raise

            self._log_interaction("RESPONSE", request, attempt, response=response)
            return response

        logger.error(
            f"Oracle call failed after {self.max_attempts} attempts",
            operation=request.operation,
            error=str(last_error),
        )
        raise last_error

    # ------------------------------------------------------------------
    # Content contract
    # ------------------------------------------------------------------

    def evidence_text(self, content: str, images: Optional[list[PageImage]]) -> str:
        """With page images, the text is cut down to a short reference excerpt."""
        if images:
            return _preview(content, self.text_preview_chars)
        return content

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def classify(
        self, content: str, images: Optional[list[PageImage]] = None
    ) -> ClassificationResult:
        images = list(images or [])
        request = OracleRequest(
            operation="DOCUMENT_CLASSIFICATION",
            model=self.model if images else self.classification_model,
            max_tokens=self.classification_max_tokens,
            prompt=build_classification_prompt(self.evidence_text(content, images), bool(images)),
            images=images,
        )
        response = await self.call(request)

        label = response.text.strip()
        category = DocumentCategory.from_label(label)
        confidence = (
            CLASSIFIED_CONFIDENCE if category != DocumentCategory.NOT_SPECIFIED else UNCLASSIFIED_CONFIDENCE
        )

        logger.info(
            "Oracle classification",
            raw_label=_preview(label, 60),
            category=category.value,
            confidence=confidence,
        )
        return ClassificationResult(category=category, confidence=confidence, raw_label=label)

    async def extract(
        self,
        category: DocumentCategory,
        content: str,
        images: Optional[list[PageImage]] = None,
    ) -> ExtractionResult:
        try:
            schema = get_schema_for_category(category)
        except KeyError:
            raise ValueError(f"No extraction schema for category '{category.value}'") from None

        images = list(images or [])
        request = OracleRequest(
            operation=OPERATION_NAMES[category],
            model=self.model,
            max_tokens=self.extraction_max_tokens(category.value),
            prompt=build_extraction_prompt(category, schema, self.evidence_text(content, images), bool(images)),
            system=JSON_ONLY_SYSTEM_PROMPT,
            images=images,
        )
        response = await self.call(request)

        payload = self.parse_payload(schema, response)
        confidence = overall_confidence(payload)
        logger.info(
            "Oracle extraction",
            category=category.value,
            confidence=round(confidence, 4),
        )
        return ExtractionResult(category=category, payload=payload, confidence=confidence)

    @staticmethod
    def parse_payload(schema: type[StrictModel], response: OracleResponse) -> StrictModel:
        """Validate the oracle answer strictly against the category schema."""
        raw_text = response.text or ""

        if response.stop_reason == "max_tokens":
            raise MalformedResponse(
                "Oracle response was cut off at the token limit", raw_text=raw_text
            )

        text = raw_text.strip()
        fenced = _CODE_FENCE.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Oracle response is not valid JSON: {e}", raw_text=raw_text) from e

        try:
            return schema.model_validate(data)
        except ValidationError as e:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()[:10]
            )
            raise MalformedResponse(
                f"Oracle response does not match {schema.__name__}: {errors}", raw_text=raw_text
            ) from e
