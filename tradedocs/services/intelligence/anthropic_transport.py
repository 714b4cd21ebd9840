"""
HTTP transport for an Anthropic Messages compatible endpoint.

Maps transport-level outcomes onto the error taxonomy:
- connection errors, timeouts, 429 and 5xx -> TransientOracleError (retried)
- any other 4xx or missing credentials  -> OracleError (not retried)
- a 200 whose body is not a messages envelope -> MalformedResponse
"""

import httpx
from loguru import logger

from ...core.config import Settings, settings as default_settings
from ...core.errors import MalformedResponse, OracleError, TransientOracleError
from .base import OracleRequest, OracleResponse, OracleTransport

RETRYABLE_STATUS_CODES = {408, 409, 429, 500, 502, 503, 504, 529}


class AnthropicMessagesTransport(OracleTransport):
    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        api_version: str = "2023-06-01",
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_version = api_version
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "AnthropicMessagesTransport":
        config = config or default_settings
        return cls(
            base_url=config.llm_base_url,
            api_key=config.llm_api_key,
            api_version=config.llm_api_version,
            timeout_seconds=config.oracle_timeout_seconds,
        )

    def build_payload(self, request: OracleRequest) -> dict:
        if request.images:
            # Page images first: they are the primary evidence, the text is a reference
            content: list[dict] | str = [
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.media_type,
                        "data": image.to_base64(),
                    },
                }
                for image in request.images
            ]
            content.append({"type": "text", "text": request.prompt})
        else:
            content = request.prompt

        payload = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        if request.system:
            payload["system"] = request.system
        return payload

    async def complete(self, request: OracleRequest) -> OracleResponse:
        if not self.api_key:
            raise OracleError("Document intelligence oracle not configured: set LLM_API_KEY")

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "content-type": "application/json",
        }

        try:
            r = await self._client.post(
                f"{self.base_url}/v1/messages",
                json=self.build_payload(request),
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise TransientOracleError(f"Oracle request timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientOracleError(f"Oracle transport error: {e}") from e

        if r.status_code in RETRYABLE_STATUS_CODES:
            raise TransientOracleError(
                f"Oracle returned HTTP {r.status_code}: {r.text[:200]}",
                status_code=r.status_code,
            )
        if r.status_code >= 400:
            raise OracleError(
                f"Oracle rejected request with HTTP {r.status_code}: {r.text[:200]}",
                status_code=r.status_code,
            )

        try:
            body = r.json()
        except ValueError as e:
            raise MalformedResponse("Oracle response body is not JSON", raw_text=r.text) from e

        blocks = body.get("content") if isinstance(body, dict) else None
        if not isinstance(blocks, list):
            raise MalformedResponse("Oracle response has no content blocks", raw_text=r.text)

        text = "".join(
            block.get("text", "") for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        logger.debug(
            "Oracle HTTP call finished",
            operation=request.operation,
            http_status=r.status_code,
            stop_reason=body.get("stop_reason"),
        )
        return OracleResponse(
            text=text,
            usage=body.get("usage") or {},
            stop_reason=body.get("stop_reason"),
            model=body.get("model"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
