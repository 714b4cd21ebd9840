"""
Error taxonomy for the document pipeline.

Only TransientOracleError is retried. Everything else either propagates to
the orchestrator boundary (and is recorded on the document) or, for
RasterizationFailure, is absorbed by falling back to text-only processing.
"""


class TradeDocsError(Exception):
    """Base class for pipeline errors"""


class OracleError(TradeDocsError):
    """The understanding oracle refused the call (not worth retrying)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientOracleError(OracleError):
    """Network failure, timeout, rate limit or 5xx from the oracle."""


class MalformedResponse(TradeDocsError):
    """Oracle answered, but not in the expected structured shape."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class RasterizationFailure(TradeDocsError):
    """PDF could not be converted to page images."""


class PipelineFailure(TradeDocsError):
    """A pipeline run could not be started or completed."""


class NotFoundError(TradeDocsError):
    """Requested row does not exist in storage."""
