"""
Error taxonomy for the grading core.

Transport errors (timeout, rate limit, other upstream failures) are raised by
gradethread.llm from the SDK's exception types. Post-processing errors (parse,
response shape) are raised by the analyzer and aggregator. Both stages wrap
whatever went wrong in AnalysisError / AggregationError, keeping the kind.
"""
from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    PARSE = "parse"
    RESPONSE_SHAPE = "response_shape"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    UPSTREAM = "upstream"
    INVALID_INPUT = "invalid_input"


RETRYABLE_KINDS = {ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT}


class GradingError(Exception):
    """Base class for everything the grading core raises on purpose."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ConfigurationError(GradingError):
    """Missing credentials or bad settings. Fatal, never wrapped."""

    kind = ErrorKind.CONFIGURATION


class ParseError(GradingError):
    """Model reply is not valid JSON even after fence stripping."""

    kind = ErrorKind.PARSE


class ResponseShapeError(GradingError):
    """A required field is missing from an otherwise parseable reply."""

    kind = ErrorKind.RESPONSE_SHAPE


class ModelCallError(GradingError):
    """The model call itself failed."""

    kind = ErrorKind.UPSTREAM


class ModelTimeoutError(ModelCallError):
    kind = ErrorKind.TIMEOUT


class RateLimitError(ModelCallError):
    kind = ErrorKind.RATE_LIMIT


class UpstreamError(ModelCallError):
    kind = ErrorKind.UPSTREAM


class StageError(GradingError):
    """A pipeline stage failed; `kind` is copied from the underlying error."""

    def __init__(self, message: str, kind: ErrorKind):
        super().__init__(message)
        self.kind = kind


class AnalysisError(StageError):
    """Per-image analysis failed."""

    def __init__(self, message: str, kind: ErrorKind, image_role: str):
        super().__init__(message, kind)
        self.image_role = image_role


class AggregationError(StageError):
    """Composite aggregation failed."""


class SubmissionCancelled(GradingError):
    """The submission was aborted; nothing from it may be persisted."""
