"""
Error Handling for Lingoloop

Exception hierarchy shared by the generation pipeline, the proficiency
analyzer and the HTTP layer:

1. ``LingoloopError`` carries a stable ``ErrorCode``, a severity, details
   and the underlying cause.
2. Signals are split so callers can pick a different strategy for each:
   pre-condition failures, rate limits, content-policy refusals,
   reasoning exhaustion, generic provider failures, tier-local malformed
   responses and user cancellation.
3. ``error_response`` and ``log_error`` give every layer one way to
   render and report an error.
"""

import json
import logging
import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for errors"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCode(Enum):
    """Stable error codes exposed to API callers"""
    UNKNOWN_ERROR = "unknown_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND_ERROR = "not_found_error"

    # Throughput
    RATE_LIMITED = "rate_limited"
    RETRIES_EXHAUSTED = "retries_exhausted"

    # Generation
    GENERATION_ERROR = "generation_error"
    REASONING_EXHAUSTED = "reasoning_exhausted"
    CONTENT_POLICY_REFUSAL = "content_policy_refusal"
    PROVIDER_ERROR = "provider_error"
    MALFORMED_RESPONSE = "malformed_response"
    NO_CONTENT_GENERATED = "no_content_generated"
    INSUFFICIENT_ITEMS = "insufficient_items"

    # Pipeline
    CANCELLED = "cancelled"
    PIPELINE_STATE_ERROR = "pipeline_state_error"

    # Storage
    DATABASE_ERROR = "database_error"


class ErrorInfo(BaseModel):
    """Structured information about an error"""
    model_config = ConfigDict(use_enum_values=True)

    code: ErrorCode
    message: str
    timestamp: datetime = Field(default_factory=datetime.now)
    severity: ErrorSeverity = ErrorSeverity.ERROR
    details: Optional[Dict[str, Any]] = None
    exception_type: Optional[str] = None
    stack_trace: Optional[List[str]] = None
    context: Optional[Dict[str, Any]] = None

    @field_validator('stack_trace', mode='before')
    @classmethod
    def split_stack_trace(cls, v):
        if isinstance(v, str):
            return v.splitlines()
        return v


class LingoloopError(Exception):
    """Base exception class for all Lingoloop errors"""

    default_code = ErrorCode.UNKNOWN_ERROR
    default_severity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        severity: Optional[ErrorSeverity] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.severity = severity or self.default_severity
        self.details = details or {}
        self.cause = cause
        self.context = context or {}
        self.timestamp = datetime.now()

    def to_error_info(self, include_stack_trace: bool = False) -> ErrorInfo:
        """Convert the exception to an ErrorInfo object"""
        details = dict(self.details)
        if self.cause is not None:
            details["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause)
            }

        return ErrorInfo(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            severity=self.severity,
            details=details,
            exception_type=type(self).__name__,
            stack_trace=traceback.format_exc() if include_stack_trace else None,
            context=self.context or None
        )

    def to_dict(self, include_stack_trace: bool = False) -> Dict[str, Any]:
        """Convert the exception to a JSON-compatible dictionary"""
        return self.to_error_info(include_stack_trace).model_dump(mode="json")

    def to_json(self, include_stack_trace: bool = False) -> str:
        return json.dumps(self.to_dict(include_stack_trace))

    def __str__(self) -> str:
        base_str = f"{self.code.value}: {self.message}"
        if self.cause:
            base_str += f" caused by {type(self.cause).__name__}: {self.cause}"
        return base_str


class ValidationError(LingoloopError):
    """A request failed a pre-condition before any remote call was made"""

    default_code = ErrorCode.VALIDATION_ERROR
    default_severity = ErrorSeverity.WARNING

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, str]] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.errors = errors or {}
        details = dict(details or {})
        if self.errors:
            details["errors"] = self.errors
        super().__init__(message, details=details, **kwargs)


class NotFoundError(LingoloopError):
    """Error raised when a requested resource does not exist"""

    default_code = ErrorCode.NOT_FOUND_ERROR
    default_severity = ErrorSeverity.WARNING

    def __init__(self, resource_type: str, resource_id: str, **kwargs):
        self.resource_type = resource_type
        self.resource_id = resource_id
        details = dict(kwargs.pop("details", None) or {})
        details.update({"resource_type": resource_type, "resource_id": resource_id})
        super().__init__(f"{resource_type} not found: {resource_id}", details=details, **kwargs)


class RateLimitedError(LingoloopError):
    """Generation refused or abandoned because of a rate limit"""

    default_code = ErrorCode.RATE_LIMITED
    default_severity = ErrorSeverity.WARNING

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        details = dict(kwargs.pop("details", None) or {})
        if retry_after is not None:
            details["retry_after_seconds"] = retry_after
        super().__init__(message, details=details, **kwargs)


class RetriesExhaustedError(RateLimitedError):
    """Every attempt allowed by the backoff policy hit a retryable failure"""

    default_code = ErrorCode.RETRIES_EXHAUSTED

    def __init__(self, attempts: int, last_error: BaseException, retry_after: Optional[float] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Gave up after {attempts} attempts",
            retry_after=retry_after,
            details={"attempts": attempts},
            cause=last_error
        )


class GenerationError(LingoloopError):
    """Base class for failures reported by the AI generation service"""

    default_code = ErrorCode.GENERATION_ERROR


class ReasoningExhaustedError(GenerationError):
    """The provider spent its token budget on reasoning and returned nothing"""

    default_code = ErrorCode.REASONING_EXHAUSTED


class ContentPolicyRefusalError(GenerationError):
    """The provider declined the topic or phrasing. Never retried."""

    default_code = ErrorCode.CONTENT_POLICY_REFUSAL
    default_severity = ErrorSeverity.WARNING


class ProviderError(GenerationError):
    """Any other failure of the upstream provider"""

    default_code = ErrorCode.PROVIDER_ERROR


class MalformedResponseError(GenerationError):
    """The response could not be decoded into items. Tier-local."""

    default_code = ErrorCode.MALFORMED_RESPONSE
    default_severity = ErrorSeverity.WARNING


class NoContentGeneratedError(GenerationError):
    """No tier of a job produced a single valid item"""

    default_code = ErrorCode.NO_CONTENT_GENERATED


class InsufficientItemsError(LingoloopError):
    """More deliverables were requested than there are items to fill them"""

    default_code = ErrorCode.INSUFFICIENT_ITEMS

    def __init__(self, available: int, requested: int, **kwargs):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Cannot build {requested} deliverables from {available} items",
            details={"available": available, "requested": requested},
            **kwargs
        )


class GenerationCancelledError(LingoloopError):
    """The session's cancellation token fired"""

    default_code = ErrorCode.CANCELLED
    default_severity = ErrorSeverity.INFO

    def __init__(self, message: str = "stopped by user", **kwargs):
        super().__init__(message, **kwargs)


class PipelineStateError(LingoloopError):
    """A pipeline control command is not valid in the current state"""

    default_code = ErrorCode.PIPELINE_STATE_ERROR
    default_severity = ErrorSeverity.WARNING


class DatabaseError(LingoloopError):
    """A repository operation failed"""

    default_code = ErrorCode.DATABASE_ERROR


def convert_exception(
    exception: BaseException,
    default_message: str = "An unexpected error occurred",
    default_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
    context: Optional[Dict[str, Any]] = None
) -> LingoloopError:
    """
    Wrap an arbitrary exception in a LingoloopError.

    Args:
        exception: The exception to convert
        default_message: Message used when the exception has none
        default_code: Code for the wrapper
        context: Extra context merged into the error

    Returns:
        The original error when it already is a LingoloopError, else a wrapper
    """
    if isinstance(exception, LingoloopError):
        if context:
            exception.context.update(context)
        return exception

    return LingoloopError(
        message=str(exception) or default_message,
        code=default_code,
        cause=exception,
        context=context
    )


def error_response(
    error: Union[LingoloopError, Exception],
    include_details: bool = True
) -> Dict[str, Any]:
    """
    Generate a standardized API error body.

    Args:
        error: The error to render
        include_details: Whether to include the details block

    Returns:
        ``{"status": "error", "code", "message"[, "details"]}``
    """
    if not isinstance(error, LingoloopError):
        error = convert_exception(error)

    info = error.to_error_info()
    response: Dict[str, Any] = {
        "status": "error",
        "code": info.code,
        "message": info.message
    }
    if include_details and info.details:
        response["details"] = info.details
    return response


def log_error(
    error: Union[LingoloopError, Exception],
    level: int = logging.ERROR,
    include_stack_trace: bool = False,
    context: Optional[Dict[str, Any]] = None,
    log: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None
) -> None:
    """
    Log an error in the standard ``ERROR [code]: message`` shape.

    Args:
        error: The error to log
        level: Logging level
        include_stack_trace: Append the active traceback
        context: Additional context merged into the error
        log: Logger to use instead of this module's logger
    """
    if not isinstance(error, LingoloopError):
        error = convert_exception(error, context=context)
    elif context:
        error.context.update(context)

    message = f"ERROR [{error.code.value}]: {error.message}"
    if error.context:
        context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
        message += f" (context: {context_str})"
    if error.cause:
        message += f" caused by {type(error.cause).__name__}: {error.cause}"
    if include_stack_trace:
        message += f"\n{traceback.format_exc()}"

    (log or logger).log(level, message)
