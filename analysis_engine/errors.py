"""
Stock Analysis — Error Taxonomy
─────────────────────────────────
ValidationError   the model reply could not be admitted as a StockAnalysis
GenerationError   the generator gave up (or was told no) for this request
BackendError      raised by the generative backend adapter

Persistence failures never leave the cache layer, so they have no type here.
"""

from typing import Any, Optional


# ── Validation ────────────────────────────────────────────────
class ValidationError(Exception):
    """Base class for reply-shape failures."""

    retryable = False

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class MalformedPayload(ValidationError):
    """Reply is not parseable as a JSON object. Usually a one-off glitch."""

    retryable = True

    def __init__(self, message: str):
        super().__init__(f"malformed payload: {message}")


class MissingField(ValidationError):
    def __init__(self, field: str):
        super().__init__(f"missing field: {field}", field=field)


class InvalidEnum(ValidationError):
    def __init__(self, field: str, value: Any):
        super().__init__(f"invalid value for {field}: {value!r}", field=field, value=value)


class OutOfRange(ValidationError):
    def __init__(self, field: str, value: Any):
        super().__init__(f"{field} out of range: {value!r}", field=field, value=value)


class InvalidType(ValidationError):
    def __init__(self, field: str, value: Any):
        super().__init__(f"wrong type for {field}: {value!r}", field=field, value=value)


class MismatchedField(ValidationError):
    """Well-formed reply about a different ticker, market or timeframe than requested."""

    def __init__(self, field: str, value: Any, expected: str):
        super().__init__(f"{field} is {value!r}, expected {expected!r}", field=field, value=value)
        self.expected = expected


# ── Generation ────────────────────────────────────────────────
class GenerationError(Exception):
    """
    `reason` is the short machine-readable cause surfaced to HTTP callers:
      invalid_response | upstream_rejected | network | timeout | upstream | malformed
    """

    reason = "generation_failed"


class InvalidResponse(GenerationError):
    """Well-formed reply that failed validation. Not retried."""

    reason = "invalid_response"

    def __init__(self, cause: ValidationError):
        super().__init__(f"AI response failed validation: {cause}")
        self.cause = cause


class UpstreamRejected(GenerationError):
    """Backend refused the request outright (bad key, bad request)."""

    reason = "upstream_rejected"

    def __init__(self, message: str):
        super().__init__(f"AI backend rejected the request: {message}")


class Exhausted(GenerationError):
    """Every attempt failed on a transient fault."""

    def __init__(self, last_error: Exception, attempts: int, reason: str):
        super().__init__(f"AI analysis failed after {attempts} attempts ({reason}): {last_error}")
        self.last_error = last_error
        self.attempts = attempts
        self.reason = reason


# ── Backend ───────────────────────────────────────────────────
class BackendError(Exception):
    """
    Raised by a generative backend.
    reason: "network" | "timeout" | "upstream" | "rejected" | "empty"
    """

    def __init__(self, message: str, transient: bool, reason: str):
        super().__init__(message)
        self.transient = transient
        self.reason = reason
