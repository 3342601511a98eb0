"""
Replay Exceptions - Custom exception hierarchy for market data replay.

Every failure surfaced to a caller is one of these types; nothing is
retried or swallowed by the reprocessing core.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class ReplayError(Exception):
    """Base exception for all replay errors."""

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        where = "/".join(
            str(self.context[key]) for key in ("exchange", "channel") if self.context.get(key)
        )
        if where:
            parts.append(f"[{where}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ValidationError(ReplayError):
    """Invalid replay request parameters."""

    def __init__(
        self,
        message: str,
        parameter: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.parameter = parameter

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["parameter"] = self.parameter
        return data


class ConfigurationError(ReplayError):
    """Configuration error for the replay client."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


class TransportError(ReplayError):
    """Error while fetching or streaming raw lines from the remote service."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data

    @property
    def retryable(self) -> bool:
        """Connection failures (no status) and 5xx responses may succeed on retry."""
        return self.status_code is None or 500 <= self.status_code < 600


class RateLimitError(TransportError):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str,
        retry_after_seconds: Optional[int] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            status_code=429,
            request_url=request_url,
            original_error=original_error,
            context=context,
        )
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class DecodeError(ReplayError):
    """Malformed schema or message payload, or a failed type coercion."""

    def __init__(
        self,
        message: str,
        raw_data: Optional[Any] = None,
        field_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, original_error, context)
        self.raw_data = raw_data
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "raw_data": _preview(self.raw_data),
            "field_name": self.field_name,
        })
        return data


RAW_DATA_PREVIEW = 500


def _preview(raw: Any) -> Optional[str]:
    if not raw:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return str(raw)[:RAW_DATA_PREVIEW]
