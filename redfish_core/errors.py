"""
Redfish Error Classification

Exception taxonomy for the request engine plus helpers that turn a Redfish
error envelope into a readable message and decide whether a status is worth
retrying.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

# Statuses that indicate the BMC is busy or briefly unavailable
RETRYABLE_STATUS_CODES = frozenset({408, 429, 503, 504})

# Sentinel status used when the transport gave up waiting for a response
TIMEOUT_STATUS_CODE = 408

# Status used when no HTTP response was received at all
CONNECTION_ERROR_STATUS_CODE = 0


class RedfishError(Exception):
    """Base exception for Redfish operations"""

    def __init__(self, message: str, error_code: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(self.message)


class InvalidArgumentError(RedfishError, ValueError):
    """Raised for malformed base URLs and out-of-range parameters"""

    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_ARGUMENT")


class UnsupportedAuthMethodError(RedfishError):
    """Raised when the service accepted credentials but returned no session token"""

    def __init__(self, base_url: str):
        message = (
            f"Session service at {base_url} did not return an X-Auth-Token header. "
            f"Use Basic authentication for this endpoint."
        )
        super().__init__(message, error_code="UNSUPPORTED_AUTH_METHOD")
        self.base_url = base_url


class SessionClosedError(RedfishError):
    """Raised when a request is issued on a session that was already removed"""

    def __init__(self, base_url: str):
        super().__init__(f"Session for {base_url} has been removed", error_code="SESSION_CLOSED")
        self.base_url = base_url


class RedfishRequestError(RedfishError):
    """
    A classified request failure.

    Carries everything a caller needs to branch on status or retryability
    without re-reading the raw response.
    """

    def __init__(
        self,
        status_code: int,
        reason: str,
        message: str,
        url: str,
        method: str,
        retryable: bool = False,
        extended_info: Optional[List[Dict[str, Any]]] = None,
        retry_after: Optional[float] = None,
        attempt: int = 1,
        elapsed_ms: float = 0.0,
        timestamp: Optional[datetime] = None,
    ):
        super().__init__(message, error_code=reason, status_code=status_code)
        self.reason = reason
        self.url = url
        self.method = method
        self.retryable = retryable
        self.extended_info = extended_info
        self.retry_after = retry_after
        self.attempt = attempt
        self.elapsed_ms = elapsed_ms
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def __str__(self) -> str:
        return f"{self.method} {self.url} failed with {self.status_code} {self.reason}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status_code": self.status_code,
            "reason": self.reason,
            "message": self.message,
            "extended_info": self.extended_info,
            "url": self.url,
            "method": self.method,
            "timestamp": self.timestamp.isoformat(),
            "retryable": self.retryable,
            "retry_after": self.retry_after,
            "attempt": self.attempt,
            "elapsed_ms": self.elapsed_ms,
        }


class TransientHttpError(RedfishRequestError):
    """408/429/503/504 that survived every retry"""


class RequestTimeoutError(TransientHttpError):
    """The transport timed out on the final attempt"""


class PermanentHttpError(RedfishRequestError):
    """Any other failure; never retried"""


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES


def parse_error_envelope(raw_text: str) -> Tuple[str, Optional[List[Dict[str, Any]]]]:
    """
    Extract a human-readable message from a Redfish error body.

    Preference order:
    1. error.@Message.ExtendedInfo[*].Message joined with "; "
    2. error.message
    3. the raw body text

    Args:
        raw_text: Response body as text

    Returns:
        (message, extended_info) where extended_info is the ExtendedInfo list
        or None when the body carried none
    """
    try:
        payload = json.loads(raw_text)
    except (TypeError, ValueError):
        return raw_text or "", None

    if not isinstance(payload, dict):
        return raw_text, None

    error_obj = payload.get("error")
    if not isinstance(error_obj, dict):
        return raw_text, None

    extended_info = error_obj.get("@Message.ExtendedInfo")
    if isinstance(extended_info, list) and extended_info:
        messages = [
            str(entry["Message"])
            for entry in extended_info
            if isinstance(entry, dict) and entry.get("Message")
        ]
        if messages:
            return "; ".join(messages), extended_info

    if error_obj.get("message"):
        return str(error_obj["message"]), extended_info if isinstance(extended_info, list) else None

    return raw_text, None


def error_class_for(status_code: int, timed_out: bool = False):
    """Pick the concrete error type for a terminal failure."""
    if timed_out:
        return RequestTimeoutError
    if is_retryable_status(status_code):
        return TransientHttpError
    return PermanentHttpError
