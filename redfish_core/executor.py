"""
Redfish Request Executor

Issues one logical request against a RedfishSession:
- resolves paths against the session's base URL
- classifies every attempt as success, retryable or fatal
- retries 408/429/503/504 and timeouts with exponential backoff, honoring a
  numeric Retry-After header
- records per-attempt latency and terminal outcome in the session metrics

Retried attempts are full re-sends including the body, so a retried POST can
reach the service more than once.
"""

import json
import logging
import time
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Optional

import requests

from redfish_core.config import (
    MAX_BACKOFF_MS,
    MAX_RETRIES,
    MAX_RETRY_AFTER_MS,
    MAX_TIMEOUT_SECONDS,
    MIN_RETRIES,
    MIN_TIMEOUT_SECONDS,
    check_range,
)
from redfish_core.endpoints import RETRY_AFTER_HEADER
from redfish_core.errors import (
    CONNECTION_ERROR_STATUS_CODE,
    TIMEOUT_STATUS_CODE,
    InvalidArgumentError,
    PermanentHttpError,
    RedfishRequestError,
    RequestTimeoutError,
    error_class_for,
    is_retryable_status,
    parse_error_envelope,
)
from redfish_core.session import RedfishSession

logger = logging.getLogger(__name__)


class Success:
    """Attempt produced a 2xx response."""

    def __init__(self, response: requests.Response, body: Any):
        self.response = response
        self.body = body


class Retryable:
    """Attempt failed in a way worth repeating."""

    def __init__(self, error: RedfishRequestError):
        self.error = error


class Fatal:
    """Attempt failed permanently."""

    def __init__(self, error: RedfishRequestError):
        self.error = error


def serialize_body(body: Any) -> Optional[Any]:
    """JSON-encode non-string bodies; strings and bytes pass through unchanged."""
    if body is None or isinstance(body, (str, bytes)):
        return body
    return json.dumps(body)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a numeric Retry-After header. HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except (AttributeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


def next_delay_ms(current_delay_ms: float, retry_after: Optional[float]) -> float:
    """Sleep before the next attempt: server advice wins, else capped backoff."""
    if retry_after is not None:
        return min(retry_after * 1000, MAX_RETRY_AFTER_MS)
    return min(current_delay_ms, MAX_BACKOFF_MS)


def _parse_success_body(response: requests.Response, log: logging.Logger) -> Any:
    text = response.text
    if not text or not text.strip():
        return None
    try:
        return response.json()
    except ValueError:
        content_type = response.headers.get('Content-Type', '')
        log.debug(f"Non-JSON success body from {response.url} ({content_type}); returning raw text")
        return text


def _attempt(
    session: RedfishSession,
    method: str,
    url: str,
    data: Optional[Any],
    headers: dict,
    timeout: float,
    attempt: int,
    gate: Optional[ContextManager],
    log: logging.Logger,
):
    """Send once and classify the result. Never raises for HTTP or transport failures."""
    metrics = session.metrics
    start_time = time.monotonic()
    response = None

    try:
        with gate if gate is not None else nullcontext():
            response = session.transport.request(method, url, data=data, headers=headers, timeout=timeout)
    except requests.Timeout:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        if metrics is not None:
            metrics.record_attempt(elapsed_ms)
        return Retryable(RequestTimeoutError(
            status_code=TIMEOUT_STATUS_CODE,
            reason="Request Timeout",
            message=f"No response within {timeout}s",
            url=url,
            method=method,
            retryable=True,
            attempt=attempt,
            elapsed_ms=elapsed_ms,
        ))
    except requests.RequestException as e:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        if metrics is not None:
            metrics.record_attempt(elapsed_ms)
        return Fatal(PermanentHttpError(
            status_code=CONNECTION_ERROR_STATUS_CODE,
            reason="Connection Error",
            message=str(e),
            url=url,
            method=method,
            retryable=False,
            attempt=attempt,
            elapsed_ms=elapsed_ms,
        ))

    elapsed_ms = (time.monotonic() - start_time) * 1000
    if metrics is not None:
        metrics.record_attempt(elapsed_ms)

    try:
        status_code = response.status_code
        if 200 <= status_code < 300:
            return Success(response, _parse_success_body(response, log))

        message, extended_info = parse_error_envelope(response.text)
        retryable = is_retryable_status(status_code)
        error_cls = error_class_for(status_code)
        error = error_cls(
            status_code=status_code,
            reason=response.reason or "",
            message=message,
            url=url,
            method=method,
            retryable=retryable,
            extended_info=extended_info,
            retry_after=parse_retry_after(response.headers.get(RETRY_AFTER_HEADER)),
            attempt=attempt,
            elapsed_ms=elapsed_ms,
        )
        return Retryable(error) if retryable else Fatal(error)
    finally:
        response.close()


def send_with_retry(
    session: RedfishSession,
    url: str,
    method: str = "GET",
    body: Any = None,
    content_type: str = "application/json",
    timeout: Optional[float] = None,
    max_retries: int = 3,
    retry_base_delay_ms: float = 1000,
    no_retry: bool = False,
    log: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
    gate: Optional[ContextManager] = None,
) -> Success:
    """
    Attempt loop behind execute(). Returns the successful attempt so callers
    that need response headers (session handshake) can read them.

    Raises:
        InvalidArgumentError: Bad parameters or a foreign session object
        SessionClosedError: Session was already removed
        RedfishRequestError: Terminal failure after classification/retries
    """
    log = log or logger

    if not isinstance(session, RedfishSession):
        raise InvalidArgumentError(f"Expected a RedfishSession, got {type(session).__name__}")
    session.ensure_open()
    check_range("max_retries", max_retries, MIN_RETRIES, MAX_RETRIES)
    check_range("retry_base_delay_ms", retry_base_delay_ms, 0)
    if timeout is not None:
        check_range("timeout", timeout, MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS)

    method = method.upper()
    full_url = session.resolve_url(url)
    data = serialize_body(body)
    headers = {'Content-Type': content_type} if data is not None else {}
    effective_timeout = timeout if timeout is not None else session.timeout_seconds

    total_attempts = 1 if no_retry else max_retries + 1
    delay_ms = retry_base_delay_ms

    attempt = 0
    while True:
        attempt += 1
        outcome = _attempt(session, method, full_url, data, headers, effective_timeout, attempt, gate, log)

        if isinstance(outcome, Success):
            if session.metrics is not None:
                session.metrics.record_success()
            log.debug(
                f"{method} {full_url} -> {outcome.response.status_code} (attempt {attempt}/{total_attempts})",
                extra={"redfish_method": method, "redfish_url": full_url, "redfish_attempt": attempt,
                       "redfish_status": outcome.response.status_code, "redfish_outcome": "success"}
            )
            return outcome

        error = outcome.error
        if isinstance(outcome, Retryable) and attempt < total_attempts:
            sleep_ms = next_delay_ms(delay_ms, error.retry_after)
            delay_ms *= 2
            log.warning(
                f"{method} {full_url} returned {error.status_code} {error.reason} "
                f"(attempt {attempt}/{total_attempts}). Retrying in {sleep_ms:.0f}ms",
                extra={"redfish_method": method, "redfish_url": full_url, "redfish_attempt": attempt,
                       "redfish_status": error.status_code, "redfish_retry_delay_ms": sleep_ms,
                       "redfish_outcome": "retry"}
            )
            sleep(sleep_ms / 1000.0)
            continue
        break

    if session.metrics is not None:
        session.metrics.record_failure()
    log.error(
        f"{method} {full_url} failed after {attempt} attempt(s): {error.status_code} {error.reason} - {error.message}",
        extra={"redfish_method": method, "redfish_url": full_url, "redfish_attempt": attempt,
               "redfish_status": error.status_code, "redfish_outcome": "failed"}
    )
    raise error


def execute(
    session: RedfishSession,
    url: str,
    method: str = "GET",
    body: Any = None,
    content_type: str = "application/json",
    timeout: Optional[float] = None,
    max_retries: int = 3,
    retry_base_delay_ms: float = 1000,
    no_retry: bool = False,
    log: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
    gate: Optional[ContextManager] = None,
) -> Any:
    """
    Execute one Redfish request with retry and error classification.

    Args:
        session: Open RedfishSession
        url: Absolute URL or path relative to the session's base URL
        method: HTTP method (GET, POST, PATCH, PUT, DELETE)
        body: Request body; non-string values are JSON-encoded
        content_type: Content-Type sent with a body
        timeout: Per-call timeout in seconds, overriding the session timeout
        max_retries: Retries after the first attempt for transient failures
        retry_base_delay_ms: First backoff delay, doubled per retry
        no_retry: Make exactly one attempt
        log: Logger for attempt/outcome events
        sleep: Backoff sleep function (seconds)
        gate: Context manager held only around each send

    Returns:
        Parsed JSON body, or None for an empty response body

    Raises:
        RedfishRequestError: Classified terminal failure
    """
    return send_with_retry(
        session, url, method=method, body=body, content_type=content_type, timeout=timeout,
        max_retries=max_retries, retry_base_delay_ms=retry_base_delay_ms, no_retry=no_retry,
        log=log, sleep=sleep, gate=gate,
    ).body


def get(session: RedfishSession, url: str, **kwargs) -> Any:
    return execute(session, url, method="GET", **kwargs)


def post(session: RedfishSession, url: str, body: Any = None, **kwargs) -> Any:
    return execute(session, url, method="POST", body=body, **kwargs)


def patch(session: RedfishSession, url: str, body: Any = None, **kwargs) -> Any:
    return execute(session, url, method="PATCH", body=body, **kwargs)


def put(session: RedfishSession, url: str, body: Any = None, **kwargs) -> Any:
    return execute(session, url, method="PUT", body=body, **kwargs)


def delete(session: RedfishSession, url: str, **kwargs) -> Any:
    return execute(session, url, method="DELETE", **kwargs)
