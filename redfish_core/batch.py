"""
Batch Request Executor

Runs many independent Redfish requests over one session with bounded
parallelism. A BoundedSemaphore gate is held only around each send, so retry
backoff sleeps never occupy a slot. Results always come back in input order.
"""

import concurrent.futures
import logging
import threading
import time
from typing import Any, Callable, Iterable, List, Optional, Union

from pydantic import BaseModel, field_validator

from redfish_core.config import MAX_CONCURRENCY, MIN_CONCURRENCY, check_range
from redfish_core.endpoints import MEMBERS_KEY, NEXT_LINK_KEY, ODATA_ID_KEY
from redfish_core.errors import InvalidArgumentError, RedfishError
from redfish_core.executor import execute
from redfish_core.session import RedfishSession

logger = logging.getLogger(__name__)

# Worker threads per batch; the gate, not the pool, bounds in-flight sends
MAX_BATCH_WORKERS = 64


class RequestDescriptor(BaseModel):
    """One logical request in a batch."""
    url: str
    method: str = "GET"
    body: Optional[Any] = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()


class BatchErrorRecord(BaseModel):
    """Failure placeholder returned in a batch slot when continue_on_error is set."""
    status_code: int
    reason: str
    message: str
    url: str
    method: str

    @classmethod
    def from_error(cls, error: RedfishError, descriptor: RequestDescriptor) -> "BatchErrorRecord":
        return cls(
            status_code=error.status_code or 0,
            reason=getattr(error, "reason", None) or error.error_code or type(error).__name__,
            message=error.message,
            url=descriptor.url,
            method=descriptor.method,
        )


def _as_descriptor(item: Union[RequestDescriptor, dict, str]) -> RequestDescriptor:
    if isinstance(item, RequestDescriptor):
        return item
    if isinstance(item, str):
        return RequestDescriptor(url=item)
    if isinstance(item, dict):
        return RequestDescriptor(**item)
    raise InvalidArgumentError(f"Cannot build a request from {type(item).__name__}")


def execute_batch(
    session: RedfishSession,
    descriptors: Iterable[Union[RequestDescriptor, dict, str]],
    max_concurrency: int = 10,
    continue_on_error: bool = False,
    timeout: Optional[float] = None,
    max_retries: int = 3,
    retry_base_delay_ms: float = 1000,
    log: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Any]:
    """
    Execute independent requests concurrently.

    Args:
        session: Open RedfishSession shared by every request
        descriptors: RequestDescriptor objects (dicts and bare URLs are accepted)
        max_concurrency: Maximum simultaneous sends (1-50)
        continue_on_error: Put a BatchErrorRecord in failed slots instead of raising
        timeout: Per-request timeout override in seconds
        max_retries: Retries per request for transient failures
        retry_base_delay_ms: First backoff delay per request
        log: Logger for per-request events
        sleep: Backoff sleep function (seconds)

    Returns:
        List where result[i] belongs to descriptors[i]

    Raises:
        RedfishError: First failing request (by input position) when
            continue_on_error is not set; no partial results are returned
    """
    log = log or logger
    check_range("max_concurrency", max_concurrency, MIN_CONCURRENCY, MAX_CONCURRENCY)
    items = [_as_descriptor(item) for item in descriptors]
    if not items:
        return []
    session.ensure_open()

    gate = threading.BoundedSemaphore(max_concurrency)
    workers = min(len(items), MAX_BATCH_WORKERS)
    log.debug(f"Dispatching {len(items)} request(s) to {session.base_url} (max {max_concurrency} in flight)")

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="redfish-batch") as pool:
        futures = [
            pool.submit(
                execute,
                session,
                item.url,
                method=item.method,
                body=item.body,
                timeout=timeout,
                max_retries=max_retries,
                retry_base_delay_ms=retry_base_delay_ms,
                log=log,
                sleep=sleep,
                gate=gate,
            )
            for item in items
        ]
        concurrent.futures.wait(futures)

    results: List[Any] = []
    failures = 0
    for item, future in zip(items, futures):
        error = future.exception()
        if error is None:
            results.append(future.result())
            continue

        if not continue_on_error or not isinstance(error, RedfishError):
            log.error(f"Batch aborted: {item.method} {item.url} failed: {error}")
            raise error

        failures += 1
        results.append(BatchErrorRecord.from_error(error, item))

    if failures:
        log.warning(f"Batch completed with {failures}/{len(items)} failed request(s)")
    return results


def fetch_collection_members(
    session: RedfishSession,
    collection_url: str,
    max_concurrency: int = 10,
    follow_next_link: bool = True,
    timeout: Optional[float] = None,
    max_retries: int = 3,
    retry_base_delay_ms: float = 1000,
    log: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Any]:
    """
    Fetch a Redfish collection and then every member it links to.

    Members are read from each page's Members array; pages linked through
    Members@odata.nextLink are followed when follow_next_link is set.

    Returns:
        Member resources in collection order; [] for an empty collection
    """
    log = log or logger
    check_range("max_concurrency", max_concurrency, MIN_CONCURRENCY, MAX_CONCURRENCY)
    request_options = dict(timeout=timeout, max_retries=max_retries,
                           retry_base_delay_ms=retry_base_delay_ms, log=log, sleep=sleep)

    page = execute(session, collection_url, **request_options)
    member_urls: List[str] = []
    visited = {collection_url}

    while isinstance(page, dict):
        for member in page.get(MEMBERS_KEY) or []:
            link = member.get(ODATA_ID_KEY) if isinstance(member, dict) else None
            if link:
                member_urls.append(link)
            else:
                log.warning(f"Skipping member without {ODATA_ID_KEY} in {collection_url}")

        next_link = page.get(NEXT_LINK_KEY)
        if not follow_next_link or not next_link or next_link in visited:
            break
        visited.add(next_link)
        page = execute(session, next_link, **request_options)

    if not member_urls:
        return []

    return execute_batch(
        session,
        [RequestDescriptor(url=url) for url in member_urls],
        max_concurrency=max_concurrency,
        continue_on_error=False,
        **request_options,
    )
