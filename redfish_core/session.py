"""
Redfish session handle.

A RedfishSession bundles the transport it owns, the authentication material
for one endpoint and optional metrics. Sessions are built by
redfish_core.session_manager.create_session and torn down by remove_session.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import requests

from redfish_core.errors import InvalidArgumentError, SessionClosedError
from redfish_core.metrics import MetricsSnapshot, SessionMetrics

_ABSOLUTE_URL = re.compile(r'^https?://', re.IGNORECASE)
_BASE_URL = re.compile(r'^https?://[^/\s]+', re.IGNORECASE)


class AuthMethod(str, Enum):
    SESSION = "Session"
    BASIC = "Basic"


def normalize_base_url(base_url: str) -> str:
    """Strip trailing slashes and require an http(s) scheme followed by a host."""
    normalized = base_url.strip().rstrip('/') if isinstance(base_url, str) else None
    if not normalized or not _BASE_URL.match(normalized):
        raise InvalidArgumentError(f"Base URL must be http:// or https:// followed by a host, got {base_url!r}")
    return normalized


def is_absolute_url(url: str) -> bool:
    return bool(_ABSOLUTE_URL.match(url))


class RedfishSession:
    """One authenticated connection context against a Redfish service."""

    def __init__(
        self,
        base_url: str,
        transport: requests.Session,
        auth_method: AuthMethod,
        username: str,
        timeout_seconds: int = 30,
        verify_ssl: bool = True,
        max_connections: int = 10,
        connection_lifetime_minutes: int = 5,
    ):
        self.base_url = normalize_base_url(base_url)
        self.transport = transport
        self.auth_method = AuthMethod(auth_method)
        self.username = username
        self.timeout_seconds = timeout_seconds
        self.verify_ssl = verify_ssl
        self.max_connections = max_connections
        self.connection_lifetime_minutes = connection_lifetime_minutes
        self.created_at = datetime.now(timezone.utc)

        self.session_token: Optional[str] = None
        self.session_uri: Optional[str] = None
        self.service_root: Optional[Dict[str, Any]] = None
        self.metrics: Optional[SessionMetrics] = None

        self.closed = False
        self.transport_released = False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<RedfishSession {self.base_url} auth={self.auth_method.value} user={self.username} {state}>"

    def resolve_url(self, url: str) -> str:
        """Absolute URLs pass through; paths are joined onto base_url."""
        if is_absolute_url(url):
            return url
        if url.startswith('/'):
            url = url[1:]
        return f"{self.base_url}/{url}"

    def ensure_open(self) -> None:
        if self.closed:
            raise SessionClosedError(self.base_url)


def get_metrics_snapshot(session: RedfishSession) -> Optional[MetricsSnapshot]:
    """Metrics snapshot for a session, or None when metrics are disabled."""
    if session.metrics is None:
        return None
    return session.metrics.snapshot()
