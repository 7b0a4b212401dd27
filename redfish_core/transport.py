"""
Connection Pool Transport
=========================

Builds the requests.Session a RedfishSession owns. The mounted adapter:
- caps pooled connections per host at max_connections (callers queue when full)
- evicts pooled connections once they sit idle past the idle timeout
- recycles the whole pool when it outlives the connection lifetime
- enforces TLS >= 1.2 when certificates are verified, or accepts any
  certificate when verification is skipped (self-signed BMC certs)

Usage:
    from redfish_core.transport import build_transport

    transport = build_transport(timeout_seconds=30, max_connections=10,
                                connection_lifetime_minutes=5, verify_ssl=False)
    transport.get('https://bmc/redfish/v1')
"""

import logging
import ssl
import threading
import time
from typing import Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.ssl_ import create_urllib3_context

from redfish_core.config import (
    DEFAULT_USER_AGENT,
    MAX_CONNECTIONS,
    MAX_TIMEOUT_SECONDS,
    MIN_CONNECTION_LIFETIME_MINUTES,
    MIN_CONNECTIONS,
    MIN_TIMEOUT_SECONDS,
    check_range,
)
from redfish_core.endpoints import ODATA_VERSION, ODATA_VERSION_HEADER

logger = logging.getLogger(__name__)


def idle_timeout_minutes(connection_lifetime_minutes: int) -> int:
    """
    Idle eviction window for pooled connections.

    Always strictly shorter than the lifetime when the lifetime allows it, and
    never below one minute.
    """
    check_range("connection_lifetime_minutes", connection_lifetime_minutes, MIN_CONNECTION_LIFETIME_MINUTES)
    return max(connection_lifetime_minutes - 1, 1)


class PooledHTTPAdapter(HTTPAdapter):
    """
    HTTPAdapter with bounded pool size, idle eviction and lifetime recycling.

    urllib3 pools are thread-safe, so one adapter serves every in-flight
    request of its session.
    """

    def __init__(self, max_connections: int = 10, connection_lifetime_minutes: int = 5,
                 verify_ssl: bool = True, **kwargs):
        self.max_connections = max_connections
        self.connection_lifetime_minutes = connection_lifetime_minutes
        self.idle_timeout_minutes = idle_timeout_minutes(connection_lifetime_minutes)
        self.verify_ssl = verify_ssl
        self.ssl_context = self._create_ssl_context(verify_ssl)

        self._pool_lock = threading.Lock()
        self._pool_created_at = time.monotonic()
        self._last_used_at = self._pool_created_at

        super().__init__(pool_maxsize=max_connections, pool_block=True, **kwargs)

    @staticmethod
    def _create_ssl_context(verify_ssl: bool) -> ssl.SSLContext:
        """Create the SSL context handed to urllib3's pool manager"""
        ctx = create_urllib3_context()

        if verify_ssl:
            ctx.minimum_version = ssl.TLSVersion.TLSv1_2
            ctx.load_default_certs()
        else:
            # check_hostname must be cleared before verify_mode can drop to CERT_NONE
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE

        return ctx

    def init_poolmanager(self, *args, **kwargs):
        """Initialize pool manager with our SSL context"""
        kwargs['ssl_context'] = self.ssl_context
        return super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        """Initialize proxy manager with our SSL context"""
        proxy_kwargs['ssl_context'] = self.ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)

    def _recycle_if_stale(self) -> None:
        now = time.monotonic()
        with self._pool_lock:
            pool_age = now - self._pool_created_at
            idle_for = now - self._last_used_at

            if pool_age >= self.connection_lifetime_minutes * 60:
                reason = "lifetime expired"
            elif idle_for >= self.idle_timeout_minutes * 60:
                reason = "idle timeout"
            else:
                return

            logger.debug(f"Recycling connection pool ({reason}, age {pool_age:.0f}s, idle {idle_for:.0f}s)")
            self.poolmanager.clear()
            self._pool_created_at = now
            self._last_used_at = now

    def send(self, request, **kwargs):
        self._recycle_if_stale()
        try:
            return super().send(request, **kwargs)
        finally:
            with self._pool_lock:
                self._last_used_at = time.monotonic()


def build_transport(
    timeout_seconds: int = 30,
    max_connections: int = 10,
    connection_lifetime_minutes: int = 5,
    verify_ssl: bool = True,
    user_agent: str = DEFAULT_USER_AGENT,
    log: Optional[logging.Logger] = None,
) -> requests.Session:
    """
    Create a requests.Session configured for one Redfish endpoint.

    The session does not carry a timeout of its own; callers pass
    timeout_seconds on every request.

    Args:
        timeout_seconds: Per-request timeout the owning session will apply
        max_connections: Maximum pooled connections per host
        connection_lifetime_minutes: Pool lifetime before forced recycling
        verify_ssl: Whether to verify server certificates
        user_agent: User-Agent header value
        log: Optional logger for the certificate warning

    Returns:
        Configured requests.Session
    """
    log = log or logger
    check_range("timeout_seconds", timeout_seconds, MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS)
    check_range("max_connections", max_connections, MIN_CONNECTIONS, MAX_CONNECTIONS)
    check_range("connection_lifetime_minutes", connection_lifetime_minutes, MIN_CONNECTION_LIFETIME_MINUTES)

    adapter = PooledHTTPAdapter(
        max_connections=max_connections,
        connection_lifetime_minutes=connection_lifetime_minutes,
        verify_ssl=verify_ssl,
    )

    session = requests.Session()
    session.verify = verify_ssl
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    session.headers.update({
        'Accept': 'application/json',
        ODATA_VERSION_HEADER: ODATA_VERSION,
        'User-Agent': user_agent,
    })

    if not verify_ssl:
        log.warning("Certificate verification is disabled; any server certificate will be accepted")
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    return session
