"""
Session Manager - Redfish session lifecycle

Provides:
- create_session: transport setup, Basic or token handshake, service root probe
- remove_session: server-side revocation, transport release, registry removal

Partially built sessions never leak their transport: any failure after the
transport exists closes it before the error propagates.
"""

import base64
import logging
import time
from typing import Callable, Optional

import requests

from redfish_core.config import (
    DEFAULT_USER_AGENT,
    HANDSHAKE_BASE_DELAY_MS,
    HANDSHAKE_MAX_ATTEMPTS,
    MAX_CONNECTIONS,
    MAX_TIMEOUT_SECONDS,
    MIN_CONNECTION_LIFETIME_MINUTES,
    MIN_CONNECTIONS,
    MIN_TIMEOUT_SECONDS,
    check_range,
)
from redfish_core.endpoints import AUTH_TOKEN_HEADER, LOCATION_HEADER, SERVICE_ROOT, SESSIONS
from redfish_core.errors import InvalidArgumentError, RedfishError, UnsupportedAuthMethodError
from redfish_core.executor import send_with_retry
from redfish_core.metrics import SessionMetrics
from redfish_core.registry import SessionRegistry, default_registry
from redfish_core.session import AuthMethod, RedfishSession, normalize_base_url
from redfish_core.transport import build_transport

logger = logging.getLogger(__name__)


def _basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode('utf-8')).decode('ascii')
    return f"Basic {token}"


def _open_server_session(session: RedfishSession, password: str, log: logging.Logger,
                         sleep: Callable[[float], None]) -> None:
    """
    POST credentials to the session collection and attach the returned token.

    Transient failures are retried with the handshake policy; any 2xx is
    accepted as long as it carries X-Auth-Token.
    """
    result = send_with_retry(
        session,
        SESSIONS,
        method="POST",
        body={"UserName": session.username, "Password": password},
        max_retries=HANDSHAKE_MAX_ATTEMPTS - 1,
        retry_base_delay_ms=HANDSHAKE_BASE_DELAY_MS,
        log=log,
        sleep=sleep,
    )

    token = result.response.headers.get(AUTH_TOKEN_HEADER)
    if not token:
        raise UnsupportedAuthMethodError(session.base_url)

    session.session_token = token
    session.transport.headers[AUTH_TOKEN_HEADER] = token

    location = result.response.headers.get(LOCATION_HEADER)
    if location:
        session.session_uri = session.resolve_url(location)
    else:
        log.warning(f"Session service at {session.base_url} returned no Location header; "
                    f"the server-side session cannot be revoked on removal")


def _revoke_server_session(session: RedfishSession, log: logging.Logger) -> None:
    """DELETE the server-side session. Failures are logged, never raised."""
    try:
        send_with_retry(session, session.session_uri, method="DELETE", no_retry=True, log=log)
        log.debug(f"Revoked Redfish session {session.session_uri}")
    except RedfishError as e:
        log.warning(f"Failed to revoke Redfish session {session.session_uri}: {e}")


def _release_transport(session: RedfishSession, log: logging.Logger) -> None:
    if session.transport_released:
        log.warning(f"Transport for {session.base_url} was already released")
        return
    try:
        session.transport.close()
    except Exception as e:
        log.warning(f"Error while closing transport for {session.base_url}: {e}")
    session.transport_released = True


def create_session(
    base_url: str,
    username: str,
    password: str,
    auth_method: AuthMethod = AuthMethod.SESSION,
    timeout_seconds: int = 30,
    max_connections: int = 10,
    connection_lifetime_minutes: int = 5,
    enable_metrics: bool = False,
    skip_cert_check: bool = False,
    registry: Optional[SessionRegistry] = None,
    user_agent: str = DEFAULT_USER_AGENT,
    log: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
    transport_factory: Callable[..., requests.Session] = build_transport,
) -> RedfishSession:
    """
    Establish an authenticated session against a Redfish service.

    Args:
        base_url: Service address, e.g. https://10.0.0.5 (trailing slashes ignored)
        username: Account name
        password: Account password; used for the handshake only, never stored
        auth_method: AuthMethod.SESSION (X-Auth-Token) or AuthMethod.BASIC
        timeout_seconds: Default per-request timeout (1-300)
        max_connections: Pooled connections per host (1-100)
        connection_lifetime_minutes: Pool lifetime before recycling (>= 1)
        enable_metrics: Allocate a SessionMetrics collector
        skip_cert_check: Accept any server certificate
        registry: Registry to add the session to (default_registry if None)
        user_agent: User-Agent header value
        log: Logger for handshake events
        sleep: Backoff sleep function (seconds)
        transport_factory: Builds the transport; defaults to build_transport

    Returns:
        RedfishSession registered in the registry

    Raises:
        InvalidArgumentError: Malformed base URL or out-of-range parameter
        UnsupportedAuthMethodError: Session service returned no token
        RedfishRequestError: Handshake or service root probe failed
    """
    log = log or logger
    if registry is None:
        registry = default_registry

    base_url = normalize_base_url(base_url)
    try:
        auth_method = AuthMethod(auth_method)
    except ValueError:
        raise InvalidArgumentError(f"Unknown auth method {auth_method!r}; expected Session or Basic")
    if not username:
        raise InvalidArgumentError("username is required")
    check_range("timeout_seconds", timeout_seconds, MIN_TIMEOUT_SECONDS, MAX_TIMEOUT_SECONDS)
    check_range("max_connections", max_connections, MIN_CONNECTIONS, MAX_CONNECTIONS)
    check_range("connection_lifetime_minutes", connection_lifetime_minutes, MIN_CONNECTION_LIFETIME_MINUTES)

    transport = transport_factory(
        timeout_seconds=timeout_seconds,
        max_connections=max_connections,
        connection_lifetime_minutes=connection_lifetime_minutes,
        verify_ssl=not skip_cert_check,
        user_agent=user_agent,
        log=log,
    )

    session = RedfishSession(
        base_url=base_url,
        transport=transport,
        auth_method=auth_method,
        username=username,
        timeout_seconds=timeout_seconds,
        verify_ssl=not skip_cert_check,
        max_connections=max_connections,
        connection_lifetime_minutes=connection_lifetime_minutes,
    )

    try:
        if auth_method is AuthMethod.BASIC:
            transport.headers['Authorization'] = _basic_auth_header(username, password)
        else:
            _open_server_session(session, password, log, sleep)

        session.service_root = send_with_retry(
            session,
            SERVICE_ROOT,
            max_retries=HANDSHAKE_MAX_ATTEMPTS - 1,
            retry_base_delay_ms=HANDSHAKE_BASE_DELAY_MS,
            log=log,
            sleep=sleep,
        ).body
    except Exception:
        if session.session_token and session.session_uri:
            _revoke_server_session(session, log)
        session.closed = True
        _release_transport(session, log)
        raise

    if enable_metrics:
        session.metrics = SessionMetrics()

    registry.add(session)
    log.info(f"Connected to {base_url} as {username} ({auth_method.value} auth)")
    return session


def remove_session(
    session: RedfishSession,
    registry: Optional[SessionRegistry] = None,
    log: Optional[logging.Logger] = None,
) -> None:
    """
    Tear down a session. Safe to call more than once.

    Revokes the server-side session (token auth with a known session URI),
    releases the transport and drops the session from the registry.
    """
    log = log or logger
    if registry is None:
        registry = default_registry

    if not session.closed:
        if session.auth_method is AuthMethod.SESSION and session.session_uri:
            _revoke_server_session(session, log)
        session.closed = True
        session.transport.headers.pop(AUTH_TOKEN_HEADER, None)
        session.session_token = None
        log.info(f"Disconnected from {session.base_url}")

    _release_transport(session, log)
    registry.remove(session)
