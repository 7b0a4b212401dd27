"""
Redfish Request Engine

Client core for the DMTF Redfish out-of-band management API:
- Session lifecycle (token or Basic auth) with pooled transports
- Retrying request executor with structured error classification
- Bounded-concurrency batch executor and collection fetch
- Per-session request metrics
"""

__version__ = "1.0.0"

from .errors import (
    RedfishError,
    InvalidArgumentError,
    UnsupportedAuthMethodError,
    SessionClosedError,
    RedfishRequestError,
    TransientHttpError,
    RequestTimeoutError,
    PermanentHttpError,
)
from .session import AuthMethod, RedfishSession, get_metrics_snapshot
from .metrics import SessionMetrics, MetricsSnapshot
from .registry import SessionRegistry, default_registry, list_sessions
from .executor import execute
from .batch import RequestDescriptor, BatchErrorRecord, execute_batch, fetch_collection_members
from .session_manager import create_session, remove_session
from .client import RedfishClient

__all__ = [
    "RedfishError",
    "InvalidArgumentError",
    "UnsupportedAuthMethodError",
    "SessionClosedError",
    "RedfishRequestError",
    "TransientHttpError",
    "RequestTimeoutError",
    "PermanentHttpError",
    "AuthMethod",
    "RedfishSession",
    "get_metrics_snapshot",
    "SessionMetrics",
    "MetricsSnapshot",
    "SessionRegistry",
    "default_registry",
    "list_sessions",
    "execute",
    "RequestDescriptor",
    "BatchErrorRecord",
    "execute_batch",
    "fetch_collection_members",
    "create_session",
    "remove_session",
    "RedfishClient",
]
