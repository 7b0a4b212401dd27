"""
Redfish Client

Binds one RedfishSession to the engine defaults in RedfishSettings so callers
do not have to thread retry and concurrency options through every call.

    with RedfishClient("https://10.0.0.5", "root", "calvin") as client:
        system = client.get("/redfish/v1/Systems/System.Embedded.1")
        drives = client.get_collection("/redfish/v1/Systems/System.Embedded.1/Storage")
"""

import logging
from typing import Any, Iterable, List, Optional

from redfish_core import batch, executor
from redfish_core.config import RedfishSettings
from redfish_core.metrics import MetricsSnapshot
from redfish_core.registry import SessionRegistry
from redfish_core.session import AuthMethod, RedfishSession, get_metrics_snapshot
from redfish_core.session_manager import create_session, remove_session


class RedfishClient:
    """
    Convenience wrapper around one Redfish session.

    Per-call keyword arguments override the settings defaults.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        auth_method: AuthMethod = AuthMethod.SESSION,
        settings: Optional[RedfishSettings] = None,
        registry: Optional[SessionRegistry] = None,
        logger: Optional[logging.Logger] = None,
        **session_kwargs,
    ):
        """
        Connect immediately; raises whatever create_session raises.

        Args:
            base_url: Service address
            username: Account name
            password: Account password (handshake only)
            auth_method: AuthMethod.SESSION or AuthMethod.BASIC
            settings: Engine defaults (RedfishSettings() if None)
            registry: Session registry (default_registry if None)
            logger: Logger used for every request
            **session_kwargs: Extra create_session arguments (e.g. transport_factory)
        """
        self.settings = settings or RedfishSettings()
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.session: RedfishSession = create_session(
            base_url,
            username,
            password,
            auth_method=auth_method,
            timeout_seconds=self.settings.timeout_seconds,
            max_connections=self.settings.max_connections,
            connection_lifetime_minutes=self.settings.connection_lifetime_minutes,
            enable_metrics=self.settings.enable_metrics,
            skip_cert_check=self.settings.skip_cert_check,
            registry=registry,
            user_agent=self.settings.user_agent,
            log=self.logger,
            **session_kwargs,
        )

    def __enter__(self) -> "RedfishClient":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _request_defaults(self, overrides: dict) -> dict:
        options = {
            "max_retries": self.settings.max_retries,
            "retry_base_delay_ms": self.settings.retry_base_delay_ms,
            "log": self.logger,
        }
        options.update(overrides)
        return options

    @property
    def service_root(self) -> Optional[dict]:
        return self.session.service_root

    def request(self, method: str, url: str, body: Any = None, **kwargs) -> Any:
        return executor.execute(self.session, url, method=method, body=body, **self._request_defaults(kwargs))

    def get(self, url: str, **kwargs) -> Any:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, body: Any = None, **kwargs) -> Any:
        return self.request("POST", url, body=body, **kwargs)

    def patch(self, url: str, body: Any = None, **kwargs) -> Any:
        return self.request("PATCH", url, body=body, **kwargs)

    def put(self, url: str, body: Any = None, **kwargs) -> Any:
        return self.request("PUT", url, body=body, **kwargs)

    def delete(self, url: str, **kwargs) -> Any:
        return self.request("DELETE", url, **kwargs)

    def batch(self, descriptors: Iterable, continue_on_error: bool = False, **kwargs) -> List[Any]:
        kwargs.setdefault("max_concurrency", self.settings.max_concurrency)
        return batch.execute_batch(
            self.session, descriptors, continue_on_error=continue_on_error, **self._request_defaults(kwargs)
        )

    def get_collection(self, collection_url: str, **kwargs) -> List[Any]:
        kwargs.setdefault("max_concurrency", self.settings.max_concurrency)
        return batch.fetch_collection_members(self.session, collection_url, **self._request_defaults(kwargs))

    def metrics(self) -> Optional[MetricsSnapshot]:
        return get_metrics_snapshot(self.session)

    def close(self) -> None:
        remove_session(self.session, registry=self.registry, log=self.logger)
