"""
Session Registry

Process-wide table of live Redfish sessions for lookup, enumeration and bulk
teardown. Callers may build their own registry or use default_registry.
"""

import logging
import threading
from typing import List, Optional

from redfish_core.session import RedfishSession, normalize_base_url

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Holds live RedfishSession objects in creation order.

    Membership is by identity, so two sessions against the same endpoint are
    tracked independently.
    """

    def __init__(self):
        self._sessions: List[RedfishSession] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session: RedfishSession) -> bool:
        with self._lock:
            return any(existing is session for existing in self._sessions)

    def add(self, session: RedfishSession) -> None:
        with self._lock:
            if not any(existing is session for existing in self._sessions):
                self._sessions.append(session)

    def remove(self, session: RedfishSession) -> bool:
        """
        Drop a session from the registry.

        Returns:
            True if the session was registered, False otherwise
        """
        with self._lock:
            for index, existing in enumerate(self._sessions):
                if existing is session:
                    del self._sessions[index]
                    return True
        return False

    def list_sessions(self, base_url: Optional[str] = None) -> List[RedfishSession]:
        """
        All registered sessions, optionally only those for one endpoint.

        Args:
            base_url: Exact endpoint match, compared after normalization
        """
        with self._lock:
            sessions = list(self._sessions)

        if base_url is None:
            return sessions

        wanted = normalize_base_url(base_url)
        return [session for session in sessions if session.base_url == wanted]

    def close_all(self, log: Optional[logging.Logger] = None) -> int:
        """
        Remove every registered session (revoking server-side state).

        Returns:
            Number of sessions torn down
        """
        from redfish_core.session_manager import remove_session

        sessions = self.list_sessions()
        for session in sessions:
            remove_session(session, registry=self, log=log)

        (log or logger).info(f"Closed {len(sessions)} Redfish session(s)")
        return len(sessions)


default_registry = SessionRegistry()


def list_sessions(base_url: Optional[str] = None, registry: Optional[SessionRegistry] = None) -> List[RedfishSession]:
    if registry is None:
        registry = default_registry
    return registry.list_sessions(base_url)
