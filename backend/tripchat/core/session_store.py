from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from tripchat.core.config import get_settings
from tripchat.core.types import Session, Turn


class SessionStore(ABC):
    """Persistence contract for sessions. No dialogue logic lives here."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Return a snapshot of the session, or None if absent or expired."""

    @abstractmethod
    def set(self, session: Session) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    def sweep_expired(self) -> int:
        """Drop every idle session; return how many were removed."""

    def history(self, session_id: str) -> Optional[List[Turn]]:
        session = self.get(session_id)
        return list(session.history) if session is not None else None


class InMemorySessionStore(SessionStore):
    def __init__(
        self,
        max_age_seconds: Optional[float] = None,
        max_history: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self.max_age_seconds = max_age_seconds if max_age_seconds is not None else settings.session_max_age_seconds
        self.max_history = max_history if max_history is not None else settings.session_max_history
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def _expired(self, session: Session, now: float) -> bool:
        return now - session.last_access > self.max_age_seconds

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            now = self._clock()
            if self._expired(session, now):
                del self._sessions[session_id]
                return None
            session.last_access = now
            return session.model_copy(deep=True)

    def set(self, session: Session) -> None:
        stored = session.model_copy(deep=True)
        if len(stored.history) > self.max_history:
            stored.history = stored.history[-self.max_history:]
        with self._lock:
            stored.last_access = self._clock()
            self._sessions[stored.session_id] = stored

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sweep_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [sid for sid, s in self._sessions.items() if self._expired(s, now)]
            for sid in expired:
                del self._sessions[sid]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def start_sweeper(self, interval_seconds: Optional[float] = None) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        interval = interval_seconds if interval_seconds is not None else get_settings().session_sweep_interval_seconds
        self._stop.clear()

        def _run() -> None:
            while not self._stop.wait(interval):
                self.sweep_expired()

        self._sweeper = threading.Thread(target=_run, name="session-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None
