import logging
import secrets
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from app.config import INACTIVITY_TIMEOUT_SECONDS
from app.services.manager_directory import ManagerDirectory
from app.services.session_manager import SessionManager
from app.services.session_storage import MemorySessionStorage

logger = logging.getLogger(__name__)


class SessionRegistry:
    """APIトークンごとのサーバー側セッション

    各セッションは SessionManager で、無操作タイムアウトは tick() で判定する。
    ログアウト・期限切れになったセッションは一覧から取り除かれる。
    """

    def __init__(
        self,
        directory: ManagerDirectory,
        timeout_seconds: float = INACTIVITY_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = directory
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self._sessions: Dict[str, SessionManager] = {}
        self._lock = threading.Lock()

    def create(self) -> Tuple[str, SessionManager]:
        self.purge_expired()
        session_id = secrets.token_urlsafe(24)
        session = SessionManager(
            self.directory,
            storage=MemorySessionStorage(),
            timeout_seconds=self.timeout_seconds,
            clock=self.clock,
            timer_factory=None,
            on_logout=lambda _session: self.discard(session_id),
            session_id=session_id,
        )
        with self._lock:
            self._sessions[session_id] = session
        return session_id, session

    def get(self, session_id: str) -> Optional[SessionManager]:
        """有効なセッションを返す。期限切れならその場でログアウトして None"""
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            return None
        session.tick()
        return session if session.logged_in else None

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def purge_expired(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
        before = len(sessions)
        for session in sessions:
            session.tick()
        with self._lock:
            purged = before - len(self._sessions)
        if purged:
            logger.info("Purged %d expired sessions", purged)
        return purged

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
