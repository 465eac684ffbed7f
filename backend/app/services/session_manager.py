"""
セッション・権限管理

ログイン中の利用者（管理者またはマネージャー）、実効権限、
無操作タイマーによる自動ログアウト、セッションの永続化を扱う。

状態遷移: uninitialized → restored（保存済みセッションを復元）→ active → expired / logged_out

- 無操作が INACTIVITY_TIMEOUT_SECONDS（3分）続くと自動ログアウト
- タイマーは常に1つだけ。リセット時はキャンセルして再設定する
- tick() は1秒ごとに残り時間を再計算し、0になればタイマーとは独立にログアウトする
- カードスキャンによるログインは存在確認の通信障害を無視して続行する（fail open）
- パスワードによるログインは通信障害時に失敗する（fail closed）
"""

import hmac
import json
import logging
import threading
import time
from enum import Enum
from typing import Callable, Iterable, Optional

from app.config import ADMIN_ID, ADMIN_PASSWORD, INACTIVITY_TIMEOUT_SECONDS
from app.exceptions import UpstreamUnavailable
from app.services.manager_directory import Identity, ManagerDirectory, admin_identity
from app.services.session_storage import MemorySessionStorage, SessionStorage
from app.utils.permissions import effective_permissions, permission_granted

logger = logging.getLogger(__name__)

ADMIN_STORAGE_KEY = "adminAuth"
MANAGER_STORAGE_KEY = "managerAuth"


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RESTORED = "restored"
    ACTIVE = "active"
    EXPIRED = "expired"
    LOGGED_OUT = "logged_out"


class ActivitySignal(str, Enum):
    """タイマーをリセットする操作の種類"""

    POINTER_DOWN = "pointerdown"
    KEY_DOWN = "keydown"
    TOUCH_START = "touchstart"
    SCROLL = "scroll"


def _start_daemon_timer(interval: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, callback)
    timer.daemon = True
    timer.start()
    return timer


class SessionManager:
    def __init__(
        self,
        directory: ManagerDirectory,
        storage: SessionStorage = None,
        timeout_seconds: float = INACTIVITY_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
        timer_factory: Optional[Callable] = _start_daemon_timer,
        on_logout: Optional[Callable[["SessionManager"], None]] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id
        self.directory = directory
        self.storage = storage or MemorySessionStorage()
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        # timer_factory=None の場合は tick() による判定のみ
        self.timer_factory = timer_factory
        self.on_logout = on_logout

        self.state = SessionState.UNINITIALIZED
        self.is_admin = False
        self.identity: Optional[Identity] = None
        self.last_activity = clock()
        self.remaining_time = float(timeout_seconds)

        self._timer = None
        self._lock = threading.RLock()
        self._ticker: Optional[threading.Thread] = None
        self._ticker_stop = threading.Event()

    @property
    def logged_in(self) -> bool:
        return self.state in (SessionState.RESTORED, SessionState.ACTIVE)

    # --- 復元 ---------------------------------------------------------------

    def restore(self) -> bool:
        """保存済みのセッションを復元する。復元できれば True"""
        with self._lock:
            if self.storage.get(ADMIN_STORAGE_KEY) == "true":
                self._set_identity(admin_identity(), is_admin=True)
            else:
                raw = self.storage.get(MANAGER_STORAGE_KEY)
                if raw:
                    try:
                        self._set_identity(Identity.from_dict(json.loads(raw)), is_admin=False)
                    except (ValueError, KeyError, TypeError) as e:
                        logger.error("Error parsing stored manager session: %s", e)
                        self.storage.remove(MANAGER_STORAGE_KEY)

            self.last_activity = self.clock()
            if self.identity is None:
                self.state = SessionState.LOGGED_OUT
                return False
            self.state = SessionState.RESTORED
            self._schedule_timer()
            return True

    # --- ログイン -------------------------------------------------------------

    def login_with_identity(self, manager_id: str, name: str, role: str, permissions: Iterable = None) -> bool:
        """スキャンしたマネージャーカードでログインする"""
        if manager_id != ADMIN_ID:
            try:
                if not self.directory.exists(manager_id):
                    logger.info("Login attempt with deleted manager ID: %s", manager_id)
                    return False
            except UpstreamUnavailable:
                # 通信障害時はカードの内容を信用して続行
                logger.warning("Could not verify manager %s, continuing login", manager_id)

        identity = Identity(
            id=manager_id,
            name=name,
            role=role,
            permissions=effective_permissions(role, permissions),
        )
        self._begin(identity, is_admin=False)
        return True

    def login_with_password(self, manager_id: str, password: str) -> bool:
        if manager_id == ADMIN_ID and self._is_admin_password(password):
            self._begin(admin_identity(), is_admin=True)
            return True

        try:
            if not self.directory.exists(manager_id):
                logger.info("Login attempt with deleted manager ID: %s", manager_id)
                return False
            identity = self.directory.authenticate(manager_id, password)
        except UpstreamUnavailable:
            logger.error("Password login for %s failed: manager directory unavailable", manager_id)
            return False

        if identity is None:
            return False
        self._begin(identity, is_admin=False)
        return True

    def admin_login(self, password: str) -> bool:
        """管理者パスワードでログイン（ローカル照合のみ）"""
        if not self._is_admin_password(password):
            return False
        self._begin(admin_identity(), is_admin=True)
        return True

    @staticmethod
    def _is_admin_password(password: str) -> bool:
        return hmac.compare_digest(password.encode("utf-8"), ADMIN_PASSWORD.encode("utf-8"))

    def _begin(self, identity: Identity, is_admin: bool) -> None:
        with self._lock:
            self._set_identity(identity, is_admin)
            self.state = SessionState.ACTIVE

            self.storage.remove(ADMIN_STORAGE_KEY)
            if is_admin:
                self.storage.set(ADMIN_STORAGE_KEY, "true")
            self.storage.set(MANAGER_STORAGE_KEY, json.dumps(identity.to_dict(), ensure_ascii=False))
            self.reset_inactivity_timer()
        logger.info("Logged in: %s (%s)", identity.id, identity.role)

    def _set_identity(self, identity: Identity, is_admin: bool) -> None:
        self.identity = identity
        self.is_admin = is_admin

    # --- ログアウト -----------------------------------------------------------

    def logout(self) -> None:
        """セッションを破棄する（何度呼んでもよい）"""
        self._end(SessionState.LOGGED_OUT)

    def _end(self, final_state: SessionState) -> None:
        with self._lock:
            was_logged_in = self.logged_in
            self.is_admin = False
            self.identity = None
            self.state = final_state
            self.storage.remove(ADMIN_STORAGE_KEY)
            self.storage.remove(MANAGER_STORAGE_KEY)
            self._cancel_timer()
        if was_logged_in and self.on_logout is not None:
            self.on_logout(self)

    def _expire(self) -> None:
        logger.info("Auto logout due to inactivity")
        self._end(SessionState.EXPIRED)

    # --- 権限 ---------------------------------------------------------------

    def has_permission(self, permission) -> bool:
        if self.is_admin:
            return True
        if self.identity is None:
            return False
        return permission_granted(self.identity.permissions, permission)

    # --- 無操作タイマー ---------------------------------------------------------

    def reset_inactivity_timer(self) -> None:
        with self._lock:
            self.last_activity = self.clock()
            self.remaining_time = float(self.timeout_seconds)
            self._schedule_timer()

    def record_activity(self, signal) -> bool:
        """ユーザー操作を受け取りタイマーをリセットする。ログアウト中は無視"""
        try:
            ActivitySignal(signal)
        except ValueError:
            return False
        with self._lock:
            if not self.logged_in:
                return False
            if self.state == SessionState.RESTORED:
                self.state = SessionState.ACTIVE
            self.reset_inactivity_timer()
            return True

    def tick(self) -> float:
        """残り時間を再計算する。0になればログアウトする"""
        with self._lock:
            if not self.logged_in:
                return self.remaining_time
            elapsed = self.clock() - self.last_activity
            self.remaining_time = max(0.0, self.timeout_seconds - elapsed)
            if self.remaining_time == 0:
                self._expire()
            return self.remaining_time

    def _schedule_timer(self) -> None:
        self._cancel_timer()
        if self.timer_factory is not None and self.logged_in:
            self._timer = self.timer_factory(self.timeout_seconds, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        with self._lock:
            if self.logged_in:
                self._expire()

    def start_ticker(self, interval: float = 1.0) -> None:
        """1秒ごとに tick() を呼ぶバックグラウンドスレッドを開始する"""
        if self._ticker is not None and self._ticker.is_alive():
            return
        self._ticker_stop.clear()

        def _run():
            while not self._ticker_stop.wait(interval):
                self.tick()

        self._ticker = threading.Thread(target=_run, daemon=True)
        self._ticker.start()

    def stop_ticker(self) -> None:
        self._ticker_stop.set()
        self._ticker = None

    # --- 状態の参照 -------------------------------------------------------------

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "state": self.state.value,
                "logged_in": self.logged_in,
                "is_admin": self.is_admin,
                "identity": self.identity.to_dict() if self.identity else None,
                "remaining_seconds": int(self.remaining_time),
            }
