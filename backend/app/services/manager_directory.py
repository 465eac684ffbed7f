"""
ログイン時に使うマネージャー参照

SessionManager はこのインターフェース経由でマネージャーの存在確認と
パスワード照合を行う。サーバー内ではレコードストアを直接参照し、
キオスク等のクライアントでは HTTP API を呼び出す。
通信・ストア障害は UpstreamUnavailable として送出する。
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote

import requests

from app.config import ADMIN_ID, ADMIN_NAME, ADMIN_ROLE
from app.exceptions import UpstreamUnavailable
from app.services.manager_service import ManagerService
from app.utils.permissions import ADMIN_PERMISSIONS, Permission, effective_permissions, parse_permissions

logger = logging.getLogger(__name__)


@dataclass
class Identity:
    """ログイン中の利用者（マネージャーまたは管理者）"""

    id: str
    name: str
    role: str
    permissions: List[Permission] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "permissions": [Permission(p).value for p in self.permissions],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Identity":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            role=str(data["role"]),
            permissions=parse_permissions(data.get("permissions")),
        )


def admin_identity() -> Identity:
    return Identity(id=ADMIN_ID, name=ADMIN_NAME, role=ADMIN_ROLE, permissions=list(ADMIN_PERMISSIONS))


class ManagerDirectory(ABC):
    @abstractmethod
    def exists(self, manager_id: str) -> bool:
        """マネージャーカードが存在するか（削除済みなら False）"""
        ...

    @abstractmethod
    def authenticate(self, manager_id: str, password: str) -> Optional[Identity]:
        """パスワードが一致すれば Identity を返す"""
        ...

    @abstractmethod
    def lookup(self, manager_id: str) -> Optional[Identity]:
        """IDだけのカードから氏名・ロールを取得する（存在しなければ None）

        管理者はカードでログインしないため、管理者IDは常に None
        """
        ...


class LocalManagerDirectory(ManagerDirectory):
    """レコードストアを直接参照する（サーバー内のセッション用）"""

    def __init__(self, managers: ManagerService):
        self.managers = managers

    def exists(self, manager_id: str) -> bool:
        if manager_id == ADMIN_ID:
            return True
        return self.managers.exists(manager_id)

    def lookup(self, manager_id: str) -> Optional[Identity]:
        manager = self.managers.get_manager(manager_id)
        if manager is None:
            return None
        return Identity(
            id=manager.id,
            name=manager.name,
            role=manager.role.value,
            permissions=effective_permissions(manager.role.value, manager.permissions),
        )

    def authenticate(self, manager_id: str, password: str) -> Optional[Identity]:
        manager = self.managers.authenticate(manager_id, password)
        if manager is None:
            return None
        return Identity(
            id=manager.id,
            name=manager.name,
            role=manager.role.value,
            permissions=effective_permissions(manager.role.value, manager.permissions),
        )


class HttpManagerDirectory(ManagerDirectory):
    """HTTP API 経由で参照する（キオスク等のクライアント用）"""

    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _get_identity(self, manager_id: str) -> requests.Response:
        url = f"{self.base_url}/api/auth/identity/{quote(manager_id, safe='')}"
        try:
            response = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamUnavailable() from e
        if response.status_code >= 500:
            raise UpstreamUnavailable()
        return response

    def exists(self, manager_id: str) -> bool:
        if manager_id == ADMIN_ID:
            return True
        return self._get_identity(manager_id).status_code == 200

    def lookup(self, manager_id: str) -> Optional[Identity]:
        if manager_id == ADMIN_ID:
            return None
        response = self._get_identity(manager_id)
        if response.status_code != 200:
            return None
        manager = response.json()
        return Identity(
            id=manager["id"],
            name=manager["name"],
            role=manager["role"],
            permissions=effective_permissions(manager["role"], manager.get("permissions")),
        )

    def authenticate(self, manager_id: str, password: str) -> Optional[Identity]:
        try:
            response = self.http.post(
                f"{self.base_url}/api/auth/login-by-id",
                json={"manager_id": manager_id, "password": password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamUnavailable() from e
        if response.status_code >= 500:
            raise UpstreamUnavailable()
        if response.status_code != 200:
            return None

        data = response.json()
        if not data.get("success"):
            return None
        manager = data["manager"]
        return Identity(
            id=manager["id"],
            name=manager["name"],
            role=manager["role"],
            permissions=effective_permissions(manager["role"], manager.get("permissions")),
        )
