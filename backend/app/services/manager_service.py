import json
import logging
import uuid
from typing import List, Optional

from passlib.context import CryptContext

from app.exceptions import ManagerNotFound, UpstreamUnavailable
from app.schemas import ManagerCard, ManagerCreate, ManagerUpdate
from app.services.record_store import RecordStore, decode_record
from app.utils import qr
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

# パスワードハッシング設定
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MANAGERS_SET = "managers"


def manager_key(manager_id: str) -> str:
    return f"manager:{manager_id}"


class ManagerService:
    """マネージャーカード（承認者）の管理"""

    def __init__(self, store: RecordStore, clock=utcnow, qr_encoder=qr.encode):
        self.store = store
        self.clock = clock
        self.qr_encoder = qr_encoder

    def list_managers(self) -> List[ManagerCard]:
        """マネージャー一覧（ストア障害時は空リスト）"""
        try:
            ids = self.store.list_set(MANAGERS_SET)
            managers = [self.get_manager(manager_id) for manager_id in ids]
        except UpstreamUnavailable:
            logger.error("Could not list managers, returning empty list")
            return []
        return sorted((m for m in managers if m), key=lambda m: m.created_at)

    def get_manager(self, manager_id: str) -> Optional[ManagerCard]:
        key = manager_key(manager_id)
        return decode_record(ManagerCard, self.store.get_record(key), key)

    def require_manager(self, manager_id: str) -> ManagerCard:
        manager = self.get_manager(manager_id)
        if manager is None:
            raise ManagerNotFound()
        return manager

    def exists(self, manager_id: str) -> bool:
        return self.get_manager(manager_id) is not None

    def create_manager(self, data: ManagerCreate) -> ManagerCard:
        manager_id = str(uuid.uuid4())
        manager = ManagerCard(
            id=manager_id,
            name=data.name,
            position=data.position,
            role=data.role,
            created_at=self.clock(),
            # 新規作成時のQRコードはIDのみ
            qr_code=self.qr_encoder(manager_id),
            permissions=data.permissions,
            password_hash=pwd_context.hash(data.password) if data.password else None,
        )
        self.store.put_record(manager_key(manager_id), manager.model_dump(mode="json"))
        self.store.add_to_set(MANAGERS_SET, manager_id)
        logger.info("Manager card created: %s (%s)", manager_id, manager.role.value)
        return manager

    def update_manager(self, manager_id: str, data: ManagerUpdate) -> ManagerCard:
        manager = self.require_manager(manager_id)

        # 権限を含めた内容でQRコードを再生成
        payload = json.dumps({
            "id": manager_id,
            "name": data.name,
            "position": data.position,
            "role": data.role.value,
            "permissions": [p.value for p in data.permissions],
            "type": "manager",
        }, ensure_ascii=False)

        changes = {
            "name": data.name,
            "position": data.position,
            "role": data.role,
            "permissions": data.permissions,
            "qr_code": self.qr_encoder(payload),
        }
        if data.change_password and data.password:
            changes["password_hash"] = pwd_context.hash(data.password)

        updated = manager.model_copy(update=changes)
        self.store.put_record(manager_key(manager_id), updated.model_dump(mode="json"))
        return updated

    def update_password(self, manager_id: str, password: str) -> ManagerCard:
        manager = self.require_manager(manager_id)
        updated = manager.model_copy(update={"password_hash": pwd_context.hash(password)})
        self.store.put_record(manager_key(manager_id), updated.model_dump(mode="json"))
        return updated

    def delete_manager(self, manager_id: str) -> bool:
        if self.get_manager(manager_id) is None:
            return False
        self.store.delete_record(manager_key(manager_id))
        self.store.remove_from_set(MANAGERS_SET, manager_id)
        logger.info("Manager card deleted: %s", manager_id)
        return True

    def authenticate(self, manager_id: str, password: str) -> Optional[ManagerCard]:
        """パスワードが一致すればマネージャーを返す。パスワード未設定のカードは常に失敗"""
        manager = self.get_manager(manager_id)
        if manager is None or not manager.password_hash:
            return None
        if not pwd_context.verify(password, manager.password_hash):
            return None
        return manager
