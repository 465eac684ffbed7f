"""
承認ポリシー

- 引き換え: 承認者カードのロールが Műszakvezető または Admin であること
  （ログイン中の操作者のロールではなく、スキャンした承認者カードのロールで判定）
- 発行: basic は承認不要。gold / platinum は承認者が必要で、
  承認者はマネージャーカードとして存在するか管理者IDであること
"""

from dataclasses import dataclass
from typing import Optional

from app.config import ADMIN_ID, ADMIN_NAME, ADMIN_ROLE
from app.exceptions import ApprovalRequired, InsufficientApprovalRole, InvalidIdentity
from app.schemas import CardType, ManagerRole
from app.services.manager_service import ManagerService

REDEMPTION_APPROVER_ROLES = frozenset({ManagerRole.SHIFT_LEADER.value, ADMIN_ROLE})


@dataclass(frozen=True)
class Approver:
    id: str
    name: str
    role: str


ADMIN_APPROVER = Approver(id=ADMIN_ID, name=ADMIN_NAME, role=ADMIN_ROLE)


class ApprovalPolicy:
    def __init__(self, managers: ManagerService):
        self.managers = managers

    def resolve_approver(self, approver_id: str) -> Approver:
        """承認者IDを検証し、承認時点の氏名とロールを返す"""
        if approver_id == ADMIN_ID:
            return ADMIN_APPROVER
        manager = self.managers.get_manager(approver_id)
        if manager is None:
            raise InvalidIdentity("Érvénytelen vezetői jóváhagyás")
        return Approver(id=manager.id, name=manager.name, role=manager.role.value)

    def check_redemption_approver(self, approver_role: Optional[str]) -> None:
        if approver_role not in REDEMPTION_APPROVER_ROLES:
            raise InsufficientApprovalRole()

    def check_issuance(self, card_type: CardType, approver_id: Optional[str]) -> Optional[Approver]:
        """発行時の承認を検証する。承認者が指定されていれば検証済みの承認者を返す"""
        if approver_id:
            return self.resolve_approver(approver_id)
        if CardType(card_type) != CardType.BASIC:
            raise ApprovalRequired()
        return None
