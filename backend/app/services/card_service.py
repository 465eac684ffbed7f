"""
報酬カードのライフサイクル

発行 → 有効 → 引き換え済み / 期限切れ（expires_at < 現在時刻で判定、保存はしない）/ 削除

- 未引き換えのカードIDは再利用できない（CardIdInUse）
- 引き換え済みカードのIDは、発行時に旧カードを削除して再利用する
- 引き換えはリビジョン比較付きの書き込みで、同時に実行しても成功は1回だけ
"""

import logging
import uuid
from typing import List, Optional

from app.exceptions import (
    AlreadyRedeemed,
    CardIdInUse,
    CardNotFound,
    EmployeeLocked,
    EmployeeNotFound,
    Expired,
    UpstreamUnavailable,
)
from app.schemas import CardType, EmploymentType, RewardCard
from app.services.approval_policy import ApprovalPolicy, Approver
from app.services.employee_service import (
    EMPLOYEES_SET,
    EmployeeService,
    employee_cards_key,
    employee_key,
)
from app.services.record_store import RecordStore, decode_record
from app.utils import qr
from app.utils.timeutils import days_from, utcnow

logger = logging.getLogger(__name__)

CARDS_SET = "cards"

# カード種別ごとのポイント
CARD_POINTS = {
    CardType.BASIC: 1,
    CardType.GOLD: 2,
    CardType.PLATINUM: 3,
}

# 雇用形態ごとの有効期間（日数）
EXPIRATION_DAYS = {
    EmploymentType.FULL_TIME: 7,
    EmploymentType.PART_TIME: 14,
    EmploymentType.STUDENT: 14,
}
DEFAULT_EXPIRATION_DAYS = 7


def card_key(card_id: str) -> str:
    return f"card:{card_id}"


def generate_card_id() -> str:
    return uuid.uuid4().hex[:8]


def calculate_expiration(employment_type, issued_at):
    try:
        days = EXPIRATION_DAYS[EmploymentType(employment_type)]
    except ValueError:
        days = DEFAULT_EXPIRATION_DAYS
    return days_from(issued_at, days)


def _owner_id(card: Optional[RewardCard], data) -> Optional[str]:
    """カードの所有者ID。壊れたレコードでも employee_id が読めればそれを使う"""
    if card is not None:
        return card.employee_id
    owner = data.get("employee_id") if isinstance(data, dict) else None
    return owner if isinstance(owner, str) else None


class CardService:
    def __init__(
        self,
        store: RecordStore,
        employees: EmployeeService,
        policy: ApprovalPolicy,
        clock=utcnow,
        qr_encoder=qr.encode,
    ):
        self.store = store
        self.employees = employees
        self.policy = policy
        self.clock = clock
        self.qr_encoder = qr_encoder

    # --- 参照 ---------------------------------------------------------------

    def list_cards(self, employee_id: Optional[str] = None) -> List[RewardCard]:
        """カード一覧（従業員指定時はその従業員のカードのみ）。ストア障害時は空リスト"""
        set_key = employee_cards_key(employee_id) if employee_id else CARDS_SET
        try:
            cards = [self.get_card(card_id) for card_id in self.store.list_set(set_key)]
        except UpstreamUnavailable:
            logger.error("Could not list reward cards (%s), returning empty list", set_key)
            return []
        return sorted((c for c in cards if c), key=lambda c: c.issued_at, reverse=True)

    def get_card(self, card_id: str) -> Optional[RewardCard]:
        key = card_key(card_id)
        return decode_record(RewardCard, self.store.get_record(key), key)

    def require_card(self, card_id: str) -> RewardCard:
        card = self.get_card(card_id)
        if card is None:
            raise CardNotFound()
        return card

    def find_by_scan(self, scanned_text: str) -> RewardCard:
        """スキャンしたQRコードの文字列からカードを取得"""
        return self.require_card(qr.decode_scanned(scanned_text))

    # --- 発行 ---------------------------------------------------------------

    def issue(
        self,
        employee_id: str,
        card_type,
        card_id: Optional[str] = None,
        approver_id: Optional[str] = None,
        approver_name: Optional[str] = None,
        approver_role: Optional[str] = None,
    ) -> RewardCard:
        card_type = CardType(card_type)
        card_id = card_id or generate_card_id()

        approver = self.policy.check_issuance(card_type, approver_id)
        if approver is None and (approver_name or approver_role):
            # basic カードの発行者（検証なし）
            approver = Approver(id=approver_id or "", name=approver_name or "", role=approver_role or "")

        key = card_key(card_id)
        found = self.store.get_versioned(key)
        if found is not None:
            data, revision = found
            existing = decode_record(RewardCard, data, key)
            if existing is not None and not existing.is_redeemed:
                raise CardIdInUse()
            # 引き換え済み（または壊れた）レコードを削除してIDを再利用する
            if not self._remove(card_id, _owner_id(existing, data), expected_revision=revision):
                raise CardIdInUse()
            logger.info("Redeemed card %s deleted for ID reuse", card_id)

        employee = self.employees.get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFound()
        if employee.is_locked:
            raise EmployeeLocked()

        issued_at = self.clock()
        card = RewardCard(
            id=card_id,
            employee_id=employee_id,
            card_type=card_type,
            points=CARD_POINTS[card_type],
            issued_at=issued_at,
            expires_at=calculate_expiration(employee.employment_type, issued_at),
            is_redeemed=False,
            approved_by=approver.id if approver else None,
            approver_name=approver.name if approver else None,
            approver_role=approver.role if approver else None,
            qr_code=self.qr_encoder(card_id),
        )

        if not self.store.put_if_absent(key, card.model_dump(mode="json")):
            # 同じIDで同時に発行された
            raise CardIdInUse()
        self.store.add_to_set(CARDS_SET, card_id)
        self.store.add_to_set(employee_cards_key(employee_id), card_id)

        logger.info("Card %s (%s) issued to employee %s", card_id, card_type.value, employee_id)
        return card

    # --- 引き換え -------------------------------------------------------------

    def redeem(self, card_id: str, approver_id: str, approver_name: str, approver_role: str) -> RewardCard:
        """承認者カードによる引き換え。承認者のロールで判定する"""
        self.policy.check_redemption_approver(approver_role)
        return self._apply_redemption(card_id, Approver(id=approver_id, name=approver_name, role=approver_role))

    def redeem_with_approver_card(self, card_id: str, approver_id: str) -> RewardCard:
        """スキャンした承認者カードのIDを検証してから引き換える"""
        approver = self.policy.resolve_approver(approver_id)
        return self.redeem(card_id, approver.id, approver.name, approver.role)

    def redeem_as_admin(self, card_id: str, admin: Approver) -> RewardCard:
        """管理者本人による直接引き換え（承認ロールの判定なし）"""
        return self._apply_redemption(card_id, admin)

    def _apply_redemption(self, card_id: str, approver: Approver) -> RewardCard:
        key = card_key(card_id)
        found = self.store.get_versioned(key)
        card = decode_record(RewardCard, found[0], key) if found else None
        if card is None:
            raise CardNotFound()
        if card.is_redeemed:
            raise AlreadyRedeemed()

        now = self.clock()
        if card.is_expired(now):
            raise Expired()

        updated = card.model_copy(update={
            "is_redeemed": True,
            "redeemed_at": now,
            "approved_by": approver.id,
            "approver_name": approver.name,
            "approver_role": approver.role,
        })
        if not self.store.put_if_revision(key, updated.model_dump(mode="json"), found[1]):
            # 読み取り後に別の書き込みがあった
            if self.store.get_record(key) is None:
                raise CardNotFound()
            raise AlreadyRedeemed()

        logger.info("Card %s redeemed, approved by %s (%s)", card_id, approver.id, approver.role)
        return updated

    # --- 削除 ---------------------------------------------------------------

    def delete_card(self, card_id: str) -> bool:
        """カードを削除する。存在しなければ False"""
        key = card_key(card_id)
        found = self.store.get_versioned(key)
        if found is None:
            return False
        data = found[0]
        return self._remove(card_id, _owner_id(decode_record(RewardCard, data, key), data))

    def _remove(self, card_id: str, owner_id: Optional[str], expected_revision: Optional[int] = None) -> bool:
        if not self.store.delete_record(card_key(card_id), expected_revision=expected_revision):
            return False
        if owner_id:
            self.store.remove_from_set(employee_cards_key(owner_id), card_id)
        self.store.remove_from_set(CARDS_SET, card_id)
        return True

    def delete_employee_cascade(self, employee_id: str) -> bool:
        """従業員のカードをすべて削除してから従業員を削除する（トランザクションなし）"""
        if self.employees.get_employee(employee_id) is None:
            return False

        for card_id in self.store.list_set(employee_cards_key(employee_id)):
            self.delete_card(card_id)

        self.store.delete_record(employee_key(employee_id))
        self.store.delete_set(employee_cards_key(employee_id))
        self.store.remove_from_set(EMPLOYEES_SET, employee_id)
        logger.info("Employee %s deleted with cards", employee_id)
        return True
