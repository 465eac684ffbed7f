from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from app.dependencies import get_card_service
from app.schemas import CardIssue, CardRedeem, CardType, ScanLookup
from app.services.approval_policy import Approver
from app.services.card_service import CardService
from app.services.session_manager import SessionManager
from app.utils.audit_logger import log_event
from app.utils.jwt_auth import get_current_session, require_permission
from app.utils.permissions import Permission
from app.utils.timeutils import utcnow

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _card_dict(card, now=None) -> dict:
    return {**card.model_dump(mode="json"), "status": card.status(now or utcnow()).value}


@router.get("")
async def list_rewards(
    employee_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern="^(active|redeemed|expired)$"),
    session: SessionManager = Depends(get_current_session),
    cards: CardService = Depends(get_card_service),
):
    """カード一覧（従業員・状態で絞り込み可）"""
    now = utcnow()
    result = [_card_dict(c, now) for c in cards.list_cards(employee_id)]
    if status:
        result = [c for c in result if c["status"] == status]
    return {"data": result, "count": len(result)}


@router.get("/{card_id}")
async def get_reward(
    card_id: str,
    session: SessionManager = Depends(get_current_session),
    cards: CardService = Depends(get_card_service),
):
    return _card_dict(cards.require_card(card_id))


@router.post("/scan")
async def scan_reward(
    data: ScanLookup,
    session: SessionManager = Depends(get_current_session),
    cards: CardService = Depends(get_card_service),
):
    """スキャンしたQRコードからカードを検索"""
    return _card_dict(cards.find_by_scan(data.text))


@router.post("/issue")
async def issue_reward(
    request: Request,
    data: CardIssue,
    session: SessionManager = Depends(require_permission(Permission.ISSUE_REWARDS)),
    cards: CardService = Depends(get_card_service),
):
    """カードを発行"""
    identity = session.identity
    approver_id = data.approver_id
    if approver_id is None and (session.is_admin or data.card_type == CardType.BASIC):
        # 管理者は自身で承認できる。basic カードは発行者を承認者として記録
        approver_id = identity.id

    card = cards.issue(data.employee_id, data.card_type, card_id=data.card_id, approver_id=approver_id)

    log_event(event_type="card_issued", actor=identity, ip_address=_client_ip(request),
              resource=f"card:{card.id}", action="POST",
              details={"employee_id": card.employee_id, "card_type": card.card_type.value,
                       "approved_by": card.approved_by},
              success=True)
    return {"success": True, "card": _card_dict(card)}


@router.post("/redeem")
async def redeem_reward(
    request: Request,
    data: CardRedeem,
    session: SessionManager = Depends(get_current_session),
    cards: CardService = Depends(get_card_service),
):
    """カードを引き換え

    承認者カードが指定されていればそのロールで判定する。
    承認者なしで引き換えられるのは管理者本人のみ。
    """
    identity = session.identity
    if data.approver_id:
        card = cards.redeem_with_approver_card(data.card_id, data.approver_id)
    elif session.is_admin:
        card = cards.redeem_as_admin(data.card_id, Approver(id=identity.id, name=identity.name, role=identity.role))
    else:
        raise HTTPException(status_code=400, detail="Vezetői jóváhagyás szükséges")

    log_event(event_type="card_redeemed", actor=identity, ip_address=_client_ip(request),
              resource=f"card:{card.id}", action="POST",
              details={"approved_by": card.approved_by, "approver_role": card.approver_role},
              success=True)
    return {"success": True, "card": _card_dict(card)}


@router.delete("/{card_id}")
async def delete_reward(
    request: Request,
    card_id: str,
    session: SessionManager = Depends(require_permission(Permission.MANAGE_EMPLOYEES)),
    cards: CardService = Depends(get_card_service),
):
    """カードを削除"""
    if not cards.delete_card(card_id):
        raise HTTPException(status_code=404, detail="Kártya nem található")
    log_event(event_type="card_deleted", actor=session.identity, ip_address=_client_ip(request),
              resource=f"card:{card_id}", action="DELETE", success=True)
    return {"success": True, "message": "Kártya törölve"}
