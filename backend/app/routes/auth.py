import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from app.config import ADMIN_ID
from app.dependencies import get_manager_service, get_session_registry
from app.exceptions import InvalidIdentity, UpstreamUnavailable
from app.schemas import AdminLogin, CardLogin, PasswordLogin
from app.services.manager_directory import LocalManagerDirectory
from app.services.manager_service import ManagerService
from app.services.session_manager import SessionManager
from app.services.session_registry import SessionRegistry
from app.utils import qr
from app.utils.audit_logger import log_event
from app.utils.jwt_auth import create_access_token, get_current_session, get_session_no_touch
from app.utils.rate_limiter import login_limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class ActivityIn(BaseModel):
    signal: str


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _check_rate_limit(request: Request, attempted_id: str):
    """ブルートフォース対策：IP単位でレート制限"""
    ip_address = _client_ip(request)
    if not login_limiter.is_allowed(ip_address):
        remaining = login_limiter.get_remaining_time(ip_address)
        log_event(
            event_type="login_rate_limit_exceeded",
            ip_address=ip_address,
            details={"manager_id": attempted_id},
            success=False,
        )
        raise HTTPException(
            status_code=429,
            detail=f"Túl sok bejelentkezési kísérlet. Próbálja újra {remaining} másodperc múlva"
        )


def _login_response(session_id: str, session: SessionManager) -> dict:
    access_token = create_access_token({"sub": session.identity.id, "sid": session_id})
    return {
        "success": True,
        "access_token": access_token,
        "token_type": "bearer",
        "session": session.snapshot(),
    }


def _login_failed(request: Request, registry: SessionRegistry, session_id: str, manager_id: str, reason: str):
    registry.discard(session_id)
    log_event(
        event_type="login_failure",
        ip_address=_client_ip(request),
        details={"manager_id": manager_id, "reason": reason},
        success=False,
    )


@router.post("/login")
async def login(request: Request, data: PasswordLogin, registry: SessionRegistry = Depends(get_session_registry)):
    """マネージャーID + パスワードでログイン（管理者IDも可）"""
    _check_rate_limit(request, data.manager_id)

    session_id, session = registry.create()
    if not session.login_with_password(data.manager_id, data.password):
        _login_failed(request, registry, session_id, data.manager_id, "invalid_credentials")
        raise HTTPException(status_code=401, detail="Érvénytelen azonosító vagy jelszó")

    log_event(event_type="login_success", actor=session.identity, ip_address=_client_ip(request),
              details={"method": "password"}, success=True)
    return _login_response(session_id, session)


@router.post("/admin-login")
async def admin_login(request: Request, data: AdminLogin, registry: SessionRegistry = Depends(get_session_registry)):
    """管理者パスワードのみでログイン"""
    _check_rate_limit(request, ADMIN_ID)

    session_id, session = registry.create()
    if not session.admin_login(data.password):
        _login_failed(request, registry, session_id, ADMIN_ID, "invalid_admin_password")
        raise HTTPException(status_code=401, detail="Érvénytelen jelszó")

    log_event(event_type="login_success", actor=session.identity, ip_address=_client_ip(request),
              details={"method": "admin_password"}, success=True)
    return _login_response(session_id, session)


@router.post("/login-by-card")
async def login_by_card(
    request: Request,
    data: CardLogin,
    registry: SessionRegistry = Depends(get_session_registry),
    managers: ManagerService = Depends(get_manager_service),
):
    """スキャンしたマネージャーカードでログイン"""
    scanned = qr.parse_scanned(data.qr_text)
    manager_id = scanned["id"]

    try:
        manager = managers.get_manager(manager_id)
        if manager is None:
            raise InvalidIdentity()
        name, role, permissions = manager.name, manager.role.value, manager.permissions
    except UpstreamUnavailable:
        # ストア障害時は、カードに記録された情報でログインを続行する
        if not (scanned.get("name") and scanned.get("role")):
            raise
        logger.warning("Record store unavailable, trusting scanned card %s", manager_id)
        name, role, permissions = scanned["name"], scanned["role"], scanned.get("permissions")

    session_id, session = registry.create()
    if not session.login_with_identity(manager_id, name, role, permissions):
        _login_failed(request, registry, session_id, manager_id, "deleted_manager")
        raise InvalidIdentity()

    log_event(event_type="login_success", actor=session.identity, ip_address=_client_ip(request),
              details={"method": "card"}, success=True)
    return _login_response(session_id, session)


@router.post("/login-by-id")
async def login_by_id(request: Request, data: PasswordLogin, managers: ManagerService = Depends(get_manager_service)):
    """パスワード照合のみを行う（リモートクライアントの SessionManager が利用）"""
    _check_rate_limit(request, data.manager_id)

    identity = LocalManagerDirectory(managers).authenticate(data.manager_id, data.password)
    if identity is None:
        log_event(event_type="login_failure", ip_address=_client_ip(request),
                  details={"manager_id": data.manager_id, "reason": "invalid_credentials", "method": "remote"})
        raise HTTPException(status_code=401, detail="Érvénytelen jelszó")

    return {"success": True, "manager": identity.to_dict()}


@router.get("/identity/{manager_id}")
async def identity_exists(manager_id: str, managers: ManagerService = Depends(get_manager_service)):
    """マネージャーカードの存在確認（削除済みなら 404）"""
    manager = managers.get_manager(manager_id)
    if manager is None:
        raise HTTPException(status_code=404, detail="Vezető nem található")
    return {
        "id": manager.id,
        "name": manager.name,
        "role": manager.role.value,
        "permissions": [p.value for p in manager.permissions],
    }


@router.post("/logout")
async def logout(request: Request, session: SessionManager = Depends(get_current_session)):
    """ログアウト"""
    actor = session.identity
    session.logout()
    log_event(event_type="logout", actor=actor, ip_address=_client_ip(request), success=True)
    return {"success": True, "message": "Sikeres kijelentkezés"}


@router.get("/session")
async def get_session(session: SessionManager = Depends(get_session_no_touch)):
    """ログイン中の利用者と自動ログアウトまでの残り時間（タイマーはリセットしない）"""
    return session.snapshot()


@router.post("/activity")
async def record_activity(data: ActivityIn, session: SessionManager = Depends(get_session_no_touch)):
    """画面操作の通知（無操作タイマーをリセット）"""
    accepted = session.record_activity(data.signal)
    return {"accepted": accepted, "remaining_seconds": int(session.remaining_time)}
