from fastapi import APIRouter, Depends, HTTPException, Request
from app.dependencies import get_manager_service
from app.exceptions import PermissionDenied
from app.schemas import ManagerCreate, ManagerPasswordUpdate, ManagerUpdate
from app.services.manager_service import ManagerService
from app.services.session_manager import SessionManager
from app.utils.audit_logger import log_event
from app.utils.jwt_auth import get_current_session, require_permission
from app.utils.permissions import Permission

router = APIRouter(prefix="/api/managers", tags=["managers"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.get("")
async def list_managers(
    session: SessionManager = Depends(require_permission(Permission.MANAGE_MANAGERS)),
    managers: ManagerService = Depends(get_manager_service),
):
    """マネージャーカード一覧"""
    result = [m.public_dict() for m in managers.list_managers()]
    return {"data": result, "count": len(result)}


@router.get("/{manager_id}")
async def get_manager(
    manager_id: str,
    session: SessionManager = Depends(get_current_session),
    managers: ManagerService = Depends(get_manager_service),
):
    return managers.require_manager(manager_id).public_dict()


@router.post("")
async def create_manager(
    request: Request,
    data: ManagerCreate,
    session: SessionManager = Depends(require_permission(Permission.ADD_DELETE_MANAGERS)),
    managers: ManagerService = Depends(get_manager_service),
):
    """マネージャーカードを作成"""
    manager = managers.create_manager(data)
    log_event(event_type="manager_created", actor=session.identity, ip_address=_client_ip(request),
              resource=f"manager:{manager.id}", action="POST",
              details={"name": manager.name, "role": manager.role.value}, success=True)
    return {"success": True, "manager": manager.public_dict()}


@router.put("/{manager_id}")
async def update_manager(
    request: Request,
    manager_id: str,
    data: ManagerUpdate,
    session: SessionManager = Depends(require_permission(Permission.EDIT_MANAGER_PRIVILEGES)),
    managers: ManagerService = Depends(get_manager_service),
):
    """マネージャーカードを更新（権限・任意でパスワード）"""
    if data.change_password and data.password and not session.has_permission(Permission.CHANGE_MANAGER_PASSWORDS):
        raise PermissionDenied("Nincs jogosultsága jelszó módosításához")

    manager = managers.update_manager(manager_id, data)
    log_event(event_type="manager_updated", actor=session.identity, ip_address=_client_ip(request),
              resource=f"manager:{manager_id}", action="PUT",
              details={"role": manager.role.value, "permissions": [p.value for p in manager.permissions],
                       "password_changed": bool(data.change_password and data.password)},
              success=True)
    return {"success": True, "manager": manager.public_dict()}


@router.put("/{manager_id}/password")
async def update_manager_password(
    request: Request,
    manager_id: str,
    data: ManagerPasswordUpdate,
    session: SessionManager = Depends(get_current_session),
    managers: ManagerService = Depends(get_manager_service),
):
    """パスワード変更（本人、または change_manager_passwords 権限を持つ利用者）"""
    is_self = session.identity.id == manager_id
    if not is_self and not session.has_permission(Permission.CHANGE_MANAGER_PASSWORDS):
        raise PermissionDenied("Nincs jogosultsága jelszó módosításához")

    managers.update_password(manager_id, data.password)
    log_event(event_type="manager_password_changed", actor=session.identity, ip_address=_client_ip(request),
              resource=f"manager:{manager_id}", action="PUT", details={"self": is_self}, success=True)
    return {"success": True, "message": "Jelszó módosítva"}


@router.delete("/{manager_id}")
async def delete_manager(
    request: Request,
    manager_id: str,
    session: SessionManager = Depends(require_permission(Permission.ADD_DELETE_MANAGERS)),
    managers: ManagerService = Depends(get_manager_service),
):
    """マネージャーカードを削除（承認済みのカードには影響しない）"""
    if session.identity.id == manager_id:
        raise HTTPException(status_code=400, detail="Saját magát nem törölheti")
    if not managers.delete_manager(manager_id):
        raise HTTPException(status_code=404, detail="Vezető nem található")

    log_event(event_type="manager_deleted", actor=session.identity, ip_address=_client_ip(request),
              resource=f"manager:{manager_id}", action="DELETE", success=True)
    return {"success": True, "message": "Vezető törölve"}
