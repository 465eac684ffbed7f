from fastapi import APIRouter, Depends, HTTPException, Request
from app.dependencies import get_card_service, get_employee_service
from app.schemas import EmployeeCreate, EmployeeUpdate
from app.services.card_service import CardService
from app.services.employee_service import EmployeeService
from app.services.session_manager import SessionManager
from app.utils.audit_logger import log_event
from app.utils.jwt_auth import get_current_session, require_permission
from app.utils.permissions import Permission
from app.utils.timeutils import utcnow

router = APIRouter(prefix="/api/employees", tags=["employees"])


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.get("")
async def list_employees(
    session: SessionManager = Depends(get_current_session),
    employees: EmployeeService = Depends(get_employee_service),
):
    """従業員一覧"""
    result = [e.model_dump(mode="json") for e in employees.list_employees()]
    return {"data": result, "count": len(result)}


@router.get("/{employee_id}")
async def get_employee(
    employee_id: str,
    session: SessionManager = Depends(get_current_session),
    employees: EmployeeService = Depends(get_employee_service),
    cards: CardService = Depends(get_card_service),
):
    """従業員と保有カード"""
    employee = employees.require_employee(employee_id)
    now = utcnow()
    return {
        "employee": employee.model_dump(mode="json"),
        "cards": [
            {**c.model_dump(mode="json"), "status": c.status(now).value}
            for c in cards.list_cards(employee_id)
        ],
    }


@router.post("")
async def create_employee(
    request: Request,
    data: EmployeeCreate,
    session: SessionManager = Depends(require_permission(Permission.MANAGE_EMPLOYEES)),
    employees: EmployeeService = Depends(get_employee_service),
):
    """従業員を追加"""
    employee = employees.create_employee(data)
    log_event(event_type="employee_created", actor=session.identity, ip_address=_client_ip(request),
              resource=f"employee:{employee.id}", action="POST", details={"name": employee.name}, success=True)
    return {"success": True, "employee": employee.model_dump(mode="json")}


@router.put("/{employee_id}")
async def update_employee(
    request: Request,
    employee_id: str,
    data: EmployeeUpdate,
    session: SessionManager = Depends(require_permission(Permission.MANAGE_EMPLOYEES)),
    employees: EmployeeService = Depends(get_employee_service),
):
    """従業員情報を更新（ロック/ロック解除を含む）"""
    employee = employees.update_employee(employee_id, data)
    log_event(event_type="employee_updated", actor=session.identity, ip_address=_client_ip(request),
              resource=f"employee:{employee_id}", action="PUT",
              details=data.model_dump(mode="json", exclude_unset=True), success=True)
    return {"success": True, "employee": employee.model_dump(mode="json")}


@router.delete("/{employee_id}")
async def delete_employee(
    request: Request,
    employee_id: str,
    session: SessionManager = Depends(require_permission(Permission.MANAGE_EMPLOYEES)),
    cards: CardService = Depends(get_card_service),
):
    """従業員とその保有カードを削除"""
    if not cards.delete_employee_cascade(employee_id):
        raise HTTPException(status_code=404, detail="Alkalmazott nem található")
    log_event(event_type="employee_deleted", actor=session.identity, ip_address=_client_ip(request),
              resource=f"employee:{employee_id}", action="DELETE", success=True)
    return {"success": True, "message": "Alkalmazott törölve"}
