"""
サービスの組み立て

ルートは Depends(get_card_service) などでサービスを受け取る。
テストでは reset_services() で作り直す。
"""

from functools import lru_cache

from app.services.approval_policy import ApprovalPolicy
from app.services.card_service import CardService
from app.services.employee_service import EmployeeService
from app.services.manager_directory import LocalManagerDirectory
from app.services.manager_service import ManagerService
from app.services.record_store import RecordStore
from app.services.session_registry import SessionRegistry


@lru_cache
def get_store() -> RecordStore:
    return RecordStore()


@lru_cache
def get_employee_service() -> EmployeeService:
    return EmployeeService(get_store())


@lru_cache
def get_manager_service() -> ManagerService:
    return ManagerService(get_store())


@lru_cache
def get_approval_policy() -> ApprovalPolicy:
    return ApprovalPolicy(get_manager_service())


@lru_cache
def get_card_service() -> CardService:
    return CardService(get_store(), get_employee_service(), get_approval_policy())


@lru_cache
def get_session_registry() -> SessionRegistry:
    return SessionRegistry(LocalManagerDirectory(get_manager_service()))


def reset_services() -> None:
    for factory in (
        get_store,
        get_employee_service,
        get_manager_service,
        get_approval_policy,
        get_card_service,
        get_session_registry,
    ):
        factory.cache_clear()
