import logging
import uuid
from typing import List, Optional

from app.exceptions import EmployeeNotFound, UpstreamUnavailable
from app.schemas import Employee, EmployeeCreate, EmployeeUpdate
from app.services.record_store import RecordStore, decode_record
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

EMPLOYEES_SET = "employees"


def employee_key(employee_id: str) -> str:
    return f"employee:{employee_id}"


def employee_cards_key(employee_id: str) -> str:
    return f"employee:{employee_id}:cards"


class EmployeeService:
    """従業員の作成・更新・一覧"""

    def __init__(self, store: RecordStore, clock=utcnow):
        self.store = store
        self.clock = clock

    def list_employees(self) -> List[Employee]:
        """従業員一覧（ストア障害時は空リスト）"""
        try:
            ids = self.store.list_set(EMPLOYEES_SET)
            employees = [self.get_employee(employee_id) for employee_id in ids]
        except UpstreamUnavailable:
            logger.error("Could not list employees, returning empty list")
            return []
        return sorted((e for e in employees if e), key=lambda e: e.name)

    def get_employee(self, employee_id: str) -> Optional[Employee]:
        key = employee_key(employee_id)
        return decode_record(Employee, self.store.get_record(key), key)

    def require_employee(self, employee_id: str) -> Employee:
        employee = self.get_employee(employee_id)
        if employee is None:
            raise EmployeeNotFound()
        return employee

    def create_employee(self, data: EmployeeCreate) -> Employee:
        employee = Employee(
            id=str(uuid.uuid4()),
            name=data.name,
            position=data.position,
            employment_type=data.employment_type,
            created_at=self.clock(),
        )
        self.store.put_record(employee_key(employee.id), employee.model_dump(mode="json"))
        self.store.add_to_set(EMPLOYEES_SET, employee.id)
        return employee

    def update_employee(self, employee_id: str, data: EmployeeUpdate) -> Employee:
        employee = self.require_employee(employee_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        is_locked = changes.get("is_locked", employee.is_locked)
        if not is_locked:
            # ロック解除時は理由をクリア
            changes["lock_reason"] = ""

        updated = employee.model_copy(update=changes)
        self.store.put_record(employee_key(employee_id), updated.model_dump(mode="json"))
        if updated.is_locked != employee.is_locked:
            logger.info("Employee %s lock state changed to %s", employee_id, updated.is_locked)
        return updated
