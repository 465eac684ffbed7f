"""
権限とロールの定義

ロールごとのデフォルト権限、管理者の権限一覧、
旧権限名（manage_managers に統合済み）の互換ルールを提供する。
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    MANAGE_EMPLOYEES = "manage_employees"
    ISSUE_REWARDS = "issue_rewards"
    REDEEM_REWARDS = "redeem_rewards"
    MANAGE_MANAGERS = "manage_managers"
    # 旧権限名（互換のため残す。manage_managers を持っていれば付与扱い）
    ADD_DELETE_MANAGERS = "add_delete_managers"
    EDIT_MANAGER_PRIVILEGES = "edit_manager_privileges"
    CHANGE_MANAGER_PASSWORDS = "change_manager_passwords"


LEGACY_MANAGER_PERMISSIONS = frozenset({
    Permission.ADD_DELETE_MANAGERS,
    Permission.EDIT_MANAGER_PRIVILEGES,
    Permission.CHANGE_MANAGER_PASSWORDS,
})

# ロール別のデフォルト権限
ROLE_PERMISSIONS = {
    "Műszakvezető": [
        Permission.MANAGE_EMPLOYEES,
        Permission.ISSUE_REWARDS,
        Permission.REDEEM_REWARDS,
        Permission.MANAGE_MANAGERS,
    ],
    "Koordinátor": [Permission.MANAGE_EMPLOYEES, Permission.ISSUE_REWARDS],
    "Tréner": [Permission.ISSUE_REWARDS],
}

# 管理者は旧権限名を含むすべての権限を持つ
ADMIN_PERMISSIONS = [
    Permission.MANAGE_EMPLOYEES,
    Permission.ISSUE_REWARDS,
    Permission.REDEEM_REWARDS,
    Permission.MANAGE_MANAGERS,
    Permission.ADD_DELETE_MANAGERS,
    Permission.EDIT_MANAGER_PRIVILEGES,
    Permission.CHANGE_MANAGER_PASSWORDS,
]


def parse_permission(value) -> Optional[Permission]:
    try:
        return Permission(value)
    except ValueError:
        return None


def parse_permissions(values: Optional[Iterable]) -> List[Permission]:
    """権限名のリストを変換する。未知の権限名は警告を出して無視する"""
    if isinstance(values, str):
        values = [values]
    result = []
    for value in values or []:
        permission = parse_permission(value)
        if permission is None:
            logger.warning("Ignoring unknown permission: %r", value)
            continue
        result.append(permission)
    return result


def effective_permissions(role: str, permissions: Optional[Iterable] = None) -> List[Permission]:
    """明示的な権限が空ならロールのデフォルト権限を返す"""
    granted = parse_permissions(permissions)
    if granted:
        return granted
    return list(ROLE_PERMISSIONS.get(role, []))


def permission_granted(granted: Iterable, permission, is_admin: bool = False) -> bool:
    if is_admin:
        return True
    permission = parse_permission(permission)
    if permission is None:
        return False
    granted = {p for p in map(parse_permission, granted) if p is not None}
    if permission in LEGACY_MANAGER_PERMISSIONS and Permission.MANAGE_MANAGERS in granted:
        return True
    return permission in granted
