import pytest

from app.exceptions import ApprovalRequired, InsufficientApprovalRole, InvalidIdentity
from app.schemas import CardType, ManagerCreate, ManagerRole
from app.services.approval_policy import ADMIN_APPROVER
from app.utils.permissions import Permission, effective_permissions, permission_granted


class TestApprovalPolicy:
    @pytest.mark.parametrize("role", ["Műszakvezető", "Admin"])
    def test_allowed_redemption_roles(self, policy, role):
        policy.check_redemption_approver(role)

    @pytest.mark.parametrize("role", ["Tréner", "Koordinátor", "", None])
    def test_rejected_redemption_roles(self, policy, role):
        with pytest.raises(InsufficientApprovalRole):
            policy.check_redemption_approver(role)

    def test_basic_needs_no_approver(self, policy):
        assert policy.check_issuance(CardType.BASIC, None) is None

    @pytest.mark.parametrize("card_type", [CardType.GOLD, CardType.PLATINUM])
    def test_premium_cards_need_approver(self, policy, card_type):
        with pytest.raises(ApprovalRequired):
            policy.check_issuance(card_type, None)

    def test_admin_id_is_a_valid_approver(self, policy):
        assert policy.check_issuance(CardType.GOLD, "admin") == ADMIN_APPROVER

    def test_manager_approver_snapshot(self, policy, managers):
        manager = managers.create_manager(ManagerCreate(name="Kovács Réka", position="Koordinátor", role=ManagerRole.COORDINATOR))

        approver = policy.check_issuance(CardType.PLATINUM, manager.id)

        assert approver.id == manager.id
        assert approver.name == "Kovács Réka"
        assert approver.role == "Koordinátor"

    def test_unknown_approver(self, policy):
        with pytest.raises(InvalidIdentity):
            policy.resolve_approver("deleted-manager")


class TestPermissions:
    def test_unknown_role_has_no_defaults(self):
        assert effective_permissions("Vendég") == []

    def test_explicit_permissions_win(self):
        assert effective_permissions("Tréner", ["manage_employees"]) == [Permission.MANAGE_EMPLOYEES]

    def test_legacy_names_need_manage_managers(self):
        assert permission_granted(["manage_managers"], "change_manager_passwords")
        assert not permission_granted(["manage_employees"], "change_manager_passwords")
        assert permission_granted(["add_delete_managers"], "add_delete_managers")

    def test_unknown_names_are_skipped(self):
        assert effective_permissions("Tréner", ["view_reports", "manage_employees"]) == [Permission.MANAGE_EMPLOYEES]
        assert permission_granted(["manage_managers", "view_reports"], "view_reports") is False
        assert permission_granted(["view_reports"], "manage_employees") is False

    def test_admin_flag(self):
        assert permission_granted([], Permission.REDEEM_REWARDS, is_admin=True)
