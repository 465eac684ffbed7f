"""API（FastAPI TestClient）"""

import pytest

from app.dependencies import get_manager_service, get_session_registry
from app.main import app
from app.services.manager_directory import LocalManagerDirectory
from app.services.session_registry import SessionRegistry

ADMIN_PASSWORD = "EsztergomiSavinko"


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def registry(seconds):
    registry = SessionRegistry(LocalManagerDirectory(get_manager_service()), clock=seconds)
    app.dependency_overrides[get_session_registry] = lambda: registry
    yield registry
    app.dependency_overrides.clear()


@pytest.fixture
def admin_token(client, registry):
    response = client.post("/api/auth/admin-login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
def employee_id(client, admin_token):
    response = client.post(
        "/api/employees",
        json={"name": "Kiss Anna", "position": "Pultos", "employment_type": "full-time"},
        headers=auth(admin_token),
    )
    assert response.status_code == 200
    return response.json()["employee"]["id"]


def create_manager(client, admin_token, name, role, password=None):
    payload = {"name": name, "position": role, "role": role}
    if password:
        payload["password"] = password
    response = client.post("/api/managers", json=payload, headers=auth(admin_token))
    assert response.status_code == 200
    return response.json()["manager"]


def card_login(client, manager_id):
    response = client.post("/api/auth/login-by-card", json={"qr_text": manager_id})
    assert response.status_code == 200
    return response.json()["access_token"]


class TestAuth:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_requires_token(self, client, registry):
        assert client.get("/api/employees").status_code in (401, 403)

    def test_invalid_token(self, client, registry):
        assert client.get("/api/employees", headers=auth("not-a-token")).status_code == 401

    def test_wrong_admin_password(self, client, registry):
        assert client.post("/api/auth/admin-login", json={"password": "admin123"}).status_code == 401

    def test_admin_via_login_endpoint(self, client, registry):
        response = client.post("/api/auth/login", json={"manager_id": "admin", "password": ADMIN_PASSWORD})
        assert response.status_code == 200
        assert response.json()["session"]["is_admin"] is True

    def test_password_login(self, client, admin_token):
        manager = create_manager(client, admin_token, "Nagy Béla", "Műszakvezető", password="Jelszo1234")

        response = client.post("/api/auth/login", json={"manager_id": manager["id"], "password": "Jelszo1234"})

        assert response.status_code == 200
        session = response.json()["session"]
        assert session["identity"]["name"] == "Nagy Béla"
        assert "manage_managers" in session["identity"]["permissions"]

    def test_login_rate_limit(self, client, registry):
        for _ in range(5):
            client.post("/api/auth/login", json={"manager_id": "x", "password": "rossz"})
        response = client.post("/api/auth/login", json={"manager_id": "x", "password": "rossz"})
        assert response.status_code == 429

    def test_deleted_manager_card_rejected(self, client, admin_token):
        manager = create_manager(client, admin_token, "Tóth Éva", "Tréner")
        client.delete(f"/api/managers/{manager['id']}", headers=auth(admin_token))

        response = client.post("/api/auth/login-by-card", json={"qr_text": manager["id"]})
        assert response.status_code == 401

    def test_logout(self, client, admin_token):
        assert client.post("/api/auth/logout", headers=auth(admin_token)).status_code == 200
        assert client.get("/api/auth/session", headers=auth(admin_token)).status_code == 401

    def test_session_expires_after_inactivity(self, client, admin_token, seconds):
        seconds.advance(170)
        response = client.post("/api/auth/activity", json={"signal": "keydown"}, headers=auth(admin_token))
        assert response.json() == {"accepted": True, "remaining_seconds": 180}

        seconds.advance(180)
        assert client.get("/api/auth/session", headers=auth(admin_token)).status_code == 401

    def test_reading_session_does_not_extend_it(self, client, admin_token, seconds):
        seconds.advance(100)
        response = client.get("/api/auth/session", headers=auth(admin_token))
        assert response.status_code == 200
        assert response.json()["remaining_seconds"] == 80

        seconds.advance(100)
        assert client.get("/api/auth/session", headers=auth(admin_token)).status_code == 401

    def test_unknown_activity_signal_does_not_extend_session(self, client, admin_token, seconds):
        seconds.advance(100)
        response = client.post("/api/auth/activity", json={"signal": "mousemove"}, headers=auth(admin_token))
        assert response.json() == {"accepted": False, "remaining_seconds": 80}

        seconds.advance(100)
        assert client.get("/api/auth/session", headers=auth(admin_token)).status_code == 401

    def test_identity_lookup(self, client, admin_token):
        manager = create_manager(client, admin_token, "Tóth Éva", "Tréner")
        found = client.get(f"/api/auth/identity/{manager['id']}")
        assert found.status_code == 200
        assert found.json()["role"] == "Tréner"
        assert client.get("/api/auth/identity/unknown").status_code == 404


class TestRewardFlow:
    def test_issue_and_redeem_with_shift_leader(self, client, admin_token, employee_id):
        leader = create_manager(client, admin_token, "Nagy Béla", "Műszakvezető")
        trainer = create_manager(client, admin_token, "Tóth Éva", "Tréner")
        trainer_token = card_login(client, trainer["id"])

        issued = client.post(
            "/api/rewards/issue",
            json={"employee_id": employee_id, "card_type": "basic"},
            headers=auth(trainer_token),
        )
        assert issued.status_code == 200
        card = issued.json()["card"]
        assert card["status"] == "active"
        assert card["approved_by"] == trainer["id"]

        # Tréner のカードでは引き換えられない
        denied = client.post(
            "/api/rewards/redeem",
            json={"card_id": card["id"], "approver_id": trainer["id"]},
            headers=auth(trainer_token),
        )
        assert denied.status_code == 403

        redeemed = client.post(
            "/api/rewards/redeem",
            json={"card_id": card["id"], "approver_id": leader["id"]},
            headers=auth(trainer_token),
        )
        assert redeemed.status_code == 200
        assert redeemed.json()["card"]["approver_role"] == "Műszakvezető"

        again = client.post(
            "/api/rewards/redeem",
            json={"card_id": card["id"], "approver_id": leader["id"]},
            headers=auth(trainer_token),
        )
        assert again.status_code == 409

    def test_gold_needs_approver_for_non_admin(self, client, admin_token, employee_id):
        coordinator = create_manager(client, admin_token, "Kovács Réka", "Koordinátor")
        token = card_login(client, coordinator["id"])

        response = client.post(
            "/api/rewards/issue",
            json={"employee_id": employee_id, "card_type": "gold"},
            headers=auth(token),
        )
        assert response.status_code == 403

    def test_admin_issues_and_redeems_directly(self, client, admin_token, employee_id):
        issued = client.post(
            "/api/rewards/issue",
            json={"employee_id": employee_id, "card_type": "platinum", "card_id": "plat0001"},
            headers=auth(admin_token),
        )
        assert issued.json()["card"]["points"] == 3

        redeemed = client.post("/api/rewards/redeem", json={"card_id": "plat0001"}, headers=auth(admin_token))
        assert redeemed.status_code == 200
        assert redeemed.json()["card"]["approved_by"] == "admin"

        listed = client.get("/api/rewards", params={"status": "redeemed"}, headers=auth(admin_token))
        assert [c["id"] for c in listed.json()["data"]] == ["plat0001"]

    def test_redeem_without_approver_requires_admin(self, client, admin_token, employee_id):
        leader = create_manager(client, admin_token, "Nagy Béla", "Műszakvezető")
        token = card_login(client, leader["id"])
        card = client.post(
            "/api/rewards/issue", json={"employee_id": employee_id, "card_type": "basic"}, headers=auth(token),
        ).json()["card"]

        response = client.post("/api/rewards/redeem", json={"card_id": card["id"]}, headers=auth(token))
        assert response.status_code == 400

    def test_locked_employee(self, client, admin_token, employee_id):
        client.put(
            f"/api/employees/{employee_id}",
            json={"is_locked": True, "lock_reason": "Késések"},
            headers=auth(admin_token),
        )
        response = client.post(
            "/api/rewards/issue",
            json={"employee_id": employee_id, "card_type": "basic"},
            headers=auth(admin_token),
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    def test_scan_lookup(self, client, admin_token, employee_id):
        client.post(
            "/api/rewards/issue",
            json={"employee_id": employee_id, "card_type": "basic", "card_id": "scan0001"},
            headers=auth(admin_token),
        )
        response = client.post("/api/rewards/scan", json={"text": '{"id": "scan0001"}'}, headers=auth(admin_token))
        assert response.json()["id"] == "scan0001"

        assert client.post("/api/rewards/scan", json={"text": "nincs"}, headers=auth(admin_token)).status_code == 404

    def test_delete_employee_cascades(self, client, admin_token, employee_id):
        client.post(
            "/api/rewards/issue",
            json={"employee_id": employee_id, "card_type": "basic", "card_id": "cascade1"},
            headers=auth(admin_token),
        )
        detail = client.get(f"/api/employees/{employee_id}", headers=auth(admin_token)).json()
        assert [c["id"] for c in detail["cards"]] == ["cascade1"]

        assert client.delete(f"/api/employees/{employee_id}", headers=auth(admin_token)).status_code == 200
        assert client.get("/api/rewards/cascade1", headers=auth(admin_token)).status_code == 404


class TestPermissionGating:
    def test_trainer_cannot_manage_employees(self, client, admin_token):
        trainer = create_manager(client, admin_token, "Tóth Éva", "Tréner")
        token = card_login(client, trainer["id"])

        response = client.post(
            "/api/employees",
            json={"name": "Új Dolgozó", "position": "Pultos", "employment_type": "student"},
            headers=auth(token),
        )
        assert response.status_code == 403
        assert client.get("/api/managers", headers=auth(token)).status_code == 403

    def test_shift_leader_manages_managers_via_legacy_names(self, client, admin_token):
        leader = create_manager(client, admin_token, "Nagy Béla", "Műszakvezető")
        token = card_login(client, leader["id"])

        created = client.post(
            "/api/managers",
            json={"name": "Tóth Éva", "position": "Tréner", "role": "Tréner"},
            headers=auth(token),
        )
        assert created.status_code == 200
        assert created.json()["manager"]["has_password"] is False

    def test_manager_update_regenerates_qr(self, client, admin_token):
        manager = create_manager(client, admin_token, "Tóth Éva", "Tréner")

        response = client.put(
            f"/api/managers/{manager['id']}",
            json={"name": "Tóth Éva", "position": "Koordinátor", "role": "Koordinátor",
                  "permissions": ["manage_employees"], "change_password": True, "password": "Ujjelszo99"},
            headers=auth(admin_token),
        )
        assert response.status_code == 200
        updated = response.json()["manager"]
        assert updated["qr_code"] != manager["qr_code"]
        assert updated["has_password"] is True
        assert "password_hash" not in updated

    def test_manager_changes_own_password(self, client, admin_token):
        trainer = create_manager(client, admin_token, "Tóth Éva", "Tréner")
        token = card_login(client, trainer["id"])

        own = client.put(f"/api/managers/{trainer['id']}/password", json={"password": "Sajat1234"}, headers=auth(token))
        assert own.status_code == 200

        other = client.put("/api/managers/other/password", json={"password": "Sajat1234"}, headers=auth(token))
        assert other.status_code == 403

    def test_weak_password_rejected(self, client, admin_token):
        response = client.post(
            "/api/managers",
            json={"name": "Tóth Éva", "position": "Tréner", "role": "Tréner", "password": "rovid"},
            headers=auth(admin_token),
        )
        assert response.status_code == 422

    def test_audit_logs_admin_only(self, client, admin_token):
        trainer = create_manager(client, admin_token, "Tóth Éva", "Tréner")
        token = card_login(client, trainer["id"])
        assert client.get("/api/admin/audit-logs", headers=auth(token)).status_code == 403

        logs = client.get("/api/admin/audit-logs", headers=auth(admin_token)).json()["logs"]
        assert "login_success" in {log["event_type"] for log in logs}
        assert "manager_created" in {log["event_type"] for log in logs}
