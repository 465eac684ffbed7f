from unittest.mock import Mock

import pytest
import requests

from app.exceptions import UpstreamUnavailable
from app.schemas import ManagerCreate, ManagerRole
from app.services.manager_directory import HttpManagerDirectory, LocalManagerDirectory
from app.utils.permissions import Permission


def _response(status_code, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


class TestHttpManagerDirectory:
    def test_exists(self):
        http = Mock()
        http.get.return_value = _response(200, {"id": "m1"})
        directory = HttpManagerDirectory("http://kiosk-api/", session=http)

        assert directory.exists("m1") is True
        http.get.assert_called_once_with("http://kiosk-api/api/auth/identity/m1", timeout=5.0)

    def test_deleted_manager(self):
        http = Mock()
        http.get.return_value = _response(404)
        assert HttpManagerDirectory("http://kiosk-api", session=http).exists("gone") is False

    def test_admin_needs_no_request(self):
        http = Mock()
        assert HttpManagerDirectory("http://kiosk-api", session=http).exists("admin") is True
        http.get.assert_not_called()

    def test_connection_error(self):
        http = Mock()
        http.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(UpstreamUnavailable):
            HttpManagerDirectory("http://kiosk-api", session=http).exists("m1")

    def test_server_error(self):
        http = Mock()
        http.post.return_value = _response(503)
        with pytest.raises(UpstreamUnavailable):
            HttpManagerDirectory("http://kiosk-api", session=http).authenticate("m1", "Jelszo1234")

    def test_authenticate(self):
        http = Mock()
        http.post.return_value = _response(200, {
            "success": True,
            "manager": {"id": "m1", "name": "Nagy Béla", "role": "Koordinátor", "permissions": []},
        })

        identity = HttpManagerDirectory("http://kiosk-api", session=http).authenticate("m1", "Jelszo1234")

        assert identity.name == "Nagy Béla"
        assert identity.permissions == [Permission.MANAGE_EMPLOYEES, Permission.ISSUE_REWARDS]

    def test_wrong_password(self):
        http = Mock()
        http.post.return_value = _response(401, {"detail": "Érvénytelen jelszó"})
        assert HttpManagerDirectory("http://kiosk-api", session=http).authenticate("m1", "x") is None

    def test_lookup(self):
        http = Mock()
        http.get.return_value = _response(200, {"id": "m1", "name": "Nagy Béla", "role": "Műszakvezető", "permissions": []})

        identity = HttpManagerDirectory("http://kiosk-api", session=http).lookup("m1")

        assert identity.name == "Nagy Béla"
        assert Permission.MANAGE_MANAGERS in identity.permissions

    def test_lookup_missing(self):
        http = Mock()
        http.get.return_value = _response(404)
        assert HttpManagerDirectory("http://kiosk-api", session=http).lookup("gone") is None

    def test_lookup_never_returns_admin(self):
        http = Mock()
        assert HttpManagerDirectory("http://kiosk-api", session=http).lookup("admin") is None
        http.get.assert_not_called()


class TestLocalManagerDirectory:
    def test_authenticate_uses_role_defaults(self, managers):
        manager = managers.create_manager(ManagerCreate(
            name="Tóth Éva", position="Tréner", role=ManagerRole.TRAINER, password="Jelszo1234",
        ))
        directory = LocalManagerDirectory(managers)

        identity = directory.authenticate(manager.id, "Jelszo1234")

        assert identity.role == "Tréner"
        assert identity.permissions == [Permission.ISSUE_REWARDS]
        assert directory.exists(manager.id)
        assert directory.exists("admin")
        assert not directory.exists("gone")
