"""キオスク端末のスキャン処理"""

import json

import pytest

import kiosk
from app.exceptions import UpstreamUnavailable
from app.schemas import ManagerCreate, ManagerRole
from app.services.manager_directory import LocalManagerDirectory
from app.services.session_manager import SessionManager
from app.services.session_storage import MemorySessionStorage


class UnavailableDirectory(LocalManagerDirectory):
    def exists(self, manager_id):
        raise UpstreamUnavailable()

    def lookup(self, manager_id):
        raise UpstreamUnavailable()


@pytest.fixture
def manager(managers):
    return managers.create_manager(ManagerCreate(name="Nagy Béla", position="Műszakvezető", role=ManagerRole.SHIFT_LEADER))


@pytest.fixture
def session(managers, seconds, timers):
    return SessionManager(LocalManagerDirectory(managers), storage=MemorySessionStorage(), clock=seconds, timer_factory=timers)


class TestScanLogin:
    def test_bare_id_card(self, session, manager, capsys):
        assert kiosk.handle_line(session, manager.id + "\n") is True

        assert session.logged_in
        assert session.identity.name == "Nagy Béla"
        assert session.identity.role == "Műszakvezető"
        assert "Bejelentkezve: Nagy Béla" in capsys.readouterr().out

    def test_json_card(self, session, manager):
        line = json.dumps({"id": manager.id, "name": "Nagy Béla", "role": "Műszakvezető",
                           "permissions": ["issue_rewards"], "type": "manager"})

        kiosk.handle_line(session, line)

        assert session.logged_in
        assert session.has_permission("issue_rewards")
        assert not session.has_permission("manage_managers")

    def test_json_card_with_unknown_permission(self, session, manager):
        line = json.dumps({"id": manager.id, "name": "Nagy Béla", "role": "Tréner", "permissions": ["view_reports"]})

        assert kiosk.handle_line(session, line) is True
        assert session.has_permission("issue_rewards")

    def test_unknown_bare_id(self, session, capsys):
        kiosk.handle_line(session, "nincs-ilyen")

        assert not session.logged_in
        assert "Érvénytelen vezetői kártya" in capsys.readouterr().out

    def test_bare_id_while_directory_unavailable(self, managers, manager, seconds, timers, capsys):
        session = SessionManager(UnavailableDirectory(managers), clock=seconds, timer_factory=timers)

        kiosk.handle_line(session, manager.id)

        assert not session.logged_in
        assert "Érvénytelen vezetői kártya" in capsys.readouterr().out

    def test_json_card_while_directory_unavailable(self, managers, seconds, timers):
        session = SessionManager(UnavailableDirectory(managers), clock=seconds, timer_factory=timers)

        kiosk.handle_line(session, json.dumps({"id": "m9", "name": "Tóth Éva", "role": "Tréner"}))

        assert session.logged_in


class TestCommands:
    def test_scan_while_logged_in_counts_as_activity(self, session, manager, seconds):
        kiosk.handle_line(session, manager.id)
        seconds.advance(170)

        kiosk.handle_line(session, "abc12345")

        assert session.tick() == pytest.approx(180)

    def test_logout_and_quit(self, session, manager):
        kiosk.handle_line(session, manager.id)

        assert kiosk.handle_line(session, "logout") is True
        assert not session.logged_in
        assert kiosk.handle_line(session, "quit") is False
