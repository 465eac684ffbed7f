"""
テスト共通設定

app をインポートする前に環境変数を設定する（インメモリSQLite・同期監査ログ）。
"""

import os

os.environ["DEBUG"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUDIT_LOG_ASYNC"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key-for-pytest-only-0123456789"
os.environ["ADMIN_PASSWORD"] = "EsztergomiSavinko"

from datetime import datetime, timedelta, timezone

import pytest

from app.database import Base, engine
from app.dependencies import reset_services
from app.models.audit_log import AuditLog  # noqa: F401
from app.models.record import Record, RecordSetMember  # noqa: F401
from app.services.approval_policy import ApprovalPolicy
from app.services.card_service import CardService
from app.services.employee_service import EmployeeService
from app.services.manager_service import ManagerService
from app.services.record_store import RecordStore
from app.utils.rate_limiter import api_limiter, login_limiter

ADMIN_PASSWORD = "EsztergomiSavinko"
MANAGER_PASSWORD = "Jelszo1234"


class FakeClock:
    """datetime を返す時計。advance() で進める"""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeSeconds:
    """time.time の代わり（秒の浮動小数）"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeTimer:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """timer_factory の代わり。作成されたタイマーを記録する"""

    def __init__(self):
        self.created = []

    def __call__(self, interval, callback):
        timer = FakeTimer(interval, callback)
        self.created.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.created if not t.cancelled]

    def fire(self):
        for timer in self.active:
            timer.callback()


def fake_qr(payload: str) -> str:
    return f"qr:{payload}"


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_services()
    login_limiter.reset()
    api_limiter.reset()
    yield
    reset_services()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seconds():
    return FakeSeconds()


@pytest.fixture
def timers():
    return FakeTimers()


@pytest.fixture
def store():
    return RecordStore()


@pytest.fixture
def managers(store, clock):
    return ManagerService(store, clock=clock, qr_encoder=fake_qr)


@pytest.fixture
def employees(store, clock):
    return EmployeeService(store, clock=clock)


@pytest.fixture
def policy(managers):
    return ApprovalPolicy(managers)


@pytest.fixture
def cards(store, employees, policy, clock):
    return CardService(store, employees, policy, clock=clock, qr_encoder=fake_qr)


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from app.main import app

    with TestClient(app) as c:
        yield c
