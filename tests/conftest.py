"""Shared fixtures: an in-memory app per test, a hand-driven clock and account factories."""
import itertools

import pytest

from app import create_app
from extensions import db
from models import Account

HOUR_MS = 60 * 60 * 1000
START_MS = 1_700_000_000_000


class ManualClock:
    """Epoch-millisecond clock that only moves when a test advances it."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, hours: int = 0) -> int:
        self.now += ms + hours * HOUR_MS
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def app(clock):
    app = create_app("testing", clock=clock)
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    """Engine tests run inside one app context; HTTP tests must not, or requests would share `g`."""
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def engine(app_ctx):
    return app_ctx.extensions["grievance_engine"]


@pytest.fixture
def admin(app_ctx):
    return db.session.query(Account).filter_by(email=app_ctx.config["DEFAULT_ADMIN_EMAIL"]).one()


@pytest.fixture
def make_account(engine):
    counter = itertools.count(1)

    def factory(role: str = "student", name: str | None = None) -> Account:
        n = next(counter)
        email = f"{role}{n}@campus.edu"
        full_name = name or f"{role.title()} {n}"
        if role in {"student", "vendor"}:
            return engine.directory.signup(email, "password1", full_name, role)
        return engine.directory.provision(email, full_name, role, password="password1")

    return factory


@pytest.fixture
def student(make_account):
    return make_account("student", name="Asha Student")


@pytest.fixture
def vendor(make_account):
    return make_account("vendor", name="Vikram Vendor")


@pytest.fixture
def voters(make_account):
    return [make_account("student") for _ in range(5)]


@pytest.fixture
def raise_mess(engine, student):
    def _raise(author=None, title="Cold food", description="The food served in the mess is always cold"):
        return engine.raise_complaint((author or student).id, title, description, location="Hostel A")

    return _raise


@pytest.fixture
def pending_complaint(engine, raise_mess, voters):
    """A mess complaint that has cleared the community vote gate."""
    complaint_id = raise_mess()
    for voter in voters:
        engine.upvote(complaint_id, voter.id)
    return complaint_id


@pytest.fixture
def assigned_complaint(engine, pending_complaint, vendor, admin):
    engine.assign_vendor(pending_complaint, vendor.id, 50, admin_id=admin.id)
    return pending_complaint


@pytest.fixture
def confirmed_complaint(engine, assigned_complaint, vendor, student):
    engine.resolve_complaint(assigned_complaint, vendor.id, "photos/fixed-heater.jpg")
    engine.confirm_resolution(assigned_complaint, student.id)
    return assigned_complaint
