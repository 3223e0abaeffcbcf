"""Account directory: registration rules, provisioning, authentication and soft-disable."""
import pytest

from utils.errors import NotFound, Unauthorized, ValidationError


@pytest.fixture
def directory(engine):
    return engine.directory


def test_signup_sets_role_balance(directory):
    student = directory.signup("Priya@Campus.edu", "password1", "Priya", "student")
    vendor = directory.signup("fixit@campus.edu", "password1", "FixIt Co", "vendor")

    assert student.email == "priya@campus.edu"
    assert (student.balance, student.opening_balance) == (100, 100)
    assert student.reputation_score is None
    assert (vendor.balance, vendor.reputation_score, vendor.badges) == (50, 100, [])


@pytest.mark.parametrize("role", ["admin", "counselor"])
def test_privileged_roles_cannot_self_register(directory, role):
    with pytest.raises(Unauthorized):
        directory.signup("someone@campus.edu", "password1", "Someone", role)


def test_duplicate_email_is_rejected(directory, student):
    with pytest.raises(ValidationError):
        directory.signup(student.email.upper(), "password1", "Copy", "student")


def test_provision_uses_default_password(directory):
    counselor = directory.provision("care@campus.edu", "Dr. Care", "counselor")
    assert counselor.check_password("counselor123")
    assert counselor.balance == 0


def test_students_are_not_provisioned(directory):
    with pytest.raises(ValidationError):
        directory.provision("kid@campus.edu", "Kid", "student")


def test_authenticate(directory, student, clock):
    account = directory.authenticate(student.email, "password1")
    assert account.id == student.id
    assert account.last_login_at == clock.now

    with pytest.raises(Unauthorized):
        directory.authenticate(student.email, "wrong-pass1")
    with pytest.raises(Unauthorized):
        directory.authenticate("ghost@campus.edu", "password1")


def test_deactivated_account_is_locked_out(directory, engine, student, vendor, pending_complaint, admin):
    directory.deactivate(vendor.id)

    with pytest.raises(Unauthorized):
        directory.authenticate(vendor.email, "password1")
    with pytest.raises(NotFound):
        directory.require(vendor.id)
    assert vendor not in directory.accounts_by_role("vendor")
    assert vendor in directory.accounts_by_role("vendor", include_inactive=True)
    with pytest.raises(NotFound):
        engine.assign_vendor(pending_complaint, vendor.id, 10, admin_id=admin.id)


def test_require_checks_role(directory, student):
    assert directory.require(student.id, role="student").id == student.id
    with pytest.raises(NotFound):
        directory.require(student.id, role="counselor")


def test_default_admin_is_seeded(directory, admin, app):
    assert admin.role == "admin"
    assert admin.balance == 1000
    assert directory.ensure_default_admin(app.config["DEFAULT_ADMIN_EMAIL"], "ignored").id == admin.id
