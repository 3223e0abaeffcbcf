"""JSON API tests through the Flask test client.

Each client keeps its own session cookie. Requests run outside any pushed app
context; database assertions open one explicitly.
"""
import itertools

import pytest

from extensions import db
from models import AuditLog, EmailAuditLog

_emails = itertools.count(1)


def login(app, email, password):
    client = app.test_client()
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return client


def signup(app, role="student", password="password1"):
    client = app.test_client()
    n = next(_emails)
    response = client.post(
        "/auth/signup",
        json={"full_name": f"{role.title()} {n}", "email": f"{role}{n}@campus.edu", "password": password, "role": role},
    )
    assert response.status_code == 201, response.get_json()
    return client, response.get_json()["account"]


def count_rows(app, model, **filters):
    with app.app_context():
        return db.session.query(model).filter_by(**filters).count()


@pytest.fixture
def admin_client(app):
    return login(app, app.config["DEFAULT_ADMIN_EMAIL"], app.config["DEFAULT_ADMIN_PASSWORD"])


@pytest.fixture
def student_client(app):
    client, _ = signup(app)
    return client


def raise_complaint(client, title="Cold food", description="The food served in the mess is always cold"):
    response = client.post("/complaints", json={"title": title, "description": description})
    assert response.status_code == 201, response.get_json()
    return response.get_json()["complaint"]


def test_health_and_security_headers(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


class TestAuth:
    def test_signup_logs_in_and_audits(self, app, student_client):
        me = student_client.get("/auth/me").get_json()["account"]
        assert (me["role"], me["balance"]) == ("student", 100)

        assert count_rows(app, AuditLog, action_type="REGISTER") == 1
        assert count_rows(app, EmailAuditLog, template="registration", delivery_status="SKIPPED") == 1

    def test_signup_rejects_privileged_role(self, client):
        response = client.post(
            "/auth/signup",
            json={"full_name": "Mallory", "email": "mallory@campus.edu", "password": "password1", "role": "admin"},
        )
        assert response.status_code == 400
        assert "role" in response.get_json()["fields"]

    def test_signup_enforces_password_policy(self, client):
        response = client.post(
            "/auth/signup",
            json={"full_name": "Weak", "email": "weak@campus.edu", "password": "abcdefgh"},
        )
        assert response.status_code == 400
        assert "password" in response.get_json()["fields"]

    def test_duplicate_signup(self, client):
        body = {"full_name": "Twin", "email": "twin@campus.edu", "password": "password1"}
        assert client.post("/auth/signup", json=body).status_code == 201
        response = client.application.test_client().post("/auth/signup", json=body)
        assert response.status_code == 400
        assert response.get_json()["error"] == "VALIDATION_ERROR"

    def test_bad_login(self, app, client):
        response = client.post("/auth/login", json={"email": "nobody@campus.edu", "password": "password1"})
        assert response.status_code == 403
        assert response.get_json()["error"] == "UNAUTHORIZED"
        assert count_rows(app, AuditLog, action_type="LOGIN_FAILED") == 1

    def test_form_body_must_be_json(self, client):
        response = client.post("/auth/login", data={"email": "a@campus.edu", "password": "x"})
        assert response.status_code == 415

    def test_login_required(self, client):
        response = client.get("/complaints")
        assert response.status_code == 401
        assert response.get_json()["error"] == "UNAUTHENTICATED"

    def test_logout(self, student_client):
        assert student_client.post("/auth/logout").status_code == 200
        assert student_client.get("/auth/me").status_code == 401


class TestRoles:
    def test_student_cannot_reach_admin_routes(self, app, student_client):
        response = student_client.get("/admin/stats")
        assert response.status_code == 403
        assert count_rows(app, AuditLog, action_type="UNAUTHORIZED_ACCESS") == 1

    def test_admin_cannot_raise_complaints(self, admin_client):
        response = admin_client.post("/complaints", json={"title": "t", "description": "d"})
        assert response.status_code == 403

    def test_admin_stats(self, admin_client, student_client):
        raise_complaint(student_client)
        body = admin_client.get("/admin/stats").get_json()
        assert body["stats"]["awaiting_votes_complaints"] == 1
        assert body["stats"]["total_funds_pool"] == 10
        assert body["leaderboard"] == []


class TestComplaintFlow:
    def test_raise_and_list(self, student_client):
        complaint = raise_complaint(student_client)
        assert (complaint["status"], complaint["category"], complaint["has_voted"]) == ("awaiting_votes", "mess", False)

        listed = student_client.get("/complaints?status=awaiting_votes").get_json()["complaints"]
        assert [c["id"] for c in listed] == [complaint["id"]]
        assert student_client.get("/complaints?mine=1").get_json()["complaints"][0]["id"] == complaint["id"]
        assert student_client.get("/auth/me").get_json()["account"]["balance"] == 90

    def test_missing_fields(self, student_client):
        response = student_client.post("/complaints", json={"title": "No description"})
        assert response.status_code == 400
        assert "description" in response.get_json()["fields"]

    def test_unknown_complaint(self, student_client):
        response = student_client.get("/complaints/does-not-exist")
        assert response.status_code == 404
        assert response.get_json()["error"] == "NOT_FOUND"

    def test_double_vote_conflict(self, student_client):
        complaint_id = raise_complaint(student_client)["id"]

        first = student_client.post(f"/complaints/{complaint_id}/upvote")
        second = student_client.post(f"/complaints/{complaint_id}/upvote")
        assert first.get_json()["upvotes"] == 1
        assert second.status_code == 409
        assert second.get_json()["error"] == "ALREADY_VOTED"
        assert student_client.get(f"/complaints/{complaint_id}").get_json()["complaint"]["has_voted"] is True

    def test_harassment_hidden_from_other_students(self, app, student_client):
        raise_complaint(student_client, "Seniors", "Seniors keep ragging me every night")
        other_client, _ = signup(app)

        assert other_client.get("/complaints").get_json()["complaints"] == []
        assert len(student_client.get("/complaints").get_json()["complaints"]) == 1

    def test_full_lifecycle(self, app, admin_client, student_client):
        complaint_id = raise_complaint(student_client)["id"]
        for _ in range(5):
            voter_client, _ = signup(app)
            assert voter_client.post(f"/complaints/{complaint_id}/upvote").status_code == 200
        assert student_client.get(f"/complaints/{complaint_id}").get_json()["complaint"]["status"] == "pending"

        created = admin_client.post(
            "/admin/vendors",
            json={"full_name": "FixIt Co", "email": "fixit@campus.edu", "password": "fixitpass1"},
        )
        assert created.status_code == 201
        vendor_id = created.get_json()["account"]["id"]
        vendor_client = login(app, "fixit@campus.edu", "fixitpass1")

        assigned = admin_client.post(
            f"/admin/complaints/{complaint_id}/assign-vendor",
            json={"vendor_id": vendor_id, "allocated_amount": 30},
        )
        assert assigned.status_code == 200
        assert assigned.get_json()["complaint"]["status"] == "assigned"

        queue = vendor_client.get("/complaints/vendor-queue").get_json()["complaints"]
        assert [c["id"] for c in queue] == [complaint_id]

        resolved = vendor_client.post(f"/complaints/{complaint_id}/resolve", json={"proof_ref": "photos/after.jpg"})
        assert resolved.get_json()["complaint"]["status"] == "resolved"

        premature = admin_client.post(f"/admin/complaints/{complaint_id}/release")
        assert premature.status_code == 409
        assert premature.get_json()["error"] == "INVALID_TRANSITION"

        assert student_client.post(f"/complaints/{complaint_id}/confirm").status_code == 200
        rated = student_client.post(f"/complaints/{complaint_id}/rate", json={"rating": 4, "comment": "Good"})
        assert rated.get_json()["complaint"]["average_rating"] == 4.0

        released = admin_client.post(f"/admin/complaints/{complaint_id}/release")
        assert released.status_code == 200
        release = released.get_json()["release"]
        assert (release["final_amount"], release["late"], release["reward_points"]) == (30, False, 10)

        again = admin_client.post(f"/admin/complaints/{complaint_id}/release")
        assert again.status_code == 409
        assert again.get_json()["error"] == "ALREADY_RELEASED"

        ledger = admin_client.get(f"/admin/ledger?complaint_id={complaint_id}").get_json()
        assert [entry["kind"] for entry in ledger["entries"]] == ["deposit", "allocation", "payment"]

        performance = vendor_client.get(f"/vendors/{vendor_id}/performance").get_json()["performance"]
        assert (performance["completed_jobs"], performance["reward_points"]) == (1, 10)

        dashboard = vendor_client.get("/dashboard").get_json()
        assert dashboard["account"]["balance"] == 80
        assert dashboard["stats"]["total_earned"] == 30

        assert count_rows(app, EmailAuditLog, template="resolution", complaint_id=complaint_id) == 1

    def test_reject_refunds(self, admin_client, student_client):
        complaint_id = raise_complaint(student_client, "Seniors", "Seniors keep ragging me every night")["id"]

        missing_reason = admin_client.post(f"/admin/complaints/{complaint_id}/reject", json={})
        assert missing_reason.status_code == 400

        rejected = admin_client.post(f"/admin/complaints/{complaint_id}/reject", json={"reason": "Handled offline"})
        assert rejected.get_json()["complaint"]["status"] == "rejected"
        assert student_client.get("/auth/me").get_json()["account"]["balance"] == 100


def test_cli_ledger_reconcile_and_seed(app, confirmed_complaint, engine, admin):
    engine.release_funds(confirmed_complaint, admin.id)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["ledger-reconcile"])
    assert result.exit_code == 0
    assert "ledger consistent" in result.output

    first = runner.invoke(args=["seed-demo"])
    second = runner.invoke(args=["seed-demo"])
    assert first.output.count("created") == 3
    assert second.output.count("exists") == 3
