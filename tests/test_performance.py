"""Vendor performance: reward points, badge thresholds and derived job metrics."""
import pytest

from extensions import db
from models import LedgerEntry
from utils.errors import NotFound
from utils.performance import GOLD_STAR, SILVER_STAR, rating_delta


@pytest.fixture
def performance(engine):
    return engine.performance


@pytest.mark.parametrize("rating, delta", [(5, 5), (4, 5), (3, 0), (2, -5), (1, -5)])
def test_rating_delta(rating, delta):
    assert rating_delta(rating) == delta


class TestBadges:
    def test_silver_then_gold(self, performance, vendor):
        assert performance.grant_reward_points(vendor, 40) == []
        assert performance.grant_reward_points(vendor, 10) == [SILVER_STAR]
        assert performance.grant_reward_points(vendor, 49) == []
        assert performance.grant_reward_points(vendor, 1) == [GOLD_STAR]
        db.session.commit()

        db.session.expire_all()
        assert vendor.reward_points == 100
        assert vendor.badges == [SILVER_STAR, GOLD_STAR]

    def test_single_large_grant_earns_both(self, performance, vendor):
        assert performance.grant_reward_points(vendor, 120) == [SILVER_STAR, GOLD_STAR]

    def test_badges_are_never_revoked(self, performance, vendor):
        performance.grant_reward_points(vendor, 60)
        vendor.reward_points = 0
        assert performance.grant_reward_points(vendor, 5) == []
        assert vendor.badges == [SILVER_STAR]

    def test_grant_is_recorded_without_moving_balance(self, performance, vendor):
        performance.grant_reward_points(vendor, 10, "Monthly bonus")
        db.session.commit()

        entries = db.session.query(LedgerEntry).filter_by(kind="reward").all()
        assert [(e.source, e.destination, e.amount, e.description) for e in entries] == [
            ("system", vendor.id, 10, "Monthly bonus")
        ]
        assert performance.ledger.balance_of(vendor.id) == 50


class TestVendorPerformance:
    def test_new_vendor(self, performance, vendor):
        stats = performance.vendor_performance(vendor.id)

        assert stats["score"] == 100
        assert stats["completed_jobs"] == 0
        assert stats["on_time_rate"] == 0
        assert stats["average_rating"] == 0.0
        assert stats["badges"] == []
        assert stats["reward_points"] == 0

    def test_mixed_on_time_and_late_jobs(self, engine, performance, make_account, vendor, student, admin, clock):
        def run_job(late):
            voters = [make_account("student") for _ in range(5)]
            complaint_id = engine.raise_complaint(student.id, "Cold food", "The mess food is cold")
            for voter in voters:
                engine.upvote(complaint_id, voter.id)
            complaint = engine.assign_vendor(complaint_id, vendor.id, 20, admin_id=admin.id)
            clock.now = complaint.resolution_deadline + (1 if late else -1)
            engine.resolve_complaint(complaint_id, vendor.id, "proof")
            engine.confirm_resolution(complaint_id, student.id)
            return complaint_id

        on_time = run_job(late=False)
        late = run_job(late=True)
        engine.rate_resolution(on_time, student.id, 5)
        engine.rate_resolution(late, student.id, 2)

        stats = performance.vendor_performance(vendor.id)
        assert stats["completed_jobs"] == 2
        assert stats["on_time_rate"] == 50
        assert stats["average_rating"] == 3.5
        assert stats["rating_count"] == 2
        assert stats["active_jobs"] == 0

    def test_active_jobs_are_not_completed(self, performance, assigned_complaint, vendor):
        stats = performance.vendor_performance(vendor.id)
        assert stats["completed_jobs"] == 0
        assert stats["active_jobs"] == 1

    def test_unknown_vendor(self, performance, student):
        with pytest.raises(NotFound):
            performance.vendor_performance(student.id)

    def test_leaderboard_orders_by_score(self, performance, make_account):
        strong = make_account("vendor", name="Strong")
        weak = make_account("vendor", name="Weak")
        weak.reputation_score = 40
        db.session.commit()

        assert [row["vendor_id"] for row in performance.leaderboard()] == [strong.id, weak.id]
