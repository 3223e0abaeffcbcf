"""Vendor performance: reputation deltas, reward points, badges and derived job metrics."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from models import Account, Complaint, ComplaintRating
from utils.errors import NotFound
from utils.ledger import Ledger
from utils.settings import EngineSettings

logger = logging.getLogger(__name__)

REPUTATION_FLOOR = 0
REPUTATION_CEILING = 100
STARTING_REPUTATION = 100

SILVER_STAR = "Silver Star"
GOLD_STAR = "Gold Star"


def rating_delta(rating: int) -> int:
    if rating >= 4:
        return 5
    if rating == 3:
        return 0
    return -5


def _clamp(score: int) -> int:
    return max(REPUTATION_FLOOR, min(REPUTATION_CEILING, score))


class PerformanceEngine:
    def __init__(self, session, ledger: Ledger, settings: Optional[EngineSettings] = None) -> None:
        self.session = session
        self.ledger = ledger
        self.settings = settings or EngineSettings()

    def _vendor(self, vendor_id: str) -> Account:
        vendor = self.session.get(Account, vendor_id)
        if vendor is None or vendor.role != "vendor":
            raise NotFound("Vendor not found", vendor_id=vendor_id)
        return vendor

    def _adjust_reputation(self, vendor: Account, delta: int, reason: str) -> int:
        """Move the score by ``delta`` within the bounds and return the change actually made."""
        current = vendor.reputation_score if vendor.reputation_score is not None else STARTING_REPUTATION
        vendor.reputation_score = _clamp(current + delta)
        logger.info(
            "Vendor reputation adjusted",
            extra={"vendor_id": vendor.id, "delta": delta, "score": vendor.reputation_score, "reason": reason},
        )
        return vendor.reputation_score - current

    def apply_rating(self, vendor: Account, rating: int, reverse_delta: int = 0) -> int:
        """Apply the delta for ``rating`` and return what was applied.

        ``reverse_delta`` is the change a replaced rating actually made; it is
        undone first so a re-rate never moves the score by more than one rating.
        """
        if reverse_delta:
            self._adjust_reputation(vendor, -reverse_delta, "rating_replaced")
        return self._adjust_reputation(vendor, rating_delta(rating), "rating")

    def apply_late_penalty(self, vendor: Account) -> int:
        self._adjust_reputation(vendor, -self.settings.late_reputation_penalty, "late_completion")
        return vendor.reputation_score

    def grant_reward_points(self, vendor: Account, points: int, description: str = "") -> List[str]:
        """Credit reward points, record the grant on the ledger, and return newly earned badges."""
        vendor.reward_points = (vendor.reward_points or 0) + points
        self.ledger.append(
            "reward",
            points,
            "system",
            vendor.id,
            description=description or "Reward points for on-time resolution",
        )
        earned = self._evaluate_badges(vendor)
        logger.info(
            "Reward points granted",
            extra={"vendor_id": vendor.id, "points": points, "total_points": vendor.reward_points, "badges": earned},
        )
        return earned

    def _evaluate_badges(self, vendor: Account) -> List[str]:
        badges = list(vendor.badges or [])
        earned: List[str] = []
        points = vendor.reward_points or 0
        for threshold, badge in (
            (self.settings.silver_star_points, SILVER_STAR),
            (self.settings.gold_star_points, GOLD_STAR),
        ):
            if points >= threshold and badge not in badges:
                badges.append(badge)
                earned.append(badge)
        if earned:
            # Reassign so the JSON column is marked dirty.
            vendor.badges = badges
        return earned

    def vendor_performance(self, vendor_id: str) -> Dict:
        vendor = self._vendor(vendor_id)
        complaints = self.session.query(Complaint).filter(Complaint.assigned_vendor_id == vendor.id).all()
        completed = [c for c in complaints if c.status == "confirmed"]
        on_time = [
            c
            for c in completed
            if c.completed_at is not None and c.resolution_deadline is not None and c.completed_at <= c.resolution_deadline
        ]
        ratings = (
            self.session.query(ComplaintRating.rating)
            .join(Complaint, Complaint.id == ComplaintRating.complaint_id)
            .filter(Complaint.assigned_vendor_id == vendor.id)
            .all()
        )
        values = [row[0] for row in ratings]
        average_rating = round(sum(values) / len(values), 2) if values else 0.0
        on_time_rate = round(len(on_time) / len(completed) * 100) if completed else 0
        return {
            "vendor_id": vendor.id,
            "vendor_name": vendor.full_name,
            "score": vendor.reputation_score if vendor.reputation_score is not None else STARTING_REPUTATION,
            "completed_jobs": len(completed),
            "on_time_rate": on_time_rate,
            "average_rating": average_rating,
            "rating_count": len(values),
            "reward_points": vendor.reward_points or 0,
            "badges": list(vendor.badges or []),
            "active_jobs": sum(1 for c in complaints if c.status in {"assigned", "in_progress", "resolved"}),
        }

    def leaderboard(self, limit: int = 20) -> List[Dict]:
        vendors = (
            self.session.query(Account)
            .filter(Account.role == "vendor", Account.is_active.is_(True))
            .order_by(Account.reputation_score.desc(), Account.reward_points.desc(), Account.full_name)
            .limit(limit)
            .all()
        )
        return [self.vendor_performance(vendor.id) for vendor in vendors]
