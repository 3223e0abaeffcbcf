"""
Complaint lifecycle engine.

Owns every complaint mutation: intake against a deposit, the community up-vote
gate, vendor/counselor assignment, resolution, confirmation, rating, fund
release and rejection. Monetary side effects go through the Ledger and vendor
side effects through the PerformanceEngine.

Each operation is a single unit of work: it runs under the per-complaint (and,
where balances move, per-account) lock, commits once on success and rolls back
on any failure, so a rejected call leaves every row as it was.
"""
from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy import func

from models import (
    COMPLAINT_CATEGORIES,
    COMPLAINT_PRIORITIES,
    Account,
    Complaint,
    ComplaintRating,
    ComplaintStatusHistory,
    ComplaintVote,
    epoch_ms,
)
from utils.classifier import ComplaintClassifier, KeywordClassifier
from utils.directory import Directory
from utils.errors import (
    AlreadyReleased,
    AlreadyVoted,
    GrievanceError,
    InsufficientFunds,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from utils.ledger import Ledger
from utils.performance import PerformanceEngine
from utils.settings import EngineSettings

logger = logging.getLogger(__name__)

# =============================================================================
# STATE MACHINE
# =============================================================================

ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    "awaiting_votes": frozenset({"pending"}),
    "pending": frozenset({"assigned", "rejected"}),
    "assigned": frozenset({"in_progress", "resolved", "rejected"}),
    "in_progress": frozenset({"resolved"}),
    "resolved": frozenset({"confirmed"}),
    "confirmed": frozenset(),
    "rejected": frozenset(),
}

RESOLVABLE_STATUSES = frozenset({"assigned", "in_progress"})
RATEABLE_STATUSES = frozenset({"resolved", "confirmed"})
ACTIVE_WORK_STATUSES = frozenset({"assigned", "in_progress"})


@dataclass
class ReleaseResult:
    complaint_id: str
    vendor_id: str
    payout: int
    final_amount: int
    penalty_amount: int
    late: bool
    reward_points: int = 0
    badges_earned: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "complaint_id": self.complaint_id,
            "vendor_id": self.vendor_id,
            "payout": self.payout,
            "final_amount": self.final_amount,
            "penalty_amount": self.penalty_amount,
            "late": self.late,
            "reward_points": self.reward_points,
            "badges_earned": list(self.badges_earned),
        }


class LockRegistry:
    """Named in-process mutexes; ``hold`` acquires them in the order given.

    A lock lives only while some thread holds or waits on it, so the registry
    stays as small as the set of keys currently in use.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        seen = []
        for key in keys:
            if key and key not in seen:
                seen.append(key)
        with ExitStack() as stack:
            for key in seen:
                lock = self._checkout(key)
                stack.callback(self._checkin, key)
                stack.enter_context(lock)
            yield


def _complaint_key(complaint_id) -> str:
    return f"complaint:{complaint_id}"


def _account_key(account_id) -> str:
    return f"account:{account_id}"


def _require_text(value: Optional[str], label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} is required")
    return cleaned


class LifecycleEngine:
    def __init__(
        self,
        session,
        ledger: Ledger,
        directory: Directory,
        performance: PerformanceEngine,
        classifier: Optional[ComplaintClassifier] = None,
        settings: Optional[EngineSettings] = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.session = session
        self.ledger = ledger
        self.directory = directory
        self.performance = performance
        self.classifier = classifier or KeywordClassifier()
        self.settings = settings or EngineSettings()
        self.clock = clock
        self._locks = LockRegistry()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, operation: str, *lock_keys: str) -> Iterator[None]:
        with self._locks.hold(*lock_keys):
            try:
                yield
                self.session.commit()
            except GrievanceError as exc:
                self.session.rollback()
                logger.warning(
                    "Grievance operation rejected",
                    extra={"operation": operation, "error": exc.code, "detail": exc.message},
                )
                raise
            except Exception:
                self.session.rollback()
                logger.exception("Grievance operation failed", extra={"operation": operation})
                raise

    def _load_complaint(self, complaint_id: str) -> Complaint:
        if not complaint_id:
            raise NotFound("Complaint not found", complaint_id=complaint_id)
        complaint = self.session.get(
            Complaint, str(complaint_id), with_for_update=True, populate_existing=True
        )
        if complaint is None:
            raise NotFound("Complaint not found", complaint_id=complaint_id)
        return complaint

    def _lock_account(self, account_id: str) -> Optional[Account]:
        if not account_id:
            return None
        return self.session.get(Account, str(account_id), with_for_update=True, populate_existing=True)

    def _require_admin(self, admin_id: Optional[str]) -> Account:
        admin = self.directory.account_by_id(admin_id)
        if admin is None or not admin.is_active or admin.role != "admin":
            raise Unauthorized("Administrator access required", account_id=admin_id)
        return admin

    def _require_author(self, complaint: Complaint, student_id: str) -> None:
        if not student_id or complaint.author_id != str(student_id):
            raise Unauthorized("Only the complaint author may do this", complaint_id=complaint.id)

    def _record_history(self, complaint: Complaint, previous: Optional[str], new_status: str,
                        actor_id: Optional[str], remarks: Optional[str]) -> None:
        self.session.add(
            ComplaintStatusHistory(
                complaint_id=complaint.id,
                previous_status=previous,
                new_status=new_status,
                remarks=remarks,
                changed_by=actor_id,
                changed_at=self.clock(),
            )
        )

    def _transition(self, complaint: Complaint, new_status: str, actor_id: Optional[str] = None,
                    remarks: Optional[str] = None) -> None:
        current = complaint.status
        if new_status not in ALLOWED_TRANSITIONS.get(current, frozenset()):
            raise InvalidTransition(
                f"Cannot move complaint from {current} to {new_status}",
                complaint_id=complaint.id,
                status=current,
            )
        self._record_history(complaint, current, new_status, actor_id, remarks)
        complaint.status = new_status

    # ------------------------------------------------------------------
    # intake and voting
    # ------------------------------------------------------------------

    def raise_complaint(
        self,
        author_id: str,
        title: str,
        description: str,
        location: str = "",
        photo_ref: str = "",
        category: Optional[str] = None,
        language: str = "en-US",
        voice_note_ref: Optional[str] = None,
    ) -> str:
        title = _require_text(title, "Title")
        description = _require_text(description, "Description")
        if category is not None and category not in COMPLAINT_CATEGORIES:
            raise ValidationError("Unknown complaint category", category=category)

        with self._unit_of_work("raise_complaint", _account_key(author_id)):
            author = self._lock_account(author_id)
            if author is None or not author.is_active:
                raise NotFound("Account not found", account_id=author_id)
            if author.role != "student":
                raise Unauthorized("Only students can raise complaints", account_id=author.id)
            deposit = self.settings.complaint_deposit
            if author.balance < deposit:
                raise InsufficientFunds(
                    "Insufficient balance for complaint deposit",
                    balance=author.balance,
                    required=deposit,
                )

            final_category = category
            if not final_category or final_category == "other":
                final_category = self.classifier.categorize(title, description)
            if final_category not in COMPLAINT_CATEGORIES:
                raise ValidationError("Classifier returned an unknown category", category=final_category)
            priority = self.classifier.detect_priority(description, final_category)
            if priority not in COMPLAINT_PRIORITIES:
                raise ValidationError("Classifier returned an unknown priority", priority=priority)

            # Harassment bypasses the community vote gate.
            harassment = final_category == "harassment"
            initial_status = "pending" if harassment else "awaiting_votes"
            complaint = Complaint(
                author_id=author.id,
                title=title,
                description=description,
                location=(location or "").strip(),
                photo_ref=photo_ref or None,
                voice_note_ref=voice_note_ref or None,
                language=language or "en-US",
                category=final_category,
                priority=priority,
                is_urgent=priority == "urgent",
                status=initial_status,
                upvote_count=0,
                deposit_amount=deposit,
                needs_counseling=harassment,
                counseling_accepted=False,
                funds_released=False,
                created_at=self.clock(),
            )
            self.session.add(complaint)
            self.session.flush()
            self._record_history(complaint, None, initial_status, author.id, "Complaint raised")
            self.ledger.append(
                "deposit",
                deposit,
                author.id,
                "escrow",
                complaint_id=complaint.id,
                description=f"Complaint deposit: {title}",
            )
            complaint_id = complaint.id

        logger.info(
            "Complaint raised",
            extra={"complaint_id": complaint_id, "category": final_category, "priority": priority, "status": initial_status},
        )
        return complaint_id

    def upvote(self, complaint_id: str, voter_id: str) -> int:
        """Record one vote per voter; crossing the threshold opens the complaint for assignment."""
        with self._unit_of_work("upvote", _complaint_key(complaint_id)):
            complaint = self._load_complaint(complaint_id)
            voter = self.directory.require(voter_id)
            already = (
                self.session.query(ComplaintVote.id)
                .filter_by(complaint_id=complaint.id, voter_id=voter.id)
                .first()
            )
            if already:
                raise AlreadyVoted("You have already upvoted this complaint", complaint_id=complaint.id)

            self.session.add(ComplaintVote(complaint_id=complaint.id, voter_id=voter.id, created_at=self.clock()))
            complaint.upvote_count = (complaint.upvote_count or 0) + 1
            if complaint.status == "awaiting_votes" and complaint.upvote_count >= self.settings.vote_threshold:
                self._transition(complaint, "pending", voter.id, "Community vote threshold reached")
                logger.info("Vote threshold reached", extra={"complaint_id": complaint.id})
            count = complaint.upvote_count
        return count

    # ------------------------------------------------------------------
    # assignment
    # ------------------------------------------------------------------

    def assign_vendor(self, complaint_id: str, vendor_id: str, allocated_amount: int, admin_id: str) -> Complaint:
        if isinstance(allocated_amount, bool) or not isinstance(allocated_amount, int) or allocated_amount < 0:
            raise ValidationError("Allocated amount must be a non-negative integer", amount=allocated_amount)

        with self._unit_of_work("assign_vendor", _complaint_key(complaint_id)):
            self._require_admin(admin_id)
            complaint = self._load_complaint(complaint_id)
            if complaint.status != "pending" or complaint.allocated_amount is not None:
                raise InvalidTransition(
                    "Vendors can only be assigned to pending complaints",
                    complaint_id=complaint.id,
                    status=complaint.status,
                )
            vendor = self.directory.account_by_id(vendor_id)
            if vendor is None or vendor.role != "vendor" or not vendor.is_active:
                raise NotFound("Vendor not found", vendor_id=vendor_id)

            now = self.clock()
            self._transition(complaint, "assigned", admin_id, f"Assigned to {vendor.full_name}")
            complaint.assigned_vendor_id = vendor.id
            complaint.assigned_vendor_name = vendor.full_name
            complaint.allocated_amount = allocated_amount
            complaint.resolution_deadline = now + self.settings.resolution_window_ms
            # Informational only: the vendor balance moves at release time.
            self.ledger.append(
                "allocation",
                allocated_amount,
                "admin",
                vendor.id,
                complaint_id=complaint.id,
                description=f"Vendor assigned with {allocated_amount} allocation",
            )

        logger.info(
            "Vendor assigned",
            extra={"complaint_id": complaint.id, "vendor_id": vendor.id, "allocated_amount": allocated_amount},
        )
        return complaint

    def assign_counselor(self, complaint_id: str, counselor_id: str, admin_id: str) -> Complaint:
        with self._unit_of_work("assign_counselor", _complaint_key(complaint_id)):
            self._require_admin(admin_id)
            complaint = self._load_complaint(complaint_id)
            if not complaint.needs_counseling:
                raise InvalidTransition("Complaint does not need counseling", complaint_id=complaint.id)
            counselor = self.directory.require(counselor_id, role="counselor")
            complaint.assigned_counselor_id = counselor.id
        logger.info("Counselor assigned", extra={"complaint_id": complaint.id, "counselor_id": counselor.id})
        return complaint

    def accept_counseling(self, complaint_id: str, student_id: str) -> Complaint:
        with self._unit_of_work("accept_counseling", _complaint_key(complaint_id)):
            complaint = self._load_complaint(complaint_id)
            self._require_author(complaint, student_id)
            if not complaint.needs_counseling:
                raise InvalidTransition("Complaint does not need counseling", complaint_id=complaint.id)
            complaint.counseling_accepted = True
        return complaint

    # ------------------------------------------------------------------
    # vendor work
    # ------------------------------------------------------------------

    def _require_assigned_vendor(self, complaint: Complaint, vendor_id: str) -> None:
        if not vendor_id or complaint.assigned_vendor_id != str(vendor_id):
            raise Unauthorized("Only the assigned vendor may do this", complaint_id=complaint.id)

    def start_work(self, complaint_id: str, vendor_id: str) -> Complaint:
        with self._unit_of_work("start_work", _complaint_key(complaint_id)):
            complaint = self._load_complaint(complaint_id)
            if complaint.status != "assigned":
                raise InvalidTransition("Work can only start on assigned complaints", status=complaint.status)
            self._require_assigned_vendor(complaint, vendor_id)
            self._transition(complaint, "in_progress", vendor_id, "Vendor started work")
        return complaint

    def resolve_complaint(self, complaint_id: str, vendor_id: str, proof_ref: str) -> Complaint:
        proof_ref = _require_text(proof_ref, "Proof of resolution")
        with self._unit_of_work("resolve_complaint", _complaint_key(complaint_id)):
            complaint = self._load_complaint(complaint_id)
            if complaint.status not in RESOLVABLE_STATUSES:
                raise InvalidTransition(
                    "Only assigned or in-progress complaints can be resolved",
                    complaint_id=complaint.id,
                    status=complaint.status,
                )
            self._require_assigned_vendor(complaint, vendor_id)
            self._transition(complaint, "resolved", vendor_id, "Vendor submitted proof of resolution")
            complaint.proof_ref = proof_ref
            # Lateness is judged against this stamp, never against confirmation or release time.
            complaint.completed_at = self.clock()
        logger.info(
            "Complaint resolved",
            extra={"complaint_id": complaint.id, "vendor_id": vendor_id, "completed_at": complaint.completed_at},
        )
        return complaint

    # ------------------------------------------------------------------
    # student feedback
    # ------------------------------------------------------------------

    def confirm_resolution(self, complaint_id: str, student_id: str) -> Complaint:
        """Student accepts the work. Funds stay in escrow until an admin releases them."""
        with self._unit_of_work("confirm_resolution", _complaint_key(complaint_id)):
            complaint = self._load_complaint(complaint_id)
            if complaint.status != "resolved":
                raise InvalidTransition(
                    "Only resolved complaints can be confirmed",
                    complaint_id=complaint.id,
                    status=complaint.status,
                )
            self._require_author(complaint, student_id)
            self._transition(complaint, "confirmed", student_id, "Resolution confirmed by student")
        return complaint

    def rate_resolution(self, complaint_id: str, student_id: str, rating: int, comment: str = "") -> Complaint:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be an integer between 1 and 5", rating=rating)

        with self._unit_of_work("rate_resolution", _complaint_key(complaint_id)):
            complaint = self._load_complaint(complaint_id)
            if complaint.status not in RATEABLE_STATUSES:
                raise InvalidTransition(
                    "Only resolved or confirmed complaints can be rated",
                    complaint_id=complaint.id,
                    status=complaint.status,
                )
            self._require_author(complaint, student_id)

            existing = (
                self.session.query(ComplaintRating)
                .filter_by(complaint_id=complaint.id, author_id=str(student_id))
                .first()
            )
            now = self.clock()
            if existing:
                row = existing
                row.rating = rating
                row.comment = comment or ""
                row.created_at = now
            else:
                row = ComplaintRating(
                    complaint_id=complaint.id,
                    author_id=str(student_id),
                    rating=rating,
                    applied_delta=0,
                    comment=comment or "",
                    created_at=now,
                )
                self.session.add(row)

            if complaint.assigned_vendor_id:
                with self._locks.hold(_account_key(complaint.assigned_vendor_id)):
                    vendor = self._lock_account(complaint.assigned_vendor_id)
                    if vendor is not None:
                        row.applied_delta = self.performance.apply_rating(
                            vendor, rating, reverse_delta=row.applied_delta or 0
                        )
            self.session.flush()
            average = (
                self.session.query(func.avg(ComplaintRating.rating))
                .filter(ComplaintRating.complaint_id == complaint.id)
                .scalar()
            )
            complaint.average_rating = round(float(average), 2) if average is not None else None
        return complaint

    # ------------------------------------------------------------------
    # money
    # ------------------------------------------------------------------

    def release_funds(self, complaint_id: str, admin_id: str) -> ReleaseResult:
        with self._unit_of_work("release_funds", _complaint_key(complaint_id)):
            self._require_admin(admin_id)
            complaint = self._load_complaint(complaint_id)
            if complaint.funds_released:
                raise AlreadyReleased("Funds were already released", complaint_id=complaint.id)
            if complaint.status != "confirmed":
                raise InvalidTransition(
                    "Funds can only be released for confirmed complaints",
                    complaint_id=complaint.id,
                    status=complaint.status,
                )
            if not complaint.assigned_vendor_id:
                raise InvalidTransition("Complaint has no assigned vendor", complaint_id=complaint.id)

            with self._locks.hold(_account_key(complaint.assigned_vendor_id)):
                vendor = self._lock_account(complaint.assigned_vendor_id)
                if vendor is None:
                    raise NotFound("Vendor not found", vendor_id=complaint.assigned_vendor_id)

                payout = complaint.allocated_amount if complaint.allocated_amount is not None else complaint.deposit_amount
                late = (
                    complaint.completed_at is not None
                    and complaint.resolution_deadline is not None
                    and complaint.completed_at > complaint.resolution_deadline
                )
                result = ReleaseResult(
                    complaint_id=complaint.id,
                    vendor_id=vendor.id,
                    payout=payout,
                    final_amount=payout,
                    penalty_amount=0,
                    late=late,
                )
                if late:
                    result.final_amount = payout * (100 - self.settings.late_penalty_percent) // 100
                    result.penalty_amount = payout - result.final_amount
                    self.ledger.append(
                        "penalty",
                        result.penalty_amount,
                        vendor.id,
                        "system",
                        complaint_id=complaint.id,
                        description="Penalty for late resolution",
                    )
                    self.performance.apply_late_penalty(vendor)
                else:
                    result.reward_points = self.settings.on_time_reward_points
                    result.badges_earned = self.performance.grant_reward_points(vendor, result.reward_points)

                self.ledger.append(
                    "payment",
                    result.final_amount,
                    "escrow",
                    vendor.id,
                    complaint_id=complaint.id,
                    description="Payment released to vendor",
                )
                complaint.funds_released = True

        logger.info(
            "Funds released",
            extra={"complaint_id": result.complaint_id, "vendor_id": result.vendor_id,
                   "final_amount": result.final_amount, "late": result.late},
        )
        return result

    def reject_complaint(self, complaint_id: str, admin_id: str, reason: str) -> Complaint:
        """Close a complaint without resolution and refund the author's deposit from escrow."""
        reason = _require_text(reason, "Rejection reason")
        with self._unit_of_work("reject_complaint", _complaint_key(complaint_id)):
            self._require_admin(admin_id)
            complaint = self._load_complaint(complaint_id)
            self._transition(complaint, "rejected", admin_id, reason)
            complaint.rejection_reason = reason
            with self._locks.hold(_account_key(complaint.author_id)):
                self.ledger.append(
                    "refund",
                    complaint.deposit_amount,
                    "escrow",
                    complaint.author_id,
                    complaint_id=complaint.id,
                    description=f"Deposit refunded: {reason}",
                )
        logger.info("Complaint rejected", extra={"complaint_id": complaint.id, "admin_id": admin_id})
        return complaint

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def get_complaint(self, complaint_id: str) -> Complaint:
        complaint = self.session.get(Complaint, str(complaint_id)) if complaint_id else None
        if complaint is None:
            raise NotFound("Complaint not found", complaint_id=complaint_id)
        return complaint

    def _ranked(self, query):
        return query.order_by(Complaint.upvote_count.desc(), Complaint.created_at.asc())

    def list_complaints(self, status: Optional[str] = None, category: Optional[str] = None,
                        limit: Optional[int] = None) -> List[Complaint]:
        query = self.session.query(Complaint)
        if status:
            query = query.filter(Complaint.status == status)
        if category:
            query = query.filter(Complaint.category == category)
        query = self._ranked(query)
        if limit:
            query = query.limit(limit)
        return query.all()

    def complaints_by_author(self, author_id: str) -> List[Complaint]:
        return (
            self.session.query(Complaint)
            .filter(Complaint.author_id == str(author_id))
            .order_by(Complaint.created_at.desc())
            .all()
        )

    def complaints_for_vendor(self, vendor_id: str) -> List[Complaint]:
        """Jobs assigned to the vendor plus open, non-harassment complaints past the vote gate."""
        open_for_bidding = (
            (Complaint.status == "pending")
            & (Complaint.upvote_count >= self.settings.vote_threshold)
            & (Complaint.category != "harassment")
        )
        query = self.session.query(Complaint).filter(
            (Complaint.assigned_vendor_id == str(vendor_id)) | open_for_bidding
        )
        return self._ranked(query).all()

    def harassment_complaints(self) -> List[Complaint]:
        return (
            self.session.query(Complaint)
            .filter(Complaint.category == "harassment")
            .order_by(Complaint.created_at.desc())
            .all()
        )

    def has_voted(self, complaint_id: str, voter_id: str) -> bool:
        return (
            self.session.query(ComplaintVote.id)
            .filter_by(complaint_id=str(complaint_id), voter_id=str(voter_id))
            .first()
            is not None
        )

    def escrow_outstanding(self) -> int:
        """Deposits still held for complaints that were neither paid out nor refunded."""
        total = (
            self.session.query(func.coalesce(func.sum(Complaint.deposit_amount), 0))
            .filter(Complaint.funds_released.is_(False), Complaint.status != "rejected")
            .scalar()
        )
        return int(total or 0)

    def stats(self, vendor_id: Optional[str] = None) -> dict:
        counts = dict(
            self.session.query(Complaint.status, func.count(Complaint.id)).group_by(Complaint.status).all()
        )
        harassment = self.session.query(func.count(Complaint.id)).filter(Complaint.category == "harassment").scalar()
        urgent = self.session.query(func.count(Complaint.id)).filter(Complaint.is_urgent.is_(True)).scalar()
        total_upvotes = self.session.query(func.coalesce(func.sum(Complaint.upvote_count), 0)).scalar()

        completed = (
            self.session.query(Complaint.created_at, Complaint.completed_at)
            .filter(Complaint.status == "confirmed", Complaint.completed_at.isnot(None))
            .all()
        )
        avg_resolution_hours = 0.0
        if completed:
            total_ms = sum(done - created for created, done in completed)
            avg_resolution_hours = round(total_ms / len(completed) / (1000 * 60 * 60), 2)

        total_earned = 0
        if vendor_id:
            released = (
                self.session.query(Complaint)
                .filter(Complaint.assigned_vendor_id == str(vendor_id), Complaint.funds_released.is_(True))
                .all()
            )
            total_earned = sum(
                c.allocated_amount if c.allocated_amount is not None else c.deposit_amount for c in released
            )

        return {
            "total_complaints": sum(counts.values()),
            "awaiting_votes_complaints": counts.get("awaiting_votes", 0),
            "pending_complaints": counts.get("pending", 0),
            "assigned_complaints": sum(counts.get(s, 0) for s in ACTIVE_WORK_STATUSES),
            "resolved_complaints": counts.get("resolved", 0),
            "confirmed_complaints": counts.get("confirmed", 0),
            "rejected_complaints": counts.get("rejected", 0),
            "harassment_complaints": int(harassment or 0),
            "urgent_complaints": int(urgent or 0),
            "total_funds_pool": self.escrow_outstanding(),
            "escrow_balance": self.ledger.pool_total("escrow"),
            "total_earned": total_earned,
            "total_upvotes": int(total_upvotes or 0),
            "avg_resolution_hours": avg_resolution_hours,
        }


def build_engine(
    session,
    settings: Optional[EngineSettings] = None,
    classifier: Optional[ComplaintClassifier] = None,
    clock: Callable[[], int] = epoch_ms,
) -> LifecycleEngine:
    """Wire a LifecycleEngine with its collaborators sharing one session and clock."""
    settings = settings or EngineSettings()
    ledger = Ledger(session, clock=clock)
    directory = Directory(session, settings=settings, clock=clock)
    performance = PerformanceEngine(session, ledger, settings=settings)
    return LifecycleEngine(
        session,
        ledger=ledger,
        directory=directory,
        performance=performance,
        classifier=classifier,
        settings=settings,
        clock=clock,
    )
