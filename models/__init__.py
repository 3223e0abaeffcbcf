"""Core data models for accounts, complaints, community votes, ratings and the escrow ledger."""
import time
import uuid

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


def epoch_ms() -> int:
	return int(time.time() * 1000)


ACCOUNT_ROLES: tuple[str, ...] = (
	"student",
	"vendor",
	"counselor",
	"admin",
)

COMPLAINT_CATEGORIES: tuple[str, ...] = (
	"mess",
	"infrastructure",
	"harassment",
	"hygiene",
	"security",
	"academic",
	"other",
)

COMPLAINT_PRIORITIES: tuple[str, ...] = (
	"low",
	"medium",
	"high",
	"urgent",
)

COMPLAINT_STATUSES: tuple[str, ...] = (
	"awaiting_votes",
	"pending",
	"assigned",
	"in_progress",
	"resolved",
	"confirmed",
	"rejected",
)

LEDGER_KINDS: tuple[str, ...] = (
	"deposit",
	"allocation",
	"payment",
	"penalty",
	"reward",
	"refund",
)

LEDGER_POOLS: tuple[str, ...] = (
	"escrow",
	"system",
	"admin",
)

EMAIL_DELIVERY_STATUSES: tuple[str, ...] = (
	"SENT",
	"FAILED",
	"SKIPPED",
)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
	quoted = ",".join(f"'{v}'" for v in values)
	return f"{column} IN ({quoted})"


class Account(UserMixin, db.Model):
	__tablename__ = "accounts"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	full_name = db.Column(db.String(150), nullable=False)
	role = db.Column(db.String(20), nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	balance = db.Column(db.Integer, nullable=False, default=0)
	opening_balance = db.Column(db.Integer, nullable=False, default=0)
	reputation_score = db.Column(db.Integer, nullable=True)
	reward_points = db.Column(db.Integer, nullable=False, default=0)
	badges = db.Column(db.JSON, nullable=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False)
	last_login_at = db.Column(db.BigInteger, nullable=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("role", ACCOUNT_ROLES), name="ck_account_role_valid"),
		db.CheckConstraint(
			"reputation_score IS NULL OR (reputation_score >= 0 AND reputation_score <= 100)",
			name="ck_account_reputation_range",
		),
	)

	authored_complaints = db.relationship(
		"Complaint",
		back_populates="author",
		foreign_keys="Complaint.author_id",
		lazy="dynamic",
	)

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active

	def to_dict(self) -> dict:
		payload = {
			"id": self.id,
			"email": self.email,
			"name": self.full_name,
			"role": self.role,
			"balance": self.balance,
			"reward_points": self.reward_points,
			"is_active": self.is_active,
		}
		if self.role == "vendor":
			payload["reputation_score"] = self.reputation_score
			payload["badges"] = list(self.badges or [])
		return payload


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	account_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.BigInteger, default=epoch_ms, nullable=False, index=True)

	account = db.relationship("Account")


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	author_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False, index=True)
	title = db.Column(db.String(255), nullable=False)
	description = db.Column(db.Text, nullable=False)
	location = db.Column(db.String(255), nullable=True)
	photo_ref = db.Column(db.String(1024), nullable=True)
	voice_note_ref = db.Column(db.String(1024), nullable=True)
	language = db.Column(db.String(16), nullable=False, default="en-US")
	category = db.Column(db.String(20), nullable=False, index=True)
	priority = db.Column(db.String(10), nullable=False, index=True)
	is_urgent = db.Column(db.Boolean, nullable=False, default=False, index=True)
	status = db.Column(db.String(20), nullable=False, index=True)
	upvote_count = db.Column(db.Integer, nullable=False, default=0)
	deposit_amount = db.Column(db.Integer, nullable=False)
	allocated_amount = db.Column(db.Integer, nullable=True)
	assigned_vendor_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=True, index=True)
	assigned_vendor_name = db.Column(db.String(150), nullable=True)
	assigned_counselor_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=True, index=True)
	proof_ref = db.Column(db.String(1024), nullable=True)
	resolution_deadline = db.Column(db.BigInteger, nullable=True)
	completed_at = db.Column(db.BigInteger, nullable=True)
	average_rating = db.Column(db.Float, nullable=True)
	needs_counseling = db.Column(db.Boolean, nullable=False, default=False)
	counseling_accepted = db.Column(db.Boolean, nullable=False, default=False)
	funds_released = db.Column(db.Boolean, nullable=False, default=False)
	rejection_reason = db.Column(db.String(500), nullable=True)
	created_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("category", COMPLAINT_CATEGORIES), name="ck_complaint_category_valid"),
		db.CheckConstraint(_in_clause("priority", COMPLAINT_PRIORITIES), name="ck_complaint_priority_valid"),
		db.CheckConstraint(_in_clause("status", COMPLAINT_STATUSES), name="ck_complaint_status_valid"),
		db.CheckConstraint("deposit_amount >= 0", name="ck_complaint_deposit_positive"),
		db.CheckConstraint(
			"allocated_amount IS NULL OR allocated_amount >= 0",
			name="ck_complaint_allocation_positive",
		),
		db.Index("ix_complaints_status_votes", "status", "upvote_count"),
	)

	author = db.relationship("Account", back_populates="authored_complaints", foreign_keys=[author_id])
	vendor = db.relationship("Account", foreign_keys=[assigned_vendor_id])
	counselor = db.relationship("Account", foreign_keys=[assigned_counselor_id])
	votes = db.relationship(
		"ComplaintVote",
		back_populates="complaint",
		order_by="ComplaintVote.created_at",
	)
	ratings = db.relationship(
		"ComplaintRating",
		back_populates="complaint",
		order_by="ComplaintRating.created_at",
	)
	status_history = db.relationship(
		"ComplaintStatusHistory",
		back_populates="complaint",
		order_by="ComplaintStatusHistory.id",
	)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"author_id": self.author_id,
			"author_name": self.author.full_name if self.author else None,
			"title": self.title,
			"description": self.description,
			"location": self.location,
			"photo_ref": self.photo_ref,
			"voice_note_ref": self.voice_note_ref,
			"language": self.language,
			"category": self.category,
			"priority": self.priority,
			"is_urgent": self.is_urgent,
			"status": self.status,
			"upvotes": self.upvote_count,
			"deposit_amount": self.deposit_amount,
			"allocated_amount": self.allocated_amount,
			"assigned_vendor_id": self.assigned_vendor_id,
			"assigned_vendor_name": self.assigned_vendor_name,
			"assigned_counselor_id": self.assigned_counselor_id,
			"proof_ref": self.proof_ref,
			"resolution_deadline": self.resolution_deadline,
			"completed_at": self.completed_at,
			"ratings": [rating.to_dict() for rating in self.ratings],
			"average_rating": self.average_rating,
			"needs_counseling": self.needs_counseling,
			"counseling_accepted": self.counseling_accepted,
			"funds_released": self.funds_released,
			"rejection_reason": self.rejection_reason,
			"created_at": self.created_at,
		}


class ComplaintVote(db.Model):
	__tablename__ = "complaint_votes"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	voter_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False, index=True)
	created_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False)

	__table_args__ = (
		db.UniqueConstraint("complaint_id", "voter_id", name="uq_complaint_vote"),
	)

	complaint = db.relationship("Complaint", back_populates="votes")
	voter = db.relationship("Account")


class ComplaintRating(db.Model):
	__tablename__ = "complaint_ratings"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	author_id = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=False, index=True)
	rating = db.Column(db.Integer, nullable=False)
	# Reputation change this rating actually made after clamping; reversed on re-rate.
	applied_delta = db.Column(db.Integer, default=0, nullable=False)
	comment = db.Column(db.Text, nullable=True)
	created_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False)

	__table_args__ = (
		db.UniqueConstraint("complaint_id", "author_id", name="uq_complaint_rating_author"),
		db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_complaint_rating_range"),
	)

	complaint = db.relationship("Complaint", back_populates="ratings")

	def to_dict(self) -> dict:
		return {
			"author_id": self.author_id,
			"rating": self.rating,
			"comment": self.comment,
			"timestamp": self.created_at,
		}


class ComplaintStatusHistory(db.Model):
	__tablename__ = "complaint_status_history"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=False, index=True)
	previous_status = db.Column(db.String(20), nullable=True)
	new_status = db.Column(db.String(20), nullable=False, index=True)
	remarks = db.Column(db.String(500), nullable=True)
	changed_by = db.Column(db.String(36), db.ForeignKey("accounts.id"), nullable=True)
	changed_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("new_status", COMPLAINT_STATUSES), name="ck_complaint_status_history_valid"),
	)

	complaint = db.relationship("Complaint", back_populates="status_history")
	actor = db.relationship("Account")


class LedgerEntry(db.Model):
	"""Immutable record of a monetary movement; balances are derived from these rows."""

	__tablename__ = "ledger_entries"

	id = db.Column(db.Integer, primary_key=True)
	kind = db.Column(db.String(20), nullable=False, index=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=True, index=True)
	amount = db.Column(db.Integer, nullable=False)
	source = db.Column(db.String(36), nullable=False, index=True)
	destination = db.Column(db.String(36), nullable=False, index=True)
	description = db.Column(db.String(500), nullable=False, default="")
	created_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("kind", LEDGER_KINDS), name="ck_ledger_kind_valid"),
		db.CheckConstraint("amount >= 0", name="ck_ledger_amount_positive"),
	)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"kind": self.kind,
			"complaint_id": self.complaint_id,
			"amount": self.amount,
			"from": self.source,
			"to": self.destination,
			"timestamp": self.created_at,
			"description": self.description,
		}


class EmailAuditLog(db.Model):
	__tablename__ = "email_audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(36), db.ForeignKey("complaints.id"), nullable=True, index=True)
	template = db.Column(db.String(50), nullable=False)
	recipient_email = db.Column(db.String(255), nullable=False)
	subject = db.Column(db.String(255), nullable=False)
	delivery_status = db.Column(db.String(20), nullable=False, index=True)
	error_message = db.Column(db.String(500), nullable=True)
	sent_at = db.Column(db.BigInteger, default=epoch_ms, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(_in_clause("delivery_status", EMAIL_DELIVERY_STATUSES), name="ck_email_delivery_status"),
	)
