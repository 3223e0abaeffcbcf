"""Complaint intake, community voting, vendor resolution and student feedback blueprint."""
from flask import Blueprint, current_app, g, jsonify
from flask_login import current_user, login_required
from wtforms import IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional

from models import COMPLAINT_CATEGORIES, COMPLAINT_STATUSES
from routes.common import ApiForm, get_engine, log_action, parse_form
from utils.decorators import roles_required
from utils.notifications import send_resolution_email

complaints_bp = Blueprint("complaints", __name__, url_prefix="/complaints")


class ComplaintForm(ApiForm):
    title = StringField("Title", validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description", validators=[DataRequired(), Length(max=3000)])
    location = StringField("Location", validators=[Optional(), Length(max=255)])
    photo_ref = StringField("Photo", validators=[Optional(), Length(max=1024)])
    voice_note_ref = StringField("Voice note", validators=[Optional(), Length(max=1024)])
    category = SelectField(
        "Category",
        choices=[("", "Auto-detect")] + [(c, c.title()) for c in COMPLAINT_CATEGORIES],
        validators=[Optional()],
        default="",
    )
    language = StringField("Language", validators=[Optional(), Length(max=16)], default="en-US")


class ResolveForm(ApiForm):
    proof_ref = StringField("Proof of resolution", validators=[DataRequired(), Length(max=1024)])


class RatingForm(ApiForm):
    rating = IntegerField("Rating", validators=[DataRequired(), NumberRange(min=1, max=5)])
    comment = TextAreaField("Comment", validators=[Optional(), Length(max=1000)])


def _complaint_payload(complaint) -> dict:
    payload = complaint.to_dict()
    if current_user.is_authenticated:
        payload["has_voted"] = get_engine().has_voted(complaint.id, current_user.id)
    return payload


@complaints_bp.route("", methods=["POST"])
@roles_required("student")
def raise_complaint():
    form = parse_form(ComplaintForm)
    engine = get_engine()
    complaint_id = engine.raise_complaint(
        author_id=current_user.id,
        title=form.title.data,
        description=form.description.data,
        location=form.location.data or "",
        photo_ref=form.photo_ref.data or "",
        category=form.category.data or None,
        language=form.language.data or "en-US",
        voice_note_ref=form.voice_note_ref.data or None,
    )
    log_action("COMPLAINT_RAISED", current_user, context=f"COMPLAINT:{complaint_id}")
    complaint = engine.get_complaint(complaint_id)
    return jsonify({"complaint": _complaint_payload(complaint)}), 201


@complaints_bp.route("", methods=["GET"])
@login_required
def list_complaints():
    filters = g.get("sanitized_args") or {}
    status_filter = filters.get("status")
    category_filter = filters.get("category")
    engine = get_engine()
    if filters.get("mine") in {"1", "true"}:
        complaints = engine.complaints_by_author(current_user.id)
    else:
        complaints = engine.list_complaints(
            status=status_filter if status_filter in COMPLAINT_STATUSES else None,
            category=category_filter if category_filter in COMPLAINT_CATEGORIES else None,
            limit=int(current_app.config.get("COMPLAINTS_PER_PAGE", 20)),
        )
    # Harassment cases are visible to their author, counselors and admins only.
    if current_user.role not in {"admin", "counselor"}:
        complaints = [c for c in complaints if c.category != "harassment" or c.author_id == current_user.id]
    return jsonify({"complaints": [_complaint_payload(c) for c in complaints]})


@complaints_bp.route("/vendor-queue", methods=["GET"])
@roles_required("vendor")
def vendor_queue():
    complaints = get_engine().complaints_for_vendor(current_user.id)
    return jsonify({"complaints": [c.to_dict() for c in complaints]})


@complaints_bp.route("/<string:complaint_id>", methods=["GET"])
@login_required
def view_complaint(complaint_id):
    complaint = get_engine().get_complaint(complaint_id)
    return jsonify({"complaint": _complaint_payload(complaint)})


@complaints_bp.route("/<string:complaint_id>/upvote", methods=["POST"])
@login_required
def upvote(complaint_id):
    engine = get_engine()
    count = engine.upvote(complaint_id, current_user.id)
    complaint = engine.get_complaint(complaint_id)
    return jsonify({"upvotes": count, "status": complaint.status})


@complaints_bp.route("/<string:complaint_id>/start", methods=["POST"])
@roles_required("vendor")
def start_work(complaint_id):
    complaint = get_engine().start_work(complaint_id, current_user.id)
    return jsonify({"complaint": complaint.to_dict()})


@complaints_bp.route("/<string:complaint_id>/resolve", methods=["POST"])
@roles_required("vendor")
def resolve(complaint_id):
    form = parse_form(ResolveForm)
    engine = get_engine()
    complaint = engine.resolve_complaint(complaint_id, current_user.id, form.proof_ref.data)
    log_action("COMPLAINT_RESOLVED", current_user, context=f"COMPLAINT:{complaint.id}")
    # Notification runs after the engine call has committed and cannot undo it.
    student = engine.directory.account_by_id(complaint.author_id)
    if student:
        send_resolution_email(student, complaint)
    return jsonify({"complaint": complaint.to_dict()})


@complaints_bp.route("/<string:complaint_id>/confirm", methods=["POST"])
@roles_required("student")
def confirm(complaint_id):
    complaint = get_engine().confirm_resolution(complaint_id, current_user.id)
    log_action("COMPLAINT_CONFIRMED", current_user, context=f"COMPLAINT:{complaint.id}")
    return jsonify({"complaint": complaint.to_dict()})


@complaints_bp.route("/<string:complaint_id>/rate", methods=["POST"])
@roles_required("student")
def rate(complaint_id):
    form = parse_form(RatingForm)
    complaint = get_engine().rate_resolution(
        complaint_id, current_user.id, form.rating.data, form.comment.data or ""
    )
    return jsonify({"complaint": complaint.to_dict()})


@complaints_bp.route("/<string:complaint_id>/accept-counseling", methods=["POST"])
@roles_required("student")
def accept_counseling(complaint_id):
    complaint = get_engine().accept_counseling(complaint_id, current_user.id)
    return jsonify({"complaint": complaint.to_dict()})
