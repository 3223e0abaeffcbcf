"""Administrator blueprint: assignment, escrow release, rejection, provisioning and reporting."""
from flask import Blueprint, g, jsonify
from flask_login import current_user
from wtforms import IntegerField, PasswordField, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, NumberRange, Optional

from routes.common import ApiForm, get_engine, log_action, parse_form
from utils.decorators import roles_required

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


class AssignVendorForm(ApiForm):
    vendor_id = StringField("Vendor", validators=[DataRequired(), Length(max=36)])
    allocated_amount = IntegerField("Allocated amount", validators=[NumberRange(min=0)])


class AssignCounselorForm(ApiForm):
    counselor_id = StringField("Counselor", validators=[DataRequired(), Length(max=36)])


class RejectForm(ApiForm):
    reason = TextAreaField("Reason", validators=[DataRequired(), Length(max=500)])


class ProvisionForm(ApiForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[Optional(), Length(min=8, max=128)])


@admin_bp.route("/complaints/<string:complaint_id>/assign-vendor", methods=["POST"])
@roles_required("admin")
def assign_vendor(complaint_id):
    form = parse_form(AssignVendorForm)
    complaint = get_engine().assign_vendor(
        complaint_id, form.vendor_id.data, form.allocated_amount.data, admin_id=current_user.id
    )
    log_action("VENDOR_ASSIGNED", current_user, context=f"COMPLAINT:{complaint.id}")
    return jsonify({"complaint": complaint.to_dict()})


@admin_bp.route("/complaints/<string:complaint_id>/assign-counselor", methods=["POST"])
@roles_required("admin")
def assign_counselor(complaint_id):
    form = parse_form(AssignCounselorForm)
    complaint = get_engine().assign_counselor(complaint_id, form.counselor_id.data, admin_id=current_user.id)
    log_action("COUNSELOR_ASSIGNED", current_user, context=f"COMPLAINT:{complaint.id}")
    return jsonify({"complaint": complaint.to_dict()})


@admin_bp.route("/complaints/<string:complaint_id>/release", methods=["POST"])
@roles_required("admin")
def release_funds(complaint_id):
    result = get_engine().release_funds(complaint_id, current_user.id)
    log_action("FUNDS_RELEASED", current_user, context=f"COMPLAINT:{complaint_id}")
    return jsonify({"release": result.to_dict()})


@admin_bp.route("/complaints/<string:complaint_id>/reject", methods=["POST"])
@roles_required("admin")
def reject(complaint_id):
    form = parse_form(RejectForm)
    complaint = get_engine().reject_complaint(complaint_id, current_user.id, form.reason.data)
    log_action("COMPLAINT_REJECTED", current_user, context=f"COMPLAINT:{complaint.id}")
    return jsonify({"complaint": complaint.to_dict()})


@admin_bp.route("/harassment", methods=["GET"])
@roles_required("admin", "counselor")
def harassment_cases():
    complaints = get_engine().harassment_complaints()
    if current_user.role == "counselor":
        complaints = [c for c in complaints if c.assigned_counselor_id in (None, current_user.id)]
    return jsonify({"complaints": [c.to_dict() for c in complaints]})


def _provision(role: str):
    form = parse_form(ProvisionForm)
    account = get_engine().directory.provision(
        email=form.email.data,
        full_name=form.full_name.data,
        role=role,
        password=form.password.data or None,
    )
    log_action(f"{role.upper()}_PROVISIONED", current_user, context=f"ACCOUNT:{account.id}")
    return jsonify({"account": account.to_dict()}), 201


@admin_bp.route("/vendors", methods=["POST"])
@roles_required("admin")
def add_vendor():
    return _provision("vendor")


@admin_bp.route("/counselors", methods=["POST"])
@roles_required("admin")
def add_counselor():
    return _provision("counselor")


@admin_bp.route("/vendors", methods=["GET"])
@roles_required("admin")
def list_vendors():
    engine = get_engine()
    vendors = engine.directory.accounts_by_role("vendor")
    return jsonify(
        {
            "vendors": [
                {**vendor.to_dict(), "performance": engine.performance.vendor_performance(vendor.id)}
                for vendor in vendors
            ]
        }
    )


@admin_bp.route("/counselors", methods=["GET"])
@roles_required("admin")
def list_counselors():
    counselors = get_engine().directory.accounts_by_role("counselor")
    return jsonify({"counselors": [c.to_dict() for c in counselors]})


@admin_bp.route("/accounts/<string:account_id>/deactivate", methods=["POST"])
@roles_required("admin")
def deactivate_account(account_id):
    account = get_engine().directory.deactivate(account_id)
    log_action("ACCOUNT_DEACTIVATED", current_user, context=f"ACCOUNT:{account.id}")
    return jsonify({"account": account.to_dict()})


@admin_bp.route("/ledger", methods=["GET"])
@roles_required("admin")
def ledger():
    engine = get_engine()
    filters = g.get("sanitized_args") or {}
    complaint_id = filters.get("complaint_id")
    entries = engine.ledger.entries_for(complaint_id) if complaint_id else engine.ledger.recent()
    return jsonify(
        {
            "entries": [entry.to_dict() for entry in entries],
            "escrow_pool": engine.ledger.pool_total("escrow"),
            "system_pool": engine.ledger.pool_total("system"),
        }
    )


@admin_bp.route("/stats", methods=["GET"])
@roles_required("admin")
def stats():
    engine = get_engine()
    return jsonify({"stats": engine.stats(), "leaderboard": engine.performance.leaderboard()})
