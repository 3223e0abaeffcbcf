"""Blueprint registration, health probe and role dashboards."""
from flask import Blueprint, jsonify
from flask_login import current_user, login_required
from sqlalchemy import text

from extensions import db
from routes.common import get_engine
from .admin import admin_bp
from .auth import auth_bp
from .complaints import complaints_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    db.session.execute(text("SELECT 1"))
    return jsonify({"status": "ok"})


@main_bp.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    """Role-specific summary mirroring what each dashboard needs on first paint."""
    engine = get_engine()
    role = current_user.role
    payload = {"account": current_user.to_dict()}
    if role == "student":
        mine = engine.complaints_by_author(current_user.id)
        payload["complaints"] = [c.to_dict() for c in mine]
        payload["awaiting_votes"] = [
            c.to_dict() for c in engine.list_complaints(status="awaiting_votes") if c.author_id != current_user.id
        ]
    elif role == "vendor":
        payload["queue"] = [c.to_dict() for c in engine.complaints_for_vendor(current_user.id)]
        payload["performance"] = engine.performance.vendor_performance(current_user.id)
        payload["stats"] = engine.stats(vendor_id=current_user.id)
    elif role == "counselor":
        payload["cases"] = [
            c.to_dict() for c in engine.harassment_complaints() if c.assigned_counselor_id == current_user.id
        ]
    else:
        payload["stats"] = engine.stats()
    return jsonify(payload)


@main_bp.route("/vendors/<string:vendor_id>/performance", methods=["GET"])
@login_required
def vendor_performance(vendor_id):
    return jsonify({"performance": get_engine().performance.vendor_performance(vendor_id)})


__all__ = ["main_bp", "auth_bp", "complaints_bp", "admin_bp"]
