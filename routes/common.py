"""Helpers shared by the JSON blueprints: engine access, form parsing and audit logging."""
from typing import Optional, Type

from flask import abort, current_app, jsonify, request
from flask_wtf import FlaskForm

from extensions import db
from models import Account, AuditLog
from utils.lifecycle import LifecycleEngine

ENGINE_EXTENSION_KEY = "grievance_engine"


class ApiForm(FlaskForm):
    """JSON-bodied form; CSRF is replaced by the JSON content-type requirement."""

    class Meta:
        csrf = False


def get_engine() -> LifecycleEngine:
    return current_app.extensions[ENGINE_EXTENSION_KEY]


def parse_form(form_cls: Type[ApiForm]) -> ApiForm:
    """Bind and validate a JSON body, aborting with 415/400 on bad input."""
    if not request.is_json:
        abort(415)
    form = form_cls()
    if not form.validate():
        response = jsonify({"error": "VALIDATION_ERROR", "message": "Invalid request", "fields": form.errors})
        response.status_code = 400
        abort(response)
    return form


def log_action(action: str, account: Optional[Account], context: Optional[str] = None) -> None:
    entry = AuditLog(
        account_id=account.id if account else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown"),
        context_entity=context,
    )
    db.session.add(entry)
    db.session.commit()
