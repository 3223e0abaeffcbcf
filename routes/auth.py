"""Authentication blueprint: self-registration, session login and logout."""
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from wtforms import PasswordField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, ValidationError

from routes.common import ApiForm, get_engine, log_action, parse_form
from utils.errors import Unauthorized
from utils.notifications import send_registration_email
from utils.security import password_meets_policy

auth_bp = Blueprint("auth", __name__)


ROLE_CHOICES: list[tuple[str, str]] = [
    ("student", "Student"),
    ("vendor", "Vendor"),
]


class RegistrationForm(ApiForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    role = SelectField("Role", choices=ROLE_CHOICES, default="student")
    password = PasswordField("Password", validators=[DataRequired(), Length(min=8, max=128)])

    def validate_password(self, field):
        ok, reason = password_meets_policy(field.data or "")
        if not ok:
            raise ValidationError(reason)


class LoginForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])


@auth_bp.route("/signup", methods=["POST"])
def signup():
    form = parse_form(RegistrationForm)
    engine = get_engine()
    account = engine.directory.signup(
        email=form.email.data,
        password=form.password.data,
        full_name=form.full_name.data,
        role=form.role.data or "student",
    )
    login_user(account, remember=True, duration=timedelta(days=30))
    session.permanent = True
    log_action("REGISTER", account)
    send_registration_email(account)
    current_app.logger.info("Account registered", extra={"account_id": account.id, "role": account.role})
    return jsonify({"account": account.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    form = parse_form(LoginForm)
    engine = get_engine()
    try:
        account = engine.directory.authenticate(form.email.data, form.password.data)
    except Unauthorized:
        log_action("LOGIN_FAILED", None, context=(form.email.data or "")[:120])
        raise
    login_user(account, remember=True, duration=timedelta(days=30))
    session.permanent = True
    log_action("LOGIN", account)
    return jsonify({"account": account.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    account = current_user._get_current_object()
    # Clear first: logout_user leaves the flag that drops the remember-me cookie.
    session.clear()
    logout_user()
    log_action("LOGOUT", account)
    return jsonify({"status": "logged_out"})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"account": current_user.to_dict()})
