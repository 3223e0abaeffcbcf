"""Flask application factory for the campus grievance escrow service."""
import os
from typing import Callable, Optional

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from dotenv import load_dotenv

from extensions import csrf, db, migrate, login_manager
from models import Account
from utils.errors import GrievanceError
from utils.lifecycle import build_engine
from utils.logger import init_logging
from utils.security import apply_security_headers, sanitize_input
from utils.settings import EngineSettings

DEMO_ACCOUNTS = (
    ("student@campus.edu", "student123", "John Student", "student"),
    ("vendor@campus.edu", "vendor123", "Jane Vendor", "vendor"),
    ("counselor@campus.edu", "counselor123", "Dr. Smith", "counselor"),
)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(GrievanceError)
    def grievance_error(error: GrievanceError):
        app.logger.info(
            "Request rejected by grievance engine",
            extra={"path": request.path, "error": error.code, "detail": error.message},
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SQLAlchemyError)
    def database_error(error):
        db.session.rollback()
        app.logger.exception("Database error", extra={"path": request.path})
        return jsonify({"error": "DATABASE_ERROR", "message": "Unable to complete the request right now."}), 503

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({"error": "BAD_REQUEST", "message": "Malformed request."}), 400

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning("403 Forbidden", extra={"path": request.path, "method": request.method})
        return jsonify({"error": "FORBIDDEN", "message": "Forbidden."}), 403

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        return jsonify({"error": "NOT_FOUND", "message": "Resource not found."}), 404

    @app.errorhandler(415)
    def unsupported_media(error):
        return jsonify({"error": "UNSUPPORTED_MEDIA_TYPE", "message": "Send a JSON body."}), 415

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        return jsonify({"error": "INTERNAL_ERROR", "message": "Unexpected error."}), 500


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def register_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    def seed_demo():
        """Create the demo student, vendor and counselor accounts."""
        directory = app.extensions["grievance_engine"].directory
        for email, password, name, role in DEMO_ACCOUNTS:
            if directory.session.query(Account).filter_by(email=email).first():
                click.echo(f"exists   {email}")
                continue
            if role in {"student", "vendor"}:
                directory.signup(email, password, name, role)
            else:
                directory.provision(email, name, role, password=password)
            click.echo(f"created  {email} ({role})")

    @app.cli.command("ledger-reconcile")
    def ledger_reconcile():
        """Replay the ledger and report accounts whose stored balance diverges."""
        engine = app.extensions["grievance_engine"]
        drift = 0
        for account in engine.session.query(Account).order_by(Account.email).all():
            replayed = engine.ledger.replayed_balance(account.id)
            if replayed != account.balance:
                drift += 1
                click.echo(f"DRIFT {account.email}: stored={account.balance} replayed={replayed}")
        click.echo(f"escrow pool: {engine.ledger.pool_total('escrow')}")
        click.echo(f"system pool: {engine.ledger.pool_total('system')}")
        click.echo("ledger consistent" if not drift else f"{drift} account(s) out of balance")


def create_app(config_name: Optional[str] = None, clock: Optional[Callable[[], int]] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    app.config.from_pyfile("config.py", silent=True)
    os.makedirs(app.instance_path, exist_ok=True)

    logger = init_logging(app)
    app.logger = logger

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def load_user(account_id):
        if not account_id:
            return None
        account = db.session.get(Account, str(account_id))
        if account is None or not account.is_active:
            return None
        return account

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "UNAUTHENTICATED", "message": "Login required."}), 401

    settings = EngineSettings.from_config(app.config)
    engine_kwargs = {"settings": settings}
    if clock is not None:
        engine_kwargs["clock"] = clock
    app.extensions["grievance_engine"] = build_engine(db.session, **engine_kwargs)

    from routes import admin_bp, auth_bp, complaints_bp, main_bp

    # JSON API: CSRF is enforced by requiring application/json bodies instead of form tokens.
    for blueprint in (auth_bp, complaints_bp, admin_bp):
        csrf.exempt(blueprint)

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(complaints_bp)
    app.register_blueprint(admin_bp)

    register_error_handlers(app)
    register_cli(app)

    @app.before_request
    def _before_request() -> None:
        g.sanitized_args = sanitize_input(request.args)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(
            response,
            force_https=app.config.get("PREFERRED_URL_SCHEME") == "https" and not app.testing,
            is_secure=request.is_secure,
        )

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        app.extensions["grievance_engine"].directory.ensure_default_admin(
            app.config.get("DEFAULT_ADMIN_EMAIL"), app.config.get("DEFAULT_ADMIN_PASSWORD")
        )

    return app
