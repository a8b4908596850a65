"""
costsheets/__init__.py

Flask application factory for the Cost Sheets service.

Requirements:
- SQLite for development, any SQLAlchemy URL in production (migrations via Flask-Migrate).
- UI is never trusted; every workflow operation checks role and state server-side.
- All routes answer JSON. Workflow errors map to {"error", "code"} with their HTTP status.
"""

from __future__ import annotations

import logging
import sqlite3

import click
from flask import Flask, jsonify
from flask_login import current_user
from sqlalchemy import event
from sqlalchemy.engine import Engine

from .errors import CostSheetError
from .extensions import csrf, db, login_manager, migrate
from .models import Role, User, UserRole
from .utils import user_dict

# Blueprint imports kept inside create_app() to reduce import side effects.


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores FOREIGN KEY clauses unless asked per connection."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]")
    )
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    if not package_logger.handlers:
        package_logger.addHandler(handler)
    app.logger.setLevel(level)


def create_app(config_object: str | type = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401

    # ----------------------------------------------------------------------
    # Errors: one translation point for the workflow taxonomy
    # ----------------------------------------------------------------------
    @app.errorhandler(CostSheetError)
    def handle_cost_sheet_error(exc: CostSheetError):
        if exc.status >= 500:
            app.logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.approved import approved_bp
    from .blueprints.auth import auth_bp
    from .blueprints.clients import clients_bp
    from .blueprints.cost_sheets import cost_sheets_bp
    from .blueprints.notifications import notifications_bp

    for bp in (auth_bp, clients_bp, cost_sheets_bp, approved_bp, notifications_bp):
        # JSON API: session cookie + SameSite protects it, no form tokens to carry.
        csrf.exempt(bp)
        app.register_blueprint(bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (development; use `flask db upgrade` with migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.argument("password")
    @click.option(
        "--role",
        type=click.Choice([r.value for r in Role]),
        default=Role.ESTIMATOR.value,
        show_default=True,
    )
    def create_user_command(email: str, password: str, role: str):
        """Create a login user with a role."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first() is not None:
            raise click.ClickException(f"User {email} already exists.")

        user = User(email=email, is_active=True)
        user.set_password(password)
        user.role_entry = UserRole(email=email, role=Role(role))
        db.session.add(user)
        db.session.commit()
        click.echo(f"User {email} created with role {role}.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner plus who is logged in."""
        user = user_dict(current_user) if current_user.is_authenticated else None
        return jsonify({"app": app.config.get("APP_NAME", "Cost Sheets"), "user": user})

    return app
