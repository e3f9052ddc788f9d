"""
tka_invoice/__init__.py

Flask application factory for the TKA service invoice system.

- SQLite for development; any SQLAlchemy URL via DATABASE_URL.
- UI is never trusted; server-side access control is enforced.
- The query cache lives on the app (app.extensions["query_cache"]).

Navigation:
- Sidebar sections: Invoice, Master Data, Administrasi.
Items are filtered for visibility, BUT all permissions are enforced server-side.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, redirect, render_template, url_for
from flask_login import current_user

from .cache import QueryCache
from .errors import InvoiceAppError, NotFound
from .extensions import csrf, db, login_manager, migrate
from .models import User
from .security import viewer_readonly_guard


# -------------------------------------------------------------------
# NAVIGATION STRUCTURE (UI visibility only; security enforced in routes)
# -------------------------------------------------------------------

NAV_SECTIONS = [
    {
        "key": "invoices",
        "label": "Invoice",
        "auth_required": True,
        "items": [
            {"label": "Daftar Invoice", "endpoint": "invoices.list_invoices", "admin_only": False},
            {"label": "Invoice Baru", "endpoint": "invoices.create_invoice", "admin_only": True},
            {"label": "Laporan", "endpoint": "reports.dashboard", "admin_only": False},
            {"label": "Import Excel", "endpoint": "reports.import_data", "admin_only": True},
        ],
    },
    {
        "key": "master",
        "label": "Master Data",
        "auth_required": True,
        "items": [
            {"label": "Perusahaan", "endpoint": "companies.list_companies", "admin_only": False},
            {"label": "TKA", "endpoint": "workers.list_workers", "admin_only": False},
        ],
    },
    {
        "key": "admin",
        "label": "Administrasi",
        "auth_required": True,
        "items": [
            {"label": "Pengaturan", "endpoint": "settings.edit_settings", "admin_only": True},
            {"label": "Rekening Bank", "endpoint": "settings.bank_accounts", "admin_only": True},
            {"label": "Pengguna", "endpoint": "users.list_users", "admin_only": True},
        ],
    },
]


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)
    if not logging.getLogger().handlers and not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        package_logger.addHandler(handler)


def create_app(config_object: str | object = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)
    login_manager.login_view = "auth.login"
    login_manager.login_message = "Silakan login terlebih dahulu."
    login_manager.login_message_category = "info"

    app.extensions["query_cache"] = QueryCache(default_ttl=app.config.get("QUERY_CACHE_TTL", 300))

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Load user for Flask-Login."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    # ----------------------------------------------------------------------
    # GLOBAL SECURITY NET: Viewer read-only guard (server-side).
    # ----------------------------------------------------------------------
    @app.before_request
    def _viewer_guard_hook():
        """Viewer read-only enforcement (POST/PUT/PATCH/DELETE blocked)."""
        return viewer_readonly_guard()

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.companies import companies_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.reports import reports_bp
    from .blueprints.settings import settings_bp
    from .blueprints.users import users_bp
    from .blueprints.workers import workers_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(companies_bp)
    app.register_blueprint(workers_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(reports_bp)

    # ----------------------------------------------------------------------
    # Error pages
    # ----------------------------------------------------------------------
    @app.errorhandler(NotFound)
    def _not_found(exc: NotFound):
        return render_template("errors/404.html", message=str(exc)), 404

    @app.errorhandler(404)
    def _page_not_found(exc):
        return render_template("errors/404.html", message="Halaman tidak ditemukan"), 404

    @app.errorhandler(InvoiceAppError)
    def _app_error(exc: InvoiceAppError):
        app.logger.warning("Unhandled application error: %s", exc)
        return render_template("errors/400.html", message=str(exc)), 400

    # ----------------------------------------------------------------------
    # Context globals (navigation, formatting)
    # ----------------------------------------------------------------------
    from .money import format_currency

    app.jinja_env.filters["rupiah"] = format_currency

    @app.context_processor
    def inject_globals():
        """
        Inject navigation filtered by user.

        SECURITY NOTE:
        - This only filters visibility. Routes enforce permissions.
        """
        visible_sections = []

        for section in NAV_SECTIONS:
            if section.get("auth_required", False) and not current_user.is_authenticated:
                continue

            visible_items = [
                item
                for item in section.get("items", [])
                if not item.get("admin_only", False) or current_user.is_admin
            ]
            if visible_items:
                visible_sections.append(
                    {"key": section["key"], "label": section["label"], "items": visible_items}
                )

        return {"config": app.config, "nav_sections": visible_sections}

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("init-db")
    def init_db_command():
        """Create all tables (development; use `flask db upgrade` with migrations)."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-settings")
    def seed_settings_command():
        """Seed default business settings."""
        from .seed import seed_default_settings

        added = seed_default_settings()
        click.echo(f"Default settings seeded ({added} added).")

    @app.cli.command("create-admin")
    @click.argument("username")
    @click.password_option()
    @click.option("--full-name", default="Administrator", show_default=True)
    def create_admin_command(username: str, password: str, full_name: str):
        """Create an administrator account."""
        from .seed import create_admin_user

        try:
            create_admin_user(username, password, full_name=full_name)
        except InvoiceAppError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Admin {username} created.")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Home: redirect to invoice list or login."""
        if current_user.is_authenticated:
            return redirect(url_for("invoices.list_invoices"))
        return redirect(url_for("auth.login"))

    return app
