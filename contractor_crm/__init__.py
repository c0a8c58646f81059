import os
import logging

import click
from werkzeug.security import generate_password_hash
from flask import Flask, jsonify

from contractor_crm.config import config_by_name
from contractor_crm.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from contractor_crm import models  # noqa: F401

    # --- Register blueprints ---
    from contractor_crm.blueprints.auth import auth_bp
    from contractor_crm.blueprints.crm import crm_bp
    from contractor_crm.blueprints.lead_intake import lead_intake_bp
    from contractor_crm.blueprints.admin import admin_bp
    from contractor_crm.blueprints.health import health_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(crm_bp)
    app.register_blueprint(lead_intake_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(health_bp)

    # The public lead form is posted cross-site by the marketing pages
    csrf.exempt(lead_intake_bp)

    # --- Root route ---
    @app.route("/")
    def index():
        return jsonify(service="contractor-crm", status="ok")

    # --- Local file serving (dev only) ---
    if app.debug:
        @app.route("/uploads/<path:filepath>")
        def serve_upload(filepath):
            """Serve uploaded files from instance/uploads in dev mode."""
            from flask import send_from_directory
            upload_dir = os.path.join(app.instance_path, "uploads")
            return send_from_directory(upload_dir, filepath)

    # --- Error handlers ---
    from contractor_crm.errors import register_error_handlers
    register_error_handlers(app)

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Prevent XSS (legacy but still useful)
        response.headers["X-XSS-Protection"] = "1; mode=block"
        # Permissions Policy (restrict browser features)
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        # Content Security Policy
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' https://challenges.cloudflare.com; "
            "img-src 'self' data: https://*.supabase.co; "
            "media-src 'self' https://*.supabase.co; "
            "connect-src 'self'; "
            "frame-src https://challenges.cloudflare.com; "
            "base-uri 'self'; "
            "form-action 'self'; "
            "frame-ancestors 'none';"
        )
        # API responses carry CRM data; never cache them
        if response.mimetype == "application/json":
            response.headers["Cache-Control"] = "no-store"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@contractor.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    @click.option("--name", default="Admin", help="Admin display name")
    def seed_admin(email, password, name):
        """Create (or promote) an admin user.

        Usage:
            flask seed-admin
            flask seed-admin --email owner@example.com --password s3cret
        """
        from contractor_crm.models.user import User

        email = email.lower().strip()
        existing = User.query.filter_by(email=email).first()
        if existing:
            existing.is_admin = True
            db.session.commit()
            click.echo(f"Admin user already exists: {email} (is_admin ensured)")
            return

        admin = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name=name,
            is_admin=True,
        )
        db.session.add(admin)
        db.session.commit()

        allowlist = app.config.get("ADMIN_EMAILS") or []
        click.echo(f"Created admin user: {email}")
        if allowlist and email not in allowlist:
            click.echo("WARNING: this email is not in ADMIN_EMAILS; the CRM API will return 403.")

    @app.cli.command("init-crm-settings")
    def init_crm_settings():
        """Create the CRM settings singleton with default stages and vocabularies.

        Safe to run repeatedly: existing settings are left untouched.
        """
        from contractor_crm.services import crm_settings_service

        settings, created = crm_settings_service.initialize_settings()
        if created:
            click.echo("CRM settings created with defaults.")
        else:
            click.echo("CRM settings already exist; nothing changed.")
        click.echo(
            "  Pipeline: "
            + ", ".join(stage["key"] for stage in settings["pipeline_stages"])
        )
        click.echo(
            "  Deal statuses: "
            + ", ".join(stage["key"] for stage in settings["deal_statuses"])
        )
