import logging

import click
from flask import Flask, jsonify
from sqlalchemy.exc import IntegrityError

from config import Config
from routes import (
    health_bp, booking_bp, self_service_bp, payments_bp, webhook_bp, admin_bp, audit_bp, cron_bp,
)

from models import db
from flask_migrate import Migrate
from services import EXTENSION_KEY, build_services
from services.errors import AuthenticityError, BookingError

logger = logging.getLogger(__name__)


def create_app(config_object=Config, gateway=None, notifier=None, clock=None):
    """Build the app. Pass `gateway`, `notifier` or `clock` to substitute fakes."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(self_service_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(cron_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Booking core, wired once with explicit dependencies
    app.extensions[EXTENSION_KEY] = build_services(
        app, db.session, gateway=gateway, notifier=notifier, clock=clock
    )

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if isinstance(exc, AuthenticityError):
            # details only go to the log
            return jsonify(error=exc.message), exc.status_code
        if exc.status_code >= 500:
            logger.error("%s (booking %s): %s", type(exc).__name__, exc.booking_id, exc.message)
        return jsonify(error=exc.message), exc.status_code

    @app.errorhandler(IntegrityError)
    def _integrity_error(exc):
        db.session.rollback()
        logger.error("Unhandled integrity error: %s", exc.orig)
        return jsonify(error="Conflicting data"), 409

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # CSP can be strict if you serve frontend separately; for API it's fine to keep minimal:
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
from datetime import date
from models.blocked_date import BlockedDate
from services import get_services

def register_cli(app):
    @app.cli.command("send-reminders")
    def send_reminders():
        """Run the 24h and 1h reminder sweeps once (schedule hourly)."""
        results = get_services().reminders.run()
        for kind, counts in results.items():
            click.echo(f"{kind}: sent={counts['sent']} errors={counts['errors']}")

    @app.cli.command("block-date")
    @click.argument("day")
    @click.option("--reason", default=None, help="Shown to the operator only.")
    def block_date(day, reason):
        """Mark DAY (YYYY-MM-DD) as unavailable for new bookings."""
        try:
            parsed = date.fromisoformat(day)
        except ValueError:
            raise click.BadParameter("use YYYY-MM-DD", param_hint="DAY")

        if BlockedDate.query.filter_by(blocked_date=parsed).first():
            click.echo(f"{parsed.isoformat()} is already blocked")
            return

        db.session.add(BlockedDate(blocked_date=parsed, reason=reason))
        db.session.commit()
        click.echo(f"{parsed.isoformat()} blocked")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
