from datetime import timedelta

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from models import db
from routes import health_bp, time_slots_bp, booking_bp, payments_bp
from security.csrf import CSRF_EXEMPT_PATHS, require_csrf
from services import BookingError, StoreError, StripeGateway, build_lifecycle
from utils.audit import log_event
from utils.auth_context import load_current_user
from utils.seed import seed_roles


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(time_slots_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Payment provider used by the /payment routes; tests swap in a fake
    app.extensions["payment_gateway"] = StripeGateway(app.config.get("STRIPE_SECRET_KEY"))

    with app.app_context():
        if app.config.get("CREATE_TABLES_ON_STARTUP"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent)
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.status_code >= 500:
            app.logger.error("%s: %s", exc.code, exc.message, exc_info=exc.__cause__)
        return jsonify(error=exc.message, code=exc.code), exc.status_code

    @app.errorhandler(SQLAlchemyError)
    def _store_error(exc):
        db.session.rollback()
        app.logger.exception("Unhandled data store error")
        err = StoreError()
        return jsonify(error=err.message, code=err.code), err.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("expire-pending")
    @click.option("--ttl-minutes", type=int, default=None,
                  help="Age after which an unpaid PENDING booking is cancelled.")
    def expire_pending(ttl_minutes):
        """Cancel PENDING bookings whose payment never completed."""
        ttl = ttl_minutes if ttl_minutes is not None else app.config.get("PENDING_BOOKING_TTL_MINUTES", 15)
        lifecycle = build_lifecycle(db.session, app.config)
        count = lifecycle.expire_stale_pending(timedelta(minutes=ttl))
        if count:
            log_event("BOOKING_EXPIRE_PENDING", entity="booking", metadata={"count": count, "ttl_minutes": ttl})
        app.logger.info("Expired %d stale pending booking(s)", count)
        click.echo(f"Expired {count} pending booking(s) older than {ttl} minutes")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
