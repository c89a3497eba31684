import logging
import os

import click
from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from bantuin.config import Config, check_production_config
from bantuin.errors import register_error_handlers
from bantuin.extensions import cors, db, login_manager, migrate

from bantuin import auth  # noqa: F401  (registers the Flask-Login loaders)
from bantuin import models  # noqa: F401
from bantuin.segments.segment_admin import admin_bp
from bantuin.segments.segment_orders_api import orders_bp
from bantuin.segments.segment_payments import payments_bp
from bantuin.segments.segment_services import services_bp
from bantuin.segments.segment_wallets import wallets_bp


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    env = (app.config.get("ENV_NAME") or "dev").strip().lower()

    # Production safety checks
    if env in ("prod", "production"):
        check_production_config(app.config)
        app.config["AUTO_CREATE_TABLES"] = False

    if not app.debug and not app.testing:
        app.logger.setLevel(logging.INFO)

    uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if uri.startswith("sqlite:///") and uri != "sqlite:///:memory:":
        os.makedirs(app.config["INSTANCE_DIR"], exist_ok=True)

    # CORS configuration
    cors_origins = (app.config.get("CORS_ORIGINS") or "").strip()
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
    if not origins and env not in ("prod", "production"):
        origins = ["*"]
    cors.init_app(app, resources={r"/api/*": {"origins": origins}})

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    register_error_handlers(app)

    # Register API routes
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(wallets_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(services_bp)

    # Health check
    @app.get("/api/health")
    def health():
        db_state = "ok"
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            app.logger.exception("Health check database query failed")
            db_state = "fail"
        return jsonify({
            "ok": True,
            "service": "bantuin-backend",
            "env": env,
            "db": db_state,
        })

    @app.cli.command("reconcile-wallets")
    @click.option("--limit", default=500, show_default=True, help="Maximum wallets to check.")
    def reconcile_wallets_command(limit):
        """Compare every wallet balance with its ledger and log anomalies."""
        from bantuin.jobs.wallet_reconciler import reconcile_wallets

        result = reconcile_wallets(limit=limit)
        click.echo(f"checked={result['checked']} anomalies={result['anomalies']}")

    return app
