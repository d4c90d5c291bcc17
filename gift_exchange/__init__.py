from __future__ import annotations

import logging
import os

from flask import Flask

from .cli import register_cli
from .extensions import broadcaster, csrf, db, login_manager, migrate
from .views.events import events_bp
from .views.groups import groups_bp
from .views.messages import messages_bp


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)

    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev-secret-change-me")
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///giftexchange.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # Fernet key for assignment receivers; derived from SECRET_KEY when unset
    app.config["ASSIGNMENT_ENC_KEY"] = os.environ.get("ASSIGNMENT_ENC_KEY", "").strip() or None
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO").upper()
    app.config["EVENT_QUEUE_SIZE"] = int(os.environ.get("EVENT_QUEUE_SIZE", "256"))
    app.config["EVENT_KEEPALIVE_SECONDS"] = float(os.environ.get("EVENT_KEEPALIVE_SECONDS", "15"))

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    broadcaster.init_app(app)

    # registers the X-Member-Code request loader
    from . import auth  # noqa: F401

    # CSRFProtect guards any cookie-authenticated route added later; the API
    # blueprints are credentialled by header and exempt
    for bp in (groups_bp, messages_bp, events_bp):
        app.register_blueprint(bp)
        csrf.exempt(bp)

    register_cli(app)
    return app
