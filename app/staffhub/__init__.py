import logging

from flask import Flask, g, request
from dotenv import load_dotenv

from app.staffhub.config import load_config
from app.staffhub.db import init_db, teardown_db_session
from app.staffhub.auth import bp as auth_bp, load_current_user
from app.staffhub.errors import register_error_handlers
from app.staffhub.routes import bp as routes_bp
from app.staffhub.modules.forms.api import bp as forms_api_bp
from app.staffhub.modules.people.admin import bp as people_admin_bp
from app.staffhub.modules.companies.admin import bp as companies_admin_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(forms_api_bp)
    app.register_blueprint(people_admin_bp)
    app.register_blueprint(companies_admin_bp)

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)
    register_error_handlers(app)

    @app.after_request
    def _request_id_header(response):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        if rid:
            response.headers["X-Request-Id"] = rid
        if request.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store"
        return response

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
