import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from app.truinventory.config import load_config
from app.truinventory.db import init_db, teardown_db_session
from app.truinventory.auth import bp as auth_bp, setup_bp, load_current_user
from app.truinventory.admin import bp as admin_bp
from app.truinventory.routes import bp as routes_bp
from app.truinventory.modules.locations.api import bp as locations_bp
from app.truinventory.modules.categories.api import bp as categories_bp
from app.truinventory.modules.items.api import bp as items_bp
from app.truinventory.modules.users.api import bp as users_bp
from app.truinventory.modules.settings.api import bp as settings_bp
from app.truinventory.modules.dashboard.api import bp as dashboard_bp

# Endpoints reachable without a session, so they cannot carry a CSRF token yet.
_CSRF_EXEMPT_PREFIXES = ("auth.", "setup.")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.json.sort_keys = False

    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # CSRF protection (minimal)
    from app.truinventory.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if (request.endpoint or "").startswith(_CSRF_EXEMPT_PREFIXES):
                return None
            # No session user: the permission check answers 401.
            if getattr(g, "current_user", None) is None:
                return None
            if not validate_csrf(request):
                app.logger.warning(
                    "CSRF rejected: method=%s path=%s request_id=%s",
                    request.method,
                    request.path,
                    getattr(g, "request_id", None),
                )
                return jsonify({"error": "CSRF token missing or invalid."}), 400

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

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(setup_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api")
    app.register_blueprint(locations_bp, url_prefix="/api")
    app.register_blueprint(categories_bp, url_prefix="/api")
    app.register_blueprint(items_bp, url_prefix="/api")
    app.register_blueprint(users_bp, url_prefix="/api")
    app.register_blueprint(settings_bp, url_prefix="/api")
    app.register_blueprint(dashboard_bp, url_prefix="/api")

    # Runs before the CSRF guard so rejections are logged with a request id.
    app.before_request_funcs.setdefault(None, []).insert(0, load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e):  # type: ignore[no-redef]
        if e.code == 403:
            missing = getattr(g, "missing_permission", None)
            if missing:
                app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if e.code == 413:
            return jsonify({"error": "Request body too large."}), 413
        return jsonify({"error": e.description or e.name}), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal Server Error"}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
