import os
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=False)


from .config import get_config
from .extensions import db, migrate, csrf, login_manager, limiter, mail, cors
from .security import init_security
from .observability import init_logging, init_sentry


def create_app():
    app = Flask(__name__, template_folder="templates")

    # ---- Rate limiting storage ----
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    use_redis = app_env in ("staging", "production")
    storage_uri = os.environ.get("REDIS_URL") if use_redis else "memory://"
    if use_redis and not storage_uri:
        # Hard fail in stage/prod so we never silently run without RL storage
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_DEFAULTS", ["1000 per hour"])
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)

    # Config: clean, explicit, class-based
    app.config.from_object(get_config())

    # Required env for prod-like envs, enforced at startup (not at import time)
    def _require(name: str):
        val = os.getenv(name) or app.config.get(name)
        if not val:
            raise RuntimeError(f"Missing required environment variable: {name}")
        return val

    if app_env in ("staging", "production"):
        _require("SECRET_KEY")
        _require("DATABASE_URL")

    init_logging(app)
    init_sentry(app)

    # HTTPS, HSTS & CSP only in staging/production
    if app_env in ("staging", "production"):
        init_security(app)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    mail.init_app(app)
    # Only the embeddable widget API is cross-origin
    cors.init_app(app, resources={r"/api/v1/widget/*": {"origins": "*", "send_wildcard": True}})

    # Blueprints (explicit, consistent prefixes)
    from .blueprints.auth import bp as auth_bp
    from .blueprints.user import bp as user_bp
    from .blueprints.admin import bp as admin_bp
    from .blueprints.dashboard import bp as dashboard_bp
    from .blueprints.widget import bp as widget_bp
    from .blueprints.public import bp as public_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(user_bp, url_prefix="/api/user")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")

    # Public surfaces
    app.register_blueprint(widget_bp, url_prefix="/api/v1/widget")
    app.register_blueprint(public_bp)                        # "/s/<slug>"

    # Widget calls come from third-party pages without our session
    csrf.exempt(widget_bp)

    @app.context_processor
    def inject_globals():
        from datetime import datetime, timezone
        return {
            "site_name": app.config.get("SITE_NAME", "Feedbackloop"),
            "current_year": datetime.now(timezone.utc).year,
        }

    @app.get("/healthz")
    @limiter.exempt
    def healthz():
        return {"status": "ok"}, 200

    register_error_handlers(app)

    # CLI commands (ops-grade utilities)
    from .cli import register_cli
    register_cli(app)

    return app


def _wants_json() -> bool:
    accept = (request.headers.get("Accept") or "").lower()
    return request.path.startswith("/api/") or request.is_json or "application/json" in accept


def register_error_handlers(app):
    from flask_wtf.csrf import CSRFError

    @app.errorhandler(HTTPException)
    def http_error(e):
        if e.code is None or e.code < 400:
            return e
        # abort(404, description="Project not found") keeps its message; stock descriptions do not leak
        custom = e.description and e.description != type(e).description
        message = e.description if custom else e.name
        if _wants_json():
            return jsonify({"error": message}), e.code
        return (message, e.code)

    # CSRF error handler (clean 400 instead of generic 500)
    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        return jsonify({"error": "CSRF validation failed", "details": [e.description]}), 400

    # 429 Too Many Requests with Retry-After
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {}
        payload = {"error": "Too many requests"}
        if retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))
            payload["retry_after"] = int(retry_after)
        return jsonify(payload), 429, headers

    @app.errorhandler(500)
    def server_error(e):
        # Flask already logged the traceback
        if _wants_json():
            return jsonify({"error": "Internal server error"}), 500
        return ("Internal Server Error", 500)
