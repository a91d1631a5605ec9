import os
from flask import Flask

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    # Load .env if present without clobbering envs set by the shell/test runner
    load_dotenv(".env", override=False)


from .config import get_config
from .extensions import db, migrate, csrf, login_manager, limiter, mail
from .security import init_security
from .observability import init_logging, init_sentry
from .errors import register_error_handlers

API_PREFIX = "/api/v1"

def create_app():
    app = Flask(__name__, template_folder="templates")

    # ---- Rate limiting storage configuration ----
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    use_redis = app_env in ("staging", "production")
    storage_uri = os.environ.get("REDIS_URL") if use_redis else "memory://"
    if use_redis and not storage_uri:
        # Hard fail in stage/prod so we never silently run without RL storage
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    # ---------------------------------------------

    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)

    # Config: clean, explicit, class-based
    app.config.from_object(get_config())

    # --- Required env validation for prod-like envs (staging/production) ---
    def _require(name: str):
        val = os.getenv(name) or app.config.get(name)
        if not val:
            raise RuntimeError(f"Missing required environment variable: {name}")
        return val

    if app_env in ("staging", "production"):
        # Enforce hard requirements at startup (not at import time)
        _require("SECRET_KEY")
        _require("DATABASE_URL")
        _require("APP_BASE_URL")
        _require("EMAIL_WEBHOOK_SECRET")

    init_logging(app)
    init_sentry(app)

    # Apply HTTPS, HSTS & CSP only in staging/production
    if app_env in ("staging", "production"):
        init_security(app)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    mail.init_app(app)

    # Models register their tables + login loaders on import
    from . import models  # noqa: F401

    # Outbox delivery pool (per app)
    from .services.dispatch import init_dispatch
    init_dispatch(app)

    # Blueprints (explicit, consistent prefixes)
    from .blueprints.auth import bp as auth_bp
    from .blueprints.feedback import bp as feedback_bp
    from .blueprints.projects import bp as projects_bp
    from .blueprints.webhooks import bp as webhooks_bp

    app.register_blueprint(auth_bp, url_prefix=f"{API_PREFIX}/auth")
    app.register_blueprint(feedback_bp, url_prefix=API_PREFIX)
    app.register_blueprint(projects_bp, url_prefix=API_PREFIX)
    app.register_blueprint(webhooks_bp, url_prefix=f"{API_PREFIX}/webhooks")

    # Health
    @app.get("/healthz")
    @app.get(f"{API_PREFIX}/healthz")
    @limiter.exempt
    def healthz():
        return {"status": "ok"}, 200

    register_error_handlers(app)

    # CLI commands (ops-grade utilities)
    from .cli import register_cli
    register_cli(app)

    return app
