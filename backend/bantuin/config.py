import os


def _normalize_database_url(url: str) -> str:
    # Render/Heroku sometimes provide postgres:// which SQLAlchemy expects as postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _flag(name: str, default: str) -> bool:
    return (os.getenv(name, default) or default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Base directory of the backend (one level above this `bantuin` package)
    BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    INSTANCE_DIR = os.path.join(BACKEND_DIR, "instance")

    ENV_NAME = (os.getenv("BANTUIN_ENV", "dev") or "dev").strip().lower()
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    JWT_TTL_SECONDS = int(os.getenv("JWT_TTL_SECONDS", str(60 * 60 * 24 * 7)))

    _default_sqlite_path = os.path.join(INSTANCE_DIR, "bantuin.db").replace("\\", "/")
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(
        os.getenv("SQLALCHEMY_DATABASE_URI") or os.getenv("DATABASE_URL") or f"sqlite:///{_default_sqlite_path}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Dev convenience: create missing tables on first request (production uses migrations)
    AUTO_CREATE_TABLES = _flag("AUTO_CREATE_TABLES", "1")

    # CORS: comma-separated origins for web builds
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    # Midtrans Snap
    MIDTRANS_SERVER_KEY = os.getenv("MIDTRANS_SERVER_KEY", "")
    MIDTRANS_CLIENT_KEY = os.getenv("MIDTRANS_CLIENT_KEY", "")
    MIDTRANS_IS_PRODUCTION = _flag("MIDTRANS_IS_PRODUCTION", "0")
    # Reject webhooks whose signature_key does not verify. Turning this off only
    # logs the mismatch and keeps processing.
    MIDTRANS_WEBHOOK_STRICT = _flag("MIDTRANS_WEBHOOK_STRICT", "1")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    PLATFORM_FEE_RATE = os.getenv("PLATFORM_FEE_RATE", "0.10")
    PAYOUT_MIN_AMOUNT = os.getenv("PAYOUT_MIN_AMOUNT", "50000")


def check_production_config(config) -> None:
    """Refuse to boot a production app with placeholder secrets."""
    secret = (config.get("SECRET_KEY") or "").strip()
    if not secret or len(secret) < 16 or secret == "dev-secret-change-me":
        raise RuntimeError("SECRET_KEY must be set and at least 16 chars in production")
    if not (os.getenv("DATABASE_URL") or "").strip() and not (os.getenv("SQLALCHEMY_DATABASE_URI") or "").strip():
        raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URI) must be set in production")
    if not (config.get("MIDTRANS_SERVER_KEY") or "").strip():
        raise RuntimeError("MIDTRANS_SERVER_KEY must be set in production")
