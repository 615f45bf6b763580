import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    low_stock_threshold: int
    items_page_size: int
    items_max_page_size: int
    qr_base_url: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///truinventory.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        low_stock_threshold=_getenv_int("LOW_STOCK_THRESHOLD", 5),
        items_page_size=_getenv_int("ITEMS_PAGE_SIZE", 10),
        items_max_page_size=_getenv_int("ITEMS_MAX_PAGE_SIZE", 100),
        qr_base_url=_getenv("QR_BASE_URL", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "LOW_STOCK_THRESHOLD": s.low_stock_threshold,
        "ITEMS_PAGE_SIZE": s.items_page_size,
        "ITEMS_MAX_PAGE_SIZE": s.items_max_page_size,
        "QR_BASE_URL": s.qr_base_url,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON bodies only; 1MB is plenty
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
