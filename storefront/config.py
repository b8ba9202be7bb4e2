from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../storefront repo root
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v)


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    db_path: str
    guest_storage_dir: str
    guest_cart_key: str
    currency: str
    decimals: int
    session_cookie: str
    session_days: int
    api_base_url: str
    api_timeout: float
    super_admin_email: str
    super_admin_password: str
    host: str
    port: int
    log_level: str


settings = Settings(
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "storefront.db")),
    guest_storage_dir=_get_path("GUEST_STORAGE_DIR", default=str(ROOT_DIR / "data" / "local_storage")),
    guest_cart_key=_get_env("GUEST_CART_KEY", default="myEcomGuestCart") or "myEcomGuestCart",
    currency=_get_env("CURRENCY", default="IDR") or "IDR",
    decimals=_get_int("DECIMALS", default=0) or 0,
    session_cookie=_get_env("SESSION_COOKIE", default="storefront_session") or "storefront_session",
    session_days=_get_int("SESSION_DAYS", "SESSION_MAX_AGE_DAYS", default=30),
    api_base_url=_get_env("API_BASE_URL", default="http://127.0.0.1:8000") or "http://127.0.0.1:8000",
    api_timeout=_get_float("API_TIMEOUT", default=10.0),
    super_admin_email=_get_env("SUPER_ADMIN_EMAIL", default="") or "",
    super_admin_password=_get_env("SUPER_ADMIN_PASSWORD", default="") or "",
    host=_get_env("HOST", default="0.0.0.0") or "0.0.0.0",
    port=_get_int("PORT", default=8000) or 8000,
    log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
)

if settings.decimals < 0:
    raise RuntimeError("DECIMALS must be >= 0")
if settings.session_days <= 0:
    raise RuntimeError("SESSION_DAYS must be > 0. Set SESSION_DAYS in .env")
