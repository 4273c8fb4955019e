import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent / ".env")


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _get_int(name: str, fallback: int) -> int:
    raw_value = os.getenv(name)
    if not raw_value:
        return fallback
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw_value!r}") from exc
    if value < 1:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def _get_origins() -> List[str]:
    raw_value = os.getenv("ALLOWED_ORIGINS", "*")
    return [origin.strip() for origin in raw_value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    supabase_url: str = _require_env("SUPABASE_URL")
    supabase_service_role_key: str = _require_env("SUPABASE_SERVICE_ROLE_KEY")
    # Order ids are drawn from [0, order_id_upper_bound).
    order_id_upper_bound: int = _get_int("ORDER_ID_UPPER_BOUND", 1_000_000)
    order_id_max_attempts: int = _get_int("ORDER_ID_MAX_ATTEMPTS", 10)
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    allowed_origins: List[str] = field(default_factory=_get_origins)


settings = Settings()
