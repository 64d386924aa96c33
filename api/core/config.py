"""
Environment-driven settings.

Every setting is a small function so values are read at call time; tests can
monkeypatch the environment without reloading modules.
"""

from __future__ import annotations

import os

DEFAULT_INFERENCE_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_INFERENCE_MODEL = "@cf/meta/llama-3-8b-instruct"


def _env_str(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_choice(name: str, default: str, choices: set[str]) -> str:
    value = _env_str(name, default).lower()
    if value not in choices:
        raise RuntimeError(f"Invalid {name}={value!r}. Allowed: {sorted(choices)}")
    return value


def cf_account_id() -> str:
    return _env_str("CF_ACCOUNT_ID")


def cf_api_token() -> str:
    return _env_str("CF_API_TOKEN")


def inference_base_url() -> str:
    return _env_str("INFERENCE_BASE_URL", DEFAULT_INFERENCE_BASE_URL)


def inference_model() -> str:
    return _env_str("INFERENCE_MODEL", DEFAULT_INFERENCE_MODEL)


def inference_timeout_s() -> float:
    return _env_float("INFERENCE_TIMEOUT_S", 60.0)


def blob_backend() -> str:
    return _env_choice("BLOB_BACKEND", "local", {"local", "postgres"})


def blob_directory() -> str:
    return _env_str("BLOB_DIRECTORY", "./data/blobs")


def checkpoint_backend() -> str:
    return _env_choice("CHECKPOINT_BACKEND", "memory", {"memory", "postgres"})


def uses_postgres() -> bool:
    return blob_backend() == "postgres" or checkpoint_backend() == "postgres"


def db_pool_min_size() -> int:
    return max(1, _env_int("DB_POOL_MIN_SIZE", 1))


def db_pool_max_size() -> int:
    return max(db_pool_min_size(), _env_int("DB_POOL_MAX_SIZE", 5))


def persist_retry_limit() -> int:
    return max(1, _env_int("PERSIST_RETRY_LIMIT", 3))


def persist_retry_delay_s() -> float:
    return max(0.0, _env_float("PERSIST_RETRY_DELAY_S", 5.0))


def persist_timeout_s() -> float:
    return max(1.0, _env_float("PERSIST_TIMEOUT_S", 300.0))


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO").upper()
