from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("SRR_DB_PATH", "srr.db")
    resync_interval_s: int = _env_int("SRR_RESYNC_INTERVAL_S", 30)
    workers: int = _env_int("SRR_WORKERS", 4)
    reconcile_timeout_s: float = _env_float("SRR_RECONCILE_TIMEOUT_S", 10.0)
    start_workers: bool = _env_bool("SRR_START_WORKERS", True)
    write_log_size: int = _env_int("SRR_WRITE_LOG_SIZE", 1000)

    # Re-enqueue backoff for failed reconciles
    retry_base_s: float = _env_float("SRR_RETRY_BASE_S", 0.5)
    retry_max_s: float = _env_float("SRR_RETRY_MAX_S", 60.0)

    # Well-known location of the shared proxy tier's endpoints
    proxy_tier_namespace: str = os.getenv("SRR_PROXY_TIER_NAMESPACE", "srr-system")
    proxy_tier_name: str = os.getenv("SRR_PROXY_TIER_NAME", "activator-service")

    # API
    admin_user: str = os.getenv("SRR_ADMIN_USER", "admin")
    admin_pass: str = os.getenv("SRR_ADMIN_PASS", "admin")

    log_level: str = os.getenv("SRR_LOG_LEVEL", "INFO")


settings = Settings()


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure and return the application logger."""
    logger = logging.getLogger("srr")
    logger.setLevel((level or settings.log_level).upper())
    if not logger.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(console)
    return logger
