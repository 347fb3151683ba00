"""Application settings.

Reads configuration from environment variables, loading a .env file at the
repository root first if one exists.

Variables:
- FAST_API_BASE_URL / FAST_API_USERNAME / FAST_API_PASSWORD: accounting gateway
- LOYALTY_API_BASE_URL: catalog and department lookups
- AUDIT_STORE_PATH: JSON audit store file (default data/audit_records.json)
- BATCH_CONCURRENCY: concurrent orders per batch (default 5)
- HTTP_TIMEOUT_SECONDS: transport timeout (default 30)
- LOG_LEVEL / LOG_JSON: logging setup
- TEMPORAL_ADDRESS / TEMPORAL_NAMESPACE / TEMPORAL_TASK_QUEUE: Temporal worker
- TEMPORAL_API_KEY: hosted Temporal namespaces (read by temporal_client)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_PATH = Path(__file__).resolve().parents[1]
ENV_PATH = ROOT_PATH / ".env"

DEFAULT_AUDIT_PATH = "data/audit_records.json"
DEFAULT_BATCH_CONCURRENCY = 5
DEFAULT_TASK_QUEUE = "order-submission-queue"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class Settings:
    """Runtime settings."""
    fast_base_url: Optional[str] = None
    fast_username: Optional[str] = None
    fast_password: Optional[str] = None
    loyalty_base_url: Optional[str] = None
    audit_store_path: str = DEFAULT_AUDIT_PATH
    batch_concurrency: int = DEFAULT_BATCH_CONCURRENCY
    http_timeout_seconds: int = 30
    log_level: str = "INFO"
    log_json: bool = False
    temporal_address: str = "localhost:7233"
    temporal_namespace: str = "default"
    temporal_task_queue: str = DEFAULT_TASK_QUEUE

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

    @property
    def audit_path(self) -> Path:
        path = Path(self.audit_store_path)
        return path if path.is_absolute() else ROOT_PATH / path


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """
    Load settings from the environment.

    Args:
        env_file: Optional .env file (defaults to the repo root .env)

    Raises:
        ValueError: If a numeric variable is malformed or concurrency < 1
    """
    env_path = env_file or ENV_PATH
    if env_path.exists():
        load_dotenv(env_path)

    concurrency = _env_int("BATCH_CONCURRENCY", DEFAULT_BATCH_CONCURRENCY)
    if concurrency < 1:
        raise ValueError("BATCH_CONCURRENCY must be at least 1")

    return Settings(
        fast_base_url=os.getenv("FAST_API_BASE_URL"),
        fast_username=os.getenv("FAST_API_USERNAME"),
        fast_password=os.getenv("FAST_API_PASSWORD"),
        loyalty_base_url=os.getenv("LOYALTY_API_BASE_URL"),
        audit_store_path=os.getenv("AUDIT_STORE_PATH", DEFAULT_AUDIT_PATH),
        batch_concurrency=concurrency,
        http_timeout_seconds=_env_int("HTTP_TIMEOUT_SECONDS", 30),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=_env_bool("LOG_JSON"),
        temporal_address=os.getenv("TEMPORAL_ADDRESS", "localhost:7233"),
        temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
        temporal_task_queue=os.getenv("TEMPORAL_TASK_QUEUE", DEFAULT_TASK_QUEUE),
    )
