#!/usr/bin/env python3
"""
Environment-driven configuration.

Values come from os.environ, optionally pre-loaded from a config.env file
next to the code (KEY=VALUE or Windows-style "set KEY=VALUE" lines).
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

CONFIG_ENV_PATH = Path(__file__).parent / "config.env"


class ConfigError(Exception):
    """Missing or inconsistent configuration."""


def load_env_file(path=CONFIG_ENV_PATH, override: bool = False) -> int:
    """
    Load KEY=VALUE lines into os.environ. Returns the number of keys set.

    Existing environment variables win unless override is True.
    """
    path = Path(path)
    if not path.exists():
        return 0

    count = 0
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or line.lower().startswith("rem "):
                continue
            if line.lower().startswith("set "):
                line = line[4:]
            if "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if not key:
                continue
            if override or key not in os.environ:
                os.environ[key] = value
                count += 1
    logging.debug("Loaded %d settings from %s", count, path)
    return count


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    ledger_backend: str = "sheets"
    google_sheet_id: Optional[str] = None
    ledger_workbook_path: Optional[str] = None

    google_service_account_file: Optional[str] = None
    google_client_email: Optional[str] = None
    google_private_key: Optional[str] = None

    storage_backend: str = "drive"
    drive_folder_id: Optional[str] = None
    drive_archive_folder_id: Optional[str] = None
    r2_account_id: Optional[str] = None
    r2_access_key_id: Optional[str] = None
    r2_secret_access_key: Optional[str] = None
    r2_bucket_name: Optional[str] = None
    r2_incoming_prefix: str = "incoming/"
    r2_archive_prefix: str = "archive/"

    shopify_store_domain: str = ""
    shopify_admin_token: str = ""
    shopify_api_version: str = "2025-07"
    shopify_location_id: Optional[str] = None

    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    default_vendor: str = "Pleasant"

    app_base_url: str = "http://localhost:8080"
    port: int = 8080
    log_level: str = "INFO"
    async_jobs_enabled: bool = False
    jobs_db_path: Optional[str] = None
    worker_poll_interval: int = 2
    worker_stale_job_timeout: int = 600


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigError: listing every missing required variable
    """
    if env is None:
        load_env_file()
        env = os.environ

    def get(name: str, default: Optional[str] = None) -> Optional[str]:
        value = env.get(name)
        if value is None or not str(value).strip():
            return default
        return str(value).strip()

    missing: List[str] = []

    def require(name: str) -> str:
        value = get(name)
        if value is None:
            missing.append(name)
            return ""
        return value

    ledger_backend = (get("LEDGER_BACKEND", "sheets") or "sheets").lower()
    storage_backend = (get("STORAGE_BACKEND", "drive") or "drive").lower()
    if ledger_backend not in ("sheets", "workbook"):
        raise ConfigError(f"LEDGER_BACKEND must be 'sheets' or 'workbook', got {ledger_backend!r}")
    if storage_backend not in ("drive", "r2"):
        raise ConfigError(f"STORAGE_BACKEND must be 'drive' or 'r2', got {storage_backend!r}")

    if ledger_backend == "sheets":
        require("GOOGLE_SHEET_ID")
    else:
        require("LEDGER_WORKBOOK_PATH")

    if storage_backend == "drive":
        require("GOOGLE_DRIVE_FOLDER_ID")
        require("GOOGLE_DRIVE_ARCHIVE_FOLDER_ID")
    else:
        for name in ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET_NAME"):
            require(name)

    require("SHOPIFY_STORE_DOMAIN")
    require("SHOPIFY_ADMIN_TOKEN")
    require("ANTHROPIC_API_KEY")

    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

    client_email = get("GOOGLE_CLIENT_EMAIL")
    private_key = get("GOOGLE_PRIVATE_KEY")
    if bool(client_email) != bool(private_key):
        raise ConfigError("GOOGLE_CLIENT_EMAIL and GOOGLE_PRIVATE_KEY must be set together")

    try:
        port = int(get("PORT", "8080"))
        poll_interval = int(get("WORKER_POLL_INTERVAL", "2"))
        stale_timeout = int(get("WORKER_STALE_JOB_TIMEOUT", "600"))
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    return Settings(
        ledger_backend=ledger_backend,
        google_sheet_id=get("GOOGLE_SHEET_ID"),
        ledger_workbook_path=get("LEDGER_WORKBOOK_PATH"),
        google_service_account_file=get("GOOGLE_SERVICE_ACCOUNT_FILE"),
        google_client_email=client_email,
        google_private_key=private_key,
        storage_backend=storage_backend,
        drive_folder_id=get("GOOGLE_DRIVE_FOLDER_ID"),
        drive_archive_folder_id=get("GOOGLE_DRIVE_ARCHIVE_FOLDER_ID"),
        r2_account_id=get("R2_ACCOUNT_ID"),
        r2_access_key_id=get("R2_ACCESS_KEY_ID"),
        r2_secret_access_key=get("R2_SECRET_ACCESS_KEY"),
        r2_bucket_name=get("R2_BUCKET_NAME"),
        r2_incoming_prefix=get("R2_INCOMING_PREFIX", "incoming/"),
        r2_archive_prefix=get("R2_ARCHIVE_PREFIX", "archive/"),
        shopify_store_domain=get("SHOPIFY_STORE_DOMAIN"),
        shopify_admin_token=get("SHOPIFY_ADMIN_TOKEN"),
        shopify_api_version=get("SHOPIFY_API_VERSION", "2025-07"),
        shopify_location_id=get("SHOPIFY_LOCATION_ID"),
        anthropic_api_key=get("ANTHROPIC_API_KEY"),
        anthropic_model=get("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
        default_vendor=get("DEFAULT_VENDOR", "Pleasant"),
        app_base_url=get("APP_BASE_URL", "http://localhost:8080"),
        port=port,
        log_level=(get("LOG_LEVEL", "INFO") or "INFO").upper(),
        async_jobs_enabled=_flag(get("ASYNC_JOBS_ENABLED")),
        jobs_db_path=get("JOBS_DB_PATH"),
        worker_poll_interval=poll_interval,
        worker_stale_job_timeout=stale_timeout,
    )
