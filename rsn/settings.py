from __future__ import annotations

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


@dataclass(frozen=True)
class Settings:
    # Node identity
    instance_id: str = os.getenv("RSN_INSTANCE_ID", "SolrSlave_IN_0")
    address: str = os.getenv("RSN_ADDRESS", "127.0.0.1")
    port: int = _env_int("RSN_PORT", 8983)
    solr_major_version: str = os.getenv("RSN_SOLR_MAJOR_VERSION", "3")

    # Durable volume
    storage_backend: str = os.getenv("RSN_STORAGE_BACKEND", "local")  # local|docker
    storage_root: str = os.getenv("RSN_STORAGE_ROOT", "rsn-volumes")
    drive_size_mb: int = _env_int("RSN_DRIVE_SIZE_MB", 1024)
    cache_capacity_mb: int = _env_int("RSN_CACHE_CAPACITY_MB", 1074)

    # Server distribution and templates
    server_root: str = os.getenv("RSN_SERVER_ROOT", "approot")
    template_root: str = os.getenv("RSN_TEMPLATE_ROOT", os.path.join("approot", "SolrFiles"))
    java_path: str = os.getenv("RSN_JAVA", "java")
    core_name: str = os.getenv("RSN_CORE_NAME", "slaveCore")

    # Topology
    topology_url: str | None = os.getenv("RSN_TOPOLOGY_URL")
    master_url: str | None = os.getenv("RSN_MASTER_URL")
    master_file: str | None = os.getenv("RSN_MASTER_FILE")
    topology_timeout_s: int = _env_int("RSN_TOPOLOGY_TIMEOUT_S", 5)

    # Lifecycle
    poll_interval_s: int = _env_int("RSN_POLL_INTERVAL_S", 10)
    kill_timeout_s: int = _env_int("RSN_KILL_TIMEOUT_S", 2)
    recycle_mode: str = os.getenv("RSN_RECYCLE_MODE", "exit")  # exit|docker
    self_container_id: str | None = os.getenv("RSN_SELF_CONTAINER_ID", os.getenv("HOSTNAME"))

    # Status API (0 disables it)
    api_host: str = os.getenv("RSN_API_HOST", "0.0.0.0")
    api_port: int = _env_int("RSN_API_PORT", 0)

    # Diagnostics
    db_path: str = os.getenv("RSN_DB_PATH", "rsn.db")
    log_level: str = os.getenv("RSN_LOG_LEVEL", "INFO")
    enable_file_log: bool = _env_bool("RSN_ENABLE_FILE_LOG", True)

    # Email alerting (optional)
    enable_email: bool = _env_bool("RSN_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("RSN_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("RSN_SMTP_PORT", 587)
    smtp_timeout_s: int = _env_int("RSN_SMTP_TIMEOUT_S", 10)
    smtp_user: str | None = os.getenv("RSN_SMTP_USER")
    smtp_password: str | None = os.getenv("RSN_SMTP_PASSWORD")
    email_from: str | None = os.getenv("RSN_EMAIL_FROM")
    email_to: str | None = os.getenv("RSN_EMAIL_TO")


settings = Settings()
