"""
Transaction Coordinator Configuration

This module provides configuration management for the coordinator, the
cleanup sweeper and the coordinator service using Pydantic Settings.
All configuration values can be set via environment variables (prefix TXN_)
or .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TxnConfig(BaseSettings):
    """
    Transaction Coordinator Configuration

    All settings can be overridden via environment variables.
    Example: TXN_MAX_ATTEMPTS=20 TXN_TIMEOUT_S=5 uvicorn src.tc.main:app
    """

    model_config = SettingsConfigDict(
        env_prefix="TXN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========== Retry Policy ==========
    max_attempts: int = Field(
        default=10,
        description="Maximum number of attempts per transaction"
    )
    timeout_s: float = Field(
        default=15.0,
        description="Wall-clock budget of a transaction in seconds"
    )
    backoff_base_s: float = Field(
        default=0.001,
        description="Backoff before the second attempt; doubles per retry"
    )
    backoff_max_s: float = Field(
        default=0.1,
        description="Upper bound for the backoff between attempts"
    )

    # ========== Cleanup ==========
    cleanup_enabled: bool = Field(
        default=True,
        description="Run the cleanup sweeper in the background"
    )
    cleanup_interval_s: float = Field(
        default=10.0,
        description="Seconds between two sweeps"
    )
    cleanup_grace_s: float = Field(
        default=5.0,
        description="An entry is stale once its deadline is this far in the past"
    )
    log_retention_s: float = Field(
        default=3600.0,
        description="Terminal log entries older than this are reaped (0 disables)"
    )

    # ========== Document Store ==========
    kv_backend: str = Field(
        default="memory",
        description="Document store adapter: memory | mysql | http"
    )
    kv_base_url: str = Field(
        default="http://localhost:8101",
        description="KV store service base URL (http backend)"
    )

    # ========== Transaction Log ==========
    txn_log_backend: str = Field(
        default="memory",
        description="Transaction log: memory | file | mysql"
    )
    txn_log_path: str = Field(
        default="txn_state/txn_log.json",
        description="State file of the file-backed transaction log"
    )

    # ========== MySQL ==========
    mysql_host: str = Field(default="127.0.0.1")
    mysql_port: int = Field(default=33061)
    mysql_user: str = Field(default="root")
    mysql_password: str = Field(default="1234")
    mysql_database: str = Field(default="kv_db")
    mysql_kv_table: str = Field(default="KV_DOCS")
    mysql_log_table: str = Field(default="TXN_LOG")

    # ========== HTTP Timeout Configuration ==========
    http_connect_timeout: float = Field(
        default=5,
        description="HTTP connection timeout in seconds"
    )
    http_read_timeout: float = Field(
        default=30,
        description="HTTP read timeout in seconds"
    )

    # ========== Coordinator Service ==========
    tc_host: str = Field(default="0.0.0.0", description="Coordinator service host")
    tc_port: int = Field(default=8100, description="Coordinator service port")

    # ========== Logging Configuration ==========
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )


# Global configuration instance
config = TxnConfig()


def get_config() -> TxnConfig:
    """
    Get the global configuration instance.

    Returns:
        TxnConfig: The global configuration instance
    """
    return config
