"""
KV Store Service Configuration

Settings for the HTTP service that exposes a document store. All values can
be set via environment variables (prefix KVS_) or a .env file.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KVServiceConfig(BaseSettings):
    """
    KV Store Service Configuration

    Example: KVS_BACKEND=mysql KVS_MYSQL_PORT=33061 uvicorn src.kvs.service.kv_service:app
    """

    model_config = SettingsConfigDict(
        env_prefix="KVS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========== Service ==========
    host: str = Field(default="0.0.0.0", description="KV service host address")
    port: int = Field(default=8101, description="KV service port")

    # ========== Backend ==========
    backend: str = Field(default="memory", description="Document store backend: memory | mysql")
    mysql_host: str = Field(default="127.0.0.1")
    mysql_port: int = Field(default=33061)
    mysql_user: str = Field(default="root")
    mysql_password: str = Field(default="1234")
    mysql_database: str = Field(default="kv_db")
    mysql_table: str = Field(default="KV_DOCS")

    log_level: str = Field(default="INFO", description="Logging level")


config = KVServiceConfig()


def get_config() -> KVServiceConfig:
    return config
