from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "geodrop"
    app_env: str = "dev"
    log_level: str = "INFO"
    storage_dir: str = "uploads/blobs"
    database_path: str = "uploads/shares.db"
    max_upload_size_bytes: int = 50 * 1024 * 1024
    share_ttl_seconds: int = Field(default=86400, gt=0)
    radius_limit_meters: float = Field(default=100_000.0, gt=0)
    code_length: int = Field(default=8, ge=8)
    code_max_attempts: int = Field(default=10, ge=1)
    search_limit: int = Field(default=20, ge=1)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="GEODROP_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
