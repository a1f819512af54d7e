from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "modulegate"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./modulegate.db"

    # Capability registry
    modules_path: str = "modules"
    capability_cache_ttl: int = 300  # seconds
    discovery_on_startup: bool = True

    # Security (token verification only; issuance happens upstream)
    secret_key: str = "dev-secret-key-change-in-production"
    algorithm: str = "HS256"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "/var/log/modulegate"
    log_to_file: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MODULEGATE_",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
