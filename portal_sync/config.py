"""Application configuration."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # SugarCRM (source)
    sugarcrm_api_url: Optional[str] = None
    sugarcrm_username: Optional[str] = None
    sugarcrm_password: Optional[str] = None
    sugarcrm_password_enc: Optional[str] = None
    sugarcrm_client_id: str = "sugar"
    sugarcrm_platform: str = "base"

    # Portal (destination)
    portal_base_url: str = "http://localhost:3001"
    portal_username: str = "admin"
    portal_password: Optional[str] = None
    portal_password_enc: Optional[str] = None
    portal_token_ttl_seconds: int = 3600

    # Secret decryption (RSA-OAEP, SHA-256)
    rsa_private_key: Optional[str] = None
    rsa_private_key_path: Optional[str] = None
    rsa_public_key_path: Optional[str] = None

    # Storage
    database_url: str = "sqlite:///./data/integration_logs.db"
    checkpoint_backend: str = "file"
    checkpoint_path: str = "data/integration_last_sync.json"
    field_mappings_path: str = "config/field_mappings.json"

    # Logging
    log_enabled: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"

    # HTTP
    http_timeout_seconds: float = 30.0


settings = Settings()
