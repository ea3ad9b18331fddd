"""Application configuration via environment variables."""
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "EventDesk"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Public URL used to build registration deep links
    base_url: str = "http://localhost:5173"

    # Identity is established upstream; the gateway forwards the user id here
    identity_header: str = "X-User-Id"

    # Database
    database_url: str = "sqlite:///./eventdesk.db"
    store_timeout_seconds: float = 5.0
    store_write_retries: int = 2

    # Invitations
    invite_token_policy: Literal["single_use", "multi_use"] = "single_use"

    # Outbound email relay
    relay_url: str = "http://localhost:3000/send-invite"
    relay_timeout_seconds: float = 10.0
    relay_retries: int = 2

    # Live subscriptions
    subscription_timeout_seconds: float = 5.0
    subscription_retries: int = 2

    # SMTP (used by the relay service)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_use_tls: bool = True

    # Notifications
    notification_ttl_seconds: int = 5
    housekeeping_interval_minutes: int = 1


settings = Settings()
