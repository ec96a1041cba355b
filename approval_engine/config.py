from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Approval Engine"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    database_url: str = "postgresql+asyncpg://approvals:approvals@db:5432/approvals"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    default_approval_mode: str = "MANAGER_AND_GM"
    admin_list_default_limit: int = 200
    admin_list_max_limit: int = 1000

    notify_timeout_seconds: float = 5.0
    telegram_bot_token: str = ""
    telegram_admin_chat_ids: list[str] = []
    # login id -> Telegram chat id, e.g. TELEGRAM_USER_CHAT_IDS='{"u1": "300"}'
    telegram_user_chat_ids: dict[str, str] = {}


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
