from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # App
    app_name: str = "CommonBot"

    # Platform
    chat_tool_type: str = "msteams"  # "msteams" (slack / mattermost not shipped)

    # MS Teams
    msteams_bot_id: str = ""
    msteams_access_token: Optional[str] = None  # Bearer token for the Bot Connector
    messaging_base_path: str = "/api/messages"

    # Delivery core
    directory_capacity: int = 1000  # 0 = unbounded
    endpoint_cache_capacity: int = 1000  # 0 = unbounded
    transport_timeout_seconds: float = 30.0
    error_reply_text: str = (
        "The bot encountered an error or bug. To continue to run this bot, "
        "please fix the bot source code."
    )

    # Logging
    structured_logging: bool = True  # JSON logs on stdout
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
