from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="LOGSTREAM_")

    log_level: str = "INFO"
    # Grace period between TASK_COMPLETE and closing the stream
    complete_close_delay_seconds: float = 2.0
    # None keeps channels open until closed or the client goes away
    channel_timeout_seconds: Optional[float] = None
    cors_allow_origins: list[str] = ["http://localhost:3000"]


settings = Settings()
