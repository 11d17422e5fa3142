import json
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Call Sync"
    database_url: str = "sqlite:///./callsync.db"
    redis_url: str = "redis://redis:6379/0"
    publish_events: bool = True
    cors_origins: List[str] = ["http://localhost:5173"]
    log_level: str = "INFO"
    port: int = 3001

    elevenlabs_api_key: Optional[str] = None
    elevenlabs_api_url: str = "https://api.elevenlabs.io/v1"
    elevenlabs_page_size: int = 100

    voximplant_account_id: Optional[str] = None
    voximplant_api_key: Optional[str] = None
    voximplant_api_url: str = "https://api.voximplant.com/platform_api"
    voximplant_sync_lookback_days: int = 7
    voximplant_sync_count: int = 100
    voximplant_query_lookback_days: int = 30
    voximplant_query_count: int = 1000

    http_timeout_seconds: float = 30.0
    scheduler_backend: str = "inline"
    sync_interval_seconds: int = 900
    sync_max_pages: int = 50
    match_window_seconds: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_parse_json=False,
    )

    @field_validator("cors_origins", mode="before")
    def parse_cors_origins(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            cleaned = value.strip()
            if cleaned == "":
                return []
            if cleaned.startswith("["):
                return json.loads(cleaned)
            return [item.strip() for item in cleaned.split(",") if item.strip()]
        return [str(value)]

    @field_validator(
        "elevenlabs_api_key", "voximplant_account_id", "voximplant_api_key", mode="before"
    )
    def blank_as_missing(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("scheduler_backend")
    def check_scheduler_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in {"inline", "celery", "off"}:
            raise ValueError("scheduler_backend must be one of inline, celery, off")
        return value


settings = Settings()
