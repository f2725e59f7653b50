from pydantic_settings import BaseSettings
from functools import lru_cache
import os


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: list[str] = ["*"]

    # Browser defaults
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    page_load_timeout: int = 30000  # milliseconds
    operation_timeout: int = 30000  # milliseconds, any other page call made under a session lock
    interaction_settle_ms: int = 250
    screenshot_max_width: int = 0  # 0 = send screenshots at full size

    # Sessions idle longer than this are closed by the monitor
    session_ttl_minutes: int = 30
    session_sweep_interval: int = 300  # seconds

    og_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0.0.0 Safari/537.36"
    )

    class Config:
        # Look for .env in the repo root (two levels up from backend/app/)
        # In containers env vars are injected directly, .env is optional
        _env_path = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
        env_file = _env_path if os.path.exists(_env_path) else None
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings():
    return Settings()
