from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "EvalATS"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8788
    log_level: str = "INFO"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./data/evalats.db"
    data_dir: Path = Path("./data")
    blob_dir: Path = Path("./data/blobs")
    public_base_url: str = "http://127.0.0.1:8788"
    signed_url_ttl_sec: int = 900
    max_upload_bytes: int = 5 * 1024 * 1024
    download_timeout_sec: int = 30

    offer_required_approvals: int = 1
    default_feed_limit: int = 50
    default_task_limit: int = 100

    workday_start_hour: int = 9
    workday_end_hour: int = 17
    slot_minutes: int = 30

    company_name: str = "EvalATS"
    mail_from: str = "recruiting@evalats.local"

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_resume: str = "gpt-4o-mini"
    openai_timeout_sec: int = 60
    resume_ai_enabled: bool = True

    cors_origins: str = "http://127.0.0.1:8788"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("offer_required_approvals")
    @classmethod
    def validate_required_approvals(cls, value: int) -> int:
        if value < 1:
            raise ValueError("offer_required_approvals must be at least 1")
        return value

    @field_validator("workday_end_hour")
    @classmethod
    def validate_workday(cls, value: int) -> int:
        if value < 1 or value > 24:
            raise ValueError("workday_end_hour must be between 1 and 24")
        return value

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
