from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    # App
    app_name: str = "Governance Approvals"
    debug: bool = False

    # Database
    database_url: str = "sqlite:///./governance.db"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "./logs"
    log_to_file: bool = False

    # Approval engine
    decision_reason_max_length: int = Field(5000, gt=0)
    events_page_limit: int = Field(250, ge=10, le=500)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
