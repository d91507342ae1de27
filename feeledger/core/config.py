from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    data_backend: str = Field("remote", alias="DATA_BACKEND")  # remote, database
    data_service_url: str = Field("http://localhost:3001/api", alias="DATA_SERVICE_URL")
    data_service_timeout: float = Field(10.0, alias="DATA_SERVICE_TIMEOUT")
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")

    # Billing period the catalog and ledger are scoped to; unset means no scoping.
    current_term: Optional[str] = Field(None, alias="CURRENT_TERM")
    current_year: Optional[str] = Field(None, alias="CURRENT_YEAR")

    boarding_inherits_day_items: bool = Field(True, alias="BOARDING_INHERITS_DAY_ITEMS")
    infer_residence_scope_from_name: bool = Field(False, alias="INFER_RESIDENCE_SCOPE_FROM_NAME")

    retry_attempts: int = Field(3, alias="RETRY_ATTEMPTS")
    retry_backoff_base: float = Field(0.5, alias="RETRY_BACKOFF_BASE")
    retry_backoff_max: float = Field(8.0, alias="RETRY_BACKOFF_MAX")

    idempotency_window_seconds: int = Field(300, alias="IDEMPOTENCY_WINDOW_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
