from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    fee_backend_url: str = Field(..., alias="FEE_BACKEND_URL")
    fee_backend_timeout_seconds: float = Field(30.0, alias="FEE_BACKEND_TIMEOUT_SECONDS")
    institution_type: str = Field("college", alias="INSTITUTION_TYPE")  # school, college

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("text", alias="LOG_FORMAT")  # text, json

    display_locale: str = Field("en-IN", alias="DISPLAY_LOCALE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
