from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Tournament Dashboard Metrics API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Empty string = "not set". The validator below rejects a blank value so
    # a missing env var aborts startup with a clear error message.
    DATABASE_URL: str = ""

    LOG_LEVEL: str = "INFO"

    # Comma-separated string of allowed CORS origins, "*" for any origin.
    # Kept as str to avoid pydantic-settings attempting JSON parsing on list fields.
    ALLOWED_ORIGINS: str = "*"

    # slowapi rate limit string applied to every /api/metrics route
    METRICS_RATE_LIMIT: str = "60/minute"
    RATE_LIMIT_ENABLED: bool = True

    # Column used to place a row in a calendar month
    DEFAULT_DATE_COLUMN: str = "created_at"

    HOST: str = "0.0.0.0"
    PORT: int = 3000

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("DATABASE_URL")
    @classmethod
    def database_url_must_be_async(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("DATABASE_URL is required")
        # Accept the plain scheme most hosting dashboards hand out.
        if v.startswith("postgresql://"):
            v = v.replace("postgresql://", "postgresql+asyncpg://", 1)
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError(
                "DATABASE_URL must use the 'postgresql+asyncpg://' scheme "
                f"(or 'sqlite+aiosqlite://' for local runs). Got: '{v}'"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = (v or "INFO").upper()
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
        if level not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(valid)}")
        return level

    @field_validator("DEFAULT_DATE_COLUMN")
    @classmethod
    def date_column_must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("DEFAULT_DATE_COLUMN must not be empty")
        return v.strip()

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()] or ["*"]


settings = Settings()
