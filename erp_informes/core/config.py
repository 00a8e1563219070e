from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator


class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'erp_user'
    POSTGRES_PASSWORD: str = 'erp_pass'
    POSTGRES_DB: str = 'erp_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432

    # Redis settings
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # Informes engine
    INFORMES_DEFAULT_PAGE_SIZE: int = 100
    INFORMES_MAX_PAGE_SIZE: int = 1000
    INFORMES_EXPORT_MAX_ROWS: int = 10000
    INFORMES_RETRY_ATTEMPTS: int = 3
    INFORMES_RETRY_BACKOFF: float = 0.5  # segundos, se duplica en cada intento
    INFORMES_EXECUTION_TIMEOUT: float = 30.0  # segundos

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def async_database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)


settings = Settings()
