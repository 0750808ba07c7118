from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
import json


class Settings(BaseSettings):
    # Application Settings
    app_name: str = Field(default="Visitflow Scheduling API", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    ENVIRONMENT: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Server Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # Database Configuration
    DB_HOST: str = Field(default="localhost", alias="DB_HOST")
    DB_PORT: int = Field(default=5432, alias="DB_PORT")
    DB_NAME: str = Field(default="visitflow", alias="DB_NAME")
    DB_USER: str = Field(default="visitflow", alias="DB_USER")
    DB_PASSWORD: str = Field(default="visitflow", alias="DB_PASSWORD")
    database_url: Optional[str] = Field(default="sqlite:///./visitflow.db", alias="DATABASE_URL")

    # JWT Authentication
    JWT_SECRET: str = Field(default="change-this-secret-in-production", alias="JWT_SECRET")
    JWT_ALGORITHM: str = Field(default="HS256", alias="JWT_ALGORITHM")
    JWT_EXPIRATION_HOURS: int = Field(default=12, alias="JWT_EXPIRATION_HOURS")

    # Password Hashing
    bcrypt_rounds: int = Field(default=12, alias="BCRYPT_ROUNDS")

    # CORS Configuration
    API_CORS_ORIGINS: Optional[str] = Field(default=None, alias="API_CORS_ORIGINS")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", alias="LOG_FORMAT")

    # Capacity Rules
    capacity_warning_threshold: float = Field(default=80.0, alias="CAPACITY_WARNING_THRESHOLD")
    default_max_capacity: int = Field(default=100, alias="DEFAULT_MAX_CAPACITY")
    default_buffer_minutes: int = Field(default=15, alias="DEFAULT_BUFFER_MINUTES")
    past_request_grace_minutes: int = Field(default=5, alias="PAST_REQUEST_GRACE_MINUTES")
    past_start_tolerance_minutes: int = Field(default=30, alias="PAST_START_TOLERANCE_MINUTES")
    max_visit_duration_hours: int = Field(default=24, alias="MAX_VISIT_DURATION_HOURS")
    alternative_search_days: int = Field(default=7, alias="ALTERNATIVE_SEARCH_DAYS")
    max_alternative_slots: int = Field(default=5, alias="MAX_ALTERNATIVE_SLOTS")
    next_available_search_days: int = Field(default=30, alias="NEXT_AVAILABLE_SEARCH_DAYS")

    # Concurrency
    concurrency_max_retries: int = Field(default=3, alias="CONCURRENCY_MAX_RETRIES")
    invitation_number_max_attempts: int = Field(default=10, alias="INVITATION_NUMBER_MAX_ATTEMPTS")

    # Pagination
    default_page_size: int = Field(default=20, alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, alias="MAX_PAGE_SIZE")

    # Seed data
    seed_database: bool = Field(default=True, alias="SEED_DATABASE")

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if v.strip() == "*":
                return ["*"]
            try:
                return json.loads(v)
            except ValueError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def DATABASE_URL(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def database_echo(self) -> bool:
        return self.debug and self.is_development

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True


# Global settings instance
settings = Settings()
