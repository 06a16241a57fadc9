from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API Settings
    PROJECT_NAME: str = "Bursar API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "School fee, expense and payroll obligations with a transaction ledger"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "bursar"

    # JWT
    SECRET_KEY: str = "change-this-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Ledger
    LEDGER_APPEND_TIMEOUT_SECONDS: float = 5.0

    # Enrollment
    DEFAULT_ADMISSION_FEE: Decimal = Decimal("5000")
    DEFAULT_TUITION_FEE: Decimal = Decimal("3000")
    DEFAULT_STUDENT_PASSWORD: str = "Student@123"

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
