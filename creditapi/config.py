from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerConfig(BaseModel):
    """원장 서비스 설정 - 시작 시 한 번 생성되어 각 서비스에 주입됨"""

    model_config = ConfigDict(frozen=True)

    registration_bonus: int = Field(100, ge=0, description="가입 시 지급 크레딧")
    low_balance_threshold: int = Field(20, ge=0, description="잔액 부족 경고 기준")
    max_single_operation_amount: int = Field(
        10_000, gt=0, description="단일 거래 최대 금액"
    )
    default_page_limit: int = Field(20, ge=1)
    max_page_limit: int = Field(100, ge=1)
    apply_max_attempts: int = Field(3, ge=1, le=10)
    usage_rate_days: int = Field(30, ge=1)
    audit_batch_size: int = Field(500, ge=1)
    large_operation_threshold: int = Field(500, ge=1)
    high_risk_operation_threshold: int = Field(2000, ge=1)
    export_limit: int = Field(1000, ge=1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="creditapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Credit Ledger API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "postgres"
    POSTGRES_SCHEMA: str = "public"

    # Full URL overrides the POSTGRES_* parts when set
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security
    SECRET_KEY: str = ""
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Ledger
    REGISTRATION_BONUS: int = 100
    LOW_BALANCE_THRESHOLD: int = 20
    MAX_SINGLE_OPERATION_AMOUNT: int = 10_000
    DEFAULT_PAGE_LIMIT: int = 20
    MAX_PAGE_LIMIT: int = 100
    APPLY_MAX_ATTEMPTS: int = 3
    USAGE_RATE_DAYS: int = 30
    AUDIT_BATCH_SIZE: int = 500
    LARGE_OPERATION_THRESHOLD: int = 500
    HIGH_RISK_OPERATION_THRESHOLD: int = 2000
    EXPORT_LIMIT: int = 1000

    def ledger_config(self) -> LedgerConfig:
        """환경 변수 기반 LedgerConfig 생성"""
        return LedgerConfig(
            registration_bonus=self.REGISTRATION_BONUS,
            low_balance_threshold=self.LOW_BALANCE_THRESHOLD,
            max_single_operation_amount=self.MAX_SINGLE_OPERATION_AMOUNT,
            default_page_limit=self.DEFAULT_PAGE_LIMIT,
            max_page_limit=self.MAX_PAGE_LIMIT,
            apply_max_attempts=self.APPLY_MAX_ATTEMPTS,
            usage_rate_days=self.USAGE_RATE_DAYS,
            audit_batch_size=self.AUDIT_BATCH_SIZE,
            large_operation_threshold=self.LARGE_OPERATION_THRESHOLD,
            high_risk_operation_threshold=self.HIGH_RISK_OPERATION_THRESHOLD,
            export_limit=self.EXPORT_LIMIT,
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
