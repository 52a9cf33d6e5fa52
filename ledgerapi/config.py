from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="ledgerapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Points Ledger API"
    PROJECT_NAME: str = "Points Ledger API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "ledger"
    POSTGRES_SCHEMA: str = "public"

    # 설정 시 POSTGRES_* 조합보다 우선
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_STATEMENT_TIMEOUT_MS: int = 10000  # 단일 SQL 실행 제한
    DB_LOCK_TIMEOUT_MS: int = 5000  # 행 잠금 대기 제한

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security
    SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Timezone - 체크인 "오늘" 판정 기준
    TIMEZONE: str = "Asia/Shanghai"

    # Referral
    REFERRAL_CODE_LENGTH: int = 8
    REFERRAL_CODE_MAX_ATTEMPTS: int = 5
    REFERRAL_COMMISSION_ENABLED: bool = True
    REFERRAL_FIRST_RATE: float = 0.10
    REFERRAL_RENEWAL_RATE: float = 0.0  # system_settings 에 값이 없을 때 기본값

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100


settings = Settings()
