from decimal import Decimal
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    # Either a full SQLAlchemy URL, or the POSTGRES_* parts below.
    DB_URL: Optional[str] = None
    postgres_user: Optional[str] = None
    postgres_password: Optional[str] = None
    postgres_db: Optional[str] = None
    postgres_host: Optional[str] = None
    postgres_port: str = "5432"

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""

    DOMESTIC_COUNTRY_ID: int = 1
    CURRENCY: str = "INR"
    FREE_SHIPPING_THRESHOLD: Optional[Decimal] = None
    WHATSAPP_NUMBER: str = "919000000000"
    PENDING_ORDER_TTL_MINUTES: int = 120

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def database_url(self):
        if self.DB_URL:
            return self.DB_URL

        if self.postgres_host and self.postgres_user and self.postgres_db:
            encoded_password = quote_plus(self.postgres_password or "")
            return (
                f"postgresql+psycopg2://{self.postgres_user}:"
                f"{encoded_password}@{self.postgres_host}:"
                f"{self.postgres_port}/{self.postgres_db}"
            )

        return "sqlite:///./storefront.db"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
