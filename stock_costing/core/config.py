"""
Stock Costing Configuration
Core settings for the stock ledger and process costing engine
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List


NEGATIVE_STOCK_POLICIES = ("allow", "warn", "block")
QUEUE_SHORTFALL_POLICIES = ("zero_cost", "raise")


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application Info
    APP_NAME: str = "Stock Costing Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./stock_costing.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"

    # Financial Precision
    CURRENCY_DECIMAL_PLACES: int = 2
    QUANTITY_DECIMAL_PLACES: int = 3
    RATE_DECIMAL_PLACES: int = 4

    # Valuation policy
    DEFAULT_VALUATION_METHOD: str = "Weighted Average"
    NEGATIVE_STOCK_POLICY: str = "warn"
    QUEUE_SHORTFALL_POLICY: str = "zero_cost"
    AUTO_REPOST_BACKDATED: bool = True

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    OPENAPI_URL: str = "/openapi.json"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    @field_validator("NEGATIVE_STOCK_POLICY", mode="before")
    @classmethod
    def check_negative_stock_policy(cls, v: str) -> str:
        """Normalise and validate the negative stock policy"""
        value = str(v).strip().lower()
        if value not in NEGATIVE_STOCK_POLICIES:
            raise ValueError(f"NEGATIVE_STOCK_POLICY must be one of {NEGATIVE_STOCK_POLICIES}")
        return value

    @field_validator("QUEUE_SHORTFALL_POLICY", mode="before")
    @classmethod
    def check_shortfall_policy(cls, v: str) -> str:
        """Normalise and validate the FIFO/LIFO shortfall policy"""
        value = str(v).strip().lower()
        if value not in QUEUE_SHORTFALL_POLICIES:
            raise ValueError(f"QUEUE_SHORTFALL_POLICY must be one of {QUEUE_SHORTFALL_POLICIES}")
        return value

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def coerce_log_dir(cls, v):
        return Path(v) if isinstance(v, str) else v


# Global settings instance
settings = Settings()

# Database connection string for SQLAlchemy
DATABASE_URL = settings.DATABASE_URL
