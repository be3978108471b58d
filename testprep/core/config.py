"""
Configuration management using Pydantic settings.
"""
from typing import List, Union
import os
from pydantic import field_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
load_dotenv()



class Settings(BaseSettings):
    """Application settings."""

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Test Prep Attempt Engine"
    ENV: str = os.getenv("ENV", "development")
    DEBUG: bool = True

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./testprep.db")

    # JWT Configuration
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Attempt rules
    FREE_TEST_LIMIT: int = int(os.getenv("FREE_TEST_LIMIT", 2))
    ATTEMPT_GRACE_SECONDS: int = int(os.getenv("ATTEMPT_GRACE_SECONDS", 30))
    ENFORCE_QUESTION_QUOTA: bool = os.getenv("ENFORCE_QUESTION_QUOTA", "false").lower() == "true"

    # Payments / Razorpay
    DEFAULT_SUBSCRIPTION_DAYS: int = 30
    PAYMENT_CURRENCY: str = os.getenv("PAYMENT_CURRENCY", "INR")
    RAZORPAY_KEY_ID: str = os.getenv("RAZORPAY_KEY_ID", "")
    RAZORPAY_KEY_SECRET: str = os.getenv("RAZORPAY_KEY_SECRET", "")
    RAZORPAY_WEBHOOK_SECRET: str = os.getenv("RAZORPAY_WEBHOOK_SECRET", "")
    RAZORPAY_API_BASE: str = os.getenv("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")
    RAZORPAY_TIMEOUT_SECONDS: float = float(os.getenv("RAZORPAY_TIMEOUT_SECONDS", 10))

    # CORS Configuration
    BACKEND_CORS_ORIGINS: Union[List[str], str] = "*"

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if v == "*" or v == ["*"]:
            return "*"
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
