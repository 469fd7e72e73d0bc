"""Application configuration."""
from collections import Counter
from functools import lru_cache
import math

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

WEAK_SECRET_VALUES = {"changeme", "changeme-in-production", "secret", "password", "test"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "VidTube"
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    # Database
    database_url: str = "sqlite:///./data/vidtube.db"

    # Auth
    access_token_secret: str
    refresh_token_secret: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 10
    access_cookie_name: str = "accessToken"
    refresh_cookie_name: str = "refreshToken"
    cookie_samesite: str = "lax"
    cookie_secure: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("access_token_secret", "refresh_token_secret")
    @classmethod
    def validate_token_secret(cls, value: str, info) -> str:
        """Fail closed if a signing secret is weak or placeholder quality."""
        name = info.field_name.upper()
        if not value:
            raise ValueError(f"{name} must be set.")

        if len(value) < 32:
            raise ValueError(f"{name} must be at least 32 characters.")

        lowered = value.lower()
        if lowered in WEAK_SECRET_VALUES or "changeme" in lowered:
            raise ValueError(f"{name} must not be a placeholder value.")

        counts = Counter(value)
        entropy_per_char = -sum((count / len(value)) * math.log2(count / len(value)) for count in counts.values())
        estimated_entropy_bits = entropy_per_char * len(value)
        if estimated_entropy_bits < 100:
            raise ValueError(f"{name} entropy is too low; use a cryptographically random value.")

        return value

    @model_validator(mode="after")
    def validate_distinct_secrets(self) -> "Settings":
        """Access and refresh tokens must not share a signing secret."""
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")
        return self

    @property
    def refresh_token_max_age(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60

    @property
    def access_token_max_age(self) -> int:
        return self.access_token_expire_minutes * 60


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
