"""Application configuration settings."""

import re
from datetime import timedelta
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings

DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
DURATION_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "w": 7 * 24 * 60 * 60,
}


def parse_duration(value: str) -> timedelta:
    """Parse an expiry string such as "15m", "7d" or "3600" into a timedelta."""
    match = DURATION_PATTERN.match(str(value).lower())
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * DURATION_UNITS[unit])


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Chatspace API"
    app_env: str = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 5000

    # Database
    database_url: str = "sqlite+aiosqlite:///./chatspace.db"

    # JWT Authentication (two secrets: an access token never verifies as a refresh token)
    jwt_secret_key: str = "change-me-access-secret"
    jwt_refresh_secret_key: str = "change-me-refresh-secret"
    jwt_algorithm: str = "HS256"
    access_token_expiry: str = "15m"
    refresh_token_expiry: str = "7d"
    refresh_cookie_name: str = "refreshToken"

    # Identities
    admin_id: str = ""
    ai_assistant_id: str = "ai-assistant"
    ai_assistant_name: str = "AI Assistant"

    # LLM Configuration
    llm_provider: str = "groq"  # "groq", "openai" or "anthropic"
    groq_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    ai_model: str = "llama-3.1-8b-instant"
    ai_temperature: float = 0.3
    ai_max_tokens: int = 1024
    ai_system_prompt: str = "You are Alison A.I., a helpful assistant inside the Chatspace messenger."

    # Media storage (Cloudflare R2 / any S3-compatible host)
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = ""
    r2_public_url: str = ""
    upload_dir: str = "./uploads"

    # Limits
    max_upload_size_mb: int = 5
    max_json_body_mb: int = 2

    # CORS
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Base URL (for locally stored uploads) - set via BASE_URL env var in production
    base_url: str = "http://localhost:5000"

    # Security
    allowed_hosts: str = "*"
    # Reverse proxies whose X-Forwarded-For / X-Real-IP headers are honoured (comma-separated IPs)
    trusted_proxies: str = ""

    @field_validator("access_token_expiry", "refresh_token_expiry")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.access_token_expiry)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.refresh_token_expiry)

    @property
    def effective_base_url(self) -> str:
        """Get base URL, constructing from host/port if not explicitly set."""
        if self.base_url and self.base_url != "http://localhost:5000":
            return self.base_url.rstrip("/")
        scheme = "https" if self.is_production else "http"
        host = self.host if self.host != "0.0.0.0" else "localhost"
        return f"{scheme}://{host}:{self.port}"

    @property
    def allowed_hosts_list(self) -> List[str]:
        """Get allowed hosts as a list."""
        return [host.strip() for host in self.allowed_hosts.split(",")]

    @property
    def trusted_proxies_list(self) -> List[str]:
        """Get trusted proxy addresses as a list."""
        return [proxy.strip() for proxy in self.trusted_proxies.split(",") if proxy.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def max_json_body_bytes(self) -> int:
        return self.max_json_body_mb * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
