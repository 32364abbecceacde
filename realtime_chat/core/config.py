"""
Realtime Chat Configuration

Settings are read from environment variables and the .env file.
"""

from enum import Enum
from typing import List, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


class AuthPolicy(str, Enum):
    """How a credential that fails verification is treated."""

    ENFORCED = "enforced"
    PERMISSIVE = "permissive"


class Settings(BaseSettings):
    """Realtime Chat settings"""

    # Application
    app_name: str = "Realtime Chat"
    version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    # Authentication (Cognito user pool)
    auth_mode: AuthPolicy = AuthPolicy.PERMISSIVE
    cognito_region: str = "us-west-2"
    cognito_user_pool_id: Optional[str] = None
    cognito_app_client_id: Optional[str] = None
    jwks_url: Optional[str] = None
    jwks_cache_seconds: int = 60 * 60  # 1 hour
    jwks_fetch_timeout: float = 5.0

    # Hosted UI redirects
    cognito_domain: Optional[str] = None
    login_redirect_uri: Optional[str] = None
    logout_redirect_uri: Optional[str] = None

    # Database - MongoDB (unset -> in-memory only)
    mongo_url: Optional[str] = None
    mongodb_db_name: str = "chatdb"
    mongo_timeout_ms: int = 3000

    # Messages
    history_limit: int = 50
    message_ttl_days: int = 7

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def token_issuer(self) -> Optional[str]:
        if not self.cognito_user_pool_id:
            return None
        return f"https://cognito-idp.{self.cognito_region}.amazonaws.com/{self.cognito_user_pool_id}"

    @property
    def resolved_jwks_url(self) -> Optional[str]:
        if self.jwks_url:
            return self.jwks_url
        if self.token_issuer:
            return f"{self.token_issuer}/.well-known/jwks.json"
        return None


settings = Settings()
