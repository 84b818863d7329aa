# healthdesk/config.py
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

SQLITE_FALLBACK_URL = "sqlite:///./healthdesk.db"


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    host = os.getenv("DB_HOST")
    if not host:
        return SQLITE_FALLBACK_URL
    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASS", "")
    name = os.getenv("DB_NAME", "healthdesk")
    return f"postgresql+psycopg2://{user}:{password}@{host}/{name}"


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration. Built once at startup and handed to each component."""

    database_url: str = SQLITE_FALLBACK_URL
    jwt_secret: str = "supersecretkey"
    jwt_algorithm: str = "HS256"
    session_days: int = 7
    environment: str = "development"

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"

    idp_environment_url: Optional[str] = None
    idp_client_id: Optional[str] = None
    idp_client_secret: Optional[str] = None
    idp_timeout_seconds: float = 10.0
    sso_provider_name: str = "scalekit"
    connector_ids: Dict[str, str] = field(default_factory=lambda: {"gmail": "gmail", "slack": "slack"})
    connector_redirect_uri: Optional[str] = None

    frontend_url: Optional[str] = None
    sign_in_path: str = "/auth"
    cors_origins: Tuple[str, ...] = ("http://localhost:3000", "http://localhost:5173")
    max_upload_mb: int = 10
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def idp_configured(self) -> bool:
        return bool(self.idp_environment_url and self.idp_client_id and self.idp_client_secret)

    @property
    def session_max_age(self) -> int:
        return self.session_days * 24 * 60 * 60

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=_database_url(),
            jwt_secret=os.getenv("JWT_SECRET", "supersecretkey"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            session_days=int(os.getenv("SESSION_DAYS", "7")),
            environment=os.getenv("ENVIRONMENT", "development"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            idp_environment_url=os.getenv("SCALEKIT_ENVIRONMENT_URL") or os.getenv("SCALEKIT_ENV_URL") or None,
            idp_client_id=os.getenv("SCALEKIT_CLIENT_ID") or None,
            idp_client_secret=os.getenv("SCALEKIT_CLIENT_SECRET") or None,
            idp_timeout_seconds=float(os.getenv("IDP_TIMEOUT_SECONDS", "10")),
            sso_provider_name=os.getenv("SSO_PROVIDER_NAME", "scalekit"),
            connector_ids={
                "gmail": os.getenv("SCALEKIT_GMAIL_CONNECTION_ID", "gmail"),
                "slack": os.getenv("SCALEKIT_SLACK_CONNECTION_ID", "slack"),
            },
            connector_redirect_uri=os.getenv("SCALEKIT_REDIRECT_URI") or None,
            frontend_url=os.getenv("FRONTEND_URL") or None,
            sign_in_path=os.getenv("SIGN_IN_PATH", "/auth"),
            cors_origins=_csv(os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")),
            max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
