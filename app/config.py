from pydantic import model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # ── Database ──────────────────────────────────────────────
    database_hostname: str = "localhost"
    database_port: str = "5432"
    database_password: str = "postgres"
    database_name: str = "alvarado"
    database_username: str = "postgres"
    # Full URL override (e.g. sqlite:// for local runs and tests)
    sqlalchemy_database_url: Optional[str] = None

    # ── JWT ───────────────────────────────────────────────────
    # Access and refresh tokens are signed with different secrets so that
    # one can never be replayed as the other.
    jwt_secret: str
    jwt_refresh_secret: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7

    # ── Password hashing ──────────────────────────────────────
    bcrypt_rounds: int = 12

    # ── SMTP ──────────────────────────────────────────────────
    mail_username: str = ""
    mail_password: str = ""
    mail_from: str = "no-reply@alvarado-investment.com"
    mail_server: str = "smtp.gmail.com"
    mail_port: int = 587
    mail_suppress_send: bool = False

    # ── Google OAuth ──────────────────────────────────────────
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_callback_url: Optional[str] = None

    # ── IP geolocation (ipinfo.io) ────────────────────────────
    ipinfo_token: Optional[str] = None
    geolocation_enabled: bool = True

    # ── App ───────────────────────────────────────────────────
    app_name: str = "Alvarado Investment"
    frontend_url: str = "http://localhost:3000"
    environment: str = "development"
    cors_origins: str = "http://localhost:3000"
    rate_limit_enabled: bool = True
    log_level: str = "INFO"

    @model_validator(mode="after")
    def secrets_differ(self) -> "Settings":
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Split comma-separated origins into a list, stripping whitespace."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def frontend_base_url(self) -> str:
        return self.frontend_url.rstrip("/")

    @property
    def database_url(self) -> str:
        if self.sqlalchemy_database_url:
            return self.sqlalchemy_database_url
        return (
            f"postgresql://{self.database_username}:{self.database_password}"
            f"@{self.database_hostname}:{self.database_port}/{self.database_name}"
        )

    class Config:
        env_file = ".env"
        # Case-insensitive so JWT_SECRET and jwt_secret both work
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings loader; reads .env once and reuses.
    Use this everywhere instead of instantiating Settings() directly.
    """
    return Settings()


# Module-level singleton for convenience imports
settings = get_settings()
