from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "Omni Coach"
    DATABASE_URL: str = "sqlite:///data/omni.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:3001",
        "http://127.0.0.1:3001",
    ]
    API_BASE_URL: str = "http://localhost:3001"
    PUBLIC_WEB_BASE_URL: str = "http://localhost:3001"

    # Identity provider issued access tokens
    AUTH_JWT_SECRET: str = "change-me-in-production"
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: str = "authenticated"

    TOKEN_ENCRYPTION_KEY: str = "change-me-in-production-32bytes!"

    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_OAUTH_REDIRECT_URL: str = "http://localhost:3001/v1/google/oauth/callback"
    GOOGLE_OAUTH_SCOPES: str = (
        "openid "
        "https://www.googleapis.com/auth/calendar.readonly "
        "https://www.googleapis.com/auth/tasks"
    )
    GOOGLE_OAUTH_STATE_TTL_SECONDS: int = 900
    IOS_OAUTH_CALLBACK_SCHEME: str = "omni"

    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-2.0-flash"
    GEMINI_TIMEOUT_SECONDS: int = 60

    SECURITY_HEADERS_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    @property
    def google_scopes(self) -> list[str]:
        return [scope for scope in (self.GOOGLE_OAUTH_SCOPES or "").split() if scope]

    def validate_security_configuration(self) -> None:
        if not self.is_production_like:
            return

        errors: list[str] = []
        if self.AUTH_JWT_SECRET == "change-me-in-production":
            errors.append("AUTH_JWT_SECRET must be changed from the default value")
        if self.TOKEN_ENCRYPTION_KEY == "change-me-in-production-32bytes!":
            errors.append("TOKEN_ENCRYPTION_KEY must be changed from the default value")
        if len((self.TOKEN_ENCRYPTION_KEY or "").strip()) < 16:
            errors.append("TOKEN_ENCRYPTION_KEY must be at least 16 characters")
        if not self.GOOGLE_CLIENT_ID or not self.GOOGLE_CLIENT_SECRET:
            errors.append("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Insecure production configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
