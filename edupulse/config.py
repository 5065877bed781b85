import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

DEFAULT_JWT_SECRET = "change-me-in-production"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    app_env: str = os.getenv("APP_ENV", "development")
    app_name: str = os.getenv("APP_NAME", "EduPulse API")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    api_version: str = os.getenv("API_VERSION", "v1")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    database_url: str = os.getenv("DATABASE_URL", "")
    jwt_secret: str = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_access_exp_minutes: int = int(os.getenv("JWT_ACCESS_EXP_MINUTES", "15"))
    refresh_token_exp_days: int = int(os.getenv("REFRESH_TOKEN_EXP_DAYS", "7"))
    email_verify_exp_hours: int = int(os.getenv("EMAIL_VERIFY_EXP_HOURS", "24"))
    password_reset_exp_minutes: int = int(os.getenv("PASSWORD_RESET_EXP_MINUTES", "60"))
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    cors_origins: list[str] = field(default_factory=lambda: _env_list("CORS_ORIGINS", "http://localhost:5173"))
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")
    smtp_host: str = os.getenv("SMTP_SERVER", "smtp.gmail.com")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str = os.getenv("SMTP_EMAIL", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "").replace(" ", "")
    email_from: str = os.getenv("EMAIL_FROM", "noreply@edupulse.local")
    allow_email_console_fallback: bool = _env_bool("ALLOW_EMAIL_CONSOLE_FALLBACK", "true")
    default_admin_email: str = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@edupulse.local")
    default_admin_password: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "Admin@12345")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def api_prefix(self) -> str:
        return f"/api/{self.api_version}"


settings = Settings()


def validate_settings(current: Settings = settings) -> None:
    if current.is_production and current.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set in production")
    if current.jwt_access_exp_minutes <= 0 or current.refresh_token_exp_days <= 0:
        raise RuntimeError("Token lifetimes must be positive")
