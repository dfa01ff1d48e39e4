# researcher_hut/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore")

    APP_NAME: str = "Researcher.Hut API"
    ENVIRONMENT: str = "development"
    API_PREFIX: str = "/api"

    DATABASE_URL: str | None = None
    DB_HOST: str | None = None
    DB_PORT: int = 5432
    DB_USER: str | None = None
    DB_PASSWORD: str = ""
    DB_NAME: str | None = None
    DB_AUTO_CREATE: bool = True

    # --- admin session ---
    JWT_SECRET: str = Field(...)
    JWT_ALGORITHM: str = "HS256"
    ADMIN_SESSION_EXPIRE_MINUTES: int = 120
    ADMIN_COOKIE_NAME: str = "adminToken"
    ADMIN_EMAIL: str = ""

    # --- OTP ---
    OTP_SECRET: str = Field(...)
    ADMIN_OTP_TTL_MINUTES: int = 5
    USER_OTP_TTL_MINUTES: int = 10
    OTP_RATE_LIMIT: int = 3
    OTP_RATE_WINDOW_MINUTES: int = 5

    API_RATE_LIMIT: str = "100 per 15 minutes"
    BCRYPT_ROUNDS: int = 12

    # --- email (Brevo) ---
    BREVO_API_KEY: str = ""
    BREVO_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    MAIL_SENDER_EMAIL: str = "no-reply@researcher-hut.app"
    MAIL_SENDER_NAME: str = "Researcher.Hut"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    CORS_ORIGINS: list[str] = ["http://localhost:3000", "https://researcher-hut.vercel.app"]
    CLIENT_URL: str = ""

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def async_database_url(self) -> str:
        if self.DATABASE_URL:
            url = self.DATABASE_URL.strip()
            # hosted Postgres hands out postgres:// URLs
            if url.startswith("postgres://"):
                return "postgresql+asyncpg://" + url[len("postgres://"):]
            if url.startswith("postgresql://"):
                return "postgresql+asyncpg://" + url[len("postgresql://"):]
            return url
        if self.DB_HOST and self.DB_USER and self.DB_NAME:
            return (f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}"
                    f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}")
        return "sqlite+aiosqlite:///./researcher_hut.db"

    @property
    def allowed_origins(self) -> list[str]:
        origins = list(self.CORS_ORIGINS)
        if self.CLIENT_URL and self.CLIENT_URL.strip():
            origins.append(self.CLIENT_URL.strip())
        return origins

settings = Settings()  # type: ignore[call-arg]
