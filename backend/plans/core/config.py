from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    database_url: str

    # JWT (cookie-based session for registered profiles)
    JWT_SECRET: str
    JWT_ISS: str = "plans-api"
    JWT_AUD: str = "plans-web"

    # External identity provider tokens (exchanged for our session cookie)
    IDP_JWT_SECRET: str = ""
    IDP_ISS: str = "plans-identity"
    IDP_AUD: str = "plans-api"

    # Cookie
    COOKIE_DOMAIN: str | None = None
    COOKIE_SECURE: bool = True
    ACCESS_TOKEN_TTL_SECONDS: int = 60 * 60 * 24 * 7  # 7 days

    # Guests
    GUEST_COOKIE_NAME: str = "plans-guest-token"
    GUEST_TOKEN_TTL_DAYS: int = 30

    # Hangouts
    DEFAULT_CONSENSUS_THRESHOLD: int = 60
    APP_BASE_URL: str = "http://localhost:3000"

    # Push delivery (optional, best-effort)
    PUSH_SERVICE_URL: str | None = None
    PUSH_SERVICE_SECRET: str | None = None

    # Cron / scheduler trigger
    INTERNAL_SECRET: str = ""

    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    def cors_origins(self) -> list[str]:
        raw = (self.CORS_ORIGINS or "").strip()
        if not raw:
            return []
        return [x.strip() for x in raw.split(",") if x.strip()]

    @property
    def guest_token_ttl_seconds(self) -> int:
        return self.GUEST_TOKEN_TTL_DAYS * 24 * 60 * 60


settings = Settings()
