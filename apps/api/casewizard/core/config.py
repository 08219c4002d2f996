"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Local durable cache (sessions, assignments, credential summary)
    DATABASE_URL: str = "sqlite:///./casewizard_local.db"

    # Remote case-management service
    REMOTE_API_BASE_URL: str = "http://localhost:5005"
    REMOTE_TIMEOUT_SECONDS: float = 10.0
    REMOTE_PROBE_TIMEOUT_SECONDS: float = 3.0
    REMOTE_MAX_ATTEMPTS: int = 3
    REMOTE_RETRY_BASE_DELAY: float = 0.5
    REMOTE_RETRY_MAX_DELAY: float = 4.0
    REMOTE_PAGE_LIMIT: int = 50

    # Wizard behaviour
    AUTO_FILL_ENABLED: bool = True
    WIZARD_IDLE_TTL_SECONDS: float = 2 * 60 * 60
    WIZARD_REGISTRY_MAX: int = 500

    # Identifier handling
    EXTERNAL_ID_MARKER: str = "q_"  # Prefix carried by remote-sourced ids
    FUZZY_ID_PREFIX_LENGTH: int = 20

    # Form-case identifiers (PREFIX-YYYY-NNNN)
    CASE_ID_PREFIX: str = "CR"

    # Client account creation attempts per email
    ACCOUNT_CREATION_RATE_LIMIT: str = "3/minute"

    # General API rate limiting (requests per minute)
    RATE_LIMIT_API: int = 120

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def remote_base_url(self) -> str:
        """Base URL without a trailing slash."""
        return self.REMOTE_API_BASE_URL.rstrip("/")


settings = Settings()
