from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://personalization:personalization@db:5432/personalization"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # --- Recommendation lifecycle ---
    RECOMMENDATION_TOP_N: int = 10
    RECOMMENDATION_TTL_DAYS: int = 7
    # Absolute overall-score change required before an active row is superseded.
    SUPERSEDE_THRESHOLD: float = 0.05
    # Presented but never answered → deactivated by the sweep after this long.
    PRESENTED_GRACE_HOURS: int = 72
    # "ignored" responses are deactivated by the sweep after this long.
    IGNORED_GRACE_HOURS: int = 24
    GENERATION_MAX_ATTEMPTS: int = 3

    # --- Pattern insights ---
    INSIGHT_MIN_SAMPLES: int = 5
    INSIGHT_FULL_CONFIDENCE_SAMPLES: int = 20
    INSIGHT_PRESENT_THRESHOLD: float = 0.8
    INSIGHT_PRESENTATION_LIMIT: int = 3
    SESSION_WINDOW_MINUTES: int = 30

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
