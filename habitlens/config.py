from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    api_key: str = "dev-key"
    database_url: str = "sqlite:///habitlens.db"

    # scheduler (optional for dev)
    timezone: str = "UTC"
    scheduler_enabled: bool = False
    missed_check_interval_minutes: int = 60

    # analytics windows
    history_days: int = 30
    never_started_days: int = 7

    log_level: str = "INFO"

    # load .env, ignore unknown keys so new vars don't break boot
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # ---- Back-compat so code using UPPERCASE keeps working ----
    @property
    def API_KEY(self) -> str:
        return self.api_key

    @property
    def DATABASE_URL(self) -> str:
        return self.database_url

    @property
    def TIMEZONE(self) -> str:
        return self.timezone

settings = Settings()
