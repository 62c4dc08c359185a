from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration read from environment variables."""

    # Server
    host: str = "0.0.0.0"
    port: int = 5000
    # Public base URL, used to build the Kashier server webhook
    server_base: str = "http://localhost:5000"

    # Apps Script automation (registration emails and receipts)
    appscript_url: str = ""
    appscript_token: str = ""

    # Kashier config
    kashier_mode: str = "test"
    kashier_merchant_id: str = ""
    kashier_api_key: str = ""
    kashier_secret: str = ""

    # Document store: "memory" or "postgres"; empty picks postgres when DB_* is set
    store_backend: str = ""

    # Database (PostgreSQL)
    db_host: str = ""
    db_port: int = 5432
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""
    db_schema: str = "public"

    @property
    def kashier_live(self) -> bool:
        return self.kashier_mode.strip().lower() == "live"

    @property
    def kashier_api_base(self) -> str:
        if self.kashier_live:
            return "https://api.kashier.io"
        return "https://test-api.kashier.io"

    @property
    def webhook_url(self) -> str:
        return f"{self.server_base.rstrip('/')}/api/payment/webhook"

    @property
    def appscript_configured(self) -> bool:
        return bool(self.appscript_url)

    @property
    def db_enabled(self) -> bool:
        return bool(self.db_host and self.db_user and self.db_name)

    @property
    def store_kind(self) -> str:
        backend = self.store_backend.strip().lower()
        if backend:
            return backend
        return "postgres" if self.db_enabled else "memory"

    @property
    def db_dsn(self) -> str:
        if not self.db_enabled:
            return ""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
