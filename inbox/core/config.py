from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEV_VERIFY_TOKEN = "local-dev-verify-token"


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    app_env: str = "local"
    api_port: int = 8000

    # Database
    postgres_host: str = "127.0.0.1"
    postgres_port: int = 5432
    postgres_db: str = "agency_inbox"
    postgres_user: str = "inbox_user"
    postgres_password: str = "inbox_password"
    database_url_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL_OVERRIDE", "DATABASE_URL"),
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_auto_create: bool = False

    # Channel provider. The enable flag and provider choice live in the
    # settings table; only credentials come from the environment.
    whatsapp_base_url: str = ""
    d360_api_key: str | None = None
    meta_access_token: str | None = None
    meta_phone_number_id: str | None = None
    meta_graph_base_url: str = "https://graph.facebook.com"
    meta_graph_api_version: str = "v23.0"
    channel_timeout_seconds: float = 30.0
    whatsapp_webhook_verify_token: str = _DEV_VERIFY_TOKEN
    default_template_language: str = "pt_BR"

    # Workspace
    inbox_conversation_limit: int = Field(default=50, ge=1, le=500)
    inbox_message_page_size: int = Field(default=50, ge=1, le=500)

    log_level: str = "INFO"
    log_json: bool | None = None

    cors_allowed_origins_raw: str = "http://127.0.0.1:5173,http://localhost:5173"
    trusted_hosts_raw: str = "127.0.0.1,localhost"
    force_https: bool = False

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def structured_logs(self) -> bool:
        if self.log_json is not None:
            return self.log_json
        return self.app_env.lower() != "local"

    @property
    def cors_allowed_origins(self) -> list[str]:
        return _split_csv(self.cors_allowed_origins_raw)

    @property
    def trusted_hosts(self) -> list[str]:
        return _split_csv(self.trusted_hosts_raw)

    def validate_security_settings(self) -> None:
        if not self.is_production:
            return

        problems: list[str] = []
        if self.whatsapp_webhook_verify_token == _DEV_VERIFY_TOKEN:
            problems.append("WHATSAPP_WEBHOOK_VERIFY_TOKEN must be overridden.")
        if self.meta_access_token and not self.meta_phone_number_id:
            problems.append("META_PHONE_NUMBER_ID is required with META_ACCESS_TOKEN.")
        if self.d360_api_key and not self.whatsapp_base_url:
            problems.append("WHATSAPP_BASE_URL is required with D360_API_KEY.")

        for name, values in (
            ("CORS_ALLOWED_ORIGINS_RAW", self.cors_allowed_origins),
            ("TRUSTED_HOSTS_RAW", self.trusted_hosts),
        ):
            if not values:
                problems.append(f"{name} must list explicit entries.")
            elif "*" in values:
                problems.append(f"{name} must not contain a wildcard.")

        if problems:
            raise ValueError("Invalid production settings: " + " ".join(problems))


@lru_cache
def get_settings() -> Settings:
    return Settings()
