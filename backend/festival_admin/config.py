from typing import Annotated
from urllib.parse import urlparse

from pydantic import AliasChoices, AnyUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _cors_origin_from_url(value: str | None) -> str | None:
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None
    parsed = urlparse(raw)
    scheme = (parsed.scheme or "").lower().strip()
    if scheme not in {"http", "https"}:
        return None
    hostname = (parsed.hostname or "").strip()
    if not hostname:
        return None
    port = parsed.port
    if port and not ((scheme == "http" and port == 80) or (scheme == "https" and port == 443)):
        return f"{scheme}://{hostname}:{port}"
    return f"{scheme}://{hostname}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", "../.env"), extra="ignore")

    database_url: AnyUrl | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "FESTIVAL_DB_URL"),
    )
    media_collections: Annotated[list[str], NoDecode] = ["films", "news", "partners"]
    media_documents_table: str = "app.content_documents"
    media_migration_batch_size: int = Field(default=200, ge=1)
    media_migration_workers: int = Field(default=1, ge=1)
    log_level: str = "INFO"
    admin_base_url: str | None = "http://localhost:5173"
    cors_allow_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    cors_allow_origin_regex: str | None = r"http://(localhost|127\.0\.0\.1)(:\d+)?"
    sentry_dsn: str | None = Field(
        default=None, validation_alias=AliasChoices("SENTRY_DSN", "BACKEND_SENTRY_DSN")
    )
    sentry_traces_sample_rate: float = Field(
        default=0.0,
        validation_alias=AliasChoices(
            "SENTRY_TRACES_SAMPLE_RATE",
            "BACKEND_SENTRY_TRACES_SAMPLE_RATE",
        ),
    )

    @model_validator(mode="after")
    def _populate_cors_origins(self):
        admin_origin = _cors_origin_from_url(self.admin_base_url)
        if admin_origin:
            existing = {origin.strip().lower() for origin in self.cors_allow_origins if origin}
            if admin_origin.strip().lower() not in existing:
                self.cors_allow_origins.append(admin_origin)
        return self

    @field_validator("cors_allow_origins", "media_collections", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("media_documents_table")
    @classmethod
    def _check_table_name(cls, value: str) -> str:
        parts = value.split(".")
        if not all(part.isidentifier() for part in parts) or len(parts) > 2:
            raise ValueError("media_documents_table must be [schema.]table")
        return value


settings = Settings()
