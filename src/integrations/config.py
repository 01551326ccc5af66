import os
from typing import Self
from pydantic import BaseModel, Field, model_validator, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, EnvSettingsSource
from dotenv import load_dotenv

load_dotenv()

MIN_ENCRYPTION_SECRET_LENGTH = 32


class DbSettings(BaseModel):
    url: str = Field(default_factory=lambda: os.getenv("DATABASE_URL", "").strip())
    echo: bool = Field(default=False)

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if not self.url:
            raise ValueError("DATABASE_URL environment variable must be set.")
        return self


class CelerySettings(BaseModel):
    broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    result_backend: str = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")


class EncryptionSettings(BaseModel):
    secret_key: str = Field(default_factory=lambda: os.getenv("AES_SECRET_KEY", "").strip())

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if not self.secret_key:
            raise ValueError("AES_SECRET_KEY environment variable must be set.")
        if len(self.secret_key) < MIN_ENCRYPTION_SECRET_LENGTH:
            raise ValueError(
                f"AES_SECRET_KEY must be at least {MIN_ENCRYPTION_SECRET_LENGTH} characters long."
            )
        return self


class QuickBooksSettings(BaseModel):
    client_id: str = Field(default_factory=lambda: os.getenv("QUICKBOOKS_CLIENT_ID", "").strip())
    client_secret: str = Field(default_factory=lambda: os.getenv("QUICKBOOKS_CLIENT_SECRET", "").strip())
    redirect_uri: str = Field(default_factory=lambda: os.getenv("QUICKBOOKS_REDIRECT_URI", "").strip())
    environment: str = Field(
        default_factory=lambda: os.getenv("QUICKBOOKS_ENVIRONMENT", "sandbox").strip().lower() or "sandbox"
    )

    @model_validator(mode="after")
    def _validate(self) -> Self:
        missing = [
            name for name, value in [
                ("QUICKBOOKS_CLIENT_ID", self.client_id),
                ("QUICKBOOKS_CLIENT_SECRET", self.client_secret),
                ("QUICKBOOKS_REDIRECT_URI", self.redirect_uri),
            ] if not value
        ]
        if missing:
            raise ValueError(f"QuickBooks configuration missing required environment variables: {', '.join(missing)}.")
        if self.environment not in {"sandbox", "production"}:
            raise ValueError("QUICKBOOKS_ENVIRONMENT must be 'sandbox' or 'production'.")
        return self


class XeroSettings(BaseModel):
    client_id: str = Field(default_factory=lambda: os.getenv("XERO_CLIENT_ID", "").strip())
    client_secret: str = Field(default_factory=lambda: os.getenv("XERO_CLIENT_SECRET", "").strip())
    redirect_uri: str = Field(default_factory=lambda: os.getenv("XERO_REDIRECT_URI", "").strip())
    scopes: list[str] = Field(
        default_factory=lambda: [
            "openid",
            "profile",
            "email",
            "offline_access",
            "accounting.transactions.read",
            "accounting.contacts.read",
            "accounting.settings.read",
        ]
    )

    @model_validator(mode="after")
    def _validate(self) -> Self:
        missing = [
            name for name, value in [
                ("XERO_CLIENT_ID", self.client_id),
                ("XERO_CLIENT_SECRET", self.client_secret),
                ("XERO_REDIRECT_URI", self.redirect_uri),
            ] if not value
        ]
        if missing:
            raise ValueError(f"Xero configuration missing required environment variables: {', '.join(missing)}.")
        return self


class TokenSettings(BaseModel):
    refresh_buffer_seconds: int = Field(
        default_factory=lambda: int(os.getenv("TOKEN_REFRESH_BUFFER_SECONDS", "300"))
    )
    state_ttl_seconds: int = Field(default_factory=lambda: int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600")))
    http_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("PROVIDER_HTTP_TIMEOUT_SECONDS", "15"))
    )
    refresh_interval_seconds: int = Field(
        default_factory=lambda: int(os.getenv("TOKEN_REFRESH_INTERVAL_SECONDS", "900"))
    )

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.refresh_buffer_seconds < 0:
            raise ValueError("TOKEN_REFRESH_BUFFER_SECONDS must not be negative.")
        if self.state_ttl_seconds <= 0:
            raise ValueError("OAUTH_STATE_TTL_SECONDS must be greater than zero.")
        if self.http_timeout_seconds <= 0:
            raise ValueError("PROVIDER_HTTP_TIMEOUT_SECONDS must be greater than zero.")
        if self.refresh_interval_seconds < 60:
            raise ValueError("TOKEN_REFRESH_INTERVAL_SECONDS must be at least 60.")
        return self


class RelaxedEnvSettingsSource(EnvSettingsSource):
    def decode_complex_value(self, field_name, field, value):
        try:
            return super().decode_complex_value(field_name, field, value)
        except Exception:
            return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")
    api_v1_prefix: str = "/api/v1"
    app_secret: str = Field(default_factory=lambda: os.getenv("APP_SECRET", "").strip())
    cors_allowed_origins: list[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=False)
    db: DbSettings = DbSettings()
    celery: CelerySettings = CelerySettings()
    encryption: EncryptionSettings = EncryptionSettings()
    quickbooks: QuickBooksSettings = QuickBooksSettings()
    xero: XeroSettings = XeroSettings()
    tokens: TokenSettings = TokenSettings()

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if not self.app_secret:
            raise ValueError("APP_SECRET environment variable must be set.")
        return self

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value):
        if value is None:
            return ["*"]
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or stripped == "*":
                return ["*"]
            return [item.strip() for item in stripped.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            origins = [str(item).strip() for item in value if str(item).strip()]
            return origins or ["*"]
        raise ValueError("Invalid cors_allowed_origins format; provide comma-separated string or list.")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            RelaxedEnvSettingsSource(settings_cls),
            dotenv_settings,
            file_secret_settings,
        )


settings = Settings()
