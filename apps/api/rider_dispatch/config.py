from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "rider-dispatch-jwt-secret"
ALLOWED_APP_MODES = {"demo", "pilot", "production"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Rider Dispatch Service"
    app_mode: str = Field(default="demo", validation_alias="RIDER_DISPATCH_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./rider_dispatch.db",
        validation_alias="RIDER_DISPATCH_DATABASE_URL",
    )
    sqlite_busy_timeout_s: float = 5.0
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    allowed_roles: str = "CUSTOMER,RIDER,OPS,ADMIN"
    testing: bool = Field(default=False, validation_alias="RIDER_DISPATCH_TESTING")

    auto_create_schema: bool = True
    require_migrations: bool = False

    request_timeout_s: float = 60.0
    expire_max_retries: int = 2
    expire_backoff_s: float = 0.2

    presence_stale_after_s: int = 120

    pricing_base_fee: float = 80.0
    pricing_per_km_rate: float = 30.0
    pricing_min_payment: float = 100.0
    pricing_rider_base_earning: float = 50.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"RIDER_DISPATCH_APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("request_timeout_s")
    @classmethod
    def validate_request_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout_s must be > 0")
        return value


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if not settings.testing and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when RIDER_DISPATCH_TESTING is false"
        )
    if not settings.testing and len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when RIDER_DISPATCH_TESTING is false"
        )
    if not settings.testing and is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError("RIDER_DISPATCH_DATABASE_URL must use postgres in production mode")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
