from functools import lru_cache
from typing import Any, Literal
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode and SQL echo")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/bountymarket.db",
        description="SQLAlchemy compatible database URL",
    )
    admin_address: str = Field(
        default="",
        description="Identity seeded as ledger admin when none has been stored yet",
    )
    bounty_fee_bps: int = Field(
        default=1000,
        description="Share of every stake routed to the bounty pool, in basis points",
    )
    token_symbol: str = Field(default="USDC", description="Stablecoin symbol used for display")
    token_decimals: int = Field(
        default=6,
        description="Number of decimals of the stablecoin's smallest unit",
        ge=0,
        le=18,
    )
    transfer_backend: Literal["memory", "http"] = Field(
        default="memory",
        description="Stablecoin transfer adapter (in-process vault or remote HTTP service)",
    )
    transfer_service_url: AnyUrl | str | None = Field(
        default=None,
        description="Base URL of the remote transfer service when transfer_backend=http",
    )
    transfer_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to transfer service requests",
        gt=0,
    )
    escrow_account: str = Field(
        default="escrow",
        description="Account holding staked funds until settlement",
    )
    market_cache_ttl_seconds: float = Field(
        default=30.0,
        description="Lifetime of cached market views (0 disables caching)",
        ge=0,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum level written by the log sink"
    )

    @field_validator("bounty_fee_bps")
    @classmethod
    def _validate_fee(cls, value: int) -> int:
        if not 0 <= value < 10_000:
            raise ValueError("bounty_fee_bps must be between 0 and 9999")
        return value

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("admin_address", "escrow_account", mode="after")
    @classmethod
    def _strip_identity(cls, value: str) -> str:
        return value.strip()

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
