from functools import lru_cache
from typing import Any
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

    if scheme in {"postgresql", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/roundbet.db",
        description="SQLAlchemy compatible database URL backing the ledger",
    )
    oracle_base_url: AnyUrl = Field(
        default="http://localhost:1317",
        description="Base URL of the price oracle REST endpoint",
    )
    oracle_prices_path: str = Field(
        default="/oracle/v1/price",
        description="Relative path for the currency-pair price endpoint",
    )
    oracle_quote_ticker: str = Field(
        default="USD",
        description="Quote currency every asset is priced against",
    )
    oracle_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout applied to oracle requests",
        gt=0,
    )
    price_decimals: int = Field(
        default=18,
        description="Fixed internal precision every observed price is normalized to",
        ge=0,
        le=36,
    )
    price_max_staleness_seconds: int = Field(
        default=10,
        description="Maximum age of a price observation accepted by the round scheduler",
        ge=0,
    )
    default_page_limit: int = Field(
        default=10,
        description="Page size applied when a paginated query does not supply a limit",
        ge=1,
    )
    max_page_limit: int = Field(
        default=30,
        description="Upper bound applied to any requested page size",
        ge=1,
    )
    keeper_interval_seconds: float = Field(
        default=5.0,
        description="Delay between advance sweeps when the keeper runs in loop mode",
        gt=0,
    )
    keeper_game_ids: list[str] | str = Field(
        default_factory=list,
        description="Games advanced by the keeper when none are passed on the command line",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("keeper_game_ids", mode="after")
    @classmethod
    def _parse_keeper_game_ids(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item for item in (part.strip() for part in value.split(",")) if item]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError(
            "KEEPER_GAME_IDS must be provided as a list or comma-separated string"
        )

    @field_validator("max_page_limit")
    @classmethod
    def _validate_page_limits(cls, value: int, info) -> int:
        default_limit = info.data.get("default_page_limit")
        if default_limit is not None and value < default_limit:
            raise ValueError("max_page_limit must be greater than or equal to default_page_limit")
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    def page_limit(self, requested: int | None) -> int:
        """Clamp a caller supplied page size to the configured bounds."""

        if requested is None:
            return self.default_page_limit
        return max(1, min(requested, self.max_page_limit))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
