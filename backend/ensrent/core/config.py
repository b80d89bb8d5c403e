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
        default="sqlite:///./data/ensrent.db",
        description="SQLAlchemy compatible database URL for the projection store",
    )
    page_size: int = Field(
        default=15,
        description="Default number of items returned per page by list queries",
        ge=1,
    )
    max_page_size: int = Field(
        default=100,
        description="Largest page size a caller may request",
        ge=1,
    )
    relist_policy: Literal["coexist", "supersede"] = Field(
        default="coexist",
        description=(
            "How a DomainListed event for an already listed token is handled: "
            "'coexist' keeps both rows, 'supersede' soft-deletes the earlier listings"
        ),
    )
    apply_retry_attempts: int = Field(
        default=3,
        description="Number of attempts per event when the projection store reports transient errors",
        ge=1,
    )
    apply_retry_backoff_seconds: list[float] | tuple[float, ...] | str = Field(
        default_factory=lambda: [1.0, 2.0, 4.0],
        description="Comma-separated list or array of backoff delays (seconds) between event retries",
    )
    event_feed_url: AnyUrl | str | None = Field(
        default=None,
        description="Base URL of the upstream rental contract event feed",
    )
    event_feed_path: str = Field(
        default="/events",
        description="Relative path of the event feed endpoint",
    )
    event_feed_page_size: int = Field(
        default=200,
        description="Number of events requested per feed call",
        ge=1,
    )
    poll_interval_seconds: float = Field(
        default=5.0,
        description="Delay between feed polls when the indexer follows the chain head",
        gt=0,
    )
    checkpoint_name: str = Field(
        default="ens-rent",
        description="Key of the checkpoint row that tracks the last applied event offset",
    )
    name_suffix: str = Field(
        default=".eth",
        description="Suffix appended to listing labels when rendering display names",
    )

    @field_validator("apply_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> list[float]:
        if value in (None, "", []):
            return [1.0, 2.0, 4.0]
        if isinstance(value, str):
            tokens = [token.strip() for token in value.split(",") if token.strip()]
            if not tokens:
                raise ValueError("APPLY_RETRY_BACKOFF_SECONDS must contain at least one value")
            value = tokens
        if isinstance(value, (list, tuple)):
            backoff: list[float] = []
            for item in value:
                try:
                    delay = float(item)
                except (TypeError, ValueError) as exc:
                    raise ValueError("APPLY_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
                if delay <= 0:
                    raise ValueError("APPLY_RETRY_BACKOFF_SECONDS entries must be positive")
                backoff.append(delay)
            if not backoff:
                raise ValueError("APPLY_RETRY_BACKOFF_SECONDS must contain at least one value")
            return backoff
        raise ValueError(
            "APPLY_RETRY_BACKOFF_SECONDS must be provided as a comma-separated string or list of numbers"
        )

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("max_page_size")
    @classmethod
    def _validate_max_page_size(cls, value: int, info) -> int:
        page_size = info.data.get("page_size")
        if page_size is not None and value < page_size:
            raise ValueError("max_page_size must be greater than or equal to page_size")
        return value

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def apply_retry_backoff_schedule(self) -> tuple[float, ...]:
        sequence = tuple(float(value) for value in self.apply_retry_backoff_seconds)
        if not sequence:
            return (1.0,)
        return sequence


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
