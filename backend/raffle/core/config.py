from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

HASH_SCHEMES = {"sha256", "base64"}

DEFAULT_DIRECT_PURCHASE_PRODUCT_IDS = ["mv-hoodie", "mv-tee", "p6", "p7", "p1b", "p1w"]


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    # Every postgres flavour is routed through psycopg 3.
    scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


def _split_csv(value: Any, *, field_name: str) -> list[str]:
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item for item in (part.strip() for part in value.split(",")) if item]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError(f"{field_name} must be provided as a list or comma-separated string")


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
        default="sqlite:///./data/raffle.db",
        description="SQLAlchemy compatible database URL",
    )
    production_database_url: AnyUrl | str | None = Field(
        default=None,
        description="Managed Postgres connection string used when ENVIRONMENT=production",
    )
    direct_purchase_product_ids: list[str] | str = Field(
        default_factory=lambda: list(DEFAULT_DIRECT_PURCHASE_PRODUCT_IDS),
        description=(
            "Product identifiers sold as direct merchandise purchases; entries for these "
            "products never receive raffle tickets"
        ),
    )
    max_tickets_per_entry: int = Field(
        default=100,
        description="Largest quantity a single purchase may request",
        ge=1,
    )
    default_max_winners: int = Field(
        default=1,
        description="Winner slots applied to raffles created without an explicit max_winners",
        ge=1,
    )
    verification_hash_scheme: str = Field(
        default="sha256",
        description="Scheme used for new winner verification hashes (sha256|base64)",
    )
    reset_confirmation_phrase: str = Field(
        default="CONFIRM_RESET_WINNERS",
        description="Phrase an operator must echo back before winners are reset",
    )
    admin_notification_webhook_url: AnyUrl | str | None = Field(
        default=None,
        description="Optional URL that receives a JSON POST whenever a winner is drawn",
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout applied to the outbound winner notification webhook",
        gt=0,
    )

    @field_validator("direct_purchase_product_ids", mode="after")
    @classmethod
    def _parse_direct_purchase_ids(cls, value: Any) -> list[str]:
        return _split_csv(value, field_name="DIRECT_PURCHASE_PRODUCT_IDS")

    @field_validator("verification_hash_scheme")
    @classmethod
    def _validate_hash_scheme(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in HASH_SCHEMES:
            raise ValueError(
                "verification_hash_scheme must be one of: " + ", ".join(sorted(HASH_SCHEMES))
            )
        return normalized

    @field_validator("database_url", "production_database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("admin_notification_webhook_url", mode="before")
    @classmethod
    def _blank_webhook_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def is_direct_purchase(self, product_id: str | None) -> bool:
        if not product_id:
            return False
        return product_id in set(self.direct_purchase_product_ids)

    @property
    def resolved_database_url(self) -> str:
        if self.environment.lower() == "production":
            if not self.production_database_url:
                raise ValueError(
                    "PRODUCTION_DATABASE_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.production_database_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
