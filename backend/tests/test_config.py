from __future__ import annotations

import pytest
from pydantic import ValidationError

from raffle.core.config import DEFAULT_DIRECT_PURCHASE_PRODUCT_IDS, Settings


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.direct_purchase_product_ids == DEFAULT_DIRECT_PURCHASE_PRODUCT_IDS
    assert settings.verification_hash_scheme == "sha256"
    assert settings.reset_confirmation_phrase == "CONFIRM_RESET_WINNERS"
    assert settings.max_tickets_per_entry == 100


def test_direct_purchase_ids_parse_from_csv(monkeypatch):
    monkeypatch.setenv("DIRECT_PURCHASE_PRODUCT_IDS", "mv-hoodie, p7 ,")
    settings = Settings(_env_file=None)

    assert settings.direct_purchase_product_ids == ["mv-hoodie", "p7"]
    assert settings.is_direct_purchase("p7")
    assert not settings.is_direct_purchase("p1")
    assert not settings.is_direct_purchase(None)


def test_hash_scheme_is_validated():
    assert Settings(_env_file=None, verification_hash_scheme="BASE64").verification_hash_scheme == "base64"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, verification_hash_scheme="md5")


def test_production_requires_database_url():
    settings = Settings(_env_file=None, environment="production")
    with pytest.raises(ValueError):
        _ = settings.resolved_database_url


def test_postgres_urls_are_routed_through_psycopg():
    settings = Settings(
        _env_file=None,
        environment="production",
        production_database_url="postgres://user:pw@db.example.com:5432/raffle",
    )
    url = settings.resolved_database_url

    assert url.startswith("postgresql+psycopg://")
    assert "sslmode=require" in url


def test_blank_webhook_url_is_none():
    assert Settings(_env_file=None, admin_notification_webhook_url="  ").admin_notification_webhook_url is None
