from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from raffle import models  # noqa: F401
from raffle.core.config import Settings
from raffle.db import Base, create_session_factory
from raffle.models import Entry, PaymentStatus, PurchaseType, RaffleConfig
from raffle.repositories import EntryRepository, RaffleRepository


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        database_url="sqlite://",
        direct_purchase_product_ids="mv-hoodie,mv-tee,p6",
        verification_hash_scheme="sha256",
        admin_notification_webhook_url=None,
    )
    monkeypatch.setattr("raffle.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("raffle.core.config.settings", settings)
    return settings


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_raffle(session):
    """Create and commit a raffle, open for entries unless ``ended`` is set."""

    def _make(*, ended: bool = False, **overrides) -> RaffleConfig:
        now = datetime.now(timezone.utc)
        values = {
            "name": "Gold Rush",
            "product_name": "1oz gold bar",
            "start_date": now - timedelta(days=8 if ended else 1),
            "end_date": now - timedelta(hours=1) if ended else now + timedelta(days=7),
            "price_per_entry_cents": 500,
            "max_winners": 1,
            "bundle_price_cents": 2000,
            "bundle_size": 5,
        }
        values.update(overrides)
        raffle = RaffleRepository(session).create(**values)
        session.commit()
        return raffle

    return _make


@pytest.fixture
def make_entry(session):
    """Create and commit an entry, completed by default, without minting tickets."""

    def _make(
        raffle: RaffleConfig,
        email: str,
        quantity: int,
        *,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        purchase_type: PurchaseType = PurchaseType.RAFFLE,
        completed_at: datetime | None = None,
        payment_session_id: str | None = None,
    ) -> Entry:
        entry = EntryRepository(session).create(
            raffle_id=raffle.id,
            email=email,
            quantity=quantity,
            amount_cents=quantity * raffle.price_per_entry_cents,
            purchase_type=purchase_type,
            product_id="mv-hoodie" if purchase_type is PurchaseType.DIRECT else None,
            payment_session_id=payment_session_id,
        )
        entry.payment_status = status.value
        if status is PaymentStatus.COMPLETED:
            entry.completed_at = completed_at or datetime.now(timezone.utc)
        session.commit()
        return entry

    return _make
