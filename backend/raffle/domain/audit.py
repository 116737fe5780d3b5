"""Randomness and verification helpers for winner draws.

The draw index and the audit seed come from independent ``secrets`` calls:
the seed only binds a stored winner record to its verification hash, it is
never used to derive the winning index.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import TypeVar

T = TypeVar("T")

RandBelow = Callable[[int], int]

SELECTION_METHOD = "secrets.randbelow"
SEED_COMPONENT_RANGE = 1_000_000


def generate_random_seed(
    *, now: datetime | None = None, randbelow: RandBelow = secrets.randbelow
) -> str:
    """Return ``<epoch-ms>-<r1>-<r2>`` for the audit trail."""

    moment = now or datetime.now(timezone.utc)
    timestamp_ms = int(moment.timestamp() * 1000)
    return f"{timestamp_ms}-{randbelow(SEED_COMPONENT_RANGE)}-{randbelow(SEED_COMPONENT_RANGE)}"


def choose_uniformly(candidates: Sequence[T], *, randbelow: RandBelow = secrets.randbelow) -> T:
    """Pick one candidate, each with probability ``1 / len(candidates)``."""

    if not candidates:
        raise ValueError("cannot draw from an empty candidate list")
    index = randbelow(len(candidates))
    if not 0 <= index < len(candidates):
        raise ValueError(f"random source returned out-of-range index {index}")
    return candidates[index]


def verification_payload(
    winning_ticket_number: int, pool_size: int, random_seed: str, winner_email: str
) -> str:
    return f"{winning_ticket_number}:{pool_size}:{random_seed}:{winner_email}"


def compute_verification_hash(
    winning_ticket_number: int,
    pool_size: int,
    random_seed: str,
    winner_email: str,
    *,
    scheme: str = "sha256",
) -> str:
    payload = verification_payload(
        winning_ticket_number, pool_size, random_seed, winner_email
    ).encode("utf-8")
    if scheme == "sha256":
        return hashlib.sha256(payload).hexdigest()
    if scheme == "base64":
        # Legacy reversible encoding; kept so older records still verify.
        return base64.b64encode(payload).decode("ascii")
    raise ValueError(f"unsupported verification hash scheme: {scheme}")


def hashes_match(expected: str, actual: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), actual.encode("utf-8"))


__all__ = [
    "SELECTION_METHOD",
    "generate_random_seed",
    "choose_uniformly",
    "verification_payload",
    "compute_verification_hash",
    "hashes_match",
]
