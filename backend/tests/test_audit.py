from __future__ import annotations

import base64
import hashlib
import re
from collections import Counter
from datetime import datetime, timezone

import pytest

from raffle.domain.audit import (
    choose_uniformly,
    compute_verification_hash,
    generate_random_seed,
    hashes_match,
    verification_payload,
)


def test_seed_combines_timestamp_and_two_random_components():
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    draws = iter([123, 456789])

    seed = generate_random_seed(now=moment, randbelow=lambda bound: next(draws))

    assert seed == f"{int(moment.timestamp() * 1000)}-123-456789"


def test_default_seed_format():
    assert re.fullmatch(r"\d+-\d{1,6}-\d{1,6}", generate_random_seed())


def test_sha256_hash_is_hex_digest_of_payload():
    expected = hashlib.sha256(b"7:10:1700000000000-1-2:a@example.com").hexdigest()

    assert compute_verification_hash(7, 10, "1700000000000-1-2", "a@example.com") == expected


def test_base64_scheme_encodes_the_same_payload():
    value = compute_verification_hash(7, 10, "seed", "a@example.com", scheme="base64")

    assert base64.b64decode(value).decode("utf-8") == verification_payload(7, 10, "seed", "a@example.com")


def test_unknown_scheme_is_rejected():
    with pytest.raises(ValueError):
        compute_verification_hash(1, 1, "seed", "a@example.com", scheme="md5")


def test_hash_is_deterministic():
    first = compute_verification_hash(3, 4, "seed", "b@example.com")
    second = compute_verification_hash(3, 4, "seed", "b@example.com")

    assert hashes_match(first, second)
    assert not hashes_match(first, compute_verification_hash(3, 4, "seed", "c@example.com"))


def test_choose_uniformly_uses_the_random_index():
    assert choose_uniformly(["a", "b", "c"], randbelow=lambda bound: 2) == "c"


def test_choose_uniformly_rejects_empty_candidates():
    with pytest.raises(ValueError):
        choose_uniformly([])


def test_choose_uniformly_rejects_out_of_range_index():
    with pytest.raises(ValueError):
        choose_uniformly(["a", "b"], randbelow=lambda bound: bound)


def test_choose_uniformly_is_statistically_uniform():
    candidates = list(range(1, 11))
    trials = 10_000

    counts = Counter(choose_uniformly(candidates) for _ in range(trials))

    assert set(counts) == set(candidates)
    expected = trials / len(candidates)
    # Roughly six standard deviations either side of 1000 draws per bucket.
    for candidate in candidates:
        assert abs(counts[candidate] - expected) < 180
