"""Pure checks over a raffle's ticket numbering."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable


def check_ticket_numbers(ticket_numbers: Iterable[int], expected_total: int) -> list[str]:
    """Return every way the numbers deviate from the run ``1..expected_total``.

    An empty list means the pool is contiguous, duplicate free and holds
    exactly ``expected_total`` tickets.
    """

    numbers = sorted(ticket_numbers)
    counts = Counter(numbers)
    issues: list[str] = []

    for number in sorted(value for value, count in counts.items() if count > 1):
        issues.append(f"duplicate ticket number {number}")

    expected = 1
    for number in sorted(counts):
        if number < 1:
            issues.append(f"invalid ticket number {number}")
            continue
        if number > expected:
            if number - expected == 1:
                issues.append(f"gap at position {expected}: ticket number {expected} is missing")
            else:
                issues.append(
                    f"gap at position {expected}: ticket numbers {expected} to {number - 1} are missing"
                )
        expected = number + 1

    if len(numbers) != expected_total:
        issues.append(f"ticket count mismatch: expected {expected_total}, found {len(numbers)}")

    return issues


__all__ = ["check_ticket_numbers"]
