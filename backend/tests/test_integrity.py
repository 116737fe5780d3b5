from __future__ import annotations

from raffle.domain import check_ticket_numbers


def test_contiguous_pool_has_no_issues():
    assert check_ticket_numbers([3, 1, 2, 5, 4], 5) == []


def test_empty_pool_with_no_expected_tickets_is_valid():
    assert check_ticket_numbers([], 0) == []


def test_single_gap_is_reported_with_its_position():
    issues = check_ticket_numbers([1, 2, 4], 3)

    assert issues == ["gap at position 3: ticket number 3 is missing"]


def test_gap_and_count_mismatch_are_both_reported():
    issues = check_ticket_numbers([1, 2, 4], 4)

    assert "gap at position 3: ticket number 3 is missing" in issues
    assert "ticket count mismatch: expected 4, found 3" in issues


def test_wide_gap_reports_the_missing_range():
    issues = check_ticket_numbers([1, 5], 2)

    assert issues == ["gap at position 2: ticket numbers 2 to 4 are missing"]


def test_duplicates_are_reported():
    issues = check_ticket_numbers([1, 2, 2, 3], 4)

    assert issues == ["duplicate ticket number 2"]


def test_non_positive_numbers_are_invalid():
    issues = check_ticket_numbers([0, 1, 2], 3)

    assert issues == ["invalid ticket number 0"]


def test_pool_not_starting_at_one_is_a_gap():
    issues = check_ticket_numbers([2, 3], 2)

    assert issues == ["gap at position 1: ticket number 1 is missing"]


def test_missing_tail_is_caught_by_count_mismatch():
    issues = check_ticket_numbers([1, 2, 3], 5)

    assert issues == ["ticket count mismatch: expected 5, found 3"]
