"""Tests for voucher number sequences."""

import threading

import pytest

from ledgerflow.domain.errors import ValidationError
from ledgerflow.domain.sequences import (
    SequenceService,
    format_voucher_number,
    normalize_prefix,
    resolve_prefix,
)


def test_first_number_starts_at_one(temp_db):
    """A fresh prefix starts its counter at 1."""
    service = SequenceService(temp_db)
    assert service.next_voucher_number("SEG") == "SEG-000001"
    assert service.next_voucher_number("SEG") == "SEG-000002"


def test_prefixes_are_independent(temp_db):
    """Each prefix has its own counter."""
    service = SequenceService(temp_db)
    service.next_value("SEG")
    service.next_value("SEG")
    assert service.next_value("SUB") == 1
    assert service.next_value("SEG") == 3


def test_prefix_is_normalized(temp_db):
    """Lower-case and padded prefixes share the upper-case counter."""
    service = SequenceService(temp_db)
    assert service.next_voucher_number(" seg ") == "SEG-000001"
    assert service.next_voucher_number("SEG") == "SEG-000002"


def test_empty_prefix_rejected(temp_db):
    with pytest.raises(ValidationError):
        SequenceService(temp_db).next_voucher_number("  ")
    with pytest.raises(ValidationError):
        normalize_prefix("")


@pytest.mark.parametrize(
    "source_type,prefix",
    [
        ("segment", "SEG"),
        ("partner_share", "PARTNER"),
        ("company_share", "COMP"),
        ("subscription", "SUB"),
        ("subscription_installment", "SUBP"),
        ("journal_voucher", "JE"),
        ("reversal", "REV"),
        ("Receipt", "RC"),
        ("custom_thing", "CUSTOM_THING"),
    ],
)
def test_resolve_prefix(source_type, prefix):
    assert resolve_prefix(source_type) == prefix


def test_format_wide_values_not_truncated():
    assert format_voucher_number("JE", 42) == "JE-000042"
    assert format_voucher_number("JE", 1234567) == "JE-1234567"


def test_numbers_rolled_back_with_transaction(temp_db):
    """An increment inside a failed transaction is not consumed."""
    service = SequenceService(temp_db)
    with pytest.raises(RuntimeError):
        with temp_db.transaction():
            service.next_value("JE")
            raise RuntimeError("boom")
    assert service.next_value("JE") == 1


def test_concurrent_callers_get_unique_increasing_numbers(temp_db):
    """Threads sharing one database never receive the same number."""
    service = SequenceService(temp_db)
    per_thread: list[list[int]] = []
    lock = threading.Lock()

    def worker():
        issued = [service.next_value("PARTNER") for _ in range(10)]
        with lock:
            per_thread.append(issued)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(per_thread) == 4
    for issued in per_thread:
        assert issued == sorted(issued)
    assert sorted(n for issued in per_thread for n in issued) == list(range(1, 41))
