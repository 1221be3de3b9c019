"""Tests for operation results at the service boundary."""

import pytest

from ledgerflow.domain.errors import NotFoundError, TransientStoreError, ValidationError
from ledgerflow.domain.results import OperationResult, capture


def test_capture_success():
    result = capture(lambda a, b=0: a + b, 2, b=3)
    assert result.success
    assert result.data == 5
    assert result.error is None


def test_capture_domain_error():
    def fail():
        raise NotFoundError("Voucher v1 not found")

    result = capture(fail)
    assert not result.success
    assert result.error == "Voucher v1 not found"
    assert result.error_type == "NotFoundError"
    assert not result.retryable


def test_capture_transient_error_is_retryable():
    def fail():
        raise TransientStoreError("database is locked")

    result = capture(fail)
    assert not result.success
    assert result.retryable
    assert result.error_type == "TransientStoreError"


def test_capture_propagates_programming_errors():
    def fail():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        capture(fail)


def test_repr():
    assert "success=True" in repr(OperationResult.ok(1))
    assert "ValidationError" in repr(OperationResult.fail(ValidationError("bad")))
