"""Explicit success/error results at the service boundary."""

import logging
from typing import Any, Callable, Optional

from ledgerflow.domain.errors import DomainError, TransientStoreError

logger = logging.getLogger(__name__)


class OperationResult:
    """
    Wrapper for operation results with success/failure info.

    Usage:
        result = capture(service.apply_payment, installment_id, amount, ...)
        if result.success:
            payment = result.data
        else:
            message = result.error
            if result.retryable:
                ...  # safe to run again
    """

    def __init__(
        self,
        success: bool,
        data: Any = None,
        error: Optional[str] = None,
        error_type: Optional[str] = None,
        retryable: bool = False,
    ):
        self.success = success
        self.data = data
        self.error = error
        self.error_type = error_type
        self.retryable = retryable

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: Exception, retryable: bool = False) -> "OperationResult":
        return cls(
            success=False,
            error=str(error),
            error_type=type(error).__name__,
            retryable=retryable,
        )

    def __repr__(self) -> str:
        if self.success:
            return f"OperationResult(success=True, data={self.data!r})"
        return f"OperationResult(success=False, error_type={self.error_type!r}, error={self.error!r})"


def capture(func: Callable[..., Any], *args: Any, **kwargs: Any) -> OperationResult:
    """Call ``func`` and turn domain and transient store errors into a result.

    Any other exception is a programming error and propagates.
    """
    try:
        return OperationResult.ok(func(*args, **kwargs))
    except TransientStoreError as e:
        logger.warning("Transient store failure in %s: %s", getattr(func, "__name__", func), e)
        return OperationResult.fail(e, retryable=True)
    except DomainError as e:
        logger.info("%s rejected: %s", getattr(func, "__name__", func), e)
        return OperationResult.fail(e)
