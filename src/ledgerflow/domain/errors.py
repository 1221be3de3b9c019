"""Shared domain error messages and error types."""


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class ConfigurationError(DomainError):
    """A required finance-account mapping is not configured."""


class InvalidVoucherError(ValidationError):
    """Voucher entries are unbalanced or reference unknown accounts."""


class InvalidAmountError(ValidationError):
    """Non-positive payment amount or an allocation exceeding what is due."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as a record changed by a concurrent operation."""


class PermissionDeniedError(DomainError):
    """Acting user lacks the permission an operation requires."""


class TransientStoreError(RuntimeError):
    """Store connectivity, lock or transaction-conflict failure.

    Safe to retry for reads and for operations gated by a transaction,
    since an aborted transaction leaves no partial effect.
    """


def voucher_not_found(voucher_id: str) -> str:
    """Return message for missing voucher."""
    return f"Voucher {voucher_id} not found"


def voucher_not_in_deleted_log(voucher_id: str) -> str:
    """Return message for restore/purge of a voucher that is not deleted."""
    return f"Voucher {voucher_id} not found in deleted log"


def installment_not_found(installment_id: str) -> str:
    """Return message for missing installment."""
    return f"Installment {installment_id} not found"


def subscription_not_found(subscription_id: str) -> str:
    """Return message for missing subscription."""
    return f"Subscription {subscription_id} not found"


def subscription_deleted(invoice_number: str) -> str:
    """Return message for a subscription whose sale was deleted."""
    return f"Subscription {invoice_number} is deleted; restore its sale voucher first"


def payment_not_found(payment_id: str) -> str:
    """Return message for missing payment."""
    return f"Payment {payment_id} not found"


def relation_not_found(relation_id: str) -> str:
    """Return message for missing client, supplier or partner."""
    return f"Relation {relation_id} not found"


def period_not_found(period_id: str) -> str:
    """Return message for missing segment period."""
    return f"Segment period {period_id} not found"


def missing_mapping(role: str) -> str:
    """Return message for an unset finance-account mapping."""
    return f"Finance account mapping '{role}' is not configured"


def unknown_accounts(account_ids: list[str]) -> str:
    """Return message for voucher lines that reference unknown accounts."""
    return f"Accounts not found: {', '.join(sorted(account_ids))}"


def unbalanced_entries(total_debit, total_credit) -> str:
    """Return message for a voucher whose sides do not balance."""
    return f"Entries are not balanced (debit {total_debit} != credit {total_credit})"
