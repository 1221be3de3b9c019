"""Domain layer for ledgerflow application."""

from importlib import import_module

# Services import the database layer, which imports domain.entities; load lazily
_EXPORTS = {
    "ChartService": "ledgerflow.domain.chart",
    "PostingService": "ledgerflow.domain.posting",
    "SequenceService": "ledgerflow.domain.sequences",
    "SubscriptionService": "ledgerflow.domain.subscriptions",
    "VoucherLifecycleService": "ledgerflow.domain.lifecycle",
    "SegmentPeriodService": "ledgerflow.domain.segments",
    "DatabaseAuditLog": "ledgerflow.domain.audit",
    "NullAuditLog": "ledgerflow.domain.audit",
    "OperationResult": "ledgerflow.domain.results",
    "capture": "ledgerflow.domain.results",
}

__all__ = list(_EXPORTS)


def __getattr__(name):
    module = _EXPORTS.get(name)
    if module is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    return getattr(import_module(module), name)
