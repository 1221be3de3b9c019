"""Segment periods: profit-sharing entries and the vouchers they generate."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, UTC
from decimal import Decimal
from typing import Any, Optional

from ledgerflow.database.base import Database
from ledgerflow.database.mappers import partner_shares_to_json
from ledgerflow.domain.audit import AuditLog, NullAuditLog
from ledgerflow.domain.entities import (
    Actor,
    PartnerShare,
    PricingRule,
    SegmentEntry,
    SegmentPeriod,
    ServiceCounts,
)
from ledgerflow.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    period_not_found,
    relation_not_found,
)
from ledgerflow.domain.finance_accounts import FinanceAccounts, load_finance_accounts
from ledgerflow.domain.lifecycle import PURGE_PERMISSION, VoucherLifecycleService
from ledgerflow.domain.posting import DraftEntry, PostingService, VoucherDraft
from ledgerflow.domain.revenue_split import compute_shares, resolve_pricing_rules, split_partner_share
from ledgerflow.utils.batching import batched_lookup

logger = logging.getLogger(__name__)

SOURCE_SEGMENT = "segment"
SOURCE_PARTNER_SHARE = "partner_share"
SOURCE_COMPANY_SHARE = "company_share"
PERIOD_PREFIX = "SEG"

# Company percentage when a partner takes part and none is given
DEFAULT_COMPANY_SPLIT = Decimal("50")


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _parse_rule(service: str, rule: Any) -> PricingRule:
    if isinstance(rule, PricingRule):
        return rule
    if not isinstance(rule, dict):
        raise ValidationError(f"Pricing rule for {service} must be an object")
    return PricingRule.from_dict(rule)


@dataclass(frozen=True)
class EntryInput:
    """One company's counts for a period.

    ``partners`` lists partner percentages of the partner share; a lone
    ``partner_id`` means that partner takes all of it. ``entry_id`` lets a
    retried period reuse entries that were already saved.
    """

    client_id: str
    counts: ServiceCounts
    partner_id: Optional[str] = None
    partners: tuple[PartnerShare, ...] = ()
    pricing_rules: Optional[dict[str, Any]] = None
    company_split_percent: Optional[Decimal] = None
    entry_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EntryInput":
        """Build an entry from its JSON form.

        Raises:
            ValidationError: If the client is missing or a number is malformed
        """
        if not data.get("client_id"):
            raise ValidationError("Every segment entry needs a client_id")
        try:
            counts = ServiceCounts(
                **{name: _optional_int(data.get(name)) for name in ("tickets", "visas", "hotels", "groups")}
            )
            partners = tuple(
                PartnerShare(p["partner_id"], Decimal(str(p["percentage"])))
                for p in data.get("partners") or ()
            )
            split = data.get("company_split_percent")
            split = None if split is None else Decimal(str(split))
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            raise ValidationError(f"Invalid segment entry for client {data['client_id']}: {e}")
        rules = data.get("pricing_rules")
        if rules is not None:
            if not isinstance(rules, dict):
                raise ValidationError(f"pricing_rules for client {data['client_id']} must be an object")
            rules = {name: _parse_rule(name, rule) for name, rule in rules.items() if rule}
        return cls(
            client_id=data["client_id"],
            counts=counts,
            partner_id=data.get("partner_id"),
            partners=partners,
            pricing_rules=rules or None,
            company_split_percent=split,
            entry_id=data.get("entry_id"),
        )

    def partner_list(self) -> tuple[PartnerShare, ...]:
        if self.partners:
            return tuple(self.partners)
        if self.partner_id:
            return (PartnerShare(self.partner_id, Decimal("100")),)
        return ()


@dataclass(frozen=True)
class PeriodInput:
    """A batch of segment entries entered together."""

    from_date: date
    to_date: date
    currency: str
    entries: list[EntryInput] = field(default_factory=list)
    box_id: Optional[str] = None
    period_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PeriodInput":
        """Build a period from its JSON form (dates as ISO strings).

        Raises:
            ValidationError: If a required field is missing or malformed
        """
        try:
            from_date = date.fromisoformat(str(data["from_date"]))
            to_date = date.fromisoformat(str(data["to_date"]))
            currency = str(data["currency"]).strip().upper()
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid segment period: {e}")
        return cls(
            from_date=from_date,
            to_date=to_date,
            currency=currency,
            entries=[EntryInput.from_dict(item) for item in data.get("entries") or []],
            box_id=data.get("box_id"),
            period_id=data.get("period_id"),
        )


@dataclass(frozen=True)
class PeriodResult:
    """Outcome of adding a period."""

    period_id: str
    invoice_number: str
    entry_ids: list[str] = field(default_factory=list)
    voucher_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PeriodSummary:
    """A period with its entries and totals, for listings."""

    period: SegmentPeriod
    entries: list[SegmentEntry]

    @property
    def total(self) -> Decimal:
        return sum((e.total for e in self.entries), Decimal("0"))

    @property
    def company_share(self) -> Decimal:
        return sum((e.company_share for e in self.entries), Decimal("0"))

    @property
    def partner_share(self) -> Decimal:
        return sum((e.partner_share for e in self.entries), Decimal("0"))


class SegmentPeriodService:
    """Service for adding, deleting and restoring segment periods."""

    def __init__(self, db: Database, audit: Optional[AuditLog] = None):
        """Initialize segment period service.

        Args:
            db: Database instance
            audit: Audit sink (defaults to discarding entries)
        """
        self.db = db
        self.audit = audit or NullAuditLog()
        self.posting = PostingService(db, self.audit)
        self.lifecycle = VoucherLifecycleService(db, self.audit)

    def _require_relation(self, relation_id: str):
        relation = self.db.get_relation(relation_id)
        if relation is None:
            raise NotFoundError(relation_not_found(relation_id))
        return relation

    def _pricing_rules_for(self, entry: EntryInput, client) -> dict[str, PricingRule]:
        if entry.pricing_rules:
            return resolve_pricing_rules(entry.pricing_rules)
        stored = (client.segment_settings or {}).get("pricing_rules")
        return resolve_pricing_rules(stored)

    def _resolve_period(self, period: PeriodInput) -> SegmentPeriod:
        if period.period_id:
            existing = self.db.get_segment_period(period.period_id)
            if existing is not None:
                return existing
        with self.db.transaction():
            number = self.posting.sequences.next_voucher_number(PERIOD_PREFIX)
            period_id = self.db.create_segment_period(
                from_date=period.from_date,
                to_date=period.to_date,
                currency=period.currency,
                invoice_number=number,
                period_id=period.period_id,
            )
        return self.db.get_segment_period(period_id)

    def _post(self, draft: VoucherDraft, voucher_ids: list[str]) -> None:
        voucher_ids.append(self.posting.post(draft))

    def _post_entry_vouchers(
        self,
        entry: SegmentEntry,
        box_account: str,
        finance: FinanceAccounts,
        actor: Actor,
    ) -> list[str]:
        clearing = finance.require("clearing")
        common = dict(
            date=entry.to_date,
            currency=entry.currency,
            officer=actor.name,
            created_by=actor.user_id,
        )
        voucher_ids: list[str] = []

        if entry.total > 0:
            label = f"Segment profit {entry.from_date} to {entry.to_date}"
            self._post(
                VoucherDraft(
                    source_type=SOURCE_SEGMENT,
                    source_id=entry.id,
                    description=label,
                    entries=[
                        DraftEntry(entry.client_id, debit=entry.total, description=label),
                        DraftEntry(clearing, credit=entry.total, description=label),
                    ],
                    reference=entry.invoice_number,
                    idempotency_key=f"segment:{entry.id}:{SOURCE_SEGMENT}",
                    **common,
                ),
                voucher_ids,
            )

        for share in entry.partner_shares:
            if share.share <= 0:
                continue
            label = f"Partner share {entry.from_date} to {entry.to_date}"
            self._post(
                VoucherDraft(
                    source_type=SOURCE_PARTNER_SHARE,
                    source_id=entry.id,
                    description=label,
                    entries=[
                        DraftEntry(box_account, debit=share.share, description=label),
                        DraftEntry(share.partner_id, credit=share.share, description=label),
                    ],
                    idempotency_key=f"segment:{entry.id}:{SOURCE_PARTNER_SHARE}:{share.partner_id}",
                    **common,
                ),
                voucher_ids,
            )

        if entry.company_share > 0:
            label = f"Company share {entry.from_date} to {entry.to_date}"
            self._post(
                VoucherDraft(
                    source_type=SOURCE_COMPANY_SHARE,
                    source_id=entry.id,
                    description=label,
                    entries=[
                        DraftEntry(clearing, debit=entry.company_share, description=label),
                        DraftEntry(
                            finance.revenue_account("segments"),
                            credit=entry.company_share,
                            description=label,
                        ),
                    ],
                    idempotency_key=f"segment:{entry.id}:{SOURCE_COMPANY_SHARE}",
                    **common,
                ),
                voucher_ids,
            )
        return voucher_ids

    def _add_entry(
        self,
        period: SegmentPeriod,
        data: EntryInput,
        box_id: Optional[str],
        finance: FinanceAccounts,
        actor: Actor,
    ) -> tuple[SegmentEntry, list[str]]:
        existing = self.db.get_segment_entry(data.entry_id) if data.entry_id else None
        client = self._require_relation(data.client_id)
        partners = data.partner_list()
        for partner in partners:
            self._require_relation(partner.partner_id)

        rules = self._pricing_rules_for(data, client)
        split = data.company_split_percent
        if partners and split is None:
            split = DEFAULT_COMPANY_SPLIT
        shares = compute_shares(data.counts, rules, split if partners else None)
        partner_shares = split_partner_share(shares.partner_share, partners)
        box_account = (box_id or finance.require("default_cash")) if partner_shares else ""

        with self.db.transaction():
            if existing is None:
                number = self.posting.sequences.next_voucher_number(PERIOD_PREFIX)
                ids = {"id": data.entry_id} if data.entry_id else {}
                entry_id = self.db.create_segment_entry(
                    **ids,
                    period_id=period.id,
                    client_id=data.client_id,
                    partner_id=partners[0].partner_id if partners else None,
                    partner_shares=partner_shares_to_json(partner_shares),
                    from_date=period.from_date,
                    to_date=period.to_date,
                    currency=period.currency,
                    tickets=data.counts.tickets or 0,
                    visas=data.counts.visas or 0,
                    hotels=data.counts.hotels or 0,
                    groups=data.counts.groups or 0,
                    pricing_rules={name: rule.to_dict() for name, rule in rules.items()},
                    company_split_percent=split if partners else None,
                    ticket_profits=shares.ticket_profits,
                    other_profits=shares.other_profits,
                    total=shares.total,
                    company_share=shares.company_share,
                    partner_share=shares.partner_share,
                    invoice_number=number,
                    period_invoice_number=period.invoice_number,
                    entered_by=actor.name,
                )
                self.db.update_segment_period(period.id)
                entry = self.db.get_segment_entry(entry_id)
            else:
                entry = existing
            voucher_ids = self._post_entry_vouchers(entry, box_account, finance, actor)
            self.db.update_relation_segment_settings(
                data.client_id,
                {
                    "pricing_rules": {name: rule.to_dict() for name, rule in rules.items()},
                    "company_split_percent": None if split is None else str(split),
                },
            )
        return entry, voucher_ids

    def add_period(
        self, period: PeriodInput, actor: Actor, replace_period_id: Optional[str] = None
    ) -> PeriodResult:
        """Save a period's entries and post their vouchers.

        Each entry is saved and posted in its own transaction. An error stops
        the loop; entries already processed stay posted. Re-running the same
        period with the same ``period_id`` and entry ids posts only what is
        missing.

        Args:
            period: Period data and entries
            actor: Acting user
            replace_period_id: Period to permanently delete first

        Returns:
            PeriodResult with the new period, entry and voucher ids

        Raises:
            ValidationError: If the period has no entries or bad split data
            NotFoundError: If a client or partner does not exist
            ConfigurationError: If a required finance account is unset
        """
        if not period.entries:
            raise ValidationError("A segment period needs at least one entry")
        if period.from_date > period.to_date:
            raise ValidationError("Period start must not be after its end")

        if replace_period_id:
            self.delete_period(replace_period_id, actor, permanent=True)

        finance = load_finance_accounts(self.db)
        target = self._resolve_period(period)
        entry_ids: list[str] = []
        voucher_ids: list[str] = []
        for data in period.entries:
            entry, posted = self._add_entry(target, data, period.box_id, finance, actor)
            entry_ids.append(entry.id)
            voucher_ids.extend(posted)

        logger.info(
            "Added segment period %s with %d entries and %d vouchers",
            target.invoice_number,
            len(entry_ids),
            len(voucher_ids),
        )
        self.audit.record(
            actor,
            "create",
            "segment_period",
            f"Added segment period {target.invoice_number} ({period.from_date} to {period.to_date})",
            target_id=target.id,
        )
        return PeriodResult(target.id, target.invoice_number, entry_ids, voucher_ids)

    def _discover(self, period_id: str) -> tuple[SegmentPeriod, list[SegmentEntry], list[str]]:
        period = self.db.get_segment_period(period_id)
        if period is None:
            raise NotFoundError(period_not_found(period_id))
        entries = self.db.list_segment_entries(period_id=period_id, include_deleted=True)
        vouchers = batched_lookup(
            [e.id for e in entries], self.db.find_vouchers_by_source_ids, self.db.in_query_limit
        )
        return period, entries, [v.id for v in vouchers]

    def _check_version(self, period: SegmentPeriod) -> None:
        current = self.db.get_segment_period(period.id)
        if current is None or current.version != period.version:
            raise ConflictError(
                f"Segment period {period.invoice_number} changed while it was being processed; retry"
            )

    def delete_period(self, period_id: str, actor: Actor, permanent: bool = False) -> int:
        """Delete a period's entries and all their vouchers in one transaction.

        Args:
            period_id: Period to delete
            actor: Acting user
            permanent: Purge instead of soft-deleting

        Returns:
            Number of segment entries deleted

        Raises:
            NotFoundError: If the period does not exist
            PermissionDeniedError: If permanent and the actor lacks permission
            ConflictError: If the period changed after it was read
        """
        if permanent:
            self.lifecycle.check_purge_permission(actor)
        period, entries, voucher_ids = self._discover(period_id)
        loaded = self.lifecycle.load(voucher_ids)
        now = datetime.now(UTC)

        with self.db.transaction():
            self._check_version(period)
            if permanent:
                self.lifecycle.apply_purge(loaded, actor)
                for entry in entries:
                    self.db.delete_segment_entry(entry.id)
                self.db.delete_segment_period(period.id)
                count = len(entries)
            else:
                self.lifecycle.apply_soft_delete(loaded, actor, reason="segment period deleted")
                count = 0
                for entry in entries:
                    if entry.is_deleted:
                        continue
                    self.db.update_segment_entry(
                        entry.id, is_deleted=True, deleted_at=now, deleted_by=actor.name
                    )
                    count += 1
                self.db.update_segment_period(period.id, is_deleted=True)

        action = "purge" if permanent else "delete"
        logger.info(
            "%s segment period %s: %d entries, %d vouchers",
            "Purged" if permanent else "Deleted",
            period.invoice_number,
            count,
            len(voucher_ids),
        )
        self.audit.record(
            actor,
            action,
            "segment_period",
            f"{'Permanently deleted' if permanent else 'Deleted'} segment period {period.invoice_number}",
            target_id=period.id,
        )
        return count

    def restore_period(self, period_id: str, actor: Actor) -> int:
        """Restore a soft-deleted period's entries and vouchers in one transaction.

        Returns:
            Number of segment entries restored

        Raises:
            NotFoundError: If the period does not exist
            ConflictError: If the period changed after it was read
        """
        period, entries, voucher_ids = self._discover(period_id)
        loaded = self.lifecycle.load(voucher_ids)

        with self.db.transaction():
            self._check_version(period)
            self.lifecycle.apply_restore(loaded, actor)
            count = 0
            for entry in entries:
                if not entry.is_deleted:
                    continue
                self.db.update_segment_entry(entry.id, is_deleted=False, deleted_at=None, deleted_by=None)
                count += 1
            self.db.update_segment_period(period.id, is_deleted=False)

        logger.info("Restored segment period %s: %d entries", period.invoice_number, count)
        self.audit.record(
            actor,
            "restore",
            "segment_period",
            f"Restored segment period {period.invoice_number}",
            target_id=period.id,
        )
        return count

    def list_periods(self, include_deleted: bool = False) -> list[PeriodSummary]:
        """List periods with their entries, newest first."""
        return [
            PeriodSummary(
                period,
                self.db.list_segment_entries(period_id=period.id, include_deleted=include_deleted),
            )
            for period in self.db.list_segment_periods(include_deleted=include_deleted)
        ]


__all__ = [
    "EntryInput",
    "PeriodInput",
    "PeriodResult",
    "PeriodSummary",
    "SegmentPeriodService",
    "PURGE_PERMISSION",
]
