"""Voucher lifecycle: soft delete, restore and permanent delete.

State machine per voucher::

    active --soft_delete--> deleted --restore--> restored (active again)
    deleted --purge--> gone

Soft-deleted vouchers keep their row (flagged) and get a snapshot in the
deleted log. Each transition cascades to the business record that produced
the voucher, identified by ``source_type``/``source_id``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, UTC
from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.database.mappers import snapshot_to_lines, voucher_to_snapshot
from ledgerflow.domain.audit import AuditLog, NullAuditLog
from ledgerflow.domain.entities import (
    VOUCHER_DELETED,
    VOUCHER_RESTORED,
    Actor,
    DeletedVoucher,
    JournalVoucher,
)
from ledgerflow.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    voucher_not_found,
    voucher_not_in_deleted_log,
)
from ledgerflow.utils.batching import batched_lookup

logger = logging.getLogger(__name__)

PURGE_PERMISSION = "vouchers:delete"

# Voucher source type -> kind of business record it cascades to
SOURCE_RECORDS = {
    "segment": "segment",
    "partner_share": "segment",
    "company_share": "segment",
    "subscription": "subscription",
}


@dataclass
class LoadedVouchers:
    """Result of the read phase of a bulk lifecycle operation."""

    vouchers: dict[str, JournalVoucher] = field(default_factory=dict)
    mirrors: dict[str, DeletedVoucher] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)


class VoucherLifecycleService:
    """Service moving vouchers between active, deleted and gone."""

    def __init__(self, db: Database, audit: Optional[AuditLog] = None):
        """Initialize lifecycle service.

        Args:
            db: Database instance
            audit: Audit sink (defaults to discarding entries)
        """
        self.db = db
        self.audit = audit or NullAuditLog()

    # Cascades
    def _cascade(self, source_type: str, source_id: str, deleted: bool, actor: Actor, now: datetime) -> None:
        kind = SOURCE_RECORDS.get(source_type)
        if kind == "segment":
            self.db.update_segment_entry(
                source_id,
                is_deleted=deleted,
                deleted_at=now if deleted else None,
                deleted_by=actor.name if deleted else None,
            )
        elif kind == "subscription":
            self.db.update_subscription(
                source_id, is_deleted=deleted, deleted_at=now if deleted else None
            )

    def _purge_source(self, source_type: str, source_id: str) -> None:
        kind = SOURCE_RECORDS.get(source_type)
        removed = False
        if kind == "segment":
            removed = self.db.delete_segment_entry(source_id)
        elif kind == "subscription":
            removed = self.db.delete_subscription(source_id)
        if kind and not removed:
            logger.debug("Source %s %s already gone", source_type, source_id)

    # Write steps; callers hold the transaction
    def _mark_deleted(self, voucher: JournalVoucher, actor: Actor, reason: Optional[str], now: datetime) -> None:
        self.db.update_voucher_lifecycle(
            voucher.id,
            is_deleted=True,
            status=VOUCHER_DELETED,
            deleted_at=now,
            deleted_by=actor.name,
            delete_reason=reason,
        )
        self.db.create_deleted_voucher(
            voucher_id=voucher.id,
            snapshot=voucher_to_snapshot(voucher),
            deleted_at=now,
            deleted_by=actor.name,
            delete_reason=reason,
        )
        self._cascade(voucher.source_type, voucher.source_id, True, actor, now)

    def _rebuild_from_mirror(self, mirror: DeletedVoucher) -> JournalVoucher:
        snapshot = mirror.snapshot
        debits, credits = snapshot_to_lines(snapshot)
        self.db.create_voucher(
            voucher_id=mirror.voucher_id,
            invoice_number=snapshot["invoice_number"],
            source_type=snapshot["source_type"],
            source_id=snapshot["source_id"],
            date=date.fromisoformat(snapshot["date"]),
            currency=snapshot["currency"],
            description=snapshot.get("description", ""),
            officer=snapshot.get("officer", ""),
            created_by=snapshot.get("created_by", ""),
            debit_entries=debits,
            credit_entries=credits,
            reversed_voucher_id=snapshot.get("reversed_voucher_id"),
            idempotency_key=snapshot.get("idempotency_key"),
        )
        return self.db.get_voucher(mirror.voucher_id)

    def _mark_restored(
        self,
        voucher_id: str,
        voucher: Optional[JournalVoucher],
        mirror: Optional[DeletedVoucher],
        actor: Actor,
        now: datetime,
    ) -> JournalVoucher:
        if voucher is None:
            if mirror is None:
                raise NotFoundError(voucher_not_in_deleted_log(voucher_id))
            voucher = self._rebuild_from_mirror(mirror)
        elif not voucher.is_deleted:
            raise NotFoundError(voucher_not_in_deleted_log(voucher_id))
        self.db.update_voucher_lifecycle(
            voucher.id,
            is_deleted=False,
            status=VOUCHER_RESTORED,
            deleted_at=None,
            deleted_by=None,
            delete_reason=None,
            restored_at=now,
            restored_by=actor.name,
        )
        if mirror is not None:
            self.db.delete_deleted_voucher(voucher.id)
        self._cascade(voucher.source_type, voucher.source_id, False, actor, now)
        return voucher

    def _remove(
        self,
        voucher_id: str,
        voucher: Optional[JournalVoucher],
        mirror: Optional[DeletedVoucher],
    ) -> tuple[str, str]:
        if voucher is None and mirror is None:
            raise NotFoundError(voucher_not_found(voucher_id))
        if voucher is not None and not voucher.is_deleted:
            raise ValidationError(
                f"Voucher {voucher.invoice_number} is active; soft-delete it before deleting permanently"
            )
        if voucher is not None:
            source_type, source_id, number = voucher.source_type, voucher.source_id, voucher.invoice_number
            self.db.delete_voucher(voucher_id)
        else:
            snapshot = mirror.snapshot
            source_type, source_id, number = snapshot["source_type"], snapshot["source_id"], snapshot["invoice_number"]
        self.db.delete_deleted_voucher(voucher_id)
        self._purge_source(source_type, source_id)
        return number, source_type

    @staticmethod
    def check_purge_permission(actor: Actor) -> None:
        if not actor.has_permission(PURGE_PERMISSION):
            raise PermissionDeniedError(
                f"User {actor.name} lacks the {PURGE_PERMISSION} permission"
            )

    # Single voucher operations
    def soft_delete(self, voucher_id: str, actor: Actor, reason: Optional[str] = None) -> None:
        """Flag a voucher deleted, mirror it to the deleted log and cascade.

        The other vouchers of the same segment entry are deleted with it.

        Args:
            voucher_id: Voucher to delete
            actor: Acting user
            reason: Optional reason recorded with the deletion

        Raises:
            NotFoundError: If the voucher does not exist
            ValidationError: If the voucher is already deleted
        """
        with self.db.transaction():
            loaded = self.load([voucher_id])
            voucher = loaded.vouchers.get(voucher_id)
            if voucher is None:
                raise NotFoundError(voucher_not_found(voucher_id))
            if voucher.is_deleted:
                raise ValidationError(f"Voucher {voucher.invoice_number} is already deleted")
            count = self.apply_soft_delete(loaded, actor, reason)

        logger.info("Soft-deleted voucher %s (%d vouchers in all)", voucher.invoice_number, count)
        self.audit.record(
            actor, "delete", "voucher", f"Deleted voucher {voucher.invoice_number}", target_id=voucher_id
        )

    def restore(self, voucher_id: str, actor: Actor) -> None:
        """Bring a soft-deleted voucher back and cascade-restore its source.

        Raises:
            NotFoundError: If the voucher is not in the deleted log
        """
        with self.db.transaction():
            loaded = self.load([voucher_id])
            voucher = loaded.vouchers.get(voucher_id)
            mirror = loaded.mirrors.get(voucher_id)
            if (voucher is None and mirror is None) or (voucher is not None and not voucher.is_deleted):
                raise NotFoundError(voucher_not_in_deleted_log(voucher_id))
            number = voucher.invoice_number if voucher is not None else mirror.snapshot["invoice_number"]
            self.apply_restore(loaded, actor)

        logger.info("Restored voucher %s", number)
        self.audit.record(actor, "restore", "voucher", f"Restored voucher {number}", target_id=voucher_id)

    def purge(self, voucher_id: str, actor: Actor) -> None:
        """Permanently delete a soft-deleted voucher, its mirror and its source.

        A missing source record is not an error. Vouchers sharing the voucher's
        segment entry go too.

        Raises:
            PermissionDeniedError: If the actor may not delete vouchers permanently
            NotFoundError: If the voucher does not exist
            ValidationError: If the voucher is still active
        """
        self.check_purge_permission(actor)
        with self.db.transaction():
            loaded = self.load([voucher_id])
            voucher = loaded.vouchers.get(voucher_id)
            mirror = loaded.mirrors.get(voucher_id)
            if voucher is None and mirror is None:
                raise NotFoundError(voucher_not_found(voucher_id))
            if voucher is not None and not voucher.is_deleted:
                raise ValidationError(
                    f"Voucher {voucher.invoice_number} is active; soft-delete it before deleting permanently"
                )
            number = voucher.invoice_number if voucher is not None else mirror.snapshot["invoice_number"]
            self.apply_purge(loaded, actor)

        logger.info("Permanently deleted voucher %s", number)
        self.audit.record(
            actor, "purge", "voucher", f"Permanently deleted voucher {number}", target_id=voucher_id
        )

    # Bulk operations: read phase, then one write transaction
    def load(self, voucher_ids: list[str]) -> LoadedVouchers:
        """Read vouchers and their deleted-log mirrors in batches.

        Vouchers generated from a segment entry move together, so every
        voucher sharing a loaded voucher's segment entry is loaded too.
        """
        limit = self.db.in_query_limit
        loaded = LoadedVouchers()
        loaded.vouchers = {v.id: v for v in batched_lookup(voucher_ids, self.db.get_vouchers, limit)}
        loaded.mirrors = {m.voucher_id: m for m in batched_lookup(voucher_ids, self.db.get_deleted_vouchers, limit)}
        loaded.missing = [
            vid for vid in dict.fromkeys(voucher_ids) if vid not in loaded.vouchers and vid not in loaded.mirrors
        ]
        self._load_segment_siblings(loaded)
        return loaded

    def _load_segment_siblings(self, loaded: LoadedVouchers) -> None:
        limit = self.db.in_query_limit
        sources = [(v.source_type, v.source_id) for v in loaded.vouchers.values()]
        sources += [(m.snapshot["source_type"], m.snapshot["source_id"]) for m in loaded.mirrors.values()]
        entry_ids = [source_id for source_type, source_id in sources if SOURCE_RECORDS.get(source_type) == "segment"]
        if not entry_ids:
            return
        siblings = []
        for voucher in batched_lookup(entry_ids, self.db.find_vouchers_by_source_ids, limit):
            if SOURCE_RECORDS.get(voucher.source_type) != "segment" or voucher.id in loaded.vouchers:
                continue
            loaded.vouchers[voucher.id] = voucher
            siblings.append(voucher)
        deleted = [v.id for v in siblings if v.is_deleted and v.id not in loaded.mirrors]
        for mirror in batched_lookup(deleted, self.db.get_deleted_vouchers, limit):
            loaded.mirrors[mirror.voucher_id] = mirror
        if siblings:
            logger.debug("Loaded %d sibling segment vouchers", len(siblings))

    def apply_soft_delete(self, loaded: LoadedVouchers, actor: Actor, reason: Optional[str] = None) -> int:
        """Soft-delete every active voucher in ``loaded``. Call inside a transaction."""
        now = datetime.now(UTC)
        count = 0
        for voucher in loaded.vouchers.values():
            if voucher.is_deleted:
                continue
            self._mark_deleted(voucher, actor, reason, now)
            count += 1
        return count

    def apply_restore(self, loaded: LoadedVouchers, actor: Actor) -> int:
        """Restore every deleted voucher in ``loaded``. Call inside a transaction."""
        now = datetime.now(UTC)
        count = 0
        ids = list(dict.fromkeys([*loaded.vouchers, *loaded.mirrors]))
        for voucher_id in ids:
            voucher = loaded.vouchers.get(voucher_id)
            if voucher is not None and not voucher.is_deleted:
                continue
            self._mark_restored(voucher_id, voucher, loaded.mirrors.get(voucher_id), actor, now)
            count += 1
        return count

    def apply_purge(self, loaded: LoadedVouchers, actor: Actor) -> int:
        """Permanently delete every voucher in ``loaded``. Call inside a transaction.

        Active vouchers are soft-deleted first so they pass through the
        deleted state.
        """
        self.check_purge_permission(actor)
        now = datetime.now(UTC)
        ids = list(dict.fromkeys([*loaded.vouchers, *loaded.mirrors]))
        for voucher_id in ids:
            voucher = loaded.vouchers.get(voucher_id)
            mirror = loaded.mirrors.get(voucher_id)
            if voucher is not None and not voucher.is_deleted:
                self._mark_deleted(voucher, actor, "permanent delete", now)
                voucher = self.db.get_voucher(voucher_id)
                mirror = self.db.get_deleted_voucher(voucher_id)
            self._remove(voucher_id, voucher, mirror)
        return len(ids)

    def soft_delete_many(self, voucher_ids: list[str], actor: Actor, reason: Optional[str] = None) -> int:
        """Soft-delete many vouchers atomically; already-deleted ones are skipped.

        Raises:
            NotFoundError: If any voucher does not exist
        """
        loaded = self.load(voucher_ids)
        missing = [vid for vid in voucher_ids if vid not in loaded.vouchers]
        if missing:
            raise NotFoundError(voucher_not_found(missing[0]))
        with self.db.transaction():
            count = self.apply_soft_delete(loaded, actor, reason)
        logger.info("Soft-deleted %d vouchers", count)
        self.audit.record(actor, "delete", "voucher", f"Deleted {count} vouchers")
        return count

    def restore_many(self, voucher_ids: list[str], actor: Actor) -> int:
        """Restore many vouchers atomically; vouchers not deleted are skipped.

        Raises:
            NotFoundError: If any voucher is neither live nor in the deleted log
        """
        loaded = self.load(voucher_ids)
        if loaded.missing:
            raise NotFoundError(voucher_not_in_deleted_log(loaded.missing[0]))
        with self.db.transaction():
            count = self.apply_restore(loaded, actor)
        logger.info("Restored %d vouchers", count)
        self.audit.record(actor, "restore", "voucher", f"Restored {count} vouchers")
        return count

    def purge_many(self, voucher_ids: list[str], actor: Actor) -> int:
        """Permanently delete many soft-deleted vouchers atomically.

        Raises:
            PermissionDeniedError: If the actor may not delete vouchers permanently
            NotFoundError: If any voucher does not exist
            ValidationError: If any voucher is still active
        """
        self.check_purge_permission(actor)
        loaded = self.load(voucher_ids)
        if loaded.missing:
            raise NotFoundError(voucher_not_found(loaded.missing[0]))
        active = [
            loaded.vouchers[vid] for vid in voucher_ids
            if vid in loaded.vouchers and not loaded.vouchers[vid].is_deleted
        ]
        if active:
            raise ValidationError(
                f"Voucher {active[0].invoice_number} is active; soft-delete it before deleting permanently"
            )
        with self.db.transaction():
            count = self.apply_purge(loaded, actor)
        logger.info("Permanently deleted %d vouchers", count)
        self.audit.record(actor, "purge", "voucher", f"Permanently deleted {count} vouchers")
        return count

    def list_deleted(self) -> list[DeletedVoucher]:
        """Return the deleted log, most recent first."""
        return self.db.list_deleted_vouchers()
