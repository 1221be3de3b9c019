"""Audit-log sink."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ledgerflow.database.base import Database
from ledgerflow.domain.entities import Actor

logger = logging.getLogger(__name__)


class AuditLog(ABC):
    """Append-only record of who did what."""

    @abstractmethod
    def record(
        self,
        actor: Actor,
        action: str,
        target_type: str,
        description: str,
        target_id: Optional[str] = None,
    ) -> None:
        """Append one entry. Must not raise."""
        pass


class DatabaseAuditLog(AuditLog):
    """Audit sink writing to the audit_log table.

    Appends are fire-and-forget: a failed append is logged and dropped so it
    never undoes the financial operation it describes. Services call it after
    their transaction has committed.
    """

    def __init__(self, db: Database):
        self.db = db

    def record(
        self,
        actor: Actor,
        action: str,
        target_type: str,
        description: str,
        target_id: Optional[str] = None,
    ) -> None:
        try:
            self.db.append_audit_record(
                user_id=actor.user_id,
                user_name=actor.name,
                action=action,
                target_type=target_type,
                description=description,
                target_id=target_id,
            )
        except Exception:
            logger.warning(
                "Audit append failed for %s %s %s", action, target_type, target_id, exc_info=True
            )


class NullAuditLog(AuditLog):
    """Audit sink that discards everything."""

    def record(
        self,
        actor: Actor,
        action: str,
        target_type: str,
        description: str,
        target_id: Optional[str] = None,
    ) -> None:
        pass
