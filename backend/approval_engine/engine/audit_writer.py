"""Audit Writer - Append-only audit entries"""
from datetime import datetime
from typing import List, Optional

from ..domain.models import AuditEntry
from ..domain.enums import AuditAction
from ..repositories.audit_repo import AuditLog
from ..utils.idgen import generate_audit_entry_id
from ..utils.logger import get_logger

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


def build_entry(
    instance_id: str,
    action: AuditAction,
    actor_id: str,
    timestamp: datetime,
    step_number: Optional[int] = None,
    comment: Optional[str] = None
) -> AuditEntry:
    """Build an audit entry; persisted later by AuditWriter"""
    return AuditEntry(
        audit_entry_id=generate_audit_entry_id(),
        instance_id=instance_id,
        step_number=step_number,
        actor_id=actor_id,
        action=action,
        comment=comment,
        timestamp=timestamp
    )


class AuditWriter:
    """
    Write audit entries (append-only)

    Entries are produced by the transition engine and written here only
    after the instance change they describe has been committed.
    """

    def __init__(self, audit_log: AuditLog):
        self.audit_log = audit_log

    def write_entries(
        self,
        entries: List[AuditEntry],
        correlation_id: Optional[str] = None
    ) -> List[AuditEntry]:
        if not entries:
            return []
        if correlation_id:
            entries = [e.model_copy(update={"correlation_id": correlation_id}) for e in entries]
        written = self.audit_log.append(entries)
        for entry in written:
            logger.info(
                f"Audit: {entry.action.value}",
                extra={
                    "instance_id": entry.instance_id,
                    "step_number": entry.step_number,
                    "actor_id": entry.actor_id,
                    "action": entry.action.value,
                }
            )
        return written

    def get_entries(self, instance_id: str) -> List[AuditEntry]:
        return self.audit_log.list_for_instance(instance_id)
