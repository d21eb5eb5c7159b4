"""Audit Repository - Append-only audit log"""
import threading
from typing import Dict, List, Optional, Protocol

from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection, AUDIT_COLLECTION
from ..domain.models import AuditEntry
from ..domain.enums import AuditAction
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditLog(Protocol):
    """Append-only sink of transitions"""

    def append(self, entries: List[AuditEntry]) -> List[AuditEntry]:
        ...

    def list_for_instance(
        self,
        instance_id: str,
        actions: Optional[List[AuditAction]] = None
    ) -> List[AuditEntry]:
        ...


class InMemoryAuditLog:
    """Audit log kept in process memory"""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, List[AuditEntry]] = {}

    def append(self, entries: List[AuditEntry]) -> List[AuditEntry]:
        with self._lock:
            for entry in entries:
                self._entries.setdefault(entry.instance_id, []).append(entry)
        return entries

    def list_for_instance(
        self,
        instance_id: str,
        actions: Optional[List[AuditAction]] = None
    ) -> List[AuditEntry]:
        with self._lock:
            entries = list(self._entries.get(instance_id, []))
        if actions:
            entries = [e for e in entries if e.action in actions]
        return entries

    def count(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._entries.values())


class MongoAuditLog:
    """Audit log stored in MongoDB (insert only)"""

    def __init__(self, collection: Optional[Collection] = None):
        self._audit_entries: Collection = collection if collection is not None else get_collection(AUDIT_COLLECTION)

    def append(self, entries: List[AuditEntry]) -> List[AuditEntry]:
        if not entries:
            return []

        docs = []
        for entry in entries:
            doc = entry.model_dump()
            doc["_id"] = entry.audit_entry_id
            docs.append(doc)

        self._audit_entries.insert_many(docs, ordered=True)
        logger.info(
            f"Created {len(entries)} audit entries",
            extra={"instance_id": entries[0].instance_id}
        )
        return entries

    def list_for_instance(
        self,
        instance_id: str,
        actions: Optional[List[AuditAction]] = None
    ) -> List[AuditEntry]:
        query: Dict[str, object] = {"instance_id": instance_id}
        if actions:
            query["action"] = {"$in": [a.value for a in actions]}

        cursor = self._audit_entries.find(query).sort("timestamp", ASCENDING)

        entries = []
        for doc in cursor:
            doc.pop("_id", None)
            entries.append(AuditEntry.model_validate(doc))
        return entries
