"""Repository modules - Data access layer"""
from .instance_store import InstanceStore, InMemoryInstanceStore, MongoInstanceStore
from .audit_repo import AuditLog, InMemoryAuditLog, MongoAuditLog

__all__ = [
    "InstanceStore",
    "InMemoryInstanceStore",
    "MongoInstanceStore",
    "AuditLog",
    "InMemoryAuditLog",
    "MongoAuditLog",
]
