"""Instance Store - Versioned storage of workflow instances

The engine needs only three operations:
- insert(instance): persist a new instance at version 0
- load(instance_id) -> (instance, version)
- compare_and_swap(instance_id, expected_version, new_instance) -> bool
"""
import re
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, INSTANCES_COLLECTION
from ..domain.models import WorkflowInstance, WorkflowQuery
from ..domain.enums import InstanceStatus
from ..domain.errors import WorkflowNotFoundError, AlreadyExistsError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class InstanceStore(Protocol):
    """Persistence contract for workflow instances"""

    def insert(self, instance: WorkflowInstance) -> WorkflowInstance:
        ...

    def load(self, instance_id: str) -> Tuple[WorkflowInstance, int]:
        ...

    def compare_and_swap(
        self,
        instance_id: str,
        expected_version: int,
        new_instance: WorkflowInstance
    ) -> bool:
        ...

    def find(self, query: WorkflowQuery, now: datetime) -> List[WorkflowInstance]:
        ...


def matches_query(instance: WorkflowInstance, query: WorkflowQuery, now: datetime) -> bool:
    """Apply listing filters to one instance"""
    if query.status is not None and instance.status != query.status:
        return False
    if query.request_type is not None and instance.request_type != query.request_type:
        return False
    if query.priority is not None and instance.priority != query.priority:
        return False
    if query.requester_id is not None and instance.requester.requester_id != query.requester_id:
        return False
    if query.approver_id is not None and instance.current_approver_id != query.approver_id:
        return False
    if query.overdue is not None and instance.is_overdue(now) != query.overdue:
        return False
    if query.search:
        term = query.search.lower()
        if term not in instance.workflow_name.lower() and term not in instance.requester.display_name.lower():
            return False
    return True


class InMemoryInstanceStore:
    """Instance store kept in process memory; the lock covers only the swap itself"""

    def __init__(self):
        self._lock = threading.Lock()
        self._instances: Dict[str, WorkflowInstance] = {}

    def insert(self, instance: WorkflowInstance) -> WorkflowInstance:
        stored = instance.model_copy(deep=True, update={"version": 0})
        with self._lock:
            if instance.instance_id in self._instances:
                raise AlreadyExistsError(f"Workflow {instance.instance_id} already exists")
            self._instances[instance.instance_id] = stored
        return stored.model_copy(deep=True)

    def load(self, instance_id: str) -> Tuple[WorkflowInstance, int]:
        with self._lock:
            stored = self._instances.get(instance_id)
        if stored is None:
            raise WorkflowNotFoundError(f"Workflow {instance_id} not found")
        return stored.model_copy(deep=True), stored.version

    def compare_and_swap(
        self,
        instance_id: str,
        expected_version: int,
        new_instance: WorkflowInstance
    ) -> bool:
        with self._lock:
            stored = self._instances.get(instance_id)
            if stored is None:
                raise WorkflowNotFoundError(f"Workflow {instance_id} not found")
            if stored.version != expected_version:
                return False
            self._instances[instance_id] = new_instance.model_copy(
                deep=True, update={"version": expected_version + 1}
            )
        return True

    def find(self, query: WorkflowQuery, now: datetime) -> List[WorkflowInstance]:
        with self._lock:
            snapshot = list(self._instances.values())
        found = [i for i in snapshot if matches_query(i, query, now)]
        found.sort(key=lambda i: i.created_at, reverse=True)
        return [i.model_copy(deep=True) for i in found[query.skip:query.skip + query.limit]]


class MongoInstanceStore:
    """Instance store in MongoDB, CAS through a version-filtered replace"""

    def __init__(self, collection: Optional[Collection] = None):
        self._instances: Collection = collection if collection is not None else get_collection(INSTANCES_COLLECTION)

    @staticmethod
    def _to_document(instance: WorkflowInstance) -> Dict[str, Any]:
        # Don't use mode="json" - it converts datetime to strings, breaking range queries
        doc = instance.model_dump()
        doc["_id"] = instance.instance_id
        current = instance.current_step_instance()
        doc["current_due_date"] = current.due_date if current else None
        doc["current_approver_id"] = instance.current_approver_id
        return doc

    @staticmethod
    def _from_document(doc: Dict[str, Any]) -> WorkflowInstance:
        doc.pop("_id", None)
        doc.pop("current_due_date", None)
        doc.pop("current_approver_id", None)
        return WorkflowInstance.model_validate(doc)

    def insert(self, instance: WorkflowInstance) -> WorkflowInstance:
        stored = instance.model_copy(deep=True, update={"version": 0})
        try:
            self._instances.insert_one(self._to_document(stored))
        except DuplicateKeyError as e:
            raise AlreadyExistsError(f"Workflow {instance.instance_id} already exists") from e
        logger.info(f"Created workflow: {instance.instance_id}", extra={"instance_id": instance.instance_id})
        return stored

    def load(self, instance_id: str) -> Tuple[WorkflowInstance, int]:
        doc = self._instances.find_one({"_id": instance_id})
        if doc is None:
            raise WorkflowNotFoundError(f"Workflow {instance_id} not found")
        instance = self._from_document(doc)
        return instance, instance.version

    def compare_and_swap(
        self,
        instance_id: str,
        expected_version: int,
        new_instance: WorkflowInstance
    ) -> bool:
        doc = self._to_document(new_instance.model_copy(update={"version": expected_version + 1}))
        result = self._instances.find_one_and_replace(
            {"_id": instance_id, "version": expected_version},
            doc,
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            if self._instances.count_documents({"_id": instance_id}, limit=1) == 0:
                raise WorkflowNotFoundError(f"Workflow {instance_id} not found")
            logger.info(
                f"Version conflict on workflow {instance_id}",
                extra={"instance_id": instance_id, "status": "conflict"}
            )
            return False
        return True

    def find(self, query: WorkflowQuery, now: datetime) -> List[WorkflowInstance]:
        filters: List[Dict[str, Any]] = []
        if query.status is not None:
            filters.append({"status": query.status.value})
        if query.request_type is not None:
            filters.append({"request_type": query.request_type.value})
        if query.priority is not None:
            filters.append({"priority": query.priority.value})
        if query.requester_id is not None:
            filters.append({"requester.requester_id": query.requester_id})
        if query.approver_id is not None:
            filters.append({"current_approver_id": query.approver_id})
        if query.overdue is True:
            filters.append({"status": InstanceStatus.PENDING.value, "current_due_date": {"$lt": now}})
        elif query.overdue is False:
            filters.append({"$or": [
                {"status": {"$ne": InstanceStatus.PENDING.value}},
                {"current_due_date": {"$gte": now}},
            ]})
        if query.search:
            pattern = {"$regex": re.escape(query.search), "$options": "i"}
            filters.append({"$or": [{"workflow_name": pattern}, {"requester.display_name": pattern}]})

        mongo_query: Dict[str, Any] = {"$and": filters} if filters else {}
        cursor = (
            self._instances.find(mongo_query)
            .sort("created_at", DESCENDING)
            .skip(query.skip)
            .limit(query.limit)
        )
        return [self._from_document(doc) for doc in cursor]
