"""Workflow Manager - Create, drive and query approval workflow instances"""
from typing import Any, Dict, List, Optional, Tuple, Union
from datetime import datetime

from ..domain.models import (
    WorkflowInstance, WorkflowTemplate, StepInstance, RequesterContext,
    WorkflowCommand, WorkflowQuery, WorkflowStats, WorkflowEvent, AuditEntry,
    TransitionResult
)
from ..domain.enums import RequestType, Priority, InstanceStatus
from ..domain.errors import ConcurrentModificationError, EventDeliveryError
from ..engine.template_registry import TemplateRegistry
from ..engine.transition_engine import TransitionEngine
from ..engine.deadline_calculator import DeadlineCalculator
from ..engine.audit_writer import AuditWriter
from ..repositories.instance_store import InstanceStore
from ..repositories.audit_repo import AuditLog
from .directory_service import DirectoryLookup
from .event_sink import EventSink, LoggingEventSink
from ..utils.idgen import generate_instance_id, generate_step_id
from ..utils.time import Clock, utc_now, days_between
from ..utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)

# Page size used when a read needs every matching instance
_SCAN_PAGE_SIZE = 500


class WorkflowManager:
    """
    Entry point for workflow operations

    Each command runs load -> transition -> compare-and-swap. On a version
    conflict the instance is reloaded and the command re-validated against
    the fresh state, up to max_attempts times. Audit entries and events are
    written only after the swap succeeds.
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        store: InstanceStore,
        audit_log: AuditLog,
        transition_engine: TransitionEngine,
        directory: Optional[DirectoryLookup] = None,
        deadline_calculator: Optional[DeadlineCalculator] = None,
        event_sink: Optional[EventSink] = None,
        max_attempts: int = 3,
        clock: Clock = utc_now
    ):
        self.registry = registry
        self.store = store
        self.audit_writer = AuditWriter(audit_log)
        self.engine = transition_engine
        self.directory = directory
        self.deadlines = deadline_calculator or DeadlineCalculator()
        self.event_sink = event_sink or LoggingEventSink()
        self.max_attempts = max(1, max_attempts)
        self.clock = clock

    # =========================================================================
    # Commands
    # =========================================================================

    def create(
        self,
        request_type: RequestType,
        requester: Union[str, RequesterContext],
        payload: Optional[Dict[str, Any]] = None,
        priority: Priority = Priority.MEDIUM,
        workflow_name: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> str:
        """
        Create an instance and activate its first step

        Raises:
            TemplateNotFoundError: No template for the request type
            NoApproverAvailableError: The first step's role has no holder
        """
        if isinstance(requester, str):
            requester = self._lookup_requester(requester)

        template = self.registry.resolve(request_type, priority)
        now = self.clock()
        instance = self._build_instance(
            template, request_type, requester, payload or {}, priority,
            workflow_name or template.name, request_id, now
        )

        # Resolve approvers before persisting so a failed lookup leaves nothing behind
        result = self.engine.initialize(instance, template, now)
        stored = self.store.insert(result.instance)
        self._commit_side_effects(result)

        logger.info(
            f"Created workflow {stored.instance_id} from {template.template_id} v{template.version}",
            extra={
                "instance_id": stored.instance_id,
                "request_type": request_type.value,
                "actor_id": requester.requester_id,
                "status": stored.status.value,
            }
        )
        return stored.instance_id

    def execute(self, instance_id: str, command: WorkflowCommand) -> WorkflowInstance:
        """
        Apply a command with optimistic concurrency

        Raises:
            WorkflowNotFoundError: Unknown instance
            InvalidTransitionError / ValidationError: Command illegal in the current state
            ConcurrentModificationError: Every attempt lost the compare-and-swap
        """
        for attempt in range(1, self.max_attempts + 1):
            instance, version = self.store.load(instance_id)
            template = self.registry.get(instance.template_id, instance.template_version)
            result = self.engine.apply(instance, template, command, self.clock())

            if self.store.compare_and_swap(instance_id, version, result.instance):
                self._commit_side_effects(result)
                return result.instance.model_copy(update={"version": version + 1})

            logger.warning(
                f"Version conflict applying {command.command_type.value} to {instance_id}",
                extra={
                    "instance_id": instance_id,
                    "actor_id": command.actor_id,
                    "attempt": attempt,
                }
            )

        raise ConcurrentModificationError(
            f"Workflow {instance_id} was modified concurrently",
            details={"instance_id": instance_id, "attempts": self.max_attempts}
        )

    def approve(
        self,
        instance_id: str,
        step_id: str,
        actor_id: str,
        comment: Optional[str] = None
    ) -> WorkflowInstance:
        return self.execute(instance_id, WorkflowCommand.approve(step_id, actor_id, comment))

    def reject(self, instance_id: str, step_id: str, actor_id: str, comment: Optional[str]) -> WorkflowInstance:
        return self.execute(instance_id, WorkflowCommand.reject(step_id, actor_id, comment))

    def cancel(self, instance_id: str, actor_id: str, comment: Optional[str] = None) -> WorkflowInstance:
        return self.execute(instance_id, WorkflowCommand.cancel(actor_id, comment))

    def skip(self, instance_id: str, step_id: str, actor_id: str, comment: Optional[str]) -> WorkflowInstance:
        return self.execute(instance_id, WorkflowCommand.skip(step_id, actor_id, comment))

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, instance_id: str) -> Tuple[WorkflowInstance, List[AuditEntry]]:
        """Instance snapshot with its audit trail"""
        instance, _ = self.store.load(instance_id)
        return instance, self.audit_writer.get_entries(instance_id)

    def query(self, filters: Optional[WorkflowQuery] = None, now: Optional[datetime] = None) -> List[WorkflowInstance]:
        """List instances, newest first"""
        return self.store.find(filters or WorkflowQuery(), now or self.clock())

    def find_overdue(self, now: Optional[datetime] = None) -> List[WorkflowInstance]:
        """Pending instances whose current step is past its due date"""
        return self._scan(WorkflowQuery(status=InstanceStatus.PENDING, overdue=True), now or self.clock())

    def stats(self, now: Optional[datetime] = None) -> WorkflowStats:
        """Dashboard counters over all instances"""
        now = now or self.clock()
        stats = WorkflowStats()
        processing_days: List[float] = []

        for instance in self._scan(WorkflowQuery(), now):
            stats.total += 1
            if instance.status == InstanceStatus.PENDING:
                stats.pending += 1
                if instance.is_overdue(now):
                    stats.overdue += 1
            elif instance.status == InstanceStatus.APPROVED:
                stats.approved += 1
            elif instance.status == InstanceStatus.REJECTED:
                stats.rejected += 1
            elif instance.status == InstanceStatus.CANCELLED:
                stats.cancelled += 1

            if instance.status in (InstanceStatus.APPROVED, InstanceStatus.REJECTED) and instance.completed_at:
                processing_days.append(days_between(instance.created_at, instance.completed_at))

        if processing_days:
            stats.avg_processing_days = round(sum(processing_days) / len(processing_days), 2)
        return stats

    def list_templates(self) -> List[WorkflowTemplate]:
        return self.registry.list_templates()

    def emit_event(self, event: WorkflowEvent) -> bool:
        """Deliver one event; delivery failures are logged, never raised"""
        try:
            self.event_sink.emit(event)
            return True
        except EventDeliveryError as e:
            logger.error(
                f"Failed to deliver {event.event.value} for {event.instance_id}: {e.message}",
                extra={"instance_id": event.instance_id, "event": event.event.value}
            )
            return False

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lookup_requester(self, requester_id: str) -> RequesterContext:
        if self.directory is None:
            return RequesterContext(requester_id=requester_id)
        return self.directory.get_requester(requester_id)

    def _build_instance(
        self,
        template: WorkflowTemplate,
        request_type: RequestType,
        requester: RequesterContext,
        payload: Dict[str, Any],
        priority: Priority,
        workflow_name: str,
        request_id: Optional[str],
        now: datetime
    ) -> WorkflowInstance:
        due_dates = self.deadlines.step_due_dates(template, priority, now)
        steps = [
            StepInstance(
                step_id=generate_step_id(),
                step_number=step_def.step_number,
                name=step_def.name,
                role=step_def.role,
                due_date=due_date
            )
            for step_def, due_date in zip(template.steps, due_dates)
        ]
        return WorkflowInstance(
            instance_id=generate_instance_id(),
            template_id=template.template_id,
            template_version=template.version,
            request_type=request_type,
            workflow_name=workflow_name,
            request_id=request_id,
            requester=requester,
            payload=payload,
            current_step=None,
            total_steps=template.total_steps,
            status=InstanceStatus.PENDING,
            priority=priority,
            due_date=self.deadlines.instance_due_date(template, priority, now),
            created_at=now,
            updated_at=now,
            steps=steps
        )

    def _commit_side_effects(self, result: TransitionResult) -> None:
        """Audit and notify after a successful write"""
        self.audit_writer.write_entries(result.audit_entries, get_correlation_id())
        for event in result.events:
            self.emit_event(event)

    def _scan(self, query: WorkflowQuery, now: datetime) -> List[WorkflowInstance]:
        found: List[WorkflowInstance] = []
        skip = 0
        while True:
            page = self.store.find(query.model_copy(update={"skip": skip, "limit": _SCAN_PAGE_SIZE}), now)
            found.extend(page)
            if len(page) < _SCAN_PAGE_SIZE:
                return found
            skip += _SCAN_PAGE_SIZE
