"""Transition Engine - The approval state machine

States: PENDING(step=k) for k in 1..N, APPROVED, REJECTED, CANCELLED.

Every public method takes an instance snapshot and returns a
TransitionResult holding a new snapshot plus the audit entries and events
the transition produced. The input snapshot is never mutated, so an
illegal command (InvalidTransitionError, ValidationError) or a failed
approver lookup (NoApproverAvailableError) leaves no trace.
"""
from datetime import datetime
from typing import List, Optional

from ..domain.models import (
    WorkflowInstance, WorkflowTemplate, StepDefinition, StepInstance,
    WorkflowCommand, TransitionResult, AuditEntry, WorkflowEvent
)
from ..domain.enums import (
    InstanceStatus, StepStatus, CommandType, AuditAction, WorkflowEventType
)
from ..domain.errors import InvalidTransitionError, ValidationError
from .approver_resolver import ApproverResolver
from .audit_writer import build_entry, SYSTEM_ACTOR
from .condition_evaluator import ConditionEvaluator
from .permission_guard import PermissionGuard
from ..utils.logger import get_logger

logger = get_logger(__name__)


class _Transition:
    """Mutable working state of one transition"""

    def __init__(self, instance: WorkflowInstance, now: datetime):
        self.instance = instance.model_copy(deep=True)
        self.instance.updated_at = now
        self.now = now
        self.entries: List[AuditEntry] = []
        self.events: List[WorkflowEvent] = []

    def audit(
        self,
        action: AuditAction,
        actor_id: str,
        step_number: Optional[int] = None,
        comment: Optional[str] = None
    ) -> None:
        self.entries.append(build_entry(
            instance_id=self.instance.instance_id,
            action=action,
            actor_id=actor_id,
            timestamp=self.now,
            step_number=step_number,
            comment=comment
        ))

    def emit(
        self,
        event: WorkflowEventType,
        step_number: Optional[int] = None,
        approver_id: Optional[str] = None
    ) -> None:
        self.events.append(WorkflowEvent(
            instance_id=self.instance.instance_id,
            event=event,
            timestamp=self.now,
            step_number=step_number,
            approver_id=approver_id
        ))

    def result(self) -> TransitionResult:
        return TransitionResult(instance=self.instance, audit_entries=self.entries, events=self.events)


class TransitionEngine:
    """
    Validate and apply approve/reject/cancel/skip commands

    Stateless: collaborators are read-only, so one engine can serve any
    number of concurrent callers.
    """

    def __init__(
        self,
        approver_resolver: ApproverResolver,
        permission_guard: Optional[PermissionGuard] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None
    ):
        self.approver_resolver = approver_resolver
        self.permission_guard = permission_guard or PermissionGuard()
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()

    # =========================================================================
    # Entry points
    # =========================================================================

    def initialize(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
        now: datetime
    ) -> TransitionResult:
        """Activate the first step that needs a human decision"""
        t = _Transition(instance, now)
        t.audit(AuditAction.CREATED, instance.requester.requester_id)
        t.emit(WorkflowEventType.CREATED)
        self._activate_from(t, template, 1)
        return t.result()

    def apply(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
        command: WorkflowCommand,
        now: datetime
    ) -> TransitionResult:
        """Dispatch a command to its transition"""
        if command.command_type == CommandType.APPROVE:
            return self.approve(instance, template, command.step_id, command.actor_id, command.comment, now)
        if command.command_type == CommandType.REJECT:
            return self.reject(instance, command.step_id, command.actor_id, command.comment, now)
        if command.command_type == CommandType.CANCEL:
            return self.cancel(instance, command.actor_id, command.comment, now)
        if command.command_type == CommandType.SKIP:
            return self.skip(instance, template, command.step_id, command.actor_id, command.comment, now)
        raise InvalidTransitionError(f"Unsupported command {command.command_type}")

    def approve(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
        step_id: str,
        actor_id: str,
        comment: Optional[str],
        now: datetime
    ) -> TransitionResult:
        """Approve the current step and advance"""
        step = self._require_current_step(instance, step_id, CommandType.APPROVE)
        if not self.permission_guard.can_decide_step(actor_id, instance, step):
            raise InvalidTransitionError(
                f"{actor_id} is not the approver of step {step.step_number}",
                details=self._details(instance, step, actor_id)
            )

        t = _Transition(instance, now)
        self._decide(t.instance.step(step.step_number), StepStatus.APPROVED, actor_id, comment, now)
        t.audit(AuditAction.APPROVED, actor_id, step.step_number, comment)
        self._activate_from(t, template, step.step_number + 1)

        logger.info(
            f"Approved step {step.step_number} of {instance.instance_id}",
            extra={
                "instance_id": instance.instance_id,
                "step_number": step.step_number,
                "actor_id": actor_id,
                "status": t.instance.status.value,
            }
        )
        return t.result()

    def reject(
        self,
        instance: WorkflowInstance,
        step_id: str,
        actor_id: str,
        comment: Optional[str],
        now: datetime
    ) -> TransitionResult:
        """Reject the current step; rejection always ends the workflow"""
        comment = self._require_comment(comment, CommandType.REJECT)
        step = self._require_current_step(instance, step_id, CommandType.REJECT)
        if not self.permission_guard.can_decide_step(actor_id, instance, step):
            raise InvalidTransitionError(
                f"{actor_id} is not the approver of step {step.step_number}",
                details=self._details(instance, step, actor_id)
            )

        t = _Transition(instance, now)
        self._decide(t.instance.step(step.step_number), StepStatus.REJECTED, actor_id, comment, now)
        self._finish(t, InstanceStatus.REJECTED)
        t.audit(AuditAction.REJECTED, actor_id, step.step_number, comment)
        t.emit(WorkflowEventType.REJECTED, step.step_number)

        logger.info(
            f"Rejected step {step.step_number} of {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "step_number": step.step_number, "actor_id": actor_id}
        )
        return t.result()

    def cancel(
        self,
        instance: WorkflowInstance,
        actor_id: str,
        comment: Optional[str],
        now: datetime
    ) -> TransitionResult:
        """Cancel a non-terminal instance (requester or administrator)"""
        self._require_pending(instance, CommandType.CANCEL)
        if not self.permission_guard.can_cancel(actor_id, instance):
            raise InvalidTransitionError(
                f"{actor_id} cannot cancel workflow {instance.instance_id}",
                details={"instance_id": instance.instance_id, "actor_id": actor_id}
            )

        t = _Transition(instance, now)
        current = t.instance.current_step_instance()
        if current is not None:
            self._decide(current, StepStatus.SKIPPED, actor_id, comment, now)
        self._finish(t, InstanceStatus.CANCELLED)
        t.audit(AuditAction.CANCELLED, actor_id, None, comment)
        t.emit(WorkflowEventType.CANCELLED)

        logger.info(
            f"Cancelled workflow {instance.instance_id}",
            extra={"instance_id": instance.instance_id, "actor_id": actor_id}
        )
        return t.result()

    def skip(
        self,
        instance: WorkflowInstance,
        template: WorkflowTemplate,
        step_id: str,
        actor_id: str,
        comment: Optional[str],
        now: datetime
    ) -> TransitionResult:
        """Administrator skips the current step; advances like an approval"""
        comment = self._require_comment(comment, CommandType.SKIP)
        step = self._require_current_step(instance, step_id, CommandType.SKIP)
        if not self.permission_guard.can_skip(actor_id, instance):
            raise InvalidTransitionError(
                f"{actor_id} cannot skip steps of workflow {instance.instance_id}",
                details=self._details(instance, step, actor_id)
            )

        t = _Transition(instance, now)
        self._decide(t.instance.step(step.step_number), StepStatus.SKIPPED, actor_id, comment, now)
        t.audit(AuditAction.SKIPPED, actor_id, step.step_number, comment)
        self._activate_from(t, template, step.step_number + 1)
        return t.result()

    # =========================================================================
    # Validation
    # =========================================================================

    def _require_pending(self, instance: WorkflowInstance, command: CommandType) -> None:
        if instance.status != InstanceStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot {command.value} workflow {instance.instance_id} in status {instance.status.value}",
                details={"instance_id": instance.instance_id, "status": instance.status.value}
            )

    def _require_current_step(
        self,
        instance: WorkflowInstance,
        step_id: Optional[str],
        command: CommandType
    ) -> StepInstance:
        self._require_pending(instance, command)
        current = instance.current_step_instance()
        if current is None or current.step_id != step_id:
            raise InvalidTransitionError(
                f"Step {step_id} is not the current step of workflow {instance.instance_id}",
                details={
                    "instance_id": instance.instance_id,
                    "step_id": step_id,
                    "current_step_id": current.step_id if current else None
                }
            )
        if current.status != StepStatus.PENDING:
            raise InvalidTransitionError(
                f"Step {step_id} is {current.status.value}, not pending",
                details={"instance_id": instance.instance_id, "step_id": step_id}
            )
        return current

    @staticmethod
    def _require_comment(comment: Optional[str], command: CommandType) -> str:
        if comment is None or not comment.strip():
            raise ValidationError(
                f"A comment is required to {command.value} a step",
                details={"field": "comment"}
            )
        return comment.strip()

    @staticmethod
    def _details(instance: WorkflowInstance, step: StepInstance, actor_id: str) -> dict:
        return {
            "instance_id": instance.instance_id,
            "step_number": step.step_number,
            "actor_id": actor_id,
            "approver_id": step.approver.approver_id if step.approver else None
        }

    # =========================================================================
    # Transition logic
    # =========================================================================

    @staticmethod
    def _decide(
        step: StepInstance,
        status: StepStatus,
        actor_id: str,
        comment: Optional[str],
        now: datetime
    ) -> None:
        step.status = status
        step.decided_at = now
        step.decided_by = actor_id
        step.comment = comment

    def _should_auto_skip(self, step_def: StepDefinition, payload: dict) -> bool:
        """Auto-approve steps are skipped when their condition is false"""
        if not step_def.auto_approve or step_def.condition is None:
            return False
        # An unevaluable condition keeps the step, so review is never bypassed by bad data
        return not self.condition_evaluator.evaluate(step_def.condition, payload, default=True)

    def _activate_from(self, t: _Transition, template: WorkflowTemplate, step_number: int) -> None:
        """
        Make the first step at or after step_number that needs a human
        decision pending; auto-skippable steps on the way are marked
        SKIPPED. Completes the instance when no such step remains.
        """
        instance = t.instance
        while step_number <= instance.total_steps:
            step_def = template.step(step_number)
            step = instance.step(step_number)

            if self._should_auto_skip(step_def, instance.payload):
                reason = f"Condition not met: {self._describe(step_def)}"
                self._decide(step, StepStatus.SKIPPED, SYSTEM_ACTOR, reason, t.now)
                t.audit(AuditAction.AUTO_SKIPPED, SYSTEM_ACTOR, step_number, reason)
                step_number += 1
                continue

            approver = self.approver_resolver.resolve(step_def, instance.requester)
            step.approver = approver
            step.status = StepStatus.PENDING
            instance.current_step = step_number
            t.audit(AuditAction.STEP_ACTIVATED, SYSTEM_ACTOR, step_number)
            t.emit(WorkflowEventType.STEP_ADVANCED, step_number, approver.approver_id)
            return

        self._finish(t, InstanceStatus.APPROVED)
        t.audit(AuditAction.COMPLETED, SYSTEM_ACTOR)
        t.emit(WorkflowEventType.APPROVED)

    @staticmethod
    def _finish(t: _Transition, status: InstanceStatus) -> None:
        t.instance.status = status
        t.instance.completed_at = t.now
        t.instance.current_step = None

    @staticmethod
    def _describe(step_def: StepDefinition) -> str:
        condition = step_def.condition
        if condition is None:
            return ""
        if condition.expression:
            return condition.expression
        joiner = f" {condition.logic.lower()} "
        return joiner.join(f"{c.field} {c.operator.value} {c.value!r}" for c in condition.conditions)
