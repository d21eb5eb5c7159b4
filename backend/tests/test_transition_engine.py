"""Tests for the approval state machine"""

import pytest
from datetime import timedelta

from approval_engine.domain.models import (
    WorkflowTemplate, StepDefinition, RequesterContext, WorkflowCommand
)
from approval_engine.domain.enums import (
    RequestType, Priority, InstanceStatus, StepStatus, AuditAction, WorkflowEventType
)
from approval_engine.domain.errors import (
    InvalidTransitionError, ValidationError, NoApproverAvailableError
)
from approval_engine.engine.approver_resolver import ApproverResolver
from approval_engine.engine.permission_guard import PermissionGuard, RoleDelegationPolicy
from approval_engine.engine.transition_engine import TransitionEngine
from approval_engine.templates.default_templates import (
    BUDGET_APPROVAL, LICENSE_REQUEST, SOFTWARE_DECLARATION
)

from .conftest import T0, ADMIN_ID, new_instance

TWO_STEP_CONDITIONAL = WorkflowTemplate(
    template_id="TPL-two-step",
    name="Two step",
    request_type=RequestType.CONTRACT_RENEWAL,
    steps=[
        StepDefinition(step_number=1, name="A", role="it_manager"),
        StepDefinition(step_number=2, name="B", role="finance_manager",
                       condition="estimated_cost > 10000", auto_approve=True),
    ]
)


def started(engine, template, **kwargs):
    return engine.initialize(new_instance(template, **kwargs), template, T0).instance


def at(hours):
    return T0 + timedelta(hours=hours)


class TestInitialize:
    def test_first_step_becomes_pending(self, engine):
        result = engine.initialize(new_instance(BUDGET_APPROVAL), BUDGET_APPROVAL, T0)
        instance = result.instance

        assert instance.status == InstanceStatus.PENDING
        assert instance.current_step == 1
        assert instance.step(1).status == StepStatus.PENDING
        assert instance.step(1).approver.approver_id == "fin-mgr"
        assert [s.status for s in instance.steps[1:]] == [StepStatus.NOT_STARTED] * 2
        assert [e.action for e in result.audit_entries] == [AuditAction.CREATED, AuditAction.STEP_ACTIVATED]
        assert [e.event for e in result.events] == [WorkflowEventType.CREATED, WorkflowEventType.STEP_ADVANCED]
        assert result.events[1].approver_id == "fin-mgr"

    def test_leading_auto_skip_step(self, engine):
        template = WorkflowTemplate(
            template_id="TPL-lead-skip",
            name="Lead skip",
            request_type=RequestType.CONTRACT_RENEWAL,
            steps=[
                StepDefinition(step_number=1, role="finance_manager",
                               condition="estimated_cost > 10000", auto_approve=True),
                StepDefinition(step_number=2, role="it_manager"),
            ]
        )
        instance = started(engine, template, payload={"estimated_cost": 200})

        assert instance.step(1).status == StepStatus.SKIPPED
        assert instance.step(1).decided_by == "system"
        assert instance.current_step == 2
        assert instance.step(2).approver.approver_id == "it-mgr"

    def test_every_step_auto_skipped_completes_immediately(self, engine):
        template = WorkflowTemplate(
            template_id="TPL-all-skip",
            name="All skip",
            request_type=RequestType.CONTRACT_RENEWAL,
            steps=[StepDefinition(step_number=1, role="finance_manager",
                                  condition="estimated_cost > 10000", auto_approve=True)]
        )
        result = engine.initialize(new_instance(template, payload={"estimated_cost": 10}), template, T0)

        assert result.instance.status == InstanceStatus.APPROVED
        assert result.instance.current_step is None
        assert result.instance.completed_at == T0
        assert result.events[-1].event == WorkflowEventType.APPROVED

    def test_missing_approver_fails_creation(self, engine):
        stranger = RequesterContext(requester_id="x", department_id="legal", company_id="acme")
        with pytest.raises(NoApproverAvailableError):
            engine.initialize(new_instance(SOFTWARE_DECLARATION, requester=stranger), SOFTWARE_DECLARATION, T0)


class TestApprove:
    def test_budget_approval_three_steps(self, engine):
        instance = started(engine, BUDGET_APPROVAL, priority=Priority.HIGH)

        instance = engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "fin-mgr", None, at(1)).instance
        instance = engine.approve(instance, BUDGET_APPROVAL, "STEP-2", "it-dir", "ok", at(2)).instance
        assert instance.status == InstanceStatus.PENDING
        assert instance.current_step == 3
        assert instance.step(3).approver.approver_id == "ceo-1"

        result = engine.approve(instance, BUDGET_APPROVAL, "STEP-3", "ceo-1", None, at(3))
        instance = result.instance
        assert instance.status == InstanceStatus.APPROVED
        assert instance.completed_at == at(3)
        assert [s.status for s in instance.steps] == [StepStatus.APPROVED] * 3
        assert instance.step(2).comment == "ok"
        assert instance.step(3).decided_at == at(3)
        assert [e.action for e in result.audit_entries] == [AuditAction.APPROVED, AuditAction.COMPLETED]

    def test_input_snapshot_is_not_mutated(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        before = instance.model_dump()
        engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "fin-mgr", None, at(1))
        assert instance.model_dump() == before

    def test_current_step_never_decreases(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        seen = [instance.current_step]
        for number, actor in ((1, "fin-mgr"), (2, "it-dir")):
            instance = engine.approve(instance, BUDGET_APPROVAL, f"STEP-{number}", actor, None, at(number)).instance
            seen.append(instance.current_step)
        assert seen == sorted(seen) == [1, 2, 3]

    def test_wrong_actor(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        before = instance.model_dump()
        with pytest.raises(InvalidTransitionError):
            engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "it-dir", None, at(1))
        assert instance.model_dump() == before

    def test_wrong_step(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        with pytest.raises(InvalidTransitionError):
            engine.approve(instance, BUDGET_APPROVAL, "STEP-2", "fin-mgr", None, at(1))

    def test_already_decided_step(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        instance = engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "fin-mgr", None, at(1)).instance
        with pytest.raises(InvalidTransitionError):
            engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "fin-mgr", None, at(2))

    def test_terminal_instance(self, engine):
        instance = started(engine, SOFTWARE_DECLARATION)
        instance = engine.reject(instance, "STEP-1", "mgr-eng", "no", at(1)).instance
        with pytest.raises(InvalidTransitionError):
            engine.approve(instance, SOFTWARE_DECLARATION, "STEP-1", "mgr-eng", None, at(2))

    def test_final_auto_skip_step_completes_workflow(self, engine):
        instance = started(engine, TWO_STEP_CONDITIONAL, payload={"estimated_cost": 900})
        result = engine.approve(instance, TWO_STEP_CONDITIONAL, "STEP-1", "it-mgr", None, at(1))

        assert result.instance.status == InstanceStatus.APPROVED
        assert result.instance.step(2).status == StepStatus.SKIPPED
        assert result.instance.step(2).approver is None
        assert AuditAction.AUTO_SKIPPED in [e.action for e in result.audit_entries]
        assert result.events[-1].event == WorkflowEventType.APPROVED

    def test_conditional_step_kept_when_condition_holds(self, engine):
        instance = started(engine, LICENSE_REQUEST, payload={"estimated_cost": 25000})
        instance = engine.approve(instance, LICENSE_REQUEST, "STEP-1", "mgr-eng", None, at(1)).instance
        instance = engine.approve(instance, LICENSE_REQUEST, "STEP-2", "it-mgr", None, at(2)).instance

        assert instance.status == InstanceStatus.PENDING
        assert instance.current_step == 3
        assert instance.step(3).approver.approver_id == "fin-mgr"

    def test_unevaluable_condition_keeps_step_for_review(self, engine):
        instance = started(engine, TWO_STEP_CONDITIONAL, payload={})
        instance = engine.approve(instance, TWO_STEP_CONDITIONAL, "STEP-1", "it-mgr", None, at(1)).instance

        assert instance.status == InstanceStatus.PENDING
        assert instance.step(2).status == StepStatus.PENDING

    def test_missing_next_approver_leaves_instance_untouched(self, engine):
        template = WorkflowTemplate(
            template_id="TPL-legal",
            name="Legal",
            request_type=RequestType.CONTRACT_RENEWAL,
            steps=[
                StepDefinition(step_number=1, role="it_manager"),
                StepDefinition(step_number=2, role="legal_counsel"),
            ]
        )
        instance = started(engine, template)
        before = instance.model_dump()
        with pytest.raises(NoApproverAvailableError):
            engine.approve(instance, template, "STEP-1", "it-mgr", None, at(1))
        assert instance.model_dump() == before

    def test_delegate_approval_through_capability(self, directory):
        guard = PermissionGuard(can_act_on_step=RoleDelegationPolicy({"root": "super_admin", "it-2": "it_manager"}))
        engine = TransitionEngine(ApproverResolver(directory), permission_guard=guard)
        instance = started(engine, BUDGET_APPROVAL)

        with pytest.raises(InvalidTransitionError):
            engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "it-2", None, at(1))
        result = engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "root", None, at(1))
        assert result.instance.step(1).decided_by == "root"

    def test_apply_dispatches_commands(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        result = engine.apply(instance, BUDGET_APPROVAL, WorkflowCommand.approve("STEP-1", "fin-mgr"), at(1))
        assert result.instance.current_step == 2


class TestReject:
    def test_software_declaration_rejected_at_first_step(self, engine):
        instance = started(engine, SOFTWARE_DECLARATION, priority=Priority.MEDIUM)
        result = engine.reject(instance, "STEP-1", "mgr-eng", "insufficient justification", at(1))
        instance = result.instance

        assert instance.status == InstanceStatus.REJECTED
        assert instance.completed_at == at(1)
        assert instance.current_step is None
        assert instance.step(1).status == StepStatus.REJECTED
        assert instance.step(1).comment == "insufficient justification"
        assert instance.step(2).status == StepStatus.NOT_STARTED
        assert instance.step(2).approver is None
        assert [e.event for e in result.events] == [WorkflowEventType.REJECTED]

    def test_rejecting_middle_step_leaves_later_steps_untouched(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        instance = engine.approve(instance, BUDGET_APPROVAL, "STEP-1", "fin-mgr", None, at(1)).instance
        instance = engine.reject(instance, "STEP-2", "it-dir", "over budget", at(2)).instance

        assert instance.status == InstanceStatus.REJECTED
        assert instance.step(3).status == StepStatus.NOT_STARTED

    @pytest.mark.parametrize("comment", [None, "", "   "])
    def test_comment_required(self, engine, comment):
        instance = started(engine, SOFTWARE_DECLARATION)
        before = instance.model_dump()
        with pytest.raises(ValidationError):
            engine.reject(instance, "STEP-1", "mgr-eng", comment, at(1))
        assert instance.model_dump() == before

    def test_comment_required_even_for_terminal_instance(self, engine):
        instance = started(engine, SOFTWARE_DECLARATION)
        instance = engine.reject(instance, "STEP-1", "mgr-eng", "no", at(1)).instance
        with pytest.raises(ValidationError):
            engine.reject(instance, "STEP-1", "mgr-eng", "", at(2))


class TestCancel:
    def test_requester_cancels(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        result = engine.cancel(instance, "alice", "no longer needed", at(1))

        assert result.instance.status == InstanceStatus.CANCELLED
        assert result.instance.completed_at == at(1)
        assert result.instance.step(1).status == StepStatus.SKIPPED
        assert result.instance.step(2).status == StepStatus.NOT_STARTED
        assert result.audit_entries[0].step_number is None
        assert [e.event for e in result.events] == [WorkflowEventType.CANCELLED]

    def test_administrator_cancels(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        assert engine.cancel(instance, ADMIN_ID, None, at(1)).instance.status == InstanceStatus.CANCELLED

    def test_other_actor_cannot_cancel(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        with pytest.raises(InvalidTransitionError):
            engine.cancel(instance, "fin-mgr", None, at(1))

    def test_cancel_terminal_instance(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        instance = engine.cancel(instance, "alice", None, at(1)).instance
        with pytest.raises(InvalidTransitionError):
            engine.cancel(instance, "alice", None, at(2))


class TestSkip:
    def test_administrator_skips_current_step(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        result = engine.skip(instance, BUDGET_APPROVAL, "STEP-1", ADMIN_ID, "finance on leave", at(1))

        assert result.instance.step(1).status == StepStatus.SKIPPED
        assert result.instance.step(1).decided_by == ADMIN_ID
        assert result.instance.current_step == 2
        assert result.audit_entries[0].action == AuditAction.SKIPPED

    def test_non_administrator_cannot_skip(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        with pytest.raises(InvalidTransitionError):
            engine.skip(instance, BUDGET_APPROVAL, "STEP-1", "fin-mgr", "mine anyway", at(1))

    def test_skip_requires_comment(self, engine):
        instance = started(engine, BUDGET_APPROVAL)
        with pytest.raises(ValidationError):
            engine.skip(instance, BUDGET_APPROVAL, "STEP-1", ADMIN_ID, "", at(1))


class TestOverdue:
    def test_urgent_instance_overdue_after_one_day(self, engine):
        instance = started(engine, BUDGET_APPROVAL, priority=Priority.URGENT)
        assert instance.is_overdue(at(23)) is False
        assert instance.is_overdue(at(25)) is True

    def test_terminal_instance_is_never_overdue(self, engine):
        instance = started(engine, BUDGET_APPROVAL, priority=Priority.URGENT)
        instance = engine.cancel(instance, "alice", None, at(1)).instance
        assert instance.is_overdue(at(100)) is False
