"""
Pytest Configuration and Fixtures

Shared fixtures: a controllable clock, a seeded static directory and a
fully wired in-memory workflow manager.
"""

import pytest
from datetime import datetime, timedelta, timezone

from approval_engine.domain.models import WorkflowInstance, StepInstance, RequesterContext
from approval_engine.domain.enums import Priority
from approval_engine.engine.deadline_calculator import DeadlineCalculator
from approval_engine.engine.template_registry import TemplateRegistry
from approval_engine.engine.approver_resolver import ApproverResolver
from approval_engine.engine.permission_guard import PermissionGuard
from approval_engine.engine.transition_engine import TransitionEngine
from approval_engine.repositories.instance_store import InMemoryInstanceStore
from approval_engine.repositories.audit_repo import InMemoryAuditLog
from approval_engine.services.directory_service import StaticDirectory
from approval_engine.services.event_sink import InMemoryEventSink
from approval_engine.services.workflow_manager import WorkflowManager
from approval_engine.templates import default_templates

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
ADMIN_ID = "admin-1"

ALICE = RequesterContext(requester_id="alice", display_name="Alice Martin", department_id="eng", company_id="acme")


class FakeClock:
    """Clock whose time only moves when told to"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def directory() -> StaticDirectory:
    """Acme with an engineering and a sales department"""
    d = StaticDirectory()
    d.add_user("alice", "Alice Martin", department_id="eng", company_id="acme")
    d.add_user("sam", "Sam Ortiz", department_id="sales", company_id="acme")
    d.add_user("nodept", "Nora Free", department_id=None, company_id="acme")

    d.add_role_holder("department_manager", "mgr-eng", company_id="acme", department_id="eng",
                      display_name="Erin Manager")
    d.add_role_holder("department_manager", "mgr-sales", company_id="acme", department_id="sales")
    d.add_role_holder("it_manager", "it-mgr", company_id="acme", display_name="Ivan IT")
    d.add_role_holder("it_director", "it-dir", company_id="acme")
    d.add_role_holder("finance_manager", "fin-mgr", company_id="acme")
    d.add_role_holder("ceo", "ceo-1", company_id="acme")
    return d


@pytest.fixture
def registry() -> TemplateRegistry:
    return TemplateRegistry(default_templates())


@pytest.fixture
def guard() -> PermissionGuard:
    return PermissionGuard(administrator_ids=[ADMIN_ID])


@pytest.fixture
def engine(directory, guard) -> TransitionEngine:
    return TransitionEngine(ApproverResolver(directory), permission_guard=guard)


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def store() -> InMemoryInstanceStore:
    return InMemoryInstanceStore()


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def manager(registry, store, audit_log, engine, directory, event_sink, clock) -> WorkflowManager:
    return WorkflowManager(
        registry=registry,
        store=store,
        audit_log=audit_log,
        transition_engine=engine,
        directory=directory,
        event_sink=event_sink,
        clock=clock
    )


def new_instance(template, payload=None, priority=Priority.MEDIUM, requester=ALICE):
    """Unstarted instance of a template, created at T0 with steps STEP-1..STEP-N"""
    due_dates = DeadlineCalculator().step_due_dates(template, priority, T0)
    return WorkflowInstance(
        instance_id="WFI-test",
        template_id=template.template_id,
        template_version=template.version,
        request_type=template.request_type,
        workflow_name=template.name,
        requester=requester,
        payload=payload or {},
        total_steps=template.total_steps,
        priority=priority,
        due_date=due_dates[-1],
        created_at=T0,
        updated_at=T0,
        steps=[
            StepInstance(step_id=f"STEP-{s.step_number}", step_number=s.step_number,
                         name=s.name, role=s.role, due_date=due)
            for s, due in zip(template.steps, due_dates)
        ]
    )
