"""Domain Models - Pydantic schemas for all entities"""
import json
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .enums import (
    RequestType, Priority, InstanceStatus, StepStatus, ApproverKind,
    CommandType, AuditAction, WorkflowEventType, ConditionOperator
)
from ..utils.time import is_overdue


# ============================================================================
# Identity Snapshots
# ============================================================================

class RequesterContext(BaseModel):
    """Organizational context of the person submitting a request"""
    model_config = ConfigDict(extra="forbid")

    requester_id: str = Field(..., description="Directory user ID")
    display_name: str = Field(default="", description="Display name at submission time")
    department_id: Optional[str] = Field(None, description="Requester's department")
    company_id: Optional[str] = Field(None, description="Requester's company")


class ApproverIdentity(BaseModel):
    """Concrete person or group resolved for a step"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    approver_id: str
    display_name: str = ""
    role: str
    kind: ApproverKind = ApproverKind.USER


# ============================================================================
# Condition
# ============================================================================

_SYMBOL_OPERATORS = {
    ">=": ConditionOperator.GREATER_THAN_OR_EQUALS,
    "<=": ConditionOperator.LESS_THAN_OR_EQUALS,
    "==": ConditionOperator.EQUALS,
    "=": ConditionOperator.EQUALS,
    "!=": ConditionOperator.NOT_EQUALS,
    ">": ConditionOperator.GREATER_THAN,
    "<": ConditionOperator.LESS_THAN,
    "not in": ConditionOperator.NOT_IN,
    "in": ConditionOperator.IN,
    "not contains": ConditionOperator.NOT_CONTAINS,
    "contains": ConditionOperator.CONTAINS,
    "is not empty": ConditionOperator.IS_NOT_EMPTY,
    "is empty": ConditionOperator.IS_EMPTY,
}

_CLAUSE_RE = re.compile(
    r"^\s*(?P<field>[A-Za-z_][\w.]*)\s*"
    r"(?P<op>>=|<=|==|!=|=|>|<|\bnot\s+in\b|\bin\b|\bnot\s+contains\b|\bcontains\b"
    r"|\bis\s+not\s+empty\b|\bis\s+empty\b)"
    r"\s*(?P<value>.*?)\s*$",
    re.IGNORECASE,
)

# Quoted and bracketed spans are matched whole so connectives inside them are ignored
_CONNECTIVE_RE = re.compile(r"""'[^']*'|"[^"]*"|\[[^\]]*\]|\s+(and|or)\s+""", re.IGNORECASE)


def _split_clauses(expression: str) -> Tuple[List[str], List[str]]:
    """Split an expression on top-level "and" / "or" connectives"""
    clauses: List[str] = []
    connectives: List[str] = []
    start = 0
    for match in _CONNECTIVE_RE.finditer(expression):
        if match.group(1) is None:
            continue
        clauses.append(expression[start:match.start()])
        connectives.append(match.group(1))
        start = match.end()
    clauses.append(expression[start:])
    return clauses, connectives


def _parse_literal(raw: str) -> Any:
    """Parse the right-hand side of a textual clause"""
    if raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        pass
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    if raw.startswith("[") and raw.endswith("]"):
        return [_parse_literal(part.strip()) for part in raw[1:-1].split(",") if part.strip()]
    return raw


class Condition(BaseModel):
    """Single predicate over the instance payload"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    field: str = Field(..., description="Payload field (dot notation)")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Value to compare against")


class ConditionGroup(BaseModel):
    """Group of conditions with AND/OR logic"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    logic: str = Field("AND", description="AND or OR")
    conditions: List[Condition] = Field(default_factory=list)
    expression: Optional[str] = Field(None, description="Source text when parsed from an expression")

    @classmethod
    def from_expression(cls, expression: str) -> "ConditionGroup":
        """
        Parse a textual predicate such as "estimated_cost > 10000"

        Clauses may be joined with a single kind of connective
        ("a > 1 and b == 'x'"); mixing "and" with "or" is rejected.
        """
        clauses, found = _split_clauses(expression.strip())
        connectives = {c.upper() for c in found}
        if len(connectives) > 1:
            raise ValueError(f"Cannot mix AND and OR in condition: {expression!r}")

        conditions = []
        for clause in clauses:
            match = _CLAUSE_RE.match(clause)
            if not match:
                raise ValueError(f"Unparseable condition clause: {clause!r}")
            op_key = " ".join(match.group("op").lower().split())
            conditions.append(Condition(
                field=match.group("field"),
                operator=_SYMBOL_OPERATORS[op_key],
                value=_parse_literal(match.group("value")),
            ))

        return cls(
            logic=connectives.pop() if connectives else "AND",
            conditions=conditions,
            expression=expression,
        )


# ============================================================================
# Templates (Workflow Definition)
# ============================================================================

class StepDefinition(BaseModel):
    """One position in an approval chain"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    step_number: int = Field(..., ge=1, description="1-indexed position")
    name: str = Field(default="", description="Display name")
    role: str = Field(..., min_length=1, description="Role tag resolved by the approver resolver")
    condition: Optional[ConditionGroup] = Field(None, description="Predicate over the payload")
    auto_approve: bool = Field(default=False, description="Skip automatically when condition is false")
    duration_days: Optional[int] = Field(None, ge=1, description="Days allotted; priority policy when absent")

    @field_validator("condition", mode="before")
    @classmethod
    def parse_condition(cls, v: Union[str, Dict[str, Any], ConditionGroup, None]):
        if isinstance(v, str):
            return ConditionGroup.from_expression(v) if v.strip() else None
        return v


class WorkflowTemplate(BaseModel):
    """Immutable approval chain for a request type and optional priority tier"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    template_id: str = Field(..., description="Stable template ID")
    version: int = Field(default=1, ge=1, description="Template version (edits create a new one)")
    name: str
    request_type: RequestType
    priority: Optional[Priority] = Field(None, description="Priority tier; None is the default tier")
    description: Optional[str] = None
    steps: List[StepDefinition] = Field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def step(self, step_number: int) -> StepDefinition:
        return self.steps[step_number - 1]


# ============================================================================
# Runtime Models
# ============================================================================

class StepInstance(BaseModel):
    """Runtime state for one step of an instance"""
    model_config = ConfigDict(extra="ignore")

    step_id: str = Field(..., description="Unique step instance ID")
    step_number: int
    name: str = ""
    role: str
    approver: Optional[ApproverIdentity] = None
    status: StepStatus = Field(default=StepStatus.NOT_STARTED)
    due_date: datetime
    comment: Optional[str] = None
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None


class WorkflowInstance(BaseModel):
    """A single request's live execution of a template"""
    model_config = ConfigDict(extra="ignore")

    instance_id: str = Field(..., description="Unique instance ID")
    template_id: str
    template_version: int
    request_type: RequestType
    workflow_name: str = ""
    request_id: Optional[str] = Field(None, description="ID of the business entity under approval")
    requester: RequesterContext
    payload: Dict[str, Any] = Field(default_factory=dict)
    current_step: Optional[int] = Field(None, description="1..total_steps, None once terminal")
    total_steps: int
    status: InstanceStatus = Field(default=InstanceStatus.PENDING)
    priority: Priority
    due_date: datetime
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    steps: List[StepInstance] = Field(default_factory=list)
    version: int = Field(default=0, description="Optimistic concurrency version")

    def step(self, step_number: int) -> StepInstance:
        return self.steps[step_number - 1]

    def current_step_instance(self) -> Optional[StepInstance]:
        if self.current_step is None:
            return None
        return self.step(self.current_step)

    @property
    def current_approver_id(self) -> Optional[str]:
        step = self.current_step_instance()
        if step and step.approver:
            return step.approver.approver_id
        return None

    def is_overdue(self, now: datetime) -> bool:
        """Pending and the current step's due date has passed"""
        step = self.current_step_instance()
        return (
            self.status == InstanceStatus.PENDING
            and step is not None
            and is_overdue(step.due_date, now)
        )


class AuditEntry(BaseModel):
    """Append-only history record"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    audit_entry_id: str
    instance_id: str
    step_number: Optional[int] = Field(None, description="None for instance-level entries")
    actor_id: str
    action: AuditAction
    comment: Optional[str] = None
    timestamp: datetime
    correlation_id: Optional[str] = None


class WorkflowEvent(BaseModel):
    """Transition notice consumed by an external notifier"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    instance_id: str
    event: WorkflowEventType
    timestamp: datetime
    step_number: Optional[int] = None
    approver_id: Optional[str] = None


# ============================================================================
# Commands & Results
# ============================================================================

class WorkflowCommand(BaseModel):
    """Command applied to an instance by the transition engine"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    command_type: CommandType
    actor_id: str = Field(..., min_length=1)
    step_id: Optional[str] = None
    comment: Optional[str] = None

    @model_validator(mode="after")
    def check_step_id(self) -> "WorkflowCommand":
        if self.command_type != CommandType.CANCEL and not self.step_id:
            raise ValueError(f"step_id is required for {self.command_type.value}")
        return self

    @classmethod
    def approve(cls, step_id: str, actor_id: str, comment: Optional[str] = None) -> "WorkflowCommand":
        return cls(command_type=CommandType.APPROVE, step_id=step_id, actor_id=actor_id, comment=comment)

    @classmethod
    def reject(cls, step_id: str, actor_id: str, comment: Optional[str]) -> "WorkflowCommand":
        return cls(command_type=CommandType.REJECT, step_id=step_id, actor_id=actor_id, comment=comment)

    @classmethod
    def cancel(cls, actor_id: str, comment: Optional[str] = None) -> "WorkflowCommand":
        return cls(command_type=CommandType.CANCEL, actor_id=actor_id, comment=comment)

    @classmethod
    def skip(cls, step_id: str, actor_id: str, comment: Optional[str]) -> "WorkflowCommand":
        return cls(command_type=CommandType.SKIP, step_id=step_id, actor_id=actor_id, comment=comment)


class TransitionResult(BaseModel):
    """New instance snapshot plus the audit entries and events it produced"""
    model_config = ConfigDict(extra="forbid")

    instance: WorkflowInstance
    audit_entries: List[AuditEntry] = Field(default_factory=list)
    events: List[WorkflowEvent] = Field(default_factory=list)


# ============================================================================
# Queries
# ============================================================================

class WorkflowQuery(BaseModel):
    """Read-only filters for listing instances"""
    model_config = ConfigDict(extra="forbid")

    status: Optional[InstanceStatus] = None
    request_type: Optional[RequestType] = None
    priority: Optional[Priority] = None
    approver_id: Optional[str] = Field(None, description="Approver of the current pending step")
    requester_id: Optional[str] = None
    overdue: Optional[bool] = None
    search: Optional[str] = Field(None, description="Matches workflow name or requester name")
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=100, ge=1, le=1000)


class WorkflowStats(BaseModel):
    """Dashboard counters"""
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0
    overdue: int = 0
    avg_processing_days: Optional[float] = Field(None, description="Mean days from creation to completion")
