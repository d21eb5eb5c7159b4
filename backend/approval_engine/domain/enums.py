"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class RequestType(str, Enum):
    """Business request types routed through approval workflows"""
    LICENSE_REQUEST = "license_request"
    SOFTWARE_DECLARATION = "software_declaration"
    BUDGET_APPROVAL = "budget_approval"
    CONTRACT_RENEWAL = "contract_renewal"
    USER_INVITATION = "user_invitation"


class Priority(str, Enum):
    """Request priority - drives step deadlines"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class InstanceStatus(str, Enum):
    """Global workflow instance status"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not InstanceStatus.PENDING


class StepStatus(str, Enum):
    """Runtime status per step instance"""
    NOT_STARTED = "not_started"  # Not reached yet
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


class ApproverKind(str, Enum):
    """Whether an approver identity is a person or a group mailbox"""
    USER = "user"
    GROUP = "group"


class ApproverRole(str, Enum):
    """Well-known role tags used by the built-in templates"""
    DEPARTMENT_MANAGER = "department_manager"
    IT_MANAGER = "it_manager"
    IT_DIRECTOR = "it_director"
    FINANCE_MANAGER = "finance_manager"
    CEO = "ceo"
    SUPER_ADMIN = "super_admin"


class CommandType(str, Enum):
    """Commands accepted by the transition engine"""
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    SKIP = "skip"


class AuditAction(str, Enum):
    """Types of audit entries"""
    CREATED = "CREATED"
    STEP_ACTIVATED = "STEP_ACTIVATED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    SKIPPED = "SKIPPED"  # Skipped manually by an administrator
    AUTO_SKIPPED = "AUTO_SKIPPED"  # Skipped because its condition was false
    COMPLETED = "COMPLETED"


class WorkflowEventType(str, Enum):
    """Events handed to the external notifier"""
    CREATED = "CREATED"
    STEP_ADVANCED = "STEP_ADVANCED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    STEP_OVERDUE = "STEP_OVERDUE"


class ConditionOperator(str, Enum):
    """Operators for condition evaluation"""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    IS_EMPTY = "IS_EMPTY"
    IS_NOT_EMPTY = "IS_NOT_EMPTY"
