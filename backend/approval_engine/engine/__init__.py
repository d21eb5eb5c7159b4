"""Workflow Engine - Approval state machine and its collaborators"""
from .template_registry import TemplateRegistry
from .approver_resolver import ApproverResolver
from .deadline_calculator import DeadlineCalculator
from .condition_evaluator import ConditionEvaluator
from .permission_guard import PermissionGuard, RoleDelegationPolicy
from .audit_writer import AuditWriter
from .transition_engine import TransitionEngine

__all__ = [
    "TemplateRegistry",
    "ApproverResolver",
    "DeadlineCalculator",
    "ConditionEvaluator",
    "PermissionGuard",
    "RoleDelegationPolicy",
    "AuditWriter",
    "TransitionEngine",
]
