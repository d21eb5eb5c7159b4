"""Permission Guard - Who may act on a workflow instance"""
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional

from ..domain.models import WorkflowInstance, StepInstance
from ..domain.enums import RequestType, ApproverRole
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Caller-supplied capability check: may actor act on this step on the approver's behalf?
StepCapability = Callable[[str, WorkflowInstance, StepInstance], bool]


class PermissionGuard:
    """
    Permission enforcement for workflow commands

    Rules:
    - Only the resolved approver acts on a step, unless the capability
      check supplied by the caller authorizes a delegate
    - Requester or an administrator can cancel
    - Only an administrator can manually skip a step
    """

    def __init__(
        self,
        administrator_ids: Iterable[str] = (),
        can_act_on_step: Optional[StepCapability] = None
    ):
        self.administrator_ids: FrozenSet[str] = frozenset(administrator_ids)
        self._can_act_on_step = can_act_on_step

    def is_administrator(self, actor_id: str) -> bool:
        return actor_id in self.administrator_ids

    def is_step_approver(self, actor_id: str, step: StepInstance) -> bool:
        return step.approver is not None and step.approver.approver_id == actor_id

    def can_decide_step(self, actor_id: str, instance: WorkflowInstance, step: StepInstance) -> bool:
        """Check if actor can approve or reject the step"""
        if self.is_step_approver(actor_id, step):
            return True
        if self._can_act_on_step is not None and self._can_act_on_step(actor_id, instance, step):
            logger.info(
                f"Delegated decision on step {step.step_number} to {actor_id}",
                extra={"instance_id": instance.instance_id, "actor_id": actor_id}
            )
            return True
        return False

    def can_cancel(self, actor_id: str, instance: WorkflowInstance) -> bool:
        return actor_id == instance.requester.requester_id or self.is_administrator(actor_id)

    def can_skip(self, actor_id: str, instance: WorkflowInstance) -> bool:
        return self.is_administrator(actor_id)


# Request types each role may approve on someone else's behalf
ROLE_APPROVAL_SCOPES: Dict[str, FrozenSet[RequestType]] = {
    ApproverRole.SUPER_ADMIN.value: frozenset(RequestType),
    ApproverRole.IT_MANAGER.value: frozenset({
        RequestType.LICENSE_REQUEST,
        RequestType.SOFTWARE_DECLARATION,
        RequestType.BUDGET_APPROVAL,
    }),
    ApproverRole.DEPARTMENT_MANAGER.value: frozenset({
        RequestType.SOFTWARE_DECLARATION,
        RequestType.USER_INVITATION,
    }),
}


class RoleDelegationPolicy:
    """
    Capability check granting delegate approval by role

    A super admin may act on any step; other roles only on steps that
    require the same role, for the request types their scope lists.
    """

    def __init__(
        self,
        actor_roles: Mapping[str, str],
        scopes: Mapping[str, FrozenSet[RequestType]] = ROLE_APPROVAL_SCOPES
    ):
        self.actor_roles = actor_roles
        self.scopes = scopes

    def __call__(self, actor_id: str, instance: WorkflowInstance, step: StepInstance) -> bool:
        role = self.actor_roles.get(actor_id)
        if role is None:
            return False
        if instance.request_type not in self.scopes.get(role, frozenset()):
            return False
        return role == ApproverRole.SUPER_ADMIN.value or role == step.role
