"""Approver Resolver - Map a step's role tag to a concrete approver"""
from typing import FrozenSet

from ..domain.models import StepDefinition, RequesterContext, ApproverIdentity
from ..domain.enums import ApproverRole
from ..domain.errors import NoApproverAvailableError
from ..services.directory_service import DirectoryLookup
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEPARTMENT_SCOPED_ROLES: FrozenSet[str] = frozenset({ApproverRole.DEPARTMENT_MANAGER.value})


class ApproverResolver:
    """
    Resolve approvers from directory data supplied by the caller

    Department-scoped roles are looked up in the requester's department,
    every other role company-wide. Holds no mutable state.
    """

    def __init__(
        self,
        directory: DirectoryLookup,
        department_scoped_roles: FrozenSet[str] = DEPARTMENT_SCOPED_ROLES
    ):
        self.directory = directory
        self.department_scoped_roles = department_scoped_roles

    def resolve(
        self,
        step_definition: StepDefinition,
        requester: RequesterContext
    ) -> ApproverIdentity:
        """
        Resolve the approver for a step

        Raises:
            NoApproverAvailableError: If the directory has no holder for the role
        """
        role = step_definition.role
        if role in self.department_scoped_roles:
            if not requester.department_id:
                raise NoApproverAvailableError(
                    f"Requester {requester.requester_id} has no department to resolve {role}",
                    details={"role": role, "step_number": step_definition.step_number}
                )
            approver = self.directory.find_role_holder(role, requester.company_id, requester.department_id)
        else:
            approver = self.directory.find_role_holder(role, requester.company_id)

        if approver is None:
            raise NoApproverAvailableError(
                f"No {role} available for step {step_definition.step_number}",
                details={
                    "role": role,
                    "step_number": step_definition.step_number,
                    "company_id": requester.company_id,
                    "department_id": requester.department_id
                }
            )

        logger.info(
            f"Resolved {role} -> {approver.approver_id}",
            extra={"step_number": step_definition.step_number, "actor_id": approver.approver_id}
        )
        return approver
