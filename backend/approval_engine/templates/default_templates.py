"""Default Templates - Built-in approval chains for the license dashboard"""
from typing import List

from ..domain.models import WorkflowTemplate, StepDefinition
from ..domain.enums import RequestType, Priority, ApproverRole

# Requests above this estimated cost need finance sign-off
FINANCE_REVIEW_THRESHOLD = 10000


LICENSE_REQUEST = WorkflowTemplate(
    template_id="TPL-license-request",
    name="License Request Approval",
    request_type=RequestType.LICENSE_REQUEST,
    description="New software license purchase",
    steps=[
        StepDefinition(
            step_number=1,
            name="Department Manager Review",
            role=ApproverRole.DEPARTMENT_MANAGER.value
        ),
        StepDefinition(
            step_number=2,
            name="IT Manager Approval",
            role=ApproverRole.IT_MANAGER.value
        ),
        StepDefinition(
            step_number=3,
            name="Finance Approval",
            role=ApproverRole.FINANCE_MANAGER.value,
            condition=f"estimated_cost > {FINANCE_REVIEW_THRESHOLD}",
            auto_approve=True
        ),
    ]
)

SOFTWARE_DECLARATION = WorkflowTemplate(
    template_id="TPL-software-declaration",
    name="Software Declaration Review",
    request_type=RequestType.SOFTWARE_DECLARATION,
    description="Declared software already in use by a department",
    steps=[
        StepDefinition(
            step_number=1,
            name="Department Manager Review",
            role=ApproverRole.DEPARTMENT_MANAGER.value
        ),
        StepDefinition(
            step_number=2,
            name="IT Security Review",
            role=ApproverRole.IT_MANAGER.value
        ),
    ]
)

SOFTWARE_DECLARATION_URGENT = WorkflowTemplate(
    template_id="TPL-software-declaration-urgent",
    name="Urgent Software Declaration Review",
    request_type=RequestType.SOFTWARE_DECLARATION,
    priority=Priority.URGENT,
    description="Critical declarations, with budget review when costly",
    steps=[
        StepDefinition(
            step_number=1,
            name="Department Manager Review",
            role=ApproverRole.DEPARTMENT_MANAGER.value
        ),
        StepDefinition(
            step_number=2,
            name="IT Security Review",
            role=ApproverRole.IT_MANAGER.value
        ),
        StepDefinition(
            step_number=3,
            name="Budget Review",
            role=ApproverRole.FINANCE_MANAGER.value,
            condition=f"estimated_cost > {FINANCE_REVIEW_THRESHOLD}",
            auto_approve=True
        ),
    ]
)

BUDGET_APPROVAL = WorkflowTemplate(
    template_id="TPL-budget-approval",
    name="Budget Approval",
    request_type=RequestType.BUDGET_APPROVAL,
    description="Software budget increase",
    steps=[
        StepDefinition(
            step_number=1,
            name="Finance Review",
            role=ApproverRole.FINANCE_MANAGER.value
        ),
        StepDefinition(
            step_number=2,
            name="IT Director Approval",
            role=ApproverRole.IT_DIRECTOR.value
        ),
        StepDefinition(
            step_number=3,
            name="Executive Approval",
            role=ApproverRole.CEO.value
        ),
    ]
)

CONTRACT_RENEWAL = WorkflowTemplate(
    template_id="TPL-contract-renewal",
    name="Contract Renewal",
    request_type=RequestType.CONTRACT_RENEWAL,
    description="Renewal of an existing vendor contract",
    steps=[
        StepDefinition(
            step_number=1,
            name="IT Manager Review",
            role=ApproverRole.IT_MANAGER.value
        ),
        StepDefinition(
            step_number=2,
            name="Finance Approval",
            role=ApproverRole.FINANCE_MANAGER.value
        ),
    ]
)

USER_INVITATION = WorkflowTemplate(
    template_id="TPL-user-invitation",
    name="User Invitation",
    request_type=RequestType.USER_INVITATION,
    description="Invite a user to the dashboard",
    steps=[
        StepDefinition(
            step_number=1,
            name="Department Manager Approval",
            role=ApproverRole.DEPARTMENT_MANAGER.value,
            duration_days=3
        ),
    ]
)


def default_templates() -> List[WorkflowTemplate]:
    """All built-in templates"""
    return [
        LICENSE_REQUEST,
        SOFTWARE_DECLARATION,
        SOFTWARE_DECLARATION_URGENT,
        BUDGET_APPROVAL,
        CONTRACT_RENEWAL,
        USER_INVITATION,
    ]
