"""Workflow API Routes - Create, decide and list approval workflows"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, status, Query
from pydantic import BaseModel, Field

from ..deps import get_correlation_id_dep, get_manager_dep
from ...domain.models import WorkflowInstance, WorkflowQuery, WorkflowStats
from ...domain.enums import RequestType, Priority, InstanceStatus
from ...services.workflow_manager import WorkflowManager
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateWorkflowRequest(BaseModel):
    """Request to start an approval workflow"""
    request_type: RequestType
    requester_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: Priority = Priority.MEDIUM
    workflow_name: Optional[str] = Field(None, max_length=200)
    request_id: Optional[str] = None


class CreateWorkflowResponse(BaseModel):
    """Response after creating workflow"""
    instance_id: str


class StepDecisionRequest(BaseModel):
    """Decide the current step; reject and skip refuse a blank comment"""
    step_id: str = Field(..., min_length=1)
    actor_id: str = Field(..., min_length=1)
    comment: Optional[str] = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    """Cancel a workflow"""
    actor_id: str = Field(..., min_length=1)
    comment: Optional[str] = Field(None, max_length=2000)


class WorkflowListResponse(BaseModel):
    """Response for workflow list"""
    items: List[Dict[str, Any]]
    skip: int
    limit: int
    count: int


def _serialize(instance: WorkflowInstance, manager: WorkflowManager) -> Dict[str, Any]:
    data = instance.model_dump(mode="json")
    data["is_overdue"] = instance.is_overdue(manager.clock())
    return data


# ============================================================================
# Routes
# ============================================================================

@router.post("", response_model=CreateWorkflowResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(
    request: CreateWorkflowRequest,
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """
    Start an approval workflow

    Resolves the template for (request_type, priority), the requester from
    the directory and the approver of the first step.
    """
    instance_id = manager.create(
        request_type=request.request_type,
        requester=request.requester_id,
        payload=request.payload,
        priority=request.priority,
        workflow_name=request.workflow_name,
        request_id=request.request_id
    )
    return CreateWorkflowResponse(instance_id=instance_id)


@router.get("", response_model=WorkflowListResponse)
def list_workflows(
    status: Optional[InstanceStatus] = Query(None),
    request_type: Optional[RequestType] = Query(None),
    priority: Optional[Priority] = Query(None),
    approver_id: Optional[str] = Query(None),
    requester_id: Optional[str] = Query(None),
    overdue: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """List workflows, newest first"""
    instances = manager.query(WorkflowQuery(
        status=status,
        request_type=request_type,
        priority=priority,
        approver_id=approver_id,
        requester_id=requester_id,
        overdue=overdue,
        search=search,
        skip=skip,
        limit=limit
    ))
    return WorkflowListResponse(
        items=[_serialize(i, manager) for i in instances],
        skip=skip,
        limit=limit,
        count=len(instances)
    )


@router.get("/stats", response_model=WorkflowStats)
def get_stats(
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Dashboard counters"""
    return manager.stats()


@router.get("/{instance_id}")
def get_workflow(
    instance_id: str,
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Workflow with its steps and audit trail"""
    instance, entries = manager.get(instance_id)
    return {
        "instance": _serialize(instance, manager),
        "audit_entries": [e.model_dump(mode="json") for e in entries]
    }


@router.post("/{instance_id}/approve")
def approve_step(
    instance_id: str,
    request: StepDecisionRequest,
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Approve the current step"""
    instance = manager.approve(instance_id, request.step_id, request.actor_id, request.comment)
    return _serialize(instance, manager)


@router.post("/{instance_id}/reject")
def reject_step(
    instance_id: str,
    request: StepDecisionRequest,
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Reject the current step; ends the workflow"""
    instance = manager.reject(instance_id, request.step_id, request.actor_id, request.comment)
    return _serialize(instance, manager)


@router.post("/{instance_id}/cancel")
def cancel_workflow(
    instance_id: str,
    request: CancelRequest,
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Cancel a pending workflow (requester or administrator)"""
    instance = manager.cancel(instance_id, request.actor_id, request.comment)
    return _serialize(instance, manager)


@router.post("/{instance_id}/skip")
def skip_step(
    instance_id: str,
    request: StepDecisionRequest,
    manager: WorkflowManager = Depends(get_manager_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
):
    """Administrator skips the current step"""
    instance = manager.skip(instance_id, request.step_id, request.actor_id, request.comment)
    return _serialize(instance, manager)
