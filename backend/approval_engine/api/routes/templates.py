"""Template API Routes - Read-only view of registered approval chains"""
from typing import Any, Dict, List
from fastapi import APIRouter, Depends

from ..deps import get_manager_dep
from ...services.workflow_manager import WorkflowManager

router = APIRouter()


@router.get("")
def list_templates(manager: WorkflowManager = Depends(get_manager_dep)) -> List[Dict[str, Any]]:
    """All registered template versions"""
    return [t.model_dump(mode="json") for t in manager.list_templates()]
