"""Template Registry - Immutable workflow templates keyed by request type and priority tier"""
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from ..domain.models import WorkflowTemplate
from ..domain.enums import RequestType, Priority
from ..domain.errors import (
    TemplateNotFoundError, WorkflowValidationError, AlreadyExistsError
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TemplateRegistry:
    """
    Store of immutable workflow templates

    Templates are registered once per (template_id, version) and never
    replaced; an edited template is registered under a new version.
    Resolution picks the highest version for (request_type, priority) and
    falls back to the default tier (priority=None).
    """

    def __init__(self, templates: Optional[Iterable[WorkflowTemplate]] = None):
        self._lock = threading.Lock()
        self._by_id: Dict[Tuple[str, int], WorkflowTemplate] = {}
        self._by_route: Dict[Tuple[RequestType, Optional[Priority]], WorkflowTemplate] = {}
        for template in templates or []:
            self.register(template)

    def register(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Validate and register a template version"""
        self.validate(template)
        key = (template.template_id, template.version)
        route = (template.request_type, template.priority)

        with self._lock:
            if key in self._by_id:
                raise AlreadyExistsError(
                    f"Template {template.template_id} v{template.version} is already registered",
                    details={"template_id": template.template_id, "version": template.version}
                )
            self._by_id[key] = template
            current = self._by_route.get(route)
            if current is None or (
                current.template_id != template.template_id or current.version < template.version
            ):
                self._by_route[route] = template

        logger.info(
            f"Registered template {template.template_id} v{template.version}",
            extra={"request_type": template.request_type.value}
        )
        return template

    @staticmethod
    def validate(template: WorkflowTemplate) -> None:
        """Steps must be numbered 1..N with at least one step"""
        if not template.steps:
            raise WorkflowValidationError(
                f"Template {template.template_id} has no steps",
                details={"template_id": template.template_id}
            )
        numbers = [s.step_number for s in template.steps]
        expected = list(range(1, len(template.steps) + 1))
        if numbers != expected:
            raise WorkflowValidationError(
                f"Template {template.template_id} steps must be numbered 1..{len(expected)} in order",
                details={"template_id": template.template_id, "step_numbers": numbers}
            )

    def resolve(
        self,
        request_type: RequestType,
        priority: Optional[Priority] = None
    ) -> WorkflowTemplate:
        """
        Resolve the template for a request

        Raises:
            TemplateNotFoundError: If neither the priority tier nor the default tier matches
        """
        template = None
        if priority is not None:
            template = self._by_route.get((request_type, priority))
        if template is None:
            template = self._by_route.get((request_type, None))
        if template is None:
            raise TemplateNotFoundError(
                f"No workflow template for request type {request_type.value}",
                details={
                    "request_type": request_type.value,
                    "priority": priority.value if priority else None
                }
            )
        return template

    def get(self, template_id: str, version: int) -> WorkflowTemplate:
        """Exact lookup of a template version"""
        template = self._by_id.get((template_id, version))
        if template is None:
            raise TemplateNotFoundError(
                f"Template {template_id} v{version} not found",
                details={"template_id": template_id, "version": version}
            )
        return template

    def list_templates(self) -> List[WorkflowTemplate]:
        """All registered template versions"""
        return sorted(self._by_id.values(), key=lambda t: (t.request_type.value, t.template_id, t.version))
