"""Deadline Calculator - Step and instance due dates from priority"""
from datetime import datetime
from typing import Dict, List, Optional

from ..domain.models import WorkflowTemplate, StepDefinition
from ..domain.enums import Priority
from ..utils.time import add_days

# Days allotted per step when the template does not say otherwise
PRIORITY_DAYS_PER_STEP: Dict[Priority, int] = {
    Priority.URGENT: 1,
    Priority.HIGH: 2,
    Priority.MEDIUM: 4,
    Priority.LOW: 7,
}


class DeadlineCalculator:
    """Due dates are computed once, at creation"""

    def __init__(self, days_per_step: Dict[Priority, int] = PRIORITY_DAYS_PER_STEP):
        self.days_per_step = dict(days_per_step)

    def step_allotment(self, step: StepDefinition, priority: Priority) -> int:
        """Days allotted to a single step"""
        if step.duration_days is not None:
            return step.duration_days
        return self.days_per_step[priority]

    def step_due_date(
        self,
        created_at: datetime,
        priority: Priority,
        cumulative_days: int,
        duration_days: Optional[int] = None
    ) -> datetime:
        """
        Due date of a step that starts once earlier steps used cumulative_days

        The step itself gets duration_days when given, else the priority policy.
        """
        allotment = duration_days if duration_days is not None else self.days_per_step[priority]
        return add_days(created_at, cumulative_days + allotment)

    def step_due_dates(
        self,
        template: WorkflowTemplate,
        priority: Priority,
        created_at: datetime
    ) -> List[datetime]:
        """Due date of every step, in step order"""
        due_dates = []
        cumulative = 0
        for step in template.steps:
            due_dates.append(self.step_due_date(created_at, priority, cumulative, step.duration_days))
            cumulative += self.step_allotment(step, priority)
        return due_dates

    def instance_due_date(
        self,
        template: WorkflowTemplate,
        priority: Priority,
        created_at: datetime
    ) -> datetime:
        total = sum(self.step_allotment(step, priority) for step in template.steps)
        return add_days(created_at, total)
