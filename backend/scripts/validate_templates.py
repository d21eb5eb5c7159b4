"""Script to validate workflow templates

Usage:
    python -m scripts.validate_templates                   # built-in templates
    python -m scripts.validate_templates templates.json    # templates from a JSON list
    python -m scripts.validate_templates --start 2026-03-02T09:00:00Z --priority high
"""
import argparse
import json
import sys
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from approval_engine.domain.models import WorkflowTemplate
from approval_engine.domain.errors import DomainError
from approval_engine.engine.template_registry import TemplateRegistry
from approval_engine.engine.deadline_calculator import DeadlineCalculator
from approval_engine.domain.enums import Priority
from approval_engine.templates import default_templates
from approval_engine.utils import format_iso, parse_iso


def load_templates(path: str) -> List[WorkflowTemplate]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if isinstance(data, dict):
        data = data.get("templates", [])
    return [WorkflowTemplate.model_validate(item) for item in data]


def describe(template: WorkflowTemplate, start: Optional[datetime], priority: Priority) -> None:
    tier = template.priority.value if template.priority else "default"
    print(f"\n{template.template_id} v{template.version} [{template.request_type.value} / {tier}]")
    print(f"   {template.name}")

    calculator = DeadlineCalculator()
    due_dates = calculator.step_due_dates(template, priority, start) if start else []
    for index, step in enumerate(template.steps):
        flags = []
        if step.condition is not None:
            flags.append(f"if {step.condition.expression or step.condition.logic}")
        if step.auto_approve:
            flags.append("auto-skip")
        allotments = "/".join(
            str(calculator.step_allotment(step, p)) for p in (Priority.URGENT, Priority.HIGH, Priority.MEDIUM, Priority.LOW)
        )
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"   {step.step_number}. {step.name or step.role} -> {step.role}, days u/h/m/l {allotments}{suffix}")
        if due_dates:
            print(f"      due {format_iso(due_dates[index])} at {priority.value} priority")


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate approval workflow templates")
    parser.add_argument("path", nargs="?", help="JSON file with a list of templates (default: built-ins)")
    parser.add_argument("--start", help="ISO 8601 creation time; prints each step's due date")
    parser.add_argument(
        "--priority", default=Priority.MEDIUM.value, choices=[p.value for p in Priority],
        help="Priority used for due dates (default: medium)"
    )
    args = parser.parse_args()

    try:
        start = parse_iso(args.start) if args.start else None
    except (ValueError, OverflowError) as e:
        print(f"Invalid --start value: {e}")
        return 1

    try:
        templates = load_templates(args.path) if args.path else default_templates()
    except (OSError, ValueError, PydanticValidationError) as e:
        print(f"Could not load templates: {e}")
        return 1

    registry = TemplateRegistry()
    failures = 0
    for template in templates:
        try:
            registry.register(template)
        except DomainError as e:
            failures += 1
            print(f"\nINVALID {template.template_id} v{template.version}: {e.message}")
            continue
        describe(template, start, Priority(args.priority))

    print("\n" + "=" * 60)
    print(f"{len(templates) - failures} valid, {failures} invalid")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
