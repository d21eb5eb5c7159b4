"""Condition Evaluator - Safe evaluation of step conditions"""
from typing import Any, Callable, Dict

from ..domain.models import ConditionGroup, Condition
from ..domain.enums import ConditionOperator
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ConditionEvaluationError(Exception):
    """A condition could not be evaluated against the payload"""


class ConditionEvaluator:
    """
    Evaluate step conditions against an instance payload

    Uses a simple DSL - no eval() or exec().
    """

    def evaluate(
        self,
        condition_group: ConditionGroup,
        context: Dict[str, Any],
        default: bool = False
    ) -> bool:
        """
        Evaluate a condition group

        Args:
            condition_group: Group of conditions with AND/OR logic
            context: Payload with field values
            default: Result returned when a condition cannot be evaluated
                (missing or non-numeric operand for a numeric comparison)

        Returns:
            True if conditions are met
        """
        if not condition_group.conditions:
            return True  # No conditions = always true

        try:
            results = [self._evaluate_single(c, context) for c in condition_group.conditions]
        except ConditionEvaluationError as e:
            logger.warning(
                f"Condition evaluation failed, using default={default}: {e}",
                extra={"action": "condition_evaluation"}
            )
            return default

        if condition_group.logic.upper() == "OR":
            return any(results)
        return all(results)

    def _evaluate_single(self, condition: Condition, context: Dict[str, Any]) -> bool:
        field_value = self._get_field_value(condition.field, context)
        return self._compare(field_value, condition.operator, condition.value, condition.field)

    def _get_field_value(self, field_path: str, context: Dict[str, Any]) -> Any:
        """
        Get field value from context using dot notation

        Example: "license.seats" -> context["license"]["seats"]
        """
        value: Any = context
        for part in field_path.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                return None
        return value

    def _compare(
        self,
        field_value: Any,
        operator: ConditionOperator,
        compare_value: Any,
        field_path: str
    ) -> bool:
        """Compare values using operator"""

        if operator == ConditionOperator.EQUALS:
            return field_value == compare_value

        elif operator == ConditionOperator.NOT_EQUALS:
            return field_value != compare_value

        elif operator == ConditionOperator.GREATER_THAN:
            return self._compare_numeric(field_value, compare_value, field_path, lambda a, b: a > b)

        elif operator == ConditionOperator.LESS_THAN:
            return self._compare_numeric(field_value, compare_value, field_path, lambda a, b: a < b)

        elif operator == ConditionOperator.GREATER_THAN_OR_EQUALS:
            return self._compare_numeric(field_value, compare_value, field_path, lambda a, b: a >= b)

        elif operator == ConditionOperator.LESS_THAN_OR_EQUALS:
            return self._compare_numeric(field_value, compare_value, field_path, lambda a, b: a <= b)

        elif operator == ConditionOperator.CONTAINS:
            if field_value is None:
                return False
            return str(compare_value) in str(field_value)

        elif operator == ConditionOperator.NOT_CONTAINS:
            if field_value is None:
                return True
            return str(compare_value) not in str(field_value)

        elif operator == ConditionOperator.IN:
            if not isinstance(compare_value, list):
                compare_value = [compare_value]
            return field_value in compare_value

        elif operator == ConditionOperator.NOT_IN:
            if not isinstance(compare_value, list):
                compare_value = [compare_value]
            return field_value not in compare_value

        elif operator == ConditionOperator.IS_EMPTY:
            return field_value is None or field_value == "" or field_value == []

        elif operator == ConditionOperator.IS_NOT_EMPTY:
            return field_value is not None and field_value != "" and field_value != []

        return False

    def _compare_numeric(
        self,
        field_value: Any,
        compare_value: Any,
        field_path: str,
        comparator: Callable[[float, float], bool]
    ) -> bool:
        """Compare numeric values; a missing operand is an evaluation failure"""
        if field_value is None:
            raise ConditionEvaluationError(f"Field '{field_path}' is missing from payload")
        try:
            return comparator(float(field_value), float(compare_value))
        except (ValueError, TypeError) as e:
            raise ConditionEvaluationError(
                f"Cannot compare '{field_path}'={field_value!r} with {compare_value!r}"
            ) from e
