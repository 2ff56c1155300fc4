"""Filter steps: drop records that do not match."""

from __future__ import annotations

import json
import re
from typing import Any, TYPE_CHECKING

from .base import StepExecutor

if TYPE_CHECKING:
    from ..engine.context import WorkflowContext
    from ..engine.sandbox import ScriptSandbox
    from ..engine.types import Step, StepOutcome


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _compare(left: Any, right: Any, op: str) -> bool:
    a, b = _to_float(left), _to_float(right)
    if a is None or b is None:
        return False
    if op == "gt":
        return a > b
    if op == "gte":
        return a >= b
    if op == "lt":
        return a < b
    return a <= b


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


OPERATORS = {
    "equals": lambda v, c: v == c,
    "not_equals": lambda v, c: v != c,
    "contains": lambda v, c: str(c) in str(v) if v is not None else False,
    "not_contains": lambda v, c: str(c) not in str(v) if v is not None else True,
    "starts_with": lambda v, c: str(v).startswith(str(c)) if v is not None else False,
    "ends_with": lambda v, c: str(v).endswith(str(c)) if v is not None else False,
    "greater_than": lambda v, c: _compare(v, c, "gt"),
    "greater_or_equal": lambda v, c: _compare(v, c, "gte"),
    "less_than": lambda v, c: _compare(v, c, "lt"),
    "less_or_equal": lambda v, c: _compare(v, c, "lte"),
    "is_empty": lambda v, c: _is_empty(v),
    "is_not_empty": lambda v, c: not _is_empty(v),
    "is_null": lambda v, c: v is None,
    "is_not_null": lambda v, c: v is not None,
}


class SimpleFilterStep(StepExecutor):
    """Keep records whose fields satisfy comparison conditions."""

    category = "filter"

    @property
    def type(self) -> str:
        return "filter_simple"

    def _conditions(self, config: dict[str, Any]) -> list[dict[str, Any]]:
        if config.get("conditions"):
            return list(config["conditions"])
        if config.get("field"):
            return [{"field": config["field"], "operator": config.get("operator", "equals"), "value": config.get("value")}]
        return []

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        conditions = self._conditions(config)
        if not conditions:
            return ['Provide "field" and "operator" or a "conditions" list']
        errors = []
        for i, cond in enumerate(conditions):
            if not cond.get("field"):
                errors.append(f"Condition {i + 1}: missing field")
            if cond.get("operator", "equals") not in OPERATORS:
                errors.append(f'Condition {i + 1}: unknown operator "{cond.get("operator")}"')
        if config.get("logic", "and") not in ("and", "or"):
            errors.append('logic must be "and" or "or"')
        return errors

    def _matches(self, item: Any, conditions: list[dict[str, Any]], logic: str) -> bool:
        results = (
            OPERATORS[c.get("operator", "equals")](self.get_nested_value(item, c["field"]), c.get("value"))
            for c in conditions
        )
        return any(results) if logic == "or" else all(results)

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        conditions = self._conditions(step.config)
        logic = step.config.get("logic", "and")
        items = self.as_items(input_data)
        kept = [item for item in items if self._matches(item, conditions, logic)]
        return self.output(kept, inputCount=len(items), outputCount=len(kept))


class RegexFilterStep(StepExecutor):
    """Keep records whose field matches a regular expression."""

    category = "filter"
    required_config = ("field", "pattern")

    @property
    def type(self) -> str:
        return "filter_regex"

    def _compile(self, config: dict[str, Any]) -> re.Pattern[str]:
        flags = re.IGNORECASE if "i" in str(config.get("flags", "")) else 0
        return re.compile(config["pattern"], flags)

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        try:
            self._compile(config)
        except re.error as e:
            return [f"Invalid regex pattern: {e}"]
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        pattern = self._compile(step.config)
        field = step.config["field"]
        invert = bool(step.config.get("invert", False))
        items = self.as_items(input_data)

        kept = []
        for item in items:
            value = self.get_nested_value(item, field)
            matched = value is not None and bool(pattern.search(str(value)))
            if matched != invert:
                kept.append(item)
        return self.output(kept, inputCount=len(items), outputCount=len(kept))


class DedupFilterStep(StepExecutor):
    """Drop duplicate records, compared on selected fields or whole records."""

    category = "filter"

    @property
    def type(self) -> str:
        return "filter_dedup"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        if not isinstance(config.get("fields", []), list):
            errors.append("fields must be a list")
        if config.get("keep", "first") not in ("first", "last"):
            errors.append('keep must be "first" or "last"')
        return errors

    def _key(self, item: Any, fields: list[str]) -> str:
        if fields:
            item = [self.get_nested_value(item, f) for f in fields]
        return json.dumps(item, sort_keys=True, default=str)

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        fields = step.config.get("fields") or []
        keep_last = step.config.get("keep", "first") == "last"
        items = self.as_items(input_data)

        seen: dict[str, Any] = {}
        for item in items:
            key = self._key(item, fields)
            if key not in seen or keep_last:
                seen[key] = item
        kept = list(seen.values())

        return self.output(
            kept,
            inputCount=len(items),
            outputCount=len(kept),
            duplicatesRemoved=len(items) - len(kept),
        )


class ExpressionFilterStep(StepExecutor):
    """Keep records for which a sandboxed expression is truthy."""

    category = "filter"
    required_config = ("condition",)

    def __init__(self, sandbox: ScriptSandbox) -> None:
        self._sandbox = sandbox

    @property
    def type(self) -> str:
        return "filter_expression"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        return self._sandbox.validate(config["condition"])

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        items = self.as_items(input_data)
        verdicts = await self._sandbox.evaluate_each(
            step.config["condition"],
            items,
            {"variables": dict(context.variables)},
        )
        kept = [item for item, keep in zip(items, verdicts) if keep]
        return self.output(kept, inputCount=len(items), outputCount=len(kept))
