"""Base class for all step executors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar, TYPE_CHECKING

from ..core.exceptions import StepExecutionError
from ..engine.types import StepOutcome, ValidationResult

if TYPE_CHECKING:
    from ..engine.context import WorkflowContext
    from ..engine.types import Step


_MISSING = object()


class StepExecutor(ABC):
    """
    Abstract base class for all step executors.

    An executor validates a step's config and executes the step against the
    data produced by the previous step. Failures are raised, never returned.
    """

    category: ClassVar[str] = "action"
    required_config: ClassVar[tuple[str, ...]] = ()

    @property
    @abstractmethod
    def type(self) -> str:
        """Step type tag, e.g. ``filter_simple``."""

    @property
    def description(self) -> str:
        return (self.__doc__ or "").strip().splitlines()[0] if self.__doc__ else self.type

    def validate(self, config: dict[str, Any]) -> ValidationResult:
        """Check required keys, then executor-specific rules."""
        errors = [
            f'Missing required config "{key}"'
            for key in self.required_config
            if config.get(key) in (None, "")
        ]
        if not errors:
            errors.extend(self.validate_config(config))
        return ValidationResult.from_errors(errors)

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        """Executor-specific validation. Override as needed."""
        return []

    @abstractmethod
    async def execute(
        self,
        step: Step,
        context: WorkflowContext,
        input_data: Any,
    ) -> StepOutcome:
        """Run the step and return its outcome."""

    async def close(self) -> None:
        """Release resources held across executions."""
        return None

    # --- Helpers ---

    def get_config(self, step: Step, key: str, default: Any = _MISSING) -> Any:
        """Read a config value, raising if a required one is missing."""
        value = step.config.get(key)
        if value is None:
            if default is _MISSING:
                raise StepExecutionError(
                    f'Validation failed: missing config "{key}" in step "{step.label}"',
                    step_id=step.id,
                    step_type=step.type,
                    retryable=False,
                )
            return default
        return value

    def output(self, data: Any, **metadata: Any) -> StepOutcome:
        return StepOutcome(success=True, data=data, metadata=metadata)

    @staticmethod
    def as_items(data: Any) -> list[Any]:
        """Normalize step input to a list of records."""
        if data is None:
            return []
        if isinstance(data, list):
            return data
        return [data]

    @staticmethod
    def get_nested_value(obj: Any, path: str) -> Any:
        """Get nested value using dot notation."""
        current = obj
        for key in path.split("."):
            if isinstance(current, dict):
                current = current.get(key)
            elif isinstance(current, list) and key.isdigit():
                index = int(key)
                current = current[index] if index < len(current) else None
            else:
                return None
            if current is None:
                return None
        return current

    @staticmethod
    def set_nested_value(obj: dict[str, Any], path: str, value: Any) -> None:
        keys = path.split(".")
        current = obj
        for key in keys[:-1]:
            nxt = current.get(key)
            if not isinstance(nxt, dict):
                nxt = {}
                current[key] = nxt
            current = nxt
        current[keys[-1]] = value


def resolve_path(root: str | Path, path: str) -> Path:
    """Resolve ``path`` inside ``root``; escaping the root is a validation error."""
    base = Path(root).resolve()
    candidate = (base / path).resolve()
    if candidate != base and base not in candidate.parents:
        raise StepExecutionError(
            f"Validation failed: path escapes file root: {path}",
            retryable=False,
        )
    return candidate
