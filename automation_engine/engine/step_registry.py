"""Step executor registry: type tag -> executor instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from ..core.exceptions import StepExecutorNotFoundError

if TYPE_CHECKING:
    from ..steps.base import StepExecutor

logger = logging.getLogger(__name__)


@dataclass
class StepTypeInfo:
    """Step type information for API responses."""

    type: str
    category: str
    description: str
    required_config: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "requiredConfig": self.required_config,
        }


class StepRegistry:
    """
    Lookup from step type tag to executor.

    Executors are stateless with respect to a run, so one instance per type
    serves every execution. Registration happens at process start; once
    :meth:`freeze` is called the table is read-only.
    """

    def __init__(self) -> None:
        self._executors: dict[str, StepExecutor] = {}
        self._frozen = False

    def register(self, executor: StepExecutor) -> None:
        """Add an executor under its ``type`` tag.

        Raises:
            RuntimeError: If the registry is frozen.
            ValueError: If the tag is already taken.
        """
        if self._frozen:
            raise RuntimeError(f'Cannot register "{executor.type}": registry is frozen')
        if executor.type in self._executors:
            raise ValueError(f'Step type already registered: "{executor.type}"')
        self._executors[executor.type] = executor
        logger.debug("Registered step executor %s", executor.type)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, step_type: str) -> StepExecutor:
        """
        Get the executor for a step type.

        Raises:
            StepExecutorNotFoundError: If the type is not registered
        """
        executor = self._executors.get(step_type)
        if executor is None:
            raise StepExecutorNotFoundError(step_type)
        return executor

    def has(self, step_type: str) -> bool:
        return step_type in self._executors

    def list(self) -> list[str]:
        return list(self._executors.keys())

    def describe(self) -> list[StepTypeInfo]:
        return [
            StepTypeInfo(
                type=executor.type,
                category=executor.category,
                description=executor.description,
                required_config=list(executor.required_config),
            )
            for executor in self._executors.values()
        ]
