"""
Generic executors around external connectors.

SharePoint, OneDrive, SMB and similar clients live outside the core. They
plug in as :class:`Connector` objects; the executors here only add the
dependency guard (rate limit, circuit breaker, cached listings).
"""

from __future__ import annotations

from typing import Any, Protocol, TYPE_CHECKING

from ..core.exceptions import StepExecutionError
from .base import StepExecutor

if TYPE_CHECKING:
    from ..engine.context import WorkflowContext
    from ..engine.types import Step, StepOutcome
    from ..resilience.guard import GuardRegistry

MIN_CACHE_TTL_S = 300
MAX_CACHE_TTL_S = 3600


class Connector(Protocol):
    """What an external storage connector must provide."""

    name: str

    async def read(self, owner_id: str, config: dict[str, Any]) -> Any: ...

    async def write(self, owner_id: str, config: dict[str, Any], data: Any) -> dict[str, Any]: ...


def resource_key(provider: str, owner_id: str, config: dict[str, Any]) -> str:
    """Cache key of the logical resource a step reads or writes."""
    return f"{provider}:{owner_id}:{config.get('path', '/')}"


class ConnectorSourceStep(StepExecutor):
    """Read items through an external connector."""

    category = "source"

    def __init__(self, type_tag: str, connector: Connector, guards: GuardRegistry) -> None:
        self._type = type_tag
        self._connector = connector
        self._guards = guards

    @property
    def type(self) -> str:
        return self._type

    @property
    def description(self) -> str:
        return f"Read data from {self._connector.name}"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        ttl = config.get("cacheTtl")
        if ttl is not None and not isinstance(ttl, int):
            return ["cacheTtl must be an integer number of seconds"]
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        guard = self._guards.get(self._connector.name)
        owner = context.owner_id
        ttl = min(max(int(step.config.get("cacheTtl", MIN_CACHE_TTL_S)), MIN_CACHE_TTL_S), MAX_CACHE_TTL_S)
        use_cache = step.config.get("cache", True)

        data = await guard.call(
            lambda: self._connector.read(owner, step.config),
            rate_key=owner,
            cache_key=resource_key(self._connector.name, owner, step.config) if use_cache else None,
            ttl_s=ttl,
        )
        return self.output(data, connector=self._connector.name)


class CloudUploadStep(StepExecutor):
    """Upload data through a registered connector, invalidating cached listings."""

    category = "destination"
    required_config = ("provider",)

    def __init__(self, guards: GuardRegistry) -> None:
        self._guards = guards
        self._connectors: dict[str, Connector] = {}

    @property
    def type(self) -> str:
        return "destination_cloud"

    def add_connector(self, provider: str, connector: Connector) -> None:
        self._connectors[provider] = connector

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        if config["provider"] not in self._connectors:
            return [f'No cloud connector registered for provider "{config["provider"]}"']
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        provider = step.config["provider"]
        connector = self._connectors.get(provider)
        if connector is None:
            raise StepExecutionError(
                f'Validation failed: no cloud connector registered for provider "{provider}"',
                step_id=step.id,
                step_type=self.type,
                retryable=False,
            )

        owner = context.owner_id
        guard = self._guards.get(connector.name)
        result = await guard.mutate(
            lambda: connector.write(owner, step.config, input_data),
            rate_key=owner,
            invalidate=[resource_key(connector.name, owner, step.config)],
        )
        context.log("info", f"Uploaded data to {provider}", {"result": result})
        return self.output(result, provider=provider)
