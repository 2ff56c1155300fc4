"""
Workflow engine - executes an automation's steps in list order.

Each step's output is the next step's input. The first failing step aborts
the run. With retry enabled the whole sequence is one retryable unit.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Any, TYPE_CHECKING

from ..core.exceptions import (
    ExecutionCancelledError,
    InvalidCronExpressionError,
    RetryExhaustedError,
    StepExecutionError,
)
from ..scheduler.cron import validate_cron
from .context import WorkflowContext
from .types import (
    Automation,
    ExecutionRecord,
    ExecutionResult,
    ExecutionStatus,
    ValidationReport,
)

if TYPE_CHECKING:
    from ..resilience.error_classifier import ErrorClassifier
    from ..resilience.retry import RetryOrchestrator
    from ..storage.base import ExecutionStore
    from .metrics import ExecutionMetrics
    from .step_registry import StepRegistry

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Runs automations and owns the set of in-flight executions."""

    def __init__(
        self,
        registry: StepRegistry,
        execution_store: ExecutionStore,
        classifier: ErrorClassifier,
        retry_orchestrator: RetryOrchestrator,
        metrics: ExecutionMetrics | None = None,
    ) -> None:
        self._registry = registry
        self._execution_store = execution_store
        self._classifier = classifier
        self._retry = retry_orchestrator
        self._metrics = metrics
        self._active: dict[str, WorkflowContext] = {}

    @property
    def registry(self) -> StepRegistry:
        return self._registry

    async def execute(
        self,
        automation: Automation,
        input_data: dict[str, Any] | None = None,
        triggered_by: str = "manual",
        execution_id: str | None = None,
    ) -> ExecutionResult:
        """
        Execute an automation.

        Never raises for step failures: the outcome, including the error
        analysis of a failed run, is returned in the result.
        """
        execution_id = execution_id or f"exec_{uuid.uuid4().hex}"
        input_data = input_data or {}
        context = WorkflowContext(
            execution_id=execution_id,
            automation_id=automation.id,
            owner_id=automation.owner_id,
            data=input_data,
        )

        await self._execution_store.insert(
            ExecutionRecord(
                id=execution_id,
                automation_id=automation.id,
                status=ExecutionStatus.RUNNING,
                triggered_by=triggered_by,
                started_at=context.started_at,
                input_data=input_data,
            )
        )
        self._active[execution_id] = context
        if self._metrics is not None:
            self._metrics.track_start(execution_id, automation.id)
        context.log(
            "info",
            f"Execution started for automation {automation.name}",
            {"triggeredBy": triggered_by, "steps": len(automation.steps)},
        )

        final_data: Any = None
        error: Exception | None = None
        try:
            try:
                final_data = await self._run(automation, context, input_data)
                status = ExecutionStatus.COMPLETED
            except ExecutionCancelledError as e:
                status, error = ExecutionStatus.CANCELLED, e
            except Exception as e:
                status, error = ExecutionStatus.FAILED, e
        finally:
            self._active.pop(execution_id, None)
            await context.run_cleanups()

        if status is ExecutionStatus.COMPLETED:
            return await self._complete(context, final_data)
        if status is ExecutionStatus.CANCELLED:
            return await self._cancelled(context)
        return await self._fail(context, error)

    async def _run(self, automation: Automation, context: WorkflowContext, input_data: Any) -> Any:
        retry = automation.retry_config
        if retry is None or not retry.enabled:
            return await self._run_steps(automation, context, input_data)

        async def attempt(number: int) -> Any:
            if number > 1:
                context.log("info", f"Retry attempt {number}/{retry.max_retries + 1}")
            return await self._run_steps(automation, context, input_data)

        return await self._retry.execute_with_retry(
            attempt,
            execution_id=context.execution_id,
            max_retries=retry.max_retries,
            strategy=retry.strategy,
            base_delay_ms=retry.base_delay_ms,
        )

    async def _run_steps(self, automation: Automation, context: WorkflowContext, input_data: Any) -> Any:
        """Run every step in order, feeding each output to the next step."""
        current: Any = input_data
        for index, step in enumerate(automation.steps, start=1):
            if context.cancelled:
                raise ExecutionCancelledError(context.execution_id)

            executor = self._registry.get(step.type)
            context.current_step = step
            context.log(
                "info",
                f"Executing step {index}/{len(automation.steps)}: {step.label}",
                {"stepId": step.id, "stepType": step.type},
            )

            try:
                outcome = await executor.execute(step, context, current)
            except Exception as e:
                context.log(
                    "error",
                    f"Step {step.label} failed: {e}",
                    {"stepId": step.id, "stepType": step.type},
                )
                raise

            if not outcome.success:
                context.log("error", f"Step {step.label} reported failure", {"stepId": step.id})
                raise StepExecutionError(
                    f"Step {step.label} reported failure",
                    step_id=step.id,
                    step_type=step.type,
                )

            context.set_step_result(step.id, outcome.data)
            context.log(
                "info",
                f"Step completed: {step.label}",
                {
                    "stepId": step.id,
                    "stepType": step.type,
                    "result": outcome.data,
                    "metadata": outcome.metadata,
                },
            )
            current = outcome.data

        context.current_step = None
        return current

    # --- Terminal states ---

    async def _complete(self, context: WorkflowContext, final_data: Any) -> ExecutionResult:
        results = {"finalData": final_data, "stepResults": dict(context.step_results)}
        context.log("info", "Execution completed", {"durationMs": context.duration_ms()})
        await self._finish(context, ExecutionStatus.COMPLETED, output_data=results)
        return ExecutionResult(
            success=True,
            execution_id=context.execution_id,
            status=ExecutionStatus.COMPLETED,
            results=results,
            logs=context.serialized_logs(),
            duration_ms=context.duration_ms(),
        )

    async def _cancelled(self, context: WorkflowContext) -> ExecutionResult:
        context.log("warn", "Execution cancelled")
        message = f"Execution cancelled: {context.execution_id}"
        await self._finish(
            context,
            ExecutionStatus.CANCELLED,
            output_data={"stepResults": dict(context.step_results)},
            error_details={"message": message},
        )
        return ExecutionResult(
            success=False,
            execution_id=context.execution_id,
            status=ExecutionStatus.CANCELLED,
            error=message,
            logs=context.serialized_logs(),
            duration_ms=context.duration_ms(),
        )

    async def _fail(self, context: WorkflowContext, error: Exception) -> ExecutionResult:
        step = context.current_step
        error_context: dict[str, Any] = {
            "execution_id": context.execution_id,
            "automation_id": context.automation_id,
        }
        if step is not None:
            error_context.update(step_id=step.id, step_type=step.type)

        try:
            analysis = await self._classifier.handle(error, error_context)
        except Exception:
            logger.exception("Error handling failed for execution %s", context.execution_id)
            analysis = self._classifier.analyze(error, error_context)
        error_details = analysis.to_dict()
        if isinstance(error, RetryExhaustedError):
            error_details["attempts"] = error.attempts
            error_details["retryHistory"] = error.history

        context.log(
            "error",
            f"Execution failed: {error}",
            {"category": analysis.category.value, "severity": analysis.severity.value},
        )
        await self._finish(
            context,
            ExecutionStatus.FAILED,
            output_data={"stepResults": dict(context.step_results)},
            error_details=error_details,
        )
        return ExecutionResult(
            success=False,
            execution_id=context.execution_id,
            status=ExecutionStatus.FAILED,
            error=str(error),
            logs=context.serialized_logs(),
            duration_ms=context.duration_ms(),
            error_analysis=analysis,
        )

    async def _finish(
        self,
        context: WorkflowContext,
        status: ExecutionStatus,
        output_data: dict[str, Any] | None = None,
        error_details: dict[str, Any] | None = None,
    ) -> None:
        try:
            await self._execution_store.update(
                context.execution_id,
                status=status,
                output_data=output_data,
                logs=context.serialized_logs(),
                error_details=error_details,
                completed_at=datetime.now(),
                duration_ms=context.duration_ms(),
            )
        except Exception:
            logger.exception("Failed to persist terminal state of execution %s", context.execution_id)
        if self._metrics is not None:
            error = error_details.get("message") if error_details else None
            self._metrics.track_end(context.execution_id, status, context.duration_ms(), error)

    # --- Validation ---

    def validate(self, automation: Automation) -> ValidationReport:
        """Check an automation's structure and every step config."""
        errors: list[str] = []
        warnings: list[str] = []

        if not automation.steps:
            errors.append("Automation must have at least one step")

        ids = Counter(step.id for step in automation.steps)
        for step_id, count in ids.items():
            if count > 1:
                errors.append(f'Duplicate step id "{step_id}"')

        for step in automation.steps:
            if not self._registry.has(step.type):
                errors.append(f'Step "{step.label}": unknown step type "{step.type}"')
                continue
            result = self._registry.get(step.type).validate(step.config)
            errors.extend(f'Step "{step.label}": {message}' for message in result.errors)

            for connection in step.connections:
                if connection.target_id not in ids:
                    errors.append(
                        f'Step "{step.label}": connection targets unknown step "{connection.target_id}"'
                    )
                elif connection.target_id == step.id:
                    warnings.append(f'Step "{step.label}" connects to itself')

        schedule = automation.schedule
        if schedule is not None:
            try:
                validate_cron(schedule.cron_expression, schedule.timezone)
            except InvalidCronExpressionError as e:
                errors.append(e.message)
            if not schedule.enabled:
                warnings.append("Schedule is defined but disabled")

        retry = automation.retry_config
        if retry is not None and retry.enabled and retry.max_retries == 0:
            warnings.append("Retry is enabled with maxRetries 0; the run will not be retried")

        return ValidationReport(valid=not errors, errors=errors, warnings=warnings)

    # --- Cancellation ---

    def cancel(self, execution_id: str) -> bool:
        """Flag an in-flight execution; it stops at the next step boundary."""
        context = self._active.get(execution_id)
        if context is None:
            return False
        context.cancel()
        self._retry.cancel_retry(execution_id)
        logger.info("Cancellation requested for execution %s", execution_id)
        return True

    def active_executions(self) -> list[str]:
        return list(self._active.keys())
