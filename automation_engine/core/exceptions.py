"""Custom exceptions for the automation engine."""

from typing import Any


class AutomationEngineError(Exception):
    """Base exception for all automation engine errors.

    ``retryable`` is an explicit hint for the retry layer. ``None`` means the
    verdict is left to message classification.
    """

    retryable: bool | None = None

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AutomationNotFoundError(AutomationEngineError):
    """Raised when an automation is not found."""

    def __init__(self, automation_id: str) -> None:
        super().__init__(
            message=f"Automation not found: {automation_id}",
            details={"automation_id": automation_id},
        )
        self.automation_id = automation_id


class ExecutionNotFoundError(AutomationEngineError):
    """Raised when an execution record is not found."""

    def __init__(self, execution_id: str) -> None:
        super().__init__(
            message=f"Execution not found: {execution_id}",
            details={"execution_id": execution_id},
        )
        self.execution_id = execution_id


class StepExecutorNotFoundError(AutomationEngineError):
    """Raised when a step type has no registered executor."""

    retryable = False

    def __init__(self, step_type: str) -> None:
        super().__init__(
            message=f'Validation failed: unknown step type "{step_type}"',
            details={"step_type": step_type},
        )
        self.step_type = step_type


class ValidationError(AutomationEngineError):
    """Raised when validation fails."""

    retryable = False

    def __init__(self, message: str, field: str | None = None, errors: list[str] | None = None) -> None:
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if errors:
            details["errors"] = errors
        super().__init__(message=message, details=details)
        self.field = field
        self.errors = errors or []


class InvalidCronExpressionError(ValidationError):
    """Raised when a cron expression or timezone cannot be parsed."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid cron expression '{expression}': {reason}",
            field="cronExpression",
        )
        self.expression = expression


class AutomationDisabledError(AutomationEngineError):
    """Raised when triggering a disabled automation."""

    retryable = False

    def __init__(self, automation_id: str) -> None:
        super().__init__(
            message=f"Automation is disabled: {automation_id}",
            details={"automation_id": automation_id},
        )
        self.automation_id = automation_id


class StepExecutionError(AutomationEngineError):
    """Raised by a step executor when its work fails."""

    def __init__(
        self,
        message: str,
        step_id: str | None = None,
        step_type: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(
            message=message,
            details={"step_id": step_id, "step_type": step_type},
        )
        self.step_id = step_id
        self.step_type = step_type
        if retryable is not None:
            self.retryable = retryable


class ExecutionCancelledError(AutomationEngineError):
    """Raised at a step boundary when the execution was cancelled."""

    retryable = False

    def __init__(self, execution_id: str) -> None:
        super().__init__(
            message=f"Execution cancelled: {execution_id}",
            details={"execution_id": execution_id},
        )
        self.execution_id = execution_id


class RetryExhaustedError(AutomationEngineError):
    """Raised once the retry orchestrator gives up.

    The last attempt's error is chained as ``__cause__``.
    """

    def __init__(self, attempts: int, last_error: BaseException, history: list[dict[str, Any]]) -> None:
        super().__init__(
            message=f"Execution failed after {attempts} attempts. Last error: {last_error}",
            details={"attempts": attempts, "retry_history": history},
        )
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        self.retryable = False


class CircuitOpenError(AutomationEngineError):
    """Raised when a call is rejected by an open circuit breaker."""

    retryable = True

    def __init__(self, name: str, retry_after_ms: int) -> None:
        super().__init__(
            message=f"Circuit breaker is open for '{name}'",
            details={"dependency": name, "retry_after_ms": retry_after_ms},
        )
        self.name = name
        self.retry_after_ms = retry_after_ms


class RateLimitExceededError(AutomationEngineError):
    """Raised when the token bucket for a key is exhausted or blocked."""

    retryable = True

    def __init__(self, key: str, retry_after: float) -> None:
        super().__init__(
            message=f"Rate limit exceeded for '{key}', retry after {retry_after:.1f}s",
            details={"key": key, "retry_after": retry_after},
        )
        self.key = key
        self.retry_after = retry_after


class FallbackExhaustedError(AutomationEngineError):
    """Raised when every strategy of a fallback chain failed."""

    def __init__(self, name: str, failures: list[tuple[str, BaseException]]) -> None:
        summary = "; ".join(f"{label}: {error}" for label, error in failures)
        super().__init__(
            message=f"All strategies failed for '{name}': {summary}",
            details={"strategies": [label for label, _ in failures]},
        )
        self.failures = failures


class ScriptTimeoutError(AutomationEngineError):
    """Raised when a sandboxed script exceeds its time budget."""

    retryable = False

    def __init__(self, timeout_s: float) -> None:
        super().__init__(
            message=f"Script timed out after {timeout_s}s",
            details={"timeout_s": timeout_s},
        )


class BrowserError(AutomationEngineError):
    """Base class for browser session errors."""


class SessionLimitError(BrowserError):
    """Raised when an owner already holds the maximum number of sessions."""

    retryable = True

    def __init__(self, owner_id: str, limit: int) -> None:
        super().__init__(
            message=f"Maximum concurrent sessions reached ({limit}) for owner {owner_id}",
            details={"owner_id": owner_id, "limit": limit},
        )
        self.owner_id = owner_id
        self.limit = limit


class SessionNotFoundError(BrowserError):
    """Raised when a session id is unknown to the pool."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Browser session not found: {session_id}",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class BrowserTimeoutError(BrowserError):
    """Raised when a browser operation exceeds its timeout."""

    retryable = True

    def __init__(self, operation: str, timeout_ms: int, reason: str = "") -> None:
        super().__init__(
            message=f"Browser {operation} timeout after {timeout_ms}ms{': ' + reason if reason else ''}",
            details={"operation": operation, "timeout_ms": timeout_ms},
        )
        self.operation = operation
        self.timeout_ms = timeout_ms


class BrowserCrashedError(BrowserError):
    """Raised when the process behind a session is gone."""

    retryable = True

    def __init__(self, session_id: str, operation: str) -> None:
        super().__init__(
            message=f"Browser session crashed during {operation}: {session_id}",
            details={"session_id": session_id, "operation": operation},
        )
        self.session_id = session_id


class BrowserOperationError(BrowserError):
    """Raised when a browser operation fails for another reason."""


class InvalidStatusTransitionError(AutomationEngineError):
    """Raised when an execution status would move backwards or leave a terminal state."""

    def __init__(self, execution_id: str, current: str, requested: str) -> None:
        super().__init__(
            message=f"Execution {execution_id} cannot move from {current} to {requested}",
            details={"execution_id": execution_id, "current": current, "requested": requested},
        )
