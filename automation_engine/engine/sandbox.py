"""
Sandbox for user-supplied custom scripts.

Scripts are single Python-syntax expressions evaluated with simpleeval
(no eval() or exec()). Only whitelisted functions and the names handed in
by the caller are visible, so a script has no access to the host process,
its environment or the filesystem. Evaluation runs in a worker thread and
is bounded by a timeout.
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any

from simpleeval import DEFAULT_FUNCTIONS, DEFAULT_OPERATORS, SimpleEval

from ..core.exceptions import ScriptTimeoutError, StepExecutionError

logger = logging.getLogger(__name__)

MAX_SCRIPT_LENGTH = 10_000

SAFE_FUNCTIONS: dict[str, Any] = {
    **DEFAULT_FUNCTIONS,
    # Type conversion
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "list": list,
    "dict": dict,
    # String functions
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "trim": lambda s: str(s).strip(),
    "split": lambda s, sep=" ": str(s).split(sep),
    "join": lambda arr, sep="": sep.join(str(x) for x in arr),
    "includes": lambda s, search: search in s,
    "replace": lambda s, old, new: str(s).replace(old, new),
    "substring": lambda s, start, end=None: str(s)[start:end],
    "length": lambda x: len(x),
    "startswith": lambda s, prefix: str(s).startswith(prefix),
    "endswith": lambda s, suffix: str(s).endswith(suffix),
    # Array functions
    "first": lambda arr: arr[0] if arr else None,
    "last": lambda arr: arr[-1] if arr else None,
    "slice": lambda arr, start, end=None: arr[start:end],
    "reverse": lambda arr: list(reversed(arr)),
    "sort": lambda arr: sorted(arr),
    "unique": lambda arr: list(dict.fromkeys(arr)),
    "flatten": lambda arr: [item for sublist in arr for item in sublist],
    "pluck": lambda arr, key: [x.get(key) if isinstance(x, dict) else None for x in arr],
    # Math functions
    "abs": abs,
    "min": min,
    "max": max,
    "sum": sum,
    "round": round,
    "floor": math.floor,
    "ceil": math.ceil,
    # Date functions
    "now": lambda: int(datetime.now().timestamp() * 1000),
    "date_now": lambda: datetime.now().isoformat(),
    # JSON functions
    "json_stringify": lambda v: json.dumps(v),
    "json_parse": lambda s: json.loads(s) if s else None,
    # Type checking
    "typeof": lambda v: type(v).__name__,
    "is_array": lambda v: isinstance(v, list),
    "is_empty": lambda v: v is None or v == "" or (isinstance(v, (list, dict)) and len(v) == 0),
    "is_none": lambda v: v is None,
    # Object functions
    "keys": lambda d: list(d.keys()) if isinstance(d, dict) else [],
    "values": lambda d: list(d.values()) if isinstance(d, dict) else [],
    "get": lambda d, key, default=None: d.get(key, default) if isinstance(d, dict) else default,
    "merge": lambda *ds: {k: v for d in ds if isinstance(d, dict) for k, v in d.items()},
}


class ScriptSandbox:
    """Evaluates untrusted expressions with a whitelist and a time budget."""

    def __init__(self, timeout_s: float = 5.0, max_workers: int = 4) -> None:
        self.timeout_s = timeout_s
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="script-sandbox")

    def validate(self, expression: Any) -> list[str]:
        """Return syntax problems with ``expression`` (empty when fine)."""
        if not isinstance(expression, str) or not expression.strip():
            return ["Script must be a non-empty string"]
        if len(expression) > MAX_SCRIPT_LENGTH:
            return [f"Script exceeds {MAX_SCRIPT_LENGTH} characters"]
        try:
            ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            return [f"Syntax error in script: {e.msg}"]
        return []

    def _evaluator(self, names: dict[str, Any]) -> SimpleEval:
        # A fresh evaluator per call; worker threads never share one
        return SimpleEval(
            operators=DEFAULT_OPERATORS.copy(),
            functions=SAFE_FUNCTIONS,
            names=names,
        )

    def _evaluate_sync(self, expression: str, names: dict[str, Any]) -> Any:
        return self._evaluator(names).eval(expression.strip())

    def _evaluate_each_sync(
        self,
        expression: str,
        items: list[Any],
        names: dict[str, Any],
    ) -> list[Any]:
        evaluator = self._evaluator(dict(names))
        results = []
        for index, item in enumerate(items):
            evaluator.names = {**names, "item": item, "index": index}
            results.append(evaluator.eval(expression.strip()))
        return results

    async def evaluate(self, expression: str, names: dict[str, Any]) -> Any:
        """Evaluate ``expression`` once against ``names``."""
        return await self._run(self._evaluate_sync, expression, names)

    async def evaluate_each(self, expression: str, items: list[Any], names: dict[str, Any]) -> list[Any]:
        """Evaluate ``expression`` per item, exposing ``item`` and ``index``."""
        return await self._run(self._evaluate_each_sync, expression, items, names)

    async def _run(self, func: Any, *args: Any) -> Any:
        errors = self.validate(args[0])
        if errors:
            raise StepExecutionError(f"Validation failed: {errors[0]}", retryable=False)

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, func, *args)
        try:
            return await asyncio.wait_for(future, timeout=self.timeout_s)
        except asyncio.TimeoutError:
            # The worker thread cannot be killed; its result is discarded
            logger.warning("Script exceeded %ss budget", self.timeout_s)
            raise ScriptTimeoutError(self.timeout_s) from None
        except (StepExecutionError, ScriptTimeoutError):
            raise
        except Exception as e:
            raise StepExecutionError(f"Script error: {e}", retryable=False) from e

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
