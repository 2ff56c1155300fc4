"""Action steps: reshape, combine and summarize data, run scripts, manage files."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Any, TYPE_CHECKING

from ..core.exceptions import StepExecutionError
from .base import StepExecutor, resolve_path

if TYPE_CHECKING:
    from ..engine.context import WorkflowContext
    from ..engine.sandbox import ScriptSandbox
    from ..engine.types import Step, StepOutcome


class TransformStep(StepExecutor):
    """Map, pick, flatten, sort or group records."""

    category = "action"
    required_config = ("operation",)
    OPERATIONS = ("map", "pick", "flatten", "sort", "group")

    @property
    def type(self) -> str:
        return "action_transform"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        operation = config["operation"]
        if operation not in self.OPERATIONS:
            return [f'Unknown transform operation "{operation}"']
        if operation == "map" and not isinstance(config.get("mappings"), dict):
            return ["map requires a mappings object"]
        if operation == "pick" and not config.get("fields"):
            return ["pick requires fields"]
        if operation == "sort" and not config.get("sortBy"):
            return ["sort requires sortBy"]
        if operation == "group" and not config.get("groupBy"):
            return ["group requires groupBy"]
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        config = step.config
        operation = config["operation"]
        items = self.as_items(input_data)

        if operation == "map":
            result = [self._map(item, config["mappings"], config.get("keepOriginal", False)) for item in items]
        elif operation == "pick":
            result = [{f: self.get_nested_value(item, f) for f in config["fields"]} for item in items]
        elif operation == "flatten":
            result = self._flatten_items(items, config.get("separator", "."))
        elif operation == "sort":
            result = self._sort(items, config["sortBy"], config.get("order", "asc") == "desc")
        else:
            result = self._group(items, config["groupBy"])

        return self.output(result, operation=operation, inputCount=len(items))

    def _map(self, item: Any, mappings: dict[str, str], keep_original: bool) -> dict[str, Any]:
        out: dict[str, Any] = dict(item) if keep_original and isinstance(item, dict) else {}
        for target, source in mappings.items():
            self.set_nested_value(out, target, self.get_nested_value(item, source))
        return out

    def _flatten_items(self, items: list[Any], separator: str) -> list[Any]:
        if all(isinstance(i, list) for i in items):
            return [x for sub in items for x in sub]
        return [self._flatten_dict(i, "", separator) if isinstance(i, dict) else i for i in items]

    def _flatten_dict(self, obj: dict[str, Any], prefix: str, separator: str) -> dict[str, Any]:
        flat: dict[str, Any] = {}
        for key, value in obj.items():
            name = f"{prefix}{separator}{key}" if prefix else key
            if isinstance(value, dict):
                flat.update(self._flatten_dict(value, name, separator))
            else:
                flat[name] = value
        return flat

    def _sort(self, items: list[Any], field: str, descending: bool) -> list[Any]:
        present = [i for i in items if self.get_nested_value(i, field) is not None]
        missing = [i for i in items if self.get_nested_value(i, field) is None]
        try:
            present.sort(key=lambda i: self.get_nested_value(i, field), reverse=descending)
        except TypeError:
            present.sort(key=lambda i: str(self.get_nested_value(i, field)), reverse=descending)
        # Records without the field always go last
        return present + missing

    def _group(self, items: list[Any], field: str) -> list[dict[str, Any]]:
        groups: dict[Any, list[Any]] = {}
        for item in items:
            key = self.get_nested_value(item, field)
            groups.setdefault(key if isinstance(key, (str, int, float, bool)) or key is None else str(key), []).append(item)
        return [{"key": k, "count": len(v), "items": v} for k, v in groups.items()]


class MergeStep(StepExecutor):
    """Combine the input with another dataset by appending or joining on a key."""

    category = "action"

    @property
    def type(self) -> str:
        return "action_merge"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        source = config.get("source", "static")
        if source not in ("static", "variable", "step"):
            errors.append(f'Unknown merge source "{source}"')
        if source == "variable" and not config.get("variable"):
            errors.append("variable source requires variable")
        if source == "step" and not config.get("stepId"):
            errors.append("step source requires stepId")
        mode = config.get("mode", "append")
        if mode not in ("append", "by_key"):
            errors.append(f'Unknown merge mode "{mode}"')
        if mode == "by_key" and not config.get("key"):
            errors.append("by_key mode requires key")
        return errors

    def _other(self, step: Step, context: WorkflowContext) -> list[Any]:
        source = step.config.get("source", "static")
        if source == "variable":
            return self.as_items(context.variables.get(step.config["variable"]))
        if source == "step":
            return self.as_items(context.get_step_result(step.config["stepId"]))
        return self.as_items(step.config.get("data"))

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        items = self.as_items(input_data)
        other = self._other(step, context)

        if step.config.get("mode", "append") == "append":
            merged = items + other
        else:
            key = step.config["key"]
            index = {self.get_nested_value(o, key): o for o in other}
            merged = [{**item, **index.get(self.get_nested_value(item, key), {})} for item in items]
            if step.config.get("includeUnmatched", False):
                own_keys = {self.get_nested_value(i, key) for i in items}
                merged.extend(o for k, o in index.items() if k not in own_keys)

        return self.output(merged, inputCount=len(items), mergedCount=len(other), outputCount=len(merged))


class AggregateStep(StepExecutor):
    """Count, sum, average, min or max a field, optionally per group."""

    category = "action"
    required_config = ("operation",)
    OPERATIONS = ("count", "sum", "avg", "min", "max")

    @property
    def type(self) -> str:
        return "action_aggregate"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        operation = config["operation"]
        if operation not in self.OPERATIONS:
            return [f'Unknown aggregate operation "{operation}"']
        if operation != "count" and not config.get("field"):
            return [f"{operation} requires field"]
        return []

    def _aggregate(self, items: list[Any], operation: str, field: str | None) -> Any:
        if operation == "count":
            return len(items)
        values = []
        for item in items:
            value = self.get_nested_value(item, field) if field else None
            try:
                values.append(float(value))
            except (TypeError, ValueError):
                continue
        if not values:
            return None
        if operation == "sum":
            return sum(values)
        if operation == "avg":
            return sum(values) / len(values)
        if operation == "min":
            return min(values)
        return max(values)

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        operation = step.config["operation"]
        field = step.config.get("field")
        group_by = step.config.get("groupBy")
        items = self.as_items(input_data)

        if not group_by:
            value = self._aggregate(items, operation, field)
            return self.output(
                {"operation": operation, "field": field, "value": value, "count": len(items)},
                inputCount=len(items),
            )

        groups: dict[Any, list[Any]] = {}
        for item in items:
            groups.setdefault(self.get_nested_value(item, group_by), []).append(item)

        result = [
            {group_by: key, "value": self._aggregate(members, operation, field), "count": len(members)}
            for key, members in groups.items()
        ]
        return self.output(result, inputCount=len(items), groups=len(result))


class CustomScriptStep(StepExecutor):
    """Run a sandboxed expression over each record or over the whole input."""

    category = "action"
    required_config = ("script",)

    def __init__(self, sandbox: ScriptSandbox) -> None:
        self._sandbox = sandbox

    @property
    def type(self) -> str:
        return "action_custom_script"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = self._sandbox.validate(config["script"])
        if config.get("mode", "each") not in ("each", "all"):
            errors.append('mode must be "each" or "all"')
        return errors

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        script = step.config["script"]
        names = {
            "variables": dict(context.variables),
            "steps": dict(context.step_results),
        }

        if step.config.get("mode", "each") == "each":
            result: Any = await self._sandbox.evaluate_each(script, self.as_items(input_data), names)
        else:
            result = await self._sandbox.evaluate(script, {**names, "data": input_data})

        if step.config.get("outputVariable"):
            context.variables[step.config["outputVariable"]] = result

        return self.output(result, mode=step.config.get("mode", "each"))


class FileOperationStep(StepExecutor):
    """Copy, move, delete, list or create files under the configured root."""

    category = "action"
    required_config = ("operation", "path")
    OPERATIONS = ("copy", "move", "delete", "list", "mkdir", "exists")

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def type(self) -> str:
        return "action_file_operation"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        operation = config["operation"]
        if operation not in self.OPERATIONS:
            return [f'Unknown file operation "{operation}"']
        if operation in ("copy", "move") and not config.get("destination"):
            return [f"{operation} requires destination"]
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        operation = step.config["operation"]
        path = resolve_path(self._root, step.config["path"])
        destination = (
            resolve_path(self._root, step.config["destination"])
            if step.config.get("destination")
            else None
        )

        try:
            result = await asyncio.to_thread(self._run, operation, path, destination)
        except FileNotFoundError as e:
            raise StepExecutionError(
                f"File not found: {e.filename}", step_id=step.id, step_type=self.type, retryable=False
            ) from e

        context.log("info", f"File operation {operation} on {step.config['path']}")
        if operation == "list":
            return self.output(result, operation=operation, count=len(result))
        # Other operations pass the input through untouched
        return self.output(input_data, operation=operation, result=result)

    def _run(self, operation: str, path: Path, destination: Path | None) -> Any:
        if operation == "list":
            return [
                {
                    "name": entry.name,
                    "isDirectory": entry.is_dir(),
                    "size": entry.stat().st_size if entry.is_file() else None,
                }
                for entry in sorted(path.iterdir())
            ]
        if operation == "exists":
            return {"exists": path.exists()}
        if operation == "mkdir":
            path.mkdir(parents=True, exist_ok=True)
            return {"created": str(path)}
        if operation == "delete":
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
            return {"deleted": str(path)}

        assert destination is not None
        destination.parent.mkdir(parents=True, exist_ok=True)
        if operation == "copy":
            if path.is_dir():
                shutil.copytree(path, destination)
            else:
                shutil.copy2(path, destination)
            return {"copied": str(path), "to": str(destination)}
        shutil.move(str(path), str(destination))
        return {"moved": str(path), "to": str(destination)}
