"""Source steps: bring data into an execution."""

from __future__ import annotations

import asyncio
import csv
import json
from io import StringIO
from pathlib import Path
from typing import Any, TYPE_CHECKING
from urllib.parse import urlencode, urlparse

import httpx

from ..resilience.fallback import FallbackChain
from .base import StepExecutor, resolve_path

if TYPE_CHECKING:
    from ..engine.context import WorkflowContext
    from ..engine.types import Step, StepOutcome
    from ..resilience.guard import GuardRegistry


class ManualInputStep(StepExecutor):
    """Emit static data entered in the step config."""

    category = "source"

    @property
    def type(self) -> str:
        return "source_manual_input"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        if "data" not in config:
            return ['Missing required config "data"']
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        return self.output(step.config["data"], source="manual")


class WebhookDataStep(StepExecutor):
    """Emit the payload (or headers) of the webhook that triggered the run."""

    category = "source"

    @property
    def type(self) -> str:
        return "source_webhook"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        if config.get("field", "payload") not in ("payload", "headers", "all"):
            return ['field must be "payload", "headers" or "all"']
        return []

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        webhook = (input_data or {}).get("webhook", {}) if isinstance(input_data, dict) else {}
        field = step.config.get("field", "payload")
        data = webhook if field == "all" else webhook.get(field)
        return self.output(data, source="webhook", receivedAt=webhook.get("timestamp"))


class FileSourceStep(StepExecutor):
    """Read a JSON, JSON-lines, CSV or text file under the configured root."""

    category = "source"
    required_config = ("path",)
    FORMATS = ("json", "jsonl", "csv", "text")

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def type(self) -> str:
        return "source_file"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        fmt = config.get("format")
        if fmt and fmt not in self.FORMATS:
            return [f'Unknown file format "{fmt}"']
        return []

    def _format(self, path: Path, configured: str | None) -> str:
        if configured:
            return configured
        suffix = path.suffix.lower().lstrip(".")
        if suffix in ("json", "jsonl", "csv"):
            return suffix
        return "text"

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        path = resolve_path(self._root, step.config["path"])
        fmt = self._format(path, step.config.get("format"))
        content = await asyncio.to_thread(path.read_text, encoding=step.config.get("encoding", "utf-8"))

        if fmt == "json":
            data: Any = json.loads(content)
        elif fmt == "jsonl":
            data = [json.loads(line) for line in content.splitlines() if line.strip()]
        elif fmt == "csv":
            data = list(csv.DictReader(StringIO(content), delimiter=step.config.get("delimiter", ",")))
        else:
            data = content

        return self.output(data, source="file", format=fmt, path=str(step.config["path"]))


class ApiSourceStep(StepExecutor):
    """Fetch data over HTTP through the host's dependency guard.

    ``fallbackUrls`` are tried in order when the primary URL fails.
    """

    category = "source"
    required_config = ("url",)

    def __init__(self, client: httpx.AsyncClient, guards: GuardRegistry) -> None:
        self._client = client
        self._guards = guards

    @property
    def type(self) -> str:
        return "source_api"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        for url in [config["url"], *config.get("fallbackUrls", [])]:
            parsed = urlparse(str(url))
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append(f"Invalid URL: {url}")
        return errors

    async def _fetch(self, url: str, step: Step, owner_id: str) -> Any:
        params = step.config.get("params") or {}
        headers = step.config.get("headers") or {}
        guard = self._guards.get(urlparse(url).netloc)
        ttl = step.config.get("cacheTtl")

        async def request() -> Any:
            response = await self._client.get(url, params=params, headers=headers)
            response.raise_for_status()
            if "json" in response.headers.get("content-type", ""):
                return response.json()
            return response.text

        return await guard.call(
            request,
            rate_key=owner_id,
            cache_key=f"GET {url}?{urlencode(params)}" if ttl else None,
            ttl_s=ttl,
        )

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        urls = [step.config["url"], *step.config.get("fallbackUrls", [])]
        chain: FallbackChain[Any] = FallbackChain(f"{step.label} fetch")
        for url in urls:
            chain.add(url, lambda url=url: self._fetch(url, step, context.owner_id))

        if len(chain) == 1:
            data = await self._fetch(urls[0], step, context.owner_id)
            used = urls[0]
        else:
            used, data = await chain.run()

        data_path = step.config.get("dataPath")
        if data_path:
            data = self.get_nested_value(data, data_path)
        return self.output(data, source="api", url=used)
