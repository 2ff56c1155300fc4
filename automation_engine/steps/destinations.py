"""Destination steps: deliver data out of an execution."""

from __future__ import annotations

import asyncio
import csv
import json
import re
from email.message import EmailMessage
from io import StringIO
from pathlib import Path
from typing import Any, TYPE_CHECKING
from urllib.parse import urlparse

import aiosmtplib
import httpx
from sqlalchemy import column, insert, table
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..core.exceptions import StepExecutionError
from .base import StepExecutor, resolve_path

if TYPE_CHECKING:
    from ..core.config import Settings
    from ..engine.context import WorkflowContext
    from ..engine.types import Step, StepOutcome
    from ..resilience.guard import GuardRegistry

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FileDestinationStep(StepExecutor):
    """Write data to a JSON, CSV or text file under the configured root."""

    category = "destination"
    required_config = ("path",)
    FORMATS = ("json", "csv", "txt")

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def type(self) -> str:
        return "destination_file"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        if config.get("format", "json") not in self.FORMATS:
            errors.append(f'Unknown file format "{config.get("format")}"')
        if config.get("mode", "overwrite") not in ("overwrite", "append"):
            errors.append('mode must be "overwrite" or "append"')
        return errors

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        path = resolve_path(self._root, step.config["path"])
        fmt = step.config.get("format", "json")
        append = step.config.get("mode", "overwrite") == "append"

        written = await asyncio.to_thread(self._write, path, fmt, append, input_data)
        context.log("info", f"Wrote {written} bytes to {step.config['path']}")
        return self.output(
            {"path": str(step.config["path"]), "bytes": written, "format": fmt},
            mode="append" if append else "overwrite",
        )

    def _write(self, path: Path, fmt: str, append: bool, data: Any) -> int:
        path.parent.mkdir(parents=True, exist_ok=True)
        exists = path.exists()

        if fmt == "json":
            if append and exists:
                previous = json.loads(path.read_text(encoding="utf-8") or "[]")
                data = self.as_items(previous) + self.as_items(data)
            content = json.dumps(data, indent=2, default=str)
            path.write_text(content, encoding="utf-8")
            return len(content.encode("utf-8"))

        if fmt == "csv":
            content = self._to_csv(self.as_items(data), include_header=not (append and exists))
        else:
            lines = [
                item if isinstance(item, str) else json.dumps(item, default=str)
                for item in self.as_items(data)
            ]
            content = "\n".join(lines) + ("\n" if lines else "")

        with open(path, "a" if append else "w", encoding="utf-8", newline="") as f:
            f.write(content)
        return len(content.encode("utf-8"))

    def _to_csv(self, items: list[Any], include_header: bool) -> str:
        rows = [i for i in items if isinstance(i, dict)]
        columns: list[str] = []
        for row in rows:
            columns.extend(k for k in row if k not in columns)
        output = StringIO()
        writer = csv.DictWriter(output, fieldnames=columns, extrasaction="ignore")
        if include_header:
            writer.writeheader()
        writer.writerows(rows)
        return output.getvalue()


class ApiDestinationStep(StepExecutor):
    """Send data to an HTTP endpoint through the host's dependency guard."""

    category = "destination"
    required_config = ("url",)
    METHODS = ("POST", "PUT", "PATCH")

    def __init__(self, client: httpx.AsyncClient, guards: GuardRegistry) -> None:
        self._client = client
        self._guards = guards

    @property
    def type(self) -> str:
        return "destination_api"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        parsed = urlparse(str(config["url"]))
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"Invalid URL: {config['url']}")
        if str(config.get("method", "POST")).upper() not in self.METHODS:
            errors.append(f"Unsupported method: {config.get('method')}")
        return errors

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        url = step.config["url"]
        method = str(step.config.get("method", "POST")).upper()
        headers = step.config.get("headers") or {}
        guard = self._guards.get(urlparse(url).netloc)
        payloads = self.as_items(input_data) if step.config.get("perItem", False) else [input_data]

        async def send(body: Any) -> dict[str, Any]:
            response = await self._client.request(method, url, json=body, headers=headers)
            response.raise_for_status()
            return {"status": response.status_code}

        responses = []
        for body in payloads:
            responses.append(
                await guard.mutate(lambda body=body: send(body), rate_key=context.owner_id)
            )
        return self.output(responses, url=url, method=method, requests=len(responses))


class DatabaseDestinationStep(StepExecutor):
    """Insert records as rows into a SQL table."""

    category = "destination"
    required_config = ("connectionUrl", "table")

    def __init__(self) -> None:
        self._engines: dict[str, AsyncEngine] = {}

    @property
    def type(self) -> str:
        return "destination_database"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        errors = []
        if not IDENTIFIER_RE.match(str(config["table"])):
            errors.append(f"Invalid table name: {config['table']}")
        for name in config.get("columns") or []:
            if not IDENTIFIER_RE.match(str(name)):
                errors.append(f"Invalid column name: {name}")
        return errors

    def _engine(self, url: str) -> AsyncEngine:
        engine = self._engines.get(url)
        if engine is None:
            engine = create_async_engine(url)
            self._engines[url] = engine
        return engine

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        rows = [r for r in self.as_items(input_data) if isinstance(r, dict)]
        if not rows:
            return self.output({"inserted": 0}, table=step.config["table"])

        columns = step.config.get("columns") or sorted({k for row in rows for k in row})
        bad = [c for c in columns if not IDENTIFIER_RE.match(str(c))]
        if bad:
            raise StepExecutionError(
                f"Validation failed: invalid column names {bad}",
                step_id=step.id,
                step_type=self.type,
                retryable=False,
            )

        target = table(step.config["table"], *[column(c) for c in columns])
        values = [{c: row.get(c) for c in columns} for row in rows]

        async with self._engine(step.config["connectionUrl"]).begin() as conn:
            await conn.execute(insert(target), values)

        context.log("info", f"Inserted {len(values)} rows into {step.config['table']}")
        return self.output({"inserted": len(values)}, table=step.config["table"])

    async def close(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()


class EmailDestinationStep(StepExecutor):
    """Send the data by email over SMTP."""

    category = "destination"
    required_config = ("to", "subject")

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def type(self) -> str:
        return "destination_email"

    def validate_config(self, config: dict[str, Any]) -> list[str]:
        recipients = config["to"] if isinstance(config["to"], list) else [config["to"]]
        return [f"Invalid email address: {r}" for r in recipients if "@" not in str(r)]

    def build_message(self, config: dict[str, Any], data: Any) -> EmailMessage:
        recipients = config["to"] if isinstance(config["to"], list) else [config["to"]]
        body = str(config.get("body", ""))
        if config.get("includeData", True) and data is not None:
            body = f"{body}\n\n{json.dumps(data, indent=2, default=str)}".strip()

        msg = EmailMessage()
        msg["From"] = config.get("from") or self._settings.smtp_sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = config["subject"]
        msg.set_content(body)
        return msg

    async def execute(self, step: Step, context: WorkflowContext, input_data: Any) -> StepOutcome:
        if not self._settings.smtp_host:
            raise StepExecutionError(
                "Validation failed: SMTP host is not configured",
                step_id=step.id,
                step_type=self.type,
                retryable=False,
            )

        msg = self.build_message(step.config, input_data)
        await aiosmtplib.send(
            msg,
            hostname=self._settings.smtp_host,
            port=self._settings.smtp_port,
            username=self._settings.smtp_username,
            password=self._settings.smtp_password,
            start_tls=self._settings.smtp_start_tls,
        )
        context.log("info", f"Email sent to {msg['To']}")
        return self.output({"sent": True, "to": msg["To"]}, subject=step.config["subject"])
