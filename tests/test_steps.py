"""Tests for the built-in data step executors."""

import json
import time

import httpx
import pytest

from automation_engine.core.exceptions import ScriptTimeoutError, StepExecutionError
from automation_engine.engine.sandbox import ScriptSandbox
from automation_engine.engine.types import Step
from automation_engine.resilience import GuardRegistry
from automation_engine.steps.actions import AggregateStep, CustomScriptStep, FileOperationStep, MergeStep, TransformStep
from automation_engine.steps.connectors import CloudUploadStep, ConnectorSourceStep
from automation_engine.steps.destinations import FileDestinationStep
from automation_engine.steps.filters import DedupFilterStep, ExpressionFilterStep, RegexFilterStep, SimpleFilterStep
from automation_engine.steps.sources import ApiSourceStep, FileSourceStep, ManualInputStep, WebhookDataStep

ORDERS = [
    {"id": 1, "customer": "acme", "total": 120, "status": "paid"},
    {"id": 2, "customer": "globex", "total": 40, "status": "open"},
    {"id": 3, "customer": "acme", "total": 75, "status": "paid"},
]


def step(type_tag, **config):
    return Step(id="s1", type=type_tag, config=config)


@pytest.fixture
def sandbox():
    sandbox = ScriptSandbox(timeout_s=2.0)
    yield sandbox
    sandbox.close()


class TestSources:
    @pytest.mark.asyncio
    async def test_manual_input(self, context):
        outcome = await ManualInputStep().execute(step("source_manual_input", data=ORDERS), context, None)
        assert outcome.data == ORDERS

    def test_manual_input_requires_data(self):
        assert not ManualInputStep().validate({}).valid

    @pytest.mark.asyncio
    async def test_webhook_payload(self, context):
        input_data = {"webhook": {"payload": {"a": 1}, "headers": {"x": "y"}, "timestamp": "t"}}
        outcome = await WebhookDataStep().execute(step("source_webhook"), context, input_data)
        assert outcome.data == {"a": 1}

    @pytest.mark.asyncio
    async def test_file_source_csv(self, context, tmp_path):
        (tmp_path / "orders.csv").write_text("id,total\n1,10\n2,20\n")
        outcome = await FileSourceStep(tmp_path).execute(step("source_file", path="orders.csv"), context, None)
        assert outcome.data == [{"id": "1", "total": "10"}, {"id": "2", "total": "20"}]
        assert outcome.metadata["format"] == "csv"

    @pytest.mark.asyncio
    async def test_file_source_rejects_escape(self, context, tmp_path):
        with pytest.raises(StepExecutionError):
            await FileSourceStep(tmp_path).execute(step("source_file", path="../secret.json"), context, None)

    @pytest.mark.asyncio
    async def test_api_source_falls_back(self, context):
        def handler(request):
            if request.url.host == "primary.example.com":
                return httpx.Response(503)
            return httpx.Response(200, json={"data": {"items": [1, 2]}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            executor = ApiSourceStep(client, GuardRegistry())
            config = {
                "url": "https://primary.example.com/items",
                "fallbackUrls": ["https://backup.example.com/items"],
                "dataPath": "data.items",
            }
            assert executor.validate(config).valid
            outcome = await executor.execute(step("source_api", **config), context, None)

        assert outcome.data == [1, 2]
        assert outcome.metadata["url"] == "https://backup.example.com/items"

    def test_api_source_validates_urls(self):
        executor = ApiSourceStep(httpx.AsyncClient(), GuardRegistry())
        assert executor.validate({"url": "ftp://nope"}).errors == ["Invalid URL: ftp://nope"]


class TestFilters:
    @pytest.mark.asyncio
    async def test_simple_filter_and(self, context):
        config = {
            "conditions": [
                {"field": "customer", "operator": "equals", "value": "acme"},
                {"field": "total", "operator": "greater_than", "value": 100},
            ]
        }
        outcome = await SimpleFilterStep().execute(step("filter_simple", **config), context, ORDERS)
        assert [o["id"] for o in outcome.data] == [1]
        assert outcome.metadata == {"inputCount": 3, "outputCount": 1}

    @pytest.mark.asyncio
    async def test_simple_filter_or(self, context):
        config = {
            "logic": "or",
            "conditions": [
                {"field": "status", "operator": "equals", "value": "open"},
                {"field": "total", "operator": "greater_or_equal", "value": 120},
            ],
        }
        outcome = await SimpleFilterStep().execute(step("filter_simple", **config), context, ORDERS)
        assert [o["id"] for o in outcome.data] == [1, 2]

    def test_simple_filter_unknown_operator(self):
        result = SimpleFilterStep().validate({"field": "a", "operator": "resembles"})
        assert not result.valid

    @pytest.mark.asyncio
    async def test_regex_filter_invert(self, context):
        config = {"field": "customer", "pattern": "^ac", "invert": True}
        outcome = await RegexFilterStep().execute(step("filter_regex", **config), context, ORDERS)
        assert [o["id"] for o in outcome.data] == [2]

    def test_regex_filter_bad_pattern(self):
        assert not RegexFilterStep().validate({"field": "a", "pattern": "("}).valid

    @pytest.mark.asyncio
    async def test_dedup_keep_last(self, context):
        config = {"fields": ["customer"], "keep": "last"}
        outcome = await DedupFilterStep().execute(step("filter_dedup", **config), context, ORDERS)
        assert [o["id"] for o in outcome.data] == [3, 2]
        assert outcome.metadata["duplicatesRemoved"] == 1

    @pytest.mark.asyncio
    async def test_expression_filter(self, context, sandbox):
        config = {"condition": "item['total'] > 50 and item['status'] == 'paid'"}
        outcome = await ExpressionFilterStep(sandbox).execute(step("filter_expression", **config), context, ORDERS)
        assert [o["id"] for o in outcome.data] == [1, 3]


class TestActions:
    @pytest.mark.asyncio
    async def test_transform_map(self, context):
        config = {"operation": "map", "mappings": {"buyer.name": "customer", "amount": "total"}}
        outcome = await TransformStep().execute(step("action_transform", **config), context, ORDERS[:1])
        assert outcome.data == [{"buyer": {"name": "acme"}, "amount": 120}]

    @pytest.mark.asyncio
    async def test_transform_sort_desc(self, context):
        config = {"operation": "sort", "sortBy": "total", "order": "desc"}
        outcome = await TransformStep().execute(step("action_transform", **config), context, ORDERS)
        assert [o["id"] for o in outcome.data] == [1, 3, 2]

    @pytest.mark.asyncio
    async def test_transform_group(self, context):
        config = {"operation": "group", "groupBy": "customer"}
        outcome = await TransformStep().execute(step("action_transform", **config), context, ORDERS)
        assert [(g["key"], g["count"]) for g in outcome.data] == [("acme", 2), ("globex", 1)]

    @pytest.mark.asyncio
    async def test_merge_by_key(self, context):
        config = {
            "mode": "by_key",
            "key": "customer",
            "data": [{"customer": "acme", "tier": "gold"}],
        }
        outcome = await MergeStep().execute(step("action_merge", **config), context, ORDERS)
        assert outcome.data[0]["tier"] == "gold"
        assert "tier" not in outcome.data[1]

    @pytest.mark.asyncio
    async def test_merge_from_previous_step(self, context):
        context.set_step_result("fetch", [{"id": 9}])
        config = {"source": "step", "stepId": "fetch"}
        outcome = await MergeStep().execute(step("action_merge", **config), context, [{"id": 1}])
        assert outcome.data == [{"id": 1}, {"id": 9}]

    @pytest.mark.asyncio
    async def test_aggregate_grouped_sum(self, context):
        config = {"operation": "sum", "field": "total", "groupBy": "customer"}
        outcome = await AggregateStep().execute(step("action_aggregate", **config), context, ORDERS)
        assert outcome.data == [
            {"customer": "acme", "value": 195.0, "count": 2},
            {"customer": "globex", "value": 40.0, "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_custom_script_each(self, context, sandbox):
        config = {"script": "item['total'] * 2", "outputVariable": "doubled"}
        outcome = await CustomScriptStep(sandbox).execute(step("action_custom_script", **config), context, ORDERS)
        assert outcome.data == [240, 80, 150]
        assert context.variables["doubled"] == [240, 80, 150]

    @pytest.mark.asyncio
    async def test_custom_script_all(self, context, sandbox):
        config = {"script": "sum(pluck(data, 'total'))", "mode": "all"}
        outcome = await CustomScriptStep(sandbox).execute(step("action_custom_script", **config), context, ORDERS)
        assert outcome.data == 235

    def test_custom_script_syntax_error(self, sandbox):
        result = CustomScriptStep(sandbox).validate({"script": "item[["})
        assert not result.valid

    @pytest.mark.asyncio
    async def test_custom_script_cannot_reach_host(self, context, sandbox):
        config = {"script": "__import__('os').getcwd()", "mode": "all"}
        with pytest.raises(StepExecutionError):
            await CustomScriptStep(sandbox).execute(step("action_custom_script", **config), context, None)

    @pytest.mark.asyncio
    async def test_script_timeout(self, context):
        sandbox = ScriptSandbox(timeout_s=0.05)
        sandbox._evaluate_sync = lambda expression, names: time.sleep(0.5)
        try:
            with pytest.raises(ScriptTimeoutError):
                await sandbox.evaluate("1 + 1", {})
        finally:
            sandbox.close()

    @pytest.mark.asyncio
    async def test_file_operations(self, context, tmp_path):
        (tmp_path / "in").mkdir()
        (tmp_path / "in" / "a.txt").write_text("hello")
        executor = FileOperationStep(tmp_path)

        await executor.execute(
            step("action_file_operation", operation="copy", path="in/a.txt", destination="out/b.txt"),
            context,
            None,
        )
        listing = await executor.execute(step("action_file_operation", operation="list", path="out"), context, None)

        assert listing.data == [{"name": "b.txt", "isDirectory": False, "size": 5}]

    @pytest.mark.asyncio
    async def test_file_operation_missing_file(self, context, tmp_path):
        with pytest.raises(StepExecutionError):
            await FileOperationStep(tmp_path).execute(
                step("action_file_operation", operation="delete", path="ghost.txt"), context, None
            )


class TestDestinations:
    @pytest.mark.asyncio
    async def test_file_destination_json_append(self, context, tmp_path):
        executor = FileDestinationStep(tmp_path)
        config = {"path": "out/orders.json", "mode": "append"}
        await executor.execute(step("destination_file", **config), context, ORDERS[:1])
        await executor.execute(step("destination_file", **config), context, ORDERS[1:])

        assert json.loads((tmp_path / "out" / "orders.json").read_text()) == ORDERS

    @pytest.mark.asyncio
    async def test_file_destination_csv(self, context, tmp_path):
        executor = FileDestinationStep(tmp_path)
        await executor.execute(step("destination_file", path="orders.csv", format="csv"), context, ORDERS[:2])
        lines = (tmp_path / "orders.csv").read_text().splitlines()
        assert lines[0] == "id,customer,total,status"
        assert len(lines) == 3


class FakeConnector:
    name = "sharepoint"

    def __init__(self):
        self.reads = 0
        self.writes = []

    async def read(self, owner_id, config):
        self.reads += 1
        return [{"file": "report.xlsx"}]

    async def write(self, owner_id, config, data):
        self.writes.append(data)
        return {"uploaded": len(data)}


class TestConnectors:
    @pytest.mark.asyncio
    async def test_listing_is_cached_until_upload(self, context):
        guards = GuardRegistry()
        connector = FakeConnector()
        source = ConnectorSourceStep("source_sharepoint", connector, guards)
        upload = CloudUploadStep(guards)
        upload.add_connector("sharepoint", connector)
        config = {"path": "/reports"}

        await source.execute(step("source_sharepoint", **config), context, None)
        await source.execute(step("source_sharepoint", **config), context, None)
        assert connector.reads == 1

        await upload.execute(step("destination_cloud", provider="sharepoint", **config), context, [1, 2])
        await source.execute(step("source_sharepoint", **config), context, None)
        assert connector.reads == 2
        assert connector.writes == [[1, 2]]

    def test_upload_requires_known_provider(self):
        result = CloudUploadStep(GuardRegistry()).validate({"provider": "dropbox"})
        assert not result.valid
