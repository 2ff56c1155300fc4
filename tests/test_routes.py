"""HTTP API tests against an in-memory runtime."""

import httpx
import pytest
import pytest_asyncio

from automation_engine.engine.types import ExecutionStatus
from automation_engine.main import create_app
from automation_engine.runtime import AutomationRuntime

from tests.conftest import FakeLauncher

MANUAL = {"id": "input", "type": "source_manual_input", "config": {"data": [{"n": 1}, {"n": 5}]}}
FILTER = {
    "id": "big",
    "type": "filter_simple",
    "config": {"conditions": [{"field": "n", "operator": "greater_than", "value": 2}]},
}


@pytest_asyncio.fixture
async def runtime(settings):
    runtime = AutomationRuntime(settings, launcher=FakeLauncher())
    await runtime.start()
    yield runtime
    await runtime.stop()


@pytest_asyncio.fixture
async def client(runtime):
    transport = httpx.ASGITransport(app=create_app(runtime))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def create(client, **overrides):
    body = {"id": "auto_1", "name": "Orders", "steps": [MANUAL, FILTER], **overrides}
    response = await client.post("/api/automations", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestAutomationRoutes:
    @pytest.mark.asyncio
    async def test_create_and_get(self, client):
        created = await create(client)
        assert created["version"] == 1

        response = await client.get("/api/automations/auto_1")
        assert response.status_code == 200
        assert [s["id"] for s in response.json()["steps"]] == ["input", "big"]

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_definition(self, client):
        response = await client.post(
            "/api/automations",
            json={"name": "Broken", "steps": [{"id": "a", "type": "no_such_step"}]},
        )
        assert response.status_code == 400
        assert any("unknown step type" in e for e in response.json()["detail"]["errors"])

    @pytest.mark.asyncio
    async def test_get_unknown_automation(self, client):
        response = await client.get("/api/automations/ghost")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update_bumps_version(self, client):
        await create(client)
        response = await client.put("/api/automations/auto_1", json={"name": "Renamed"})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["version"] == 2

    @pytest.mark.asyncio
    async def test_validate_without_saving(self, client):
        response = await client.post("/api/automations/validate", json={"name": "Draft", "steps": []})
        assert response.status_code == 200
        assert response.json()["valid"] is False
        assert (await client.get("/api/automations")).json() == []

    @pytest.mark.asyncio
    async def test_run(self, client):
        await create(client)
        response = await client.post("/api/automations/auto_1/run", json={})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "completed"
        assert body["results"]["finalData"] == [{"n": 5}]

    @pytest.mark.asyncio
    async def test_run_disabled_automation(self, client):
        await create(client, enabled=False)
        response = await client.post("/api/automations/auto_1/run")
        assert response.status_code == 409


class TestScheduleRoutes:
    @pytest.mark.asyncio
    async def test_set_and_remove_schedule(self, client):
        await create(client)
        response = await client.put(
            "/api/automations/auto_1/schedule",
            json={"cronExpression": "*/5 * * * *", "allowOverlap": False},
        )
        assert response.status_code == 200
        assert response.json()["scheduled"] is True
        assert response.json()["nextRun"] is not None

        response = await client.delete("/api/automations/auto_1/schedule")
        assert response.json()["message"] == "Schedule removed"
        assert (await client.get("/api/automations/auto_1/schedule")).json()["scheduled"] is False

    @pytest.mark.asyncio
    async def test_invalid_cron_rejected(self, client):
        await create(client)
        response = await client.put("/api/automations/auto_1/schedule", json={"cronExpression": "every day"})
        assert response.status_code == 400
        assert (await client.get("/api/automations/auto_1")).json()["schedule"] is None


class TestWebhookRoutes:
    @pytest.mark.asyncio
    async def test_webhook_runs_automation(self, client):
        await create(client, steps=[{"id": "hook", "type": "source_webhook"}])
        enabled = (await client.post("/api/automations/auto_1/webhook/enable")).json()

        response = await client.post(enabled["url"], json={"order": 7})

        assert response.status_code == 200
        assert response.json()["results"]["finalData"] == {"order": 7}

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        response = await client.post("/webhooks/not-a-token", json={})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_disabled_webhook_no_longer_routes(self, client):
        await create(client, steps=[{"id": "hook", "type": "source_webhook"}])
        enabled = (await client.post("/api/automations/auto_1/webhook/enable")).json()
        await client.post("/api/automations/auto_1/webhook/disable")

        response = await client.post(enabled["url"], json={})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_webhook_of_disabled_automation_conflicts(self, client):
        await create(client, steps=[{"id": "hook", "type": "source_webhook"}])
        enabled = (await client.post("/api/automations/auto_1/webhook/enable")).json()
        await client.put("/api/automations/auto_1", json={"enabled": False})

        response = await client.post(enabled["url"], json={})
        assert response.status_code == 409

        await client.put("/api/automations/auto_1", json={"enabled": True})
        assert (await client.post(enabled["url"], json={})).status_code == 200


class TestExecutionRoutes:
    @pytest.mark.asyncio
    async def test_list_and_get(self, client):
        await create(client)
        run = (await client.post("/api/automations/auto_1/run")).json()

        listed = (await client.get("/api/executions", params={"automationId": "auto_1"})).json()
        assert [e["id"] for e in listed] == [run["executionId"]]

        record = (await client.get(f"/api/executions/{run['executionId']}")).json()
        assert record["status"] == "completed"
        assert record["triggeredBy"] == "manual"

    @pytest.mark.asyncio
    async def test_cancel_finished_execution(self, client):
        await create(client)
        run = (await client.post("/api/automations/auto_1/run")).json()

        response = await client.post(f"/api/executions/{run['executionId']}/cancel")
        assert response.json() == {"executionId": run["executionId"], "cancelled": False}

    @pytest.mark.asyncio
    async def test_unknown_execution(self, client):
        assert (await client.get("/api/executions/ghost")).status_code == 404
        assert (await client.post("/api/executions/ghost/cancel")).status_code == 404


class TestSystemRoutes:
    @pytest.mark.asyncio
    async def test_error_report(self, client):
        response = await client.get("/api/errors/report", params={"timeRange": "7d"})
        assert response.status_code == 200
        assert response.json()["summary"]["total"] == 0

    @pytest.mark.asyncio
    async def test_error_report_bad_range(self, client):
        response = await client.get("/api/errors/report", params={"timeRange": "soon"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_step_catalogue_and_health(self, client):
        steps = (await client.get("/api/steps")).json()
        assert {"source_manual_input", "interface_navigate"} <= {s["type"] for s in steps}

        health = (await client.get("/health")).json()
        assert health["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_health_reports_failing_runs(self, client, runtime):
        for i in range(5):
            runtime.metrics.track_start(f"exec_{i}", "auto_1")
            status = ExecutionStatus.COMPLETED if i < 3 else ExecutionStatus.FAILED
            runtime.metrics.track_end(f"exec_{i}", status, 100)

        health = (await client.get("/health")).json()

        assert health["status"] == "degraded"
        assert health["issues"] == [{"level": "degraded", "metric": "successRate", "value": 60.0, "threshold": 80.0}]

    @pytest.mark.asyncio
    async def test_stats_include_performance(self, client):
        await create(client)
        await client.post("/api/automations/auto_1/run")

        performance = (await client.get("/api/system/stats")).json()["performance"]

        assert performance["totalExecutions"] == 1
        assert performance["byStatus"]["completed"] == 1
        assert performance["successRate"] == 100.0
