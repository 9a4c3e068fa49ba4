"""Integration tests for the example application."""

from __future__ import annotations

import pytest
from litestar import Litestar
from litestar.testing import AsyncTestClient

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]

GLOBEX_EMAIL = {"subject": "Globex pricing for 50 seats", "body": "Can we get a quote?", "from": "hank@globexcorp.com"}


class TestMinimalApp:
    """Integration tests for the minimal example app."""

    @pytest.fixture
    def minimal_app(self) -> Litestar:
        """Import and return the minimal example app."""
        from examples.minimal.app import app

        return app

    async def test_submit_lead(self, minimal_app: Litestar) -> None:
        """A pricing email from an enterprise domain is scored and recorded."""
        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.post("/leads", json=GLOBEX_EMAIL)

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "completed"
        assert body["score"] == 90
        assert body["crm_id"] == "crm_96"
        assert body["slack_message_id"] == "m_Globe_90"
        assert 0 < body["total_tokens"] <= 1500

    async def test_processor_is_running(self, minimal_app: Litestar) -> None:
        async with AsyncTestClient(app=minimal_app) as client:
            response = await client.get("/stepflow/processor/status")

        assert response.json()["is_processing"] is True

    async def test_queued_run_through_api(self, minimal_app: Litestar) -> None:
        """Runs started through the stepflow API are finished by the processor."""
        async with AsyncTestClient(app=minimal_app) as client:
            workflow_id = (await client.get("/leads/workflow")).json()["workflow_id"]
            run = (await client.post(f"/stepflow/runs/{workflow_id}/start", json={"input": GLOBEX_EMAIL})).json()
            await client.post("/stepflow/processor/trigger")
            detail = (await client.get(f"/stepflow/runs/{run['id']}")).json()

        assert detail["run"]["status"] == "completed"
        assert [entry["status"] for entry in detail["timeline"]] == ["succeeded"] * 5
