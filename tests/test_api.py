"""HTTP API tests against the ASGI app without its lifespan."""

from datetime import date, datetime, timezone

import httpx
import pytest
import pytest_asyncio

from salewatch.core.config import Settings
from salewatch.db.unit_of_work import UnitOfWork
from salewatch.main import create_app
from salewatch.query.service import QueryService
from salewatch.scheduler.service import build_scheduler
from tests.fixtures.sales import StaticFeedClient, feed_entry, sale_values

NOW = datetime(2026, 10, 21, 15, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def app(notifier, session_factory):
    settings = Settings(_env_file=None, NOTIFIER="log", GROUP_IDS="1,2")
    app = create_app(settings)
    feed = StaticFeedClient({1: [feed_entry("h1", amount=25)]})
    app.state.scheduler = build_scheduler(
        settings, notifier, session_factory=session_factory, client=feed
    )
    app.state.query_service = QueryService(session_factory=session_factory, clock=lambda: NOW)
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
class TestQueryRoutes:
    async def test_healthz(self, client):
        response = await client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "X-Request-ID" in response.headers

    async def test_totals_and_chart(self, client, session_factory):
        async with UnitOfWork(session_factory=session_factory) as uow:
            await uow.sales.insert_if_absent(**sale_values("a", date(2026, 10, 21), 12))
            await uow.commit()

        totals = (await client.get("/stats/totals")).json()
        assert totals == {"group_id": None, "today": 12, "week": 12, "month": 12}

        chart = (await client.get("/stats/chart", params={"days": 2})).json()
        assert chart["series"] == [
            {"date": "2026-10-20", "total": 0},
            {"date": "2026-10-21", "total": 12},
        ]

    async def test_forecast_unavailable(self, client):
        response = await client.get("/stats/forecast")
        assert response.json() == {
            "available": False,
            "predicted_next": None,
            "confidence": None,
            "based_on": None,
            "moving_average_7": None,
            "trend": None,
            "volatility": None,
        }

    async def test_command(self, client):
        response = await client.post("/commands", json={"text": "!today"})
        assert response.json() == {"command": "today", "ok": True, "text": "Today: 0 Robux"}

    async def test_empty_command_rejected(self, client):
        response = await client.post("/commands", json={"text": ""})
        assert response.status_code == 422

    async def test_query_failure_is_500(self, app, client):
        class Broken(QueryService):
            async def dashboard(self):
                raise RuntimeError("boom")

        app.state.query_service = Broken()
        response = await client.get("/dashboard")

        assert response.status_code == 500
        assert response.json() == {"detail": "Query failed"}


@pytest.mark.asyncio
class TestSchedulerRoutes:
    async def test_manual_poll(self, client, notifier):
        response = await client.post("/poll", params={"group_id": 1})

        assert response.status_code == 200
        runs = response.json()["runs"]
        assert runs[0]["new"] == 1
        assert [a.id_hash for a in notifier.sales] == ["h1"]

    async def test_poll_unknown_group(self, client):
        response = await client.post("/poll", params={"group_id": 99})
        assert response.status_code == 404

    async def test_manual_aggregate(self, client):
        response = await client.post("/aggregate")
        assert response.status_code == 200
        assert response.json()["status"] == "insufficient_data"

    async def test_status(self, client):
        response = await client.get("/status")
        assert response.status_code == 200
        assert response.json()["poller"]["group_ids"] == [1, 2]

    async def test_missing_scheduler_is_503(self, app, client):
        del app.state.scheduler
        response = await client.get("/status")
        assert response.status_code == 503
