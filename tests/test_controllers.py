"""Tests for the /sla router, with the service wired to in-memory fakes."""

from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from slawatch.config import Priority, Category
from slawatch.sla.application import SLAService
from slawatch.sla.interfaces import sla_router
from slawatch.sla.interfaces.controllers import get_sla_service

from tests.conftest import T0, FixedClock, InMemoryTicketStore, make_ticket


@pytest.fixture
def store():
    return InMemoryTicketStore([
        make_ticket(1, title="Mail relay down", sla_target_date=T0 + timedelta(minutes=240)),
        make_ticket(2, priority=Priority.LOW, sla_target_date=T0 + timedelta(minutes=2880)),
        make_ticket(3, priority=Priority.EMERGENCY, category=Category.CHANGE),
    ])


@pytest_asyncio.fixture
async def client(store, policy_table):
    clock = FixedClock(T0 + timedelta(minutes=230))
    app = FastAPI()
    app.include_router(sla_router)
    app.dependency_overrides[get_sla_service] = lambda: SLAService(store, policy_table, clock=clock)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestTicketEndpoints:
    @pytest.mark.asyncio
    async def test_get_ticket_sla(self, client):
        response = await client.get("/sla/tickets/1")

        assert response.status_code == 200
        body = response.json()
        assert body["ticket_id"] == 1
        assert body["state"] == "imminent"
        assert body["is_imminent"] is True
        assert body["remaining_minutes"] == 10
        assert body["countdown"] == "10m left"
        assert body["assignee"] == "Unassigned"

    @pytest.mark.asyncio
    async def test_get_missing_ticket_is_404(self, client):
        response = await client.get("/sla/tickets/999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_recalculate_untracked_ticket(self, client, store):
        response = await client.post("/sla/tickets/3/recalculate")

        assert response.status_code == 200
        assert response.json()["sla_target_date"] is None
        assert response.json()["state"] == "on_track"
        assert store.saved == []

    @pytest.mark.asyncio
    async def test_recalculate_after_priority_change(self, client, store):
        store.tickets[2].priority = Priority.CRITICAL

        response = await client.post("/sla/tickets/2/recalculate")

        assert response.status_code == 200
        assert response.json()["state"] == "imminent"

    @pytest.mark.asyncio
    async def test_recalculate_missing_ticket_is_404(self, client):
        response = await client.post("/sla/tickets/999/recalculate")
        assert response.status_code == 404


class TestReportEndpoints:
    @pytest.mark.asyncio
    async def test_imminent(self, client):
        response = await client.get("/sla/imminent")

        assert response.status_code == 200
        body = response.json()
        assert body["total_count"] == 1
        assert body["tickets"][0]["ticket_id"] == 1

    @pytest.mark.asyncio
    async def test_compliance(self, client):
        response = await client.get("/sla/compliance")

        assert response.status_code == 200
        assert response.json() == {
            "total_tickets": 3,
            "tracked_tickets": 2,
            "breached_tickets": 0,
            "compliance_percentage": 100.0,
        }
