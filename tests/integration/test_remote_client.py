"""
Tests for the HTTP clients and meal-plan payload mapping.
"""

import httpx
import pytest

from conftest import WEEK_START
from mealcart.errors import NetworkError, NotFoundError, RemoteError, SyncConflictError
from mealcart.meal_plan_ops import assign_meal
from mealcart.services.connection_monitor import ConnectionMonitor
from mealcart.services.remote_client import (
    RemoteMealPlanClient,
    RemoteShoppingListClient,
    meal_plan_from_payload,
    meal_plan_to_payload,
)


class TestPayloadMapping:
    def test_days_use_sunday_zero(self, empty_plan, pancakes):
        plan = assign_meal(empty_plan, "sunday", "dinner", pancakes, household_size=2)
        plan = assign_meal(plan, "monday", "lunch", pancakes, household_size=2)

        payload = meal_plan_to_payload(plan)

        assert payload["weekStartDate"] == "2025-10-27"
        assert [(m["dayOfWeek"], m["mealType"]) for m in payload["meals"]] == [(1, "lunch"), (0, "dinner")]

    def test_round_trip(self, sample_plan):
        assert meal_plan_from_payload(meal_plan_to_payload(sample_plan)) == sample_plan

    def test_minimal_server_payload(self, pancakes):
        plan = meal_plan_from_payload({
            "id": 42,
            "userId": "user-1",
            "weekStartDate": "2025-10-27T00:00:00.000Z",
            "meals": [
                {"dayOfWeek": 3, "mealType": "dinner", "recipe": pancakes.to_dict()},
                {"dayOfWeek": 9, "mealType": "dinner", "recipe": pancakes.to_dict()},
            ],
        })

        assert plan.id == "42"
        slot = plan.get_slot("wednesday", "dinner")
        assert slot.scheduled_for == WEEK_START.replace(day=29)
        assert slot.servings == 2
        assert not slot.manual_serving_override
        assert len(plan.iter_slots()) == 1


@pytest.mark.asyncio
class TestShoppingListClient:
    async def test_create_and_update_bodies(self, shopping_client, fake_server):
        fake_server.queue(200, {"success": True, "id": "list-1", "serverVersion": 2})

        response = await shopping_client.create("list-1", {"items": []})
        await shopping_client.update("list-1", {"items": []}, local_version=3)

        assert response.server_version == 2
        assert fake_server.request_json(0) == {"id": "list-1", "data": {"items": []}}
        assert fake_server.request_json(1) == {"data": {"items": []}, "localVersion": 3}

    async def test_conflict(self, shopping_client, fake_server):
        fake_server.queue(409, {"error": "version mismatch"})
        with pytest.raises(SyncConflictError):
            await shopping_client.update("list-1", {}, local_version=1)

    async def test_delete_missing_is_success(self, shopping_client, fake_server):
        fake_server.queue(404)
        response = await shopping_client.delete("list-1")
        assert response.success

    async def test_transport_failure_is_network_error(self, shopping_client, fake_server):
        fake_server.queue_error(httpx.ReadTimeout)
        with pytest.raises(NetworkError) as exc:
            await shopping_client.create("list-1", {})
        assert exc.value.retryable

    async def test_generate_from_meal_plan(self, shopping_client, fake_server):
        fake_server.queue(200, {"shoppingList": {"Produce": [{"name": "onion"}]}})
        result = await shopping_client.generate_from_meal_plan("plan-1")
        assert result == {"Produce": [{"name": "onion"}]}
        assert fake_server.request_json(0) == {"mealPlanId": "plan-1"}

    async def test_ping(self, shopping_client, fake_server):
        assert await shopping_client.ping()
        fake_server.queue(503)
        assert not await shopping_client.ping()
        assert fake_server.requests[0].url.path == "/api/health"


@pytest.mark.asyncio
class TestMealPlanClient:
    async def test_retries_transient_failures(self, meal_plan_client, fake_server, sample_plan):
        fake_server.queue(503)
        fake_server.queue_error()
        fake_server.queue(200, {"mealPlan": meal_plan_to_payload(sample_plan)})

        plan = await meal_plan_client.get_meal_plan("user-1", WEEK_START)

        assert plan == sample_plan
        assert len(fake_server.requests) == 3

    async def test_not_found_is_not_retried(self, meal_plan_client, fake_server):
        fake_server.queue(404)
        with pytest.raises(NotFoundError):
            await meal_plan_client.get_meal_plan("user-1", WEEK_START)
        assert len(fake_server.requests) == 1

    async def test_gives_up_after_max_retries(self, meal_plan_client, fake_server, sample_plan):
        fake_server.default = (502, {})
        with pytest.raises(RemoteError):
            await meal_plan_client.update_meal_plan(sample_plan)
        assert len(fake_server.requests) == 4

    async def test_owned_client_is_closed(self):
        async with RemoteMealPlanClient("http://test/") as client:
            assert client.base_url == "http://test"
        assert client._client.is_closed


@pytest.mark.asyncio
class TestConnectionMonitor:
    async def test_listeners_fire_on_change_only(self):
        monitor = ConnectionMonitor()
        changes = []
        unsubscribe = monitor.add_listener(changes.append)

        monitor.set_online(True)
        monitor.set_online(False)
        monitor.set_online(False)
        unsubscribe()
        monitor.set_online(True)

        assert changes == [False]
        assert monitor.is_online

    async def test_probe(self, shopping_client, fake_server):
        fake_server.queue(503)
        monitor = ConnectionMonitor(probe=shopping_client.ping)

        assert not await monitor.check_connection()
        assert not monitor.is_online
        assert await monitor.check_connection()
        assert monitor.is_online

    async def test_failing_probe_means_offline(self):
        async def broken():
            raise RuntimeError("no network stack")

        monitor = ConnectionMonitor(probe=broken)
        assert not await monitor.check_connection()
