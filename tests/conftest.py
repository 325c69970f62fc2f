"""
Pytest configuration and shared fixtures.

Fixtures are reusable test setup that can be injected into tests.
"""

import asyncio
import json
import shutil
import tempfile
from datetime import date

import httpx
import pytest

from mealcart.data.database import LocalStore
from mealcart.data.models import (
    Ingredient,
    MealSlot,
    OfflineShoppingListEntry,
    OfflineShoppingListItem,
    Recipe,
    ShoppingListMetadata,
)
from mealcart.meal_plan_ops import assign_meal, empty_meal_plan
from mealcart.services.remote_client import RemoteMealPlanClient, RemoteShoppingListClient
from mealcart.services.retry import RetryPolicy

WEEK_START = date(2025, 10, 27)  # a Monday

# Retries without waiting
NO_WAIT_POLICY = RetryPolicy(max_retries=3, base_delay=0.0, max_delay=0.0, jitter_ratio=0.0)


class FakeServer:
    """
    Scripted HTTP backend for httpx.MockTransport.

    Queued responses are returned in order; once the queue is empty every
    request gets ``default``. queue_error() simulates a
    transport failure.
    """

    def __init__(self, default=(200, {"success": True})):
        self.default = default
        self.responses = []
        self.requests = []

    def queue(self, status, body=None):
        self.responses.append((status, body))

    def queue_error(self, error_cls=httpx.ConnectError):
        self.responses.append((error_cls, None))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0) if self.responses else self.default
        if isinstance(status, type) and issubclass(status, Exception):
            raise status("simulated failure", request=request)
        if callable(body):
            body = body(request)
        return httpx.Response(status, json=body if body is not None else {})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), base_url="http://test")

    def request_json(self, index: int):
        return json.loads(self.requests[index].content)


async def wait_for(predicate, timeout: float = 2.0):
    """Yield to the event loop until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def temp_db_dir():
    """
    Create a temporary database directory for testing.

    This fixture is automatically cleaned up after each test.
    """
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
def store(temp_db_dir):
    """
    Create a fresh LocalStore for each test.

    Usage in tests:
        def test_something(store):
            store.store_shopping_list(...)
    """
    return LocalStore(db_dir=temp_db_dir)


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def shopping_client(fake_server):
    return RemoteShoppingListClient("http://test", client=fake_server.client())


@pytest.fixture
def meal_plan_client(fake_server):
    return RemoteMealPlanClient("http://test", client=fake_server.client(), retry_policy=NO_WAIT_POLICY)


@pytest.fixture
def pancakes():
    """Serves 2."""
    return Recipe(
        id="r-pancakes",
        name="Buttermilk Pancakes",
        servings=2,
        ingredients=[
            Ingredient("flour", "2", "cups", "Pantry"),
            Ingredient("milk", "1", "cup", "Dairy"),
            Ingredient("egg", "1", "", "Dairy"),
            Ingredient("sugar", "1 1/2", "tbsp", "Pantry"),
        ],
    )


@pytest.fixture
def mac_and_cheese():
    """Serves 4."""
    return Recipe(
        id="r-mac",
        name="Mac and Cheese",
        servings=4,
        ingredients=[
            Ingredient("pasta", "1", "pound", "Grains"),
            Ingredient("milk", "2", "cups", "Dairy"),
            Ingredient("cheddar cheese", "8", "oz", "Dairy"),
            Ingredient("salt", "", "", "Pantry"),
        ],
    )


@pytest.fixture
def empty_plan():
    return empty_meal_plan("user-1", WEEK_START, plan_id="plan-1")


@pytest.fixture
def sample_plan(empty_plan, pancakes, mac_and_cheese):
    """Pancakes Monday breakfast and mac and cheese Tuesday dinner, household of 4."""
    plan = assign_meal(empty_plan, "monday", "breakfast", pancakes, household_size=4)
    return assign_meal(plan, "tuesday", "dinner", mac_and_cheese, household_size=4)


def make_entry(list_id="list-1", meal_plan_id="plan-1", week="2025-10-27", items=None, **metadata):
    """Build an OfflineShoppingListEntry with one Dairy item unless items are given."""
    if items is None:
        items = {
            "Dairy & Eggs": [
                OfflineShoppingListItem(
                    id=f"{list_id}-milk",
                    name="milk",
                    quantity="2",
                    unit="cup",
                    category="Dairy & Eggs",
                    recipes=["Buttermilk Pancakes"],
                ),
            ],
        }
    return OfflineShoppingListEntry(
        metadata=ShoppingListMetadata(id=list_id, meal_plan_id=meal_plan_id, week_start_date=week, **metadata),
        shopping_list=items,
    )


def make_slot(recipe: Recipe, servings: int, override: bool = False, day: date = WEEK_START,
              meal_type: str = "dinner") -> MealSlot:
    return MealSlot(
        id=f"slot-{recipe.id}-{meal_type}",
        recipe_id=recipe.id,
        recipe=recipe,
        servings=servings,
        scheduled_for=day,
        meal_type=meal_type,
        manual_serving_override=override,
    )
