"""
HTTP clients for the remote meal-plan and shopping-list APIs.

Thin wrappers over httpx.AsyncClient. Every failure is classified into the
mealcart.errors taxonomy before it leaves this module, so callers decide
between retry, conflict handling and surfacing without touching httpx.
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from mealcart.data.models import DAYS_OF_WEEK, MealPlan, MealSlot, Recipe, parse_date, parse_datetime
from mealcart.errors import NotFoundError, RemoteError, classify_http_error, error_for_status
from mealcart.services.retry import RetryPolicy, calculate_retry_delay

logger = logging.getLogger(__name__)

# The API numbers days like JavaScript's Date.getDay(): 0 = Sunday
BACKEND_DAY_INDEX = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}
DAY_FROM_BACKEND_INDEX = {index: day for day, index in BACKEND_DAY_INDEX.items()}


class SyncResponse(BaseModel):
    """Body returned by the shopping-list sync endpoints."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = True
    id: Optional[str] = None
    server_version: Optional[int] = Field(default=None, alias="serverVersion")
    message: Optional[str] = None


# =============================================================================
# Meal plan payload mapping
# =============================================================================

def meal_plan_to_payload(plan: MealPlan) -> Dict[str, Any]:
    """Convert a MealPlan into the API's flat meals array."""
    meals = []
    for slot_day in DAYS_OF_WEEK:
        for meal_type, slot in plan.meals.get(slot_day, {}).items():
            meals.append({
                "id": slot.id,
                "dayOfWeek": BACKEND_DAY_INDEX[slot_day],
                "mealType": meal_type,
                "recipeId": slot.recipe_id,
                "recipe": slot.recipe.to_dict(),
                "servings": slot.servings,
                "manualServingOverride": slot.manual_serving_override,
                "scheduledFor": slot.scheduled_for.isoformat(),
                "notes": slot.notes,
            })
    return {
        "id": plan.id,
        "userId": plan.user_id,
        "weekStartDate": plan.week_start_date.isoformat(),
        "meals": meals,
        "createdAt": plan.created_at.isoformat(),
        "updatedAt": plan.updated_at.isoformat(),
    }


def meal_plan_from_payload(data: Dict[str, Any]) -> MealPlan:
    """Convert an API meal plan (meals array, 0 = Sunday) back into a MealPlan."""
    week_start = parse_date(data["weekStartDate"])
    meals: Dict[str, Dict[str, MealSlot]] = {day: {} for day in DAYS_OF_WEEK}
    for meal in data.get("meals", []):
        day = DAY_FROM_BACKEND_INDEX.get(int(meal["dayOfWeek"]))
        if day is None:
            logger.warning(f"[REMOTE] ignoring meal with dayOfWeek={meal.get('dayOfWeek')}")
            continue
        recipe = Recipe.from_dict(meal["recipe"])
        scheduled_for = meal.get("scheduledFor")
        meals[day][meal["mealType"]] = MealSlot(
            id=str(meal.get("id") or f"{day}-{meal['mealType']}"),
            recipe_id=str(meal.get("recipeId") or recipe.id),
            recipe=recipe,
            servings=int(meal.get("servings") or recipe.servings),
            scheduled_for=parse_date(scheduled_for) if scheduled_for
            else week_start + timedelta(days=DAYS_OF_WEEK.index(day)),
            meal_type=meal["mealType"],
            manual_serving_override=bool(meal.get("manualServingOverride", False)),
            notes=meal.get("notes"),
        )

    kwargs = {}
    if data.get("createdAt"):
        kwargs["created_at"] = parse_datetime(data["createdAt"])
    if data.get("updatedAt"):
        kwargs["updated_at"] = parse_datetime(data["updatedAt"])
    return MealPlan(
        id=str(data["id"]),
        user_id=str(data["userId"]),
        week_start_date=week_start,
        meals=meals,
        **kwargs,
    )


# =============================================================================
# Clients
# =============================================================================

class RemoteApiClient:
    """
    Shared request plumbing.

    Args:
        base_url: API root, e.g. "https://api.example.com"
        read_timeout: Seconds allowed for GET requests
        write_timeout: Seconds allowed for POST/PUT/DELETE requests
        client: Preconfigured httpx.AsyncClient (tests pass one with a MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        read_timeout: float = 10.0,
        write_timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._client = client or httpx.AsyncClient(base_url=self.base_url)
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.AsyncClient] = None):
        return cls(
            base_url=settings.api_base_url,
            read_timeout=settings.read_timeout,
            write_timeout=settings.write_timeout,
            client=client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request; raise a classified RemoteError on any failure."""
        timeout = self.read_timeout if method == "GET" else self.write_timeout
        try:
            response = await self._client.request(method, path, timeout=timeout, **kwargs)
        except httpx.HTTPError as e:
            raise classify_http_error(e) from e

        if response.status_code >= 400:
            raise error_for_status(
                response.status_code,
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
            )
        return response

    async def ping(self) -> bool:
        """True if the API answers its health check."""
        try:
            await self._request("GET", "/api/health")
            return True
        except RemoteError as e:
            logger.debug(f"[REMOTE] health check failed: {e}")
            return False


class RemoteShoppingListClient(RemoteApiClient):
    """Shopping-list sync endpoints."""

    async def create(self, list_id: str, payload: Dict[str, Any]) -> SyncResponse:
        response = await self._request(
            "POST", "/api/shopping-lists/sync", json={"id": list_id, "data": payload}
        )
        return self._parse_sync_response(response)

    async def update(self, list_id: str, payload: Dict[str, Any], local_version: int) -> SyncResponse:
        """Raises SyncConflictError when the server has a newer version."""
        response = await self._request(
            "PUT",
            f"/api/shopping-lists/sync/{list_id}",
            json={"data": payload, "localVersion": local_version},
        )
        return self._parse_sync_response(response)

    async def delete(self, list_id: str) -> SyncResponse:
        """Deleting something the server never had counts as success."""
        try:
            response = await self._request("DELETE", f"/api/shopping-lists/sync/{list_id}")
        except NotFoundError:
            logger.info(f"[REMOTE] list {list_id} already gone on server")
            return SyncResponse(success=True, id=list_id)
        return self._parse_sync_response(response)

    async def generate_from_meal_plan(self, meal_plan_id: str) -> Dict[str, Any]:
        """Ask the server to build a shopping list; returns category -> item dicts."""
        response = await self._request(
            "POST", "/api/shopping-lists/generate", json={"mealPlanId": meal_plan_id}
        )
        body = response.json()
        return body.get("shoppingList", body)

    async def save(self, list_id: str, shopping_list: Dict[str, Any]) -> SyncResponse:
        response = await self._request(
            "POST", "/api/shopping-lists", json={"id": list_id, "shoppingList": shopping_list}
        )
        return self._parse_sync_response(response)

    @staticmethod
    def _parse_sync_response(response: httpx.Response) -> SyncResponse:
        if not response.content:
            return SyncResponse()
        return SyncResponse.model_validate(response.json())


class RemoteMealPlanClient(RemoteApiClient):
    """
    Meal-plan endpoints keyed by (user, week).

    Retryable failures (timeouts, 408/429/5xx) are retried here with backoff;
    409 and 404 are raised immediately for the coordinator to handle.
    """

    def __init__(self, *args, retry_policy: Optional[RetryPolicy] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.retry_policy = retry_policy or RetryPolicy(max_retries=3, base_delay=1.0, max_delay=5.0)

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.AsyncClient] = None):
        return cls(
            base_url=settings.api_base_url,
            read_timeout=settings.read_timeout,
            write_timeout=settings.write_timeout,
            client=client,
            retry_policy=RetryPolicy.for_meal_plans(settings),
        )

    async def _request_with_retry(self, method: str, path: str, **kwargs) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return await self._request(method, path, **kwargs)
            except RemoteError as e:
                if not e.retryable or attempt >= self.retry_policy.max_retries:
                    raise
                delay = calculate_retry_delay(attempt, self.retry_policy)
                logger.warning(
                    f"[REMOTE] {method} {path} failed ({e.message}); "
                    f"retry {attempt + 1}/{self.retry_policy.max_retries} in {delay:.2f}s"
                )
                attempt += 1
                await asyncio.sleep(delay)

    async def get_meal_plan(self, user_id: str, week_start: date) -> MealPlan:
        """Raises NotFoundError if the user has no plan for that week."""
        response = await self._request_with_retry(
            "GET", "/api/meal-plans", params={"userId": user_id, "weekStart": week_start.isoformat()}
        )
        body = response.json()
        return meal_plan_from_payload(body.get("mealPlan", body))

    async def create_meal_plan(self, plan: MealPlan) -> MealPlan:
        response = await self._request_with_retry("POST", "/api/meal-plans", json=meal_plan_to_payload(plan))
        body = response.json()
        return meal_plan_from_payload(body.get("mealPlan", body))

    async def update_meal_plan(self, plan: MealPlan) -> MealPlan:
        response = await self._request_with_retry(
            "PUT", f"/api/meal-plans/{plan.id}", json=meal_plan_to_payload(plan)
        )
        body = response.json()
        return meal_plan_from_payload(body.get("mealPlan", body))
