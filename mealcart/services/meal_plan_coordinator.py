"""
Optimistic meal-plan updates.

Every change follows the same steps:

    snapshot -> apply locally (visible at once) -> send to server
        -> success: adopt the server's copy
        -> 409: adopt the server's copy, raise MealPlanConflictError
        -> 404: create the plan, re-apply the change, send again
        -> anything else: restore the snapshot, raise MealPlanError

Changes to one plan run one at a time under a per-plan asyncio.Lock, so a
mutation always starts from the result of the one before it.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Dict, List, Optional

from mealcart import meal_plan_ops
from mealcart.data.database import LocalStore
from mealcart.data.models import MealPlan, Recipe
from mealcart.errors import MealPlanConflictError, MealPlanError, NotFoundError, RemoteError, SyncConflictError
from mealcart.history import MealPlanHistory
from mealcart.preferences import validate_household_size
from mealcart.services.remote_client import RemoteMealPlanClient

logger = logging.getLogger(__name__)

PlanListener = Callable[[MealPlan], None]


@dataclass(frozen=True)
class PlanMutation:
    """A named, pure change to a plan."""
    action: str
    apply: Callable[[MealPlan], MealPlan]


@dataclass(frozen=True)
class MutationRecord:
    """What a completed mutation started from and ended with."""
    pre_state: MealPlan
    mutation: PlanMutation
    result_state: MealPlan


class MealPlanCoordinator:
    """
    Holds the current meal plans and applies mutations optimistically.

    Args:
        remote: Meal-plan API client (retries transient failures itself)
        store: Local store for offline snapshots of each plan; optional
        history: Undo/redo stack for the most recently loaded plan; optional
        household_size: Default servings for new and non-overridden slots
    """

    def __init__(
        self,
        remote: RemoteMealPlanClient,
        store: Optional[LocalStore] = None,
        history: Optional[MealPlanHistory] = None,
        household_size: int = 2,
    ):
        self.remote = remote
        self.store = store
        self.history = history
        self.household_size = validate_household_size(household_size)
        self.last_mutation: Optional[MutationRecord] = None
        self._plans: Dict[str, MealPlan] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._listeners: List[PlanListener] = []
        self._history_plan_id: Optional[str] = None

    # =========================================================================
    # State
    # =========================================================================

    def get_plan(self, plan_id: str) -> Optional[MealPlan]:
        return self._plans.get(plan_id)

    def add_listener(self, listener: PlanListener) -> Callable[[], None]:
        """Call listener(plan) on every visible state change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, plan: MealPlan, replaces: Optional[str] = None) -> None:
        if replaces and replaces != plan.id:
            self._plans.pop(replaces, None)
        self._plans[plan.id] = plan
        for listener in list(self._listeners):
            try:
                listener(plan)
            except Exception as e:
                logger.error(f"[OPTIMISTIC] listener failed: {e}", exc_info=True)

    async def _persist(self, plan: MealPlan) -> None:
        if self.store is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, functools.partial(self.store.save_meal_plan, plan))

    def _lock_for(self, plan_id: str) -> asyncio.Lock:
        if plan_id not in self._locks:
            self._locks[plan_id] = asyncio.Lock()
        return self._locks[plan_id]

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_plan(self, user_id: str, week_start: date) -> MealPlan:
        """
        Fetch a user's plan for the week, creating an empty one if the server has none.

        Falls back to the locally stored copy when the server can't be reached.

        Raises:
            MealPlanError: If the server fails and no local copy exists.
        """
        week_start = meal_plan_ops.week_start_for(week_start)
        try:
            plan = await self.remote.get_meal_plan(user_id, week_start)
        except NotFoundError:
            logger.info(f"[OPTIMISTIC] no plan for {user_id} week {week_start}, creating one")
            plan = await self._create_remote(meal_plan_ops.empty_meal_plan(user_id, week_start))
        except RemoteError as e:
            cached = None
            if self.store is not None:
                loop = asyncio.get_running_loop()
                cached = await loop.run_in_executor(
                    None, functools.partial(self.store.get_meal_plan_for_week, user_id, week_start)
                )
            if cached is None:
                raise MealPlanError(
                    f"could not load meal plan for {user_id} week {week_start}: {e.message}",
                    original_error=e,
                    status_code=e.status_code,
                    retryable=e.retryable,
                ) from e
            logger.warning(f"[OPTIMISTIC] server unavailable ({e.message}), using local copy of {cached.id}")
            plan = cached

        self._set_state(plan)
        await self._persist(plan)
        if self.history is not None and self._history_plan_id != plan.id:
            self.history.clear_history()
            self.history.initialize_history(plan)
            self._history_plan_id = plan.id
        return plan

    async def _create_remote(self, plan: MealPlan) -> MealPlan:
        try:
            return await self.remote.create_meal_plan(plan)
        except RemoteError as e:
            raise MealPlanError(
                f"could not create meal plan {plan.id}: {e.message}",
                original_error=e,
                status_code=e.status_code,
                retryable=e.retryable,
            ) from e

    # =========================================================================
    # Mutations
    # =========================================================================

    async def mutate(self, plan_id: str, mutation: PlanMutation) -> MealPlan:
        """
        Apply a mutation optimistically and reconcile it with the server.

        Raises:
            MealPlanConflictError: The server had a newer plan; local state now holds it.
            MealPlanError: The change was rolled back.
            ValidationError: The mutation itself rejected its input (nothing changed).
        """
        return await self._mutate(plan_id, mutation, record_history=True)

    async def _mutate(self, plan_id: str, mutation: PlanMutation, record_history: bool) -> MealPlan:
        async with self._lock_for(plan_id):
            pre_state = self._plans.get(plan_id)
            if pre_state is None:
                raise MealPlanError(f"meal plan {plan_id} is not loaded")

            optimistic = mutation.apply(pre_state)
            logger.debug(f"[OPTIMISTIC] {mutation.action} on {plan_id}")
            self._set_state(optimistic)

            try:
                saved = await self.remote.update_meal_plan(optimistic)
            except SyncConflictError as e:
                await self._adopt_server_copy(pre_state)
                raise MealPlanConflictError(
                    f"{mutation.action} on {plan_id} conflicted with a newer server version",
                    original_error=e,
                    status_code=409,
                ) from e
            except NotFoundError:
                saved = await self._recreate_and_apply(pre_state, mutation)
            except RemoteError as e:
                self._rollback(pre_state, mutation, e)
                raise MealPlanError(
                    f"{mutation.action} on {plan_id} failed: {e.message}",
                    original_error=e,
                    status_code=e.status_code,
                    retryable=e.retryable,
                ) from e

            self._set_state(saved, replaces=plan_id)
            await self._persist(saved)
            self.last_mutation = MutationRecord(pre_state=pre_state, mutation=mutation, result_state=saved)
            if record_history and self.history is not None:
                self.history.push_state(saved, mutation.action)
            logger.info(f"[OPTIMISTIC] {mutation.action} on {saved.id} confirmed")
            return saved

    async def _adopt_server_copy(self, pre_state: MealPlan) -> None:
        logger.warning(f"[OPTIMISTIC] conflict on {pre_state.id}, reloading server copy")
        try:
            server_plan = await self.remote.get_meal_plan(pre_state.user_id, pre_state.week_start_date)
        except RemoteError as e:
            logger.error(f"[OPTIMISTIC] could not reload {pre_state.id} after conflict: {e.message}")
            self._set_state(pre_state)
            return
        self._set_state(server_plan, replaces=pre_state.id)
        await self._persist(server_plan)

    async def _recreate_and_apply(self, pre_state: MealPlan, mutation: PlanMutation) -> MealPlan:
        logger.info(f"[OPTIMISTIC] {pre_state.id} missing on server, creating it and retrying")
        current_id = None
        try:
            created = await self.remote.create_meal_plan(pre_state)
            retried = mutation.apply(created)
            current_id = retried.id
            self._set_state(retried, replaces=pre_state.id)
            return await self.remote.update_meal_plan(retried)
        except RemoteError as e:
            self._rollback(pre_state, mutation, e, current_id=current_id)
            raise MealPlanError(
                f"{mutation.action} on {pre_state.id} failed after recreating the plan: {e.message}",
                original_error=e,
                status_code=e.status_code,
                retryable=e.retryable,
            ) from e

    def _rollback(
        self, pre_state: MealPlan, mutation: PlanMutation, error: RemoteError, current_id: Optional[str] = None
    ) -> None:
        logger.error(f"[OPTIMISTIC] {mutation.action} on {pre_state.id} failed ({error.message}), rolling back")
        if current_id and current_id != pre_state.id:
            self._plans.pop(current_id, None)
        self._set_state(pre_state)

    # =========================================================================
    # Convenience wrappers
    # =========================================================================

    async def assign_meal(
        self,
        plan_id: str,
        day: str,
        meal_type: str,
        recipe: Recipe,
        servings: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Add {recipe.name} to {day} {meal_type}",
            lambda plan: meal_plan_ops.assign_meal(
                plan, day, meal_type, recipe, self.household_size, servings=servings, notes=notes
            ),
        ))

    async def remove_meal(self, plan_id: str, day: str, meal_type: str) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Remove {day} {meal_type}",
            lambda plan: meal_plan_ops.remove_meal(plan, day, meal_type),
        ))

    async def clear_day(self, plan_id: str, day: str) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Clear {day}",
            lambda plan: meal_plan_ops.clear_day(plan, day),
        ))

    async def copy_meal(self, plan_id: str, from_day: str, from_meal: str, to_day: str, to_meal: str) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Copy {from_day} {from_meal} to {to_day} {to_meal}",
            lambda plan: meal_plan_ops.copy_meal(plan, from_day, from_meal, to_day, to_meal),
        ))

    async def duplicate_day(self, plan_id: str, from_day: str, to_day: str) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Duplicate {from_day} to {to_day}",
            lambda plan: meal_plan_ops.duplicate_day(plan, from_day, to_day),
        ))

    async def swap_meals(self, plan_id: str, day_a: str, meal_a: str, day_b: str, meal_b: str) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Swap {day_a} {meal_a} with {day_b} {meal_b}",
            lambda plan: meal_plan_ops.swap_meals(plan, day_a, meal_a, day_b, meal_b),
        ))

    async def update_servings(self, plan_id: str, day: str, meal_type: str, servings: int) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Set {day} {meal_type} to {servings} servings",
            lambda plan: meal_plan_ops.update_servings(plan, day, meal_type, servings),
        ))

    async def clear_serving_override(self, plan_id: str, day: str, meal_type: str) -> MealPlan:
        return await self.mutate(plan_id, PlanMutation(
            f"Reset {day} {meal_type} servings",
            lambda plan: meal_plan_ops.clear_serving_override(plan, day, meal_type, self.household_size),
        ))

    async def set_household_size(self, plan_id: str, household_size: int) -> MealPlan:
        """Change the household size and rescale every non-overridden slot."""
        validate_household_size(household_size)
        saved = await self.mutate(plan_id, PlanMutation(
            f"Household size {household_size}",
            lambda plan: meal_plan_ops.apply_household_size(plan, household_size),
        ))
        self.household_size = household_size
        return saved

    # =========================================================================
    # Undo / redo
    # =========================================================================

    async def undo(self, plan_id: str) -> Optional[MealPlan]:
        """Send the previous history state to the server. None if there is nothing to undo."""
        if self.history is None:
            return None
        previous = self.history.undo()
        if previous is None:
            return None
        try:
            return await self._mutate(plan_id, self._restore(previous, "Undo"), record_history=False)
        except MealPlanError:
            self.history.redo()
            raise

    async def redo(self, plan_id: str) -> Optional[MealPlan]:
        if self.history is None:
            return None
        following = self.history.redo()
        if following is None:
            return None
        try:
            return await self._mutate(plan_id, self._restore(following, "Redo"), record_history=False)
        except MealPlanError:
            self.history.undo()
            raise

    @staticmethod
    def _restore(snapshot: MealPlan, action: str) -> PlanMutation:
        return PlanMutation(action, lambda current: replace(snapshot, id=current.id))
