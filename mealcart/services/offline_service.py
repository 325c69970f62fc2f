"""
Offline shopping-list service.

Front door for everything the shopping-list screens do with local data:
generating a list from a meal plan, persisting it on the device, ticking items
off, and queueing each change for the server. The store is synchronous, so
its calls run in the default executor.
"""

import asyncio
import functools
import logging
import time
import zlib
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional

from mealcart.data.database import LocalStore
from mealcart.data.models import (
    SYNC_PENDING,
    MealPlan,
    OfflineShoppingListEntry,
    OfflineShoppingListItem,
    ShoppingListItem,
    ShoppingListMetadata,
    StorageUsage,
    SyncStatus,
)
from mealcart.errors import ShoppingListNotFoundError
from mealcart.services.sync_queue import SyncQueueManager, SyncResult
from mealcart.shopping_list import ShoppingList, ShoppingListGenerator

logger = logging.getLogger(__name__)

OfflineShoppingList = Dict[str, List[OfflineShoppingListItem]]


@dataclass
class GeneratedShoppingList:
    shopping_list: ShoppingList
    offline_entry: Optional[OfflineShoppingListEntry] = None


def generate_item_id(item: ShoppingListItem) -> str:
    """item_<hash of name/unit/category>_<ms timestamp>"""
    base = f"{item.name}_{item.unit}_{item.category}".lower()
    return f"item_{zlib.crc32(base.encode('utf-8')):x}_{int(time.time() * 1000)}"


def convert_to_offline_shopping_list(shopping_list: ShoppingList) -> OfflineShoppingList:
    """Give every item an id and pending sync state."""
    now = datetime.now()
    return {
        category: [
            OfflineShoppingListItem(
                id=generate_item_id(item),
                name=item.name,
                quantity=item.quantity,
                unit=item.unit,
                category=item.category or category,
                recipes=list(item.recipes),
                checked=bool(item.checked),
                last_modified=now,
                sync_status=SYNC_PENDING,
            )
            for item in items
        ]
        for category, items in shopping_list.items()
    }


def convert_from_offline_shopping_list(offline_list: OfflineShoppingList) -> ShoppingList:
    return {
        category: [
            ShoppingListItem(
                name=item.name,
                quantity=item.quantity,
                unit=item.unit,
                category=category,
                recipes=list(item.recipes),
                checked=item.checked,
            )
            for item in items
        ]
        for category, items in offline_list.items()
    }


class OfflineShoppingListService:
    """
    Offline-first shopping lists.

    Args:
        store: Local durable store
        sync_queue: Queue that replays changes against the server; None disables syncing
        generator: Shopping list generator (a default one is created if omitted)
        enable_offline_storage: When False, lists are generated but never persisted
        enable_auto_sync: Queue a sync operation for every local change
        device_id: Override the store's persisted device id
    """

    def __init__(
        self,
        store: LocalStore,
        sync_queue: Optional[SyncQueueManager] = None,
        generator: Optional[ShoppingListGenerator] = None,
        enable_offline_storage: bool = True,
        enable_auto_sync: bool = True,
        device_id: Optional[str] = None,
    ):
        self.store = store
        self.sync_queue = sync_queue
        self.generator = generator or ShoppingListGenerator()
        self.enable_offline_storage = enable_offline_storage
        self.enable_auto_sync = enable_auto_sync
        self.device_id = device_id or None
        self._initialized = False

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    # =========================================================================
    # Setup
    # =========================================================================

    async def initialize(self) -> None:
        """Load the device id and tidy up duplicates left by earlier sessions."""
        if self._initialized:
            logger.debug("[OFFLINE] already initialized")
            return

        logger.info("[OFFLINE] initializing offline storage")
        if self.device_id is None:
            self.device_id = await self._run(self.store.get_device_id)
        await self._run(self.store.remove_duplicates)
        if self.store.memory_only:
            logger.warning("[OFFLINE] local database unavailable; lists will not survive a restart")
        self._initialized = True

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    def configure(
        self,
        enable_offline_storage: Optional[bool] = None,
        enable_auto_sync: Optional[bool] = None,
        device_id: Optional[str] = None,
    ) -> None:
        """Change settings at runtime. An empty device_id reverts to the store's id."""
        if enable_offline_storage is not None:
            self.enable_offline_storage = enable_offline_storage
        if enable_auto_sync is not None:
            self.enable_auto_sync = enable_auto_sync
        if device_id is not None:
            self.device_id = device_id or None
            if self.device_id is None:
                self._initialized = False

    def is_initialized(self) -> bool:
        return self._initialized

    async def _queue(self, op_type: str, list_id: str, payload: dict) -> None:
        if self.sync_queue is None or not self.enable_auto_sync:
            return
        await self.sync_queue.add_to_sync_queue(op_type, list_id, payload)

    def _storage_disabled(self, action: str) -> bool:
        if self.enable_offline_storage:
            return False
        logger.warning(f"[OFFLINE] storage disabled, ignoring {action}")
        return True

    # =========================================================================
    # Lists
    # =========================================================================

    async def store_offline_shopping_list(
        self,
        shopping_list: ShoppingList,
        metadata: ShoppingListMetadata,
    ) -> Optional[str]:
        """
        Persist a freshly generated list and queue its creation on the server.

        Sync state, device id and version in ``metadata`` are overwritten.

        Returns:
            The stored id (an existing list's id if the content was a duplicate),
            or None when offline storage is disabled.
        """
        await self._ensure_initialized()
        if not self.enable_offline_storage:
            logger.info("[OFFLINE] storage disabled, not storing list")
            return None

        now = datetime.now()
        metadata.last_modified = now
        metadata.sync_status = SYNC_PENDING
        metadata.device_id = self.device_id
        metadata.version = 1
        entry = OfflineShoppingListEntry(
            metadata=metadata,
            shopping_list=convert_to_offline_shopping_list(shopping_list),
        )

        stored_id = await self._run(self.store.store_shopping_list, entry)
        if stored_id == entry.id:
            await self._queue("create", entry.id, entry.to_dict())
            logger.info(f"[OFFLINE] stored list {entry.id} ({entry.item_count()} items)")
        return stored_id

    async def get_offline_shopping_list(self, list_id: str) -> Optional[OfflineShoppingListEntry]:
        await self._ensure_initialized()
        if not self.enable_offline_storage:
            return None
        return await self._run(self.store.get_shopping_list, list_id)

    async def get_all_offline_shopping_lists(self) -> List[OfflineShoppingListEntry]:
        await self._ensure_initialized()
        if not self.enable_offline_storage:
            return []
        return await self._run(self.store.get_all_shopping_lists)

    async def update_offline_shopping_list(
        self,
        list_id: str,
        shopping_list: Optional[OfflineShoppingList] = None,
        **metadata_changes,
    ) -> Optional[OfflineShoppingListEntry]:
        """
        Replace a list's items and/or metadata fields.

        Returns None without changing anything when offline storage is disabled.

        Raises:
            ShoppingListNotFoundError: If the list isn't stored on this device.
        """
        await self._ensure_initialized()
        if self._storage_disabled(f"update of list {list_id}"):
            return None
        entry = await self._run(
            self.store.update_shopping_list, list_id, shopping_list, **metadata_changes
        )
        if entry is None:
            raise ShoppingListNotFoundError(f"Shopping list {list_id} not found")
        await self._queue("update", list_id, entry.to_dict())
        return entry

    async def delete_offline_shopping_list(self, list_id: str) -> bool:
        await self._ensure_initialized()
        if not self.enable_offline_storage:
            return False
        deleted = await self._run(self.store.delete_shopping_list, list_id)
        await self._queue("delete", list_id, {"id": list_id})
        return deleted

    async def update_offline_item_status(
        self, list_id: str, category: str, item_id: str, checked: bool
    ) -> Optional[OfflineShoppingListEntry]:
        """
        Tick an item on or off.

        Returns None without changing anything when offline storage is disabled.

        Raises:
            ShoppingListNotFoundError: If the list, category or item is missing.
        """
        await self._ensure_initialized()
        if self._storage_disabled(f"item update on list {list_id}"):
            return None

        def mark(entry: OfflineShoppingListEntry) -> None:
            if category not in entry.shopping_list:
                raise ShoppingListNotFoundError(f"Category {category} not found in shopping list {list_id}")
            item = entry.find_item(category, item_id)
            if item is None:
                raise ShoppingListNotFoundError(f"Item {item_id} not found in category {category}")
            item.checked = checked
            item.last_modified = datetime.now()
            item.sync_status = SYNC_PENDING

        entry = await self._run(self.store.update_shopping_list, list_id, mutate=mark)
        if entry is None:
            raise ShoppingListNotFoundError(f"Shopping list {list_id} not found")
        await self._queue("update", list_id, entry.to_dict())
        logger.debug(f"[OFFLINE] item {item_id} {'checked' if checked else 'unchecked'}")
        return entry

    async def get_offline_shopping_lists_for_week(self, week_start) -> List[OfflineShoppingListEntry]:
        week = week_start.isoformat() if isinstance(week_start, date) else str(week_start)
        entries = await self.get_all_offline_shopping_lists()
        return [e for e in entries if e.metadata.week_start_date == week]

    async def get_offline_shopping_lists_by_meal_plan(self, meal_plan_id: str) -> List[OfflineShoppingListEntry]:
        entries = await self.get_all_offline_shopping_lists()
        return [e for e in entries if e.metadata.meal_plan_id == meal_plan_id]

    async def generate_and_store_from_meal_plan(
        self,
        meal_plan: MealPlan,
        household_size: int,
        list_id: Optional[str] = None,
    ) -> GeneratedShoppingList:
        """Generate a consolidated list for the plan and keep a copy on the device."""
        shopping_list = self.generator.generate_from_meal_plan(meal_plan, household_size)
        if not self.enable_offline_storage:
            return GeneratedShoppingList(shopping_list=shopping_list)

        metadata = ShoppingListMetadata(
            id=list_id or f"shopping_list_{meal_plan.id}_{int(time.time() * 1000)}",
            meal_plan_id=meal_plan.id,
            week_start_date=meal_plan.week_start_date.isoformat(),
        )
        stored_id = await self.store_offline_shopping_list(shopping_list, metadata)
        offline_entry = await self.get_offline_shopping_list(stored_id) if stored_id else None
        return GeneratedShoppingList(shopping_list=shopping_list, offline_entry=offline_entry)

    # =========================================================================
    # Sync and housekeeping
    # =========================================================================

    async def trigger_manual_sync(self) -> SyncResult:
        if self.sync_queue is None or not self.enable_offline_storage:
            return SyncResult(success=False, errors=["Offline sync is disabled"])
        result = await self.sync_queue.trigger_manual_sync()
        if result.conflicts:
            logger.warning(f"[OFFLINE] {result.conflicts} conflict(s) during manual sync")
        return result

    async def get_sync_status(self) -> SyncStatus:
        if self.sync_queue is None or not self.enable_offline_storage:
            return SyncStatus(errors=["Offline sync is disabled"])
        return await self.sync_queue.get_sync_status()

    async def get_pending_sync_count(self) -> int:
        return (await self.get_sync_status()).pending_operations

    async def get_storage_usage(self) -> StorageUsage:
        """Current usage; runs LRU and age-based cleanup first when above the high-water mark."""
        if not self.enable_offline_storage:
            return StorageUsage(used=0, available=0, percentage=0.0)
        if await self._run(self.store.needs_cleanup):
            logger.info("[OFFLINE] storage above high-water mark, cleaning up")
            await self._run(self.store.perform_lru_cleanup)
            await self._run(self.store.cleanup_old_data)
        return await self._run(self.store.get_storage_usage)

    async def clear_offline_data(self) -> None:
        """Remove every stored list and queued operation. The device id survives."""
        if not self.enable_offline_storage:
            return
        await self._run(self.store.clear_all)
        if self.sync_queue is not None:
            await self.sync_queue.reset()
        logger.info("[OFFLINE] cleared offline data")

    async def reset(self) -> None:
        """Back to a first-run state, device id included."""
        if self.sync_queue is not None:
            await self.sync_queue.reset()
        await self._run(self.store.reset)
        self.device_id = None
        self._initialized = False
