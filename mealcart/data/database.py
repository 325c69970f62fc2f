"""
Local durable store for mealcart.

Persists offline shopping lists, meal-plan snapshots, the sync queue and the
device id in a single SQLite database (mealcart.db). If SQLite becomes
unusable (disk full, read-only directory) the store logs the failure and keeps
working from in-memory tables, so callers never see a storage exception. A
full quota is different: the new list or plan that hit it is not written and
everything already stored stays in SQLite.

The store is the only writer of persisted records. It owns two invariants:
- duplicate suppression: content-identical shopping lists are stored once
- versioning: every accepted local update bumps the entry version by exactly 1
"""

import json
import logging
import random
import sqlite3
import string
import threading
import time
from contextlib import contextmanager
from dataclasses import fields
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from mealcart.data.models import (
    MealPlan,
    OfflineShoppingListEntry,
    ShoppingListMetadata,
    StorageUsage,
    SyncOperation,
    SYNC_CONFLICT,
    SYNC_PENDING,
    SYNC_STATUSES,
    SYNC_SYNCED,
)
from mealcart.errors import StorageError, StorageQuotaExceededError, ValidationError

logger = logging.getLogger(__name__)

DB_FILENAME = "mealcart.db"
EXPORT_FORMAT_VERSION = 1


def generate_device_id() -> str:
    """device_<ms timestamp>_<9 random chars>"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"device_{int(time.time() * 1000)}_{suffix}"


def _current_week_start(today: Optional[date] = None) -> date:
    today = today or date.today()
    return today - timedelta(days=today.weekday())


class SqliteBackend:
    """Row-level persistence in SQLite. Every method opens its own connection."""

    memory_only = False

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_database()

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_database(self):
        """Initialize database schema."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS shopping_lists (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    meal_plan_id TEXT,
                    week_start_date TEXT,
                    sync_status TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    last_modified TEXT NOT NULL,
                    entry_json TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_queue (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT UNIQUE NOT NULL,
                    shopping_list_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    operation_json TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS meal_plans (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    week_start_date TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    plan_json TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_lists_week ON shopping_lists(week_start_date)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_lists_plan ON shopping_lists(meal_plan_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_plans_week ON meal_plans(user_id, week_start_date)")

    # Shopping lists

    def list_entries(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT entry_json FROM shopping_lists ORDER BY seq").fetchall()
        return [json.loads(row["entry_json"]) for row in rows]

    def get_entry(self, list_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT entry_json FROM shopping_lists WHERE id = ?", (list_id,)
            ).fetchone()
        return json.loads(row["entry_json"]) if row else None

    def put_entry(self, entry: Dict[str, Any]) -> None:
        meta = entry["metadata"]
        values = (
            meta.get("meal_plan_id"),
            meta.get("week_start_date"),
            meta["sync_status"],
            meta["version"],
            meta["last_modified"],
            json.dumps(entry),
            meta["id"],
        )
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE shopping_lists
                SET meal_plan_id = ?, week_start_date = ?, sync_status = ?, version = ?,
                    last_modified = ?, entry_json = ?
                WHERE id = ?
                """,
                values,
            )
            if cursor.rowcount == 0:
                conn.execute(
                    """
                    INSERT INTO shopping_lists
                    (meal_plan_id, week_start_date, sync_status, version, last_modified, entry_json, id)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    values,
                )

    def delete_entry(self, list_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM shopping_lists WHERE id = ?", (list_id,))
            return cursor.rowcount > 0

    # Sync queue

    def list_operations(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT operation_json FROM sync_queue ORDER BY seq").fetchall()
        return [json.loads(row["operation_json"]) for row in rows]

    def put_operation(self, operation: Dict[str, Any]) -> None:
        values = (
            operation["shopping_list_id"],
            operation["type"],
            operation["status"],
            operation["timestamp"],
            json.dumps(operation),
            operation["id"],
        )
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sync_queue
                SET shopping_list_id = ?, type = ?, status = ?, timestamp = ?, operation_json = ?
                WHERE id = ?
                """,
                values,
            )
            if cursor.rowcount == 0:
                conn.execute(
                    """
                    INSERT INTO sync_queue (shopping_list_id, type, status, timestamp, operation_json, id)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    values,
                )

    def delete_operation(self, operation_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM sync_queue WHERE id = ?", (operation_id,))
            return cursor.rowcount > 0

    # Meal plans

    def get_plan(self, plan_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute("SELECT plan_json FROM meal_plans WHERE id = ?", (plan_id,)).fetchone()
        return json.loads(row["plan_json"]) if row else None

    def list_plans(self) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute("SELECT plan_json FROM meal_plans ORDER BY week_start_date").fetchall()
        return [json.loads(row["plan_json"]) for row in rows]

    def put_plan(self, plan: Dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO meal_plans (id, user_id, week_start_date, updated_at, plan_json)
                VALUES (?, ?, ?, ?, ?)
                """,
                (plan["id"], plan["user_id"], plan["week_start_date"], plan["updated_at"], json.dumps(plan)),
            )

    def delete_plan(self, plan_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM meal_plans WHERE id = ?", (plan_id,))
            return cursor.rowcount > 0

    # Metadata

    def get_meta(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM metadata WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute("INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value))

    def clear(self) -> None:
        with self._connect() as conn:
            for table in ("shopping_lists", "sync_queue", "meal_plans", "metadata"):
                conn.execute(f"DELETE FROM {table}")

    def used_bytes(self) -> int:
        """Bytes in live pages. Pages freed by DELETE don't count, though the file keeps its size."""
        with self._connect() as conn:
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            free_pages = conn.execute("PRAGMA freelist_count").fetchone()[0]
        return (page_count - free_pages) * page_size

    def integrity_check(self) -> str:
        with self._connect() as conn:
            return conn.execute("PRAGMA integrity_check").fetchone()[0]


class MemoryBackend:
    """Same interface as SqliteBackend, kept in process memory."""

    memory_only = True

    def __init__(self):
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.operations: Dict[str, Dict[str, Any]] = {}
        self.plans: Dict[str, Dict[str, Any]] = {}
        self.meta: Dict[str, str] = {}

    # Records are copied through JSON in and out, as the SQLite columns are

    @staticmethod
    def _copy(record):
        return json.loads(json.dumps(record)) if record is not None else None

    def list_entries(self):
        return [self._copy(e) for e in self.entries.values()]

    def get_entry(self, list_id):
        return self._copy(self.entries.get(list_id))

    def put_entry(self, entry):
        self.entries[entry["metadata"]["id"]] = self._copy(entry)

    def delete_entry(self, list_id):
        return self.entries.pop(list_id, None) is not None

    def list_operations(self):
        return [self._copy(op) for op in self.operations.values()]

    def put_operation(self, operation):
        self.operations[operation["id"]] = self._copy(operation)

    def delete_operation(self, operation_id):
        return self.operations.pop(operation_id, None) is not None

    def get_plan(self, plan_id):
        return self._copy(self.plans.get(plan_id))

    def list_plans(self):
        return [self._copy(p) for p in sorted(self.plans.values(), key=lambda p: p["week_start_date"])]

    def put_plan(self, plan):
        self.plans[plan["id"]] = self._copy(plan)

    def delete_plan(self, plan_id):
        return self.plans.pop(plan_id, None) is not None

    def get_meta(self, key):
        return self.meta.get(key)

    def set_meta(self, key, value):
        self.meta[key] = value

    def clear(self):
        self.entries.clear()
        self.operations.clear()
        self.plans.clear()
        self.meta.clear()

    def used_bytes(self):
        payload = [self.entries, self.operations, self.plans, self.meta]
        return len(json.dumps(payload).encode("utf-8"))

    def integrity_check(self):
        return "ok"


class LocalStore:
    """
    Durable store for shopping lists, meal plans and the sync queue.

    All public methods are synchronous and thread-safe. Async callers run them
    through an executor.
    """

    def __init__(
        self,
        db_dir: str = "data",
        quota_bytes: int = 50 * 1024 * 1024,
        high_water_percent: float = 80.0,
        max_stored_lists: int = 20,
    ):
        """
        Initialize the store.

        Args:
            db_dir: Directory for mealcart.db (created if missing)
            quota_bytes: Storage budget reported by get_storage_usage()
            high_water_percent: Usage above which needs_cleanup() is True
            max_stored_lists: Synced lists beyond this count are evicted oldest-first
        """
        self.db_dir = Path(db_dir)
        self.db_path = self.db_dir / DB_FILENAME
        self.quota_bytes = quota_bytes
        self.high_water_percent = high_water_percent
        self.max_stored_lists = max_stored_lists
        self._lock = threading.RLock()
        self._backend = None
        self.init()

    @classmethod
    def from_settings(cls, settings) -> "LocalStore":
        return cls(
            db_dir=settings.db_dir,
            quota_bytes=settings.storage_quota_bytes,
            high_water_percent=settings.storage_high_water_percent,
            max_stored_lists=settings.max_stored_lists,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self) -> None:
        """Open (or create) the SQLite database; fall back to memory on failure."""
        with self._lock:
            try:
                self.db_dir.mkdir(parents=True, exist_ok=True)
                self._backend = SqliteBackend(self.db_path)
                logger.info(f"[STORE] opened {self.db_path}")
            except (sqlite3.Error, OSError) as e:
                self._degrade("init", e)

    def reset(self) -> None:
        """Drop all persisted data, including the device id."""
        with self._lock:
            self._call("reset", lambda b: b.clear())
            logger.info("[STORE] reset")

    def is_available(self) -> bool:
        """False once the store has fallen back to memory-only mode."""
        return not self.memory_only

    @property
    def memory_only(self) -> bool:
        return self._backend is None or self._backend.memory_only

    def _degrade(self, operation: str, error: Exception) -> None:
        if self.memory_only and self._backend is not None:
            return
        storage_error = error if isinstance(error, StorageError) else StorageError(str(error))
        logger.error(
            f"[STORE] {operation} failed ({storage_error.code}: {error}); "
            f"continuing in memory-only mode"
        )
        self._backend = MemoryBackend()

    def _call(self, operation: str, fn: Callable, default=None):
        """
        Run fn(backend); on storage failure switch to memory and retry once.

        A full quota only drops the write that hit it. Data already in SQLite
        stays readable.
        """
        with self._lock:
            try:
                return fn(self._backend)
            except StorageQuotaExceededError as e:
                logger.warning(f"[STORE] {operation} skipped: {e}")
                return default
            except (sqlite3.Error, OSError, StorageError) as e:
                self._degrade(operation, e)
            try:
                return fn(self._backend)
            except StorageError as e:
                logger.error(f"[STORE] {operation} failed in memory-only mode: {e}")
                return default

    def _check_quota(self, backend) -> None:
        if backend.memory_only:
            return
        if backend.used_bytes() >= self.quota_bytes:
            removed = self._lru_cleanup(backend, max_lists=10)
            if backend.used_bytes() >= self.quota_bytes:
                raise StorageQuotaExceededError(
                    f"storage quota exceeded ({backend.used_bytes()} >= {self.quota_bytes} bytes, "
                    f"{removed} lists evicted)"
                )

    # =========================================================================
    # Shopping lists
    # =========================================================================

    def _find_duplicate(self, backend, entry: OfflineShoppingListEntry) -> Optional[str]:
        signature = entry.content_signature()
        for data in backend.list_entries():
            existing = OfflineShoppingListEntry.from_dict(data)
            if existing.id != entry.id and existing.content_signature() == signature:
                return existing.id
        return None

    def store_shopping_list(self, entry: OfflineShoppingListEntry) -> Optional[str]:
        """
        Persist a new shopping list.

        Returns:
            The entry's id, or the id of an already-stored entry with identical
            content (in which case nothing new is written). None if the quota
            is full and cleanup could not make room.
        """
        def op(backend):
            duplicate_id = self._find_duplicate(backend, entry)
            if duplicate_id:
                logger.info(f"[STORE] list {entry.id} duplicates {duplicate_id}, not storing")
                return duplicate_id
            self._check_quota(backend)
            backend.put_entry(entry.to_dict())
            self._enforce_max_lists(backend)
            logger.info(f"[STORE] stored list {entry.id} v{entry.metadata.version}")
            return entry.id

        return self._call("store_shopping_list", op)

    def get_shopping_list(self, list_id: str) -> Optional[OfflineShoppingListEntry]:
        data = self._call("get_shopping_list", lambda b: b.get_entry(list_id))
        return OfflineShoppingListEntry.from_dict(data) if data else None

    def get_all_shopping_lists(self) -> List[OfflineShoppingListEntry]:
        rows = self._call("get_all_shopping_lists", lambda b: b.list_entries(), default=[])
        return [OfflineShoppingListEntry.from_dict(row) for row in rows]

    def update_shopping_list(
        self,
        list_id: str,
        shopping_list: Optional[Dict[str, list]] = None,
        mutate: Optional[Callable[[OfflineShoppingListEntry], None]] = None,
        **metadata_changes,
    ) -> Optional[OfflineShoppingListEntry]:
        """
        Apply a local mutation to a stored list.

        The read-modify-write runs under the store lock, bumps the version by
        one and marks the entry pending.

        Args:
            list_id: Entry to update
            shopping_list: Replacement item mapping, if any
            mutate: Callable that edits the entry in place, if any
            **metadata_changes: ShoppingListMetadata fields to overwrite

        Returns:
            The updated entry, or None if no such list exists.
        """
        allowed = {f.name for f in fields(ShoppingListMetadata)} - {"id", "version"}
        for key in metadata_changes:
            if key not in allowed:
                raise ValidationError(f"cannot update metadata field {key!r}")

        def op(backend):
            data = backend.get_entry(list_id)
            if data is None:
                logger.warning(f"[STORE] update of unknown list {list_id}")
                return None
            entry = OfflineShoppingListEntry.from_dict(data)
            if shopping_list is not None:
                entry.shopping_list = shopping_list
            if mutate is not None:
                mutate(entry)
            for key, value in metadata_changes.items():
                setattr(entry.metadata, key, value)
            entry.metadata.version += 1
            entry.metadata.last_modified = datetime.now()
            entry.metadata.sync_status = SYNC_PENDING
            backend.put_entry(entry.to_dict())
            logger.debug(f"[STORE] updated list {list_id} -> v{entry.metadata.version}")
            return entry

        return self._call("update_shopping_list", op)

    def set_sync_status(self, list_id: str, status: str) -> bool:
        """Record a sync outcome. Does not count as a local mutation (no version bump)."""
        if status not in SYNC_STATUSES:
            raise ValidationError(f"unknown sync status {status!r}")

        def op(backend):
            data = backend.get_entry(list_id)
            if data is None:
                return False
            entry = OfflineShoppingListEntry.from_dict(data)
            entry.metadata.sync_status = status
            if status == SYNC_SYNCED:
                for items in entry.shopping_list.values():
                    for item in items:
                        item.sync_status = SYNC_SYNCED
            backend.put_entry(entry.to_dict())
            return True

        return self._call("set_sync_status", op, default=False)

    def delete_shopping_list(self, list_id: str) -> bool:
        deleted = self._call("delete_shopping_list", lambda b: b.delete_entry(list_id), default=False)
        if deleted:
            logger.info(f"[STORE] deleted list {list_id}")
        return deleted

    def remove_duplicates(self) -> int:
        """
        Collapse content-identical lists to the earliest stored one.

        Returns:
            Number of entries removed.
        """
        def op(backend):
            seen = []
            removed = 0
            for data in backend.list_entries():
                entry = OfflineShoppingListEntry.from_dict(data)
                signature = entry.content_signature()
                if signature in seen:
                    backend.delete_entry(entry.id)
                    removed += 1
                else:
                    seen.append(signature)
            return removed

        removed = self._call("remove_duplicates", op, default=0)
        if removed:
            logger.info(f"[STORE] removed {removed} duplicate list(s)")
        return removed

    def _enforce_max_lists(self, backend) -> None:
        entries = [OfflineShoppingListEntry.from_dict(d) for d in backend.list_entries()]
        excess = len(entries) - self.max_stored_lists
        if excess <= 0:
            return
        evictable = sorted(
            (e for e in entries if e.metadata.sync_status == SYNC_SYNCED),
            key=lambda e: e.metadata.last_modified,
        )
        for entry in evictable[:excess]:
            backend.delete_entry(entry.id)
            logger.info(f"[STORE] evicted synced list {entry.id} (over {self.max_stored_lists} lists)")

    # =========================================================================
    # Meal plans
    # =========================================================================

    def save_meal_plan(self, plan: MealPlan) -> str:
        def op(backend):
            self._check_quota(backend)
            backend.put_plan(plan.to_dict())
            return plan.id

        self._call("save_meal_plan", op, default=plan.id)
        logger.debug(f"[STORE] saved meal plan {plan.id} for week {plan.week_start_date}")
        return plan.id

    def get_meal_plan(self, plan_id: str) -> Optional[MealPlan]:
        data = self._call("get_meal_plan", lambda b: b.get_plan(plan_id))
        return MealPlan.from_dict(data) if data else None

    def get_meal_plan_for_week(self, user_id: str, week_start: date) -> Optional[MealPlan]:
        plans = self._call("get_meal_plan_for_week", lambda b: b.list_plans(), default=[])
        for data in plans:
            if data["user_id"] == str(user_id) and data["week_start_date"] == week_start.isoformat():
                return MealPlan.from_dict(data)
        return None

    def delete_meal_plan(self, plan_id: str) -> bool:
        return self._call("delete_meal_plan", lambda b: b.delete_plan(plan_id), default=False)

    # =========================================================================
    # Sync queue
    # =========================================================================

    def enqueue_operation(self, operation: SyncOperation) -> None:
        """Not subject to the storage quota."""
        self._call("enqueue_operation", lambda b: b.put_operation(operation.to_dict()))

    def update_operation(self, operation: SyncOperation) -> None:
        self._call("update_operation", lambda b: b.put_operation(operation.to_dict()))

    def remove_operation(self, operation_id: str) -> bool:
        return self._call("remove_operation", lambda b: b.delete_operation(operation_id), default=False)

    def get_sync_queue(self) -> List[SyncOperation]:
        """All queued operations in enqueue (FIFO) order."""
        rows = self._call("get_sync_queue", lambda b: b.list_operations(), default=[])
        return [SyncOperation.from_dict(row) for row in rows]

    def clear_sync_queue(self) -> int:
        def op(backend):
            operations = backend.list_operations()
            for operation in operations:
                backend.delete_operation(operation["id"])
            return len(operations)

        return self._call("clear_sync_queue", op, default=0)

    # =========================================================================
    # Device id
    # =========================================================================

    def get_device_id(self) -> str:
        """Return the persisted device id, generating it on first use."""
        def op(backend):
            device_id = backend.get_meta("device_id")
            if not device_id:
                device_id = generate_device_id()
                backend.set_meta("device_id", device_id)
                logger.info(f"[STORE] generated device id {device_id}")
            return device_id

        return self._call("get_device_id", op) or generate_device_id()

    def set_device_id(self, device_id: str) -> None:
        self._call("set_device_id", lambda b: b.set_meta("device_id", device_id))

    # =========================================================================
    # Quota and maintenance
    # =========================================================================

    def get_storage_usage(self) -> StorageUsage:
        used = self._call("get_storage_usage", lambda b: b.used_bytes(), default=0)
        available = max(self.quota_bytes - used, 0)
        percentage = round(used / self.quota_bytes * 100, 2) if self.quota_bytes else 0.0
        return StorageUsage(used=used, available=available, percentage=percentage)

    def needs_cleanup(self) -> bool:
        return self.get_storage_usage().percentage >= self.high_water_percent

    def _lru_cleanup(self, backend, max_lists: int) -> int:
        week_start = _current_week_start().isoformat()
        candidates = [
            OfflineShoppingListEntry.from_dict(d) for d in backend.list_entries()
        ]
        candidates = sorted(
            (
                e for e in candidates
                if e.metadata.sync_status == SYNC_SYNCED and e.metadata.week_start_date < week_start
            ),
            key=lambda e: e.metadata.last_modified,
        )
        for entry in candidates[:max_lists]:
            backend.delete_entry(entry.id)
        return min(len(candidates), max_lists)

    def perform_lru_cleanup(self, max_lists: int = 10) -> int:
        """
        Remove synced lists from past weeks, least recently modified first.

        Pending and conflicted lists are never evicted.
        """
        removed = self._call("perform_lru_cleanup", lambda b: self._lru_cleanup(b, max_lists), default=0)
        if removed:
            logger.info(f"[STORE] LRU cleanup removed {removed} list(s)")
        return removed

    def cleanup_old_data(self, retention_days: int = 30, stale_operation_hours: int = 24) -> Dict[str, int]:
        """
        Delete synced lists untouched for retention_days and conflicted sync
        operations older than stale_operation_hours.
        """
        list_cutoff = datetime.now() - timedelta(days=retention_days)
        op_cutoff = datetime.now() - timedelta(hours=stale_operation_hours)

        def op(backend):
            lists_removed = 0
            for data in backend.list_entries():
                entry = OfflineShoppingListEntry.from_dict(data)
                if entry.metadata.sync_status == SYNC_SYNCED and entry.metadata.last_modified < list_cutoff:
                    backend.delete_entry(entry.id)
                    lists_removed += 1

            operations_removed = 0
            for data in backend.list_operations():
                operation = SyncOperation.from_dict(data)
                if operation.status == SYNC_CONFLICT and operation.timestamp < op_cutoff:
                    backend.delete_operation(operation.id)
                    operations_removed += 1
            return {"lists_removed": lists_removed, "operations_removed": operations_removed}

        result = self._call("cleanup_old_data", op, default={"lists_removed": 0, "operations_removed": 0})
        logger.info(f"[STORE] cleanup: {result}")
        return result

    def get_database_health(self) -> Dict[str, Any]:
        lists = self.get_all_shopping_lists()
        queue = self.get_sync_queue()
        usage = self.get_storage_usage()
        integrity = self._call("integrity_check", lambda b: b.integrity_check(), default="unknown")
        return {
            "available": self.is_available(),
            "memory_only": self.memory_only,
            "integrity": integrity,
            "shopping_lists": len(lists),
            "pending_lists": sum(1 for e in lists if e.metadata.sync_status == SYNC_PENDING),
            "conflicted_lists": sum(1 for e in lists if e.metadata.sync_status == SYNC_CONFLICT),
            "queued_operations": len(queue),
            "storage": {"used": usage.used, "available": usage.available, "percentage": usage.percentage},
            "needs_cleanup": usage.percentage >= self.high_water_percent,
        }

    def export_data(self) -> Dict[str, Any]:
        """Snapshot of everything in the store, JSON-serializable."""
        def op(backend):
            return {
                "format_version": EXPORT_FORMAT_VERSION,
                "exported_at": datetime.now().isoformat(),
                "device_id": backend.get_meta("device_id"),
                "shopping_lists": backend.list_entries(),
                "sync_queue": backend.list_operations(),
                "meal_plans": backend.list_plans(),
            }

        return self._call("export_data", op, default={})

    def import_data(self, data: Dict[str, Any], overwrite: bool = False) -> int:
        """
        Load an export_data() payload.

        Args:
            data: Exported payload
            overwrite: Replace entries whose ids already exist

        Returns:
            Number of shopping lists imported.

        Raises:
            ValidationError: If the payload is not an export of this format.
        """
        if not isinstance(data, dict) or data.get("format_version") != EXPORT_FORMAT_VERSION:
            raise ValidationError("unsupported export format")

        entries = [OfflineShoppingListEntry.from_dict(d) for d in data.get("shopping_lists", [])]
        operations = [SyncOperation.from_dict(d) for d in data.get("sync_queue", [])]
        plans = [MealPlan.from_dict(d) for d in data.get("meal_plans", [])]

        def op(backend):
            imported = 0
            for entry in entries:
                if backend.get_entry(entry.id) is not None and not overwrite:
                    continue
                backend.put_entry(entry.to_dict())
                imported += 1
            existing_ops = {o["id"] for o in backend.list_operations()}
            for operation in operations:
                if operation.id not in existing_ops:
                    backend.put_operation(operation.to_dict())
            for plan in plans:
                if overwrite or backend.get_plan(plan.id) is None:
                    backend.put_plan(plan.to_dict())
            if data.get("device_id") and not backend.get_meta("device_id"):
                backend.set_meta("device_id", data["device_id"])
            return imported

        imported = self._call("import_data", op, default=0)
        logger.info(f"[STORE] imported {imported} list(s)")
        return imported

    def clear_all(self) -> None:
        """Remove lists, plans and queued operations but keep the device id."""
        def op(backend):
            device_id = backend.get_meta("device_id")
            backend.clear()
            if device_id:
                backend.set_meta("device_id", device_id)

        self._call("clear_all", op)
        logger.info("[STORE] cleared offline data")
