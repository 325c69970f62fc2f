"""
Sync queue manager.

Replays queued shopping-list mutations against the remote API when the device
is online. Each operation moves through:

    pending -> in-flight -> synced (removed)
                         -> conflict (parked, needs a user decision)
                         -> pending again (retryable failure, backoff scheduled)
                         -> permanently failed (removed after max_retries)

Operations are processed in enqueue order. Once an operation for a list fails
or conflicts during a pass, later operations for that same list wait for the
next pass so the server never sees them out of order.
"""

import asyncio
import functools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from mealcart.data.database import LocalStore
from mealcart.data.models import (
    OPERATION_TYPES,
    SYNC_CONFLICT,
    SYNC_PENDING,
    SYNC_SYNCED,
    SyncOperation,
    SyncStatus,
)
from mealcart.errors import RemoteError, SyncConflictError, ValidationError
from mealcart.services.connection_monitor import ConnectionMonitor
from mealcart.services.remote_client import RemoteShoppingListClient
from mealcart.services.retry import RetryPolicy, calculate_retry_delay

logger = logging.getLogger(__name__)

MAX_RECENT_ERRORS = 20

StatusListener = Callable[[SyncStatus], None]


@dataclass
class SyncResult:
    """Summary of one drain of the queue."""
    success: bool = True
    successful_operations: int = 0
    total_operations: int = 0
    conflicts: int = 0
    failed_operations: int = 0
    errors: List[str] = field(default_factory=list)


class SyncQueueManager:
    """
    Drains the persisted sync queue against the remote shopping-list API.

    Args:
        store: Local durable store holding the queue and the lists
        remote: Shopping-list API client
        connection: Connectivity source; offline -> online triggers a drain
        retry_policy: Backoff settings and default max_retries for new operations
        batch_size: Operations handled per batch within a drain
        auto_retry: Schedule a background drain after retryable failures
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteShoppingListClient,
        connection: Optional[ConnectionMonitor] = None,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: int = 10,
        auto_retry: bool = True,
    ):
        self.store = store
        self.remote = remote
        self.connection = connection or ConnectionMonitor()
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.auto_retry = auto_retry

        self._queue_lock = asyncio.Lock()
        self._processing: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._in_flight_id: Optional[str] = None
        self._is_active = False
        self._last_sync: Optional[datetime] = None
        self._errors: List[str] = []
        self._failed: List[SyncOperation] = []
        self._listeners: List[StatusListener] = []
        self._unsubscribe = self.connection.add_listener(self._on_connection_change)

    @classmethod
    def from_settings(cls, settings, store, remote, connection=None) -> "SyncQueueManager":
        return cls(
            store=store,
            remote=remote,
            connection=connection,
            retry_policy=RetryPolicy.for_sync_queue(settings),
            batch_size=settings.sync_batch_size,
            auto_retry=settings.sync_auto_retry,
        )

    @property
    def is_online(self) -> bool:
        return self.connection.is_online

    async def _run(self, fn, *args, **kwargs):
        """Run a blocking store call off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    # =========================================================================
    # Enqueue
    # =========================================================================

    async def add_to_sync_queue(
        self,
        op_type: str,
        shopping_list_id: str,
        payload: Optional[Dict[str, Any]] = None,
        max_retries: Optional[int] = None,
    ) -> SyncOperation:
        """
        Queue a mutation for the server.

        A pending operation of the same type for the same list is updated in
        place (new payload, same queue position) unless it is currently being
        sent.
        """
        if op_type not in OPERATION_TYPES:
            raise ValidationError(f"unknown sync operation type {op_type!r}")
        if not shopping_list_id:
            raise ValidationError("sync operation needs a shopping_list_id")

        async with self._queue_lock:
            queue = await self._run(self.store.get_sync_queue)
            for existing in queue:
                if (
                    existing.type == op_type
                    and existing.shopping_list_id == shopping_list_id
                    and existing.status == SYNC_PENDING
                    and existing.id != self._in_flight_id
                ):
                    existing.payload = payload or {}
                    await self._run(self.store.update_operation, existing)
                    logger.debug(f"[SYNC] coalesced {op_type} for {shopping_list_id} into {existing.id}")
                    operation = existing
                    break
            else:
                operation = SyncOperation(
                    id=f"sync_{uuid.uuid4().hex[:12]}",
                    type=op_type,
                    shopping_list_id=shopping_list_id,
                    payload=payload or {},
                    max_retries=max_retries or self.retry_policy.max_retries,
                )
                await self._run(self.store.enqueue_operation, operation)
                logger.info(f"[SYNC] queued {op_type} for {shopping_list_id} ({operation.id})")

        await self._notify()
        return operation

    # =========================================================================
    # Drain
    # =========================================================================

    async def process_queue(self) -> SyncResult:
        """
        Send every pending operation, oldest first.

        Concurrent callers share the drain already in progress. Offline, this
        returns an empty result and leaves the queue untouched.
        """
        if self._processing is not None and not self._processing.done():
            logger.debug("[SYNC] drain already running, waiting for it")
            return await self._processing

        self._processing = asyncio.ensure_future(self._drain())
        return await self._processing

    async def trigger_manual_sync(self) -> SyncResult:
        """User-initiated sync. Same path as automatic draining."""
        logger.info("[SYNC] manual sync requested")
        result = await self.process_queue()
        if not self.is_online:
            result.success = False
            result.errors.append("Device is offline; changes will sync when the connection returns.")
        return result

    async def _drain(self) -> SyncResult:
        if not self.is_online:
            logger.info("[SYNC] offline, skipping drain")
            return SyncResult()

        queue = [op for op in await self._run(self.store.get_sync_queue) if op.status == SYNC_PENDING]
        result = SyncResult(total_operations=len(queue))
        if not queue:
            return result

        self._is_active = True
        await self._notify()
        logger.info(f"[SYNC] draining {len(queue)} operation(s)")

        blocked_lists = set()
        next_retry_attempt = None

        try:
            for start in range(0, len(queue), self.batch_size):
                for operation in queue[start:start + self.batch_size]:
                    if not self.is_online:
                        logger.info("[SYNC] went offline mid-drain, stopping")
                        break
                    if operation.shopping_list_id in blocked_lists:
                        continue

                    operation = await self._claim(operation.id)
                    if operation is None:
                        continue
                    outcome = await self._process_operation(operation, result)
                    if outcome == "retry":
                        blocked_lists.add(operation.shopping_list_id)
                        attempt = operation.retry_count - 1
                        next_retry_attempt = attempt if next_retry_attempt is None else max(next_retry_attempt, attempt)
                    elif outcome == SYNC_CONFLICT:
                        blocked_lists.add(operation.shopping_list_id)
        finally:
            self._is_active = False
            self._last_sync = datetime.now()

        result.success = (
            result.conflicts == 0 and result.failed_operations == 0 and not blocked_lists and self.is_online
        )
        logger.info(
            f"[SYNC] drain done: {result.successful_operations}/{result.total_operations} ok, "
            f"{result.conflicts} conflict(s), {result.failed_operations} failed"
        )

        if next_retry_attempt is not None:
            self._schedule_retry(next_retry_attempt)
        await self._notify()
        return result

    async def _claim(self, operation_id: str) -> Optional[SyncOperation]:
        """
        Re-read an operation and mark it in flight.

        The drain's snapshot may be stale: a newer payload can have been
        coalesced into the operation, or it may have been resolved or
        cleared. Returns None if it is no longer pending.
        """
        async with self._queue_lock:
            queue = await self._run(self.store.get_sync_queue)
            current = next((op for op in queue if op.id == operation_id), None)
            if current is None or current.status != SYNC_PENDING:
                return None
            self._in_flight_id = current.id
            return current

    async def _process_operation(self, operation: SyncOperation, result: SyncResult) -> str:
        """Send one claimed operation and record the outcome. Returns synced/conflict/retry/failed."""
        try:
            await self._execute(operation)
        except SyncConflictError as e:
            await self._handle_conflict(operation, e)
            result.conflicts += 1
            result.errors.append(e.user_message)
            return SYNC_CONFLICT
        except RemoteError as e:
            if e.retryable:
                failed = await self._handle_retryable_failure(operation, e)
            else:
                await self._fail_permanently(operation, e.message)
                failed = True
            if failed:
                result.failed_operations += 1
                result.errors.append(self._errors[-1])
                return "failed"
            return "retry"
        except Exception as e:
            logger.error(f"[SYNC] unexpected error sending {operation.id}: {e}", exc_info=True)
            await self._fail_permanently(operation, str(e))
            result.failed_operations += 1
            result.errors.append(self._errors[-1])
            return "failed"
        finally:
            self._in_flight_id = None

        async with self._queue_lock:
            await self._run(self.store.remove_operation, operation.id)
            if operation.type != "delete":
                remaining = [
                    op for op in await self._run(self.store.get_sync_queue)
                    if op.shopping_list_id == operation.shopping_list_id
                ]
                if not remaining:
                    await self._run(self.store.set_sync_status, operation.shopping_list_id, SYNC_SYNCED)
        result.successful_operations += 1
        logger.info(f"[SYNC] {operation.type} {operation.shopping_list_id} synced")
        return SYNC_SYNCED

    async def _execute(self, operation: SyncOperation) -> None:
        if operation.type == "create":
            await self.remote.create(operation.shopping_list_id, operation.payload)
        elif operation.type == "update":
            local_version = operation.payload.get("metadata", {}).get("version", 0)
            await self.remote.update(operation.shopping_list_id, operation.payload, local_version)
        elif operation.type == "delete":
            await self.remote.delete(operation.shopping_list_id)
        else:
            raise ValidationError(f"unknown sync operation type {operation.type!r}")

    async def _handle_conflict(self, operation: SyncOperation, error: SyncConflictError) -> None:
        logger.warning(f"[SYNC] conflict on {operation.shopping_list_id} ({operation.id}): {error.message}")
        operation.status = SYNC_CONFLICT
        operation.last_error = error.user_message
        await self._run(self.store.update_operation, operation)
        await self._run(self.store.set_sync_status, operation.shopping_list_id, SYNC_CONFLICT)
        self._record_error(f"Conflict on list {operation.shopping_list_id}: {error.user_message}")

    async def _handle_retryable_failure(self, operation: SyncOperation, error: RemoteError) -> bool:
        """Count the attempt. Returns True if the operation is now permanently failed."""
        operation.retry_count += 1
        operation.last_error = error.message
        if operation.retry_count >= operation.max_retries:
            await self._fail_permanently(operation, error.message)
            return True

        await self._run(self.store.update_operation, operation)
        logger.warning(
            f"[SYNC] {operation.id} failed ({error.message}), "
            f"attempt {operation.retry_count}/{operation.max_retries}"
        )
        return False

    async def _fail_permanently(self, operation: SyncOperation, reason: str) -> None:
        await self._run(self.store.remove_operation, operation.id)
        operation.last_error = reason
        self._failed.append(operation)
        self._record_error(
            f"Sync of list {operation.shopping_list_id} ({operation.type}) failed permanently "
            f"after {operation.retry_count} attempt(s): {reason}"
        )
        logger.error(f"[SYNC] {operation.id} permanently failed: {reason}")

    def _record_error(self, message: str) -> None:
        self._errors.append(message)
        del self._errors[:-MAX_RECENT_ERRORS]

    def _schedule_retry(self, attempt: int) -> None:
        if not self.auto_retry:
            return
        if self._retry_task is not None and not self._retry_task.done():
            return
        delay = calculate_retry_delay(attempt, self.retry_policy)
        logger.info(f"[SYNC] retrying in {delay:.2f}s")
        self._retry_task = asyncio.ensure_future(self._retry_after(delay))

    async def _retry_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Clear first so the drain below can schedule the next retry
        self._retry_task = None
        await self.process_queue()

    async def _on_connection_change(self, online: bool) -> None:
        if online:
            logger.info("[SYNC] back online, draining queue")
            await self.process_queue()

    # =========================================================================
    # Conflicts and status
    # =========================================================================

    async def resolve_conflict(self, operation_id: str, discard: bool = False) -> bool:
        """
        Settle a parked conflict.

        Args:
            operation_id: Operation in conflict state
            discard: Drop the local change instead of pushing it again

        Returns:
            False if no such conflicted operation exists.
        """
        async with self._queue_lock:
            queue = await self._run(self.store.get_sync_queue)
            operation = next((op for op in queue if op.id == operation_id and op.status == SYNC_CONFLICT), None)
            if operation is None:
                return False
            if discard:
                await self._run(self.store.remove_operation, operation.id)
                logger.info(f"[SYNC] discarded conflicted {operation.id}")
            else:
                operation.status = SYNC_PENDING
                operation.retry_count = 0
                operation.payload = {**operation.payload, "force": True}
                await self._run(self.store.update_operation, operation)
                await self._run(self.store.set_sync_status, operation.shopping_list_id, SYNC_PENDING)
                logger.info(f"[SYNC] re-queued conflicted {operation.id} to overwrite server copy")
        await self._notify()
        return True

    async def get_sync_status(self) -> SyncStatus:
        queue = await self._run(self.store.get_sync_queue)
        return SyncStatus(
            is_active=self._is_active,
            pending_operations=sum(1 for op in queue if op.status == SYNC_PENDING),
            last_sync=self._last_sync,
            errors=list(self._errors[-10:]),
            conflicts=sum(1 for op in queue if op.status == SYNC_CONFLICT),
            failed_operations=len(self._failed),
        )

    def get_recent_errors(self) -> List[str]:
        return list(self._errors)

    def get_failed_operations(self) -> List[SyncOperation]:
        return list(self._failed)

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self) -> None:
        if not self._listeners:
            return
        status = await self.get_sync_status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"[SYNC] status listener failed: {e}", exc_info=True)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def clear_queue(self) -> int:
        async with self._queue_lock:
            removed = await self._run(self.store.clear_sync_queue)
        await self._notify()
        return removed

    async def reset(self) -> None:
        """Forget in-memory status (errors, failures, last sync) and cancel pending retries."""
        await self._cancel_retry()
        self._errors.clear()
        self._failed.clear()
        self._last_sync = None

    async def close(self) -> None:
        await self._cancel_retry()
        self._unsubscribe()

    async def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
            try:
                await self._retry_task
            except asyncio.CancelledError:
                pass
        self._retry_task = None
