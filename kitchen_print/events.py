"""Order change sources: push subscription with failover to polling."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from kitchen_print.config import POLL_INTERVAL_SECONDS, REALTIME_TIMEOUT_SECONDS
from kitchen_print.models import ChangeRecord
from kitchen_print.store import OrderStore, Subscription
from kitchen_print.trigger import TriggerEngine

logger = logging.getLogger(__name__)

PUSH = "push"
PULL = "pull"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventSource:
    """Feed change records to a trigger engine from exactly one active mode."""

    def __init__(
        self,
        store: OrderStore,
        engine: TriggerEngine,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        push_timeout: float = REALTIME_TIMEOUT_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.engine = engine
        self.poll_interval = poll_interval
        self.push_timeout = push_timeout
        self.clock = clock
        self.mode: str | None = None
        self.since: datetime | None = None
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._retry: dict[str, dict[str, Any]] = {}

    async def start(self) -> str:
        """Try the push feed first; fall back to polling if it is not ready in time."""
        if self.mode is not None:
            raise RuntimeError(f"event source already running in {self.mode} mode")
        try:
            await self._start_push()
        except Exception as exc:
            if isinstance(exc, asyncio.TimeoutError):
                reason = f"not ready after {self.push_timeout:g}s"
            else:
                reason = str(exc) or type(exc).__name__
            logger.warning("realtime_failed reason=%s switching=polling", reason)
            self._close_subscription()
            await self._start_pull()
        return self.mode or PULL

    async def stop(self) -> None:
        self._close_subscription()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.mode is not None:
            logger.info("event_source_stopped mode=%s", self.mode)
        self.mode = None

    async def wait(self) -> None:
        """Block until the active mode's task ends."""
        if self._task is not None:
            await self._task

    # push mode

    async def _start_push(self) -> None:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[ChangeRecord] = asyncio.Queue()

        def on_change(change: ChangeRecord) -> None:
            # Realtime clients may call back from their own thread.
            loop.call_soon_threadsafe(queue.put_nowait, change)

        def on_error(exc: Exception) -> None:
            loop.call_soon_threadsafe(self._report_channel_loss, exc)

        logger.info("realtime_connecting timeout=%gs", self.push_timeout)
        self._subscription = self.store.subscribe(on_change, on_error)
        await asyncio.wait_for(self._subscription.wait_ready(), timeout=self.push_timeout)
        self.mode = PUSH
        self._task = asyncio.create_task(self._consume(queue), name="kitchen-print-push")
        logger.info("realtime_connected mode=push")

    def _report_channel_loss(self, exc: Exception) -> None:
        logger.error("realtime_channel_lost error=%s status=degraded", exc)

    async def _consume(self, queue: asyncio.Queue[ChangeRecord]) -> None:
        while True:
            change = await queue.get()
            try:
                await self.engine.handle(change)
            except Exception:
                logger.exception("change_handling_failed order=%s kind=%s", change.order_id, change.kind)
            finally:
                queue.task_done()

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    # pull mode

    async def _start_pull(self) -> None:
        # Start from now so orders paid before startup are never replayed.
        self.since = self.clock()
        self.mode = PULL
        logger.info("polling_started interval=%gs since=%s", self.poll_interval, self.since.isoformat())
        await self.poll_once()
        self._task = asyncio.create_task(self._poll_forever(), name="kitchen-print-poll")

    async def _poll_forever(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.poll_once()

    async def poll_once(self) -> int:
        """
        Run one poll cycle; returns the number of records forwarded.

        Orders whose last dispatch was partial are forwarded again on every
        cycle until they reach the ledger, since the watermark has already
        moved past their `updated_at`.
        """
        if self.since is None:
            self.since = self.clock()
        started = self.clock()
        try:
            rows = await asyncio.to_thread(self.store.query_changed_since, self.since, self.engine.trigger_value)
        except Exception as exc:
            logger.error("poll_failed since=%s error=%s", self.since.isoformat(), exc)
            return 0

        batch: dict[str, dict[str, Any]] = {}
        for row in rows:
            if row.get("id") is not None:
                batch[str(row["id"])] = row
        for order_id, row in self._retry.items():
            batch.setdefault(order_id, row)

        forwarded = 0
        for order_id, row in batch.items():
            if self.engine.already_printed(order_id):
                self._retry.pop(order_id, None)
                continue
            forwarded += 1
            try:
                outcome = await self.engine.handle(ChangeRecord.polled(row))
            except Exception:
                logger.exception("change_handling_failed order=%s kind=polled", order_id)
                continue
            if self.engine.already_printed(order_id):
                self._retry.pop(order_id, None)
            elif outcome is not None:
                if order_id not in self._retry:
                    logger.info("poll_retry_scheduled order=%s", order_id)
                self._retry[order_id] = row
        self.since = started
        return forwarded

    @property
    def retry_pending(self) -> list[str]:
        """Order ids waiting for a full re-dispatch."""
        return list(self._retry)
