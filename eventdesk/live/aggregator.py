"""Live aggregator: per-identity view state folded from the change feed.

An aggregator owns one channel (an ``asyncio.Queue``). Its subscriptions
push :class:`ChangeEvent` snapshots onto that channel from whatever thread
committed the write, and a single consumer task folds them into state. All
state mutation therefore happens on the aggregator's event loop.

Each item on the channel is tagged with the identity generation it was
subscribed under. Switching identity cancels the old subscriptions and bumps
the generation, so events already queued for the previous user are dropped
instead of leaking into the new user's views.

Optimistic mutations are overlays on top of the snapshots. They are scoped:
an overlay that is not confirmed by the time its ``with`` block exits is
removed again.
"""
import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import count
from uuid import uuid4

from eventdesk.core.config import settings
from eventdesk.core.identity import Identity
from eventdesk.live.feed import ChangeEvent, ChangeFeed, Subscription
from eventdesk.live.views import (
    dashboard_counts,
    merge_registrants,
    recent_activity,
)

logger = logging.getLogger(__name__)

Loader = Callable[[str, str], list[dict]]


@dataclass
class _Overlay:
    kind: str  # "insert" or "patch"
    collection: str
    record_id: str
    data: dict = field(default_factory=dict)
    confirmed: bool = False
    # Inserts only: the fields the user submitted, and the snapshot ids that
    # existed when the placeholder was shown
    submitted: dict = field(default_factory=dict)
    baseline: frozenset = frozenset()


class OptimisticMutation:
    """Scoped optimistic change. Rolls back unless :meth:`confirm` is called.

    Usage::

        with aggregator.optimistic_insert("attendees", data) as tx:
            new_id = await store_write(tx.record)
            tx.confirm(new_id)
    """

    def __init__(self, aggregator: "LiveAggregator", overlay: _Overlay):
        self._aggregator = aggregator
        self._overlay = overlay
        self._key: int | None = None

    @property
    def record_id(self) -> str:
        return self._overlay.record_id

    @property
    def record(self) -> dict:
        return self._overlay.data

    @property
    def confirmed(self) -> bool:
        return self._overlay.confirmed

    def confirm(self, record_id=None) -> None:
        """Mark the remote write as done, swapping in the store's id if it differs."""
        overlay = self._overlay
        if record_id is not None and str(record_id) != overlay.record_id:
            logger.debug(f"Swapping placeholder {overlay.record_id} for {record_id}")
            overlay.record_id = str(record_id)
            if overlay.kind == "insert":
                overlay.data = {**overlay.data, "id": overlay.record_id}
        overlay.confirmed = True
        self._aggregator._reconcile(overlay.collection)
        self._aggregator._touch()

    def __enter__(self):
        self._key = self._aggregator._add_overlay(self._overlay)
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None or not self._overlay.confirmed:
            logger.info(
                f"Rolling back optimistic {self._overlay.kind} on "
                f"{self._overlay.collection}/{self._overlay.record_id}"
            )
            self._aggregator._drop_overlay(self._key)
        return False


class LiveAggregator:
    """View state for one identity, kept current by live subscriptions."""

    def __init__(
        self,
        feed: ChangeFeed,
        loader: Loader | None = None,
        collections: Iterable[str] = ("events", "attendees"),
        timeout: float | None = None,
        retries: int | None = None,
    ):
        self._feed = feed
        self._loader = loader
        self.collections = tuple(collections)
        self._timeout = settings.subscription_timeout_seconds if timeout is None else timeout
        self._retries = settings.subscription_retries if retries is None else retries

        self.identity: Identity | None = None
        self._generation = 0
        self._subscriptions: list[Subscription] = []
        self._queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None

        self._snapshots: dict[str, dict[str, dict]] = {}
        self._fresh: set[str] = set()
        self._overlays: dict[int, _Overlay] = {}
        self._overlay_keys = count(1)
        self.errors: dict[str, str] = {}

        self.version = 0
        self._changed = asyncio.Event()

    # Lifecycle

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._queue = asyncio.Queue()
            self._consumer = asyncio.get_running_loop().create_task(self._consume())

    async def switch_identity(self, identity: Identity | None) -> None:
        """Tear down the previous identity's subscriptions and start new ones.

        Returns once the initial snapshots for ``identity`` have been folded.
        Passing None just clears everything (signed out).
        """
        self._ensure_consumer()
        self._cancel_subscriptions()
        self._generation += 1
        generation = self._generation
        self.identity = identity
        self._snapshots.clear()
        self._fresh.clear()
        self._overlays.clear()
        self.errors.clear()
        self._touch()
        if identity is None:
            return

        loop = asyncio.get_running_loop()
        for collection in self.collections:
            sink = self._make_sink(loop, generation)
            self._subscriptions.append(self._feed.subscribe(collection, identity.user_id, sink))
        logger.info(f"Live views subscribed for {identity.user_id}: {', '.join(self.collections)}")

        for collection in self.collections:
            await self._prime(collection, identity, generation)
        await self.drain()

    async def close(self) -> None:
        self._cancel_subscriptions()
        self._generation += 1
        if self._consumer is not None:
            self._consumer.cancel()
            with suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None

    async def drain(self) -> None:
        """Wait until every event queued so far has been folded."""
        await asyncio.sleep(0)
        if self._queue is not None:
            await self._queue.join()

    async def wait_for_change(self, seen_version: int, timeout: float | None = None) -> int:
        while self.version <= seen_version:
            await asyncio.wait_for(self._changed.wait(), timeout)
        return self.version

    def _cancel_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def _make_sink(self, loop: asyncio.AbstractEventLoop, generation: int):
        queue = self._queue

        def sink(event: ChangeEvent) -> None:
            item = (generation, event, False)
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                queue.put_nowait(item)
            else:
                loop.call_soon_threadsafe(queue.put_nowait, item)

        return sink

    async def _prime(self, collection: str, identity: Identity, generation: int) -> None:
        """Load the initial snapshot, with a timeout and a bounded number of retries."""
        if self._loader is None:
            return
        attempts = self._retries + 1
        event = None
        for attempt in range(1, attempts + 1):
            try:
                records = await asyncio.wait_for(
                    asyncio.to_thread(self._loader, collection, identity.user_id),
                    self._timeout,
                )
                event = ChangeEvent(collection, identity.user_id, records)
                break
            except Exception as e:
                logger.warning(
                    f"Initial load of {collection} failed (attempt {attempt}/{attempts}): {e!r}"
                )
                event = ChangeEvent(
                    collection, identity.user_id, error=f"Failed to fetch {collection}: {e!r}"
                )
        self._queue.put_nowait((generation, event, True))

    async def _consume(self) -> None:
        while True:
            generation, event, initial = await self._queue.get()
            try:
                if generation != self._generation:
                    logger.debug(f"Dropped stale {event.collection} snapshot from generation {generation}")
                    continue
                if initial and event.collection in self._fresh:
                    continue
                self._fold(event)
            except Exception as e:
                logger.error(f"Failed to fold {event.collection} snapshot: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    # State

    def _fold(self, event: ChangeEvent) -> None:
        owner_id = self.identity.user_id if self.identity else None
        if event.owner_id != owner_id:
            return
        collection = event.collection
        self._fresh.add(collection)
        if event.error:
            logger.warning(f"Subscription error on {collection}: {event.error}")
            self._snapshots[collection] = {}
            self.errors[collection] = event.error
        else:
            self._snapshots[collection] = {
                str(r["id"]): r for r in event.records if r.get("owner_id") == owner_id
            }
            self.errors.pop(collection, None)
        self._reconcile(collection)
        self._touch()

    def _touch(self) -> None:
        self.version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    def _add_overlay(self, overlay: _Overlay) -> int:
        key = next(self._overlay_keys)
        self._overlays[key] = overlay
        self._touch()
        return key

    def _drop_overlay(self, key: int | None) -> None:
        if self._overlays.pop(key, None) is not None:
            self._touch()

    def _reconcile(self, collection: str) -> None:
        """Retire confirmed overlays once the snapshot reflects them."""
        snapshot = self._snapshots.get(collection, {})
        for key, overlay in list(self._overlays.items()):
            if overlay.collection != collection or not overlay.confirmed:
                continue
            current = snapshot.get(overlay.record_id)
            if overlay.kind == "insert":
                done = current is not None
            else:
                done = current is None or all(current.get(k) == v for k, v in overlay.data.items())
            if done:
                del self._overlays[key]

    def _echo_of(self, overlay: _Overlay, snapshot: dict[str, dict], claimed: set[str]) -> str | None:
        """Id of a new snapshot record carrying the submitted fields of ``overlay``.

        Covers a store that assigns its own id and echoes the record before
        the write call has returned that id.
        """
        for record_id, rec in snapshot.items():
            if record_id in overlay.baseline or record_id in claimed:
                continue
            if all(rec.get(k) == v for k, v in overlay.submitted.items()):
                return record_id
        return None

    def records(self, collection: str) -> list[dict]:
        """Snapshot records with pending inserts and patches applied."""
        snapshot = self._snapshots.get(collection, {})
        merged = dict(snapshot)
        overlays = [o for _, o in sorted(self._overlays.items()) if o.collection == collection]
        claimed: set[str] = set()
        for overlay in overlays:
            if overlay.kind != "insert" or overlay.record_id in merged:
                continue
            if not overlay.confirmed:
                echo = self._echo_of(overlay, snapshot, claimed)
                if echo is not None:
                    claimed.add(echo)
                    continue
            merged[overlay.record_id] = overlay.data
        for overlay in overlays:
            if overlay.kind == "patch" and overlay.record_id in merged:
                merged[overlay.record_id] = {**merged[overlay.record_id], **overlay.data}
        return list(merged.values())

    # Optimistic mutations

    def optimistic_insert(self, collection: str, data: dict) -> OptimisticMutation:
        owner_id = self.identity.user_id if self.identity else None
        record_id = str(data.get("id") or uuid4())
        record = {
            "created_at": datetime.now(UTC).isoformat(),
            **data,
            "id": record_id,
            "owner_id": owner_id,
        }
        submitted = {k: v for k, v in data.items() if k not in ("id", "owner_id", "created_at")}
        baseline = frozenset(self._snapshots.get(collection, {}))
        overlay = _Overlay("insert", collection, record_id, record, submitted=submitted, baseline=baseline)
        return OptimisticMutation(self, overlay)

    def optimistic_update(self, collection: str, record_id, changes: dict) -> OptimisticMutation:
        return OptimisticMutation(self, _Overlay("patch", collection, str(record_id), dict(changes)))

    async def insert(self, collection: str, data: dict, write) -> dict:
        """Show ``data`` immediately, persist it with ``write(record)``, reconcile.

        ``write`` may be sync or async and returns the stored id (or None to
        keep the placeholder id). Exceptions propagate after rollback.
        """
        with self.optimistic_insert(collection, data) as tx:
            result = write(tx.record)
            if inspect.isawaitable(result):
                result = await result
            tx.confirm(result)
        return tx.record

    async def update(self, collection: str, record_id, changes: dict, write) -> None:
        with self.optimistic_update(collection, record_id, changes) as tx:
            result = write(str(record_id), dict(changes))
            if inspect.isawaitable(result):
                await result
            tx.confirm()

    async def toggle_check_in(self, attendee_id, write) -> bool:
        """Flip ``attended`` on an attendee optimistically. Returns the new value."""
        current = next(
            (a for a in self.records("attendees") if a["id"] == str(attendee_id)), None
        )
        if current is None:
            raise KeyError(f"Unknown attendee: {attendee_id}")
        attended = not current.get("attended")
        await self.update("attendees", attendee_id, {"attended": attended}, write)
        return attended

    # Derived views

    def counts(self, now=None):
        return dashboard_counts(self.records("events"), self.records("attendees"), now)

    def recent_activity(self):
        return recent_activity(self.records("events"), self.records("attendees"))

    def registrants(self):
        return merge_registrants(self.records("registrations"), self.records("attendees"))
