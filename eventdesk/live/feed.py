"""Change feed: live, owner-filtered snapshots of each collection.

Every commit that touches a collection publishes the complete current slice
of that collection for each affected owner. Subscribers never receive
incremental patches; each :class:`ChangeEvent` replaces the whole set.

Capture happens in two SQLAlchemy session hooks:

    - ``after_flush`` records which ``(collection, owner_id)`` pairs the flush
      touched, in ``session.info``.
    - ``after_commit`` loads a fresh snapshot for each recorded pair that has
      at least one subscriber and publishes it. A rollback discards the
      recorded pairs, so nothing is published for failed writes.

Publishing runs on the writer's thread. Sinks are responsible for handing
the event over to their own event loop.
"""
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count

from sqlalchemy import event as sa_event
from sqlmodel import Session, select

from eventdesk.models import COLLECTIONS

logger = logging.getLogger(__name__)

_PENDING_KEY = "eventdesk_changed_slices"


@dataclass(frozen=True)
class ChangeEvent:
    """A full snapshot of one collection for one owner, or a failure."""
    collection: str
    owner_id: str
    records: list[dict] = field(default_factory=list)
    error: str | None = None


Sink = Callable[[ChangeEvent], None]


class Subscription:
    """Handle for one live query. Call :meth:`unsubscribe` to stop it."""

    def __init__(self, feed: "ChangeFeed", key: int, collection: str, owner_id: str, sink: Sink):
        self._feed = feed
        self._key = key
        self.collection = collection
        self.owner_id = owner_id
        self._sink = sink
        self.active = True

    def deliver(self, event: ChangeEvent) -> None:
        if self.active:
            self._sink(event)

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._feed._remove(self._key)


class ChangeFeed:
    """In-process fan-out of collection snapshots to subscribers."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._keys = count(1)

    def subscribe(self, collection: str, owner_id: str, sink: Sink) -> Subscription:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        with self._lock:
            key = next(self._keys)
            subscription = Subscription(self, key, collection, owner_id, sink)
            self._subscriptions[key] = subscription
        logger.debug(f"Subscribed #{key} to {collection} for {owner_id}")
        return subscription

    def _remove(self, key: int) -> None:
        with self._lock:
            self._subscriptions.pop(key, None)
        logger.debug(f"Unsubscribed #{key}")

    def _matching(self, collection: str, owner_id: str) -> list[Subscription]:
        with self._lock:
            return [
                s for s in self._subscriptions.values()
                if s.collection == collection and s.owner_id == owner_id
            ]

    def has_subscribers(self, collection: str, owner_id: str) -> bool:
        return bool(self._matching(collection, owner_id))

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every matching subscriber. Returns the count."""
        subscribers = self._matching(event.collection, event.owner_id)
        for subscription in subscribers:
            try:
                subscription.deliver(event)
            except Exception as e:
                # One broken sink must not starve the others
                logger.error(f"Delivery to subscription failed: {e}", exc_info=True)
        return len(subscribers)


def load_snapshot(session: Session, collection: str, owner_id: str) -> list[dict]:
    """Return every record of ``collection`` owned by ``owner_id`` as JSON-ready dicts."""
    model = COLLECTIONS[collection]
    rows = session.exec(select(model).where(model.owner_id == owner_id)).all()
    return [row.model_dump(mode="json") for row in rows]


feed = ChangeFeed()


@sa_event.listens_for(Session, "after_flush")
def _record_changed_slices(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, set())
    for obj in (*session.new, *session.dirty, *session.deleted):
        collection = getattr(obj, "__tablename__", None)
        owner_id = getattr(obj, "owner_id", None)
        if collection in COLLECTIONS and owner_id:
            pending.add((collection, owner_id))


@sa_event.listens_for(Session, "after_commit")
def _publish_changed_slices(session):
    pending = session.info.pop(_PENDING_KEY, set())
    if not pending:
        return
    bind = session.get_bind()
    for collection, owner_id in sorted(pending):
        if not feed.has_subscribers(collection, owner_id):
            continue
        try:
            with Session(bind) as snapshot_session:
                records = load_snapshot(snapshot_session, collection, owner_id)
            event = ChangeEvent(collection, owner_id, records)
        except Exception as e:
            logger.error(f"Snapshot load failed for {collection}/{owner_id}: {e}")
            event = ChangeEvent(collection, owner_id, error=f"Failed to fetch {collection}: {e}")
        feed.publish(event)


@sa_event.listens_for(Session, "after_rollback")
def _discard_changed_slices(session):
    session.info.pop(_PENDING_KEY, None)
