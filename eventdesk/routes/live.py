"""Live view stream over WebSocket.

Each connection gets its own LiveAggregator subscribed to the caller's
slices of the collections the view needs. The current view is sent on
connect and again after every change, until the client disconnects.
"""
import asyncio
import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlmodel import Session

from eventdesk.core.database import get_session
from eventdesk.core.errors import NotAuthenticated
from eventdesk.core.identity import identity_from_headers
from eventdesk.live.aggregator import LiveAggregator
from eventdesk.live.feed import feed, load_snapshot
from eventdesk.live.views import as_dicts, registration_counts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/live", tags=["live"])

# View name -> collections it subscribes to
VIEWS = {
    "dashboard": ("events", "attendees"),
    "attendees": ("events", "attendees"),
    "registrants": ("registrations", "attendees"),
}

POLICY_VIOLATION = 1008


def render(aggregator: LiveAggregator, view: str) -> dict:
    payload = {"view": view, "errors": dict(aggregator.errors)}
    if view == "dashboard":
        payload["counts"] = asdict(aggregator.counts())
        payload["recent_activity"] = as_dicts(aggregator.recent_activity())
    elif view == "attendees":
        attendees = aggregator.records("attendees")
        payload["events"] = aggregator.records("events")
        payload["attendees"] = attendees
        payload["checked_in"] = sum(1 for a in attendees if a.get("attended"))
    else:
        registrants = aggregator.registrants()
        payload["registrants"] = as_dicts(registrants)
        payload["counts"] = registration_counts(registrants)
    return payload


async def _until_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/{view}")
async def live_view(websocket: WebSocket, view: str, session: Session = Depends(get_session)):
    """Stream a live view: "dashboard", "attendees" or "registrants"."""
    if view not in VIEWS:
        await websocket.close(code=POLICY_VIOLATION)
        return
    try:
        identity = identity_from_headers(websocket.headers)
    except NotAuthenticated:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    bind = session.get_bind()

    def loader(collection: str, owner_id: str) -> list[dict]:
        with Session(bind) as snapshot_session:
            return load_snapshot(snapshot_session, collection, owner_id)

    aggregator = LiveAggregator(feed, loader, VIEWS[view])
    disconnected = asyncio.create_task(_until_disconnect(websocket))
    try:
        await aggregator.switch_identity(identity)
        while not disconnected.done():
            version = aggregator.version
            await websocket.send_json(render(aggregator, view))
            changed = asyncio.create_task(aggregator.wait_for_change(version))
            await asyncio.wait({changed, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if not changed.done():
                changed.cancel()
    except WebSocketDisconnect:
        pass
    finally:
        disconnected.cancel()
        await aggregator.close()
        logger.debug(f"Live {view} stream closed for {identity.user_id}")
