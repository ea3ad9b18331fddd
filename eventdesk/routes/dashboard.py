"""Dashboard and report routes."""
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlmodel import Session

from eventdesk.core.database import get_session
from eventdesk.core.identity import Identity, get_identity
from eventdesk.live.feed import load_snapshot
from eventdesk.live.views import as_dicts, dashboard_counts, recent_activity, report_metrics

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard")
def dashboard(
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Summary figures for the caller.

    Counts of events, checked-in attendees and upcoming events, plus the
    five most recent "event added" / "attendee added" activities.
    """
    events = load_snapshot(session, "events", identity.user_id)
    attendees = load_snapshot(session, "attendees", identity.user_id)
    return {
        "counts": asdict(dashboard_counts(events, attendees)),
        "recent_activity": as_dicts(recent_activity(events, attendees)),
    }


@router.get("/reports")
def reports(
    event_type: str = "all",
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    """
    Attendance report over the caller's events.

    ``event_type`` limits the report to one type of event; the breakdown of
    events by type always covers all of them.
    """
    events = load_snapshot(session, "events", identity.user_id)
    attendees = load_snapshot(session, "attendees", identity.user_id)
    return report_metrics(events, attendees, event_type)
