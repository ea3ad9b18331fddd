"""Derived views over snapshot records.

Everything here is a pure function of plain record dicts (the shape the
change feed delivers), so the same code backs the HTTP endpoints and the
live aggregator.
"""
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, time

RECENT_ACTIVITY_LIMIT = 5

VIEW_MODES = ("all", "registrations", "attendees")

# Lower rank wins when two registrant records share an email
SOURCE_PRECEDENCE = {"registrations": 0, "attendees": 1}

_EPOCH = datetime.min.replace(tzinfo=UTC)


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 string (or date) into an aware datetime, UTC if naive."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def event_start(event: dict) -> datetime | None:
    """When an event starts: its date plus its time when one was entered."""
    day = parse_timestamp(event.get("date"))
    if day is None:
        return None
    try:
        clock = time.fromisoformat(event.get("time") or "00:00")
    except ValueError:
        clock = time(0, 0)
    return day.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)


@dataclass
class DashboardCounts:
    total_events: int
    checked_in: int
    upcoming_events: int


def dashboard_counts(events: list[dict], attendees: list[dict], now: datetime | None = None) -> DashboardCounts:
    now = now or datetime.now(UTC)
    upcoming = 0
    for event in events:
        start = event_start(event)
        if start is not None and start >= now:
            upcoming += 1
    return DashboardCounts(
        total_events=len(events),
        checked_in=sum(1 for a in attendees if a.get("attended")),
        upcoming_events=upcoming,
    )


@dataclass
class Activity:
    kind: str  # "event" or "attendee"
    message: str
    timestamp: str


def recent_activity(
    events: list[dict],
    attendees: list[dict],
    limit: int = RECENT_ACTIVITY_LIMIT,
) -> list[Activity]:
    """Newest "event added" / "attendee added" entries, newest first."""
    names = {e["id"]: e.get("name") for e in events}
    entries = []
    for event in events:
        stamp = event.get("created_at") or event.get("date")
        entries.append(Activity("event", f'Event "{event.get("name")}" added', str(stamp or "")))
    for attendee in attendees:
        event_name = names.get(attendee.get("event_id"), "Unknown event")
        entries.append(
            Activity(
                "attendee",
                f'Attendee "{attendee.get("name")}" added to "{event_name}"',
                str(attendee.get("created_at") or ""),
            )
        )
    entries.sort(key=lambda a: parse_timestamp(a.timestamp) or _EPOCH, reverse=True)
    return entries[:limit]


@dataclass
class Registrant:
    id: str
    source: str  # "registrations" or "attendees"
    event_id: str
    name: str
    email: str
    phone: str | None
    attended: bool | None
    created_at: str | None


def _email_key(record: dict) -> str:
    return (record.get("email") or "").strip().lower()


def merge_registrants(registrations: list[dict], attendees: list[dict]) -> list[Registrant]:
    """Collapse registrations and attendees into one entry per email.

    A registration beats an attendee record for the same email; within one
    source the earliest ``created_at`` wins, then the smallest id. Records
    without an email are kept as they are.
    """
    candidates = [("registrations", r) for r in registrations]
    candidates += [("attendees", a) for a in attendees]

    def rank(item):
        source, record = item
        stamp = parse_timestamp(record.get("created_at")) or _EPOCH
        return SOURCE_PRECEDENCE[source], stamp, str(record.get("id"))

    chosen: dict[str, Registrant] = {}
    anonymous = []
    for source, record in sorted(candidates, key=rank):
        registrant = Registrant(
            id=str(record.get("id")),
            source=source,
            event_id=str(record.get("event_id")),
            name=record.get("name") or "",
            email=record.get("email") or "",
            phone=record.get("phone"),
            attended=record.get("attended"),
            created_at=record.get("created_at"),
        )
        key = _email_key(record)
        if not key:
            anonymous.append(registrant)
        elif key not in chosen:
            chosen[key] = registrant
    return list(chosen.values()) + anonymous


def filter_registrants(
    registrants: list[Registrant],
    event_id: str | None = None,
    view: str = "all",
) -> list[Registrant]:
    if view not in VIEW_MODES:
        raise ValueError(f"Unknown view mode: {view}")
    return [
        r for r in registrants
        if (not event_id or r.event_id == event_id) and (view == "all" or r.source == view)
    ]


def registration_counts(registrants: list[Registrant]) -> dict[str, int]:
    """Number of merged registrants per event id."""
    return dict(Counter(r.event_id for r in registrants))


def search_attendees(attendees: list[dict], query: str) -> list[dict]:
    """Case-insensitive substring match on name or email."""
    needle = query.strip().lower()
    if not needle:
        return list(attendees)
    return [
        a for a in attendees
        if needle in (a.get("name") or "").lower() or needle in (a.get("email") or "").lower()
    ]


def report_metrics(events: list[dict], attendees: list[dict], event_type: str = "all") -> dict:
    """Attendance figures for the reports page.

    ``event_type`` narrows the events considered (and with them the
    attendees); the type breakdown always covers all events.
    """
    selected = events if event_type == "all" else [e for e in events if e.get("type") == event_type]
    selected_ids = {e["id"] for e in selected}
    relevant = [a for a in attendees if a.get("event_id") in selected_ids]
    checked_in = sum(1 for a in relevant if a.get("attended"))
    rate = round(checked_in / len(relevant) * 100, 1) if relevant else 0.0

    per_event = []
    for event in selected:
        own = [a for a in relevant if a.get("event_id") == event["id"]]
        per_event.append({
            "event_id": event["id"],
            "name": event.get("name"),
            "checked_in": sum(1 for a in own if a.get("attended")),
            "total": len(own),
        })

    return {
        "event_type": event_type,
        "total_events": len(selected),
        "total_attendees": len(relevant),
        "checked_in": checked_in,
        "attendance_rate": rate,
        "event_types": dict(Counter(e.get("type") or "" for e in events)),
        "per_event": per_event,
    }


def as_dicts(items) -> list[dict]:
    return [asdict(item) for item in items]
