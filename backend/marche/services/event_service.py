# Overview: Service-layer operations for events; encapsulates the event status machine.

"""
Event Service

STATE MACHINE (organizer-driven):
    DRAFT -> PUBLISHED -> CLOSED -> COMPLETED
      |          |   \\
      |          |    +-> COMPLETED
      +----------+-> CANCELLED

    CANCELLED and COMPLETED are terminal. Nothing moves back to DRAFT.

Publishing requires title, event_date and location. Only DRAFT and
PUBLISHED events can be edited.
"""

from __future__ import annotations

from datetime import date

from ..errors import NotEligibleError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import Event, EventApplication, OrganizerProfile
from ..models.events import (
    APPLICATION_STATUS_APPROVED,
    EVENT_STATUS_CANCELLED,
    EVENT_STATUS_CLOSED,
    EVENT_STATUS_COMPLETED,
    EVENT_STATUS_DRAFT,
    EVENT_STATUS_PUBLISHED,
    EVENT_STATUSES,
)
from ..validation import ModelValidationPolicy, enforce_rules_event, validate_payload
from . import record_store
from marche.time_utils import today, utcnow


EVENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "title", "description", "main_image_url",
        "event_date", "end_date", "start_time", "end_time",
        "location", "venue_name", "address",
        "max_stores", "fee", "category", "contact", "requirements",
        "is_public", "application_deadline",
    }),
    required_on_create=frozenset({"title", "event_date"}),
)

VALID_TRANSITIONS = {
    (EVENT_STATUS_DRAFT, EVENT_STATUS_PUBLISHED),
    (EVENT_STATUS_DRAFT, EVENT_STATUS_CANCELLED),
    (EVENT_STATUS_PUBLISHED, EVENT_STATUS_CLOSED),
    (EVENT_STATUS_PUBLISHED, EVENT_STATUS_CANCELLED),
    (EVENT_STATUS_PUBLISHED, EVENT_STATUS_COMPLETED),
    (EVENT_STATUS_CLOSED, EVENT_STATUS_COMPLETED),
}

EDITABLE_STATUSES = {EVENT_STATUS_DRAFT, EVENT_STATUS_PUBLISHED}

PUBLISH_REQUIRED_FIELDS = ("title", "event_date", "location")


def can_transition(from_status: str, to_status: str) -> bool:
    for status in (from_status, to_status):
        if status not in EVENT_STATUSES:
            raise ValidationError(f"Invalid event status '{status}'")
    return (from_status, to_status) in VALID_TRANSITIONS


def get_event(event_id: int) -> Event:
    event = record_store.get_by_id(Event, event_id)
    if event is None:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def require_organizer(event: Event, organizer: OrganizerProfile) -> None:
    if event.organizer_profile_id != organizer.id:
        raise PermissionDeniedError("Event belongs to another organizer")


def create_event(organizer: OrganizerProfile, payload: dict) -> Event:
    """Create an event in DRAFT. Organizers publish explicitly afterwards."""
    patch = validate_payload(model=Event, payload=payload, policy=EVENT_POLICY, partial=False)
    enforce_rules_event(patch)
    patch.setdefault("requirements", [])
    patch.setdefault("fee", 0)
    return record_store.create(
        Event,
        organizer_profile_id=organizer.id,
        status=EVENT_STATUS_DRAFT,
        **patch,
    )


def update_event(event: Event, payload: dict) -> Event:
    if event.status not in EDITABLE_STATUSES:
        raise NotEligibleError(
            f"Cannot edit event {event.id}: status is '{event.status}'",
            current=event.to_dict(),
        )
    patch = validate_payload(model=Event, payload=payload, policy=EVENT_POLICY, partial=True)
    merged_dates = {
        "event_date": patch.get("event_date", event.event_date),
        "end_date": patch.get("end_date", event.end_date),
    }
    enforce_rules_event({**patch, **merged_dates})
    if "requirements" in patch:
        patch["requirements"] = [r.strip() for r in patch["requirements"]]
    return record_store.update(event, **patch)


def _transition(event: Event, target: str, **fields) -> Event:
    if not can_transition(event.status, target):
        raise NotEligibleError(
            f"Cannot move event {event.id} from '{event.status}' to '{target}'",
            current=event.to_dict(),
        )
    return record_store.update(event, status=target, **fields)


def publish_event(event: Event) -> Event:
    """DRAFT -> PUBLISHED. Requires title, event_date and location."""
    missing = [f for f in PUBLISH_REQUIRED_FIELDS if not getattr(event, f)]
    if missing and event.status == EVENT_STATUS_DRAFT:
        raise ValidationError(
            f"Cannot publish event {event.id}: missing {', '.join(missing)}",
            missing=missing,
            current=event.to_dict(),
        )
    return _transition(event, EVENT_STATUS_PUBLISHED, published_at=utcnow())


def close_event(event: Event) -> Event:
    """PUBLISHED -> CLOSED (deadline reached or organizer stops accepting)."""
    return _transition(event, EVENT_STATUS_CLOSED, closed_at=utcnow())


def cancel_event(event: Event) -> Event:
    return _transition(event, EVENT_STATUS_CANCELLED, closed_at=event.closed_at or utcnow())


def complete_event(event: Event) -> Event:
    return _transition(event, EVENT_STATUS_COMPLETED, closed_at=event.closed_at or utcnow())


def list_published_events(
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    include_private: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> list[Event]:
    """
    Events open to stores: PUBLISHED, event_date from today (or from_date)
    onwards, soonest first.
    """
    criteria = [Event.event_date >= (from_date or today())]
    if to_date is not None:
        criteria.append(Event.event_date <= to_date)
    if not include_private:
        criteria.append(Event.is_public.is_(True))

    return record_store.list_records(
        Event,
        filters=criteria,
        order_by=(Event.event_date.asc(), Event.id.asc()),
        limit=limit,
        offset=offset,
        status=EVENT_STATUS_PUBLISHED,
    )


def list_events_by_organizer(organizer: OrganizerProfile, *, status: str | None = None) -> list[Event]:
    equals = {"organizer_profile_id": organizer.id}
    if status is not None:
        if status not in EVENT_STATUSES:
            raise ValidationError(f"Invalid event status '{status}'")
        equals["status"] = status
    return record_store.list_records(
        Event,
        order_by=(Event.created_at.desc(), Event.id.desc()),
        **equals,
    )


def approved_application_count(event: Event) -> int:
    return record_store.count(EventApplication, event_id=event.id, status=APPLICATION_STATUS_APPROVED)


def close_events_past_deadline(now=None) -> list[Event]:
    """
    Close every PUBLISHED event whose application deadline has passed.

    Run manually from the CLI; nothing schedules it.
    """
    now = now or utcnow()
    expired = record_store.list_records(
        Event,
        filters=(Event.application_deadline.isnot(None), Event.application_deadline < now),
        status=EVENT_STATUS_PUBLISHED,
    )
    return [close_event(event) for event in expired]
