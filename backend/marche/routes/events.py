# Overview: Flask API routes for events and applying to them.

"""
Event API routes

- GET  /api/events                      published, upcoming events (public)
- GET  /api/events/<id>                 event detail (drafts hidden)
- GET  /api/events/mine                 organizer's own events
- POST /api/events                      create draft (organizer)
- PUT  /api/events/<id>                 edit draft/published event (owner)
- POST /api/events/<id>/publish|close|cancel|complete
- GET  /api/events/<id>/applications    applications to the event (owner)
- POST /api/events/<id>/applications    apply (store)

SECURITY: organizer_profile_id and store_profile_id always come from the
session, never from the request body.
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import NotFoundError, ValidationError
from ..models.events import EVENT_STATUS_DRAFT
from ..services import application_service, event_service
from ..time_utils import parse_iso_date
from .common import current_profile, json_body


events_bp = Blueprint("events", __name__, url_prefix="/api/events")


def _event_detail(event) -> dict:
    data = event.to_dict()
    data["approved_count"] = event_service.approved_application_count(event)
    return data


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"Invalid {name}")


def _owned_event(event_id: int):
    event = event_service.get_event(event_id)
    event_service.require_organizer(event, current_profile())
    return event


@events_bp.get("")
def list_events_route():
    """
    Query: from_date, to_date (YYYY-MM-DD), limit, offset

    Published events dated today or later, soonest first.
    """
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)
    events = event_service.list_published_events(
        from_date=_date_arg("from_date"),
        to_date=_date_arg("to_date"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"items": [e.to_dict() for e in events], "count": len(events), "limit": limit, "offset": offset})


@events_bp.get("/mine")
@require_auth
@require_role("organizer")
def list_my_events_route():
    events = event_service.list_events_by_organizer(current_profile(), status=request.args.get("status") or None)
    return jsonify({"items": [_event_detail(e) for e in events], "count": len(events)})


@events_bp.get("/<int:event_id>")
def get_event_route(event_id: int):
    event = event_service.get_event(event_id)
    if event.status == EVENT_STATUS_DRAFT:
        raise NotFoundError(f"Event {event_id} not found")
    return jsonify({"event": _event_detail(event)})


@events_bp.post("")
@require_auth
@require_role("organizer")
def create_event_route():
    event = event_service.create_event(current_profile(), json_body())
    return jsonify({"event": event.to_dict()}), 201


@events_bp.put("/<int:event_id>")
@require_auth
@require_role("organizer")
def update_event_route(event_id: int):
    event = event_service.update_event(_owned_event(event_id), json_body())
    return jsonify({"event": event.to_dict()})


_TRANSITIONS = {
    "publish": event_service.publish_event,
    "close": event_service.close_event,
    "cancel": event_service.cancel_event,
    "complete": event_service.complete_event,
}


@events_bp.post("/<int:event_id>/<any(publish, close, cancel, complete):action>")
@require_auth
@require_role("organizer")
def transition_event_route(event_id: int, action: str):
    """
    Organizer-driven status change.

    Error responses:
        400: Publishing without title/event_date/location
        403: Not the event's organizer
        409: Transition not allowed from the current status
    """
    event = _TRANSITIONS[action](_owned_event(event_id))
    return jsonify({"event": event.to_dict()})


@events_bp.get("/<int:event_id>/applications")
@require_auth
@require_role("organizer")
def list_event_applications_route(event_id: int):
    event = event_service.get_event(event_id)
    applications = application_service.list_applications_for_event(
        event,
        current_profile(),
        status=request.args.get("status") or None,
    )
    return jsonify({"items": [a.to_dict() for a in applications], "count": len(applications)})


@events_bp.post("/<int:event_id>/applications")
@require_auth
@require_role("store")
def apply_route(event_id: int):
    """
    Apply to a published event.

    Request: {"store_name", "contact_name", "phone", "email",
              "product_description", "application_data": {...}}

    Error responses:
        409: Event not published, deadline passed, store not verified,
             or an active application already exists
    """
    event = event_service.get_event(event_id)
    application = application_service.create_application(event, current_profile(), json_body())
    return jsonify({"application": application.to_dict()}), 201
