# Overview: Service-layer operations for event applications; encapsulates the application state machine.

"""
Event Application Service

================================================================================
STATE MACHINE
================================================================================
    PENDING -> APPROVED   (organizer, terminal)
    PENDING -> REJECTED   (organizer, terminal)
    PENDING -> CANCELLED  (store, only when ALLOW_STORE_CANCELLATION is on)

ELIGIBILITY (create_application):
1. The event is PUBLISHED
2. The application deadline, if set, has not passed (inclusive)
3. The store profile is verified (REQUIRE_VERIFIED_STORE, default on)
4. The store has no pending/approved application to the same event
   (APPLICATION_UNIQUE_PER_STORE, default on). Rejected or cancelled
   applicants may apply again. There is no schema constraint behind this.

DECISIONS (decide_application):
- Only the organizer owning the event decides
- Repeating the decision already taken returns the record unchanged
- Any other decision on a decided application is refused ("already decided")
- Approval is refused once max_stores applications are approved
================================================================================
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import NotEligibleError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import ApplicationDocument, Event, EventApplication, OrganizerProfile, StoreProfile
from ..models.documents import DOCUMENT_TYPE_LABELS
from ..models.events import (
    APPLICATION_STATUS_APPROVED,
    APPLICATION_STATUS_CANCELLED,
    APPLICATION_STATUS_PENDING,
    APPLICATION_STATUS_REJECTED,
    APPLICATION_STATUSES,
    EVENT_STATUS_PUBLISHED,
)
from ..validation import ModelValidationPolicy, validate_payload
from . import event_service, profile_service, record_store
from marche.time_utils import utcnow


APPLICATION_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "store_name", "contact_name", "phone", "email",
        "product_description", "application_data",
    }),
)

APPLICATION_DATA_KEYS = frozenset({
    "booth_size", "special_requirements", "equipment_needed", "additional_info",
})

OUTCOME_APPROVE = "approve"
OUTCOME_REJECT = "reject"
_OUTCOME_STATUS = {
    OUTCOME_APPROVE: APPLICATION_STATUS_APPROVED,
    OUTCOME_REJECT: APPLICATION_STATUS_REJECTED,
}

# Statuses that count as "already applied" for the duplicate check
ACTIVE_STATUSES = (APPLICATION_STATUS_PENDING, APPLICATION_STATUS_APPROVED)

VALID_TRANSITIONS = {
    (APPLICATION_STATUS_PENDING, APPLICATION_STATUS_APPROVED),
    (APPLICATION_STATUS_PENDING, APPLICATION_STATUS_REJECTED),
    (APPLICATION_STATUS_PENDING, APPLICATION_STATUS_CANCELLED),
}


def can_transition(from_status: str, to_status: str) -> bool:
    for status in (from_status, to_status):
        if status not in APPLICATION_STATUSES:
            raise ValidationError(f"Invalid application status '{status}'")
    return (from_status, to_status) in VALID_TRANSITIONS


def get_application(application_id: int) -> EventApplication:
    application = record_store.get_by_id(EventApplication, application_id)
    if application is None:
        raise NotFoundError(f"Application {application_id} not found")
    return application


def find_active_application(event: Event, store: StoreProfile) -> EventApplication | None:
    return record_store.get(
        EventApplication,
        event_id=event.id,
        store_profile_id=store.id,
        status=APPLICATION_STATUS_PENDING,
    ) or record_store.get(
        EventApplication,
        event_id=event.id,
        store_profile_id=store.id,
        status=APPLICATION_STATUS_APPROVED,
    )


def check_eligibility(event: Event, store: StoreProfile, now: datetime | None = None) -> None:
    """
    Raise NotEligibleError when the store may not apply to the event right now.

    Pure check: reads state, writes nothing.
    """
    now = now or utcnow()

    if event.status != EVENT_STATUS_PUBLISHED:
        raise NotEligibleError(
            f"Event {event.id} is not accepting applications (status '{event.status}')",
            current=event.to_dict(),
        )

    if event.application_deadline is not None and now > event.application_deadline:
        raise NotEligibleError(
            f"The application deadline for event {event.id} has passed",
            current=event.to_dict(),
        )

    if current_app.config["REQUIRE_VERIFIED_STORE"] and not store.is_verified:
        raise NotEligibleError(
            "Store profile must be verified before applying to events",
            current=store.to_dict(),
        )

    if current_app.config["APPLICATION_UNIQUE_PER_STORE"]:
        existing = find_active_application(event, store)
        if existing is not None:
            raise NotEligibleError(
                f"Store {store.id} has already applied to event {event.id}",
                current=existing.to_dict(),
            )


def _clean_application_data(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("application_data must be a JSON object")
    unknown = sorted(set(data) - APPLICATION_DATA_KEYS)
    if unknown:
        raise ValidationError(f"Unknown application_data keys: {', '.join(unknown)}")
    return {k: (v.strip() if isinstance(v, str) else v) for k, v in data.items()}


def create_application(
    event: Event,
    store: StoreProfile,
    data: dict | None = None,
    now: datetime | None = None,
) -> EventApplication:
    """
    Apply to an event on behalf of a store.

    store_name and contact_name default to the store profile's values.

    Raises:
        NotEligibleError: see ELIGIBILITY above
        ValidationError: malformed payload, or no store name / contact name available
    """
    now = now or utcnow()
    check_eligibility(event, store, now)

    patch = validate_payload(
        model=EventApplication,
        payload=data or {},
        policy=APPLICATION_POLICY,
        partial=True,
    )
    patch["application_data"] = _clean_application_data(patch.get("application_data"))
    patch["store_name"] = patch.get("store_name") or store.name
    patch["contact_name"] = patch.get("contact_name") or store.contact_name or store.name
    patch.setdefault("phone", store.phone)
    patch.setdefault("email", store.email)

    missing = [f for f in ("store_name", "contact_name") if not patch[f]]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

    return record_store.create(
        EventApplication,
        event_id=event.id,
        store_profile_id=store.id,
        status=APPLICATION_STATUS_PENDING,
        applied_at=now,
        **patch,
    )


def decide_application(
    application: EventApplication,
    outcome: str,
    organizer: OrganizerProfile,
    *,
    note: str | None = None,
) -> EventApplication:
    """
    Organizer decision (PENDING -> APPROVED | REJECTED).

    Idempotent for the same outcome: the second call returns the record
    without writing anything.
    """
    target = _OUTCOME_STATUS.get(outcome)
    if target is None:
        raise ValidationError(f"outcome must be one of: {', '.join(sorted(_OUTCOME_STATUS))}")

    event = application.event
    event_service.require_organizer(event, organizer)

    if application.status == target:
        return application

    if application.status != APPLICATION_STATUS_PENDING:
        raise NotEligibleError(
            f"Application {application.id} already decided (status '{application.status}')",
            current=application.to_dict(),
        )

    if target == APPLICATION_STATUS_APPROVED and event.max_stores is not None:
        if event_service.approved_application_count(event) >= event.max_stores:
            raise NotEligibleError(
                f"Event {event.id} already has {event.max_stores} approved stores",
                current=application.to_dict(),
            )

    return record_store.update(
        application,
        status=target,
        decided_at=utcnow(),
        decided_by_profile_id=organizer.id,
        decision_note=(note or "").strip() or None,
    )


def cancel_application(application: EventApplication, store: StoreProfile) -> EventApplication:
    """
    Store-initiated withdrawal (PENDING -> CANCELLED).

    Disabled unless ALLOW_STORE_CANCELLATION is set.
    """
    if not current_app.config["ALLOW_STORE_CANCELLATION"]:
        raise NotEligibleError(
            "Cancelling applications is not enabled",
            current=application.to_dict(),
        )
    if application.store_profile_id != store.id:
        raise PermissionDeniedError("Application belongs to another store")
    if not can_transition(application.status, APPLICATION_STATUS_CANCELLED):
        raise NotEligibleError(
            f"Cannot cancel application {application.id}: status is '{application.status}'",
            current=application.to_dict(),
        )
    return record_store.update(application, status=APPLICATION_STATUS_CANCELLED, decided_at=utcnow())


def list_applications_for_event(
    event: Event,
    organizer: OrganizerProfile,
    *,
    status: str | None = None,
) -> list[EventApplication]:
    event_service.require_organizer(event, organizer)
    equals = {"event_id": event.id}
    if status is not None:
        if status not in APPLICATION_STATUSES:
            raise ValidationError(f"Invalid application status '{status}'")
        equals["status"] = status
    return record_store.list_records(
        EventApplication,
        order_by=(EventApplication.applied_at.asc(), EventApplication.id.asc()),
        **equals,
    )


def list_applications_for_store(store: StoreProfile) -> list[EventApplication]:
    return record_store.list_records(
        EventApplication,
        order_by=(EventApplication.applied_at.desc(), EventApplication.id.desc()),
        store_profile_id=store.id,
    )


def require_participant(application: EventApplication, profile) -> None:
    """The applying store or the event's organizer."""
    if application.store_profile_id == profile.id:
        return
    if application.event.organizer_profile_id == profile.id:
        return
    raise PermissionDeniedError("Not a participant of this application")


def _requirement_type(label: str) -> str | None:
    needle = label.strip().lower()
    for doc_type, doc_label in DOCUMENT_TYPE_LABELS.items():
        if needle in (doc_type, doc_label.lower()):
            return doc_type
    return None


def outstanding_requirements(application: EventApplication) -> list[str]:
    """
    Event requirement labels not yet covered by an uploaded document.

    A requirement is covered by a document of the matching type attached to
    the application or, failing that, to the store's profile. Labels that do
    not name a known document type are never covered automatically; the
    organizer checks them by hand.
    """
    present = {
        doc.document_type
        for doc in record_store.list_records(ApplicationDocument, application_id=application.id)
    }
    present.update(
        doc.document_type
        for doc in profile_service.list_profile_documents(application.store)
    )
    return [
        label
        for label in (application.event.requirements or [])
        if _requirement_type(label) not in present
    ]
