from __future__ import annotations

from ..extensions import db
from marche.time_utils import to_iso_date, to_utc_z


EVENT_STATUS_DRAFT = "draft"
EVENT_STATUS_PUBLISHED = "published"
EVENT_STATUS_CLOSED = "closed"
EVENT_STATUS_CANCELLED = "cancelled"
EVENT_STATUS_COMPLETED = "completed"
EVENT_STATUSES = (
    EVENT_STATUS_DRAFT,
    EVENT_STATUS_PUBLISHED,
    EVENT_STATUS_CLOSED,
    EVENT_STATUS_CANCELLED,
    EVENT_STATUS_COMPLETED,
)

APPLICATION_STATUS_PENDING = "pending"
APPLICATION_STATUS_APPROVED = "approved"
APPLICATION_STATUS_REJECTED = "rejected"
APPLICATION_STATUS_CANCELLED = "cancelled"
APPLICATION_STATUSES = (
    APPLICATION_STATUS_PENDING,
    APPLICATION_STATUS_APPROVED,
    APPLICATION_STATUS_REJECTED,
    APPLICATION_STATUS_CANCELLED,
)


class Event(db.Model):
    """
    Event published by an organizer that stores apply to.

    LIFECYCLE:
    1. DRAFT: Created by the organizer, not visible to stores
    2. PUBLISHED: Listed for stores, accepting applications until the deadline
    3. CLOSED: No longer accepting applications
    4. CANCELLED / COMPLETED: Terminal
    """
    __tablename__ = "events"
    __table_args__ = (
        db.Index("ix_events_status_date", "status", "event_date"),
        db.Index("ix_events_organizer_created", "organizer_profile_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organizer_profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    main_image_url = db.Column(db.String(1024), nullable=True)

    # Schedule
    event_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    start_time = db.Column(db.String(8), nullable=True)  # "HH:MM"
    end_time = db.Column(db.String(8), nullable=True)

    # Venue
    location = db.Column(db.String(255), nullable=True)
    venue_name = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(512), nullable=True)

    max_stores = db.Column(db.Integer, nullable=True)
    fee = db.Column(db.Integer, nullable=False, default=0)  # yen
    category = db.Column(db.String(64), nullable=True)
    contact = db.Column(db.String(255), nullable=True)

    # Labels of the documents each applying store must attach
    requirements = db.Column(db.JSON, nullable=False, default=list)

    is_public = db.Column(db.Boolean, nullable=False, default=True)
    application_deadline = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=EVENT_STATUS_DRAFT, index=True)
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organizer = db.relationship("OrganizerProfile", backref=db.backref("events", lazy=True))

    def __repr__(self) -> str:
        return f"<Event id={self.id} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organizer_profile_id": self.organizer_profile_id,
            "title": self.title,
            "description": self.description,
            "main_image_url": self.main_image_url,
            "event_date": to_iso_date(self.event_date),
            "end_date": to_iso_date(self.end_date),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "location": self.location,
            "venue_name": self.venue_name,
            "address": self.address,
            "max_stores": self.max_stores,
            "fee": self.fee,
            "category": self.category,
            "contact": self.contact,
            "requirements": list(self.requirements or []),
            "is_public": self.is_public,
            "application_deadline": to_utc_z(self.application_deadline),
            "status": self.status,
            "published_at": to_utc_z(self.published_at),
            "closed_at": to_utc_z(self.closed_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class EventApplication(db.Model):
    """
    A store's request to take part in an event.

    LIFECYCLE: PENDING -> APPROVED | REJECTED (terminal). CANCELLED is
    reachable from PENDING only when store cancellation is enabled.

    NOTE: (event_id, store_profile_id) is intentionally not unique at the
    schema level; duplicate policy lives in application_service.
    """
    __tablename__ = "event_applications"
    __table_args__ = (
        db.Index("ix_event_applications_event_status", "event_id", "status"),
        db.Index("ix_event_applications_store", "store_profile_id", "applied_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False)
    store_profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False)

    store_name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    product_description = db.Column(db.Text, nullable=True)

    # booth_size, special_requirements, equipment_needed, additional_info
    application_data = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(16), nullable=False, default=APPLICATION_STATUS_PENDING)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=False)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_by_profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    decision_note = db.Column(db.Text, nullable=True)

    event = db.relationship("Event", backref=db.backref("applications", lazy=True))
    store = db.relationship(
        "StoreProfile",
        foreign_keys=[store_profile_id],
        backref=db.backref("applications", lazy=True),
    )

    def __repr__(self) -> str:
        return f"<EventApplication id={self.id} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "store_profile_id": self.store_profile_id,
            "store_name": self.store_name,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "product_description": self.product_description,
            "application_data": dict(self.application_data or {}),
            "status": self.status,
            "applied_at": to_utc_z(self.applied_at),
            "decided_at": to_utc_z(self.decided_at),
            "decided_by_profile_id": self.decided_by_profile_id,
            "decision_note": self.decision_note,
        }
