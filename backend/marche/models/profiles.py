from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from marche.time_utils import to_utc_z


PROFILE_KINDS = ("store", "organizer")

VERIFICATION_NOT_SUBMITTED = "not_submitted"
VERIFICATION_PENDING = "pending"
VERIFICATION_APPROVED = "approved"
VERIFICATION_REJECTED = "rejected"
VERIFICATION_STATUSES = (
    VERIFICATION_NOT_SUBMITTED,
    VERIFICATION_PENDING,
    VERIFICATION_APPROVED,
    VERIFICATION_REJECTED,
)


class Profile(db.Model):
    """
    Business-facing record of a store or an organizer.

    Stores and organizers share one table; `kind` is the discriminator and
    StoreProfile / OrganizerProfile are the concrete variants. A user owns
    at most one profile per kind.

    INVARIANT: is_verified is True iff verification_status == "approved".
    Assigning verification_status recomputes is_verified, so both columns
    are always written in the same flush.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "kind", name="uq_profiles_user_kind"),
        db.Index("ix_profiles_kind_status", "kind", "verification_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=True)
    contact_name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(512), nullable=True)
    description = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(1024), nullable=True)
    instagram = db.Column(db.String(255), nullable=True)
    twitter = db.Column(db.String(255), nullable=True)

    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verification_status = db.Column(db.String(16), nullable=False, default=VERIFICATION_NOT_SUBMITTED)
    verification_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verification_decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verification_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("profiles", lazy=True))

    __mapper_args__ = {"polymorphic_on": kind}

    @validates("verification_status")
    def _sync_is_verified(self, key, value):
        if value not in VERIFICATION_STATUSES:
            raise ValueError(f"Invalid verification_status '{value}'")
        self.is_verified = value == VERIFICATION_APPROVED
        return value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} status={self.verification_status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "user_id": self.user_id,
            "name": self.name,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "description": self.description,
            "website": self.website,
            "instagram": self.instagram,
            "twitter": self.twitter,
            "is_verified": self.is_verified,
            "verification_status": self.verification_status,
            "verification_submitted_at": to_utc_z(self.verification_submitted_at),
            "verification_decided_at": to_utc_z(self.verification_decided_at),
            "verification_note": self.verification_note,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StoreProfile(Profile):
    """Vendor store (food truck, stall) that applies to events."""

    business_type = db.Column(db.String(64), nullable=True)
    genre = db.Column(db.String(64), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "store"}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["store_name"] = self.name
        data["business_type"] = self.business_type
        data["genre"] = self.genre
        return data


class OrganizerProfile(Profile):
    """Event organizer that publishes events and decides applications."""

    organization_type = db.Column(db.String(64), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "organizer"}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["organizer_name"] = self.name
        data["organization_type"] = self.organization_type
        return data


PROFILE_CLASSES = {
    "store": StoreProfile,
    "organizer": OrganizerProfile,
}
