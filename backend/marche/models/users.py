from __future__ import annotations

from ..extensions import db
from marche.time_utils import to_utc_z


USER_ROLES = ("store", "organizer")


class User(db.Model):
    """
    Platform account keyed by the LINE user id.

    WHY: Identity comes from LINE Login; we never hold passwords. The role
    (store or organizer) is fixed at first login and only changes through
    the explicit re-registration flow (user_service.reregister_user).
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # LINE "sub" claim; stable per LINE provider
    external_identity_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    role = db.Column(db.String(16), nullable=False)  # store | organizer

    display_name = db.Column(db.String(255), nullable=False)
    avatar_url = db.Column(db.String(1024), nullable=True)

    # Registration form details
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    gender = db.Column(db.String(16), nullable=True)  # male | female | other
    age = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_identity_id": self.external_identity_id,
            "role": self.role,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "phone": self.phone,
            "email": self.email,
            "gender": self.gender,
            "age": self.age,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Server-side session issued after a verified LINE login.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout, 2-hour idle timeout
    - The role is captured at login; a role switch needs a new login
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class TermsAgreement(db.Model):
    """Record of a user accepting a given version of the terms of service."""
    __tablename__ = "terms_agreements"
    __table_args__ = (
        db.Index("ix_terms_agreements_user_version", "user_id", "terms_version"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    terms_version = db.Column(db.String(32), nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    agreed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "terms_version": self.terms_version,
            "agreed_at": to_utc_z(self.agreed_at),
        }
