# Overview: Service-layer operations for store and organizer profiles.

"""
Profile Service

Profiles are created lazily: the first visit to the profile page creates
an empty profile in `not_submitted` state. Verification fields are never
writable through update_profile; only verification_service moves them.
"""

from __future__ import annotations

from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models import Profile, ProfileDocument, User
from ..models.profiles import PROFILE_CLASSES, VERIFICATION_NOT_SUBMITTED
from ..validation import ModelValidationPolicy, validate_payload
from . import record_store


_COMMON_FIELDS = {
    "name", "contact_name", "phone", "email", "address",
    "description", "website", "instagram", "twitter",
}

PROFILE_POLICIES = {
    "store": ModelValidationPolicy(
        writable_fields=frozenset(_COMMON_FIELDS | {"business_type", "genre"}),
    ),
    "organizer": ModelValidationPolicy(
        writable_fields=frozenset(_COMMON_FIELDS | {"organization_type"}),
    ),
}

# Form field names used by the mini-app for the business name
_NAME_ALIASES = {"store": "store_name", "organizer": "organizer_name"}


def _profile_class(kind: str):
    try:
        return PROFILE_CLASSES[kind]
    except KeyError:
        raise ValidationError(f"Unknown profile kind '{kind}'")


def get_profile(profile_id: int, kind: str | None = None) -> Profile:
    model = _profile_class(kind) if kind else Profile
    profile = record_store.get_by_id(model, profile_id)
    if profile is None:
        raise NotFoundError(f"Profile {profile_id} not found")
    return profile


def find_profile_for_user(user: User, kind: str) -> Profile | None:
    return record_store.get(_profile_class(kind), user_id=user.id)


def get_or_create_profile(user: User, kind: str) -> tuple[Profile, bool]:
    """
    Return (profile, created) for the user's profile of the given kind.

    The kind must match the user's role: a store account has no organizer
    profile until it re-registers.
    """
    model = _profile_class(kind)
    if user.role != kind:
        raise PermissionDeniedError(f"A {user.role} account cannot use a {kind} profile")

    profile = record_store.get(model, user_id=user.id)
    if profile is not None:
        return profile, False

    profile = record_store.create(
        model,
        user_id=user.id,
        name=user.display_name,
        phone=user.phone,
        email=user.email,
        verification_status=VERIFICATION_NOT_SUBMITTED,
    )
    return profile, True


def update_profile(profile: Profile, payload: dict) -> Profile:
    payload = dict(payload or {})
    alias = _NAME_ALIASES[profile.kind]
    if alias in payload:
        payload.setdefault("name", payload.pop(alias))

    patch = validate_payload(
        model=type(profile),
        payload=payload,
        policy=PROFILE_POLICIES[profile.kind],
        partial=True,
    )
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")
    return record_store.update(profile, **patch)


def require_owner(profile: Profile, user: User) -> None:
    if profile.user_id != user.id:
        raise PermissionDeniedError("Profile belongs to another user")


def list_profile_documents(profile: Profile) -> list[ProfileDocument]:
    return record_store.list_records(
        ProfileDocument,
        profile_id=profile.id,
        order_by=(ProfileDocument.created_at.desc(), ProfileDocument.id.desc()),
    )


def latest_documents_by_type(documents) -> dict:
    """Newest upload per document type (latest upload wins by convention)."""
    latest: dict = {}
    for doc in documents:
        current = latest.get(doc.document_type)
        if current is None or (doc.created_at, doc.id) > (current.created_at, current.id):
            latest[doc.document_type] = doc
    return latest
