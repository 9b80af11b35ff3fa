# Overview: Service-layer operations for platform users.

"""
User Service

Users are created on their first LINE login. The role chosen then is
permanent for normal logins: logging into the organizer app with an
account registered as a store is refused. Changing role is an explicit
re-registration that revokes every session of the old role.
"""

from __future__ import annotations

from ..errors import NotEligibleError, ValidationError
from ..models import TermsAgreement, User
from ..models.users import USER_ROLES
from ..validation import ModelValidationPolicy, enforce_rules_user, validate_payload
from . import record_store, session_service
from .identity_service import IdentityProfile
from marche.time_utils import utcnow


USER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"display_name", "phone", "email", "gender", "age"}),
)


def get_user_by_external_id(external_identity_id: str) -> User | None:
    return record_store.get(User, external_identity_id=external_identity_id)


def get_or_create_user(identity: IdentityProfile, role: str) -> tuple[User, bool]:
    """
    Resolve the platform user for a verified LINE identity.

    Returns (user, created). Refreshes avatar and last_login_at.

    Raises:
        NotEligibleError: the account exists with a different role
        ValidationError: unknown role
    """
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    user = get_user_by_external_id(identity.user_id)
    if user is None:
        user = record_store.create(
            User,
            external_identity_id=identity.user_id,
            role=role,
            display_name=identity.display_name or "LINE user",
            avatar_url=identity.picture_url,
            email=identity.email,
            last_login_at=utcnow(),
        )
        return user, True

    if not user.is_active:
        raise NotEligibleError("This account has been deactivated")

    if user.role != role:
        raise NotEligibleError(
            f"This LINE account is registered as {user.role}; re-register to switch to {role}",
            current=user.to_dict(),
        )

    record_store.update(
        user,
        avatar_url=identity.picture_url or user.avatar_url,
        last_login_at=utcnow(),
    )
    return user, False


def update_user(user: User, payload: dict) -> User:
    patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
    enforce_rules_user(patch)
    if "display_name" in patch and not patch["display_name"]:
        raise ValidationError("display_name cannot be blank")
    return record_store.update(user, **patch)


def reregister_user(user: User, new_role: str, *, confirm: bool) -> User:
    """
    Switch a user's role (re-registration flow).

    Existing profiles are kept; the user simply starts using the other
    kind. Every session of the old role is revoked; the caller issues a
    fresh one.
    """
    if new_role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    if not confirm:
        raise ValidationError("Re-registration must be confirmed")
    if user.role == new_role:
        raise NotEligibleError(f"Already registered as {new_role}", current=user.to_dict())

    record_store.update(user, role=new_role)
    session_service.revoke_all_user_sessions(user.id, reason="Re-registered with a new role")
    return user


def record_terms_agreement(user: User, terms_version: str, ip_address: str | None = None) -> TermsAgreement:
    if not terms_version or not str(terms_version).strip():
        raise ValidationError("terms_version is required")
    return record_store.create(
        TermsAgreement,
        user_id=user.id,
        terms_version=str(terms_version).strip(),
        ip_address=ip_address,
        agreed_at=utcnow(),
    )


def has_agreed_to_terms(user: User, terms_version: str) -> bool:
    return record_store.get(TermsAgreement, user_id=user.id, terms_version=terms_version) is not None
