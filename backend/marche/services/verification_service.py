# Overview: Service-layer operations for profile verification; encapsulates the verification state machine.

"""
Profile Verification Service

================================================================================
PURPOSE: Decide when a store or organizer profile counts as trusted
================================================================================

STATE MACHINE:
    NOT_SUBMITTED -> PENDING -> APPROVED
                        |
                        +----> REJECTED -> PENDING (resubmission)

    NOT_SUBMITTED: Profile exists, documents may be uploaded
    PENDING:       Submitted with every required document, awaiting a reviewer
    APPROVED:      Reviewer accepted the documents; is_verified = True
    REJECTED:      Reviewer refused; the owner may upload again and resubmit

RULES:
1. Submission requires every document type in REQUIRED_DOCUMENTS for the kind
2. Only a reviewer moves PENDING -> APPROVED / REJECTED
3. APPROVED is final for this flow (no re-review path)
4. is_verified and verification_status are written together in one commit
5. A refused transition leaves the stored profile untouched

The classifier verdicts stored on documents are advisory and never drive
these transitions.
================================================================================
"""

from __future__ import annotations

from typing import Iterable

from ..errors import NotEligibleError, ValidationError
from ..models import OrganizerProfile, Profile, StoreProfile
from ..models.documents import BUSINESS_LICENSE, TAX_CERTIFICATE
from ..models.profiles import (
    VERIFICATION_APPROVED,
    VERIFICATION_NOT_SUBMITTED,
    VERIFICATION_PENDING,
    VERIFICATION_REJECTED,
    VERIFICATION_STATUSES,
)
from . import profile_service, record_store
from marche.time_utils import utcnow


STORE_REQUIRED_DOCUMENTS = frozenset({BUSINESS_LICENSE, TAX_CERTIFICATE})
ORGANIZER_REQUIRED_DOCUMENTS = frozenset({BUSINESS_LICENSE, TAX_CERTIFICATE})

OUTCOME_APPROVE = "approve"
OUTCOME_REJECT = "reject"
_OUTCOME_STATUS = {
    OUTCOME_APPROVE: VERIFICATION_APPROVED,
    OUTCOME_REJECT: VERIFICATION_REJECTED,
}

VALID_TRANSITIONS = {
    (VERIFICATION_NOT_SUBMITTED, VERIFICATION_PENDING),
    (VERIFICATION_REJECTED, VERIFICATION_PENDING),
    (VERIFICATION_PENDING, VERIFICATION_APPROVED),
    (VERIFICATION_PENDING, VERIFICATION_REJECTED),
}


def required_documents_for(profile: Profile) -> frozenset[str]:
    if isinstance(profile, StoreProfile):
        return STORE_REQUIRED_DOCUMENTS
    if isinstance(profile, OrganizerProfile):
        return ORGANIZER_REQUIRED_DOCUMENTS
    raise TypeError(f"Unsupported profile variant: {type(profile).__name__}")


def can_transition(from_status: str, to_status: str) -> bool:
    for status in (from_status, to_status):
        if status not in VERIFICATION_STATUSES:
            raise ValidationError(f"Invalid verification status '{status}'")
    return (from_status, to_status) in VALID_TRANSITIONS


def missing_required_documents(profile: Profile, uploaded_documents: Iterable) -> list[str]:
    """
    Required document types absent from uploaded_documents.

    uploaded_documents may hold Document records or plain type strings.
    """
    present = {
        doc if isinstance(doc, str) else doc.document_type
        for doc in uploaded_documents
    }
    return sorted(required_documents_for(profile) - present)


def submit_for_verification(profile: Profile, uploaded_documents: Iterable | None = None) -> Profile:
    """
    Submit a profile for review (NOT_SUBMITTED | REJECTED -> PENDING).

    Args:
        profile: Profile to submit
        uploaded_documents: Documents to check; defaults to the profile's stored documents

    Raises:
        NotEligibleError: Profile is already pending or approved
        ValidationError: Required document types are missing (listed in .missing)
    """
    if not can_transition(profile.verification_status, VERIFICATION_PENDING):
        raise NotEligibleError(
            f"Cannot submit profile {profile.id} for verification: "
            f"current status is '{profile.verification_status}'",
            current=profile.to_dict(),
        )

    if uploaded_documents is None:
        uploaded_documents = profile_service.list_profile_documents(profile)

    missing = missing_required_documents(profile, uploaded_documents)
    if missing:
        raise ValidationError(
            f"Missing required documents: {', '.join(missing)}",
            missing=missing,
            current=profile.to_dict(),
        )

    return record_store.update(
        profile,
        verification_status=VERIFICATION_PENDING,
        verification_submitted_at=utcnow(),
        verification_decided_at=None,
        verification_note=None,
    )


def decide_verification(profile: Profile, outcome: str, *, note: str | None = None) -> Profile:
    """
    Reviewer decision (PENDING -> APPROVED | REJECTED).

    approve sets is_verified=True, reject sets is_verified=False; both in
    the same commit as the status.

    Raises:
        ValidationError: outcome is not "approve" or "reject"
        NotEligibleError: profile is not PENDING
    """
    target = _OUTCOME_STATUS.get(outcome)
    if target is None:
        raise ValidationError(f"outcome must be one of: {', '.join(sorted(_OUTCOME_STATUS))}")

    if not can_transition(profile.verification_status, target):
        raise NotEligibleError(
            f"Cannot {outcome} profile {profile.id}: "
            f"current status is '{profile.verification_status}', must be '{VERIFICATION_PENDING}'",
            current=profile.to_dict(),
        )

    return record_store.update(
        profile,
        verification_status=target,
        verification_decided_at=utcnow(),
        verification_note=(note or "").strip() or None,
    )


def list_profiles_by_status(
    status: str = VERIFICATION_PENDING,
    *,
    kind: str | None = None,
    limit: int = 200,
) -> list[Profile]:
    """
    Reviewer queue.

    USAGE EXAMPLES:
    - Pending review: list_profiles_by_status("pending")
    - Rejected stores: list_profiles_by_status("rejected", kind="store")
    """
    if status not in VERIFICATION_STATUSES:
        raise ValidationError(f"Invalid verification status '{status}'")

    equals = {"verification_status": status}
    if kind is not None:
        if kind not in ("store", "organizer"):
            raise ValidationError(f"Unknown profile kind '{kind}'")
        equals["kind"] = kind

    return record_store.list_records(
        Profile,
        order_by=(Profile.verification_submitted_at.asc(), Profile.id.asc()),
        limit=limit,
        **equals,
    )
