# Overview: Flask API routes for store/organizer profiles and verification submission.

"""
Profile API routes

The <kind> segment must match the role of the session: a store session
only sees /api/profiles/store/..., an organizer session only
/api/profiles/organizer/....

Verification fields (is_verified, verification_status, ...) are read-only
here. Submission goes through POST .../verification; decisions come from
the reviewer API or the CLI.
"""

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..errors import PermissionDeniedError
from ..services import profile_service, verification_service
from .common import json_body


profiles_bp = Blueprint("profiles", __name__, url_prefix="/api/profiles")


def _own_profile(kind: str):
    if g.role != kind:
        raise PermissionDeniedError(f"This session is for a {g.role} account")
    return profile_service.get_or_create_profile(g.current_user, kind)


def _documents_summary(profile) -> dict:
    documents = profile_service.list_profile_documents(profile)
    latest = profile_service.latest_documents_by_type(documents)
    return {
        "documents": [doc.to_dict() for doc in documents],
        "latest_by_type": {doc_type: doc.to_dict() for doc_type, doc in latest.items()},
        "required_types": sorted(verification_service.required_documents_for(profile)),
        "missing_types": verification_service.missing_required_documents(profile, documents),
    }


@profiles_bp.get("/<any(store, organizer):kind>/me")
@require_auth
def get_profile_route(kind: str):
    """
    Return the caller's profile, creating an empty one on first visit.

    Response: {"profile": {...}, "created": bool}
    """
    profile, created = _own_profile(kind)
    return jsonify({"profile": profile.to_dict(), "created": created}), 201 if created else 200


@profiles_bp.put("/<any(store, organizer):kind>/me")
@require_auth
def update_profile_route(kind: str):
    profile, _ = _own_profile(kind)
    profile = profile_service.update_profile(profile, json_body())
    return jsonify({"profile": profile.to_dict()})


@profiles_bp.get("/<any(store, organizer):kind>/me/documents")
@require_auth
def list_profile_documents_route(kind: str):
    profile, _ = _own_profile(kind)
    return jsonify(_documents_summary(profile))


@profiles_bp.post("/<any(store, organizer):kind>/me/verification")
@require_auth
def submit_verification_route(kind: str):
    """
    Submit the profile for verification (NOT_SUBMITTED | REJECTED -> PENDING).

    Error responses:
        400: Required documents missing ("missing" lists the types)
        409: Already pending or approved
    """
    profile, _ = _own_profile(kind)
    profile = verification_service.submit_for_verification(profile)
    return jsonify({"profile": profile.to_dict()})
