# Overview: Flask API routes for verification reviewers (token-protected).

"""
Reviewer API

Used by the back-office reviewer to work through the verification
queue. Protected by the shared REVIEWER_API_TOKEN rather than a LINE
session; reviewers are not platform users.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_reviewer_token
from ..services import profile_service, verification_service
from .common import json_body


review_bp = Blueprint("review", __name__, url_prefix="/api/review")


@review_bp.get("/profiles")
@require_reviewer_token
def list_profiles_route():
    """
    Query: status (default "pending"), kind (store|organizer), limit
    """
    profiles = verification_service.list_profiles_by_status(
        request.args.get("status", "pending"),
        kind=request.args.get("kind") or None,
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"items": [p.to_dict() for p in profiles], "count": len(profiles)})


@review_bp.get("/profiles/<int:profile_id>")
@require_reviewer_token
def get_profile_route(profile_id: int):
    profile = profile_service.get_profile(profile_id)
    documents = profile_service.list_profile_documents(profile)
    return jsonify({
        "profile": profile.to_dict(),
        "documents": [doc.to_dict() for doc in documents],
        "missing_types": verification_service.missing_required_documents(profile, documents),
    })


@review_bp.post("/profiles/<int:profile_id>/decision")
@require_reviewer_token
def decide_profile_route(profile_id: int):
    """
    Request: {"outcome": "approve" | "reject", "note": "..."}

    Error responses:
        400: Unknown outcome
        404: Profile not found
        409: Profile is not pending
    """
    data = json_body()
    profile = profile_service.get_profile(profile_id)
    profile = verification_service.decide_verification(profile, data.get("outcome"), note=data.get("note"))
    current_app.logger.info("Profile %s verification: %s", profile.id, profile.verification_status)
    return jsonify({"profile": profile.to_dict()})
