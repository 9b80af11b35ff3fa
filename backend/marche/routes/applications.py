# Overview: Flask API routes for event applications (store listing, organizer decisions).

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_role
from ..services import application_service, document_service
from .common import current_profile, json_body


applications_bp = Blueprint("applications", __name__, url_prefix="/api/applications")


@applications_bp.get("/mine")
@require_auth
@require_role("store")
def list_my_applications_route():
    applications = application_service.list_applications_for_store(current_profile())
    items = []
    for application in applications:
        data = application.to_dict()
        data["event"] = application.event.to_dict()
        items.append(data)
    return jsonify({"items": items, "count": len(items)})


@applications_bp.get("/<int:application_id>")
@require_auth
def get_application_route(application_id: int):
    """
    Application detail for the applying store or the event's organizer.

    Includes attached documents and the event requirements not yet covered.
    """
    application = application_service.get_application(application_id)
    application_service.require_participant(application, current_profile())
    return jsonify({
        "application": application.to_dict(),
        "event": application.event.to_dict(),
        "documents": [d.to_dict() for d in document_service.list_application_documents(application)],
        "outstanding_requirements": application_service.outstanding_requirements(application),
    })


@applications_bp.post("/<int:application_id>/decision")
@require_auth
@require_role("organizer")
def decide_application_route(application_id: int):
    """
    Request: {"outcome": "approve" | "reject", "note": "..."}

    Repeating the decision already taken returns 200 with the unchanged
    application.

    Error responses:
        403: Not the event's organizer
        409: Already decided differently, or the event is full
    """
    data = json_body()
    application = application_service.decide_application(
        application_service.get_application(application_id),
        data.get("outcome"),
        current_profile(),
        note=data.get("note"),
    )
    return jsonify({"application": application.to_dict()})


@applications_bp.post("/<int:application_id>/cancel")
@require_auth
@require_role("store")
def cancel_application_route(application_id: int):
    application = application_service.cancel_application(
        application_service.get_application(application_id),
        current_profile(),
    )
    return jsonify({"application": application.to_dict()})
