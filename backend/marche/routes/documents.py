# Overview: Flask API routes for document detail and AI validation.

from flask import Blueprint, jsonify

from ..decorators import require_auth
from ..errors import ValidationError
from ..services import document_service, upload_service
from .common import current_profile, json_body


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.get("/<int:document_id>")
@require_auth
def get_document_route(document_id: int):
    document = document_service.get_document(document_id)
    document_service.require_document_access(document, current_profile())
    return jsonify({
        "document": document.to_dict(),
        "public_url": upload_service.get_blob_store().public_url(document.file_path),
    })


@documents_bp.post("/<int:document_id>/validate")
@require_auth
def validate_document_route(document_id: int):
    """
    Run the AI classifier on a stored document.

    The verdict is stored on the document and returned. It is advisory:
    verification and application statuses are not touched.

    Error responses:
        503: Classifier unreachable, unparseable reply, or not configured (retryable)
    """
    document = document_service.get_document(document_id)
    document_service.require_document_access(document, current_profile())
    judgment = document_service.validate_document(document)
    return jsonify({"document": document.to_dict(), "validity": judgment.to_dict()})


@documents_bp.post("/validate-batch")
@require_auth
def validate_batch_route():
    """
    Request: {"document_ids": [1, 2, 3]}

    A classifier failure on one document is reported as an invalid verdict
    ("Processing error") for that document only.
    """
    ids = json_body().get("document_ids")
    if not isinstance(ids, list) or not ids or not all(isinstance(i, int) and not isinstance(i, bool) for i in ids):
        raise ValidationError("document_ids must be a non-empty list of integers")

    profile = current_profile()
    documents = []
    for document_id in ids:
        document = document_service.get_document(document_id)
        document_service.require_document_access(document, profile)
        documents.append(document)

    results = document_service.validate_document_batch(documents)
    return jsonify({"items": results, "count": len(results)})
