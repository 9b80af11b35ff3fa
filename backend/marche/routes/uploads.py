# Overview: Flask API routes for document uploads and deletion.

"""
Upload API routes

POST /api/uploads (multipart/form-data)
    file:           the document
    document_type:  business_license | tax_certificate | insurance_certificate | product_photos
    owner_kind:     profile (default) | application
    owner_id:       application id; ignored for profile uploads (always the caller's profile)
    registration:   "true" for registration-step uploads (5 MB, no Word files)

DELETE /api/uploads/<document_id>
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..errors import PermissionDeniedError, ValidationError
from ..models.documents import OWNER_APPLICATION, OWNER_PROFILE
from ..services import application_service, document_service, upload_service
from ..services.upload_service import OwnerRef, UploadedFile
from .common import current_profile


uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/uploads")


def _owner_ref(profile) -> OwnerRef:
    owner_kind = request.form.get("owner_kind") or OWNER_PROFILE
    if owner_kind == OWNER_PROFILE:
        return OwnerRef(OWNER_PROFILE, profile.id)
    if owner_kind == OWNER_APPLICATION:
        owner_id = request.form.get("owner_id", type=int)
        if owner_id is None:
            raise ValidationError("owner_id is required for application uploads", missing=["owner_id"])
        application = application_service.get_application(owner_id)
        if application.store_profile_id != profile.id:
            raise PermissionDeniedError("Application belongs to another store")
        return OwnerRef(OWNER_APPLICATION, application.id)
    raise ValidationError(f"owner_kind must be '{OWNER_PROFILE}' or '{OWNER_APPLICATION}'")


@uploads_bp.post("")
@require_auth
def upload_route():
    """
    Response 201: {"document": {...}, "public_url": "..."}

    Error responses:
        400: Missing file/document_type, or type not accepted for the owner
        413: File too large
        415: File type not allowed
        500: Record not saved (blob removed; cleanup_error if removal failed too)
        503: Storage unavailable
    """
    storage_file = request.files.get("file")
    document_type = request.form.get("document_type")
    missing = [name for name, value in (("file", storage_file), ("document_type", document_type)) if not value]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

    profile = current_profile()
    owner_ref = _owner_ref(profile)

    registration = request.form.get("registration", "").strip().lower() in ("1", "true", "yes")
    constraints = (
        upload_service.registration_constraints() if registration else upload_service.generic_constraints()
    )

    uploaded = UploadedFile(
        file_name=storage_file.filename or "file",
        content=storage_file.read(),
        mime_type=storage_file.mimetype or "application/octet-stream",
    )
    document = upload_service.upload_document(uploaded, constraints, owner_ref, document_type)
    current_app.logger.info(
        "Uploaded %s for %s %s (%d bytes)",
        document_type, owner_ref.kind, owner_ref.id, uploaded.size,
    )
    return jsonify({
        "document": document.to_dict(),
        "public_url": upload_service.get_blob_store().public_url(document.file_path),
    }), 201


@uploads_bp.delete("/<int:document_id>")
@require_auth
def delete_upload_route(document_id: int):
    """
    Delete a document record and then its file.

    Error responses:
        403: Not the uploading profile or applying store
        404: Document not found
        500: Record deleted but the file remains (storage_cleanup_failed)
    """
    document = document_service.get_document(document_id)
    document_service.require_document_delete(document, current_profile())
    upload_service.delete_document(document.id, document.file_path)
    return jsonify({"message": f"Document {document_id} deleted"})
