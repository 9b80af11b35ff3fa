# Overview: Document listing, ownership checks and AI validation of stored documents.

from __future__ import annotations

import logging

from flask import current_app

from ..errors import NotFoundError, PermissionDeniedError, ServiceUnavailableError
from ..models import ApplicationDocument, Document, ProfileDocument
from . import record_store
from .document_validator import DocumentClassifier, ValidityJudgment, validate_documents
from .upload_service import get_blob_store

logger = logging.getLogger(__name__)


def get_document(document_id: int) -> Document:
    document = record_store.get_by_id(Document, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    return document


def list_application_documents(application) -> list[ApplicationDocument]:
    return record_store.list_records(
        ApplicationDocument,
        order_by=(ApplicationDocument.created_at.desc(), ApplicationDocument.id.desc()),
        application_id=application.id,
    )


def require_document_access(document: Document, profile) -> None:
    """
    Profile documents: the owning profile only.
    Application documents: the applying store or the event's organizer.
    """
    if isinstance(document, ProfileDocument):
        if document.profile_id == profile.id:
            return
    elif isinstance(document, ApplicationDocument):
        application = document.application
        if profile.id in (application.store_profile_id, application.event.organizer_profile_id):
            return
    raise PermissionDeniedError("Document belongs to another account")


def require_document_delete(document: Document, profile) -> None:
    """
    Only the uploader's side may delete: the owning profile, or the store
    that made the application. The event's organizer can read application
    documents but not remove them.
    """
    if isinstance(document, ProfileDocument):
        owner_id = document.profile_id
    else:
        owner_id = document.application.store_profile_id
    if owner_id != profile.id:
        raise PermissionDeniedError("Only the uploading account can delete this document")


def get_classifier() -> DocumentClassifier:
    classifier = current_app.extensions.get("marche.classifier")
    if classifier is None:
        raise ServiceUnavailableError("Document validation is not configured", service="classifier")
    return classifier


def _read_blob(document: Document) -> bytes:
    try:
        return get_blob_store().get(document.file_path)
    except FileNotFoundError:
        raise NotFoundError(f"File for document {document.id} is missing from storage")


def validate_document(document: Document, *, classifier: DocumentClassifier | None = None) -> ValidityJudgment:
    """
    Run the classifier on a stored document and keep the verdict on the record.

    The verdict is advisory; it does not change any verification or
    application status.
    """
    classifier = classifier or get_classifier()
    content = _read_blob(document)
    judgment = classifier.classify(
        content,
        document.document_type,
        document.mime_type,
        file_name=document.file_name,
    )
    record_store.update(document, ai_processed=True, ai_validity=judgment.to_dict())
    logger.info(
        "Validated document %s (%s): valid=%s confidence=%.2f",
        document.id, document.document_type, judgment.is_valid, judgment.confidence_score,
    )
    return judgment


def validate_document_batch(documents: list[Document], *, classifier: DocumentClassifier | None = None) -> list[dict]:
    """
    Validate several stored documents. A classifier outage or a file missing
    from storage is recorded as an invalid verdict for that document and
    the batch goes on.
    """
    classifier = classifier or get_classifier()
    judgments: dict[int, ValidityJudgment] = {}
    readable, payloads = [], []
    for doc in documents:
        try:
            content = _read_blob(doc)
        except NotFoundError as exc:
            logger.warning("Batch validation skipped document %s: %s", doc.id, exc.message)
            judgments[doc.id] = ValidityJudgment.rejected(
                "File is missing from storage",
                document_type=doc.document_type,
                file_name=doc.file_name,
                error=exc.message,
            )
            continue
        readable.append(doc)
        payloads.append({
            "content": content,
            "document_type": doc.document_type,
            "mime_type": doc.mime_type,
            "file_name": doc.file_name,
        })

    for doc, judgment in zip(readable, validate_documents(classifier, payloads)):
        judgments[doc.id] = judgment

    results = []
    for doc in documents:
        judgment = judgments[doc.id]
        record_store.update(doc, ai_processed=True, ai_validity=judgment.to_dict())
        results.append({"document_id": doc.id, **judgment.to_dict()})
    return results
