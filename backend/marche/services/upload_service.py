# Overview: Upload orchestration: validate the file, store the blob, persist the record, compensate on failure.

"""
Upload Orchestrator

UPLOAD:
    1. size <= max_size_bytes                 else FileTooLargeError
    2. mime_type in allowed_types             else UnsupportedTypeError
    3. document_type allowed for the owner    else ValidationError
       owner exists                           else NotFoundError
    4. blob put at a generated unique path
    5. Document record created
    6. if 5 fails: delete the blob from 4, then raise PersistenceError.
       If that delete fails too, the PersistenceError carries cleanup_error
       so the leaked blob is reported instead of lost.

DELETE:
    record first, then blob. A blob failure after the record is gone
    raises StorageCleanupError; the record stays deleted and the file is
    an accepted orphan.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass

from flask import current_app

from ..errors import (
    FileTooLargeError,
    NotFoundError,
    PersistenceError,
    ServiceUnavailableError,
    StorageCleanupError,
    UnsupportedTypeError,
    ValidationError,
)
from ..models import ApplicationDocument, Document, EventApplication, Profile, ProfileDocument
from ..models.documents import (
    APPLICATION_DOCUMENT_TYPES,
    ORGANIZER_PROFILE_DOCUMENT_TYPES,
    OWNER_APPLICATION,
    OWNER_PROFILE,
    STORE_PROFILE_DOCUMENT_TYPES,
)
from . import record_store
from .storage import BlobStore

logger = logging.getLogger(__name__)


REGISTRATION_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "application/pdf",
})
GENERIC_MIME_TYPES = REGISTRATION_MIME_TYPES | {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_FILE_NAME_LENGTH = 100


@dataclass(frozen=True)
class UploadedFile:
    file_name: str
    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class UploadConstraints:
    max_size_bytes: int
    allowed_types: frozenset[str]


@dataclass(frozen=True)
class OwnerRef:
    """Target of an upload: ("profile", profile_id) or ("application", application_id)."""
    kind: str
    id: int


def generic_constraints() -> UploadConstraints:
    return UploadConstraints(
        max_size_bytes=current_app.config["MAX_UPLOAD_BYTES"],
        allowed_types=GENERIC_MIME_TYPES,
    )


def registration_constraints() -> UploadConstraints:
    """Tighter limits for documents uploaded during the registration step."""
    return UploadConstraints(
        max_size_bytes=current_app.config["MAX_REGISTRATION_UPLOAD_BYTES"],
        allowed_types=REGISTRATION_MIME_TYPES,
    )


def get_blob_store() -> BlobStore:
    return current_app.extensions["marche.blob_store"]


def sanitize_file_name(file_name: str) -> str:
    base = (file_name or "").replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not safe:
        safe = "file"
    if len(safe) > MAX_FILE_NAME_LENGTH:
        stem, dot, ext = safe.rpartition(".")
        if dot and len(ext) <= 10:
            safe = f"{stem[:MAX_FILE_NAME_LENGTH - len(ext) - 1]}.{ext}"
        else:
            safe = safe[:MAX_FILE_NAME_LENGTH]
    return safe


def generate_blob_path(document_type: str, file_name: str) -> str:
    """documents/{type}/{epoch ms}_{random hex}_{safe name}; unique by construction."""
    stamp = int(time.time() * 1000)
    return f"documents/{document_type}/{stamp}_{secrets.token_hex(4)}_{sanitize_file_name(file_name)}"


def check_file(file: UploadedFile, constraints: UploadConstraints) -> None:
    if file.size > constraints.max_size_bytes:
        raise FileTooLargeError(
            f"File is {file.size} bytes; the limit is {constraints.max_size_bytes} bytes",
            max_size_bytes=constraints.max_size_bytes,
        )
    if file.mime_type not in constraints.allowed_types:
        raise UnsupportedTypeError(
            f"Unsupported file type '{file.mime_type}'",
            allowed_types=sorted(constraints.allowed_types),
        )


def allowed_document_types(owner) -> frozenset[str]:
    if isinstance(owner, EventApplication):
        return APPLICATION_DOCUMENT_TYPES
    if isinstance(owner, Profile):
        if owner.kind == "store":
            return STORE_PROFILE_DOCUMENT_TYPES
        if owner.kind == "organizer":
            return ORGANIZER_PROFILE_DOCUMENT_TYPES
    raise TypeError(f"Unsupported document owner: {type(owner).__name__}")


def resolve_owner(owner_ref: OwnerRef):
    if owner_ref.kind == OWNER_PROFILE:
        owner = record_store.get_by_id(Profile, owner_ref.id)
    elif owner_ref.kind == OWNER_APPLICATION:
        owner = record_store.get_by_id(EventApplication, owner_ref.id)
    else:
        raise ValidationError(f"Unknown owner kind '{owner_ref.kind}'")
    if owner is None:
        raise NotFoundError(f"{owner_ref.kind.capitalize()} {owner_ref.id} not found")
    return owner


def upload_document(
    file: UploadedFile,
    constraints: UploadConstraints,
    owner_ref: OwnerRef,
    document_type: str,
    *,
    blob_store: BlobStore | None = None,
) -> Document:
    """
    Store an uploaded file and record it against its owner.

    Returns the persisted ProfileDocument or ApplicationDocument.
    """
    check_file(file, constraints)

    owner = resolve_owner(owner_ref)
    allowed = allowed_document_types(owner)
    if document_type not in allowed:
        raise ValidationError(
            f"Document type '{document_type}' is not accepted for this {owner_ref.kind}",
            allowed_types=sorted(allowed),
        )

    blob_store = blob_store or get_blob_store()
    path = blob_store.put(generate_blob_path(document_type, file.file_name), file.content, file.mime_type)

    fields = {
        "document_type": document_type,
        "file_name": file.file_name,
        "file_path": path,
        "file_size": file.size,
        "mime_type": file.mime_type,
        "ai_processed": False,
    }
    try:
        if owner_ref.kind == OWNER_PROFILE:
            return record_store.create(ProfileDocument, profile_id=owner.id, **fields)
        return record_store.create(ApplicationDocument, application_id=owner.id, **fields)
    except PersistenceError as exc:
        logger.warning("Document record for %s not saved; removing blob", path)
        try:
            blob_store.delete(path)
        except (ServiceUnavailableError, OSError) as cleanup_exc:
            logger.error("Orphaned blob %s: cleanup after failed upload also failed", path)
            raise PersistenceError(
                exc.message,
                cleanup_error=f"Failed to delete blob {path}: {cleanup_exc}",
                file_path=path,
            ) from exc
        raise


def delete_document(document_id: int, file_path: str, *, blob_store: BlobStore | None = None) -> None:
    """
    Delete a document record, then its blob.

    Raises:
        NotFoundError: no such document
        ValidationError: file_path does not belong to the document
        StorageCleanupError: record deleted, blob left behind
    """
    document = record_store.get_by_id(Document, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    if document.file_path != file_path:
        raise ValidationError("file_path does not match the document")

    record_store.delete(document)

    blob_store = blob_store or get_blob_store()
    try:
        blob_store.delete(file_path)
    except (ServiceUnavailableError, OSError) as exc:
        logger.error("Document %s deleted but blob %s remains", document_id, file_path)
        raise StorageCleanupError(
            f"Document {document_id} was deleted but its file could not be removed",
            file_path=file_path,
        ) from exc
