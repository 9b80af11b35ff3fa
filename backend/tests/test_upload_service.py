"""
Upload orchestration and blob store tests.

Verifies:
- Size boundary (max passes, max+1 fails) and MIME checks
- Document type must belong to the owner kind
- Compensation: a failed record write leaves no blob behind
- Delete removes the record first, then the blob
"""

import pytest

from marche.errors import (
    FileTooLargeError,
    NotFoundError,
    PersistenceError,
    ServiceUnavailableError,
    StorageCleanupError,
    UnsupportedTypeError,
    ValidationError,
)
from marche.models import ApplicationDocument, Document, ProfileDocument
from marche.services import application_service, record_store, upload_service
from marche.services.upload_service import OwnerRef, UploadConstraints, UploadedFile


PDF_BYTES = b"%PDF-1.4 business license"

SMALL = UploadConstraints(max_size_bytes=64, allowed_types=frozenset({"application/pdf", "image/png"}))


def pdf(size=None, name="license.pdf"):
    content = PDF_BYTES if size is None else b"x" * size
    return UploadedFile(file_name=name, content=content, mime_type="application/pdf")


class TestBlobStore:

    def test_put_get_round_trip(self, blob_store):
        path = blob_store.put("documents/tax_certificate/a.pdf", PDF_BYTES, "application/pdf")
        assert blob_store.get(path) == PDF_BYTES
        assert blob_store.list("documents/tax_certificate/") == [path]

    def test_delete(self, blob_store):
        blob_store.put("documents/x/a.pdf", b"1", "application/pdf")
        blob_store.delete("documents/x/a.pdf")
        assert blob_store.list("documents/x/") == []
        assert not blob_store.exists("documents/x/a.pdf")

    def test_put_does_not_overwrite(self, blob_store):
        blob_store.put("documents/x/a.pdf", b"1", "application/pdf")
        with pytest.raises(ValidationError):
            blob_store.put("documents/x/a.pdf", b"2", "application/pdf")
        assert blob_store.get("documents/x/a.pdf") == b"1"

    @pytest.mark.parametrize("path", ["../escape.pdf", "/etc/passwd", "documents/../../x"])
    def test_rejects_path_traversal(self, blob_store, path):
        with pytest.raises(ValidationError):
            blob_store.put(path, b"1", "application/pdf")

    def test_public_url(self, blob_store):
        assert blob_store.public_url("documents/x/a.pdf") == "/files/documents/x/a.pdf"


class TestFileChecks:

    def test_exact_max_size_passes(self, store_profile, blob_store):
        document = upload_service.upload_document(
            pdf(size=SMALL.max_size_bytes), SMALL, OwnerRef("profile", store_profile.id), "business_license"
        )
        assert document.file_size == SMALL.max_size_bytes
        assert blob_store.get(document.file_path) == b"x" * SMALL.max_size_bytes

    def test_one_byte_over_fails(self, store_profile, blob_store):
        with pytest.raises(FileTooLargeError):
            upload_service.upload_document(
                pdf(size=SMALL.max_size_bytes + 1), SMALL, OwnerRef("profile", store_profile.id), "business_license"
            )
        assert blob_store.list() == []

    def test_unsupported_type(self, store_profile, blob_store):
        file = UploadedFile(file_name="notes.txt", content=b"hello", mime_type="text/plain")
        with pytest.raises(UnsupportedTypeError):
            upload_service.upload_document(file, SMALL, OwnerRef("profile", store_profile.id), "business_license")
        assert blob_store.list() == []

    def test_registration_constraints_exclude_word(self, app):
        with app.test_request_context():
            generic = upload_service.generic_constraints()
            registration = upload_service.registration_constraints()

        assert generic.max_size_bytes == 10 * 1024 * 1024
        assert registration.max_size_bytes == 5 * 1024 * 1024
        assert "application/msword" in generic.allowed_types
        assert "application/msword" not in registration.allowed_types

    def test_organizer_cannot_upload_product_photos(self, organizer_profile, blob_store):
        with pytest.raises(ValidationError):
            upload_service.upload_document(
                pdf(), SMALL, OwnerRef("profile", organizer_profile.id), "product_photos"
            )
        assert blob_store.list() == []

    def test_application_rejects_tax_certificate(self, published_event, verified_store):
        application = application_service.create_application(published_event, verified_store, {})
        with pytest.raises(ValidationError):
            upload_service.upload_document(
                pdf(), SMALL, OwnerRef("application", application.id), "tax_certificate"
            )

    def test_missing_owner(self, db_session):
        with pytest.raises(NotFoundError):
            upload_service.upload_document(pdf(), SMALL, OwnerRef("profile", 4040), "business_license")


class TestUpload:

    def test_profile_upload(self, store_profile, blob_store):
        document = upload_service.upload_document(
            pdf(name="営業許可証 2026.pdf"), SMALL, OwnerRef("profile", store_profile.id), "business_license"
        )

        assert isinstance(document, ProfileDocument)
        assert document.profile_id == store_profile.id
        assert document.file_name == "営業許可証 2026.pdf"
        assert document.file_path.startswith("documents/business_license/")
        assert ".." not in document.file_path and " " not in document.file_path
        assert document.ai_processed is False
        assert blob_store.list() == [document.file_path]

    def test_application_upload(self, published_event, verified_store):
        application = application_service.create_application(published_event, verified_store, {})
        document = upload_service.upload_document(
            pdf(), SMALL, OwnerRef("application", application.id), "business_license"
        )
        assert isinstance(document, ApplicationDocument)
        assert document.owner_id == application.id

    def test_same_file_twice_gets_distinct_paths(self, store_profile):
        owner = OwnerRef("profile", store_profile.id)
        first = upload_service.upload_document(pdf(), SMALL, owner, "business_license")
        second = upload_service.upload_document(pdf(), SMALL, owner, "business_license")
        assert first.file_path != second.file_path


class TestCompensation:

    def _fail_create(self, monkeypatch):
        def failing_create(model, **fields):
            raise PersistenceError(f"Failed to create {model.__name__}")
        monkeypatch.setattr(record_store, "create", failing_create)

    def test_failed_record_removes_blob(self, monkeypatch, store_profile, blob_store):
        self._fail_create(monkeypatch)

        with pytest.raises(PersistenceError) as exc:
            upload_service.upload_document(pdf(), SMALL, OwnerRef("profile", store_profile.id), "business_license")

        assert exc.value.cleanup_error is None
        assert blob_store.list("documents/") == []

    def test_failed_cleanup_reports_both_errors(self, monkeypatch, store_profile, blob_store):
        self._fail_create(monkeypatch)

        def failing_delete(path):
            raise ServiceUnavailableError("File storage is unavailable", service="storage")
        monkeypatch.setattr(blob_store, "delete", failing_delete)

        with pytest.raises(PersistenceError) as exc:
            upload_service.upload_document(pdf(), SMALL, OwnerRef("profile", store_profile.id), "business_license")

        assert exc.value.message == "Failed to create ProfileDocument"
        assert "Failed to delete blob documents/business_license/" in exc.value.cleanup_error
        # the leak is reported, and the blob really is still there
        assert len(blob_store.list("documents/")) == 1


class TestDelete:

    def test_delete_record_then_blob(self, db_session, store_profile, blob_store):
        document = upload_service.upload_document(
            pdf(), SMALL, OwnerRef("profile", store_profile.id), "business_license"
        )
        document_id, path = document.id, document.file_path

        upload_service.delete_document(document_id, path)

        assert db_session.get(Document, document_id) is None
        assert blob_store.list() == []

    def test_blob_failure_keeps_record_deleted(self, monkeypatch, db_session, store_profile, blob_store):
        document = upload_service.upload_document(
            pdf(), SMALL, OwnerRef("profile", store_profile.id), "business_license"
        )
        document_id, path = document.id, document.file_path

        def failing_delete(p):
            raise ServiceUnavailableError("File storage is unavailable", service="storage")
        monkeypatch.setattr(blob_store, "delete", failing_delete)

        with pytest.raises(StorageCleanupError) as exc:
            upload_service.delete_document(document_id, path)

        assert exc.value.file_path == path
        assert db_session.get(Document, document_id) is None
        assert blob_store.exists(path)

    def test_path_mismatch(self, store_profile):
        document = upload_service.upload_document(
            pdf(), SMALL, OwnerRef("profile", store_profile.id), "business_license"
        )
        with pytest.raises(ValidationError):
            upload_service.delete_document(document.id, "documents/other.pdf")

    def test_missing_document(self, db_session):
        with pytest.raises(NotFoundError):
            upload_service.delete_document(999, "documents/x.pdf")


class TestDocumentTable:

    def test_owner_type_indexes(self):
        indexes = {index.name: [c.name for c in index.columns] for index in Document.__table__.indexes}

        assert indexes["ix_documents_profile_type"] == ["profile_id", "document_type"]
        assert indexes["ix_documents_application_type"] == ["application_id", "document_type"]
