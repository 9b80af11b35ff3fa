"""
Document validator tests (OpenAI client mocked).

Verifies:
- Malformed or unreadable documents yield is_valid=False with issues, never raise
- Unreachable classifier / unparseable reply raise ServiceUnavailableError
- Expired documents are forced invalid; confidence is clamped to [0, 1]
- Stored documents get ai_processed / ai_validity without touching statuses
"""

import json
from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from marche.errors import ServiceUnavailableError
from marche.services import document_service, upload_service
from marche.services.document_validator import (
    OpenAIDocumentClassifier,
    normalize_judgment,
    validate_documents,
)
from marche.services.upload_service import OwnerRef, UploadedFile


OPENAI_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def reply(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_classifier(*replies, side_effect=None):
    client = MagicMock()
    if side_effect is not None:
        client.chat.completions.create.side_effect = side_effect
    else:
        client.chat.completions.create.side_effect = [reply(r) for r in replies]
    return OpenAIDocumentClassifier("test-key", client=client), client


VALID_LICENSE = json.dumps({
    "extracted_text": "営業許可証 第123号",
    "validity": {"is_valid": True, "expiration_date": "2099-03-31", "issues": []},
    "confidence_score": 0.92,
})


class TestNormalizeJudgment:

    def test_valid(self):
        judgment = normalize_judgment(json.loads(VALID_LICENSE), as_of=date(2026, 1, 1))
        assert judgment.is_valid is True
        assert judgment.expiration_date == date(2099, 3, 31)
        assert judgment.issues == []
        assert judgment.confidence_score == 0.92

    def test_expired_forced_invalid(self):
        data = {"validity": {"is_valid": True, "expiration_date": "2025-12-31"}, "confidence_score": 0.9}
        judgment = normalize_judgment(data, as_of=date(2026, 1, 1))
        assert judgment.is_valid is False
        assert judgment.issues == ["Document expired on 2025-12-31"]

    def test_expires_today_still_valid(self):
        data = {"validity": {"is_valid": True, "expiration_date": "2026-01-01"}}
        assert normalize_judgment(data, as_of=date(2026, 1, 1)).is_valid is True

    @pytest.mark.parametrize("raw,expected", [(1.7, 1.0), (-0.2, 0.0), ("0.5", 0.5), ("high", 0.0), (None, 0.0)])
    def test_confidence_clamped(self, raw, expected):
        judgment = normalize_judgment({"validity": {"is_valid": False}, "confidence_score": raw})
        assert judgment.confidence_score == expected

    def test_invalid_without_issues_gets_one(self):
        judgment = normalize_judgment({"validity": {"is_valid": False}})
        assert judgment.issues == ["Document could not be verified"]

    @pytest.mark.parametrize("raw,expected", [(5, ["5"]), ("blurry photo", ["blurry photo"]), ({"seal": "missing"}, ["{'seal': 'missing'}"])])
    def test_issues_of_any_shape(self, raw, expected):
        judgment = normalize_judgment({"validity": {"is_valid": False, "issues": raw}})
        assert judgment.issues == expected

    def test_truthy_non_bool_is_not_valid(self):
        judgment = normalize_judgment({"validity": {"is_valid": "yes"}})
        assert judgment.is_valid is False

    def test_bad_expiration_date(self):
        judgment = normalize_judgment({"validity": {"is_valid": True, "expiration_date": "next spring"}})
        assert judgment.is_valid is False
        assert "Unreadable expiration date: next spring" in judgment.issues


class TestOpenAIDocumentClassifier:

    def test_image_goes_to_vision_model(self):
        classifier, client = make_classifier(VALID_LICENSE)

        judgment = classifier.classify(b"\x89PNG...", "business_license", "image/png", file_name="license.png")

        assert judgment.is_valid is True
        assert judgment.metadata["model_used"] == "gpt-4o"
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        parts = kwargs["messages"][0]["content"]
        assert parts[1]["image_url"]["url"].startswith("data:image/png;base64,")
        assert "営業許可証" in parts[0]["text"]

    def test_pdf_sent_as_file(self):
        classifier, client = make_classifier(VALID_LICENSE)

        classifier.classify(b"%PDF-1.4", "tax_certificate", "application/pdf", file_name="tax.pdf")

        parts = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert parts[1]["type"] == "file"
        assert parts[1]["file"]["filename"] == "tax.pdf"

    def test_text_goes_to_text_model(self):
        classifier, client = make_classifier(VALID_LICENSE)

        judgment = classifier.classify("License no. 123, valid until 2099", "business_license", "text/plain")

        assert judgment.metadata["model_used"] == "gpt-4o-mini"
        prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "License no. 123" in prompt

    def test_unsupported_mime_is_invalid_not_error(self):
        classifier, client = make_classifier()

        judgment = classifier.classify(b"PK...", "business_license", "application/msword")

        assert judgment.is_valid is False
        assert judgment.issues
        client.chat.completions.create.assert_not_called()

    def test_empty_document(self):
        classifier, client = make_classifier()
        judgment = classifier.classify(b"", "business_license", "image/png")
        assert judgment.is_valid is False
        assert judgment.issues == ["Empty document"]

    def test_unreadable_document_is_invalid(self):
        error = openai.BadRequestError(
            "Invalid image",
            response=httpx.Response(400, request=OPENAI_REQUEST),
            body=None,
        )
        classifier, _ = make_classifier(side_effect=error)

        judgment = classifier.classify(b"garbage", "business_license", "image/jpeg")

        assert judgment.is_valid is False
        assert judgment.issues == ["The document could not be read"]

    def test_unreachable_raises(self):
        classifier, _ = make_classifier(side_effect=openai.APIConnectionError(request=OPENAI_REQUEST))

        with pytest.raises(ServiceUnavailableError) as exc:
            classifier.classify(b"\x89PNG", "business_license", "image/png")
        assert exc.value.service == "classifier"
        assert exc.value.to_dict()["retryable"] is True

    def test_unparseable_reply_raises(self):
        classifier, _ = make_classifier("I cannot help with that.")
        with pytest.raises(ServiceUnavailableError):
            classifier.classify(b"\x89PNG", "business_license", "image/png")

    def test_json_wrapped_in_prose_is_parsed(self):
        classifier, _ = make_classifier(f"Here you go:\n```json\n{VALID_LICENSE}\n```")
        judgment = classifier.classify(b"\x89PNG", "business_license", "image/png")
        assert judgment.is_valid is True

    def test_empty_reply_raises(self):
        classifier, _ = make_classifier("")
        with pytest.raises(ServiceUnavailableError):
            classifier.classify(b"\x89PNG", "business_license", "image/png")


class TestBatch:

    def test_one_failure_does_not_stop_batch(self):
        classifier, _ = make_classifier(
            side_effect=[reply(VALID_LICENSE), openai.APIConnectionError(request=OPENAI_REQUEST)]
        )

        results = validate_documents(classifier, [
            {"content": b"\x89PNG", "document_type": "business_license", "mime_type": "image/png", "file_name": "a.png"},
            {"content": b"\x89PNG", "document_type": "tax_certificate", "mime_type": "image/png", "file_name": "b.png"},
        ])

        assert [r.is_valid for r in results] == [True, False]
        assert results[1].issues == ["Processing error"]
        assert results[1].metadata["file_name"] == "b.png"


class TestValidateStoredDocument:

    def test_verdict_stored_and_status_untouched(self, store_profile):
        document = upload_service.upload_document(
            UploadedFile("license.png", b"\x89PNG image", "image/png"),
            upload_service.generic_constraints(),
            OwnerRef("profile", store_profile.id),
            "business_license",
        )
        classifier, client = make_classifier(VALID_LICENSE)

        judgment = document_service.validate_document(document, classifier=classifier)

        assert judgment.is_valid is True
        assert document.ai_processed is True
        assert document.ai_validity["is_valid"] is True
        assert document.ai_validity["expiration_date"] == "2099-03-31"
        assert store_profile.verification_status == "not_submitted"
        assert store_profile.is_verified is False

    def test_classifier_not_configured(self, app, monkeypatch, store_profile):
        monkeypatch.setitem(app.extensions, "marche.classifier", None)
        document = upload_service.upload_document(
            UploadedFile("license.png", b"\x89PNG image", "image/png"),
            upload_service.generic_constraints(),
            OwnerRef("profile", store_profile.id),
            "business_license",
        )

        with pytest.raises(ServiceUnavailableError):
            document_service.validate_document(document)
        assert document.ai_processed is False

    def test_batch_continues_past_missing_file(self, store_profile, blob_store):
        owner = OwnerRef("profile", store_profile.id)
        constraints = upload_service.generic_constraints()
        present = upload_service.upload_document(
            UploadedFile("license.png", b"\x89PNG image", "image/png"), constraints, owner, "business_license"
        )
        lost = upload_service.upload_document(
            UploadedFile("tax.png", b"\x89PNG image", "image/png"), constraints, owner, "tax_certificate"
        )
        blob_store.delete(lost.file_path)
        classifier, client = make_classifier(VALID_LICENSE)

        results = document_service.validate_document_batch([lost, present], classifier=classifier)

        assert [r["document_id"] for r in results] == [lost.id, present.id]
        assert [r["is_valid"] for r in results] == [False, True]
        assert results[0]["issues"] == ["File is missing from storage"]
        assert lost.ai_processed is True
        assert present.ai_processed is True
        assert client.chat.completions.create.call_count == 1
