# Overview: Sends documents to an external classifier and normalizes the verdict.

"""
Document Validator

CONTRACT:
- A malformed, unreadable or unsupported document never raises: it yields
  a ValidityJudgment with is_valid=False and the reasons in `issues`.
- ServiceUnavailableError is raised only when the classifier cannot be
  reached or its reply cannot be parsed as a judgment.
- confidence_score is advisory. Nothing here approves or rejects a
  profile or an application; reviewers and organizers decide.

Images and PDFs are sent as-is to the vision model; plain text goes to
the text model. Both are asked for the same JSON shape:

    {
      "extracted_text": "...",
      "validity": {"is_valid": bool, "expiration_date": "YYYY-MM-DD", "issues": [...]},
      "confidence_score": 0.0-1.0
    }
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import openai
from openai import OpenAI

from ..errors import ServiceUnavailableError
from ..models.documents import (
    BUSINESS_LICENSE,
    INSURANCE_CERTIFICATE,
    PRODUCT_PHOTOS,
    TAX_CERTIFICATE,
)
from marche.time_utils import parse_iso_date, to_utc_z, today, utcnow

logger = logging.getLogger(__name__)


IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
FILE_MIME_TYPES = {"application/pdf"}
TEXT_MIME_TYPES = {"text/plain"}

MAX_TEXT_CHARS = 12000


@dataclass
class ValidityJudgment:
    extracted_text: str
    is_valid: bool
    expiration_date: date | None = None
    issues: list[str] = field(default_factory=list)
    confidence_score: float = 0.0
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "extracted_text": self.extracted_text,
            "is_valid": self.is_valid,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "issues": list(self.issues),
            "confidence_score": self.confidence_score,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def rejected(cls, issue: str, **metadata: Any) -> "ValidityJudgment":
        return cls(extracted_text="", is_valid=False, issues=[issue], confidence_score=0.0, metadata=metadata)


BASE_PROMPT = """You review Japanese business documents submitted by vendors and event organizers.
Read the supplied document and judge whether it is valid.

Reply with JSON only, in exactly this shape:
{
  "extracted_text": "the text you read from the document",
  "validity": {
    "is_valid": true or false,
    "expiration_date": "YYYY-MM-DD, only if the document has one",
    "issues": ["each problem you found, if any"]
  },
  "confidence_score": a number between 0.0 and 1.0
}
"""

TYPE_PROMPTS = {
    BUSINESS_LICENSE: """This should be a business license (営業許可証). Check that:
- it is a genuine business license
- it has not expired
- the license number, issue date and holder name are present
- the layout matches an official license""",
    TAX_CERTIFICATE: """This should be a tax payment certificate (納税証明書). Check that:
- it is a genuine tax certificate
- the taxpayer name and the covered fiscal period are present
- it carries an issuing office seal or stamp
- it is recent enough to be accepted (issued within the last year)""",
    INSURANCE_CERTIFICATE: """This should be a liability insurance certificate (PL保険). Check that:
- it is a genuine insurance certificate
- the coverage period has not ended
- the insurer, the insured party and the coverage amount are present""",
    PRODUCT_PHOTOS: """These should be photos of the products a vendor will sell. Check that:
- the image shows food or goods offered for sale
- the image is clear enough to identify the products
Product photos have no expiration date.""",
}


def build_prompt(document_type: str) -> str:
    specific = TYPE_PROMPTS.get(document_type, "Read this document and judge whether it is valid.")
    return f"{BASE_PROMPT}\n{specific}\n"


def build_text_prompt(document_type: str, text: str) -> str:
    return f"{build_prompt(document_type)}\nDocument type: {document_type}\nDocument text:\n{text[:MAX_TEXT_CHARS]}\n"


def _parse_reply(raw: str) -> dict:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", raw, re.DOTALL)
        if not match:
            raise ServiceUnavailableError("Document classifier returned an unparseable response", service="classifier")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError:
            raise ServiceUnavailableError("Document classifier returned an unparseable response", service="classifier")
    if not isinstance(data, dict):
        raise ServiceUnavailableError("Document classifier returned an unparseable response", service="classifier")
    return data


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:  # NaN
        return 0.0
    return min(1.0, max(0.0, score))


def normalize_judgment(data: dict, *, as_of: date | None = None, metadata: dict | None = None) -> ValidityJudgment:
    """
    Turn the classifier's JSON into a ValidityJudgment.

    An expiration date in the past always makes the judgment invalid,
    whatever the classifier said.
    """
    as_of = as_of or today()
    validity = data.get("validity")
    if not isinstance(validity, dict):
        validity = {}

    issues = validity.get("issues") or []
    if not isinstance(issues, (list, tuple)):
        issues = [issues]
    issues = [str(issue).strip() for issue in issues if str(issue).strip()]

    is_valid = validity.get("is_valid") is True

    expiration_date = None
    raw_expiration = validity.get("expiration_date")
    if raw_expiration:
        try:
            expiration_date = parse_iso_date(str(raw_expiration))
        except ValueError:
            issues.append(f"Unreadable expiration date: {raw_expiration}")
            is_valid = False

    if expiration_date and expiration_date < as_of:
        is_valid = False
        issues.append(f"Document expired on {expiration_date.isoformat()}")

    if not is_valid and not issues:
        issues.append("Document could not be verified")

    return ValidityJudgment(
        extracted_text=str(data.get("extracted_text") or ""),
        is_valid=is_valid,
        expiration_date=expiration_date,
        issues=issues,
        confidence_score=_clamp_confidence(data.get("confidence_score")),
        metadata=dict(metadata or {}),
    )


class DocumentClassifier:
    """Interface: classify(content, document_type, mime_type) -> ValidityJudgment."""

    def classify(
        self,
        content: bytes | str,
        document_type: str,
        mime_type: str,
        *,
        file_name: str | None = None,
    ) -> ValidityJudgment:
        raise NotImplementedError


class OpenAIDocumentClassifier(DocumentClassifier):
    def __init__(
        self,
        api_key: str,
        *,
        vision_model: str = "gpt-4o",
        text_model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        client: OpenAI | None = None,
    ):
        if client is None:
            if not api_key:
                raise ValueError("OPENAI_API_KEY is required for document validation")
            client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.client = client
        self.vision_model = vision_model
        self.text_model = text_model

    def classify(
        self,
        content: bytes | str,
        document_type: str,
        mime_type: str,
        *,
        file_name: str | None = None,
    ) -> ValidityJudgment:
        metadata = {
            "document_type": document_type,
            "file_name": file_name,
            "processed_at": to_utc_z(utcnow()),
        }

        if not content:
            return ValidityJudgment.rejected("Empty document", **metadata)

        if isinstance(content, str) or mime_type in TEXT_MIME_TYPES:
            text = content if isinstance(content, str) else content.decode("utf-8", errors="replace")
            model = self.text_model
            messages = [{"role": "user", "content": build_text_prompt(document_type, text)}]
        elif mime_type in IMAGE_MIME_TYPES:
            model = self.vision_model
            encoded = base64.b64encode(content).decode("ascii")
            messages = [{
                "role": "user",
                "content": [
                    {"type": "text", "text": build_prompt(document_type)},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                ],
            }]
        elif mime_type in FILE_MIME_TYPES:
            model = self.vision_model
            encoded = base64.b64encode(content).decode("ascii")
            messages = [{
                "role": "user",
                "content": [
                    {"type": "text", "text": build_prompt(document_type)},
                    {
                        "type": "file",
                        "file": {
                            "filename": file_name or "document.pdf",
                            "file_data": f"data:{mime_type};base64,{encoded}",
                        },
                    },
                ],
            }]
        else:
            return ValidityJudgment.rejected(
                f"Automatic validation is not available for {mime_type} files",
                **metadata,
            )

        metadata["model_used"] = model

        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=1000,
                temperature=0.1,
                response_format={"type": "json_object"},
            )
        except openai.BadRequestError as exc:
            # The API refused the payload itself (corrupt image, unreadable PDF)
            logger.warning("Classifier rejected %s document: %s", document_type, exc)
            return ValidityJudgment.rejected("The document could not be read", **metadata)
        except openai.OpenAIError as exc:
            logger.exception("Document classifier call failed")
            raise ServiceUnavailableError("Document classifier is unavailable", service="classifier") from exc

        choices = getattr(response, "choices", None) or []
        raw = choices[0].message.content if choices else None
        if not raw:
            raise ServiceUnavailableError("Document classifier returned an empty response", service="classifier")

        return normalize_judgment(_parse_reply(raw), metadata=metadata)


def validate_documents(classifier: DocumentClassifier, documents: list[dict]) -> list[ValidityJudgment]:
    """
    Validate several documents; one failure does not stop the batch.

    Each item: {"content", "document_type", "mime_type", "file_name"}.
    A document whose classification fails is reported as invalid with the
    failure recorded in metadata["error"].
    """
    results: list[ValidityJudgment] = []
    for doc in documents:
        try:
            judgment = classifier.classify(
                doc.get("content") or b"",
                doc["document_type"],
                doc.get("mime_type") or "",
                file_name=doc.get("file_name"),
            )
        except ServiceUnavailableError as exc:
            logger.warning("Batch validation failed for %s: %s", doc.get("file_name"), exc.message)
            judgment = ValidityJudgment.rejected(
                "Processing error",
                document_type=doc["document_type"],
                file_name=doc.get("file_name"),
                error=exc.message,
            )
        results.append(judgment)
    return results
