from __future__ import annotations

from ..extensions import db
from marche.time_utils import to_utc_z


# Closed document-type enums per owner kind
BUSINESS_LICENSE = "business_license"
TAX_CERTIFICATE = "tax_certificate"
INSURANCE_CERTIFICATE = "insurance_certificate"
PRODUCT_PHOTOS = "product_photos"

STORE_PROFILE_DOCUMENT_TYPES = frozenset({
    BUSINESS_LICENSE,
    TAX_CERTIFICATE,
    INSURANCE_CERTIFICATE,
    PRODUCT_PHOTOS,
})
ORGANIZER_PROFILE_DOCUMENT_TYPES = frozenset({
    BUSINESS_LICENSE,
    TAX_CERTIFICATE,
    INSURANCE_CERTIFICATE,
})
APPLICATION_DOCUMENT_TYPES = frozenset({
    BUSINESS_LICENSE,
    PRODUCT_PHOTOS,
})

DOCUMENT_TYPE_LABELS = {
    BUSINESS_LICENSE: "Business license",
    TAX_CERTIFICATE: "Tax certificate",
    INSURANCE_CERTIFICATE: "Liability insurance certificate",
    PRODUCT_PHOTOS: "Product photos",
}

OWNER_PROFILE = "profile"
OWNER_APPLICATION = "application"


class Document(db.Model):
    """
    Uploaded file metadata. The bytes live in the blob store at file_path.

    Documents belong either to a profile (verification documents) or to an
    application (event-specific documents); `owner_kind` is the
    discriminator. Several uploads of the same type may exist; the newest
    one wins by convention.
    """
    __tablename__ = "documents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_kind = db.Column(db.String(16), nullable=False)

    document_type = db.Column(db.String(32), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(1024), nullable=False, unique=True)
    file_size = db.Column(db.Integer, nullable=False)
    mime_type = db.Column(db.String(128), nullable=False)

    # Classifier output (advisory only)
    ai_processed = db.Column(db.Boolean, nullable=False, default=False)
    ai_validity = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    __mapper_args__ = {"polymorphic_on": owner_kind}

    @property
    def owner_id(self) -> int:
        raise NotImplementedError

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_kind": self.owner_kind,
            "owner_id": self.owner_id,
            "document_type": self.document_type,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "ai_processed": self.ai_processed,
            "ai_validity": self.ai_validity,
            "created_at": to_utc_z(self.created_at),
        }


class ProfileDocument(Document):
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    profile = db.relationship("Profile", backref=db.backref("documents", lazy=True))

    __mapper_args__ = {"polymorphic_identity": OWNER_PROFILE}

    @property
    def owner_id(self) -> int:
        return self.profile_id


class ApplicationDocument(Document):
    application_id = db.Column(db.Integer, db.ForeignKey("event_applications.id"), nullable=True)

    application = db.relationship("EventApplication", backref=db.backref("documents", lazy=True))

    __mapper_args__ = {"polymorphic_identity": OWNER_APPLICATION}

    @property
    def owner_id(self) -> int:
        return self.application_id


# Owner columns live on the subclasses, so these indexes are declared once
# both are mapped onto the shared "documents" table.
db.Index("ix_documents_profile_type", ProfileDocument.profile_id, Document.document_type)
db.Index("ix_documents_application_type", ApplicationDocument.application_id, Document.document_type)
