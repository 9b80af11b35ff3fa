# backend/marche/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/marche.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # hosted Postgres in production
        "sqlite:///marche.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # LINE Login channels, one per role (the LIFF apps are registered separately)
    LINE_CHANNEL_ID_STORE = os.environ.get("LINE_CHANNEL_ID_STORE", "")
    LINE_CHANNEL_ID_ORGANIZER = os.environ.get("LINE_CHANNEL_ID_ORGANIZER", "")
    LIFF_ID_STORE = os.environ.get("LIFF_ID_STORE", "")
    LIFF_ID_ORGANIZER = os.environ.get("LIFF_ID_ORGANIZER", "")
    LINE_API_BASE_URL = os.environ.get("LINE_API_BASE_URL", "https://api.line.me")
    LINE_REQUEST_TIMEOUT = float(os.environ.get("LINE_REQUEST_TIMEOUT", "10"))

    # Document classifier (OpenAI). Empty key disables AI validation.
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_VISION_MODEL = os.environ.get("OPENAI_VISION_MODEL", "gpt-4o")
    OPENAI_TEXT_MODEL = os.environ.get("OPENAI_TEXT_MODEL", "gpt-4o-mini")
    OPENAI_TIMEOUT = float(os.environ.get("OPENAI_TIMEOUT", "60"))

    # Blob storage for uploaded documents
    BLOB_STORAGE_ROOT = os.environ.get("BLOB_STORAGE_ROOT", "instance/uploads")
    BLOB_PUBLIC_BASE_URL = os.environ.get("BLOB_PUBLIC_BASE_URL", "/files")

    MAX_UPLOAD_BYTES = _env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    MAX_REGISTRATION_UPLOAD_BYTES = _env_int("MAX_REGISTRATION_UPLOAD_BYTES", 5 * 1024 * 1024)
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES + 1024 * 1024  # multipart overhead

    # Application policy switches
    REQUIRE_VERIFIED_STORE = _env_bool("REQUIRE_VERIFIED_STORE", True)
    APPLICATION_UNIQUE_PER_STORE = _env_bool("APPLICATION_UNIQUE_PER_STORE", True)
    ALLOW_STORE_CANCELLATION = _env_bool("ALLOW_STORE_CANCELLATION", False)

    # Shared secret for the verification reviewer API
    REVIEWER_API_TOKEN = os.environ.get("REVIEWER_API_TOKEN", "")

    TERMS_VERSION = os.environ.get("TERMS_VERSION", "1.0")

    ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LINE_CHANNEL_ID_STORE = "store-channel"
    LINE_CHANNEL_ID_ORGANIZER = "organizer-channel"
    LIFF_ID_STORE = "store-liff"
    LIFF_ID_ORGANIZER = "organizer-liff"
    OPENAI_API_KEY = "test-key"
    REVIEWER_API_TOKEN = "reviewer-secret"
