"""
Pytest fixtures for Marche backend tests.

Provides test database setup, account/profile/event fixtures, and fake
collaborators (LINE identity provider, blob store on tmp_path).
"""

from datetime import timedelta

import pytest
from marche import create_app
from marche.config import TestConfig
from marche.errors import AuthenticationError
from marche.extensions import db
from marche.models import Event, OrganizerProfile, StoreProfile, User
from marche.services import session_service
from marche.services.identity_service import IdentityProfile
from marche.services.storage import LocalBlobStore
from marche.time_utils import today


class FakeIdentityProvider:
    """Stands in for LineIdentityProvider: id tokens map to known LINE profiles."""

    def __init__(self, channel_ids=None):
        self.channel_ids = channel_ids or {"store": "store-channel", "organizer": "organizer-channel"}
        self.tokens = {}
        self.calls = []

    def add_token(self, token, user_id, display_name="LINE User", picture_url=None):
        self.tokens[token] = IdentityProfile(user_id=user_id, display_name=display_name, picture_url=picture_url)

    def is_configured(self, role):
        return role in self.channel_ids

    def verify_id_token(self, id_token, role):
        self.calls.append((id_token, role))
        if id_token not in self.tokens:
            raise AuthenticationError("LINE token is invalid or expired")
        return self.tokens[id_token]

    def verify_access_token(self, access_token, role):
        return self.verify_id_token(access_token, role)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def blob_store(app, tmp_path):
    """Every test gets its own upload directory."""
    original = app.extensions["marche.blob_store"]
    store = LocalBlobStore(tmp_path / "uploads", "/files")
    app.extensions["marche.blob_store"] = store
    yield store
    app.extensions["marche.blob_store"] = original


@pytest.fixture(autouse=True)
def identity_provider(app):
    """No test talks to LINE."""
    original = app.extensions["marche.identity_provider"]
    provider = FakeIdentityProvider()
    app.extensions["marche.identity_provider"] = provider
    yield provider
    app.extensions["marche.identity_provider"] = original


def _user(db_session, line_id, role, name):
    user = User(external_identity_id=line_id, role=role, display_name=name)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def store_user(db_session):
    return _user(db_session, "U-store-0001", "store", "Kitchen Car Hana")


@pytest.fixture(scope='function')
def organizer_user(db_session):
    return _user(db_session, "U-organizer-0001", "organizer", "Riverside Market")


@pytest.fixture(scope='function')
def store_profile(db_session, store_user):
    """Unverified store profile (not_submitted)."""
    profile = StoreProfile(
        user_id=store_user.id,
        name="Kitchen Car Hana",
        contact_name="Hana Sato",
        phone="090-1234-5678",
        email="hana@example.com",
        verification_status="not_submitted",
    )
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def verified_store(db_session, store_profile):
    store_profile.verification_status = "approved"
    db_session.commit()
    return store_profile


@pytest.fixture(scope='function')
def organizer_profile(db_session, organizer_user):
    profile = OrganizerProfile(
        user_id=organizer_user.id,
        name="Riverside Market Committee",
        contact_name="Ken Ito",
        verification_status="approved",
    )
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def draft_event(db_session, organizer_profile):
    event = Event(
        organizer_profile_id=organizer_profile.id,
        title="Riverside Night Market",
        event_date=today() + timedelta(days=30),
        location="Riverside Park",
        max_stores=2,
        fee=3000,
        requirements=["Business license", "product_photos"],
        status="draft",
    )
    db_session.add(event)
    db_session.commit()
    return event


@pytest.fixture(scope='function')
def published_event(db_session, draft_event):
    draft_event.status = "published"
    db_session.commit()
    return draft_event


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def login_headers(user) -> dict:
    """Open a session for the user without going through LINE."""
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def store_headers(store_user):
    return login_headers(store_user)


@pytest.fixture(scope='function')
def organizer_headers(organizer_user):
    return login_headers(organizer_user)
