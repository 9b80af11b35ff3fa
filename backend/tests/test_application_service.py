"""
Event application state machine tests.

Verifies:
- Applications only open on published events before the deadline
- Store verification and duplicate policies
- Organizer decisions are idempotent and final
- Capacity (max_stores) on approval
- Store cancellation extension point
"""

from datetime import datetime, timedelta

import pytest

from marche.errors import NotEligibleError, PermissionDeniedError, ValidationError
from marche.models import ApplicationDocument, OrganizerProfile, ProfileDocument, StoreProfile, User
from marche.services import application_service
from marche.time_utils import utcnow


def make_store(db_session, n, verified=True):
    user = User(external_identity_id=f"U-store-{n:04d}", role="store", display_name=f"Store {n}")
    db_session.add(user)
    db_session.commit()
    store = StoreProfile(
        user_id=user.id,
        name=f"Store {n}",
        verification_status="approved" if verified else "not_submitted",
    )
    db_session.add(store)
    db_session.commit()
    return store


# =============================================================================
# ELIGIBILITY
# =============================================================================


class TestCreateApplication:

    def test_creates_pending_application(self, published_event, verified_store):
        now = utcnow()
        application = application_service.create_application(
            published_event,
            verified_store,
            {
                "product_description": "Grilled rice balls",
                "application_data": {"booth_size": "3x3", "equipment_needed": "power"},
            },
            now=now,
        )

        assert application.status == "pending"
        assert application.applied_at == now
        assert application.store_name == "Kitchen Car Hana"
        assert application.contact_name == "Hana Sato"
        assert application.email == "hana@example.com"
        assert application.application_data == {"booth_size": "3x3", "equipment_needed": "power"}

    @pytest.mark.parametrize("status", ["draft", "closed", "cancelled", "completed"])
    def test_rejects_unpublished_event(self, db_session, published_event, verified_store, status):
        published_event.status = status
        published_event.application_deadline = utcnow() + timedelta(days=10)
        db_session.commit()

        with pytest.raises(NotEligibleError) as exc:
            application_service.create_application(published_event, verified_store, {})
        assert exc.value.current["status"] == status

    def test_rejects_after_deadline(self, db_session, published_event, verified_store):
        published_event.application_deadline = datetime(2026, 5, 1, 12, 0, 0)
        db_session.commit()

        with pytest.raises(NotEligibleError):
            application_service.create_application(
                published_event, verified_store, {}, now=datetime(2026, 5, 1, 12, 0, 1)
            )

    def test_deadline_is_inclusive(self, db_session, published_event, verified_store):
        deadline = datetime(2026, 5, 1, 12, 0, 0)
        published_event.application_deadline = deadline
        db_session.commit()

        application = application_service.create_application(published_event, verified_store, {}, now=deadline)
        assert application.status == "pending"

    def test_unverified_store_rejected(self, published_event, store_profile):
        with pytest.raises(NotEligibleError):
            application_service.create_application(published_event, store_profile, {})

    def test_unverified_store_allowed_when_gate_off(self, app, monkeypatch, published_event, store_profile):
        monkeypatch.setitem(app.config, "REQUIRE_VERIFIED_STORE", False)

        application = application_service.create_application(published_event, store_profile, {})
        assert application.status == "pending"

    def test_duplicate_application_rejected(self, published_event, verified_store):
        first = application_service.create_application(published_event, verified_store, {})

        with pytest.raises(NotEligibleError) as exc:
            application_service.create_application(published_event, verified_store, {})
        assert exc.value.current["id"] == first.id

    def test_rejected_store_may_reapply(self, published_event, verified_store, organizer_profile):
        first = application_service.create_application(published_event, verified_store, {})
        application_service.decide_application(first, "reject", organizer_profile)

        second = application_service.create_application(published_event, verified_store, {})
        assert second.id != first.id
        assert second.status == "pending"

    def test_duplicates_allowed_when_policy_off(self, app, monkeypatch, published_event, verified_store):
        monkeypatch.setitem(app.config, "APPLICATION_UNIQUE_PER_STORE", False)

        application_service.create_application(published_event, verified_store, {})
        application_service.create_application(published_event, verified_store, {})

        assert len(published_event.applications) == 2

    def test_unknown_application_data_key(self, published_event, verified_store):
        with pytest.raises(ValidationError):
            application_service.create_application(
                published_event, verified_store, {"application_data": {"bribe": "yes"}}
            )

    @pytest.mark.parametrize("application_data", [[], ["booth_size"], "3x3"])
    def test_application_data_must_be_object(self, published_event, verified_store, application_data):
        with pytest.raises(ValidationError) as exc:
            application_service.create_application(
                published_event, verified_store, {"application_data": application_data}
            )
        assert "application_data" in exc.value.message
        assert published_event.applications == []

    def test_store_profile_id_not_writable(self, published_event, verified_store):
        with pytest.raises(ValidationError):
            application_service.create_application(published_event, verified_store, {"store_profile_id": 99})


# =============================================================================
# ORGANIZER DECISIONS
# =============================================================================


class TestDecideApplication:

    @pytest.fixture
    def application(self, published_event, verified_store):
        return application_service.create_application(published_event, verified_store, {})

    def test_approve(self, application, organizer_profile):
        decided = application_service.decide_application(application, "approve", organizer_profile, note="Welcome")

        assert decided.status == "approved"
        assert decided.decided_by_profile_id == organizer_profile.id
        assert decided.decision_note == "Welcome"
        assert decided.decided_at is not None

    def test_approve_twice_is_noop(self, application, organizer_profile):
        first = application_service.decide_application(application, "approve", organizer_profile)
        decided_at = first.decided_at

        second = application_service.decide_application(application, "approve", organizer_profile)
        assert second.status == "approved"
        assert second.decided_at == decided_at

    def test_cannot_reverse_decision(self, application, organizer_profile):
        application_service.decide_application(application, "approve", organizer_profile)

        with pytest.raises(NotEligibleError) as exc:
            application_service.decide_application(application, "reject", organizer_profile)
        assert "already decided" in exc.value.message
        assert application.status == "approved"

    def test_other_organizer_denied(self, db_session, application):
        user = User(external_identity_id="U-organizer-0002", role="organizer", display_name="Other")
        db_session.add(user)
        db_session.commit()
        other = OrganizerProfile(user_id=user.id, name="Other Org")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(PermissionDeniedError):
            application_service.decide_application(application, "approve", other)
        assert application.status == "pending"

    def test_capacity_enforced(self, db_session, published_event, organizer_profile):
        # published_event.max_stores == 2
        apps = [
            application_service.create_application(published_event, make_store(db_session, n), {})
            for n in range(2, 5)
        ]
        application_service.decide_application(apps[0], "approve", organizer_profile)
        application_service.decide_application(apps[1], "approve", organizer_profile)

        with pytest.raises(NotEligibleError):
            application_service.decide_application(apps[2], "approve", organizer_profile)
        assert apps[2].status == "pending"

        rejected = application_service.decide_application(apps[2], "reject", organizer_profile)
        assert rejected.status == "rejected"

    def test_unknown_outcome(self, application, organizer_profile):
        with pytest.raises(ValidationError):
            application_service.decide_application(application, "waitlist", organizer_profile)


# =============================================================================
# STORE CANCELLATION (extension point)
# =============================================================================


class TestCancelApplication:

    @pytest.fixture
    def application(self, published_event, verified_store):
        return application_service.create_application(published_event, verified_store, {})

    def test_disabled_by_default(self, application, verified_store):
        with pytest.raises(NotEligibleError):
            application_service.cancel_application(application, verified_store)
        assert application.status == "pending"

    def test_pending_can_be_cancelled_when_enabled(self, app, monkeypatch, application, verified_store):
        monkeypatch.setitem(app.config, "ALLOW_STORE_CANCELLATION", True)

        cancelled = application_service.cancel_application(application, verified_store)
        assert cancelled.status == "cancelled"

    def test_decided_cannot_be_cancelled(self, app, monkeypatch, application, verified_store, organizer_profile):
        monkeypatch.setitem(app.config, "ALLOW_STORE_CANCELLATION", True)
        application_service.decide_application(application, "approve", organizer_profile)

        with pytest.raises(NotEligibleError):
            application_service.cancel_application(application, verified_store)
        assert application.status == "approved"

    def test_other_store_denied(self, app, monkeypatch, db_session, application):
        monkeypatch.setitem(app.config, "ALLOW_STORE_CANCELLATION", True)

        with pytest.raises(PermissionDeniedError):
            application_service.cancel_application(application, make_store(db_session, 9))


# =============================================================================
# LISTING AND REQUIREMENTS
# =============================================================================


class TestListingAndRequirements:

    def test_list_for_event_requires_owner(self, db_session, published_event, verified_store, organizer_profile):
        application_service.create_application(published_event, verified_store, {})

        items = application_service.list_applications_for_event(published_event, organizer_profile)
        assert len(items) == 1

        items = application_service.list_applications_for_event(published_event, organizer_profile, status="approved")
        assert items == []

    def test_list_for_store(self, published_event, verified_store):
        application = application_service.create_application(published_event, verified_store, {})
        assert [a.id for a in application_service.list_applications_for_store(verified_store)] == [application.id]

    def test_outstanding_requirements(self, db_session, published_event, verified_store):
        # requirements: ["Business license", "product_photos"]
        application = application_service.create_application(published_event, verified_store, {})
        assert application_service.outstanding_requirements(application) == ["Business license", "product_photos"]

        db_session.add(ProfileDocument(
            profile_id=verified_store.id,
            document_type="business_license",
            file_name="license.pdf",
            file_path="documents/business_license/license.pdf",
            file_size=10,
            mime_type="application/pdf",
        ))
        db_session.add(ApplicationDocument(
            application_id=application.id,
            document_type="product_photos",
            file_name="menu.jpg",
            file_path="documents/product_photos/menu.jpg",
            file_size=10,
            mime_type="image/jpeg",
        ))
        db_session.commit()

        assert application_service.outstanding_requirements(application) == []
