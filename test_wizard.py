import pytest
from decimal import Decimal
from models.booking_model import WizardStep
from models.vehicle_model import VehicleModel, PricingExtraModel
from models.verification_model import VerificationStatus
from modules.wizard import BookingWizard, BookingCatalog, CUSTOMER_DETAILS_REQUIRED
from modules import validation

TRIP = {
    "pickup_location": "123 Main St, Dallas",
    "dropoff_location": "123 Main St, Dallas",
    "pickup_date": "2024-01-01",
    "dropoff_date": "2024-01-11",
    "pickup_time": "10:00",
    "dropoff_time": "10:00",
    "driver_age": "25_70",
    "customer_name": "Jane Doe",
    "customer_email": "jane@example.com",
    "customer_phone": "+1 214 555 0100",
    "customer_type": "Individual",
}


def fake_session(name, email, phone):
    return {"ok": True, "session_id": "sess-1", "session_url": "https://verify.example.com/sess-1"}


@pytest.fixture(autouse=True)
def no_extra_charges(monkeypatch):
    monkeypatch.setattr("config.CHARGE_EXTRAS", False)


@pytest.fixture
def wizard():
    catalog = BookingCatalog(
        vehicles=[VehicleModel(id="v1", make="Toyota", model="Camry", reg="ABC123",
                               daily_rent=100, weekly_rent=600, monthly_rent=2000)],
        extras=[PricingExtraModel(id="seat", name="Child seat", price=25)],
    )
    return BookingWizard(catalog)


def fill_trip(wizard):
    for name, value in TRIP.items():
        wizard.update_field(name, value)


def verify(wizard):
    assert wizard.start_verification(fake_session)
    wizard.apply_verification_status(VerificationStatus.VERIFIED, "sess-1")


def to_review(wizard):
    fill_trip(wizard)
    verify(wizard)
    assert wizard.advance()
    wizard.update_field("vehicle_id", "v1")
    assert wizard.advance()
    wizard.update_field("license_number", "TX1234567")


def test_incremental_validation_sets_and_clears_errors(wizard):
    assert wizard.update_field("customer_name", "123") is not None
    assert "customer_name" in wizard.errors
    assert wizard.update_field("customer_name", "Jane Doe") is None
    assert "customer_name" not in wizard.errors


def test_unknown_field_raises(wizard):
    with pytest.raises(KeyError):
        wizard.update_field("favourite_colour", "blue")


def test_cannot_leave_trip_details_unverified(wizard):
    fill_trip(wizard)
    assert wizard.advance() is False
    assert wizard.step == WizardStep.TRIP_DETAILS
    assert wizard.errors == {"verification": validation.VERIFICATION_REQUIRED}


def test_verification_needs_contact_details(wizard):
    assert wizard.start_verification(fake_session) is False
    assert wizard.notification == CUSTOMER_DETAILS_REQUIRED
    assert wizard.verification.status == VerificationStatus.INIT


def test_verification_failure_becomes_notification(wizard):
    fill_trip(wizard)
    assert wizard.start_verification(lambda *args: {"ok": False, "error": "Failed to start verification"}) is False
    assert wizard.notification == "Failed to start verification"
    assert wizard.verification.status == VerificationStatus.INIT


def test_verification_exception_becomes_notification(wizard):
    fill_trip(wizard)

    def broken(*args):
        raise ConnectionError("down")

    assert wizard.start_verification(broken) is False
    assert wizard.notification == "Failed to start verification"


def test_rejected_verification_can_be_restarted(wizard):
    fill_trip(wizard)
    wizard.start_verification(fake_session)
    wizard.apply_verification_status(VerificationStatus.REJECTED, "sess-1")
    assert wizard.verification.status == VerificationStatus.REJECTED
    assert wizard.notification == "Identity verification failed. Please try again."
    assert wizard.start_verification(fake_session)
    assert wizard.verification.status == VerificationStatus.PENDING


def test_undecided_or_stale_results_are_ignored(wizard):
    fill_trip(wizard)
    wizard.start_verification(fake_session)
    wizard.apply_verification_status(None, "sess-1")
    assert wizard.verification.status == VerificationStatus.PENDING
    wizard.apply_verification_status(VerificationStatus.VERIFIED, "sess-old")
    assert wizard.verification.status == VerificationStatus.PENDING


def test_changing_identity_resets_verification(wizard):
    fill_trip(wizard)
    verify(wizard)
    wizard.update_field("customer_email", "jane.doe@example.com")
    assert wizard.verification.status == VerificationStatus.INIT
    assert wizard.verification.session_id is None


def test_changing_other_fields_keeps_verification(wizard):
    fill_trip(wizard)
    verify(wizard)
    wizard.update_field("pickup_time", "11:00")
    wizard.update_field("customer_name", "Jane Doe")
    assert wizard.verification.is_verified


def test_vehicle_step_requires_selection(wizard):
    fill_trip(wizard)
    verify(wizard)
    wizard.advance()
    assert wizard.advance() is False
    assert wizard.errors == {"vehicle_id": "Please select a vehicle"}


def test_going_back_keeps_data(wizard):
    to_review(wizard)
    assert wizard.go_back()
    assert wizard.step == WizardStep.VEHICLE_SELECTION
    assert wizard.draft.vehicle_id == "v1"
    assert wizard.go_back()
    assert wizard.go_back() is False
    assert wizard.draft.customer_name == "Jane Doe"


def test_full_booking_prices_and_submits(wizard):
    to_review(wizard)
    calls = []

    def checkout(draft, breakdown):
        calls.append(breakdown)
        return {"status": "success", "session_id": "cs_1", "url": "https://pay.example.com/cs_1"}

    result = wizard.submit(True, checkout)

    assert result["url"] == "https://pay.example.com/cs_1"
    assert wizard.step == WizardStep.CONFIRMED
    breakdown = calls[0]
    assert breakdown.rental_price == Decimal("900")
    assert breakdown.taxes_and_fees == Decimal("140")
    assert breakdown.due_today == Decimal("1040")
    assert breakdown.deposit == Decimal("500")
    assert breakdown.charge_amount == Decimal("1040")


def test_submit_requires_terms(wizard):
    to_review(wizard)
    assert wizard.submit(False, lambda draft, breakdown: {"status": "success"}) is None
    assert wizard.errors == {"terms": validation.TERMS_REQUIRED}
    assert wizard.step == WizardStep.REVIEW_PAYMENT


def test_extras_are_reported_but_not_charged(wizard):
    to_review(wizard)
    wizard.toggle_extra("seat")
    breakdown = wizard.price_breakdown()
    assert breakdown.extras_total == Decimal("25")
    assert breakdown.charge_amount == Decimal("1040")
    wizard.toggle_extra("seat")
    assert wizard.draft.extra_ids == frozenset()


def test_second_submit_while_pending_is_ignored(wizard):
    to_review(wizard)
    sessions = []

    def checkout(draft, breakdown):
        sessions.append(draft)
        # Double click arrives while the first request is still running
        assert wizard.submit(True, checkout) is None
        return {"status": "success", "url": "https://pay.example.com/cs_1"}

    wizard.submit(True, checkout)
    assert len(sessions) == 1
    assert wizard.is_submitting is False


def test_failed_checkout_leaves_state_unchanged(wizard):
    to_review(wizard)
    draft = wizard.draft
    result = wizard.submit(True, lambda d, b: {"status": "failed", "message": "There was an issue with your card. Please check your card details."})
    assert result is None
    assert wizard.step == WizardStep.REVIEW_PAYMENT
    assert wizard.draft == draft
    assert wizard.notification == "There was an issue with your card. Please check your card details."
    assert wizard.is_submitting is False


def test_checkout_exception_releases_guard(wizard):
    to_review(wizard)

    def broken(draft, breakdown):
        raise RuntimeError("database down")

    assert wizard.submit(True, broken) is None
    assert wizard.is_submitting is False
    assert wizard.notification == "Failed to initiate payment"


def test_reset_discards_everything(wizard):
    to_review(wizard)
    wizard.reset()
    assert wizard.step == WizardStep.TRIP_DETAILS
    assert wizard.draft.customer_name == ""
    assert wizard.verification.status == VerificationStatus.INIT
