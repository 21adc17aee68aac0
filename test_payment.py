import pytest
import datetime
from decimal import Decimal
from unittest.mock import patch, MagicMock
from bson.objectid import ObjectId
import mongomock
import stripe
from modules.payment import create_checkout_session, confirm_checkout, cancel_checkout, to_minor_units


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    mock_client = mongomock.MongoClient()
    test_db = mock_client['test_database']
    monkeypatch.setattr("modules.payment.db", test_db)
    monkeypatch.setattr("config.STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr("config.SITE_URL", "https://rent.example.com")
    yield test_db


@pytest.fixture
def pending_rental(setup_test_environment):
    db = setup_test_environment
    vehicle_id = db.vehicles.insert_one({"reg": "ABC123", "status": "Rented"}).inserted_id
    rental_id = db.rentals.insert_one({
        "customer_id": ObjectId(),
        "vehicle_id": vehicle_id,
        "start_date": "2024-01-01",
        "end_date": "2024-01-11",
        "status": "Pending",
        "created_at": datetime.datetime.now()
    }).inserted_id
    db.invoices.insert_one({"rental_id": rental_id, "invoice_number": "INV-202401-0001", "status": "pending"})
    return rental_id, vehicle_id


def test_to_minor_units():
    assert to_minor_units(Decimal("1040")) == 104000
    assert to_minor_units(19.995) == 2000
    assert to_minor_units("0.01") == 1


def test_create_checkout_session_success():
    session = MagicMock(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")
    with patch("stripe.checkout.Session.create", return_value=session) as mock_create:
        result = create_checkout_session("r1", "jane@example.com", "Jane Doe", 1040.0)

    assert result == {"status": "success", "session_id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}
    kwargs = mock_create.call_args.kwargs
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 104000
    assert kwargs["customer_email"] == "jane@example.com"
    assert kwargs["success_url"] == "https://rent.example.com/?checkout=success&session_id={CHECKOUT_SESSION_ID}&rental_id=r1"
    assert kwargs["cancel_url"] == "https://rent.example.com/?checkout=cancelled&rental_id=r1"


def test_create_checkout_session_missing_fields():
    with patch("stripe.checkout.Session.create") as mock_create:
        result = create_checkout_session("r1", "", "Jane Doe", 1040.0)
    assert result == {"status": "failed",
                      "message": "Missing required booking information. Please complete all fields."}
    mock_create.assert_not_called()


def test_create_checkout_session_negative_amount():
    result = create_checkout_session("r1", "jane@example.com", "Jane Doe", -5)
    assert result["status"] == "failed"
    assert result["message"] == "Invalid booking information provided. Please check your details."


@pytest.mark.parametrize("error, message", [
    (stripe.CardError("declined", None, "card_declined"),
     "There was an issue with your card. Please check your card details."),
    (stripe.RateLimitError("slow down"), "Too many requests. Please wait a moment and try again."),
    (stripe.InvalidRequestError("bad", None), "Invalid payment request. Please check your booking details."),
    (stripe.AuthenticationError("bad key"), "Payment configuration error. Please contact support."),
    (stripe.APIConnectionError("offline"),
     "Payment service temporarily unavailable. Please try again in a few moments."),
])
def test_create_checkout_session_error_messages(error, message):
    with patch("stripe.checkout.Session.create", side_effect=error):
        result = create_checkout_session("r1", "jane@example.com", "Jane Doe", 1040.0)
    assert result == {"status": "failed", "message": message}


def test_confirm_checkout_activates_paid_rental(setup_test_environment, pending_rental):
    rental_id, _ = pending_rental
    session = MagicMock(payment_status="paid", client_reference_id=str(rental_id))
    with patch("stripe.checkout.Session.retrieve", return_value=session):
        assert confirm_checkout(str(rental_id), "cs_test_1") is True

    rental = setup_test_environment.rentals.find_one({"_id": rental_id})
    assert rental["status"] == "Active"
    assert "paid_at" in rental
    invoice = setup_test_environment.invoices.find_one({"rental_id": rental_id})
    assert invoice["status"] == "paid"


def test_confirm_checkout_rejects_unpaid_session(setup_test_environment, pending_rental):
    rental_id, _ = pending_rental
    with patch("stripe.checkout.Session.retrieve", return_value=MagicMock(payment_status="unpaid",
                                                                          client_reference_id=str(rental_id))):
        assert confirm_checkout(str(rental_id), "cs_test_1") is False
    assert setup_test_environment.rentals.find_one({"_id": rental_id})["status"] == "Pending"


def test_confirm_checkout_requires_session_id(setup_test_environment, pending_rental):
    rental_id, _ = pending_rental
    with patch("stripe.checkout.Session.retrieve") as mock_retrieve:
        assert confirm_checkout(str(rental_id)) is False
    mock_retrieve.assert_not_called()

    assert setup_test_environment.rentals.find_one({"_id": rental_id})["status"] == "Pending"
    assert setup_test_environment.invoices.find_one({"rental_id": rental_id})["status"] == "pending"


def test_confirm_checkout_requires_stripe_key(setup_test_environment, pending_rental, monkeypatch):
    rental_id, _ = pending_rental
    monkeypatch.setattr("config.STRIPE_SECRET_KEY", None)
    with patch("stripe.checkout.Session.retrieve") as mock_retrieve:
        assert confirm_checkout(str(rental_id), "cs_test_1") is False
    mock_retrieve.assert_not_called()
    assert setup_test_environment.rentals.find_one({"_id": rental_id})["status"] == "Pending"


def test_confirm_checkout_rejects_session_for_another_rental(setup_test_environment, pending_rental):
    rental_id, _ = pending_rental
    session = MagicMock(payment_status="paid", client_reference_id=str(ObjectId()))
    with patch("stripe.checkout.Session.retrieve", return_value=session):
        assert confirm_checkout(str(rental_id), "cs_paid_elsewhere") is False

    assert setup_test_environment.rentals.find_one({"_id": rental_id})["status"] == "Pending"
    assert setup_test_environment.invoices.find_one({"rental_id": rental_id})["status"] == "pending"


def test_confirm_checkout_unknown_rental():
    assert confirm_checkout(str(ObjectId())) is False


def test_cancel_checkout_removes_pending_rental(setup_test_environment, pending_rental):
    rental_id, vehicle_id = pending_rental
    assert cancel_checkout(str(rental_id)) is True

    assert setup_test_environment.rentals.find_one({"_id": rental_id}) is None
    assert setup_test_environment.vehicles.find_one({"_id": vehicle_id})["status"] == "Available"
    assert setup_test_environment.invoices.find_one({"rental_id": rental_id})["status"] == "cancelled"


def test_cancel_checkout_leaves_active_rental(setup_test_environment, pending_rental):
    rental_id, _ = pending_rental
    setup_test_environment.rentals.update_one({"_id": rental_id}, {"$set": {"status": "Active"}})
    assert cancel_checkout(str(rental_id)) is False
    assert setup_test_environment.rentals.find_one({"_id": rental_id}) is not None
