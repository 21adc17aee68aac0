import logging
import datetime
from decimal import Decimal, ROUND_HALF_UP
import stripe
from bson.objectid import ObjectId
from pymongo.errors import PyMongoError
from config import db
import config
from models.payment_model import CheckoutRequest, CheckoutResult
from utils import to_decimal

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_ERROR = "Unable to create payment session. Please try again."


def to_minor_units(amount):
    """Dollars to cents for the payment provider, rounded half up."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _payment_error_message(error):
    if isinstance(error, stripe.CardError):
        return "There was an issue with your card. Please check your card details."
    if isinstance(error, stripe.RateLimitError):
        return "Too many requests. Please wait a moment and try again."
    if isinstance(error, stripe.InvalidRequestError):
        return "Invalid payment request. Please check your booking details."
    if isinstance(error, stripe.AuthenticationError):
        return "Payment configuration error. Please contact support."
    if isinstance(error, (stripe.APIConnectionError, stripe.APIError)):
        return "Payment service temporarily unavailable. Please try again in a few moments."
    return getattr(error, "user_message", None) or DEFAULT_PAYMENT_ERROR


def _failed(message):
    return CheckoutResult(status="failed", message=message).model_dump(exclude_none=True)


def create_checkout_session(rental_id, customer_email, customer_name, total_amount):
    """Create a hosted Stripe Checkout session for a pending rental.

    Returns ``{"status": "success", "session_id", "url"}`` or
    ``{"status": "failed", "message"}``. Creating a second session for the same
    rental is harmless, so the customer can simply retry.
    """
    if not rental_id or not customer_email or not total_amount:
        return _failed("Missing required booking information. Please complete all fields.")
    if to_decimal(total_amount) <= 0:
        return _failed("Invalid booking information provided. Please check your details.")

    request = CheckoutRequest(
        rental_id=str(rental_id),
        customer_email=customer_email,
        customer_name=customer_name or "",
        total_amount=float(total_amount),
    )
    stripe.api_key = config.STRIPE_SECRET_KEY
    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": config.CHECKOUT_CURRENCY,
                    "product_data": {
                        "name": "Vehicle Rental",
                        "description": f"Car rental booking for {request.customer_name}",
                    },
                    "unit_amount": to_minor_units(request.total_amount),
                },
                "quantity": 1,
            }],
            mode="payment",
            customer_email=request.customer_email,
            client_reference_id=request.rental_id,
            success_url=f"{config.SITE_URL}/?checkout=success&session_id={{CHECKOUT_SESSION_ID}}&rental_id={request.rental_id}",
            cancel_url=f"{config.SITE_URL}/?checkout=cancelled&rental_id={request.rental_id}",
            metadata={"rental_id": request.rental_id, "customer_name": request.customer_name},
        )
    except stripe.StripeError as e:
        logger.error(f"Error creating checkout session for rental {rental_id}: {e}")
        return _failed(_payment_error_message(e))

    logger.info(f"Checkout session {session.id} created for rental {rental_id} ({request.total_amount}).")
    return CheckoutResult(status="success", session_id=session.id, url=session.url).model_dump(exclude_none=True)


def _object_id(value):
    if isinstance(value, ObjectId):
        return value
    return ObjectId(str(value))


def update_payment_status(rental_id, status):
    logger.info(f"Updating payment status of rental {rental_id} to {status}")
    result = db.invoices.update_many({"rental_id": _object_id(rental_id)}, {"$set": {"status": status}})
    if result.modified_count >= 1:
        logger.info("Payment status updated.")
    else:
        logger.warning(f"No invoice found for rental {rental_id}.")


def confirm_checkout(rental_id, session_id=None):
    """Customer came back from a successful checkout: activate the rental and mark it paid."""
    rental_id = _object_id(rental_id)
    rental = db.rentals.find_one({"_id": rental_id})
    if not rental:
        logger.warning(f"Checkout confirmed for unknown rental {rental_id}.")
        return False

    # Only a paid session created for this rental confirms it
    if not session_id or not config.STRIPE_SECRET_KEY:
        logger.warning(f"Checkout for rental {rental_id} returned without a verifiable session.")
        return False

    stripe.api_key = config.STRIPE_SECRET_KEY
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        logger.error(f"Could not verify checkout session {session_id}: {e}")
        return False
    if session.client_reference_id != str(rental_id):
        logger.warning(f"Checkout session {session_id} belongs to rental {session.client_reference_id}, not {rental_id}.")
        return False
    if session.payment_status != "paid":
        logger.warning(f"Checkout session {session_id} is not paid ({session.payment_status}).")
        return False

    db.rentals.update_one({"_id": rental_id}, {"$set": {"status": "Active", "paid_at": datetime.datetime.now()}})
    update_payment_status(rental_id, "paid")
    logger.info(f"Rental {rental_id} is now Active.")
    return True


def cancel_checkout(rental_id):
    """Customer abandoned checkout: drop the pending rental and free the vehicle."""
    rental_id = _object_id(rental_id)
    try:
        rental = db.rentals.find_one({"_id": rental_id, "status": "Pending"})
        if not rental:
            return False
        db.rentals.delete_one({"_id": rental_id})
        db.invoices.update_many({"rental_id": rental_id}, {"$set": {"status": "cancelled"}})
        db.vehicles.update_one({"_id": rental["vehicle_id"]}, {"$set": {"status": "Available"}})
    except PyMongoError as e:
        logger.error(f"Error cleaning up cancelled rental {rental_id}: {e}")
        return False
    logger.info(f"Pending rental {rental_id} removed after cancelled checkout.")
    return True
