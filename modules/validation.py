"""Booking form validation.

Every validator takes the raw field value and returns either None (valid) or
a user-facing error message. Step validators collect every field error into a
dict keyed by draft field name so the form can show them all at once.
"""
import re
from models.booking_model import CustomerType, DriverAgeBracket
from modules.duration import calculate_rental_duration, is_date_blocked

NAME_CHARS = re.compile(r"^[a-zA-Z\s\-']+$")
TWO_LETTERS = re.compile(r"[a-zA-Z]{2,}")
THREE_LETTERS = re.compile(r"[a-zA-Z]{3,}")
ONLY_LETTERS = re.compile(r"^[a-zA-Z]+$")
LEADING_SYMBOLS = re.compile(r"^[@#$%^&*()_+=\-\[\]{};:'\",.<>?/\\|`~!]{3,}")
EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_SEPARATORS = re.compile(r"[\s\-()]")
INTERNATIONAL_PHONE = re.compile(r"^\+\d+$")
DIGITS_ONLY = re.compile(r"^\d+$")
ALPHANUMERIC = re.compile(r"[a-zA-Z0-9]")

DATE_TIME_REQUIRED = "Please choose pickup and return date & time."
# Shown under an empty pickup date, as the booking form words it
PICKUP_DATE_REQUIRED = "Please select a pickup location."
MIN_DURATION_ERROR = "Return must be at least 24 hours after pickup."
MAX_DURATION_ERROR = "Maximum rental period is 30 days."
BLOCKED_DATE_ERROR = "Selected date is unavailable. Please choose another date."
VEHICLE_REQUIRED = "Please select a vehicle"
VERIFICATION_REQUIRED = "Identity verification is required to proceed"
TERMS_REQUIRED = "You must agree to the terms and conditions"

_ADDRESS_LABELS = {
    "pickup": ("Pickup location", "pickup"),
    "dropoff": ("Drop-off location", "drop-off"),
}


def validate_name(value):
    name = str(value or "").strip()
    if not name:
        return "Full name is required"
    if len(name) < 2:
        return "Full name must be at least 2 characters"
    if not NAME_CHARS.fullmatch(name):
        return "Name must contain only letters, spaces, hyphens, and apostrophes"
    if not TWO_LETTERS.search(name):
        return "Name must contain at least 2 alphabetic characters"
    if len(re.sub(r"[\s\-']", "", name)) < 2:
        return "Name must have actual alphabetic content"
    return None


def validate_email(value):
    email = str(value or "")
    if not email.strip():
        return "Email address is required"
    if not EMAIL_SHAPE.fullmatch(email):
        return "Please enter a valid email address"
    return None


def validate_phone(value):
    phone = str(value or "").strip()
    if not phone:
        return "Phone number is required"
    cleaned = PHONE_SEPARATORS.sub("", phone)
    digit_count = sum(1 for char in cleaned if char.isdigit())
    if digit_count < 7 or digit_count > 15:
        return "Please enter a valid phone number (7-15 digits)"
    if cleaned.startswith("+"):
        if not INTERNATIONAL_PHONE.fullmatch(cleaned):
            return "Invalid phone number format"
    elif not DIGITS_ONLY.fullmatch(cleaned):
        return "Phone number should contain only digits"
    return None


def validate_address(value, kind="pickup"):
    """Heuristic check that free text looks like a real street address."""
    required_label, label = _ADDRESS_LABELS[kind]
    text = str(value or "").strip()
    if not text:
        return f"{required_label} is required"
    if len(text) < 5:
        return f"Please enter a valid {label} address (minimum 5 characters)"
    if not THREE_LETTERS.search(text):
        return f"Please enter a meaningful {label} address with letters"
    if LEADING_SYMBOLS.match(text):
        return f"Please enter a valid {label} address, not symbols"
    # Short letter-only input such as "mmmmmmm" is gibberish
    if ONLY_LETTERS.fullmatch(text) and len(text) < 15:
        return "Please enter a complete address (e.g., street name, city, postcode)"
    if not re.search(r"\d", text) and "," not in text and len(text.split(" ")) < 2:
        return "Please enter a complete address with street name or postcode"
    return None


def validate_driver_age(value):
    if not value or not str(value).strip():
        return "Please select driver age range."
    if value not in {bracket.value for bracket in DriverAgeBracket}:
        return "Please select a valid driver age range."
    return None


def validate_customer_type(value):
    if not value or not str(value).strip():
        return "Please select a customer type"
    if value not in {customer_type.value for customer_type in CustomerType}:
        return "Invalid customer type selected"
    return None


def validate_license_number(value):
    license_number = str(value or "").strip()
    if not license_number:
        return "Driver license number is required"
    if len(license_number) < 5:
        return "License number must be at least 5 characters"
    if not ALPHANUMERIC.search(license_number):
        return "License number must contain letters or numbers"
    return None


def validate_vehicle_selection(vehicle_id):
    if not vehicle_id:
        return VEHICLE_REQUIRED
    return None


def validate_verification(context):
    if not context.is_verified:
        return VERIFICATION_REQUIRED
    return None


def _address_text(value):
    return getattr(value, "address", value)


FIELD_VALIDATORS = {
    "pickup_location": lambda value: validate_address(_address_text(value), "pickup"),
    "dropoff_location": lambda value: validate_address(_address_text(value), "dropoff"),
    "driver_age": validate_driver_age,
    "customer_name": validate_name,
    "customer_email": validate_email,
    "customer_phone": validate_phone,
    "customer_type": validate_customer_type,
    "license_number": validate_license_number,
    "vehicle_id": validate_vehicle_selection,
}


def validate_field(name, value):
    """Incremental check for a single field. Fields without rules are always valid."""
    validator = FIELD_VALIDATORS.get(name)
    if validator is None:
        return None
    return validator(value)


def validate_rental_period(draft, blocked_ranges=()):
    errors = {}
    for field in ("pickup_date", "pickup_time", "dropoff_date", "dropoff_time"):
        if not getattr(draft, field):
            errors[field] = PICKUP_DATE_REQUIRED if field == "pickup_date" else DATE_TIME_REQUIRED

    if is_date_blocked(draft.pickup_date, blocked_ranges):
        errors["pickup_date"] = BLOCKED_DATE_ERROR
    if is_date_blocked(draft.dropoff_date, blocked_ranges):
        errors["dropoff_date"] = BLOCKED_DATE_ERROR

    if not errors:
        duration = calculate_rental_duration(draft.pickup_date, draft.dropoff_date, draft.pickup_time, draft.dropoff_time)
        if duration is None:
            errors["dropoff_date"] = DATE_TIME_REQUIRED
        elif not duration.is_valid:
            errors["dropoff_date"] = MIN_DURATION_ERROR if duration.hours < 24 else MAX_DURATION_ERROR
    return errors


def _collect(draft, fields):
    errors = {}
    for field in fields:
        message = validate_field(field, getattr(draft, field))
        if message:
            errors[field] = message
    return errors


def validate_customer_details(draft):
    return _collect(draft, ("customer_name", "customer_email", "customer_phone", "customer_type"))


def validate_trip_details(draft, verification, blocked_ranges=()):
    """Step 1: locations, rental period, driver age, customer details and verification."""
    errors = _collect(draft, ("pickup_location", "dropoff_location"))
    errors.update(validate_rental_period(draft, blocked_ranges))
    errors.update(_collect(draft, ("driver_age",)))
    errors.update(validate_customer_details(draft))
    message = validate_verification(verification)
    if message:
        errors["verification"] = message
    return errors


def validate_vehicle_step(draft):
    """Step 2: a vehicle must be chosen."""
    return _collect(draft, ("vehicle_id",))


def validate_review(draft, verification, terms_accepted):
    """Step 3: customer details, license number, verification and terms."""
    errors = validate_customer_details(draft)
    errors.update(_collect(draft, ("license_number",)))
    message = validate_verification(verification)
    if message:
        errors["verification"] = message
    if not terms_accepted:
        errors["terms"] = TERMS_REQUIRED
    return errors
