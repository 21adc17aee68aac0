import logging
from decimal import Decimal
from models.booking_model import BookingDraft, WizardStep
from models.verification_model import VerificationContext, VerificationStatus
from modules.duration import calculate_rental_duration
from modules.pricing import calculate_rental_price, calculate_extras_total, calculate_price_breakdown, estimate_total
from modules import validation

logger = logging.getLogger(__name__)

# Changing any of these after verification started forces a new verification
IDENTITY_FIELDS = ("customer_name", "customer_email", "customer_phone")

STEP_ORDER = [WizardStep.TRIP_DETAILS, WizardStep.VEHICLE_SELECTION, WizardStep.REVIEW_PAYMENT]

CUSTOMER_DETAILS_REQUIRED = "Please fill in your name, email, and phone number first"


class BookingCatalog:
    """Read-only data the wizard prices against: vehicles, extras and blocked dates."""

    def __init__(self, vehicles=None, extras=None, blocked_dates=None):
        self.vehicles = list(vehicles or [])
        self.extras = list(extras or [])
        self.blocked_dates = list(blocked_dates or [])

    def find_vehicle(self, vehicle_id):
        return next((v for v in self.vehicles if v.id == vehicle_id), None)


class BookingWizard:
    """Three-step booking flow: trip details, vehicle selection, review & payment.

    Identity verification runs alongside the steps and must be complete before
    leaving step 1. Validation problems are kept in ``errors``; failures from
    outside services land in ``notification`` and never move the wizard.
    """

    def __init__(self, catalog=None, verification=None):
        self.catalog = catalog or BookingCatalog()
        self.verification = verification or VerificationContext()
        self.draft = BookingDraft()
        self.step = WizardStep.TRIP_DETAILS
        self.errors = {}
        self.notification = None
        self.is_submitting = False
        self.confirmation = None

    # Field editing

    def update_field(self, name, value):
        previous = getattr(self.draft, name, None)
        self.draft = self.draft.with_field(name, value)

        if name in IDENTITY_FIELDS and getattr(self.draft, name) != previous:
            if self.verification.status != VerificationStatus.INIT:
                logger.info(f"Customer {name} changed, verification session {self.verification.session_id} discarded.")
                self.verification.reset()

        message = validation.validate_field(name, getattr(self.draft, name))
        if message:
            self.errors[name] = message
        else:
            self.errors.pop(name, None)
        return message

    def toggle_extra(self, extra_id):
        extras = set(self.draft.extra_ids)
        extras.symmetric_difference_update({extra_id})
        self.draft = self.draft.with_field("extra_ids", extras)

    # Pricing

    @property
    def duration(self):
        return calculate_rental_duration(
            self.draft.pickup_date, self.draft.dropoff_date, self.draft.pickup_time, self.draft.dropoff_time
        )

    @property
    def selected_vehicle(self):
        if not self.draft.vehicle_id:
            return None
        return self.catalog.find_vehicle(self.draft.vehicle_id)

    def estimate_for(self, vehicle):
        return estimate_total(vehicle, self.duration)

    def price_breakdown(self):
        """Authoritative totals for the review step; None until a vehicle and dates are set."""
        vehicle = self.selected_vehicle
        duration = self.duration
        if vehicle is None or duration is None:
            return None
        rental_price = calculate_rental_price(vehicle, duration.days)
        extras_total = calculate_extras_total(self.catalog.extras, self.draft.extra_ids)
        return calculate_price_breakdown(rental_price, extras_total, rental_days=duration.days)

    # Step transitions

    def _validate_current_step(self, terms_accepted=False):
        if self.step == WizardStep.TRIP_DETAILS:
            return validation.validate_trip_details(self.draft, self.verification, self.catalog.blocked_dates)
        if self.step == WizardStep.VEHICLE_SELECTION:
            return validation.validate_vehicle_step(self.draft)
        if self.step == WizardStep.REVIEW_PAYMENT:
            return validation.validate_review(self.draft, self.verification, terms_accepted)
        return {}

    def advance(self):
        """Move from step 1 to 2 or from 2 to 3 when the current step is valid."""
        if self.step not in (WizardStep.TRIP_DETAILS, WizardStep.VEHICLE_SELECTION):
            return False
        self.errors = self._validate_current_step()
        if self.errors:
            return False
        self.step = STEP_ORDER[STEP_ORDER.index(self.step) + 1]
        return True

    def go_back(self):
        if self.step in (WizardStep.VEHICLE_SELECTION, WizardStep.REVIEW_PAYMENT):
            self.step = STEP_ORDER[STEP_ORDER.index(self.step) - 1]
            self.errors = {}
            return True
        return False

    # Identity verification

    def start_verification(self, create_session):
        """Open a verification session through ``create_session(name, email, phone)``.

        The collaborator returns ``{"ok": True, "session_id": ..., "session_url": ...}``
        or ``{"ok": False, "error": ...}``.
        """
        draft = self.draft
        if not draft.customer_name or not draft.customer_email or not draft.customer_phone:
            self.notification = CUSTOMER_DETAILS_REQUIRED
            return False
        if self.verification.is_verified:
            return False

        try:
            result = create_session(draft.customer_name, draft.customer_email, draft.customer_phone)
        except Exception as e:
            logger.error(f"Verification session could not be created: {e}")
            self.notification = "Failed to start verification"
            return False

        if not result or not result.get("ok"):
            self.notification = (result or {}).get("error") or "Failed to start verification"
            return False

        self.verification.session_id = result["session_id"]
        self.verification.session_url = result.get("session_url")
        self.verification.status = VerificationStatus.PENDING
        self.notification = None
        self.errors.pop("verification", None)
        return True

    def apply_verification_status(self, status, session_id=None):
        """Apply a provider decision (verified or rejected) to a pending session.

        Decisions for a session that was discarded in the meantime are ignored,
        as is None (still undecided).
        """
        if session_id is not None and session_id != self.verification.session_id:
            return self.verification.status
        if self.verification.status != VerificationStatus.PENDING:
            return self.verification.status
        if status == VerificationStatus.VERIFIED:
            self.verification.status = VerificationStatus.VERIFIED
            self.errors.pop("verification", None)
        elif status == VerificationStatus.REJECTED:
            self.verification.status = VerificationStatus.REJECTED
            self.notification = "Identity verification failed. Please try again."
        return self.verification.status

    # Submission

    def submit(self, terms_accepted, checkout):
        """Confirm the booking and hand it to ``checkout(draft, breakdown)``.

        A second call while the first is still running is ignored. The
        collaborator returns a dict with ``status`` of ``"success"`` (plus any
        payload such as a redirect url) or ``"failed"`` with a ``message``.
        """
        if self.is_submitting or self.step != WizardStep.REVIEW_PAYMENT:
            return None

        self.errors = self._validate_current_step(terms_accepted)
        if self.errors:
            return None

        breakdown = self.price_breakdown()
        if breakdown is None or breakdown.charge_amount <= Decimal("0"):
            self.notification = "Unable to price this booking. Please check your dates and vehicle."
            return None

        self.is_submitting = True
        try:
            result = checkout(self.draft, breakdown)
        except Exception as e:
            logger.error(f"Checkout failed: {e}")
            self.notification = "Failed to initiate payment"
            return None
        finally:
            self.is_submitting = False

        if not result or result.get("status") != "success":
            self.notification = (result or {}).get("message") or "Failed to initiate payment"
            return None

        self.notification = None
        self.confirmation = result
        self.step = WizardStep.CONFIRMED
        return result

    def reset(self):
        self.draft = BookingDraft()
        self.verification.reset()
        self.step = WizardStep.TRIP_DETAILS
        self.errors = {}
        self.notification = None
        self.is_submitting = False
        self.confirmation = None
