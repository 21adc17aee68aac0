import datetime
import logging
import streamlit as st
from bson.objectid import ObjectId
from pymongo.errors import PyMongoError
from config import db
from models.booking_model import WizardStep, DriverAgeBracket, CustomerType
from models.rental_model import CustomerModel, RentalModel, InvoiceModel, RentalChargeModel
from models.vehicle_model import VehicleModel, PricingExtraModel, BlockedDateRange
from models.verification_model import VerificationStatus
from modules.auth import encrypt_data
from modules.payment import create_checkout_session
from modules.pricing import rental_period_type, calculate_period_amount
from modules.verification import create_verification_session, get_review_result, review_result_to_status, VerificationPoller
from modules.wizard import BookingWizard, BookingCatalog
from utils import format_currency, round_money

logger = logging.getLogger(__name__)

# Rentals in these states no longer hold the vehicle
CLOSED_RENTAL_STATUSES = ["Cancelled", "Completed"]

AGE_LABELS = {
    DriverAgeBracket.UNDER_25.value: "Under 25",
    DriverAgeBracket.FROM_25_TO_70.value: "25 - 70",
    DriverAgeBracket.OVER_70.value: "Over 70",
}


def _parse_day(value):
    return datetime.datetime.strptime(value[:10], "%Y-%m-%d").date()


def load_catalog():
    """Vehicles that can be booked, pricing extras and blocked date ranges."""
    vehicles = []
    for doc in db.vehicles.find({"status": {"$ne": "Maintenance"}}):
        vehicle = VehicleModel.from_document(doc)
        if vehicle.has_rates:
            vehicles.append(vehicle)
    extras = [PricingExtraModel.from_document(doc) for doc in db.pricing_extras.find()]
    blocked_dates = [
        BlockedDateRange(start_date=doc["start_date"], end_date=doc["end_date"], reason=doc.get("reason"))
        for doc in db.blocked_dates.find().sort("start_date", 1)
    ]
    return BookingCatalog(vehicles, extras, blocked_dates)


def check_vehicle_availability(vehicle_id, start_date, end_date):
    """Whether the vehicle has no open rental overlapping the given dates."""
    existing_rentals = db.rentals.find({
        "vehicle_id": ObjectId(vehicle_id),
        "status": {"$nin": CLOSED_RENTAL_STATUSES}
    })

    for rental in existing_rentals:
        rental_start = _parse_day(rental["start_date"])
        rental_end = _parse_day(rental["end_date"])
        if start_date <= rental_end and end_date >= rental_start:
            return False
    return True


def available_vehicles(catalog, draft):
    if not draft.pickup_date or not draft.dropoff_date:
        return list(catalog.vehicles)
    start_date = _parse_day(draft.pickup_date)
    end_date = _parse_day(draft.dropoff_date)
    return [v for v in catalog.vehicles if check_vehicle_availability(v.id, start_date, end_date)]


def generate_invoice_number(today=None):
    """Sequential per month: INV-YYYYMM-0001, INV-YYYYMM-0002, ..."""
    today = today or datetime.date.today()
    month_start = datetime.datetime(today.year, today.month, 1)
    if today.month == 12:
        next_month = datetime.datetime(today.year + 1, 1, 1)
    else:
        next_month = datetime.datetime(today.year, today.month + 1, 1)
    count = db.invoices.count_documents({"invoice_date": {"$gte": month_start, "$lt": next_month}})
    return f"INV-{today:%Y%m}-{count + 1:04d}"


def _protect_license(license_number):
    try:
        return encrypt_data(license_number)
    except RuntimeError:
        logger.warning("FERNET_KEY missing, storing only the last characters of the license number.")
        return f"***{license_number[-4:]}"


def _link_verification(customer_id, verification):
    """Attach the booking's verification record to the new customer. Best effort."""
    if not verification.session_id:
        return
    try:
        record = db.identity_verifications.find_one({"session_id": verification.session_id})
        if not record:
            logger.warning(f"Verification {verification.session_id} not found, customer {customer_id} left unlinked.")
            return
        db.identity_verifications.update_one({"_id": record["_id"]}, {"$set": {"customer_id": customer_id}})
        status = review_result_to_status(record.get("review_result"))
        db.customers.update_one(
            {"_id": customer_id},
            {"$set": {"identity_verification_status": status.value if status else "pending"}}
        )
    except PyMongoError as e:
        logger.error(f"Failed to link verification to customer {customer_id}: {e}")


def _generate_first_charge(rental_id, customer_id, rental):
    """First rental charge, due on the start date. Best effort."""
    try:
        if db.rental_charges.find_one({"rental_id": rental_id}):
            return
        charge = RentalChargeModel(
            rental_id=str(rental_id),
            customer_id=str(customer_id),
            amount=rental.monthly_amount,
            due_date=rental.start_date,
        ).model_dump()
        charge.update({
            "rental_id": rental_id,
            "customer_id": customer_id,
            "due_date": rental.start_date.isoformat(),
            "created_at": datetime.datetime.now(),
        })
        db.rental_charges.insert_one(charge)
    except PyMongoError as e:
        logger.error(f"Failed to generate first charge for rental {rental_id}: {e}")


def _mark_vehicle_rented(vehicle_id):
    try:
        db.vehicles.update_one({"_id": ObjectId(vehicle_id)}, {"$set": {"status": "Rented"}})
    except PyMongoError as e:
        logger.error(f"Failed to update vehicle status for {vehicle_id}: {e}")


def finalize_booking(draft, vehicle, breakdown, verification):
    """Persist a validated booking as customer, pending rental and invoice.

    Customer and rental writes must succeed; the first charge, the vehicle
    status and the verification link are best effort once the rental exists.
    """
    customer = CustomerModel(
        type=draft.customer_type,
        name=draft.customer_name.strip(),
        email=draft.customer_email.strip(),
        phone=draft.customer_phone.strip(),
        license_number=_protect_license(draft.license_number.strip()),
        identity_verification_status=verification.status.value,
    )
    customer_doc = customer.model_dump()
    customer_doc["created_at"] = datetime.datetime.now()
    customer_id = db.customers.insert_one(customer_doc).inserted_id

    _link_verification(customer_id, verification)

    rental = RentalModel(
        customer_id=str(customer_id),
        vehicle_id=vehicle.id,
        start_date=draft.pickup_date,
        end_date=draft.dropoff_date,
        rental_period_type=rental_period_type(breakdown.rental_days),
        monthly_amount=float(round_money(calculate_period_amount(vehicle, breakdown.rental_days))),
        extra_ids=sorted(draft.extra_ids),
    )
    rental_doc = rental.model_dump()
    rental_doc.update({
        "customer_id": customer_id,
        "vehicle_id": ObjectId(vehicle.id),
        "start_date": rental.start_date.isoformat(),
        "end_date": rental.end_date.isoformat(),
        "pickup_time": draft.pickup_time,
        "dropoff_time": draft.dropoff_time,
        "pickup_location": draft.pickup_location.address,
        "dropoff_location": draft.dropoff_location.address,
        "driver_age": draft.driver_age,
        "special_requests": draft.special_requests or None,
        "created_at": datetime.datetime.now(),
    })
    rental_id = db.rentals.insert_one(rental_doc).inserted_id
    logger.info(f"Rental {rental_id} created for customer {customer_id}, vehicle {vehicle.id}.")

    _generate_first_charge(rental_id, customer_id, rental)
    _mark_vehicle_rented(vehicle.id)

    charged_extras = breakdown.charge_amount - breakdown.due_today
    invoice = InvoiceModel(
        rental_id=str(rental_id),
        customer_id=str(customer_id),
        vehicle_id=vehicle.id,
        invoice_number=generate_invoice_number(),
        invoice_date=datetime.datetime.now(),
        due_date=draft.pickup_date,
        subtotal=float(round_money(breakdown.rental_price + charged_extras)),
        tax_amount=float(round_money(breakdown.taxes_and_fees)),
        total_amount=float(round_money(breakdown.charge_amount)),
        notes=f"Security deposit of {format_currency(breakdown.deposit)} will be held during the rental period.",
    )
    invoice_doc = invoice.model_dump()
    invoice_doc.update({
        "rental_id": rental_id,
        "customer_id": customer_id,
        "vehicle_id": ObjectId(vehicle.id),
        "due_date": invoice.due_date.isoformat(),
    })
    db.invoices.insert_one(invoice_doc)

    return {
        "customer_id": customer_id,
        "rental_id": rental_id,
        "invoice_number": invoice.invoice_number,
        "total_amount": invoice.total_amount,
    }


def discard_booking(booking, vehicle_id):
    """Remove the records of a booking whose checkout could not be opened."""
    rental_id = booking["rental_id"]
    customer_id = booking["customer_id"]
    try:
        db.rentals.delete_one({"_id": rental_id, "status": "Pending"})
        db.invoices.delete_many({"rental_id": rental_id})
        db.rental_charges.delete_many({"rental_id": rental_id})
        db.identity_verifications.update_many({"customer_id": customer_id}, {"$set": {"customer_id": None}})
        db.customers.delete_one({"_id": customer_id})
        still_booked = db.rentals.find_one({
            "vehicle_id": ObjectId(vehicle_id),
            "status": {"$nin": CLOSED_RENTAL_STATUSES}
        })
        if not still_booked:
            db.vehicles.update_one({"_id": ObjectId(vehicle_id)}, {"$set": {"status": "Available"}})
    except PyMongoError as e:
        logger.error(f"Failed to discard unpaid rental {rental_id}: {e}")
        return
    logger.info(f"Unpaid rental {rental_id} discarded after checkout failed.")


def checkout_booking(draft, breakdown, vehicle, verification):
    """Persist the booking, then open a hosted checkout session for it.

    When the session cannot be created the booking is discarded, so a retry
    starts from a clean slate.
    """
    booking = finalize_booking(draft, vehicle, breakdown, verification)
    payment_result = create_checkout_session(
        booking["rental_id"],
        draft.customer_email.strip(),
        draft.customer_name.strip(),
        booking["total_amount"],
    )
    if payment_result.get("status") != "success":
        discard_booking(booking, vehicle.id)
        return payment_result
    payment_result.update(booking)
    return payment_result


# Streamlit pages

def _get_wizard():
    if 'booking_wizard' not in st.session_state:
        try:
            catalog = load_catalog()
        except PyMongoError as e:
            st.error("Unable to load vehicles right now. Please try again later!")
            logger.error(f"Error loading booking catalog: {e}")
            catalog = BookingCatalog()
        st.session_state['booking_wizard'] = BookingWizard(catalog)
    return st.session_state['booking_wizard']


def _field_error(wizard, field):
    message = wizard.errors.get(field)
    if message:
        st.caption(f":red[{message}]")


def _on_change(field, key):
    wizard = st.session_state['booking_wizard']
    value = st.session_state[key]
    if isinstance(value, (datetime.date, datetime.time)):
        value = value.strftime("%H:%M") if isinstance(value, datetime.time) else value.isoformat()
    wizard.update_field(field, value)


def _text_field(wizard, label, field, **kwargs):
    key = f"bk_{field}"
    value = getattr(wizard.draft, field)
    st.text_input(label, value=getattr(value, "address", value), key=key,
                  on_change=_on_change, args=(field, key), **kwargs)
    _field_error(wizard, field)


def _stop_poller():
    poller = st.session_state.pop('verification_poller', None)
    if poller:
        poller.cancel()


def active_poller():
    """The session's verification poller, or None once it has finished or timed out."""
    poller = st.session_state.get('verification_poller')
    if poller is not None and poller.future.done():
        st.session_state.pop('verification_poller', None)
        return None
    return poller


def _render_verification(wizard):
    st.markdown("**Identity verification**")
    context = wizard.verification
    if context.status == VerificationStatus.VERIFIED:
        st.success("Identity verified.")
        return

    if context.status == VerificationStatus.PENDING:
        st.info("Verification in progress. Complete it in the verification window.")
        if context.session_url:
            st.link_button("Open verification", context.session_url)
        if st.button("Refresh verification status"):
            wizard.apply_verification_status(review_result_to_status(get_review_result(context.session_id)))
            st.rerun()
    elif context.status == VerificationStatus.REJECTED:
        st.warning("Identity verification failed. Please try again.")

    if context.status != VerificationStatus.PENDING or active_poller() is None:
        if st.button("Verify my identity"):
            _stop_poller()
            if wizard.start_verification(create_verification_session):
                session_id = context.session_id
                poller = VerificationPoller(
                    session_id,
                    on_result=lambda status: wizard.apply_verification_status(status, session_id),
                )
                poller.start()
                st.session_state['verification_poller'] = poller
                st.rerun()
    _field_error(wizard, "verification")


def _render_trip_details(wizard):
    st.subheader("1. Trip Details")
    draft = wizard.draft
    _text_field(wizard, "Pickup location", "pickup_location", placeholder="123 Main St, Dallas")
    _text_field(wizard, "Drop-off location", "dropoff_location", placeholder="123 Main St, Dallas")

    blocked = wizard.catalog.blocked_dates
    if blocked:
        st.caption("Unavailable dates: " + ", ".join(
            f"{b.start_date} to {b.end_date}" for b in blocked))

    col1, col2 = st.columns(2)
    with col1:
        st.date_input("Pickup date", value=_parse_day(draft.pickup_date) if draft.pickup_date else None,
                      min_value=datetime.date.today(), key="bk_pickup_date",
                      on_change=_on_change, args=("pickup_date", "bk_pickup_date"))
        _field_error(wizard, "pickup_date")
        st.time_input("Pickup time", value=None, key="bk_pickup_time",
                      on_change=_on_change, args=("pickup_time", "bk_pickup_time"))
        _field_error(wizard, "pickup_time")
    with col2:
        st.date_input("Return date", value=_parse_day(draft.dropoff_date) if draft.dropoff_date else None,
                      min_value=datetime.date.today(), key="bk_dropoff_date",
                      on_change=_on_change, args=("dropoff_date", "bk_dropoff_date"))
        _field_error(wizard, "dropoff_date")
        st.time_input("Return time", value=None, key="bk_dropoff_time",
                      on_change=_on_change, args=("dropoff_time", "bk_dropoff_time"))
        _field_error(wizard, "dropoff_time")

    duration = wizard.duration
    if duration:
        st.write(f"Rental duration: {duration.formatted}")

    ages = list(AGE_LABELS)
    st.selectbox("Driver age", ages, index=ages.index(draft.driver_age) if draft.driver_age in ages else None,
                 format_func=AGE_LABELS.get, key="bk_driver_age",
                 on_change=_on_change, args=("driver_age", "bk_driver_age"))
    _field_error(wizard, "driver_age")
    if draft.young_driver:
        st.caption("A young driver surcharge may apply at pickup.")

    _text_field(wizard, "Full name", "customer_name")
    _text_field(wizard, "Email", "customer_email")
    _text_field(wizard, "Phone", "customer_phone")
    types = [t.value for t in CustomerType]
    st.radio("Customer type", types, index=types.index(draft.customer_type) if draft.customer_type in types else None,
             key="bk_customer_type", on_change=_on_change, args=("customer_type", "bk_customer_type"))
    _field_error(wizard, "customer_type")

    _render_verification(wizard)

    if st.button("Continue to vehicles", type="primary"):
        if wizard.advance():
            st.rerun()
        else:
            st.error("Please correct the highlighted fields.")


def _render_vehicle_selection(wizard):
    st.subheader("2. Choose Your Vehicle")
    try:
        vehicles = available_vehicles(wizard.catalog, wizard.draft)
    except PyMongoError as e:
        st.error("Unable to check vehicle availability. Please try again later!")
        logger.error(f"Error checking availability: {e}")
        vehicles = []

    if not vehicles:
        st.write("No vehicles are available for these dates.")

    for vehicle in vehicles:
        estimate = wizard.estimate_for(vehicle)
        cols = st.columns([3, 1.5, 1])
        with cols[0]:
            st.write(f"**{vehicle.display_name}** ({vehicle.year or ''}) - {vehicle.category or 'Standard'}")
            rates = []
            if vehicle.daily_rent:
                rates.append(f"{format_currency(vehicle.daily_rent)}/day")
            if vehicle.weekly_rent:
                rates.append(f"{format_currency(vehicle.weekly_rent)}/week")
            if vehicle.monthly_rent:
                rates.append(f"{format_currency(vehicle.monthly_rent)}/month")
            st.caption(" · ".join(rates))
        with cols[1]:
            if estimate:
                st.write(f"Est. {format_currency(estimate['total'])} for {estimate['days']} days")
        with cols[2]:
            selected = wizard.draft.vehicle_id == vehicle.id
            if st.button("Selected" if selected else "Select", key=f"select_{vehicle.id}", disabled=selected):
                wizard.update_field("vehicle_id", vehicle.id)
                st.rerun()
    _field_error(wizard, "vehicle_id")

    col1, col2 = st.columns(2)
    if col1.button("Back"):
        wizard.go_back()
        st.rerun()
    if col2.button("Continue to review", type="primary"):
        if wizard.advance():
            st.rerun()


def _render_review(wizard):
    st.subheader("3. Review & Payment")
    draft = wizard.draft
    vehicle = wizard.selected_vehicle

    st.write(f"**Vehicle:** {vehicle.display_name if vehicle else '-'}")
    st.write(f"**Pickup:** {draft.pickup_location.address} on {draft.pickup_date} at {draft.pickup_time}")
    st.write(f"**Return:** {draft.dropoff_location.address} on {draft.dropoff_date} at {draft.dropoff_time}")

    if wizard.catalog.extras:
        st.markdown("**Extras**")
        for extra in wizard.catalog.extras:
            checked = st.checkbox(f"{extra.name} (+{format_currency(extra.price)})",
                                  value=extra.id in draft.extra_ids, key=f"extra_{extra.id}")
            if checked != (extra.id in draft.extra_ids):
                wizard.toggle_extra(extra.id)

    _text_field(wizard, "Driver license number", "license_number")
    st.text_area("Special requests", value=draft.special_requests, key="bk_special_requests",
                 on_change=_on_change, args=("special_requests", "bk_special_requests"))

    breakdown = wizard.price_breakdown()
    if breakdown:
        st.markdown("**Price summary**")
        st.write(f"Rental ({breakdown.rental_days} days): {format_currency(breakdown.rental_price)}")
        if breakdown.extras_total:
            st.write(f"Extras: {format_currency(breakdown.extras_total)}")
        st.write(f"Taxes & fees: {format_currency(breakdown.taxes_and_fees)}")
        st.write(f"**Due today: {format_currency(breakdown.charge_amount)}**")
        st.caption(f"A refundable security deposit of {format_currency(breakdown.deposit)} "
                   "is held at pickup and is not charged today.")

    if not wizard.verification.is_verified:
        _field_error(wizard, "verification")

    terms = st.checkbox("I agree to the Rental Agreement, Terms of Service and Privacy Policy", key="bk_terms")
    _field_error(wizard, "terms")

    col1, col2 = st.columns(2)
    if col1.button("Back"):
        wizard.go_back()
        st.rerun()
    if col2.button("Confirm & Pay", type="primary", disabled=wizard.is_submitting):
        with st.spinner("Creating your booking..."):
            result = wizard.submit(
                terms,
                lambda draft, breakdown: checkout_booking(draft, breakdown, wizard.selected_vehicle, wizard.verification),
            )
        if result:
            st.rerun()


def _render_confirmation(wizard):
    result = wizard.confirmation or {}
    st.success("Booking created! Complete your payment to confirm it.")
    st.write(f"Invoice: {result.get('invoice_number', '-')}")
    if result.get("url"):
        st.link_button("Pay now", result["url"], type="primary")
    if st.button("Start a new booking"):
        _stop_poller()
        wizard.reset()
        st.rerun()


def booking_page():
    st.header("Book a Car")
    wizard = _get_wizard()

    if wizard.notification:
        st.warning(wizard.notification)
        if st.button("Dismiss"):
            wizard.notification = None
            st.rerun()

    if wizard.step == WizardStep.TRIP_DETAILS:
        _render_trip_details(wizard)
    elif wizard.step == WizardStep.VEHICLE_SELECTION:
        _render_vehicle_selection(wizard)
    elif wizard.step == WizardStep.REVIEW_PAYMENT:
        _render_review(wizard)
    else:
        _render_confirmation(wizard)
