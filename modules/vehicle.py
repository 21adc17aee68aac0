import streamlit as st
from config import db
from pymongo.errors import ServerSelectionTimeoutError, DuplicateKeyError
import pymongo
from bson import ObjectId
import logging
import datetime
from models.vehicle_model import VehicleModel, BlockedDateRange
from modules.duration import expand_blocked_dates
from utils import sanitize_input, format_currency

logger = logging.getLogger(__name__)

VEHICLE_STATUSES = ["Available", "Rented", "Maintenance"]
CATEGORIES = ["Sedan", "SUV", "Truck", "Van", "Compact", "Luxury"]


def initialize_indexes():
    """Unique registration plates and the lookups the booking flow runs."""
    try:
        db.vehicles.create_index([("reg", pymongo.ASCENDING)], unique=True)
        db.vehicles.create_index([("status", pymongo.ASCENDING)])
        db.rentals.create_index([("vehicle_id", pymongo.ASCENDING), ("status", pymongo.ASCENDING)])
        db.identity_verifications.create_index([("session_id", pymongo.ASCENDING)])
        db.invoices.create_index([("invoice_date", pymongo.ASCENDING)])
    except ServerSelectionTimeoutError:
        st.warning("Unable to connect to MongoDB. Please check your network connection.")


def _rate(value):
    # 0 in the form means the vehicle has no rate for that period
    return float(value) if value else None


def vehicle_label(vehicle):
    rates = []
    if vehicle.daily_rent:
        rates.append(f"{format_currency(vehicle.daily_rent)}/day")
    if vehicle.weekly_rent:
        rates.append(f"{format_currency(vehicle.weekly_rent)}/week")
    if vehicle.monthly_rent:
        rates.append(f"{format_currency(vehicle.monthly_rent)}/month")
    return (f"{vehicle.display_name} (Reg: {vehicle.reg}), Year: {vehicle.year}, "
            f"{' · '.join(rates) or 'No rates'}, Status: {vehicle.status}")


def manage_vehicles():
    st.subheader("Vehicles")

    with st.form(key='add_vehicle_form'):
        make = sanitize_input(st.text_input("Make"))
        model = sanitize_input(st.text_input("Model"))
        reg = sanitize_input(st.text_input("Registration"))
        year = st.number_input("Year", min_value=1900, max_value=datetime.datetime.now().year + 1, value=2022)
        category = st.selectbox("Category", CATEGORIES)
        daily_rent = st.number_input("Daily rent", min_value=0.0, value=0.0)
        weekly_rent = st.number_input("Weekly rent", min_value=0.0, value=0.0)
        monthly_rent = st.number_input("Monthly rent", min_value=0.0, value=0.0)
        image = st.text_input("Image URL")
        submit_button = st.form_submit_button(label='Add Vehicle')

    if submit_button:
        if not reg.strip():
            st.error("Registration cannot be empty!")
        elif not any((daily_rent, weekly_rent, monthly_rent)):
            st.error("Set at least one of the daily, weekly or monthly rent.")
        else:
            vehicle_data = VehicleModel(
                make=make, model=model, reg=reg.strip(), year=year, category=category,
                daily_rent=_rate(daily_rent), weekly_rent=_rate(weekly_rent),
                monthly_rent=_rate(monthly_rent), image=image or None,
            ).model_dump(exclude={"id"})
            vehicle_data["created_at"] = datetime.datetime.now()
            try:
                existing_vehicle = db.vehicles.find_one({"reg": reg.strip()})
                if existing_vehicle:
                    st.error(f"A vehicle with registration {reg} already exists!")
                else:
                    db.vehicles.insert_one(vehicle_data)
                    logger.info(f"Vehicle {reg.strip()} added.")
                    st.success("Vehicle added!")
                    st.rerun()
            except DuplicateKeyError:
                st.error("This registration already exists. Please check again!")
            except ServerSelectionTimeoutError:
                st.warning("Unable to connect to MongoDB. Please try again later!")

    st.subheader("Vehicle List")
    try:
        vehicles = db.vehicles.find({})
        for vehicle in vehicles:
            cols = st.columns([3, 1, 1])
            with cols[0]:
                st.write(vehicle_label(VehicleModel.from_document(vehicle)))

            with cols[1]:
                if st.button("Edit", key=f"edit_{vehicle['_id']}"):
                    st.session_state['editing_vehicle_id'] = str(vehicle["_id"])

            with cols[2]:
                if st.button("Delete", key=f"delete_{vehicle['_id']}"):
                    # A vehicle with open rentals stays
                    rental = db.rentals.find_one({
                        "vehicle_id": vehicle["_id"],
                        "status": {"$nin": ["Completed", "Cancelled"]}
                    })
                    if rental:
                        st.error("Cannot delete a vehicle that is rented or booked.")
                    else:
                        db.vehicles.delete_one({"_id": vehicle["_id"]})
                        logger.info(f"Vehicle {vehicle['reg']} deleted.")
                        st.success(f"Vehicle {vehicle['reg']} deleted.")
                        st.rerun()

        editing_vehicle_id = st.session_state.get('editing_vehicle_id', None)
        if editing_vehicle_id:
            vehicle_to_edit = db.vehicles.find_one({"_id": ObjectId(editing_vehicle_id)})
            if vehicle_to_edit:
                edit_vehicle(vehicle_to_edit)
            else:
                st.error("Vehicle to edit was not found.")
                st.session_state['editing_vehicle_id'] = None

    except ServerSelectionTimeoutError:
        st.error("Unable to connect to MongoDB!")


def edit_vehicle(vehicle):
    st.subheader("Edit Vehicle")
    current = VehicleModel.from_document(vehicle)

    with st.form(key=f"edit_form_{vehicle['_id']}"):
        new_make = sanitize_input(st.text_input("Make", value=current.make))
        new_model = sanitize_input(st.text_input("Model", value=current.model))
        new_reg = sanitize_input(st.text_input("Registration", value=current.reg))
        new_year = st.number_input("Year", min_value=1900, max_value=datetime.datetime.now().year + 1,
                                   value=current.year or 2022)
        new_status = st.selectbox("Status", VEHICLE_STATUSES,
                                  index=VEHICLE_STATUSES.index(current.status) if current.status in VEHICLE_STATUSES else 0)
        new_daily_rent = st.number_input("Daily rent", min_value=0.0, value=float(current.daily_rent or 0))
        new_weekly_rent = st.number_input("Weekly rent", min_value=0.0, value=float(current.weekly_rent or 0))
        new_monthly_rent = st.number_input("Monthly rent", min_value=0.0, value=float(current.monthly_rent or 0))
        submit_button = st.form_submit_button(label="Update")

    if submit_button:
        if not new_reg.strip():
            st.error("Registration cannot be empty!")
            return

        try:
            existing_vehicle = db.vehicles.find_one({"reg": new_reg.strip(), "_id": {"$ne": vehicle["_id"]}})
            if existing_vehicle:
                st.error(f"A vehicle with registration {new_reg} already exists!")
            else:
                result = db.vehicles.update_one(
                    {"_id": vehicle["_id"]},
                    {"$set": {
                        "make": new_make,
                        "model": new_model,
                        "reg": new_reg.strip(),
                        "year": new_year,
                        "status": new_status,
                        "daily_rent": _rate(new_daily_rent),
                        "weekly_rent": _rate(new_weekly_rent),
                        "monthly_rent": _rate(new_monthly_rent),
                    }}
                )
                if result.modified_count > 0:
                    st.success("Vehicle updated!")
                else:
                    st.info("No changes were made.")
                st.session_state['editing_vehicle_id'] = None
                st.rerun()
        except DuplicateKeyError:
            st.error("This registration already exists. Please check again!")
        except ServerSelectionTimeoutError:
            st.warning("Unable to connect to MongoDB. Please try again later!")


def manage_pricing_extras():
    st.subheader("Pricing Extras")

    with st.form(key='add_extra_form'):
        name = sanitize_input(st.text_input("Name"))
        price = st.number_input("Price", min_value=0.0, value=0.0)
        description = sanitize_input(st.text_input("Description"))
        submit_button = st.form_submit_button(label='Add Extra')

    if submit_button:
        if not name.strip():
            st.error("Name cannot be empty!")
        else:
            db.pricing_extras.insert_one({
                "name": name.strip(),
                "price": float(price),
                "description": description or None,
                "created_at": datetime.datetime.now(),
            })
            logger.info(f"Pricing extra {name.strip()} added.")
            st.success("Extra added!")
            st.rerun()

    for extra in db.pricing_extras.find({}):
        cols = st.columns([4, 1])
        with cols[0]:
            st.write(f"{extra['name']}: {format_currency(extra['price'])}")
        with cols[1]:
            if st.button("Delete", key=f"delete_extra_{extra['_id']}"):
                db.pricing_extras.delete_one({"_id": extra["_id"]})
                st.rerun()


def add_blocked_dates(start_date, end_date, reason=None):
    """Store a closed range; returns an error message or None."""
    if end_date < start_date:
        return "End date must be on or after the start date."
    db.blocked_dates.insert_one({
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "reason": reason or None,
        "created_at": datetime.datetime.now(),
    })
    logger.info(f"Blocked dates {start_date} to {end_date} added.")
    return None


def manage_blocked_dates():
    st.subheader("Blocked Dates")

    with st.form(key='add_blocked_dates_form'):
        start_date = st.date_input("From", value=datetime.date.today())
        end_date = st.date_input("To", value=datetime.date.today())
        reason = sanitize_input(st.text_input("Reason"))
        submit_button = st.form_submit_button(label='Block Dates')

    if submit_button:
        error = add_blocked_dates(start_date, end_date, reason)
        if error:
            st.error(error)
        else:
            st.success("Dates blocked.")
            st.rerun()

    ranges = list(db.blocked_dates.find({}).sort("start_date", 1))
    blocked_days = expand_blocked_dates(BlockedDateRange(start_date=b["start_date"], end_date=b["end_date"]) for b in ranges)
    st.caption(f"{len(blocked_days)} days blocked in total.")
    for blocked in ranges:
        cols = st.columns([4, 1])
        with cols[0]:
            st.write(f"{blocked['start_date']} to {blocked['end_date']}"
                     + (f" ({blocked['reason']})" if blocked.get("reason") else ""))
        with cols[1]:
            if st.button("Remove", key=f"remove_blocked_{blocked['_id']}"):
                db.blocked_dates.delete_one({"_id": blocked["_id"]})
                st.rerun()
