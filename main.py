import streamlit as st
st.set_page_config(page_title="Car Rental Booking", layout="wide")

import logging
from pymongo.errors import PyMongoError
from config import client
from modules.auth import admin_login
from modules.admin import admin_dashboard
from modules.booking import booking_page
from modules.payment import confirm_checkout, cancel_checkout
from modules.vehicle import initialize_indexes

logger = logging.getLogger(__name__)


def is_mongodb_connected():
    try:
        client.admin.command('ping')
        return True
    except PyMongoError as e:
        logger.error(f"MongoDB connection error: {e}")
        return False


def handle_checkout_return():
    """Apply the result of a hosted checkout redirect (?checkout=success|cancelled)."""
    params = st.query_params
    outcome = params.get("checkout")
    rental_id = params.get("rental_id")
    if not outcome or not rental_id:
        return

    if outcome == "success":
        if confirm_checkout(rental_id, params.get("session_id")):
            st.success("Payment received. Your booking is confirmed!")
            wizard = st.session_state.pop('booking_wizard', None)
            if wizard:
                wizard.reset()
        else:
            st.error("We could not confirm your payment. Please contact support.")
    elif outcome == "cancelled":
        cancel_checkout(rental_id)
        st.warning("Payment was cancelled. Your booking has not been made.")
    st.query_params.clear()


def main():
    st.title("Car Rental Booking")

    if not is_mongodb_connected():
        st.error("Unable to connect to MongoDB. Please check `system.log`")
        return
    initialize_indexes()
    handle_checkout_return()

    choice = st.sidebar.radio("Menu", ["Book a Car", "Admin Portal"], key="menu_main")
    if choice == "Book a Car":
        booking_page()
    elif admin_login():
        admin_dashboard()


if __name__ == '__main__':
    main()
