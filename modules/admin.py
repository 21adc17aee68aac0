import streamlit as st
import logging
from modules.vehicle import manage_vehicles, manage_pricing_extras, manage_blocked_dates
from modules.auth import admin_logout
from config import db
import pandas as pd
from bson import ObjectId
import datetime
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side
from openpyxl.utils.dataframe import dataframe_to_rows
from io import BytesIO
from utils import format_currency

logger = logging.getLogger(__name__)

RENTAL_STATUSES = ["Pending", "Active", "Completed", "Cancelled"]

EXPORT_HEADERS = {
    "rentals": [
        "Customer", "Vehicle Reg", "Start Date", "End Date", "Schedule",
        "Period Amount ($)", "Status", "Extras",
    ],
    "invoices": [
        "Invoice No", "Invoice Date", "Customer", "Vehicle Reg", "Due Date",
        "Subtotal ($)", "Tax ($)", "Total ($)", "Status",
    ],
}

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def admin_dashboard():
    st.subheader("Admin Portal")
    menu = ["Vehicles", "Pricing Extras", "Blocked Dates", "Rentals", "Export"]
    if 'selected_menu' not in st.session_state:
        st.session_state['selected_menu'] = menu[0]

    choice = st.sidebar.selectbox("Admin Menu", menu, index=menu.index(st.session_state['selected_menu']), key="menu_admin")
    st.session_state['selected_menu'] = choice

    if choice == "Vehicles":
        manage_vehicles()
    elif choice == "Pricing Extras":
        manage_pricing_extras()
    elif choice == "Blocked Dates":
        manage_blocked_dates()
    elif choice == "Rentals":
        manage_rentals()
    elif choice == "Export":
        export_reports()

    if st.sidebar.button("Sign Out"):
        admin_logout()
        st.rerun()


def _lookup(collection, ids, field):
    docs = db[collection].find({"_id": {"$in": [i for i in ids if i]}}, {field: 1})
    return {doc["_id"]: doc.get(field, "") for doc in docs}


def update_rental_status(rental_id, status):
    """Set a rental's status; last write wins."""
    if status not in RENTAL_STATUSES:
        raise ValueError(f"Unknown rental status: {status}")
    rental = db.rentals.find_one({"_id": ObjectId(rental_id)})
    if not rental:
        return False
    db.rentals.update_one({"_id": rental["_id"]}, {"$set": {"status": status, "updated_at": datetime.datetime.now()}})
    # A closed rental releases its vehicle
    if status in ("Completed", "Cancelled"):
        db.vehicles.update_one({"_id": rental["vehicle_id"]}, {"$set": {"status": "Available"}})
    logger.info(f"Rental {rental_id} status changed from {rental.get('status')} to {status}.")
    return True


def manage_rentals():
    st.subheader("Rentals")
    status_filter = st.selectbox("Status", ["All"] + RENTAL_STATUSES)
    query = {} if status_filter == "All" else {"status": status_filter}

    rentals = list(db.rentals.find(query).sort("created_at", -1))
    if not rentals:
        st.info("No rentals found.")
        return

    customers = _lookup("customers", [r.get("customer_id") for r in rentals], "name")
    vehicles = _lookup("vehicles", [r.get("vehicle_id") for r in rentals], "reg")

    for rental in rentals:
        with st.expander(f"{customers.get(rental.get('customer_id'), 'Unknown')} - "
                         f"{vehicles.get(rental.get('vehicle_id'), '?')} "
                         f"({rental['start_date']} to {rental['end_date']})"):
            st.write(f"Schedule: {rental.get('rental_period_type')}, "
                     f"amount {format_currency(rental.get('monthly_amount'))}")
            st.write(f"Pickup: {rental.get('pickup_location', '-')} at {rental.get('pickup_time', '-')}")
            st.write(f"Return: {rental.get('dropoff_location', '-')} at {rental.get('dropoff_time', '-')}")
            if rental.get("special_requests"):
                st.write(f"Requests: {rental['special_requests']}")

            current = rental.get("status", "Pending")
            new_status = st.selectbox(
                "Status", RENTAL_STATUSES,
                index=RENTAL_STATUSES.index(current) if current in RENTAL_STATUSES else 0,
                key=f"status_{rental['_id']}",
            )
            if st.button("Update Status", key=f"update_status_{rental['_id']}"):
                if update_rental_status(rental["_id"], new_status):
                    st.success("Status updated!")
                    st.rerun()
                else:
                    st.error("Rental not found.")


def _rentals_rows(from_date, to_date):
    rentals = list(db.rentals.find({
        "start_date": {"$gte": from_date.isoformat(), "$lte": to_date.isoformat()}
    }).sort("start_date", 1))
    customers = _lookup("customers", [r.get("customer_id") for r in rentals], "name")
    vehicles = _lookup("vehicles", [r.get("vehicle_id") for r in rentals], "reg")
    extras = {str(doc["_id"]): doc["name"] for doc in db.pricing_extras.find({}, {"name": 1})}
    return [
        [
            customers.get(r.get("customer_id"), ""),
            vehicles.get(r.get("vehicle_id"), ""),
            r.get("start_date"),
            r.get("end_date"),
            r.get("rental_period_type"),
            round(float(r.get("monthly_amount") or 0), 2),
            r.get("status"),
            ", ".join(extras.get(i, i) for i in r.get("extra_ids", [])),
        ]
        for r in rentals
    ]


def _invoices_rows(from_date, to_date):
    start = datetime.datetime.combine(from_date, datetime.datetime.min.time())
    end = datetime.datetime.combine(to_date, datetime.datetime.max.time())
    invoices = list(db.invoices.find({"invoice_date": {"$gte": start, "$lte": end}}).sort("invoice_date", 1))
    customers = _lookup("customers", [i.get("customer_id") for i in invoices], "name")
    vehicles = _lookup("vehicles", [i.get("vehicle_id") for i in invoices], "reg")
    return [
        [
            i.get("invoice_number"),
            i["invoice_date"].strftime("%Y-%m-%d"),
            customers.get(i.get("customer_id"), ""),
            vehicles.get(i.get("vehicle_id"), ""),
            i.get("due_date"),
            round(float(i.get("subtotal") or 0), 2),
            round(float(i.get("tax_amount") or 0), 2),
            round(float(i.get("total_amount") or 0), 2),
            i.get("status"),
        ]
        for i in invoices
    ]


def _to_xlsx(df, title):
    output = BytesIO()
    workbook = Workbook()

    bold_font = Font(bold=True)
    center_alignment = Alignment(horizontal="center")
    border = Border(left=Side(style='thin'),
                    right=Side(style='thin'),
                    top=Side(style='thin'),
                    bottom=Side(style='thin'))

    sheet = workbook.active
    sheet.title = title
    for r in dataframe_to_rows(df, index=False, header=True):
        sheet.append(r)
    for cell in sheet["1:1"]:
        cell.font = bold_font
        cell.alignment = center_alignment
        cell.border = border
    for row in sheet.iter_rows(min_row=2):
        for cell in row:
            cell.border = border

    workbook.save(output)
    return output.getvalue()


def generate_export(report_type, export_type, from_date, to_date):
    """Build a rentals or invoices report as CSV or XLSX. Returns ``(filename, bytes)``."""
    if report_type == "rentals":
        rows = _rentals_rows(from_date, to_date)
    elif report_type == "invoices":
        rows = _invoices_rows(from_date, to_date)
    else:
        raise ValueError(f"Unknown report type: {report_type}")

    df = pd.DataFrame(rows, columns=EXPORT_HEADERS[report_type])
    filename = f"{report_type}_export_{datetime.datetime.now():%Y%m%dT%H%M}"
    logger.info(f"Generating {report_type} export as {export_type} with {len(df)} rows.")

    if export_type == "csv":
        return f"{filename}.csv", df.to_csv(index=False).encode("utf-8")
    if export_type == "xlsx":
        return f"{filename}.xlsx", _to_xlsx(df, report_type.capitalize())
    raise ValueError(f"Unknown export type: {export_type}")


def export_reports():
    st.subheader("Export")

    col1, col2 = st.columns(2)
    with col1:
        from_date = st.date_input("From", datetime.date.today() - datetime.timedelta(days=30))
    with col2:
        to_date = st.date_input("To", datetime.date.today())

    report_type = st.selectbox("Report", list(EXPORT_HEADERS), format_func=str.capitalize)
    export_type = st.radio("Format", ["csv", "xlsx"], format_func=str.upper, horizontal=True)

    if st.button("Generate Export"):
        filename, data = generate_export(report_type, export_type, from_date, to_date)
        st.download_button(
            label="Download",
            data=data,
            file_name=filename,
            mime="text/csv" if export_type == "csv" else XLSX_MIME,
        )
