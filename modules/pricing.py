import math
from decimal import Decimal
from models.booking_model import PriceBreakdown
from utils import to_decimal
import config


# A rental of 28+ days is priced on the monthly tier (one month = 30 days).
MONTHLY_THRESHOLD_DAYS = 28
DAYS_PER_MONTH = 30
WEEKLY_THRESHOLD_DAYS = 7
DAYS_PER_WEEK = 7

TAX_RATE = Decimal("0.10")
SERVICE_FEE = Decimal("50")
SECURITY_DEPOSIT = Decimal("500")
DEFAULT_DAILY_RENT = Decimal("50")


def _rate(vehicle, field):
    if isinstance(vehicle, dict):
        value = vehicle.get(field)
    else:
        value = getattr(vehicle, field, None)
    return to_decimal(value)


def calculate_rental_price(vehicle, days):
    """Rental price for a whole number of days using the cheapest applicable tier.

    Tiers apply in order: monthly (28+ days), weekly (7+ days), daily, then a
    monthly-derived daily estimate. A tier only applies when its rate is set
    and non-zero. Remainder days are charged at the daily rate, or free when
    the vehicle has no daily rate.
    """
    daily = _rate(vehicle, "daily_rent")
    weekly = _rate(vehicle, "weekly_rent")
    monthly = _rate(vehicle, "monthly_rent")
    days = max(int(days), 0)

    if days >= MONTHLY_THRESHOLD_DAYS and monthly > 0:
        months, remainder = divmod(days, DAYS_PER_MONTH)
        return months * monthly + remainder * daily
    if days >= WEEKLY_THRESHOLD_DAYS and weekly > 0:
        weeks, remainder = divmod(days, DAYS_PER_WEEK)
        return weeks * weekly + remainder * daily
    if daily > 0:
        return days * daily
    if monthly > 0:
        return monthly / DAYS_PER_MONTH * days
    return Decimal("0")


def estimate_total(vehicle, duration):
    """Estimated rental price shown on the vehicle cards; None until dates are complete."""
    if duration is None:
        return None
    return {"total": calculate_rental_price(vehicle, duration.days), "days": duration.days}


def rental_period_type(days):
    if days >= MONTHLY_THRESHOLD_DAYS:
        return "Monthly"
    if days >= WEEKLY_THRESHOLD_DAYS:
        return "Weekly"
    return "Daily"


def calculate_period_amount(vehicle, days):
    """Recurring amount stored on the rental record for its period type."""
    daily = _rate(vehicle, "daily_rent") or DEFAULT_DAILY_RENT
    period = rental_period_type(days)
    if period == "Monthly":
        return _rate(vehicle, "monthly_rent") or daily * DAYS_PER_MONTH
    if period == "Weekly":
        weeks = math.ceil(days / DAYS_PER_WEEK)
        return (_rate(vehicle, "weekly_rent") or daily * DAYS_PER_WEEK) * weeks
    return daily * days


def calculate_extras_total(extras, selected_ids):
    total = Decimal("0")
    for extra in extras:
        if extra.id in selected_ids:
            total += to_decimal(extra.price)
    return total


def calculate_price_breakdown(rental_price, extras_total=Decimal("0"), rental_days=0, charge_extras=None):
    """Authoritative checkout totals.

    Tax is 10% of the rental price plus a flat service fee. The security
    deposit is reported separately and is never part of ``due_today``.
    Selected extras are added to ``charge_amount`` only when CHARGE_EXTRAS is on.
    """
    if charge_extras is None:
        charge_extras = config.CHARGE_EXTRAS
    rental_price = to_decimal(rental_price)
    extras_total = to_decimal(extras_total)

    taxes_and_fees = rental_price * TAX_RATE + SERVICE_FEE
    due_today = rental_price + taxes_and_fees
    charge_amount = due_today + extras_total if charge_extras else due_today

    return PriceBreakdown(
        rental_days=rental_days,
        rental_price=rental_price,
        extras_total=extras_total,
        taxes_and_fees=taxes_and_fees,
        due_today=due_today,
        total_with_extras=rental_price + extras_total,
        deposit=SECURITY_DEPOSIT,
        charge_amount=charge_amount,
    )
