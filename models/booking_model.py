from decimal import Decimal
from enum import Enum
from typing import Optional, FrozenSet
from pydantic import BaseModel, ConfigDict, Field


class DriverAgeBracket(str, Enum):
    UNDER_25 = "under_25"
    FROM_25_TO_70 = "25_70"
    OVER_70 = "over_70"


class CustomerType(str, Enum):
    INDIVIDUAL = "Individual"
    BUSINESS = "Business"


class WizardStep(str, Enum):
    TRIP_DETAILS = "trip_details"
    VEHICLE_SELECTION = "vehicle_selection"
    REVIEW_PAYMENT = "review_payment"
    CONFIRMED = "confirmed"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str = ""
    lat: Optional[float] = None
    lon: Optional[float] = None


class BookingDraft(BaseModel):
    """In-progress booking form state.

    Fields hold raw user input (strings), so a half-filled draft is always
    representable. Use ``with_field`` to change one field at a time.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "pickup_location": {"address": "123 Main St, Dallas", "lat": 32.7767, "lon": -96.797},
                "dropoff_location": {"address": "123 Main St, Dallas"},
                "pickup_date": "2024-01-01",
                "dropoff_date": "2024-01-11",
                "pickup_time": "10:00",
                "dropoff_time": "10:00",
                "driver_age": "25_70",
                "vehicle_id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "extra_ids": ["child-seat"],
                "customer_name": "Jane Doe",
                "customer_email": "jane@example.com",
                "customer_phone": "+1 214 555 0100",
                "customer_type": "Individual",
                "license_number": "TX1234567",
            }
        },
    )

    pickup_location: Location = Field(default_factory=Location)
    dropoff_location: Location = Field(default_factory=Location)
    pickup_date: str = ""
    dropoff_date: str = ""
    pickup_time: str = ""
    dropoff_time: str = ""
    driver_age: str = ""
    vehicle_id: Optional[str] = None
    extra_ids: FrozenSet[str] = frozenset()
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_type: str = ""
    license_number: str = ""
    special_requests: str = ""
    promo_code: str = ""

    def with_field(self, name, value):
        """Return a copy of the draft with a single field replaced."""
        if name not in type(self).model_fields:
            raise KeyError(f"Unknown booking field: {name}")
        if name in ("pickup_location", "dropoff_location") and not isinstance(value, Location):
            value = Location(address=value or "")
        elif name == "extra_ids":
            value = frozenset(value or ())
        elif name == "vehicle_id":
            value = value or None
        elif value is None:
            value = ""
        return self.model_copy(update={name: value})

    @property
    def young_driver(self):
        return self.driver_age == DriverAgeBracket.UNDER_25.value


class RentalDuration(BaseModel):
    model_config = ConfigDict(frozen=True)

    hours: int
    days: int
    remaining_hours: int
    is_valid: bool
    formatted: str


class PriceBreakdown(BaseModel):
    """Checkout totals. ``due_today`` never includes the deposit."""
    model_config = ConfigDict(frozen=True)

    rental_days: int
    rental_price: Decimal
    extras_total: Decimal
    taxes_and_fees: Decimal
    due_today: Decimal
    total_with_extras: Decimal
    deposit: Decimal
    charge_amount: Decimal
