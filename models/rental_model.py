from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import date, datetime


class CustomerModel(BaseModel):
    type: str
    name: str
    email: str
    phone: str
    status: str = "Active"
    license_number: Optional[str] = None
    identity_verification_status: str = "init"

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "Individual",
                "name": "Jane Doe",
                "email": "jane@example.com",
                "phone": "+1 214 555 0100",
                "status": "Active",
                "identity_verification_status": "verified"
            }
        }
    )


class RentalModel(BaseModel):
    customer_id: str
    vehicle_id: str
    start_date: date
    end_date: date
    rental_period_type: str
    monthly_amount: float
    status: str = "Pending"
    extra_ids: List[str] = []


class InvoiceModel(BaseModel):
    rental_id: str
    customer_id: str
    vehicle_id: str
    invoice_number: str
    invoice_date: datetime
    due_date: Optional[date] = None
    subtotal: float
    tax_amount: float = 0.0
    total_amount: float
    status: str = "pending"
    notes: Optional[str] = None


class RentalChargeModel(BaseModel):
    rental_id: str
    customer_id: str
    type: str = "Rental"
    amount: float
    due_date: date
    status: str = "Due"
