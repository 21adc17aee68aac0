from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class CheckoutRequest(BaseModel):
    rental_id: str
    customer_email: str
    customer_name: str
    total_amount: float = Field(..., gt=0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "rental_id": "65a1f0c2e4b0a1b2c3d4e5f7",
                "customer_email": "jane@example.com",
                "customer_name": "Jane Doe",
                "total_amount": 1040.0
            }
        }
    )


class CheckoutResult(BaseModel):
    status: str
    message: Optional[str] = None
    session_id: Optional[str] = None
    url: Optional[str] = None

    @property
    def ok(self):
        return self.status == "success"
