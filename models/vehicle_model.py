from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class VehicleModel(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "make": "Toyota",
                "model": "Camry",
                "reg": "ABC123",
                "year": 2022,
                "category": "Sedan",
                "status": "Available",
                "daily_rent": 100.0,
                "weekly_rent": 600.0,
                "monthly_rent": 2000.0
            }
        }
    )

    id: Optional[str] = None
    make: str = ""
    model: str = ""
    reg: str = ""
    year: Optional[int] = None
    category: Optional[str] = None
    status: str = "Available"
    daily_rent: Optional[float] = Field(None, ge=0)
    weekly_rent: Optional[float] = Field(None, ge=0)
    monthly_rent: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None

    @classmethod
    def from_document(cls, doc):
        data = dict(doc)
        data["id"] = str(data.pop("_id")) if "_id" in data else data.get("id")
        return cls.model_validate(data)

    @property
    def display_name(self):
        name = " ".join(part for part in (self.make, self.model) if part)
        return name or self.reg

    @property
    def has_rates(self):
        return any((self.daily_rent, self.weekly_rent, self.monthly_rent))


class PricingExtraModel(BaseModel):
    id: Optional[str] = None
    name: str
    price: float = Field(..., ge=0)
    description: Optional[str] = None

    @classmethod
    def from_document(cls, doc):
        data = dict(doc)
        data["id"] = str(data.pop("_id")) if "_id" in data else data.get("id")
        return cls.model_validate(data)


class BlockedDateRange(BaseModel):
    start_date: str
    end_date: str
    reason: Optional[str] = None
