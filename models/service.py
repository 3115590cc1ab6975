"""Catalog models: services, retail products and staff."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class Service(BaseModel):
    """Bookable salon service."""

    id: str
    name: str
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, description="Price in the salon currency")
    duration_minutes: int = Field(..., gt=0, le=600, description="Duration in minutes")
    specialization_tags: List[str] = Field(default_factory=list)
    is_active: bool = True

    class Config:
        frozen = True
        coerce_numbers_to_str = True
        json_schema_extra = {
            "example": {
                "id": "1",
                "name": "Classic Manicure",
                "price": "50.00",
                "duration_minutes": 60,
                "specialization_tags": ["nails"],
            }
        }


class Product(BaseModel):
    """Retail product that can be added to a booking."""

    id: str
    name: str
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    is_active: bool = True

    class Config:
        frozen = True
        coerce_numbers_to_str = True


class Staff(BaseModel):
    """Staff member who can perform services matching their specializations."""

    id: str
    name: str
    position: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    specialization_tags: List[str] = Field(default_factory=list)

    class Config:
        frozen = True
        coerce_numbers_to_str = True

    def can_perform(self, service: Service) -> bool:
        """True if any specialization tag matches the service."""
        return bool(set(self.specialization_tags) & set(service.specialization_tags))


class Catalog(BaseModel):
    """Everything the customer can choose from when a checkout starts."""

    services: List[Service] = Field(default_factory=list)
    products: List[Product] = Field(default_factory=list)
    staff: List[Staff] = Field(default_factory=list)

    class Config:
        frozen = True
