"""Booking aggregate persisted by the commit pipeline."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from models.customer import CustomerInfo
from models.selection import AppointmentWindow


class BookingStatus(str, Enum):
    """Booking status. Transitions past PENDING are owned by admin tooling."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentMethod(str, Enum):
    """Payment methods the salon accepts."""

    CASH = "cash"
    CARD = "card"
    BANK = "bank"


class PaymentStatus(str, Enum):
    """Status of the payment record written with the booking."""

    PENDING = "pending"
    PAID = "paid"


class ServiceLineItem(BaseModel):
    """Per-service line item with price, duration and staff snapshot."""

    service_id: str
    staff_id: str
    price: Decimal
    duration_minutes: int

    class Config:
        frozen = True


class ProductLineItem(BaseModel):
    """Per-product line item with price and quantity snapshot."""

    product_id: str
    quantity: int = Field(..., ge=1)
    price: Decimal

    class Config:
        frozen = True

    @property
    def amount(self) -> Decimal:
        return self.price * self.quantity


class Booking(BaseModel):
    """Aggregate written as one logical unit."""

    reference: str
    window: AppointmentWindow
    customer: CustomerInfo
    services: List[ServiceLineItem]
    products: List[ProductLineItem] = Field(default_factory=list)
    payment_method: PaymentMethod
    total: Decimal = Field(..., ge=0)
    status: BookingStatus = BookingStatus.PENDING
    created_at: Optional[datetime] = None

    class Config:
        frozen = True

    @property
    def staff_ids(self) -> List[str]:
        """Distinct staff members in line-item order."""
        seen: List[str] = []
        for item in self.services:
            if item.staff_id not in seen:
                seen.append(item.staff_id)
        return seen


class BookingReference(BaseModel):
    """Handle returned once a booking has been committed."""

    reference: str = Field(..., min_length=1)
    appointment_id: Optional[str] = None

    class Config:
        frozen = True
        coerce_numbers_to_str = True
