"""Value objects making up the in-progress booking selection."""

import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ServiceSelection(BaseModel):
    """Chosen service with its price/duration snapshot and staff assignment."""

    service_id: str
    staff_id: Optional[str] = None
    price_at_selection: Decimal = Field(..., ge=0)
    duration_minutes: int = Field(..., gt=0)

    class Config:
        frozen = True
        coerce_numbers_to_str = True


class ProductSelection(BaseModel):
    """Chosen retail product with its price snapshot."""

    product_id: str
    quantity: int = Field(default=1, ge=1)
    price_at_selection: Decimal = Field(..., ge=0)

    class Config:
        frozen = True
        coerce_numbers_to_str = True

    @property
    def amount(self) -> Decimal:
        return self.price_at_selection * self.quantity


class AppointmentWindow(BaseModel):
    """Date and time range of the appointment (local business time)."""

    date: datetime.date
    start_time: datetime.time
    end_time: datetime.time

    class Config:
        frozen = True

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start
