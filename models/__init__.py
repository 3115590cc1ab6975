"""Pydantic models for data validation and serialization."""

from .booking import (
    Booking,
    BookingReference,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
    ProductLineItem,
    ServiceLineItem,
)
from .checkout import STEP_ORDER, CheckoutStep
from .customer import CustomerInfo
from .selection import AppointmentWindow, ProductSelection, ServiceSelection
from .service import Catalog, Product, Service, Staff

__all__ = [
    "AppointmentWindow",
    "Booking",
    "BookingReference",
    "BookingStatus",
    "Catalog",
    "CheckoutStep",
    "CustomerInfo",
    "PaymentMethod",
    "PaymentStatus",
    "Product",
    "ProductLineItem",
    "ProductSelection",
    "STEP_ORDER",
    "Service",
    "ServiceLineItem",
    "ServiceSelection",
    "Staff",
]
