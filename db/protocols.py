"""
Collaborator interfaces consumed by the checkout core.

Implementations raise :class:`utils.exceptions.DatabaseError` (or a
subclass) on backend failure. They never report a failure as ``False`` or
as an empty list.
"""

from datetime import date, time
from typing import List, Optional, Protocol, runtime_checkable

from models.booking import Booking, BookingReference
from models.service import Product, Service, Staff


@runtime_checkable
class CatalogReader(Protocol):
    """Read-only access to services, products and staff."""

    async def list_services(self) -> List[Service]:
        """Return active services."""
        ...

    async def list_products(self) -> List[Product]:
        """Return active products."""
        ...

    async def list_staff(self) -> List[Staff]:
        """Return all staff members."""
        ...

    async def get_service(self, service_id: str) -> Optional[Service]:
        """Return a service by id, or None."""
        ...

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Return a product by id, or None."""
        ...

    async def get_eligible_staff(self, service_id: str) -> List[Staff]:
        """Return staff qualified for the service by specialization."""
        ...


@runtime_checkable
class AvailabilityStore(Protocol):
    """Availability queries over persisted appointments."""

    async def check_staff_availability(
        self, staff_id: str, on_date: date, start_time: time, end_time: time
    ) -> bool:
        """True when the staff member has no overlapping appointment."""
        ...

    async def check_slot_conflict(
        self, on_date: date, start_time: time, end_time: time
    ) -> bool:
        """True when the slot conflicts business-wide."""
        ...


@runtime_checkable
class AppointmentStore(Protocol):
    """Durable booking writes."""

    async def create_booking(self, booking: Booking) -> BookingReference:
        """
        Persist the appointment header, its line items and payment record.

        Must be atomic: on failure no partial rows may stay visible.
        Raises BookingCreationError.
        """
        ...


class BookingStore(CatalogReader, AvailabilityStore, AppointmentStore, Protocol):
    """A single backend providing every collaborator role."""
