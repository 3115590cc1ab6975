"""
In-memory booking store.

Implements the same collaborator contracts as the Supabase store over plain
dictionaries. Used for local demos and as the test double for the checkout
core. Failures can be injected per operation to exercise error paths.
"""

import itertools
import logging
from datetime import date, time
from typing import Dict, Iterable, List, Optional, Set

from models.booking import Booking, BookingReference
from models.service import Product, Service, Staff
from utils.constants import NON_BLOCKING_STATUSES
from utils.datetime_utils import overlaps
from utils.exceptions import BookingCreationError, DatabaseError

logger = logging.getLogger(__name__)


class InMemoryBookingStore:
    """Dictionary-backed catalog reader, availability store and appointment store."""

    def __init__(
        self,
        services: Iterable[Service] = (),
        products: Iterable[Product] = (),
        staff: Iterable[Staff] = (),
        max_parallel_appointments: Optional[int] = None,
    ):
        self.services: Dict[str, Service] = {s.id: s for s in services}
        self.products: Dict[str, Product] = {p.id: p for p in products}
        self.staff: Dict[str, Staff] = {s.id: s for s in staff}
        self.max_parallel_appointments = max_parallel_appointments

        self.bookings: Dict[str, Booking] = {}
        self._ids = itertools.count(1)

        # Operation name -> error message raised on the next call(s)
        self._failures: Dict[str, str] = {}
        # Staff IDs reported busy regardless of stored bookings
        self.busy_staff: Set[str] = set()
        self.calls: List[str] = []

    # ========== Failure Injection ==========

    def fail_on(self, operation: str, message: str = "backend unavailable") -> None:
        """Make every call to ``operation`` raise until ``clear_failures``."""
        self._failures[operation] = message

    def clear_failures(self) -> None:
        self._failures.clear()

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self._failures:
            message = self._failures[operation]
            if operation == "create_booking":
                raise BookingCreationError(f"Failed to create booking: {message}")
            raise DatabaseError(message)

    # ========== Catalog Operations ==========

    async def list_services(self) -> List[Service]:
        self._enter("list_services")
        return [s for s in self.services.values() if s.is_active]

    async def list_products(self) -> List[Product]:
        self._enter("list_products")
        return [p for p in self.products.values() if p.is_active]

    async def list_staff(self) -> List[Staff]:
        self._enter("list_staff")
        return list(self.staff.values())

    async def get_service(self, service_id: str) -> Optional[Service]:
        self._enter("get_service")
        return self.services.get(str(service_id))

    async def get_product(self, product_id: str) -> Optional[Product]:
        self._enter("get_product")
        return self.products.get(str(product_id))

    async def get_eligible_staff(self, service_id: str) -> List[Staff]:
        self._enter("get_eligible_staff")
        service = self.services.get(str(service_id))
        if service is None:
            return []
        return [member for member in self.staff.values() if member.can_perform(service)]

    # ========== Availability Operations ==========

    def _blocking_bookings(self, on_date: date, start_time: time, end_time: time) -> List[Booking]:
        return [
            booking
            for booking in self.bookings.values()
            if booking.status.value not in NON_BLOCKING_STATUSES
            and booking.window.date == on_date
            and overlaps(booking.window.start_time, booking.window.end_time, start_time, end_time)
        ]

    async def check_staff_availability(
        self, staff_id: str, on_date: date, start_time: time, end_time: time
    ) -> bool:
        self._enter("check_staff_availability")
        if staff_id in self.busy_staff:
            return False
        return not any(
            staff_id in booking.staff_ids
            for booking in self._blocking_bookings(on_date, start_time, end_time)
        )

    async def check_slot_conflict(self, on_date: date, start_time: time, end_time: time) -> bool:
        self._enter("check_slot_conflict")
        if self.max_parallel_appointments is None:
            return False
        return len(self._blocking_bookings(on_date, start_time, end_time)) >= self.max_parallel_appointments

    # ========== Booking Operations ==========

    async def create_booking(self, booking: Booking) -> BookingReference:
        self._enter("create_booking")
        appointment_id = str(next(self._ids))
        self.bookings[appointment_id] = booking
        logger.info("Stored booking %s as appointment %s", booking.reference, appointment_id)
        return BookingReference(reference=booking.reference, appointment_id=appointment_id)
