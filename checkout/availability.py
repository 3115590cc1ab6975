"""
Availability checks for staff assignments and time slots.

Wraps the catalog reader and availability store, converting backend failures
into ``Err(AVAILABILITY_CHECK_FAILED)``. A failed check is never reported as
"unavailable" or "no staff": callers must be able to tell the difference.
"""

import logging
from datetime import date, time
from typing import List, Optional

from checkout.business_hours import BusinessPolicy
from db.protocols import AvailabilityStore, CatalogReader
from models.service import Staff
from utils.exceptions import BookingError, DatabaseError
from utils.result import Result, err, ok

logger = logging.getLogger(__name__)


class AvailabilityChecker:
    """Answers whether staff and slots are free, using current persisted data."""

    def __init__(
        self,
        catalog: CatalogReader,
        store: AvailabilityStore,
        policy: BusinessPolicy,
    ):
        self.catalog = catalog
        self.store = store
        self.policy = policy

    async def get_eligible_staff(
        self,
        service_id: str,
        on_date: Optional[date] = None,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
    ) -> Result[List[Staff]]:
        """
        Staff qualified for the service.

        With a date, only staff without an overlapping appointment are kept:
        the given start/end window when both are known, otherwise the whole
        working day. A closed day yields an empty list.

        Args:
            service_id: Service to staff
            on_date: Optional appointment date
            start_time: Optional window start
            end_time: Optional window end

        Returns:
            Ok(list of staff), possibly empty, or Err(AVAILABILITY_CHECK_FAILED)
        """
        try:
            qualified = await self.catalog.get_eligible_staff(service_id)
        except DatabaseError as e:
            logger.error("Eligible staff lookup for service %s failed: %s", service_id, e)
            return err(BookingError.availability_check_failed(str(e), subject=str(service_id)))

        if on_date is None or not qualified:
            return ok(qualified)

        if start_time is not None and end_time is not None:
            window = (start_time, end_time)
        else:
            window = self.policy.opening_window(on_date)
            if window is None:
                return ok([])

        available: List[Staff] = []
        for member in qualified:
            result = await self.check_staff_availability(member.id, on_date, *window)
            if not result.is_ok:
                return result
            if result.value:
                available.append(member)

        return ok(available)

    async def check_staff_availability(
        self, staff_id: str, on_date: date, start_time: time, end_time: time
    ) -> Result[bool]:
        """Ok(True) when the staff member is free for the whole window."""
        try:
            free = await self.store.check_staff_availability(
                staff_id, on_date, start_time, end_time
            )
        except DatabaseError as e:
            logger.error("Availability check for staff %s failed: %s", staff_id, e)
            return err(BookingError.availability_check_failed(str(e), subject=str(staff_id)))
        return ok(bool(free))

    async def check_slot_conflict(
        self, on_date: date, start_time: time, end_time: time
    ) -> Result[bool]:
        """Ok(True) when the slot conflicts business-wide."""
        try:
            conflict = await self.store.check_slot_conflict(on_date, start_time, end_time)
        except DatabaseError as e:
            logger.error("Slot conflict check for %s %s failed: %s", on_date, start_time, e)
            return err(BookingError.availability_check_failed(str(e)))
        return ok(bool(conflict))
