"""
Commit pipeline: the only component that performs a durable write.

1. Re-check every staff assignment and the slot (authoritative check).
2. Build the ``Booking`` aggregate from the selection.
3. Hand it to the appointment store as one atomic write.

Nothing is retried automatically; a blind retry of the write could create a
duplicate booking.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from checkout.availability import AvailabilityChecker
from checkout.selection import SelectionState
from config import settings
from db.protocols import AppointmentStore
from models.booking import Booking, BookingReference, ProductLineItem, ServiceLineItem
from utils.constants import (
    BOOKING_REFERENCE_LENGTH,
    BOOKING_REFERENCE_PREFIX,
    MAX_NAME_LENGTH,
    MAX_NOTES_LENGTH,
)
from utils.datetime_utils import utc_now
from utils.exceptions import BookingError, DatabaseError
from utils.logging_config import setup_logging
from utils.result import Result, err, ok
from utils.validation import normalize_phone, sanitize_text

logger = setup_logging(
    name=__name__,
    log_level=settings.log_level,
    log_file="commit.log",
    log_dir=settings.log_dir,
)


def new_booking_reference() -> str:
    """Human-readable booking code, e.g. ``BK-3F9A12C0``."""
    return f"{BOOKING_REFERENCE_PREFIX}-{uuid.uuid4().hex[:BOOKING_REFERENCE_LENGTH].upper()}"


class CommitPipeline:
    """Re-validates availability and persists a completed selection."""

    def __init__(
        self,
        availability: AvailabilityChecker,
        store: AppointmentStore,
        reference_factory: Callable[[], str] = new_booking_reference,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.availability = availability
        self.store = store
        self.reference_factory = reference_factory
        self.clock = clock

    async def commit(self, selection: SelectionState) -> Result[BookingReference]:
        """
        Persist the selection as a booking.

        Returns:
            Ok(BookingReference) on success, otherwise Err with
            CONFLICT_AT_COMMIT (staff or slot taken), AVAILABILITY_CHECK_FAILED
            (re-check could not run) or COMMIT_FAILED (write failed).
            No rows are written unless every check passed.
        """
        incomplete = self._incomplete_reason(selection)
        if incomplete:
            return err(BookingError.invalid_selection(incomplete))

        window = selection.window

        recheck = await self.recheck(selection)
        if not recheck.is_ok:
            return recheck

        booking = self.build_booking(selection)

        try:
            reference = await self.store.create_booking(booking)
        except DatabaseError as e:
            logger.error("Booking %s could not be written: %s", booking.reference, e)
            return err(BookingError.commit_failed(str(e)))

        logger.info(
            "Committed booking %s for %s %s-%s (total %s)",
            reference.reference,
            window.date.isoformat(),
            window.start_time.strftime("%H:%M"),
            window.end_time.strftime("%H:%M"),
            booking.total,
        )
        return ok(reference)

    async def recheck(self, selection: SelectionState) -> Result[None]:
        """Authoritative availability check of every assigned staff member and the slot."""
        window = selection.window
        checked = []
        for item in selection.services:
            if item.staff_id in checked:
                continue
            checked.append(item.staff_id)

            result = await self.availability.check_staff_availability(
                item.staff_id, window.date, window.start_time, window.end_time
            )
            if not result.is_ok:
                return result
            if not result.value:
                logger.warning(
                    "Staff %s no longer free on %s at %s",
                    item.staff_id,
                    window.date.isoformat(),
                    window.start_time.strftime("%H:%M"),
                )
                return err(
                    BookingError.conflict_at_commit(
                        f"Staff member {item.staff_id} is not available at this time",
                        subject=item.staff_id,
                    )
                )

        result = await self.availability.check_slot_conflict(
            window.date, window.start_time, window.end_time
        )
        if not result.is_ok:
            return result
        if result.value:
            logger.warning(
                "Slot %s %s is already booked", window.date.isoformat(), window.start_time
            )
            return err(BookingError.conflict_at_commit("Time slot is already booked"))

        return ok(None)

    def build_booking(self, selection: SelectionState) -> Booking:
        """Snapshot the selection into the aggregate that gets persisted."""
        customer = selection.customer.model_copy(
            update={
                "name": sanitize_text(selection.customer.name, MAX_NAME_LENGTH),
                "email": selection.customer.email.strip(),
                "phone": normalize_phone(selection.customer.phone),
                "notes": sanitize_text(selection.customer.notes, MAX_NOTES_LENGTH) or None,
            }
        )
        return Booking(
            reference=self.reference_factory(),
            window=selection.window,
            customer=customer,
            services=[
                ServiceLineItem(
                    service_id=item.service_id,
                    staff_id=item.staff_id,
                    price=item.price_at_selection,
                    duration_minutes=item.duration_minutes,
                )
                for item in selection.services
            ],
            products=[
                ProductLineItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.price_at_selection,
                )
                for item in selection.products
            ],
            payment_method=selection.payment_method,
            total=selection.compute_total(),
            created_at=self.clock(),
        )

    @staticmethod
    def _incomplete_reason(selection: SelectionState) -> Optional[str]:
        if not selection.services:
            return "No services selected"
        if selection.unassigned_service_ids:
            return "Every service needs a staff member before committing"
        if selection.window is None:
            return "Appointment date and time are not set"
        if selection.payment_method is None:
            return "Payment method is not set"
        return None
