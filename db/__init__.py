"""Storage collaborators for the checkout engine."""

from typing import Optional

from config import settings

from .memory_store import InMemoryBookingStore
from .protocols import AppointmentStore, AvailabilityStore, BookingStore, CatalogReader

# Global store instance for application wiring
_store: Optional[BookingStore] = None


def get_booking_store():
    """
    Get or create the process-wide booking store.

    Returns the in-memory store when ``settings.use_memory_store`` is set,
    otherwise the Supabase store. The checkout core never calls this; it is
    only used to wire collaborators at start-up.
    """
    global _store
    if _store is None:
        if settings.use_memory_store:
            _store = InMemoryBookingStore(
                max_parallel_appointments=settings.max_parallel_appointments
            )
        else:
            from .supabase_client import SupabaseBookingStore

            settings.validate_all_required()
            _store = SupabaseBookingStore()
    return _store


__all__ = [
    "AppointmentStore",
    "AvailabilityStore",
    "BookingStore",
    "CatalogReader",
    "InMemoryBookingStore",
    "get_booking_store",
]
