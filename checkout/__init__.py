"""Booking checkout engine: selection, availability, orchestration and commit."""

from typing import Optional

from config import settings

from .availability import AvailabilityChecker
from .business_hours import BusinessPolicy
from .commit import CommitPipeline, new_booking_reference
from .orchestrator import CheckoutOrchestrator
from .selection import SelectionState


def create_checkout(store=None, policy: Optional[BusinessPolicy] = None, **callbacks) -> CheckoutOrchestrator:
    """
    Wire a checkout session from a booking store.

    Args:
        store: Object implementing the catalog, availability and appointment
            store contracts. Defaults to the process-wide store.
        policy: Business hours/horizon policy. Defaults to one built from settings.
        **callbacks: on_step_change, on_commit_success, on_commit_error,
            on_orphaned_commit

    Returns:
        A fresh orchestrator positioned on the SERVICES step
    """
    if store is None:
        from db import get_booking_store

        store = get_booking_store()
    if policy is None:
        policy = BusinessPolicy.from_settings(settings)

    availability = AvailabilityChecker(catalog=store, store=store, policy=policy)
    pipeline = CommitPipeline(availability=availability, store=store)
    return CheckoutOrchestrator(
        availability=availability,
        commit_pipeline=pipeline,
        policy=policy,
        catalog=store,
        **callbacks,
    )


__all__ = [
    "AvailabilityChecker",
    "BusinessPolicy",
    "CheckoutOrchestrator",
    "CommitPipeline",
    "SelectionState",
    "create_checkout",
    "new_booking_reference",
]
