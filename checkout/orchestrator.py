"""
Checkout orchestrator.

Drives the linear checkout flow

    SERVICES -> PRODUCTS -> DATE_TIME -> CUSTOMER_INFO -> PAYMENT -> CONFIRMATION

Forward navigation is gated on the step predicates of ``SelectionState``;
backward navigation is always allowed until the booking is confirmed.
Validation problems come back as ``Err(VALIDATION_FAILED)`` values listing
each unmet condition. Backend problems come back as their own error kinds.
"""

import logging
from contextlib import contextmanager
from datetime import date, time
from typing import Callable, Dict, List, Optional, Tuple, Union

from checkout.availability import AvailabilityChecker
from checkout.business_hours import BusinessPolicy
from checkout.commit import CommitPipeline
from checkout.selection import SelectionState
from db.protocols import CatalogReader
from models.booking import BookingReference, PaymentMethod
from models.checkout import STEP_ORDER, CheckoutStep
from models.customer import CustomerInfo
from models.service import Catalog, Product, Service, Staff
from utils.exceptions import BookingError, DatabaseError, ErrorKind, StepCondition, ValidationIssue
from utils.result import Result, err, ok

logger = logging.getLogger(__name__)

StepChangeCallback = Callable[[CheckoutStep, CheckoutStep], None]
ReferenceCallback = Callable[[BookingReference], None]
ErrorCallback = Callable[[BookingError], None]


def _issue(step: CheckoutStep, condition: StepCondition, message: str, subject: Optional[str] = None) -> BookingError:
    return BookingError.validation_failed(
        [ValidationIssue(step=step.value, condition=condition, message=message, subject=subject)]
    )


class CheckoutOrchestrator:
    """
    Owns one checkout session: its selection, current step and caches.

    Collaborators are injected so tests can pass fakes. UI callbacks are
    optional and called synchronously.
    """

    def __init__(
        self,
        availability: AvailabilityChecker,
        commit_pipeline: CommitPipeline,
        policy: BusinessPolicy,
        on_step_change: Optional[StepChangeCallback] = None,
        on_commit_success: Optional[ReferenceCallback] = None,
        on_commit_error: Optional[ErrorCallback] = None,
        on_orphaned_commit: Optional[ReferenceCallback] = None,
        catalog: Optional[CatalogReader] = None,
    ):
        self.availability = availability
        self.catalog = catalog if catalog is not None else availability.catalog
        self.commit_pipeline = commit_pipeline
        self.policy = policy
        self.on_step_change = on_step_change
        self.on_commit_success = on_commit_success
        self.on_commit_error = on_commit_error
        self.on_orphaned_commit = on_orphaned_commit

        self.selection = SelectionState()
        self.step = CheckoutStep.SERVICES
        self.furthest_step = CheckoutStep.SERVICES
        self.last_reference: Optional[BookingReference] = None
        self.last_error: Optional[BookingError] = None

        # (service_id, date or None) -> staff list
        self._eligible_cache: Dict[Tuple[str, Optional[date]], List[Staff]] = {}
        self.eligible_staff_errors: Dict[str, BookingError] = {}

        self._in_flight = 0
        self._generation = 0

    # ========== Session State ==========

    @property
    def is_busy(self) -> bool:
        """True while an availability or commit call is outstanding."""
        return self._in_flight > 0

    @property
    def total(self):
        return self.selection.compute_total()

    @property
    def duration_minutes(self) -> int:
        return self.selection.compute_duration()

    def is_step_valid(self, step: CheckoutStep) -> bool:
        return self.selection.is_step_valid(step, self.policy)

    def validate_step(self, step: CheckoutStep) -> List[ValidationIssue]:
        return self.selection.validate_step(step, self.policy)

    async def load_catalog(self) -> Result[Catalog]:
        """Services, products and staff to render the selection steps."""
        with self._request():
            try:
                catalog = Catalog(
                    services=await self.catalog.list_services(),
                    products=await self.catalog.list_products(),
                    staff=await self.catalog.list_staff(),
                )
            except DatabaseError as e:
                logger.error("Catalog could not be loaded: %s", e)
                return err(BookingError.availability_check_failed(str(e)))
        return ok(catalog)

    @contextmanager
    def _request(self):
        generation = self._generation
        self._in_flight += 1
        try:
            yield
        finally:
            # A reset while the call was outstanding already zeroed the counter
            if generation == self._generation:
                self._in_flight -= 1

    def _busy_error(self) -> BookingError:
        return _issue(
            self.step,
            StepCondition.REQUEST_IN_FLIGHT,
            "Please wait for the current request to finish",
        )

    # ========== Step Transitions ==========

    def _change_step(self, new_step: CheckoutStep) -> None:
        old_step = self.step
        if new_step == old_step:
            return
        self.step = new_step
        if new_step.index > self.furthest_step.index:
            self.furthest_step = new_step
        logger.info("Checkout step %s -> %s", old_step.value, new_step.value)
        if self.on_step_change:
            self.on_step_change(old_step, new_step)

    async def _enter_step(self, new_step: CheckoutStep) -> None:
        self._change_step(new_step)
        if new_step == CheckoutStep.DATE_TIME:
            await self._prefetch_eligible_staff()

    async def advance(self) -> Result[CheckoutStep]:
        """
        Move to the next step if the current step's predicate holds.

        Advancing from PAYMENT commits the booking. On failure the step does
        not change and the error lists the unmet conditions.
        """
        if self.is_busy:
            return err(self._busy_error())

        if self.step == CheckoutStep.CONFIRMATION:
            return err(
                _issue(
                    self.step,
                    StepCondition.STEP_NOT_REACHABLE,
                    "Booking is already confirmed, start a new booking",
                )
            )

        issues = self.validate_step(self.step)
        if issues:
            logger.debug("Cannot leave %s: %s", self.step.value, [i.condition.value for i in issues])
            return err(BookingError.validation_failed(issues))

        if self.step == CheckoutStep.PAYMENT:
            result = await self.confirm()
            if not result.is_ok:
                return result
            return ok(self.step)

        await self._enter_step(self.step.next())
        return ok(self.step)

    async def go_to(self, target: CheckoutStep) -> Result[CheckoutStep]:
        """
        Jump to a step.

        Backward jumps are always allowed before confirmation. Forward jumps
        require every intervening step predicate to hold. CONFIRMATION can
        only be reached by committing.
        """
        if target == self.step:
            return ok(self.step)

        if target == CheckoutStep.CONFIRMATION:
            return err(
                _issue(
                    self.step,
                    StepCondition.COMMIT_REQUIRED,
                    "Confirmation is reached only by committing the booking",
                )
            )

        if self.step == CheckoutStep.CONFIRMATION:
            return err(
                _issue(
                    self.step,
                    StepCondition.STEP_NOT_REACHABLE,
                    "Booking is already confirmed, start a new booking",
                )
            )

        if target.index < self.step.index:
            await self._enter_step(target)
            return ok(self.step)

        if self.is_busy:
            return err(self._busy_error())

        issues: List[ValidationIssue] = []
        for step in STEP_ORDER[self.step.index:target.index]:
            issues.extend(self.validate_step(step))
        if issues:
            return err(BookingError.validation_failed(issues))

        await self._enter_step(target)
        return ok(self.step)

    def _may_enter(self, target: CheckoutStep) -> bool:
        """Backward moves are free; forward ones need every step in between to hold."""
        return not any(
            self.validate_step(step) for step in STEP_ORDER[self.step.index:target.index]
        )

    def reset(self) -> None:
        """
        Start a new booking: empty selection, back to SERVICES.

        A commit still in flight is not cancelled; if it succeeds later it is
        reported through ``on_orphaned_commit`` and leaves this session alone.
        """
        self._generation += 1
        self._in_flight = 0
        self.selection = SelectionState()
        self.furthest_step = CheckoutStep.SERVICES
        self.last_reference = None
        self.last_error = None
        self._eligible_cache.clear()
        self.eligible_staff_errors.clear()
        self._change_step(CheckoutStep.SERVICES)

    # ========== Services & Staff ==========

    def _services_changed(self) -> None:
        """Duration and eligibility depend on the service set: drop the slot and dated staff lists."""
        self.selection = self.selection.clear_window()
        self._drop_dated_cache()
        self.furthest_step = CheckoutStep.SERVICES
        if self.step.index > CheckoutStep.SERVICES.index:
            self._change_step(CheckoutStep.SERVICES)

    def _confirmed_error(self) -> Optional[BookingError]:
        if self.step == CheckoutStep.CONFIRMATION:
            return BookingError.invalid_selection("Booking is already confirmed")
        return None

    def select_service(self, service: Service) -> Result[SelectionState]:
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        if self.selection.has_service(service.id):
            return ok(self.selection)
        self.selection = self.selection.select_service(service)
        self._services_changed()
        return ok(self.selection)

    def unselect_service(self, service_id: str) -> Result[SelectionState]:
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        if not self.selection.has_service(service_id):
            return ok(self.selection)
        self.selection = self.selection.unselect_service(service_id)
        self.eligible_staff_errors.pop(str(service_id), None)
        self._services_changed()
        return ok(self.selection)

    async def eligible_staff_for(
        self, service_id: str, on_date: Optional[date] = None
    ) -> Result[List[Staff]]:
        """
        Eligible staff for a service, cached per service and date.

        Without a date the list holds every qualified staff member; with a
        date it is narrowed to staff who are free that day.
        """
        key = (str(service_id), on_date)
        if key in self._eligible_cache:
            return ok(self._eligible_cache[key])

        with self._request():
            result = await self.availability.get_eligible_staff(str(service_id), on_date)

        if result.is_ok:
            self._eligible_cache[key] = result.value
            self.eligible_staff_errors.pop(str(service_id), None)
        else:
            self.eligible_staff_errors[str(service_id)] = result.error
        return result

    async def assign_staff(self, service_id: str, staff_id: str) -> Result[SelectionState]:
        """
        Assign the one staff member who will perform a chosen service.

        The staff member must be qualified for the service. When a slot is
        already picked, an advisory availability check runs as well; the
        authoritative check happens again at commit time.
        """
        if not self.selection.has_service(service_id):
            return err(
                BookingError.invalid_selection(
                    f"Service {service_id} is not selected", subject=str(service_id)
                )
            )

        eligible = await self.eligible_staff_for(service_id)
        if not eligible.is_ok:
            return eligible
        if str(staff_id) not in {member.id for member in eligible.value}:
            return err(
                BookingError.invalid_selection(
                    f"Staff member {staff_id} cannot perform service {service_id}",
                    subject=str(staff_id),
                )
            )

        window = self.selection.window
        if window is not None:
            with self._request():
                free = await self.availability.check_staff_availability(
                    str(staff_id), window.date, window.start_time, window.end_time
                )
            if not free.is_ok:
                return free
            if not free.value:
                return err(
                    _issue(
                        CheckoutStep.SERVICES,
                        StepCondition.STAFF_UNAVAILABLE,
                        f"Staff member {staff_id} is busy at the chosen time",
                        subject=str(staff_id),
                    )
                )

        result = self.selection.assign_staff(service_id, staff_id)
        if result.is_ok:
            self.selection = result.value
        return result

    async def _prefetch_eligible_staff(self) -> None:
        """Load staff lists for every chosen service on the picked date."""
        on_date = self.selection.appointment_date
        for service_id in self.selection.service_ids:
            result = await self.eligible_staff_for(service_id, on_date)
            if not result.is_ok:
                logger.warning(
                    "Could not load staff for service %s: %s", service_id, result.error.message
                )

    def _drop_dated_cache(self) -> None:
        for key in [k for k in self._eligible_cache if k[1] is not None]:
            del self._eligible_cache[key]

    # ========== Products ==========

    def select_product(self, product: Product, quantity: int = 1) -> Result[SelectionState]:
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        result = self.selection.select_product(product, quantity)
        if result.is_ok:
            self.selection = result.value
        return result

    def unselect_product(self, product_id: str) -> Result[SelectionState]:
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        self.selection = self.selection.unselect_product(product_id)
        return ok(self.selection)

    # ========== Date & Time ==========

    async def set_date_time(self, on_date: date, start_time: time) -> Result[SelectionState]:
        """
        Pick the appointment slot.

        Changing the date drops date-scoped staff lists; they are fetched
        again for the new date while on the DATE_TIME step.
        """
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        date_changed = on_date != self.selection.appointment_date
        self.selection = self.selection.set_window(on_date, start_time)
        if date_changed:
            self._drop_dated_cache()
            if self.step == CheckoutStep.DATE_TIME:
                await self._prefetch_eligible_staff()
        return ok(self.selection)

    # ========== Customer & Payment ==========

    def set_customer_info(self, customer: CustomerInfo) -> Result[SelectionState]:
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        self.selection = self.selection.with_customer(customer)
        return ok(self.selection)

    def set_payment_method(self, method: Union[PaymentMethod, str]) -> Result[SelectionState]:
        confirmed = self._confirmed_error()
        if confirmed is not None:
            return err(confirmed)
        try:
            payment_method = PaymentMethod(method)
        except ValueError:
            return err(BookingError.invalid_selection(f"Unknown payment method: {method}"))
        self.selection = self.selection.with_payment_method(payment_method)
        return ok(self.selection)

    # ========== Commit ==========

    async def confirm(self) -> Result[BookingReference]:
        """
        Commit the booking from the PAYMENT step.

        On a staff/slot conflict the flow returns to DATE_TIME with every
        other selection intact, unless the services were edited while the
        commit was in flight and no longer validate. Other failures keep the PAYMENT step so the
        customer can retry explicitly.
        """
        if self.is_busy:
            return err(self._busy_error())

        if self.step != CheckoutStep.PAYMENT:
            return err(
                _issue(
                    self.step,
                    StepCondition.STEP_NOT_REACHABLE,
                    "Booking can only be confirmed from the payment step",
                )
            )

        issues: List[ValidationIssue] = []
        for step in STEP_ORDER[: CheckoutStep.CONFIRMATION.index]:
            issues.extend(self.validate_step(step))
        if issues:
            return err(BookingError.validation_failed(issues))

        generation = self._generation
        with self._request():
            result = await self.commit_pipeline.commit(self.selection)

        if generation != self._generation:
            self._handle_orphaned(result)
            return result

        if result.is_ok:
            self.last_reference = result.value
            self.last_error = None
            self.selection = SelectionState()
            self._eligible_cache.clear()
            self.eligible_staff_errors.clear()
            self._change_step(CheckoutStep.CONFIRMATION)
            if self.on_commit_success:
                self.on_commit_success(result.value)
            return result

        self.last_error = result.error
        if result.error.kind == ErrorKind.CONFLICT_AT_COMMIT:
            self._drop_dated_cache()
            if self._may_enter(CheckoutStep.DATE_TIME):
                await self._enter_step(CheckoutStep.DATE_TIME)
        logger.warning("Commit failed (%s): %s", result.error.kind.value, result.error.message)
        if self.on_commit_error:
            self.on_commit_error(result.error)
        return result

    def _handle_orphaned(self, result: Result[BookingReference]) -> None:
        """A commit finished after the session was reset."""
        if not result.is_ok:
            logger.info("Abandoned commit failed: %s", result.error.message)
            return
        logger.warning(
            "Booking %s was committed after its checkout session was reset",
            result.value.reference,
        )
        if self.on_orphaned_commit:
            self.on_orphaned_commit(result.value)
