"""
Selection state of an in-progress checkout.

``SelectionState`` is an immutable value: every mutation returns a new
instance and leaves the original untouched. Totals and durations are derived
on every read.
"""

import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel

from checkout.business_hours import BusinessPolicy
from models.booking import PaymentMethod
from models.checkout import CheckoutStep
from models.customer import CustomerInfo
from models.selection import AppointmentWindow, ProductSelection, ServiceSelection
from models.service import Product, Service
from utils.constants import MAX_PRODUCT_QUANTITY
from utils.datetime_utils import add_minutes
from utils.exceptions import BookingError, StepCondition, ValidationIssue
from utils.result import Result, err, ok
from utils.validation import validate_email, validate_name, validate_phone


class SelectionState(BaseModel):
    """Services, staff, products, slot, customer and payment chosen so far."""

    services: Tuple[ServiceSelection, ...] = ()
    products: Tuple[ProductSelection, ...] = ()
    appointment_date: Optional[datetime.date] = None
    start_time: Optional[datetime.time] = None
    customer: CustomerInfo = CustomerInfo()
    payment_method: Optional[PaymentMethod] = None

    class Config:
        frozen = True

    # ========== Queries ==========

    @property
    def is_empty(self) -> bool:
        return self == SelectionState()

    @property
    def service_ids(self) -> List[str]:
        return [item.service_id for item in self.services]

    def has_service(self, service_id: str) -> bool:
        return str(service_id) in self.service_ids

    def staff_for(self, service_id: str) -> Optional[str]:
        for item in self.services:
            if item.service_id == str(service_id):
                return item.staff_id
        return None

    @property
    def unassigned_service_ids(self) -> List[str]:
        return [item.service_id for item in self.services if item.staff_id is None]

    def compute_total(self) -> Decimal:
        """Service prices plus product price x quantity, in exact decimal arithmetic."""
        services_total = sum((item.price_at_selection for item in self.services), Decimal("0"))
        products_total = sum((item.amount for item in self.products), Decimal("0"))
        return services_total + products_total

    def compute_duration(self) -> int:
        """Total minutes of all chosen services."""
        return sum(item.duration_minutes for item in self.services)

    @property
    def end_time(self) -> Optional[datetime.time]:
        """Start time plus total duration; None if unset or past midnight."""
        if self.start_time is None:
            return None
        return add_minutes(self.start_time, self.compute_duration())

    @property
    def window(self) -> Optional[AppointmentWindow]:
        end_time = self.end_time
        if self.appointment_date is None or self.start_time is None or end_time is None:
            return None
        return AppointmentWindow(
            date=self.appointment_date, start_time=self.start_time, end_time=end_time
        )

    # ========== Services & Staff ==========

    def select_service(self, service: Service) -> "SelectionState":
        """Add a service with its current price/duration. No-op if already chosen."""
        if self.has_service(service.id):
            return self
        selection = ServiceSelection(
            service_id=service.id,
            price_at_selection=service.price,
            duration_minutes=service.duration_minutes,
        )
        return self.model_copy(update={"services": self.services + (selection,)})

    def unselect_service(self, service_id: str) -> "SelectionState":
        """Remove a service together with its staff assignment."""
        if not self.has_service(service_id):
            return self
        remaining = tuple(item for item in self.services if item.service_id != str(service_id))
        return self.model_copy(update={"services": remaining})

    def assign_staff(self, service_id: str, staff_id: str) -> Result["SelectionState"]:
        """Assign one staff member to a chosen service, replacing any previous one."""
        if not self.has_service(service_id):
            return err(
                BookingError.invalid_selection(
                    f"Service {service_id} is not selected", subject=str(service_id)
                )
            )
        services = tuple(
            item.model_copy(update={"staff_id": str(staff_id)})
            if item.service_id == str(service_id)
            else item
            for item in self.services
        )
        return ok(self.model_copy(update={"services": services}))

    # ========== Products ==========

    def select_product(self, product: Product, quantity: int = 1) -> Result["SelectionState"]:
        """Add a product, or change its quantity if already chosen."""
        if not 1 <= quantity <= MAX_PRODUCT_QUANTITY:
            return err(
                BookingError.invalid_selection(
                    f"Quantity for product {product.id} must be between 1 and {MAX_PRODUCT_QUANTITY}",
                    subject=product.id,
                )
            )

        for index, item in enumerate(self.products):
            if item.product_id == product.id:
                products = list(self.products)
                products[index] = item.model_copy(update={"quantity": quantity})
                return ok(self.model_copy(update={"products": tuple(products)}))

        selection = ProductSelection(
            product_id=product.id, quantity=quantity, price_at_selection=product.price
        )
        return ok(self.model_copy(update={"products": self.products + (selection,)}))

    def unselect_product(self, product_id: str) -> "SelectionState":
        remaining = tuple(item for item in self.products if item.product_id != str(product_id))
        return self.model_copy(update={"products": remaining})

    # ========== Slot, Customer, Payment ==========

    def set_window(
        self, on_date: datetime.date, start_time: datetime.time
    ) -> "SelectionState":
        return self.model_copy(update={"appointment_date": on_date, "start_time": start_time})

    def clear_window(self) -> "SelectionState":
        return self.model_copy(update={"appointment_date": None, "start_time": None})

    def with_customer(self, customer: CustomerInfo) -> "SelectionState":
        return self.model_copy(update={"customer": customer})

    def with_payment_method(self, method: Optional[PaymentMethod]) -> "SelectionState":
        return self.model_copy(update={"payment_method": method})

    # ========== Step Predicates ==========

    def validate_step(self, step: CheckoutStep, policy: BusinessPolicy) -> List[ValidationIssue]:
        """Unmet conditions for leaving ``step``; empty when the step is valid."""
        problems: List[Tuple[StepCondition, str, Optional[str]]] = []

        if step == CheckoutStep.SERVICES:
            if not self.services:
                problems.append((StepCondition.NO_SERVICES, "Choose at least one service", None))
            for service_id in self.unassigned_service_ids:
                problems.append(
                    (
                        StepCondition.STAFF_UNASSIGNED,
                        f"Choose a staff member for service {service_id}",
                        service_id,
                    )
                )

        elif step == CheckoutStep.DATE_TIME:
            if self.appointment_date is None:
                problems.append((StepCondition.DATE_MISSING, "Choose a date", None))
            if self.start_time is None:
                problems.append((StepCondition.START_TIME_MISSING, "Choose a start time", None))
            if self.appointment_date is not None and self.start_time is not None:
                if not self.services:
                    problems.append(
                        (StepCondition.NO_SERVICES, "Choose a service before picking a time", None)
                    )
                else:
                    for condition, message in policy.window_problems(
                        self.appointment_date, self.start_time, self.end_time
                    ):
                        problems.append((condition, message, None))

        elif step == CheckoutStep.CUSTOMER_INFO:
            if not validate_name(self.customer.name):
                problems.append((StepCondition.NAME_MISSING, "Enter your name", "name"))
            if not validate_email(self.customer.email):
                problems.append((StepCondition.EMAIL_INVALID, "Enter a valid email address", "email"))
            if not validate_phone(self.customer.phone):
                problems.append((StepCondition.PHONE_INVALID, "Enter a valid phone number", "phone"))

        elif step == CheckoutStep.PAYMENT:
            if self.payment_method is None:
                problems.append(
                    (StepCondition.PAYMENT_METHOD_MISSING, "Choose a payment method", None)
                )

        elif step == CheckoutStep.CONFIRMATION:
            problems.append(
                (StepCondition.COMMIT_REQUIRED, "Confirmation is reached only by committing", None)
            )

        return [
            ValidationIssue(step=step.value, condition=condition, message=message, subject=subject)
            for condition, message, subject in problems
        ]

    def is_step_valid(self, step: CheckoutStep, policy: BusinessPolicy) -> bool:
        return not self.validate_step(step, policy)
