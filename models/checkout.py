"""Checkout steps, in the order the customer walks through them."""

from enum import Enum


class CheckoutStep(str, Enum):
    """Steps of the checkout flow."""

    SERVICES = "services"
    PRODUCTS = "products"
    DATE_TIME = "date_time"
    CUSTOMER_INFO = "customer_info"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self)

    def next(self) -> "CheckoutStep":
        """Following step; CONFIRMATION is terminal and returns itself."""
        position = self.index
        if position + 1 >= len(STEP_ORDER):
            return self
        return STEP_ORDER[position + 1]


STEP_ORDER = [
    CheckoutStep.SERVICES,
    CheckoutStep.PRODUCTS,
    CheckoutStep.DATE_TIME,
    CheckoutStep.CUSTOMER_INFO,
    CheckoutStep.PAYMENT,
    CheckoutStep.CONFIRMATION,
]
