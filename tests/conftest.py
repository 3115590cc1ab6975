"""
Pytest configuration and shared fixtures.
"""

from datetime import date, datetime, time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from checkout import BusinessPolicy, create_checkout
from config import default_working_hours
from db.memory_store import InMemoryBookingStore
from models.checkout import CheckoutStep
from models.customer import CustomerInfo
from models.service import Product, Service, Staff

# Monday morning; bookings are allowed through Monday of the next week
FIXED_NOW = datetime(2026, 3, 2, 8, 0)
BOOKING_DATE = date(2026, 3, 4)  # Wednesday
BOOKING_TIME = time(10, 0)


async def walk_to_payment(checkout, service, staff_id, customer, method="cash"):
    """Fill in a complete selection and navigate to the PAYMENT step."""
    checkout.select_service(service)
    assert (await checkout.assign_staff(service.id, staff_id)).is_ok
    assert (await checkout.go_to(CheckoutStep.DATE_TIME)).is_ok
    await checkout.set_date_time(BOOKING_DATE, BOOKING_TIME)
    checkout.set_customer_info(customer)
    assert (await checkout.go_to(CheckoutStep.PAYMENT)).is_ok
    checkout.set_payment_method(method)


@pytest.fixture
def services():
    """Service catalog."""
    return [
        Service(
            id="1",
            name="Classic Manicure",
            price=Decimal("50.00"),
            duration_minutes=60,
            specialization_tags=["nails"],
        ),
        Service(
            id="2",
            name="Haircut",
            price=Decimal("35.50"),
            duration_minutes=30,
            specialization_tags=["hair"],
        ),
        Service(
            id="3",
            name="Hair Colouring",
            price=Decimal("80.25"),
            duration_minutes=45,
            specialization_tags=["hair"],
        ),
    ]


@pytest.fixture
def products():
    """Retail product catalog."""
    return [
        Product(id="p1", name="Cuticle Oil", price=Decimal("12.90"), stock_quantity=10),
        Product(id="p2", name="Argan Shampoo", price=Decimal("8.45"), stock_quantity=4),
    ]


@pytest.fixture
def staff():
    """Staff members with their specializations."""
    return [
        Staff(id="7", name="Eva", specialization_tags=["nails"]),
        Staff(id="8", name="Petr", specialization_tags=["hair"]),
        Staff(id="9", name="Lucie", specialization_tags=["hair", "nails"]),
    ]


@pytest.fixture
def store(services, products, staff):
    """In-memory booking store seeded with the catalog."""
    return InMemoryBookingStore(services=services, products=products, staff=staff)


@pytest.fixture
def policy():
    """Business policy with default hours, a 7-day horizon and a frozen clock."""
    return BusinessPolicy(
        working_hours=default_working_hours(),
        max_booking_days=7,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def events():
    """Records UI callback invocations."""
    return []


@pytest.fixture
def checkout(store, policy, events):
    """Checkout session wired to the in-memory store."""
    return create_checkout(
        store=store,
        policy=policy,
        on_step_change=lambda old, new: events.append(("step", old, new)),
        on_commit_success=lambda reference: events.append(("success", reference)),
        on_commit_error=lambda error: events.append(("error", error)),
        on_orphaned_commit=lambda reference: events.append(("orphaned", reference)),
    )


@pytest.fixture
def customer():
    """Valid customer contact details."""
    return CustomerInfo(
        name="Jana Novakova",
        email="jana@example.com",
        phone="+420 123 456 789",
        notes="First visit",
    )


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client with one chainable mock per table."""
    tables = {}

    def table(name):
        if name not in tables:
            mock_table = MagicMock(name=f"table:{name}")
            for method in ("select", "eq", "lt", "gt", "in_", "order", "insert", "delete", "limit"):
                getattr(mock_table, method).return_value = mock_table
            tables[name] = mock_table
        return tables[name]

    mock_client = MagicMock()
    mock_client.table.side_effect = table
    return mock_client, table
