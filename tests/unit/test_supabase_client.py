"""
Unit tests for the Supabase booking store.
Tests with mocked Supabase API calls.
"""

import time as time_module
from datetime import datetime, time, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from db.supabase_client import SupabaseBookingStore
from models.booking import Booking, PaymentMethod, ProductLineItem, ServiceLineItem
from models.customer import CustomerInfo
from models.selection import AppointmentWindow
from tests.conftest import BOOKING_DATE
from utils.exceptions import BookingCreationError, DatabaseError


def _response(data):
    response = MagicMock()
    response.data = data
    return response


@pytest.fixture
def supabase_store(mock_supabase_client):
    """Create SupabaseBookingStore with mocked client."""
    mock_client, _ = mock_supabase_client
    return SupabaseBookingStore(client=mock_client, timeout_seconds=1.0)


@pytest.fixture
def booking():
    return Booking(
        reference="BK-0A1B2C3D",
        window=AppointmentWindow(date=BOOKING_DATE, start_time=time(10, 0), end_time=time(11, 15)),
        customer=CustomerInfo(
            name="Jana Novakova", email="jana@example.com", phone="+420123456789", notes="First visit"
        ),
        services=[
            ServiceLineItem(service_id="2", staff_id="8", price=Decimal("35.50"), duration_minutes=30),
            ServiceLineItem(service_id="3", staff_id="8", price=Decimal("80.25"), duration_minutes=45),
        ],
        products=[ProductLineItem(product_id="p1", quantity=2, price=Decimal("12.90"))],
        payment_method=PaymentMethod.CARD,
        total=Decimal("141.55"),
        created_at=datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
async def test_list_services_parses_rows(supabase_store, mock_supabase_client):
    """Test service rows are mapped to catalog models."""
    _, table = mock_supabase_client
    table("services").execute.return_value = _response(
        [
            {
                "id": 2,
                "name": "Haircut",
                "description": "Wash and cut",
                "price": "35.50",
                "duration": 30,
                "category_id": 4,
                "is_active": True,
            }
        ]
    )

    services = await supabase_store.list_services()

    assert len(services) == 1
    assert services[0].id == "2"
    assert services[0].price == Decimal("35.50")
    assert services[0].duration_minutes == 30
    assert services[0].specialization_tags == ["category:4"]
    table("services").eq.assert_called_with("is_active", True)


@pytest.mark.asyncio
async def test_list_services_is_cached(supabase_store, mock_supabase_client):
    """Test catalog lists are served from cache on repeat calls."""
    mock_client, table = mock_supabase_client
    table("services").execute.return_value = _response(
        [{"id": 1, "name": "Classic Manicure", "price": 50, "duration": 60}]
    )

    await supabase_store.list_services()
    service = await supabase_store.get_service("1")

    assert service.name == "Classic Manicure"
    assert table("services").execute.call_count == 1

    supabase_store.clear_cache("catalog:")
    await supabase_store.list_services()
    assert table("services").execute.call_count == 2


@pytest.mark.asyncio
async def test_cached_lists_are_copies(supabase_store, mock_supabase_client):
    """Test callers mutating a returned list leave the cache intact."""
    _, table = mock_supabase_client
    table("users").execute.return_value = _response(
        [{"id": "8", "full_name": "Petr", "role": "staff"}]
    )
    table("products").execute.return_value = _response(
        [{"id": "p1", "name": "Cuticle Oil", "price": "12.90"}]
    )

    (await supabase_store.list_staff()).clear()
    (await supabase_store.list_products()).append("junk")
    (await supabase_store.list_products()).pop()

    assert [member.id for member in await supabase_store.list_staff()] == ["8"]
    assert [product.id for product in await supabase_store.list_products()] == ["p1"]
    assert table("users").execute.call_count == 1
    assert table("products").execute.call_count == 1


@pytest.mark.asyncio
async def test_list_products(supabase_store, mock_supabase_client):
    _, table = mock_supabase_client
    table("products").execute.return_value = _response(
        [{"id": 11, "name": "Cuticle Oil", "price": "12.90", "stock": 3}]
    )

    products = await supabase_store.list_products()

    assert products[0].id == "11"
    assert products[0].stock_quantity == 3
    assert await supabase_store.get_product("12") is None


@pytest.mark.asyncio
async def test_list_services_failure(supabase_store, mock_supabase_client):
    _, table = mock_supabase_client
    table("services").execute.side_effect = Exception("connection refused")

    with pytest.raises(DatabaseError, match="connection refused"):
        await supabase_store.list_services()


@pytest.mark.asyncio
async def test_get_eligible_staff_uses_rpc(supabase_store, mock_supabase_client):
    """Test eligible staff are resolved by the database function."""
    mock_client, _ = mock_supabase_client
    mock_client.rpc.return_value.execute.return_value = _response(
        [
            {
                "user_id": 7,
                "full_name": "Eva",
                "staff_position": "Nail technician",
                "email": "eva@example.com",
                "phone": None,
            }
        ]
    )

    staff = await supabase_store.get_eligible_staff("1")

    mock_client.rpc.assert_called_once_with("get_staff_by_service", {"service_id": 1})
    assert staff[0].id == "7"
    assert staff[0].position == "Nail technician"


@pytest.mark.asyncio
async def test_get_eligible_staff_empty(supabase_store, mock_supabase_client):
    mock_client, _ = mock_supabase_client
    mock_client.rpc.return_value.execute.return_value = _response(None)

    assert await supabase_store.get_eligible_staff("1") == []


@pytest.mark.asyncio
async def test_get_eligible_staff_failure(supabase_store, mock_supabase_client):
    mock_client, _ = mock_supabase_client
    mock_client.rpc.return_value.execute.side_effect = Exception("function missing")

    with pytest.raises(DatabaseError, match="function missing"):
        await supabase_store.get_eligible_staff("1")


@pytest.mark.asyncio
async def test_staff_free_when_no_overlap(supabase_store, mock_supabase_client):
    mock_client, table = mock_supabase_client
    table("appointments").execute.return_value = _response([])

    free = await supabase_store.check_staff_availability("7", BOOKING_DATE, time(10, 0), time(11, 0))

    assert free is True
    table("appointments").eq.assert_called_with("appointment_date", "2026-03-04")
    table("appointments").lt.assert_called_with("start_time", "11:00:00")
    table("appointments").gt.assert_called_with("end_time", "10:00:00")
    assert "appointment_services" not in [c.args[0] for c in mock_client.table.call_args_list]


@pytest.mark.asyncio
async def test_staff_busy_on_overlapping_appointment(supabase_store, mock_supabase_client):
    """Test cancelled appointments are ignored and line items are matched by staff."""
    _, table = mock_supabase_client
    table("appointments").execute.return_value = _response(
        [{"id": 1, "status": "confirmed"}, {"id": 2, "status": "cancelled"}]
    )
    table("appointment_services").execute.return_value = _response([{"id": 31}])

    free = await supabase_store.check_staff_availability("7", BOOKING_DATE, time(10, 0), time(11, 0))

    assert free is False
    table("appointment_services").eq.assert_called_with("staff_user_id", "7")
    table("appointment_services").in_.assert_called_with("appointment_id", [1])


@pytest.mark.asyncio
async def test_staff_availability_failure(supabase_store, mock_supabase_client):
    _, table = mock_supabase_client
    table("appointments").execute.side_effect = Exception("boom")

    with pytest.raises(DatabaseError):
        await supabase_store.check_staff_availability("7", BOOKING_DATE, time(10, 0), time(11, 0))


@pytest.mark.asyncio
async def test_slot_conflict_without_capacity(supabase_store, mock_supabase_client):
    mock_client, _ = mock_supabase_client

    conflict = await supabase_store.check_slot_conflict(BOOKING_DATE, time(10, 0), time(11, 0))

    assert conflict is False
    mock_client.table.assert_not_called()


@pytest.mark.asyncio
async def test_slot_conflict_at_capacity(mock_supabase_client):
    mock_client, table = mock_supabase_client
    supabase_store = SupabaseBookingStore(client=mock_client, max_parallel_appointments=2)
    table("appointments").execute.return_value = _response(
        [{"id": 1, "status": "pending"}, {"id": 2, "status": "in_progress"}, {"id": 3, "status": "no_show"}]
    )

    assert await supabase_store.check_slot_conflict(BOOKING_DATE, time(10, 0), time(11, 0)) is True

    table("appointments").execute.return_value = _response([{"id": 1, "status": "pending"}])
    assert await supabase_store.check_slot_conflict(BOOKING_DATE, time(10, 0), time(11, 0)) is False


@pytest.mark.asyncio
async def test_create_booking_success(supabase_store, mock_supabase_client, booking):
    """Test header, line items and payment are written."""
    _, table = mock_supabase_client
    table("appointments").execute.return_value = _response([{"id": 42}])

    reference = await supabase_store.create_booking(booking)

    assert reference.reference == "BK-0A1B2C3D"
    assert reference.appointment_id == "42"

    header = table("appointments").insert.call_args.args[0]
    assert header["appointment_date"] == "2026-03-04"
    assert header["start_time"] == "10:00:00"
    assert header["end_time"] == "11:15:00"
    assert header["total"] == "141.55"
    assert header["status"] == "pending"

    service_rows = table("appointment_services").insert.call_args.args[0]
    assert [(row["service_id"], row["staff_user_id"]) for row in service_rows] == [("2", "8"), ("3", "8")]
    assert all(row["appointment_id"] == 42 for row in service_rows)

    product_rows = table("appointment_products").insert.call_args.args[0]
    assert product_rows[0]["amount"] == "25.80"

    payment = table("appointment_payments").insert.call_args.args[0]
    assert payment == {"appointment_id": 42, "method": "card", "amount": "141.55", "status": "pending"}


@pytest.mark.asyncio
async def test_create_booking_header_failure(supabase_store, mock_supabase_client, booking):
    _, table = mock_supabase_client
    table("appointments").execute.side_effect = Exception("duplicate key")

    with pytest.raises(BookingCreationError, match="duplicate key"):
        await supabase_store.create_booking(booking)

    table("appointment_services").insert.assert_not_called()
    table("appointments").delete.assert_not_called()


@pytest.mark.asyncio
async def test_create_booking_rolls_back_on_line_item_failure(supabase_store, mock_supabase_client, booking):
    """Test a failed child insert removes the rows already written."""
    _, table = mock_supabase_client
    table("appointments").execute.side_effect = [_response([{"id": 42}]), _response([])]
    table("appointment_services").execute.side_effect = [Exception("fk violation"), _response([])]

    with pytest.raises(BookingCreationError) as exc_info:
        await supabase_store.create_booking(booking)

    assert exc_info.value.rolled_back is True
    assert str(exc_info.value) == "Failed to create booking: fk violation"
    table("appointments").delete.assert_called_once()
    table("appointments").eq.assert_called_with("id", 42)
    table("appointment_payments").insert.assert_not_called()


@pytest.mark.asyncio
async def test_create_booking_incomplete_rollback(supabase_store, mock_supabase_client, booking):
    _, table = mock_supabase_client
    table("appointments").execute.side_effect = [_response([{"id": 42}]), Exception("gone")]
    table("appointment_payments").execute.side_effect = Exception("payment rejected")

    with pytest.raises(BookingCreationError) as exc_info:
        await supabase_store.create_booking(booking)

    assert exc_info.value.rolled_back is False
    assert "appointment 42 may remain" in str(exc_info.value)


@pytest.mark.asyncio
async def test_request_timeout(mock_supabase_client):
    """Test a stalled request surfaces as a DatabaseError."""
    mock_client, table = mock_supabase_client
    supabase_store = SupabaseBookingStore(client=mock_client, timeout_seconds=0.05)
    table("services").execute.side_effect = lambda: time_module.sleep(0.5)

    with pytest.raises(DatabaseError, match="timed out"):
        await supabase_store.list_services()


@pytest.mark.asyncio
async def test_create_booking_header_timeout_deletes_by_reference(mock_supabase_client, booking):
    """Test a header insert landing after its timeout is deleted again."""
    mock_client, table = mock_supabase_client
    supabase_store = SupabaseBookingStore(client=mock_client, timeout_seconds=0.05)
    writes = []

    def slow_insert():
        time_module.sleep(0.3)
        writes.append("insert")
        return _response([{"id": 42}])

    def delete():
        writes.append("delete")
        return _response([])

    calls = iter([slow_insert, delete])
    table("appointments").execute.side_effect = lambda: next(calls)()

    with pytest.raises(BookingCreationError, match="timed out") as exc_info:
        await supabase_store.create_booking(booking)

    assert writes == ["insert", "delete"]
    assert exc_info.value.rolled_back is True
    table("appointments").eq.assert_called_with("reference", "BK-0A1B2C3D")
    table("appointment_services").insert.assert_not_called()


@pytest.mark.asyncio
async def test_create_booking_header_timeout_cleanup_failure(mock_supabase_client, booking):
    mock_client, table = mock_supabase_client
    supabase_store = SupabaseBookingStore(client=mock_client, timeout_seconds=0.05)

    def slow_insert():
        time_module.sleep(0.2)
        return _response([{"id": 42}])

    def delete():
        raise Exception("connection reset")

    calls = iter([slow_insert, delete])
    table("appointments").execute.side_effect = lambda: next(calls)()

    with pytest.raises(BookingCreationError) as exc_info:
        await supabase_store.create_booking(booking)

    assert exc_info.value.rolled_back is False
    assert "booking BK-0A1B2C3D may remain" in str(exc_info.value)


@pytest.mark.asyncio
async def test_create_booking_line_item_timeout_rolls_back_after_write(mock_supabase_client, booking):
    """Test the rollback waits for a timed-out child insert to finish."""
    mock_client, table = mock_supabase_client
    supabase_store = SupabaseBookingStore(client=mock_client, timeout_seconds=0.05)
    writes = []

    def slow_insert():
        time_module.sleep(0.3)
        writes.append("services insert")
        return _response([])

    def delete():
        writes.append("services delete")
        return _response([])

    calls = iter([slow_insert, delete])
    table("appointments").execute.side_effect = [_response([{"id": 42}]), _response([])]
    table("appointment_services").execute.side_effect = lambda: next(calls)()

    with pytest.raises(BookingCreationError, match="timed out") as exc_info:
        await supabase_store.create_booking(booking)

    assert writes == ["services insert", "services delete"]
    assert exc_info.value.rolled_back is True
    table("appointments").eq.assert_called_with("id", 42)
    table("appointment_payments").insert.assert_not_called()
