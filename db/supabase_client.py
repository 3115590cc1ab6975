"""
Supabase booking store.
Implements the catalog, availability and appointment collaborator contracts
on top of the salon's Supabase schema.

Expected schema
===============
services(id, name, description, price, duration, category_id, is_active)
products(id, name, description, price, stock, is_active)
users(id, full_name, role, phone, email)                 -- staff have role 'staff'
appointments(id, reference, appointment_date, start_time, end_time, status,
             total, notes, customer_name, customer_email, customer_phone,
             payment_method, created_at)
appointment_services(appointment_id, service_id, staff_user_id, price, duration, quantity)
appointment_products(appointment_id, product_id, price, quantity, amount)
appointment_payments(appointment_id, method, amount, status)
rpc get_staff_by_service(service_id) -> (user_id, full_name, staff_position, email, phone)

Atomicity
=========
PostgREST offers no multi-statement transaction, so ``create_booking`` uses a
compensating rollback: when any child insert fails, the rows already written
for that appointment are deleted before the error is raised. A header insert
that times out may still land, so the header is then deleted by its unique
reference. Timed-out writes are awaited before any compensating delete runs.
"""

import asyncio
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client as SupabaseClientType
from supabase import create_client

from config import settings
from models.booking import Booking, BookingReference, PaymentStatus
from models.service import Product, Service, Staff
from utils.constants import (
    APPOINTMENT_PAYMENTS_TABLE,
    APPOINTMENT_PRODUCTS_TABLE,
    APPOINTMENT_SERVICES_TABLE,
    APPOINTMENTS_TABLE,
    NON_BLOCKING_STATUSES,
    PRODUCTS_TABLE,
    SERVICES_TABLE,
    STAFF_BY_SERVICE_RPC,
    STAFF_TABLE,
)
from utils.datetime_utils import format_time, to_iso_string, utc_now
from utils.exceptions import BookingCreationError, DatabaseError, RequestTimeoutError
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__,
    log_level=settings.log_level,
    log_file="booking.log",
    log_dir=settings.log_dir,
)


class SupabaseBookingStore:
    """
    Supabase-backed catalog reader, availability store and appointment store.

    Uses the service_role key, which bypasses RLS. Blocking SDK calls run in a
    worker thread with a per-request timeout so a stalled backend surfaces as
    a DatabaseError instead of hanging the checkout.

    Catalog lists are cached in memory to reduce database load.
    """

    def __init__(
        self,
        client: Optional[SupabaseClientType] = None,
        timeout_seconds: Optional[float] = None,
        cache_ttl: Optional[timedelta] = None,
        max_parallel_appointments: Optional[int] = None,
    ):
        if client is None:
            client = create_client(settings.supabase_url, settings.supabase_key)
        self.client: SupabaseClientType = client
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.request_timeout_seconds
        )
        self.max_parallel_appointments = (
            max_parallel_appointments
            if max_parallel_appointments is not None
            else settings.max_parallel_appointments
        )

        # Format: {cache_key: (data, expiry_time)}
        self._cache: Dict[str, Tuple[Any, datetime]] = {}
        self._cache_ttl = cache_ttl or timedelta(minutes=settings.catalog_cache_ttl_minutes)

    # ========== Cache Helpers ==========

    def _get_from_cache(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key not in self._cache:
            return None

        data, expiry = self._cache[key]
        if utc_now() > expiry:
            del self._cache[key]
            return None

        return data

    def _set_cache(self, key: str, value: Any) -> None:
        """Set value in cache with TTL."""
        self._cache[key] = (value, utc_now() + self._cache_ttl)

    def clear_cache(self, pattern: Optional[str] = None) -> None:
        """Clear cache entries matching pattern, or all if pattern is None."""
        if pattern is None:
            self._cache.clear()
        else:
            for key in [k for k in self._cache if pattern in k]:
                del self._cache[key]

    # ========== Request Helper ==========

    async def _execute(self, query, settle: bool = False) -> Any:
        """
        Run a query builder's blocking ``execute`` off the event loop.

        The worker thread cannot be cancelled, so a timed-out request may still
        reach the database. With ``settle`` the timeout is only raised once the
        worker has finished, so a compensating delete never runs ahead of the
        write it undoes.
        """
        worker = asyncio.ensure_future(asyncio.to_thread(query.execute))
        try:
            return await asyncio.wait_for(
                asyncio.shield(worker), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            worker.add_done_callback(_log_late_outcome)
            if settle:
                await asyncio.wait({worker})
            raise RequestTimeoutError(
                f"Request timed out after {self.timeout_seconds}s"
            ) from e

    # ========== Catalog Operations ==========

    async def list_services(self) -> List[Service]:
        """Get active services, cached."""
        cached = self._get_from_cache("catalog:services")
        if cached is not None:
            return list(cached)

        try:
            response = await self._execute(
                self.client.table(SERVICES_TABLE)
                .select("*")
                .eq("is_active", True)
                .order("name", desc=False)
            )
            services = [self._parse_service(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to list services: {e}") from e

        self._set_cache("catalog:services", services)
        return list(services)

    async def list_products(self) -> List[Product]:
        """Get active products, cached."""
        cached = self._get_from_cache("catalog:products")
        if cached is not None:
            return list(cached)

        try:
            response = await self._execute(
                self.client.table(PRODUCTS_TABLE)
                .select("*")
                .eq("is_active", True)
                .order("name", desc=False)
            )
            products = [self._parse_product(item) for item in response.data]
        except Exception as e:
            raise DatabaseError(f"Failed to list products: {e}") from e

        self._set_cache("catalog:products", products)
        return list(products)

    async def list_staff(self) -> List[Staff]:
        """Get all staff members, cached."""
        cached = self._get_from_cache("catalog:staff")
        if cached is not None:
            return list(cached)

        try:
            response = await self._execute(
                self.client.table(STAFF_TABLE)
                .select("id, full_name, phone, email, role")
                .eq("role", "staff")
            )
            staff = [
                Staff(
                    id=item["id"],
                    name=item.get("full_name") or "",
                    email=item.get("email"),
                    phone=item.get("phone"),
                )
                for item in response.data
            ]
        except Exception as e:
            raise DatabaseError(f"Failed to list staff: {e}") from e

        self._set_cache("catalog:staff", staff)
        return list(staff)

    async def get_service(self, service_id: str) -> Optional[Service]:
        """Get service by ID from the cached catalog."""
        for service in await self.list_services():
            if service.id == str(service_id):
                return service
        return None

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID from the cached catalog."""
        for product in await self.list_products():
            if product.id == str(product_id):
                return product
        return None

    async def get_eligible_staff(self, service_id: str) -> List[Staff]:
        """
        Get staff qualified for a service.

        Qualification is resolved by the ``get_staff_by_service`` database
        function. An empty list means nobody qualifies, not a failure.
        """
        service_key = str(service_id)
        rpc_arg: Any = int(service_key) if service_key.isdigit() else service_key

        try:
            response = await self._execute(
                self.client.rpc(STAFF_BY_SERVICE_RPC, {"service_id": rpc_arg})
            )
        except Exception as e:
            raise DatabaseError(f"Failed to get staff for service {service_key}: {e}") from e

        return [
            Staff(
                id=item["user_id"],
                name=item.get("full_name") or "",
                position=item.get("staff_position"),
                email=item.get("email"),
                phone=item.get("phone"),
            )
            for item in (response.data or [])
        ]

    # ========== Availability Operations ==========

    async def _overlapping_appointment_ids(
        self, on_date: date, start_time: time, end_time: time
    ) -> List[Any]:
        """IDs of slot-blocking appointments overlapping the window."""
        response = await self._execute(
            self.client.table(APPOINTMENTS_TABLE)
            .select("id, status")
            .eq("appointment_date", on_date.isoformat())
            .lt("start_time", format_time(end_time))
            .gt("end_time", format_time(start_time))
        )
        return [
            item["id"]
            for item in response.data
            if item.get("status") not in NON_BLOCKING_STATUSES
        ]

    async def check_staff_availability(
        self, staff_id: str, on_date: date, start_time: time, end_time: time
    ) -> bool:
        """True when the staff member has no overlapping appointment."""
        try:
            appointment_ids = await self._overlapping_appointment_ids(
                on_date, start_time, end_time
            )
            if not appointment_ids:
                return True

            # PostgREST has no JOIN; match line items against the overlapping headers
            response = await self._execute(
                self.client.table(APPOINTMENT_SERVICES_TABLE)
                .select("id")
                .eq("staff_user_id", staff_id)
                .in_("appointment_id", appointment_ids)
            )
            return not response.data
        except Exception as e:
            raise DatabaseError(f"Failed to check staff availability: {e}") from e

    async def check_slot_conflict(
        self, on_date: date, start_time: time, end_time: time
    ) -> bool:
        """True when overlapping appointments already fill the business-wide capacity."""
        if self.max_parallel_appointments is None:
            return False

        try:
            appointment_ids = await self._overlapping_appointment_ids(
                on_date, start_time, end_time
            )
        except Exception as e:
            raise DatabaseError(f"Failed to check slot conflict: {e}") from e

        return len(appointment_ids) >= self.max_parallel_appointments

    # ========== Booking Operations ==========

    async def create_booking(self, booking: Booking) -> BookingReference:
        """
        Write the appointment header, line items and payment record.

        Raises:
            BookingCreationError: If any write fails. Rows already written are
                removed first; ``rolled_back`` is False if that cleanup failed.
        """
        try:
            response = await self._execute(
                self.client.table(APPOINTMENTS_TABLE).insert(self._appointment_row(booking)),
                settle=True,
            )
        except RequestTimeoutError as e:
            # The header may have landed without us learning its id
            rolled_back = await self._delete_by_reference(booking.reference)
            message = f"Failed to create booking: {e}"
            if not rolled_back:
                message += f" (rollback incomplete, booking {booking.reference} may remain)"
            raise BookingCreationError(message, rolled_back=rolled_back) from e
        except Exception as e:
            raise BookingCreationError(f"Failed to create booking: {e}") from e

        if not response.data:
            raise BookingCreationError("Failed to create booking: no data returned")

        appointment_id = response.data[0]["id"]

        try:
            await self._execute(
                self.client.table(APPOINTMENT_SERVICES_TABLE).insert(
                    [
                        {
                            "appointment_id": appointment_id,
                            "service_id": item.service_id,
                            "staff_user_id": item.staff_id,
                            "price": _money(item.price),
                            "duration": item.duration_minutes,
                            "quantity": 1,
                        }
                        for item in booking.services
                    ]
                ),
                settle=True,
            )

            if booking.products:
                await self._execute(
                    self.client.table(APPOINTMENT_PRODUCTS_TABLE).insert(
                        [
                            {
                                "appointment_id": appointment_id,
                                "product_id": item.product_id,
                                "price": _money(item.price),
                                "quantity": item.quantity,
                                "amount": _money(item.amount),
                            }
                            for item in booking.products
                        ]
                    ),
                    settle=True,
                )

            await self._execute(
                self.client.table(APPOINTMENT_PAYMENTS_TABLE).insert(
                    {
                        "appointment_id": appointment_id,
                        "method": booking.payment_method.value,
                        "amount": _money(booking.total),
                        "status": PaymentStatus.PENDING.value,
                    }
                ),
                settle=True,
            )
        except Exception as e:
            rolled_back = await self._rollback(appointment_id)
            message = f"Failed to create booking: {e}"
            if not rolled_back:
                message += f" (rollback incomplete, appointment {appointment_id} may remain)"
            raise BookingCreationError(message, rolled_back=rolled_back) from e

        logger.info(
            "Booking %s written as appointment %s", booking.reference, appointment_id
        )
        return BookingReference(reference=booking.reference, appointment_id=appointment_id)

    async def _rollback(self, appointment_id: Any) -> bool:
        """Delete every row written for a failed booking. Returns False if any delete failed."""
        complete = True
        for table in (
            APPOINTMENT_PAYMENTS_TABLE,
            APPOINTMENT_PRODUCTS_TABLE,
            APPOINTMENT_SERVICES_TABLE,
        ):
            try:
                await self._execute(
                    self.client.table(table).delete().eq("appointment_id", appointment_id)
                )
            except Exception as e:
                complete = False
                logger.error("Rollback of %s for appointment %s failed: %s", table, appointment_id, e)

        try:
            await self._execute(
                self.client.table(APPOINTMENTS_TABLE).delete().eq("id", appointment_id)
            )
        except Exception as e:
            complete = False
            logger.error("Rollback of appointment %s failed: %s", appointment_id, e)

        if complete:
            logger.warning("Rolled back partial booking for appointment %s", appointment_id)
        return complete

    async def _delete_by_reference(self, reference: str) -> bool:
        """Delete an appointment header whose id was never returned."""
        try:
            await self._execute(
                self.client.table(APPOINTMENTS_TABLE).delete().eq("reference", reference)
            )
        except Exception as e:
            logger.error("Rollback of booking %s failed: %s", reference, e)
            return False

        logger.warning("Rolled back timed-out booking %s", reference)
        return True

    # ========== Helper Methods ==========

    def _appointment_row(self, booking: Booking) -> Dict[str, Any]:
        """Build the appointment header row."""
        window = booking.window
        return {
            "reference": booking.reference,
            "appointment_date": window.date.isoformat(),
            "start_time": format_time(window.start_time),
            "end_time": format_time(window.end_time),
            "status": booking.status.value,
            "total": _money(booking.total),
            "notes": booking.customer.notes,
            "customer_name": booking.customer.name,
            "customer_email": booking.customer.email,
            "customer_phone": booking.customer.phone,
            "payment_method": booking.payment_method.value,
            "created_at": to_iso_string(booking.created_at or utc_now()),
        }

    def _parse_service(self, item: dict) -> Service:
        """
        Parse service data from database response.

        The service category doubles as the specialization tag.
        """
        category_id = item.get("category_id")
        return Service(
            id=item["id"],
            name=item["name"],
            description=item.get("description"),
            price=Decimal(str(item.get("price") or 0)),
            duration_minutes=item["duration"],
            specialization_tags=[f"category:{category_id}"] if category_id else [],
            is_active=item.get("is_active", True),
        )

    def _parse_product(self, item: dict) -> Product:
        """Parse product data from database response."""
        return Product(
            id=item["id"],
            name=item["name"],
            description=item.get("description"),
            price=Decimal(str(item.get("price") or 0)),
            stock_quantity=item.get("stock"),
            is_active=item.get("is_active", True),
        )


def _log_late_outcome(worker: "asyncio.Future") -> None:
    """Report how a request finished after its caller stopped waiting."""
    if worker.cancelled():
        return
    error = worker.exception()
    if error is not None:
        logger.error("Timed-out request failed late: %s", error)
    else:
        logger.info("Timed-out request completed late")


def _money(value: Decimal) -> str:
    """Serialize money as a string so PostgREST keeps full numeric precision."""
    return str(value)
