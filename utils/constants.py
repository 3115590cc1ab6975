"""
Application-wide constants.
Centralizes magic numbers and configuration values.
"""

# Booking references
BOOKING_REFERENCE_PREFIX = "BK"
BOOKING_REFERENCE_LENGTH = 8  # Hex characters after the prefix

# Validation limits
MAX_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 1000
MAX_PRODUCT_QUANTITY = 99

# Supabase tables
APPOINTMENTS_TABLE = "appointments"
APPOINTMENT_SERVICES_TABLE = "appointment_services"
APPOINTMENT_PRODUCTS_TABLE = "appointment_products"
APPOINTMENT_PAYMENTS_TABLE = "appointment_payments"
SERVICES_TABLE = "services"
PRODUCTS_TABLE = "products"
STAFF_TABLE = "users"
STAFF_BY_SERVICE_RPC = "get_staff_by_service"

# Appointment statuses that never block a slot
NON_BLOCKING_STATUSES = ("cancelled", "no_show")
