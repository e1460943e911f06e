"""Machine-readable error codes shared by the notification services"""

FEATURE_DISABLED = "feature_disabled"
MISSING_CREDENTIALS = "missing_credentials"
TEMPLATE_NOT_FOUND = "template_not_found"
BOOKING_NOT_FOUND = "booking_not_found"
OWNER_NOT_FOUND = "owner_not_found"
MISSING_RECIPIENT = "missing_recipient"
NOTIFICATION_NOT_FOUND = "notification_not_found"
TRANSPORT_ERROR = "transport_error"
SCHEDULING_ERROR = "scheduling_error"

# Tenant-level problems: records are left pending and the tenant is passed over
CONFIGURATION_ERRORS = frozenset({FEATURE_DISABLED, MISSING_CREDENTIALS})
