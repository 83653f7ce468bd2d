"""Global constants for the notification core.

This module defines the thresholds and windows shared by the sweeper, the
push delivery pipeline and the maintenance jobs.
"""

# Scheduled events
SCHEDULED_EVENT_BATCH_SIZE = 50
SCHEDULED_EVENT_MAX_ATTEMPTS = 3

# Token health
SUSPECTED_INVALID_THRESHOLD = 3
CONFIRMED_INVALID_THRESHOLD = 5
DEVICE_ACTIVITY_WINDOW_DAYS = 30
REVALIDATION_BATCH_SIZE = 100
STALE_INVALID_TOKEN_DAYS = 7
STALE_TOKEN_REFRESH_DAYS = 90

# Push provider
PUSH_SEND_CHUNK_SIZE = 100
PUSH_RECEIPT_CHUNK_SIZE = 300
RECEIPT_CHECK_DELAY_MINUTES = 15
RECEIPT_CHECK_BATCH_SIZE = 1000

# Retention
NOTIFICATION_RETENTION_DAYS = 30
EVENT_STORE_RETENTION_DAYS = 90
SCHEDULED_EVENT_RETENTION_DAYS = 30
