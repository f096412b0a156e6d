"""
Service Bus Constants

Centralized limits and defaults used by the probe.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

# Wire payload
CONTENT_TYPE_JSON = "application/json;charset=utf-8"
MESSAGE_SUBJECT = "Test"
MESSAGE_ENCODING = "utf-8"

# Queue defaults
DEFAULT_QUEUE_NAME = "session_lock_failure"
DEFAULT_LOCK_DURATION = 15  # seconds; any duration reproduces the behavior
DEFAULT_MESSAGE_TTL = 7 * 24 * 60 * 60  # 7 days
DEFAULT_MAX_SIZE_IN_MEGABYTES = 1024  # smallest supported option

# Lock duration bounds accepted by the broker (seconds)
MIN_LOCK_DURATION = 5
MAX_LOCK_DURATION = 300

# Size limits
MIN_MAX_SIZE_IN_MEGABYTES = 1024
MAX_MAX_SIZE_IN_MEGABYTES = 5120
MAX_QUEUE_NAME_LENGTH = 260

# Number of messages per transaction
# https://learn.microsoft.com/en-us/azure/service-bus-messaging/service-bus-quotas#messaging-quotas
MAX_BATCH_SIZE = 100

# Probe defaults
DEFAULT_MESSAGE_COUNT = 1
DEFAULT_PREFETCH_COUNT = 2
DEFAULT_RECEIVE_TIMEOUT = 1.0  # seconds
DEFAULT_GRACE_PERIOD = 60.0  # seconds
DEFAULT_SESSION_COUNT = 10
