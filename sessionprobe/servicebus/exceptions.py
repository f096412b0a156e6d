"""
Probe Exception Hierarchy

Exception types raised by the session lock probe, with error codes and context.
Lock-lost conditions reported by the Azure SDK are not part of this hierarchy:
they are the expected outcome of a probe run and are handled inside the probe.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

from typing import Optional, Dict, Any


class ProbeError(Exception):
    """
    Base exception for all probe errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., 'QueueCreateFailed')
        details: Additional context (queue_name, batch_number, etc.)
    """

    error_code: str = "ProbeError"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for structured logs."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# ========== Configuration Errors ==========

class ConfigurationError(ProbeError):
    """Raised when the probe is configured with missing or invalid values."""
    error_code = "InvalidConfiguration"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details=details)


# ========== Setup Errors ==========

class SetupError(ProbeError):
    """Base class for errors that abort the run before the lock is probed."""
    error_code = "SetupFailed"


class QueueDeleteError(SetupError):
    """Raised when an existing queue cannot be removed."""
    error_code = "QueueDeleteFailed"

    def __init__(self, queue_name: str, reason: str, message: Optional[str] = None):
        message = message or f"Failed to remove queue '{queue_name}': {reason}"
        details = {"queue_name": queue_name, "reason": reason}
        super().__init__(message, details=details)


class QueueCreateError(SetupError):
    """Raised when the queue cannot be created or the response is empty."""
    error_code = "QueueCreateFailed"

    def __init__(self, queue_name: str, reason: str, message: Optional[str] = None):
        message = message or f"Failed to create queue '{queue_name}': {reason}"
        details = {"queue_name": queue_name, "reason": reason}
        super().__init__(message, details=details)


class NoSessionAvailableError(SetupError):
    """Raised when no session could be accepted on the queue."""
    error_code = "NoSessionAvailable"

    def __init__(self, queue_name: str, message: Optional[str] = None):
        message = message or f"No session available on queue '{queue_name}'"
        super().__init__(message, details={"queue_name": queue_name})


class NoMessageReceivedError(SetupError):
    """Raised when the accepted session yields no message within the receive bound."""
    error_code = "NoMessageReceived"

    def __init__(
        self,
        session_id: Optional[str],
        timeout_seconds: float,
        message: Optional[str] = None
    ):
        message = message or (
            f"No message received from session '{session_id}' "
            f"within {timeout_seconds}s"
        )
        details = {"session_id": session_id, "timeout_seconds": timeout_seconds}
        super().__init__(message, details=details)


# ========== Message Errors ==========

class MessageSendError(ProbeError):
    """Raised when a batch submission fails. Earlier batches stay enqueued."""
    error_code = "MessageSendFailed"

    def __init__(
        self,
        batch_number: int,
        batch_size: int,
        reason: str,
        message: Optional[str] = None
    ):
        message = message or f"Failed to send batch {batch_number} ({batch_size} messages): {reason}"
        details = {"batch_number": batch_number, "batch_size": batch_size, "reason": reason}
        super().__init__(message, details=details)


class MessageDecodeError(ProbeError):
    """Raised when a message body is not a valid probe payload."""
    error_code = "InvalidMessageFormat"

    def __init__(self, reason: str, message: Optional[str] = None):
        message = message or f"Invalid probe message payload: {reason}"
        super().__init__(message, details={"reason": reason})
