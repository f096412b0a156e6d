"""
Envelope codec between ProbeMessage and Azure Service Bus messages.
"""

from typing import Any, Optional

from azure.servicebus import ServiceBusMessage

from .constants import CONTENT_TYPE_JSON, MESSAGE_ENCODING, MESSAGE_SUBJECT
from .models import ProbeMessage


def encode_message(message: ProbeMessage, correlation_id: Optional[str] = None) -> ServiceBusMessage:
    """Build the outgoing Service Bus message for a probe payload."""
    return ServiceBusMessage(
        message.to_json().encode(MESSAGE_ENCODING),
        content_type=CONTENT_TYPE_JSON,
        subject=MESSAGE_SUBJECT,
        correlation_id=correlation_id,
        session_id=str(message.session_number),
    )


def decode_message(received: Any) -> ProbeMessage:
    """Parse the payload of a received (or outgoing) Service Bus message."""
    return ProbeMessage.from_json(body_bytes(received))


def body_bytes(message: Any) -> bytes:
    """
    Flatten a message body into bytes.

    Data bodies are exposed by the SDK as an iterable of byte sections.
    """
    body = message.body
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode(MESSAGE_ENCODING)
    return b"".join(body)
