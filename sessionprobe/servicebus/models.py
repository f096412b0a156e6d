"""
Service Bus Models

Pydantic models for the probe's queue settings and message payload.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

import json
import re
from datetime import datetime, timedelta
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_LOCK_DURATION,
    DEFAULT_MAX_SIZE_IN_MEGABYTES,
    DEFAULT_MESSAGE_TTL,
    DEFAULT_QUEUE_NAME,
    MAX_LOCK_DURATION,
    MAX_MAX_SIZE_IN_MEGABYTES,
    MAX_QUEUE_NAME_LENGTH,
    MIN_LOCK_DURATION,
    MIN_MAX_SIZE_IN_MEGABYTES,
)
from .exceptions import MessageDecodeError


# Wire names of the payload fields, all required on the wire
WIRE_FIELDS = ("sessionNumber", "text", "createdDate")


def local_now() -> datetime:
    """Current local time carrying its UTC offset."""
    return datetime.now().astimezone()


class QueueNameValidator:
    """
    Validates Service Bus queue names according to Azure rules:
    - 1-260 characters
    - Alphanumeric characters, hyphens (-), underscores (_), and periods (.)
    - Must start and end with alphanumeric character
    - No consecutive hyphens, underscores, or periods
    """

    @staticmethod
    def validate(name: str) -> tuple[bool, Optional[str]]:
        """
        Validate queue name.

        Args:
            name: Queue name to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not name:
            return False, "Queue name cannot be empty"

        if len(name) > MAX_QUEUE_NAME_LENGTH:
            return False, f"Queue name must be 1-{MAX_QUEUE_NAME_LENGTH} characters, got {len(name)}"

        if not name[0].isalnum():
            return False, "Queue name must start with alphanumeric character"

        if not name[-1].isalnum():
            return False, "Queue name must end with alphanumeric character"

        if not re.match(r'^[a-zA-Z0-9\-_.]+$', name):
            return False, "Queue name can only contain alphanumeric, hyphens, underscores, and periods"

        if '--' in name or '__' in name or '..' in name:
            return False, "Queue name cannot contain consecutive hyphens, underscores, or periods"

        return True, None


class QueueSettings(BaseModel):
    """
    Settings of the session-enabled queue the probe resets before each run.

    Sessions are always required: the probe has nothing to observe otherwise.
    """
    model_config = ConfigDict(extra='forbid')

    name: str = DEFAULT_QUEUE_NAME
    lock_duration_seconds: int = Field(
        default=DEFAULT_LOCK_DURATION, ge=MIN_LOCK_DURATION, le=MAX_LOCK_DURATION
    )
    default_message_ttl_seconds: int = Field(default=DEFAULT_MESSAGE_TTL, ge=1)
    max_size_in_megabytes: int = Field(
        default=DEFAULT_MAX_SIZE_IN_MEGABYTES,
        ge=MIN_MAX_SIZE_IN_MEGABYTES,
        le=MAX_MAX_SIZE_IN_MEGABYTES,
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate queue name."""
        is_valid, error = QueueNameValidator.validate(v)
        if not is_valid:
            raise ValueError(error)
        return v

    @field_validator('default_message_ttl_seconds')
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """Validate TTL is reasonable (max 10 years)."""
        max_ttl = 315360000  # ~10 years in seconds
        if v > max_ttl:
            raise ValueError(f"DefaultMessageTimeToLive cannot exceed {max_ttl} seconds")
        return v

    @property
    def requires_session(self) -> bool:
        return True

    @property
    def lock_duration(self) -> timedelta:
        return timedelta(seconds=self.lock_duration_seconds)

    @property
    def default_message_time_to_live(self) -> timedelta:
        return timedelta(seconds=self.default_message_ttl_seconds)


class ProbeMessage(BaseModel):
    """
    Payload carried by every probe message.

    Example::

        {
            "sessionNumber": 0,
            "text": "Some meaningful text",
            "createdDate": "2024-01-01T00:00:00.000000+00:00"
        }
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    session_number: int = Field(alias="sessionNumber", description="Session number")
    text: str = Field(alias="text", description="Text")
    created_date: datetime = Field(
        default_factory=local_now,
        alias="createdDate",
        description="Datetime when message was originally created",
    )

    @field_validator('created_date')
    @classmethod
    def ensure_offset(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as local time."""
        if v.tzinfo is None:
            return v.astimezone()
        return v

    def to_json(self) -> str:
        """Serialize to the JSON wire payload."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> "ProbeMessage":
        """
        Parse a JSON wire payload.

        Raises:
            MessageDecodeError: If the payload is not JSON, is not an object,
                or lacks or mistypes a required field
        """
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise MessageDecodeError(f"not valid JSON ({e})") from e

        if not isinstance(data, dict):
            raise MessageDecodeError(f"expected a JSON object, got {type(data).__name__}")

        missing = [name for name in WIRE_FIELDS if name not in data]
        if missing:
            raise MessageDecodeError(f"missing required field(s): {', '.join(missing)}")

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MessageDecodeError(str(e)) from e
