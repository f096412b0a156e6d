"""
Session assignment strategies.

A strategy maps a message index to the session number the message is sent to.
"""

from enum import Enum
from typing import Callable

from .constants import DEFAULT_SESSION_COUNT
from .exceptions import ConfigurationError

SessionStrategyFunc = Callable[[int], int]


class SessionStrategy(str, Enum):
    """Supported ways of distributing messages into sessions."""
    SINGLE = "single"
    ROUND_ROBIN = "round-robin"
    PER_MESSAGE = "per-message"


def single_session(index: int) -> int:
    """All messages in session 0."""
    return 0


def per_message(index: int) -> int:
    """Each message in its own session."""
    return index


def round_robin(session_count: int) -> SessionStrategyFunc:
    """Evenly across ``session_count`` sessions."""
    if session_count < 1:
        raise ConfigurationError(
            f"Session count must be greater than zero, got {session_count}",
            field="session_count",
        )

    def assign(index: int) -> int:
        return index % session_count

    return assign


def build_strategy(
    kind: SessionStrategy = SessionStrategy.SINGLE,
    session_count: int = DEFAULT_SESSION_COUNT,
) -> SessionStrategyFunc:
    """Return the assignment function for ``kind``."""
    kind = SessionStrategy(kind)
    if kind is SessionStrategy.ROUND_ROBIN:
        return round_robin(session_count)
    if kind is SessionStrategy.PER_MESSAGE:
        return per_message
    return single_session
