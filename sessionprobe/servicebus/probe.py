"""
Lock-Expiry Probe

Holds a received session message past the session lock's advertised expiry
plus a grace period, then tries to complete it. A compliant broker rejects the
completion with a lock-lost error. No client-side call renews the lock while
the probe waits, so a completion that succeeds means the lease outlived
``locked_until_utc`` without an explicit renewal.

The Python SDK checks the cached expiry itself before settling and raises
``SessionLockLostError`` without a round trip. Only a lock loss reported by
the broker counts as the expected outcome; the local refusal is inconclusive.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from azure.servicebus.exceptions import MessageLockLostError, ServiceBusError, SessionLockLostError

from sessionprobe.core.logging_config import get_logger

from .codec import body_bytes
from .constants import DEFAULT_GRACE_PERIOD, DEFAULT_RECEIVE_TIMEOUT, MESSAGE_ENCODING
from .exceptions import ConfigurationError, NoMessageReceivedError

logger = get_logger(__name__)

LOCK_LOST_ERRORS = (SessionLockLostError, MessageLockLostError)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def reported_by_broker(error: ServiceBusError) -> bool:
    """
    Tell a lock-lost error returned by the service from one raised by the SDK.

    Errors mapped from an AMQP failure carry the original exception or the
    AMQP error condition. The receiver's own expiry check raises with neither,
    without contacting the service.
    """
    return error.inner_exception is not None or getattr(error, "_condition", None) is not None


def release_client_lock_check(receiver: Any) -> bool:
    """
    Drop the session expiry cached by ``receiver`` so settlement reaches the broker.

    ``azure.servicebus.aio.ServiceBusReceiver`` refuses to settle once the
    cached ``locked_until_utc`` has passed. Returns False when the receiver
    keeps no such cache.
    """
    session = getattr(receiver, "session", None)
    if session is None or not hasattr(session, "_locked_until_utc"):
        return False
    session._locked_until_utc = None
    return True


def compute_expiry_delay(locked_until: Optional[datetime], now: datetime) -> timedelta:
    """
    Time left until ``locked_until``, never negative.

    Naive timestamps are taken as UTC. A missing expiry yields no delay.
    """
    if locked_until is None:
        return timedelta(0)
    if locked_until.tzinfo is None:
        locked_until = locked_until.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(timedelta(0), locked_until - now)


class ProbeState(str, Enum):
    """Lifecycle of a single probe run."""
    IDLE = "Idle"
    SESSION_ACCEPTED = "SessionAccepted"
    MESSAGE_RECEIVED = "MessageReceived"
    AWAITING_EXPIRY = "AwaitingExpiry"
    AWAITING_GRACE_PERIOD = "AwaitingGracePeriod"
    COMPLETION_ATTEMPTED = "CompletionAttempted"
    EXPECTED_LOCK_LOST = "ExpectedLockLost"
    UNEXPECTED_SUCCESS = "UnexpectedSuccess"
    CLIENT_SIDE_EXPIRY = "ClientSideExpiry"


@dataclass
class ProbeResult:
    """What the probe observed."""
    state: ProbeState = ProbeState.IDLE
    session_id: Optional[str] = None
    locked_until: Optional[datetime] = None
    expiry_delay: timedelta = timedelta(0)
    grace_period: timedelta = timedelta(0)
    completed_count: int = 0
    lock_lost: bool = False
    client_side_expiry: bool = False
    history: List[ProbeState] = field(default_factory=lambda: [ProbeState.IDLE])

    @property
    def passed(self) -> bool:
        """True when the broker reported the lock lost before any late completion was accepted."""
        return self.lock_lost and self.completed_count == 0

    @property
    def inconclusive(self) -> bool:
        """True when the SDK rejected the completion itself and the broker was never asked."""
        return self.client_side_expiry and self.completed_count == 0


class LockExpiryProbe:
    """
    Runs the accept → receive → wait → complete sequence on a session receiver.

    The receiver must already hold an accepted session (``receiver.session``),
    e.g. an opened ``azure.servicebus.aio.ServiceBusReceiver`` created with
    ``session_id=NEXT_AVAILABLE_SESSION``. The caller owns and closes it.
    """

    def __init__(
        self,
        grace_period: Union[timedelta, float] = DEFAULT_GRACE_PERIOD,
        receive_timeout: float = DEFAULT_RECEIVE_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
        bypass_client_lock_check: bool = True,
    ):
        if not isinstance(grace_period, timedelta):
            grace_period = timedelta(seconds=grace_period)
        if grace_period < timedelta(0):
            raise ConfigurationError("Grace period cannot be negative", field="grace_period")
        if receive_timeout <= 0:
            raise ConfigurationError("Receive timeout must be greater than zero", field="receive_timeout")

        self.grace_period = grace_period
        self.receive_timeout = receive_timeout
        self._sleep = sleep
        self._clock = clock
        self.bypass_client_lock_check = bypass_client_lock_check
        self._result = ProbeResult()

    @property
    def state(self) -> ProbeState:
        return self._result.state

    async def run(self, receiver: Any) -> ProbeResult:
        """
        Probe the session held by ``receiver``.

        Returns:
            ProbeResult; ``passed`` tells whether the broker honoured the expiry

        Raises:
            NoMessageReceivedError: If the session yields no message in time
        """
        result = self._result = ProbeResult(grace_period=self.grace_period)

        session = receiver.session
        result.session_id = session.session_id
        result.locked_until = session.locked_until_utc
        self._transition(ProbeState.SESSION_ACCEPTED)
        logger.info(
            f"AcceptNextSession: SessionId:[{result.session_id}], "
            f"LockedUntil:[{_iso(result.locked_until)}]"
        )

        # May pull up to prefetch_count messages into local memory
        message = await self._receive_one(receiver)
        if message is None:
            raise NoMessageReceivedError(result.session_id, self.receive_timeout)
        self._transition(ProbeState.MESSAGE_RECEIVED)
        if logger.isEnabledFor(logging.DEBUG):
            payload = body_bytes(message).decode(MESSAGE_ENCODING, errors="replace")
            logger.debug(f"Received payload: {payload}")

        # Simulates a long-running (or stuck) message handler
        result.expiry_delay = compute_expiry_delay(result.locked_until, self._clock())
        self._transition(ProbeState.AWAITING_EXPIRY)
        logger.info(f"Delay:[{result.expiry_delay}] to allow session lock to expire")
        if result.expiry_delay > timedelta(0):
            await self._sleep(result.expiry_delay.total_seconds())

        # Absorbs clock drift between client and broker
        self._transition(ProbeState.AWAITING_GRACE_PERIOD)
        logger.info(f"Delay:[{self.grace_period}] for extra measure")
        if self.grace_period > timedelta(0):
            await self._sleep(self.grace_period.total_seconds())

        if self.bypass_client_lock_check:
            if release_client_lock_check(receiver):
                logger.debug("Cleared the client-side session expiry; completion goes to the broker")
            else:
                logger.debug("Receiver caches no session expiry")

        self._transition(ProbeState.COMPLETION_ATTEMPTED)
        try:
            while message is not None:
                logger.info(
                    f"CompleteMessage: SessionId:[{message.session_id}], "
                    f"SequenceNumber:[{message.sequence_number}]"
                )
                await receiver.complete_message(message)
                result.completed_count += 1
                if self.state is not ProbeState.UNEXPECTED_SUCCESS:
                    self._transition(ProbeState.UNEXPECTED_SUCCESS)

                # Likely served from the prefetch buffer
                message = await self._receive_one(receiver)
        except LOCK_LOST_ERRORS as e:
            if reported_by_broker(e):
                logger.warning("CompleteMessage: Session lock lost (expected)", exc_info=True)
                result.lock_lost = True
                self._transition(ProbeState.EXPECTED_LOCK_LOST)
            else:
                result.client_side_expiry = True
                if not result.completed_count:
                    self._transition(ProbeState.CLIENT_SIDE_EXPIRY)

        if result.inconclusive:
            logger.warning(
                "INCONCLUSIVE: The client refused to complete after the cached lock expiry; "
                "the broker was never asked"
            )
        elif not result.lock_lost:
            logger.error(
                "FAILURE: The session lock should have been lost, but was not "
                f"({result.completed_count} message(s) completed after expiry)"
            )
        elif result.completed_count:
            logger.error(
                f"FAILURE: {result.completed_count} message(s) completed after the session "
                "lock expired before the lock loss was reported"
            )
        return result

    async def _receive_one(self, receiver: Any) -> Optional[Any]:
        messages = await receiver.receive_messages(
            max_message_count=1, max_wait_time=self.receive_timeout
        )
        return messages[0] if messages else None

    def _transition(self, state: ProbeState) -> None:
        logger.debug(f"Probe state: {self._result.state.value} -> {state.value}")
        self._result.state = state
        self._result.history.append(state)


def _iso(value: Optional[datetime]) -> str:
    if value is None:
        return "unknown"
    return value.astimezone().isoformat()
