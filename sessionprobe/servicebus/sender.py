"""
Batch Sender

Enqueues probe messages in batches bounded by the per-transaction limit.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from azure.servicebus import ServiceBusMessage
from azure.servicebus.exceptions import ServiceBusError

from sessionprobe.core.logging_config import get_logger

from .codec import encode_message
from .constants import MAX_BATCH_SIZE
from .exceptions import ConfigurationError, MessageSendError
from .models import ProbeMessage
from .sessions import SessionStrategyFunc, single_session

logger = get_logger(__name__)


@dataclass(frozen=True)
class SendSummary:
    """Outcome of a send phase."""
    message_count: int
    batch_count: int
    elapsed_seconds: float
    correlation_id: str

    @property
    def messages_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return float(self.message_count)
        return self.message_count / self.elapsed_seconds


class BatchSender:
    """
    Sends generated probe messages through a queue sender.

    The sender is any object with an awaitable ``send_messages(list)``, normally
    an ``azure.servicebus.aio.ServiceBusSender`` owned by the caller.
    """

    def __init__(
        self,
        sender: Any,
        batch_size_max: int = MAX_BATCH_SIZE,
        clock: Callable[[], float] = time.perf_counter,
    ):
        if not 1 <= batch_size_max <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"Batch size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size_max}",
                field="batch_size_max",
            )
        self._sender = sender
        self._batch_size_max = batch_size_max
        self._clock = clock

    async def send(
        self,
        count: int,
        strategy: SessionStrategyFunc = single_session,
        correlation_id: Optional[str] = None,
    ) -> SendSummary:
        """
        Enqueue exactly ``count`` messages.

        Args:
            count: Number of messages to send
            strategy: Maps a message index to its session number
            correlation_id: Shared by every message of the run (generated if omitted)

        Returns:
            SendSummary with counts and throughput

        Raises:
            ConfigurationError: If count is not positive
            MessageSendError: If a batch submission fails; earlier batches stay sent
        """
        if count < 1:
            raise ConfigurationError(
                f"Messages must be greater than zero, got {count}", field="message_count"
            )

        correlation_id = correlation_id or str(uuid.uuid4())
        started = self._clock()
        batch: List[ServiceBusMessage] = []
        batch_count = 0

        logger.debug(f"Generating [{count}] messages with correlationId:[{correlation_id}]")

        for index in range(count):
            payload = ProbeMessage(session_number=strategy(index), text=str(index))
            batch.append(encode_message(payload, correlation_id))

            if len(batch) >= self._batch_size_max:
                batch_count += 1
                logger.info(f"Sending batch: [{batch_count}]")
                await self._submit(batch, batch_count)
                batch = []

        # Final partial batch, if any
        if batch:
            batch_count += 1
            logger.info(f"Sending partial batch: [{batch_count}]")
            await self._submit(batch, batch_count)

        summary = SendSummary(
            message_count=count,
            batch_count=batch_count,
            elapsed_seconds=self._clock() - started,
            correlation_id=correlation_id,
        )
        logger.info(
            f"Sent [{summary.message_count}] messages in [{summary.elapsed_seconds:.2f}] seconds "
            f"({summary.messages_per_second:.2f} msg/s)."
        )
        return summary

    async def _submit(self, batch: List[ServiceBusMessage], batch_number: int) -> None:
        try:
            await self._sender.send_messages(batch)
        except ServiceBusError as e:
            raise MessageSendError(batch_number, len(batch), str(e)) from e
