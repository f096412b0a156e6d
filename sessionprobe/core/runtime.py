"""
Probe runtime.

Runs one probe end to end: reset the queue, send the messages, accept a
session and probe its lock. Every Azure client, sender and receiver is owned
by a single scope and closed when that scope ends.
"""

import logging
import uuid
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, Callable, Optional

from azure.servicebus import NEXT_AVAILABLE_SESSION
from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient
from azure.servicebus.exceptions import OperationTimeoutError

from sessionprobe.servicebus.bootstrap import QueueBootstrapper
from sessionprobe.servicebus.exceptions import NoSessionAvailableError
from sessionprobe.servicebus.probe import LockExpiryProbe, ProbeResult
from sessionprobe.servicebus.sender import BatchSender, SendSummary
from sessionprobe.servicebus.sessions import build_strategy

from .config_manager import ProbeConfig
from .logging_config import (
    AZURE_LOGGER_NAME,
    clear_correlation_id,
    get_logger,
    log_with_context,
    set_correlation_id,
)

logger = get_logger(__name__)

ClientFactory = Callable[[str], Any]


@dataclass(frozen=True)
class RunReport:
    """Everything a probe run produced."""
    queue_name: str
    send: SendSummary
    probe: ProbeResult

    @property
    def passed(self) -> bool:
        return self.probe.passed

    @property
    def inconclusive(self) -> bool:
        return self.probe.inconclusive


def _admin_from_connection_string(connection_string: str) -> ServiceBusAdministrationClient:
    return ServiceBusAdministrationClient.from_connection_string(connection_string)


def _client_from_connection_string(connection_string: str, logging_enable: bool = False) -> ServiceBusClient:
    return ServiceBusClient.from_connection_string(connection_string, logging_enable=logging_enable)


class ProbeRuntime:
    """
    Orchestrates bootstrap → send → probe for a validated configuration.

    The client factories default to the Azure SDK's asynchronous clients built
    from the configured connection string.
    """

    def __init__(
        self,
        config: ProbeConfig,
        admin_factory: Optional[ClientFactory] = None,
        client_factory: Optional[ClientFactory] = None,
        probe: Optional[LockExpiryProbe] = None,
    ):
        self._config = config
        self._admin_factory = admin_factory or _admin_from_connection_string
        self._client_factory = client_factory or self._default_client
        self._probe = probe or LockExpiryProbe(
            grace_period=config.probe.grace_period_seconds,
            receive_timeout=config.probe.receive_timeout_seconds,
            bypass_client_lock_check=config.probe.bypass_client_lock_check,
        )

    def _default_client(self, connection_string: str) -> ServiceBusClient:
        # SDK frame tracing follows the azure logger level
        trace = logging.getLogger(AZURE_LOGGER_NAME).isEnabledFor(logging.DEBUG)
        return _client_from_connection_string(connection_string, logging_enable=trace)

    async def run(self) -> RunReport:
        """
        Run the probe once.

        Raises:
            SetupError: If the queue cannot be reset or no session/message is available
            MessageSendError: If a batch cannot be sent
        """
        config = self._config
        queue_name = config.queue.name
        correlation_id = str(uuid.uuid4())
        set_correlation_id(correlation_id)

        try:
            # Trash the queue and recreate (reset to known state)
            async with self._admin_factory(config.connection_string) as admin_client:
                await QueueBootstrapper(admin_client).reset(config.queue)

            async with self._client_factory(config.connection_string) as client:
                async with client.get_queue_sender(queue_name) as sender:
                    logger.info("ServiceBus client connected")
                    strategy = build_strategy(config.send.session_strategy, config.send.session_count)
                    summary = await BatchSender(sender).send(
                        config.send.message_count, strategy, correlation_id
                    )

                logger.debug(f"AcceptNextSession: [{queue_name}]")
                receiver = client.get_queue_receiver(
                    queue_name,
                    session_id=NEXT_AVAILABLE_SESSION,
                    prefetch_count=config.probe.prefetch_count,
                )
                async with AsyncExitStack() as stack:
                    try:
                        await stack.enter_async_context(receiver)
                    except OperationTimeoutError as e:
                        raise NoSessionAvailableError(queue_name) from e
                    result = await self._probe.run(receiver)

            log_with_context(
                logger,
                _summary_level(result),
                f"Probe finished: {result.state.value}",
                queue=queue_name,
                session_id=result.session_id,
                messages_sent=summary.message_count,
                prefetch_count=config.probe.prefetch_count,
                completed_after_expiry=result.completed_count,
                lock_lost=result.lock_lost,
                inconclusive=result.inconclusive,
            )
        finally:
            clear_correlation_id()

        return RunReport(queue_name=queue_name, send=summary, probe=result)


def _summary_level(result: ProbeResult) -> int:
    if result.passed:
        return logging.INFO
    if result.inconclusive:
        return logging.WARNING
    return logging.ERROR
