"""
Queue Bootstrapper

Resets the probe queue to a known state: deleted if present, then created
empty with sessions required.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError

from sessionprobe.core.logging_config import get_logger

from .exceptions import QueueCreateError, QueueDeleteError
from .models import QueueSettings

logger = get_logger(__name__)


class QueueBootstrapper:
    """
    Trashes and recreates a queue through an administration client.

    The client is normally an ``azure.servicebus.aio.management.ServiceBusAdministrationClient``
    owned by the caller. Nothing here is retried.
    """

    def __init__(self, admin_client: Any):
        self._admin = admin_client

    async def reset(self, settings: QueueSettings) -> Any:
        """
        Delete the queue if it exists, then create it from ``settings``.

        Returns:
            Properties of the created queue

        Raises:
            QueueDeleteError: If an existing queue cannot be removed
            QueueCreateError: If creation fails or returns nothing
        """
        await self.delete_if_exists(settings.name)
        return await self.create(settings)

    async def delete_if_exists(self, queue_name: str) -> bool:
        """Delete ``queue_name``; a missing queue is not an error. Returns True if deleted."""
        try:
            await self._admin.get_queue(queue_name)
            logger.debug(f"Deleting queue:[{queue_name}]")
            await self._admin.delete_queue(queue_name)
        except ResourceNotFoundError:
            logger.debug(f"Queue:[{queue_name}] does not exist")
            return False
        except AzureError as e:
            logger.error(f"Failed to remove queue:[{queue_name}]: Reason:[{e}]")
            raise QueueDeleteError(queue_name, str(e)) from e

        logger.debug(f"Deleted queue:[{queue_name}]")
        return True

    async def create(self, settings: QueueSettings) -> Any:
        """Create the session-enabled queue described by ``settings``."""
        logger.debug(f"Creating queue:[{settings.name}]")
        try:
            properties = await self._admin.create_queue(
                settings.name,
                default_message_time_to_live=settings.default_message_time_to_live,
                lock_duration=settings.lock_duration,
                max_size_in_megabytes=settings.max_size_in_megabytes,
                requires_session=settings.requires_session,
            )
        except AzureError as e:
            raise QueueCreateError(settings.name, str(e)) from e

        if properties is None:
            logger.error("Empty response from create_queue")
            raise QueueCreateError(settings.name, "empty response")

        logger.debug(f"Created queue:[{properties.name}]")
        return properties
