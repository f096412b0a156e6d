"""
Unit Tests for the Queue Bootstrapper.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest
from azure.core.exceptions import HttpResponseError

from sessionprobe.servicebus.bootstrap import QueueBootstrapper
from sessionprobe.servicebus.exceptions import QueueCreateError, QueueDeleteError, SetupError
from sessionprobe.servicebus.models import QueueSettings

from fakes import FakeAdminClient


class TestQueueBootstrapper:
    """Tests for QueueBootstrapper."""

    @pytest.mark.asyncio
    async def test_creates_missing_queue(self):
        """Test a missing queue is created without a delete."""
        admin = FakeAdminClient()

        properties = await QueueBootstrapper(admin).reset(QueueSettings(name="probe"))

        assert admin.calls == ["get:probe", "create:probe"]
        assert properties.name == "probe"

    @pytest.mark.asyncio
    async def test_create_uses_settings(self):
        """Test the queue is created session-enabled with the configured limits."""
        admin = FakeAdminClient()
        settings = QueueSettings(name="probe", lock_duration_seconds=30, max_size_in_megabytes=2048)

        properties = await QueueBootstrapper(admin).reset(settings)

        assert properties.requires_session is True
        assert properties.lock_duration == timedelta(seconds=30)
        assert properties.default_message_time_to_live == timedelta(days=7)
        assert properties.max_size_in_megabytes == 2048

    @pytest.mark.asyncio
    async def test_existing_queue_is_replaced(self):
        """Test an existing queue with messages is deleted and recreated empty."""
        stale = SimpleNamespace(name="probe", message_count=12, requires_session=False)
        admin = FakeAdminClient(queues={"probe": stale})

        properties = await QueueBootstrapper(admin).reset(QueueSettings(name="probe"))

        assert admin.calls == ["get:probe", "delete:probe", "create:probe"]
        assert admin.queues["probe"] is not stale
        assert properties.message_count == 0
        assert properties.requires_session is True

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self):
        """Test two consecutive resets leave the same empty session queue."""
        admin = FakeAdminClient()
        bootstrapper = QueueBootstrapper(admin)
        settings = QueueSettings(name="probe")

        first = await bootstrapper.reset(settings)
        second = await bootstrapper.reset(settings)

        assert vars(first) == vars(second)
        assert list(admin.queues) == ["probe"]

    @pytest.mark.asyncio
    async def test_delete_if_exists_reports_outcome(self):
        admin = FakeAdminClient(queues={"probe": SimpleNamespace(name="probe")})
        bootstrapper = QueueBootstrapper(admin)

        assert await bootstrapper.delete_if_exists("probe") is True
        assert await bootstrapper.delete_if_exists("probe") is False

    @pytest.mark.asyncio
    async def test_delete_failure_is_fatal(self):
        """Test a delete error other than not-found aborts setup."""
        admin = FakeAdminClient(
            queues={"probe": SimpleNamespace(name="probe")},
            delete_error=HttpResponseError("Unauthorized"),
        )

        with pytest.raises(QueueDeleteError) as exc_info:
            await QueueBootstrapper(admin).reset(QueueSettings(name="probe"))

        assert isinstance(exc_info.value, SetupError)
        assert exc_info.value.details["queue_name"] == "probe"
        assert "create:probe" not in admin.calls

    @pytest.mark.asyncio
    async def test_create_failure_is_fatal(self):
        admin = FakeAdminClient(create_error=HttpResponseError("Quota exceeded"))

        with pytest.raises(QueueCreateError) as exc_info:
            await QueueBootstrapper(admin).reset(QueueSettings(name="probe"))

        assert "Quota exceeded" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_empty_create_response_is_fatal(self):
        admin = FakeAdminClient(create_returns_none=True)

        with pytest.raises(QueueCreateError) as exc_info:
            await QueueBootstrapper(admin).reset(QueueSettings(name="probe"))

        assert exc_info.value.details["reason"] == "empty response"
