"""
Unit Tests for ProbeRuntime orchestration.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

import json
import logging
from datetime import timedelta

import pytest
from azure.core.exceptions import HttpResponseError
from azure.servicebus import NEXT_AVAILABLE_SESSION

from sessionprobe.core.config_manager import ProbeConfig
from sessionprobe.core.logging_config import JSONFormatter, correlation_id
from sessionprobe.core.runtime import ProbeRuntime
from sessionprobe.servicebus.exceptions import (
    NoSessionAvailableError,
    QueueDeleteError,
)
from sessionprobe.servicebus.probe import LockExpiryProbe, ProbeState

from fakes import NOW, FakeAdminClient, FakeServiceBusClient, SleepRecorder

CONNECTION_STRING = "Endpoint=sb://probe.servicebus.windows.net/;SharedAccessKeyName=root;SharedAccessKey=secret"


def historical_broker(message_count: int, prefetch_count: int) -> bool:
    """Lock honoured only when the session holds at least prefetch_count messages."""
    return message_count >= prefetch_count


def make_config(**overrides) -> ProbeConfig:
    data = {
        "connection_string": CONNECTION_STRING,
        "queue": {"name": "probe", "lock_duration_seconds": 15},
    }
    data.update(overrides)
    return ProbeConfig(**data)


def make_runtime(config, admin, client, sleep):
    probe = LockExpiryProbe(
        grace_period=config.probe.grace_period_seconds,
        receive_timeout=config.probe.receive_timeout_seconds,
        sleep=sleep,
        clock=lambda: NOW,
        bypass_client_lock_check=config.probe.bypass_client_lock_check,
    )
    return ProbeRuntime(
        config,
        admin_factory=lambda conn: admin,
        client_factory=lambda conn: client,
        probe=probe,
    )


class TestProbeRuntime:
    """Tests for the end-to-end flow against in-memory clients."""

    @pytest.mark.asyncio
    async def test_expected_scenario(self):
        """Test messages=2, prefetch=2: the late completion is rejected."""
        config = make_config(send={"message_count": 2}, probe={"prefetch_count": 2})
        admin = FakeAdminClient()
        client = FakeServiceBusClient(honours_expiry=historical_broker, locked_until=NOW + timedelta(seconds=15))
        sleep = SleepRecorder()

        report = await make_runtime(config, admin, client, sleep).run()

        assert report.passed is True
        assert report.probe.state is ProbeState.EXPECTED_LOCK_LOST
        assert report.send.message_count == 2
        assert sleep.calls == [15.0, 60.0]

    @pytest.mark.asyncio
    async def test_anomaly_scenario(self):
        """Test messages=1, prefetch=2: the late completion succeeds and is flagged."""
        config = make_config(send={"message_count": 1}, probe={"prefetch_count": 2})
        admin = FakeAdminClient()
        client = FakeServiceBusClient(honours_expiry=historical_broker, locked_until=NOW + timedelta(seconds=15))

        report = await make_runtime(config, admin, client, SleepRecorder()).run()

        assert report.passed is False
        assert report.probe.state is ProbeState.UNEXPECTED_SUCCESS
        assert report.probe.completed_count == 1

    @pytest.mark.asyncio
    async def test_resets_queue_before_sending(self):
        config = make_config()
        admin = FakeAdminClient()
        client = FakeServiceBusClient()

        report = await make_runtime(config, admin, client, SleepRecorder()).run()

        assert admin.calls == ["get:probe", "create:probe"]
        assert admin.queues["probe"].requires_session is True
        assert admin.closed is True
        assert report.queue_name == "probe"

    @pytest.mark.asyncio
    async def test_receiver_accepts_next_session_with_prefetch(self):
        config = make_config(probe={"prefetch_count": 5})
        client = FakeServiceBusClient()

        await make_runtime(config, FakeAdminClient(), client, SleepRecorder()).run()

        assert client.receiver_kwargs == {
            "queue_name": "probe",
            "session_id": NEXT_AVAILABLE_SESSION,
            "prefetch_count": 5,
        }

    @pytest.mark.asyncio
    async def test_clients_closed_after_run(self):
        client = FakeServiceBusClient()

        await make_runtime(make_config(), FakeAdminClient(), client, SleepRecorder()).run()

        assert client.sender.closed is True
        assert client.receiver.closed is True
        assert client.closed is True

    @pytest.mark.asyncio
    async def test_correlation_id_shared_and_cleared(self):
        client = FakeServiceBusClient()

        report = await make_runtime(
            make_config(send={"message_count": 3}), FakeAdminClient(), client, SleepRecorder()
        ).run()

        assert {m.correlation_id for m in client.sender.messages} == {report.send.correlation_id}
        assert correlation_id.get() is None

    @pytest.mark.asyncio
    async def test_round_robin_probes_first_session(self):
        config = make_config(send={"message_count": 4, "session_strategy": "round-robin", "session_count": 2})
        client = FakeServiceBusClient()

        report = await make_runtime(config, FakeAdminClient(), client, SleepRecorder()).run()

        assert report.probe.session_id == "0"
        assert [m.session_id for m in client.sender.messages] == ["0", "1", "0", "1"]

    @pytest.mark.asyncio
    async def test_setup_failure_stops_before_send(self):
        admin = FakeAdminClient(
            queues={"probe": object()}, delete_error=HttpResponseError("Forbidden")
        )
        client = FakeServiceBusClient()

        with pytest.raises(QueueDeleteError):
            await make_runtime(make_config(), admin, client, SleepRecorder()).run()

        assert client.sender.batches == []

    @pytest.mark.asyncio
    async def test_no_session_available(self):
        """Test a session receiver that cannot accept a session is a setup error."""
        client = FakeServiceBusClient()
        # Nothing is sent when the sender drops every batch silently
        client.sender.send_messages = _discard

        with pytest.raises(NoSessionAvailableError) as exc_info:
            await make_runtime(make_config(), FakeAdminClient(), client, SleepRecorder()).run()

        assert exc_info.value.details["queue_name"] == "probe"
        assert correlation_id.get() is None


async def _discard(messages):
    return None


class _JSONCapture(logging.Handler):
    """Formats each record as it is emitted, while the logging context is live."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.entries = []

    def emit(self, record):
        self.entries.append(json.loads(JSONFormatter().format(record)))


class TestRunOutcome:
    @pytest.mark.asyncio
    async def test_client_lock_check_kept_is_inconclusive(self):
        """Test the SDK refusing locally yields an inconclusive report, never a pass."""
        config = make_config(send={"message_count": 2}, probe={"bypass_client_lock_check": False})
        client = FakeServiceBusClient()

        report = await make_runtime(config, FakeAdminClient(), client, SleepRecorder()).run()

        assert report.probe.state is ProbeState.CLIENT_SIDE_EXPIRY
        assert report.passed is False
        assert report.inconclusive is True
        assert client.receiver.broker_calls == 0

    @pytest.mark.asyncio
    async def test_summary_carries_correlation_id_and_context(self):
        capture = _JSONCapture()
        runtime_logger = logging.getLogger("sessionprobe.core.runtime")
        runtime_logger.addHandler(capture)
        level = runtime_logger.level
        runtime_logger.setLevel(logging.INFO)
        try:
            report = await make_runtime(
                make_config(send={"message_count": 2}), FakeAdminClient(), FakeServiceBusClient(), SleepRecorder()
            ).run()
        finally:
            runtime_logger.removeHandler(capture)
            runtime_logger.setLevel(level)

        summary = [e for e in capture.entries if e["message"].startswith("Probe finished")][-1]
        assert summary["correlation_id"] == report.send.correlation_id
        assert summary["context"]["messages_sent"] == 2
        assert summary["context"]["lock_lost"] is True
        assert summary["context"]["inconclusive"] is False
