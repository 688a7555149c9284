"""Unit tests for DriveMonitor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from hub_port_mapper.core.cancellation import CancellationToken
from hub_port_mapper.core.devices import PowerShellDeviceScanner
from hub_port_mapper.core.errors import OperationCancelled, ScanError
from hub_port_mapper.core.mapping import PortMapper
from hub_port_mapper.core.monitor import DriveMonitor, MonitorDelta
from tests.infrastructure.mocks.device_mocks import PRIMARY_CHIP, make_drive


@pytest.fixture
def mapper(full_mappings):
    return PortMapper(full_mappings)


class TestSnapshots:
    """Snapshot keys and diffs."""

    def test_snapshot_key_prefers_identity_key(self, fake_source, mapper):
        monitor = DriveMonitor(fake_source, mapper)
        assert monitor.snapshot_key(make_drive(2, serial="S")) == f"{PRIMARY_CHIP}|2"

    def test_snapshot_key_falls_back_to_serial(self, fake_source, mapper):
        monitor = DriveMonitor(fake_source, mapper)
        assert monitor.snapshot_key(make_drive(None, serial="S123")) == "S123"

    def test_diff(self, fake_source, mapper):
        monitor = DriveMonitor(fake_source, mapper)
        previous = monitor.build_snapshot([make_drive(1), make_drive(2)])
        current = monitor.build_snapshot([make_drive(2), make_drive(3)])

        delta = monitor.diff(previous, current)

        assert [e.port for e in delta.appeared] == [3]
        assert [e.port for e in delta.disappeared] == [1]
        assert delta

    def test_identical_snapshots_have_no_delta(self, fake_source, mapper):
        monitor = DriveMonitor(fake_source, mapper)
        snapshot = monitor.build_snapshot([make_drive(1)])
        assert not monitor.diff(snapshot, dict(snapshot))

    def test_unmapped_drive_event_has_no_port(self, fake_source):
        monitor = DriveMonitor(fake_source, PortMapper())
        delta = monitor.diff({}, monitor.build_snapshot([make_drive(4)]))
        assert delta.appeared[0].port is None


class TestPolling:
    """prime, poll_once and run."""

    @pytest.mark.asyncio
    async def test_prime_failure_propagates(self, source_factory, mapper):
        monitor = DriveMonitor(source_factory(ScanError("boom")), mapper)
        with pytest.raises(ScanError):
            await monitor.prime()

    @pytest.mark.asyncio
    async def test_poll_once_reports_changes(self, source_factory, mapper):
        source = source_factory([make_drive(1)], [make_drive(1), make_drive(6)], [make_drive(6)])
        monitor = DriveMonitor(source, mapper)
        await monitor.prime()

        first = await monitor.poll_once()
        second = await monitor.poll_once()

        assert [e.port for e in first.appeared] == [6]
        assert first.disappeared == []
        assert [e.port for e in second.disappeared] == [1]
        assert list(monitor.snapshot) == [f"{PRIMARY_CHIP}|6"]

    @pytest.mark.asyncio
    async def test_scan_failure_keeps_snapshot(self, source_factory, mapper):
        source = source_factory([make_drive(1)], ScanError("timed out"), [make_drive(1)])
        monitor = DriveMonitor(source, mapper)
        await monitor.prime()

        assert await monitor.poll_once() is None
        assert list(monitor.snapshot) == [f"{PRIMARY_CHIP}|1"]
        # Recovered scan sees the same drive, so nothing changed
        assert not await monitor.poll_once()

    @pytest.mark.asyncio
    async def test_run_until_cancelled(self, source_factory, mapper):
        token = CancellationToken()
        source = source_factory([], [make_drive(3)], ScanError("hiccup"), [])
        monitor = DriveMonitor(source, mapper, token=token, poll_interval=0.001)
        deltas = []

        def on_delta(delta: MonitorDelta) -> None:
            deltas.append(delta)
            if len(deltas) == 2:
                token.cancel()

        await asyncio.wait_for(monitor.run(on_delta=on_delta), timeout=5)

        assert [e.port for e in deltas[0].appeared] == [3]
        assert [e.port for e in deltas[1].disappeared] == [3]

    @pytest.mark.asyncio
    async def test_run_accepts_async_callback(self, source_factory, mapper):
        token = CancellationToken()
        source = source_factory([], [make_drive(2)])
        monitor = DriveMonitor(source, mapper, token=token, poll_interval=0.001)
        seen = []

        async def on_delta(delta: MonitorDelta) -> None:
            seen.append(delta)
            token.cancel()

        await asyncio.wait_for(monitor.run(on_delta=on_delta), timeout=5)

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_immediately(self, source_factory, mapper):
        token = CancellationToken()
        token.cancel()
        source = source_factory([])
        monitor = DriveMonitor(source, mapper, token=token)

        await monitor.run()

        assert source.drive_calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_scan_ends_run(self, source_factory, mapper):
        source = source_factory([], OperationCancelled("signal"), [make_drive(1)])
        monitor = DriveMonitor(source, mapper, token=CancellationToken(), poll_interval=0.001)
        deltas = []

        await asyncio.wait_for(monitor.run(on_delta=deltas.append), timeout=5)

        assert source.drive_calls == 2
        assert deltas == []

    @pytest.mark.asyncio
    async def test_ctrl_c_interrupts_hanging_powershell(self, mapper):
        token = CancellationToken()
        scanner = PowerShellDeviceScanner(timeout=10.0, token=token)
        spawned = []

        async def spawn(*args, **kwargs):
            process = MagicMock()
            process.returncode = 0
            process.wait = AsyncMock(return_value=0)
            if spawned:
                async def hang():
                    await asyncio.sleep(10)
                process.communicate = hang
                asyncio.get_running_loop().call_later(0.05, token.cancel, "signal")
            else:
                process.communicate = AsyncMock(return_value=(b"[]", b""))
            spawned.append(process)
            return process

        monitor = DriveMonitor(scanner, mapper, token=token, poll_interval=0.001)
        loop = asyncio.get_running_loop()
        with patch("asyncio.create_subprocess_exec", spawn):
            started = loop.time()
            await asyncio.wait_for(monitor.run(), timeout=5)

        assert loop.time() - started < 1.0
        assert len(spawned) == 2
        spawned[1].kill.assert_called_once()
