"""
Unit tests for the HardwareGate.

Tests the Absent -> Live transition on open, the Live -> Absent transition
on a failed liveness probe, and fault translation of state sets.
"""

import pytest

from charon.exceptions import HardwareFaultError, HardwareUnavailableError
from charon.relay.gate import HandleState, HardwareGate


@pytest.fixture
def gate(opener) -> HardwareGate:
    return HardwareGate(opener)


class TestEnsureHandle:
    """Tests for HardwareGate.ensure_handle()"""

    @pytest.mark.asyncio
    async def test_starts_absent(self, gate, opener):
        """Test no handle is opened until first use"""
        assert gate.state is HandleState.ABSENT
        assert opener.drivers == []

    @pytest.mark.asyncio
    async def test_opens_handle_when_absent(self, gate, opener):
        """Test the first call opens the board and goes live"""
        handle = await gate.ensure_handle()

        assert handle is opener.driver
        assert gate.state is HandleState.LIVE

    @pytest.mark.asyncio
    async def test_open_failure_leaves_handle_absent(self, gate, opener):
        """Test an open error is reported as unavailable"""
        opener.available = False

        with pytest.raises(HardwareUnavailableError, match="could not open port"):
            await gate.ensure_handle()

        assert gate.state is HandleState.ABSENT

    @pytest.mark.asyncio
    async def test_live_handle_is_probed_not_reopened(self, gate, opener):
        """Test a live handle is probed and reused"""
        first = await gate.ensure_handle()
        second = await gate.ensure_handle()

        assert first is second
        assert len(opener.drivers) == 1
        assert first.probes == 1

    @pytest.mark.asyncio
    async def test_failed_probe_discards_stale_handle(self, gate, opener):
        """Test a failed probe closes and drops a handle nobody is using"""
        stale = await gate.ensure_handle()
        await gate.release(stale)
        stale.fail_probe = True

        with pytest.raises(HardwareUnavailableError, match="probe failed"):
            await gate.ensure_handle()

        assert gate.state is HandleState.ABSENT
        assert stale.closed is True

        fresh = await gate.ensure_handle()
        assert fresh is not stale
        assert gate.state is HandleState.LIVE

    @pytest.mark.asyncio
    async def test_board_plugged_in_after_start(self, gate, opener):
        """Test repeated failures followed by success once the board appears"""
        opener.available = False
        for _ in range(3):
            with pytest.raises(HardwareUnavailableError):
                await gate.ensure_handle()

        opener.available = True
        handle = await gate.ensure_handle()

        assert handle is opener.driver
        assert len(opener.drivers) == 1


class TestSetStateAndClose:
    """Tests for set_state() and close()"""

    @pytest.mark.asyncio
    async def test_set_state_forwards_to_handle(self, gate):
        """Test set_state switches the relay on the given handle"""
        handle = await gate.ensure_handle()

        await gate.set_state(handle, 2, True)

        assert handle.states[2] is True

    @pytest.mark.asyncio
    async def test_set_state_io_error_becomes_fault(self, gate):
        """Test an OSError from the driver becomes HardwareFaultError"""
        handle = await gate.ensure_handle()
        handle.fail_on.add(1)

        with pytest.raises(HardwareFaultError) as exc_info:
            await gate.set_state(handle, 1, True)

        assert exc_info.value.channel == 1
        assert exc_info.value.state is True

    @pytest.mark.asyncio
    async def test_close_releases_handle(self, gate):
        """Test close() closes the live handle and returns to absent"""
        handle = await gate.ensure_handle()
        await gate.release(handle)

        await gate.close()

        assert handle.closed is True
        assert gate.state is HandleState.ABSENT

    @pytest.mark.asyncio
    async def test_close_without_handle_is_noop(self, gate, opener):
        """Test close() before any use does nothing"""
        await gate.close()

        assert opener.drivers == []


class TestLeases:
    """Tests for handle leases and deferred close"""

    @pytest.mark.asyncio
    async def test_each_ensure_handle_takes_a_lease(self, gate):
        """Test leases are counted per ensure_handle() and returned by release()"""
        handle = await gate.ensure_handle()
        _ = await gate.ensure_handle()
        assert gate.leases(handle) == 2

        await gate.release(handle)
        await gate.release(handle)

        assert gate.leases(handle) == 0
        assert handle.closed is False
        assert gate.state is HandleState.LIVE

    @pytest.mark.asyncio
    async def test_dropped_handle_close_waits_for_lease(self, gate, opener):
        """Test a handle dropped after a liveness failure stays usable until its lease comes back"""
        leased = await gate.ensure_handle()
        leased.fail_probe = True

        with pytest.raises(HardwareUnavailableError):
            await gate.ensure_handle()

        assert gate.state is HandleState.ABSENT
        assert leased.closed is False
        await gate.set_state(leased, 1, False)

        await gate.release(leased)

        assert leased.closed is True
        assert gate.leases(leased) == 0

    @pytest.mark.asyncio
    async def test_close_defers_while_leased(self, gate):
        """Test close() goes absent at once but closes the board on the last release"""
        handle = await gate.ensure_handle()

        await gate.close()

        assert gate.state is HandleState.ABSENT
        assert handle.closed is False

        await gate.release(handle)

        assert handle.closed is True

    @pytest.mark.asyncio
    async def test_reopened_handle_is_not_closed_by_old_release(self, gate, opener):
        """Test releasing a dropped handle leaves the replacement alone"""
        old = await gate.ensure_handle()
        await gate.close()
        new = await gate.ensure_handle()

        await gate.release(old)

        assert old.closed is True
        assert new.closed is False
        assert gate.state is HandleState.LIVE
