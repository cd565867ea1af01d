"""Tests for debounced, race-safe form validation."""

import asyncio

import pytest
import pytest_asyncio

from agenda.core.scheduling.errors import TRANSIENT_MESSAGE, TransientIOError
from agenda.core.scheduling.models import ConflictResult
from agenda.core.scheduling.validation import (
    DebouncedValidationController,
    ValidationState,
    ValidationStatus,
)
from tests.fakes import at

DELAY = 0.02


class ControlledService:
    """Availability stand-in whose calls resolve only when the test says so."""

    def __init__(self):
        self.calls: list[tuple[dict, asyncio.Future]] = []

    async def check_availability(self, **kwargs):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((kwargs, future))
        return await future


async def settle(seconds: float = DELAY * 3) -> None:
    await asyncio.sleep(seconds)


def fill(controller, start=None):
    controller.update(
        start_time=start or at(10),
        provider_id="dr-silva",
        procedure_ids=["cleaning"],
    )


class TestDebounce:

    @pytest.fixture
    def service(self):
        return ControlledService()

    @pytest_asyncio.fixture
    async def controller(self, service):
        ctl = DebouncedValidationController(service, delay=DELAY)
        yield ctl
        ctl.close()
        await ctl.wait_idle()

    @pytest.mark.asyncio
    async def test_edits_collapse_into_one_call(self, controller, service):
        """Three edits inside the quiet period issue one check with the last values."""
        fill(controller, at(10))
        controller.update(start_time=at(10, 30))
        controller.update(start_time=at(11))

        await settle()

        assert len(service.calls) == 1
        kwargs, _ = service.calls[0]
        assert kwargs["start_time"] == at(11)
        assert controller.latest_sequence == 1
        assert controller.state.status == ValidationStatus.PENDING

    @pytest.mark.asyncio
    async def test_incomplete_inputs_skip_check(self, controller, service):
        controller.update(start_time=at(10), procedure_ids=["cleaning"])

        await settle()

        assert service.calls == []
        assert controller.state == ValidationState()

    @pytest.mark.asyncio
    async def test_zero_provider_counts_as_missing(self, controller, service):
        controller.update(start_time=at(10), provider_id="0", procedure_ids=["cleaning"])

        await settle()

        assert service.calls == []

    @pytest.mark.asyncio
    async def test_unchanged_value_does_not_restart(self, controller, service):
        fill(controller)
        await settle()
        service.calls[0][1].set_result(ConflictResult.free())
        await controller.wait_idle()

        controller.update(start_time=at(10))
        await settle()

        assert len(service.calls) == 1
        assert controller.state.status == ValidationStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_exclude_booking_forwarded(self, service):
        controller = DebouncedValidationController(service, delay=DELAY, exclude_booking_id="b-7")
        fill(controller)

        await settle()

        assert service.calls[0][0]["exclude_booking_id"] == "b-7"
        controller.close()
        await controller.wait_idle()


class TestResults:

    @pytest.fixture
    def service(self):
        return ControlledService()

    @pytest_asyncio.fixture
    async def controller(self, service):
        ctl = DebouncedValidationController(service, delay=DELAY)
        yield ctl
        ctl.close()
        await ctl.wait_idle()

    @pytest.mark.asyncio
    async def test_available(self, controller, service):
        fill(controller)
        await settle()

        service.calls[0][1].set_result(ConflictResult.free())
        await controller.wait_idle()

        assert controller.state.status == ValidationStatus.AVAILABLE
        assert controller.state.can_submit is True

    @pytest.mark.asyncio
    async def test_conflict_blocks_submit(self, controller, service):
        fill(controller)
        await settle()

        service.calls[0][1].set_result(
            ConflictResult(has_conflict=True, message="Time conflict", conflicting_booking_id="b-1")
        )
        await controller.wait_idle()

        state = controller.state
        assert state.status == ValidationStatus.CONFLICT
        assert state.message == "Time conflict"
        assert state.conflicting_booking_id == "b-1"
        assert state.can_submit is False

    @pytest.mark.asyncio
    async def test_transient_failure_blocks_submit(self, controller, service):
        fill(controller)
        await settle()

        service.calls[0][1].set_exception(TransientIOError())
        await controller.wait_idle()

        assert controller.state.status == ValidationStatus.ERROR
        assert controller.state.message == TRANSIENT_MESSAGE
        assert controller.state.can_submit is False

    @pytest.mark.asyncio
    async def test_on_change_sequence(self, service):
        seen = []
        controller = DebouncedValidationController(service, delay=DELAY, on_change=seen.append)
        fill(controller)
        await settle()

        service.calls[0][1].set_result(ConflictResult.free())
        await controller.wait_idle()

        assert [s.status for s in seen] == [ValidationStatus.PENDING, ValidationStatus.AVAILABLE]
        controller.close()


class TestStaleResults:

    @pytest.fixture
    def service(self):
        return ControlledService()

    @pytest_asyncio.fixture
    async def controller(self, service):
        ctl = DebouncedValidationController(service, delay=DELAY)
        yield ctl
        ctl.close()
        await ctl.wait_idle()

    @pytest.mark.asyncio
    async def test_older_result_discarded(self, controller, service):
        """Check #1 resolves after check #2; only #2 is shown."""
        fill(controller, at(10))
        await settle()
        controller.update(start_time=at(11))
        await settle()
        assert len(service.calls) == 2

        service.calls[1][1].set_result(ConflictResult.free())
        await settle(0.001)
        service.calls[0][1].set_result(
            ConflictResult(has_conflict=True, message="Time conflict", conflicting_booking_id="b-1")
        )
        await controller.wait_idle()

        assert controller.state.status == ValidationStatus.AVAILABLE
        assert controller.state.sequence == 2

    @pytest.mark.asyncio
    async def test_result_after_edit_discarded(self, controller, service):
        """An edit made while a check is in flight voids that check."""
        fill(controller)
        await settle()

        controller.update(provider_id=None)
        service.calls[0][1].set_result(
            ConflictResult(has_conflict=True, message="Time conflict", conflicting_booking_id="b-1")
        )
        await controller.wait_idle()

        assert controller.state == ValidationState()
        assert len(service.calls) == 1

    @pytest.mark.asyncio
    async def test_close_suppresses_in_flight(self, service):
        seen = []
        controller = DebouncedValidationController(service, delay=DELAY, on_change=seen.append)
        fill(controller)
        await settle()
        changes_before_close = len(seen)

        controller.close()
        await controller.wait_idle()

        assert service.calls[0][1].cancelled()
        assert len(seen) == changes_before_close
        assert controller.is_closed

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self, service):
        controller = DebouncedValidationController(service, delay=DELAY)
        fill(controller)

        controller.close()
        await settle()

        assert service.calls == []

    @pytest.mark.asyncio
    async def test_updates_after_close_ignored(self, service):
        controller = DebouncedValidationController(service, delay=DELAY)
        controller.close()

        fill(controller)
        await settle()

        assert service.calls == []
        assert controller.start_time is None
