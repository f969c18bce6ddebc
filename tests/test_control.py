"""Tests for the control panel state machine."""

import asyncio

import pytest

from conftest import FakeGateway, make_state
from ensemble_sync.client.control import ControlStatus, PresentationController
from ensemble_sync.errors import StateValidationError, TransportError, UnexpectedServerError


async def ready(gateway: FakeGateway) -> PresentationController:
    controller = PresentationController(gateway, arity=3)
    await controller.initialize()
    return controller


class TestInitialize:
    @pytest.mark.asyncio
    async def test_loads_live_state(self):
        gateway = FakeGateway(make_state(["a", "b", "c"], ["d", "e", "f"], index=1))

        controller = await ready(gateway)

        assert controller.status is ControlStatus.IDLE
        assert controller.current_slide_index == 1
        assert controller.current_slide.images == ["d", "e", "f"]
        assert controller.next_slide_preview is None

    @pytest.mark.asyncio
    async def test_missing_state_is_a_cold_start(self):
        controller = await ready(FakeGateway())

        assert controller.status is ControlStatus.IDLE
        assert controller.error is None
        assert controller.slides == []
        assert controller.current_slide is None

    @pytest.mark.asyncio
    async def test_failure_enters_error_and_retry_recovers(self):
        gateway = FakeGateway(make_state(["a", "b", "c"]))
        gateway.fail_with = TransportError()

        controller = await ready(gateway)
        assert controller.status is ControlStatus.ERROR
        assert controller.error == "Connection to server lost"

        gateway.fail_with = None
        assert await controller.retry() is True
        assert controller.status is ControlStatus.IDLE
        assert controller.error is None
        assert len(controller.slides) == 1

    @pytest.mark.asyncio
    async def test_status_changes_are_reported(self):
        seen = []
        controller = PresentationController(
            FakeGateway(make_state()), arity=3, on_change=lambda c: seen.append(c.status)
        )

        await controller.initialize()

        assert seen == [ControlStatus.LOADING, ControlStatus.IDLE]


class TestMutations:
    @pytest.mark.asyncio
    async def test_add_slide_writes_full_state(self):
        gateway = FakeGateway(make_state(["a", "b", "c"]))
        controller = await ready(gateway)

        assert await controller.add_slide() is True

        assert gateway.writes == [make_state(["a", "b", "c"], ["", "", ""], index=0)]
        assert controller.state == gateway.writes[0]
        assert controller.status is ControlStatus.IDLE

    @pytest.mark.asyncio
    async def test_add_slide_to_empty_deck(self):
        gateway = FakeGateway()
        controller = await ready(gateway)

        await controller.add_slide()

        assert gateway.stored == make_state(["", "", ""], index=0)

    @pytest.mark.asyncio
    async def test_next_slide_at_end_sends_nothing(self):
        gateway = FakeGateway(make_state(["a", "b", "c"], ["d", "e", "f"], index=1))
        controller = await ready(gateway)

        assert await controller.next_slide() is False

        assert gateway.writes == []
        assert controller.status is ControlStatus.IDLE

    @pytest.mark.asyncio
    async def test_navigation(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""], ["c", "", ""]))
        controller = await ready(gateway)

        await controller.next_slide()
        assert controller.next_slide_preview.images[0] == "c"
        await controller.go_to_slide(2)
        await controller.prev_slide()

        assert [w.current_slide_index for w in gateway.writes] == [1, 2, 1]
        assert await controller.go_to_slide(3) is False

    @pytest.mark.asyncio
    async def test_delete_current_last_slide_clamps(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""], ["c", "", ""], index=2))
        controller = await ready(gateway)

        await controller.delete_slide(2)

        assert controller.current_slide_index == 1
        assert len(gateway.stored.slides) == 2

    @pytest.mark.asyncio
    async def test_delete_before_current_keeps_slide_on_screen(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""], ["c", "", ""], index=2))
        controller = await ready(gateway)

        await controller.delete_slide(0)

        assert controller.current_slide.images[0] == "c"
        assert controller.current_slide_index == 1

    @pytest.mark.asyncio
    async def test_update_and_reorder(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""], index=0))
        controller = await ready(gateway)

        await controller.update_slide_images(1, ["x", "y", "z"])
        await controller.reorder_slides(0, 1)

        assert [s.images[0] for s in controller.slides] == ["x", "a"]
        assert controller.current_slide_index == 1

    @pytest.mark.asyncio
    async def test_failed_write_leaves_state_unchanged(self):
        initial = make_state(["a", "b", "c"], ["d", "e", "f"])
        gateway = FakeGateway(initial)
        controller = await ready(gateway)
        gateway.fail_with = UnexpectedServerError("Failed to update presentation state", 500)

        assert await controller.next_slide() is False

        assert controller.state == initial
        assert controller.status is ControlStatus.ERROR
        assert controller.error == "Failed to update presentation state"
        assert controller.is_updating is False

    @pytest.mark.asyncio
    async def test_non_string_images_are_rejected_without_a_write(self):
        initial = make_state(["a", "b", "c"])
        gateway = FakeGateway(initial)
        controller = await ready(gateway)

        assert await controller.update_slide_images(0, [1, 2, 3]) is False

        assert gateway.writes == []
        assert controller.state == initial
        assert controller.status is ControlStatus.ERROR
        assert controller.error == "Failed to update slide images"
        assert controller.is_updating is False

    @pytest.mark.asyncio
    async def test_error_is_cleared_by_next_successful_action(self):
        gateway = FakeGateway(make_state(["a", "b", "c"], ["d", "e", "f"]))
        controller = await ready(gateway)
        gateway.fail_with = TransportError()
        await controller.next_slide()

        gateway.fail_with = None
        assert await controller.next_slide() is True
        assert controller.status is ControlStatus.IDLE
        assert controller.error is None


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_actions_during_a_write_are_dropped(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""], ["c", "", ""]))
        controller = await ready(gateway)
        gateway.gate = asyncio.Event()

        first = asyncio.create_task(controller.next_slide())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert controller.is_updating
        assert controller.status is ControlStatus.UPDATING

        # Issued while the first write is in flight
        dropped = await asyncio.gather(controller.next_slide(), controller.add_slide())
        gateway.gate.set()

        assert await first is True
        assert dropped == [False, False]
        assert gateway.max_in_flight == 1
        assert len(gateway.writes) == 1
        assert controller.current_slide_index == 1

    @pytest.mark.asyncio
    async def test_burst_of_clicks_sends_one_write(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""], ["c", "", ""]))
        controller = await ready(gateway)

        results = await asyncio.gather(*(controller.next_slide() for _ in range(5)))

        assert results.count(True) == 1
        assert gateway.max_in_flight == 1
        assert controller.current_slide_index == 1

    @pytest.mark.asyncio
    async def test_actions_are_blocked_while_loading(self):
        gateway = FakeGateway(make_state(["a", "", ""], ["b", "", ""]))
        controller = PresentationController(gateway, arity=3)

        gateway.read_gate = asyncio.Event()

        init = asyncio.create_task(controller.initialize())
        await asyncio.sleep(0)
        assert controller.is_loading
        assert controller.status is ControlStatus.LOADING
        assert await controller.add_slide() is False
        assert await controller.initialize() is False

        gateway.read_gate.set()
        assert await init is True
        assert gateway.writes == []
        assert gateway.reads == 1


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_save_list_load_delete(self):
        gateway = FakeGateway(make_state(["a", "b", "c"]))
        controller = await ready(gateway)

        assert await controller.save_snapshot("kickoff") is True
        assert [s.id for s in await controller.list_snapshots()] == ["kickoff"]

        await controller.add_slide()
        assert len(controller.slides) == 2

        assert await controller.load_snapshot("kickoff") is True
        assert controller.state == make_state(["a", "b", "c"])
        assert gateway.stored == make_state(["a", "b", "c"])

        assert await controller.delete_snapshot("kickoff") is True
        assert await controller.list_snapshots() == []

    @pytest.mark.asyncio
    async def test_load_missing_snapshot_sets_error(self):
        initial = make_state(["a", "b", "c"])
        controller = await ready(FakeGateway(initial))

        assert await controller.load_snapshot("ghost") is False

        assert controller.status is ControlStatus.ERROR
        assert controller.error == "Presentation not found"
        assert controller.state == initial

    @pytest.mark.asyncio
    async def test_empty_snapshot_id_is_ignored(self):
        gateway = FakeGateway(make_state())
        controller = await ready(gateway)

        assert await controller.save_snapshot("") is False
        assert gateway.snapshots == {}


class TestAgainstServer:
    @pytest.mark.asyncio
    async def test_rejected_write_keeps_local_state(self, sync_client):
        await sync_client.write_state(make_state(["a", "b", "c"]))
        controller = await ready(sync_client)

        assert await controller.update_slide_images(0, ["x", "y"]) is False

        assert controller.status is ControlStatus.ERROR
        assert controller.error == "Each slide must have exactly 3 images"
        assert controller.state == make_state(["a", "b", "c"])
        assert await sync_client.read_state() == make_state(["a", "b", "c"])

    @pytest.mark.asyncio
    async def test_two_controllers_last_write_wins(self, sync_client):
        await sync_client.write_state(make_state(["a", "", ""], ["b", "", ""], ["c", "", ""]))
        first = await ready(sync_client)
        second = await ready(sync_client)

        await first.next_slide()
        await second.add_slide()

        # The second controller never saw the first one's navigation
        live = await sync_client.read_state()
        assert live.current_slide_index == 0
        assert len(live.slides) == 4

        await first.initialize()
        assert first.state == live

    @pytest.mark.asyncio
    async def test_validation_error_from_client_is_not_a_crash(self):
        gateway = FakeGateway(make_state(["a", "b", "c"]))
        controller = await ready(gateway)
        gateway.fail_with = StateValidationError("Each slide must have exactly 3 images")

        assert await controller.add_slide() is False
        assert controller.error == "Each slide must have exactly 3 images"
