from __future__ import annotations

import asyncio

import pytest

from tape_archive_worker.infrastructure.transfers.runtime import (
    DeviceSlotControl,
    DeviceSlotQueue,
)


def test_slot_queue_serializes_consumers_in_arrival_order() -> None:
    async def scenario() -> None:
        queue = DeviceSlotQueue()
        first = DeviceSlotControl(name="queue:file-processing")
        second = DeviceSlotControl(name="operator:switch-tape:TAPE02")
        third = DeviceSlotControl(name="queue:secure-copy")

        await queue.wait_until_active(first)
        assert first.slot_acquired is True
        assert queue.holder == "queue:file-processing"

        second_waiter = asyncio.create_task(queue.wait_until_active(second))
        await asyncio.sleep(0.02)
        third_waiter = asyncio.create_task(queue.wait_until_active(third))
        await asyncio.sleep(0.02)
        assert second.slot_acquired is False
        assert third.slot_acquired is False

        queue.release(first)
        await asyncio.wait_for(second_waiter, timeout=1.0)
        assert second.slot_acquired is True
        assert third.slot_acquired is False
        assert queue.holder == "operator:switch-tape:TAPE02"

        queue.release(second)
        await asyncio.wait_for(third_waiter, timeout=1.0)
        assert queue.holder == "queue:secure-copy"

        queue.release(third)
        assert queue.holder is None

    asyncio.run(scenario())


def test_slot_queue_cancels_waiting_consumer_on_terminate() -> None:
    async def scenario() -> None:
        queue = DeviceSlotQueue()
        first = DeviceSlotControl(name="first")
        second = DeviceSlotControl(name="second")

        await queue.wait_until_active(first)

        second_waiter = asyncio.create_task(queue.wait_until_active(second))
        await asyncio.sleep(0.02)
        assert not second_waiter.done()

        second.terminate_event.set()
        with pytest.raises(asyncio.CancelledError):
            await second_waiter
        assert second.slot_acquired is False

        queue.release(first)
        third = DeviceSlotControl(name="third")
        await asyncio.wait_for(queue.wait_until_active(third), timeout=1.0)
        assert queue.holder == "third"

    asyncio.run(scenario())


def test_paused_consumer_waits_until_resumed() -> None:
    async def scenario() -> None:
        queue = DeviceSlotQueue()
        control = DeviceSlotControl(name="queue:secure-copy")
        control.pause_event.clear()
        assert control.paused is True

        entered = asyncio.Event()

        async def consumer() -> None:
            async with queue.hold(control):
                entered.set()

        task = asyncio.create_task(consumer())
        await asyncio.sleep(0.02)
        assert not entered.is_set()
        assert queue.holder is None

        control.pause_event.set()
        await asyncio.wait_for(task, timeout=1.0)
        assert entered.is_set()
        assert control.slot_acquired is False
        assert queue.holder is None

    asyncio.run(scenario())


def test_releasing_an_unheld_control_is_a_no_op() -> None:
    async def scenario() -> None:
        queue = DeviceSlotQueue()
        holder = DeviceSlotControl(name="holder")
        bystander = DeviceSlotControl(name="bystander")

        await queue.wait_until_active(holder)
        queue.release(bystander)

        assert queue.holder == "holder"
        queue.release(holder)

    asyncio.run(scenario())
