"""Exclusive access to the tape drive for jobs and operator actions."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass(slots=True)
class DeviceSlotControl:
    """Pause/stop switches for one consumer of the device slot."""

    name: str
    pause_event: asyncio.Event = field(default_factory=asyncio.Event)
    terminate_event: asyncio.Event = field(default_factory=asyncio.Event)
    slot_acquired: bool = False

    def __post_init__(self) -> None:
        self.pause_event.set()

    @property
    def paused(self) -> bool:
        return not self.pause_event.is_set()


class DeviceSlotQueue:
    """The one drive slot, handed to consumers in arrival order.

    A paused consumer waits without queueing for the slot; a terminated one
    gets ``CancelledError`` whether it is paused or already waiting.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._holder: str | None = None

    @property
    def holder(self) -> str | None:
        """Name of the consumer currently holding the slot."""

        return self._holder

    async def wait_until_active(self, control: DeviceSlotControl) -> None:
        """Block until the consumer is resumed, not terminated, and holds the slot."""

        while not control.slot_acquired:
            if control.terminate_event.is_set():
                raise asyncio.CancelledError
            if control.paused:
                await _first_set(control.pause_event, control.terminate_event)
                continue
            if not await self._acquire_unless_terminated(control):
                continue
            if control.terminate_event.is_set() or control.paused:
                self._lock.release()
                continue
            control.slot_acquired = True
            self._holder = control.name

    @asynccontextmanager
    async def hold(self, control: DeviceSlotControl) -> AsyncIterator[None]:
        """Hold the slot for the duration of the block."""

        await self.wait_until_active(control)
        try:
            yield
        finally:
            self.release(control)

    def release(self, control: DeviceSlotControl) -> None:
        if not control.slot_acquired:
            return
        control.slot_acquired = False
        self._holder = None
        self._lock.release()

    async def _acquire_unless_terminated(self, control: DeviceSlotControl) -> bool:
        acquire = asyncio.ensure_future(self._lock.acquire())
        terminated = asyncio.ensure_future(control.terminate_event.wait())
        acquired = False
        try:
            await asyncio.wait({acquire, terminated}, return_when=asyncio.FIRST_COMPLETED)
            acquired = acquire.done() and not acquire.cancelled()
        finally:
            terminated.cancel()
            if not acquired:
                acquire.cancel()
                if acquire.done() and not acquire.cancelled():
                    self._lock.release()
        return acquired


async def _first_set(*events: asyncio.Event) -> None:
    waiters = [asyncio.ensure_future(event.wait()) for event in events]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()


__all__ = ["DeviceSlotControl", "DeviceSlotQueue"]
