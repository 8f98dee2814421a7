"""Operator routes for inspecting and steering the tape worker."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path

from tape_archive_worker.api.dependencies import get_tape_worker
from tape_archive_worker.bootstrap import TapeArchiveWorker
from tape_archive_worker.domain.errors import (
    HardwareError,
    RecordNotFoundError,
    ValidationError,
)
from tape_archive_worker.domain.jobs import JobQueueName
from tape_archive_worker.domain.monitoring_models import (
    DeviceInfoResponse,
    DeviceStateResponse,
    DispatcherStatusResponse,
    QueueCountsResponse,
    SwitchTapeRequest,
    TapeUsageResponse,
)

router = APIRouter(prefix="/management", tags=["tape worker management"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, RecordNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, HardwareError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected tape worker error")


async def _dispatcher_status(worker: TapeArchiveWorker) -> DispatcherStatusResponse:
    dispatcher = worker.dispatcher
    return DispatcherStatusResponse(
        running=dispatcher.running,
        paused=dispatcher.paused,
        slot_holder=dispatcher.slot_holder,
        consecutive_failures=dispatcher.consecutive_failures(),
        queues=[
            QueueCountsResponse(
                queue=queue_name,
                counts=await worker.job_queue.queue_counts(queue_name),
            )
            for queue_name in JobQueueName
        ],
    )


@router.get("/device", response_model=DeviceInfoResponse, status_code=200)
async def get_device(
    worker: TapeArchiveWorker = Depends(get_tape_worker),
) -> DeviceInfoResponse:
    """Re-read drive state and slot inventory."""

    try:
        state = await worker.device.read_state()
        inventory = await worker.device.read_inventory()
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return DeviceInfoResponse.build(state, inventory, worker.dispatcher.slot_holder)


@router.post("/device/tape", response_model=DeviceStateResponse, status_code=200)
async def switch_tape(
    request: SwitchTapeRequest,
    worker: TapeArchiveWorker = Depends(get_tape_worker),
) -> DeviceStateResponse:
    """Mount a tape once the running job, if any, has finished."""

    try:
        state = await worker.dispatcher.switch_tape(request.tape_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return DeviceStateResponse.from_state(state)


@router.get("/queues", response_model=DispatcherStatusResponse, status_code=200)
async def get_queues(
    worker: TapeArchiveWorker = Depends(get_tape_worker),
) -> DispatcherStatusResponse:
    """Dispatcher state and job counts per queue."""

    try:
        return await _dispatcher_status(worker)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)


@router.post("/dispatcher/pause", response_model=DispatcherStatusResponse, status_code=200)
async def pause_dispatcher(
    worker: TapeArchiveWorker = Depends(get_tape_worker),
) -> DispatcherStatusResponse:
    """Stop claiming jobs; the job in progress runs to completion."""

    worker.dispatcher.pause()
    return await _dispatcher_status(worker)


@router.post("/dispatcher/resume", response_model=DispatcherStatusResponse, status_code=200)
async def resume_dispatcher(
    worker: TapeArchiveWorker = Depends(get_tape_worker),
) -> DispatcherStatusResponse:
    worker.dispatcher.resume()
    return await _dispatcher_status(worker)


@router.post(
    "/tapes/{tape_id}/refresh-usage",
    response_model=TapeUsageResponse,
    status_code=200,
)
async def refresh_tape_usage(
    tape_id: str = Path(...),
    worker: TapeArchiveWorker = Depends(get_tape_worker),
) -> TapeUsageResponse:
    """Re-read free space of a mounted tape and persist it."""

    try:
        if await worker.repository.get_tape(tape_id) is None:
            raise RecordNotFoundError(f"Tape {tape_id} does not exist.")
        usage = await worker.dispatcher.run_exclusive(
            f"operator:refresh-usage:{tape_id}",
            lambda: worker.allocator.refresh_tape_usage(tape_id),
        )
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TapeUsageResponse.build(tape_id, usage)


__all__ = ["router"]
