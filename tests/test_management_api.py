from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tape_simulator import SimulatedTapeLibrary, TapeUsageFigures, build_controller

from tape_archive_worker.api import api_router
from tape_archive_worker.api.dependencies import get_settings, get_tape_worker
from tape_archive_worker.bootstrap import TapeArchiveWorker, build_tape_worker
from tape_archive_worker.config import Settings
from tape_archive_worker.domain.records import TapeRecord
from tape_archive_worker.main import create_app


class Environment:
    def __init__(self, tmp_path: Path) -> None:
        self.library = SimulatedTapeLibrary(
            mount_point=str(tmp_path / "ltfs"),
            slots={1: "TAPE01", 2: "TAPE02", 3: None, 4: None},
            import_export_slots=frozenset({4}),
            usage={"TAPE02": TapeUsageFigures("2.3T", "300G", "2.0T", 13)},
        )
        settings = Settings(
            mount_point=str(tmp_path / "ltfs"),
            cache_root=str(tmp_path / "cache"),
            cache_sweeper_enabled=False,
        )
        self.worker = build_tape_worker(
            settings,
            runner=self.library,
            device=build_controller(self.library),
        )
        asyncio.run(self.worker.repository.add_tape(TapeRecord("TAPE02", "physics")))

    def app(self) -> FastAPI:
        app = FastAPI()
        app.include_router(api_router)
        app.dependency_overrides[get_tape_worker] = self._worker
        return app

    def _worker(self) -> TapeArchiveWorker:
        return self.worker


@pytest.fixture
def environment(tmp_path: Path) -> Environment:
    return Environment(tmp_path)


def test_healthz(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_device_reports_state_and_inventory(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        response = client.get("/management/device")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == {
        "phase": "unloaded",
        "mountedTapeId": None,
        "mountPointMounted": False,
        "driveLoaded": False,
    }
    assert body["slotHolder"] is None
    assert [slot["volumeTag"] for slot in body["slots"]] == ["TAPE01", "TAPE02", None, None]
    assert [slot["importExport"] for slot in body["slots"]] == [False, False, False, True]


def test_switch_tape_then_refresh_usage(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        switched = client.post("/management/device/tape", json={"tapeId": "TAPE02"})
        refreshed = client.post("/management/tapes/TAPE02/refresh-usage")
        device = client.get("/management/device")

    assert switched.status_code == 200
    assert switched.json() == {
        "phase": "mounted",
        "mountedTapeId": "TAPE02",
        "mountPointMounted": True,
        "driveLoaded": True,
    }
    assert refreshed.status_code == 200
    assert refreshed.json()["refreshed"] is True
    assert refreshed.json()["availableSize"] == "2.0T"
    assert refreshed.json()["usagePercentage"] == 13.0
    assert device.json()["slots"][1]["full"] is False

    tape = asyncio.run(environment.worker.repository.get_tape("TAPE02"))
    assert tape is not None
    assert tape.available_size == "2.0T"


def test_refresh_usage_of_unmounted_tape_is_skipped(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        response = client.post("/management/tapes/TAPE02/refresh-usage")

    assert response.status_code == 200
    assert response.json() == {
        "tapeId": "TAPE02",
        "refreshed": False,
        "filesystem": None,
        "totalSize": None,
        "usedSize": None,
        "availableSize": None,
        "usagePercentage": None,
    }


def test_refresh_usage_of_unknown_tape_returns_404(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        response = client.post("/management/tapes/TAPE77/refresh-usage")

    assert response.status_code == 404


def test_switch_to_tape_missing_from_library_returns_503(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        response = client.post("/management/device/tape", json={"tapeId": "TAPE99"})

    assert response.status_code == 503
    assert "TAPE99" in response.json()["detail"]


def test_switch_tape_requires_tape_id(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        response = client.post("/management/device/tape", json={"tapeId": ""})

    assert response.status_code == 422


def test_pause_and_resume_dispatcher(environment: Environment) -> None:
    with TestClient(environment.app()) as client:
        paused = client.post("/management/dispatcher/pause")
        queues = client.get("/management/queues")
        resumed = client.post("/management/dispatcher/resume")

    assert paused.status_code == 200
    assert paused.json()["paused"] is True
    body = queues.json()
    assert body["running"] is False
    assert body["consecutiveFailures"] == {}
    assert [queue["queue"] for queue in body["queues"]] == ["file-processing", "secure-copy"]
    assert body["queues"][0]["counts"] == {
        "queued": 0,
        "active": 0,
        "completed": 0,
        "failed": 0,
    }
    assert resumed.json()["paused"] is False


def test_main_app_serves_health_with_worker_disabled(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("TAPE_WORKER_WORKER_ENABLED", "false")
    monkeypatch.setenv("TAPE_WORKER_CACHE_ROOT", str(tmp_path / "cache"))
    get_settings.cache_clear()
    get_tape_worker.cache_clear()

    try:
        with TestClient(create_app()) as client:
            response = client.get("/healthz")
            queues = client.get("/management/queues")
    finally:
        get_settings.cache_clear()
        get_tape_worker.cache_clear()

    assert response.status_code == 200
    assert queues.json()["running"] is False
