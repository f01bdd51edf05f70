from __future__ import annotations

import os
from pathlib import Path

import allure
import httpx
import pytest
from click.testing import CliRunner

from fixity_sweep.main import fixity_sweep
from fixity_sweep.repository_api import RepositoryClient
from fixity_sweep.sweep import controllers

from conftest import REPOSITORY_URL, FakeRepositoryApi

pytestmark = [
    allure.epic("Checksum Sweep"),
    allure.feature("CLI"),
]


@pytest.fixture()
def cli_api(monkeypatch) -> FakeRepositoryApi:
    for name in list(os.environ):
        if name.startswith("FIXITY_SWEEP_"):
            monkeypatch.delenv(name, raising=False)
    api = FakeRepositoryApi()

    def _offline_client(base_url: str, **kwargs) -> RepositoryClient:
        return RepositoryClient(base_url, **kwargs, transport=httpx.MockTransport(api.handler))

    monkeypatch.setattr(controllers, "RepositoryClient", _offline_client)
    return api


def _invoke(*args: str):
    return CliRunner().invoke(fixity_sweep, list(args))


def test_tick_reports_plan_and_drain(tmp_path: Path, cli_api: FakeRepositoryApi) -> None:
    for index in range(3):
        cli_api.add_object(f"pid:{index}")
    cli_api.add_object("pid:bad", valid=False)
    db_path = str(tmp_path / "sweep.db")

    result = _invoke(
        "tick",
        "--db-path",
        db_path,
        "--repository-url",
        REPOSITORY_URL,
        "--fixed-limit",
        "10",
    )

    assert result.exit_code == 0, result.output
    assert "mode=fixed total=4 limit=10 enqueued=4 recovered=0" in result.output
    assert "Drain summary: succeeded=3 failed=1 remaining=1" in result.output

    runs = _invoke("runs", "--db-path", db_path)
    assert runs.exit_code == 0
    assert "Tick runs: 1" in runs.output
    assert "status=succeeded mode=fixed limit=10 enqueued=4" in runs.output

    found = _invoke("mismatches", "--db-path", db_path)
    assert found.exit_code == 0
    assert "Mismatches: 1" in found.output
    assert "pid:bad datastream=OBJ occurrences=1" in found.output


def test_tick_paced_mode_from_options(tmp_path: Path, cli_api: FakeRepositoryApi) -> None:
    for index in range(10):
        cli_api.add_object(f"pid:{index}")

    result = _invoke(
        "tick",
        "--db-path",
        str(tmp_path / "sweep.db"),
        "--repository-url",
        REPOSITORY_URL,
        "--horizon-days",
        "30",
        "--tick-hours",
        "24",
    )

    assert result.exit_code == 0, result.output
    assert "mode=paced total=10 limit=1 enqueued=1" in result.output


def test_half_paced_configuration_is_rejected_before_db_is_touched(
    tmp_path: Path,
    cli_api: FakeRepositoryApi,
) -> None:
    db_path = tmp_path / "sweep.db"

    result = _invoke(
        "tick",
        "--db-path",
        str(db_path),
        "--repository-url",
        REPOSITORY_URL,
        "--horizon-days",
        "30",
    )

    assert result.exit_code != 0
    assert "Configuration error" in result.output
    assert not db_path.exists()
    assert cli_api.requests == []


def test_missing_repository_url_is_a_configuration_error(
    tmp_path: Path,
    cli_api: FakeRepositoryApi,
) -> None:
    result = _invoke("tick", "--db-path", str(tmp_path / "sweep.db"))

    assert result.exit_code != 0
    assert "Repository base URL is required" in result.output


def test_repository_outage_fails_tick_with_message(
    tmp_path: Path,
    cli_api: FakeRepositoryApi,
    monkeypatch,
) -> None:
    def _down(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    monkeypatch.setattr(cli_api, "handler", _down)
    db_path = str(tmp_path / "sweep.db")

    result = _invoke("tick", "--db-path", db_path, "--repository-url", REPOSITORY_URL)

    assert result.exit_code != 0
    assert "502" in result.output
    runs = _invoke("runs", "--db-path", db_path)
    assert "status=failed" in runs.output


def test_plan_does_not_change_queue(tmp_path: Path, cli_api: FakeRepositoryApi) -> None:
    for index in range(4):
        cli_api.add_object(f"pid:{index}")
    db_path = str(tmp_path / "sweep.db")

    result = _invoke(
        "plan",
        "--db-path",
        db_path,
        "--repository-url",
        REPOSITORY_URL,
        "--fixed-limit",
        "3",
    )

    assert result.exit_code == 0, result.output
    assert "Mode: fixed" in result.output
    assert "Enqueue limit: 3" in result.output
    listing = _invoke("queue", "list", "--db-path", db_path)
    assert "Queue depth: 0" in listing.output


def test_queue_operator_commands(tmp_path: Path, cli_api: FakeRepositoryApi) -> None:
    db_path = str(tmp_path / "sweep.db")

    enqueued = _invoke("queue", "enqueue", "--db-path", db_path, "--object-id", "pid:7")
    again = _invoke("queue", "enqueue", "--db-path", db_path, "--object-id", "pid:7")
    listing = _invoke("queue", "list", "--db-path", db_path, "--status", "queued")
    inspected = _invoke("queue", "inspect", "--db-path", db_path, "--object-id", "pid:7")
    removed = _invoke("queue", "remove", "--db-path", db_path, "--object-id", "pid:7")
    missing = _invoke("queue", "remove", "--db-path", db_path, "--object-id", "pid:7")

    assert "Object enqueued: pid:7" in enqueued.output
    assert "Object already queued: pid:7" in again.output
    assert "Queue depth: 1" in listing.output
    assert "pid:7 status=queued" in listing.output
    assert "Status: queued" in inspected.output
    assert "Events: 1" in inspected.output
    assert "Object removed from queue: pid:7" in removed.output
    assert "Object not queued: pid:7" in missing.output

    history = _invoke("queue", "inspect", "--db-path", db_path, "--object-id", "pid:7")
    assert "Status: not queued" in history.output
    assert "removed" in history.output
    unknown = _invoke("queue", "inspect", "--db-path", db_path, "--object-id", "pid:404")
    assert "Object not found: pid:404" in unknown.output


def test_drain_command_validates_manually_queued_item(
    tmp_path: Path,
    cli_api: FakeRepositoryApi,
) -> None:
    cli_api.add_object("pid:1")
    db_path = str(tmp_path / "sweep.db")
    _invoke("queue", "enqueue", "--db-path", db_path, "--object-id", "pid:1")

    result = _invoke("drain", "--db-path", db_path, "--repository-url", REPOSITORY_URL)

    assert result.exit_code == 0, result.output
    assert "Drain summary: succeeded=1 failed=0 remaining=0" in result.output
