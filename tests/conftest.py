"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import unquote

import httpx
import pytest

from fixity_sweep.repository_api import RepositoryClient
from fixity_sweep.sweep.repository import SweepRepository

REPOSITORY_URL = "https://repo.example.org/api"


@dataclass
class FakeRepositoryApi:
    """In-process stand-in for the repository REST API."""

    objects: list[str] = field(default_factory=list)
    datastreams: dict[str, list[dict[str, object]]] = field(default_factory=dict)
    unreachable: set[str] = field(default_factory=set)
    requests: list[httpx.Request] = field(default_factory=list)

    def add_object(self, object_id: str, *, valid: bool = True, dsid: str = "OBJ") -> None:
        if object_id not in self.objects:
            self.objects.append(object_id)
        self.datastreams.setdefault(object_id, []).append(
            {
                "dsid": dsid,
                "dsChecksumType": "SHA-256",
                "dsChecksum": f"sha-{object_id}-{dsid}",
                "dsChecksumValid": valid,
            },
        )

    def set_valid(self, object_id: str, *, valid: bool) -> None:
        for profile in self.datastreams[object_id]:
            profile["dsChecksumValid"] = valid

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        raw_path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        parts = [unquote(part) for part in raw_path.split("/") if part][1:]
        if parts == ["objects"]:
            offset = int(request.url.params.get("offset", "0"))
            limit = int(request.url.params.get("limit", "0"))
            return httpx.Response(
                200,
                json={"total": len(self.objects), "objects": self.objects[offset : offset + limit]},
            )
        object_id = parts[1]
        if object_id in self.unreachable:
            return httpx.Response(503, json={"error": "unavailable"})
        if object_id not in self.datastreams:
            return httpx.Response(404, json={"error": "not found"})
        if len(parts) == 3:
            return httpx.Response(
                200,
                json={"datastreams": [{"dsid": p["dsid"]} for p in self.datastreams[object_id]]},
            )
        dsid = parts[3]
        for profile in self.datastreams[object_id]:
            if profile["dsid"] == dsid:
                return httpx.Response(200, json=profile)
        return httpx.Response(404, json={"error": "no datastream"})


@pytest.fixture()
def fake_api() -> FakeRepositoryApi:
    return FakeRepositoryApi()


@pytest.fixture()
def client(fake_api: FakeRepositoryApi):
    api_client = RepositoryClient(
        REPOSITORY_URL,
        page_size=2,
        transport=httpx.MockTransport(fake_api.handler),
    )
    yield api_client
    api_client.close()


@pytest.fixture()
def repository(tmp_path: Path):
    repo = SweepRepository(tmp_path / "sweep.db")
    repo.init_schema()
    yield repo
    repo.close()
