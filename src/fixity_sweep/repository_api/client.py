"""HTTP client for the digital repository's object and checksum endpoints.

Expected JSON contract (relative to ``base_url``):

- ``GET objects?offset=<n>&limit=<m>`` -> ``{"total": int, "objects": [str, ...]}``
- ``GET objects/<id>/datastreams`` -> ``{"datastreams": [{"dsid": str, ...}, ...]}``
- ``GET objects/<id>/datastreams/<dsid>?validateChecksum=true`` ->
  ``{"dsChecksumValid": bool, "dsChecksumType": str, "dsChecksum": str}``
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from fixity_sweep import __version__
from fixity_sweep.errors import RepositoryError
from fixity_sweep.sweep.models import DatastreamCheck

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_PAGE_SIZE = 500
DISABLED_CHECKSUM_TYPE = "DISABLED"
DEFAULT_USER_AGENT = f"fixity-sweep/{__version__}"


class RepositoryClient:
    """Thin wrapper over ``httpx.Client`` with retries, timeout, and JSON decoding."""

    def __init__(  # noqa: PLR0913
        self,
        base_url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        page_size: int = DEFAULT_PAGE_SIZE,
        username: str | None = None,
        password: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError(f"page_size must be > 0, got {page_size}.")
        self.page_size = page_size
        auth = httpx.BasicAuth(username, password or "") if username else None
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"},
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            auth=auth,
            follow_redirects=True,
        )

    def get_total_object_count(self) -> int:
        payload = self._get_json("objects", params={"offset": 0, "limit": 0})
        total = payload.get("total")
        if isinstance(total, bool) or not isinstance(total, int) or total < 0:
            raise RepositoryError(
                f"Repository returned invalid object total: {total!r}",
                code="invalid_response",
            )
        return total

    def list_object_identifiers(self, *, offset: int, limit: int) -> list[str]:
        """Return one page of object identifiers in repository order."""

        if limit <= 0:
            return []
        identifiers: list[str] = []
        while len(identifiers) < limit:
            page_limit = min(self.page_size, limit - len(identifiers))
            payload = self._get_json(
                "objects",
                params={"offset": offset + len(identifiers), "limit": page_limit},
            )
            objects = payload.get("objects")
            if not isinstance(objects, list):
                raise RepositoryError(
                    "Repository object listing is missing the 'objects' array.",
                    code="invalid_response",
                )
            identifiers.extend(str(object_id) for object_id in objects)
            if len(objects) < page_limit:
                break
        return identifiers

    def list_all_object_identifiers(self) -> list[str]:
        identifiers: list[str] = []
        while True:
            page = self.list_object_identifiers(offset=len(identifiers), limit=self.page_size)
            identifiers.extend(page)
            if len(page) < self.page_size:
                return identifiers

    def check_object(self, object_id: str) -> list[DatastreamCheck]:
        """Ask the repository to validate every checksummed datastream of an object."""

        object_path = f"objects/{quote(object_id, safe='')}"
        listing = self._get_json(f"{object_path}/datastreams")
        datastreams = listing.get("datastreams")
        if not isinstance(datastreams, list):
            raise RepositoryError(
                f"Datastream listing for {object_id} is missing the 'datastreams' array.",
                code="invalid_response",
            )

        checks: list[DatastreamCheck] = []
        for entry in datastreams:
            dsid = entry.get("dsid") if isinstance(entry, dict) else None
            if not dsid:
                continue
            profile = self._get_json(
                f"{object_path}/datastreams/{quote(str(dsid), safe='')}",
                params={"validateChecksum": "true"},
            )
            checksum_type = profile.get("dsChecksumType")
            if checksum_type == DISABLED_CHECKSUM_TYPE:
                continue
            checks.append(
                DatastreamCheck(
                    datastream_id=str(dsid),
                    checksum_type=checksum_type,
                    checksum=profile.get("dsChecksum"),
                    valid=_parse_valid_flag(profile.get("dsChecksumValid")),
                ),
            )
        return checks

    def validate_checksum(self, object_id: str) -> bool:
        return all(check.valid for check in self.check_object(object_id))

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RepositoryClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _get_json(self, path: str, *, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout requesting %s", path)
            raise RepositoryError(f"Timeout requesting {path}", code="timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error requesting %s: %s", path, exc)
            raise RepositoryError(f"HTTP error requesting {path}: {exc}") from exc

        if not response.is_success:
            raise RepositoryError(
                f"Repository responded HTTP {response.status_code} for {path}",
                code="http_status",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RepositoryError(
                f"Repository returned non-JSON body for {path}",
                code="invalid_response",
            ) from exc
        if not isinstance(payload, dict):
            raise RepositoryError(
                f"Repository returned unexpected JSON for {path}",
                code="invalid_response",
            )
        return payload


def _parse_valid_flag(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False
