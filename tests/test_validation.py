from __future__ import annotations

import allure
import pytest

from fixity_sweep.errors import RepositoryError
from fixity_sweep.repository_api import RepositoryClient
from fixity_sweep.sweep.models import WorkItem
from fixity_sweep.sweep.repository import SweepRepository
from fixity_sweep.sweep.validation import ChecksumValidator

from conftest import FakeRepositoryApi

pytestmark = [
    allure.epic("Checksum Sweep"),
    allure.feature("Mismatch Tracking"),
]


def test_validator_records_and_resolves_mismatches(
    fake_api: FakeRepositoryApi,
    client: RepositoryClient,
    repository: SweepRepository,
) -> None:
    fake_api.add_object("pid:1", dsid="OBJ", valid=False)
    fake_api.add_object("pid:1", dsid="MODS", valid=True)
    validate = ChecksumValidator(checker=client, mismatches=repository)

    assert validate(WorkItem("pid:1")) is False
    assert validate(WorkItem("pid:1")) is False
    open_rows = repository.list_mismatches()
    assert [(row.datastream_id, row.occurrences) for row in open_rows] == [("OBJ", 2)]

    fake_api.set_valid("pid:1", valid=True)

    assert validate(WorkItem("pid:1")) is True
    assert repository.list_mismatches() == []
    assert repository.list_mismatches(include_resolved=True)[0].resolved_at is not None


def test_validator_propagates_repository_errors(
    fake_api: FakeRepositoryApi,
    client: RepositoryClient,
    repository: SweepRepository,
) -> None:
    fake_api.add_object("pid:1")
    fake_api.unreachable.add("pid:1")
    validate = ChecksumValidator(checker=client, mismatches=repository)

    with pytest.raises(RepositoryError):
        validate(WorkItem("pid:1"))
    assert repository.list_mismatches() == []


@pytest.mark.parametrize("change", ["removed", "disabled"])
def test_mismatch_of_datastream_no_longer_checked_is_resolved(
    fake_api: FakeRepositoryApi,
    client: RepositoryClient,
    repository: SweepRepository,
    change: str,
) -> None:
    fake_api.add_object("pid:1", dsid="OBJ", valid=False)
    fake_api.add_object("pid:1", dsid="MODS", valid=True)
    validate = ChecksumValidator(checker=client, mismatches=repository)
    assert validate(WorkItem("pid:1")) is False

    if change == "removed":
        fake_api.datastreams["pid:1"] = [
            profile for profile in fake_api.datastreams["pid:1"] if profile["dsid"] != "OBJ"
        ]
    else:
        fake_api.datastreams["pid:1"][0]["dsChecksumType"] = "DISABLED"

    assert validate(WorkItem("pid:1")) is True
    assert repository.list_mismatches() == []


def test_failing_datastream_stays_open_while_others_resolve(
    fake_api: FakeRepositoryApi,
    client: RepositoryClient,
    repository: SweepRepository,
) -> None:
    fake_api.add_object("pid:1", dsid="OBJ", valid=False)
    fake_api.add_object("pid:1", dsid="MODS", valid=False)
    validate = ChecksumValidator(checker=client, mismatches=repository)
    assert validate(WorkItem("pid:1")) is False

    fake_api.datastreams["pid:1"][0]["dsChecksumValid"] = True

    assert validate(WorkItem("pid:1")) is False
    assert [row.datastream_id for row in repository.list_mismatches()] == ["MODS"]
