# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.
# pylint: disable=redefined-outer-name
import os
from typing import Any, Callable, List, Optional, Tuple
from unittest import mock

import pytest

from pyicemeta.catalog.memory import InMemoryCatalog
from pyicemeta.exceptions import CommitFailedException, ConflictError
from pyicemeta.table import Table
from pyicemeta.table.snapshots import Operation, Snapshot, Summary, replace_summary
from pyicemeta.table.update import RemoveSnapshotsUpdate
from pyicemeta.table.update.snapshot import (
    DEFAULT_COMMIT_RETRIES,
    ResolveConflictResult,
    SubmitSnapshotResult,
    default_commit_retries,
    new_snapshot_id,
    select_expired_snapshot,
    submit_snapshot,
)


def _submit(
    table: Table,
    snapshot_id: int,
    sequence_number: int,
    parent_snapshot_id: Optional[int] = None,
    summary: Optional[Summary] = None,
    **kwargs: Any,
) -> SubmitSnapshotResult:
    return submit_snapshot(
        table.catalog,
        table.name(),
        schema_id=0,
        parent_snapshot_id=parent_snapshot_id,
        snapshot_id=snapshot_id,
        sequence_number=sequence_number,
        manifest_list=f"memory://warehouse/snap-{snapshot_id}.avro",
        summary=summary or Summary(Operation.APPEND),
        **kwargs,
    )


def _race(catalog: InMemoryCatalog, competitor: Callable[[], Any]) -> Callable[..., Any]:
    """Run the competing commit right before the first commit attempt reaches the catalog."""
    original = catalog.commit_table_updates
    calls: List[int] = []

    def _commit(identifier: Any, requirements: Tuple[Any, ...], updates: Tuple[Any, ...]) -> Any:
        calls.append(len(calls))
        if len(calls) == 1:
            competitor()
        return original(identifier, requirements, updates)

    return _commit


def test_first_snapshot_without_retries(table: Table) -> None:
    result = _submit(table, snapshot_id=10, sequence_number=1)

    assert result.retries == 0
    assert result.snapshot_id == 10
    assert result.parent_snapshot_id is None
    assert result.sequence_number == 1
    metadata = result.response.metadata
    assert metadata.current_snapshot_id == 10
    assert metadata.last_sequence_number == 1
    snapshot = metadata.snapshot_by_id(10)
    assert snapshot is not None
    assert snapshot.parent_snapshot_id is None
    assert snapshot.schema_id == 0


def test_parent_zero_means_no_parent(table: Table) -> None:
    result = _submit(table, snapshot_id=10, sequence_number=1, parent_snapshot_id=0)
    assert result.parent_snapshot_id is None


def test_racing_append_is_rebased(catalog: InMemoryCatalog, table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)
    resolved: List[Tuple[int, int]] = []

    def _resolve(winner: Snapshot, sequence_number: int) -> ResolveConflictResult:
        resolved.append((winner.snapshot_id, sequence_number))
        return ResolveConflictResult(manifest_list="memory://warehouse/rebased.avro", summary=Summary(Operation.APPEND))

    competitor = lambda: _submit(table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1)  # noqa: E731
    with mock.patch.object(catalog, "commit_table_updates", side_effect=_race(catalog, competitor)):
        result = _submit(table, snapshot_id=3, sequence_number=2, parent_snapshot_id=1, resolve_conflict=_resolve)

    assert result.retries == 1
    assert resolved == [(2, 3)]
    assert result.parent_snapshot_id == 2
    assert result.sequence_number == 3

    metadata = catalog.load_table_metadata(table.name())
    assert metadata.current_snapshot_id == 3
    snapshot = metadata.snapshot_by_id(3)
    assert snapshot is not None
    assert snapshot.parent_snapshot_id == 2
    assert snapshot.sequence_number == 3
    assert snapshot.manifest_list == "memory://warehouse/rebased.avro"


def test_racing_append_on_empty_table(catalog: InMemoryCatalog, table: Table) -> None:
    def _resolve(winner: Snapshot, sequence_number: int) -> ResolveConflictResult:
        return ResolveConflictResult(manifest_list="memory://warehouse/rebased.avro", summary=Summary(Operation.APPEND))

    competitor = lambda: _submit(table, snapshot_id=1, sequence_number=1)  # noqa: E731
    with mock.patch.object(catalog, "commit_table_updates", side_effect=_race(catalog, competitor)):
        result = _submit(table, snapshot_id=2, sequence_number=1, resolve_conflict=_resolve)

    assert result.retries == 1
    assert result.parent_snapshot_id == 1
    assert result.sequence_number == 2


def test_conflict_with_replace_is_not_merged(catalog: InMemoryCatalog, table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)
    resolve = mock.Mock()

    competitor = lambda: _submit(  # noqa: E731
        table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1, summary=replace_summary()
    )
    with mock.patch.object(catalog, "commit_table_updates", side_effect=_race(catalog, competitor)):
        with pytest.raises(ConflictError, match="can't be merged"):
            _submit(table, snapshot_id=3, sequence_number=2, parent_snapshot_id=1, resolve_conflict=resolve)

    resolve.assert_not_called()
    assert catalog.load_table_metadata(table.name()).current_snapshot_id == 2


def test_conflict_with_other_sequence_number(catalog: InMemoryCatalog, table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)

    def _competitor() -> None:
        _submit(table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1)
        _submit(table, snapshot_id=4, sequence_number=3, parent_snapshot_id=2)

    with mock.patch.object(catalog, "commit_table_updates", side_effect=_race(catalog, _competitor)):
        with pytest.raises(ConflictError):
            _submit(table, snapshot_id=3, sequence_number=2, parent_snapshot_id=1, resolve_conflict=mock.Mock())


def test_conflict_without_resolver(catalog: InMemoryCatalog, table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)

    competitor = lambda: _submit(table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1)  # noqa: E731
    with mock.patch.object(catalog, "commit_table_updates", side_effect=_race(catalog, competitor)):
        with pytest.raises(ConflictError, match="no way to rebase"):
            _submit(table, snapshot_id=3, sequence_number=2, parent_snapshot_id=1, summary=replace_summary())


def test_retries_exhausted(catalog: InMemoryCatalog, table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)

    competitor = lambda: _submit(table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1)  # noqa: E731
    with mock.patch.object(catalog, "commit_table_updates", side_effect=_race(catalog, competitor)):
        with pytest.raises(CommitFailedException) as exc_info:
            _submit(table, snapshot_id=3, sequence_number=2, parent_snapshot_id=1, retry_count=0, resolve_conflict=mock.Mock())

    assert not isinstance(exc_info.value, ConflictError)


def test_expired_snapshot_is_kept_on_retry(catalog: InMemoryCatalog, table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)
    _submit(table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1)
    commits: List[Tuple[Any, ...]] = []
    original = catalog.commit_table_updates

    def _commit(identifier: Any, requirements: Tuple[Any, ...], updates: Tuple[Any, ...]) -> Any:
        commits.append(updates)
        if len(commits) == 1:
            _submit(table, snapshot_id=4, sequence_number=3, parent_snapshot_id=2)
        return original(identifier, requirements, updates)

    def _resolve(winner: Snapshot, sequence_number: int) -> ResolveConflictResult:
        return ResolveConflictResult(manifest_list="memory://warehouse/rebased.avro", summary=Summary(Operation.APPEND))

    with mock.patch.object(catalog, "commit_table_updates", side_effect=_commit):
        _submit(table, snapshot_id=3, sequence_number=3, parent_snapshot_id=2, remove_snapshot_id=1, resolve_conflict=_resolve)

    assert any(isinstance(update, RemoveSnapshotsUpdate) for update in commits[0])
    assert not any(isinstance(update, RemoveSnapshotsUpdate) for update in commits[-1])
    assert catalog.load_table_metadata(table.name()).snapshot_by_id(1) is not None


def test_expire_oldest_snapshot_in_same_commit(table: Table) -> None:
    _submit(table, snapshot_id=1, sequence_number=1)
    _submit(table, snapshot_id=2, sequence_number=2, parent_snapshot_id=1)
    metadata = table.refresh().metadata

    assert select_expired_snapshot(metadata, None) is None
    assert select_expired_snapshot(metadata, 3) is None
    assert select_expired_snapshot(metadata, 2) == 1

    result = _submit(table, snapshot_id=3, sequence_number=3, parent_snapshot_id=2, remove_snapshot_id=1)
    assert [snapshot.snapshot_id for snapshot in result.response.metadata.snapshots] == [2, 3]


@mock.patch.dict(os.environ, {"PYICEMETA_COMMIT_RETRIES": "2"})
def test_commit_retries_from_environment() -> None:
    assert default_commit_retries() == 2


@mock.patch.dict(os.environ, {}, clear=True)
def test_commit_retries_default() -> None:
    assert default_commit_retries() == DEFAULT_COMMIT_RETRIES


def test_new_snapshot_id_is_positive() -> None:
    assert new_snapshot_id() > 0
