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
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Tuple

from pyicemeta.exceptions import CommitFailedException, ConflictError
from pyicemeta.table.metadata import TableMetadata, _generate_snapshot_id
from pyicemeta.table.snapshots import MAIN_BRANCH, Operation, Snapshot, Summary
from pyicemeta.table.update import (
    AddSnapshotUpdate,
    AssertRefSnapshotId,
    CommitTableResponse,
    RemoveSnapshotsUpdate,
    SetSnapshotRefUpdate,
    TableRequirement,
    TableUpdate,
)
from pyicemeta.typedef import Identifier
from pyicemeta.utils.config import COMMIT_RETRIES, Config

if TYPE_CHECKING:
    from pyicemeta.catalog import Catalog

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_RETRIES = 5


@dataclass(frozen=True)
class ResolveConflictResult:
    """The manifest list and summary of a snapshot that was rebased onto a concurrent commit."""

    manifest_list: str
    summary: Summary


@dataclass(frozen=True)
class SubmitSnapshotResult:
    response: CommitTableResponse
    retries: int
    parent_snapshot_id: Optional[int]
    snapshot_id: int
    sequence_number: int


# Called with the snapshot that won the race and the sequence number of the next attempt
ResolveConflict = Callable[[Snapshot, int], ResolveConflictResult]


def new_snapshot_id(metadata: Optional[TableMetadata] = None) -> int:
    """Generate a random positive snapshot id, one that the table doesn't use yet when the metadata is passed."""
    if metadata is not None:
        return metadata.new_snapshot_id()
    return _generate_snapshot_id()


def default_commit_retries() -> int:
    retries = Config().get_int(COMMIT_RETRIES)
    return DEFAULT_COMMIT_RETRIES if retries is None else retries


def select_expired_snapshot(metadata: TableMetadata, max_snapshots: Optional[int]) -> Optional[int]:
    """Return the oldest snapshot of the table once the history has reached `max_snapshots`."""
    if not max_snapshots or len(metadata.snapshots) < max_snapshots:
        return None
    oldest = min(metadata.snapshots, key=lambda snapshot: snapshot.timestamp_ms)
    return oldest.snapshot_id


def _snapshot_updates(
    schema_id: int,
    parent_snapshot_id: Optional[int],
    snapshot_id: int,
    sequence_number: int,
    manifest_list: str,
    summary: Summary,
    remove_snapshot_id: Optional[int],
) -> Tuple[TableUpdate, ...]:
    snapshot = Snapshot(
        snapshot_id=snapshot_id,
        parent_snapshot_id=parent_snapshot_id or None,
        sequence_number=sequence_number,
        timestamp_ms=int(time.time() * 1000),
        manifest_list=manifest_list,
        summary=summary,
        schema_id=schema_id,
    )
    updates: Tuple[TableUpdate, ...] = (
        AddSnapshotUpdate(snapshot=snapshot),
        SetSnapshotRefUpdate(ref_name=MAIN_BRANCH, type="branch", snapshot_id=snapshot_id),
    )
    if remove_snapshot_id:
        updates += (RemoveSnapshotsUpdate(snapshot_ids=[remove_snapshot_id]),)
    return updates


def _compatible_winner(catalog: Catalog, identifier: Identifier, sequence_number: int) -> Snapshot:
    """Load the snapshot that won the race, and check that this commit can be rebased onto it.

    Raises:
        ConflictError: When the table has no current snapshot, or the winner is not an
            append with the same sequence number as the attempt that lost.
    """
    metadata = catalog.load_table_metadata(identifier)
    current_snapshot_id = metadata.current_snapshot_id
    if not current_snapshot_id or current_snapshot_id <= 0:
        raise ConflictError(f"Commit conflict on {identifier}: table has no current snapshot to rebase onto")

    winner = metadata.snapshot_by_id(current_snapshot_id)
    if winner is None:
        raise ConflictError(f"Commit conflict on {identifier}: current snapshot {current_snapshot_id} not found")

    if winner.operation != Operation.APPEND or winner.sequence_number != sequence_number:
        raise ConflictError(
            f"Commit conflict on {identifier}: snapshot {winner.snapshot_id} "
            f"({winner.operation}, sequence number {winner.sequence_number}) can't be merged "
            f"with sequence number {sequence_number}"
        )
    return winner


def submit_snapshot(
    catalog: Catalog,
    identifier: Identifier,
    schema_id: int,
    parent_snapshot_id: Optional[int],
    snapshot_id: int,
    sequence_number: int,
    manifest_list: str,
    summary: Summary,
    retry_count: Optional[int] = None,
    remove_snapshot_id: Optional[int] = None,
    resolve_conflict: Optional[ResolveConflict] = None,
) -> SubmitSnapshotResult:
    """Add a snapshot to the table and point the main branch at it.

    The commit asserts that main still points at the parent snapshot. When another
    writer got there first, and that writer appended data at the same sequence number,
    the snapshot is rebased onto the winner through `resolve_conflict` and submitted
    again, with the sequence number bumped by one.

    Args:
        catalog: The catalog to commit to.
        identifier: The table.
        schema_id: The schema the snapshot was written with.
        parent_snapshot_id: The current snapshot of the table, 0 or None for an empty table.
        snapshot_id: The id of the new snapshot.
        sequence_number: The sequence number of the new snapshot.
        manifest_list: The location of the manifest list of the new snapshot.
        summary: The summary of the new snapshot.
        retry_count: The number of retries after the first attempt, defaults to the
            `commit-retries` setting or 5.
        remove_snapshot_id: A snapshot to expire in the same commit, dropped when the
            commit has to be retried.
        resolve_conflict: Rebases the snapshot onto the snapshot that won the race.

    Returns:
        The response of the catalog with the number of retries and the ids that were committed.

    Raises:
        ConflictError: When the conflict can't be resolved.
        CommitFailedException: When the retries are exhausted.
    """
    max_retries = default_commit_retries() if retry_count is None else retry_count
    expected_snapshot_id = parent_snapshot_id or 0
    retries = 0

    while True:
        updates = _snapshot_updates(
            schema_id, parent_snapshot_id, snapshot_id, sequence_number, manifest_list, summary, remove_snapshot_id
        )
        requirements: Tuple[TableRequirement, ...] = ()
        if expected_snapshot_id > 0:
            requirements = (AssertRefSnapshotId(ref=MAIN_BRANCH, snapshot_id=expected_snapshot_id),)

        try:
            response = catalog.commit_table_updates(identifier, requirements, updates)
        except ConflictError:
            raise
        except CommitFailedException as e:
            if retries >= max_retries:
                logger.warning("Giving up on snapshot %d of %s after %d retries", snapshot_id, identifier, retries)
                raise

            retries += 1
            remove_snapshot_id = None
            winner = _compatible_winner(catalog, identifier, sequence_number)
            if resolve_conflict is None:
                raise ConflictError(
                    f"Commit conflict on {identifier}: snapshot {winner.snapshot_id} won the race, "
                    "and there is no way to rebase onto it"
                ) from e

            expected_snapshot_id = winner.snapshot_id
            parent_snapshot_id = winner.snapshot_id
            sequence_number += 1
            resolved = resolve_conflict(winner, sequence_number)
            manifest_list = resolved.manifest_list
            summary = resolved.summary
            logger.warning(
                "Commit of snapshot %d to %s conflicted with snapshot %d, retrying (%d/%d)",
                snapshot_id,
                identifier,
                winner.snapshot_id,
                retries,
                max_retries,
            )
            continue

        logger.info("Committed snapshot %d with sequence number %d to %s", snapshot_id, sequence_number, identifier)
        return SubmitSnapshotResult(
            response=response,
            retries=retries,
            parent_snapshot_id=parent_snapshot_id or None,
            snapshot_id=snapshot_id,
            sequence_number=sequence_number,
        )


def set_current_snapshot(catalog: Catalog, identifier: Identifier, snapshot_id: int) -> CommitTableResponse:
    """Point the main branch at an existing snapshot, regardless of where it points now."""
    return catalog.commit_table_updates(
        identifier,
        (),
        (SetSnapshotRefUpdate(ref_name=MAIN_BRANCH, type="branch", snapshot_id=snapshot_id),),
    )
