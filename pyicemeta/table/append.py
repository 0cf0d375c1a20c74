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
"""Append data files to a table as a new snapshot."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Sequence

from pyicemeta.exceptions import ValidationError
from pyicemeta.manifest import (
    AddFile,
    ManifestFile,
    add_manifest,
    manifest_list_metadata,
    update_manifest_list,
    write_manifest_list,
)
from pyicemeta.table.snapshots import Operation, Snapshot, SnapshotSummaryCollector, Summary
from pyicemeta.table.update.snapshot import (
    ResolveConflictResult,
    SubmitSnapshotResult,
    select_expired_snapshot,
    submit_snapshot,
)
from pyicemeta.utils.concurrent import bounded_unordered_map

if TYPE_CHECKING:
    from pyicemeta.table import Table

logger = logging.getLogger(__name__)


@dataclass
class AddFileList:
    """Data files that share a partition spec and a schema, they end up in one manifest."""

    spec_id: int
    schema_id: int
    files: List[AddFile] = field(default_factory=list)


class _ManifestListWriter:
    """Writes the manifest list of an append, once per commit attempt."""

    def __init__(self, table: Table, snapshot_id: int) -> None:
        self._table = table
        self._snapshot_id = snapshot_id
        self._commit_uuid = uuid.uuid4()
        self._attempt = 0

    def write(
        self,
        manifests: List[ManifestFile],
        base_manifest_list: Optional[str],
        parent_snapshot_id: Optional[int],
        sequence_number: int,
    ) -> str:
        io = self._table.io
        location = self._table.location_provider().new_manifest_list_location(
            self._snapshot_id, self._attempt, self._commit_uuid
        )
        self._attempt += 1

        metadata = manifest_list_metadata(self._snapshot_id, parent_snapshot_id, sequence_number)
        if base_manifest_list:
            update_manifest_list(io, base_manifest_list, location, manifests, metadata)
        else:
            write_manifest_list(io, location, manifests, metadata)
        logger.debug("Wrote manifest list %s with %d new manifests", location, len(manifests))
        return location


def add_data_files(
    table: Table,
    lists: Sequence[AddFileList],
    snapshot_id: Optional[int] = None,
    retry_count: Optional[int] = None,
    max_snapshots: Optional[int] = None,
) -> SubmitSnapshotResult:
    """Add data files to a table in a new append snapshot.

    Every list is written to its own manifest. The manifest list of the new snapshot
    holds the new manifests, followed by the manifests of the current snapshot.
    When another append wins the race for the commit, the manifest list is rebuilt
    on top of the snapshot of the winner and the commit is retried.

    Args:
        table: The table to append to.
        lists: The data files, grouped by partition spec and schema.
        snapshot_id: The id of the new snapshot, a random id by default.
        retry_count: The number of commit retries, see `submit_snapshot`.
        max_snapshots: Expire the oldest snapshot in the same commit once the
            table has this many snapshots.

    Returns:
        The result of the commit.

    Raises:
        ValidationError: When there are no files to add.
        NotFoundError: When a schema, a partition spec or the current snapshot can't be found.
        ConflictError: When a concurrent commit can't be merged.
    """
    if not any(file_list.files for file_list in lists):
        raise ValidationError(f"No data files to add to {table.name()}")

    metadata = table.refresh().metadata
    snapshot_id = snapshot_id or metadata.new_snapshot_id()
    parent_snapshot = metadata.current_snapshot()
    parent_snapshot_id = parent_snapshot.snapshot_id if parent_snapshot else None
    sequence_number = metadata.next_sequence_number()
    remove_snapshot_id = select_expired_snapshot(metadata, max_snapshots)

    non_empty = [file_list for file_list in lists if file_list.files]

    def _write_manifests(manifest_sequence_number: int) -> List[ManifestFile]:
        def _add_manifest(file_list: AddFileList) -> ManifestFile:
            return add_manifest(
                table.io,
                metadata,
                file_list.schema_id,
                file_list.spec_id,
                snapshot_id,  # type: ignore[arg-type]
                manifest_sequence_number,
                file_list.files,
            )

        return list(bounded_unordered_map(_add_manifest, non_empty))

    manifests = _write_manifests(sequence_number)

    collector = SnapshotSummaryCollector()
    for file_list in lists:
        for add_file in file_list.files:
            collector.add_file(add_file)

    list_writer = _ManifestListWriter(table, snapshot_id)
    manifest_list = list_writer.write(
        manifests,
        parent_snapshot.manifest_list if parent_snapshot else None,
        parent_snapshot_id,
        sequence_number,
    )

    def _resolve_conflict(winner: Snapshot, next_sequence_number: int) -> ResolveConflictResult:
        # entries carry their sequence number, so they are added again under the new one
        rebased_manifests = _write_manifests(next_sequence_number)
        if winner.summary is not None:
            collector.merge_summary(winner.summary)
        rebased_list = list_writer.write(rebased_manifests, winner.manifest_list, winner.snapshot_id, next_sequence_number)
        return ResolveConflictResult(manifest_list=rebased_list, summary=Summary(Operation.APPEND, **collector.build()))

    result = submit_snapshot(
        table.catalog,
        table.name(),
        schema_id=metadata.current_schema_id,
        parent_snapshot_id=parent_snapshot_id,
        snapshot_id=snapshot_id,
        sequence_number=sequence_number,
        manifest_list=manifest_list,
        summary=Summary(Operation.APPEND, **collector.build()),
        retry_count=retry_count,
        remove_snapshot_id=remove_snapshot_id,
        resolve_conflict=_resolve_conflict,
    )
    table.metadata = result.response.metadata
    return result
