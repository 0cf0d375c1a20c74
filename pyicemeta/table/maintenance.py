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
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional

from pyicemeta.avro.file import AvroFile
from pyicemeta.avro.resolver import translate_records
from pyicemeta.exceptions import NoSuchFieldError
from pyicemeta.manifest import (
    ManifestContent,
    ManifestFile,
    PartitionFieldStats,
    PartitionFieldSummary,
    is_vacuous_manifest,
    manifest_entry_schema_for,
    manifest_list_metadata,
    read_manifest_list,
    write_manifest,
    write_manifest_list,
)
from pyicemeta.partitioning import PartitionSpec
from pyicemeta.schema import Schema
from pyicemeta.table.snapshots import replace_summary
from pyicemeta.table.update import CommitTableResponse
from pyicemeta.table.update.snapshot import select_expired_snapshot, submit_snapshot
from pyicemeta.utils.concurrent import bounded_unordered_map
from pyicemeta.utils.schema_conversion import strip_logical_values

logger = logging.getLogger(__name__)


if TYPE_CHECKING:
    from pyicemeta.table import Table
    from pyicemeta.table.metadata import TableMetadata

# Weighs a group of manifests, the lightest groups are merged first
CalculateWeight = Callable[[List[ManifestFile]], float]


@dataclass(kw_only=True)
class ManifestCompactResult:
    changed: bool
    input_manifest_count: int
    output_manifest_count: int
    snapshot_id: Optional[int] = None
    parent_snapshot_id: Optional[int] = None
    sequence_number: Optional[int] = None
    retries: int = 0
    response: Optional[CommitTableResponse] = None


class MaintenanceTable:
    tbl: Table

    def __init__(self, tbl: Table) -> None:
        self.tbl = tbl

    def compact_manifests(
        self,
        snapshot_id: Optional[int] = None,
        target_count: Optional[int] = None,
        calculate_weight: Optional[CalculateWeight] = None,
        force_rewrite: bool = False,
        max_snapshots: Optional[int] = None,
        retry_count: Optional[int] = None,
    ) -> ManifestCompactResult:
        """Merge the manifests of the current snapshot that cover the same partitions.

        See `manifest_compact`.
        """
        return manifest_compact(
            self.tbl,
            snapshot_id=snapshot_id,
            target_count=target_count,
            calculate_weight=calculate_weight,
            force_rewrite=force_rewrite,
            max_snapshots=max_snapshots,
            retry_count=retry_count,
        )


def _same_partition_bounds(left: ManifestFile, right: ManifestFile) -> bool:
    # Bounds are compared by their encoding, not by the value they decode to
    if not left.partitions:
        return True
    right_partitions = right.partitions or []
    if len(right_partitions) < len(left.partitions):
        return False
    return all(
        summary.lower_bound == other.lower_bound and summary.upper_bound == other.upper_bound
        for summary, other in zip(left.partitions, right_partitions)
    )


def _can_merge(representative: ManifestFile, manifest: ManifestFile) -> bool:
    return (
        representative.content == ManifestContent.DATA
        and manifest.content == ManifestContent.DATA
        and representative.deleted_files_count == 0
        and manifest.deleted_files_count == 0
        and representative.partition_spec_id == manifest.partition_spec_id
        and _same_partition_bounds(representative, manifest)
    )


def group_manifests(manifests: List[ManifestFile]) -> List[List[ManifestFile]]:
    """Group the manifests that only hold data files of the same partitions.

    A manifest joins the first group whose first manifest it can be merged with,
    otherwise it starts a new group.
    """
    groups: List[List[ManifestFile]] = []
    for manifest in manifests:
        for group in groups:
            if _can_merge(group[0], manifest):
                group.append(manifest)
                break
        else:
            groups.append([manifest])
    return groups


def combine_weighted_groups(
    groups: List[List[ManifestFile]], target_count: int, calculate_weight: CalculateWeight
) -> List[List[ManifestFile]]:
    """Merge the lightest groups into heavier groups of the same partition spec until there are `target_count` groups.

    Groups are only merged with a group of the same partition spec, so when too few
    groups share a spec there can be more than `target_count` groups left.
    """
    weighted = sorted(([calculate_weight(group), list(group)] for group in groups), key=lambda item: item[0])
    while len(weighted) > target_count:
        for index, (_, group) in enumerate(weighted):
            spec_id = group[0].partition_spec_id
            target = next(
                (other for other in weighted[index + 1 :] if other[1][0].partition_spec_id == spec_id),
                None,
            )
            if target is not None:
                target[1].extend(group)
                del weighted[index]
                break
        else:
            break
    return [group for _, group in weighted]


def merge_partition_summaries(
    manifests: List[ManifestFile], output_types: List[Optional[str]]
) -> Optional[List[PartitionFieldSummary]]:
    """Merge the partition summaries of manifests of one partition spec, field by field."""
    if all(manifest.partitions is None for manifest in manifests):
        return None

    field_stats = [PartitionFieldStats(output_type) for output_type in output_types]
    for manifest in manifests:
        for stats, summary in zip(field_stats, manifest.partitions or []):
            stats.merge(summary)
    return [stats.to_summary() for stats in field_stats]


def _schema_for_spec(metadata: TableMetadata, spec: PartitionSpec) -> Schema:
    """Return the newest schema that has all the source columns of the partition spec."""
    candidates = [metadata.schema()] + list(reversed(metadata.schemas))
    for schema in candidates:
        if all(_has_field(schema, field.source_id) for field in spec.fields):
            return schema
    raise NoSuchFieldError(f"No schema of the table has the source columns of partition spec {spec.spec_id}")


def _has_field(schema: Schema, field_id: int) -> bool:
    try:
        schema.find_field(field_id)
    except NoSuchFieldError:
        return False
    return True


class _GroupRewriter:
    """Rewrites a group of manifests into a single manifest for the compaction snapshot."""

    def __init__(
        self, table: Table, metadata: TableMetadata, snapshot_id: int, sequence_number: int, force_rewrite: bool
    ) -> None:
        self._io = table.io
        self._metadata = metadata
        self._location_provider = table.location_provider()
        self._snapshot_id = snapshot_id
        self._sequence_number = sequence_number
        self._force_rewrite = force_rewrite
        self._commit_uuid = uuid.uuid4()

    def rewrite(self, indexed_group: tuple[int, List[ManifestFile]]) -> List[ManifestFile]:
        index, group = indexed_group
        if len(group) == 1 and not self._force_rewrite:
            return group

        first = group[0]
        spec = self._metadata.spec_by_id(first.partition_spec_id)
        schema = _schema_for_spec(self._metadata, spec)
        entry_schema = manifest_entry_schema_for(spec, schema, logical=False)

        def _read_entries(manifest: ManifestFile) -> List[Dict[str, Any]]:
            with AvroFile(self._io.new_input(manifest.manifest_path)) as reader:
                records = (strip_logical_values(record) for record in reader)
                return list(translate_records(reader.schema, entry_schema, records))

        def _entries() -> Iterator[Dict[str, Any]]:
            for entries in bounded_unordered_map(_read_entries, group):
                yield from entries

        location = self._location_provider.new_manifest_location(self._commit_uuid, index)
        length = write_manifest(self._io, location, spec, schema, _entries(), logical=False)
        logger.info("Merged %d manifests into %s", len(group), location)

        return [
            ManifestFile(
                manifest_path=location,
                manifest_length=length,
                partition_spec_id=first.partition_spec_id,
                content=first.content,
                sequence_number=self._sequence_number,
                min_sequence_number=min([self._sequence_number] + [manifest.min_sequence_number for manifest in group]),
                added_snapshot_id=self._snapshot_id,
                added_files_count=sum(manifest.added_files_count for manifest in group),
                existing_files_count=sum(manifest.existing_files_count for manifest in group),
                deleted_files_count=sum(manifest.deleted_files_count for manifest in group),
                added_rows_count=sum(manifest.added_rows_count for manifest in group),
                existing_rows_count=sum(manifest.existing_rows_count for manifest in group),
                deleted_rows_count=sum(manifest.deleted_rows_count for manifest in group),
                partitions=merge_partition_summaries(group, spec.result_types(schema)),
            )
        ]


def manifest_compact(
    table: Table,
    snapshot_id: Optional[int] = None,
    target_count: Optional[int] = None,
    calculate_weight: Optional[CalculateWeight] = None,
    force_rewrite: bool = False,
    max_snapshots: Optional[int] = None,
    retry_count: Optional[int] = None,
) -> ManifestCompactResult:
    """Merge the manifests of the current snapshot that cover the same partitions, in a new replace snapshot.

    Manifests without any live data file are left out. Manifests are merged when they
    only hold data files, share a partition spec, and have the same encoded partition
    bounds. With a `target_count` and a `calculate_weight` function the lightest groups
    are merged further into groups of the same partition spec.

    Args:
        table: The table to compact.
        snapshot_id: The id of the new snapshot, a random id by default.
        target_count: The number of manifests to aim for.
        calculate_weight: Weighs a group of manifests, required with `target_count`.
        force_rewrite: Rewrite the manifests even if that doesn't merge any of them.
        max_snapshots: Expire the oldest snapshot in the same commit once the
            table has this many snapshots.
        retry_count: The number of commit retries, see `submit_snapshot`.

    Returns:
        Whether a snapshot was committed, and the number of manifests before and after.

    Raises:
        ConflictError: When another snapshot was committed in the meantime.
    """
    metadata = table.refresh().metadata
    parent_snapshot = metadata.current_snapshot()
    if parent_snapshot is None or not parent_snapshot.manifest_list:
        logger.info("Table %s has no current snapshot, nothing to compact", table.name())
        return ManifestCompactResult(changed=False, input_manifest_count=0, output_manifest_count=0)

    sequence_number = metadata.next_sequence_number()
    manifests = list(read_manifest_list(table.io, parent_snapshot.manifest_list))
    groups = group_manifests([manifest for manifest in manifests if not is_vacuous_manifest(manifest)])
    if target_count is not None and calculate_weight is not None and len(groups) > target_count:
        final_groups = combine_weighted_groups(groups, target_count, calculate_weight)
    else:
        final_groups = groups

    if len(final_groups) == len(manifests) and not force_rewrite:
        logger.info("Manifests of %s are already compacted: %d manifests", table.name(), len(manifests))
        return ManifestCompactResult(
            changed=False,
            input_manifest_count=len(manifests),
            output_manifest_count=0,
            parent_snapshot_id=parent_snapshot.snapshot_id,
            sequence_number=sequence_number,
        )

    snapshot_id = snapshot_id or metadata.new_snapshot_id()
    remove_snapshot_id = select_expired_snapshot(metadata, max_snapshots)
    rewriter = _GroupRewriter(table, metadata, snapshot_id, sequence_number, force_rewrite)

    manifest_list = table.location_provider().new_manifest_list_location(snapshot_id)
    write_manifest_list(
        table.io,
        manifest_list,
        (manifest for rewritten in bounded_unordered_map(rewriter.rewrite, enumerate(final_groups)) for manifest in rewritten),
        manifest_list_metadata(snapshot_id, parent_snapshot.snapshot_id, sequence_number),
    )

    result = submit_snapshot(
        table.catalog,
        table.name(),
        schema_id=metadata.current_schema_id,
        parent_snapshot_id=parent_snapshot.snapshot_id,
        snapshot_id=snapshot_id,
        sequence_number=sequence_number,
        manifest_list=manifest_list,
        summary=replace_summary(),
        retry_count=retry_count,
        remove_snapshot_id=remove_snapshot_id,
    )
    table.metadata = result.response.metadata
    logger.info("Compacted %d manifests of %s into %d", len(manifests), table.name(), len(final_groups))

    return ManifestCompactResult(
        changed=True,
        input_manifest_count=len(manifests),
        output_manifest_count=len(final_groups),
        snapshot_id=result.snapshot_id,
        parent_snapshot_id=result.parent_snapshot_id,
        sequence_number=result.sequence_number,
        retries=result.retries,
        response=result.response,
    )
