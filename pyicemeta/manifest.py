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
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
)

from pyicemeta.avro.file import AvroFile, write_avro
from pyicemeta.avro.resolver import translate_records
from pyicemeta.exceptions import NotFoundError, StreamFailureError, ValidationError
from pyicemeta.io import FileIO
from pyicemeta.io.locations import MetadataLocationProvider
from pyicemeta.partitioning import NAN, Bound, PartitionSpec, make_bounds, max_bound, min_bound, partition_record
from pyicemeta.schema import Schema
from pyicemeta.utils.schema_conversion import partition_to_avro_schema

if TYPE_CHECKING:
    from pyicemeta.table.metadata import TableMetadata

logger = logging.getLogger(__name__)

DEFAULT_FORMAT_VERSION = 2


class DataFileContent(int, Enum):
    DATA = 0
    POSITION_DELETES = 1
    EQUALITY_DELETES = 2

    def __repr__(self) -> str:
        """Return the string representation of the DataFileContent class."""
        return f"DataFileContent.{self.name}"


class ManifestContent(int, Enum):
    DATA = 0
    DELETES = 1

    def __repr__(self) -> str:
        """Return the string representation of the ManifestContent class."""
        return f"ManifestContent.{self.name}"


class ManifestEntryStatus(int, Enum):
    EXISTING = 0
    ADDED = 1
    DELETED = 2

    def __repr__(self) -> str:
        """Return the string representation of the ManifestEntryStatus class."""
        return f"ManifestEntryStatus.{self.name}"


class FileFormat(str, Enum):
    AVRO = "AVRO"
    PARQUET = "PARQUET"
    ORC = "ORC"

    def __repr__(self) -> str:
        """Return the string representation of the FileFormat class."""
        return f"FileFormat.{self.name}"


def _optional(name: str, avro_type: Any, field_id: int, doc: Optional[str] = None) -> Dict[str, Any]:
    avro_field: Dict[str, Any] = {"name": name, "type": ["null", avro_type], "default": None, "field-id": field_id}
    if doc:
        avro_field["doc"] = doc
    return avro_field


def _int_map(name: str, field_id: int, key_id: int, value_id: int, value_type: str, doc: str) -> Dict[str, Any]:
    # Maps with non-string keys are stored as an array of key/value records
    return _optional(
        name,
        {
            "type": "array",
            "logicalType": "map",
            "items": {
                "type": "record",
                "name": f"k{key_id}_v{value_id}",
                "fields": [
                    {"name": "key", "type": "int", "field-id": key_id},
                    {"name": "value", "type": value_type, "field-id": value_id},
                ],
            },
        },
        field_id,
        doc,
    )


PARTITION_FIELD_SUMMARY_SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "r508",
    "fields": [
        {"name": "contains_null", "type": "boolean", "doc": "True if any file has a null partition value", "field-id": 509},
        _optional("contains_nan", "boolean", 518, "True if any file has a nan partition value"),
        _optional("lower_bound", "bytes", 510, "Partition lower bound for all files"),
        _optional("upper_bound", "bytes", 511, "Partition upper bound for all files"),
    ],
}

MANIFEST_LIST_SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "manifest_file",
    "fields": [
        {"name": "manifest_path", "type": "string", "doc": "Location URI with FS scheme", "field-id": 500},
        {"name": "manifest_length", "type": "long", "doc": "Total file size in bytes", "field-id": 501},
        {"name": "partition_spec_id", "type": "int", "doc": "Spec ID used to write", "field-id": 502},
        {"name": "content", "type": "int", "doc": "Contents of the manifest: 0=data, 1=deletes", "default": 0, "field-id": 517},
        {
            "name": "sequence_number",
            "type": "long",
            "doc": "Sequence number when the manifest was added",
            "default": 0,
            "field-id": 515,
        },
        {
            "name": "min_sequence_number",
            "type": "long",
            "doc": "Lowest sequence number in the manifest",
            "default": 0,
            "field-id": 516,
        },
        {"name": "added_snapshot_id", "type": "long", "doc": "Snapshot ID that added the manifest", "field-id": 503},
        {"name": "added_files_count", "type": "int", "doc": "Added entry count", "default": 0, "field-id": 504},
        {"name": "existing_files_count", "type": "int", "doc": "Existing entry count", "default": 0, "field-id": 505},
        {"name": "deleted_files_count", "type": "int", "doc": "Deleted entry count", "default": 0, "field-id": 506},
        {"name": "added_rows_count", "type": "long", "doc": "Added rows count", "default": 0, "field-id": 512},
        {"name": "existing_rows_count", "type": "long", "doc": "Existing rows count", "default": 0, "field-id": 513},
        {"name": "deleted_rows_count", "type": "long", "doc": "Deleted rows count", "default": 0, "field-id": 514},
        _optional(
            "partitions",
            {"type": "array", "items": PARTITION_FIELD_SUMMARY_SCHEMA, "element-id": 508},
            507,
            "Summary for each partition",
        ),
        _optional("key_metadata", "bytes", 519, "Encryption key metadata blob"),
    ],
}


def data_file_schema(partition_type: Dict[str, Any]) -> Dict[str, Any]:
    """Return the Avro record of a data file, with the partition tuple of a spec."""
    return {
        "type": "record",
        "name": "r2",
        "fields": [
            {
                "name": "content",
                "type": "int",
                "doc": "Contents of the file: 0=data, 1=position deletes, 2=equality deletes",
                "default": 0,
                "field-id": 134,
            },
            {"name": "file_path", "type": "string", "doc": "Location URI with FS scheme", "field-id": 100},
            {"name": "file_format", "type": "string", "doc": "File format name: avro, orc, or parquet", "field-id": 101},
            {
                "name": "partition",
                "type": partition_type,
                "doc": "Partition data tuple, schema based on the partition spec",
                "field-id": 102,
            },
            {"name": "record_count", "type": "long", "doc": "Number of records in the file", "field-id": 103},
            {"name": "file_size_in_bytes", "type": "long", "doc": "Total file size in bytes", "field-id": 104},
            _int_map("column_sizes", 108, 117, 118, "long", "Map of column id to total size on disk"),
            _int_map("value_counts", 109, 119, 120, "long", "Map of column id to total count, including null and NaN"),
            _int_map("null_value_counts", 110, 121, 122, "long", "Map of column id to null value count"),
            _int_map("nan_value_counts", 137, 138, 139, "long", "Map of column id to number of NaN values in the column"),
            _int_map("lower_bounds", 125, 126, 127, "bytes", "Map of column id to lower bound"),
            _int_map("upper_bounds", 128, 129, 130, "bytes", "Map of column id to upper bound"),
            _optional("key_metadata", "bytes", 131, "Encryption key metadata blob"),
            _optional("split_offsets", {"type": "array", "items": "long", "element-id": 133}, 132, "Splittable offsets"),
            _optional("equality_ids", {"type": "array", "items": "int", "element-id": 136}, 135, "Equality comparison field IDs"),
            _optional("sort_order_id", "int", 140, "Sort order ID"),
        ],
    }


def manifest_entry_schema(partition_type: Dict[str, Any]) -> Dict[str, Any]:
    """Return the Avro schema of the entries of a manifest, with the partition tuple of a spec."""
    return {
        "type": "record",
        "name": "manifest_entry",
        "fields": [
            {"name": "status", "type": "int", "field-id": 0},
            _optional("snapshot_id", "long", 1),
            _optional("sequence_number", "long", 3),
            _optional("file_sequence_number", "long", 4),
            {"name": "data_file", "type": data_file_schema(partition_type), "field-id": 2},
        ],
    }


def manifest_entry_schema_for(spec: PartitionSpec, schema: Schema, logical: bool = True) -> Dict[str, Any]:
    return manifest_entry_schema(partition_to_avro_schema(spec, schema, logical=logical))


@dataclass
class PartitionFieldSummary:
    contains_null: bool = False
    contains_nan: Optional[bool] = False
    lower_bound: Optional[bytes] = None
    upper_bound: Optional[bytes] = None

    def to_avro(self) -> Dict[str, Any]:
        return {
            "contains_null": self.contains_null,
            "contains_nan": self.contains_nan,
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
        }

    @classmethod
    def from_avro(cls, record: Mapping[str, Any]) -> PartitionFieldSummary:
        return cls(
            contains_null=bool(record.get("contains_null")),
            contains_nan=record.get("contains_nan"),
            lower_bound=record.get("lower_bound"),
            upper_bound=record.get("upper_bound"),
        )


class PartitionFieldStats:
    """Aggregates the bounds of one partition field over many data files or manifests.

    The bounds are compared by their decoded value, so the little-endian encoded
    dates and timestamps end up in the right order.
    """

    _output_type: Optional[str]
    _contains_null: bool
    _contains_nan: bool
    _min: Optional[bytes]
    _max: Optional[bytes]

    def __init__(self, output_type: Optional[str]) -> None:
        self._output_type = output_type
        self._contains_null = False
        self._contains_nan = False
        self._min = None
        self._max = None

    def to_summary(self) -> PartitionFieldSummary:
        return PartitionFieldSummary(
            contains_null=self._contains_null,
            contains_nan=self._contains_nan,
            lower_bound=self._min,
            upper_bound=self._max,
        )

    def update(self, bound: Bound) -> None:
        if bound is None:
            self._contains_null = True
        elif bound is NAN:
            self._contains_nan = True
        else:
            self._min = min_bound(self._min, bound, self._output_type)  # type: ignore[arg-type]
            self._max = max_bound(self._max, bound, self._output_type)  # type: ignore[arg-type]

    def merge(self, summary: PartitionFieldSummary) -> None:
        self._contains_null = self._contains_null or summary.contains_null
        self._contains_nan = self._contains_nan or bool(summary.contains_nan)
        self._min = min_bound(self._min, summary.lower_bound, self._output_type)
        self._max = max_bound(self._max, summary.upper_bound, self._output_type)


def construct_partition_summaries(spec: PartitionSpec, schema: Schema, bounds: Iterable[List[Bound]]) -> List[PartitionFieldSummary]:
    field_stats = [PartitionFieldStats(output_type) for output_type in spec.result_types(schema)]
    for file_bounds in bounds:
        for stats, bound in zip(field_stats, file_bounds):
            stats.update(bound)
    return [stats.to_summary() for stats in field_stats]


@dataclass
class ManifestFile:
    """A single row of a manifest list."""

    manifest_path: str
    manifest_length: int
    partition_spec_id: int
    content: ManifestContent = ManifestContent.DATA
    sequence_number: int = 0
    min_sequence_number: int = 0
    added_snapshot_id: int = 0
    added_files_count: int = 0
    existing_files_count: int = 0
    deleted_files_count: int = 0
    added_rows_count: int = 0
    existing_rows_count: int = 0
    deleted_rows_count: int = 0
    partitions: Optional[List[PartitionFieldSummary]] = None
    key_metadata: Optional[bytes] = None

    def to_avro(self) -> Dict[str, Any]:
        return {
            "manifest_path": self.manifest_path,
            "manifest_length": self.manifest_length,
            "partition_spec_id": self.partition_spec_id,
            "content": int(self.content),
            "sequence_number": self.sequence_number,
            "min_sequence_number": self.min_sequence_number,
            "added_snapshot_id": self.added_snapshot_id,
            "added_files_count": self.added_files_count,
            "existing_files_count": self.existing_files_count,
            "deleted_files_count": self.deleted_files_count,
            "added_rows_count": self.added_rows_count,
            "existing_rows_count": self.existing_rows_count,
            "deleted_rows_count": self.deleted_rows_count,
            "partitions": [summary.to_avro() for summary in self.partitions] if self.partitions is not None else None,
            "key_metadata": self.key_metadata,
        }

    @classmethod
    def from_avro(cls, record: Mapping[str, Any]) -> ManifestFile:
        """Build a ManifestFile from a record in the manifest list schema, counts that are unknown become zero."""
        partitions = record.get("partitions")
        return cls(
            manifest_path=record["manifest_path"],
            manifest_length=record["manifest_length"],
            partition_spec_id=record["partition_spec_id"],
            content=ManifestContent(record.get("content") or 0),
            sequence_number=record.get("sequence_number") or 0,
            min_sequence_number=record.get("min_sequence_number") or 0,
            added_snapshot_id=record.get("added_snapshot_id") or 0,
            added_files_count=record.get("added_files_count") or 0,
            existing_files_count=record.get("existing_files_count") or 0,
            deleted_files_count=record.get("deleted_files_count") or 0,
            added_rows_count=record.get("added_rows_count") or 0,
            existing_rows_count=record.get("existing_rows_count") or 0,
            deleted_rows_count=record.get("deleted_rows_count") or 0,
            partitions=[PartitionFieldSummary.from_avro(summary) for summary in partitions] if partitions is not None else None,
            key_metadata=record.get("key_metadata"),
        )


def is_vacuous_manifest(manifest: ManifestFile) -> bool:
    """Return True for a data manifest without any live file, which can be left out of the next manifest list."""
    return manifest.content == ManifestContent.DATA and manifest.added_files_count == 0 and manifest.existing_files_count == 0


def is_live_manifest(manifest: ManifestFile) -> bool:
    """Inverse of `is_vacuous_manifest`.

    Passed as the predicate of the entries to drop, it keeps only the vacuous
    entries, which is what the compaction of an earlier release did.
    """
    return not is_vacuous_manifest(manifest)


@dataclass
class AddFile:
    """A data file to add to a table, with its statistics keyed by column name."""

    file: str
    partitions: Dict[str, Any]
    record_count: int
    file_size: int
    file_format: FileFormat = FileFormat.PARQUET
    column_sizes: Optional[Dict[str, int]] = None
    value_counts: Optional[Dict[str, int]] = None
    null_value_counts: Optional[Dict[str, int]] = None
    nan_value_counts: Optional[Dict[str, int]] = None
    lower_bounds: Optional[Dict[str, bytes]] = None
    upper_bounds: Optional[Dict[str, bytes]] = None
    key_metadata: Optional[bytes] = None
    split_offsets: Optional[List[int]] = None
    equality_ids: Optional[List[int]] = None
    sort_order_id: Optional[int] = None
    content: DataFileContent = field(default=DataFileContent.DATA)


def _project_stats(stats: Optional[Mapping[str, Any]], schema: Schema) -> Optional[List[Dict[str, Any]]]:
    """Turn statistics keyed by column name into the key/value records keyed by field id."""
    if not stats:
        return None
    projected = []
    for name, value in stats.items():
        field_id = schema.find_field_id(name)
        if field_id is None:
            logger.debug("Skipping statistics of unknown column %s", name)
            continue
        projected.append({"key": field_id, "value": value})
    return projected or None


def _manifest_entry(
    add_file: AddFile, partition: Dict[str, Any], schema: Schema, snapshot_id: int, sequence_number: int
) -> Dict[str, Any]:
    return {
        "status": int(ManifestEntryStatus.ADDED),
        "snapshot_id": snapshot_id,
        "sequence_number": sequence_number,
        "file_sequence_number": sequence_number,
        "data_file": {
            "content": int(add_file.content),
            "file_path": add_file.file,
            "file_format": FileFormat(add_file.file_format).value,
            "partition": partition,
            "record_count": add_file.record_count,
            "file_size_in_bytes": add_file.file_size,
            "column_sizes": _project_stats(add_file.column_sizes, schema),
            "value_counts": _project_stats(add_file.value_counts, schema),
            "null_value_counts": _project_stats(add_file.null_value_counts, schema),
            "nan_value_counts": _project_stats(add_file.nan_value_counts, schema),
            "lower_bounds": _project_stats(add_file.lower_bounds, schema),
            "upper_bounds": _project_stats(add_file.upper_bounds, schema),
            "key_metadata": add_file.key_metadata,
            "split_offsets": add_file.split_offsets,
            "equality_ids": add_file.equality_ids,
            "sort_order_id": add_file.sort_order_id,
        },
    }


def manifest_metadata(spec: PartitionSpec, schema: Schema) -> Dict[str, str]:
    """Return the key/value metadata stored in the header of a manifest."""
    return {
        "schema": schema.model_dump_json(),
        "schema-id": str(schema.schema_id),
        "partition-spec": spec.fields_json(),
        "partition-spec-id": str(spec.spec_id),
        "format-version": str(DEFAULT_FORMAT_VERSION),
        "content": "data",
    }


def write_manifest(
    io: FileIO,
    location: str,
    spec: PartitionSpec,
    schema: Schema,
    entries: Iterable[Dict[str, Any]],
    logical: bool = True,
) -> int:
    """Write manifest entries to a new manifest file.

    Returns:
        The length of the manifest in bytes.
    """
    return write_avro(
        io.new_output(location),
        manifest_entry_schema_for(spec, schema, logical=logical),
        entries,
        manifest_metadata(spec, schema),
    )


def add_manifest(
    io: FileIO,
    metadata: TableMetadata,
    schema_id: int,
    spec_id: int,
    snapshot_id: int,
    sequence_number: int,
    files: List[AddFile],
) -> ManifestFile:
    """Write the data files into a new manifest and summarize it as a manifest list entry.

    Args:
        io: The FileIO to write the manifest with.
        metadata: The current metadata of the table.
        schema_id: The schema the partition spec refers to.
        spec_id: The partition spec of the data files.
        snapshot_id: The snapshot that adds the files.
        sequence_number: The sequence number of the snapshot.
        files: The data files, at least one.

    Returns:
        The manifest list entry of the new manifest.

    Raises:
        ValidationError: When there are no files, or a partition value is missing or malformed.
        NotFoundError: When the schema, the spec or the table location can't be resolved.
    """
    if not files:
        raise ValidationError("Cannot add a manifest without any data file")

    table_location = metadata.bucket
    schema = metadata.schema_by_id(schema_id)
    spec = metadata.spec_by_id(spec_id)

    added_rows = 0
    all_bounds = []
    entries = []
    for add_file in files:
        added_rows += add_file.record_count
        all_bounds.append(make_bounds(add_file.partitions, spec, schema))
        partition = partition_record(add_file.partitions, spec, schema)
        entries.append(_manifest_entry(add_file, partition, schema, snapshot_id, sequence_number))
    partitions = construct_partition_summaries(spec, schema, all_bounds)

    location = MetadataLocationProvider(table_location, metadata.properties).new_manifest_location()
    length = write_manifest(io, location, spec, schema, entries)
    logger.info("Wrote manifest %s with %d data files for snapshot %d", location, len(files), snapshot_id)

    return ManifestFile(
        manifest_path=location,
        manifest_length=length,
        partition_spec_id=spec.spec_id,
        content=ManifestContent.DATA,
        sequence_number=sequence_number,
        min_sequence_number=sequence_number,
        added_snapshot_id=snapshot_id,
        added_files_count=len(files),
        existing_files_count=0,
        deleted_files_count=0,
        added_rows_count=added_rows,
        existing_rows_count=0,
        deleted_rows_count=0,
        partitions=partitions,
    )


def manifest_list_metadata(snapshot_id: int, parent_snapshot_id: Optional[int], sequence_number: int) -> Dict[str, str]:
    return {
        "snapshot-id": str(snapshot_id),
        "parent-snapshot-id": str(parent_snapshot_id) if parent_snapshot_id else "null",
        "sequence-number": str(sequence_number),
        "format-version": str(DEFAULT_FORMAT_VERSION),
    }


def write_manifest_list(
    io: FileIO, location: str, manifests: Iterable[ManifestFile], metadata: Optional[Dict[str, str]] = None
) -> int:
    """Write a new manifest list.

    Returns:
        The length of the manifest list in bytes.
    """
    return write_avro(io.new_output(location), MANIFEST_LIST_SCHEMA, (manifest.to_avro() for manifest in manifests), metadata)


def read_manifest_list(io: FileIO, location: str) -> Iterator[ManifestFile]:
    """
    Read the manifests from the manifest list.

    The records are translated from the schema in the file header, so lists written
    by other tools and older format versions can be read as well.

    Args:
        io: The FileIO to read the manifest list with.
        location: The location of the manifest list.

    Returns:
        An iterator of ManifestFiles that are part of the list.
    """
    with AvroFile(io.new_input(location)) as reader:
        for record in translate_records(reader.schema, MANIFEST_LIST_SCHEMA, reader):
            yield ManifestFile.from_avro(record)


def read_manifest_entries(io: FileIO, manifest: ManifestFile) -> Iterator[Dict[str, Any]]:
    """Read the decoded entries of a manifest, in the schema the manifest was written with."""
    with AvroFile(io.new_input(manifest.manifest_path)) as reader:
        yield from reader


def _merged_manifests(
    reader: AvroFile, prepend: Iterable[ManifestFile], drop: Callable[[ManifestFile], bool]
) -> Iterator[Dict[str, Any]]:
    for manifest in prepend:
        yield manifest.to_avro()
    for record in translate_records(reader.schema, MANIFEST_LIST_SCHEMA, reader):
        manifest = ManifestFile.from_avro(record)
        if drop(manifest):
            logger.debug("Leaving out manifest %s", manifest.manifest_path)
            continue
        yield manifest.to_avro()


def update_manifest_list(
    io: FileIO,
    source_location: str,
    target_location: str,
    prepend: Iterable[ManifestFile],
    metadata: Optional[Dict[str, str]] = None,
    drop: Callable[[ManifestFile], bool] = is_vacuous_manifest,
) -> int:
    """Write a new manifest list with the entries of an existing one.

    The new entries come first, followed by every entry of the source list that
    is not dropped. The source is decoded while the target is written, one block
    at the time, so the size of the list doesn't matter.

    Args:
        io: The FileIO to read and write with.
        source_location: The manifest list to copy the entries from.
        target_location: The new manifest list.
        prepend: The entries to write first.
        metadata: The key/value metadata of the new list.
        drop: The predicate of the source entries to leave out.

    Returns:
        The length of the new manifest list in bytes.

    Raises:
        NoSuchFileError: When the source manifest list doesn't exist.
        StreamFailureError: When decoding, encoding or writing fails, the target is aborted.
    """
    try:
        with AvroFile(io.new_input(source_location)) as reader:
            return write_avro(
                io.new_output(target_location),
                MANIFEST_LIST_SCHEMA,
                _merged_manifests(reader, prepend, drop),
                metadata,
            )
    except (NotFoundError, ValidationError):
        raise
    except Exception as e:
        raise StreamFailureError(f"Failed to rewrite manifest list {source_location} into {target_location}: {e}") from e