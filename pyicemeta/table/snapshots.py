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
import time
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

from pydantic import Field, PrivateAttr, model_serializer

from pyicemeta.io import FileIO
from pyicemeta.manifest import AddFile, DataFileContent, ManifestContent, ManifestFile, read_manifest_list
from pyicemeta.typedef import IcebergBaseModel

OPERATION = "operation"
ADDED_DATA_FILES = "added-data-files"
DELETED_DATA_FILES = "deleted-data-files"
ADDED_RECORDS = "added-records"
DELETED_RECORDS = "deleted-records"
ADDED_FILE_SIZE = "added-files-size"
REMOVED_FILE_SIZE = "removed-files-size"
CHANGED_PARTITION_COUNT = "changed-partition-count"

MAIN_BRANCH = "main"


class Operation(Enum):
    """Describes the operation.

    Possible operation values are:
        - append: Only data files were added and no files were removed.
        - replace: Data and delete files were added and removed without changing table data; i.e., compaction, changing the data file format, or relocating data files.
        - overwrite: Data and delete files were added and removed in a logical overwrite operation.
        - delete: Data files were removed and their contents logically deleted and/or delete files were added to delete rows.
    """

    APPEND = "append"
    REPLACE = "replace"
    OVERWRITE = "overwrite"
    DELETE = "delete"

    def __repr__(self) -> str:
        """Return the string representation of the Operation class."""
        return f"Operation.{self.name}"


class Summary(IcebergBaseModel, Mapping[str, str]):
    """A class that stores the summary information for a Snapshot.

    The operation is required, the other properties are free-form strings. The commit
    protocol reads the operation of a concurrent snapshot to decide if it can be merged.
    """

    operation: Operation = Field()
    _additional_properties: Dict[str, str] = PrivateAttr()

    def __init__(self, operation: Operation, **data: Any) -> None:
        super().__init__(operation=operation, **data)
        self._additional_properties = {key: str(value) for key, value in data.items()}

    def __getitem__(self, __key: str) -> Optional[Any]:  # type: ignore
        """Return a key as it is a map."""
        if __key == OPERATION:
            return self.operation
        else:
            return self._additional_properties.get(__key)

    def __iter__(self) -> Any:
        """Iterate over the keys, the operation first."""
        yield OPERATION
        yield from self._additional_properties

    def __len__(self) -> int:
        """Return the number of keys in the summary."""
        # Operation is required
        return 1 + len(self._additional_properties)

    @model_serializer
    def ser_model(self) -> Dict[str, str]:
        return {
            OPERATION: str(self.operation.value),
            **self._additional_properties,
        }

    @property
    def additional_properties(self) -> Dict[str, str]:
        return self._additional_properties

    def get_int(self, key: str) -> int:
        value = self._additional_properties.get(key)
        return int(value) if value else 0

    def __repr__(self) -> str:
        """Return the string representation of the Summary class."""
        repr_properties = f", **{repr(self._additional_properties)}" if self._additional_properties else ""
        return f"Summary({repr(self.operation)}{repr_properties})"

    def __eq__(self, other: Any) -> bool:
        """Compare if the summary is equal to another summary."""
        return (
            self.operation == other.operation and self.additional_properties == other.additional_properties
            if isinstance(other, Summary)
            else False
        )


class Snapshot(IcebergBaseModel):
    snapshot_id: int = Field(alias="snapshot-id")
    parent_snapshot_id: Optional[int] = Field(alias="parent-snapshot-id", default=None)
    sequence_number: Optional[int] = Field(alias="sequence-number", default=None)
    timestamp_ms: int = Field(alias="timestamp-ms", default_factory=lambda: int(time.time() * 1000))
    manifest_list: Optional[str] = Field(
        alias="manifest-list", description="Location of the snapshot's manifest list file", default=None
    )
    summary: Optional[Summary] = Field(default=None)
    schema_id: Optional[int] = Field(alias="schema-id", default=None)

    def __str__(self) -> str:
        """Return the string representation of the Snapshot class."""
        operation = f"{self.summary.operation}: " if self.summary else ""
        parent_id = f", parent_id={self.parent_snapshot_id}" if self.parent_snapshot_id else ""
        schema_id = f", schema_id={self.schema_id}" if self.schema_id is not None else ""
        result_str = f"{operation}id={self.snapshot_id}{parent_id}{schema_id}"
        return result_str

    @property
    def operation(self) -> Optional[Operation]:
        return self.summary.operation if self.summary else None

    def manifests(self, io: FileIO) -> List[ManifestFile]:
        if self.manifest_list is not None:
            return list(read_manifest_list(io, self.manifest_list))
        return []


class SnapshotRefType(str, Enum):
    BRANCH = "branch"
    TAG = "tag"


class SnapshotRef(IcebergBaseModel):
    snapshot_id: int = Field(alias="snapshot-id")
    snapshot_ref_type: SnapshotRefType = Field(alias="type", default=SnapshotRefType.BRANCH)


class SnapshotSummaryCollector:
    """Sums up the data files and manifests a snapshot adds into the summary properties."""

    added_size: int
    removed_size: int
    added_files: int
    removed_files: int
    added_records: int
    deleted_records: int

    def __init__(self) -> None:
        self.added_size = 0
        self.removed_size = 0
        self.added_files = 0
        self.removed_files = 0
        self.added_records = 0
        self.deleted_records = 0

    def add_file(self, data_file: AddFile) -> None:
        if data_file.content != DataFileContent.DATA:
            raise ValueError(f"Only data files can be added, got: {data_file.content!r}")
        self.added_files += 1
        self.added_records += data_file.record_count
        self.added_size += data_file.file_size

    def added_manifest(self, manifest: ManifestFile) -> None:
        if manifest.content != ManifestContent.DATA:
            raise ValueError(f"Unknown manifest file content: {manifest.content!r}")
        self.added_files += manifest.added_files_count
        self.added_records += manifest.added_rows_count
        self.removed_files += manifest.deleted_files_count
        self.deleted_records += manifest.deleted_rows_count

    def merge_summary(self, summary: Mapping[str, Any]) -> None:
        """Add the counters of a concurrent snapshot that this one is rebased onto."""
        self.added_files += int(summary.get(ADDED_DATA_FILES) or 0)
        self.added_records += int(summary.get(ADDED_RECORDS) or 0)
        self.added_size += int(summary.get(ADDED_FILE_SIZE) or 0)

    def build(self) -> Dict[str, str]:
        return {
            ADDED_DATA_FILES: str(self.added_files),
            ADDED_RECORDS: str(self.added_records),
            ADDED_FILE_SIZE: str(self.added_size),
        }


def replace_summary() -> Summary:
    """Return the summary of a snapshot that rewrites metadata without changing the table data."""
    return Summary(
        Operation.REPLACE,
        **{
            ADDED_DATA_FILES: "0",
            DELETED_DATA_FILES: "0",
            ADDED_RECORDS: "0",
            DELETED_RECORDS: "0",
            ADDED_FILE_SIZE: "0",
            REMOVED_FILE_SIZE: "0",
            CHANGED_PARTITION_COUNT: "0",
        },
    )
