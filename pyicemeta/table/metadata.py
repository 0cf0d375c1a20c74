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

import random
import time
import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from pyicemeta.exceptions import NoSuchLocationError, NoSuchPartitionSpecError, NoSuchSchemaError, NoSuchSnapshotError
from pyicemeta.partitioning import INITIAL_PARTITION_SPEC_ID, PartitionSpec
from pyicemeta.schema import INITIAL_SCHEMA_ID, Schema
from pyicemeta.table.snapshots import MAIN_BRANCH, Snapshot, SnapshotRef, SnapshotRefType
from pyicemeta.typedef import IcebergBaseModel

INITIAL_SEQUENCE_NUMBER = 0
SUPPORTED_TABLE_FORMAT_VERSION = 2


def _generate_snapshot_id() -> int:
    """Generate a random positive 64-bit snapshot id, zero is reserved for "no snapshot"."""
    snapshot_id = random.getrandbits(64) & 0x7FFFFFFFFFFFFFFF
    return snapshot_id or 1


def _now_ms() -> int:
    return int(time.time() * 1000)


class TableMetadata(IcebergBaseModel):
    """The metadata of an Iceberg table, as the catalog hands it out.

    Only the parts the metadata layer reads and writes are modelled, unknown
    keys sent by a catalog are ignored.
    """

    location: str = Field(default="")
    """The table's base location. This is used by writers to determine where
    to store data files, manifest files, and table metadata files."""

    table_uuid: uuid.UUID = Field(alias="table-uuid", default_factory=uuid.uuid4)
    """A UUID that identifies the table."""

    last_updated_ms: int = Field(alias="last-updated-ms", default_factory=_now_ms)
    """Timestamp in milliseconds from the unix epoch when the table
    was last updated."""

    last_column_id: int = Field(alias="last-column-id", default=0)
    """An integer; the highest assigned column ID for the table."""

    schemas: List[Schema] = Field(default_factory=list)
    """A list of schemas, stored as objects with schema-id."""

    current_schema_id: int = Field(alias="current-schema-id", default=INITIAL_SCHEMA_ID)
    """ID of the table's current schema."""

    partition_specs: List[PartitionSpec] = Field(alias="partition-specs", default_factory=list)
    """A list of partition specs, stored as full partition spec objects."""

    default_spec_id: int = Field(alias="default-spec-id", default=INITIAL_PARTITION_SPEC_ID)
    """ID of the "current" spec that writers should use by default."""

    last_partition_id: Optional[int] = Field(alias="last-partition-id", default=None)
    """An integer; the highest assigned partition field ID across all
    partition specs for the table."""

    properties: Dict[str, str] = Field(default_factory=dict)

    current_snapshot_id: Optional[int] = Field(alias="current-snapshot-id", default=None)
    """ID of the current table snapshot."""

    snapshots: List[Snapshot] = Field(default_factory=list)
    """A list of valid snapshots."""

    refs: Dict[str, SnapshotRef] = Field(default_factory=dict)
    """A map of snapshot references. There is always a main branch reference
    pointing to the current-snapshot-id even if the refs map is null."""

    last_sequence_number: int = Field(alias="last-sequence-number", default=INITIAL_SEQUENCE_NUMBER)
    """The table's highest assigned sequence number, a monotonically
    increasing long that tracks the order of snapshots in a table."""

    format_version: Literal[1, 2] = Field(alias="format-version", default=SUPPORTED_TABLE_FORMAT_VERSION)

    @field_validator("properties", mode="before")
    def transform_properties_dict_value_to_str(cls, properties: Dict[str, Any]) -> Dict[str, str]:
        return {key: str(value) for key, value in (properties or {}).items()}

    @field_validator("current_snapshot_id", mode="before")
    def cleanup_snapshot_id(cls, current_snapshot_id: Optional[int]) -> Optional[int]:
        # Older writers use -1 for a table without snapshots
        if current_snapshot_id is not None and int(current_snapshot_id) <= 0:
            return None
        return current_snapshot_id

    @model_validator(mode="after")
    def construct_refs(self) -> TableMetadata:
        if self.current_snapshot_id is not None and MAIN_BRANCH not in self.refs:
            self.refs[MAIN_BRANCH] = SnapshotRef(snapshot_id=self.current_snapshot_id, snapshot_ref_type=SnapshotRefType.BRANCH)
        return self

    @property
    def bucket(self) -> str:
        """The root location the metadata files of the table are written under.

        Raises:
            NoSuchLocationError: When the table doesn't have a location.
        """
        location = self.location.rstrip("/")
        if not location:
            raise NoSuchLocationError(f"Table {self.table_uuid} does not have a location")
        return location

    def schema_by_id(self, schema_id: int) -> Schema:
        """Get the schema by schema_id.

        Raises:
            NoSuchSchemaError: When there is no schema with the id.
        """
        if schema := next((schema for schema in self.schemas if schema.schema_id == schema_id), None):
            return schema
        raise NoSuchSchemaError(f"Schema with id {schema_id} not found in table {self.table_uuid}")

    def spec_by_id(self, spec_id: int) -> PartitionSpec:
        """Get the partition spec by spec_id.

        Raises:
            NoSuchPartitionSpecError: When there is no partition spec with the id.
        """
        if spec := next((spec for spec in self.partition_specs if spec.spec_id == spec_id), None):
            return spec
        raise NoSuchPartitionSpecError(f"Partition spec with id {spec_id} not found in table {self.table_uuid}")

    def schema(self) -> Schema:
        """Return the current schema of the table."""
        return self.schema_by_id(self.current_schema_id)

    def spec(self) -> PartitionSpec:
        """Return the default partition spec of the table."""
        return self.spec_by_id(self.default_spec_id)

    def specs(self) -> Dict[int, PartitionSpec]:
        return {spec.spec_id: spec for spec in self.partition_specs}

    def snapshot_by_id(self, snapshot_id: int) -> Optional[Snapshot]:
        """Get the snapshot by snapshot_id."""
        return next((snapshot for snapshot in self.snapshots if snapshot.snapshot_id == snapshot_id), None)

    def current_snapshot(self) -> Optional[Snapshot]:
        """Get the current snapshot for this table, or None if there is no current snapshot.

        Raises:
            NoSuchSnapshotError: When the current snapshot id is not in the list of snapshots.
        """
        if self.current_snapshot_id is None:
            return None
        if snapshot := self.snapshot_by_id(self.current_snapshot_id):
            return snapshot
        raise NoSuchSnapshotError(f"Current snapshot {self.current_snapshot_id} not found in table {self.table_uuid}")

    def next_sequence_number(self) -> int:
        return self.last_sequence_number + 1

    def new_snapshot_id(self) -> int:
        """Generate a new snapshot-id that's not in use."""
        snapshot_id = _generate_snapshot_id()
        while self.snapshot_by_id(snapshot_id) is not None:
            snapshot_id = _generate_snapshot_id()

        return snapshot_id
