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

import time
from enum import Enum
from functools import singledispatch
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import Field, SerializeAsAny

from pyicemeta.exceptions import CommitFailedException, ValidationError
from pyicemeta.partitioning import PartitionSpec
from pyicemeta.schema import Schema
from pyicemeta.table.metadata import TableMetadata
from pyicemeta.table.snapshots import MAIN_BRANCH, Snapshot, SnapshotRef, SnapshotRefType
from pyicemeta.typedef import IcebergBaseModel


class TableUpdateAction(Enum):
    add_schema = "add-schema"
    set_current_schema = "set-current-schema"
    add_spec = "add-spec"
    set_default_spec = "set-default-spec"
    add_snapshot = "add-snapshot"
    set_snapshot_ref = "set-snapshot-ref"
    remove_snapshots = "remove-snapshots"


class TableUpdate(IcebergBaseModel):
    action: TableUpdateAction


class AddSchemaUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.add_schema
    schema_: Schema = Field(alias="schema")
    last_column_id: int = Field(alias="last-column-id")


class SetCurrentSchemaUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.set_current_schema
    schema_id: int = Field(
        alias="schema-id", description="Schema ID to set as current, or -1 to set last added schema", default=-1
    )


class AddPartitionSpecUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.add_spec
    spec: PartitionSpec


class SetDefaultSpecUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.set_default_spec
    spec_id: int = Field(
        alias="spec-id", description="Partition spec ID to set as the default, or -1 to set last added spec", default=-1
    )


class AddSnapshotUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.add_snapshot
    snapshot: Snapshot


class SetSnapshotRefUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.set_snapshot_ref
    ref_name: str = Field(alias="ref-name", default=MAIN_BRANCH)
    type: Literal["tag", "branch"] = Field(default="branch")
    snapshot_id: int = Field(alias="snapshot-id")


class RemoveSnapshotsUpdate(TableUpdate):
    action: TableUpdateAction = TableUpdateAction.remove_snapshots
    snapshot_ids: List[int] = Field(alias="snapshot-ids")


class TableRequirement(IcebergBaseModel):
    type: str

    def validate(self, base_metadata: Optional[TableMetadata]) -> None:  # type: ignore[override]
        """Validate the requirement against the base metadata.

        Args:
            base_metadata: The base metadata to be validated against.

        Raises:
            CommitFailedException: When the requirement is not met.
        """
        ...


class AssertRefSnapshotId(TableRequirement):
    """The table branch or tag identified by the requirement's `ref` must reference the requirement's `snapshot-id`."""

    type: Literal["assert-ref-snapshot-id"] = Field(default="assert-ref-snapshot-id")
    ref: str = Field(default=MAIN_BRANCH)
    snapshot_id: int = Field(..., alias="snapshot-id")

    def validate(self, base_metadata: Optional[TableMetadata]) -> None:  # type: ignore[override]
        if base_metadata is None:
            raise CommitFailedException("Requirement failed: current table metadata is missing")
        ref = base_metadata.refs.get(self.ref)
        if ref is None:
            raise CommitFailedException(f"Requirement failed: {self.ref} was created concurrently")
        if ref.snapshot_id != self.snapshot_id:
            raise CommitFailedException(
                f"Requirement failed: {self.ref} has changed: expected id {self.snapshot_id}, found {ref.snapshot_id}"
            )


class TableIdentifier(IcebergBaseModel):
    """Fully Qualified identifier to a table."""

    namespace: List[str]
    name: str


class CommitTableRequest(IcebergBaseModel):
    """A pydantic BaseModel for a table commit request."""

    identifier: TableIdentifier = Field()
    requirements: Tuple[SerializeAsAny[TableRequirement], ...] = Field(default_factory=tuple)
    updates: Tuple[SerializeAsAny[TableUpdate], ...] = Field(default_factory=tuple)


class CommitTableResponse(IcebergBaseModel):
    """A pydantic BaseModel for a table commit response."""

    metadata: TableMetadata
    metadata_location: str = Field(alias="metadata-location", default="")


@singledispatch
def _apply_table_update(update: TableUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    """Apply a single update to the metadata.

    Args:
        update: The update to apply.
        base_metadata: The metadata to apply the update to.
        context: Changes that are shared between the updates of one commit.

    Returns:
        The updated metadata.
    """
    raise NotImplementedError(f"Unsupported table update: {update}")


@_apply_table_update.register(AddSchemaUpdate)
def _(update: AddSchemaUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    if any(schema.schema_id == update.schema_.schema_id for schema in base_metadata.schemas):
        raise ValidationError(f"Schema with id {update.schema_.schema_id} already exists")
    context["last_added_schema_id"] = update.schema_.schema_id
    return base_metadata.model_copy(
        update={
            "last_column_id": max(base_metadata.last_column_id, update.last_column_id),
            "schemas": base_metadata.schemas + [update.schema_],
        }
    )


@_apply_table_update.register(SetCurrentSchemaUpdate)
def _(update: SetCurrentSchemaUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    new_schema_id = update.schema_id
    if new_schema_id == -1:
        if "last_added_schema_id" not in context:
            raise ValidationError("Cannot set current schema to last added schema when no schema has been added")
        new_schema_id = context["last_added_schema_id"]

    if new_schema_id == base_metadata.current_schema_id:
        return base_metadata

    if not any(schema.schema_id == new_schema_id for schema in base_metadata.schemas):
        raise ValidationError(f"Schema with id {new_schema_id} does not exist")
    return base_metadata.model_copy(update={"current_schema_id": new_schema_id})


@_apply_table_update.register(AddPartitionSpecUpdate)
def _(update: AddPartitionSpecUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    if update.spec.spec_id in base_metadata.specs():
        raise ValidationError(f"Partition spec with id {update.spec.spec_id} already exists")
    context["last_added_spec_id"] = update.spec.spec_id
    last_partition_id = max(base_metadata.last_partition_id or 0, update.spec.last_assigned_field_id)
    return base_metadata.model_copy(
        update={
            "partition_specs": base_metadata.partition_specs + [update.spec],
            "last_partition_id": last_partition_id,
        }
    )


@_apply_table_update.register(SetDefaultSpecUpdate)
def _(update: SetDefaultSpecUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    new_spec_id = update.spec_id
    if new_spec_id == -1:
        if "last_added_spec_id" not in context:
            raise ValidationError("Cannot set default partition spec to last added spec when no spec has been added")
        new_spec_id = context["last_added_spec_id"]

    if new_spec_id == base_metadata.default_spec_id:
        return base_metadata

    if new_spec_id not in base_metadata.specs():
        raise ValidationError(f"Partition spec with id {new_spec_id} does not exist")
    return base_metadata.model_copy(update={"default_spec_id": new_spec_id})


@_apply_table_update.register(AddSnapshotUpdate)
def _(update: AddSnapshotUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    snapshot = update.snapshot
    if base_metadata.snapshot_by_id(snapshot.snapshot_id) is not None:
        raise ValidationError(f"Snapshot with id {snapshot.snapshot_id} already exists")
    if snapshot.sequence_number is not None and snapshot.sequence_number <= base_metadata.last_sequence_number:
        raise CommitFailedException(
            f"Cannot add snapshot with sequence number {snapshot.sequence_number} "
            f"older than last sequence number {base_metadata.last_sequence_number}"
        )
    context["last_updated_ms"] = snapshot.timestamp_ms
    return base_metadata.model_copy(
        update={
            "last_updated_ms": snapshot.timestamp_ms,
            "last_sequence_number": snapshot.sequence_number or base_metadata.last_sequence_number,
            "snapshots": base_metadata.snapshots + [snapshot],
        }
    )


@_apply_table_update.register(SetSnapshotRefUpdate)
def _(update: SetSnapshotRefUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    if base_metadata.snapshot_by_id(update.snapshot_id) is None:
        raise ValidationError(f"Cannot set {update.ref_name} to unknown snapshot: {update.snapshot_id}")

    refs = dict(base_metadata.refs)
    refs[update.ref_name] = SnapshotRef(snapshot_id=update.snapshot_id, snapshot_ref_type=SnapshotRefType(update.type))
    metadata_updates: Dict[str, Any] = {"refs": refs}
    if update.ref_name == MAIN_BRANCH:
        metadata_updates["current_snapshot_id"] = update.snapshot_id
        metadata_updates["last_updated_ms"] = context.get("last_updated_ms", int(time.time() * 1000))
    return base_metadata.model_copy(update=metadata_updates)


@_apply_table_update.register(RemoveSnapshotsUpdate)
def _(update: RemoveSnapshotsUpdate, base_metadata: TableMetadata, context: Dict[str, Any]) -> TableMetadata:
    for ref_name, ref in base_metadata.refs.items():
        if ref.snapshot_id in update.snapshot_ids:
            raise ValidationError(f"Cannot remove snapshot {ref.snapshot_id}, it is referenced by {ref_name}")
    snapshots = [snapshot for snapshot in base_metadata.snapshots if snapshot.snapshot_id not in update.snapshot_ids]
    return base_metadata.model_copy(update={"snapshots": snapshots})


def update_table_metadata(base_metadata: TableMetadata, updates: Tuple[TableUpdate, ...]) -> TableMetadata:
    """Update the table metadata with the given updates in one transaction.

    Args:
        base_metadata: The base metadata to be updated.
        updates: The updates in one commit.

    Returns:
        The metadata with the updates applied.
    """
    context: Dict[str, Any] = {}
    new_metadata = base_metadata

    for update in updates:
        new_metadata = _apply_table_update(update, new_metadata, context)

    return TableMetadata.model_validate(new_metadata.model_dump())
