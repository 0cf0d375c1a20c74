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
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from pyicemeta.io import FileIO
from pyicemeta.io.locations import MetadataLocationProvider
from pyicemeta.partitioning import PartitionSpec
from pyicemeta.schema import Schema
from pyicemeta.table.maintenance import MaintenanceTable
from pyicemeta.table.metadata import TableMetadata
from pyicemeta.table.snapshots import Snapshot, SnapshotRef
from pyicemeta.table.update import (
    AddPartitionSpecUpdate,
    AddSchemaUpdate,
    CommitTableResponse,
    RemoveSnapshotsUpdate,
    SetCurrentSchemaUpdate,
    SetDefaultSpecUpdate,
    TableRequirement,
    TableUpdate,
)
from pyicemeta.table.update.snapshot import SubmitSnapshotResult, set_current_snapshot
from pyicemeta.typedef import Identifier

if TYPE_CHECKING:
    from pyicemeta.catalog import Catalog
    from pyicemeta.table.append import AddFileList

logger = logging.getLogger(__name__)


class Table:
    """A handle to a table in a catalog.

    The handle carries the catalog and the FileIO the metadata files are read and
    written with, and the metadata the table had when it was last loaded.
    """

    _identifier: Identifier
    metadata: TableMetadata
    io: FileIO
    catalog: Catalog

    def __init__(self, identifier: Identifier, metadata: TableMetadata, io: FileIO, catalog: Catalog) -> None:
        self._identifier = identifier
        self.metadata = metadata
        self.io = io
        self.catalog = catalog

    @property
    def maintenance(self) -> MaintenanceTable:
        """Return the MaintenanceTable object for maintenance.

        Returns:
            MaintenanceTable object based on this Table.
        """
        return MaintenanceTable(self)

    def refresh(self) -> Table:
        """Refresh the current table metadata.

        Returns:
            An updated instance of the same Iceberg table
        """
        self.metadata = self.catalog.load_table_metadata(self._identifier)
        return self

    def name(self) -> Identifier:
        """Return the identifier of this table.

        Returns:
            An Identifier tuple of the table name
        """
        return self._identifier

    def schema(self) -> Schema:
        """Return the schema for this table."""
        return self.metadata.schema()

    def schemas(self) -> Dict[int, Schema]:
        """Return a dict of the schema of this table."""
        return {schema.schema_id: schema for schema in self.metadata.schemas}

    def spec(self) -> PartitionSpec:
        """Return the partition spec of this table."""
        return self.metadata.spec()

    def specs(self) -> Dict[int, PartitionSpec]:
        """Return a dict the partition specs this table."""
        return self.metadata.specs()

    def properties(self) -> Dict[str, str]:
        """Properties of the table."""
        return self.metadata.properties

    def location(self) -> str:
        """Return the table's base location."""
        return self.metadata.location

    def location_provider(self) -> MetadataLocationProvider:
        """Return the table's location provider for new metadata files."""
        return MetadataLocationProvider(self.metadata.bucket, self.metadata.properties)

    def current_snapshot(self) -> Optional[Snapshot]:
        """Get the current snapshot for this table, or None if there is no current snapshot."""
        return self.metadata.current_snapshot()

    def snapshots(self) -> List[Snapshot]:
        return self.metadata.snapshots

    def snapshot_by_id(self, snapshot_id: int) -> Optional[Snapshot]:
        """Get the snapshot of this table with the given id, or None if there is no matching snapshot."""
        return self.metadata.snapshot_by_id(snapshot_id)

    def refs(self) -> Dict[str, SnapshotRef]:
        """Return the snapshot references in the table."""
        return self.metadata.refs

    def add_data_files(
        self,
        lists: Sequence[AddFileList],
        snapshot_id: Optional[int] = None,
        retry_count: Optional[int] = None,
        max_snapshots: Optional[int] = None,
    ) -> SubmitSnapshotResult:
        """Add data files to the table in a new append snapshot.

        See `pyicemeta.table.append.add_data_files`.
        """
        from pyicemeta.table.append import add_data_files

        return add_data_files(self, lists, snapshot_id=snapshot_id, retry_count=retry_count, max_snapshots=max_snapshots)

    def add_schema(self, schema: Schema) -> CommitTableResponse:
        """Add a schema to the table and make it the current schema."""
        return self._do_commit(
            (
                AddSchemaUpdate(schema_=schema, last_column_id=max(schema.highest_field_id, self.metadata.last_column_id)),
                SetCurrentSchemaUpdate(schema_id=schema.schema_id),
            ),
            (),
        )

    def add_partition_spec(self, spec: PartitionSpec) -> CommitTableResponse:
        """Add a partition spec to the table and make it the default spec."""
        return self._do_commit((AddPartitionSpecUpdate(spec=spec), SetDefaultSpecUpdate(spec_id=spec.spec_id)), ())

    def remove_snapshots(self, snapshot_ids: List[int]) -> CommitTableResponse:
        """Remove snapshots from the history of the table, a snapshot that is referenced can't be removed."""
        return self._do_commit((RemoveSnapshotsUpdate(snapshot_ids=snapshot_ids),), ())

    def set_current_snapshot(self, snapshot_id: int) -> CommitTableResponse:
        """Point the main branch at an existing snapshot, regardless of where it points now."""
        response = set_current_snapshot(self.catalog, self._identifier, snapshot_id)
        self.metadata = response.metadata
        return response

    def _do_commit(self, updates: Tuple[TableUpdate, ...], requirements: Tuple[TableRequirement, ...]) -> CommitTableResponse:
        response = self.catalog.commit_table_updates(self._identifier, requirements, updates)
        self.metadata = response.metadata
        logger.debug("Committed %d updates to %s", len(updates), self._identifier)
        return response

    def __eq__(self, other: Any) -> bool:
        """Return the equality of two instances of the Table class."""
        return self.name() == other.name() and self.metadata == other.metadata if isinstance(other, Table) else False

    def __repr__(self) -> str:
        """Return the string representation of the Table class."""
        snapshot_str = f"snapshot: {str(self.metadata.current_snapshot()) if self.metadata.current_snapshot_id else 'null'}"
        return f"{'.'.join(self._identifier)}(\n{self.schema()},\npartition by: {self.spec()},\n{snapshot_str})"
