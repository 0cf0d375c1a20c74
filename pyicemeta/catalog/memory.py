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
import logging
import threading
from typing import (
    Dict,
    List,
    Optional,
    Tuple,
    Union,
)

from pyicemeta.catalog import WAREHOUSE_LOCATION, Catalog
from pyicemeta.exceptions import NoSuchTableError, TableAlreadyExistsError
from pyicemeta.partitioning import UNPARTITIONED_PARTITION_SPEC, PartitionSpec
from pyicemeta.schema import Schema
from pyicemeta.table import Table
from pyicemeta.table.metadata import TableMetadata
from pyicemeta.table.update import CommitTableResponse, TableRequirement, TableUpdate, update_table_metadata
from pyicemeta.typedef import EMPTY_DICT, Identifier, Properties

logger = logging.getLogger(__name__)

DEFAULT_WAREHOUSE_LOCATION = "memory://warehouse"


class InMemoryCatalog(Catalog):
    """An in-memory catalog implementation for testing and local work.

    Commits are applied under a lock, so the requirements of a commit are checked
    against the metadata the commit is applied to, like a catalog service does.
    """

    __tables: Dict[Identifier, TableMetadata]

    def __init__(self, name: str, **properties: str) -> None:
        super().__init__(name, **properties)
        self.__tables = {}
        self._lock = threading.Lock()

    def create_table(
        self,
        identifier: Union[str, Identifier],
        schema: Schema,
        location: Optional[str] = None,
        partition_spec: PartitionSpec = UNPARTITIONED_PARTITION_SPEC,
        properties: Properties = EMPTY_DICT,
    ) -> Table:
        identifier = Catalog.identifier_to_tuple(identifier)
        warehouse = self.properties.get(WAREHOUSE_LOCATION, DEFAULT_WAREHOUSE_LOCATION).rstrip("/")
        metadata = TableMetadata(
            location=location or f"{warehouse}/{'/'.join(identifier)}",
            last_column_id=schema.highest_field_id,
            schemas=[schema],
            current_schema_id=schema.schema_id,
            partition_specs=[partition_spec],
            default_spec_id=partition_spec.spec_id,
            last_partition_id=partition_spec.last_assigned_field_id,
            properties=dict(properties),
        )
        with self._lock:
            if identifier in self.__tables:
                raise TableAlreadyExistsError(f"Table already exists: {identifier}")
            self.__tables[identifier] = metadata

        return Table(identifier=identifier, metadata=metadata, io=self._load_file_io(metadata.properties), catalog=self)

    def load_table_metadata(self, identifier: Union[str, Identifier]) -> TableMetadata:
        identifier = Catalog.identifier_to_tuple(identifier)
        try:
            return self.__tables[identifier]
        except KeyError as error:
            raise NoSuchTableError(f"Table does not exist: {identifier}") from error

    def commit_table_updates(
        self,
        identifier: Union[str, Identifier],
        requirements: Tuple[TableRequirement, ...],
        updates: Tuple[TableUpdate, ...],
    ) -> CommitTableResponse:
        identifier = Catalog.identifier_to_tuple(identifier)
        with self._lock:
            if identifier not in self.__tables:
                raise NoSuchTableError(f"Table does not exist: {identifier}")
            base_metadata = self.__tables[identifier]

            for requirement in requirements:
                requirement.validate(base_metadata)

            new_metadata = update_table_metadata(base_metadata, updates)
            self.__tables[identifier] = new_metadata

        logger.debug("Applied %d updates to %s", len(updates), identifier)
        return CommitTableResponse(metadata=new_metadata, metadata_location="")

    def drop_table(self, identifier: Union[str, Identifier]) -> None:
        identifier = Catalog.identifier_to_tuple(identifier)
        with self._lock:
            try:
                self.__tables.pop(identifier)
            except KeyError as error:
                raise NoSuchTableError(f"Table does not exist: {identifier}") from error

    def list_tables(self, namespace: Union[str, Identifier]) -> List[Identifier]:
        namespace_tuple = namespace if isinstance(namespace, tuple) else tuple(namespace.split("."))
        return [identifier for identifier in self.__tables if identifier[:-1] == namespace_tuple]
