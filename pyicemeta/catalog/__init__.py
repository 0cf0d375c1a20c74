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

from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Callable,
    Dict,
    Optional,
    Tuple,
    Union,
    cast,
)

from pyicemeta.exceptions import BadIdentityError
from pyicemeta.io import FileIO, load_file_io
from pyicemeta.typedef import EMPTY_DICT, Identifier, Properties, RecursiveDict
from pyicemeta.utils.config import Config, merge_config

if TYPE_CHECKING:
    from pyicemeta.table import Table
    from pyicemeta.table.metadata import TableMetadata
    from pyicemeta.table.update import CommitTableResponse, TableRequirement, TableUpdate

_ENV_CONFIG = Config()

TYPE = "type"
URI = "uri"
WAREHOUSE_LOCATION = "warehouse"


class CatalogType(Enum):
    REST = "rest"
    IN_MEMORY = "in-memory"


def load_rest(name: str, conf: Properties) -> Catalog:
    from pyicemeta.catalog.rest import RestCatalog

    return RestCatalog(name, **conf)


def load_in_memory(name: str, conf: Properties) -> Catalog:
    from pyicemeta.catalog.memory import InMemoryCatalog

    return InMemoryCatalog(name, **conf)


AVAILABLE_CATALOGS: dict[CatalogType, Callable[[str, Properties], Catalog]] = {
    CatalogType.REST: load_rest,
    CatalogType.IN_MEMORY: load_in_memory,
}


def infer_catalog_type(name: str, catalog_properties: RecursiveDict) -> Optional[CatalogType]:
    """Try to infer the type based on the dict.

    Args:
        name: Name of the catalog.
        catalog_properties: Catalog properties.

    Returns:
        The inferred type based on the provided properties.

    Raises:
        ValueError: Raises a ValueError in case properties are missing, or the wrong type.
    """
    if uri := catalog_properties.get(URI):
        if isinstance(uri, str):
            if uri.startswith("http"):
                return CatalogType.REST
        else:
            raise ValueError(f"Expects the URI to be a string, got: {type(uri)}")
    raise ValueError(
        f"URI missing, please provide using --uri, the config or environment variable PYICEMETA_CATALOG__{name.upper()}__URI"
    )


def load_catalog(name: Optional[str] = None, **properties: Optional[str]) -> Catalog:
    """Load the catalog based on the properties.

    Will look up the properties from the config, based on the name.

    Args:
        name: The name of the catalog.
        properties: The properties that are used next to the configuration.

    Returns:
        An initialized Catalog.

    Raises:
        ValueError: Raises a ValueError in case properties are missing or malformed,
            or if it could not determine the catalog based on the properties.
    """
    if name is None:
        name = _ENV_CONFIG.get_default_catalog_name()

    env = _ENV_CONFIG.get_catalog_config(name)
    conf: RecursiveDict = merge_config(env or {}, cast(RecursiveDict, properties))

    catalog_type: Optional[CatalogType]
    provided_catalog_type = conf.get(TYPE)

    catalog_type = None
    if provided_catalog_type and isinstance(provided_catalog_type, str):
        catalog_type = CatalogType(provided_catalog_type.lower())
    elif not provided_catalog_type:
        catalog_type = infer_catalog_type(name, conf)

    if catalog_type:
        return AVAILABLE_CATALOGS[catalog_type](name, cast(Dict[str, str], conf))

    raise ValueError(f"Could not initialize catalog with the following properties: {properties}")


class Catalog(ABC):
    """Base Catalog for table metadata.

    The catalog is the only thing a metadata commit synchronizes on: it hands out
    the current metadata of a table, and applies a set of updates only when all of
    their requirements still hold.

    Attributes:
        name (str): Name of the catalog.
        properties (Properties): Catalog properties.
    """

    name: str
    properties: Properties

    def __init__(self, name: str, **properties: str):
        self.name = name
        self.properties = properties

    def _load_file_io(self, properties: Properties = EMPTY_DICT) -> FileIO:
        return load_file_io({**self.properties, **properties})

    @abstractmethod
    def load_table_metadata(self, identifier: Union[str, Identifier]) -> TableMetadata:
        """Load the current metadata of a table.

        Args:
            identifier (str | Identifier): Table identifier.

        Returns:
            TableMetadata: the current metadata of the table.

        Raises:
            NoSuchTableError: If a table with the name does not exist.
        """

    @abstractmethod
    def commit_table_updates(
        self,
        identifier: Union[str, Identifier],
        requirements: Tuple[TableRequirement, ...],
        updates: Tuple[TableUpdate, ...],
    ) -> CommitTableResponse:
        """Commit updates to a table.

        Args:
            identifier (str | Identifier): Table identifier.
            requirements: (Tuple[TableRequirement, ...]): Table requirements.
            updates: (Tuple[TableUpdate, ...]): Table updates.

        Returns:
            CommitTableResponse: The updated metadata.

        Raises:
            NoSuchTableError: If a table with the given identifier does not exist.
            CommitFailedException: Requirement not met, or a conflict with a concurrent commit.
            CommitStateUnknownException: Failed due to an internal exception on the side of the catalog.
        """

    def load_table(self, identifier: Union[str, Identifier]) -> Table:
        """Load the table's metadata and return a handle to the table.

        Args:
            identifier (str | Identifier): Table identifier.

        Returns:
            Table: the table instance with its metadata.

        Raises:
            NoSuchTableError: If a table with the name does not exist.
        """
        from pyicemeta.table import Table

        identifier_tuple = self.identifier_to_tuple(identifier)
        metadata = self.load_table_metadata(identifier_tuple)
        return Table(
            identifier=identifier_tuple,
            metadata=metadata,
            io=self._load_file_io(metadata.properties),
            catalog=self,
        )

    @staticmethod
    def identifier_to_tuple(identifier: Union[str, Identifier]) -> Identifier:
        """Parse an identifier to a tuple.

        If the identifier is a string, it is split into a tuple on '.'. If it is a tuple, it is used as-is.

        Args:
            identifier (str | Identifier): an identifier, either a string or tuple of strings.

        Returns:
            Identifier: a tuple of strings.

        Raises:
            BadIdentityError: When the identifier doesn't consist of a namespace and a table name.
        """
        identifier_tuple = identifier if isinstance(identifier, tuple) else tuple(str.split(identifier, "."))
        if len(identifier_tuple) < 2 or not all(identifier_tuple):
            raise BadIdentityError(f"Invalid table identifier, expected <namespace>.<table>: {identifier}")
        return identifier_tuple

    @staticmethod
    def table_name_from(identifier: Union[str, Identifier]) -> str:
        """Extract table name from a table identifier.

        Args:
            identifier (str | Identifier): a table identifier.

        Returns:
            str: Table name.
        """
        return Catalog.identifier_to_tuple(identifier)[-1]

    @staticmethod
    def namespace_from(identifier: Union[str, Identifier]) -> Identifier:
        """Extract table namespace from a table identifier.

        Args:
            identifier (Union[str, Identifier]): a table identifier.

        Returns:
            Identifier: Namespace identifier.
        """
        return Catalog.identifier_to_tuple(identifier)[:-1]

    def __repr__(self) -> str:
        """Return the string representation of the Catalog class."""
        return f"{self.name} ({self.__class__})"
