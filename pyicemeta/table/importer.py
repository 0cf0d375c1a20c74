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
"""Register the files of a Redshift `UNLOAD ... MANIFEST` with a table.

The files stay where Redshift wrote them. Partition values are read from the
Hive style `key=value` segments of the file paths.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from urllib.parse import unquote

from pydantic import Field

from pyicemeta.exceptions import NoSuchPartitionSpecError, NoSuchSchemaError, ValidationError
from pyicemeta.manifest import AddFile
from pyicemeta.partitioning import PartitionField
from pyicemeta.schema import Schema
from pyicemeta.table.append import AddFileList, add_data_files
from pyicemeta.table.metadata import TableMetadata
from pyicemeta.table.update.snapshot import SubmitSnapshotResult
from pyicemeta.transforms import BucketTransform, IdentityTransform
from pyicemeta.typedef import IcebergBaseModel
from pyicemeta.types import is_primitive, primitive_kind, strtobool

if TYPE_CHECKING:
    from pyicemeta.table import Table

logger = logging.getLogger(__name__)

BATCH_SIZE = 10
HIVE_DEFAULT_PARTITION = "__HIVE_DEFAULT_PARTITION__"
PARTITION_SEGMENT_REGEX = re.compile(r"/([^=/]*=[^/=]*)")


class RedshiftEntryMeta(IcebergBaseModel):
    content_length: int = Field(default=0)
    record_count: int = Field(default=0)


class RedshiftEntry(IcebergBaseModel):
    url: str = Field()
    meta: RedshiftEntryMeta = Field(default_factory=RedshiftEntryMeta)


class RedshiftElement(IcebergBaseModel):
    name: str = Field()


class RedshiftSchema(IcebergBaseModel):
    elements: List[RedshiftElement] = Field(default_factory=list)


class RedshiftManifest(IcebergBaseModel):
    entries: List[RedshiftEntry] = Field(default_factory=list)
    schema_: RedshiftSchema = Field(alias="schema", default_factory=RedshiftSchema)


def parse_partition_path(url: str) -> Dict[str, str]:
    """Return the `key=value` segments of a path, in path order.

    Example:
        >>> parse_partition_path("s3://bucket/unload/dt=2024-01-01/region=eu%2Dwest/0000_part_00.parquet")
        {'dt': '2024-01-01', 'region': 'eu-west'}
    """
    partitions: Dict[str, str] = {}
    for segment in PARTITION_SEGMENT_REGEX.findall(url):
        key, _, value = segment.partition("=")
        partitions[unquote(key)] = unquote(value)
    return partitions


def _find_spec(metadata: TableMetadata, keys: List[str]) -> int:
    if not keys:
        return 0
    for spec in metadata.partition_specs:
        names = spec.field_names
        if len(names) == len(keys) and all(key in names for key in keys):
            return spec.spec_id
    raise NoSuchPartitionSpecError(f"No partition spec found for the partition keys: {', '.join(keys)}")


def _find_schema(metadata: TableMetadata, manifest: RedshiftManifest) -> int:
    element_names = {element.name for element in manifest.schema_.elements}
    for schema in metadata.schemas:
        if all(name in element_names for name in schema.required_field_names):
            return schema.schema_id
    raise NoSuchSchemaError("No schema found that has all the required fields of the unloaded columns")


def _partition_value(value: str, field: PartitionField, source_type: Any) -> Any:
    """Turn the text of a path segment into the value the partition transform expects."""
    if value == HIVE_DEFAULT_PARTITION:
        return None
    transform = field.transform_fn
    if isinstance(transform, BucketTransform):
        kind = "int"
    elif isinstance(transform, IdentityTransform) and is_primitive(source_type):
        kind = primitive_kind(source_type)
    else:
        return value
    try:
        if kind in ("int", "long"):
            return int(value)
        elif kind in ("float", "double"):
            return float(value)
        elif kind == "boolean":
            return strtobool(value)
    except ValueError as e:
        raise ValidationError(f"Partition value {value!r} of {field.name} is not valid for {field.transform}") from e
    return value


def _partition_values(partitions: Dict[str, str], metadata: TableMetadata, spec_id: int, schema: Schema) -> Dict[str, Any]:
    spec = metadata.spec_by_id(spec_id)
    values: Dict[str, Any] = {}
    for field in spec.fields:
        if field.name not in partitions:
            raise ValidationError(f"Partition path is missing {field.name}")
        values[field.name] = _partition_value(partitions[field.name], field, schema.find_type(field.source_id))
    return values


def load_redshift_manifest(table: Table, manifest_location: str) -> RedshiftManifest:
    with table.io.new_input(manifest_location).open() as stream:
        return RedshiftManifest.model_validate_json(stream.read())


def import_redshift_manifest(
    table: Table,
    manifest_location: str,
    schema_id: Optional[int] = None,
    spec_id: Optional[int] = None,
    retry_count: Optional[int] = None,
) -> SubmitSnapshotResult:
    """Add the files listed in a Redshift unload manifest to a table.

    The largest files are added first. The files are committed in appends of
    `BATCH_SIZE` files, the result of the last append is returned.

    Args:
        table: The table to add the files to.
        manifest_location: The location of the JSON manifest written by Redshift.
        schema_id: The schema of the files, by default the first schema whose
            required columns are all unloaded.
        spec_id: The partition spec of the files, by default the spec whose
            fields match the partition keys of each path.
        retry_count: The number of commit retries of every append.

    Returns:
        The result of the last append.

    Raises:
        ValidationError: When the manifest doesn't list any files, or a partition
            value doesn't fit its column.
        NotFoundError: When no matching schema or partition spec can be found.
    """
    manifest = load_redshift_manifest(table, manifest_location)
    entries = sorted(manifest.entries, key=lambda entry: entry.meta.content_length, reverse=True)
    metadata = table.refresh().metadata

    lists: List[AddFileList] = []
    result: Optional[SubmitSnapshotResult] = None

    for entry in entries:
        partitions = parse_partition_path(entry.url)
        entry_spec_id = spec_id if spec_id is not None else _find_spec(metadata, list(partitions))
        entry_schema_id = schema_id if schema_id is not None else _find_schema(metadata, manifest)
        schema = metadata.schema_by_id(entry_schema_id)

        file_list = next((fl for fl in lists if fl.spec_id == entry_spec_id and fl.schema_id == entry_schema_id), None)
        if file_list is None:
            file_list = AddFileList(spec_id=entry_spec_id, schema_id=entry_schema_id)
            lists.append(file_list)
        file_list.files.append(
            AddFile(
                file=entry.url,
                partitions=_partition_values(partitions, metadata, entry_spec_id, schema),
                record_count=entry.meta.record_count,
                file_size=entry.meta.content_length,
            )
        )

        if sum(len(fl.files) for fl in lists) >= BATCH_SIZE:
            result = add_data_files(table, lists, retry_count=retry_count)
            logger.info("Imported %d files from %s", sum(len(fl.files) for fl in lists), manifest_location)
            lists = []

    if any(fl.files for fl in lists):
        result = add_data_files(table, lists, retry_count=retry_count)
        logger.info("Imported %d files from %s", sum(len(fl.files) for fl in lists), manifest_location)

    if result is None:
        raise ValidationError("No files were processed")
    return result
