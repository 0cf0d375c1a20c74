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

import math
from functools import cached_property
from typing import Any, List, Mapping, Optional, Tuple, Union

from pydantic import Field

from pyicemeta.conversions import compare_bytes, compare_decoded, from_bytes
from pyicemeta.exceptions import NoSuchFieldError, ValidationError
from pyicemeta.schema import Schema
from pyicemeta.transforms import Transform, encode_value, parse_transform
from pyicemeta.typedef import IcebergBaseModel
from pyicemeta.types import NUMERIC_TYPES

INITIAL_PARTITION_SPEC_ID = 0
PARTITION_FIELD_ID_START: int = 1000


class _NaNBound:
    """Marks a partition value that is NaN, which has no bound encoding."""

    _instance: Optional[_NaNBound] = None

    def __new__(cls) -> _NaNBound:
        """Return the single NaN marker."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        """Return the string representation of the NaN marker."""
        return "NAN"


NAN = _NaNBound()

Bound = Union[bytes, None, _NaNBound]


class PartitionField(IcebergBaseModel):
    """PartitionField represents how one partition value is derived from the source column via transformation.

    Attributes:
        source_id(int): The source column id of table's schema.
        field_id(int): The partition field id across all the table partition specs.
        transform(str): The transform used to produce partition values from source column.
        name(str): The name of this partition field.
    """

    source_id: int = Field(alias="source-id")
    field_id: int = Field(alias="field-id")
    transform: str = Field()
    name: str = Field()

    @property
    def transform_fn(self) -> Transform:
        return parse_transform(self.transform)

    def __str__(self) -> str:
        """Return the string representation of the PartitionField class."""
        return f"{self.field_id}: {self.name}: {self.transform}({self.source_id})"


class PartitionSpec(IcebergBaseModel):
    """
    PartitionSpec captures the transformation from table data to partition values.

    Attributes:
        spec_id(int): any change to PartitionSpec will produce a new specId.
        fields(Tuple[PartitionField): list of partition fields to produce partition values.
    """

    spec_id: int = Field(alias="spec-id", default=INITIAL_PARTITION_SPEC_ID)
    fields: Tuple[PartitionField, ...] = Field(default_factory=tuple)

    def __init__(self, *fields: PartitionField, **data: Any):
        if fields:
            data["fields"] = tuple(fields)
        super().__init__(**data)

    def is_unpartitioned(self) -> bool:
        return not self.fields

    @property
    def last_assigned_field_id(self) -> int:
        if self.fields:
            return max(pf.field_id for pf in self.fields)
        return PARTITION_FIELD_ID_START - 1

    @cached_property
    def field_names(self) -> List[str]:
        return [field.name for field in self.fields]

    def result_types(self, schema: Schema) -> List[Optional[str]]:
        """Return the primitive type every partition field is stored as, in spec order."""
        return [result_type(field, schema) for field in self.fields]

    def fields_json(self) -> str:
        return "[" + ",".join(field.model_dump_json() for field in self.fields) + "]"

    def __str__(self) -> str:
        """Produce a human-readable string representation of PartitionSpec."""
        result_str = "["
        if self.fields:
            result_str += "\n  " + "\n  ".join([str(field) for field in self.fields]) + "\n"
        result_str += "]"
        return result_str


UNPARTITIONED_PARTITION_SPEC = PartitionSpec(spec_id=0)


def result_type(field: PartitionField, schema: Schema) -> Optional[str]:
    """Resolve the source column of a partition field and derive the type of its bounds.

    Raises:
        NoSuchFieldError: When the source column is not part of the schema.
    """
    try:
        source = schema.find_field(field.source_id)
    except NoSuchFieldError as e:
        raise NoSuchFieldError(f"Schema field not found for source-id {field.source_id}") from e
    return field.transform_fn.result_type(source.field_type)


def make_bounds(partition_values: Mapping[str, Any], spec: PartitionSpec, schema: Schema) -> List[Bound]:
    """Encode the raw partition values of a single data file, one bound per partition field.

    Args:
        partition_values: The raw partition values keyed by partition field name.
        spec: The partition spec of the data file.
        schema: The schema the spec's source ids refer to.

    Returns:
        The encoded bound, None for a null value or NAN for a NaN value, in spec order.

    Raises:
        NoSuchFieldError: When a source column is not part of the schema.
        ValidationError: When a partition value is missing or doesn't fit the transform.
    """
    bounds: List[Bound] = []
    for field in spec.fields:
        output_type = result_type(field, schema)
        if field.name not in partition_values:
            raise ValidationError(f"Partition values are missing {field.name}")
        raw = partition_values[field.name]
        if isinstance(raw, float) and math.isnan(raw):
            bounds.append(NAN)
        elif raw is None:
            bounds.append(None)
        else:
            bounds.append(encode_value(raw, field.transform_fn, output_type))
    return bounds


def partition_record(partition_values: Mapping[str, Any], spec: PartitionSpec, schema: Schema) -> dict[str, Any]:
    """Build the partition tuple of a data file as it is written into a manifest."""
    record: dict[str, Any] = {}
    for field in spec.fields:
        output_type = result_type(field, schema)
        raw = partition_values.get(field.name)
        if raw is None or output_type is None:
            record[field.name] = None
        elif isinstance(raw, float) and math.isnan(raw):
            record[field.name] = raw
        else:
            record[field.name] = field.transform_fn.transform(raw, output_type)
    return record


def compare_bounds(left: bytes, right: bytes, field: PartitionField, schema: Schema) -> int:
    """Compare two encoded bounds of a partition field.

    Only the fixed-width numeric result types (boolean, int, long, float and double) are
    decoded, all the others are compared byte by byte. The bytes of a little-endian
    integer don't sort like the integer itself, so this ordering is wrong for the
    date, time and timestamp result of an identity transform as soon as values differ
    beyond the lowest byte. Use `compare_bound_values` where the order matters.

    Returns:
        A negative number, zero, or a positive number.
    """
    output_type = result_type(field, schema)
    if output_type is not None and output_type in NUMERIC_TYPES:
        return compare_decoded(output_type, left, right)
    return compare_bytes(left, right)


def compare_bound_values(left: bytes, right: bytes, output_type: Optional[str]) -> int:
    """Compare two encoded bounds by their decoded value, for every result type."""
    if output_type is None:
        return compare_bytes(left, right)
    return compare_decoded(output_type, left, right)


def min_bound(left: Optional[bytes], right: Optional[bytes], output_type: Optional[str]) -> Optional[bytes]:
    """Return the smaller bound, a missing bound never wins and ties keep the left one."""
    if left is None:
        return right
    if right is None:
        return left
    return right if compare_bound_values(right, left, output_type) < 0 else left


def max_bound(left: Optional[bytes], right: Optional[bytes], output_type: Optional[str]) -> Optional[bytes]:
    """Return the larger bound, a missing bound never wins and ties keep the left one."""
    if left is None:
        return right
    if right is None:
        return left
    return right if compare_bound_values(right, left, output_type) > 0 else left


def decode_bound(bound: bytes, field: PartitionField, schema: Schema) -> Any:
    output_type = result_type(field, schema)
    if output_type is None:
        return bytes(bound)
    return from_bytes(output_type, bound)
