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
"""Utility class for converting between Avro and Iceberg schemas."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Union

from pyicemeta.conversions import decimal_to_unscaled, unscaled_to_bytes
from pyicemeta.exceptions import ValidationError
from pyicemeta.partitioning import PartitionSpec, result_type
from pyicemeta.schema import Schema
from pyicemeta.transforms import DayTransform
from pyicemeta.types import primitive_kind
from pyicemeta.utils.datetime import date_to_days, datetime_to_micros, time_to_micros

logger = logging.getLogger(__name__)

AvroType = Union[str, Dict[str, Any], List[Any]]

PARTITION_RECORD_NAME = "r102"

PRIMITIVE_FIELD_TYPE_MAPPING: Dict[str, str] = {
    "boolean": "boolean",
    "int": "int",
    "long": "long",
    "float": "float",
    "double": "double",
    "date": "int",
    "time": "long",
    "timestamp": "long",
    "timestamptz": "long",
    "string": "string",
    "uuid": "string",
    "binary": "bytes",
    "fixed": "bytes",
    "decimal": "bytes",
}

LOGICAL_FIELD_TYPE_MAPPING: Dict[str, AvroType] = {
    "date": {"type": "int", "logicalType": "date"},
    "time": {"type": "long", "logicalType": "time-micros"},
    "timestamp": {"type": "long", "logicalType": "timestamp-micros", "adjust-to-utc": False},
    "timestamptz": {"type": "long", "logicalType": "timestamp-micros", "adjust-to-utc": True},
}


def iceberg_to_avro_type(field_type: str, logical: bool = True) -> AvroType:
    """Convert an Iceberg primitive type to the Avro type a partition value is stored as.

    Args:
        field_type: The Iceberg primitive type string.
        logical: Annotate dates, times and timestamps with their Avro logical type,
            otherwise only the underlying int or long is written.

    Raises:
        ValidationError: If the type is not a primitive.
    """
    kind = primitive_kind(field_type)
    if logical and kind in LOGICAL_FIELD_TYPE_MAPPING:
        return dict(LOGICAL_FIELD_TYPE_MAPPING[kind])  # type: ignore[arg-type]
    return PRIMITIVE_FIELD_TYPE_MAPPING[kind]


def partition_to_avro_schema(spec: PartitionSpec, schema: Schema, logical: bool = True) -> Dict[str, Any]:
    """Build the Avro record of the partition tuple of a data file.

    Every field is optional. A day partition is annotated as a date when `logical`
    is set, the other time based transforms are plain ints.

    Raises:
        NoSuchFieldError: When the source of a partition field is not in the schema.
        ValidationError: When a partition field can't be stored.
    """
    fields = []
    for field in spec.fields:
        output_type = result_type(field, schema)
        if output_type is None:
            raise ValidationError(f"Cannot store partition field {field.name} with transform {field.transform}")
        if logical and isinstance(field.transform_fn, DayTransform):
            avro_type: AvroType = dict(LOGICAL_FIELD_TYPE_MAPPING["date"])  # type: ignore[arg-type]
        else:
            avro_type = iceberg_to_avro_type(output_type, logical=logical)
        fields.append({"name": field.name, "type": ["null", avro_type], "default": None, "field-id": field.field_id})
    return {"type": "record", "name": PARTITION_RECORD_NAME, "fields": fields}


def to_primitive(value: Any) -> Any:
    """Turn a value decoded through an Avro logical type back into the value it is stored as.

    Dates become days from epoch, times and timestamps become microseconds, UUIDs
    become their string and decimals their unscaled big-endian bytes. Everything
    else is returned as it is.
    """
    if isinstance(value, datetime):
        return datetime_to_micros(value)
    if isinstance(value, date):
        return date_to_days(value)
    if isinstance(value, time):
        return time_to_micros(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return unscaled_to_bytes(decimal_to_unscaled(value))
    return value


def strip_logical_values(record: Any) -> Any:
    """Apply `to_primitive` to every value of a decoded record, recursing into nested records, arrays and maps."""
    if isinstance(record, dict):
        return {key: strip_logical_values(value) for key, value in record.items()}
    if isinstance(record, list):
        return [strip_logical_values(value) for value in record]
    if isinstance(record, tuple):
        return tuple(strip_logical_values(value) for value in record)
    return to_primitive(record)
