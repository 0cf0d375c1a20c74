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
"""Translate decoded Avro records from the schema they were written with to another schema.

Manifests and manifest lists are written by many tools, each with its own field
order, optional fields and naming. The reader decodes a file with the schema from
its header, and the records are then translated into the schema this library
writes. Fields are matched by their `field-id` first and by their name second.

Example:
    >>> write_schema = {"type": "record", "name": "r", "fields": [{"name": "a", "type": "int", "field-id": 1}]}
    >>> read_schema = {"type": "record", "name": "r", "fields": [
    ...     {"name": "renamed", "type": "int", "field-id": 1},
    ...     {"name": "b", "type": ["null", "long"], "default": None, "field-id": 2},
    ... ]}
    >>> translate_record(write_schema, read_schema, {"a": 1})
    {'renamed': 1, 'b': None}
"""

from __future__ import annotations

import copy
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pyicemeta.exceptions import TranslationError

AvroSchema = Any

NAMED_TYPES = ("record", "enum", "fixed", "error")
PRIMITIVE_TYPES = ("null", "boolean", "int", "long", "float", "double", "bytes", "string")

FIELD_ID_PROP = "field-id"


def _full_name(schema: Dict[str, Any], namespace: Optional[str]) -> Tuple[str, Optional[str]]:
    name = schema["name"]
    if "." in name:
        return name, name.rsplit(".", 1)[0]
    namespace = schema.get("namespace", namespace)
    return (f"{namespace}.{name}" if namespace else name), namespace


def index_named_types(schema: AvroSchema) -> Dict[str, Dict[str, Any]]:
    """Collect the named types (records, enums and fixed) of a schema, by name and by full name."""
    names: Dict[str, Dict[str, Any]] = {}

    def _visit(node: AvroSchema, namespace: Optional[str]) -> None:
        if isinstance(node, list):
            for branch in node:
                _visit(branch, namespace)
        elif isinstance(node, dict):
            node_type = node.get("type")
            if node_type in NAMED_TYPES and "name" in node:
                full_name, namespace = _full_name(node, namespace)
                names[full_name] = node
                names.setdefault(node["name"].rsplit(".", 1)[-1], node)
            if node_type in ("record", "error"):
                for field in node.get("fields", []):
                    _visit(field["type"], namespace)
            elif node_type == "array":
                _visit(node["items"], namespace)
            elif node_type == "map":
                _visit(node["values"], namespace)
            elif isinstance(node_type, (dict, list)):
                _visit(node_type, namespace)

    _visit(schema, None)
    return names


class RecordTranslator:
    """Translates values from a source schema to a target schema.

    Args:
        source_schema: The Avro schema the values were decoded with.
        target_schema: The Avro schema the values should conform to.
    """

    def __init__(self, source_schema: AvroSchema, target_schema: AvroSchema) -> None:
        self.source_schema = source_schema
        self.target_schema = target_schema
        self._source_names = index_named_types(source_schema)
        self._target_names = index_named_types(target_schema)

    def translate(self, value: Any) -> Any:
        return self._translate(self.source_schema, self.target_schema, value)

    def _resolve(self, schema: AvroSchema, names: Dict[str, Dict[str, Any]]) -> AvroSchema:
        # A {"type": "string"} wrapper is the same as "string", a wrapper around a named
        # reference or a union is unwrapped as well
        while True:
            if isinstance(schema, str):
                if schema in PRIMITIVE_TYPES:
                    return schema
                if schema not in names:
                    raise TranslationError(f"Unknown named type: {schema}")
                return names[schema]
            if isinstance(schema, dict) and len(schema) == 1 and "type" in schema:
                schema = schema["type"]
                continue
            if isinstance(schema, dict) and isinstance(schema.get("type"), (list, dict)) and "logicalType" not in schema:
                schema = schema["type"]
                continue
            if isinstance(schema, dict) and schema.get("type") not in PRIMITIVE_TYPES + NAMED_TYPES + ("array", "map"):
                schema = schema["type"]
                continue
            return schema

    def _translate(self, source: AvroSchema, target: AvroSchema, value: Any) -> Any:
        if value is None:
            return None

        source = self._resolve(source, self._source_names)
        target = self._resolve(target, self._target_names)

        if isinstance(target, list):
            return self._translate_union(source, target, value)
        if isinstance(source, list):
            for source_branch in source:
                try:
                    return self._translate(source_branch, target, value)
                except TranslationError:
                    continue
            raise TranslationError(f"No branch of {source} translates to {_type_name(target)}")

        target_type = target["type"] if isinstance(target, dict) else target
        if target_type in ("record", "error"):
            return self._translate_struct(source, target, value)
        elif target_type == "array":
            if not isinstance(value, (list, tuple)) or _type_name(source) != "array":
                raise TranslationError(f"Expected an array, got: {type(value).__name__}")
            return [self._translate(source["items"], target["items"], element) for element in value]
        elif target_type == "map":
            if not isinstance(value, dict) or _type_name(source) != "map":
                raise TranslationError(f"Expected a map, got: {type(value).__name__}")
            return {key: self._translate(source["values"], target["values"], element) for key, element in value.items()}
        else:
            _check_primitive(target, value)
            return value

    def _translate_union(self, source: AvroSchema, target: List[AvroSchema], value: Any) -> Any:
        source_branches = source if isinstance(source, list) else [source]
        for target_branch in target:
            for source_branch in source_branches:
                try:
                    return self._translate(source_branch, target_branch, value)
                except TranslationError:
                    continue
        return value

    def _translate_struct(self, source: AvroSchema, target: Dict[str, Any], value: Any) -> Dict[str, Any]:
        if not isinstance(value, dict):
            raise TranslationError(f"Expected a record for {target.get('name')}, got: {type(value).__name__}")
        if _type_name(source) not in ("record", "error"):
            raise TranslationError(f"Cannot translate {_type_name(source)} into record {target.get('name')}")

        by_id: Dict[Any, Dict[str, Any]] = {}
        by_name: Dict[str, Dict[str, Any]] = {}
        for source_field in source.get("fields", []):
            if FIELD_ID_PROP in source_field:
                by_id[source_field[FIELD_ID_PROP]] = source_field
            by_name[source_field["name"]] = source_field

        result: Dict[str, Any] = {}
        for target_field in target.get("fields", []):
            source_field = None
            if FIELD_ID_PROP in target_field:
                source_field = by_id.get(target_field[FIELD_ID_PROP])
            if source_field is None:
                source_field = by_name.get(target_field["name"])

            if source_field is None or source_field["name"] not in value:
                if "default" in target_field:
                    result[target_field["name"]] = copy.deepcopy(target_field["default"])
                continue

            result[target_field["name"]] = self._translate(source_field["type"], target_field["type"], value[source_field["name"]])
        return result


def _type_name(schema: AvroSchema) -> str:
    if isinstance(schema, list):
        return "union"
    if isinstance(schema, dict):
        return schema["type"] if isinstance(schema["type"], str) else _type_name(schema["type"])
    return schema


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_primitive(schema: AvroSchema, value: Any) -> None:
    """Check that a decoded value can be written as the primitive, logical types accept their Python objects."""
    avro_type = _type_name(schema)
    logical_type = schema.get("logicalType") if isinstance(schema, dict) else None

    if avro_type == "null":
        fits = value is None
    elif avro_type == "boolean":
        fits = isinstance(value, bool)
    elif avro_type in ("int", "long"):
        fits = _is_int(value)
        if logical_type == "date":
            fits = fits or (isinstance(value, date) and not isinstance(value, datetime))
        elif logical_type in ("time-millis", "time-micros"):
            fits = fits or isinstance(value, time)
        elif logical_type in ("timestamp-millis", "timestamp-micros", "local-timestamp-millis", "local-timestamp-micros"):
            fits = fits or isinstance(value, datetime)
    elif avro_type in ("float", "double"):
        fits = _is_int(value) or isinstance(value, float)
    elif avro_type == "bytes":
        fits = isinstance(value, (bytes, bytearray)) or (logical_type == "decimal" and isinstance(value, Decimal))
    elif avro_type == "fixed":
        fits = isinstance(value, (bytes, bytearray)) or isinstance(value, (Decimal, uuid.UUID))
    elif avro_type == "string":
        fits = isinstance(value, str) or (logical_type == "uuid" and isinstance(value, uuid.UUID))
    elif avro_type == "enum":
        fits = isinstance(value, str) and value in schema.get("symbols", [])
    else:
        raise TranslationError(f"Unknown Avro type: {avro_type}")

    if not fits:
        raise TranslationError(f"Value {value!r} does not fit {avro_type}")


def translate_record(source_schema: AvroSchema, target_schema: AvroSchema, record: Any) -> Any:
    """Translate a decoded record from its writer schema to the target schema.

    Args:
        source_schema: The Avro schema the record was decoded with.
        target_schema: The Avro schema to translate into.
        record: The decoded record.

    Returns:
        The translated record. Target fields without a source field get their
        default, or are left out when they don't declare one.
    """
    return RecordTranslator(source_schema, target_schema).translate(record)


def translate_records(source_schema: AvroSchema, target_schema: AvroSchema, records: Any) -> Iterator[Any]:
    """Lazily translate a stream of records, sharing the schema indexes between them."""
    translator = RecordTranslator(source_schema, target_schema)
    for record in records:
        yield translator.translate(record)
