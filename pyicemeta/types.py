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
"""Data types used in describing Iceberg schemas.

Primitive types are kept as the type strings used by the table metadata JSON
(`"int"`, `"decimal(9, 2)"`, `"fixed[16]"`, ...), nested types are models
carrying the `type` discriminator of the JSON representation.

Example:
    >>> NestedField(field_id=1, name="id", field_type="long", required=True)
    NestedField(field_id=1, name='id', field_type='long', required=True)
"""

from __future__ import annotations

import re
from typing import Any, Literal, Optional, Tuple, Union

from pydantic import Field

from pyicemeta.exceptions import ValidationError
from pyicemeta.typedef import IcebergBaseModel

DECIMAL_REGEX = re.compile(r"decimal\(\s*(\d+)\s*,\s*(\d+)\s*\)")
FIXED_REGEX = re.compile(r"fixed\[\s*(\d+)\s*\]")

PRIMITIVE_TYPES = frozenset(
    {
        "boolean",
        "int",
        "long",
        "float",
        "double",
        "date",
        "time",
        "timestamp",
        "timestamptz",
        "string",
        "uuid",
        "binary",
    }
)

# Types that decode to a single fixed-width number
NUMERIC_TYPES = frozenset({"boolean", "int", "long", "float", "double"})


def strtobool(val: str) -> bool:
    """Convert a string representation of truth to true (1) or false (0).

    True values are 'y', 'yes', 't', 'true', 'on', and '1'; false values
    are 'n', 'no', 'f', 'false', 'off', and '0'.  Raises ValueError if
    'val' is anything else.
    """
    val = val.lower()
    if val in ("y", "yes", "t", "true", "on", "1"):
        return True
    elif val in ("n", "no", "f", "false", "off", "0"):
        return False
    else:
        raise ValueError(f"Invalid truth value: {val!r}")


def is_primitive(field_type: IcebergType) -> bool:
    return isinstance(field_type, str)


def primitive_kind(field_type: str) -> str:
    """Return the type name without its parameters, so `decimal(9, 2)` becomes `decimal`."""
    if field_type in PRIMITIVE_TYPES:
        return field_type
    if DECIMAL_REGEX.fullmatch(field_type):
        return "decimal"
    if FIXED_REGEX.fullmatch(field_type):
        return "fixed"
    raise ValidationError(f"Unknown primitive type: {field_type}")


class NestedField(IcebergBaseModel):
    """Represents a field of a struct, a map key, a map value, or a list element.

    This is where field IDs, names, docs, and nullability are tracked.
    """

    field_id: int = Field(alias="id")
    name: str = Field()
    field_type: IcebergType = Field(alias="type")
    required: bool = Field(default=False)
    doc: Optional[str] = Field(default=None, repr=False)
    initial_default: Optional[Any] = Field(alias="initial-default", default=None, repr=False)
    write_default: Optional[Any] = Field(alias="write-default", default=None, repr=False)

    def __str__(self) -> str:
        """Return the string representation of the NestedField class."""
        doc = "" if not self.doc else f" ({self.doc})"
        req = "required" if self.required else "optional"
        return f"{self.field_id}: {self.name}: {req} {self.field_type}{doc}"


class StructType(IcebergBaseModel):
    type: Literal["struct"] = Field(default="struct")
    fields: Tuple[NestedField, ...] = Field(default_factory=tuple)

    def field(self, field_id: int) -> Optional[NestedField]:
        for field in self.fields:
            if field.field_id == field_id:
                return field
        return None


class ListType(IcebergBaseModel):
    type: Literal["list"] = Field(default="list")
    element_id: int = Field(alias="element-id")
    element_type: IcebergType = Field(alias="element")
    element_required: bool = Field(alias="element-required", default=True)


class MapType(IcebergBaseModel):
    type: Literal["map"] = Field(default="map")
    key_id: int = Field(alias="key-id")
    key_type: IcebergType = Field(alias="key")
    value_id: int = Field(alias="value-id")
    value_type: IcebergType = Field(alias="value")
    value_required: bool = Field(alias="value-required", default=True)


IcebergType = Union[str, StructType, ListType, MapType]

NestedField.model_rebuild()
StructType.model_rebuild()
ListType.model_rebuild()
MapType.model_rebuild()
