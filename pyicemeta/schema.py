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

from functools import cached_property
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import Field

from pyicemeta.exceptions import NoSuchFieldError
from pyicemeta.typedef import IcebergBaseModel
from pyicemeta.types import IcebergType, ListType, MapType, NestedField, StructType

INITIAL_SCHEMA_ID = 0


class Schema(IcebergBaseModel):
    """A table Schema.

    Example:
        >>> from pyicemeta.schema import Schema
        >>> from pyicemeta.types import NestedField
        >>> schema = Schema(NestedField(field_id=1, name="id", field_type="long", required=True), schema_id=1)
        >>> schema.find_field("id").field_id
        1
    """

    type: Literal["struct"] = "struct"
    fields: Tuple[NestedField, ...] = Field(default_factory=tuple)
    schema_id: int = Field(alias="schema-id", default=INITIAL_SCHEMA_ID)
    identifier_field_ids: List[int] = Field(alias="identifier-field-ids", default_factory=list)

    def __init__(self, *fields: NestedField, **data: Any):
        if fields:
            data["fields"] = fields
        super().__init__(**data)

    def __str__(self) -> str:
        """Return the string representation of the Schema class."""
        return "table {\n" + "\n".join(["  " + str(field) for field in self.fields]) + "\n}"

    def __eq__(self, other: Any) -> bool:
        """Return the equality of two instances of the Schema class."""
        if not other:
            return False

        if not isinstance(other, Schema):
            return False

        if len(self.fields) != len(other.fields):
            return False

        return self.schema_id == other.schema_id and self.fields == other.fields

    def as_struct(self) -> StructType:
        return StructType(fields=self.fields)

    @cached_property
    def _lazy_id_to_field(self) -> Dict[int, NestedField]:
        return index_by_id(self)

    @cached_property
    def _name_to_id(self) -> Dict[str, int]:
        return {field.name: field.field_id for field in self.fields}

    @property
    def highest_field_id(self) -> int:
        return max(self._lazy_id_to_field.keys(), default=0)

    def find_field(self, name_or_id: str | int) -> NestedField:
        """Find a field using a field name or field ID.

        Args:
            name_or_id: Either a field name or a field ID.

        Returns:
            NestedField: The matched NestedField.

        Raises:
            NoSuchFieldError: If the field can't be found.
        """
        if isinstance(name_or_id, int):
            if name_or_id not in self._lazy_id_to_field:
                raise NoSuchFieldError(f"Could not find field with id: {name_or_id}")
            return self._lazy_id_to_field[name_or_id]

        field_id = self._name_to_id.get(name_or_id)
        if field_id is None:
            raise NoSuchFieldError(f"Could not find field with name {name_or_id}")
        return self._lazy_id_to_field[field_id]

    def find_type(self, name_or_id: str | int) -> IcebergType:
        return self.find_field(name_or_id).field_type

    def find_field_id(self, name: str) -> Optional[int]:
        """Return the id of a top-level column, None when the schema has no such column."""
        return self._name_to_id.get(name)

    @property
    def required_field_names(self) -> List[str]:
        return [field.name for field in self.fields if field.required]


def index_by_id(schema: Schema) -> Dict[int, NestedField]:
    """Index all fields, including the nested ones, by their field ID."""
    index: Dict[int, NestedField] = {}

    def _visit(field_type: IcebergType) -> None:
        if isinstance(field_type, StructType):
            for field in field_type.fields:
                index[field.field_id] = field
                _visit(field.field_type)
        elif isinstance(field_type, ListType):
            _visit(field_type.element_type)
        elif isinstance(field_type, MapType):
            _visit(field_type.key_type)
            _visit(field_type.value_type)

    _visit(schema.as_struct())
    return index
