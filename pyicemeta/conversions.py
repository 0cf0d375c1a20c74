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
"""Utility module for various conversions around PrimitiveType implementations.

This module enables:
    - Converting partition values to their binary representation, as stored in the
      lower/upper bounds of a manifest list partition summary.
    - Converting such a binary representation back to the value.
    - Comparing two binary representations by their decoded value.

Numbers are stored as fixed width little-endian values:
    - int, date: 4 bytes, signed
    - long, time, timestamp, timestamptz: 8 bytes, signed
    - float, double: 4 and 8 bytes IEEE 754
    - boolean: 1 byte, 0x00 for false and 0x01 for true
Strings and UUIDs are stored as UTF-8 bytes. Binary, fixed and decimal values are
stored as they are, a decimal being its unscaled value in two's-complement big-endian.
"""

from __future__ import annotations

import struct
from decimal import Decimal
from typing import Any, Dict

from pyicemeta.exceptions import ValidationError
from pyicemeta.types import primitive_kind

_BOOL_STRUCT = struct.Struct("<?")
_INT_STRUCT = struct.Struct("<i")
_LONG_STRUCT = struct.Struct("<q")
_FLOAT_STRUCT = struct.Struct("<f")
_DOUBLE_STRUCT = struct.Struct("<d")

_STRUCTS: Dict[str, struct.Struct] = {
    "boolean": _BOOL_STRUCT,
    "int": _INT_STRUCT,
    "date": _INT_STRUCT,
    "long": _LONG_STRUCT,
    "time": _LONG_STRUCT,
    "timestamp": _LONG_STRUCT,
    "timestamptz": _LONG_STRUCT,
    "float": _FLOAT_STRUCT,
    "double": _DOUBLE_STRUCT,
}


def decimal_to_unscaled(value: Decimal) -> int:
    """Get the unscaled value of a decimal, using the scale the decimal carries."""
    sign, digits, exponent = value.as_tuple()
    unscaled = int("".join(str(digit) for digit in digits) or "0")
    if isinstance(exponent, int) and exponent > 0:
        unscaled *= 10**exponent
    return -unscaled if sign else unscaled


def unscaled_to_bytes(unscaled_value: int) -> bytes:
    """Return the two's-complement big-endian representation, using as few bytes as possible."""
    byte_length = (unscaled_value + (unscaled_value < 0)).bit_length() // 8 + 1
    return unscaled_value.to_bytes(byte_length, byteorder="big", signed=True)


def to_bytes(primitive_type: str, value: Any) -> bytes:
    """Convert a built-in python value to bytes.

    The value must already be in the representation Iceberg uses internally: a day count
    for dates, microseconds for time and timestamps.

    Args:
        primitive_type (str): The Iceberg type string of the value.
        value: The value to convert to bytes.

    Raises:
        ValidationError: If the type can't be serialized or the value doesn't fit.
    """
    kind = primitive_kind(primitive_type)
    if fmt := _STRUCTS.get(kind):
        try:
            return fmt.pack(value)
        except struct.error as e:
            raise ValidationError(f"Cannot serialize {value!r} as {primitive_type}: {e}") from e
    if kind in ("string", "uuid"):
        return str(value).encode("utf-8")
    if kind == "decimal" and isinstance(value, Decimal):
        return unscaled_to_bytes(decimal_to_unscaled(value))
    if kind in ("binary", "fixed", "decimal") and isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise ValidationError(f"Cannot serialize {value!r} as {primitive_type}")


def from_bytes(primitive_type: str, b: bytes) -> Any:
    """Convert bytes to a built-in python value.

    Dates decode to the day count, time and timestamps to microseconds and
    decimals to their unscaled integer.

    Args:
        primitive_type (str): The Iceberg type string of the value.
        b (bytes): The bytes to convert.
    """
    kind = primitive_kind(primitive_type)
    if fmt := _STRUCTS.get(kind):
        try:
            return fmt.unpack(b)[0]
        except struct.error as e:
            raise ValidationError(f"Cannot deserialize {b!r} as {primitive_type}: {e}") from e
    if kind in ("string", "uuid"):
        return bytes(b).decode("utf-8")
    if kind == "decimal":
        return int.from_bytes(b, byteorder="big", signed=True)
    return bytes(b)


def _cmp(left: Any, right: Any) -> int:
    return (left > right) - (left < right)


def compare_bytes(left: bytes, right: bytes) -> int:
    """Lexicographic comparison of the raw bytes, shorter prefix first."""
    return _cmp(bytes(left), bytes(right))


def compare_decoded(primitive_type: str, left: bytes, right: bytes) -> int:
    """Compare two encoded values by decoding them first.

    Unlike comparing the raw bytes, this orders the little-endian integer encodings
    (date, time and timestamps included) by their numeric value, also across the sign boundary.
    """
    kind = primitive_kind(primitive_type)
    if kind in ("binary", "fixed"):
        return compare_bytes(left, right)
    return _cmp(from_bytes(primitive_type, left), from_bytes(primitive_type, right))
