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

import re
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pyicemeta.conversions import to_bytes
from pyicemeta.exceptions import ValidationError
from pyicemeta.types import IcebergType, is_primitive, primitive_kind
from pyicemeta.utils.datetime import (
    HOUR_REGEX,
    MONTH_REGEX,
    YEAR_REGEX,
    date_str_to_days,
    date_to_days,
    datetime_to_micros,
    micros_to_days,
    micros_to_hours,
    months_from_epoch,
    parse_timestamp,
    time_str_to_micros,
    time_to_micros,
    timestamp_to_micros,
    to_utc,
    years_from_epoch,
)

IDENTITY = "identity"
BUCKET = "bucket"
TRUNCATE = "truncate"
YEAR = "year"
MONTH = "month"
DAY = "day"
HOUR = "hour"

BUCKET_PARSER = re.compile(r"^bucket\[(\d+)\]$")
TRUNCATE_PARSER = re.compile(r"^truncate\[(\d+)\]$")

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def parse_transform(v: Any) -> Transform:
    """Parse the transform of a partition field from its string representation."""
    if isinstance(v, Transform):
        return v
    if not isinstance(v, str):
        raise ValidationError(f"Transform must be a string, got: {v!r}")
    v = v.strip()
    if v.lower() == IDENTITY:
        return IdentityTransform()
    elif v.lower() == YEAR:
        return YearTransform()
    elif v.lower() == MONTH:
        return MonthTransform()
    elif v.lower() == DAY:
        return DayTransform()
    elif v.lower() == HOUR:
        return HourTransform()
    elif v.startswith(BUCKET):
        if match := BUCKET_PARSER.match(v):
            return BucketTransform(int(match.group(1)))
    elif v.startswith(TRUNCATE):
        if match := TRUNCATE_PARSER.match(v):
            return TruncateTransform(int(match.group(1)))
    raise ValidationError(f"Unsupported transform: {v}")


def _type_name(value: Any) -> str:
    return type(value).__name__


class Transform(ABC):
    """Transform base class for concrete transforms.

    A base class to transform values and encode them the way they are stored in
    the partition summaries of a manifest list.
    """

    root: str

    @abstractmethod
    def result_type(self, source: IcebergType) -> Optional[str]:
        """Return the primitive type the transformed value is stored as, None when the source can't be transformed."""

    @abstractmethod
    def transform(self, value: Any, result_type: str) -> Any:
        """Transform a raw partition value into the value stored in the partition tuple.

        Raises:
            ValidationError: When the value has a kind the transform doesn't accept.
        """

    def encode(self, value: Any, result_type: str) -> bytes:
        return to_bytes(result_type, self.transform(value, result_type))

    @property
    def preserves_order(self) -> bool:
        return True

    def __str__(self) -> str:
        """Return the string representation of the Transform class."""
        return self.root

    def __repr__(self) -> str:
        """Return the string representation of the Transform class."""
        return f"{self.__class__.__name__}()"

    def __eq__(self, other: Any) -> bool:
        """Return the equality of two instances of the Transform class."""
        if isinstance(other, Transform):
            return self.root == other.root
        return False

    def __hash__(self) -> int:
        """Return the hash of the Transform."""
        return hash(self.root)


class IdentityTransform(Transform):
    root = IDENTITY

    def result_type(self, source: IcebergType) -> Optional[str]:
        return source if is_primitive(source) else None  # type: ignore[return-value]

    def transform(self, value: Any, result_type: str) -> Any:
        kind = primitive_kind(result_type)
        if kind in ("int", "long"):
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            return self._mismatch(kind, "int", value)
        elif kind in ("float", "double"):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
            return self._mismatch(kind, "float", value)
        elif kind == "boolean":
            if isinstance(value, bool):
                return value
            return self._mismatch(kind, "bool", value)
        elif kind == "string":
            if isinstance(value, str):
                return value
            return self._mismatch(kind, "str", value)
        elif kind == "uuid":
            if isinstance(value, (str, uuid.UUID)):
                return str(value)
            return self._mismatch(kind, "str or UUID", value)
        elif kind == "date":
            return self._to_days(value)
        elif kind == "time":
            return self._to_time_micros(value)
        elif kind in ("timestamp", "timestamptz"):
            return self._to_timestamp_micros(value)
        elif kind in ("binary", "fixed"):
            if isinstance(value, (bytes, bytearray)):
                return bytes(value)
            return self._mismatch(kind, "bytes", value)
        elif kind == "decimal":
            if isinstance(value, (bytes, bytearray, Decimal)):
                return to_bytes(result_type, value)
            return self._mismatch(kind, "bytes or Decimal", value)
        raise ValidationError(f"Identity not implemented for type {result_type}")

    @staticmethod
    def _mismatch(kind: str, expected: str, value: Any) -> Any:
        raise ValidationError(f"Identity of {kind} requires {expected} input, got {_type_name(value)}: {value!r}")

    def _to_days(self, value: Any) -> int:
        try:
            if isinstance(value, datetime):
                return micros_to_days(datetime_to_micros(value))
            if isinstance(value, date):
                return date_to_days(value)
            if isinstance(value, str):
                return date_str_to_days(value)
        except ValueError as e:
            raise ValidationError(f"Invalid date: {value!r}") from e
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return self._mismatch("date", "str, int, date or datetime", value)

    def _to_time_micros(self, value: Any) -> int:
        try:
            if isinstance(value, time):
                return time_to_micros(value)
            if isinstance(value, str):
                return time_str_to_micros(value)
        except ValueError as e:
            raise ValidationError(f"Invalid time: {value!r}") from e
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return self._mismatch("time", "str, int or time", value)

    def _to_timestamp_micros(self, value: Any) -> int:
        try:
            if isinstance(value, datetime):
                return datetime_to_micros(value)
            if isinstance(value, date):
                return date_to_days(value) * 86_400_000_000
            if isinstance(value, str):
                return timestamp_to_micros(value)
        except ValueError as e:
            raise ValidationError(f"Invalid timestamp: {value!r}") from e
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return self._mismatch("timestamp", "str, int, date or datetime", value)

    def __repr__(self) -> str:
        """Return the string representation of the IdentityTransform class."""
        return "IdentityTransform()"


class TimeTransform(Transform):
    """Base class for the transforms that turn a date or a timestamp into an ordinal.

    The input may be an ISO-8601 string, a date, a datetime, or an int that is
    taken to be in the unit of the transform already. Naive timestamps are UTC.
    """

    def result_type(self, source: IcebergType) -> Optional[str]:
        return "int"

    def transform(self, value: Any, result_type: str) -> int:
        if isinstance(value, bool):
            raise ValidationError(f"{self.root} requires str, int, date or datetime input, got bool")
        if isinstance(value, int):
            result = value
        elif isinstance(value, str):
            try:
                result = self._from_str(value.strip())
            except ValueError as e:
                raise ValidationError(f"{self.root} could not parse {value!r}") from e
        elif isinstance(value, datetime):
            result = self._from_datetime(to_utc(value))
        elif isinstance(value, date):
            result = self._from_date(value)
        else:
            raise ValidationError(f"{self.root} requires str, int, date or datetime input, got {_type_name(value)}")

        if not INT32_MIN <= result <= INT32_MAX:
            raise ValidationError(f"{self.root} value {result} for {value!r} does not fit in an int")
        return result

    def _from_str(self, value: str) -> int:
        if len(value) == 10:
            return self._from_date(date.fromisoformat(value))
        return self._from_datetime(to_utc(parse_timestamp(value)))

    @abstractmethod
    def _from_date(self, value: date) -> int: ...

    @abstractmethod
    def _from_datetime(self, value: datetime) -> int: ...


class YearTransform(TimeTransform):
    """Transforms a datetime value into a year value, counted from 1970.

    This is the Iceberg year ordinal, not the calendar year: writers that store
    the calendar year (2024 for "2024-05-01") produce partitions this transform
    doesn't match.

    Example:
        >>> transform = YearTransform()
        >>> transform.transform("2024-05-01", "int")
        54
    """

    root = YEAR

    def _from_str(self, value: str) -> int:
        if match := YEAR_REGEX.match(value):
            return int(match.group(1)) - 1970
        return super()._from_str(value)

    def _from_date(self, value: date) -> int:
        return years_from_epoch(value)

    def _from_datetime(self, value: datetime) -> int:
        return years_from_epoch(value.date())


class MonthTransform(TimeTransform):
    """Transforms a datetime value into a month value, counted from 1970-01.

    This is the Iceberg month ordinal, not `year * 12 + (month - 1)` of the calendar date,
    so "2024-05" becomes 652 and not 24292.
    """

    root = MONTH

    def _from_str(self, value: str) -> int:
        if match := MONTH_REGEX.match(value):
            return (int(match.group(1)) - 1970) * 12 + int(match.group(2)) - 1
        return super()._from_str(value)

    def _from_date(self, value: date) -> int:
        return months_from_epoch(value)

    def _from_datetime(self, value: datetime) -> int:
        return months_from_epoch(value.date())


class DayTransform(TimeTransform):
    """Transforms a datetime value into a day value, counted from 1970-01-01.

    Example:
        >>> transform = DayTransform()
        >>> transform.transform("2024-01-01", "int")
        19723
    """

    root = DAY

    def _from_date(self, value: date) -> int:
        return date_to_days(value)

    def _from_datetime(self, value: datetime) -> int:
        return micros_to_days(datetime_to_micros(value))


class HourTransform(TimeTransform):
    """Transforms a datetime value into an hour value, counted from 1970-01-01T00:00."""

    root = HOUR

    def _from_str(self, value: str) -> int:
        if match := HOUR_REGEX.match(value):
            return date_str_to_days(match.group(1)) * 24 + int(match.group(2))
        return super()._from_str(value)

    def _from_date(self, value: date) -> int:
        return date_to_days(value) * 24

    def _from_datetime(self, value: datetime) -> int:
        return micros_to_hours(datetime_to_micros(value))


class BucketTransform(Transform):
    """Stores the bucket of a value, the hash must be computed by the caller.

    Args:
      num_buckets (int): The number of buckets.
    """

    def __init__(self, num_buckets: int) -> None:
        self._num_buckets = num_buckets
        self.root = f"bucket[{num_buckets}]"

    @property
    def num_buckets(self) -> int:
        return self._num_buckets

    @property
    def preserves_order(self) -> bool:
        return False

    def result_type(self, source: IcebergType) -> Optional[str]:
        return "int"

    def transform(self, value: Any, result_type: str) -> int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise ValidationError(f"{self.root} requires pre-hashed int input, got {_type_name(value)}")

    def __repr__(self) -> str:
        """Return the string representation of the BucketTransform class."""
        return f"BucketTransform(num_buckets={self._num_buckets})"


class TruncateTransform(Transform):
    """Truncates a string value to at most `width` characters.

    Args:
      width (int): The number of characters to keep.
    """

    def __init__(self, width: int) -> None:
        self._width = width
        self.root = f"truncate[{width}]"

    @property
    def width(self) -> int:
        return self._width

    def result_type(self, source: IcebergType) -> Optional[str]:
        return source if is_primitive(source) else None  # type: ignore[return-value]

    def transform(self, value: Any, result_type: str) -> str:
        if not isinstance(value, str):
            raise ValidationError(f"{self.root} requires str input, got {_type_name(value)}")
        return value[: self._width]

    def __repr__(self) -> str:
        """Return the string representation of the TruncateTransform class."""
        return f"TruncateTransform(width={self._width})"


def encode_value(value: Any, transform: Optional[Transform], result_type: Optional[str]) -> Optional[bytes]:
    """Encode a raw partition value the way it is stored as a partition bound.

    Returns None for a null value, or when the transform has no result type for its source.
    """
    if value is None or transform is None or result_type is None:
        return None
    return transform.encode(value, result_type)
