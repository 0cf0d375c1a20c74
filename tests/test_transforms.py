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
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from pyicemeta.exceptions import ValidationError
from pyicemeta.transforms import (
    BucketTransform,
    DayTransform,
    HourTransform,
    IdentityTransform,
    MonthTransform,
    TruncateTransform,
    YearTransform,
    encode_value,
    parse_transform,
)


@pytest.mark.parametrize(
    "transform_str, expected",
    [
        ("identity", IdentityTransform()),
        ("year", YearTransform()),
        ("Month", MonthTransform()),
        (" day ", DayTransform()),
        ("hour", HourTransform()),
        ("bucket[16]", BucketTransform(16)),
        ("truncate[4]", TruncateTransform(4)),
    ],
)
def test_parse_transform(transform_str: str, expected: object) -> None:
    assert parse_transform(transform_str) == expected


@pytest.mark.parametrize("transform_str", ["void", "bucket[x]", "truncate", "bucket[]"])
def test_parse_unknown_transform(transform_str: str) -> None:
    with pytest.raises(ValidationError, match="Unsupported transform"):
        parse_transform(transform_str)


def test_identity_int_encodes_little_endian() -> None:
    assert IdentityTransform().encode(42, "int") == b"\x2a\x00\x00\x00"


def test_identity_long_encodes_eight_bytes() -> None:
    assert IdentityTransform().encode(-1, "long") == b"\xff" * 8


def test_identity_string_is_utf8() -> None:
    assert IdentityTransform().encode("héllo", "string") == "héllo".encode()


def test_identity_boolean() -> None:
    assert IdentityTransform().encode(True, "boolean") == b"\x01"
    assert IdentityTransform().encode(False, "boolean") == b"\x00"


def test_identity_date_accepts_string_and_date() -> None:
    expected = (19723).to_bytes(4, "little", signed=True)
    assert IdentityTransform().encode("2024-01-01", "date") == expected
    assert IdentityTransform().encode(date(2024, 1, 1), "date") == expected


def test_identity_timestamp_micros() -> None:
    micros = IdentityTransform().transform("2024-01-01T00:00:00", "timestamp")
    assert micros == 19723 * 86_400_000_000


def test_identity_timestamptz_honours_offset() -> None:
    assert IdentityTransform().transform(datetime(1970, 1, 1, 1, tzinfo=timezone.utc), "timestamptz") == 3_600_000_000
    assert IdentityTransform().transform("1970-01-01T02:00:00+01:00", "timestamptz") == 3_600_000_000


def test_identity_uuid_stored_as_string() -> None:
    value = UUID("f79c3e09-677c-4bbd-a479-3f349cb785e7")
    assert IdentityTransform().encode(value, "uuid") == b"f79c3e09-677c-4bbd-a479-3f349cb785e7"


def test_identity_decimal_unscaled_big_endian() -> None:
    assert IdentityTransform().encode(Decimal("1.00"), "decimal(9, 2)") == b"\x64"
    assert IdentityTransform().encode(Decimal("-1.28"), "decimal(9, 2)") == b"\x80"


@pytest.mark.parametrize(
    "value, result_type",
    [
        ("42", "int"),
        (True, "long"),
        ("1.0", "double"),
        (1, "boolean"),
        (42, "string"),
        ("abc", "binary"),
        ("not-a-date", "date"),
    ],
)
def test_identity_rejects_mismatched_input(value: object, result_type: str) -> None:
    with pytest.raises(ValidationError):
        IdentityTransform().transform(value, result_type)


def test_day_transform() -> None:
    assert DayTransform().transform("2024-01-01", "int") == 19723
    assert DayTransform().transform(date(1969, 12, 31), "int") == -1
    assert DayTransform().transform(datetime(2024, 1, 1, 23, 59), "int") == 19723


def test_year_and_month_count_from_epoch() -> None:
    assert YearTransform().transform("2024", "int") == 54
    assert YearTransform().transform("2024-05-01", "int") == 54
    assert MonthTransform().transform("2024-05", "int") == 54 * 12 + 4
    assert MonthTransform().transform(date(1970, 1, 31), "int") == 0


def test_hour_transform() -> None:
    assert HourTransform().transform("1970-01-02-03", "int") == 27
    assert HourTransform().transform("1970-01-01T05:30:00", "int") == 5


def test_time_transform_takes_ints_as_ordinals() -> None:
    assert DayTransform().transform(19723, "int") == 19723


def test_time_transform_rejects_bool() -> None:
    with pytest.raises(ValidationError):
        DayTransform().transform(True, "int")


def test_time_transform_out_of_int_range() -> None:
    with pytest.raises(ValidationError, match="does not fit"):
        DayTransform().transform(2**31, "int")


def test_bucket_requires_prehashed_int() -> None:
    assert BucketTransform(8).encode(3, "int") == b"\x03\x00\x00\x00"
    with pytest.raises(ValidationError):
        BucketTransform(8).transform("3", "int")
    assert not BucketTransform(8).preserves_order


def test_truncate_strings() -> None:
    assert TruncateTransform(3).transform("abcdef", "string") == "abc"
    assert TruncateTransform(10).transform("abc", "string") == "abc"
    with pytest.raises(ValidationError):
        TruncateTransform(3).transform(12345, "long")


def test_encode_value_null() -> None:
    assert encode_value(None, IdentityTransform(), "int") is None
    assert encode_value(1, IdentityTransform(), None) is None


def test_transform_repr_and_str() -> None:
    assert str(BucketTransform(16)) == "bucket[16]"
    assert repr(TruncateTransform(4)) == "TruncateTransform(width=4)"
    assert str(DayTransform()) == "day"
