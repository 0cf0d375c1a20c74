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
import struct

import pytest

from pyicemeta.exceptions import NoSuchFieldError, ValidationError
from pyicemeta.partitioning import (
    NAN,
    UNPARTITIONED_PARTITION_SPEC,
    PartitionField,
    PartitionSpec,
    compare_bound_values,
    compare_bounds,
    decode_bound,
    make_bounds,
    max_bound,
    min_bound,
    partition_record,
    result_type,
)
from pyicemeta.schema import Schema


def test_spec_field_names_and_result_types(table_schema: Schema, day_region_spec: PartitionSpec) -> None:
    assert day_region_spec.field_names == ["event_day", "region"]
    assert day_region_spec.result_types(table_schema) == ["int", "string"]
    assert day_region_spec.last_assigned_field_id == 1002
    assert not day_region_spec.is_unpartitioned()


def test_unpartitioned_spec() -> None:
    assert UNPARTITIONED_PARTITION_SPEC.is_unpartitioned()
    assert UNPARTITIONED_PARTITION_SPEC.last_assigned_field_id == 999
    assert str(UNPARTITIONED_PARTITION_SPEC) == "[]"


def test_spec_json_round_trip(day_region_spec: PartitionSpec) -> None:
    serialized = day_region_spec.model_dump_json()
    assert '"spec-id":2' in serialized
    assert '"source-id":2' in serialized
    assert PartitionSpec.model_validate_json(serialized) == day_region_spec


def test_result_type_missing_source(table_schema: Schema) -> None:
    field = PartitionField(source_id=99, field_id=1000, transform="identity", name="missing")
    with pytest.raises(NoSuchFieldError, match="source-id 99"):
        result_type(field, table_schema)


def test_make_bounds(table_schema: Schema, day_region_spec: PartitionSpec) -> None:
    bounds = make_bounds({"event_day": "2024-01-01", "region": "eu"}, day_region_spec, table_schema)
    assert bounds == [struct.pack("<i", 19723), b"eu"]


def test_make_bounds_null_and_nan(table_schema: Schema) -> None:
    spec = PartitionSpec(
        PartitionField(source_id=3, field_id=1000, transform="identity", name="region"),
        PartitionField(source_id=4, field_id=1001, transform="identity", name="amount"),
    )
    assert make_bounds({"region": None, "amount": float("nan")}, spec, table_schema) == [None, NAN]


def test_make_bounds_missing_value(table_schema: Schema, day_region_spec: PartitionSpec) -> None:
    with pytest.raises(ValidationError, match="missing region"):
        make_bounds({"event_day": "2024-01-01"}, day_region_spec, table_schema)


def test_make_bounds_malformed_value(table_schema: Schema, date_spec: PartitionSpec) -> None:
    with pytest.raises(ValidationError):
        make_bounds({"event_date": "yesterday"}, date_spec, table_schema)


def test_partition_record(table_schema: Schema, day_region_spec: PartitionSpec) -> None:
    assert partition_record({"event_day": "2024-01-02", "region": None}, day_region_spec, table_schema) == {
        "event_day": 19724,
        "region": None,
    }


def test_compare_bounds_bytewise_for_dates(table_schema: Schema, date_spec: PartitionSpec) -> None:
    field = date_spec.fields[0]
    june_2024 = make_bounds({"event_date": "2024-06-26"}, date_spec, table_schema)[0]
    july_2027 = make_bounds({"event_date": "2027-07-01"}, date_spec, table_schema)[0]
    assert june_2024 == struct.pack("<i", 19900)
    assert july_2027 == struct.pack("<i", 21000)

    # The lowest byte decides: 0xbc > 0x08
    assert compare_bounds(june_2024, july_2027, field, table_schema) > 0
    assert compare_bound_values(june_2024, july_2027, "date") < 0


def test_compare_bounds_decodes_numbers(table_schema: Schema) -> None:
    field = PartitionField(source_id=1, field_id=1000, transform="identity", name="id")
    assert compare_bounds(struct.pack("<q", 255), struct.pack("<q", 256), field, table_schema) < 0
    assert compare_bounds(struct.pack("<q", -1), struct.pack("<q", 0), field, table_schema) < 0


def test_min_max_bound() -> None:
    low = struct.pack("<i", 19900)
    high = struct.pack("<i", 21000)
    assert min_bound(None, high, "date") == high
    assert min_bound(low, None, "date") == low
    assert min_bound(high, low, "date") == low
    assert max_bound(low, high, "date") == high
    assert max_bound(None, None, "date") is None


def test_decode_bound(table_schema: Schema, day_region_spec: PartitionSpec) -> None:
    day_field, region_field = day_region_spec.fields
    assert decode_bound(struct.pack("<i", 19723), day_field, table_schema) == 19723
    assert decode_bound(b"eu", region_field, table_schema) == "eu"
