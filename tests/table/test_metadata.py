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
# pylint: disable=redefined-outer-name
from typing import Any, Dict
from unittest import mock

import pytest

from pyicemeta.exceptions import NoSuchLocationError, NoSuchPartitionSpecError, NoSuchSchemaError, NoSuchSnapshotError
from pyicemeta.table.metadata import TableMetadata, _generate_snapshot_id
from pyicemeta.table.snapshots import MAIN_BRANCH, Operation


@pytest.fixture
def example_table_metadata() -> Dict[str, Any]:
    return {
        "format-version": 2,
        "table-uuid": "9c12d441-03fe-4693-9a96-a0705ddf69c1",
        "location": "s3://bucket/test/location",
        "last-sequence-number": 34,
        "last-updated-ms": 1602638573590,
        "last-column-id": 3,
        "current-schema-id": 1,
        "schemas": [
            {"type": "struct", "schema-id": 0, "fields": [{"id": 1, "name": "x", "required": True, "type": "long"}]},
            {
                "type": "struct",
                "schema-id": 1,
                "identifier-field-ids": [1, 2],
                "fields": [
                    {"id": 1, "name": "x", "required": True, "type": "long"},
                    {"id": 2, "name": "y", "required": True, "type": "long", "doc": "comment"},
                    {"id": 3, "name": "z", "required": True, "type": "long"},
                ],
            },
        ],
        "default-spec-id": 0,
        "partition-specs": [{"spec-id": 0, "fields": [{"name": "x", "transform": "identity", "source-id": 1, "field-id": 1000}]}],
        "last-partition-id": 1000,
        "default-sort-order-id": 3,
        "properties": {"read.split.target.size": 134217728},
        "current-snapshot-id": 3055729675574597004,
        "snapshots": [
            {
                "snapshot-id": 3051729675574597004,
                "timestamp-ms": 1515100955770,
                "sequence-number": 0,
                "summary": {"operation": "append"},
                "manifest-list": "s3://a/b/1.avro",
            },
            {
                "snapshot-id": 3055729675574597004,
                "parent-snapshot-id": 3051729675574597004,
                "timestamp-ms": 1555100955770,
                "sequence-number": 1,
                "summary": {"operation": "append", "added-data-files": "4"},
                "manifest-list": "s3://a/b/2.avro",
                "schema-id": 1,
            },
        ],
    }


def test_parse_table_metadata(example_table_metadata: Dict[str, Any]) -> None:
    metadata = TableMetadata.model_validate(example_table_metadata)

    assert metadata.location == "s3://bucket/test/location"
    assert metadata.bucket == "s3://bucket/test/location"
    assert metadata.last_sequence_number == 34
    assert metadata.next_sequence_number() == 35
    assert metadata.properties == {"read.split.target.size": "134217728"}
    assert metadata.schema().schema_id == 1
    assert metadata.spec().spec_id == 0
    assert metadata.refs[MAIN_BRANCH].snapshot_id == 3055729675574597004

    current = metadata.current_snapshot()
    assert current is not None
    assert current.operation == Operation.APPEND
    assert current.summary is not None
    assert current.summary["added-data-files"] == "4"


def test_metadata_json_round_trip(example_table_metadata: Dict[str, Any]) -> None:
    metadata = TableMetadata.model_validate(example_table_metadata)
    assert TableMetadata.model_validate_json(metadata.model_dump_json()) == metadata


@pytest.mark.parametrize("current_snapshot_id", [-1, 0])
def test_no_current_snapshot(example_table_metadata: Dict[str, Any], current_snapshot_id: int) -> None:
    example_table_metadata["current-snapshot-id"] = current_snapshot_id
    metadata = TableMetadata.model_validate(example_table_metadata)
    assert metadata.current_snapshot_id is None
    assert metadata.current_snapshot() is None
    assert MAIN_BRANCH not in metadata.refs


def test_current_snapshot_not_found(example_table_metadata: Dict[str, Any]) -> None:
    example_table_metadata["current-snapshot-id"] = 1
    metadata = TableMetadata.model_validate(example_table_metadata)
    with pytest.raises(NoSuchSnapshotError):
        metadata.current_snapshot()


def test_lookups_raise(example_table_metadata: Dict[str, Any]) -> None:
    metadata = TableMetadata.model_validate(example_table_metadata)
    with pytest.raises(NoSuchSchemaError):
        metadata.schema_by_id(5)
    with pytest.raises(NoSuchPartitionSpecError):
        metadata.spec_by_id(5)
    assert metadata.snapshot_by_id(5) is None


def test_missing_location() -> None:
    with pytest.raises(NoSuchLocationError):
        _ = TableMetadata(location="").bucket


def test_generated_snapshot_ids_are_positive() -> None:
    assert all(0 < _generate_snapshot_id() < 2**63 for _ in range(100))

    with mock.patch("pyicemeta.table.metadata.random.getrandbits", return_value=0):
        assert _generate_snapshot_id() == 1
    with mock.patch("pyicemeta.table.metadata.random.getrandbits", return_value=2**64 - 1):
        assert _generate_snapshot_id() == 2**63 - 1


def test_new_snapshot_id_skips_ids_in_use(example_table_metadata: Dict[str, Any]) -> None:
    metadata = TableMetadata.model_validate(example_table_metadata)
    with mock.patch(
        "pyicemeta.table.metadata._generate_snapshot_id", side_effect=[3051729675574597004, 3055729675574597004, 7]
    ):
        assert metadata.new_snapshot_id() == 7
