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
from collections.abc import Generator

import fsspec
import pytest

from pyicemeta.catalog.memory import InMemoryCatalog
from pyicemeta.partitioning import PartitionField, PartitionSpec
from pyicemeta.schema import Schema
from pyicemeta.table import Table
from pyicemeta.types import NestedField


@pytest.fixture(autouse=True)
def clear_memory_filesystem() -> Generator[None, None, None]:
    fs = fsspec.filesystem("memory")
    fs.store.clear()
    fs.pseudo_dirs.clear()
    fs.pseudo_dirs.append("")
    yield
    fs.store.clear()


@pytest.fixture
def table_schema() -> Schema:
    return Schema(
        NestedField(field_id=1, name="id", field_type="long", required=True),
        NestedField(field_id=2, name="event_date", field_type="date", required=True),
        NestedField(field_id=3, name="region", field_type="string", required=False),
        NestedField(field_id=4, name="amount", field_type="double", required=False),
        schema_id=0,
    )


@pytest.fixture
def date_spec() -> PartitionSpec:
    return PartitionSpec(
        PartitionField(source_id=2, field_id=1000, transform="identity", name="event_date"),
        spec_id=1,
    )


@pytest.fixture
def day_region_spec() -> PartitionSpec:
    return PartitionSpec(
        PartitionField(source_id=2, field_id=1001, transform="day", name="event_day"),
        PartitionField(source_id=3, field_id=1002, transform="identity", name="region"),
        spec_id=2,
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog("test", warehouse="memory://warehouse")


@pytest.fixture
def table(catalog: InMemoryCatalog, table_schema: Schema, date_spec: PartitionSpec) -> Table:
    return catalog.create_table("default.events", schema=table_schema, partition_spec=date_spec)
