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
import uuid

from pyicemeta.io.locations import WRITE_METADATA_PATH, MetadataLocationProvider

COMMIT_UUID = uuid.UUID("b2ac7b8e-5c0f-4d07-9c5c-0a1f4fd2c6b8")


def test_manifest_location() -> None:
    provider = MetadataLocationProvider("s3://bucket/table/")

    assert provider.new_manifest_location(COMMIT_UUID, 2) == f"s3://bucket/table/metadata/{COMMIT_UUID}-m2.avro"


def test_manifest_list_location() -> None:
    provider = MetadataLocationProvider("s3://bucket/table")

    assert provider.new_manifest_list_location(42, 1, COMMIT_UUID) == f"s3://bucket/table/metadata/snap-42-1-{COMMIT_UUID}.avro"


def test_locations_are_unique() -> None:
    provider = MetadataLocationProvider("s3://bucket/table")

    assert provider.new_manifest_location() != provider.new_manifest_location()
    assert provider.new_manifest_list_location(42) != provider.new_manifest_list_location(42)


def test_write_metadata_path() -> None:
    provider = MetadataLocationProvider("s3://bucket/table", {WRITE_METADATA_PATH: "s3://other/meta/"})

    assert provider.metadata_prefix == "s3://other/meta"
    assert provider.new_manifest_location(COMMIT_UUID).startswith("s3://other/meta/")
