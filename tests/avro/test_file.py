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
from typing import Any, Dict, Iterator

import fastavro
import fsspec
import pytest

from pyicemeta.avro.file import AvroFile, AvroOutputFile, write_avro
from pyicemeta.io.fsspec import FsspecFileIO

SCHEMA: Dict[str, Any] = {
    "type": "record",
    "name": "manifest_file",
    "fields": [
        {"name": "manifest_path", "type": "string", "field-id": 500},
        {"name": "added_files_count", "type": ["null", "int"], "default": None, "field-id": 504},
    ],
}


def test_write_and_read_back() -> None:
    io = FsspecFileIO()
    location = "memory://bucket/metadata/list.avro"
    records = [{"manifest_path": f"memory://m{i}.avro", "added_files_count": i} for i in range(3)]

    length = write_avro(io.new_output(location), SCHEMA, records, {"snapshot-id": "42"})
    assert length == len(io.new_input(location))

    with AvroFile(io.new_input(location)) as reader:
        assert reader.metadata == {"snapshot-id": "42"}
        assert reader.schema["fields"][0]["field-id"] == 500
        assert list(reader) == records


def test_writer_counts_records() -> None:
    io = FsspecFileIO()
    with AvroOutputFile(io.new_output("memory://bucket/count.avro"), SCHEMA) as writer:
        writer.write({"manifest_path": "m", "added_files_count": None} for _ in range(5))
    assert writer.record_count == 5
    assert len(writer) > 0


def test_failed_write_leaves_nothing_behind() -> None:
    io = FsspecFileIO()
    location = "memory://bucket/broken.avro"

    def _records() -> Iterator[Dict[str, Any]]:
        yield {"manifest_path": "m", "added_files_count": 1}
        raise RuntimeError("Source went away")

    with pytest.raises(RuntimeError, match="Source went away"):
        write_avro(io.new_output(location), SCHEMA, _records())

    assert not io.new_input(location).exists()


def test_file_is_readable_by_fastavro() -> None:
    io = FsspecFileIO()
    location = "memory://bucket/metadata/plain.avro"
    records = [{"manifest_path": "memory://m.avro", "added_files_count": None}]

    write_avro(io.new_output(location), SCHEMA, records, {"format-version": "2"})

    with fsspec.open(location, "rb") as f:
        reader = fastavro.reader(f)
        assert reader.codec == "deflate"
        assert reader.metadata["format-version"] == "2"
        assert list(reader) == records
