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
import pickle
from unittest import mock

import fastavro
import pytest

from pyicemeta.exceptions import NoSuchFileError
from pyicemeta.io import PY_IO_IMPL, load_file_io
from pyicemeta.io.fsspec import FsspecFileIO, FsspecOutputStream

LOCATION = "memory://bucket/metadata/file.avro"


@pytest.fixture
def io() -> FsspecFileIO:
    return FsspecFileIO()


def test_write_and_read(io: FsspecFileIO) -> None:
    output_file = io.new_output(LOCATION)
    with output_file.create() as stream:
        stream.write(b"foo")

    input_file = io.new_input(LOCATION)
    assert input_file.exists()
    assert len(input_file) == 3
    with input_file.open() as stream:
        assert stream.read() == b"foo"


def test_create_existing_file(io: FsspecFileIO) -> None:
    with io.new_output(LOCATION).create() as stream:
        stream.write(b"foo")

    with pytest.raises(FileExistsError):
        io.new_output(LOCATION).create()

    with io.new_output(LOCATION).create(overwrite=True) as stream:
        stream.write(b"barbaz")
    assert len(io.new_input(LOCATION)) == 6


def test_missing_file(io: FsspecFileIO) -> None:
    input_file = io.new_input("memory://bucket/missing.avro")

    assert not input_file.exists()
    with pytest.raises(NoSuchFileError, match="does not exist"):
        input_file.open()
    with pytest.raises(NoSuchFileError):
        len(input_file)


def test_failed_write_is_aborted(io: FsspecFileIO) -> None:
    with pytest.raises(RuntimeError):
        with io.new_output(LOCATION).create() as stream:
            stream.write(b"partial")
            raise RuntimeError("encoder failed")

    assert not io.new_input(LOCATION).exists()


def test_abort_after_close_keeps_file(io: FsspecFileIO) -> None:
    stream = io.new_output(LOCATION).create()
    stream.write(b"foo")
    stream.close()
    stream.abort()

    assert io.new_input(LOCATION).exists()


def test_delete(io: FsspecFileIO) -> None:
    output_file = io.new_output(LOCATION)
    with output_file.create() as stream:
        stream.write(b"foo")

    io.delete(output_file)

    assert not output_file.exists()
    with pytest.raises(FileNotFoundError):
        io.delete(LOCATION)


def test_pickle_round_trip(io: FsspecFileIO) -> None:
    with io.new_output(LOCATION).create() as stream:
        stream.write(b"foo")

    unpickled = pickle.loads(pickle.dumps(io))

    assert isinstance(unpickled, FsspecFileIO)
    with unpickled.new_input(LOCATION).open() as stream:
        assert stream.read() == b"foo"


def test_load_file_io() -> None:
    assert isinstance(load_file_io(), FsspecFileIO)
    assert isinstance(load_file_io({PY_IO_IMPL: "pyicemeta.io.fsspec.FsspecFileIO"}), FsspecFileIO)

    with pytest.raises(ValueError, match="Could not initialize FileIO"):
        load_file_io({PY_IO_IMPL: "pyicemeta.io.missing.MissingFileIO"})
    with pytest.raises(ValueError, match="should be full path"):
        load_file_io({PY_IO_IMPL: "FsspecFileIO"})


def test_fastavro_writes_through_the_output_stream(io: FsspecFileIO) -> None:
    schema = fastavro.parse_schema({"type": "record", "name": "r", "fields": [{"name": "id", "type": "long"}]})

    with io.new_output(LOCATION).create() as stream:
        assert isinstance(stream, FsspecOutputStream)
        assert not stream.seekable()
        fastavro.writer(stream, schema, [{"id": 1}, {"id": 2}], codec="deflate")

    with io.new_input(LOCATION).open() as stream:
        assert [record["id"] for record in fastavro.reader(stream)] == [1, 2]


def test_s3_filesystem_from_properties() -> None:
    io = FsspecFileIO(
        properties={
            "s3.endpoint": "http://localhost:9000",
            "s3.access-key-id": "admin",
            "client.secret-access-key": "password",
            "client.region": "us-east-1",
            "s3.proxy-uri": "http://proxy:8080",
            "s3.connect-timeout": "1.5",
        }
    )

    with mock.patch("pyicemeta.io.fsspec.fsspec.filesystem") as filesystem:
        io.new_output("s3://bucket/metadata/file.avro")

    filesystem.assert_called_once_with(
        "s3",
        client_kwargs={
            "endpoint_url": "http://localhost:9000",
            "aws_access_key_id": "admin",
            "aws_secret_access_key": "password",
            "aws_session_token": None,
            "region_name": "us-east-1",
        },
        config_kwargs={"proxies": {"http": "http://proxy:8080", "https": "http://proxy:8080"}, "connect_timeout": 1.5},
    )


def test_other_schemes_use_the_plain_filesystem() -> None:
    with mock.patch("pyicemeta.io.fsspec.fsspec.filesystem") as filesystem:
        FsspecFileIO(properties={"s3.endpoint": "http://localhost:9000"}).new_input("gs://bucket/file.avro")

    filesystem.assert_called_once_with("gs")
