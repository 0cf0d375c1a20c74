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
"""Avro reader and writer for the Iceberg metadata files.

The object container framing, the block compression and the binary encoding are
done by fastavro. Both sides stream: the reader decodes one block at a time while
it is iterated, and the writer pulls the next record from its iterable only when
the previous block has been handed to the output stream, so a slow upload holds
back the decoding of the source.
"""

from __future__ import annotations

import json
import logging
from types import TracebackType
from typing import Any, Dict, Iterable, Iterator, Optional, Type

import fastavro

from pyicemeta.io import InputFile, InputStream, OutputFile, OutputStream

logger = logging.getLogger(__name__)

AVRO_SCHEMA_KEY = "avro.schema"
DEFAULT_CODEC = "deflate"
# Uncompressed bytes collected before a block is compressed and written out
DEFAULT_SYNC_INTERVAL = 16000


class AvroFile:
    """Reads an Avro object container file.

    The schema the file was written with is taken from the file header, the records
    are decoded with it and yielded as dicts while iterating.

    Example:
        >>> with AvroFile(io.new_input(location)) as reader:
        ...     for record in reader:
        ...         print(record["manifest_path"])
    """

    input_file: InputFile
    input_stream: InputStream
    schema: Any
    metadata: Dict[str, str]

    def __init__(self, input_file: InputFile) -> None:
        self.input_file = input_file

    def __enter__(self) -> AvroFile:
        """Open the file and read the header.

        Returns:
            A generator returning the records of the file.
        """
        self.input_stream = self.input_file.open(seekable=False)
        try:
            self._reader = fastavro.reader(self.input_stream)
            header = dict(self._reader.metadata)
            self.schema = json.loads(header[AVRO_SCHEMA_KEY])
        except Exception:
            self.input_stream.close()
            raise
        self.metadata = {key: value for key, value in header.items() if not key.startswith("avro.")}
        return self

    def __exit__(
        self, exctype: Optional[Type[BaseException]], excinst: Optional[BaseException], exctb: Optional[TracebackType]
    ) -> None:
        """Perform cleanup when exiting the scope of a 'with' statement."""
        self.input_stream.close()

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        """Decode the records, one block at the time."""
        return iter(self._reader)


class AvroOutputFile:
    """Writes an Avro object container file.

    Leaving the context normally completes the upload. When the block raises, the
    upload is aborted and nothing is left at the location.
    """

    output_file: OutputFile
    output_stream: OutputStream

    def __init__(
        self,
        output_file: OutputFile,
        schema: Dict[str, Any],
        metadata: Optional[Dict[str, str]] = None,
        codec: str = DEFAULT_CODEC,
    ) -> None:
        self.output_file = output_file
        self.schema = schema
        self.metadata = metadata or {}
        self.codec = codec
        self._parsed_schema = fastavro.parse_schema(schema)
        self._length = 0
        self._records = 0

    def __enter__(self) -> AvroOutputFile:
        """Open the file for writing.

        Returns:
            The AvroOutputFile itself, to write the records with.
        """
        self.output_stream = self.output_file.create(overwrite=True)
        return self

    def __exit__(
        self, exctype: Optional[Type[BaseException]], excinst: Optional[BaseException], exctb: Optional[TracebackType]
    ) -> None:
        """Complete or abort the upload."""
        if exctype is None:
            self.output_stream.close()
        else:
            logger.warning("Aborting write of %s: %s", self.output_file.location, excinst)
            self.output_stream.abort()

    def write(self, records: Iterable[Dict[str, Any]]) -> None:
        """Encode all the records into the file, pulling them from the iterable as the blocks are written."""
        fastavro.writer(
            self.output_stream,
            self._parsed_schema,
            self._counted(records),
            codec=self.codec,
            sync_interval=DEFAULT_SYNC_INTERVAL,
            metadata=self.metadata,
        )
        self._length = self.output_stream.tell()

    def _counted(self, records: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        for record in records:
            self._records += 1
            yield record

    @property
    def record_count(self) -> int:
        return self._records

    def __len__(self) -> int:
        """Return the number of bytes written to the file."""
        return self._length


def write_avro(
    output_file: OutputFile,
    schema: Dict[str, Any],
    records: Iterable[Dict[str, Any]],
    metadata: Optional[Dict[str, str]] = None,
) -> int:
    """Write the records to a new Avro file and return the length of the file in bytes."""
    with AvroOutputFile(output_file, schema, metadata) as writer:
        writer.write(records)
    return len(writer)
