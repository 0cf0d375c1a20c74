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
"""FileIO implementation for reading and writing table files that uses fsspec compatible filesystems."""

from __future__ import annotations

import logging
import threading
from functools import lru_cache
from types import TracebackType
from typing import Any, Dict, Optional, Type
from urllib.parse import urlparse

import fsspec
from fsspec import AbstractFileSystem
from fsspec.spec import AbstractBufferedFile

from pyicemeta.exceptions import NoSuchFileError
from pyicemeta.io import (
    AWS_ACCESS_KEY_ID,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    AWS_SESSION_TOKEN,
    S3_ACCESS_KEY_ID,
    S3_CONNECT_TIMEOUT,
    S3_ENDPOINT,
    S3_PROXY_URI,
    S3_REGION,
    S3_SECRET_ACCESS_KEY,
    S3_SESSION_TOKEN,
    FileIO,
    InputFile,
    InputStream,
    OutputFile,
)
from pyicemeta.typedef import EMPTY_DICT, Properties
from pyicemeta.utils.properties import get_first_property_value

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "file"


def _s3(properties: Properties) -> AbstractFileSystem:
    client_kwargs = {
        "endpoint_url": properties.get(S3_ENDPOINT),
        "aws_access_key_id": get_first_property_value(properties, S3_ACCESS_KEY_ID, AWS_ACCESS_KEY_ID),
        "aws_secret_access_key": get_first_property_value(properties, S3_SECRET_ACCESS_KEY, AWS_SECRET_ACCESS_KEY),
        "aws_session_token": get_first_property_value(properties, S3_SESSION_TOKEN, AWS_SESSION_TOKEN),
        "region_name": get_first_property_value(properties, S3_REGION, AWS_REGION),
    }
    config_kwargs: Dict[str, Any] = {}
    if proxy_uri := properties.get(S3_PROXY_URI):
        config_kwargs["proxies"] = {"http": proxy_uri, "https": proxy_uri}

    if connect_timeout := properties.get(S3_CONNECT_TIMEOUT):
        config_kwargs["connect_timeout"] = float(connect_timeout)

    return fsspec.filesystem("s3", client_kwargs=client_kwargs, config_kwargs=config_kwargs)


SCHEME_TO_FS = {
    "s3": _s3,
    "s3a": _s3,
    "s3n": _s3,
}


class FsspecOutputStream:
    """Wraps the file object of an fsspec filesystem so an upload can be aborted.

    Remote filesystems upload in parts, discarding the file cancels the pending
    upload. Whatever has already landed at the location is removed afterwards.
    """

    def __init__(self, fs: AbstractFileSystem, location: str, f: Any):
        self._fs = fs
        self._location = location
        self._f = f
        self._closed = False

    @property
    def location(self) -> str:
        return self._location

    def write(self, b: bytes) -> int:
        return self._f.write(b)

    def tell(self) -> int:
        return self._f.tell()

    def seekable(self) -> bool:
        return False

    def readable(self) -> bool:
        return False

    def flush(self) -> None:
        self._f.flush()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._f.close()

    def abort(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if isinstance(self._f, AbstractBufferedFile):
                self._f.discard()
                self._f.closed = True
            else:
                self._f.close()
        except Exception:
            logger.warning("Failed to discard the upload to %s", self._location, exc_info=True)

        try:
            if self._fs.exists(self._location):
                self._fs.rm(self._location)
        except Exception:
            logger.warning("Failed to remove the aborted upload at %s", self._location, exc_info=True)
        else:
            logger.info("Aborted upload to %s", self._location)

    def __enter__(self) -> FsspecOutputStream:
        """Provide setup when opening an OutputStream using a 'with' statement."""
        return self

    def __exit__(
        self, exctype: Optional[Type[BaseException]], excinst: Optional[BaseException], exctb: Optional[TracebackType]
    ) -> None:
        """Complete the upload, or abort it when the block raised."""
        if exctype is None:
            self.close()
        else:
            self.abort()


class FsspecInputFile(InputFile):
    """An input file implementation for the FsspecFileIO.

    Args:
        location (str): A URI to a file location.
        fs (AbstractFileSystem): An fsspec filesystem instance.
    """

    def __init__(self, location: str, fs: AbstractFileSystem):
        self._fs = fs
        super().__init__(location=location)

    def __len__(self) -> int:
        """Return the total length of the file, in bytes."""
        try:
            object_info = self._fs.info(self.location)
        except FileNotFoundError as e:
            raise NoSuchFileError(f"Cannot get the size of a file that does not exist: {self.location}") from e
        if size := object_info.get("Size"):
            return size
        elif size := object_info.get("size"):
            return size
        return 0

    def exists(self) -> bool:
        """Check whether the location exists."""
        return self._fs.lexists(self.location)

    def open(self, seekable: bool = True) -> InputStream:
        """Create an input stream for reading the contents of the file.

        Args:
            seekable: If the stream should support seek, or if it is consumed sequential.

        Returns:
            OpenFile: An fsspec compliant file-like object.

        Raises:
            NoSuchFileError: If the file does not exist.
        """
        try:
            return self._fs.open(self.location, "rb")
        except FileNotFoundError as e:
            raise NoSuchFileError(f"Cannot open file, does not exist: {self.location}") from e


class FsspecOutputFile(OutputFile):
    """An output file implementation for the FsspecFileIO.

    Args:
        location (str): A URI to a file location.
        fs (AbstractFileSystem): An fsspec filesystem instance.
    """

    def __init__(self, location: str, fs: AbstractFileSystem):
        self._fs = fs
        super().__init__(location=location)

    def __len__(self) -> int:
        """Return the total length of the file, in bytes."""
        object_info = self._fs.info(self.location)
        if size := object_info.get("Size"):
            return size
        elif size := object_info.get("size"):
            return size
        return 0

    def exists(self) -> bool:
        """Check whether the location exists."""
        return self._fs.lexists(self.location)

    def create(self, overwrite: bool = False) -> FsspecOutputStream:
        """Create an output stream for writing the contents of the file.

        Args:
            overwrite (bool): Whether to overwrite the file if it already exists.

        Returns:
            FsspecOutputStream: A writable stream that can be aborted.

        Raises:
            FileExistsError: If the file already exists at the location and overwrite is set to False.

        Note:
            If overwrite is set to False, a check is first performed to verify that the file does not exist.
            This is not thread-safe and a possibility does exist that the file can be created by a concurrent
            process after the existence check yet before the output stream is created. In such a case, the default
            behavior will truncate the contents of the existing file when opening the output stream.
        """
        if not overwrite and self.exists():
            raise FileExistsError(f"Cannot create file, file already exists: {self.location}")
        return FsspecOutputStream(self._fs, self.location, self._fs.open(self.location, "wb"))

    def to_input_file(self) -> FsspecInputFile:
        """Return a new FsspecInputFile for the location at `self.location`."""
        return FsspecInputFile(location=self.location, fs=self._fs)


class FsspecFileIO(FileIO):
    """A FileIO implementation that uses fsspec."""

    def __init__(self, properties: Properties = EMPTY_DICT):
        self._thread_locals = threading.local()
        super().__init__(properties=properties)

    def new_input(self, location: str) -> FsspecInputFile:
        """Get an FsspecInputFile instance to read bytes from the file at the given location.

        Args:
            location (str): A URI or a path to a local file.

        Returns:
            FsspecInputFile: An FsspecInputFile instance for the given location.
        """
        uri = urlparse(location)
        fs = self.get_fs(uri.scheme or DEFAULT_SCHEME)
        return FsspecInputFile(location=location, fs=fs)

    def new_output(self, location: str) -> FsspecOutputFile:
        """Get an FsspecOutputFile instance to write bytes to the file at the given location.

        Args:
            location (str): A URI or a path to a local file.

        Returns:
            FsspecOutputFile: An FsspecOutputFile instance for the given location.
        """
        uri = urlparse(location)
        fs = self.get_fs(uri.scheme or DEFAULT_SCHEME)
        return FsspecOutputFile(location=location, fs=fs)

    def delete(self, location: str | InputFile | OutputFile) -> None:
        """Delete the file at the given location.

        Args:
            location (Union[str, InputFile, OutputFile]): The URI to the file--if an InputFile instance or an
                OutputFile instance is provided, the location attribute for that instance is used as the location
                to delete.
        """
        if isinstance(location, (InputFile, OutputFile)):
            str_location = location.location  # Use InputFile or OutputFile location
        else:
            str_location = location

        uri = urlparse(str_location)
        fs = self.get_fs(uri.scheme or DEFAULT_SCHEME)
        fs.rm(str_location)

    def get_fs(self, scheme: str) -> AbstractFileSystem:
        """Get a filesystem for a specific scheme, cached per thread."""
        if not hasattr(self._thread_locals, "get_fs_cached"):
            self._thread_locals.get_fs_cached = lru_cache(self._get_fs)

        return self._thread_locals.get_fs_cached(scheme)

    def _get_fs(self, scheme: str) -> AbstractFileSystem:
        if scheme in SCHEME_TO_FS:
            return SCHEME_TO_FS[scheme](self.properties)
        return fsspec.filesystem(scheme)

    def __getstate__(self) -> dict[str, Any]:
        """Create a dictionary of the FsSpecFileIO fields used when pickling."""
        fileio_copy = dict(self.__dict__)
        del fileio_copy["_thread_locals"]
        return fileio_copy

    def __setstate__(self, state: dict[str, Any]) -> None:
        """Deserialize the state into a FsSpecFileIO instance."""
        self.__dict__ = state
        self._thread_locals = threading.local()
