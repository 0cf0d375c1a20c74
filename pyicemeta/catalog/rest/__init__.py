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
import logging
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
    Union,
)
from urllib.parse import quote

from pydantic import Field
from requests import HTTPError, Session
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pyicemeta import __version__
from pyicemeta.catalog import URI, Catalog
from pyicemeta.catalog.rest.response import ErrorHandlers
from pyicemeta.exceptions import TransientError
from pyicemeta.table.metadata import TableMetadata
from pyicemeta.table.update import (
    CommitTableRequest,
    CommitTableResponse,
    TableIdentifier,
    TableRequirement,
    TableUpdate,
)
from pyicemeta.typedef import Identifier, IcebergBaseModel
from pyicemeta.utils.properties import get_header_properties, property_as_float, property_as_int

logger = logging.getLogger(__name__)

PREFIX = "prefix"
TOKEN = "token"
AUTH_HEADER = "Authorization"
NAMESPACE_SEPARATOR = "\x1f"

READ_RETRIES = "rest.read-retries"
READ_RETRY_MIN_WAIT_MS = "rest.read-retry-min-wait-ms"
READ_RETRY_MAX_WAIT_MS = "rest.read-retry-max-wait-ms"
REQUEST_TIMEOUT_SECONDS = "rest.request-timeout-seconds"

DEFAULT_READ_RETRIES = 3
DEFAULT_READ_RETRY_MIN_WAIT_MS = 100.0
DEFAULT_READ_RETRY_MAX_WAIT_MS = 5000.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


class Endpoints:
    load_table: str = "namespaces/{namespace}/tables/{table}"
    update_table: str = "namespaces/{namespace}/tables/{table}"


class TableResponse(IcebergBaseModel):
    metadata_location: Optional[str] = Field(alias="metadata-location", default=None)
    metadata: TableMetadata
    config: Dict[str, str] = Field(default_factory=dict)


class RestCatalog(Catalog):
    """A catalog that talks to a service implementing the Iceberg REST catalog protocol.

    Requests are sent unsigned. A `requests.Session` with its own `auth` can be
    passed in for catalogs that need signed requests.
    """

    _session: Session

    def __init__(self, name: str, session: Optional[Session] = None, **properties: str):
        """Rest Catalog.

        Args:
            name: Name to identify the catalog.
            session: An optional session, for example one that signs the requests.
            properties: Properties that are passed along to the configuration.
        """
        super().__init__(name, **properties)
        if URI not in self.properties:
            raise ValueError(f"Missing {URI} for REST catalog {name}")
        self.uri = self.properties[URI].rstrip("/")
        self._session = session or Session()
        self._configure_session()

        self._timeout = property_as_float(self.properties, REQUEST_TIMEOUT_SECONDS, DEFAULT_REQUEST_TIMEOUT_SECONDS)
        self._load_table_metadata_with_retry = retry(
            retry=retry_if_exception_type(TransientError),
            stop=stop_after_attempt(property_as_int(self.properties, READ_RETRIES, DEFAULT_READ_RETRIES)),  # type: ignore[arg-type]
            wait=wait_exponential(
                min=property_as_float(self.properties, READ_RETRY_MIN_WAIT_MS, DEFAULT_READ_RETRY_MIN_WAIT_MS) / 1000,  # type: ignore[operator]
                max=property_as_float(self.properties, READ_RETRY_MAX_WAIT_MS, DEFAULT_READ_RETRY_MAX_WAIT_MS) / 1000,  # type: ignore[operator]
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )(self._load_table_metadata)

    def _configure_session(self) -> None:
        self._session.headers.update(
            {
                "Content-type": "application/json",
                "User-Agent": f"PyIceMeta/{__version__}",
            }
        )
        self._session.headers.update(get_header_properties(self.properties))
        if token := self.properties.get(TOKEN):
            self._session.headers[AUTH_HEADER] = f"Bearer {token}"

    def url(self, endpoint: str, prefixed: bool = True, **kwargs: Any) -> str:
        """Construct the endpoint.

        Args:
            endpoint: Resource identifier that points to the REST catalog.
            prefixed: If the prefix return by the config needs to be appended.
            kwargs: The values to fill in the endpoint.

        Returns:
            The base url of the rest catalog.
        """
        url = f"{self.uri}/v1/"
        if prefixed and (prefix := self.properties.get(PREFIX)):
            url += f"{prefix.strip('/')}/"
        return url + endpoint.format(**kwargs)

    def _split_identifier(self, identifier: Union[str, Identifier]) -> Dict[str, str]:
        identifier_tuple = self.identifier_to_tuple(identifier)
        return {
            "namespace": quote(NAMESPACE_SEPARATOR.join(identifier_tuple[:-1]), safe=""),
            "table": quote(identifier_tuple[-1], safe=""),
        }

    def _load_table_metadata(self, identifier: Union[str, Identifier]) -> TableMetadata:
        response = self._session.get(self.url(Endpoints.load_table, **self._split_identifier(identifier)), timeout=self._timeout)
        try:
            response.raise_for_status()
        except HTTPError as exc:
            ErrorHandlers.table_error_handler(exc)

        return TableResponse.model_validate_json(response.text).metadata

    def load_table_metadata(self, identifier: Union[str, Identifier]) -> TableMetadata:
        return self._load_table_metadata_with_retry(identifier)

    def commit_table_updates(
        self,
        identifier: Union[str, Identifier],
        requirements: Tuple[TableRequirement, ...],
        updates: Tuple[TableUpdate, ...],
    ) -> CommitTableResponse:
        identifier_tuple = self.identifier_to_tuple(identifier)
        request = CommitTableRequest(
            identifier=TableIdentifier(namespace=list(identifier_tuple[:-1]), name=identifier_tuple[-1]),
            requirements=requirements,
            updates=updates,
        )
        # Commits are not retried here, a 409 is resolved by the commit protocol and
        # a 5xx leaves the state of the commit unknown
        response = self._session.post(
            self.url(Endpoints.update_table, **self._split_identifier(identifier_tuple)),
            data=request.model_dump_json().encode("utf-8"),
            timeout=self._timeout,
        )
        try:
            response.raise_for_status()
        except HTTPError as exc:
            ErrorHandlers.commit_error_handler(exc)

        return CommitTableResponse.model_validate_json(response.text)
