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


class BadIdentityError(ValueError):
    """Raised when a table identifier cannot be parsed."""


class NotFoundError(Exception):
    """Base class for everything that could not be resolved from the table metadata or the store."""


class NoSuchTableError(NotFoundError):
    """Raised when the table can't be found in the catalog."""


class NoSuchSchemaError(NotFoundError):
    """Raised when a schema-id is not part of the table metadata."""


class NoSuchPartitionSpecError(NotFoundError):
    """Raised when a spec-id is not part of the table metadata."""


class NoSuchFieldError(NotFoundError):
    """Raised when a partition field references a source field that is not in the schema."""


class NoSuchSnapshotError(NotFoundError):
    """Raised when a snapshot can't be found in the table metadata."""


class NoSuchLocationError(NotFoundError):
    """Raised when the table metadata doesn't carry a storage location."""


class NoSuchFileError(NotFoundError):
    """Raised when a manifest or manifest list does not exist in storage."""


class ValidationError(ValueError):
    """Raised when the input does not match what an operation expects."""


class CommitFailedException(Exception):
    """Commit failed, refresh and try again."""


class ConflictError(CommitFailedException):
    """Raised when a concurrent commit can't be merged with the pending one."""


class CommitStateUnknownException(Exception):
    """Commit failed due to unknown reason."""


class StreamFailureError(Exception):
    """Raised when encoding, decoding or uploading an Avro stream fails."""


class RESTError(Exception):
    """Raises when there is an unknown response from the REST Catalog."""


class BadRequestError(RESTError):
    """Raises when an invalid request is being made."""


class UnauthorizedError(RESTError):
    """Raises when you don't have the proper authorization."""


class ForbiddenError(RESTError):
    """Raises when you don't have the credentials to perform the action on the REST catalog."""


class TransientError(RESTError):
    """Base class for failures that may go away when the request is repeated."""


class ServerError(TransientError):
    """Raises when there is an unhandled exception on the server side."""


class ServiceUnavailableError(TransientError):
    """Raises when the service doesn't respond."""


class TranslationError(Exception):
    """Raised when a decoded value doesn't fit the Avro schema it is translated to."""


class TableAlreadyExistsError(Exception):
    """Raised when creating a table with a name that already exists."""
