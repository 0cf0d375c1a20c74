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
from json import JSONDecodeError
from typing import Dict, Type

from pydantic import Field, ValidationError
from requests import HTTPError

from pyicemeta.exceptions import (
    BadRequestError,
    CommitFailedException,
    CommitStateUnknownException,
    ForbiddenError,
    NoSuchTableError,
    RESTError,
    ServerError,
    ServiceUnavailableError,
    UnauthorizedError,
)
from pyicemeta.typedef import IcebergBaseModel


class ErrorResponseMessage(IcebergBaseModel):
    message: str = Field()
    type: str = Field()
    code: int = Field()


class ErrorResponse(IcebergBaseModel):
    error: ErrorResponseMessage = Field()


_ErrorHandler = Dict[int, Type[Exception]]


class ErrorHandlers:
    """Map the HTTP error responses of the catalog to exceptions, per operation."""

    @staticmethod
    def table_error_handler(exc: HTTPError) -> None:
        _handle_non_200_response(exc, {404: NoSuchTableError})

    @staticmethod
    def commit_error_handler(exc: HTTPError) -> None:
        handler: _ErrorHandler = {
            404: NoSuchTableError,
            409: CommitFailedException,
            500: CommitStateUnknownException,
            502: CommitStateUnknownException,
            503: CommitStateUnknownException,
            504: CommitStateUnknownException,
        }

        _handle_non_200_response(exc, handler)


def _handle_non_200_response(exc: HTTPError, handler: _ErrorHandler) -> None:
    exception: Type[Exception]

    if exc.response is None:
        raise ValueError("Did not receive a response")

    code = exc.response.status_code

    default_handler: _ErrorHandler = {
        400: BadRequestError,
        401: UnauthorizedError,
        403: ForbiddenError,
        422: RESTError,
        501: NotImplementedError,
        503: ServiceUnavailableError,
    }

    # Unknown 5xx codes are transient server errors, anything else is a RESTError
    exception = handler.get(code, default_handler.get(code, ServerError if 500 <= code < 600 else RESTError))

    try:
        error = ErrorResponse.model_validate_json(exc.response.text).error
        response = f"{error.type}: {error.message}"
    except JSONDecodeError:
        response = f"RESTError {exc.response.status_code}: Could not decode json payload: {exc.response.text}"
    except ValidationError as e:
        errs = ", ".join(err["msg"] for err in e.errors())
        response = f"RESTError {exc.response.status_code}: Received unexpected JSON Payload: {exc.response.text}, errors: {errs}"

    raise exception(response) from exc
