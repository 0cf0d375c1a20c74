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
import pytest

from pyicemeta.utils.properties import (
    get_first_property_value,
    get_header_properties,
    property_as_float,
    property_as_int,
)


def test_property_as_int() -> None:
    properties = {"int": "42"}

    assert property_as_int(properties, "int") == 42
    assert property_as_int(properties, "missing", default=1) == 1
    assert property_as_int(properties, "missing") is None


def test_property_as_int_with_invalid_value() -> None:
    with pytest.raises(ValueError, match="Could not parse property some.int to an integer: not-an-int"):
        property_as_int({"some.int": "not-an-int"}, "some.int")


def test_property_as_float() -> None:
    properties = {"float": "42.0"}

    assert property_as_float(properties, "float", default=1.0) == 42.0
    assert property_as_float(properties, "missing", default=1.0) == 1.0

    with pytest.raises(ValueError, match="Could not parse property float to a float"):
        property_as_float({"float": "nope"}, "float")


def test_get_header_properties() -> None:
    properties = {"header.X-Client-Version": "1.0", "header.Accept": "application/json", "token": "secret"}

    assert get_header_properties(properties) == {"X-Client-Version": "1.0", "Accept": "application/json"}


def test_get_first_property_value() -> None:
    properties = {"rest.signing-region": "", "client.region": "eu-west-1", "region": "us-east-1"}

    assert get_first_property_value(properties, "rest.signing-region", "client.region", "region") == "eu-west-1"
    assert get_first_property_value(properties, "missing") is None
