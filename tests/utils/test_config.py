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
import os
from unittest import mock

import pytest
from pytest_mock import MockFixture

from pyicemeta.typedef import UTF8, RecursiveDict
from pyicemeta.utils.config import Config, _lowercase_dictionary_keys, merge_config

EXAMPLE_ENV = {"PYICEMETA_CATALOG__PRODUCTION__URI": "https://service.io/api"}


def test_config() -> None:
    """To check if all the file lookups go well without any mocking"""
    assert Config()


@mock.patch.dict(os.environ, EXAMPLE_ENV)
def test_from_environment_variables() -> None:
    assert Config().get_catalog_config("production") == {"uri": "https://service.io/api"}


@mock.patch.dict(os.environ, EXAMPLE_ENV)
def test_from_environment_variables_uppercase() -> None:
    assert Config().get_catalog_config("PRODUCTION") == {"uri": "https://service.io/api"}


@mock.patch.dict(os.environ, {"PYICEMETA_COMMIT_RETRIES": "7", "PYICEMETA_MAX_WORKERS": "4"})
def test_int_settings_from_environment() -> None:
    config = Config()
    assert config.get_int("commit-retries") == 7
    assert config.get_int("max-workers") == 4
    assert config.get_int("missing") is None


def test_from_configuration_files(tmp_path_factory: pytest.TempPathFactory, mocker: MockFixture) -> None:
    config_path = str(tmp_path_factory.mktemp("config"))
    with open(f"{config_path}/.pyicemeta.yaml", "w", encoding=UTF8) as file:
        file.write("default-catalog: production\ncatalog:\n  production:\n    uri: https://service.io/rest\n")

    mocker.patch.dict(os.environ, {"PYICEMETA_HOME": config_path})
    config = Config()

    assert config.get_default_catalog_name() == "production"
    assert config.get_catalog_config("production") == {"uri": "https://service.io/rest"}
    assert config.get_known_catalogs() == ["production"]


def test_lowercase_dictionary_keys() -> None:
    uppercase_keys = {"UPPER": {"NESTED_UPPER": {"YES"}}}
    expected = {"upper": {"nested_upper": {"YES"}}}
    assert _lowercase_dictionary_keys(uppercase_keys) == expected  # type: ignore


def test_merge_config() -> None:
    lhs: RecursiveDict = {"common_key": "abc123", "catalog": {"production": {"uri": "http://old"}}}
    rhs: RecursiveDict = {"common_key": "xyz789", "catalog": {"production": {"token": "secret"}}}
    result = merge_config(lhs, rhs)
    assert result == {"common_key": "xyz789", "catalog": {"production": {"uri": "http://old", "token": "secret"}}}


def test_invalid_default_catalog_name() -> None:
    config = Config()
    config.config = {"default-catalog": 123}  # type: ignore
    with pytest.raises(ValueError, match="Default catalog name should be a str"):
        config.get_default_catalog_name()
