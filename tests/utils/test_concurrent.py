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
import threading
import time
from typing import List
from unittest import mock

import pytest

from pyicemeta.utils.concurrent import DEFAULT_MAX_WORKERS, ExecutorFactory, bounded_unordered_map


def test_results_in_completion_order() -> None:
    fast_done = threading.Event()

    def _work(item: str) -> str:
        if item == "slow":
            assert fast_done.wait(timeout=10)
        else:
            fast_done.set()
        return item

    assert list(bounded_unordered_map(_work, ["slow", "fast"], max_workers=2)) == ["fast", "slow"]


def test_every_item_produces_one_result() -> None:
    assert sorted(bounded_unordered_map(lambda x: x * 2, range(100), max_workers=7)) == [x * 2 for x in range(100)]


def test_no_items() -> None:
    assert list(bounded_unordered_map(lambda x: x, [])) == []


def test_in_flight_calls_are_bounded() -> None:
    lock = threading.Lock()
    in_flight: List[int] = [0]
    peak: List[int] = [0]

    def _work(item: int) -> int:
        with lock:
            in_flight[0] += 1
            peak[0] = max(peak[0], in_flight[0])
        time.sleep(0.001)
        with lock:
            in_flight[0] -= 1
        return item

    assert len(list(bounded_unordered_map(_work, range(50), max_workers=3))) == 50
    assert peak[0] <= 3


def test_first_error_stops_the_workers() -> None:
    calls: List[int] = []

    def _work(item: int) -> int:
        calls.append(item)
        if item == 1:
            raise ValueError("boom")
        return item

    with pytest.raises(ValueError, match="boom"):
        list(bounded_unordered_map(_work, [1, 2, 3], max_workers=1))
    assert calls == [1]


def test_invalid_max_workers() -> None:
    with pytest.raises(ValueError, match="max_workers should be at least 1"):
        list(bounded_unordered_map(lambda x: x, [1], max_workers=-1))


def test_workers_capped_by_number_of_items() -> None:
    with mock.patch.object(ExecutorFactory, "create", wraps=ExecutorFactory.create) as create:
        list(bounded_unordered_map(lambda x: x, [1, 2]))
    create.assert_called_once_with(2)


@mock.patch.dict(os.environ, {"PYICEMETA_MAX_WORKERS": "2"})
def test_max_workers_from_environment() -> None:
    assert ExecutorFactory.max_workers() == 2

    with mock.patch.object(ExecutorFactory, "create", wraps=ExecutorFactory.create) as create:
        list(bounded_unordered_map(lambda x: x, range(5)))
    create.assert_called_once_with(2)


@mock.patch.dict(os.environ, {"PYICEMETA_MAX_WORKERS": "two"})
def test_invalid_max_workers_from_environment() -> None:
    with pytest.raises(ValueError, match="max-workers should be an integer"):
        ExecutorFactory.max_workers()


@mock.patch.dict(os.environ, {}, clear=True)
def test_default_max_workers() -> None:
    with mock.patch.object(ExecutorFactory, "create", wraps=ExecutorFactory.create) as create:
        list(bounded_unordered_map(lambda x: x, range(20)))
    create.assert_called_once_with(DEFAULT_MAX_WORKERS)
