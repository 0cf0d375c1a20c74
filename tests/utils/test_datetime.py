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
from datetime import date, datetime, timedelta, timezone

import pytest

from pyicemeta.utils.datetime import (
    date_str_to_days,
    date_to_days,
    datetime_to_micros,
    days_to_date,
    micros_to_days,
    micros_to_hours,
    months_from_epoch,
    parse_timestamp,
    time_str_to_micros,
    timestamp_to_micros,
    to_utc,
    years_from_epoch,
)


def test_date_to_days() -> None:
    assert date_to_days(date(2024, 6, 26)) == 19900
    assert date_str_to_days("2027-07-01") == 21000
    assert date_str_to_days("1969-12-31") == -1
    assert days_to_date(19900) == date(2024, 6, 26)


def test_time_to_micros() -> None:
    assert time_str_to_micros("10:15:30.000001") == 36_930_000_001


@pytest.mark.parametrize(
    "timestamp, micros",
    [
        ("1970-01-01T00:00:00", 0),
        ("2024-01-01T10:00:00", 1_704_103_200_000_000),
        ("2024-01-01T10:00:00Z", 1_704_103_200_000_000),
        ("2024-01-01T12:00:00+02:00", 1_704_103_200_000_000),
        ("1969-12-31T23:59:59.999999", -1),
    ],
)
def test_timestamp_to_micros(timestamp: str, micros: int) -> None:
    assert timestamp_to_micros(timestamp) == micros


def test_parse_timestamp_with_zulu() -> None:
    assert parse_timestamp("2024-01-01T10:00:00Z") == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)


def test_micros_to_days_and_hours() -> None:
    assert micros_to_days(1_704_103_200_000_000) == 19723
    assert micros_to_days(-1) == -1
    assert micros_to_hours(1_704_103_200_000_000) == 473362
    assert micros_to_hours(-1) == -1


def test_to_utc() -> None:
    amsterdam = timezone(timedelta(hours=2))
    assert to_utc(datetime(2024, 1, 1, 12, tzinfo=amsterdam)) == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
    assert to_utc(datetime(2024, 1, 1, 12)) == datetime(2024, 1, 1, 12)
    assert datetime_to_micros(datetime(2024, 1, 1, 12, tzinfo=amsterdam)) == datetime_to_micros(datetime(2024, 1, 1, 10))


def test_months_and_years_from_epoch() -> None:
    assert years_from_epoch(date(2024, 6, 26)) == 54
    assert months_from_epoch(date(2024, 6, 26)) == 653
    assert months_from_epoch(date(1969, 12, 1)) == -1
    assert time_str_to_micros("00:00:01") == 1_000_000
