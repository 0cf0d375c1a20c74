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
"""Helper methods for working with date/time representations."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

EPOCH_DATE = date.fromisoformat("1970-01-01")
EPOCH_TIMESTAMP = datetime.fromisoformat("1970-01-01T00:00:00.000000")
EPOCH_TIMESTAMPTZ = datetime.fromisoformat("1970-01-01T00:00:00.000000+00:00")

MICROS_PER_HOUR = 3_600_000_000

# Partition path style values: 2024, 2024-03, 2024-03-01, 2024-03-01-10
YEAR_REGEX = re.compile(r"^(\d{4})$")
MONTH_REGEX = re.compile(r"^(\d{4})-(\d{2})$")
HOUR_REGEX = re.compile(r"^(\d{4}-\d{2}-\d{2})-(\d{2})$")


def micros_to_days(timestamp: int) -> int:
    """Convert a timestamp in microseconds to a date in days."""
    return timedelta(microseconds=timestamp).days


def micros_to_hours(micros: int) -> int:
    """Convert a timestamp in microseconds to hours from 1970-01-01T00:00."""
    return micros // MICROS_PER_HOUR


def date_to_days(date_val: date) -> int:
    """Convert a Python date object to days from the 1970-01-01."""
    return (date_val - EPOCH_DATE).days


def days_to_date(days: int) -> date:
    """Create a date from the number of days from 1970-01-01."""
    return EPOCH_DATE + timedelta(days)


def date_str_to_days(date_str: str) -> int:
    """Convert an ISO-8601 formatted date to days from 1970-01-01."""
    return date_to_days(date.fromisoformat(date_str))


def time_to_micros(time_val: time) -> int:
    """Convert a Python time object to microseconds from midnight."""
    return ((((time_val.hour * 60) + time_val.minute) * 60) + time_val.second) * 1_000_000 + time_val.microsecond


def time_str_to_micros(time_str: str) -> int:
    """Convert an ISO-8601 formatted time to microseconds from midnight."""
    return time_to_micros(time.fromisoformat(time_str))


def datetime_to_micros(dt: datetime) -> int:
    """Convert a datetime to microseconds from 1970-01-01T00:00:00.000000, naive values are taken as UTC."""
    if dt.tzinfo:
        delta = dt - EPOCH_TIMESTAMPTZ
    else:
        delta = dt - EPOCH_TIMESTAMP
    return (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds


def timestamp_to_micros(timestamp_str: str) -> int:
    """Convert an ISO-8601 formatted timestamp, with or without a zone offset, to microseconds from 1970-01-01T00:00:00.000000."""
    return datetime_to_micros(parse_timestamp(timestamp_str))


def parse_timestamp(timestamp_str: str) -> datetime:
    # fromisoformat only accepts the trailing Z from Python 3.11 on
    if timestamp_str.endswith(("Z", "z")):
        timestamp_str = timestamp_str[:-1] + "+00:00"
    return datetime.fromisoformat(timestamp_str)


def to_utc(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc) if dt.tzinfo else dt


def years_from_epoch(value: date) -> int:
    return value.year - EPOCH_DATE.year


def months_from_epoch(value: date) -> int:
    return (value.year - EPOCH_DATE.year) * 12 + (value.month - 1)
