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
"""Concurrency concepts that support bounded fan-out of metadata work."""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar

from pyicemeta.utils.config import MAX_WORKERS, Config

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 10

T = TypeVar("T")
R = TypeVar("R")

_WORKER_DONE = object()


class ExecutorFactory:
    @staticmethod
    def max_workers() -> Optional[int]:
        """Return the max number of workers configured."""
        return Config().get_int(MAX_WORKERS)

    @staticmethod
    def create(max_workers: int) -> ThreadPoolExecutor:
        """Return a new executor with a fixed number of threads."""
        return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pyicemeta")


def bounded_unordered_map(fn: Callable[[T], R], items: Iterable[T], max_workers: Optional[int] = None) -> Iterator[R]:
    """Apply `fn` to every item with at most `max_workers` calls in flight.

    A fixed number of workers pull the next item from a shared queue as soon as they
    are done with the previous one, and hand their results over through a completion
    queue. The results are yielded in the order they complete, not in the order of
    `items`; every item produces exactly one result.

    The first exception raised by `fn` stops the workers from picking up new items and
    is raised to the caller once the calls in flight have finished.

    Args:
        fn: The function to apply.
        items: The work items.
        max_workers: The number of workers, defaults to the `max-workers` setting or 10.

    Yields:
        The results of `fn`, in completion order.
    """
    limit = max_workers or ExecutorFactory.max_workers() or DEFAULT_MAX_WORKERS
    if limit < 1:
        raise ValueError(f"max_workers should be at least 1, got: {limit}")

    work: "queue.Queue[T]" = queue.Queue()
    for item in items:
        work.put(item)
    worker_count = min(limit, work.qsize())
    if worker_count == 0:
        return

    completed: "queue.Queue[Any]" = queue.Queue()
    stopped = threading.Event()

    def _worker() -> None:
        while not stopped.is_set():
            try:
                item = work.get_nowait()
            except queue.Empty:
                break
            try:
                completed.put((True, fn(item)))
            except Exception as e:
                stopped.set()
                completed.put((False, e))
        completed.put(_WORKER_DONE)

    executor = ExecutorFactory.create(worker_count)
    try:
        for _ in range(worker_count):
            executor.submit(_worker)

        running = worker_count
        while running:
            outcome = completed.get()
            if outcome is _WORKER_DONE:
                running -= 1
                continue
            succeeded, value = outcome
            if not succeeded:
                raise value
            yield value
    finally:
        stopped.set()
        executor.shutdown(wait=True)
