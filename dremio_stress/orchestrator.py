#  Licensed to the Apache Software Foundation (ASF) under one
#  or more contributor license agreements.  See the NOTICE file
#  distributed with this work for additional information
#  regarding copyright ownership.  The ASF licenses this file
#  to you under the Apache License, Version 2.0 (the
#  "License"); you may not use this file except in compliance
#  with the License.  You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing,
#  software distributed under the License is distributed on an
#  "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
#  KIND, either express or implied.  See the License for the
#  specific language governing permissions and limitations
#  under the License.

"""
Workload Orchestrator

Runs a workload against one engine with a pool of worker threads and collects
a RunSummary. Workers draw statements from the workload and execute them one
at a time; the stop condition (duration and/or iteration budget) is checked
between statements, never while one is in flight.

The orchestrator owns the engine it is given: it closes it exactly once after
every worker has returned, whether the run succeeded, failed or never started.
"""

import concurrent.futures
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

from dremio_stress.config import StressConfig
from dremio_stress.engine_base import ErrorKind, ExecutionResult, QueryEngine, TimedExecution
from dremio_stress.engines import select_engine
from dremio_stress.reporting import RunSummary
from dremio_stress.workload import StatementSource, Workload, load_workload, read_file

logger = logging.getLogger(__name__)

FileReader = Callable[[Union[str, Path]], bytes]


class _RunState:
    """Stop condition and result collection shared by the workers."""

    def __init__(
        self, workload: Workload, summary: RunSummary, clock: Callable[[], float]
    ) -> None:
        self._clock = clock
        self._deadline: Optional[float] = None
        if workload.duration_seconds is not None:
            self._deadline = clock() + workload.duration_seconds
        self._remaining = workload.iterations
        self._summary = summary
        self._lock = threading.Lock()

    def claim(self) -> bool:
        """Reserve the right to run one more statement."""
        with self._lock:
            if self._deadline is not None and self._clock() >= self._deadline:
                return False
            if self._remaining is not None:
                if self._remaining <= 0:
                    return False
                self._remaining -= 1
            return True

    def record(self, result: ExecutionResult) -> None:
        with self._lock:
            self._summary.add_result(result)


def _worker(
    index: int, engine: QueryEngine, source: StatementSource, state: _RunState
) -> int:
    executed = 0
    while True:
        for statement in source.draw():
            if not state.claim():
                logger.debug(f"worker {index} stopping after {executed} statements")
                return executed

            with TimedExecution() as timer:
                try:
                    result = engine.execute(statement)
                except Exception as e:
                    logger.exception(f"worker {index}: engine raised on {statement.name}")
                    result = ExecutionResult(
                        statement_name=statement.name,
                        engine=engine.name,
                        success=False,
                        error_message=f"unhandled exception: {e}",
                        error_kind=ErrorKind.UNEXPECTED,
                    )
            result.duration_seconds = timer.elapsed
            result.worker = index
            state.record(result)
            executed += 1


def run_workload(
    engine: QueryEngine,
    workload: Workload,
    clock: Callable[[], float] = time.monotonic,
) -> RunSummary:
    """Run a workload against an engine and close the engine afterwards.

    Args:
        engine: Engine shared by all workers; closed before returning
        workload: Statements and run shape
        clock: Time source for the duration bound

    Returns:
        RunSummary with every statement result, failed ones included
    """
    try:
        summary = RunSummary(engine=engine.name, concurrency=workload.concurrency)
        state = _RunState(workload, summary, clock)
        source = StatementSource(workload)

        logger.info(
            f"Starting {workload.concurrency} worker(s) on {engine.name} "
            f"(duration={workload.duration_seconds}s, iterations={workload.iterations})"
        )
        with TimedExecution() as timer:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=workload.concurrency, thread_name_prefix="stress-worker"
            ) as executor:
                futures = [
                    executor.submit(_worker, i, engine, source, state)
                    for i in range(workload.concurrency)
                ]
                for fut in concurrent.futures.as_completed(futures):
                    fut.result()
        summary.elapsed_seconds = timer.elapsed

        logger.info(
            f"Run finished: {summary.successful_statements}/{summary.total_statements} "
            f"statements succeeded in {summary.elapsed_seconds:.2f}s"
        )
        return summary
    finally:
        engine.close()


def execute_with_engine(
    config: StressConfig,
    engine: QueryEngine,
    read_file: FileReader = read_file,
) -> RunSummary:
    """Load the configured workload and run it on an already built engine.

    The engine is closed exactly once, including when the workload cannot be
    loaded.

    Raises:
        ConfigurationError: If the workload document is missing or malformed
    """
    try:
        workload = load_workload(config.workload_path, read_file=read_file)
    except Exception:
        engine.close()
        raise
    logger.info(f"Loaded workload {config.workload_path}: {len(workload.entries)} entries")
    return run_workload(engine, workload)


def execute(
    config: StressConfig,
    read_file: FileReader = read_file,
    **engine_kwargs: Any,
) -> RunSummary:
    """Select the configured engine and run the workload on it.

    Raises:
        UnsupportedProtocolError: If no engine matches the protocol
        AuthError: If the engine cannot authenticate
        ConfigurationError: If the workload document is malformed
    """
    engine = select_engine(config.protocol, config.connection, **engine_kwargs)
    return execute_with_engine(config, engine, read_file=read_file)
