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
Abstract Base Class for Query Engines

This module defines the interface every transport-specific engine implements.
The orchestrator only talks to this interface, so a stress run can drive the
REST API and the ODBC driver the same way.

To implement a new engine:

    from dremio_stress.engine_base import ErrorKind, ExecutionResult, QueryEngine

    class MyEngine(QueryEngine):
        '''Engine implementation for MyTransport.'''

        @property
        def name(self) -> str:
            return "mytransport"

        def execute(self, statement: Statement) -> ExecutionResult:
            # Submit the statement and block until it reaches a terminal state
            try:
                self._client.run(statement.sql)
            except MyTransportError as e:
                return self._failure(statement, ErrorKind.TRANSPORT, str(e))
            return ExecutionResult(
                statement_name=statement.name,
                engine=self.name,
                success=True,
            )

        def close(self) -> None:
            self._client.close()

Engines are shared by every worker of a run, so execute() must be safe to
call from several threads at once.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
import time


@dataclass(frozen=True)
class Statement:
    """A SQL statement to run, with optional context path.

    Attributes:
        sql: SQL text
        context: Ordered namespace qualifiers the statement resolves against
        name: Label used to group results (e.g., "q1")
    """

    sql: str
    context: tuple[str, ...] = ()
    name: str = "statement"


class ErrorKind(str, Enum):
    """Why a statement failed."""

    VALIDATION = "validation"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    TIMED_OUT = "timed_out"
    BACKEND_FAILURE = "backend_failure"
    UNEXPECTED = "unexpected"


@dataclass
class ExecutionResult:
    """Result of a single statement execution.

    Attributes:
        statement_name: Label of the statement that ran
        engine: Name of the engine used
        success: Whether the statement reached a successful terminal state
        duration_seconds: Wall-clock time from submit to terminal state
        error_message: Error description (if failed)
        error_kind: Category of failure (if failed)
        job_id: Server-side job identifier, when the transport has one
        worker: Index of the worker that ran the statement
        metadata: Additional engine-specific metadata
    """

    statement_name: str
    engine: str
    success: bool
    duration_seconds: float = 0.0
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    job_id: Optional[str] = None
    worker: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for JSON serialization."""
        return {
            "statement_name": self.statement_name,
            "engine": self.engine,
            "success": self.success,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "job_id": self.job_id,
            "worker": self.worker,
            "metadata": self.metadata,
        }


class QueryEngine(ABC):
    """Abstract base class for stress query engines.

    The typical lifecycle is:
        1. engine = select_engine(protocol, params)
        2. for statement in workload (from several threads):
               result = engine.execute(statement)
        3. engine.close()

    Construction performs any one-time setup (such as logging in), so a
    constructed engine is ready to execute. close() is idempotent.

    Context manager support is provided for automatic cleanup:
        with select_engine(protocol, params) as engine:
            engine.execute(statement)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the short identifier for this engine (e.g., 'http', 'odbc').

        This is used in CLI arguments and result reporting.
        """
        pass

    @abstractmethod
    def execute(self, statement: Statement) -> ExecutionResult:
        """Submit a statement and wait for it to finish.

        Failures of the statement itself are reported through the returned
        ExecutionResult, never raised.

        Args:
            statement: The statement to run

        Returns:
            ExecutionResult describing the terminal outcome
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release connections held by the engine.

        Safe to call more than once, and safe to call on an engine that never
        executed anything.
        """
        pass

    def _failure(
        self,
        statement: Statement,
        kind: ErrorKind,
        message: str,
        job_id: Optional[str] = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            statement_name=statement.name,
            engine=self.name,
            success=False,
            error_message=message,
            error_kind=kind,
            job_id=job_id,
        )

    def __enter__(self) -> "QueryEngine":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit: close connections."""
        self.close()


class TimedExecution:
    """Context manager for timing code execution.

    Usage:
        with TimedExecution() as timer:
            # code to time
        print(f"Elapsed: {timer.elapsed:.3f}s")
    """

    def __init__(self) -> None:
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "TimedExecution":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
