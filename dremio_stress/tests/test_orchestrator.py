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
Tests for the workload orchestrator.

These tests verify:
1. Results are aggregated into a RunSummary, failures included
2. Iteration and duration bounds stop the workers between statements
3. The engine is closed exactly once, after every worker is done
4. Setup failures propagate and still close the engine
"""

import json
import threading
from unittest.mock import MagicMock

import pytest

from dremio_stress.config import ConnectionParameters, StressConfig
from dremio_stress.engine_base import ErrorKind, ExecutionResult, QueryEngine, Statement
from dremio_stress.errors import AuthError, ConfigurationError, UnsupportedProtocolError
from dremio_stress.orchestrator import execute, execute_with_engine, run_workload
from dremio_stress.workload import Workload, WorkloadEntry


class RecordingEngine(QueryEngine):
    """Engine that records calls and fails statements whose SQL contains FAIL."""

    def __init__(self, clock=None, step=0.0):
        self.events = []
        self.close_calls = 0
        self._lock = threading.Lock()
        self._clock = clock
        self._step = step

    @property
    def name(self):
        return "recording"

    def execute(self, statement):
        with self._lock:
            self.events.append(("execute", statement.sql))
            if self._clock is not None:
                self._clock.now += self._step
        if "FAIL" in statement.sql:
            return self._failure(statement, ErrorKind.BACKEND_FAILURE, "job failed")
        return ExecutionResult(statement_name=statement.name, engine=self.name, success=True)

    def close(self):
        with self._lock:
            self.events.append(("close", None))
            self.close_calls += 1


def entries(*sqls):
    return [
        WorkloadEntry(name=f"q{i}", statements=(Statement(sql=sql, name=f"q{i}"),))
        for i, sql in enumerate(sqls, start=1)
    ]


def config_for(path="stress.json", protocol="odbc"):
    return StressConfig(
        protocol=protocol,
        connection=ConnectionParameters(url="http://dremio.test:9047", user="u", password="p"),
        workload_path=path,
    )


class TestRunWorkload:
    """Tests for run_workload()."""

    def test_one_failure_among_three(self):
        """concurrency=1, statement 2 fails: 2 successes, 1 failure, one close at the end."""
        engine = RecordingEngine()
        workload = Workload(entries=entries("SELECT 1", "SELECT FAIL", "SELECT 3"), iterations=3)

        summary = run_workload(engine, workload)

        assert summary.total_statements == 3
        assert summary.successful_statements == 2
        assert summary.failed_statements == 1
        assert summary.failures_by_kind == {"backend_failure": 1}
        assert engine.close_calls == 1
        assert engine.events == [
            ("execute", "SELECT 1"),
            ("execute", "SELECT FAIL"),
            ("execute", "SELECT 3"),
            ("close", None),
        ]

    def test_results_carry_latency_and_worker(self):
        """Each result gets a measured duration and its worker index."""
        engine = RecordingEngine()
        workload = Workload(entries=entries("SELECT 1"), iterations=2)

        summary = run_workload(engine, workload)

        assert all(r.duration_seconds >= 0 for r in summary.results)
        assert all(r.worker == 0 for r in summary.results)
        assert summary.elapsed_seconds >= 0

    def test_iteration_budget_shared_by_workers(self):
        """The iteration count bounds the total across all workers."""
        engine = RecordingEngine()
        workload = Workload(entries=entries("SELECT 1", "SELECT 2"), iterations=25, concurrency=4)

        summary = run_workload(engine, workload)

        assert summary.total_statements == 25
        assert summary.concurrency == 4
        assert engine.close_calls == 1
        assert engine.events[-1] == ("close", None)

    def test_duration_bound_checked_between_statements(self, fake_clock):
        """The run stops once the clock passes the duration."""
        engine = RecordingEngine(clock=fake_clock, step=1.0)
        workload = Workload(entries=entries("SELECT 1"), duration_seconds=3)

        summary = run_workload(engine, workload, clock=fake_clock)

        # statements start at t=0, 1 and 2; the check at t=3 stops the worker
        assert summary.total_statements == 3
        assert engine.close_calls == 1

    def test_first_bound_reached_wins(self, fake_clock):
        """With both bounds set, the iteration budget can stop the run first."""
        engine = RecordingEngine(clock=fake_clock, step=1.0)
        workload = Workload(entries=entries("SELECT 1"), duration_seconds=100, iterations=2)

        summary = run_workload(engine, workload, clock=fake_clock)

        assert summary.total_statements == 2

    def test_group_runs_in_order_on_one_worker(self):
        """A query group's statements execute consecutively."""
        engine = RecordingEngine()
        group = WorkloadEntry(
            name="ddl",
            statements=(
                Statement(sql="CREATE t", name="ddl[1]"),
                Statement(sql="DROP t", name="ddl[2]"),
            ),
        )
        workload = Workload(entries=[group], iterations=4)

        summary = run_workload(engine, workload)

        assert [r.statement_name for r in summary.results] == ["ddl[1]", "ddl[2]"] * 2

    def test_engine_exception_recorded_not_raised(self):
        """An engine that raises produces UNEXPECTED failures; the run continues."""
        engine = MagicMock(spec=QueryEngine)
        engine.name = "broken"
        engine.execute.side_effect = RuntimeError("driver crashed")
        workload = Workload(entries=entries("SELECT 1"), iterations=3)

        summary = run_workload(engine, workload)

        assert summary.failed_statements == 3
        assert summary.failures_by_kind == {"unexpected": 3}
        assert "driver crashed" in summary.results[0].error_message
        engine.close.assert_called_once()


class TestExecuteWithEngine:
    """Tests for execute_with_engine()."""

    def test_bad_workload_closes_engine_and_raises(self):
        """If the workload cannot be loaded, the error propagates and close() runs once."""
        engine = MagicMock(spec=QueryEngine)

        with pytest.raises(ConfigurationError):
            execute_with_engine(config_for(), engine, read_file=lambda path: b"mock data")

        engine.close.assert_called_once()
        engine.execute.assert_not_called()

    def test_unreadable_workload_closes_engine(self):
        """An IOError from the reader is reported as ConfigurationError."""
        engine = MagicMock(spec=QueryEngine)

        def reader(path):
            raise FileNotFoundError(path)

        with pytest.raises(ConfigurationError, match="cannot read"):
            execute_with_engine(config_for(), engine, read_file=reader)

        engine.close.assert_called_once()

    def test_runs_loaded_workload(self):
        """A valid document runs and returns a summary."""
        engine = RecordingEngine()
        document = {"iterations": 3, "queries": [{"queryText": "SELECT 1"}, {"queryText": "SELECT FAIL"}]}

        summary = execute_with_engine(
            config_for(), engine, read_file=lambda path: json.dumps(document).encode()
        )

        assert summary.successful_statements == 2
        assert summary.failed_statements == 1
        assert engine.close_calls == 1


class TestExecute:
    """Tests for execute()."""

    def test_unsupported_protocol(self):
        """An unknown protocol is rejected before any file is read."""
        reader = MagicMock()
        config = config_for()
        object.__setattr__(config, "protocol", "smtp")

        with pytest.raises(UnsupportedProtocolError, match="smtp"):
            execute(config, read_file=reader)

        reader.assert_not_called()

    def test_auth_failure_aborts_before_workload(self, fake_dremio_factory):
        """A failed login aborts the run without reading the workload."""
        reader = MagicMock()
        fake = fake_dremio_factory(login_body={})

        with pytest.raises(AuthError):
            execute(config_for(protocol="http"), read_file=reader, client=fake.client())

        reader.assert_not_called()

    def test_end_to_end_over_http(self, fake_dremio_factory):
        """execute() logs in, runs the workload over REST and closes the engine."""
        fake = fake_dremio_factory(job_states=["COMPLETED"])
        document = {
            "iterations": 2,
            "queries": [{"queryText": "SELECT 1", "sqlContext": ["Samples"]}],
        }

        summary = execute(
            config_for(protocol="http"),
            read_file=lambda path: json.dumps(document).encode(),
            client=fake.client(),
        )

        assert summary.engine == "http"
        assert summary.successful_statements == 2
        assert fake.paths() == [
            "/apiv2/login",
            "/api/v3/sql",
            "/api/v3/job/job-1",
            "/api/v3/sql",
            "/api/v3/job/job-1",
        ]
