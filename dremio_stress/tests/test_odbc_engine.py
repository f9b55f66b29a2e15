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
Tests for the ODBC engine.

The engine is driven through an injected connect function returning fake
DB-API connections, so no ODBC driver is needed.
"""

import threading

import pytest

from dremio_stress.config import ConnectionParameters
from dremio_stress.engine_base import ErrorKind, Statement
from dremio_stress.engines.odbc_engine import OdbcEngine


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self.closed = False

    def execute(self, sql):
        self.conn.executed.append(sql)
        if "FAIL" in sql:
            raise RuntimeError("Table 'FAIL' not found")
        self.description = [("x",)] if sql.upper().startswith("SELECT") else None

    def fetchall(self):
        return [(1,), (2,)]

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, connection_string, timeout):
        self.connection_string = connection_string
        self.login_timeout = timeout
        self.timeout = 0
        self.executed = []
        self.closed = False
        self.thread = threading.current_thread().name

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = True


class FakeDriver:
    """Connect function recording every connection it opens."""

    def __init__(self, fail=False):
        self.fail = fail
        self.connections = []
        self._lock = threading.Lock()

    def __call__(self, connection_string, timeout):
        if self.fail:
            raise ConnectionError("Data source name not found")
        conn = FakeConnection(connection_string, timeout)
        with self._lock:
            self.connections.append(conn)
        return conn


@pytest.fixture
def odbc_params():
    return ConnectionParameters(
        url="grpc://dremio.test:32010", user="dremio", password="secret", timeout_seconds=30
    )


class TestOdbcEngineConstruction:
    """Tests for building the ODBC engine."""

    def test_constructor_does_not_connect(self, odbc_params):
        """No connection is opened until a statement runs."""
        driver = FakeDriver()

        OdbcEngine(odbc_params, connect=driver)

        assert driver.connections == []

    def test_name_is_odbc(self, odbc_params):
        """Engine name is 'odbc'."""
        assert OdbcEngine(odbc_params, connect=FakeDriver()).name == "odbc"

    def test_close_without_use(self, odbc_params):
        """close() succeeds on an unused engine, repeatedly."""
        engine = OdbcEngine(odbc_params, connect=FakeDriver())

        engine.close()
        engine.close()


class TestOdbcEngineExecute:
    """Tests for OdbcEngine.execute()."""

    def test_successful_select(self, odbc_params):
        """A SELECT succeeds and reports the drained row count."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        result = engine.execute(Statement(sql="SELECT 1", name="q1"))

        assert result.success is True
        assert result.statement_name == "q1"
        assert result.metadata["row_count"] == 2

    def test_connection_uses_parameters(self, odbc_params):
        """The connection string and timeouts come from the parameters."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        engine.execute(Statement(sql="SELECT 1"))

        conn = driver.connections[0]
        assert conn.connection_string == odbc_params.odbc_connection_string()
        assert conn.login_timeout == 30
        assert conn.timeout == 30

    def test_connection_reused_within_thread(self, odbc_params):
        """Sequential statements on one thread share a connection."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        engine.execute(Statement(sql="SELECT 1"))
        engine.execute(Statement(sql="SELECT 2"))

        assert len(driver.connections) == 1
        assert driver.connections[0].executed == ["SELECT 1", "SELECT 2"]

    def test_one_connection_per_thread(self, odbc_params):
        """Each worker thread gets its own connection."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)
        barrier = threading.Barrier(3)

        def work():
            barrier.wait()
            engine.execute(Statement(sql="SELECT 1"))

        threads = [threading.Thread(target=work) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(driver.connections) == 3
        assert len({c.thread for c in driver.connections}) == 3

    def test_context_applied_with_use(self, odbc_params):
        """A statement context is applied with a quoted USE first."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        engine.execute(Statement(sql="SELECT 1", context=("Samples", "samples.dremio.com")))

        assert driver.connections[0].executed == [
            'USE "Samples"."samples.dremio.com"',
            "SELECT 1",
        ]

    def test_context_not_reapplied_when_unchanged(self, odbc_params):
        """Consecutive statements with the same context issue one USE."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        engine.execute(Statement(sql="SELECT 1", context=("space",)))
        engine.execute(Statement(sql="SELECT 2", context=("space",)))
        engine.execute(Statement(sql="SELECT 3", context=("other",)))

        assert driver.connections[0].executed == [
            'USE "space"',
            "SELECT 1",
            "SELECT 2",
            'USE "other"',
            "SELECT 3",
        ]

    def test_context_does_not_leak_into_next_statement(self, odbc_params):
        """A statement without context after one with context runs on a fresh connection."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        engine.execute(Statement(sql="SELECT 1", context=("space",)))
        result = engine.execute(Statement(sql="SELECT * FROM t"))

        assert result.success is True
        assert len(driver.connections) == 2
        first, second = driver.connections
        assert first.executed == ['USE "space"', "SELECT 1"]
        assert first.closed is True
        assert second.executed == ["SELECT * FROM t"]

        engine.close()

        assert second.closed is True

    def test_driver_error_is_backend_failure(self, odbc_params):
        """A driver exception becomes a BACKEND_FAILURE result."""
        engine = OdbcEngine(odbc_params, connect=FakeDriver())

        result = engine.execute(Statement(sql="SELECT * FROM FAIL"))

        assert result.success is False
        assert result.error_kind is ErrorKind.BACKEND_FAILURE
        assert "not found" in result.error_message

    def test_connect_error_is_transport_failure(self, odbc_params):
        """Failing to open a connection becomes a TRANSPORT failure."""
        engine = OdbcEngine(odbc_params, connect=FakeDriver(fail=True))

        result = engine.execute(Statement(sql="SELECT 1"))

        assert result.success is False
        assert result.error_kind is ErrorKind.TRANSPORT
        assert "Data source name not found" in result.error_message

    def test_empty_sql_is_validation_failure(self, odbc_params):
        """Empty SQL fails without opening a connection."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)

        result = engine.execute(Statement(sql=" "))

        assert result.error_kind is ErrorKind.VALIDATION
        assert driver.connections == []


class TestOdbcEngineClose:
    """Tests for OdbcEngine.close()."""

    def test_close_closes_every_connection(self, odbc_params):
        """close() closes the connections of all threads."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)
        engine.execute(Statement(sql="SELECT 1"))
        worker = threading.Thread(target=engine.execute, args=(Statement(sql="SELECT 2"),))
        worker.start()
        worker.join()

        engine.close()

        assert len(driver.connections) == 2
        assert all(c.closed for c in driver.connections)

    def test_execute_after_close_fails(self, odbc_params):
        """A closed engine reports failure without connecting."""
        driver = FakeDriver()
        engine = OdbcEngine(odbc_params, connect=driver)
        engine.close()

        result = engine.execute(Statement(sql="SELECT 1"))

        assert result.success is False
        assert driver.connections == []
