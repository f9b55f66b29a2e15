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
ODBC Query Engine Implementation

This module runs statements through an ODBC driver (by default the Arrow
Flight SQL ODBC driver) using pyodbc. Driver calls block until the statement
finishes, so there is no polling phase.

An ODBC connection handle is not safe to share between threads, so every
worker thread lazily opens its own connection. All of them are tracked and
closed together by close().

Requirements:
    - pyodbc
    - an installed ODBC driver manager and driver

Example:
    params = ConnectionParameters(url="grpc://localhost:32010", user="dremio", password="...")

    with OdbcEngine(params) as engine:
        result = engine.execute(Statement(sql="SELECT 1"))
"""

import logging
import threading
from typing import Any, Callable, Optional

from dremio_stress.config import ConnectionParameters
from dremio_stress.engine_base import ErrorKind, ExecutionResult, QueryEngine, Statement

logger = logging.getLogger(__name__)


def _pyodbc_connect(connection_string: str, timeout: int) -> Any:
    try:
        import pyodbc
    except ImportError as e:
        raise ImportError(
            "pyodbc is required for this engine. "
            "Install it with: pip install 'dremio-stress[odbc]'"
        ) from e
    return pyodbc.connect(connection_string, autocommit=True, timeout=timeout)


def _quote_identifier(part: str) -> str:
    return '"' + part.replace('"', '""') + '"'


class OdbcEngine(QueryEngine):
    """ODBC implementation of the query engine.

    Attributes:
        _connection_string: Driver connection string built from the parameters
        _local: Per-thread storage holding each worker's connection and the
            context last applied to it
        _connections: Every connection opened, for close()
    """

    def __init__(
        self,
        params: ConnectionParameters,
        connect: Optional[Callable[[str, int], Any]] = None,
    ) -> None:
        """Initialize the ODBC engine without opening any connection.

        Args:
            params: Connection parameters
            connect: Function opening a DB-API connection from a connection
                string and login timeout (defaults to pyodbc.connect)
        """
        self._connection_string = params.odbc_connection_string()
        self._timeout_seconds = params.timeout_seconds
        self._connect = connect or _pyodbc_connect
        self._local = threading.local()
        self._connections: list[Any] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def name(self) -> str:
        """Return engine identifier."""
        return "odbc"

    def _connection(self) -> Any:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        logger.info(f"Opening ODBC connection for {threading.current_thread().name}")
        conn = self._connect(self._connection_string, self._timeout_seconds)
        # query timeout, in seconds
        conn.timeout = self._timeout_seconds
        with self._lock:
            if self._closed:
                conn.close()
                raise RuntimeError("engine is closed")
            self._connections.append(conn)
        self._local.conn = conn
        self._local.context = ()
        return conn

    def _discard_connection(self) -> None:
        conn = self._local.conn
        self._local.conn = None
        self._local.context = ()
        with self._lock:
            if conn in self._connections:
                self._connections.remove(conn)
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")

    def execute(self, statement: Statement) -> ExecutionResult:
        """Run a statement on this thread's connection.

        Args:
            statement: Statement to run

        Returns:
            ExecutionResult with success or the driver's error
        """
        if self._closed:
            return self._failure(statement, ErrorKind.TRANSPORT, "engine is closed")
        if not statement.sql or not statement.sql.strip():
            return self._failure(statement, ErrorKind.VALIDATION, "sql cannot be empty")

        if getattr(self._local, "context", ()) and not statement.context:
            # no USE form restores the default schema
            logger.debug(f"Reopening ODBC connection to clear context for {statement.name}")
            self._discard_connection()

        try:
            conn = self._connection()
        except Exception as e:
            logger.error(f"Could not open ODBC connection: {e}")
            return self._failure(statement, ErrorKind.TRANSPORT, f"connection failed: {e}")

        row_count = 0
        try:
            cursor = conn.cursor()
            try:
                if statement.context and statement.context != self._local.context:
                    path = ".".join(_quote_identifier(p) for p in statement.context)
                    cursor.execute(f"USE {path}")
                    self._local.context = statement.context
                cursor.execute(statement.sql)
                if cursor.description is not None:
                    row_count = len(cursor.fetchall())
            finally:
                cursor.close()
        except Exception as e:
            logger.warning(f"Statement {statement.name} failed: {e}")
            return self._failure(statement, ErrorKind.BACKEND_FAILURE, str(e))

        logger.debug(f"Statement {statement.name} completed: {row_count} rows")
        return ExecutionResult(
            statement_name=statement.name,
            engine=self.name,
            success=True,
            metadata={"row_count": row_count},
        )

    def close(self) -> None:
        """Close every connection opened by the engine."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            connections, self._connections = self._connections, []

        if connections:
            logger.info(f"Closing {len(connections)} ODBC connection(s)")
        for conn in connections:
            try:
                conn.close()
            except Exception as e:
                logger.warning(f"Error closing connection: {e}")
