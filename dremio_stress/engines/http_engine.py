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
REST API Query Engine

This module runs statements through the coordinator's REST API. The engine
logs in once when constructed and reuses the token for every later call:

    POST /apiv2/login        {"userName", "password"}  -> {"token"}
    POST /api/v3/sql         {"sql", "context"?}       -> {"id"}
    GET  /api/v3/job/{id}                              -> {"jobState", "errorMessage"?}

Authenticated requests carry "Authorization: _dremio<token>". Submission is
asynchronous on the server side, so execute() polls the job until it finishes
or the configured timeout passes.

Example:
    params = ConnectionParameters(url="http://localhost:9047", user="dremio", password="...")

    with HttpEngine(params) as engine:
        result = engine.execute(Statement(sql="SELECT 1"))
"""

import logging
from types import MappingProxyType
from typing import Any, Mapping, Optional

import httpx

from dremio_stress.config import ConnectionParameters
from dremio_stress.engine_base import ErrorKind, ExecutionResult, QueryEngine, Statement
from dremio_stress.errors import AuthError, ProtocolError, TransportError, TransportErrorKind
from dremio_stress.job_poller import JobOutcome, JobPoller, JobState
from dremio_stress.transport import HttpTransport

logger = logging.getLogger(__name__)

LOGIN_PATH = "/apiv2/login"
SQL_PATH = "/api/v3/sql"
JOB_PATH = "/api/v3/job/{job_id}"

JSON_HEADERS = MappingProxyType({"Content-Type": "application/json"})


class HttpEngine(QueryEngine):
    """REST implementation of the query engine.

    Attributes:
        _transport: Shared HTTP transport
        _headers: Read-only headers, token included, fixed at construction
        _timeout_seconds: Bound on how long one statement may take
    """

    def __init__(
        self,
        params: ConnectionParameters,
        client: Optional[httpx.Client] = None,
        poll_interval: Optional[float] = None,
    ) -> None:
        """Log in and prepare the engine.

        Args:
            params: Connection parameters (url, user, password, timeout)
            client: httpx client to use instead of a new one
            poll_interval: Override of the job poll interval, in seconds

        Raises:
            AuthError: If the login exchange fails or returns no token
        """
        self._timeout_seconds = params.timeout_seconds
        self._poll_interval = poll_interval
        self._transport = HttpTransport(
            params.base_url,
            params.timeout_seconds,
            verify=not params.skip_ssl_verify,
            client=client,
        )
        self._closed = False

        logger.info(f"Logging in to {self._transport.base_url} as {params.user}")
        try:
            token = self._login(params)
        except Exception:
            self._transport.close()
            raise

        self._headers: Mapping[str, str] = MappingProxyType(
            {**JSON_HEADERS, "Authorization": f"_dremio{token}"}
        )
        logger.info("REST login succeeded")

    def _login(self, params: ConnectionParameters) -> str:
        credentials = {"userName": params.user, "password": params.password}
        try:
            response = self._transport.send("POST", LOGIN_PATH, JSON_HEADERS, credentials)
        except TransportError as e:
            raise AuthError(f"login failed: {e}") from e

        token = response.body.get("token")
        if not token:
            raise AuthError(f"token was not contained in the login response '{response.body}'")
        return str(token)

    @property
    def name(self) -> str:
        """Return engine identifier."""
        return "http"

    @property
    def url(self) -> str:
        """Return the base URL used to reach the service."""
        return self._transport.base_url

    def _submit(self, statement: Statement) -> str:
        payload: dict[str, Any] = {"sql": statement.sql}
        if statement.context:
            payload["context"] = list(statement.context)
        response = self._transport.send("POST", SQL_PATH, self._headers, payload)
        job_id = response.body.get("id")
        if job_id is None or not str(job_id).strip():
            raise ProtocolError(f"submit response has no job id: '{response.body}'")
        return str(job_id)

    def _fetch_job_state(self, job_id: str) -> Mapping[str, Any]:
        if self._closed:
            raise TransportError("engine is closed", TransportErrorKind.CLOSED)
        return self._transport.send("GET", JOB_PATH.format(job_id=job_id), self._headers).body

    def _poller(self, job_id: str) -> JobPoller:
        if self._poll_interval is None:
            return JobPoller(self._fetch_job_state, job_id)
        return JobPoller(self._fetch_job_state, job_id, interval=self._poll_interval)

    def execute(self, statement: Statement) -> ExecutionResult:
        """Submit a statement and poll its job to a terminal state.

        Args:
            statement: Statement to run

        Returns:
            ExecutionResult; failures carry the ErrorKind that caused them
        """
        if self._closed:
            return self._failure(statement, ErrorKind.TRANSPORT, "engine is closed")
        if not statement.sql or not statement.sql.strip():
            return self._failure(statement, ErrorKind.VALIDATION, "sql cannot be empty")

        try:
            job_id = self._submit(statement)
        except TransportError as e:
            logger.warning(f"Submitting {statement.name} failed: {e}")
            return self._failure(statement, ErrorKind.TRANSPORT, str(e))
        except ProtocolError as e:
            logger.warning(f"Submitting {statement.name} failed: {e}")
            return self._failure(statement, ErrorKind.PROTOCOL, str(e))

        logger.debug(f"Statement {statement.name} submitted as job {job_id}")
        poller = self._poller(job_id)
        try:
            outcome = poller.wait(self._timeout_seconds)
        except TransportError as e:
            logger.warning(f"Polling job {job_id} failed: {e}")
            return self._failure(statement, ErrorKind.TRANSPORT, str(e), job_id)
        except ProtocolError as e:
            logger.warning(f"Polling job {job_id} failed: {e}")
            return self._failure(statement, ErrorKind.PROTOCOL, str(e), job_id)

        return self._to_result(statement, job_id, outcome, poller.ticks)

    def _to_result(
        self, statement: Statement, job_id: str, outcome: JobOutcome, ticks: int
    ) -> ExecutionResult:
        if outcome.success:
            return ExecutionResult(
                statement_name=statement.name,
                engine=self.name,
                success=True,
                job_id=job_id,
                metadata={"polls": ticks},
            )

        if outcome.state is JobState.TIMED_OUT:
            kind = ErrorKind.TIMED_OUT
            message = outcome.message
        else:
            kind = ErrorKind.BACKEND_FAILURE
            message = (
                f"job {job_id} {outcome.state.value}: "
                f"{outcome.message or 'no error message returned'}"
            )
        logger.warning(f"Statement {statement.name} failed: {message}")
        result = self._failure(statement, kind, message, job_id)
        result.metadata["polls"] = ticks
        return result

    def close(self) -> None:
        """Close the HTTP transport."""
        if self._closed:
            return
        logger.info(f"Closing REST engine for {self._transport.base_url}")
        self._closed = True
        self._transport.close()
