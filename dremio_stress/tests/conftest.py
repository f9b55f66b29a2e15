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

"""Shared fixtures: an in-process fake of the REST API and a fake clock."""

import httpx
import pytest

from dremio_stress.config import ConnectionParameters


class FakeDremio:
    """httpx.MockTransport handler answering the login, submit and job endpoints.

    job_states is replayed one entry per status request; the last entry
    repeats once the list is exhausted.
    """

    def __init__(
        self,
        job_states=("COMPLETED",),
        login_body=None,
        submit_body=None,
        error_message=None,
    ):
        self.job_states = list(job_states)
        self.login_body = {"token": "abc123"} if login_body is None else login_body
        self.submit_body = {"id": "job-1"} if submit_body is None else submit_body
        self.error_message = error_message
        self.requests: list[httpx.Request] = []
        self.polls = 0

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/apiv2/login":
            return httpx.Response(200, json=self.login_body)
        if path == "/api/v3/sql":
            return httpx.Response(200, json=self.submit_body)
        if path.startswith("/api/v3/job/"):
            state = self.job_states[min(self.polls, len(self.job_states) - 1)]
            self.polls += 1
            body = {"jobState": state}
            if self.error_message is not None:
                body["errorMessage"] = self.error_message
            return httpx.Response(200, json=body)
        return httpx.Response(404, json={"errorMessage": "not found"})

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def params():
    return ConnectionParameters(
        url="http://dremio.test:9047",
        user="dremio",
        password="dremio123",
        timeout_seconds=5,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_dremio_factory():
    return FakeDremio
