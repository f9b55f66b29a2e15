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
Job Status Polling

The REST API runs SQL asynchronously: a submit call returns a job id and the
caller has to poll the job until it reaches a terminal state. JobPoller turns
that into a blocking call with a hard deadline.

State machine:

    SUBMITTED -> RUNNING -> COMPLETED | FAILED | INVALID_STATE | CANCELLED

Any jobState that is not one of the four terminal values (RUNNING, PENDING,
ENQUEUED, PLANNING, ...) keeps the job running. Polls are spaced by a fixed
interval; there is no backoff and no retry cap beyond the deadline.

The clock and sleep functions are injectable so the loop can be driven by a
fake clock in tests.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from dremio_stress.errors import ProtocolError

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 0.2
TIMEOUT_MESSAGE = "timeout hit"


class JobState(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    INVALID_STATE = "INVALID_STATE"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"


_TERMINAL_STATES = {
    JobState.COMPLETED.value: JobState.COMPLETED,
    JobState.FAILED.value: JobState.FAILED,
    JobState.INVALID_STATE.value: JobState.INVALID_STATE,
    JobState.CANCELLED.value: JobState.CANCELLED,
}


@dataclass(frozen=True)
class JobOutcome:
    """Terminal outcome of a job.

    Attributes:
        state: Terminal state observed (or TIMED_OUT)
        message: Backend-supplied error text, when there is one
    """

    state: JobState
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state is JobState.COMPLETED


def classify_job_state(body: Optional[Mapping[str, Any]]) -> Optional[JobOutcome]:
    """Map a job status body to a terminal outcome, or None if still running.

    Raises:
        ProtocolError: If the body or its jobState field is missing
    """
    if body is None:
        raise ProtocolError("no valid response body")
    if body.get("jobState") is None:
        raise ProtocolError("no jobState key present")

    state = _TERMINAL_STATES.get(str(body["jobState"]))
    if state is None:
        return None
    if state is JobState.COMPLETED:
        return JobOutcome(state)
    message = body.get("errorMessage") or body.get("cancellationReason")
    return JobOutcome(state, message)


class JobPoller:
    """Polls one job until it finishes or the deadline passes.

    Attributes:
        job_id: Job being polled
        interval: Delay between two polls, in seconds
        ticks: Number of status requests issued so far
    """

    def __init__(
        self,
        fetch_state: Callable[[str], Optional[Mapping[str, Any]]],
        job_id: str,
        interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.job_id = job_id
        self.interval = interval
        self.ticks = 0
        self._fetch_state = fetch_state
        self._clock = clock
        self._sleep = sleep

    def tick(self, now: float, deadline: float) -> Optional[JobOutcome]:
        """Run one step of the state machine.

        Returns TIMED_OUT without issuing a request when now has reached the
        deadline; otherwise fetches the job state once and classifies it.

        Raises:
            ProtocolError: If the status response lacks a job state
            TransportError: If the status request fails
        """
        if now >= deadline:
            return JobOutcome(JobState.TIMED_OUT, TIMEOUT_MESSAGE)

        self.ticks += 1
        body = self._fetch_state(self.job_id)
        outcome = classify_job_state(body)
        logger.debug(f"job {self.job_id} tick {self.ticks}: {body.get('jobState')}")
        return outcome

    def wait(self, timeout_seconds: float) -> JobOutcome:
        """Poll until a terminal outcome, at most timeout_seconds from now."""
        deadline = self._clock() + timeout_seconds
        while True:
            outcome = self.tick(self._clock(), deadline)
            if outcome is not None:
                if outcome.state is JobState.TIMED_OUT:
                    logger.warning(
                        f"job {self.job_id} not finished after {timeout_seconds}s "
                        f"({self.ticks} polls)"
                    )
                return outcome
            self._sleep(self.interval)
