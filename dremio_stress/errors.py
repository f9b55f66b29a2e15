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
Error Taxonomy

Setup-time errors (configuration, authentication) abort a stress run before
any worker starts. Per-statement errors (transport, protocol, validation) are
raised inside an engine and converted into a failed ExecutionResult, so they
never unwind the orchestrator.
"""

from enum import Enum
from typing import Optional


class StressError(Exception):
    """Base class for all errors raised by dremio_stress."""


class ConfigurationError(StressError, ValueError):
    """Invalid configuration or malformed workload document."""


class UnsupportedProtocolError(ConfigurationError):
    """The requested protocol has no matching engine."""

    def __init__(self, protocol: object, available: list[str]) -> None:
        self.protocol = protocol
        self.available = available
        super().__init__(
            f"Unsupported protocol '{protocol}'. Available protocols: {', '.join(available)}"
        )


class AuthError(StressError):
    """The login exchange did not yield a usable token."""


class ValidationError(StressError):
    """A statement was rejected before anything was sent."""


class ProtocolError(StressError):
    """A well-formed response was missing a field the protocol requires."""


class TransportErrorKind(str, Enum):
    NETWORK = "network"
    STATUS = "status"
    MALFORMED = "malformed"
    CLOSED = "closed"


class TransportError(StressError):
    """A network call failed or returned a body that could not be used.

    Attributes:
        kind: Which part of the exchange failed
        status_code: HTTP status for STATUS errors, None otherwise
    """

    def __init__(
        self,
        message: str,
        kind: TransportErrorKind = TransportErrorKind.NETWORK,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
