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
Stress Run Configuration

Connection parameters and the validated configuration value consumed by the
orchestrator. The CLI builds a StressConfig; nothing below reads sys.argv.

Connection settings not passed explicitly fall back to environment variables:
    - DREMIO_URL: Base URL of the coordinator (e.g., http://localhost:9047)
    - DREMIO_USER: User name for the login exchange
    - DREMIO_PASSWORD: Password for the login exchange
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlsplit

from dremio_stress.errors import ConfigurationError, UnsupportedProtocolError

ENV_URL = "DREMIO_URL"
ENV_USER = "DREMIO_USER"
ENV_PASSWORD = "DREMIO_PASSWORD"

DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_ODBC_DRIVER = "Arrow Flight SQL ODBC Driver"
DEFAULT_FLIGHT_PORT = 32010

_ENCRYPTED_SCHEMES = {"https", "grpc+tls"}


class Protocol(str, Enum):
    """Transports a stress run can drive statements through."""

    HTTP = "http"
    ODBC = "odbc"


def parse_protocol(value: Union[str, Protocol]) -> Protocol:
    """Map a protocol name (case-insensitive) to a Protocol.

    Raises:
        UnsupportedProtocolError: If the value names no known protocol
    """
    if isinstance(value, Protocol):
        return value
    try:
        return Protocol(str(value).strip().lower())
    except ValueError:
        raise UnsupportedProtocolError(value, [p.value for p in Protocol]) from None


@dataclass(frozen=True)
class ConnectionParameters:
    """How to reach and authenticate against the query service.

    Attributes:
        url: Base URL for REST (no trailing slash needed), or host URL / raw
            connection string for ODBC
        user: Principal used to log in
        password: Credential for the principal
        timeout_seconds: Upper bound for one statement, including polling
        skip_ssl_verify: Disable TLS certificate verification
        odbc_driver: ODBC driver name used when building a connection string
    """

    url: str = ""
    user: str = ""
    password: str = ""
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    skip_ssl_verify: bool = False
    odbc_driver: str = DEFAULT_ODBC_DRIVER

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be positive, got {self.timeout_seconds}"
            )

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    def odbc_connection_string(self) -> str:
        """Build an ODBC connection string from these parameters.

        A url that already is a connection string (DSN=... or Driver=...) is
        returned unchanged.
        """
        lowered = self.url.strip().lower()
        if lowered.startswith("dsn=") or lowered.startswith("driver="):
            return self.url.strip()

        parts = urlsplit(self.url if "://" in self.url else f"grpc://{self.url}")
        encrypted = parts.scheme in _ENCRYPTED_SCHEMES
        fields = [
            f"Driver={{{self.odbc_driver}}}",
            f"HOST={parts.hostname or 'localhost'}",
            f"PORT={parts.port or DEFAULT_FLIGHT_PORT}",
            f"UID={self.user}",
            f"PWD={self.password}",
            f"useEncryption={'true' if encrypted else 'false'}",
        ]
        if encrypted and self.skip_ssl_verify:
            fields.append("disableCertificateVerification=true")
        return ";".join(fields)

    @classmethod
    def from_env(
        cls,
        url: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        **kwargs,
    ) -> "ConnectionParameters":
        """Build parameters, filling missing fields from the environment."""
        return cls(
            url=url or os.environ.get(ENV_URL, ""),
            user=user or os.environ.get(ENV_USER, ""),
            password=password or os.environ.get(ENV_PASSWORD, ""),
            **kwargs,
        )


@dataclass(frozen=True)
class StressConfig:
    """Validated configuration for one stress run."""

    protocol: Protocol
    connection: ConnectionParameters
    workload_path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "protocol", parse_protocol(self.protocol))
        object.__setattr__(self, "workload_path", Path(self.workload_path))
