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
HTTP Transport

Issues single JSON requests against the query service and hands back the
parsed body. Every failure mode comes back as a TransportError whose kind
tells network faults, bad statuses and unusable bodies apart.

One httpx.Client is shared by all workers of a run; it is thread-safe and
pools connections.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from dremio_stress.errors import TransportError, TransportErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiResponse:
    """Status code and parsed JSON object of a successful call."""

    status_code: int
    body: dict[str, Any]


class HttpTransport:
    """Sends authenticated JSON requests to one base URL.

    Attributes:
        base_url: Scheme, host and port, without a trailing slash
        timeout_seconds: Bound for each individual request
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float,
        verify: bool = True,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.Client(timeout=timeout_seconds, verify=verify)
        self._closed = False

    def send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: Optional[Mapping[str, Any]] = None,
    ) -> ApiResponse:
        """Send one request and parse the JSON object it returns.

        Args:
            method: HTTP method ("GET" or "POST")
            path: Path below base_url, starting with "/"
            headers: Request headers
            body: JSON-serializable request body, if any

        Returns:
            ApiResponse with the parsed body

        Raises:
            TransportError: On network failure, non-2xx status, or a body
                that is empty or not a JSON object
        """
        if self._closed:
            raise TransportError("transport is closed", TransportErrorKind.CLOSED)

        url = f"{self.base_url}{path}"
        content = json.dumps(body) if body is not None else None
        logger.debug(f"{method} {url}")
        try:
            response = self._client.request(
                method,
                url,
                headers=dict(headers),
                content=content,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}", TransportErrorKind.NETWORK) from e

        if not response.is_success:
            raise TransportError(
                f"{method} {url} returned status {response.status_code}: {response.text[:200]}",
                TransportErrorKind.STATUS,
                status_code=response.status_code,
            )

        if not response.content.strip():
            raise TransportError(
                f"{method} {url} returned an empty body", TransportErrorKind.MALFORMED
            )
        try:
            parsed = response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {url} returned a body that is not JSON", TransportErrorKind.MALFORMED
            ) from e
        if not isinstance(parsed, dict):
            raise TransportError(
                f"{method} {url} returned JSON that is not an object", TransportErrorKind.MALFORMED
            )

        return ApiResponse(status_code=response.status_code, body=parsed)

    def close(self) -> None:
        """Close pooled connections. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._client.close()
