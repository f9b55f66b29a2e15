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
Query Engine Registry

This module maps each supported protocol to the engine that implements it.
To add a new engine, import it here and add it to the ENGINES dictionary.
"""

from typing import Any, Type, Union

from dremio_stress.config import ConnectionParameters, Protocol, parse_protocol
from dremio_stress.engine_base import QueryEngine

# Import engine implementations
from dremio_stress.engines.http_engine import HttpEngine
from dremio_stress.engines.odbc_engine import OdbcEngine

# Registry of available engines
# Key: protocol
# Value: Engine class
ENGINES: dict[Protocol, Type[QueryEngine]] = {
    Protocol.HTTP: HttpEngine,
    Protocol.ODBC: OdbcEngine,
}


def select_engine(
    protocol: Union[str, Protocol],
    params: ConnectionParameters,
    **engine_kwargs: Any,
) -> QueryEngine:
    """Construct the engine for a protocol.

    Args:
        protocol: Protocol or protocol name (case-insensitive)
        params: Connection parameters handed to the engine
        **engine_kwargs: Extra keyword arguments for the engine constructor

    Returns:
        A ready-to-use engine instance

    Raises:
        UnsupportedProtocolError: If the protocol is not recognized
        AuthError: If the REST engine cannot log in
    """
    resolved = parse_protocol(protocol)
    return ENGINES[resolved](params, **engine_kwargs)


def list_protocols() -> list[str]:
    """Return list of supported protocol names."""
    return sorted(p.value for p in ENGINES)


__all__ = [
    "ENGINES",
    "select_engine",
    "list_protocols",
    "HttpEngine",
    "OdbcEngine",
]
