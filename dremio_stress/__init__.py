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
Dremio Stress

A load generator that repeatedly submits SQL statements to a Dremio-style
query service and tracks each one to a terminal outcome.

To add support for a new transport:
1. Create a new file in dremio_stress/engines/ (e.g., flight_engine.py)
2. Subclass QueryEngine from dremio_stress.engine_base
3. Implement name, execute() and close()
4. Add a Protocol value and register the engine in dremio_stress/engines/__init__.py
"""

from dremio_stress.config import ConnectionParameters, Protocol, StressConfig
from dremio_stress.engine_base import ErrorKind, ExecutionResult, QueryEngine, Statement
from dremio_stress.engines import ENGINES, select_engine
from dremio_stress.orchestrator import execute, execute_with_engine, run_workload
from dremio_stress.reporting import RunSummary

__all__ = [
    "ConnectionParameters",
    "Protocol",
    "StressConfig",
    "ErrorKind",
    "ExecutionResult",
    "QueryEngine",
    "Statement",
    "ENGINES",
    "select_engine",
    "execute",
    "execute_with_engine",
    "run_workload",
    "RunSummary",
]
