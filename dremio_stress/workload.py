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
Workload Definition

This module loads the JSON document describing what a stress run executes and
hands statements to the workers.

Document layout:

    {
      "concurrency": 4,               # number of workers (default 1)
      "durationSeconds": 60,          # stop after this much wall time
      "iterations": 500,              # and/or after this many statements
      "order": "random",              # "sequential" (default) or "random"
      "seed": 42,                     # seed for random order and parameters
      "queryGroups": [
        {"name": "ddl", "queries": ["CREATE ...", "DROP ..."], "sqlContext": ["space"]}
      ],
      "queries": [
        {"queryText": "SELECT * FROM t WHERE c = :val", "sqlContext": ["space"],
         "frequency": 3, "parameters": {"val": ["'a'", "'b'"]}},
        {"queryGroup": "ddl", "frequency": 1}
      ]
    }

A query group is drawn as a unit and its statements run in order on one
worker. ":name" placeholders are replaced with a random value from the
entry's parameters.
"""

import json
import random
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from dremio_stress.engine_base import Statement
from dremio_stress.errors import ConfigurationError

ORDER_SEQUENTIAL = "sequential"
ORDER_RANDOM = "random"
ORDERS = (ORDER_SEQUENTIAL, ORDER_RANDOM)


def read_file(path: Union[str, Path]) -> bytes:
    """Read a file from disk."""
    return Path(path).read_bytes()


@dataclass(frozen=True)
class WorkloadEntry:
    """One weighted entry of the workload: a single query or a query group.

    Attributes:
        name: Label for results ("q1", or the group name)
        statements: Statements run in order when this entry is drawn
        frequency: Relative weight of this entry
        parameters: Placeholder name to candidate values
    """

    name: str
    statements: tuple[Statement, ...]
    frequency: int = 1
    parameters: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def render(self, rng: random.Random) -> list[Statement]:
        """Return the entry's statements with placeholders filled in."""
        if not self.parameters:
            return list(self.statements)

        names = "|".join(re.escape(n) for n in sorted(self.parameters, key=len, reverse=True))
        pattern = re.compile(rf"(?<![:\w]):({names})\b")
        rendered = []
        for statement in self.statements:
            sql = pattern.sub(lambda m: rng.choice(self.parameters[m.group(1)]), statement.sql)
            rendered.append(Statement(sql=sql, context=statement.context, name=statement.name))
        return rendered


@dataclass
class Workload:
    """Statements and run shape of one stress run."""

    entries: list[WorkloadEntry]
    concurrency: int = 1
    duration_seconds: Optional[float] = None
    iterations: Optional[int] = None
    order: str = ORDER_SEQUENTIAL
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.entries:
            raise ConfigurationError("workload has no queries")
        if self.concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.duration_seconds is None and self.iterations is None:
            raise ConfigurationError("workload needs durationSeconds or iterations")
        if self.duration_seconds is not None and self.duration_seconds <= 0:
            raise ConfigurationError(
                f"durationSeconds must be positive, got {self.duration_seconds}"
            )
        if self.iterations is not None and self.iterations < 1:
            raise ConfigurationError(f"iterations must be at least 1, got {self.iterations}")
        if self.order not in ORDERS:
            raise ConfigurationError(
                f"order must be one of {', '.join(ORDERS)}, got '{self.order}'"
            )


class StatementSource:
    """Thread-safe supplier of statement units for the workers.

    Sequential order cycles through the entries in document order, each one
    repeated frequency times. Random order picks entries weighted by
    frequency.
    """

    def __init__(self, workload: Workload) -> None:
        self._workload = workload
        self._rng = random.Random(workload.seed)
        self._lock = threading.Lock()
        self._cursor = 0
        self._cycle = [e for e in workload.entries for _ in range(e.frequency)]
        self._weights = [e.frequency for e in workload.entries]

    def draw(self) -> list[Statement]:
        with self._lock:
            if self._workload.order == ORDER_RANDOM:
                entry = self._rng.choices(self._workload.entries, weights=self._weights)[0]
            else:
                entry = self._cycle[self._cursor % len(self._cycle)]
                self._cursor += 1
            return entry.render(self._rng)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


def _optional_int(data: Mapping[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return default
    _require(
        isinstance(value, int) and not isinstance(value, bool),
        f"'{key}' must be an integer, got {value!r}",
    )
    return value


def _string_list(value: Any, what: str) -> tuple[str, ...]:
    _require(
        isinstance(value, list) and all(isinstance(v, str) for v in value),
        f"{what} must be a list of strings",
    )
    return tuple(value)


def _parse_parameters(value: Any, what: str) -> dict[str, tuple[str, ...]]:
    if value is None:
        return {}
    _require(isinstance(value, dict), f"{what} parameters must be an object")
    parameters = {}
    for name, candidates in value.items():
        _require(
            isinstance(candidates, list) and len(candidates) > 0,
            f"{what} parameter '{name}' needs a non-empty list of values",
        )
        parameters[name] = tuple(str(c) for c in candidates)
    return parameters


def _parse_groups(raw_groups: Any) -> dict[str, tuple[Statement, ...]]:
    _require(isinstance(raw_groups, list), "'queryGroups' must be a list")
    groups: dict[str, tuple[Statement, ...]] = {}
    for raw in raw_groups:
        _require(isinstance(raw, dict), "each query group must be an object")
        name = raw.get("name")
        _require(isinstance(name, str) and bool(name), "query group needs a 'name'")
        _require(name not in groups, f"query group '{name}' is defined twice")
        queries = _string_list(raw.get("queries"), f"query group '{name}' queries")
        _require(len(queries) > 0, f"query group '{name}' has no queries")
        context = _string_list(raw.get("sqlContext", []), f"query group '{name}' sqlContext")
        groups[name] = tuple(
            Statement(sql=sql, context=context, name=f"{name}[{i}]")
            for i, sql in enumerate(queries, start=1)
        )
    return groups


def _parse_entry(
    raw: Any, index: int, groups: Mapping[str, tuple[Statement, ...]]
) -> WorkloadEntry:
    what = f"query #{index}"
    _require(isinstance(raw, dict), f"{what} must be an object")
    frequency = _optional_int(raw, "frequency", 1)
    _require(frequency >= 1, f"{what} frequency must be at least 1")
    parameters = _parse_parameters(raw.get("parameters"), what)

    if "queryGroup" in raw:
        _require("queryText" not in raw, f"{what} cannot have both queryText and queryGroup")
        group = raw["queryGroup"]
        _require(isinstance(group, str), f"{what} 'queryGroup' must be a string")
        _require(group in groups, f"{what} references unknown query group '{group}'")
        return WorkloadEntry(
            name=group, statements=groups[group], frequency=frequency, parameters=parameters
        )

    sql = raw.get("queryText")
    _require(isinstance(sql, str) and bool(sql.strip()), f"{what} needs a non-empty 'queryText'")
    name = raw.get("name", f"q{index}")
    _require(isinstance(name, str) and bool(name), f"{what} 'name' must be a non-empty string")
    context = _string_list(raw.get("sqlContext", []), f"{what} sqlContext")
    return WorkloadEntry(
        name=name,
        statements=(Statement(sql=sql, context=context, name=name),),
        frequency=frequency,
        parameters=parameters,
    )


def parse_workload(data: Any) -> Workload:
    """Build a Workload from a decoded JSON document.

    Raises:
        ConfigurationError: If the document is malformed
    """
    _require(isinstance(data, dict), "workload document must be a JSON object")
    groups = _parse_groups(data.get("queryGroups", []))
    raw_queries = data.get("queries")
    _require(isinstance(raw_queries, list), "'queries' must be a list")
    entries = [_parse_entry(raw, i, groups) for i, raw in enumerate(raw_queries, start=1)]

    duration = data.get("durationSeconds")
    _require(
        duration is None or (isinstance(duration, (int, float)) and not isinstance(duration, bool)),
        f"'durationSeconds' must be a number, got {duration!r}",
    )
    order = data.get("order", ORDER_SEQUENTIAL)
    _require(isinstance(order, str), "'order' must be a string")

    return Workload(
        entries=entries,
        concurrency=_optional_int(data, "concurrency", 1),
        duration_seconds=float(duration) if duration is not None else None,
        iterations=_optional_int(data, "iterations", None),
        order=order.lower(),
        seed=_optional_int(data, "seed", None),
    )


def load_workload(
    path: Union[str, Path],
    read_file: Callable[[Union[str, Path]], bytes] = read_file,
) -> Workload:
    """Read and parse a workload document.

    Args:
        path: Location of the JSON document
        read_file: Function returning the file's bytes

    Raises:
        ConfigurationError: If the file cannot be read or is malformed
    """
    try:
        raw = read_file(path)
    except OSError as e:
        raise ConfigurationError(f"cannot read workload file {path}: {e}") from e
    try:
        data = json.loads(raw)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"workload file {path} is not valid JSON: {e}") from e
    return parse_workload(data)
