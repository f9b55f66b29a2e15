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
Stress Run Reporting

This module aggregates per-statement results into a run summary and provides
utilities for printing and exporting it.
"""

import csv
import json
import statistics
import sys
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from dremio_stress.engine_base import ExecutionResult


def _p95(times: list[float]) -> float:
    if len(times) < 2:
        return times[0]
    return statistics.quantiles(times, n=20, method="inclusive")[18]


@dataclass
class RunSummary:
    """Summary statistics for one stress run.

    Attributes:
        engine: Engine name
        concurrency: Number of workers that ran
        total_statements: Number of statements executed
        successful_statements: Number of statements that succeeded
        failed_statements: Number of statements that failed
        total_time: Sum of successful statement durations
        elapsed_seconds: Wall-clock time of the whole run
        failures_by_kind: Count of failures per ErrorKind value
        results: List of individual statement results
    """

    engine: str
    concurrency: int = 1
    total_statements: int = 0
    successful_statements: int = 0
    failed_statements: int = 0
    total_time: float = 0.0
    elapsed_seconds: float = 0.0
    failures_by_kind: Counter = field(default_factory=Counter)
    results: list[ExecutionResult] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def add_result(self, result: ExecutionResult) -> None:
        """Add a statement result to the summary."""
        self.results.append(result)
        self.total_statements += 1
        if result.success:
            self.successful_statements += 1
            self.total_time += result.duration_seconds
        else:
            self.failed_statements += 1
            kind = result.error_kind.value if result.error_kind else "unknown"
            self.failures_by_kind[kind] += 1

    @property
    def statements_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.total_statements / self.elapsed_seconds

    def get_aggregated_results(self) -> dict[str, dict]:
        """Get results aggregated by statement name.

        Returns:
            Dictionary mapping statement names to aggregated statistics:
            {
                "q1": {
                    "min": 0.1,
                    "max": 0.2,
                    "mean": 0.15,
                    "median": 0.15,
                    "p95": 0.2,
                    "std_dev": 0.05,
                    "executions": 3,
                    "successful_executions": 3,
                    "success_rate": 1.0
                }
            }
        """
        by_statement: dict[str, list[ExecutionResult]] = {}
        for result in self.results:
            by_statement.setdefault(result.statement_name, []).append(result)

        aggregated = {}
        for name, results in by_statement.items():
            successful = [r for r in results if r.success]
            times = [r.duration_seconds for r in successful]

            if times:
                aggregated[name] = {
                    "min": min(times),
                    "max": max(times),
                    "mean": statistics.mean(times),
                    "median": statistics.median(times),
                    "p95": _p95(times),
                    "std_dev": statistics.stdev(times) if len(times) > 1 else 0.0,
                    "executions": len(results),
                    "successful_executions": len(successful),
                    "success_rate": len(successful) / len(results),
                }
            else:
                # All executions failed
                aggregated[name] = {
                    "min": None,
                    "max": None,
                    "mean": None,
                    "median": None,
                    "p95": None,
                    "std_dev": None,
                    "executions": len(results),
                    "successful_executions": 0,
                    "success_rate": 0.0,
                    "errors": sorted({r.error_message for r in results if r.error_message}),
                }

        return aggregated

    def to_dict(self) -> dict:
        """Convert summary to dictionary for JSON serialization."""
        return {
            "engine": self.engine,
            "concurrency": self.concurrency,
            "timestamp": self.timestamp,
            "summary": {
                "total_statements": self.total_statements,
                "successful_statements": self.successful_statements,
                "failed_statements": self.failed_statements,
                "failures_by_kind": dict(self.failures_by_kind),
                "elapsed_seconds": self.elapsed_seconds,
                "statement_time_seconds": self.total_time,
                "statements_per_second": self.statements_per_second,
            },
            "aggregated_results": self.get_aggregated_results(),
            "raw_results": [r.to_dict() for r in self.results],
        }


def print_summary(summary: RunSummary, file: Optional[TextIO] = None) -> None:
    """Print the headline counts of a run."""
    if file is None:
        file = sys.stdout

    print(f"Engine: {summary.engine}", file=file)
    print(f"Concurrency: {summary.concurrency}", file=file)
    print(
        f"Successful: {summary.successful_statements}/{summary.total_statements}",
        file=file,
    )
    if summary.failures_by_kind:
        kinds = ", ".join(f"{k}={v}" for k, v in sorted(summary.failures_by_kind.items()))
        print(f"Failures: {kinds}", file=file)
    print(f"Elapsed: {summary.elapsed_seconds:.2f}s", file=file)
    print(f"Throughput: {summary.statements_per_second:.2f} statements/s", file=file)


def print_aggregated_table(summary: RunSummary, file: Optional[TextIO] = None) -> None:
    """Print per-statement latency statistics.

    Args:
        summary: Run summary with results
        file: Output file (defaults to stdout)
    """
    if file is None:
        file = sys.stdout

    aggregated = summary.get_aggregated_results()

    headers = ["Statement", "Runs", "Mean (s)", "Median (s)", "P95 (s)", "Max (s)", "Success"]
    widths = [16, 6, 10, 10, 10, 10, 8]

    header_line = " | ".join(h.ljust(w) for h, w in zip(headers, widths))
    separator = "-+-".join("-" * w for w in widths)

    print(separator, file=file)
    print(header_line, file=file)
    print(separator, file=file)

    for name in sorted(aggregated):
        stats = aggregated[name]
        success_rate = f"{stats['success_rate']*100:.0f}%"
        if stats["mean"] is not None:
            numbers = [
                f"{stats[key]:.4f}".rjust(width)
                for key, width in zip(["mean", "median", "p95", "max"], widths[2:6])
            ]
        else:
            numbers = ["-".rjust(width) for width in widths[2:6]]

        row = [name[: widths[0]].ljust(widths[0]), str(stats["executions"]).rjust(widths[1])]
        row += numbers + [success_rate.rjust(widths[6])]
        print(" | ".join(row), file=file)

    print(separator, file=file)


def save_json(summary: RunSummary, output_path: Path) -> None:
    """Save run results to JSON file.

    Args:
        summary: Run summary to save
        output_path: Path to output file
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(summary.to_dict(), f, indent=2)


def save_csv(summary: RunSummary, output_path: Path) -> None:
    """Save aggregated per-statement results to CSV file.

    Args:
        summary: Run summary to save
        output_path: Path to output file
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    aggregated = summary.get_aggregated_results()

    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "statement_name",
            "engine",
            "mean_seconds",
            "median_seconds",
            "p95_seconds",
            "min_seconds",
            "max_seconds",
            "std_dev",
            "executions",
            "success_rate",
        ])

        for name in sorted(aggregated):
            stats = aggregated[name]
            writer.writerow([
                name,
                summary.engine,
                stats["mean"],
                stats["median"],
                stats["p95"],
                stats["min"],
                stats["max"],
                stats["std_dev"],
                stats["executions"],
                stats["success_rate"],
            ])
