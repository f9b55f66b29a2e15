#!/usr/bin/env python3
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
Dremio Stress Runner

A CLI tool for driving synthetic SQL load against a Dremio coordinator through
its REST API or an ODBC driver.

Usage Examples:
    # Run the workload in stress.json over the REST API
    python runner.py --protocol http --url http://localhost:9047 \
        --user dremio --password dremio123 --conf ./stress.json

    # Same workload through the ODBC driver, saving results
    python runner.py --protocol odbc --url grpc://localhost:32010 \
        --user dremio --password dremio123 --conf ./stress.json --output results.json

    # List supported protocols
    python runner.py --list-protocols
"""

import argparse
import logging
import sys
from pathlib import Path

from dremio_stress.config import (
    DEFAULT_TIMEOUT_SECONDS,
    ConnectionParameters,
    StressConfig,
    parse_protocol,
)
from dremio_stress.engines import list_protocols
from dremio_stress.errors import StressError
from dremio_stress.orchestrator import execute
from dremio_stress.reporting import print_aggregated_table, print_summary, save_csv, save_json

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    """Argparse type accepting integers greater than zero."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Dremio Stress Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --protocol http --url http://localhost:9047 --user dremio --password secret --conf stress.json
  %(prog)s --protocol odbc --url grpc://localhost:32010 --user dremio --password secret --conf stress.json
  %(prog)s --list-protocols

Connection settings not given on the command line are read from
DREMIO_URL, DREMIO_USER and DREMIO_PASSWORD.
        """,
    )

    # Connection
    parser.add_argument(
        "--protocol",
        "-p",
        type=str,
        default="http",
        help=f"Protocol to submit statements with (default: http). "
        f"Available: {', '.join(list_protocols())}",
    )
    parser.add_argument("--url", type=str, help="Coordinator URL or ODBC connection string")
    parser.add_argument("--user", "-u", type=str, help="User to log in as")
    parser.add_argument("--password", type=str, help="Password for the user")
    parser.add_argument(
        "--timeout",
        "-t",
        type=positive_int,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"Seconds a single statement may take (default: {DEFAULT_TIMEOUT_SECONDS})",
    )
    parser.add_argument(
        "--skip-ssl-verify",
        action="store_true",
        help="Do not verify TLS certificates",
    )

    # Workload
    parser.add_argument(
        "--conf",
        "-c",
        type=Path,
        help="JSON workload document describing statements and run shape",
    )

    # Output configuration
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output file path for results (JSON or CSV based on extension)",
    )
    parser.add_argument(
        "--output-format",
        type=str,
        choices=["json", "csv"],
        default="json",
        help="Output format when extension is ambiguous (default: json)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    # Information commands
    parser.add_argument(
        "--list-protocols",
        action="store_true",
        help="List supported protocols and exit",
    )
    return parser


def main() -> int:
    """Main entry point for the stress runner."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_protocols:
        print("Supported protocols:")
        for name in list_protocols():
            print(f"  - {name}")
        return 0

    if not args.conf:
        parser.error("--conf is required")

    try:
        config = StressConfig(
            protocol=parse_protocol(args.protocol),
            connection=ConnectionParameters.from_env(
                url=args.url,
                user=args.user,
                password=args.password,
                timeout_seconds=args.timeout,
                skip_ssl_verify=args.skip_ssl_verify,
            ),
            workload_path=args.conf,
        )
        summary = execute(config)
    except StressError as e:
        logger.error(str(e))
        return 1

    print(f"\n{'='*60}")
    print("RESULTS")
    print(f"{'='*60}\n")
    print_summary(summary)
    print()
    print_aggregated_table(summary)

    if args.output:
        output_path = args.output
        if output_path.suffix.lower() == ".csv":
            output_format = "csv"
        elif output_path.suffix.lower() == ".json":
            output_format = "json"
        else:
            output_format = args.output_format

        if output_format == "json":
            save_json(summary, output_path)
        else:
            save_csv(summary, output_path)
        logger.info(f"Results saved to {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
