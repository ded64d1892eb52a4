"""Argparse parser definition for the SolGuard CLI."""

from __future__ import annotations

import argparse

from solguard.models import Severity

_SEVERITIES = [s.value for s in Severity]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solguard",
        description="Security analysis for Solidity smart contracts",
    )
    parser.add_argument("--config", help="JSON config file (default: .solguard/config.json or solguard.json)")
    parser.add_argument("--log-level", default="WARNING", help="Log level for JSON logs on stderr")
    sub = parser.add_subparsers(dest="command")

    _register_scan_commands(sub)
    _register_catalog_commands(sub)
    return parser


def _register_scan_commands(sub: argparse._SubParsersAction) -> None:
    # -- scan --
    p = sub.add_parser("scan", help="Scan a Solidity file and print the report")
    p.add_argument("file", help="Path to a .sol file")
    p.add_argument("--threshold", choices=_SEVERITIES, help="Minimum severity to report")
    p.add_argument("--ai", action="store_true", help="Enable the AI analysis pass")
    p.add_argument("--no-patterns", action="store_true", help="Disable pattern detectors")
    p.add_argument("--summary", action="store_true", help="Print the summary only")
    p.add_argument(
        "--fail-on", choices=_SEVERITIES,
        help="Exit 2 if any reported issue is at or above this severity",
    )

    # -- fix --
    p = sub.add_parser("fix", help="Apply every available auto-fix")
    p.add_argument("file", help="Path to a .sol file")
    p.add_argument("--write", action="store_true", help="Write the fixed source back to the file")


def _register_catalog_commands(sub: argparse._SubParsersAction) -> None:
    sub.add_parser("rules", help="List built-in detectors")
    p = sub.add_parser("metrics", help="Scan files and print metrics in Prometheus text format")
    p.add_argument("files", nargs="*", help="Solidity files to scan first")
