"""CLI for SolGuard.

Commands:
  solguard scan FILE [--threshold SEV] [--ai] [--no-patterns] [--summary] [--fail-on SEV]
  solguard fix FILE [--write]
  solguard rules
  solguard metrics [FILE ...]
"""

from __future__ import annotations

import sys

from solguard.cli._helpers import _out  # noqa: F401  re-exported for tests
from solguard.cli._parser import build_parser
from solguard.cli.commands import cmd_fix, cmd_metrics, cmd_rules, cmd_scan
from solguard.observability import setup_logging

_DISPATCH = {
    "scan": cmd_scan,
    "fix": cmd_fix,
    "rules": cmd_rules,
    "metrics": cmd_metrics,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.log_level)
    return _DISPATCH[args.command](args)
