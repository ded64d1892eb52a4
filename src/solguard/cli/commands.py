"""CLI command handlers: scan, fix, rules, metrics."""

from __future__ import annotations

import argparse
from pathlib import Path

from solguard import observability
from solguard.cli._helpers import _out, _read_source
from solguard.config import ScanConfig, load_config
from solguard.engine import SecurityEngine, scan_source
from solguard.errors import SourceTooLarge
from solguard.models import Severity
from solguard.ports import TextBuffer
from solguard.rules import DEFAULT_DETECTORS

EXIT_FINDINGS = 2


def _config_for(args: argparse.Namespace, **overrides: object) -> ScanConfig:
    # one-shot scans never need the debounce timer
    return load_config(getattr(args, "config", None)).merged({"enable_realtime": False, **overrides})


def cmd_scan(args: argparse.Namespace) -> int:
    source = _read_source(args.file)
    if source is None:
        return _out({"error": f"File not found: {args.file}"})

    config = _config_for(
        args,
        severity_threshold=args.threshold,
        enable_ai_analysis=True if args.ai else None,
        enable_pattern_matching=False if args.no_patterns else None,
    )
    try:
        report = scan_source(source, config)
    except SourceTooLarge as e:
        return _out({"error": str(e)})

    if args.summary:
        code = _out({"file": args.file, **report.summary()})
    else:
        code = _out({"file": args.file, **report.to_dict(), "summary": report.summary()})

    if args.fail_on:
        floor = Severity.parse(args.fail_on).rank
        if any(issue.severity.rank >= floor for issue in report.issues):
            return EXIT_FINDINGS
    return code


def cmd_fix(args: argparse.Namespace) -> int:
    source = _read_source(args.file)
    if source is None:
        return _out({"error": f"File not found: {args.file}"})

    config = _config_for(args, severity_threshold=Severity.LOW.value, enable_auto_fix=True)
    buffer = TextBuffer(source)
    with SecurityEngine(config, editor=buffer) as engine:
        try:
            report = engine.perform_analysis()
        except SourceTooLarge as e:
            return _out({"error": str(e)})

        # bottom-up so earlier ranges stay valid; overlapping fixes wait for a later run
        fixable = sorted((i for i in report.issues if i.auto_fix_available), key=lambda i: i.range, reverse=True)
        applied: list[dict[str, object]] = []
        skipped = 0
        boundary: tuple[int, int] | None = None
        for issue in fixable:
            rng = issue.range
            if boundary is not None and (rng.end_line, rng.end_column) > boundary:
                skipped += 1
                continue
            if engine.auto_fix_issue(issue):
                applied.append({"rule_id": issue.rule_id, "line": issue.line, "title": issue.title})
                boundary = (rng.start_line, rng.start_column)
            else:
                skipped += 1

    fixed = buffer.get_text()
    result: dict[str, object] = {"file": args.file, "applied": applied, "skipped": skipped}
    if args.write and applied:
        Path(args.file).write_text(fixed, encoding="utf-8")
        result["written"] = True
    else:
        result["written"] = False
        result["source"] = fixed
    return _out(result)


def cmd_rules(args: argparse.Namespace) -> int:
    rules = [det.to_dict() for det in DEFAULT_DETECTORS]
    return _out({"rules": rules, "total": len(rules)})


def cmd_metrics(args: argparse.Namespace) -> int:
    config = _config_for(args)
    for path in args.files:
        source = _read_source(path)
        if source is None:
            return _out({"error": f"File not found: {path}"})
        try:
            scan_source(source, config)
        except SourceTooLarge:
            continue
    print(observability.generate_metrics(), end="")
    return 0
