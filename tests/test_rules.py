"""Tests for the rule engine: source positions, detectors and the runner."""

from __future__ import annotations

import itertools
import re
import threading
import time

import pytest

from solguard import observability
from solguard.models import IssueKind, Severity, TextRange
from solguard.rules import base as rules_base
from solguard.rules import (
    DEFAULT_DETECTORS,
    Detector,
    SourceText,
    get_detector,
    mask_comments,
    run_detectors,
)


def _detect(rule_id, source):
    det = get_detector(rule_id)
    assert det is not None
    return det.detect(SourceText(source))


# ---------------------------------------------------------------------------
# SourceText
# ---------------------------------------------------------------------------

class TestSourceText:
    def test_positions_are_one_based(self):
        src = SourceText("ab\ncd\n")
        assert src.position(0) == (1, 1)
        assert src.position(3) == (2, 1)
        assert src.position(4) == (2, 2)

    def test_trailing_newline_opens_empty_last_line(self):
        src = SourceText("ab\ncd\n")
        assert src.line_count == 3
        assert src.position(6) == (3, 1)
        assert src.line_length(3) == 0

    def test_offset_out_of_bounds(self):
        with pytest.raises(ValueError):
            SourceText("ab").position(3)

    def test_range_and_text_at(self):
        src = SourceText("ab\ncd\n")
        rng = src.range_for(3, 5)
        assert rng == TextRange(2, 1, 2, 3)
        assert src.text_at(rng) == "cd"

    def test_contains(self):
        src = SourceText("ab\ncd")
        assert src.contains(TextRange(2, 1, 2, 3))
        assert not src.contains(TextRange(2, 1, 2, 4))
        assert not src.contains(TextRange(3, 1, 3, 1))
        assert not src.contains(TextRange(2, 2, 1, 1))

    def test_replace(self):
        src = SourceText("uint x = a++;")
        assert src.replace(TextRange(1, 10, 1, 13), "++a") == "uint x = ++a;"

    def test_trim_strips_whitespace(self):
        src = SourceText("  abc  ")
        assert src.trim(0, 7) == (2, 5)


class TestMaskComments:
    def test_line_comment_masked_keeping_offsets(self):
        masked = mask_comments("a // x\nb")
        assert masked == "a     \nb"

    def test_block_comment_keeps_newlines(self):
        text = "a /* x\ny */ b"
        masked = mask_comments(text)
        assert len(masked) == len(text)
        assert masked.count("\n") == 1
        assert "x" not in masked and "y" not in masked
        assert masked.endswith(" b")

    def test_strings_are_kept(self):
        text = 'string s = "http://example.org";'
        assert mask_comments(text) == text

    def test_code_view_blanks_string_bodies(self):
        src = SourceText('revert("not now");\nx = \'a\\\'b\';')
        assert src.code == 'revert("       ");\nx = \'    \';'
        assert src.raw.startswith('revert("not now")')

    def test_comment_marker_inside_string_stays_code(self):
        code = SourceText('s = "//x"; y = 1; // note').code
        assert code.startswith('s = "   "; y = 1;')
        assert "note" not in code


# ---------------------------------------------------------------------------
# Detector type
# ---------------------------------------------------------------------------

class TestDetector:
    def test_requires_exactly_one_matcher(self):
        with pytest.raises(ValueError):
            Detector(id="x", kind=IssueKind.VULNERABILITY, severity=Severity.LOW, title="X", message="m")
        with pytest.raises(ValueError):
            Detector(
                id="x", kind=IssueKind.VULNERABILITY, severity=Severity.LOW, title="X", message="m",
                pattern=re.compile("a"), match=lambda src: iter(()),
            )

    def test_multiline_match_positions(self):
        det = Detector(
            id="pair", kind=IssueKind.BEST_PRACTICE, severity=Severity.LOW,
            title="Pair", message="found {evidence}", pattern=re.compile(r"foo\s+bar"),
        )
        [issue] = det.detect(SourceText("x\nfoo\n  bar\n"))
        assert issue.range == TextRange(2, 1, 3, 6)
        assert issue.evidence == "foo\n  bar"
        assert issue.message == "found foo\n  bar"
        assert issue.rule_id == "pair"

    def test_comments_ignored_unless_raw(self):
        pattern = re.compile(r"secret")
        masked = Detector(id="m", kind=IssueKind.BEST_PRACTICE, severity=Severity.LOW,
                          title="M", message="m", pattern=pattern)
        raw = Detector(id="r", kind=IssueKind.BEST_PRACTICE, severity=Severity.LOW,
                       title="R", message="m", pattern=pattern, use_raw=True)
        src = SourceText("// secret\n")
        assert masked.detect(src) == []
        assert len(raw.detect(src)) == 1

    def test_catalog_ids_unique(self):
        ids = [d.id for d in DEFAULT_DETECTORS]
        assert len(ids) == len(set(ids))
        assert get_detector("nope") is None


# ---------------------------------------------------------------------------
# Built-in detectors
# ---------------------------------------------------------------------------

class TestVulnerabilityDetectors:
    def test_tx_origin_comparison(self):
        [issue] = _detect("tx-origin", "if (tx.origin != admin) revert();")
        assert issue.severity is Severity.HIGH
        assert issue.evidence == "tx.origin"
        assert issue.range == TextRange(1, 5, 1, 14)
        assert issue.auto_fix_available is True

    def test_tx_origin_on_right_hand_side(self):
        [issue] = _detect("tx-origin", "require(owner == tx.origin);")
        assert issue.evidence == "tx.origin"

    def test_tx_origin_assignment_not_flagged(self):
        assert _detect("tx-origin", "address a = tx.origin;") == []

    def test_tx_origin_in_comment_not_flagged(self):
        assert _detect("tx-origin", "// tx.origin == owner\n") == []

    def test_reentrancy_value_call(self):
        [issue] = _detect("reentrancy", '(bool ok, ) = msg.sender.call{value: amount}("");')
        assert issue.severity is Severity.HIGH
        assert issue.evidence == "msg.sender.call{value: amount}"

    def test_unchecked_send(self):
        [issue] = _detect("unchecked-call", "payable(to).send(amount);")
        assert issue.severity is Severity.MEDIUM

    def test_checked_calls_not_flagged(self):
        assert _detect("unchecked-call", "bool ok = to.send(1);") == []
        assert _detect("unchecked-call", 'require(to.send(1), "failed");') == []
        assert _detect("unchecked-call", '(bool ok, ) = to.call("");') == []

    def test_delegatecall(self):
        [issue] = _detect("delegatecall", "impl.delegatecall(data);")
        assert issue.evidence == "impl.delegatecall"

    def test_selfdestruct(self):
        [issue] = _detect("selfdestruct", "selfdestruct(payable(owner));")
        assert issue.severity is Severity.HIGH

    def test_weak_randomness_is_critical(self):
        src = "uint r = uint(keccak256(abi.encodePacked(block.timestamp, msg.sender)));"
        [issue] = _detect("weak-randomness", src)
        assert issue.severity is Severity.CRITICAL

    def test_timestamp_dependence(self):
        [issue] = _detect("timestamp-dependence", "if (block.timestamp > deadline) {}")
        assert issue.evidence == "block.timestamp"
        assert issue.message == "Logic depends on block.timestamp, which miners can skew by several seconds."

    def test_keywords_inside_strings_not_flagged(self):
        assert _detect("timestamp-dependence", 'revert("not now");') == []
        assert _detect("tx-origin", 'emit Log("tx.origin == owner");') == []

    def test_pre_08_arithmetic(self):
        src = "pragma solidity ^0.6.0;\ncontract A { function f(uint a) public { a = a + 1; } }"
        [issue] = _detect("unchecked-arithmetic", src)
        assert issue.line == 1

    def test_arithmetic_safe_on_08_or_safemath(self):
        body = "\ncontract A { function f(uint a) public { a = a + 1; } }"
        assert _detect("unchecked-arithmetic", "pragma solidity ^0.8.0;" + body) == []
        assert _detect("unchecked-arithmetic", "pragma solidity ^0.6.0;\nusing SafeMath for uint;" + body) == []


class TestGasDetectors:
    def test_public_with_memory_params(self):
        [issue] = _detect("public-visibility", "function setName(string memory name) public {}")
        assert issue.kind is IssueKind.GAS_OPTIMIZATION
        assert issue.evidence == "public"

    def test_public_without_memory_not_flagged(self):
        assert _detect("public-visibility", "function f(uint x) public {}") == []

    def test_loop_length(self):
        [issue] = _detect("loop-array-length", "for (uint i = 0; i < items.length; i++) {}")
        assert issue.evidence == "i < items.length"

    def test_postfix_increment(self):
        [issue] = _detect("postfix-increment", "for (uint i = 0; i < n; i++) {}")
        assert issue.evidence == "i++"
        assert issue.auto_fix_available is True

    def test_prefix_increment_not_flagged(self):
        assert _detect("postfix-increment", "for (uint i = 0; i < n; ++i) {}") == []


class TestBestPracticeDetectors:
    def test_require_without_message(self):
        [issue] = _detect("require-message", "require(msg.value > 0);")
        assert issue.evidence == "require(msg.value > 0)"
        assert issue.kind is IssueKind.BEST_PRACTICE

    def test_require_with_message_not_flagged(self):
        assert _detect("require-message", 'require(f(a, b), "bad");') == []

    def test_require_inside_string_not_flagged(self):
        assert _detect("require-message", 'emit Log("require(x)");') == []

    def test_message_with_comma_and_paren(self):
        assert _detect("require-message", 'require(ok, "a, b) c");') == []

    def test_require_with_nested_call_counts_top_level_args(self):
        assert len(_detect("require-message", "require(f(a, b));")) == 1

    def test_floating_pragma(self):
        [issue] = _detect("floating-pragma", "pragma solidity ^0.8.19;")
        assert issue.evidence == "^0.8.19"
        assert issue.range == TextRange(1, 17, 1, 24)

    def test_pinned_pragma_not_flagged(self):
        assert _detect("floating-pragma", "pragma solidity 0.8.19;") == []

    def test_missing_spdx(self):
        [issue] = _detect("missing-spdx", "pragma solidity 0.8.19;\ncontract A {}\n")
        assert issue.range == TextRange(1, 1, 1, 24)

    def test_spdx_present_or_empty_source(self):
        assert _detect("missing-spdx", "// SPDX-License-Identifier: MIT\n") == []
        assert _detect("missing-spdx", "") == []

    def test_deprecated_constructs(self):
        issues = _detect("deprecated-construct", "if (x) throw;\nbytes32 h = sha3(data);")
        assert [i.line for i in issues] == [1, 2]

    def test_hardcoded_address(self):
        src = "address constant TREASURY = 0x1234567890123456789012345678901234567890;"
        [issue] = _detect("hardcoded-address", src)
        assert issue.evidence.startswith("0x")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

def _structural(id, fn):
    return Detector(id=id, kind=IssueKind.BEST_PRACTICE, severity=Severity.LOW,
                    title=id, message="m", match=fn)


class TestRunDetectors:
    def test_full_contract(self, vault_source):
        run = run_detectors(vault_source, DEFAULT_DETECTORS)
        assert run.skipped == []
        assert sorted(i.rule_id for i in run.issues) == [
            "floating-pragma", "reentrancy", "require-message", "tx-origin",
        ]

    def test_clean_contract(self, clean_source):
        assert run_detectors(clean_source, DEFAULT_DETECTORS).issues == []

    def test_slow_detector_is_skipped(self):
        release = threading.Event()

        def slow(src):
            release.wait(2)
            return iter(())

        try:
            run = run_detectors(
                "require(x);",
                [_structural("slow", slow), get_detector("require-message")],
                budget=0.05,
            )
        finally:
            release.set()
        assert run.skipped == ["slow"]
        assert [i.rule_id for i in run.issues] == ["require-message"]
        assert observability.snapshot()["skipped_detectors"] == {"slow": 1}

    def test_raising_detector_is_skipped(self):
        def broken(src):
            raise RuntimeError("bad matcher")

        run = run_detectors("require(x);", [_structural("broken", broken), get_detector("require-message")])
        assert run.skipped == ["broken"]
        assert len(run.issues) == 1

    def test_skipped_ids_sorted(self):
        def broken(src):
            raise RuntimeError("bad")

        run = run_detectors("x", [_structural("zeta", broken), _structural("alpha", broken)])
        assert run.skipped == ["alpha", "zeta"]

    def test_catastrophic_regex_is_bounded(self):
        backtracking = Detector(
            id="backtracking", kind=IssueKind.BEST_PRACTICE, severity=Severity.LOW,
            title="Backtracking", message="m", pattern=re.compile(r"(a+)+$"), use_raw=True,
        )
        started = time.monotonic()
        run = run_detectors("a" * 26 + "!", [backtracking], budget=0.1)
        assert time.monotonic() - started < 1.0
        assert run.issues == []

    def test_regex_timeout_is_a_skip(self):
        def timing_out(src):
            raise TimeoutError("regex timed out")

        run = run_detectors("require(x);", [_structural("timing-out", timing_out)])
        assert run.skipped == ["timing-out"]

    def test_late_detector_findings_discarded(self, monkeypatch):
        ticks = itertools.count(0.0, 5.0)
        monkeypatch.setattr(rules_base, "_clock", lambda: next(ticks))
        run = run_detectors("require(x);", [get_detector("require-message")], budget=1.0)
        assert run.skipped == ["require-message"]
        assert run.issues == []
        assert observability.snapshot()["skipped_detectors"] == {"require-message": 1}

    def test_stdlib_pattern_runs_on_regex_engine(self):
        det = Detector(
            id="x", kind=IssueKind.BEST_PRACTICE, severity=Severity.LOW,
            title="X", message="m", pattern=re.compile(r"\bfoo\b"),
        )
        assert not isinstance(det.pattern, re.Pattern)
        assert [i.range for i in det.detect(SourceText("a foo b"))] == [TextRange(1, 3, 1, 6)]
