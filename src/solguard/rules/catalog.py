"""Built-in Solidity detectors.

Vulnerabilities, gas optimizations and best-practice checks.  Regex
detectors match against the code view (comments and string bodies blanked)
unless ``use_raw`` is set; structural detectors receive the full ``SourceText``.
"""

from __future__ import annotations

import regex
from typing import Iterator

from solguard.models import IssueKind, Severity
from solguard.rules.base import Detector, Span
from solguard.rules.source import SourceText

V = IssueKind.VULNERABILITY
G = IssueKind.GAS_OPTIMIZATION
B = IssueKind.BEST_PRACTICE


# ---------------------------------------------------------------------------
# Structural helpers
# ---------------------------------------------------------------------------

def find_closing_paren(text: str, open_idx: int) -> int | None:
    """Index of the ``)`` matching the ``(`` at *open_idx*, skipping string literals."""
    depth = 0
    quote = ""
    i = open_idx
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = ""
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def split_top_level_args(inner: str) -> list[str]:
    """Split call arguments on commas that are not nested or quoted."""
    args: list[str] = []
    depth = 0
    quote = ""
    current: list[str] = []
    i = 0
    while i < len(inner):
        ch = inner[i]
        if quote:
            current.append(ch)
            if ch == "\\" and i + 1 < len(inner):
                current.append(inner[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = ""
        elif ch in ("'", '"'):
            quote = ch
            current.append(ch)
        elif ch in "([{":
            depth += 1
            current.append(ch)
        elif ch in ")]}":
            depth -= 1
            current.append(ch)
        elif ch == "," and depth == 0:
            args.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    args.append("".join(current))
    return args


_REQUIRE_RE = regex.compile(r"\brequire\s*\(")


def _require_without_message(src: SourceText) -> Iterator[Span]:
    code = src.code
    for m in _REQUIRE_RE.finditer(code):
        open_idx = m.end() - 1
        close_idx = find_closing_paren(code, open_idx)
        if close_idx is None:
            continue
        if len(split_top_level_args(code[open_idx + 1:close_idx])) == 1:
            yield m.start(), close_idx + 1


_LOW_LEVEL_CALL_RE = regex.compile(r"\.(?:send|call)\b\s*(?:\{[^}]*\}\s*)?\(")
_CHECKED_PREFIX_RE = regex.compile(r"^(?:require|assert|if|return|while)\b|^\(\s*bool\b|^bool\b|=")


def _unchecked_low_level_call(src: SourceText) -> Iterator[Span]:
    code = src.code
    for m in _LOW_LEVEL_CALL_RE.finditer(code):
        stmt_start = max(code.rfind(";", 0, m.start()), code.rfind("{", 0, m.start()), code.rfind("}", 0, m.start())) + 1
        prefix = code[stmt_start:m.start()].strip()
        if _CHECKED_PREFIX_RE.search(prefix):
            continue
        stmt_end = code.find(";", m.end())
        yield stmt_start, (len(code) if stmt_end == -1 else stmt_end + 1)


_PRAGMA_RE = regex.compile(r"\bpragma\s+solidity\s+[^;]*?(\d+)\.(\d+)[^;]*;")
_ARITHMETIC_RE = regex.compile(r"[\w)\]]\s*(?:\+|-|\*)=?\s*[\w(]")


def _pre_08_arithmetic(src: SourceText) -> Iterator[Span]:
    code = src.code
    m = _PRAGMA_RE.search(code)
    if m is None:
        return
    major, minor = int(m.group(1)), int(m.group(2))
    if (major, minor) >= (0, 8):
        return
    if "SafeMath" in code:
        return
    if _ARITHMETIC_RE.search(code, m.end()):
        yield m.span()


def _missing_spdx(src: SourceText) -> Iterator[Span]:
    if "SPDX-License-Identifier" in src.raw or not src.raw.strip():
        return
    start = len(src.raw) - len(src.raw.lstrip())
    end = src.raw.find("\n", start)
    yield start, (len(src.raw) if end == -1 else end)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

TX_ORIGIN = Detector(
    id="tx-origin",
    kind=V,
    severity=Severity.HIGH,
    title="tx.origin Used for Authorization",
    message="Authorization based on tx.origin can be bypassed by a malicious intermediary contract.",
    suggestion="Use msg.sender instead of tx.origin for authorization checks.",
    pattern=regex.compile(r"\btx\.origin\b(?=\s*[=!]=)|(?<=[=!]=)\s*\btx\.origin\b"),
    auto_fix=True,
)

REENTRANCY = Detector(
    id="reentrancy",
    kind=V,
    severity=Severity.HIGH,
    title="Potential Reentrancy",
    message="External call transfers Ether: {evidence}",
    suggestion="Apply checks-effects-interactions: update state before the external call, or use a reentrancy guard.",
    pattern=regex.compile(r"[\w.\[\]]+\.call\s*(?:\{[^}]*\bvalue\s*:[^}]*\}|\.value\s*\([^)]*\))"),
)

UNCHECKED_CALL = Detector(
    id="unchecked-call",
    kind=V,
    severity=Severity.MEDIUM,
    title="Unchecked Low-Level Call",
    message="The return value of a low-level call is ignored: {evidence}",
    suggestion="Check the boolean result, e.g. (bool ok, ) = addr.call(...); require(ok);",
    match=_unchecked_low_level_call,
)

DELEGATECALL = Detector(
    id="delegatecall",
    kind=V,
    severity=Severity.HIGH,
    title="Delegatecall to Untrusted Callee",
    message="delegatecall executes foreign code in this contract's storage context: {evidence}",
    suggestion="Only delegatecall into trusted, immutable implementation addresses.",
    pattern=regex.compile(r"[\w.\[\]]+\.delegatecall\b"),
)

SELFDESTRUCT = Detector(
    id="selfdestruct",
    kind=V,
    severity=Severity.HIGH,
    title="Use of selfdestruct",
    message="selfdestruct can permanently remove the contract and force-send its balance.",
    suggestion="Remove selfdestruct or restrict it behind strict access control.",
    pattern=regex.compile(r"\b(?:selfdestruct|suicide)\s*\("),
)

WEAK_RANDOMNESS = Detector(
    id="weak-randomness",
    kind=V,
    severity=Severity.CRITICAL,
    title="Weak Randomness Source",
    message="Randomness derived from block attributes can be predicted or manipulated by miners.",
    suggestion="Use a verifiable randomness oracle such as Chainlink VRF.",
    pattern=regex.compile(
        r"\bkeccak256\s*\(\s*abi\.encodePacked\s*\([^;]*?\b(?:block\.(?:timestamp|difficulty|number|prevrandao)|blockhash)\b"
    ),
)

TIMESTAMP = Detector(
    id="timestamp-dependence",
    kind=V,
    severity=Severity.LOW,
    title="Block Timestamp Dependence",
    message="Logic depends on {evidence}, which miners can skew by several seconds.",
    suggestion="Avoid using block.timestamp for critical logic or randomness.",
    pattern=regex.compile(r"\bblock\.timestamp\b|\bnow\b(?!\s*\()"),
)

PRE_08_ARITHMETIC = Detector(
    id="unchecked-arithmetic",
    kind=V,
    severity=Severity.MEDIUM,
    title="Integer Overflow Risk (pre-0.8 compiler)",
    message="Compiler versions before 0.8 do not check arithmetic for overflow.",
    suggestion="Upgrade to Solidity ^0.8.0 or use SafeMath for arithmetic.",
    match=_pre_08_arithmetic,
)

PUBLIC_VISIBILITY = Detector(
    id="public-visibility",
    kind=G,
    severity=Severity.LOW,
    title="Function Visibility: public could be external",
    message="Public function with memory parameters copies arguments into memory.",
    suggestion="Declare the function external if it is never called internally.",
    pattern=regex.compile(r"\bfunction\s+\w+\s*\((?=[^)]*\bmemory\b)[^)]*\)[^{;]*?\b(?P<target>public)\b"),
    auto_fix=True,
)

LOOP_LENGTH = Detector(
    id="loop-array-length",
    kind=G,
    severity=Severity.LOW,
    title="Cache Array Length Outside Loop",
    message="Loop condition reads .length on every iteration: {evidence}",
    suggestion="Store the array length in a local variable before the loop.",
    pattern=regex.compile(r"\bfor\s*\([^;]*;(?P<target>[^;]*\.length\b[^;]*);"),
)

POSTFIX_INCREMENT = Detector(
    id="postfix-increment",
    kind=G,
    severity=Severity.LOW,
    title="Use Prefix Increment in Loop",
    message="Postfix increment {evidence} costs more gas than prefix increment.",
    suggestion="Use ++i instead of i++ in loop increments.",
    pattern=regex.compile(r"\bfor\s*\([^;]*;[^;]*;\s*(?P<target>\w+\+\+)\s*\)"),
    auto_fix=True,
)

REQUIRE_MESSAGE = Detector(
    id="require-message",
    kind=B,
    severity=Severity.LOW,
    title="Missing Error Message in require",
    message="{evidence} has no revert reason.",
    suggestion="Add a descriptive error message as the second argument to require.",
    match=_require_without_message,
    auto_fix=True,
)

FLOATING_PRAGMA = Detector(
    id="floating-pragma",
    kind=B,
    severity=Severity.LOW,
    title="Floating Pragma",
    message="Compiler version {evidence} is not pinned.",
    suggestion="Pin the compiler version, e.g. pragma solidity 0.8.19;",
    pattern=regex.compile(r"\bpragma\s+solidity\s+(?P<target>\^\s*\d+\.\d+(?:\.\d+)?)"),
    auto_fix=True,
)

MISSING_SPDX = Detector(
    id="missing-spdx",
    kind=B,
    severity=Severity.LOW,
    title="Missing SPDX License Identifier",
    message="Source file does not declare an SPDX license identifier.",
    suggestion="Add a comment such as // SPDX-License-Identifier: MIT at the top of the file.",
    match=_missing_spdx,
)

DEPRECATED = Detector(
    id="deprecated-construct",
    kind=B,
    severity=Severity.MEDIUM,
    title="Deprecated Solidity Construct",
    message="{evidence} is deprecated and removed in current compiler versions.",
    suggestion="Use revert(), selfdestruct, keccak256 and explicit types instead.",
    pattern=regex.compile(r"\bthrow\s*;|\bsuicide\s*\(|\bsha3\s*\(|\bvar\s+\w+\s*=|\.callcode\s*\(|\bmsg\.gas\b"),
)

HARDCODED_ADDRESS = Detector(
    id="hardcoded-address",
    kind=B,
    severity=Severity.LOW,
    title="Hardcoded Address",
    message="Address literal {evidence} is hardcoded.",
    suggestion="Pass addresses through the constructor or a setter guarded by access control.",
    pattern=regex.compile(r"\b0x[0-9a-fA-F]{40}\b"),
)


DEFAULT_DETECTORS: tuple[Detector, ...] = (
    TX_ORIGIN,
    REENTRANCY,
    UNCHECKED_CALL,
    DELEGATECALL,
    SELFDESTRUCT,
    WEAK_RANDOMNESS,
    TIMESTAMP,
    PRE_08_ARITHMETIC,
    PUBLIC_VISIBILITY,
    LOOP_LENGTH,
    POSTFIX_INCREMENT,
    REQUIRE_MESSAGE,
    FLOATING_PRAGMA,
    MISSING_SPDX,
    DEPRECATED,
    HARDCODED_ADDRESS,
)


def get_detector(detector_id: str) -> Detector | None:
    for det in DEFAULT_DETECTORS:
        if det.id == detector_id:
            return det
    return None
