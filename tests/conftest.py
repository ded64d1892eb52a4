"""Shared fixtures for solguard tests."""

import logging
import threading

import pytest

from solguard import observability
from solguard.ai.port import AIAnalysis
from solguard.models import IssueKind, IssueSource, SecurityIssue, Severity, TextRange


VULNERABLE_VAULT = """\
// SPDX-License-Identifier: MIT
pragma solidity ^0.8.0;

contract Vault {
    address owner;
    mapping(address => uint256) balances;

    function withdraw(uint256 amount) public {
        require(tx.origin == owner);
        (bool ok, ) = msg.sender.call{value: amount}("");
        require(ok, "send failed");
        balances[msg.sender] -= amount;
    }
}
"""

CLEAN_TOKEN = """\
// SPDX-License-Identifier: MIT
pragma solidity 0.8.19;

contract Token {
    mapping(address => uint256) public balances;

    function transfer(address to, uint256 amount) external {
        require(balances[msg.sender] >= amount, "insufficient balance");
        balances[msg.sender] -= amount;
        balances[to] += amount;
    }
}
"""


# ---------------------------------------------------------------------------
# Auto-use fixtures: cleanup global state between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    """Reset global scan counters after every test."""
    yield
    observability.reset_metrics()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """CLI tests call setup_logging(), which replaces root handlers."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture(autouse=True)
def _no_ai_env(monkeypatch):
    """Engines built in tests must not pick up a real AI provider."""
    for name in ("SOLGUARD_AI_PROVIDER", "SOLGUARD_AI_API_KEY", "SOLGUARD_AI_MODEL",
                 "SOLGUARD_AI_ENDPOINT", "SOLGUARD_AI_RATE_LIMIT"):
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def make_issue(
    severity=Severity.LOW,
    line=1,
    column=1,
    *,
    kind=IssueKind.VULNERABILITY,
    title="Finding",
    end_line=None,
    end_column=None,
    rule_id="rule",
    source=IssueSource.PATTERN,
    **kwargs,
):
    rng = TextRange(line, column, end_line or line, end_column or column + 1)
    return SecurityIssue(
        kind=kind,
        severity=severity,
        title=title,
        message=kwargs.pop("message", f"{title} message"),
        range=rng,
        rule_id=rule_id,
        source=source,
        **kwargs,
    )


class FakeAIAdapter:
    """Configurable in-process AI adapter."""

    provider_name = "fake"

    def __init__(self, analysis=None, *, delay=0.0, error=None, available=True):
        self.analysis = analysis if analysis is not None else AIAnalysis(provider="fake")
        self.delay = delay
        self.error = error
        self.available = available
        self.calls = 0
        self.started = threading.Event()

    def is_available(self):
        return self.available

    def analyze(self, source, context):
        self.calls += 1
        self.started.set()
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error is not None:
            raise self.error
        return self.analysis


@pytest.fixture
def vault_source():
    return VULNERABLE_VAULT


@pytest.fixture
def clean_source():
    return CLEAN_TOKEN
