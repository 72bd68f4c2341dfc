# tests/conftest.py
"""
Shared fixtures: a scripted policy engine and record builders.
"""

import pytest

from models import AccessRecord, PermissionEntry
from scanner.oracle import PolicyOracle, PreparedPolicy


class FakePrepared(PreparedPolicy):
    def __init__(self, oracle):
        self.oracle = oracle
        self.closed = False

    def evaluate(self, document):
        self.oracle.evaluated.append(document["full_name"])
        outcome = self.oracle.results.get(document["full_name"], self.oracle.default)
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(document)
        return outcome

    def close(self):
        self.closed = True


class FakeOracle(PolicyOracle):
    """
    Returns scripted signal sets per repository full name.
    A result that is an exception instance is raised; a callable is called with the input document.
    """

    def __init__(self, results=None, default=None, prepare_error=None):
        self.results = results or {}
        self.default = default if default is not None else {}
        self.prepare_error = prepare_error
        self.prepared = []
        self.evaluated = []

    def prepare(self, policy):
        if self.prepare_error is not None:
            raise self.prepare_error
        prepared = FakePrepared(self)
        self.prepared.append(prepared)
        return prepared


def make_record(name, visibility="private", private=True, permissions=None, owner="acme-corp"):
    return AccessRecord(
        name=name,
        full_name=f"{owner}/{name}",
        owner=owner,
        visibility=visibility,
        private=private,
        repo_url=f"https://github.com/{owner}/{name}",
        default_branch="main",
        last_updated="2026-10-01T00:00:00Z",
        permissions=list(permissions or []),
    )


@pytest.fixture
def records():
    """R1: private with an admin collaborator. R2: public without admin."""
    return [
        make_record("r1", permissions=[PermissionEntry("alice", "admin", "team:platform")]),
        make_record("r2", visibility="public", private=False,
                    permissions=[PermissionEntry("bob", "read")]),
    ]


@pytest.fixture
def admin_policy_oracle():
    """Allows private repositories that have an admin, like the sample policy."""
    def decide(doc):
        has_admin = any(p["role"] == "admin" for p in doc["permissions"])
        return {"allow": doc["visibility"] == "private" and has_admin}
    return FakeOracle(default=decide)
