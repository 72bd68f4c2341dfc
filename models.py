# models.py
"""
Data models used by the scanner.

- AccessRecord is the per-repository snapshot handed to the policy engine.
- Verdict is the tagged per-repository outcome; labels are rendered only for reports and the wire.
- PolicySummary and Report hold aggregated results and are never mutated after creation.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from scanner.exceptions import RecordValidationError

SOURCE_USER = "user"
SOURCE_TEAM_PREFIX = "team:"

LABEL_SUCCESS = "Success"
LABEL_FAILURE = "Failure"
NO_MATCH_MESSAGE = "no matching condition"
# substituted for an empty error message; contains an error marker so it reads back as an error
DEFAULT_ERROR_MESSAGE = "policy evaluation failed"


@dataclass
class PermissionEntry:
    """
    One collaborator's access to a repository.

    Fields:
    - username: collaborator login, never empty
    - role: free-form role label reported by GitHub ("admin", "write", "read", "maintain", ...)
    - source: "user" for direct access or "team:<slug>" when granted through a team
    """
    username: str
    role: str
    source: str = SOURCE_USER

    def __post_init__(self):
        if not self.username:
            raise RecordValidationError("permission entry username must not be empty")
        if self.source != SOURCE_USER:
            slug = self.source[len(SOURCE_TEAM_PREFIX):] if self.source.startswith(SOURCE_TEAM_PREFIX) else ""
            if not slug:
                raise RecordValidationError(
                    f"permission source must be 'user' or 'team:<slug>', got {self.source!r}"
                )

    @classmethod
    def from_team(cls, username: str, role: str, team_slug: str) -> "PermissionEntry":
        return cls(username=username, role=role, source=SOURCE_TEAM_PREFIX + team_slug)

    @property
    def team(self) -> Optional[str]:
        if self.source.startswith(SOURCE_TEAM_PREFIX):
            return self.source[len(SOURCE_TEAM_PREFIX):]
        return None

    def to_dict(self) -> Dict[str, str]:
        return {"username": self.username, "role": self.role, "source": self.source}


class VerdictKind(Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    ERROR = "error"


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating one repository against one policy."""
    kind: VerdictKind
    message: str = ""

    @classmethod
    def allowed(cls) -> "Verdict":
        return cls(VerdictKind.ALLOWED)

    @classmethod
    def denied(cls) -> "Verdict":
        return cls(VerdictKind.DENIED)

    @classmethod
    def error(cls, message: str) -> "Verdict":
        return cls(VerdictKind.ERROR, message or DEFAULT_ERROR_MESSAGE)

    @property
    def is_error(self) -> bool:
        return self.kind is VerdictKind.ERROR

    @property
    def label(self) -> str:
        """Display label used in reports and wire responses."""
        if self.kind is VerdictKind.ALLOWED:
            return LABEL_SUCCESS
        if self.kind is VerdictKind.DENIED:
            return LABEL_FAILURE
        return self.message or DEFAULT_ERROR_MESSAGE


@dataclass
class AccessRecord:
    """
    Canonical snapshot of one repository at scan time.

    `visibility` and `private` are stored as GitHub reports them; neither is derived from the other.
    `verdict` stays None until the repository has been evaluated.
    """
    name: str
    full_name: str
    owner: str
    visibility: str = ""
    private: bool = False
    description: str = ""
    repo_url: str = ""
    default_branch: str = ""
    last_updated: str = ""
    permissions: List[PermissionEntry] = field(default_factory=list)
    verdict: Optional[Verdict] = None

    @property
    def scan_result(self) -> str:
        return self.verdict.label if self.verdict else ""

    def to_input(self) -> Dict[str, Any]:
        """Policy engine input document."""
        return {
            "name": self.name,
            "full_name": self.full_name,
            "owner": self.owner,
            "visibility": self.visibility,
            "private": self.private,
            "description": self.description,
            "repo_url": self.repo_url,
            "default_branch": self.default_branch,
            "last_updated": self.last_updated,
            "permissions": [p.to_dict() for p in self.permissions],
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_input()
        data["scan_result"] = self.scan_result
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessRecord":
        """
        Build a record from a snapshot/wire dict using the same keys as to_dict().
        A non-empty `scan_result` label is parsed back into a verdict.
        """
        name = data.get("name") or ""
        if not name:
            raise RecordValidationError("repository record is missing 'name'")
        permissions = [
            PermissionEntry(
                username=p.get("username") or "",
                role=p.get("role") or "",
                source=p.get("source") or SOURCE_USER,
            )
            for p in data.get("permissions") or []
        ]
        private = data.get("private")
        if private is None:
            private = False
        elif not isinstance(private, bool):
            raise RecordValidationError(f"repository {name!r}: 'private' must be a boolean, got {private!r}")
        record = cls(
            name=name,
            full_name=data.get("full_name") or name,
            owner=data.get("owner") or "",
            visibility=data.get("visibility") or "",
            private=private,
            description=data.get("description") or "",
            repo_url=data.get("repo_url") or "",
            default_branch=data.get("default_branch") or "",
            last_updated=data.get("last_updated") or "",
            permissions=permissions,
        )
        label = data.get("scan_result") or ""
        if label:
            # imported lazily: verdict.py imports this module
            from scanner.verdict import verdict_from_label
            record.verdict = verdict_from_label(label)
        return record


@dataclass
class ScanResponse:
    """Result of scanning an organization with one policy: evaluated records plus a top-level error."""
    repositories: List[AccessRecord] = field(default_factory=list)
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"repositories": [r.to_dict() for r in self.repositories], "error": self.error}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanResponse":
        return cls(
            repositories=[AccessRecord.from_dict(r) for r in data.get("repositories") or []],
            error=data.get("error") or "",
        )


class SummaryState(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"


@dataclass(frozen=True)
class PolicySummary:
    """
    One policy's result across an organization.

    Fields:
    - policy: policy text with surrounding whitespace removed
    - state: exactly one of SUCCESS, FAILURE, ERROR
    - failure_count: number of denied repositories when state is FAILURE
    - message: reason text when state is ERROR
    - repositories: the evaluated records behind the summary (not part of equality)
    """
    policy: str
    state: SummaryState
    failure_count: int = 0
    message: str = ""
    repositories: List[AccessRecord] = field(default_factory=list, compare=False)

    @classmethod
    def success(cls, policy: str) -> "PolicySummary":
        return cls(policy.strip(), SummaryState.SUCCESS)

    @classmethod
    def failure(cls, policy: str, count: int) -> "PolicySummary":
        return cls(policy.strip(), SummaryState.FAILURE, failure_count=count)

    @classmethod
    def error(cls, policy: str, message: str) -> "PolicySummary":
        return cls(policy.strip(), SummaryState.ERROR, message=message or DEFAULT_ERROR_MESSAGE)

    @classmethod
    def no_match(cls, policy: str) -> "PolicySummary":
        return cls.error(policy, NO_MATCH_MESSAGE)

    @property
    def is_no_match(self) -> bool:
        return self.state is SummaryState.ERROR and self.message == NO_MATCH_MESSAGE

    @property
    def result_text(self) -> str:
        if self.is_no_match:
            return "ERROR (NO MATCHING CONDITION)"
        if self.state is SummaryState.ERROR:
            return f"ERROR - {self.message}"
        if self.state is SummaryState.FAILURE:
            return f"FAILURE ({self.failure_count} repositories denied)"
        return "SUCCESS"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy": self.policy,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "message": self.message,
            "repositories": [r.to_dict() for r in self.repositories],
        }

    def with_repositories(self, records: List[AccessRecord]) -> "PolicySummary":
        return replace(self, repositories=list(records))


@dataclass
class Report:
    """Ordered policy summaries plus success/failure/error totals."""
    summaries: List[PolicySummary] = field(default_factory=list)
    totals: Dict[str, int] = field(default_factory=lambda: {"success": 0, "failure": 0, "error": 0})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summaries": [s.to_dict() for s in self.summaries],
            "totals": dict(self.totals),
        }
