# scanner/verdict.py
"""
Verdict resolution.

- resolve_verdict turns one policy-engine signal set into Allowed, Denied or EvaluationError.
- Deny wins over allow; no explicit allow means Denied.
- Malformed engine output is an error, never a decision.
- verdict_from_label parses the display labels carried by wire responses and snapshots.
"""

from collections.abc import Mapping
from typing import Any, Optional

from models import LABEL_FAILURE, LABEL_SUCCESS, Verdict

INVALID_RESULT_MESSAGE = "invalid policy evaluation result format"
ERROR_MARKERS = ("error", "failed")


def has_error_marker(label: Optional[str]) -> bool:
    """
    Return True if a scan-result label textually reports an error.
    """
    if not label:
        return False
    lowered = label.lower()
    return any(marker in lowered for marker in ERROR_MARKERS)


def resolve_verdict(signals: Any, prior_label: Optional[str] = None) -> Verdict:
    """
    Resolve a signal set (e.g. {"allow": True, "deny": False}) into a Verdict.

    Precedence:
    1. prior_label carrying an error marker -> EvaluationError(prior_label)
    2. non-mapping signal set -> EvaluationError("invalid policy evaluation result format")
    3. deny is True -> Denied
    4. allow is True -> Allowed
    5. otherwise -> Denied
    """
    if has_error_marker(prior_label):
        return Verdict.error(prior_label)
    if not isinstance(signals, Mapping):
        return Verdict.error(INVALID_RESULT_MESSAGE)
    if signals.get("deny") is True:
        return Verdict.denied()
    if signals.get("allow") is True:
        return Verdict.allowed()
    return Verdict.denied()


def verdict_from_label(label: Optional[str]) -> Optional[Verdict]:
    """
    Parse a display label back into a Verdict.

    - "Success" / "Failure" (any case) map to Allowed / Denied.
    - Any other non-empty label is error text and maps to EvaluationError.
    - An empty label means the repository was never evaluated and returns None.
    """
    if has_error_marker(label):
        return Verdict.error(label)
    lowered = (label or "").strip().lower()
    if not lowered:
        return None
    if lowered == LABEL_SUCCESS.lower():
        return Verdict.allowed()
    if lowered == LABEL_FAILURE.lower():
        return Verdict.denied()
    return Verdict.error(label)
