# scanner/aggregate.py
"""
Per-policy aggregation.

- scan_policy evaluates every repository against one policy and writes each verdict back
  onto its AccessRecord.
- summarize_verdicts folds the verdicts into one PolicySummary. The result depends only on
  the multiset of verdicts, so processing order never changes it.
"""

import logging
from typing import Iterable, List, Optional

from models import DEFAULT_ERROR_MESSAGE, AccessRecord, PolicySummary, Verdict, VerdictKind
from scanner.exceptions import EvaluationError
from scanner.oracle import PolicyOracle, PreparedPolicy
from scanner.verdict import has_error_marker, resolve_verdict

logger = logging.getLogger(__name__)


def summarize_verdicts(policy: str, verdicts: Iterable[Optional[Verdict]],
                       policy_error: Optional[str] = None) -> PolicySummary:
    """
    Apply the summary precedence (first match wins):
    1. policy-level error -> ERROR(policy_error)
    2. any repository error -> ERROR(sorted distinct messages joined by "; ")
    3. any denied repository -> FAILURE(count)
    4. any allowed repository -> SUCCESS
    5. otherwise -> ERROR("no matching condition")
    None entries (repositories never evaluated) count towards nothing.
    """
    if policy_error:
        return PolicySummary.error(policy, policy_error)

    errors = set()
    denied = 0
    allowed = 0
    for verdict in verdicts:
        if verdict is None:
            continue
        if verdict.kind is VerdictKind.ERROR:
            errors.add(verdict.message or DEFAULT_ERROR_MESSAGE)
        elif verdict.kind is VerdictKind.DENIED:
            denied += 1
        elif verdict.kind is VerdictKind.ALLOWED:
            allowed += 1

    if errors:
        return PolicySummary.error(policy, "; ".join(sorted(errors)))
    if denied:
        return PolicySummary.failure(policy, denied)
    if allowed:
        return PolicySummary.success(policy)
    return PolicySummary.no_match(policy)


def evaluate_repository(prepared: PreparedPolicy, record: AccessRecord) -> Verdict:
    """
    Evaluate one record. A record already marked with an error label is not sent to the engine.
    """
    prior_label = record.scan_result if record.verdict and record.verdict.is_error else None
    if has_error_marker(prior_label):
        return resolve_verdict(None, prior_label=prior_label)
    try:
        signals = prepared.evaluate(record.to_input())
    except EvaluationError as e:
        logger.warning("Error evaluating policy for %s: %s", record.full_name, e)
        return Verdict.error(str(e))
    return resolve_verdict(signals)


def evaluate_records(policy: str, records: List[AccessRecord], oracle: PolicyOracle) -> Optional[str]:
    """
    Evaluate `policy` against every record, in order, writing each verdict back.

    Returns the policy-level error message when the policy cannot be prepared; every
    record is then marked with that error. Returns None otherwise.
    """
    try:
        prepared = oracle.prepare(policy)
    except EvaluationError as e:
        message = str(e) or DEFAULT_ERROR_MESSAGE
        logger.warning("Policy could not be prepared: %s", message)
        for record in records:
            record.verdict = Verdict.error(message)
        return message

    with prepared:
        for record in records:
            logger.info("Processing repository: %s", record.full_name)
            record.verdict = evaluate_repository(prepared, record)
    return None


def scan_policy(policy: str, records: List[AccessRecord], oracle: PolicyOracle) -> PolicySummary:
    """Evaluate `policy` against every record and summarize; the summary keeps the evaluated records."""
    policy_error = evaluate_records(policy, records, oracle)
    summary = summarize_verdicts(policy, [r.verdict for r in records], policy_error=policy_error)
    return summary.with_repositories(records)
