# scanner/runner.py
"""
Multi-policy runs.

- run_policies evaluates an ordered list of policies, one at a time, and builds the Report.
- A ScannerError raised for one policy becomes that policy's ERROR summary; later policies still run.
"""

import copy
import logging
from typing import Callable, Dict, Iterable, List

from models import AccessRecord, PolicySummary, Report, ScanResponse, SummaryState
from scanner.aggregate import scan_policy, summarize_verdicts
from scanner.exceptions import ScannerError
from scanner.oracle import PolicyOracle

logger = logging.getLogger(__name__)

PolicyEvaluator = Callable[[str], PolicySummary]


def summarize_response(policy: str, response: ScanResponse) -> PolicySummary:
    """
    Summarize a service response: the top-level error is a policy-level error,
    repository labels are read back as verdicts.
    """
    summary = summarize_verdicts(
        policy,
        [repo.verdict for repo in response.repositories],
        policy_error=response.error or None,
    )
    return summary.with_repositories(response.repositories)


def local_evaluator(records: List[AccessRecord], oracle: PolicyOracle) -> PolicyEvaluator:
    """
    Evaluate policies in-process against one fetched snapshot.
    Each policy works on its own copy so verdicts never leak between policies.
    """
    def evaluate(policy: str) -> PolicySummary:
        return scan_policy(policy, copy.deepcopy(records), oracle)
    return evaluate


def compute_totals(summaries: Iterable[PolicySummary]) -> Dict[str, int]:
    totals = {"success": 0, "failure": 0, "error": 0}
    for summary in summaries:
        # no-match summaries are ERROR summaries and land in "error"
        if summary.state is SummaryState.ERROR:
            totals["error"] += 1
        elif summary.state is SummaryState.FAILURE:
            totals["failure"] += 1
        else:
            totals["success"] += 1
    return totals


def run_policies(policies: Iterable[str], evaluate: PolicyEvaluator) -> Report:
    """
    Run `evaluate` for each policy in order and assemble the Report.
    """
    summaries: List[PolicySummary] = []
    for policy in policies:
        logger.info("Scanning with policy:\n%s", policy.strip())
        try:
            summary = evaluate(policy)
        except ScannerError as e:
            logger.warning("Error processing policy: %s", e)
            summary = PolicySummary.error(policy, str(e))
        if summary.state is SummaryState.ERROR:
            logger.warning("Policy result: %s", summary.result_text)
        summaries.append(summary)

    report = Report(summaries=summaries, totals=compute_totals(summaries))
    logger.info("Policy scanning completed: %s", report.totals)
    return report
