# main.py
"""
CLI entrypoint for the organization policy scanner.

- Supports four modes:
  * dummy: scan an organization snapshot read from a JSON file (offline testing)
  * github: fetch the live organization from GitHub and scan it in-process
  * serve: run the policy scan service
  * remote: send each policy to a running scan service
- Produces JSON, CSV, and HTML reports and prints a colorful summary table;
  --print-table also prints every repository with its scan result.
"""

import argparse
import logging

import service
from config import DEFAULT_POLICY_DIR, DEFAULT_REPORT_DIR, load_settings
from scanner.exceptions import ConfigurationError, FetchError
from scanner.github import GitHubClient, collect_access_records
from scanner.oracle import OpaOracle
from scanner.remote import RemoteScanClient
from scanner.runner import local_evaluator, run_policies
from utils import load_policies, load_snapshot, print_final_summary, print_policy_repositories, save_report

logger = logging.getLogger("org_scanner")


def _finish(report, mode: str, extra: dict, report_dir: str, print_table: bool = False):
    report_paths = save_report(report, mode=mode, extra=extra, out_dir=report_dir)
    if print_table:
        print_policy_repositories(report)
    print_final_summary(report, report_paths)
    return report


def run_dummy(file_path: str, policies, settings, report_dir: str = DEFAULT_REPORT_DIR, print_table: bool = False):
    """
    Run the scanner against a local snapshot file.
    No GitHub access is required in this mode.
    """
    logger.info("Running in dummy mode using file: %s", file_path)
    records = load_snapshot(file_path)
    oracle = OpaOracle(binary=settings.opa_binary, timeout=settings.opa_timeout)
    report = run_policies(policies, local_evaluator(records, oracle))
    return _finish(report, "dummy", {"source_file": file_path}, report_dir, print_table)


def run_github(policies, settings, report_dir: str = DEFAULT_REPORT_DIR, print_table: bool = False):
    """
    Fetch the organization once and evaluate every policy against that snapshot.
    """
    logger.info("Running in live GitHub mode (org=%s)", settings.org_name)
    with GitHubClient(settings.github_token, base_url=settings.github_api_url) as client:
        records = collect_access_records(client, settings.org_name)
    oracle = OpaOracle(binary=settings.opa_binary, timeout=settings.opa_timeout)
    report = run_policies(policies, local_evaluator(records, oracle))
    return _finish(report, "github", {"organization": settings.org_name}, report_dir, print_table)


def run_remote(policies, settings, server_url: str = None, report_dir: str = DEFAULT_REPORT_DIR,
               print_table: bool = False):
    """
    Send each policy to the scan service; each call is bounded by SCANNER_TIMEOUT.
    """
    url = server_url or settings.server_url
    logger.info("Connecting to scan service at %s", url)
    with RemoteScanClient(url, timeout=settings.request_timeout) as client:
        report = run_policies(policies, client.summarize)
    return _finish(report, "remote", {"server_url": url}, report_dir, print_table)


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="GitHub organization access policy scanner."
    )
    p.add_argument(
        "--mode",
        choices=["dummy", "github", "serve", "remote"],
        required=True,
        help="Run mode: dummy (JSON snapshot), github (live), serve (service), remote (call service)",
    )
    p.add_argument(
        "--file",
        help="Path to organization snapshot JSON (required for dummy mode)",
    )
    p.add_argument(
        "--policy",
        action="append",
        default=[],
        help="Path to a Rego policy file (repeatable)",
    )
    p.add_argument(
        "--policy-dir",
        help=f"Directory of *.rego policies (default: {DEFAULT_POLICY_DIR} when no --policy is given)",
    )
    p.add_argument(
        "--server-url",
        help="Scan service URL for remote mode (default: SCANNER_URL)",
    )
    p.add_argument(
        "--report-dir",
        default=DEFAULT_REPORT_DIR,
        help=f"Directory to save reports (default: {DEFAULT_REPORT_DIR})",
    )
    p.add_argument(
        "--print-table",
        action="store_true",
        help="Print each policy's per-repository results to the console",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))

    try:
        settings = load_settings(require_github=args.mode in ("github", "serve"))
    except ConfigurationError as e:
        raise SystemExit(f"configuration error: {e}")

    if args.mode == "serve":
        service.run(settings)
        return

    policy_dir = args.policy_dir or (None if args.policy else DEFAULT_POLICY_DIR)
    policies = load_policies(args.policy, policy_dir)
    if not policies:
        raise SystemExit("no policies found; pass --policy or --policy-dir")

    if args.mode == "dummy":
        if not args.file:
            raise SystemExit("dummy mode requires --file path to JSON")
        run_dummy(args.file, policies, settings, report_dir=args.report_dir, print_table=args.print_table)
    elif args.mode == "github":
        try:
            run_github(policies, settings, report_dir=args.report_dir, print_table=args.print_table)
        except FetchError as e:
            raise SystemExit(f"Error fetching repositories for {settings.org_name}: {e}")
    else:
        run_remote(policies, settings, server_url=args.server_url, report_dir=args.report_dir,
                   print_table=args.print_table)


if __name__ == "__main__":
    main()
