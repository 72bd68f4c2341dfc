# utils.py
"""
Utility helpers: input loading, report generation, and console output.

- Loads policy files and offline organization snapshots.
- Saves JSON, CSV, and HTML reports for a multi-policy run.
- Uses Rich for colorful, wrapped tables in the terminal.
"""

import csv
import glob
import html
import json
import os
from datetime import datetime, timezone
from json import JSONDecodeError
from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from models import AccessRecord, PolicySummary, Report, SummaryState, VerdictKind

_console = Console()

_VERDICT_STYLES = {
    VerdictKind.ALLOWED: "green",
    VerdictKind.DENIED: "bold yellow",
    VerdictKind.ERROR: "bold red",
}


def load_json_file(path: str) -> dict:
    """
    Load JSON from a file and return a Python dict.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Input JSON file not found: {path}.")
    try:
        with open(path, "r", encoding="utf-8-sig") as fh:
            return json.load(fh)
    except JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {path}: {e.msg} (line {e.lineno} column {e.colno})") from e


def load_snapshot(path: str) -> List[AccessRecord]:
    """
    Load an organization snapshot for offline scans.
    Expected shape:
    {
      "organization": "acme",
      "repositories": [
        { "name": "api", "full_name": "acme/api", "owner": "acme", "visibility": "private",
          "private": true, "permissions": [ {"username": "alice", "role": "admin", "source": "user"} ] },
        ...
      ]
    }
    """
    data = load_json_file(path)
    return [AccessRecord.from_dict(r) for r in data.get("repositories", [])]


def load_policies(paths: Optional[List[str]] = None, policy_dir: Optional[str] = None) -> List[str]:
    """
    Read policy documents: explicit files first (in the given order), then `*.rego` from policy_dir sorted by name.
    """
    files = list(paths or [])
    if policy_dir:
        if not os.path.isdir(policy_dir):
            raise FileNotFoundError(f"Policy directory not found: {policy_dir}.")
        files.extend(sorted(glob.glob(os.path.join(policy_dir, "*.rego"))))
    policies: List[str] = []
    for path in files:
        with open(path, "r", encoding="utf-8") as fh:
            policies.append(fh.read())
    return policies


def ensure_reports_dir(path: str = "reports") -> str:
    os.makedirs(path, exist_ok=True)
    return path


def summaries_to_table_rows(summaries: List[PolicySummary]) -> List[List[str]]:
    rows: List[List[str]] = []
    for i, s in enumerate(summaries, start=1):
        rows.append([str(i), s.policy, s.state.value.upper(), s.result_text])
    return rows


def _permissions_text(record: AccessRecord) -> str:
    if not record.permissions:
        return "No collaborators found."
    return "\n".join(f"{p.username} ({p.role}, {p.source})" for p in record.permissions)


def repositories_to_table_rows(records: List[AccessRecord]) -> List[List[str]]:
    return [[r.full_name, r.visibility, r.scan_result, _permissions_text(r)] for r in records]


def save_report(report: Report, mode: str, extra: dict = None, out_dir: str = "reports") -> Dict[str, str]:
    """
    Save JSON, CSV, and HTML reports and return their paths.
    """
    out_dir = ensure_reports_dir(out_dir)
    now = datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"
    data = {"scan_time": now, "mode": mode}
    data.update(report.to_dict())
    data["summary"] = {"policy_count": len(report.summaries)}
    if extra:
        data["extra"] = extra

    base_ts = now.replace(":", "-")
    json_path = os.path.join(out_dir, f"scan-{base_ts}-{mode}.json")
    csv_path = os.path.join(out_dir, f"scan-{base_ts}-{mode}.csv")
    html_path = os.path.join(out_dir, f"scan-{base_ts}-{mode}.html")

    # JSON
    with open(json_path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2)

    # CSV: one row per policy and repository; a policy without repositories gets one row
    fieldnames = ["policy", "state", "failure_count", "message", "repository", "scan_result"]
    with open(csv_path, "w", encoding="utf-8", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames, extrasaction="ignore")
        writer.writeheader()
        for s in data["summaries"]:
            for repo in s["repositories"] or [{}]:
                writer.writerow(dict(s, repository=repo.get("full_name", ""), scan_result=repo.get("scan_result", "")))

    # HTML
    totals = report.totals
    html_rows: List[str] = []
    html_rows.append("<!doctype html>")
    html_rows.append("<html><head><meta charset='utf-8'><title>Policy Scan Report</title>")
    html_rows.append("<style>body{font-family:Arial,Helvetica,sans-serif;margin:20px}table{border-collapse:collapse;width:100%}th,td{border:1px solid #ddd;padding:8px;vertical-align:top}th{background:#f2f2f2;text-align:left}tr:nth-child(even){background:#fafafa}pre{white-space:pre-wrap;word-wrap:break-word;margin:0}</style>")
    html_rows.append("</head><body>")
    html_rows.append(f"<h2>Policy Scan Report - {now} - mode: {html.escape(mode)}</h2>")
    html_rows.append(f"<p>Total policies: {len(report.summaries)}</p>")
    html_rows.append(
        f"<p class='totals'>Success: {totals['success']}, Failure: {totals['failure']}, Error: {totals['error']}</p>"
    )
    if extra:
        html_rows.append("<div><strong>Metadata:</strong><ul>")
        for k, v in extra.items():
            html_rows.append(f"<li>{html.escape(str(k))}: {html.escape(str(v))}</li>")
        html_rows.append("</ul></div>")
    html_rows.append("<table><thead><tr><th>#</th><th>Policy</th><th>State</th><th>Result</th></tr></thead><tbody>")
    for row in summaries_to_table_rows(report.summaries):
        num, policy, state, result = (html.escape(c) for c in row)
        html_rows.append(f"<tr><td>{num}</td><td><pre>{policy}</pre></td><td>{state}</td><td>{result}</td></tr>")
    html_rows.append("</tbody></table>")
    for i, s in enumerate(report.summaries, start=1):
        if not s.repositories:
            continue
        html_rows.append(f"<h3>Repositories for policy #{i}</h3>")
        html_rows.append("<table class='repositories'><thead><tr><th>Repository</th><th>Visibility</th><th>Scan Result</th><th>Permissions</th></tr></thead><tbody>")
        for row in repositories_to_table_rows(s.repositories):
            name, visibility, result, perms = (html.escape(c) for c in row)
            html_rows.append(f"<tr><td>{name}</td><td>{visibility}</td><td>{result}</td><td><pre>{perms}</pre></td></tr>")
        html_rows.append("</tbody></table>")
    html_rows.append("</body></html>")
    with open(html_path, "w", encoding="utf-8") as fh:
        fh.write("\n".join(html_rows))

    return {"json": json_path, "csv": csv_path, "html": html_path}


# --- Console printing with color/wrapping ---

def _rich_state_text(summary: PolicySummary) -> Text:
    """
    Return a Rich Text object styled by summary state.
    """
    if summary.state is SummaryState.ERROR:
        return Text(summary.result_text, style="bold red")
    if summary.state is SummaryState.FAILURE:
        return Text(summary.result_text, style="bold yellow")
    return Text(summary.result_text, style="green")


def print_final_summary(report: Report, report_paths: Optional[Dict[str, str]] = None,
                        console: Optional[Console] = None):
    """
    Print every policy with its result, then the totals and saved report paths.
    """
    console = console or _console
    console.print("\nFinal Summary of All Policies:")
    table = Table(show_header=True, header_style="bold cyan", show_lines=True)
    table.add_column("#", justify="right")
    table.add_column("Policy", overflow="fold")
    table.add_column("Result", overflow="fold")
    for i, summary in enumerate(report.summaries, start=1):
        table.add_row(str(i), Text(summary.policy), _rich_state_text(summary))
    console.print(table)

    totals = report.totals
    console.print(f"Total Policies: {len(report.summaries)}")
    console.print(f"Success: {totals['success']}, Failure: {totals['failure']}, Error: {totals['error']}")
    if report_paths:
        console.print("\nSaved reports:")
        console.print(f"- JSON: {report_paths.get('json')}")
        console.print(f"- CSV:  {report_paths.get('csv')}")
        console.print(f"- HTML: {report_paths.get('html')}\n")


def print_repository_table(records: List[AccessRecord], console: Optional[Console] = None):
    """
    Print repositories with visibility, scan result, and permissions.
    """
    console = console or _console
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Repository", style="cyan", overflow="fold")
    table.add_column("Owner")
    table.add_column("Visibility")
    table.add_column("Scan Result", overflow="fold")
    table.add_column("Permissions", overflow="fold")
    for r in records:
        style = _VERDICT_STYLES.get(r.verdict.kind, "") if r.verdict else ""
        table.add_row(r.full_name, r.owner, r.visibility, Text(r.scan_result, style=style), _permissions_text(r))
    console.print(table)


def print_policy_repositories(report: Report, console: Optional[Console] = None):
    """
    Print the per-repository table of every policy that has evaluated repositories.
    """
    console = console or _console
    for i, summary in enumerate(report.summaries, start=1):
        if not summary.repositories:
            continue
        console.print(f"\nRepositories for policy #{i}:")
        print_repository_table(summary.repositories, console=console)
