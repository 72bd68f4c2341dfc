# tests/test_main.py
"""
CLI runs in dummy mode with the policy engine replaced by a scripted oracle.
"""

import json
import os

import pytest
from rich.console import Console

import main
import utils
from config import Settings
from conftest import FakeOracle

SAMPLES = os.path.join(os.path.dirname(__file__), os.pardir, "samples")


def _write_policy(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_dummy_mode_writes_reports(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "OpaOracle", lambda **kwargs: FakeOracle(default={"allow": True}))
    monkeypatch.setattr(main, "load_settings", lambda require_github=False: Settings())
    policy = _write_policy(tmp_path, "allow.rego", "package repository\nallow := true\n")
    report_dir = tmp_path / "reports"

    main.main(["--mode", "dummy", "--file", os.path.join(SAMPLES, "acme_org.json"),
               "--policy", policy, "--report-dir", str(report_dir)])

    written = sorted(os.listdir(report_dir))
    assert len(written) == 3
    json_report = [f for f in written if f.endswith(".json")][0]
    with open(report_dir / json_report, encoding="utf-8") as fh:
        data = json.load(fh)
    assert data["totals"] == {"success": 1, "failure": 0, "error": 0}
    assert data["summaries"][0]["policy"] == "package repository\nallow := true"


def test_dummy_mode_reports_every_repository(tmp_path, monkeypatch):
    def payments_only(doc):
        return {"allow": doc["name"] == "payments-api"}

    monkeypatch.setattr(main, "OpaOracle", lambda **kwargs: FakeOracle(default=payments_only))
    monkeypatch.setattr(main, "load_settings", lambda require_github=False: Settings())
    console = Console(record=True, width=200)
    monkeypatch.setattr(utils, "_console", console)
    policy = _write_policy(tmp_path, "payments.rego", "package repository\n")
    report_dir = tmp_path / "reports"

    main.main(["--mode", "dummy", "--file", os.path.join(SAMPLES, "acme_org.json"),
               "--policy", policy, "--report-dir", str(report_dir), "--print-table"])

    contents = {}
    for name in os.listdir(report_dir):
        with open(report_dir / name, encoding="utf-8") as fh:
            contents[name.rsplit(".", 1)[1]] = fh.read()
    summary = json.loads(contents["json"])["summaries"][0]
    assert summary["failure_count"] == 2
    repos = summary["repositories"]
    assert {r["full_name"]: r["scan_result"] for r in repos} == {
        "acme-corp/payments-api": "Success",
        "acme-corp/docs": "Failure",
        "acme-corp/sandbox": "Failure",
    }
    assert "acme-corp/docs,Failure" in contents["csv"]
    assert "acme-corp/docs" in contents["html"]

    text = console.export_text()
    assert "Repositories for policy #1:" in text
    assert "acme-corp/docs" in text
    assert "carol (maintain, team:docs)" in text


def test_dummy_mode_requires_file(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "load_settings", lambda require_github=False: Settings())
    policy = _write_policy(tmp_path, "p.rego", "package repository\n")
    with pytest.raises(SystemExit, match="requires --file"):
        main.main(["--mode", "dummy", "--policy", policy])


def test_live_mode_needs_configuration(monkeypatch):
    def missing(require_github=False):
        raise main.ConfigurationError("missing required configuration: GITHUB_TOKEN, ORG_NAME (set it in .env)")

    monkeypatch.setattr(main, "load_settings", missing)
    with pytest.raises(SystemExit, match="configuration error"):
        main.main(["--mode", "github"])


def test_no_policies(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "load_settings", lambda require_github=False: Settings())
    with pytest.raises(SystemExit, match="no policies found"):
        main.main(["--mode", "dummy", "--file", "x.json", "--policy-dir", str(tmp_path)])
