# scanner/oracle.py
"""
Policy engine adapters.

- PolicyOracle.prepare() compiles one policy document and returns a PreparedPolicy.
- PreparedPolicy.evaluate() runs the policy against one input document and returns the
  signal set (a mapping such as {"allow": True}) exactly as the engine produced it.
- OpaOracle drives the Open Policy Agent CLI; every call is bounded by a timeout.
"""

import json
import logging
import os
import shutil
import subprocess
import tempfile
from typing import Any, Dict, List, Optional

from scanner.exceptions import (
    MalformedResultError,
    OracleCompileError,
    OracleRuntimeError,
    OracleTimeoutError,
)
from scanner.verdict import INVALID_RESULT_MESSAGE

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "data.repository"
DEFAULT_TIMEOUT = 5.0
MODULE_FILENAME = "repository.rego"


class PreparedPolicy:
    """A compiled policy ready to evaluate input documents."""

    def evaluate(self, document: Dict[str, Any]) -> Any:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "PreparedPolicy":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class PolicyOracle:
    """Rule engine boundary. Subclasses raise EvaluationError subclasses on failure."""

    def prepare(self, policy: str) -> PreparedPolicy:
        raise NotImplementedError


def extract_signals(payload: Any) -> Any:
    """
    Pull the first expression value out of `opa eval --format json` output.

    Expected shape:
    {"result": [{"expressions": [{"value": {...}, "text": "data.repository"}]}]}
    """
    if not isinstance(payload, dict):
        raise MalformedResultError(INVALID_RESULT_MESSAGE)
    results = payload.get("result")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise MalformedResultError(INVALID_RESULT_MESSAGE)
    expressions = results[0].get("expressions")
    if not isinstance(expressions, list) or not expressions or not isinstance(expressions[0], dict):
        raise MalformedResultError(INVALID_RESULT_MESSAGE)
    return expressions[0].get("value")


class OpaPreparedPolicy(PreparedPolicy):
    """Policy module written to a private temp directory and evaluated with `opa eval`."""

    def __init__(self, oracle: "OpaOracle", workdir: str, module_path: str) -> None:
        self.oracle = oracle
        self.workdir = workdir
        self.module_path = module_path

    def evaluate(self, document: Dict[str, Any]) -> Any:
        proc = self.oracle.run(
            ["eval", "--format", "json", "--data", self.module_path, "--stdin-input", self.oracle.query],
            stdin=json.dumps(document),
        )
        if proc.returncode != 0:
            raise OracleRuntimeError(f"failed to evaluate policy: {_process_error(proc)}")
        try:
            payload = json.loads(proc.stdout or "{}")
        except ValueError as e:
            raise MalformedResultError(INVALID_RESULT_MESSAGE) from e
        return extract_signals(payload)

    def close(self) -> None:
        shutil.rmtree(self.workdir, ignore_errors=True)


class OpaOracle(PolicyOracle):
    """
    Open Policy Agent CLI adapter.

    - prepare() runs `opa check` so syntax errors surface once per policy.
    - The query defaults to "data.repository" so both `allow` and `deny` rules are visible.
    """

    def __init__(self, binary: str = "opa", query: str = DEFAULT_QUERY, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.binary = binary
        self.query = query
        self.timeout = timeout

    def run(self, args: List[str], stdin: Optional[str] = None) -> subprocess.CompletedProcess:
        cmd = [self.binary] + args
        try:
            return subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise OracleTimeoutError(f"policy evaluation timed out after {self.timeout}s") from e
        except OSError as e:
            raise OracleRuntimeError(f"could not run policy engine {self.binary!r}: {e}") from e

    def prepare(self, policy: str) -> OpaPreparedPolicy:
        workdir = tempfile.mkdtemp(prefix="org-policy-")
        module_path = os.path.join(workdir, MODULE_FILENAME)
        try:
            with open(module_path, "w", encoding="utf-8") as fh:
                fh.write(policy)
            proc = self.run(["check", module_path])
        except Exception:
            shutil.rmtree(workdir, ignore_errors=True)
            raise
        if proc.returncode != 0:
            shutil.rmtree(workdir, ignore_errors=True)
            raise OracleCompileError(f"failed to prepare policy: {_process_error(proc)}")
        logger.debug("Policy module prepared at %s", module_path)
        return OpaPreparedPolicy(self, workdir, module_path)


def _process_error(proc: subprocess.CompletedProcess) -> str:
    text = (proc.stderr or proc.stdout or "").strip()
    return text or f"exit status {proc.returncode}"
