"""
Central configuration and tunable constants.

- Defaults live here; environment variables (optionally from a .env file) override them.
- load_settings() validates everything once at process start and raises ConfigurationError;
  nothing below the CLI ever exits the process over missing configuration.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from scanner.exceptions import ConfigurationError

DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_OPA_BINARY = "opa"
DEFAULT_OPA_TIMEOUT = 5.0

# Service defaults: same port the scan service has always listened on
DEFAULT_SERVER_HOST = "0.0.0.0"
DEFAULT_SERVER_PORT = 50051
DEFAULT_SERVER_URL = "http://localhost:50051"
DEFAULT_REQUEST_TIMEOUT = 3.0

DEFAULT_POLICY_DIR = "policies"
DEFAULT_REPORT_DIR = "reports"


@dataclass
class Settings:
    github_token: str = ""
    org_name: str = ""
    github_api_url: str = DEFAULT_GITHUB_API_URL
    opa_binary: str = DEFAULT_OPA_BINARY
    opa_timeout: float = DEFAULT_OPA_TIMEOUT
    server_host: str = DEFAULT_SERVER_HOST
    server_port: int = DEFAULT_SERVER_PORT
    server_url: str = DEFAULT_SERVER_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


def _number(env: Mapping[str, str], key: str, default, cast):
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def load_settings(require_github: bool = False, env: Optional[Mapping[str, str]] = None,
                  dotenv_path: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    - When `env` is None, a .env file is loaded first (missing file is fine) and os.environ is read.
    - require_github=True demands GITHUB_TOKEN and ORG_NAME (live scans and the service).
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    settings = Settings(
        github_token=env.get("GITHUB_TOKEN", ""),
        org_name=env.get("ORG_NAME", ""),
        github_api_url=env.get("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL,
        opa_binary=env.get("OPA_BINARY") or DEFAULT_OPA_BINARY,
        opa_timeout=_number(env, "OPA_TIMEOUT", DEFAULT_OPA_TIMEOUT, float),
        server_host=env.get("SCANNER_HOST") or DEFAULT_SERVER_HOST,
        server_port=_number(env, "SCANNER_PORT", DEFAULT_SERVER_PORT, int),
        server_url=env.get("SCANNER_URL") or DEFAULT_SERVER_URL,
        request_timeout=_number(env, "SCANNER_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float),
    )

    if require_github:
        missing = [k for k, v in (("GITHUB_TOKEN", settings.github_token), ("ORG_NAME", settings.org_name)) if not v]
        if missing:
            raise ConfigurationError(f"missing required configuration: {', '.join(missing)} (set it in .env)")
    return settings
