# service.py
"""
Policy scan service.

- POST /v1/policy/scan takes {"policy": "<rego>"} and returns every repository of the
  configured organization with its scan_result label, plus a top-level error string.
- Organization data is fetched fresh for each request; nothing is kept between calls.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from config import Settings
from models import ScanResponse
from scanner.aggregate import evaluate_records
from scanner.exceptions import FetchError
from scanner.github import GitHubClient, collect_access_records
from scanner.oracle import OpaOracle, PolicyOracle

logger = logging.getLogger(__name__)


class PolicyRequest(BaseModel):
    policy: str


class RepositoryPermissions(BaseModel):
    username: str
    role: str
    source: str


class RepositoryInfo(BaseModel):
    name: str
    full_name: str
    owner: str
    visibility: str = ""
    private: bool = False
    description: str = ""
    repo_url: str = ""
    default_branch: str = ""
    last_updated: str = ""
    permissions: List[RepositoryPermissions] = Field(default_factory=list)
    scan_result: str = ""


class PolicyResponse(BaseModel):
    repositories: List[RepositoryInfo] = Field(default_factory=list)
    error: str = ""


def scan_organization(client: GitHubClient, org: str, policy: str, oracle: PolicyOracle) -> ScanResponse:
    """
    Fetch the organization snapshot and evaluate one policy against it.
    Listing failures and policy-level errors are reported in `error`.
    """
    try:
        records = collect_access_records(client, org)
    except FetchError as e:
        logger.error("Error fetching repositories for %s: %s", org, e)
        return ScanResponse(error=f"Error fetching repositories for {org}: {e}")

    policy_error = evaluate_records(policy, records, oracle)
    logger.info("Scan complete. Returning %d results.", len(records))
    return ScanResponse(repositories=records, error=policy_error or "")


def create_app(settings: Settings, github: Optional[GitHubClient] = None,
               oracle: Optional[PolicyOracle] = None) -> FastAPI:
    """
    Build the service. `github` and `oracle` default to live collaborators built from settings;
    a GitHub client built here is closed on shutdown.
    """
    owns_github = github is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # an injected client belongs to the caller
        if owns_github:
            app.state.github.close()

    app = FastAPI(title="Organization Policy Scanner", version="1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.github = github or GitHubClient(settings.github_token, base_url=settings.github_api_url)
    app.state.oracle = oracle or OpaOracle(binary=settings.opa_binary, timeout=settings.opa_timeout)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok", "organization": settings.org_name}

    @app.post("/v1/policy/scan", response_model=PolicyResponse)
    def scan_repositories(request: PolicyRequest) -> PolicyResponse:
        if not request.policy.strip():
            raise HTTPException(status_code=400, detail="Policy must not be empty")
        logger.info("Received request to scan repositories of %s", settings.org_name)
        result = scan_organization(app.state.github, settings.org_name, request.policy, app.state.oracle)
        return PolicyResponse(**result.to_dict())

    return app


def run(settings: Settings) -> None:
    import uvicorn

    logger.info("Policy scan service for %s on port %s", settings.org_name, settings.server_port)
    uvicorn.run(create_app(settings), host=settings.server_host, port=settings.server_port)
