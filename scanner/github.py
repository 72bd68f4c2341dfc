# scanner/github.py
"""
GitHub data retrieval and AccessRecord building.

- GitHubClient wraps the REST API with httpx: bearer auth, Link-header pagination,
  bounded retries on 429/5xx.
- fetch_repository_permissions resolves collaborator roles and team attribution.
- build_access_record / collect_access_records normalize API payloads into AccessRecords.
- Per-repository lookups degrade to partial data on FetchError; only the organization
  listing failure propagates.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from models import AccessRecord, PermissionEntry
from scanner.exceptions import FetchError

logger = logging.getLogger(__name__)

PER_PAGE = 100


@dataclass
class RetryConfig:
    """Retry behavior for transient GitHub API failures."""
    max_retries: int = 3
    backoff_factor: float = 1.0
    retry_on: List[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])
    max_backoff: float = 30.0


class GitHubClient:
    """
    Minimal GitHub REST client covering the calls the scanner needs.

    Pass `transport` (e.g. httpx.MockTransport) to run against canned responses.
    """

    def __init__(self, token: str, base_url: str = "https://api.github.com", timeout: float = 30.0,
                 retry_config: Optional[RetryConfig] = None,
                 transport: Optional[httpx.BaseTransport] = None) -> None:
        self.retry_config = retry_config or RetryConfig()
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- transport -----------------------------------------------------------

    def _backoff(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after and retry_after.isdigit():
            return min(float(retry_after), self.retry_config.max_backoff)
        return min(self.retry_config.backoff_factor * (2 ** attempt), self.retry_config.max_backoff)

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        for attempt in range(self.retry_config.max_retries + 1):
            try:
                response = self._client.get(url, params=params)
            except httpx.HTTPError as e:
                raise FetchError(f"GET {url} failed: {e}") from e
            if response.status_code < 400:
                return response
            if response.status_code in self.retry_config.retry_on and attempt < self.retry_config.max_retries:
                delay = self._backoff(response, attempt)
                logger.info("GET %s returned %s, retrying in %.1fs", url, response.status_code, delay)
                time.sleep(delay)
                continue
            break
        try:
            body = response.json()
        except ValueError:
            body = response.text
        message = body.get("message", "") if isinstance(body, dict) else str(body)
        raise FetchError(f"GET {url} failed with {response.status_code}: {message}", status_code=response.status_code)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._get(path, params=params).json()

    def get_paginated(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Follow `Link: rel="next"` headers and return the flattened item list.
        """
        items: List[Dict[str, Any]] = []
        query = dict(params or {})
        query.setdefault("per_page", PER_PAGE)
        url: Optional[str] = path
        while url:
            response = self._get(url, params=query)
            items.extend(response.json() or [])
            url = response.links.get("next", {}).get("url")
            # the next URL already carries the query string
            query = None
        return items

    # --- endpoints -----------------------------------------------------------

    def list_org_repos(self, org: str) -> List[Dict[str, Any]]:
        return self.get_paginated(f"/orgs/{org}/repos", {"type": "all"})

    def get_repo(self, owner: str, name: str) -> Dict[str, Any]:
        return self.get_json(f"/repos/{owner}/{name}")

    def list_collaborators(self, owner: str, name: str) -> List[Dict[str, Any]]:
        return self.get_paginated(f"/repos/{owner}/{name}/collaborators")

    def list_repo_teams(self, owner: str, name: str) -> List[Dict[str, Any]]:
        return self.get_paginated(f"/repos/{owner}/{name}/teams")

    def list_team_members(self, org: str, team_slug: str) -> List[Dict[str, Any]]:
        return self.get_paginated(f"/orgs/{org}/teams/{team_slug}/members")

    def get_permission_level(self, owner: str, name: str, username: str) -> str:
        data = self.get_json(f"/repos/{owner}/{name}/collaborators/{username}/permission")
        return data.get("permission") or ""


# --- Record building -------------------------------------------------------

def map_team_members(client: GitHubClient, org: str, owner: str, repo_name: str) -> Dict[str, str]:
    """
    Return username -> team slug for every member of every team with access to the repository.
    A later team overwrites an earlier one for users in several teams.
    """
    try:
        teams = client.list_repo_teams(owner, repo_name)
    except FetchError as e:
        logger.warning("Error fetching teams for %s: %s", repo_name, e)
        return {}

    members_by_user: Dict[str, str] = {}
    for team in teams:
        slug = team.get("slug")
        if not slug:
            continue
        try:
            members = client.list_team_members(org, slug)
        except FetchError as e:
            logger.warning("Error fetching members for team %s: %s", slug, e)
            continue
        for member in members:
            login = member.get("login")
            if login:
                members_by_user[login] = slug
    return members_by_user


def fetch_repository_permissions(client: GitHubClient, repo: Dict[str, Any], org: str) -> List[PermissionEntry]:
    """
    Resolve each collaborator's role and whether the access comes through a team.
    Returns an empty list when collaborators cannot be listed.
    """
    owner = (repo.get("owner") or {}).get("login") or org
    repo_name = repo.get("name", "")

    try:
        collaborators = client.list_collaborators(owner, repo_name)
    except FetchError as e:
        logger.warning("Error fetching collaborators for %s: %s", repo_name, e)
        return []

    team_members = map_team_members(client, org, owner, repo_name)

    permissions: List[PermissionEntry] = []
    for collab in collaborators:
        login = collab.get("login")
        if not login:
            continue
        try:
            role = client.get_permission_level(owner, repo_name, login)
        except FetchError as e:
            logger.warning("Error fetching permissions for %s in %s: %s", login, repo_name, e)
            continue
        team = team_members.get(login)
        if team:
            permissions.append(PermissionEntry.from_team(login, role, team))
        else:
            permissions.append(PermissionEntry(username=login, role=role))
    return permissions


def build_access_record(repo: Dict[str, Any], permissions: List[PermissionEntry]) -> AccessRecord:
    """
    Normalize a GitHub repository payload plus resolved permissions into an AccessRecord.
    """
    return AccessRecord(
        name=repo.get("name") or "",
        full_name=repo.get("full_name") or "",
        owner=(repo.get("owner") or {}).get("login") or "",
        visibility=repo.get("visibility") or "",
        private=bool(repo.get("private", False)),
        description=repo.get("description") or "",
        repo_url=repo.get("html_url") or "",
        default_branch=repo.get("default_branch") or "",
        last_updated=repo.get("updated_at") or "",
        permissions=permissions,
    )


def scan_repository(client: GitHubClient, org: str, listed: Dict[str, Any]) -> AccessRecord:
    """
    Fetch repository details and permissions. Falls back to the listing payload
    when the detail request fails.
    """
    owner = (listed.get("owner") or {}).get("login") or org
    try:
        repo = client.get_repo(owner, listed.get("name", ""))
    except FetchError as e:
        logger.warning("Using listing data for %s: %s", listed.get("name"), e)
        repo = listed
    return build_access_record(repo, fetch_repository_permissions(client, repo, org))


def collect_access_records(client: GitHubClient, org: str) -> List[AccessRecord]:
    """
    List every repository in the organization (all pages) and build its AccessRecord.
    Raises FetchError if the organization listing itself fails.
    """
    logger.info("Fetching repositories for organization: %s", org)
    listed = client.list_org_repos(org)
    logger.info("Total repositories found: %d", len(listed))
    return [scan_repository(client, org, repo) for repo in listed if repo.get("name")]
