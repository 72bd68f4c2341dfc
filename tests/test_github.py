# tests/test_github.py
"""
GitHub client and AccessRecord building against canned API responses (httpx.MockTransport).
"""

import httpx
import pytest

from scanner.exceptions import FetchError
from scanner.github import GitHubClient, RetryConfig, collect_access_records, fetch_repository_permissions

API = "https://api.github.test"


def repo_payload(name, visibility="private", private=True):
    return {
        "name": name,
        "full_name": f"acme-corp/{name}",
        "owner": {"login": "acme-corp"},
        "visibility": visibility,
        "private": private,
        "description": f"{name} service",
        "html_url": f"https://github.com/acme-corp/{name}",
        "default_branch": "main",
        "updated_at": "2026-10-01T09:30:00Z",
    }


class FakeGitHub:
    """Routes requests by path; `failures` maps a path to an HTTP status to return instead."""

    def __init__(self, routes, failures=None):
        self.routes = routes
        self.failures = failures or {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"message": "Server Error"})
        if path not in self.routes:
            return httpx.Response(404, json={"message": "Not Found"})
        body = self.routes[path]
        if callable(body):
            return body(request)
        return httpx.Response(200, json=body)


def make_client(handler, retries=0):
    return GitHubClient("test-token", base_url=API, transport=httpx.MockTransport(handler),
                        retry_config=RetryConfig(max_retries=retries, backoff_factor=0))


def org_routes():
    return {
        "/orgs/acme-corp/repos": [repo_payload("api"), repo_payload("docs", "public", False)],
        "/repos/acme-corp/api": repo_payload("api"),
        "/repos/acme-corp/docs": repo_payload("docs", "public", False),
        "/repos/acme-corp/api/collaborators": [{"login": "alice"}, {"login": "bob"}],
        "/repos/acme-corp/api/teams": [{"slug": "platform"}],
        "/orgs/acme-corp/teams/platform/members": [{"login": "alice"}],
        "/repos/acme-corp/api/collaborators/alice/permission": {"permission": "admin"},
        "/repos/acme-corp/api/collaborators/bob/permission": {"permission": "write"},
        "/repos/acme-corp/docs/collaborators": [{"login": "carol"}],
        "/repos/acme-corp/docs/teams": [],
        "/repos/acme-corp/docs/collaborators/carol/permission": {"permission": "read"},
    }


def test_collect_access_records_builds_records():
    handler = FakeGitHub(org_routes())
    with make_client(handler) as client:
        records = collect_access_records(client, "acme-corp")

    assert [r.full_name for r in records] == ["acme-corp/api", "acme-corp/docs"]
    api = records[0]
    assert api.owner == "acme-corp"
    assert api.visibility == "private" and api.private is True
    assert api.repo_url == "https://github.com/acme-corp/api"
    assert api.last_updated == "2026-10-01T09:30:00Z"
    assert [p.to_dict() for p in api.permissions] == [
        {"username": "alice", "role": "admin", "source": "team:platform"},
        {"username": "bob", "role": "write", "source": "user"},
    ]
    assert records[1].permissions[0].source == "user"
    assert handler.requests[0].headers["Authorization"] == "Bearer test-token"


def test_org_listing_follows_pagination():
    def first_page(request):
        if request.url.params.get("page") == "2":
            return httpx.Response(200, json=[repo_payload("docs", "public", False)])
        return httpx.Response(
            200,
            json=[repo_payload("api")],
            headers={"Link": f'<{API}/orgs/acme-corp/repos?type=all&per_page=100&page=2>; rel="next"'},
        )

    routes = org_routes()
    routes["/orgs/acme-corp/repos"] = first_page
    with make_client(FakeGitHub(routes)) as client:
        repos = client.list_org_repos("acme-corp")
    assert [r["name"] for r in repos] == ["api", "docs"]


def test_org_listing_failure_raises():
    handler = FakeGitHub(org_routes(), failures={"/orgs/acme-corp/repos": 500})
    with make_client(handler) as client:
        with pytest.raises(FetchError) as exc:
            collect_access_records(client, "acme-corp")
    assert exc.value.status_code == 500


def test_collaborator_failure_gives_empty_permissions():
    handler = FakeGitHub(org_routes(), failures={"/repos/acme-corp/api/collaborators": 403})
    with make_client(handler) as client:
        records = collect_access_records(client, "acme-corp")
    assert records[0].permissions == []
    assert len(records) == 2


def test_team_failure_falls_back_to_user_source():
    handler = FakeGitHub(org_routes(), failures={"/repos/acme-corp/api/teams": 500})
    with make_client(handler) as client:
        perms = fetch_repository_permissions(client, repo_payload("api"), "acme-corp")
    assert [(p.username, p.source) for p in perms] == [("alice", "user"), ("bob", "user")]


def test_team_member_failure_skips_that_team():
    routes = org_routes()
    routes["/repos/acme-corp/api/teams"] = [{"slug": "broken"}, {"slug": "platform"}]
    handler = FakeGitHub(routes, failures={"/orgs/acme-corp/teams/broken/members": 404})
    with make_client(handler) as client:
        perms = fetch_repository_permissions(client, repo_payload("api"), "acme-corp")
    assert perms[0].source == "team:platform"


def test_later_team_wins_for_users_in_several_teams():
    routes = org_routes()
    routes["/repos/acme-corp/api/teams"] = [{"slug": "platform"}, {"slug": "security"}]
    routes["/orgs/acme-corp/teams/security/members"] = [{"login": "alice"}]
    with make_client(FakeGitHub(routes)) as client:
        perms = fetch_repository_permissions(client, repo_payload("api"), "acme-corp")
    assert perms[0].source == "team:security"


def test_permission_lookup_failure_skips_collaborator():
    handler = FakeGitHub(org_routes(), failures={"/repos/acme-corp/api/collaborators/bob/permission": 404})
    with make_client(handler) as client:
        perms = fetch_repository_permissions(client, repo_payload("api"), "acme-corp")
    assert [p.username for p in perms] == ["alice"]


def test_detail_failure_uses_listing_payload():
    handler = FakeGitHub(org_routes(), failures={"/repos/acme-corp/docs": 502})
    with make_client(handler) as client:
        records = collect_access_records(client, "acme-corp")
    assert records[1].full_name == "acme-corp/docs"
    assert records[1].visibility == "public"


def test_retries_transient_errors():
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503, json={"message": "Service Unavailable"})
        return httpx.Response(200, json=repo_payload("api"))

    with make_client(FakeGitHub({"/repos/acme-corp/api": flaky}), retries=3) as client:
        repo = client.get_repo("acme-corp", "api")
    assert repo["name"] == "api"
    assert len(attempts) == 3


def test_gives_up_after_max_retries():
    handler = FakeGitHub({}, failures={"/repos/acme-corp/api": 503})
    with make_client(handler, retries=2) as client:
        with pytest.raises(FetchError):
            client.get_repo("acme-corp", "api")
    assert len(handler.requests) == 3


def test_transport_errors_become_fetch_errors():
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    with make_client(boom) as client:
        with pytest.raises(FetchError):
            client.get_repo("acme-corp", "api")
