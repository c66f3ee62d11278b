from __future__ import annotations

from types import SimpleNamespace

import pytest
from github import GithubException
from requests import Timeout

from notifier.core.errors import DeliveryError
from notifier.models.build import IssuePayload
from notifier.services.dispatcher import IssueDispatcher


class StubIssue:
    def __init__(self, number: int, title: str, body: str = "", pull_request=None):
        self.number = number
        self.title = title
        self.body = body
        self.pull_request = pull_request
        self.html_url = f"https://github.com/acme/repo/issues/{number}"

    def edit(self, body: str) -> None:
        self.body = body


class StubRepo:
    def __init__(self, issues=None, create_error: Exception | None = None):
        self.issues = list(issues or [])
        self.created = []
        self.create_error = create_error

    def create_issue(self, title: str, body: str):
        if self.create_error:
            raise self.create_error
        issue = StubIssue(100 + len(self.created), title, body)
        self.created.append(issue)
        return issue

    def get_issues(self, state: str):
        assert state == "open"
        return iter(self.issues)


def _dispatcher(monkeypatch, repo: StubRepo, requested: list | None = None) -> IssueDispatcher:
    requested = requested if requested is not None else []

    def get_repo(self, full_name):
        requested.append(full_name)
        return repo

    monkeypatch.setattr(IssueDispatcher, "_get_repo", get_repo)
    return IssueDispatcher(client=None)


PAYLOAD = IssuePayload(title="Cloud Build [my-project-id]: FAILURE", body="status: **FAILURE**")


def test_send_creates_issue(monkeypatch):
    repo = StubRepo()
    requested = []
    issue = _dispatcher(monkeypatch, repo, requested).send("acme/repo", PAYLOAD)

    assert requested == ["acme/repo"]
    assert issue.number == 100
    assert issue.updated is False
    assert issue.url.endswith("/issues/100")
    assert repo.created[0].title == PAYLOAD.title
    assert repo.created[0].body == PAYLOAD.body


def test_send_updates_matching_open_issue(monkeypatch):
    pull = StubIssue(7, PAYLOAD.title, "old", pull_request=SimpleNamespace(url="pr"))
    existing = StubIssue(9, PAYLOAD.title, "old")
    repo = StubRepo(issues=[StubIssue(3, "unrelated"), pull, existing])

    issue = _dispatcher(monkeypatch, repo).send("acme/repo", PAYLOAD, update_existing=True)

    assert issue.number == 9
    assert issue.updated is True
    assert existing.body == PAYLOAD.body
    assert pull.body == "old"
    assert repo.created == []


def test_send_creates_when_no_issue_matches(monkeypatch):
    repo = StubRepo(issues=[StubIssue(3, "unrelated")])
    issue = _dispatcher(monkeypatch, repo).send("acme/repo", PAYLOAD, update_existing=True)
    assert issue.updated is False
    assert len(repo.created) == 1


def test_rejected_request_raises_delivery_error(monkeypatch):
    repo = StubRepo(create_error=GithubException(410, {"message": "Issues are disabled for this repo"}, None))
    with pytest.raises(DeliveryError) as excinfo:
        _dispatcher(monkeypatch, repo).send("acme/repo", PAYLOAD)
    assert excinfo.value.status_code == 410


def test_transport_failure_raises_delivery_error(monkeypatch):
    repo = StubRepo(create_error=Timeout("read timed out"))
    with pytest.raises(DeliveryError) as excinfo:
        _dispatcher(monkeypatch, repo).send("acme/repo", PAYLOAD)
    assert excinfo.value.status_code is None
    assert "acme/repo" in str(excinfo.value)
