from __future__ import annotations

from types import SimpleNamespace

import pytest
from github import GithubException
from requests import ConnectionError as RequestsConnectionError

from notifier.models.build import (
    AccountKind,
    BranchRef,
    Build,
    TagRef,
    UnknownRef,
    ref_kind_from_substitutions,
)
from notifier.services.committer import CommitterResolver, get_github_repo


class StubCommit:
    def __init__(self, author_name: str | None):
        self.commit = SimpleNamespace(author=SimpleNamespace(name=author_name))


class StubRelease:
    def __init__(self, login: str | None, account_type: str = "User"):
        self.author = SimpleNamespace(login=login, type=account_type)


def _resolver(monkeypatch, *, commit=None, release=None, calls=None) -> CommitterResolver:
    calls = calls if calls is not None else []

    def fetch_commit(self, repo, ref):
        calls.append(("commit", repo, ref))
        if isinstance(commit, Exception):
            raise commit
        return commit

    def fetch_release(self, repo, tag):
        calls.append(("release", repo, tag))
        if isinstance(release, Exception):
            raise release
        return release

    monkeypatch.setattr(CommitterResolver, "_fetch_commit", fetch_commit)
    monkeypatch.setattr(CommitterResolver, "_fetch_release", fetch_release)
    return CommitterResolver(client=None)


def test_branch_build_is_attributed_to_commit_author(monkeypatch):
    calls = []
    resolver = _resolver(monkeypatch, commit=StubCommit("human-committer"), calls=calls)
    build = Build(substitutions={"REF_NAME": "main", "REPO_FULL_NAME": "kramphub/repo", "BRANCH_NAME": "main"})

    identity = resolver.resolve(build, get_github_repo(build))

    assert identity.login == "human-committer"
    assert identity.kind == AccountKind.UNKNOWN
    assert build.substitutions["GH_COMMITTER_LOGIN"] == "human-committer"
    assert "GH_TAGGER_LOGIN" not in build.substitutions
    assert calls == [("commit", "kramphub/repo", "main")]


def test_tag_build_is_attributed_to_release_author(monkeypatch):
    calls = []
    resolver = _resolver(monkeypatch, release=StubRelease("human-tagger", "User"), calls=calls)
    build = Build(substitutions={"REF_NAME": "tag", "REPO_FULL_NAME": "kramphub/repo", "TAG_NAME": "main"})

    identity = resolver.resolve(build, get_github_repo(build))

    assert identity.login == "human-tagger"
    assert identity.kind == AccountKind.USER
    assert build.substitutions["GH_COMMITTER_LOGIN"] == "human-tagger"
    assert build.substitutions["GH_TAGGER_LOGIN"] == "human-tagger"
    assert build.substitutions["GH_COMMITTER_TYPE"] == "User"
    assert calls == [("release", "kramphub/repo", "main")]


def test_bot_tagger_kind(monkeypatch):
    resolver = _resolver(monkeypatch, release=StubRelease("release-bot[bot]", "Bot"))
    build = Build(substitutions={"REF_NAME": "v1.2.0", "TAG_NAME": "v1.2.0"})
    identity = resolver.resolve(build, "acme/repo")
    assert identity.kind == AccountKind.BOT
    assert build.substitutions["GH_COMMITTER_TYPE"] == "Bot"


@pytest.mark.parametrize(
    "substitutions",
    [
        {},
        {"REPO_FULL_NAME": "acme/repo"},
        {"REF_NAME": "main", "REPO_FULL_NAME": "acme/repo"},
    ],
)
def test_unknown_ref_makes_no_call(monkeypatch, substitutions):
    calls = []
    resolver = _resolver(monkeypatch, commit=StubCommit("x"), release=StubRelease("y"), calls=calls)
    build = Build(substitutions=dict(substitutions))
    assert resolver.resolve(build, "acme/repo") is None
    assert calls == []
    assert build.substitutions == substitutions


def test_missing_repository_makes_no_call(monkeypatch):
    calls = []
    resolver = _resolver(monkeypatch, commit=StubCommit("x"), calls=calls)
    build = Build(substitutions={"REF_NAME": "main", "BRANCH_NAME": "main"})
    assert resolver.resolve(build, "") is None
    assert calls == []


@pytest.mark.parametrize(
    "failure",
    [
        GithubException(404, {"message": "Not Found"}, None),
        GithubException(502, None, None),
        RequestsConnectionError("connection refused"),
        ValueError("Expecting value: line 1 column 1"),
        StubCommit(None),
        SimpleNamespace(commit=None),
    ],
    ids=["not-found", "server-error", "network", "bad-json", "no-author-name", "malformed"],
)
def test_commit_lookup_failures_leave_attribution_empty(monkeypatch, failure):
    resolver = _resolver(monkeypatch, commit=failure)
    build = Build(id="b-1", substitutions={"REF_NAME": "main", "BRANCH_NAME": "main"})
    assert resolver.resolve(build, "acme/repo") is None
    assert "GH_COMMITTER_LOGIN" not in build.substitutions
    assert "GH_COMMITTER_TYPE" not in build.substitutions


def test_release_lookup_failure_leaves_attribution_empty(monkeypatch, caplog):
    resolver = _resolver(monkeypatch, release=GithubException(404, {"message": "Not Found"}, None))
    build = Build(id="b-2", substitutions={"REF_NAME": "v2", "TAG_NAME": "v2"})
    assert resolver.resolve(build, "acme/repo") is None
    assert "GH_TAGGER_LOGIN" not in build.substitutions
    assert "b-2" in caplog.text


def test_ref_name_match_takes_precedence():
    assert ref_kind_from_substitutions({"REF_NAME": "v1", "TAG_NAME": "v1", "BRANCH_NAME": "main"}) == TagRef("v1")
    assert ref_kind_from_substitutions({"REF_NAME": "main", "TAG_NAME": "v1", "BRANCH_NAME": "main"}) == BranchRef("main")
    assert ref_kind_from_substitutions({"REF_NAME": "other", "TAG_NAME": "v1", "BRANCH_NAME": "main"}) == TagRef("v1")
    assert ref_kind_from_substitutions({"REF_NAME": "other", "BRANCH_NAME": "main"}) == BranchRef("main")
    assert ref_kind_from_substitutions({"REF_NAME": "other"}) == UnknownRef()
    assert ref_kind_from_substitutions(None) == UnknownRef()


@pytest.mark.parametrize(
    "substitutions, expected",
    [({"REPO_FULL_NAME": "somename/somerepo"}, "somename/somerepo"), ({}, "")],
    ids=["REPO_FULL_NAME is set", "REPO_FULL_NAME is not set"],
)
def test_get_github_repo(substitutions, expected):
    assert get_github_repo(Build(substitutions=substitutions)) == expected
