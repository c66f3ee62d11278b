"""Attribution of builds to the GitHub account behind their ref."""

from __future__ import annotations

import logging

from github import Github, GithubException
from github.GithubException import BadAttributeException
from requests import RequestException

from notifier.core.errors import CommitterResolutionError
from notifier.models.build import (
    COMMITTER_LOGIN_KEY,
    COMMITTER_TYPE_KEY,
    TAGGER_LOGIN_KEY,
    AccountKind,
    Build,
    RefKind,
    ResolvedIdentity,
    TagRef,
    UnknownRef,
    ref_kind_from_substitutions,
)
from notifier.telemetry import record_attribution_failure

_logger = logging.getLogger(__name__)


def get_github_repo(build: Build) -> str:
    """Return the ``owner/name`` repository a build was triggered from, or ``""``."""

    return (build.substitutions or {}).get("REPO_FULL_NAME", "")


def _require_login(value: object, what: str) -> str:
    if not isinstance(value, str) or not value:
        raise CommitterResolutionError(f"{what} missing from GitHub response")
    return value


class CommitterResolver:
    """Resolve the committer of a branch build or the tagger of a tag build.

    Lookups are best effort: any failure is logged and reported as ``None``
    so that the notification still goes out without attribution.
    """

    def __init__(self, client: Github) -> None:
        self._client = client

    def resolve(self, build: Build, repo: str) -> ResolvedIdentity | None:
        ref = ref_kind_from_substitutions(build.substitutions)
        if isinstance(ref, UnknownRef) or not repo:
            return None
        try:
            identity = self._lookup(repo, ref)
        except CommitterResolutionError as exc:
            kind = "tag" if isinstance(ref, TagRef) else "branch"
            _logger.warning("Could not attribute build %s (%s %s in %s): %s", build.id, kind, ref.name, repo, exc)
            record_attribution_failure(kind)
            return None

        build.substitutions[COMMITTER_LOGIN_KEY] = identity.login
        build.substitutions[COMMITTER_TYPE_KEY] = identity.kind.value
        if isinstance(ref, TagRef):
            build.substitutions[TAGGER_LOGIN_KEY] = identity.login
        return identity

    def _lookup(self, repo: str, ref: RefKind) -> ResolvedIdentity:
        try:
            if isinstance(ref, TagRef):
                release = self._fetch_release(repo, ref.name)
                author = release.author
                return ResolvedIdentity(
                    login=_require_login(getattr(author, "login", None), "release author login"),
                    kind=AccountKind.parse(getattr(author, "type", None)),
                )
            commit = self._fetch_commit(repo, ref.name)
            return ResolvedIdentity(login=_require_login(commit.commit.author.name, "commit author name"))
        except GithubException as exc:
            raise CommitterResolutionError(f"GitHub returned status {exc.status}") from exc
        except (RequestException, BadAttributeException, AttributeError, ValueError) as exc:
            raise CommitterResolutionError(f"unusable GitHub response: {exc}") from exc

    def _fetch_commit(self, repo_full_name: str, ref: str):
        return self._client.get_repo(repo_full_name).get_commit(ref)

    def _fetch_release(self, repo_full_name: str, tag: str):
        return self._client.get_repo(repo_full_name).get_release(tag)
