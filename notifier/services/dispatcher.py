"""Delivery of rendered issues to GitHub."""

from __future__ import annotations

import logging
import time

from github import Github, GithubException
from requests import RequestException

from notifier.core.errors import DeliveryError
from notifier.models.build import IssuePayload, IssueRef
from notifier.telemetry import record_dispatch_duration

_logger = logging.getLogger(__name__)


class IssueDispatcher:
    """Creates, or finds and updates, the issue for a build notification."""

    def __init__(self, client: Github) -> None:
        self._client = client

    def send(self, repo: str, payload: IssuePayload, *, update_existing: bool = False) -> IssueRef:
        started = time.perf_counter()
        try:
            gh_repo = self._get_repo(repo)
            if update_existing:
                existing = self._find_open_issue(gh_repo, payload.title)
                if existing is not None:
                    existing.edit(body=payload.body)
                    _logger.info("Updated issue %s#%s", repo, existing.number)
                    return IssueRef(number=existing.number, url=existing.html_url or "", updated=True)
            issue = gh_repo.create_issue(title=payload.title, body=payload.body)
        except GithubException as exc:
            raise DeliveryError(
                f"GitHub rejected the issue for {repo} with status {exc.status}", status_code=exc.status
            ) from exc
        except RequestException as exc:
            raise DeliveryError(f"Failed to reach GitHub for {repo}: {exc}") from exc
        finally:
            record_dispatch_duration(time.perf_counter() - started)
        _logger.info("Created issue %s#%s", repo, issue.number)
        return IssueRef(number=issue.number, url=issue.html_url or "")

    def _get_repo(self, repo_full_name: str):
        return self._client.get_repo(repo_full_name)

    @staticmethod
    def _find_open_issue(gh_repo, title: str):
        for issue in gh_repo.get_issues(state="open"):
            if issue.pull_request is None and issue.title == title:
                return issue
        return None
