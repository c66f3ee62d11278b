"""Construction of the authenticated GitHub client."""

from __future__ import annotations

from github import Github
from github.Auth import Token

from notifier.core.config import settings

USER_AGENT = "GCB-Notifier/0.1 (http)"


def build_client(token: str, *, base_url: str | None = None, timeout: int | None = None) -> Github:
    """Return a PyGithub client with retries disabled.

    Redelivery of failed notifications is left to the push subscription.
    """

    return Github(
        auth=Token(token),
        base_url=(base_url or settings.github_api_url).rstrip("/"),
        timeout=timeout or settings.github_timeout_seconds,
        user_agent=USER_AGENT,
        retry=None,
        lazy=True,
    )
