"""Application dependency wiring."""

from __future__ import annotations

from functools import lru_cache

from notifier.core.config import settings
from notifier.schemas.config import load_config
from notifier.services.notifier import GitHubIssuesNotifier
from notifier.services.secrets import SecretGetter, secret_getter_from_settings


@lru_cache
def get_secret_getter() -> SecretGetter:
    return secret_getter_from_settings()


@lru_cache
def get_notifier() -> GitHubIssuesNotifier:
    notifier = GitHubIssuesNotifier()
    notifier.set_up(load_config(settings.config_path), get_secret_getter())
    return notifier
