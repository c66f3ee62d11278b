"""GitHub issues notifier: setup validation and the per-build pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping
from urllib.parse import urlsplit

from github import Github

from notifier.core.errors import ConfigError, DeliveryError, TemplateError
from notifier.core.github import build_client
from notifier.models.build import Build, IssueRef, ResolvedIdentity, TemplateView
from notifier.schemas.config import NotifierConfig, TemplateSpec
from notifier.services.committer import CommitterResolver, get_github_repo
from notifier.services.dispatcher import IssueDispatcher
from notifier.services.filtering import EventFilter, compile_filter
from notifier.services.secrets import SecretGetter
from notifier.services.templating import DEFAULT_ISSUE_TEMPLATE, IssueTemplate, add_utm_params, compile_template
from notifier.telemetry import record_notification

_logger = logging.getLogger(__name__)

GITHUB_REPO_KEY = "githubRepo"
GITHUB_TOKEN_KEY = "githubToken"
UPDATE_EXISTING_KEY = "updateExisting"


class GitHubIssuesNotifier:
    """Files a GitHub issue for every build that passes the configured filter."""

    def __init__(self, client_factory: Callable[[str], Github] = build_client) -> None:
        self._client_factory = client_factory
        self.filter: EventFilter | None = None
        self.template: IssueTemplate | None = None
        self.params: dict[str, str] = {}
        self.github_repo = ""
        self.github_token = ""
        self.update_existing = False
        self.resolver: CommitterResolver | None = None
        self.dispatcher: IssueDispatcher | None = None

    def set_up(self, config: NotifierConfig, secret_getter: SecretGetter) -> None:
        """Validate ``config`` and resolve everything needed to send notifications.

        Raises ConfigError naming the failed rule, or the secret backend's
        SecretError unchanged.
        """

        notification = config.spec.notification
        if not notification.filter.strip():
            raise ConfigError("filter", "missing filter")
        event_filter = compile_filter(notification.filter)
        template = self._load_template(notification.template)

        delivery = notification.delivery
        repo = delivery.get(GITHUB_REPO_KEY)
        if not isinstance(repo, str) or not repo.strip():
            raise ConfigError("delivery repo", f"missing delivery repo: {GITHUB_REPO_KEY!r} must be a non-empty string")

        token_ref = delivery.get(GITHUB_TOKEN_KEY)
        secret_ref = token_ref.get("secretRef") if isinstance(token_ref, Mapping) else None
        if not isinstance(secret_ref, str) or not secret_ref:
            raise ConfigError("secret", f"missing secret: {GITHUB_TOKEN_KEY}.secretRef is required")
        resource_name = next(
            (secret.resource_name for secret in config.spec.secrets if secret.local_name == secret_ref),
            None,
        )
        if not resource_name:
            raise ConfigError("secret", f"missing secret: no secret named {secret_ref!r} in spec.secrets")
        update_existing = delivery.get(UPDATE_EXISTING_KEY, False)
        if not isinstance(update_existing, bool):
            raise ConfigError("delivery", f"{UPDATE_EXISTING_KEY!r} must be true or false, got {update_existing!r}")
        token = secret_getter.get_secret(resource_name)

        client = self._client_factory(token)
        self.filter = event_filter
        self.template = template
        self.params = dict(notification.params)
        self.github_repo = repo.strip()
        self.github_token = token
        self.update_existing = update_existing
        self.resolver = CommitterResolver(client)
        self.dispatcher = IssueDispatcher(client)
        _logger.info("GitHub issues notifier set up for %s with filter %r", self.github_repo, notification.filter)

    @staticmethod
    def _load_template(spec: TemplateSpec | None) -> IssueTemplate:
        if spec is None:
            source = DEFAULT_ISSUE_TEMPLATE
        elif spec.type.lower() != "golang":
            raise ConfigError("template", f"unsupported template type {spec.type!r}")
        elif spec.content:
            source = spec.content
        elif spec.uri:
            parts = urlsplit(spec.uri)
            if parts.scheme not in ("", "file"):
                raise ConfigError("template", f"unsupported template URI {spec.uri!r}")
            path = Path(parts.path if parts.scheme else spec.uri)
            try:
                source = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigError("template", f"cannot read template {path}: {exc}") from exc
        else:
            source = DEFAULT_ISSUE_TEMPLATE
        try:
            return compile_template(source)
        except TemplateError as exc:
            raise ConfigError("template", f"invalid template: {exc}") from exc

    def matches(self, build: Build) -> bool:
        if self.filter is None:
            raise RuntimeError("Notifier is not set up. Call set_up() first.")
        return self.filter.matches(build)

    def resolve_committer(self, build: Build, repo: str) -> ResolvedIdentity | None:
        if self.resolver is None:
            raise RuntimeError("Notifier is not set up. Call set_up() first.")
        return self.resolver.resolve(build, repo)

    def send_notification(self, build: Build) -> IssueRef | None:
        """Run the pipeline for one build; ``None`` means the filter did not match."""

        if self.template is None or self.dispatcher is None:
            raise RuntimeError("Notifier is not set up. Call set_up() first.")
        if not self.matches(build):
            _logger.debug("Build %s (%s) did not match the filter", build.id, build.status.value)
            record_notification("filtered")
            return None

        event = build.model_copy(deep=True)
        event.log_url = add_utm_params(event.log_url)
        repo = get_github_repo(event) or self.github_repo
        self.resolve_committer(event, repo)

        view = TemplateView(build=event, params=dict(self.params))
        try:
            payload = self.template.render(view)
            issue = self.dispatcher.send(repo, payload, update_existing=self.update_existing)
        except (TemplateError, DeliveryError):
            record_notification("failed")
            raise
        record_notification("updated" if issue.updated else "created")
        _logger.info("Notified %s#%s for build %s", repo, issue.number, build.id)
        return issue
