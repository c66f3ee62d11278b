from hypothesis import given, strategies as st

from notifier.core.errors import ConfigError
from notifier.models.build import Build, BuildStatus, TemplateView
from notifier.schemas.config import NotifierConfig
from notifier.services.filtering import compile_filter
from notifier.services.notifier import GitHubIssuesNotifier
from notifier.services.templating import DEFAULT_ISSUE_TEMPLATE, compile_template

_deliveries = st.sampled_from(
    [
        {},
        {"githubRepo": "acme/repo"},
        {"githubToken": {"secretRef": "mytoken"}},
        {"githubRepo": "acme/repo", "githubToken": {"secretRef": "mytoken"}},
    ]
)
_secrets = st.sampled_from([[], [{"localName": "mytoken", "resourceName": "mysekrit"}]])


class _Secrets:
    def get_secret(self, resource_name: str) -> str:
        return "ghtABC="


@given(
    prefix=st.text(alphabet="abcdefghij._ ", max_size=8),
    bad=st.sampled_from(["#", "$", "@", "-", "?", "~", ";"]),
    suffix=st.text(max_size=8),
    delivery=_deliveries,
    secrets=_secrets,
)
def test_invalid_filters_fail_on_the_filter_rule(prefix, bad, suffix, delivery, secrets):
    config = NotifierConfig.model_validate(
        {"spec": {"notification": {"filter": f"build.id == 'x' && {prefix}{bad}{suffix}", "delivery": delivery}, "secrets": secrets}}
    )
    notifier = GitHubIssuesNotifier(client_factory=lambda token: None)
    try:
        notifier.set_up(config, _Secrets())
    except ConfigError as exc:
        assert exc.rule == "filter"
    else:
        raise AssertionError("set_up accepted an invalid filter")


@given(status=st.sampled_from(list(BuildStatus)), chosen=st.sets(st.sampled_from(list(BuildStatus)), min_size=1))
def test_status_membership_matches_python_semantics(status, chosen):
    expression = "build.status in [" + ", ".join(f"Build.Status.{member.name}" for member in chosen) + "]"
    assert compile_filter(expression).matches(Build(status=status)) is (status in chosen)


@given(
    project_id=st.text(max_size=20),
    trigger=st.text(max_size=20),
    substitutions=st.dictionaries(st.text(min_size=1, max_size=10), st.text(max_size=10), max_size=4),
)
def test_default_template_renders_deterministically(project_id, trigger, substitutions):
    template = compile_template(DEFAULT_ISSUE_TEMPLATE)
    view = TemplateView(
        build=Build(project_id=project_id, build_trigger_id=trigger, status=BuildStatus.SUCCESS, substitutions=substitutions)
    )
    first = template.render(view)
    assert first == template.render(view)
    assert project_id in first.title
    assert "SUCCESS" in first.body
