"""Schema for the notifier configuration document."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from notifier.core.errors import ConfigError


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SecretRef(_CamelModel):
    """Binds a name used inside the config to a secret backend resource."""

    local_name: str
    resource_name: str


class TemplateSpec(_CamelModel):
    """Location of the issue template."""

    type: str = "golang"
    uri: Optional[str] = None
    content: Optional[str] = None


class Notification(_CamelModel):
    filter: str = ""
    delivery: dict[str, Any] = Field(default_factory=dict)
    template: Optional[TemplateSpec] = None
    params: dict[str, str] = Field(default_factory=dict)


class Spec(_CamelModel):
    notification: Notification = Field(default_factory=Notification)
    secrets: list[SecretRef] = Field(default_factory=list)


class Metadata(_CamelModel):
    name: str = ""


class NotifierConfig(_CamelModel):
    """Top-level notifier configuration, as written in YAML."""

    api_version: str = "cloud-build-notifiers/v1"
    kind: str = "GitHubIssuesNotifier"
    metadata: Metadata = Field(default_factory=Metadata)
    spec: Spec = Field(default_factory=Spec)


def load_config(path: str | Path) -> NotifierConfig:
    """Read and validate a notifier config file."""

    config_path = Path(path)
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError("config file", f"cannot read {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError("config file", f"failed to parse YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("config file", f"{config_path} does not contain a mapping")
    try:
        return NotifierConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError("config file", str(exc)) from exc
