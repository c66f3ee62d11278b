"""Domain models for build events and the issues they produce."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

COMMITTER_LOGIN_KEY = "GH_COMMITTER_LOGIN"
COMMITTER_TYPE_KEY = "GH_COMMITTER_TYPE"
TAGGER_LOGIN_KEY = "GH_TAGGER_LOGIN"


class BuildStatus(str, Enum):
    """Cloud Build outcome states."""

    STATUS_UNKNOWN = "STATUS_UNKNOWN"
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    WORKING = "WORKING"
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class AccountKind(str, Enum):
    """GitHub account type of a resolved committer or tagger."""

    USER = "User"
    BOT = "Bot"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> "AccountKind":
        for kind in cls:
            if value and kind.value.lower() == value.lower():
                return kind
        return cls.UNKNOWN


class Build(BaseModel):
    """Cloud Build resource as published on the build notification topic."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = ""
    project_id: str = ""
    status: BuildStatus = BuildStatus.STATUS_UNKNOWN
    log_url: str = ""
    build_trigger_id: str = ""
    substitutions: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    create_time: Optional[datetime] = None
    finish_time: Optional[datetime] = None


class TemplateView(BaseModel):
    """Values exposed to issue templates as ``.Build`` and ``.Params``."""

    build: Build
    params: dict[str, str] = Field(default_factory=dict)


class IssuePayload(BaseModel):
    """Rendered issue title and body."""

    title: str
    body: str


class IssueRef(BaseModel):
    """Reference to the issue created or updated for a build."""

    number: int
    url: str = ""
    updated: bool = False


@dataclass(frozen=True)
class ResolvedIdentity:
    login: str
    kind: AccountKind = AccountKind.UNKNOWN


@dataclass(frozen=True)
class BranchRef:
    name: str


@dataclass(frozen=True)
class TagRef:
    name: str


@dataclass(frozen=True)
class UnknownRef:
    pass


RefKind = Union[BranchRef, TagRef, UnknownRef]


def ref_kind_from_substitutions(substitutions: dict[str, str] | None) -> RefKind:
    """Classify the ref a build ran against.

    A name that equals ``REF_NAME`` wins; a tag wins over a branch when
    neither matches.
    """

    if not substitutions:
        return UnknownRef()
    ref_name = substitutions.get("REF_NAME", "")
    tag_name = substitutions.get("TAG_NAME", "")
    branch_name = substitutions.get("BRANCH_NAME", "")
    if tag_name and tag_name == ref_name:
        return TagRef(tag_name)
    if branch_name and branch_name == ref_name:
        return BranchRef(branch_name)
    if tag_name:
        return TagRef(tag_name)
    if branch_name:
        return BranchRef(branch_name)
    return UnknownRef()
