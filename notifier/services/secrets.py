"""Secret backends used to resolve the GitHub token at setup."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Protocol

from notifier.core.config import settings
from notifier.core.errors import SecretError

_RESOURCE_PATTERN = re.compile(r"secrets/(?P<name>[^/]+)")
_ENV_UNSAFE = re.compile(r"[^A-Za-z0-9]+")


def secret_id(resource_name: str) -> str:
    """Short secret name for a resource such as ``projects/p/secrets/gh-token/versions/latest``."""

    match = _RESOURCE_PATTERN.search(resource_name)
    return match.group("name") if match else resource_name


class SecretGetter(Protocol):
    """Abstract secret backend contract."""

    def get_secret(self, resource_name: str) -> str:  # pragma: no cover - interface
        ...


class EnvSecretGetter:
    """Reads secrets from environment variables.

    ``projects/p/secrets/gh-token/versions/latest`` is looked up as
    ``<prefix>GH_TOKEN``.
    """

    def __init__(self, prefix: str = "NOTIFIER_SECRET_", environ: dict[str, str] | None = None) -> None:
        self.prefix = prefix
        self._environ = os.environ if environ is None else environ

    def variable_name(self, resource_name: str) -> str:
        return self.prefix + _ENV_UNSAFE.sub("_", secret_id(resource_name)).strip("_").upper()

    def get_secret(self, resource_name: str) -> str:
        name = self.variable_name(resource_name)
        value = self._environ.get(name)
        if not value:
            raise SecretError(f"secret {resource_name!r} not found in environment variable {name}")
        return value


class FileSecretGetter:
    """Reads secrets mounted as files, one file per secret."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def get_secret(self, resource_name: str) -> str:
        path = self.root / secret_id(resource_name)
        try:
            value = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise SecretError(f"secret {resource_name!r} could not be read from {path}: {exc}") from exc
        if not value:
            raise SecretError(f"secret {resource_name!r} at {path} is empty")
        return value


def secret_getter_from_settings() -> SecretGetter:
    backend = settings.secret_backend.lower().strip()
    if backend == "file":
        return FileSecretGetter(settings.secret_dir)
    if backend == "env":
        return EnvSecretGetter(settings.secret_env_prefix)
    raise SecretError(f"Unsupported secret backend '{settings.secret_backend}'")
