from __future__ import annotations

from pathlib import Path

import pytest

from notifier.core.config import Settings
from notifier.core.errors import SecretError
from notifier.services.secrets import (
    EnvSecretGetter,
    FileSecretGetter,
    secret_getter_from_settings,
    secret_id,
)


def test_secret_id_extracts_short_name():
    assert secret_id("projects/acme/secrets/github-token/versions/latest") == "github-token"
    assert secret_id("mysekrit") == "mysekrit"


def test_env_secret_getter_reads_sanitised_variable():
    getter = EnvSecretGetter(environ={"NOTIFIER_SECRET_GITHUB_TOKEN": "ghtABC="})
    assert getter.variable_name("projects/acme/secrets/github-token/versions/3") == "NOTIFIER_SECRET_GITHUB_TOKEN"
    assert getter.get_secret("projects/acme/secrets/github-token/versions/3") == "ghtABC="


def test_env_secret_getter_missing_variable():
    with pytest.raises(SecretError, match="NOTIFIER_SECRET_MYSEKRIT"):
        EnvSecretGetter(environ={}).get_secret("mysekrit")


def test_file_secret_getter(tmp_path: Path):
    (tmp_path / "github-token").write_text("ghtABC=\n", encoding="utf-8")
    (tmp_path / "blank").write_text("  \n", encoding="utf-8")
    getter = FileSecretGetter(tmp_path)

    assert getter.get_secret("projects/acme/secrets/github-token/versions/latest") == "ghtABC="
    with pytest.raises(SecretError, match="empty"):
        getter.get_secret("blank")
    with pytest.raises(SecretError):
        getter.get_secret("absent")


def test_secret_getter_from_settings(monkeypatch, tmp_path: Path):
    monkeypatch.setattr("notifier.services.secrets.settings", Settings(secret_backend="file", secret_dir=str(tmp_path)))
    getter = secret_getter_from_settings()
    assert isinstance(getter, FileSecretGetter)
    assert getter.root == tmp_path

    monkeypatch.setattr("notifier.services.secrets.settings", Settings(secret_backend="env", secret_env_prefix="GH_"))
    getter = secret_getter_from_settings()
    assert isinstance(getter, EnvSecretGetter)
    assert getter.prefix == "GH_"

    monkeypatch.setattr("notifier.services.secrets.settings", Settings(secret_backend="vault"))
    with pytest.raises(SecretError, match="vault"):
        secret_getter_from_settings()
