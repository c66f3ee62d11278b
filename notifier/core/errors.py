"""Error taxonomy for the notification pipeline."""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for every error raised by the notifier."""


class ConfigError(NotifierError):
    """Raised at setup when the notifier configuration is invalid.

    ``rule`` names the validation rule that failed (``filter``,
    ``delivery repo``, ``secret``, ``template`` or ``config file``).
    """

    def __init__(self, rule: str, message: str) -> None:
        self.rule = rule
        super().__init__(f"{rule}: {message}")


class FilterSyntaxError(ConfigError):
    """Raised when a filter expression cannot be compiled."""

    def __init__(self, message: str, fragment: str, position: int) -> None:
        self.fragment = fragment
        self.position = position
        super().__init__("filter", f"invalid filter: {message} at offset {position}: {fragment!r}")


class SecretError(NotifierError):
    """Raised when the secret backend cannot supply a secret."""


class FilterEvaluationError(NotifierError):
    """Raised when a compiled filter cannot be evaluated against a build."""


class CommitterResolutionError(NotifierError):
    """Raised when the committer or tagger of a build cannot be looked up."""


class TemplateError(NotifierError):
    """Raised when an issue template fails to parse or render."""


class DeliveryError(NotifierError):
    """Raised when GitHub rejects or never receives an issue request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
