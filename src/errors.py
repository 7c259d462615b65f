"""Exceptions raised by shotdiff, each carrying context and a recovery hint."""

from __future__ import annotations


class ShotdiffError(Exception):
    """Base exception for all shotdiff errors."""

    default_hint = ""

    def __init__(
        self,
        message: str,
        recovery_hint: str = "",
        context: dict | None = None,
    ):
        self.message = message
        self.recovery_hint = recovery_hint or self.default_hint
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [self.message]
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[{context_str}]")
        if self.recovery_hint:
            parts.append(f"Hint: {self.recovery_hint}")
        return " ".join(parts)


class ConfigError(ShotdiffError):
    """Raised when the configuration file is missing or invalid."""

    default_hint = "Run 'shotdiff init' to create a default config."


class CaptureFailure(ShotdiffError):
    """Raised inside the capture provider for a single screenshot.

    Never escapes a run: the provider turns it into a ``Failed`` outcome.
    """


class MalformedManifest(ShotdiffError):
    """Raised when a golden manifest has duplicate or unreadable entries."""

    default_hint = "Fix the golden file by hand or restore it from version control."


class InvariantViolation(ShotdiffError):
    """Raised when classifier input is structurally inconsistent. Not retryable."""


class PersistenceFailure(ShotdiffError):
    """Raised when uploading approved images or saving the golden file fails."""

    default_hint = "Nothing was committed. Retry the whole approval."


class StaleApproval(ShotdiffError):
    """Raised when the golden file changed since the run being approved was classified."""

    default_hint = "Run 'shotdiff run' again and approve the new report."
