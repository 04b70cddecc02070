"""Error types raised by the policy verification engine."""

from __future__ import annotations

from typing import Iterable

from zoneguard.core.models import Violation
from zoneguard.core.report import format_violations


class CatalogError(RuntimeError):
    """Raised when an introspection query cannot be completed.

    Covers connectivity, permission and malformed-input failures (such as an
    unknown zone or role). Always fatal to the current check.
    """


class PolicyFailure(AssertionError):
    """Raised when the catalog was read successfully but violates the policy.

    Carries every violation found by the failing check, never only the first.
    """

    def __init__(self, rule: str, subject: str, violations: Iterable[Violation]):
        self.rule = rule
        self.subject = subject
        self.violations: tuple[Violation, ...] = tuple(violations)
        lines = "\n".join(f"  {line}" for line in format_violations(self.violations))
        super().__init__(
            f"{rule} failed for '{subject}' "
            f"({len(self.violations)} violation(s)):\n{lines}"
        )


class SearchPathError(ValueError):
    """Base class for failures decoding a role's search_path setting."""


class SearchPathNotSet(SearchPathError):
    """Raised when a role has no explicit search_path configured."""


class SearchPathMalformed(SearchPathError):
    """Raised when a search_path setting exists but cannot be decoded."""


class PolicyFileError(ValueError):
    """Raised when a declarative policy document is invalid."""
