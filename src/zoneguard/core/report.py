"""Diagnostic rendering for policy violations.

Output is deterministic: violations are ordered by subject identifier, then
kind, then detail, so CI logs diff cleanly across re-runs.
"""

from __future__ import annotations

from typing import Iterable

from zoneguard.core.models import Violation


def sort_violations(violations: Iterable[Violation]) -> list[Violation]:
    """Return violations in stable report order (subject ascending)."""
    return sorted(violations, key=lambda v: (v.subject, v.kind.value, v.detail))


def format_violation(violation: Violation) -> str:
    """Render one violation as `<subject>  [<kind>]  <detail>`."""
    return f"{violation.subject}  [{violation.kind.value}]  {violation.detail}"


def format_violations(violations: Iterable[Violation]) -> list[str]:
    """Render violations as one line per offending object/grantee pair."""
    return [format_violation(v) for v in sort_violations(violations)]


def render_report(violations: Iterable[Violation], *, title: str | None = None) -> str:
    """
    Render a full plain-text report.

    Args:
        violations: Violations to render.
        title: Optional heading line.

    Returns:
        The report text; `"No violations."` when the sequence is empty.
    """
    lines = format_violations(violations)
    body = "\n".join(lines) if lines else "No violations."
    return f"{title}\n{body}" if title else body
