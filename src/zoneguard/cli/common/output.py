"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from zoneguard.cli.common.tui_style import QUESTIONARY_STYLE_SELECT
from zoneguard.core.report import sort_violations

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q_try(self, fn, *args, **kwargs):
        """Call questionary prompts and drop unsupported kwargs on older versions."""
        try:
            return fn(*args, **kwargs)
        except TypeError:
            for k in ("pointer", "checked_icon", "unchecked_icon"):
                kwargs.pop(k, None)
            return fn(*args, **kwargs)

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts to be ZONEGUARD consistent."""
        return f"[ZONEGUARD] {message}"

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(escape(msg), spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {escape(msg)}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {escape(msg)}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {escape(str(v))}")

    def select_many(self, message: str, choices: list[Any]) -> list[Any]:
        """
        Prompt the user to select multiple items from a list.

        Choices may be plain strings or `questionary.Choice` objects.
        Returns a list of selected values.
        """
        if not choices:
            return []

        prompt = self._q_try(
            questionary.checkbox,
            self._q(message),
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
            qmark="✦",
            instruction="Use ↑/↓, space, a (all), i (invert), enter",
            pointer="❯",
            checked_icon="▣",
            unchecked_icon="▢",
        )
        picked = prompt.ask()
        return list(picked or [])

    def rules_table(self, rules: Iterable[Any], title: str = "Rules") -> None:
        """
        Expects objects with .kind .subject_type .requires_roles .description
        (like zoneguard.core.rules.PolicyRule)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Rule", style="ok", no_wrap=True)
        t.add_column("Subject", style="meta")
        t.add_column("Roles", style="meta")
        t.add_column("Description")

        for r in rules:
            t.add_row(
                r.kind.value,
                r.subject_type.value,
                "required" if r.requires_roles else "",
                r.description,
            )

        console.print(t)

    def violations_table(
        self, violations: Iterable[Any], title: str = "Violations"
    ) -> None:
        """
        Render violations in report order.

        Expects objects with .subject .kind .detail (zoneguard.core.models.Violation)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Subject", style="err")
        t.add_column("Kind", style="meta", no_wrap=True)
        t.add_column("Detail")

        for v in sort_violations(violations):
            t.add_row(escape(v.subject), v.kind.value, escape(v.detail))

        console.print(t)

    def outcomes_table(self, outcomes: Iterable[Any], title: str = "Checks") -> None:
        """
        Expects objects with .invocation .violations .error .passed
        (e.g. zoneguard.core.suite.CheckOutcome)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Rule", style="ok", no_wrap=True)
        t.add_column("Subject")
        t.add_column("Result")

        for o in outcomes:
            if o.error:
                result = f"[err]ERROR[/] {escape(o.error)}"
            elif o.violations:
                result = f"[err]FAIL[/] {len(o.violations)} violation(s)"
            else:
                result = "[ok]PASS[/]"
            t.add_row(o.invocation.kind.value, escape(o.invocation.subject), result)

        console.print(t)


out = Out()
