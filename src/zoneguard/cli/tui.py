"""Terminal UI utilities for picking policy checks."""

from __future__ import annotations

import questionary

from zoneguard.cli.common.output import out
from zoneguard.core.suite import CheckInvocation

_MAX_SUBJECT_WIDTH = 48


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _check_choice_title(invocation: CheckInvocation, *, rule_width: int) -> str:
    """Format one check as `<rule>  <subject>` with an aligned subject column."""
    subject = _truncate(invocation.subject, _MAX_SUBJECT_WIDTH)
    return f"{invocation.kind.value.ljust(rule_width)}  {subject}"


def select_checks(invocations: list[CheckInvocation]) -> list[CheckInvocation]:
    """Display a checkbox prompt to select checks from a list.

    Args:
        invocations: Checks loaded from a policy file.

    Returns:
        The selected checks in their original order, or an empty list.
    """
    rule_width = max((len(i.kind.value) for i in invocations), default=0)
    choices = [
        questionary.Choice(
            title=_check_choice_title(invocation, rule_width=rule_width),
            value=index,
            checked=True,
        )
        for index, invocation in enumerate(invocations)
    ]
    picked = set(out.select_many("Select checks to run:", choices))
    return [inv for index, inv in enumerate(invocations) if index in picked]
