"""Assertion engine: runs one rule invocation against the live catalog.

The engine holds no state beyond the inspector and registry it was built
with. Every call reads a fresh catalog snapshot, so checks may run in any
order, repeatedly, or concurrently on separate inspectors.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from zoneguard.core.errors import CatalogError, PolicyFailure
from zoneguard.core.models import Violation
from zoneguard.core.report import sort_violations
from zoneguard.core.rules import (
    DEFAULT_REGISTRY,
    CatalogInspector,
    PolicyRule,
    RuleKind,
    RuleParams,
    RuleRegistry,
    SubjectType,
)

log = logging.getLogger(__name__)


class AssertionEngine:
    """Orchestrates catalog inspection and rule evaluation."""

    def __init__(
        self,
        inspector: CatalogInspector,
        registry: RuleRegistry | None = None,
    ) -> None:
        self.inspector = inspector
        self.registry = registry or DEFAULT_REGISTRY

    def _ensure_subject_exists(self, rule: PolicyRule, subject: str) -> None:
        if rule.subject_type is SubjectType.ROLE:
            found = self.inspector.role_exists(subject)
        else:
            found = self.inspector.zone_exists(subject)
        if not found:
            raise CatalogError(
                f"{rule.subject_type.value.capitalize()} '{subject}' does not exist"
            )

    def evaluate(
        self,
        kind: RuleKind | str,
        subject: str,
        params: RuleParams | None = None,
    ) -> list[Violation]:
        """
        Run one rule and return every violation it finds.

        Args:
            kind: Rule to run (RuleKind or its stable name).
            subject: Zone or role name, depending on the rule.
            params: Caller expectations (expected roles, search-path zones).

        Returns:
            Violations in report order; empty when the check passes.

        Raises:
            ValueError: If the rule is unknown or params are incomplete.
            CatalogError: If the subject does not exist or a query fails.
        """
        rule = self.registry.get(kind)
        params = params or RuleParams()
        rule.validate_params(params)
        self._ensure_subject_exists(rule, subject)

        snapshot = rule.collect(self.inspector, subject)
        violations = sort_violations(rule.evaluate(subject, snapshot, params))
        log.info(
            "Check %s on %s: %s",
            rule.kind.value,
            subject,
            f"{len(violations)} violation(s)" if violations else "passed",
        )
        return violations

    def check(
        self,
        kind: RuleKind | str,
        subject: str,
        roles: Iterable[str] | None = None,
        *,
        params: RuleParams | None = None,
    ) -> None:
        """
        Run one rule and raise if the catalog violates it.

        `roles` is a shorthand for `params.roles`.

        Raises:
            PolicyFailure: Carrying all violations, if any were found.
            ValueError: If the rule is unknown or params are incomplete.
            CatalogError: If the subject does not exist or a query fails.
        """
        params = params or RuleParams()
        if roles is not None:
            params = replace(params, roles=tuple(roles))
        rule = self.registry.get(kind)
        violations = self.evaluate(rule.kind, subject, params)
        if violations:
            raise PolicyFailure(rule.kind.value, subject, violations)
