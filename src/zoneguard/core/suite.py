"""Execution of many check invocations as one gate run.

This module runs a list of checks either sequentially on one inspector or
concurrently with a bounded thread pool. Concurrency is explicit: each
worker acquires its own inspector through a caller-supplied scoped factory,
because one database connection cannot serve concurrent queries.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, ContextManager, Iterable

from zoneguard.core.engine import AssertionEngine
from zoneguard.core.errors import CatalogError
from zoneguard.core.models import Violation
from zoneguard.core.rules import CatalogInspector, RuleKind, RuleParams, RuleRegistry

log = logging.getLogger(__name__)

InspectorFactory = Callable[[], ContextManager[CatalogInspector]]


@dataclass(frozen=True)
class CheckInvocation:
    """
    One requested check.

    Attributes:
        kind: Rule to run.
        subject: Zone or role name.
        params: Expectations passed to the rule.
    """

    kind: RuleKind
    subject: str
    params: RuleParams = field(default_factory=RuleParams)

    @property
    def label(self) -> str:
        return f"{self.kind.value} {self.subject}"


@dataclass(frozen=True)
class CheckOutcome:
    """Result of one check invocation within a run."""

    invocation: CheckInvocation
    violations: tuple[Violation, ...] = ()
    error: str | None = None

    @property
    def passed(self) -> bool:
        return not self.violations and self.error is None


def run_check(engine: AssertionEngine, invocation: CheckInvocation) -> CheckOutcome:
    """Run one check, recording a catalog failure on the outcome."""
    try:
        violations = engine.evaluate(
            invocation.kind, invocation.subject, invocation.params
        )
    except CatalogError as exc:
        log.warning("Check %s errored: %s", invocation.label, exc)
        return CheckOutcome(invocation=invocation, error=str(exc))
    return CheckOutcome(invocation=invocation, violations=tuple(violations))


def run_checks(
    engine: AssertionEngine, invocations: Iterable[CheckInvocation]
) -> list[CheckOutcome]:
    """Run checks one after another on a single engine."""
    return [run_check(engine, invocation) for invocation in invocations]


def run_checks_parallel(
    open_inspector: InspectorFactory,
    invocations: list[CheckInvocation],
    max_parallel: int,
    *,
    registry: RuleRegistry | None = None,
) -> list[CheckOutcome]:
    """
    Run checks concurrently.

    Args:
        open_inspector: Zero-argument callable returning a context manager
                        that yields an inspector and releases it on exit.
        invocations: Checks to run.
        max_parallel: Maximum number of checks in flight.
        registry: Rule registry (defaults to the built-in one).

    Returns:
        One CheckOutcome per invocation, in invocation order.
    """
    if max_parallel < 1:
        raise ValueError("max_parallel must be >= 1")
    if not invocations:
        return []

    def _worker(invocation: CheckInvocation) -> CheckOutcome:
        try:
            with open_inspector() as inspector:
                return run_check(AssertionEngine(inspector, registry), invocation)
        except CatalogError as exc:
            log.warning("Check %s could not start: %s", invocation.label, exc)
            return CheckOutcome(invocation=invocation, error=str(exc))

    with ThreadPoolExecutor(max_workers=max_parallel) as pool:
        futures = [pool.submit(_worker, invocation) for invocation in invocations]
        return [f.result() for f in futures]
