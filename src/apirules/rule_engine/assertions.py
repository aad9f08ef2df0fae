"""Assertion DSL, collector and lifecycle executor.

A rule body never runs checks itself: it registers lifecycle-tagged
predicates on the collector it receives. The runner then replays them
against the before- or after-instance of each entity.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from apirules.rule_engine.errors import AssertionRegistrationError, EngineError, RuleError
from apirules.rule_engine.models import (
    AssertionResult,
    AssertionType,
    ChangeType,
    Fact,
    Field,
    Operation,
    RequestBody,
    ResponseBody,
    RuleTarget,
    Severity,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AssertionRegistration:
    type: AssertionType
    condition: str
    predicate: Callable[..., object]
    severity: Severity | None = None


def _error_message(exc: Exception) -> str:
    if isinstance(exc, RuleError):
        return exc.message
    return str(exc) or type(exc).__name__


class LifecycleAssertions(Generic[T]):
    """Collects assertions for one entity kind, keyed by lifecycle kind."""

    def __init__(self) -> None:
        self._registrations: dict[AssertionType, list[AssertionRegistration]] = {
            kind: [] for kind in AssertionType
        }
        self._sealed = False

    def requirement(
        self,
        condition: str,
        predicate: Callable[[T], object],
        *,
        severity: Severity | None = None,
    ) -> None:
        """Check every instance, whatever its classification."""
        self._register(AssertionType.REQUIREMENT, condition, predicate, severity)

    def added(
        self,
        condition: str,
        predicate: Callable[[T], object],
        *,
        severity: Severity | None = None,
    ) -> None:
        self._register(AssertionType.ADDED, condition, predicate, severity)

    def changed(
        self,
        condition: str,
        predicate: Callable[[T, T], object],
        *,
        severity: Severity | None = None,
    ) -> None:
        """Check changed instances; the predicate receives (before, after)."""
        self._register(AssertionType.CHANGED, condition, predicate, severity)

    def removed(
        self,
        condition: str,
        predicate: Callable[[T], object],
        *,
        severity: Severity | None = None,
    ) -> None:
        """Check removed instances; the predicate receives the before-instance."""
        self._register(AssertionType.REMOVED, condition, predicate, severity)

    def _register(
        self,
        kind: AssertionType,
        condition: str,
        predicate: Callable[..., object],
        severity: Severity | None,
    ) -> None:
        if self._sealed:
            raise AssertionRegistrationError(
                f"'{condition}' registered after the rule body returned"
            )
        self._registrations[kind].append(
            AssertionRegistration(
                type=kind,
                condition=condition,
                predicate=predicate,
                severity=Severity(severity) if severity is not None else None,
            )
        )

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def registrations(self, kind: AssertionType) -> list[AssertionRegistration]:
        return list(self._registrations[kind])

    def __len__(self) -> int:
        return sum(len(regs) for regs in self._registrations.values())

    def run_before(self, before: T, fact: Fact) -> list[AssertionResult]:
        """Run requirements, plus removals when the entity was removed."""
        results = self._run(AssertionType.REQUIREMENT, (before,), fact)
        if fact.change_type == ChangeType.REMOVED:
            results.extend(self._run(AssertionType.REMOVED, (before,), fact))
        return results

    def run_after(self, before: T | None, after: T, fact: Fact) -> list[AssertionResult]:
        """Run requirements, plus additions or changes by classification."""
        results = self._run(AssertionType.REQUIREMENT, (after,), fact)
        if fact.change_type == ChangeType.ADDED:
            results.extend(self._run(AssertionType.ADDED, (after,), fact))
        elif fact.change_type == ChangeType.CHANGED and before is not None:
            results.extend(self._run(AssertionType.CHANGED, (before, after), fact))
        return results

    def _run(
        self,
        kind: AssertionType,
        args: tuple[Any, ...],
        fact: Fact,
    ) -> list[AssertionResult]:
        results: list[AssertionResult] = []
        for registration in self._registrations[kind]:
            try:
                registration.predicate(*args)
            except EngineError:
                raise
            except Exception as exc:  # noqa: BLE001
                if not isinstance(exc, RuleError | AssertionError):
                    logger.debug(
                        f"Assertion '{registration.condition}' raised {type(exc).__name__}"
                    )
                results.append(
                    AssertionResult(
                        type=kind,
                        condition=registration.condition,
                        passed=False,
                        error=_error_message(exc),
                        severity=registration.severity,
                        change=fact,
                    )
                )
            else:
                results.append(
                    AssertionResult(
                        type=kind,
                        condition=registration.condition,
                        passed=True,
                        severity=registration.severity,
                        change=fact,
                    )
                )
        return results


class OperationAssertions(LifecycleAssertions[Operation]):
    """Assertions handed to operation rule bodies."""


class PropertyAssertions(LifecycleAssertions[Field]):
    """Assertions handed to property rule bodies."""


class RequestAssertions:
    """Assertions handed to request rule bodies: ``body`` and ``property``."""

    def __init__(self) -> None:
        self.body: LifecycleAssertions[RequestBody] = LifecycleAssertions()
        self.property: LifecycleAssertions[Field] = LifecycleAssertions()

    def seal(self) -> None:
        self.body.seal()
        self.property.seal()


class ResponseAssertions:
    """Assertions handed to response rule bodies: ``body`` and ``property``."""

    def __init__(self) -> None:
        self.body: LifecycleAssertions[ResponseBody] = LifecycleAssertions()
        self.property: LifecycleAssertions[Field] = LifecycleAssertions()

    def seal(self) -> None:
        self.body.seal()
        self.property.seal()


Assertions = OperationAssertions | PropertyAssertions | RequestAssertions | ResponseAssertions

_FACTORIES: dict[RuleTarget, Callable[[], Assertions]] = {
    RuleTarget.OPERATION: OperationAssertions,
    RuleTarget.REQUEST: RequestAssertions,
    RuleTarget.RESPONSE: ResponseAssertions,
    RuleTarget.PROPERTY: PropertyAssertions,
}


def create_assertions(target: RuleTarget) -> Assertions:
    """Fresh, unsealed collector for a rule of the given target kind."""
    return _FACTORIES[target]()
