"""RuleRunner: evaluate rules against every fact of a document pair."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from apirules.rule_engine.assertions import (
    LifecycleAssertions,
    PropertyAssertions,
    RequestAssertions,
    ResponseAssertions,
    create_assertions,
)
from apirules.rule_engine.errors import EngineError, MissingLocationError
from apirules.rule_engine.facts import (
    BodyNode,
    EndpointNode,
    Side,
    build_endpoints,
    operation_for,
    request_for,
    response_for,
)
from apirules.rule_engine.models import (
    Fact,
    Operation,
    RequestBody,
    ResponseBody,
    Result,
    RuleContext,
    RuleTarget,
)
from apirules.rule_engine.results import create_result
from apirules.rule_engine.rules import FlatRule, Rule, Ruleset, flatten

logger = logging.getLogger(__name__)

BodyEntity = RequestBody | ResponseBody


def _require_location(fact: Fact, what: str) -> Fact:
    if getattr(fact, "location", None) is None:
        raise MissingLocationError(f"{what} has no location")
    return fact


def _field_fact(body: BodyNode, key_path: str) -> Fact:
    node = body.fields.get(key_path)
    if node is None:
        raise EngineError(f"no fact for property '{key_path}' in {body.content_type} body")
    return _require_location(node.fact, f"property '{key_path}'")


def _body_entity(body: BodyNode, side: Side) -> BodyEntity | None:
    if body.status_code is None:
        return request_for(body, side)
    return response_for(body, side)


class RuleRunner:
    """Evaluates a fixed rule plan against document pairs.

    Holds no state between calls: every ``run`` builds its own facts and
    collectors.
    """

    def __init__(self, rules: Iterable[Rule | Ruleset]) -> None:
        self._rules = flatten(rules)

    @property
    def rules(self) -> list[FlatRule]:
        return list(self._rules)

    def run(
        self,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
        custom_context: Mapping[str, Any] | None = None,
    ) -> list[Result]:
        """Diff two documents and evaluate every rule against the facts."""
        return self.run_with_facts(build_endpoints(before, after), custom_context)

    def run_with_facts(
        self,
        endpoints: Iterable[EndpointNode],
        custom_context: Mapping[str, Any] | None = None,
    ) -> list[Result]:
        custom = MappingProxyType(dict(custom_context or {}))
        results: list[Result] = []
        endpoint_count = 0
        for endpoint in endpoints:
            endpoint_count += 1
            fact = _require_location(endpoint.fact, f"{endpoint.method} {endpoint.path}")
            logger.debug(
                f"Evaluating {len(self._rules)} rules on "
                f"{endpoint.method.upper()} {endpoint.path} ({fact.change_type})"
            )
            before_op = operation_for(endpoint, "before")
            after_op = operation_for(endpoint, "after")
            before_ctx = RuleContext(operation=before_op, custom=custom) if before_op else None
            after_ctx = (
                RuleContext(operation=after_op, custom=custom, change_type=fact.change_type)
                if after_op
                else None
            )
            for target in RuleTarget:
                for rule in self._rules:
                    if rule.target != target:
                        continue
                    results.extend(
                        self._run_rule(rule, endpoint, before_op, after_op, before_ctx, after_ctx)
                    )

        failed = sum(1 for r in results if not r.passed)
        logger.debug(
            f"Rule run finished: {endpoint_count} endpoints, {len(results)} results, {failed} failed"
        )
        return results

    def _run_rule(
        self,
        rule: FlatRule,
        endpoint: EndpointNode,
        before_op: Operation | None,
        after_op: Operation | None,
        before_ctx: RuleContext | None,
        after_ctx: RuleContext | None,
    ) -> list[Result]:
        results: list[Result] = []
        if before_op is not None and before_ctx is not None:
            results.extend(self._run_pass(rule, endpoint, "before", before_ctx))
        if after_op is not None and after_ctx is not None:
            results.extend(self._run_pass(rule, endpoint, "after", after_ctx))
        return results

    def _run_pass(
        self,
        rule: FlatRule,
        endpoint: EndpointNode,
        side: Side,
        context: RuleContext,
    ) -> list[Result]:
        assertions = create_assertions(rule.target)
        rule.invoke(assertions, context)
        assertions.seal()

        if isinstance(assertions, RequestAssertions):
            return self._run_bodies(
                rule, assertions, list(endpoint.request.values()), side, context
            )
        if isinstance(assertions, ResponseAssertions):
            return self._run_bodies(
                rule, assertions, list(endpoint.response_bodies()), side, context
            )
        if isinstance(assertions, PropertyAssertions):
            return self._run_properties(rule, assertions, endpoint, side, context)
        return self._run_operation(rule, assertions, endpoint, side, context)

    def _run_operation(
        self,
        rule: FlatRule,
        assertions: LifecycleAssertions[Operation],
        endpoint: EndpointNode,
        side: Side,
        context: RuleContext,
    ) -> list[Result]:
        operation = context.operation
        if not rule.applies_to(operation, context):
            return []
        if side == "before":
            outcomes = assertions.run_before(operation, endpoint.fact)
        else:
            before_op = operation_for(endpoint, "before")
            outcomes = assertions.run_after(before_op, operation, endpoint.fact)
        return [create_result(outcome, operation, rule) for outcome in outcomes]

    def _run_bodies(
        self,
        rule: FlatRule,
        assertions: RequestAssertions | ResponseAssertions,
        bodies: list[BodyNode],
        side: Side,
        context: RuleContext,
    ) -> list[Result]:
        results: list[Result] = []
        for body in bodies:
            fact = _require_location(body.fact, f"{body.content_type} body")
            entity = _body_entity(body, side)
            if entity is None or not rule.applies_to(entity, context):
                continue
            before_entity = _body_entity(body, "before") if side == "after" else None
            if side == "before":
                outcomes = assertions.body.run_before(entity, fact)
            else:
                outcomes = assertions.body.run_after(before_entity, entity, fact)
            results.extend(create_result(outcome, entity, rule) for outcome in outcomes)
            results.extend(
                self._run_fields(
                    rule, assertions.property, body, entity, before_entity, side, lambda _: True
                )
            )
        return results

    def _run_properties(
        self,
        rule: FlatRule,
        assertions: PropertyAssertions,
        endpoint: EndpointNode,
        side: Side,
        context: RuleContext,
    ) -> list[Result]:
        results: list[Result] = []
        for body in [*endpoint.request.values(), *endpoint.response_bodies()]:
            _require_location(body.fact, f"{body.content_type} body")
            entity = _body_entity(body, side)
            if entity is None:
                continue
            results.extend(
                self._run_fields(
                    rule,
                    assertions,
                    body,
                    entity,
                    _body_entity(body, "before") if side == "after" else None,
                    side,
                    lambda field: rule.applies_to(field, context),
                )
            )
        return results

    def _run_fields(
        self,
        rule: FlatRule,
        assertions: LifecycleAssertions[Any],
        body: BodyNode,
        entity: BodyEntity,
        before_entity: BodyEntity | None,
        side: Side,
        applies: Callable[[Any], bool],
    ) -> list[Result]:
        results: list[Result] = []
        for key_path, field in entity.properties.items():
            if not applies(field):
                continue
            fact = _field_fact(body, key_path)
            if side == "before":
                outcomes = assertions.run_before(field, fact)
            else:
                before_field = (
                    before_entity.properties.get(key_path) if before_entity is not None else None
                )
                outcomes = assertions.run_after(before_field, field, fact)
            results.extend(create_result(outcome, field, rule) for outcome in outcomes)
        return results


def run(
    *,
    rules: Iterable[Rule | Ruleset],
    before_document: Mapping[str, Any] | None,
    after_document: Mapping[str, Any] | None,
    custom_context: Mapping[str, Any] | None = None,
) -> list[Result]:
    """Evaluate ``rules`` against a document pair in one call."""
    return RuleRunner(rules).run(before_document, after_document, custom_context)
