"""Standard rulesets shipped with apirules."""

from __future__ import annotations

from collections.abc import Callable

from apirules.rule_engine.assertions import (
    OperationAssertions,
    PropertyAssertions,
    RequestAssertions,
    ResponseAssertions,
)
from apirules.rule_engine.errors import RuleError
from apirules.rule_engine.models import (
    ChangeType,
    Field,
    Operation,
    RequestBody,
    ResponseBody,
    RuleContext,
    Severity,
)
from apirules.rule_engine.rules import (
    OperationRule,
    PropertyRule,
    RequestRule,
    ResponseRule,
    Ruleset,
)


def _operation_removal(assertions: OperationAssertions, _context: RuleContext) -> None:
    def check(operation: Operation) -> None:
        raise RuleError(
            f"cannot remove operation {operation.method.upper()} {operation.path}"
        )

    assertions.removed("not be removed", check)


def _request_property_required(assertions: RequestAssertions, context: RuleContext) -> None:
    def added(prop: Field) -> None:
        if prop.required:
            raise RuleError(f"cannot add required request property '{prop.key_path}'")

    def changed(before: Field, after: Field) -> None:
        if not before.required and after.required:
            raise RuleError(f"cannot make request property '{after.key_path}' required")

    if context.change_type == ChangeType.ADDED:
        return
    assertions.property.added("not add required request properties", added)
    assertions.property.changed("not make optional request properties required", changed)


def _request_array_body_removal(assertions: RequestAssertions, _context: RuleContext) -> None:
    def removed(body: RequestBody) -> None:
        if body.value.get("type") == "array":
            raise RuleError(f"cannot remove {body.content_type} request body with array schema")

    assertions.body.removed("not remove request bodies with array schema", removed)


def _response_body_removal(assertions: ResponseAssertions, _context: RuleContext) -> None:
    def removed(body: ResponseBody) -> None:
        raise RuleError(
            f"cannot remove {body.content_type} response body for status {body.status_code}"
        )

    assertions.body.removed("not remove response bodies", removed)


def _required_response_property_removal(
    assertions: PropertyAssertions, _context: RuleContext
) -> None:
    def removed(prop: Field) -> None:
        if prop.in_response and prop.required:
            raise RuleError(
                f"removing required property '{prop.key_path}' is a breaking change"
            )

    assertions.removed("not be removed from response bodies if required", removed)


def _property_type_change(assertions: PropertyAssertions, _context: RuleContext) -> None:
    def changed(before: Field, after: Field) -> None:
        if before.value.get("type") != after.value.get("type"):
            raise RuleError(
                f"type of '{after.key_path}' changed from {before.value.get('type')!r} "
                f"to {after.value.get('type')!r}"
            )

    assertions.changed("not change type", changed)


def breaking_changes() -> Ruleset:
    return Ruleset(
        name="breaking-changes",
        rules=(
            OperationRule(name="operation-removal", rule=_operation_removal),
            RequestRule(name="request-property-required", rule=_request_property_required),
            RequestRule(name="request-array-body-removal", rule=_request_array_body_removal),
            ResponseRule(name="response-body-removal", rule=_response_body_removal),
            PropertyRule(
                name="required-response-property-removal",
                rule=_required_response_property_removal,
                matches=lambda prop, _ctx: prop.in_response,
            ),
            PropertyRule(name="property-type-change", rule=_property_type_change),
        ),
    )


def _operation_metadata(assertions: OperationAssertions, _context: RuleContext) -> None:
    def has_operation_id(operation: Operation) -> None:
        if not operation.value.get("operationId"):
            raise RuleError(
                f"{operation.method.upper()} {operation.path} has no operationId"
            )

    def has_summary(operation: Operation) -> None:
        if not str(operation.value.get("summary") or "").strip():
            raise RuleError(f"{operation.method.upper()} {operation.path} has no summary")

    assertions.added("have an operationId", has_operation_id)
    assertions.added("have a summary", has_summary)


def operation_metadata() -> Ruleset:
    return Ruleset(
        name="operation-metadata",
        rules=(
            OperationRule(
                name="documented-operations",
                rule=_operation_metadata,
                severity=Severity.SHOULD,
            ),
        ),
    )


STANDARD_RULESETS: dict[str, Callable[[], Ruleset]] = {
    "breaking-changes": breaking_changes,
    "operation-metadata": operation_metadata,
}
