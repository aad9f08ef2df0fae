"""Turn raw assertion outcomes into reportable Results."""

from __future__ import annotations

from apirules.rule_engine.models import (
    AssertionResult,
    AssertionType,
    Field,
    Location,
    Operation,
    RequestBody,
    ResponseBody,
    Result,
    Severity,
)
from apirules.rule_engine.rules import FlatRule


def lifecycle_label(kind: AssertionType) -> str:
    if kind == AssertionType.REQUIREMENT:
        return "requirement for"
    return str(kind)


def _operation_text(location: Location) -> str:
    conceptual = location.conceptual_location
    return f"{conceptual.method.upper()} {conceptual.path}"


def _body_text(location: Location) -> str:
    conceptual = location.conceptual_location
    if conceptual.in_request is not None:
        return f"request body: {conceptual.in_request.content_type}"
    if conceptual.in_response is not None:
        response = conceptual.in_response
        return f"response body: {response.status_code} {response.content_type}"
    return "body"


def describe(entity: Operation | RequestBody | ResponseBody | Field) -> str:
    """Render an entity's location without the lifecycle label."""
    location = entity.location
    operation = _operation_text(location)
    if isinstance(entity, Operation):
        return f"operation: {operation}"
    if isinstance(entity, RequestBody):
        return f"request with content-type: {entity.content_type} in operation: {operation}"
    if isinstance(entity, ResponseBody):
        return (
            f"response status code: {entity.status_code} with content-type: "
            f"{entity.content_type} in operation: {operation}"
        )
    trail = "/".join(location.conceptual_location.json_schema_trail)
    return f"property: {trail} {_body_text(location)} in operation: {operation}"


def create_result(
    assertion: AssertionResult,
    entity: Operation | RequestBody | ResponseBody | Field,
    rule: FlatRule,
) -> Result:
    severity = assertion.severity or rule.severity
    return Result(
        where=f"{lifecycle_label(assertion.type)} {describe(entity)}",
        is_must=severity == Severity.MUST,
        is_should=severity == Severity.SHOULD,
        name=rule.name,
        change=assertion.change,
        condition=assertion.condition,
        passed=assertion.passed,
        error=assertion.error,
        docs_link=rule.docs_link,
    )
