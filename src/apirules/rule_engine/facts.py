"""Fact tree: endpoints, bodies and properties of a before/after document pair.

Documents are OpenAPI 3 dicts that were already parsed and dereferenced.
Every node is classified once with :func:`classify`; entities for a single
side are rebuilt on demand by the ``*_for`` constructors.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from apirules.rule_engine.diff import classify
from apirules.rule_engine.errors import EngineError
from apirules.rule_engine.models import (
    ConceptualLocation,
    Fact,
    Field,
    Location,
    Operation,
    RequestBody,
    RequestLocation,
    ResponseBody,
    ResponseLocation,
)

Side = Literal["before", "after"]

HTTP_METHODS: tuple[str, ...] = (
    "get",
    "put",
    "post",
    "delete",
    "options",
    "head",
    "patch",
    "trace",
)

ITEMS_SEGMENT = "items"

_NESTED_SCHEMA_KEYS = ("properties", ITEMS_SEGMENT)


@dataclass
class FieldNode:
    key: str
    key_path: str
    fact: Fact


@dataclass
class BodyNode:
    content_type: str
    fact: Fact
    status_code: str | None = None
    fields: dict[str, FieldNode] = field(default_factory=dict)


@dataclass
class EndpointNode:
    method: str
    path: str
    fact: Fact
    request: dict[str, BodyNode] = field(default_factory=dict)
    responses: dict[str, dict[str, BodyNode]] = field(default_factory=dict)

    def response_bodies(self) -> Iterator[BodyNode]:
        for bodies in self.responses.values():
            yield from bodies.values()


@dataclass
class _PropertyInfo:
    key: str
    key_path: str
    required: bool
    schema: dict[str, Any]
    location: Location


def escape_pointer(segment: str) -> str:
    """Escape one JSON pointer segment (RFC 6901)."""
    return segment.replace("~", "~0").replace("/", "~1")


def _union_keys(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[str]:
    keys = list(before)
    keys.extend(k for k in after if k not in before)
    return keys


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def flatten_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    """Return the schema without its nested property and item schemas."""
    return {k: v for k, v in schema.items() if k not in _NESTED_SCHEMA_KEYS}


def _operations(document: Mapping[str, Any] | None) -> dict[tuple[str, str], dict[str, Any]]:
    found: dict[tuple[str, str], dict[str, Any]] = {}
    for path, path_item in _as_dict(_as_dict(document).get("paths")).items():
        for method, operation in _as_dict(path_item).items():
            if method in HTTP_METHODS and isinstance(operation, dict):
                found[(path, method)] = operation
    return found


def _request_schemas(operation: Mapping[str, Any] | None) -> dict[str, dict[str, Any]]:
    content = _as_dict(_as_dict(_as_dict(operation).get("requestBody")).get("content"))
    return {ct: _as_dict(_as_dict(media).get("schema")) for ct, media in content.items()}


def _response_schemas(
    operation: Mapping[str, Any] | None,
) -> dict[str, dict[str, dict[str, Any]]]:
    responses: dict[str, dict[str, dict[str, Any]]] = {}
    for code, response in _as_dict(_as_dict(operation).get("responses")).items():
        content = _as_dict(_as_dict(response).get("content"))
        responses[str(code)] = {
            ct: _as_dict(_as_dict(media).get("schema")) for ct, media in content.items()
        }
    return responses


def operation_pointer(path: str, method: str) -> str:
    return f"/paths/{escape_pointer(path)}/{method}"


def _operation_location(path: str, method: str) -> Location:
    return Location(
        json_path=operation_pointer(path, method),
        conceptual_location=ConceptualLocation(method=method, path=path),
    )


def _request_location(path: str, method: str, content_type: str) -> Location:
    return Location(
        json_path=(
            f"{operation_pointer(path, method)}/requestBody/content/{escape_pointer(content_type)}"
        ),
        conceptual_location=ConceptualLocation(
            method=method,
            path=path,
            in_request=RequestLocation(content_type=content_type),
        ),
    )


def _response_location(path: str, method: str, status_code: str, content_type: str) -> Location:
    return Location(
        json_path=(
            f"{operation_pointer(path, method)}/responses/{escape_pointer(status_code)}"
            f"/content/{escape_pointer(content_type)}"
        ),
        conceptual_location=ConceptualLocation(
            method=method,
            path=path,
            in_response=ResponseLocation(status_code=status_code, content_type=content_type),
        ),
    )


def key_segment(name: str) -> str:
    """Key path segment for a property name.

    Names are pointer-escaped, and a property literally called ``items``
    becomes ``~items`` so it never collides with an array step.
    """
    segment = escape_pointer(name)
    return f"~{segment}" if segment == ITEMS_SEGMENT else segment


def _walk_properties(
    schema: Mapping[str, Any],
    pointer: str,
    body_location: Location,
    trail: tuple[str, ...] = (),
    segments: tuple[str, ...] = (),
    active: frozenset[int] = frozenset(),
) -> Iterator[_PropertyInfo]:
    """Yield every nested property of ``schema`` in declaration order.

    Recursive schemas stop at the first schema already on the walk path.
    """
    if id(schema) in active:
        return
    active = active | {id(schema)}
    required = schema.get("required")
    required_keys = set(required) if isinstance(required, list) else set()
    for key, prop in _as_dict(schema.get("properties")).items():
        prop_schema = _as_dict(prop)
        prop_trail = (*trail, key)
        prop_segments = (*segments, key_segment(key))
        prop_pointer = f"{pointer}/properties/{escape_pointer(key)}"
        yield _PropertyInfo(
            key=key,
            key_path="/".join(prop_segments),
            required=key in required_keys,
            schema=prop_schema,
            location=Location(
                json_path=prop_pointer,
                conceptual_location=body_location.conceptual_location.model_copy(
                    update={"json_schema_trail": prop_trail}
                ),
            ),
        )
        yield from _walk_properties(
            prop_schema, prop_pointer, body_location, prop_trail, prop_segments, active
        )
    items = schema.get("items")
    if isinstance(items, dict):
        yield from _walk_properties(
            items,
            f"{pointer}/items",
            body_location,
            (*trail, ITEMS_SEGMENT),
            (*segments, ITEMS_SEGMENT),
            active,
        )


def _properties(schema: Mapping[str, Any], body_location: Location) -> dict[str, _PropertyInfo]:
    return {
        info.key_path: info
        for info in _walk_properties(schema, f"{body_location.json_path}/schema", body_location)
    }


def _property_snapshot(info: _PropertyInfo | None) -> dict[str, Any] | None:
    if info is None:
        return None
    return {"required": info.required, "schema": info.schema}


def _build_body(
    content_type: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    location: Location,
    status_code: str | None = None,
) -> BodyNode:
    node = BodyNode(
        content_type=content_type,
        status_code=status_code,
        fact=Fact(location=location, change_type=classify(before, after), before=before, after=after),
    )
    before_props = _properties(before, location) if before is not None else {}
    after_props = _properties(after, location) if after is not None else {}
    for key_path in _union_keys(before_props, after_props):
        b = before_props.get(key_path)
        a = after_props.get(key_path)
        present = a if a is not None else b
        if present is None:
            raise EngineError(f"property '{key_path}' is missing from both sides")
        before_snapshot = _property_snapshot(b)
        after_snapshot = _property_snapshot(a)
        node.fields[key_path] = FieldNode(
            key=present.key,
            key_path=key_path,
            fact=Fact(
                location=present.location,
                change_type=classify(before_snapshot, after_snapshot),
                before=before_snapshot,
                after=after_snapshot,
            ),
        )
    return node


def build_endpoints(
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
) -> list[EndpointNode]:
    """Build the fact tree over the union of both documents' operations."""
    before_ops = _operations(before)
    after_ops = _operations(after)
    endpoints: list[EndpointNode] = []
    for path, method in _union_keys(before_ops, after_ops):
        before_op = before_ops.get((path, method))
        after_op = after_ops.get((path, method))
        node = EndpointNode(
            method=method,
            path=path,
            fact=Fact(
                location=_operation_location(path, method),
                change_type=classify(before_op, after_op),
                before=before_op,
                after=after_op,
            ),
        )

        before_requests = _request_schemas(before_op)
        after_requests = _request_schemas(after_op)
        for content_type in _union_keys(before_requests, after_requests):
            node.request[content_type] = _build_body(
                content_type,
                before_requests.get(content_type),
                after_requests.get(content_type),
                _request_location(path, method, content_type),
            )

        before_responses = _response_schemas(before_op)
        after_responses = _response_schemas(after_op)
        for status_code in _union_keys(before_responses, after_responses):
            before_bodies = before_responses.get(status_code, {})
            after_bodies = after_responses.get(status_code, {})
            bodies: dict[str, BodyNode] = {}
            for content_type in _union_keys(before_bodies, after_bodies):
                bodies[content_type] = _build_body(
                    content_type,
                    before_bodies.get(content_type),
                    after_bodies.get(content_type),
                    _response_location(path, method, status_code, content_type),
                    status_code=status_code,
                )
            node.responses[status_code] = bodies

        endpoints.append(node)
    return endpoints


def _side_value(fact: Fact, side: Side) -> Any:
    return fact.before if side == "before" else fact.after


def _fields_for(schema: Mapping[str, Any], location: Location) -> dict[str, Field]:
    return {
        key_path: Field(
            location=info.location,
            key=info.key,
            key_path=key_path,
            required=info.required,
            value=flatten_schema(info.schema),
        )
        for key_path, info in _properties(schema, location).items()
    }


def operation_for(node: EndpointNode, side: Side) -> Operation | None:
    value = _side_value(node.fact, side)
    if value is None:
        return None
    return Operation(location=node.fact.location, method=node.method, path=node.path, value=value)


def request_for(body: BodyNode, side: Side) -> RequestBody | None:
    schema = _side_value(body.fact, side)
    if schema is None:
        return None
    return RequestBody(
        location=body.fact.location,
        content_type=body.content_type,
        value=flatten_schema(schema),
        properties=_fields_for(schema, body.fact.location),
    )


def response_for(body: BodyNode, side: Side) -> ResponseBody | None:
    schema = _side_value(body.fact, side)
    if schema is None:
        return None
    return ResponseBody(
        location=body.fact.location,
        status_code=body.status_code or "",
        content_type=body.content_type,
        value=flatten_schema(schema),
        properties=_fields_for(schema, body.fact.location),
    )
