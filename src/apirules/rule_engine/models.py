"""Pydantic models and enums for the rule engine layer."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from pydantic.alias_generators import to_camel


class ChangeType(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class Severity(StrEnum):
    MUST = "must"
    SHOULD = "should"


class AssertionType(StrEnum):
    REQUIREMENT = "requirement"
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class RuleTarget(StrEnum):
    OPERATION = "operation"
    REQUEST = "request"
    RESPONSE = "response"
    PROPERTY = "property"


class RequestLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    content_type: str


class ResponseLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status_code: str
    content_type: str


class ConceptualLocation(BaseModel):
    """Human-readable path: method, URL pattern and JSON-schema trail."""

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    in_request: RequestLocation | None = None
    in_response: ResponseLocation | None = None
    json_schema_trail: tuple[str, ...] = ()


class Location(BaseModel):
    """Dual pointer: JSON pointer into the document plus its conceptual path."""

    model_config = ConfigDict(frozen=True)

    json_path: str
    conceptual_location: ConceptualLocation


class Fact(BaseModel):
    """Before/after snapshot of one entity with its classification."""

    model_config = ConfigDict(frozen=True)

    location: Location
    change_type: ChangeType
    before: Any = None
    after: Any = None


class Operation(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: Location
    method: str
    path: str
    value: dict[str, Any] = PydanticField(default_factory=dict)


class Field(BaseModel):
    """A schema property inside a request or response body."""

    model_config = ConfigDict(frozen=True)

    location: Location
    key: str
    key_path: str
    required: bool = False
    value: dict[str, Any] = PydanticField(default_factory=dict)

    @property
    def in_request(self) -> bool:
        return self.location.conceptual_location.in_request is not None

    @property
    def in_response(self) -> bool:
        return self.location.conceptual_location.in_response is not None


class RequestBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: Location
    content_type: str
    value: dict[str, Any] = PydanticField(default_factory=dict)
    properties: dict[str, Field] = PydanticField(default_factory=dict)


class ResponseBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: Location
    status_code: str
    content_type: str
    value: dict[str, Any] = PydanticField(default_factory=dict)
    properties: dict[str, Field] = PydanticField(default_factory=dict)


Entity = Operation | RequestBody | ResponseBody | Field


class AssertionResult(BaseModel):
    """Raw outcome of one predicate invocation, before formatting."""

    type: AssertionType
    condition: str
    passed: bool
    error: str | None = None
    severity: Severity | None = None
    change: Fact


class Result(BaseModel):
    """Reportable outcome of one assertion against one entity in one pass.

    Dumped with ``by_alias=True`` the field names match what downstream
    reporters consume (``isMust``, ``docsLink``...).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    where: str
    is_must: bool = True
    is_should: bool = False
    name: str
    change: Fact
    condition: str | None = None
    passed: bool
    error: str | None = None
    docs_link: str | None = None


@dataclass(frozen=True)
class RuleContext:
    """Context handed to rule bodies and matchers for one pass."""

    operation: Operation
    custom: Mapping[str, Any] = field(default_factory=dict)
    change_type: ChangeType | None = None  # after-pass only

    @property
    def is_after(self) -> bool:
        return self.change_type is not None

    @property
    def is_before(self) -> bool:
        return self.change_type is None
