"""Diff classifier: decide whether an entity was added, removed or changed."""

from __future__ import annotations

import json
from typing import Any

from apirules.rule_engine.errors import ClassificationError
from apirules.rule_engine.models import ChangeType

# Descriptive keys kept in the document but ignored when classifying.
METADATA_KEYS: frozenset[str] = frozenset({
    "description",
    "summary",
    "title",
    "example",
    "examples",
    "externalDocs",
})

# Maps whose keys are user-chosen names, not schema keywords.
_NAMED_MAPS: frozenset[str] = frozenset({
    "properties",
    "patternProperties",
    "$defs",
    "definitions",
    "content",
    "responses",
    "headers",
    "paths",
    "schemas",
})

_UNORDERED_LISTS: frozenset[str] = frozenset({"required", "enum", "type"})

CIRCULAR_KEY = "$circular"


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def normalize(value: Any, *, named: bool = False) -> Any:
    """Strip descriptive metadata and canonicalize unordered collections.

    ``named`` marks a dict whose keys are user names (property names, content
    types, status codes); its keys are never stripped. A container already
    being normalized higher up the same path is replaced by
    ``{"$circular": "#/<path>"}`` pointing at its first occurrence.
    """
    return _normalize(value, named, (), {})


def _normalize(
    value: Any,
    named: bool,
    trail: tuple[str, ...],
    active: dict[int, tuple[str, ...]],
) -> Any:
    if not isinstance(value, dict | list | tuple):
        return value
    if id(value) in active:
        return {CIRCULAR_KEY: "/".join(("#", *active[id(value)]))}
    active[id(value)] = trail
    try:
        if isinstance(value, dict):
            result: dict[str, Any] = {}
            for key, child in value.items():
                if not named and (key in METADATA_KEYS or str(key).startswith("x-")):
                    continue
                child_trail = (*trail, str(key))
                if key in _UNORDERED_LISTS and isinstance(child, list) and not named:
                    result[key] = sorted(
                        (
                            _normalize(item, False, (*child_trail, str(i)), active)
                            for i, item in enumerate(child)
                        ),
                        key=_canonical,
                    )
                else:
                    result[key] = _normalize(
                        child, not named and key in _NAMED_MAPS, child_trail, active
                    )
            return result
        return [_normalize(item, False, (*trail, str(i)), active) for i, item in enumerate(value)]
    finally:
        del active[id(value)]


def is_equal(before: Any, after: Any) -> bool:
    return normalize(before) == normalize(after)


def classify(before: Any | None, after: Any | None) -> ChangeType:
    """Classify one entity from its before and after values."""
    if before is None and after is None:
        raise ClassificationError("cannot classify an entity absent from both documents")
    if before is None:
        return ChangeType.ADDED
    if after is None:
        return ChangeType.REMOVED
    return ChangeType.UNCHANGED if is_equal(before, after) else ChangeType.CHANGED
