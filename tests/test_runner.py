"""Tests for rule_engine/runner.py: end-to-end evaluation of document pairs."""

from __future__ import annotations

import pytest

from apirules.rule_engine.errors import (
    AssertionRegistrationError,
    MissingLocationError,
    RuleError,
)
from apirules.rule_engine.facts import EndpointNode
from apirules.rule_engine.models import ChangeType, Fact, RuleContext
from apirules.rule_engine.rules import (
    OperationRule,
    PropertyRule,
    RequestRule,
    ResponseRule,
    Ruleset,
)
from apirules.rule_engine.runner import RuleRunner, run


def _raise(message: str):
    def predicate(*_args):
        raise RuleError(message)

    return predicate


def _required_response_property_rule() -> PropertyRule:
    def rule(assertions, _context):
        def removed(prop):
            if prop.in_response and prop.required:
                raise RuleError(f"removing required property '{prop.key}' is a breaking change")

        assertions.removed("not be removed from response bodies if required", removed)

    return PropertyRule(name="required properties in response should not be removed", rule=rule)


def _type_change_rule() -> PropertyRule:
    def rule(assertions, _context):
        def changed(before, after):
            if before.value.get("type") != after.value.get("type"):
                raise RuleError("property type must not change")

        assertions.changed("not change type", changed)

    return PropertyRule(name="property type", rule=rule)


def _array_body_removal_rule() -> RequestRule:
    def rule(assertions, _context):
        def removed(request):
            if request.value.get("type") == "array":
                raise RuleError("cannot remove bodies with array schema")

        assertions.body.removed("cannot remove bodies with array schema", removed)

    return RequestRule(name="request removal", rule=rule)


class TestScenarios:
    def test_required_response_property_removed_fails(self, response_document):
        before = response_document(
            {
                "type": "object",
                "required": ["lookAtMe"],
                "properties": {"lookAtMe": {"type": "string"}},
            }
        )
        after = response_document({"type": "object", "required": [], "properties": {}})
        results = run(
            rules=[_required_response_property_rule()],
            before_document=before,
            after_document=after,
        )
        assert len(results) == 1
        assert results[0].passed is False
        assert results[0].error == "removing required property 'lookAtMe' is a breaking change"
        assert results[0].where.startswith("removed property: lookAtMe response body: 200")

    def test_optional_response_property_removed_passes(self, response_document):
        before = response_document(
            {"type": "object", "properties": {"lookAtMe": {"type": "string"}}}
        )
        after = response_document({"type": "object", "required": [], "properties": {}})
        results = run(
            rules=[_required_response_property_rule()],
            before_document=before,
            after_document=after,
        )
        assert len(results) == 1
        assert results[0].passed is True

    def test_property_type_change_fails(self, request_document):
        before = request_document({"type": "object", "properties": {"id": {"type": "string"}}})
        after = request_document({"type": "object", "properties": {"id": {"type": "number"}}})
        results = run(rules=[_type_change_rule()], before_document=before, after_document=after)
        assert [r.passed for r in results] == [False]
        assert results[0].error == "property type must not change"

    def test_property_format_change_passes(self, request_document):
        before = request_document(
            {"type": "object", "properties": {"id": {"type": "string", "format": "uuid"}}}
        )
        after = request_document(
            {"type": "object", "properties": {"id": {"type": "string", "format": "date"}}}
        )
        results = run(rules=[_type_change_rule()], before_document=before, after_document=after)
        assert [r.passed for r in results] == [True]

    def test_removing_string_body_passes(self, request_document, make_document):
        before = request_document({"type": "string"})
        after = make_document({"/api/users": {"post": {"responses": {}}}})
        results = run(
            rules=[_array_body_removal_rule()], before_document=before, after_document=after
        )
        assert [r.passed for r in results] == [True]

    def test_removing_array_body_fails(self, request_document, make_document):
        before = request_document({"type": "array", "items": {"type": "string"}})
        after = make_document({"/api/users": {"post": {"responses": {}}}})
        results = run(
            rules=[_array_body_removal_rule()], before_document=before, after_document=after
        )
        assert [r.passed for r in results] == [False]
        assert results[0].error == "cannot remove bodies with array schema"


class TestExhaustiveExecution:
    def test_every_assertion_reported(self, users_api):
        def rule(assertions, _context):
            assertions.requirement("one", _raise("x"))
            assertions.requirement("two", lambda _op: None)
            assertions.requirement("three", lambda _op: None)

        results = RuleRunner([OperationRule(name="op", rule=rule)]).run(users_api, users_api)
        # three operations, two passes, three assertions
        assert len(results) == 18
        assert [r.passed for r in results[:3]] == [False, True, True]

    def test_unapplicable_kinds_produce_nothing(self, users_api):
        def rule(assertions, _context):
            assertions.added("a", lambda _op: None)
            assertions.changed("c", lambda _b, _a: None)
            assertions.removed("r", lambda _op: None)

        results = RuleRunner([OperationRule(name="op", rule=rule)]).run(users_api, users_api)
        assert results == []


class TestMatcherGating:
    def test_false_matcher_produces_no_results(self, users_api):
        calls: list[str] = []

        def rule(assertions, _context):
            assertions.requirement("called", lambda op: calls.append(op.path))

        results = RuleRunner(
            [OperationRule(name="op", rule=rule, matches=lambda _op, _ctx: False)]
        ).run(users_api, users_api)
        assert results == []
        assert calls == []

    def test_matcher_per_pass(self, users_api):
        def rule(assertions, _context):
            assertions.requirement("r", lambda _op: None)

        results = RuleRunner(
            [OperationRule(name="op", rule=rule, matches=lambda _op, ctx: ctx.is_after)]
        ).run(users_api, users_api)
        assert len(results) == 3

    def test_matcher_on_request_content_type(self, make_document):
        doc = make_document(
            {
                "/api/users": {
                    "get": {"requestBody": {"content": {"application/json": {"schema": {}}}}}
                },
                "/api/users/{userId}": {
                    "get": {
                        "requestBody": {
                            "content": {
                                "application/json": {"schema": {}},
                                "application/xml": {"schema": {}},
                            }
                        }
                    }
                },
            }
        )
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.body.requirement("triggers", lambda req: seen.append(req.location.json_path))

        RuleRunner(
            [
                RequestRule(
                    name="request",
                    rule=rule,
                    matches=lambda req, _ctx: req.content_type == "application/xml",
                )
            ]
        ).run(doc, doc)
        assert seen == [
            "/paths/~1api~1users~1{userId}/get/requestBody/content/application~1xml",
        ] * 2

    def test_matcher_on_operation_context(self, make_document):
        doc = make_document(
            {
                "/api/users": {
                    "get": {"requestBody": {"content": {"application/json": {"schema": {}}}}}
                },
                "/api/orders": {
                    "get": {"requestBody": {"content": {"application/json": {"schema": {}}}}}
                },
            }
        )
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.body.requirement("triggers", lambda req: seen.append(req.content_type))

        results = RuleRunner(
            [
                RequestRule(
                    name="request",
                    rule=rule,
                    matches=lambda _req, ctx: ctx.operation.path == "/api/users",
                )
            ]
        ).run(doc, doc)
        assert len(results) == 2
        assert all("/api/users" in r.where for r in results)

    def test_body_matcher_gates_properties(self, request_document):
        doc = request_document({"type": "object", "properties": {"a": {"type": "string"}}})

        def rule(assertions, _context):
            assertions.property.requirement("prop", lambda _p: None)

        results = RuleRunner(
            [RequestRule(name="r", rule=rule, matches=lambda req, _ctx: req.value.get("type") == "array")]
        ).run(doc, doc)
        assert results == []

    def test_ruleset_matcher_combined(self, users_api):
        def rule(assertions, _context):
            assertions.requirement("r", lambda _op: None)

        ruleset = Ruleset(
            name="gets",
            matches=lambda op, _ctx: op.method == "get",
            rules=[
                OperationRule(
                    name="users-only",
                    rule=rule,
                    matches=lambda op, _ctx: op.path == "/api/users",
                )
            ],
        )
        results = RuleRunner([ruleset]).run(users_api, users_api)
        assert len(results) == 2
        assert all(r.where == "requirement for operation: GET /api/users" for r in results)
        assert all(r.name == "gets > users-only" for r in results)


class TestOrdering:
    def test_before_pass_precedes_after_pass(self, make_document):
        before = make_document({"/a": {"get": {"summary": "before"}}})
        after = make_document({"/a": {"get": {"summary": "after"}}})
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.requirement("r", lambda op: seen.append(op.value["summary"]))

        RuleRunner([OperationRule(name="op", rule=rule)]).run(before, after)
        assert seen == ["before", "after"]

    def test_rule_declaration_order_within_endpoint(self, make_document):
        doc = make_document({"/a": {"get": {}}, "/b": {"get": {}}})

        def rule(assertions, _context):
            assertions.requirement("r", lambda _op: None)

        ruleset = Ruleset(
            name="rs",
            rules=[OperationRule(name="one", rule=rule), OperationRule(name="two", rule=rule)],
        )
        results = RuleRunner([ruleset]).run(doc, doc)
        assert [(r.name, r.where) for r in results] == [
            ("rs > one", "requirement for operation: GET /a"),
            ("rs > one", "requirement for operation: GET /a"),
            ("rs > two", "requirement for operation: GET /a"),
            ("rs > two", "requirement for operation: GET /a"),
            ("rs > one", "requirement for operation: GET /b"),
            ("rs > one", "requirement for operation: GET /b"),
            ("rs > two", "requirement for operation: GET /b"),
            ("rs > two", "requirement for operation: GET /b"),
        ]

    def test_properties_in_document_order(self, request_document):
        doc = request_document(
            {
                "type": "object",
                "properties": {"z": {}, "a": {}, "m": {"properties": {"inner": {}}}},
            }
        )
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.requirement("r", lambda prop: seen.append(prop.key_path))

        RuleRunner([PropertyRule(name="p", rule=rule)]).run(doc, None)
        assert seen == ["z", "a", "m", "m/inner"]

    def test_request_fields_before_response_fields(self, make_document):
        doc = make_document(
            {
                "/a": {
                    "post": {
                        "requestBody": {
                            "content": {"application/json": {"schema": {"properties": {"req": {}}}}}
                        },
                        "responses": {
                            "200": {
                                "content": {
                                    "application/json": {"schema": {"properties": {"res": {}}}}
                                }
                            }
                        },
                    }
                }
            }
        )
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.requirement("r", lambda prop: seen.append(prop.key))

        RuleRunner([PropertyRule(name="p", rule=rule)]).run(doc, doc)
        assert seen == ["req", "res", "req", "res"]


class TestIdempotence:
    def test_repeated_runs_identical(self, users_api):
        def rule(assertions, _context):
            assertions.requirement("has id", lambda op: None if op.value.get("operationId") else 1 / 0)

        runner = RuleRunner([OperationRule(name="op", rule=rule)])
        first = runner.run(users_api, users_api)
        second = runner.run(users_api, users_api)
        assert first == second
        assert len(first) == 6

    def test_rule_body_invoked_once_per_pass(self, make_document):
        doc = make_document({"/a": {"get": {}}})
        contexts: list[RuleContext] = []

        def rule(_assertions, context):
            contexts.append(context)

        RuleRunner([OperationRule(name="op", rule=rule)]).run(doc, doc)
        assert len(contexts) == 2
        assert contexts[0].is_before
        assert contexts[1].is_after


class TestContexts:
    def test_after_context_knows_operation_change(self, make_document):
        after = make_document({"/new": {"post": {}}})
        contexts: list[RuleContext] = []

        def rule(_assertions, context):
            contexts.append(context)

        RuleRunner([RequestRule(name="r", rule=rule)]).run(make_document(), after)
        assert len(contexts) == 1
        assert contexts[0].change_type == ChangeType.ADDED
        assert contexts[0].operation.path == "/new"

    def test_before_context_has_no_change_type(self, make_document):
        before = make_document({"/old": {"post": {}}})
        contexts: list[RuleContext] = []

        def rule(_assertions, context):
            contexts.append(context)

        RuleRunner([OperationRule(name="o", rule=rule)]).run(before, make_document())
        assert len(contexts) == 1
        assert contexts[0].change_type is None
        assert contexts[0].operation.path == "/old"

    def test_custom_context_passed_through(self, make_document):
        doc = make_document({"/a": {"get": {}}})
        seen: list[object] = []

        def rule(_assertions, context):
            seen.append(context.custom["team"])

        run(
            rules=[OperationRule(name="o", rule=rule)],
            before_document=doc,
            after_document=doc,
            custom_context={"team": "payments"},
        )
        assert seen == ["payments", "payments"]

    def test_custom_context_is_read_only(self, make_document):
        doc = make_document({"/a": {"get": {}}})

        def rule(_assertions, context):
            context.custom["leak"] = True

        with pytest.raises(TypeError):
            run(rules=[OperationRule(name="o", rule=rule)], before_document=doc, after_document=doc)


class TestLifecycles:
    def test_operation_removed_runs_in_before_pass(self, make_document):
        before = make_document({"/a": {"delete": {}}})

        def rule(assertions, _context):
            assertions.removed("no removal", _raise("removed"))

        results = RuleRunner([OperationRule(name="o", rule=rule)]).run(before, make_document())
        assert [(r.where, r.passed) for r in results] == [
            ("removed operation: DELETE /a", False)
        ]

    def test_changed_response_body(self, response_document):
        before = response_document({"type": "array", "description": "123", "items": {"type": "string"}})
        after = response_document({"type": "array", "description": "abc", "items": {"type": "number"}})
        seen: list[tuple[str, str]] = []

        def rule(assertions, _context):
            assertions.body.changed(
                "same root type",
                lambda b, a: seen.append((b.value["type"], a.value["type"])),
            )

        results = RuleRunner([ResponseRule(name="r", rule=rule)]).run(before, after)
        assert seen == [("array", "array")]
        assert [r.passed for r in results] == [True]
        assert results[0].where == (
            "changed response status code: 200 with content-type: application/json "
            "in operation: GET /api/users"
        )

    def test_description_only_change_is_not_changed(self, response_document):
        before = response_document({"type": "string", "description": "old"})
        after = response_document({"type": "string", "description": "new"})

        def rule(assertions, _context):
            assertions.body.changed("any", lambda _b, _a: None)

        assert RuleRunner([ResponseRule(name="r", rule=rule)]).run(before, after) == []

    def test_added_property_in_request(self, request_document):
        before = request_document({"type": "object", "properties": {}})
        after = request_document(
            {"type": "object", "required": ["name"], "properties": {"name": {"type": "string"}}}
        )

        def rule(assertions, _context):
            def added(prop):
                if prop.required:
                    raise RuleError(f"'{prop.key}' is required")

            assertions.property.added("no new required properties", added)

        [result] = RuleRunner([RequestRule(name="r", rule=rule)]).run(before, after)
        assert result.passed is False
        assert result.error == "'name' is required"
        assert result.where == (
            "added property: name request body: application/json in operation: POST /api/users"
        )


class TestEngineErrors:
    def test_late_registration_propagates(self, make_document):
        doc = make_document({"/a": {"get": {}}})
        captured: list[object] = []

        def rule(assertions, _context):
            captured.append(assertions)
            assertions.requirement(
                "register late", lambda _op: captured[0].requirement("late", lambda _x: None)
            )

        with pytest.raises(AssertionRegistrationError):
            RuleRunner([OperationRule(name="o", rule=rule)]).run(doc, doc)

    def test_missing_location_propagates(self):
        broken = EndpointNode(
            method="get",
            path="/a",
            fact=Fact.model_construct(location=None, change_type=ChangeType.ADDED, after={}),
        )

        def rule(assertions, _context):
            assertions.requirement("r", lambda _op: None)

        with pytest.raises(MissingLocationError):
            RuleRunner([OperationRule(name="o", rule=rule)]).run_with_facts([broken])

    def test_rule_body_exception_propagates(self, make_document):
        doc = make_document({"/a": {"get": {}}})

        def rule(_assertions, _context):
            raise RuntimeError("broken rule body")

        with pytest.raises(RuntimeError):
            RuleRunner([OperationRule(name="o", rule=rule)]).run(doc, doc)


class TestRunnerState:
    def test_rules_property_is_flat(self):
        ruleset = Ruleset(name="rs", rules=[OperationRule(name="o", rule=lambda _a, _c: None)])
        runner = RuleRunner([ruleset])
        assert [r.name for r in runner.rules] == ["rs > o"]

    def test_empty_documents(self):
        assert RuleRunner([]).run(None, None) == []


class TestSchemaShapes:
    def test_recursive_schema(self, request_document):
        node: dict = {"type": "object", "properties": {"name": {"type": "string"}}}
        node["properties"]["children"] = {"type": "array", "items": node}
        doc = request_document(node)
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.requirement("r", lambda prop: seen.append(prop.key_path))

        results = RuleRunner([PropertyRule(name="p", rule=rule)]).run(doc, doc)
        assert seen == ["name", "children", "name", "children"]
        assert len(results) == 4
        assert all(r.passed for r in results)

    def test_colliding_names_each_get_a_result(self, request_document):
        doc = request_document(
            {
                "properties": {
                    "a/b": {"type": "string"},
                    "a": {"properties": {"b": {"type": "integer"}}},
                }
            }
        )
        seen: list[str] = []

        def rule(assertions, _context):
            assertions.requirement("r", lambda prop: seen.append(prop.key))

        results = RuleRunner([PropertyRule(name="p", rule=rule)]).run(doc, None)
        assert seen == ["a/b", "a", "b"]
        assert len(results) == 3
