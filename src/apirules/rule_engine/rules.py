"""Rule and Ruleset declarations, and their expansion into a flat plan."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

from apirules.rule_engine.models import RuleContext, RuleTarget, Severity

Matcher = Callable[[Any, RuleContext], bool]
RuleBody = Callable[[Any, RuleContext], None]


@dataclass(frozen=True)
class Rule:
    """Base declaration; use one of the target-specific subclasses."""

    target: ClassVar[RuleTarget]

    name: str
    rule: RuleBody
    matches: Matcher | None = None
    docs_link: str | None = None
    severity: Severity = Severity.MUST


@dataclass(frozen=True)
class OperationRule(Rule):
    target: ClassVar[RuleTarget] = RuleTarget.OPERATION


@dataclass(frozen=True)
class RequestRule(Rule):
    target: ClassVar[RuleTarget] = RuleTarget.REQUEST


@dataclass(frozen=True)
class ResponseRule(Rule):
    target: ClassVar[RuleTarget] = RuleTarget.RESPONSE


@dataclass(frozen=True)
class PropertyRule(Rule):
    target: ClassVar[RuleTarget] = RuleTarget.PROPERTY


@dataclass(frozen=True)
class Ruleset:
    name: str
    rules: Sequence[Rule] = field(default_factory=tuple)
    matches: Matcher | None = None
    docs_link: str | None = None


@dataclass(frozen=True)
class FlatRule:
    """A rule as the runner sees it, with ruleset data folded in."""

    rule: Rule
    matches: Matcher | None
    aliases: tuple[str, ...]
    docs_link: str | None

    @property
    def target(self) -> RuleTarget:
        return self.rule.target

    @property
    def name(self) -> str:
        return " > ".join((*self.aliases, self.rule.name))

    @property
    def severity(self) -> Severity:
        return self.rule.severity

    def invoke(self, assertions: Any, context: RuleContext) -> None:
        self.rule.rule(assertions, context)

    def applies_to(self, instance: Any, context: RuleContext) -> bool:
        return self.matches is None or bool(self.matches(instance, context))


def combine_matchers(rule_matcher: Matcher | None, ruleset_matcher: Matcher | None) -> Matcher | None:
    """AND both matchers; either may be absent."""
    if rule_matcher is None:
        return ruleset_matcher
    if ruleset_matcher is None:
        return rule_matcher

    def matches(instance: Any, context: RuleContext) -> bool:
        return bool(ruleset_matcher(instance, context)) and bool(rule_matcher(instance, context))

    return matches


def flatten(rules: Iterable[Rule | Ruleset]) -> list[FlatRule]:
    """Expand rulesets in place, preserving declaration order."""
    flat: list[FlatRule] = []
    for item in rules:
        if isinstance(item, Rule):
            flat.append(FlatRule(rule=item, matches=item.matches, aliases=(), docs_link=item.docs_link))
        elif isinstance(item, Ruleset):
            for rule in item.rules:
                if not isinstance(rule, Rule):
                    raise TypeError(f"Ruleset '{item.name}' contains a non-rule: {rule!r}")
                flat.append(
                    FlatRule(
                        rule=rule,
                        matches=combine_matchers(rule.matches, item.matches),
                        aliases=(item.name,),
                        docs_link=rule.docs_link or item.docs_link,
                    )
                )
        else:
            raise TypeError(f"Expected a Rule or Ruleset, got {type(item).__name__}")
    return flat
