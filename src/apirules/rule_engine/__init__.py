"""Rule engine: facts, rules, assertions and the rule runner."""

from apirules.rule_engine.assertions import (
    LifecycleAssertions,
    OperationAssertions,
    PropertyAssertions,
    RequestAssertions,
    ResponseAssertions,
)
from apirules.rule_engine.config import RulesConfig, load_rules_config
from apirules.rule_engine.diff import classify
from apirules.rule_engine.errors import (
    AssertionRegistrationError,
    ClassificationError,
    EngineError,
    MissingLocationError,
    RuleError,
)
from apirules.rule_engine.models import (
    ChangeType,
    Fact,
    Field,
    Location,
    Operation,
    RequestBody,
    ResponseBody,
    Result,
    RuleContext,
    Severity,
)
from apirules.rule_engine.resolution import PreparedRulesets, prepare_rulesets
from apirules.rule_engine.rules import (
    OperationRule,
    PropertyRule,
    RequestRule,
    ResponseRule,
    Ruleset,
    flatten,
)
from apirules.rule_engine.runner import RuleRunner, run
from apirules.rule_engine.standard import STANDARD_RULESETS

__all__ = [
    "STANDARD_RULESETS",
    "AssertionRegistrationError",
    "ChangeType",
    "ClassificationError",
    "EngineError",
    "Fact",
    "Field",
    "LifecycleAssertions",
    "Location",
    "MissingLocationError",
    "Operation",
    "OperationAssertions",
    "OperationRule",
    "PreparedRulesets",
    "PropertyAssertions",
    "PropertyRule",
    "RequestAssertions",
    "RequestBody",
    "RequestRule",
    "ResponseAssertions",
    "ResponseBody",
    "ResponseRule",
    "Result",
    "RuleContext",
    "RuleError",
    "RuleRunner",
    "Ruleset",
    "RulesConfig",
    "Severity",
    "classify",
    "flatten",
    "load_rules_config",
    "prepare_rulesets",
    "run",
]
