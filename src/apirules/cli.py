"""CLI entry point for apirules."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, cast

from apirules import __version__
from apirules.rule_engine.config import DEFAULT_CONFIG_FILE, RulesConfig, load_rules_config
from apirules.rule_engine.models import Result
from apirules.rule_engine.resolution import prepare_rulesets
from apirules.rule_engine.runner import RuleRunner
from apirules.rule_engine.standard import STANDARD_RULESETS


def _load_document(path: Path) -> dict[str, Any]:
    if not path.exists():
        print(f"Error: file not found: {path}", file=sys.stderr)
        sys.exit(1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print(f"Error: {path} is not valid JSON: {e}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"Error: {path} does not contain a JSON object", file=sys.stderr)
        sys.exit(1)
    return data


def _is_blocking(result: Result, config: RulesConfig) -> bool:
    if result.passed:
        return False
    return result.is_must or (config.fail_on_should and result.is_should)


def _print_text(results: list[Result]) -> None:
    for result in results:
        if result.passed:
            continue
        tier = "must" if result.is_must else "should"
        print(f"FAIL [{tier}] {result.name}: {result.condition}")
        print(f"  {result.where}")
        if result.error:
            print(f"  {result.error}")
        if result.docs_link:
            print(f"  docs: {result.docs_link}")
    failed = sum(1 for r in results if not r.passed)
    print(f"\n{len(results)} checks, {len(results) - failed} passed, {failed} failed")


def _cmd_diff(args: argparse.Namespace) -> None:
    config_path = cast(Path | None, args.config) or Path.cwd() / DEFAULT_CONFIG_FILE
    config = load_rules_config(config_path)
    names = cast(list[str] | None, args.ruleset) or config.rulesets

    before = _load_document(cast(Path, args.before))
    after = _load_document(cast(Path, args.after))

    prepared = prepare_rulesets(names, base_dir=config_path.parent)
    for warning in prepared.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    results = RuleRunner(prepared.rulesets).run(before, after)

    if args.json:
        payload = {
            "results": [
                r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in results
            ],
            "warnings": prepared.warnings,
        }
        print(json.dumps(payload, indent=2))
    else:
        _print_text(results)

    if not args.exit0 and any(_is_blocking(r, config) for r in results):
        sys.exit(1)


def _cmd_rulesets(_args: argparse.Namespace) -> None:
    print("Standard rulesets:")
    for name, factory in STANDARD_RULESETS.items():
        ruleset = factory()
        print(f"  {name} ({len(ruleset.rules)} rules)")
        for rule in ruleset.rules:
            print(f"    - {rule.name} [{rule.severity}]")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="apirules",
        description="Check API description changes against compatibility rules",
    )
    _ = parser.add_argument(
        "-V", "--version", action="version", version=f"apirules {__version__}"
    )
    _ = parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command")

    # diff subcommand
    diff_parser = subparsers.add_parser("diff", help="Run rules against two API descriptions")
    _ = diff_parser.add_argument("before", type=Path, help="Dereferenced OpenAPI JSON (before)")
    _ = diff_parser.add_argument("after", type=Path, help="Dereferenced OpenAPI JSON (after)")
    _ = diff_parser.add_argument(
        "--ruleset",
        action="append",
        default=None,
        help="Standard ruleset name or path to a .py ruleset file (repeatable)",
    )
    _ = diff_parser.add_argument(
        "--config", type=Path, default=None, help=f"Config file (default: {DEFAULT_CONFIG_FILE})"
    )
    _ = diff_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    _ = diff_parser.add_argument("--exit0", action="store_true", help="Always exit 0")

    # rulesets subcommand
    _ = subparsers.add_parser("rulesets", help="List standard rulesets")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    dispatch = {
        "diff": _cmd_diff,
        "rulesets": _cmd_rulesets,
    }
    command = cast(str | None, args.command)
    handler = dispatch.get(command) if command is not None else None
    if handler:
        handler(args)
    else:
        parser.print_help()
        sys.exit(1)
