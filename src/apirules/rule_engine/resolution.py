"""Resolve ruleset references into Ruleset objects before a run.

A reference is a standard catalog name or a path to a Python file that
exposes ``rulesets`` (a list) or ``ruleset`` at module level. Unresolvable
references produce warnings instead of errors so a run can proceed with
whatever did resolve.
"""

from __future__ import annotations

import importlib.util
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType

from apirules.rule_engine.rules import Ruleset
from apirules.rule_engine.standard import STANDARD_RULESETS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedRulesets:
    rulesets: list[Ruleset] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def is_local_file(name: str) -> bool:
    return name.endswith(".py")


def _import_file(path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(f"apirules_local_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot import {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def load_local_rulesets(path: Path) -> list[Ruleset]:
    """Import ``path`` and return the rulesets it exports."""
    module = _import_file(path)
    exported = getattr(module, "rulesets", None)
    if exported is None:
        single = getattr(module, "ruleset", None)
        exported = [single] if single is not None else []
    rulesets = [r for r in exported if isinstance(r, Ruleset)]
    if len(rulesets) != len(exported):
        raise TypeError(f"{path.name} exports objects that are not Rulesets")
    return rulesets


def prepare_rulesets(
    names: Iterable[str],
    *,
    standard: Mapping[str, Callable[[], Ruleset]] = STANDARD_RULESETS,
    base_dir: Path | None = None,
) -> PreparedRulesets:
    """Resolve every reference, collecting warnings for the ones that fail."""
    prepared = PreparedRulesets()
    for name in names:
        if name in standard:
            prepared.rulesets.append(standard[name]())
            continue

        if is_local_file(name):
            path = Path(name)
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            if not path.exists():
                prepared.warnings.append(f"Local ruleset file not found: {path}")
                continue
            try:
                local = load_local_rulesets(path)
            except Exception as e:  # noqa: BLE001
                prepared.warnings.append(f"Could not load rulesets from {path}: {e}")
                continue
            if not local:
                prepared.warnings.append(f"{path} does not export 'rulesets' or 'ruleset'")
            prepared.rulesets.extend(local)
            continue

        prepared.warnings.append(f"Ruleset '{name}' could not be resolved")

    for warning in prepared.warnings:
        logger.info(f"Ruleset resolution: {warning}")
    return prepared
