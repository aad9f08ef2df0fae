"""RulesConfig dataclass and loader for rule engine settings."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".apirules.json"


@dataclass
class RulesConfig:
    rulesets: list[str] = field(default_factory=lambda: ["breaking-changes"])
    fail_on_should: bool = False


def load_rules_config(path: Path | None = None) -> RulesConfig:
    """Load rules config from the "rules" section of .apirules.json."""
    config = RulesConfig()
    if path and path.exists():
        try:
            text = path.read_text()
            if text.strip():
                data = json.loads(text)
                section = data.get("rules", {}) if isinstance(data, dict) else {}
                if isinstance(section, dict):
                    _apply(config, section)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to load rules config from {path}: {e}")
    if env_val := os.environ.get("APIRULES_RULESETS"):
        config.rulesets = [name.strip() for name in env_val.split(",") if name.strip()]
    if env_val := os.environ.get("APIRULES_FAIL_ON_SHOULD"):
        config.fail_on_should = env_val.lower() in ("true", "1", "yes")
    return config


def _apply(cfg: RulesConfig, data: dict[str, object]) -> None:
    rulesets = data.get("rulesets")
    if isinstance(rulesets, list) and all(isinstance(r, str) for r in rulesets):
        cfg.rulesets = list(rulesets)
    if "fail_on_should" in data and isinstance(data["fail_on_should"], bool):
        cfg.fail_on_should = data["fail_on_should"]
