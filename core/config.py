"""Load application settings from the environment and user policy from config.json."""

from __future__ import annotations

import copy
import json
import logging
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".agent-guard"


# Safe defaults that protect the user out of the box.  A user config.json is
# deep-merged over this tree; missing keys fall back to these values.
DEFAULT_CONFIG: dict[str, Any] = {
    "security": {
        "keyRotationMinutes": 30,
        "spendingLimits": {
            "perAction": 50,
            "daily": 200,
            "warnAbove": 20,
        },
        # "blocklist" = everyone allowed except blocked
        # "allowlist" = only allowed entries permitted
        "contacts": {"mode": "blocklist", "allowed": [], "blocked": []},
        "domains": {"mode": "blocklist", "allowed": [], "blocked": []},
        "blockedActions": [],
        # {"if": {"field": "amount", "operator": "greater_than", "value": 100},
        #  "then": "block", "reason": "Purchases over $100 need manual approval"}
        "customRules": [],
    },
    "anchor": {
        "refreshIntervalMinutes": 15,
        "goals": [
            "Manage inbox and respond to important emails",
            "Keep my calendar organized",
        ],
        "priorities": [
            {"rank": 1, "text": "Never spend money without explicit confirmation"},
            {"rank": 2, "text": "Protect my private information"},
            {"rank": 3, "text": "Stay focused on the tasks I've assigned"},
        ],
        "constraints": [
            "Never share personal information with unknown contacts",
            "Never delete files without confirmation",
            "Never send messages on my behalf without showing me first",
        ],
        "context": "",
        "goalCategories": ["email", "calendar", "productivity"],
    },
    "monitoring": {
        "logRetentionDays": 30,
        "alertOnUnverifiedTier1": True,
        "maxActionsBeforeAnchor": 20,
    },
}


@dataclass(frozen=True)
class AppConfig:
    """File locations and store limits, resolved once at startup."""

    home_dir: Path
    config_path: Path
    secret_path: Path        # lives beside config.json, never inside it
    store_path: Path
    insights_path: Path
    max_actions: int = 5000  # keep last N action records
    max_reviews: int = 200   # keep last N session reviews


def _getenv(name: str, default: str | None = None) -> str | None:
    """os.getenv wrapper that strips inline comments (e.g. '30  # note' → '30')."""
    raw = os.getenv(name, default)
    if raw is None:
        return None
    # Split on first ' #' (space-hash) to drop inline comments, then strip
    return raw.split(" #")[0].strip()


def _path_from_env(name: str, default: Path) -> Path:
    value = _getenv(name)
    return Path(value).expanduser() if value else default


def load_config() -> AppConfig:
    """Build AppConfig from environment; every variable is optional."""
    home = _path_from_env("GUARD_HOME", DEFAULT_HOME)
    config_path = _path_from_env("GUARD_CONFIG_PATH", home / "config.json")
    return AppConfig(
        home_dir=home,
        config_path=config_path,
        secret_path=_path_from_env("GUARD_SECRET_PATH", config_path.parent / ".secret"),
        store_path=_path_from_env("GUARD_STORE_PATH", home / "actions.json"),
        insights_path=_path_from_env("GUARD_INSIGHTS_PATH", home / "insights.md"),
        max_actions=int(_getenv("GUARD_MAX_ACTIONS", "5000")),  # type: ignore[arg-type]
        max_reviews=int(_getenv("GUARD_MAX_REVIEWS", "200")),  # type: ignore[arg-type]
    )


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into a copy of *base*.

    Nested dicts merge key by key; lists and scalars from *override* replace
    the base value outright.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


class ConfigManager:
    """The user's policy and goal tree, read through dotted-path lookups."""

    def __init__(self, path: Path, data: dict[str, Any] | None = None):
        self.path = path
        self._data: dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG) if data is None else data

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Path | None = None) -> ConfigManager:
        """Build a manager from an in-memory override tree (defaults still apply)."""
        return cls(path or Path("config.json"), deep_merge(DEFAULT_CONFIG, data))

    def load(self) -> None:
        """Read config.json, or write the defaults there if it does not exist.

        A malformed file never stops the guard: it logs and keeps the defaults.
        """
        if not self.path.exists():
            self._data = copy.deepcopy(DEFAULT_CONFIG)
            self.save()
            logger.info("default config created at %s", self.path)
            return
        try:
            with open(self.path) as fh:
                user_config = json.load(fh)
            if not isinstance(user_config, dict):
                raise ValueError("top-level config must be a JSON object")
        except (OSError, ValueError) as exc:
            logger.error("error loading config %s: %s — using defaults", self.path, exc)
            self._data = copy.deepcopy(DEFAULT_CONFIG)
            return
        self._data = deep_merge(DEFAULT_CONFIG, user_config)
        logger.info("config loaded from %s", self.path)

    def save(self) -> None:
        """Write the current tree with owner-only permissions."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as fh:
                json.dump(self._data, fh, indent=2)
        except OSError as exc:
            logger.error("error saving config %s: %s", self.path, exc)

    def get(self, path: str, default: Any = None) -> Any:
        """Look up a value by dot-notation, e.g. get("security.spendingLimits.daily", 200)."""
        current: Any = self._data
        for key in path.split("."):
            if not isinstance(current, dict):
                return default
            current = current.get(key)
            if current is None:
                return default
        return current

    def get_number(self, path: str, default: float) -> float:
        """Like get(), but coerced to float; unusable values log and fall back to *default*."""
        value = self.get(path, default)
        try:
            number = math.nan if isinstance(value, bool) else float(value)
        except (TypeError, ValueError):
            number = math.nan
        if not math.isfinite(number):
            logger.warning("config %s=%r is not a number — using %s", path, value, default)
            return float(default)
        return number

    def as_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)
