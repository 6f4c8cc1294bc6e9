"""Wire config, engines, store and tool handlers; dispatch tool calls by name."""

from __future__ import annotations

import logging
from typing import Any, Callable

from core.action_log import ActionLog
from core.anchor import AnchorEngine
from core.config import AppConfig, ConfigManager
from core.credentials import CredentialRotator, load_or_create_secret
from core.policy_engine import ACTION_TYPES, PolicyEngine
from core.review import ReviewEngine
from tools.anchor_tool import AnchorTool
from tools.history_tool import HistoryTool
from tools.log_tool import RESULTS, TIERS, LogTool
from tools.review_tool import ReviewTool
from tools.status_tool import StatusTool
from tools.verify_tool import VerifyTool

logger = logging.getLogger(__name__)

VERSION = "0.1.0"

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "name": "guard_verify",
        "description": (
            "Call BEFORE any sensitive action. Returns a pass/warn/block verdict and a "
            "rotating verification_key to include when executing the action."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "action_type": {"type": "string", "enum": list(ACTION_TYPES)},
                "target": {"type": "string"},
                "amount": {"type": "number", "minimum": 0},
                "description": {"type": "string"},
                "current_key": {"type": "string"},
            },
            "required": ["action_type", "target", "description"],
            "additionalProperties": False,
        },
    },
    {
        "name": "guard_anchor",
        "description": "Return the user's goals, priorities and constraints; assess drift from a summary.",
        "input_schema": {
            "type": "object",
            "properties": {"context_summary": {"type": "string"}},
            "additionalProperties": False,
        },
    },
    {
        "name": "guard_log",
        "description": "Call AFTER completing a significant action to record it.",
        "input_schema": {
            "type": "object",
            "properties": {
                "action_type": {"type": "string"},
                "target": {"type": "string"},
                "description": {"type": "string"},
                "result": {"type": "string", "enum": list(RESULTS)},
                "tier": {"type": "string", "enum": list(TIERS)},
                "amount": {"type": "number", "minimum": 0},
                "verification_key": {"type": "string"},
            },
            "required": ["action_type", "target", "description", "result", "tier"],
            "additionalProperties": False,
        },
    },
    {
        "name": "guard_status",
        "description": "Current key age, daily spend, anchor freshness and session counters.",
        "input_schema": {"type": "object", "properties": {}, "additionalProperties": False},
    },
    {
        "name": "guard_review",
        "description": "Grade a session and, unless save=false, store it and update the insights file.",
        "input_schema": {
            "type": "object",
            "properties": {"session_id": {"type": "string"}, "save": {"type": "boolean"}},
            "additionalProperties": False,
        },
    },
    {
        "name": "guard_history",
        "description": "Formatted list of the most recent logged actions.",
        "input_schema": {
            "type": "object",
            "properties": {"limit": {"type": "integer", "minimum": 1, "maximum": 50}},
            "additionalProperties": False,
        },
    },
]


class Guard:
    """Everything one agent session needs, built from a single AppConfig."""

    def __init__(self, settings: AppConfig, config: ConfigManager | None = None):
        self.settings = settings
        self.config = config or ConfigManager(settings.config_path)
        self.logs = ActionLog(
            settings.store_path,
            max_actions=settings.max_actions,
            max_reviews=settings.max_reviews,
        )
        self.rotator: CredentialRotator | None = None
        self.policy = PolicyEngine(self.config)
        self.anchor = AnchorEngine(self.config)
        self.review = ReviewEngine(self.config, self.logs, settings.insights_path)
        self._tools: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {}

    def start(self, load_config: bool = True) -> None:
        """Load config, open the action log, read the secret and register tools."""
        if load_config:
            self.config.load()
        self.logs.initialize()
        removed = self.logs.cleanup_old_logs(self.config.get_number("monitoring.logRetentionDays", 30))
        if removed:
            logger.info("retention cleanup removed %d record(s)", removed)

        rotation = self.config.get_number("security.keyRotationMinutes", 30)
        if rotation <= 0:
            logger.warning("keyRotationMinutes must be positive, got %s — using 30", rotation)
            rotation = 30
        self.rotator = CredentialRotator(
            load_or_create_secret(self.settings.secret_path),
            rotation_minutes=rotation,
        )
        self._tools = {
            "guard_verify": VerifyTool(self.config, self.policy, self.rotator, self.logs).run,
            "guard_anchor": AnchorTool(self.config, self.anchor, self.logs).run,
            "guard_log": LogTool(self.policy, self.rotator, self.logs).run,
            "guard_status": StatusTool(self.rotator, self.policy, self.anchor, self.logs, VERSION).run,
            "guard_review": ReviewTool(self.review, self.logs).run,
            "guard_history": HistoryTool(self.logs).run,
        }
        logger.info(
            "guard started — config=%s store=%s rotation=%smin",
            self.settings.config_path, self.settings.store_path, self.rotator.rotation_minutes,
        )

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self._tools:
            raise RuntimeError("Guard not started. Call start() first.")
        handler = self._tools.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValueError("arguments must be an object")
        return handler(arguments)
