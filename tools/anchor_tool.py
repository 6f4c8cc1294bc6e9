"""Return the user's grounding context and, given a summary, assess drift."""

from __future__ import annotations

from typing import Any

from core.action_log import ActionLog, utc_now_iso
from core.anchor import AnchorEngine
from core.config import ConfigManager
from tools.validation import optional_str, reject_unknown

ANCHOR_MESSAGE = (
    "This is your grounding context. Your user configured these goals and "
    "boundaries for you. Re-read them now and verify your recent actions "
    "are aligned before proceeding with new tasks."
)


class AnchorTool:
    def __init__(self, config: ConfigManager, anchor: AnchorEngine, logs: ActionLog) -> None:
        self.config = config
        self.anchor = anchor
        self.logs = logs

    def run(self, args: dict[str, Any]) -> dict[str, Any]:
        reject_unknown(args, ("context_summary",), "guard_anchor")
        summary = optional_str(args, "context_summary", 4000)

        block = self.anchor.get_anchor_block()
        drift = None
        if summary:
            drift = self.anchor.assess_drift(summary)
            self.logs.log_action({
                "timestamp": utc_now_iso(),
                "action_type": "anchor_refresh",
                "target": "context_window",
                "description": f"Anchor refresh. Drift: {drift.level}. Summary: {summary}",
                "verdict": "pass",
                "reason": drift.explanation,
                "credential_was_valid": True,
            })

        return {
            "anchor_block": block,
            "drift_assessment": drift.to_dict() if drift else None,
            "next_refresh_in_minutes": self.config.get_number("anchor.refreshIntervalMinutes", 15),
            "timestamp": utc_now_iso(),
            "message": ANCHOR_MESSAGE,
        }
