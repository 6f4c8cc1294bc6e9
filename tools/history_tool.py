"""Read and format recent logged actions for the agent or the user."""

from __future__ import annotations

import logging
from typing import Any

from core.action_log import ActionLog
from tools.validation import reject_unknown

logger = logging.getLogger(__name__)

MAX_HISTORY = 50


class HistoryTool:
    def __init__(self, logs: ActionLog) -> None:
        self.logs = logs

    # ── public ────────────────────────────────────────────────────

    def recent(self, n: int = 5) -> str:
        """Return a formatted summary of the last *n* actions (newest first)."""
        actions = self.logs.recent_actions(n)
        if not actions:
            return "[history] no actions recorded yet"

        logger.info("history: returning %d action(s)", len(actions))
        return "\n\n".join(_format_action(i, a) for i, a in enumerate(actions, 1))

    def run(self, args: dict[str, Any]) -> dict[str, Any]:
        reject_unknown(args, ("limit",), "guard_history")
        limit = args.get("limit", 5)
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_HISTORY:
            raise ValueError(f"limit must be an integer between 1 and {MAX_HISTORY}")
        return {"history": self.recent(limit)}


# ── helpers ───────────────────────────────────────────────────────────────────


def _format_action(idx: int, a: dict[str, Any]) -> str:
    lines = [
        f"--- action #{idx} ({a.get('timestamp', '?')}) ---",
        f"  type     : {a.get('action_type', '?')}",
        f"  target   : {a.get('target', '')}",
        f"  verdict  : {a.get('verdict', '?')}",
        f"  verified : {'yes' if a.get('credential_was_valid') else 'no'}",
        f"  why      : {a.get('reason') or '(none)'}",
    ]
    if a.get("amount"):
        lines.insert(3, f"  amount   : ${a['amount']:.2f}")
    if a.get("tier"):
        lines.insert(3, f"  tier     : {a['tier']}")
    return "\n".join(lines)
