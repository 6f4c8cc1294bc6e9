"""Current security posture: key age, spend, anchor freshness, session counters."""

from __future__ import annotations

from typing import Any

from core.action_log import ActionLog, utc_now_iso
from core.anchor import AnchorEngine
from core.credentials import CredentialRotator
from core.policy_engine import PolicyEngine
from tools.validation import reject_unknown

# More blocks than this in one session is worth the user's attention.
ALERT_BLOCK_THRESHOLD = 3


def session_health(stats: dict[str, Any]) -> str:
    if stats["unverified_tier1"] > 0:
        return "WARNING"
    if stats["blocked_actions"] > ALERT_BLOCK_THRESHOLD:
        return "ALERT"
    return "HEALTHY"


class StatusTool:
    def __init__(
        self,
        rotator: CredentialRotator,
        policy: PolicyEngine,
        anchor: AnchorEngine,
        logs: ActionLog,
        version: str,
    ) -> None:
        self.rotator = rotator
        self.policy = policy
        self.anchor = anchor
        self.logs = logs
        self.version = version

    def run(self, args: dict[str, Any]) -> dict[str, Any]:
        reject_unknown(args, (), "guard_status")
        stats = self.logs.session_stats()
        anchor = self.anchor.status()
        anchor["drift_level"] = anchor.pop("current_drift_level")
        return {
            "version": self.version,
            "security": {
                "key_valid": True,
                **self.rotator.status(),
                **self.policy.status(),
            },
            "anchor": anchor,
            "session": stats,
            "health": session_health(stats),
            "timestamp": utc_now_iso(),
        }
