"""Record a completed action for monitoring and later review."""

from __future__ import annotations

import logging
from typing import Any

from core.action_log import ActionLog, utc_now_iso
from core.credentials import CredentialRotator
from core.policy_engine import PolicyEngine
from tools.validation import credential, optional_amount, reject_unknown, require_choice, require_str

logger = logging.getLogger(__name__)

RESULTS = ("success", "failure", "partial")
TIERS = ("1", "2", "3")

_ARGS = ("action_type", "target", "description", "result", "tier", "amount", "verification_key")


class LogTool:
    def __init__(self, policy: PolicyEngine, rotator: CredentialRotator, logs: ActionLog) -> None:
        self.policy = policy
        self.rotator = rotator
        self.logs = logs

    def run(self, args: dict[str, Any]) -> dict[str, Any]:
        reject_unknown(args, _ARGS, "guard_log")
        action_type = require_str(args, "action_type", 100)
        target = require_str(args, "target")
        description = require_str(args, "description")
        result = require_choice(args, "result", RESULTS)
        tier = int(require_choice({"tier": str(args.get("tier"))}, "tier", TIERS))
        amount = optional_amount(args)

        key_valid = self.rotator.validate_token(credential(args, "verification_key"))
        unverified_high_risk = tier == 1 and not key_valid

        log_id = self.logs.log_action({
            "timestamp": utc_now_iso(),
            "action_type": action_type,
            "target": target,
            "amount": amount,
            "description": description,
            "verdict": result,
            "reason": (
                "WARNING: Tier 1 action executed without valid verification"
                if unverified_high_risk
                else f"Logged with result: {result}"
            ),
            "credential_was_valid": key_valid,
            "tier": tier,
        })
        if amount > 0:
            self.policy.record_spend(amount)
        if unverified_high_risk:
            logger.warning("unverified tier-1 action logged: %s → %s", action_type, target)

        return {
            "logged": True,
            "log_id": log_id,
            "warning": (
                "This Tier 1 action was not verified before execution. "
                "Always call guard_verify before sensitive actions."
                if unverified_high_risk
                else None
            ),
            "timestamp": utc_now_iso(),
        }
