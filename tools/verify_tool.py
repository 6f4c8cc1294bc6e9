"""Security checkpoint the agent calls BEFORE any sensitive action."""

from __future__ import annotations

import logging
from typing import Any

from core.action_log import ActionLog, utc_now_iso
from core.config import ConfigManager
from core.credentials import CredentialRotator
from core.policy_engine import ACTION_TYPES, PERMITTED_REASON, ActionRequest, PolicyEngine
from tools.validation import credential, optional_amount, reject_unknown, require_choice, require_str

logger = logging.getLogger(__name__)

_ARGS = ("action_type", "target", "amount", "description", "current_key")


class VerifyTool:
    def __init__(
        self,
        config: ConfigManager,
        policy: PolicyEngine,
        rotator: CredentialRotator,
        logs: ActionLog,
    ) -> None:
        self.config = config
        self.policy = policy
        self.rotator = rotator
        self.logs = logs

    def run(self, args: dict[str, Any]) -> dict[str, Any]:
        """Check the proposed action, log the attempt, and hand back a fresh token."""
        reject_unknown(args, _ARGS, "guard_verify")
        action = ActionRequest(
            action_type=require_choice(args, "action_type", ACTION_TYPES),
            target=require_str(args, "target"),
            amount=optional_amount(args),
            description=require_str(args, "description"),
        )
        key_valid = self.rotator.validate_token(credential(args, "current_key"))

        result = self.policy.check_action(action)
        fresh_key = self.rotator.generate_token()

        if not result.allowed:
            verdict, reason = "block", result.reason
        elif result.requires_confirmation:
            verdict, reason = "warn", result.reason
        else:
            verdict, reason = "pass", PERMITTED_REASON

        self.logs.log_action({
            "timestamp": utc_now_iso(),
            "action_type": action.action_type,
            "target": action.target,
            "amount": action.amount,
            "description": action.description,
            "verdict": verdict,
            "reason": reason,
            "credential_was_valid": key_valid,
        })
        logger.info("verify %s → %s (key_valid=%s)", action.action_type, verdict, key_valid)

        return {
            "verdict": verdict,
            "reason": reason,
            "verification_key": fresh_key,
            "key_expires_in_minutes": self.config.get_number("security.keyRotationMinutes", 30),
            "rules_checked": result.rules_checked,
            "daily_spend_remaining": result.daily_spend_remaining,
            "timestamp": utc_now_iso(),
        }
