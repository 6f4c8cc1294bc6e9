"""Runtime policy gate.  Every sensitive agent action is checked here first.

Rules run in a fixed order (spending, contacts, domains, action permissions,
custom rules) and the first one that blocks ends the evaluation.  Warnings
(spend above the confirmation threshold, custom ``warn`` rules) never stop
evaluation; they only mark the result as needing user confirmation.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Callable

from core.config import ConfigManager

logger = logging.getLogger(__name__)

ACTION_TYPES: tuple[str, ...] = (
    "send_message",
    "send_email",
    "make_purchase",
    "delete_file",
    "api_write",
    "install_package",
    "browse_new_domain",
    "account_change",
    "shell_command",
    "file_write",
    "calendar_modify",
    "other_sensitive",
)

MESSAGE_ACTIONS = frozenset({"send_message", "send_email"})
DOMAIN_ACTIONS = frozenset({"browse_new_domain", "api_write"})

PERMITTED_REASON = "Action permitted by all configured rules."

_CUSTOM_RULE_FIELDS = ("action_type", "target", "amount", "description")


class PolicyViolation(Exception):
    """Raised when an action is blocked by policy."""


@dataclass(frozen=True)
class ActionRequest:
    action_type: str
    target: str
    amount: float = 0.0
    description: str = ""


@dataclass
class CheckResult:
    allowed: bool
    requires_confirmation: bool
    reason: str
    rules_checked: list[str]
    daily_spend_remaining: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DailySpendState:
    used_today: float = 0.0
    reset_date: str = ""  # ISO date string; reset when stale


@dataclass
class _Evaluation:
    rules_checked: list[str] = field(default_factory=list)
    requires_confirmation: bool = False
    warning: str = ""

    def warn(self, message: str) -> None:
        self.requires_confirmation = True
        self.warning = message


def _money(amount: float) -> str:
    return f"${amount:g}"


class PolicyEngine:
    def __init__(
        self,
        config: ConfigManager,
        today: Callable[[], date] = date.today,
        spend: DailySpendState | None = None,
    ):
        self.config = config
        self._today = today
        self.spend = spend or DailySpendState(reset_date=today().isoformat())

    # ── public API ────────────────────────────────────────────────

    def check_action(self, action: ActionRequest) -> CheckResult:
        """Evaluate *action* against every configured rule, stopping at the first block."""
        ev = _Evaluation()
        rules = (
            self._check_spending,
            self._check_contacts,
            self._check_domains,
            self._check_action_permissions,
            self._check_custom_rules,
        )
        for rule in rules:
            block_reason = rule(action, ev)
            if block_reason is not None:
                logger.info("blocked %s → %s: %s", action.action_type, action.target, block_reason)
                return CheckResult(
                    allowed=False,
                    requires_confirmation=False,
                    reason=block_reason,
                    rules_checked=ev.rules_checked,
                    daily_spend_remaining=self.daily_spend_remaining(),
                )

        return CheckResult(
            allowed=True,
            requires_confirmation=ev.requires_confirmation,
            reason=ev.warning if ev.requires_confirmation else PERMITTED_REASON,
            rules_checked=ev.rules_checked,
            daily_spend_remaining=self.daily_spend_remaining(),
        )

    def enforce(self, action: ActionRequest) -> CheckResult:
        """Like check_action, but raise PolicyViolation when the action is blocked."""
        result = self.check_action(action)
        if not result.allowed:
            raise PolicyViolation(result.reason)
        return result

    def record_spend(self, amount: float) -> None:
        """Add *amount* to today's running total (after any date rollover)."""
        self._reset_daily_spend_if_needed()
        self.spend.used_today += amount
        logger.info("recorded spend %s — used today %s", _money(amount), _money(self.spend.used_today))

    def daily_spend_remaining(self) -> float:
        self._reset_daily_spend_if_needed()
        return max(0.0, self._daily_limit() - self.spend.used_today)

    def status(self) -> dict[str, float]:
        return {
            "daily_spend_limit": self._daily_limit(),
            "daily_spend_used": self.spend.used_today,
            "daily_spend_remaining": self.daily_spend_remaining(),
        }

    # ── rule 1: spending ──────────────────────────────────────────

    def _check_spending(self, action: ActionRequest, ev: _Evaluation) -> str | None:
        if action.amount <= 0:
            return None
        ev.rules_checked.append("spending_limit")

        per_action = self.config.get_number("security.spendingLimits.perAction", 50)
        if action.amount > per_action:
            return f"Amount {_money(action.amount)} exceeds per-action limit of {_money(per_action)}."

        daily = self._daily_limit()
        self._reset_daily_spend_if_needed()
        if self.spend.used_today + action.amount > daily:
            return (
                f"This purchase ({_money(action.amount)}) would exceed daily spend limit of "
                f"{_money(daily)}. Already spent today: ${self.spend.used_today:.2f}."
            )

        warn_above = self.config.get_number("security.spendingLimits.warnAbove", 20)
        if action.amount > warn_above:
            ev.warn(
                f"Amount {_money(action.amount)} is above the warning threshold of "
                f"{_money(warn_above)}. Please confirm with the user before proceeding."
            )
        return None

    # ── rules 2 + 3: contacts and domains ─────────────────────────

    def _check_contacts(self, action: ActionRequest, ev: _Evaluation) -> str | None:
        if action.action_type not in MESSAGE_ACTIONS:
            return None
        ev.rules_checked.append("contact_rules")
        verdict = self._check_list_rule("security.contacts", action.target)
        if verdict == "not_allowed":
            return (
                f'Contact "{action.target}" is not on the approved contacts list. '
                "In allowlist mode, messages can only be sent to approved contacts."
            )
        if verdict == "blocked":
            return f'Contact "{action.target}" is on the blocked contacts list.'
        return None

    def _check_domains(self, action: ActionRequest, ev: _Evaluation) -> str | None:
        if action.action_type not in DOMAIN_ACTIONS:
            return None
        ev.rules_checked.append("domain_rules")
        verdict = self._check_list_rule("security.domains", action.target)
        if verdict == "not_allowed":
            return f'Domain "{action.target}" is not on the approved domains list.'
        if verdict == "blocked":
            return f'Domain "{action.target}" is blocked by your security rules.'
        return None

    def _check_list_rule(self, prefix: str, target: str) -> str | None:
        """Shared allow/block-list logic.  Matching is case-insensitive substring containment."""
        mode = self.config.get(f"{prefix}.mode", "blocklist")
        allowed = self.config.get(f"{prefix}.allowed", [])
        blocked = self.config.get(f"{prefix}.blocked", [])
        target_lower = target.lower()

        if mode == "allowlist" and allowed:
            if not any(str(entry).lower() in target_lower for entry in allowed):
                return "not_allowed"
        if any(str(entry).lower() in target_lower for entry in blocked):
            return "blocked"
        return None

    # ── rule 4: action permissions ────────────────────────────────

    def _check_action_permissions(self, action: ActionRequest, ev: _Evaluation) -> str | None:
        ev.rules_checked.append("action_permissions")
        if action.action_type in self.config.get("security.blockedActions", []):
            return f'Action type "{action.action_type}" is disabled in your security configuration.'
        return None

    # ── rule 5: custom if/then rules ──────────────────────────────

    def _check_custom_rules(self, action: ActionRequest, ev: _Evaluation) -> str | None:
        rules = self.config.get("security.customRules", [])
        if not rules:
            return None
        ev.rules_checked.append("custom_rules")

        for rule in rules:
            condition = rule.get("if") if isinstance(rule, dict) else None
            if not isinstance(condition, dict):
                logger.warning("skipping malformed custom rule: %r", rule)
                continue
            if not _condition_matches(action, condition):
                continue

            field_name = condition.get("field")
            outcome = rule.get("then")
            if outcome == "block":
                return rule.get("reason") or f"Blocked by custom rule on {field_name}."
            if outcome == "warn":
                ev.warn(rule.get("reason") or f"Custom rule warning on {field_name}.")
            else:
                logger.warning("custom rule on %s has unknown outcome %r — ignored", field_name, outcome)
        return None

    # ── helpers ───────────────────────────────────────────────────

    def _daily_limit(self) -> float:
        return self.config.get_number("security.spendingLimits.daily", 200)

    def _reset_daily_spend_if_needed(self) -> None:
        today = self._today().isoformat()
        if today != self.spend.reset_date:
            if self.spend.used_today:
                logger.info("new day %s — resetting daily spend", today)
            self.spend.used_today = 0.0
            self.spend.reset_date = today


def _condition_matches(action: ActionRequest, condition: dict[str, Any]) -> bool:
    """Evaluate one ``if`` clause.  Anything malformed simply doesn't match."""
    field_name = condition.get("field")
    operator = condition.get("operator")
    expected = condition.get("value")
    if field_name not in _CUSTOM_RULE_FIELDS:
        logger.warning("custom rule references unknown field %r", field_name)
        return False
    actual = getattr(action, field_name)

    if operator == "equals":
        return actual == expected
    if operator == "contains":
        return str(expected).lower() in str(actual).lower()
    if operator in ("greater_than", "less_than"):
        try:
            left, right = float(actual), float(expected)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        return left > right if operator == "greater_than" else left < right

    logger.warning("custom rule on %s has unknown operator %r", field_name, operator)
    return False
