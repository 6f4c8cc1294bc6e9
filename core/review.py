"""Session review: grade a session's logged actions against goals, security and constraints.

Scoring uses keyword matching and rule-based deductions only:

    goal_alignment        share of actions that touch a configured goal category
    security_compliance   100, minus unverified sensitive actions and retries past a block
    constraint_adherence  100, minus blocked actions that hit a constraint's keywords

    overall = round(0.4 * alignment + 0.4 * security + 0.2 * adherence)
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from core.action_log import ActionLog, parse_timestamp
from core.anchor import DEFAULT_GOAL_CATEGORIES, round_half_up
from core.config import ConfigManager
from core.keywords import CATEGORY_KEYWORDS, matches_any_category, matches_category, tokenize

logger = logging.getLogger(__name__)

RETRY_WINDOW = timedelta(minutes=5)
MAX_BEST_ACTIONS = 3
MAX_INSIGHT_BLOCKS = 10

_TIER1_UNVERIFIED_PENALTY = 15
_TIER2_UNVERIFIED_PENALTY = 5
_RETRY_PENALTY = 20
_CONSTRAINT_PENALTY = 25

_GRADES = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))
_BLOCK_HEADER = "## Session Review"


def letter_grade(score: float) -> str:
    for floor, grade in _GRADES:
        if score >= floor:
            return grade
    return "F"


def _action_tokens(action: dict[str, Any]) -> list[str]:
    return tokenize(f"{action['action_type']} {action['description']}")


def _is_aligned(action: dict[str, Any], goal_categories: list[str]) -> bool:
    return matches_any_category(_action_tokens(action), goal_categories)


def _unverified(action: dict[str, Any]) -> bool:
    return not action["credential_was_valid"]


def _brief(action: dict[str, Any], detail: str = "description") -> dict[str, str]:
    return {"action_type": action["action_type"], "target": action["target"], detail: action[detail]}


# ── scores ────────────────────────────────────────────────────────────────────


def score_goal_alignment(actions: list[dict[str, Any]], goal_categories: list[str]) -> int:
    if not actions:
        return 100
    aligned = sum(1 for a in actions if _is_aligned(a, goal_categories))
    return round_half_up(aligned / len(actions) * 100)


def score_security_compliance(actions: list[dict[str, Any]]) -> int:
    """Deduct for unverified tier-1/tier-2 actions and for retrying past a block."""
    score = 100
    for a in actions:
        if a["tier"] == 1 and _unverified(a):
            score -= _TIER1_UNVERIFIED_PENALTY
        if a["tier"] == 2 and _unverified(a):
            score -= _TIER2_UNVERIFIED_PENALTY

    for blocked in (a for a in actions if a["verdict"] == "block"):
        blocked_at = parse_timestamp(blocked["timestamp"])
        retried = any(
            a["id"] != blocked["id"]
            and a["action_type"] == blocked["action_type"]
            and a["verdict"] != "block"
            and timedelta(0) < parse_timestamp(a["timestamp"]) - blocked_at <= RETRY_WINDOW
            for a in actions
        )
        if retried:
            score -= _RETRY_PENALTY
    return max(0, score)


def score_constraint_adherence(actions: list[dict[str, Any]], constraints: list[str]) -> int:
    """Deduct once per blocked action whose words overlap a constraint's keywords."""
    if not constraints:
        return 100
    keyword_sets = [{w for w in tokenize(c) if len(w) > 3} for c in constraints]

    score = 100
    for a in actions:
        if a["verdict"] != "block":
            continue
        tokens = _action_tokens(a)
        if any(any(t in kw_set for t in tokens) for kw_set in keyword_sets):
            score -= _CONSTRAINT_PENALTY
    return max(0, score)


# ── highlights + insights ─────────────────────────────────────────────────────


def build_highlights(actions: list[dict[str, Any]], goal_categories: list[str]) -> dict[str, list]:
    best = [
        a for a in actions
        if a["credential_was_valid"] and a["verdict"] == "pass" and _is_aligned(a, goal_categories)
    ]
    return {
        "best_actions": [_brief(a) for a in best[:MAX_BEST_ACTIONS]],
        "drift_moments": [_brief(a) for a in actions if not _is_aligned(a, goal_categories)],
        "blocked_actions": [_brief(a, "reason") for a in actions if a["verdict"] == "block"],
        "unverified_risks": [_brief(a) for a in actions if a["tier"] == 1 and _unverified(a)],
    }


def top_actual_category(actions: list[dict[str, Any]]) -> str:
    """Category matched by the most actions across the whole keyword table; first wins ties."""
    counts: dict[str, int] = {}
    for a in actions:
        tokens = _action_tokens(a)
        for category in CATEGORY_KEYWORDS:
            if matches_category(tokens, category):
                counts[category] = counts.get(category, 0) + 1

    best, best_count = "unknown", 0
    for category, count in counts.items():
        if count > best_count:
            best, best_count = category, count
    return best


def retried_after_block(actions: list[dict[str, Any]]) -> bool:
    """Did any non-blocked action follow a same-type block within five minutes?

    Computed separately from the security deduction and may disagree with it
    in edge cases (e.g. duplicate ids).
    """
    blocked = [a for a in actions if a["verdict"] == "block"]
    for a in actions:
        if a["verdict"] == "block":
            continue
        at = parse_timestamp(a["timestamp"])
        for b in blocked:
            if b["action_type"] != a["action_type"]:
                continue
            if timedelta(0) < at - parse_timestamp(b["timestamp"]) <= RETRY_WINDOW:
                return True
    return False


def build_insights(
    alignment: int,
    security: int,
    adherence: int,
    actions: list[dict[str, Any]],
    goal_categories: list[str],
) -> list[str]:
    insights: list[str] = []

    if alignment < 70:
        insights.append(
            f"Activity drifted from configured goals. Most actions were in {top_actual_category(actions)} "
            f"but goals prioritize {', '.join(goal_categories)}."
        )

    if security < 90:
        unverified = sum(1 for a in actions if a["tier"] <= 2 and _unverified(a))
        insights.append(
            f"{unverified} sensitive actions were executed without verification. "
            "Always use guard_verify before Tier 1 actions."
        )

    if retried_after_block(actions):
        insights.append(
            "Blocked actions were retried without user approval. "
            "When blocked, ask the user before attempting alternatives."
        )

    if alignment > 85 and security > 85 and adherence > 85:
        insights.append("Strong session. Goal alignment and security compliance were both high.")

    return insights


def score_session(
    actions: list[dict[str, Any]],
    goal_categories: list[str],
    constraints: list[str],
    session_id: str = "",
    timestamp: str | None = None,
) -> dict[str, Any]:
    """Build the full review for one session's actions (oldest first)."""
    alignment = score_goal_alignment(actions, goal_categories)
    security = score_security_compliance(actions)
    adherence = score_constraint_adherence(actions, constraints)
    overall = round_half_up(alignment * 0.4 + security * 0.4 + adherence * 0.2)

    return {
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "session_id": session_id,
        "overall_grade": letter_grade(overall),
        "overall_score": overall,
        "scores": {
            "goal_alignment": alignment,
            "security_compliance": security,
            "constraint_adherence": adherence,
        },
        "action_summary": {
            "total": len(actions),
            "verified": sum(1 for a in actions if a["credential_was_valid"]),
            "blocked": sum(1 for a in actions if a["verdict"] == "block"),
            "tier_breakdown": {f"tier{t}": sum(1 for a in actions if a["tier"] == t) for t in (1, 2, 3)},
        },
        "highlights": build_highlights(actions, goal_categories),
        "insights": build_insights(alignment, security, adherence, actions, goal_categories),
    }


# ── insights log ──────────────────────────────────────────────────────────────


def render_insights_block(review: dict[str, Any]) -> str:
    day = review["timestamp"].split("T")[0]
    lines = [f"{_BLOCK_HEADER} — {day} | Grade: {review['overall_grade']} ({review['overall_score']}/100)"]
    lines.extend(f"- {insight}" for insight in review["insights"])
    return "\n".join(lines) + "\n\n"


def prepend_insights_block(existing: str, block: str, keep: int = MAX_INSIGHT_BLOCKS) -> str:
    """Put *block* first and keep only the *keep* most recent non-empty blocks."""
    blocks = re.split(f"(?={re.escape(_BLOCK_HEADER)})", block + existing)
    return "".join([b for b in blocks if b.strip()][:keep])


class ReviewEngine:
    def __init__(self, config: ConfigManager, logs: ActionLog, insights_path: Path):
        self.config = config
        self.logs = logs
        self.insights_path = insights_path

    def generate_review(self, session_id: str | None = None) -> dict[str, Any]:
        """Review *session_id*, or the most recently active session when omitted."""
        resolved = session_id or self.logs.latest_session_id()
        actions = self.logs.actions_by_session(resolved)
        review = score_session(
            actions,
            goal_categories=self.config.get("anchor.goalCategories", DEFAULT_GOAL_CATEGORIES),
            constraints=self.config.get("anchor.constraints", []),
            session_id=resolved,
        )
        logger.info(
            "review %s — %d action(s), grade %s (%d)",
            resolved or "(none)", len(actions), review["overall_grade"], review["overall_score"],
        )
        return review

    def write_insights(self, review: dict[str, Any]) -> bool:
        """Prepend *review* to the rolling insights file.  Never raises on I/O errors."""
        try:
            existing = self.insights_path.read_text(encoding="utf-8") if self.insights_path.exists() else ""
            content = prepend_insights_block(existing, render_insights_block(review))
            self.insights_path.parent.mkdir(parents=True, exist_ok=True)
            self.insights_path.write_text(content, encoding="utf-8")
        except (OSError, UnicodeError) as exc:
            logger.warning("could not update insights file %s: %s", self.insights_path, exc)
            return False
        return True
