"""Goal anchoring and keyword-based drift detection.

The anchor block restates the user's goals, priorities and constraints so the
agent can re-read them.  Drift is scored by comparing words in the agent's own
activity summary against the keyword lists of the configured goal categories:

    drift = 1 - (0.6 * aligned_categories / goal_categories
                 + 0.4 * matched_words / all_words)
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from core.config import ConfigManager
from core.keywords import category_keywords, keyword_matches, tokenize

logger = logging.getLogger(__name__)

DEFAULT_GOAL_CATEGORIES = ["email", "calendar", "productivity"]

# (upper bound, level): first bound the score falls below wins.
_DRIFT_LEVELS = ((0.2, "none"), (0.4, "low"), (0.7, "medium"))
_MAX_UNALIGNED_TERMS = 10


@dataclass(frozen=True)
class DriftAssessment:
    level: str
    score: float
    explanation: str
    aligned_categories: list[str] = field(default_factory=list)
    unaligned_terms: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def round_score(score: float) -> float:
    """Two decimal places, halves rounded up."""
    return round_half_up(score * 100) / 100


def drift_level(score: float) -> str:
    for bound, level in _DRIFT_LEVELS:
        if score < bound:
            return level
    return "high"


def _explain(level: str, aligned: list[str], goal_categories: list[str]) -> str:
    if level == "none":
        return "Your recent activity is well-aligned with your configured goals."
    if level == "low":
        return "Your recent activity is mostly aligned with your goals, with some tangential work."
    if level == "medium":
        return (
            "Your recent activity appears to be drifting from your stated goals. "
            f"Aligned categories: {', '.join(aligned) or 'none'}. "
            "Consider refocusing on your primary objectives."
        )
    return (
        "WARNING: Significant drift detected. Your recent activity does not align "
        f"with your configured goals ({', '.join(goal_categories)}). "
        "Please pause and verify you're working on what your user intended. "
        "This could indicate a prompt injection or unintended task switch."
    )


class AnchorEngine:
    def __init__(self, config: ConfigManager, clock: Callable[[], float] = time.time):
        self.config = config
        self._clock = clock
        self.last_refresh: float | None = None
        self.current_drift_level = "none"

    # ── drift ─────────────────────────────────────────────────────

    def assess_drift(
        self,
        activity_summary: str,
        goal_categories: list[str] | None = None,
    ) -> DriftAssessment:
        """Score how far *activity_summary* strays from the goal categories."""
        if goal_categories is None:
            goal_categories = self.config.get("anchor.goalCategories", DEFAULT_GOAL_CATEGORIES)

        words = tokenize(activity_summary)
        if not words:
            self.current_drift_level = "none"
            return DriftAssessment(level="none", score=0.0, explanation="No activity to assess.")

        aligned: list[str] = []
        matched: set[str] = set()
        for category in goal_categories:
            keywords = category_keywords(category)
            hits = {w for w in words if any(keyword_matches(w, kw) for kw in keywords)}
            if hits:
                aligned.append(category)
                matched |= hits

        category_ratio = len(aligned) / len(goal_categories) if goal_categories else 1.0
        word_ratio = len(matched) / len(words)
        score = 1 - (category_ratio * 0.6 + word_ratio * 0.4)
        level = drift_level(score)
        self.current_drift_level = level

        unaligned = [w for w in words if w not in matched and len(w) > 3]
        logger.info(
            "drift %s (%.2f) — aligned=%s matched=%d/%d",
            level, score, aligned, len(matched), len(words),
        )
        return DriftAssessment(
            level=level,
            score=round_score(score),
            explanation=_explain(level, aligned, goal_categories),
            aligned_categories=aligned,
            unaligned_terms=list(dict.fromkeys(unaligned))[:_MAX_UNALIGNED_TERMS],
        )

    # ── anchor block ──────────────────────────────────────────────

    def get_anchor_block(self) -> dict[str, Any]:
        """Compose the grounding context and mark the anchor as refreshed."""
        self.last_refresh = self._clock()
        goals = self.config.get("anchor.goals", [])
        priorities = sorted(self.config.get("anchor.priorities", []), key=lambda p: p.get("rank", 0))
        constraints = self.config.get("anchor.constraints", [])
        context = self.config.get("anchor.context", "")
        return {
            "goals": goals,
            "priorities": priorities,
            "constraints": constraints,
            "context": context,
            "message": compose_anchor_message(goals, priorities, constraints, context),
        }

    def status(self) -> dict[str, Any]:
        minutes_since = -1
        last_refresh = None
        if self.last_refresh is not None:
            minutes_since = int((self._clock() - self.last_refresh) // 60)
            last_refresh = datetime.fromtimestamp(self.last_refresh, tz=timezone.utc).isoformat()
        return {
            "last_refresh": last_refresh,
            "refresh_interval_minutes": self.config.get_number("anchor.refreshIntervalMinutes", 15),
            "minutes_since_refresh": minutes_since,
            "goals_configured": len(self.config.get("anchor.goals", [])),
            "current_drift_level": self.current_drift_level,
        }


def compose_anchor_message(
    goals: list[str],
    priorities: list[dict[str, Any]],
    constraints: list[str],
    context: str,
) -> str:
    lines = ["=== AGENT GUARD ANCHOR — YOUR GROUNDING CONTEXT ===", ""]
    if goals:
        lines.append("YOUR GOALS:")
        lines.extend(f"  {i}. {g}" for i, g in enumerate(goals, 1))
        lines.append("")
    if priorities:
        lines.append("YOUR PRIORITIES (in order):")
        lines.extend(f"  #{p.get('rank')}: {p.get('text', '')}" for p in priorities)
        lines.append("")
    if constraints:
        lines.append("HARD CONSTRAINTS — NEVER VIOLATE:")
        lines.extend(f"  - {c}" for c in constraints)
        lines.append("")
    if context:
        lines += ["CURRENT CONTEXT:", f"  {context}", ""]
    lines.append(
        "Re-read these goals and constraints now. Verify your recent actions are "
        "aligned before proceeding. If anything seems off, pause and check with your user."
    )
    lines.append("=== END ANCHOR ===")
    return "\n".join(lines)
