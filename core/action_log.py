"""File-based JSON action log with atomic writes and retention."""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_DEFAULT_STATE: dict[str, Any] = {
    "next_action_id": 1,
    "next_review_id": 1,
    "actions": [],   # append-only action records, see log_action()
    "reviews": [],   # persisted session reviews
}


class StoreNotInitialized(RuntimeError):
    """History was requested before ActionLog.initialize() ran."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing 'Z' and naive values are read as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ActionLog:
    """Thin wrapper around a JSON file.  Every read goes back to disk.

    The session id is the ISO timestamp at which the store was initialized,
    so each process run is one session.
    """

    def __init__(self, path: Path, max_actions: int = 5000, max_reviews: int = 200):
        self.path = path
        self.max_actions = max_actions
        self.max_reviews = max_reviews
        self.session_id: str | None = None

    # ── lifecycle ─────────────────────────────────────────────────

    def initialize(self, session_id: str | None = None) -> None:
        """Create the log file if needed and open a new session."""
        if not self.path.exists():
            self._save(copy.deepcopy(_DEFAULT_STATE))
        self.session_id = session_id or utc_now_iso()
        logger.info("action log ready at %s (session %s)", self.path, self.session_id)

    @property
    def initialized(self) -> bool:
        return self.session_id is not None

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise StoreNotInitialized("ActionLog not initialized. Call initialize() first.")

    # ── writes ────────────────────────────────────────────────────

    def log_action(self, entry: dict[str, Any]) -> int:
        """Append an action record for the current session and return its id."""
        self._require_initialized()
        state = self._load()
        record_id = int(state.get("next_action_id", 1))
        state["actions"].append({
            "id": record_id,
            "timestamp": entry.get("timestamp") or utc_now_iso(),
            "session_id": self.session_id,
            "action_type": entry["action_type"],
            "target": entry.get("target", ""),
            "amount": float(entry.get("amount") or 0.0),
            "description": entry.get("description", ""),
            "verdict": entry["verdict"],
            "reason": entry.get("reason", ""),
            "credential_was_valid": bool(entry.get("credential_was_valid", False)),
            "tier": int(entry.get("tier") or 0),
        })
        state["next_action_id"] = record_id + 1
        self._save(state)
        return record_id

    def save_review(self, review: dict[str, Any]) -> int:
        self._require_initialized()
        state = self._load()
        review_id = int(state.get("next_review_id", 1))
        state["reviews"].append({"id": review_id, **copy.deepcopy(review)})
        state["next_review_id"] = review_id + 1
        self._save(state)
        return review_id

    def cleanup_old_logs(self, retention_days: int = 30) -> int:
        """Delete action records older than *retention_days*; return how many went."""
        self._require_initialized()
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        state = self._load()
        kept = [a for a in state["actions"] if parse_timestamp(a["timestamp"]) >= cutoff]
        removed = len(state["actions"]) - len(kept)
        if removed:
            state["actions"] = kept
            self._save(state)
            logger.info("removed %d action record(s) older than %d days", removed, retention_days)
        return removed

    # ── reads ─────────────────────────────────────────────────────

    def actions_by_session(self, session_id: str) -> list[dict[str, Any]]:
        """All actions for *session_id*, oldest first."""
        self._require_initialized()
        actions = [a for a in self._load()["actions"] if a["session_id"] == session_id]
        return sorted(actions, key=lambda a: parse_timestamp(a["timestamp"]))

    def recent_actions(self, n: int = 50) -> list[dict[str, Any]]:
        """Return the most recent *n* action records (newest first)."""
        self._require_initialized()
        actions = sorted(
            self._load()["actions"],
            key=lambda a: parse_timestamp(a["timestamp"]),
            reverse=True,
        )
        return actions[:n]

    def latest_session_id(self) -> str:
        """Session id of the newest recorded action, or "" when the log is empty."""
        recent = self.recent_actions(1)
        return recent[0]["session_id"] if recent else ""

    def reviews(self, n: int = 20) -> list[dict[str, Any]]:
        """Return the most recent *n* reviews (newest first)."""
        self._require_initialized()
        return list(reversed(self._load()["reviews"][-n:]))

    def session_stats(self) -> dict[str, Any]:
        """Counters for the current session; zeros before initialization."""
        stats: dict[str, Any] = {
            "total_actions": 0,
            "verified_actions": 0,
            "blocked_actions": 0,
            "unverified_tier1": 0,
            "tier_breakdown": {"tier1": 0, "tier2": 0, "tier3": 0},
            "session_start": self.session_id,
        }
        if not self.initialized:
            return stats

        for a in self.actions_by_session(self.session_id):  # type: ignore[arg-type]
            stats["total_actions"] += 1
            if a["credential_was_valid"]:
                stats["verified_actions"] += 1
            if a["verdict"] == "block":
                stats["blocked_actions"] += 1
            if a["tier"] == 1 and not a["credential_was_valid"]:
                stats["unverified_tier1"] += 1
            if a["tier"] in (1, 2, 3):
                stats["tier_breakdown"][f"tier{a['tier']}"] += 1
        return stats

    # ── persistence ───────────────────────────────────────────────

    def _load(self) -> dict[str, Any]:
        """Read state from disk.  Returns fresh default if file is missing."""
        if not self.path.exists():
            return copy.deepcopy(_DEFAULT_STATE)
        with open(self.path) as fh:
            state = json.load(fh)
        for key, default in _DEFAULT_STATE.items():
            state.setdefault(key, copy.deepcopy(default))
        return state

    def _save(self, state: dict[str, Any]) -> None:
        """Apply rotation limits and atomically write to disk."""
        for key, limit in (("actions", self.max_actions), ("reviews", self.max_reviews)):
            arr = state.get(key, [])
            if limit > 0 and len(arr) > limit:
                state[key] = arr[-limit:]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as fh:
                json.dump(state, fh, indent=2)
            os.replace(tmp, self.path)
        except Exception:
            os.unlink(tmp)
            raise
