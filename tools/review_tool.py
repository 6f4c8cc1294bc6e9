"""End-of-session scorecard, optionally saved to history and the insights file."""

from __future__ import annotations

from typing import Any

from core.action_log import ActionLog
from core.review import ReviewEngine
from tools.validation import optional_str, reject_unknown


class ReviewTool:
    def __init__(self, review: ReviewEngine, logs: ActionLog) -> None:
        self.review = review
        self.logs = logs

    def run(self, args: dict[str, Any]) -> dict[str, Any]:
        reject_unknown(args, ("session_id", "save"), "guard_review")
        session_id = optional_str(args, "session_id", 64)
        save = args.get("save", True)
        if not isinstance(save, bool):
            raise ValueError("save must be a boolean")

        review = self.review.generate_review(session_id)
        if save:
            self.logs.save_review(review)
            self.review.write_insights(review)
        return review
