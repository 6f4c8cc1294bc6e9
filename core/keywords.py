"""Lexical matching shared by drift assessment and session review.

Matching is deliberately loose: a token and a keyword match when either one
contains the other, so "emails" matches "email" and "scheduled" matches
"schedule".  Short tokens can over-match ("cat" hits "category").
"""

from __future__ import annotations

import re
from typing import Iterable

# Each goal category maps to words that indicate related activity.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "email": (
        "email", "inbox", "mail", "message", "reply", "forward", "draft",
        "compose", "send", "newsletter", "unsubscribe", "attachment",
    ),
    "calendar": (
        "calendar", "schedule", "meeting", "event", "appointment", "reminder",
        "agenda", "invite", "reschedule", "block", "slot", "availability",
    ),
    "productivity": (
        "task", "todo", "checklist", "organize", "prioritize", "plan",
        "deadline", "project", "goal", "focus", "track", "progress",
    ),
    "coding": (
        "code", "debug", "deploy", "commit", "branch", "merge", "test",
        "build", "compile", "script", "function", "api", "endpoint",
        "repository", "pull request", "bug", "feature",
    ),
    "research": (
        "search", "research", "find", "look up", "investigate", "analyze",
        "compare", "review", "report", "summarize", "article", "paper",
    ),
    "finance": (
        "budget", "expense", "purchase", "payment", "invoice", "billing",
        "subscription", "cost", "price", "transaction", "bank", "account",
    ),
    "communication": (
        "slack", "discord", "telegram", "whatsapp", "chat", "call",
        "respond", "notify", "update", "announcement", "team",
    ),
    "files": (
        "file", "document", "folder", "download", "upload", "save",
        "create", "edit", "rename", "move", "copy", "delete", "backup",
    ),
    "shopping": (
        "buy", "purchase", "order", "cart", "checkout", "shop", "store",
        "product", "item", "delivery", "shipping", "return",
    ),
    "browsing": (
        "browse", "website", "web", "page", "link", "click", "navigate",
        "visit", "open", "tab", "bookmark",
    ),
}

_SPLIT = re.compile(r"\W+", re.ASCII)


def tokenize(text: str, min_length: int = 3) -> list[str]:
    """Lowercase *text* and split on non-word runs, keeping tokens of *min_length*+ chars."""
    return [w for w in _SPLIT.split(text.lower()) if len(w) >= min_length]


def keyword_matches(token: str, keyword: str) -> bool:
    return keyword in token or token in keyword


def category_keywords(category: str) -> tuple[str, ...]:
    """Keywords for *category*; unknown categories have none."""
    return CATEGORY_KEYWORDS.get(category, ())


def matches_category(tokens: Iterable[str], category: str) -> bool:
    keywords = category_keywords(category)
    return any(keyword_matches(t, kw) for t in tokens for kw in keywords)


def matches_any_category(tokens: Iterable[str], categories: Iterable[str]) -> bool:
    token_list = list(tokens)
    return any(matches_category(token_list, c) for c in categories)
