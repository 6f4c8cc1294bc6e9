"""Rotating verification tokens derived from a persisted secret.

token = HMAC-SHA256(secret, str(window_index))[:16]
window_index = floor(now_ms / (rotation_minutes * 60_000))

The previous window's token is still accepted so an action issued just before
a rotation boundary does not fail.  Tokens are recomputed on demand and never
stored; the secret never leaves this process.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import os
import secrets
import time
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 16
_SECRET_BYTES = 32


def load_or_create_secret(path: Path) -> str:
    """Return the hex secret at *path*, generating it (mode 0o600) on first use.

    If the file can't be read or written, an in-memory secret is returned so
    verification keeps working for this process.
    """
    try:
        if path.exists():
            existing = path.read_text().strip()
            if existing:
                return existing
            logger.warning("secret file %s is empty — regenerating", path)
    except (OSError, UnicodeError) as exc:
        logger.warning("could not read secret %s: %s — generating a new one", path, exc)

    secret = secrets.token_hex(_SECRET_BYTES)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as fh:
            fh.write(secret)
        logger.info("generated new signing secret at %s", path)
    except OSError as exc:
        logger.error("could not persist secret to %s: %s — using in-memory secret", path, exc)
    return secret


class CredentialRotator:
    def __init__(
        self,
        secret: str,
        rotation_minutes: float = 30,
        clock: Callable[[], float] = time.time,
    ):
        if rotation_minutes <= 0:
            raise ValueError("rotation_minutes must be positive")
        self._key = secret.encode("utf-8")
        self.rotation_minutes = rotation_minutes
        self._clock = clock

    @property
    def window_ms(self) -> float:
        return self.rotation_minutes * 60_000

    def window_index(self, now: float | None = None) -> int:
        now_ms = (self._clock() if now is None else now) * 1000
        return math.floor(now_ms / self.window_ms)

    def token_for_window(self, window_index: int) -> str:
        digest = hmac.new(self._key, str(window_index).encode("ascii"), hashlib.sha256)
        return digest.hexdigest()[:TOKEN_LENGTH]

    def generate_token(self) -> str:
        return self.token_for_window(self.window_index())

    def validate_token(self, token: str | None) -> bool:
        """True iff *token* belongs to the current or the immediately preceding window."""
        if not token or not isinstance(token, str):
            return False
        candidate = token.encode("utf-8")
        current = self.window_index()
        return any(
            hmac.compare_digest(candidate, self.token_for_window(w).encode("ascii"))
            for w in (current, current - 1)
        )

    def status(self) -> dict[str, float]:
        now = self._clock()
        window_start_ms = self.window_index(now) * self.window_ms
        age_minutes = math.floor((now * 1000 - window_start_ms) / 60_000)
        return {
            "rotation_minutes": self.rotation_minutes,
            "key_age_minutes": age_minutes,
            "key_rotates_in_minutes": max(0, self.rotation_minutes - age_minutes),
        }
