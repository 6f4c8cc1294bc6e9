"""Tests for core/credentials.py: token derivation, grace window, secret persistence."""

from __future__ import annotations

import hashlib
import hmac
import os
import stat
from pathlib import Path

import pytest

from core.credentials import CredentialRotator, load_or_create_secret

SECRET = "ab" * 32
WINDOW_S = 30 * 60


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    # Start exactly at the beginning of window 1_000_000.
    return _Clock(1_000_000 * WINDOW_S)


@pytest.fixture
def rotator(clock: _Clock) -> CredentialRotator:
    return CredentialRotator(SECRET, rotation_minutes=30, clock=clock)


class TestTokenDerivation:
    def test_token_is_truncated_hmac_of_window_index(self, rotator: CredentialRotator) -> None:
        expected = hmac.new(SECRET.encode(), b"1000000", hashlib.sha256).hexdigest()[:16]
        assert rotator.generate_token() == expected

    def test_token_is_16_lowercase_hex(self, rotator: CredentialRotator) -> None:
        token = rotator.generate_token()
        assert len(token) == 16
        assert all(c in "0123456789abcdef" for c in token)

    def test_same_window_same_token(self, rotator: CredentialRotator, clock: _Clock) -> None:
        first = rotator.generate_token()
        clock.now += WINDOW_S - 1
        assert rotator.generate_token() == first

    def test_rotates_at_window_boundary(self, rotator: CredentialRotator, clock: _Clock) -> None:
        first = rotator.generate_token()
        clock.now += WINDOW_S
        assert rotator.generate_token() != first

    def test_different_secrets_differ(self, clock: _Clock) -> None:
        a = CredentialRotator("a" * 64, clock=clock)
        b = CredentialRotator("b" * 64, clock=clock)
        assert a.generate_token() != b.generate_token()

    def test_non_positive_rotation_rejected(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            CredentialRotator(SECRET, rotation_minutes=0)


class TestValidation:
    def test_fresh_token_validates(self, rotator: CredentialRotator) -> None:
        assert rotator.validate_token(rotator.generate_token())

    def test_previous_window_still_valid(self, rotator: CredentialRotator, clock: _Clock) -> None:
        token = rotator.generate_token()
        clock.now += WINDOW_S + 10
        assert rotator.validate_token(token)

    def test_two_windows_old_is_invalid(self, rotator: CredentialRotator, clock: _Clock) -> None:
        token = rotator.generate_token()
        clock.now += 2 * WINDOW_S
        assert not rotator.validate_token(token)

    def test_future_window_token_is_invalid(self, rotator: CredentialRotator) -> None:
        assert not rotator.validate_token(rotator.token_for_window(1_000_001))

    @pytest.mark.parametrize("bad", [None, "", "0000000000000000", "not-a-token", "ключ"])
    def test_garbage_is_false_not_exception(self, rotator: CredentialRotator, bad: str | None) -> None:
        assert rotator.validate_token(bad) is False

    def test_short_rotation_period(self, clock: _Clock) -> None:
        r = CredentialRotator(SECRET, rotation_minutes=1, clock=clock)
        token = r.generate_token()
        clock.now += 60
        assert r.validate_token(token)
        clock.now += 60
        assert not r.validate_token(token)


class TestStatus:
    def test_status_at_window_start(self, rotator: CredentialRotator) -> None:
        assert rotator.status() == {
            "rotation_minutes": 30,
            "key_age_minutes": 0,
            "key_rotates_in_minutes": 30,
        }

    def test_status_mid_window(self, rotator: CredentialRotator, clock: _Clock) -> None:
        clock.now += 12 * 60 + 30
        status = rotator.status()
        assert status["key_age_minutes"] == 12
        assert status["key_rotates_in_minutes"] == 18


class TestSecretFile:
    def test_creates_64_hex_secret_with_owner_only_mode(self, tmp_path: Path) -> None:
        path = tmp_path / "cfg" / ".secret"
        secret = load_or_create_secret(path)
        assert len(secret) == 64
        int(secret, 16)
        assert path.read_text() == secret
        if os.name == "posix":
            assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_reuses_existing_secret(self, tmp_path: Path) -> None:
        path = tmp_path / ".secret"
        first = load_or_create_secret(path)
        assert load_or_create_secret(path) == first

    def test_strips_whitespace(self, tmp_path: Path) -> None:
        path = tmp_path / ".secret"
        path.write_text(SECRET + "\n")
        assert load_or_create_secret(path) == SECRET

    def test_empty_file_is_regenerated(self, tmp_path: Path) -> None:
        path = tmp_path / ".secret"
        path.write_text("")
        secret = load_or_create_secret(path)
        assert len(secret) == 64
        assert path.read_text() == secret

    def test_unwritable_location_falls_back_to_memory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        # parent "directory" is a regular file, so mkdir/open both fail
        secret = load_or_create_secret(blocker / ".secret")
        assert len(secret) == 64

    def test_undecodable_secret_is_regenerated(self, tmp_path: Path) -> None:
        path = tmp_path / ".secret"
        path.write_bytes(b"\xff\xfe\x00garbage")
        secret = load_or_create_secret(path)
        assert len(secret) == 64
        int(secret, 16)
        assert path.read_text() == secret
