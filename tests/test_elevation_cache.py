"""
Tests for the credential cache and sudo diagnostic classification.
"""

from __future__ import annotations

import pytest

from chrootmanager.core.elevation import CredentialCache, SessionSignal, classify_sudo_stderr


class TestCredentialCache:
    def test_starts_invalid(self, fake_clock):
        cache = CredentialCache(clock=fake_clock)
        assert cache.is_valid() is False
        assert cache.is_flagged() is False
        assert cache.confirmed_at is None
        assert cache.remaining() == 0.0

    def test_confirm_records_time(self, fake_clock):
        cache = CredentialCache(clock=fake_clock)
        cache.confirm()
        assert cache.is_valid() is True
        assert cache.confirmed_at == fake_clock.now

    def test_ttl_boundary(self, fake_clock):
        cache = CredentialCache(ttl=100, clock=fake_clock)
        cache.confirm()

        fake_clock.advance(99.9)
        assert cache.is_valid() is True

        fake_clock.advance(0.1)
        assert cache.is_valid() is False
        # the flag alone does not know about time
        assert cache.is_flagged() is True

    def test_default_ttl_is_45_minutes(self, fake_clock):
        cache = CredentialCache(clock=fake_clock)
        cache.confirm()

        fake_clock.advance(44 * 60)
        assert cache.is_valid() is True
        fake_clock.advance(2 * 60)
        assert cache.is_valid() is False

    def test_mark_expired_keeps_timestamp(self, fake_clock):
        cache = CredentialCache(clock=fake_clock)
        cache.confirm()
        cache.mark_expired()

        assert cache.is_valid() is False
        assert cache.confirmed_at is not None

    def test_invalidate_clears_everything(self, fake_clock):
        cache = CredentialCache(clock=fake_clock)
        cache.confirm()
        cache.invalidate()
        cache.invalidate()

        assert cache.is_valid() is False
        assert cache.confirmed_at is None

    def test_remaining(self, fake_clock):
        cache = CredentialCache(ttl=600, clock=fake_clock)
        cache.confirm()
        fake_clock.advance(120)
        assert cache.remaining() == 480

        fake_clock.advance(1000)
        assert cache.remaining() == 0.0

    def test_to_dict(self, fake_clock):
        cache = CredentialCache(ttl=60, clock=fake_clock)
        cache.confirm()
        assert cache.to_dict() == {
            "authenticated": True,
            "ttl_seconds": 60,
            "remaining_seconds": 60.0,
        }


class TestClassifySudoStderr:
    @pytest.mark.parametrize("stderr", [
        "sudo: a password is required\n",
        "sudo: a terminal is required to read the password; "
        "either use the -S option to read from standard input",
        "SUDO: A PASSWORD IS REQUIRED",
    ])
    def test_expired(self, stderr):
        assert classify_sudo_stderr(stderr) is SessionSignal.EXPIRED

    @pytest.mark.parametrize("stderr", [
        "Sorry, try again.",
        "sudo: 3 incorrect password attempts",
        "bob is not in the sudoers file.  This incident will be reported.",
        "Sorry, user bob is not allowed to execute '/bin/mount' as root.",
        "Sorry, user bob may not run sudo on host.",
    ])
    def test_refused(self, stderr):
        assert classify_sudo_stderr(stderr) is SessionSignal.REFUSED

    @pytest.mark.parametrize("stderr", [
        "mkdir: cannot create directory '/x': Permission denied",
        "umount: /x: Operation not permitted",
    ])
    def test_permission_denied(self, stderr):
        assert classify_sudo_stderr(stderr) is SessionSignal.PERMISSION_DENIED

    @pytest.mark.parametrize("stderr", ["", None, "tar: Error is not recoverable"])
    def test_unrelated(self, stderr):
        assert classify_sudo_stderr(stderr) is SessionSignal.NONE

    def test_session_signal_wins_over_permission(self):
        stderr = "permission denied\nsudo: a password is required"
        assert classify_sudo_stderr(stderr) is SessionSignal.EXPIRED

    def test_localized_message_not_recognized(self):
        # German sudo build; only stock English wording is matched
        assert classify_sudo_stderr("sudo: Ein Passwort ist notwendig") is SessionSignal.NONE
