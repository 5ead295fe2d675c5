"""
Tests for password hashing, the token codec and the login-attempt tracker.

Run with: pytest tests/test_security.py -v
"""

import threading
from datetime import timedelta

import pytest

from conftest import FakeClock
from roadbook_auth.core.config import Settings
from roadbook_auth.core.errors import AccountLocked, InvalidTokenSignature, TokenExpired
from roadbook_auth.core.login_attempts import InMemoryLoginAttemptTracker
from roadbook_auth.core.security import ACCESS_TOKEN, REFRESH_TOKEN, mask_email, normalize_email
from roadbook_auth.schemas.auth import TokenPayload


@pytest.fixture
def payload():
    return TokenPayload(
        user_id="user-123",
        role="APPRENTICE",
        email="a@x.com",
        display_name="Alex Driver",
        token_id="tid-abc",
        token_type=ACCESS_TOKEN,
    )


# ============================================
# PasswordHasher Tests
# ============================================

class TestPasswordHasher:
    """Tests for PasswordHasher."""

    def test_password_hashing(self, hasher):
        """Hash is one-way and verifies only the original password."""
        hashed = hasher.hash("testpassword123")

        assert hashed != "testpassword123"
        assert hashed.startswith("$2b$")
        assert hasher.verify("testpassword123", hashed) is True
        assert hasher.verify("wrongpassword", hashed) is False

    def test_hashes_are_salted(self, hasher):
        assert hasher.hash("same-password") != hasher.hash("same-password")

    def test_cost_factor_is_configurable(self, hasher):
        assert "$04$" in hasher.hash("x" * 10)

    def test_malformed_digest_does_not_raise(self, hasher):
        assert hasher.verify("anything", "not-a-bcrypt-hash") is False

    def test_dummy_verify_runs(self, hasher):
        hasher.dummy_verify("whatever")


# ============================================
# TokenCodec Tests
# ============================================

class TestTokenCodec:
    """Tests for TokenCodec."""

    def test_issue_and_verify(self, codec, payload):
        token = codec.issue(payload, "secret-a", timedelta(minutes=15))
        decoded = codec.verify(token, "secret-a", expected_type=ACCESS_TOKEN)

        assert decoded.user_id == "user-123"
        assert decoded.role == "APPRENTICE"
        assert decoded.email == "a@x.com"
        assert decoded.display_name == "Alex Driver"
        assert decoded.token_id == "tid-abc"
        assert decoded.token_type == ACCESS_TOKEN
        assert decoded.expires_at is not None

    def test_wrong_key_is_rejected(self, codec, payload):
        """A token signed with one key never verifies under the other."""
        token = codec.issue(payload, "access-key", timedelta(minutes=15))

        with pytest.raises(InvalidTokenSignature):
            codec.verify(token, "refresh-key")

    def test_expired_token(self, codec, payload):
        token = codec.issue(payload, "secret-a", timedelta(seconds=-30))

        with pytest.raises(TokenExpired):
            codec.verify(token, "secret-a")

    def test_wrong_token_type(self, codec, payload):
        token = codec.issue(payload, "secret-a", timedelta(minutes=15))

        with pytest.raises(InvalidTokenSignature):
            codec.verify(token, "secret-a", expected_type=REFRESH_TOKEN)

    @pytest.mark.parametrize("garbage", ["", "garbage", "a.b.c", "eyJhbGciOiJIUzI1NiJ9.e30."])
    def test_malformed_tokens(self, codec, garbage):
        with pytest.raises(InvalidTokenSignature):
            codec.verify(garbage, "secret-a")

    def test_tampered_payload(self, codec, payload):
        token = codec.issue(payload, "secret-a", timedelta(minutes=15))
        other = codec.issue(payload.model_copy(update={"role": "ADMIN"}), "secret-b", timedelta(minutes=15))
        header, _, signature = token.split(".")
        forged = ".".join([header, other.split(".")[1], signature])

        with pytest.raises(InvalidTokenSignature):
            codec.verify(forged, "secret-a")

    def test_tokens_minted_together_are_distinct(self, codec, payload):
        """Same payload, same second: the per-token jti still makes them unique."""
        first = codec.issue(payload, "secret-a", timedelta(days=7))
        second = codec.issue(payload, "secret-a", timedelta(days=7))
        assert first != second


def test_email_helpers():
    assert normalize_email("  A@X.COM ") == "a@x.com"
    assert mask_email("alex@example.com") == "ale***"


# ============================================
# Login-Attempt Tracker Tests
# ============================================

class TestLoginAttemptTracker:
    """Tests for InMemoryLoginAttemptTracker."""

    def test_not_locked_below_threshold(self, tracker):
        for _ in range(4):
            tracker.record_failure("a@x.com")

        assert tracker.is_locked("a@x.com") == (False, 0)
        assert tracker.get_failures("a@x.com") == 4

    def test_locked_at_threshold(self, tracker):
        for _ in range(5):
            tracker.record_failure("a@x.com")

        locked, retry_after = tracker.is_locked("a@x.com")
        assert locked is True
        assert 899 <= retry_after <= 901

    def test_identifiers_are_independent(self, tracker):
        for _ in range(5):
            tracker.record_failure("a@x.com")

        assert tracker.is_locked("b@x.com") == (False, 0)

    def test_window_slides_from_last_failure(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure("a@x.com")

        clock.advance(600)
        tracker.record_failure("a@x.com")

        clock.advance(600)
        locked, retry_after = tracker.is_locked("a@x.com")
        assert locked is True
        assert 299 <= retry_after <= 301

    def test_counter_dropped_after_window(self, tracker, clock):
        for _ in range(5):
            tracker.record_failure("a@x.com")

        clock.advance(15 * 60)

        assert tracker.is_locked("a@x.com") == (False, 0)
        assert tracker.get_failures("a@x.com") == 0

    def test_failures_below_threshold_also_expire(self, tracker, clock):
        for _ in range(3):
            tracker.record_failure("a@x.com")
        clock.advance(15 * 60)

        assert tracker.record_failure("a@x.com") == 1

    def test_success_clears_counter(self, tracker):
        for _ in range(4):
            tracker.record_failure("a@x.com")
        tracker.record_success("a@x.com")

        assert tracker.get_failures("a@x.com") == 0

    def test_cleanup_all(self, tracker, clock):
        tracker.record_failure("a@x.com")
        clock.advance(60)
        tracker.record_failure("b@x.com")
        clock.advance(15 * 60 - 30)

        assert tracker.cleanup_all() == 1
        assert tracker.get_failures("b@x.com") == 1

    def test_concurrent_failures_are_not_lost(self):
        tracker = InMemoryLoginAttemptTracker(max_attempts=10_000, lockout_seconds=900, clock=FakeClock())

        def hammer():
            for _ in range(200):
                tracker.record_failure("a@x.com")

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tracker.get_failures("a@x.com") == 1600

    def test_begin_attempt_admits_up_to_threshold(self, tracker):
        admitted = [tracker.begin_attempt("a@x.com") for _ in range(5)]

        assert admitted == [(True, 0)] * 5
        assert tracker.begin_attempt("a@x.com") == (False, 900)
        assert tracker.get_failures("a@x.com") == 6

    def test_begin_attempt_then_success_clears(self, tracker):
        tracker.begin_attempt("a@x.com")
        tracker.record_success("a@x.com")

        assert tracker.get_failures("a@x.com") == 0

    def test_concurrent_begin_attempt_admits_exactly_threshold(self):
        tracker = InMemoryLoginAttemptTracker(max_attempts=5, lockout_seconds=900, clock=FakeClock())
        admitted = []
        guard = threading.Lock()

        def attempt():
            for _ in range(50):
                allowed, _ = tracker.begin_attempt("a@x.com")
                if allowed:
                    with guard:
                        admitted.append(1)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 5


def test_account_locked_reports_minutes():
    exc = AccountLocked(61)
    assert exc.retry_after == 61
    assert exc.retry_after_minutes == 2
    assert exc.status_code == 429


def test_settings_derived_values(settings):
    assert settings.access_token_expire_seconds == 15 * 60
    assert settings.refresh_token_expire_seconds == 7 * 24 * 3600
    assert settings.lockout_seconds == 15 * 60
    assert settings.cleanup_interval_minutes == 10
    assert not hasattr(settings, "environment")
    assert "app_env" not in Settings.model_fields
