# tests/v1/test_jwt_validation.py
"""Tests for bearer token verification edge cases."""

import time
from datetime import timedelta

from jose import jwt

from conftest import FakeClock
from notification_server.core.security import (
    IdentityVerifier,
    Rejected,
    VerifiedIdentity,
    constant_time_equals,
    create_access_token,
)


class TestIdentityVerifier:
    """Verification outcomes for well-formed and broken credentials."""

    def test_valid_token_yields_identity(self, verifier, make_token):
        """A token signed with the shared secret carries its subject."""
        outcome = verifier.verify(make_token("user-1"))
        assert isinstance(outcome, VerifiedIdentity)
        assert outcome.user_id == "user-1"

    def test_missing_token_is_rejected(self, verifier):
        """No credential at all is an authentication error."""
        assert verifier.verify(None) == Rejected("Authentication error")
        assert verifier.verify("") == Rejected("Authentication error")

    def test_malformed_token_is_rejected(self, verifier):
        """Garbage never raises."""
        assert verifier.verify("not.a.valid.jwt") == Rejected("Authentication failed")

    def test_wrong_secret_is_rejected(self, verifier):
        """Tokens signed with another secret fail verification."""
        token = jwt.encode({"sub": "user-1", "exp": time.time() + 60}, "wrong_secret_key", algorithm="HS256")
        assert isinstance(verifier.verify(token), Rejected)

    def test_expiry_follows_injected_clock(self, test_settings):
        """A token stops verifying once the clock passes its expiry."""
        clock = FakeClock(start=time.time())
        verifier = IdentityVerifier(test_settings.jwt_secret, clock=clock)
        token = create_access_token("user-1", test_settings, expires_in=timedelta(minutes=5))

        assert isinstance(verifier.verify(token), VerifiedIdentity)
        clock.advance(10 * 60)
        assert verifier.verify(token) == Rejected("Authentication failed")

    def test_legacy_id_claim_is_accepted(self, verifier, test_settings):
        """Tokens carrying `id` instead of `sub` still identify the user."""
        token = jwt.encode({"id": "user-7", "exp": time.time() + 60}, test_settings.jwt_secret, algorithm="HS256")
        outcome = verifier.verify(token)
        assert isinstance(outcome, VerifiedIdentity)
        assert outcome.user_id == "user-7"

    def test_token_without_subject_is_rejected(self, verifier, test_settings):
        """A signed token with no identity claim is not enough."""
        token = jwt.encode({"exp": time.time() + 60}, test_settings.jwt_secret, algorithm="HS256")
        assert verifier.verify(token) == Rejected("Authentication failed")


class TestTokenHelpers:
    """Token minting and static credential comparison."""

    def test_create_access_token_includes_extra_claims(self, test_settings):
        token = create_access_token("user-1", test_settings, extra_claims={"role": "admin"})
        claims = jwt.decode(token, test_settings.jwt_secret, algorithms=[test_settings.jwt_algorithm])
        assert claims["sub"] == "user-1"
        assert claims["role"] == "admin"
        assert claims["exp"] > time.time()

    def test_constant_time_equals(self):
        assert constant_time_equals("key", "key")
        assert not constant_time_equals("key", "other")
        assert not constant_time_equals(None, "key")
        assert not constant_time_equals("key", None)
        assert not constant_time_equals("", "")
