"""Bearer token verification and static credential checks."""

from __future__ import annotations

import hmac
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from notification_server.core.settings import Settings


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity extracted from a valid bearer token."""

    user_id: str
    claims: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
    """Outcome of a failed verification; carries a human readable reason."""

    reason: str


class IdentityVerifier:
    """Validate signed bearer tokens against a secret and a clock.

    `verify` never raises: every failure (missing token, bad signature,
    expired token, missing subject) is returned as `Rejected` so admission
    can treat all of them the same way.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock

    def verify(self, credential: str | None) -> VerifiedIdentity | Rejected:
        """Return the verified identity carried by `credential`."""
        if not credential:
            return Rejected("Authentication error")
        try:
            claims = jwt.decode(
                credential,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return Rejected("Authentication failed")

        expires_at = claims.get("exp")
        if expires_at is not None:
            try:
                if float(expires_at) <= self._clock():
                    return Rejected("Authentication failed")
            except (TypeError, ValueError):
                return Rejected("Authentication failed")

        # Tokens minted by older clients carry the identity as `id`.
        subject = claims.get("sub", claims.get("id"))
        if subject is None or str(subject) == "":
            return Rejected("Authentication failed")
        return VerifiedIdentity(user_id=str(subject), claims=claims)


def create_access_token(
    subject: str,
    settings: Settings,
    extra_claims: dict[str, Any] | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """Create a signed access token for `subject`."""
    to_encode: dict[str, Any] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    lifetime = expires_in or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = datetime.now(UTC) + lifetime
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def constant_time_equals(supplied: str | None, expected: str | None) -> bool:
    """Compare two credentials without leaking timing information."""
    if not supplied or not expected:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))
