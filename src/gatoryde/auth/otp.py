"""One-time numeric codes for trip starts and passwordless login.

Two purposes, two expiry rules:

- trip start: ``min(ride departure, issued + 6 hours)``
- email login: ``issued + 10 minutes``

Expiry is checked before the value, so a late code is always reported as
expired even when it matches.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from gatoryde.clock import Clock, as_utc, utcnow
from gatoryde.exceptions import CodeExpired, InvalidCode

TRIP_START_MAX_TTL = timedelta(hours=6)
LOGIN_CODE_TTL = timedelta(minutes=10)


@dataclass(frozen=True)
class IssuedCode:
    code: str
    expires_at: datetime


def trip_start_expiry(depart_at: datetime, now: datetime, max_ttl: timedelta = TRIP_START_MAX_TTL) -> datetime:
    """Trip-start codes die at departure or after ``max_ttl``, whichever is first."""
    return min(as_utc(depart_at), as_utc(now) + max_ttl)


def login_code_expiry(now: datetime, ttl: timedelta = LOGIN_CODE_TTL) -> datetime:
    return as_utc(now) + ttl


def hash_code(code: str) -> str:
    """SHA-256 digest used when a code is persisted."""
    return hashlib.sha256(code.encode()).hexdigest()


class OTPIssuer:
    """Generate fixed-width numeric codes and validate presented ones."""

    def __init__(self, digits: int = 6, clock: Clock = utcnow) -> None:
        if not 4 <= digits <= 8:
            raise ValueError(f"OTP width must be between 4 and 8 digits, got {digits}")
        self.digits = digits
        self._clock = clock

    def generate(self) -> str:
        return f"{secrets.randbelow(10**self.digits):0{self.digits}d}"

    def issue_trip_start(self, depart_at: datetime, max_ttl: timedelta = TRIP_START_MAX_TTL) -> IssuedCode:
        return IssuedCode(self.generate(), trip_start_expiry(depart_at, self._clock(), max_ttl))

    def issue_login(self, ttl: timedelta = LOGIN_CODE_TTL) -> IssuedCode:
        return IssuedCode(self.generate(), login_code_expiry(self._clock(), ttl))

    def validate(self, stored: str | None, presented: str, expires_at: datetime | None) -> None:
        """Raise unless ``presented`` matches ``stored`` and has not expired.

        Raises:
            InvalidCode: No code is outstanding, or the value does not match.
            CodeExpired: The code is past its expiry.
        """
        if stored is None or expires_at is None:
            raise InvalidCode("No active code for this request")
        if self._clock() > as_utc(expires_at):
            raise CodeExpired()
        if not hmac.compare_digest(stored.encode(), presented.strip().encode()):
            raise InvalidCode()
