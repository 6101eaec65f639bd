"""Integration tests for passwordless email login."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from gatoryde.auth.jwt import verify_token
from gatoryde.auth.service import (
    is_edu_email,
    start_login,
    university_for,
    verify_login,
)
from gatoryde.clock import utcnow
from gatoryde.database import new_session
from gatoryde.db.models import LoginCode
from gatoryde.exceptions import CodeExpired, InvalidCode, RateLimited, ValidationFailed


def _sent_code(transport) -> str:
    """The code from the most recent login email."""
    _, subject, _ = transport.email.send_email.await_args.args
    return subject.rsplit(" ", 1)[-1]


def _redis(count: str | None = None) -> AsyncMock:
    redis = AsyncMock()
    redis.get.return_value = count
    redis.incr.return_value = 1
    return redis


class TestEmailRules:
    def test_edu_addresses(self):
        assert is_edu_email("Riley@UFL.edu ")
        assert not is_edu_email("riley@gmail.com")

    def test_university_lookup(self):
        assert university_for("riley@ufl.edu") == "University of Florida"
        assert university_for("riley@cise.ufl.edu") == "University of Florida"
        assert university_for("riley@mit.edu") is None


class TestStartLogin:
    @pytest.mark.asyncio
    async def test_emails_code_and_stores_digest(self, db, transport):
        async with new_session() as session:
            expires_at = await start_login(session, "Riley@UFL.edu", transport)
            await session.commit()

        to, subject, body = transport.email.send_email.await_args.args
        code = _sent_code(transport)
        assert to == "riley@ufl.edu"
        assert len(code) == 6 and code.isdigit()
        assert "University of Florida" in body

        async with new_session() as session:
            (record,) = (await session.execute(select(LoginCode))).scalars().all()
        assert record.email == "riley@ufl.edu"
        assert record.code_hash != code
        assert record.expires_at == expires_at

    @pytest.mark.asyncio
    async def test_non_edu_rejected(self, db, transport):
        async with new_session() as session:
            with pytest.raises(ValidationFailed):
                await start_login(session, "riley@gmail.com", transport)
        transport.email.send_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limited(self, db, transport):
        redis = _redis("5")
        async with new_session() as session:
            with pytest.raises(RateLimited):
                await start_login(session, "riley@ufl.edu", transport, redis)
        transport.email.send_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_counted(self, db, transport):
        redis = _redis()
        async with new_session() as session:
            await start_login(session, "riley@ufl.edu", transport, redis)

        key = redis.incr.await_args.args[0]
        assert key.startswith("login_otp:")
        assert "riley" not in key
        redis.expire.assert_awaited_once_with(key, 3600)

    @pytest.mark.asyncio
    async def test_new_code_retires_old_one(self, db, transport):
        async with new_session() as session:
            await start_login(session, "riley@ufl.edu", transport)
            await session.commit()
        first = _sent_code(transport)
        async with new_session() as session:
            await start_login(session, "riley@ufl.edu", transport)
            await session.commit()
        second = _sent_code(transport)

        if first != second:
            async with new_session() as session:
                with pytest.raises(InvalidCode):
                    await verify_login(session, "riley@ufl.edu", first)
        async with new_session() as session:
            user, _, _ = await verify_login(session, "riley@ufl.edu", second)
        assert user.email == "riley@ufl.edu"


class TestVerifyLogin:
    async def _start(self, transport, now=None) -> str:
        async with new_session() as session:
            await start_login(session, "riley@ufl.edu", transport, now=now)
            await session.commit()
        return _sent_code(transport)

    @pytest.mark.asyncio
    async def test_first_login_creates_user(self, db, transport):
        code = await self._start(transport)

        async with new_session() as session:
            user, token, created = await verify_login(session, "riley@ufl.edu", code)
            await session.commit()

        assert created is True
        assert user.university == "University of Florida"
        assert user.last_login is not None
        payload = verify_token(token)
        assert payload["sub"] == user.id
        assert payload["email"] == "riley@ufl.edu"

    @pytest.mark.asyncio
    async def test_returning_user(self, db, transport, make_user):
        existing = await make_user(email="riley@ufl.edu")
        code = await self._start(transport)

        async with new_session() as session:
            user, _, created = await verify_login(session, "RILEY@ufl.edu", code)

        assert created is False
        assert user.id == existing.id

    @pytest.mark.asyncio
    async def test_code_single_use(self, db, transport):
        code = await self._start(transport)
        async with new_session() as session:
            await verify_login(session, "riley@ufl.edu", code)
            await session.commit()

        async with new_session() as session:
            with pytest.raises(InvalidCode):
                await verify_login(session, "riley@ufl.edu", code)

    @pytest.mark.asyncio
    async def test_expired_code(self, db, transport):
        issued_at = utcnow()
        code = await self._start(transport, now=issued_at)

        async with new_session() as session:
            with pytest.raises(CodeExpired):
                await verify_login(session, "riley@ufl.edu", code, now=issued_at + timedelta(minutes=11))

    @pytest.mark.asyncio
    async def test_wrong_code_counted(self, db, transport):
        code = await self._start(transport)
        wrong = "000000" if code != "000000" else "111111"
        redis = _redis()

        async with new_session() as session:
            with pytest.raises(InvalidCode):
                await verify_login(session, "riley@ufl.edu", wrong, redis)

        assert redis.incr.await_args.args[0].startswith("login_verify:")

    @pytest.mark.asyncio
    async def test_too_many_attempts(self, db, transport):
        code = await self._start(transport)
        async with new_session() as session:
            with pytest.raises(RateLimited):
                await verify_login(session, "riley@ufl.edu", code, _redis("5"))

    @pytest.mark.asyncio
    async def test_success_clears_counters(self, db, transport):
        code = await self._start(transport)
        redis = _redis()
        async with new_session() as session:
            await verify_login(session, "riley@ufl.edu", code, redis)

        keys = redis.delete.await_args.args
        assert {key.split(":")[0] for key in keys} == {"login_verify", "login_otp"}

    @pytest.mark.asyncio
    async def test_no_outstanding_code(self, db):
        async with new_session() as session:
            with pytest.raises(InvalidCode):
                await verify_login(session, "riley@ufl.edu", "123456")
