"""
Email verification challenges.

A challenge is a short-lived 6-character code keyed by the lowercased email
address. Issuing a new code for an address replaces the previous one. Task
creation may require a confirmed, unexpired challenge for the customer email.

Two stores implement the ``ChallengeStore`` protocol:

- ``InMemoryChallengeStore``: process-local dict. Fine for a single instance.
- ``RedisChallengeStore``: shared hash per email, for multi-instance deployments.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

import redis.asyncio as redis
import structlog
from redis.exceptions import WatchError

from app.core.errors import ChallengeExpired, CodeMismatch, ConflictError, NoChallengePending

log = structlog.get_logger()

Clock = Callable[[], datetime]

CODE_LENGTH = 6
CODE_ALPHABET = string.ascii_uppercase + string.digits


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass
class Challenge:
    code: str
    expires_at: datetime
    verified: bool = False


class ChallengeStore(Protocol):
    async def issue(self, email: str) -> str: ...

    async def confirm(self, email: str, code: str) -> None: ...

    async def is_verified(self, email: str) -> bool: ...


class InMemoryChallengeStore:
    """Process-local challenge store. State is lost on restart."""

    def __init__(self, ttl_minutes: int = 15, clock: Optional[Clock] = None):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock or _utcnow
        self._challenges: dict[str, Challenge] = {}

    async def issue(self, email: str) -> str:
        code = generate_code()
        self._challenges[normalize_email(email)] = Challenge(
            code=code, expires_at=self.clock() + self.ttl
        )
        log.info("verification.issued", email=normalize_email(email))
        return code

    async def confirm(self, email: str, code: str) -> None:
        key = normalize_email(email)
        challenge = self._challenges.get(key)
        if challenge is None:
            raise NoChallengePending()
        if self.clock() > challenge.expires_at:
            del self._challenges[key]
            raise ChallengeExpired()
        if challenge.code != code.strip().upper():
            raise CodeMismatch()
        challenge.verified = True
        log.info("verification.confirmed", email=key)

    async def is_verified(self, email: str) -> bool:
        challenge = self._challenges.get(normalize_email(email))
        if challenge is None or not challenge.verified:
            return False
        return self.clock() <= challenge.expires_at


class RedisChallengeStore:
    """Challenge store shared by every server instance through Redis.

    Each email maps to a hash ``{code, expires_at, verified}``. The key is kept
    for ``retention`` (longer than the challenge window) so an expired code is
    reported as expired rather than missing. ``confirm`` runs as a WATCH/MULTI
    transaction on the key, so a code re-issued by another instance between
    the read and the write is never marked verified.
    """

    key_prefix = "wt:email_verification:"

    def __init__(
        self,
        client: redis.Redis,
        ttl_minutes: int = 15,
        clock: Optional[Clock] = None,
        retention: timedelta = timedelta(hours=24),
        max_attempts: int = 3,
    ):
        self.client = client
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock or _utcnow
        self.retention = retention
        self.max_attempts = max_attempts

    def _key(self, email: str) -> str:
        return f"{self.key_prefix}{normalize_email(email)}"

    @staticmethod
    def _parse(data: dict) -> Optional[Challenge]:
        if not data:
            return None
        return Challenge(
            code=data["code"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
            verified=data.get("verified") == "1",
        )

    async def _load(self, key: str) -> Optional[Challenge]:
        return self._parse(await self.client.hgetall(key))

    async def issue(self, email: str) -> str:
        code = generate_code()
        key = self._key(email)
        expires_at = self.clock() + self.ttl
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(
                key,
                mapping={"code": code, "expires_at": expires_at.isoformat(), "verified": "0"},
            )
            pipe.expire(key, int(self.retention.total_seconds()))
            await pipe.execute()
        log.info("verification.issued", email=normalize_email(email), backend="redis")
        return code

    async def confirm(self, email: str, code: str) -> None:
        key = self._key(email)
        async with self.client.pipeline(transaction=True) as pipe:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    await pipe.watch(key)
                    challenge = self._parse(await pipe.hgetall(key))
                    if challenge is None:
                        raise NoChallengePending()
                    expired = self.clock() > challenge.expires_at
                    if not expired and challenge.code != code.strip().upper():
                        raise CodeMismatch()
                    pipe.multi()
                    if expired:
                        pipe.delete(key)
                    else:
                        pipe.hset(key, "verified", "1")
                    await pipe.execute()
                except WatchError:
                    log.info("verification.confirm_conflict", attempt=attempt)
                    continue
                if expired:
                    raise ChallengeExpired()
                log.info("verification.confirmed", email=normalize_email(email), backend="redis")
                return
        raise ConflictError("Verification code changed concurrently, please retry")

    async def is_verified(self, email: str) -> bool:
        challenge = await self._load(self._key(email))
        if challenge is None or not challenge.verified:
            return False
        return self.clock() <= challenge.expires_at
