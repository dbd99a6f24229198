from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .local_cache import LocalCache, profile_key, transcript_key
from .records import Message, Profile
from .remote_store import RemoteDocumentStore

logger = logging.getLogger(__name__)

REMOTE = "remote"
LOCAL = "local"


class PersistenceError(Exception):
    def __init__(self, operation: str, outcomes: list["TierOutcome"]) -> None:
        self.operation = operation
        self.outcomes = outcomes
        details = "; ".join(f"{outcome.tier}: {outcome.error}" for outcome in outcomes)
        super().__init__(f"{operation} failed on every storage tier ({details or 'no tiers'})")


@dataclass(frozen=True)
class TierOutcome:
    tier: str
    ok: bool
    value: Any = None
    error: Exception | None = None


@dataclass(frozen=True)
class FallbackPolicy:
    """Ordered storage tiers tried for one record family."""

    order: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.order:
            raise ValueError("FallbackPolicy needs at least one tier.")
        unknown = [tier for tier in self.order if tier not in {REMOTE, LOCAL}]
        if unknown:
            raise ValueError(f"Unknown storage tiers: {', '.join(unknown)}")


PROFILE_POLICY = FallbackPolicy((REMOTE, LOCAL))
TRANSCRIPT_POLICY = FallbackPolicy((LOCAL,))

TierCall = Callable[[str], Awaitable[Any]]


class PersistenceGateway:
    def __init__(
        self,
        *,
        remote: RemoteDocumentStore,
        cache: LocalCache,
        profile_policy: FallbackPolicy = PROFILE_POLICY,
        transcript_policy: FallbackPolicy = TRANSCRIPT_POLICY,
    ) -> None:
        self.remote = remote
        self.cache = cache
        self.profile_policy = profile_policy
        if REMOTE in transcript_policy.order:
            raise ValueError("Transcripts are kept on the local tier only.")
        self.transcript_policy = transcript_policy

    async def _attempt(self, tier: str, operation: str, call: TierCall) -> TierOutcome:
        try:
            value = await call(tier)
        except Exception as exc:
            logger.warning("%s failed on %s tier, falling back: %s", operation, tier, exc)
            return TierOutcome(tier=tier, ok=False, error=exc)
        return TierOutcome(tier=tier, ok=True, value=value)

    async def _first_success(self, policy: FallbackPolicy, operation: str, call: TierCall) -> TierOutcome:
        failures: list[TierOutcome] = []
        for tier in policy.order:
            outcome = await self._attempt(tier, operation, call)
            if outcome.ok:
                return outcome
            failures.append(outcome)
        raise PersistenceError(operation, failures)

    async def _first_found(self, policy: FallbackPolicy, operation: str, call: TierCall) -> TierOutcome:
        # A tier that answers "absent" does not stop the search; a later tier may hold
        # a record written while the earlier one was unreachable.
        failures: list[TierOutcome] = []
        miss: TierOutcome | None = None
        for tier in policy.order:
            outcome = await self._attempt(tier, operation, call)
            if not outcome.ok:
                failures.append(outcome)
                continue
            if outcome.value is not None:
                return outcome
            miss = miss or outcome
        if miss is not None:
            return miss
        raise PersistenceError(operation, failures)

    # Profile records

    async def save_profile(self, profile: Profile) -> TierOutcome:
        record = profile.to_dict()

        async def _write(tier: str) -> None:
            if tier == REMOTE:
                await self.remote.set(profile.uid, record)
            else:
                self.cache.set(profile_key(profile.uid), record)

        return await self._first_success(self.profile_policy, "save_profile", _write)

    async def load_profile(self, uid: str) -> Profile | None:
        async def _read(tier: str) -> dict[str, Any] | None:
            if tier == REMOTE:
                return await self.remote.get(uid)
            return self.cache.get(profile_key(uid))

        outcome = await self._first_found(self.profile_policy, "load_profile", _read)
        if outcome.value is None:
            return None
        return Profile.from_dict(outcome.value, uid=uid)

    async def update_profile(self, uid: str, fields: dict[str, Any]) -> TierOutcome:
        partial = dict(fields)

        async def _merge(tier: str) -> dict[str, Any] | None:
            if tier == REMOTE:
                await self.remote.update(uid, partial)
                return None
            key = profile_key(uid)
            current = self.cache.get(key)
            merged = {**(current if isinstance(current, dict) else {}), **partial}
            self.cache.set(key, merged)
            return merged

        return await self._first_success(self.profile_policy, "update_profile", _merge)

    # Transcripts

    async def save_transcript(self, uid: str, messages: list[Message] | tuple[Message, ...]) -> TierOutcome:
        payload = [message.to_dict() for message in messages]

        async def _write(tier: str) -> None:
            self.cache.set(transcript_key(uid), payload)

        return await self._first_success(self.transcript_policy, "save_transcript", _write)

    async def fetch_transcript(self, uid: str) -> list[Message]:
        """Like ``load_transcript`` but raises ``PersistenceError`` when the stored record is unreadable.

        An absent record is an empty transcript. Individual entries that do not decode are
        skipped so one bad entry does not cost the rest of the history.
        """

        async def _read(tier: str) -> list[Message] | None:
            raw = self.cache.get(transcript_key(uid))
            if raw is None:
                return None
            if not isinstance(raw, list):
                raise ValueError("Stored transcript is not a list.")
            messages: list[Message] = []
            for index, item in enumerate(raw):
                try:
                    messages.append(Message.from_dict(item))
                except (AttributeError, KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping unreadable chat entry %s for %s: %s", index, uid, exc)
            return messages

        outcome = await self._first_found(self.transcript_policy, "load_transcript", _read)
        return list(outcome.value or [])

    async def load_transcript(self, uid: str) -> list[Message]:
        try:
            return await self.fetch_transcript(uid)
        except PersistenceError:
            logger.exception("Chat history for %s could not be loaded; starting empty", uid)
            return []
