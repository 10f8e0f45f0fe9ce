"""
Session Store

Expiring storage of conversation histories keyed by session id, backed by
Redis. Without a reachable Redis the store runs in fallback mode: nothing is
kept and every history reads back empty.
"""

import json
import logging
from typing import List, Optional, Sequence

import redis.asyncio as redis

from ..errors import PersistenceFailure, Result
from ..models import Turn

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Conversation histories stored as whole JSON values under ``session:<id>``.

    ``set`` replaces the stored list and restarts its expiry countdown;
    appending is the caller's job.
    """

    KEY_PREFIX = 'session:'

    def __init__(
        self,
        redis_url: str = "",
        ttl_seconds: int = 3600,
        client: Optional[redis.Redis] = None
    ):
        """
        Initialize the session store.

        Args:
            redis_url: Redis connection URL; empty means fallback mode
            ttl_seconds: Default expiry applied on every write
            client: Pre-built async Redis client (skips ``connect``)
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.client = client

    @property
    def available(self) -> bool:
        """Whether a backing store is connected."""
        return self.client is not None

    async def connect(self) -> bool:
        """
        Connect to Redis if a URL is configured.

        Connection failure is not fatal; the store falls back to keeping
        nothing.

        Returns:
            True if a backing store is available
        """
        if self.client is not None:
            return True

        if not self.redis_url:
            logger.info("No REDIS_URL provided, using in-memory fallback")
            return False

        client = redis.from_url(self.redis_url, decode_responses=True)
        try:
            await client.ping()
        except Exception as e:
            logger.warning(f"Failed to connect to Redis, using in-memory fallback: {e}")
            await client.aclose()
            return False

        self.client = client
        logger.info("Connected to Redis")
        return True

    async def close(self) -> None:
        """Close the Redis connection, if any."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    async def get(self, session_id: str) -> Result[List[Turn]]:
        """
        Load the history for a session.

        Returns:
            Result with the ordered turns; empty when the key is absent,
            expired, unreadable, or no backing store is available
        """
        if self.client is None:
            return Result.success([])

        try:
            raw = await self.client.get(self._key(session_id))
        except Exception as e:
            logger.error(f"Error reading session {session_id}: {e}")
            return Result.failure(PersistenceFailure(str(e)), [])

        if raw is None:
            return Result.success([])

        try:
            turns = [Turn.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Corrupt history for session {session_id}: {e}")
            return Result.failure(PersistenceFailure(f"Corrupt history: {e}"), [])

        return Result.success(turns)

    async def set(
        self,
        session_id: str,
        turns: Sequence[Turn],
        ttl: Optional[int] = None
    ) -> Result[bool]:
        """
        Replace the history for a session and reset its expiry.

        Args:
            session_id: Session identifier
            turns: Full ordered history to store
            ttl: Expiry in seconds (default: store's ``ttl_seconds``)

        Returns:
            Result whose value is True if the history was written
        """
        ttl = self.ttl_seconds if ttl is None else ttl
        if ttl <= 0:
            error = PersistenceFailure(f"ttl must be positive, got {ttl}")
            logger.error(f"Refusing to write session {session_id}: {error}")
            return Result.failure(error, False)

        if self.client is None:
            return Result.success(False)

        payload = json.dumps([turn.to_dict() for turn in turns])
        try:
            await self.client.set(self._key(session_id), payload, ex=ttl)
        except Exception as e:
            logger.error(f"Error writing session {session_id}: {e}")
            return Result.failure(PersistenceFailure(str(e)), False)

        logger.debug(f"Stored {len(turns)} turns for session {session_id}")
        return Result.success(True)

    async def delete(self, session_id: str) -> Result[bool]:
        """
        Remove a session's history immediately. Deleting an absent session
        succeeds.
        """
        if self.client is None:
            return Result.success(False)

        try:
            removed = await self.client.delete(self._key(session_id))
        except Exception as e:
            logger.error(f"Error deleting session {session_id}: {e}")
            return Result.failure(PersistenceFailure(str(e)), False)

        if removed:
            logger.info(f"Cleared session {session_id}")
        return Result.success(bool(removed))
