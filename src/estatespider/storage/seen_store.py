"""Cross-run seen-key store in Redis

Keeps every emitted identity key in a Redis set so several workers, or runs
on machines without the prior CSV, share dedup state. Connection problems
are non-fatal: the run falls back to within-run dedup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Set

import redis.asyncio as aioredis

from ..common.logger import get_logger

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = get_logger(__name__)


class RedisSeenStore:
    """Redis set of identity keys under ``{key_prefix}:keys``"""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: str | None = None,
        db: int = 0,
        key_prefix: str = "estatespider:seen",
        client: "Redis | None" = None,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.db = db
        self.key_prefix = key_prefix
        self.keys_key = f"{key_prefix}:keys"
        self.client: Redis | None = client

    async def connect(self) -> bool:
        """Connect and ping; False when Redis is unreachable"""
        if self.client is None:
            self.client = aioredis.Redis(
                host=self.host,
                port=self.port,
                password=self.password,
                db=self.db,
                decode_responses=True,
                socket_connect_timeout=2,
            )
        try:
            await self.client.ping()
        except (ConnectionRefusedError, TimeoutError, aioredis.ConnectionError, aioredis.TimeoutError) as e:
            logger.warning(f"redis unavailable at {self.host}:{self.port} db={self.db}: {e}")
            await self.close()
            return False
        logger.info(f"connected to redis {self.host}:{self.port}, key: {self.keys_key}")
        return True

    async def load_keys(self) -> Set[str]:
        if self.client is None:
            return set()
        try:
            return set(await self.client.smembers(self.keys_key))
        except aioredis.RedisError as e:
            logger.warning(f"could not read seen keys: {e}")
            return set()

    async def add_keys(self, keys: Iterable[str]) -> int:
        """Record keys; returns how many were new to the store"""
        batch = [key for key in keys if key]
        if self.client is None or not batch:
            return 0
        try:
            return int(await self.client.sadd(self.keys_key, *batch))
        except aioredis.RedisError as e:
            logger.warning(f"could not store seen keys: {e}")
            return 0

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None
