"""Redis connection factory shared by the record stores."""

import logging

from redis.asyncio import Redis

from billreminder.shared.config import Settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> Redis:
    """Create an asyncio Redis client from settings.

    Responses are decoded to ``str`` so stored JSON documents can be handed
    straight to pydantic.
    """
    client: Redis = Redis.from_url(settings.redis_url, decode_responses=True)
    logger.info(f"Redis client initialized for {settings.redis_url}")
    return client


def key(settings: Settings, *parts: str) -> str:
    """Build a namespaced Redis key."""
    return ":".join((settings.redis_key_prefix, *parts))
