"""Shared async Redis clients, one per URL."""

from __future__ import annotations

from redis.asyncio import Redis as RedisType

from .config import ServiceSettings

KEY_SEPARATOR = ":"

_CLIENTS: dict[str, RedisType] = {}


def cache_key(namespace: str, *parts: object) -> str:
    """Join ``namespace`` and ``parts`` into a colon separated Redis key."""

    return KEY_SEPARATOR.join([namespace, *(str(part) for part in parts)])


def get_redis_client(redis_url: str) -> RedisType:
    client = _CLIENTS.get(redis_url)
    if client is None:
        client = RedisType.from_url(redis_url, decode_responses=True)
        _CLIENTS[redis_url] = client
    return client


def resolve_redis(settings: ServiceSettings) -> RedisType | None:
    """Client for ``settings.redis_url``; ``None`` leaves caching off."""

    if not settings.redis_url:
        return None
    return get_redis_client(settings.redis_url)


async def close_redis_connections() -> None:
    while _CLIENTS:
        _, client = _CLIENTS.popitem()
        await client.aclose()
