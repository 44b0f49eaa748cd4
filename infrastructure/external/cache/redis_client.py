"""
Redis客户端 - JSON 文档读写、命名空间隔离与分布式锁

Unlike a cache, callers here need to know when Redis fails, so RedisError
propagates to the caller instead of falling back to a default.
"""
from __future__ import annotations

import asyncio
import json
import socket
from typing import Any, Callable, Optional

from redis import asyncio as aioredis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Redis客户端

    特性:
    - 自动 JSON 序列化/反序列化
    - 命名空间隔离
    - 分布式锁支持
    """

    def __init__(
        self,
        client: aioredis.Redis,
        namespace: str = "",
        serializer: Optional[Callable[[Any], str]] = None,
        deserializer: Optional[Callable[[str], Any]] = None,
    ):
        self._client = client
        self._namespace = namespace.strip(":")
        self._serializer = serializer or self._default_serializer
        self._deserializer = deserializer or json.loads

    # ============= 工具方法 =============

    def _format_key(self, key: str) -> str:
        """格式化键名，添加命名空间前缀"""
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    @staticmethod
    def _default_serializer(value: Any) -> str:
        return json.dumps(value, default=str, ensure_ascii=False)

    # ============= 读写 =============

    async def get(self, key: str) -> Any:
        """读取并反序列化；键不存在返回 None"""
        raw = await self._client.get(self._format_key(key))
        if raw is None:
            return None
        return self._deserializer(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None, nx: bool = False) -> bool:
        result = await self._client.set(
            self._format_key(key),
            self._serializer(value),
            ex=ttl if ttl and ttl > 0 else None,
            nx=nx,
        )
        return bool(result)

    async def set_many(self, mapping: dict[str, Any]) -> None:
        """在一个事务内写入多个键"""
        async with self._client.pipeline(transaction=True) as pipe:
            for key, value in mapping.items():
                pipe.set(self._format_key(key), self._serializer(value))
            await pipe.execute()

    # ============= 高级功能 =============

    async def acquire_lock(self, key: str, timeout: float = 10, blocking_timeout: float = 5) -> Lock:
        """获取锁；超时未获取时抛出 TimeoutError"""
        lock_key = f"lock:{self._format_key(key)}"
        # Coroutines share one thread, so the token must live on the lock object.
        lock = self._client.lock(lock_key, timeout=timeout, blocking_timeout=blocking_timeout, thread_local=False)
        if not await lock.acquire():
            raise TimeoutError(f"获取锁失败: {lock_key}")
        return lock

    async def release_lock(self, lock: Lock) -> None:
        try:
            await lock.release()
        except LockError as e:
            # Lock expired before release; the write already happened.
            logger.warning("redis_lock_release_failed", lock_key=lock.name, error=str(e))

    async def health_check(self) -> bool:
        """健康检查"""
        try:
            return await self._client.ping()
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False


# ============= 全局单例 =============

_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisClient] = None
_lock = asyncio.Lock()


async def init_redis_client(namespace: Optional[str] = None, **kwargs) -> RedisClient:
    """
    初始化Redis客户端

    Args:
        namespace: 命名空间
        **kwargs: 其他Redis连接参数
    """
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis客户端")

        # 构建跨平台 keepalive 选项（若可用）
        keepalive_opts = {}
        if hasattr(socket, "TCP_KEEPIDLE") and hasattr(socket, "TCP_KEEPINTVL") and hasattr(socket, "TCP_KEEPCNT"):
            keepalive_opts = {
                socket.TCP_KEEPIDLE: 1,
                socket.TCP_KEEPINTVL: 1,
                socket.TCP_KEEPCNT: 3,
            }

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
            socket_keepalive=True,
            socket_keepalive_options=keepalive_opts,
            **kwargs,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error("redis_init_failed", error=str(e))
            await client.aclose()
            raise

        _redis_client = client
        _cache_instance = RedisClient(client=client, namespace=namespace or settings.redis.namespace)
        logger.info("redis_client_initialized", namespace=namespace or settings.redis.namespace)
        return _cache_instance


async def get_redis_client() -> RedisClient:
    """获取全局Redis客户端实例"""
    if _cache_instance is None:
        return await init_redis_client()
    return _cache_instance


async def shutdown_redis_client() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_client_closed")
        finally:
            _redis_client = None
            _cache_instance = None
