"""
数据库连接管理模块
统一管理 MongoDB（异步）和 Redis（异步）连接

连接均为惰性建立、进程内复用：
  - 首个调用方发起连接任务，并发调用方等待同一任务（重复发起也无副作用）
  - 未配置或连接失败的后端在进程生命周期内保持禁用，调用方拿到 None
"""

import asyncio
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from redis.asyncio import Redis, ConnectionPool

from fee_service.config import settings

logger = logging.getLogger(__name__)

# ── 全局连接实例 ─────────────────────────────────────────
_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_collection: Optional[AsyncIOMotorCollection] = None
_mongo_connecting: Optional["asyncio.Future"] = None
_mongo_disabled: bool = False

_redis_client: Optional[Redis] = None
_redis_pool: Optional[ConnectionPool] = None
_redis_connecting: Optional["asyncio.Future"] = None
_redis_disabled: bool = False


# ── MongoDB ──────────────────────────────────────────────

async def _connect_mongodb() -> Optional[AsyncIOMotorCollection]:
    global _mongo_client, _mongo_collection, _mongo_disabled
    client = None
    try:
        client = AsyncIOMotorClient(
            settings.MONGO_URI,
            maxPoolSize=settings.MONGO_MAX_CONNECTIONS,
            serverSelectionTimeoutMS=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
            connectTimeoutMS=settings.MONGO_CONNECT_TIMEOUT_MS,
            socketTimeoutMS=settings.MONGO_SOCKET_TIMEOUT_MS,
        )
        await client.admin.command("ping")
        collection = client[settings.MONGODB_DATABASE][settings.MONGODB_COLLECTION]
        _mongo_client = client
        _mongo_collection = collection
        logger.info(f"✅ MongoDB 连接成功: {settings.MONGODB_DATABASE}.{settings.MONGODB_COLLECTION}")
        return collection
    except Exception as exc:
        logger.warning(f"⚠️ MongoDB 连接失败（持久层将在本进程内禁用）: {exc}")
        if client is not None:
            client.close()
        _mongo_disabled = True
        return None


async def get_mongo_collection() -> Optional[AsyncIOMotorCollection]:
    """获取费用缓存集合（可能为 None）"""
    global _mongo_connecting, _mongo_disabled
    if _mongo_collection is not None:
        return _mongo_collection
    if _mongo_disabled:
        return None
    if not settings.mongo_configured:
        logger.warning("MONGO_URI 未配置，MongoDB 将被禁用")
        _mongo_disabled = True
        return None
    if _mongo_connecting is None:
        _mongo_connecting = asyncio.ensure_future(_connect_mongodb())
    return await asyncio.shield(_mongo_connecting)


async def init_mongodb() -> bool:
    """启动时预热 MongoDB 连接，返回是否成功"""
    return await get_mongo_collection() is not None


# ── Redis ────────────────────────────────────────────────

async def _connect_redis() -> Optional[Redis]:
    global _redis_client, _redis_pool, _redis_disabled
    pool = None
    try:
        pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=10,
        )
        client = Redis(connection_pool=pool)
        await client.ping()
        _redis_pool = pool
        _redis_client = client
        logger.info("✅ Redis 连接成功")
        return client
    except Exception as exc:
        logger.warning(f"⚠️ Redis 连接失败（快速层将在本进程内禁用）: {exc}")
        if pool is not None:
            await pool.disconnect()
        _redis_disabled = True
        return None


async def get_redis() -> Optional[Redis]:
    """获取 Redis 客户端（可能为 None）"""
    global _redis_connecting, _redis_disabled
    if _redis_client is not None:
        return _redis_client
    if _redis_disabled:
        return None
    if not settings.redis_configured:
        logger.warning("REDIS_URL 未配置，Redis 将被禁用")
        _redis_disabled = True
        return None
    if _redis_connecting is None:
        _redis_connecting = asyncio.ensure_future(_connect_redis())
    return await asyncio.shield(_redis_connecting)


async def init_redis() -> bool:
    """启动时预热 Redis 连接，返回是否成功"""
    return await get_redis() is not None


# ── 生命周期 ─────────────────────────────────────────────

async def close_connections():
    """关闭所有数据库连接，并重置禁用状态"""
    global _mongo_client, _mongo_collection, _mongo_connecting, _mongo_disabled
    global _redis_client, _redis_pool, _redis_connecting, _redis_disabled
    if _mongo_client:
        _mongo_client.close()
        logger.info("MongoDB 连接已关闭")
    _mongo_client = None
    _mongo_collection = None
    _mongo_connecting = None
    _mongo_disabled = False

    if _redis_client:
        await _redis_client.aclose()
    if _redis_pool:
        await _redis_pool.disconnect()
        logger.info("Redis 连接已关闭")
    _redis_client = None
    _redis_pool = None
    _redis_connecting = None
    _redis_disabled = False


async def check_health() -> dict:
    """检查所有数据库连接健康状态"""
    result = {
        "mongodb": {"status": "disabled"},
        "redis": {"status": "disabled"},
    }
    if _mongo_client:
        try:
            await _mongo_client.admin.command("ping")
            result["mongodb"] = {"status": "healthy", "database": settings.MONGODB_DATABASE}
        except Exception as exc:
            result["mongodb"] = {"status": "unhealthy", "error": str(exc)}
    elif settings.mongo_configured and not _mongo_disabled:
        result["mongodb"] = {"status": "disconnected"}

    if _redis_client:
        try:
            await _redis_client.ping()
            result["redis"] = {"status": "healthy"}
        except Exception as exc:
            result["redis"] = {"status": "unhealthy", "error": str(exc)}
    elif settings.redis_configured and not _redis_disabled:
        result["redis"] = {"status": "disconnected"}

    return result
