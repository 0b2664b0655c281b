"""
缓存后端适配器
  RedisValueStore  快速层：低延迟、可被外部 TTL 淘汰
  MongoValueStore  持久层：真实数据源（authoritative）

两个适配器接口一致（get / set / delete / stats），后端未启用或调用失败时
统一抛出 StoreUnavailable，由上层值缓存吸收。
"""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from fee_service.db import get_mongo_collection, get_redis
from fee_service.errors import StoreUnavailable
from fee_service.models.protocol import CacheKey

logger = logging.getLogger(__name__)

NAN_SENTINEL = "NaN"


def parse_value(raw: Any) -> Optional[float]:
    """将后端存储的原始值解析为 float；NaN 原样返回，无法解析返回 None"""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.debug(f"无法解析的缓存值: {raw!r}")
        return None


def format_value(value: float) -> str:
    return NAN_SENTINEL if math.isnan(value) else repr(float(value))


class ValueStore(ABC):
    """键值后端的统一接口"""

    name: str = "store"
    authoritative: bool = False

    @abstractmethod
    async def get(self, key: CacheKey) -> Optional[float]:
        ...

    @abstractmethod
    async def set(self, key: CacheKey, value: float) -> None:
        ...

    @abstractmethod
    async def delete(self, key: CacheKey) -> None:
        ...

    async def stats(self) -> dict:
        return {"status": "unknown"}


class RedisValueStore(ValueStore):
    """快速层（Redis）"""

    name = "redis"

    def __init__(self, client_factory: Callable[[], Awaitable[Any]] = get_redis):
        self._client_factory = client_factory

    async def _client(self):
        client = await self._client_factory()
        if client is None:
            raise StoreUnavailable(self.name, "未启用")
        return client

    async def get(self, key: CacheKey) -> Optional[float]:
        client = await self._client()
        try:
            raw = await client.get(key.text)
        except Exception as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc
        return parse_value(raw)

    async def set(self, key: CacheKey, value: float) -> None:
        client = await self._client()
        try:
            await client.set(key.text, format_value(value))
        except Exception as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc

    async def delete(self, key: CacheKey) -> None:
        client = await self._client()
        try:
            await client.delete(key.text)
        except Exception as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc

    async def stats(self) -> dict:
        try:
            client = await self._client()
            return {"keys": await client.dbsize(), "status": "healthy"}
        except StoreUnavailable:
            return {"status": "disabled"}
        except Exception as exc:
            return {"status": "error", "error": str(exc)}


class MongoValueStore(ValueStore):
    """持久层（MongoDB），文档结构 {protocol, attribute, date, value}"""

    name = "mongodb"
    authoritative = True

    def __init__(self, collection_factory: Callable[[], Awaitable[Any]] = get_mongo_collection):
        self._collection_factory = collection_factory

    async def _collection(self):
        collection = await self._collection_factory()
        if collection is None:
            raise StoreUnavailable(self.name, "未启用")
        return collection

    @staticmethod
    def _query(key: CacheKey) -> dict:
        return {"protocol": key.protocol, "attribute": key.attribute, "date": key.date}

    async def get(self, key: CacheKey) -> Optional[float]:
        collection = await self._collection()
        try:
            doc = await collection.find_one(self._query(key))
        except Exception as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc
        if not doc:
            return None
        return parse_value(doc.get("value"))

    async def set(self, key: CacheKey, value: float) -> None:
        collection = await self._collection()
        query = self._query(key)
        try:
            await collection.update_one(
                query,
                {"$set": {**query, "value": float(value)}},
                upsert=True,
            )
        except Exception as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc

    async def delete(self, key: CacheKey) -> None:
        collection = await self._collection()
        try:
            await collection.delete_one(self._query(key))
        except Exception as exc:
            raise StoreUnavailable(self.name, str(exc)) from exc

    async def stats(self) -> dict:
        try:
            collection = await self._collection()
            return {"documents": await collection.count_documents({}), "status": "healthy"}
        except StoreUnavailable:
            return {"status": "disabled"}
        except Exception as exc:
            return {"status": "error", "error": str(exc)}
