"""
Layer 2 – 缓存层
(protocol, attribute, date) → 数值 的两级值缓存
优先级：Redis（内存） → MongoDB（持久化）

读：按层级顺序查询，第一个有效（非 NaN）值胜出，并回填之前未命中的更快层级
写：所有层级并发写入，仅以 authoritative 层（MongoDB）的结果判定成功
任一层级不可用时降级为"缺失"，不向调用方抛出存储异常
"""

import asyncio
import logging
import math
from typing import List, Optional, Sequence

from fee_service.db.stores import MongoValueStore, RedisValueStore, ValueStore
from fee_service.errors import StoreUnavailable
from fee_service.models.protocol import CacheKey

logger = logging.getLogger(__name__)


def _make_key(protocol: str, attribute: str, date: str) -> CacheKey:
    """生成各层通用的缓存键"""
    return CacheKey(protocol, attribute, date)


def _is_valid(value: Optional[float]) -> bool:
    return value is not None and not math.isnan(value)


class TieredValueCache:
    """多级值缓存；tiers 按读取优先级排列（最快的在前）"""

    def __init__(self, tiers: Sequence[ValueStore]):
        self._tiers: List[ValueStore] = list(tiers)

    @property
    def tiers(self) -> List[ValueStore]:
        return list(self._tiers)

    async def _read(self, tier: ValueStore, key: CacheKey) -> Optional[float]:
        try:
            return await tier.get(key)
        except StoreUnavailable as exc:
            logger.debug(f"缓存读取跳过（{tier.name}）: {exc}")
        except Exception as exc:
            logger.warning(f"缓存读取失败（{tier.name}）: {key.text}: {exc}")
        return None

    async def _write(self, tier: ValueStore, key: CacheKey, value: float) -> bool:
        try:
            await tier.set(key, value)
            return True
        except StoreUnavailable as exc:
            logger.debug(f"缓存写入跳过（{tier.name}）: {exc}")
        except Exception as exc:
            logger.warning(f"缓存写入失败（{tier.name}）: {key.text}: {exc}")
        return False

    async def get(self, protocol: str, attribute: str, date: str) -> Optional[float]:
        key = _make_key(protocol, attribute, date)
        for index, tier in enumerate(self._tiers):
            value = await self._read(tier, key)
            if not _is_valid(value):
                continue
            logger.debug(f"缓存命中（{tier.name}）: {key.text}")
            if index > 0:
                await asyncio.gather(*(self._write(t, key, value) for t in self._tiers[:index]))
            return value
        return None

    async def set(self, protocol: str, attribute: str, date: str, value: float) -> bool:
        """写入所有层级，返回 authoritative 层是否写入成功"""
        key = _make_key(protocol, attribute, date)
        results = await asyncio.gather(*(self._write(t, key, value) for t in self._tiers))
        authoritative = [ok for tier, ok in zip(self._tiers, results) if tier.authoritative]
        if not authoritative:
            return False
        return all(authoritative)

    async def delete(self, protocol: str, attribute: str, date: str) -> None:
        key = _make_key(protocol, attribute, date)
        for tier in self._tiers:
            try:
                await tier.delete(key)
            except StoreUnavailable as exc:
                logger.debug(f"缓存删除跳过（{tier.name}）: {exc}")
            except Exception as exc:
                logger.warning(f"缓存删除失败（{tier.name}）: {key.text}: {exc}")

    async def stats(self) -> dict:
        """返回各缓存后端统计信息"""
        return {tier.name: await tier.stats() for tier in self._tiers}


def build_value_cache() -> TieredValueCache:
    """默认层级：Redis → MongoDB"""
    return TieredValueCache([RedisValueStore(), MongoValueStore()])
