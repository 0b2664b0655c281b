"""
协议费用服务
整合数据获取、处理、聚合、值缓存四层，对外提供统一的费用数据访问接口

服务实例在应用生命周期内创建并挂到 app.state 上，由路由通过依赖注入获取；
每个公开方法都受 API_TIMEOUT_MS 时间预算约束。
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Tuple, TypeVar

from fastapi import Request

from fee_service.config import settings
from fee_service.errors import RequestTimeout
from fee_service.layers.acquisition import SnapshotFetcher, find_protocol
from fee_service.layers.aggregation import get_aggregation_layer
from fee_service.layers.cache import TieredValueCache, build_value_cache
from fee_service.layers.processing import get_processing_layer
from fee_service.models.protocol import FilterSpec, ProtocolMetric, ProtocolSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ATTRIBUTE = "fee"

# 上游请求最多占用请求预算的比例，剩余时间留给旧快照兜底与后续处理
UPSTREAM_BUDGET_SHARE = 0.8


class ProtocolService:
    """协议费用业务服务"""

    def __init__(
        self,
        fetcher: SnapshotFetcher,
        cache: TieredValueCache,
        timeout_ms: Optional[int] = None,
    ):
        self._fetcher = fetcher
        self._cache = cache
        self._proc = get_processing_layer()
        self._agg = get_aggregation_layer()
        self._timeout_ms = timeout_ms or settings.API_TIMEOUT_MS
        self._fetcher.limit_timeout(self._timeout_ms * UPSTREAM_BUDGET_SHARE / 1000)

    @property
    def fetcher(self) -> SnapshotFetcher:
        return self._fetcher

    @property
    def cache(self) -> TieredValueCache:
        return self._cache

    async def _within_budget(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            logger.warning(f"⏱️ 请求超时（{self._timeout_ms}ms）")
            raise RequestTimeout(self._timeout_ms) from exc

    # ── 费用数据 ──────────────────────────────────────────

    async def get_protocol_fees(
        self,
        filters: Optional[FilterSpec] = None,
        bundle: bool = False,
        force_refresh: bool = False,
    ) -> Tuple[List[ProtocolMetric], List[str]]:
        """
        获取标准化后的协议费用列表

        Args:
            filters: 分类 / 链过滤条件
            bundle: 是否按 bundle 合并
            force_refresh: 是否忽略快照 TTL 强制刷新

        Returns:
            (指标列表, 过滤标签)
        """
        return await self._within_budget(
            self._protocol_fees(filters or FilterSpec(), bundle, force_refresh)
        )

    async def _protocol_fees(
        self, filters: FilterSpec, bundle: bool, force_refresh: bool
    ) -> Tuple[List[ProtocolMetric], List[str]]:
        snapshot = await self._fetcher.fetch_snapshot(force_refresh=force_refresh)
        metrics = self._proc.normalize(snapshot.protocols)
        bundles = self._proc.collect_bundles(metrics)
        metrics, tags = self._agg.apply_filters(metrics, filters)
        if bundle:
            metrics = self._agg.bundle(metrics, bundles)
        return metrics, tags

    async def get_protocol(self, protocol_id: str) -> Optional[ProtocolMetric]:
        """按 id（slug / module / 名称）获取单个协议"""
        return await self._within_budget(self._protocol(protocol_id))

    async def _protocol(self, protocol_id: str) -> Optional[ProtocolMetric]:
        snapshot = await self._fetcher.fetch_snapshot()
        record = find_protocol(snapshot, protocol_id)
        if record is None:
            return None
        metrics = self._proc.normalize([record])
        return metrics[0] if metrics else None

    async def list_protocols(self) -> List[ProtocolSummary]:
        """协议列表（轻量视图）"""
        return await self._within_budget(self._list_protocols())

    async def _list_protocols(self) -> List[ProtocolSummary]:
        snapshot = await self._fetcher.fetch_snapshot()
        return self._proc.summarize(snapshot.protocols)

    async def get_fees_by_day(
        self, day: str, attribute: str = DEFAULT_ATTRIBUTE
    ) -> List[Dict[str, Any]]:
        """
        查询指定日期各协议的缓存值

        只返回缓存中存在有效值的协议；缺失不代表费用为 0。
        """
        return await self._within_budget(self._fees_by_day(day, attribute))

    async def _fees_by_day(self, day: str, attribute: str) -> List[Dict[str, Any]]:
        snapshot = await self._fetcher.fetch_snapshot()
        metrics = self._proc.normalize(snapshot.protocols)
        values = await asyncio.gather(
            *(self._cache.get(m.id, attribute, day) for m in metrics)
        )
        return [
            {"id": m.id, "name": m.name, "value": v}
            for m, v in zip(metrics, values)
            if v is not None
        ]

    # ── 值缓存 ────────────────────────────────────────────

    async def get_value(self, protocol: str, attribute: str, day: str) -> Optional[float]:
        return await self._within_budget(self._cache.get(protocol, attribute, day))

    async def set_value(self, protocol: str, attribute: str, day: str, value: float) -> bool:
        return await self._within_budget(self._cache.set(protocol, attribute, day, value))

    async def delete_value(self, protocol: str, attribute: str, day: str) -> None:
        await self._within_budget(self._cache.delete(protocol, attribute, day))

    # ── 状态 ──────────────────────────────────────────────

    def snapshot_status(self) -> Dict[str, Any]:
        state = self._fetcher.state
        age = self._fetcher.age()
        return {
            "loaded": state.snapshot is not None,
            "age_seconds": None if age is None else round(age, 1),
            "fresh": self._fetcher.is_fresh(),
            "protocols": len(state.snapshot.protocols) if state.snapshot else 0,
            "last_error": str(state.last_error) if state.last_error else None,
        }

    async def close(self) -> None:
        await self._fetcher.close()


def build_protocol_service() -> ProtocolService:
    """按当前配置组装服务实例"""
    return ProtocolService(SnapshotFetcher(), build_value_cache())


def get_protocol_service(request: Request) -> ProtocolService:
    """FastAPI 依赖：从应用状态中取出服务实例"""
    return request.app.state.protocol_service
