"""
Layer 1 – 数据获取层
从上游聚合接口拉取协议费用快照，并在进程内做 TTL 缓存：
  - TTL 内直接返回缓存快照，不访问网络
  - TTL 过期后刷新；刷新失败时返回旧快照（无论多旧），只有从未成功过才抛出
  - 并发刷新合并为同一个请求（single-flight），外层超时不会取消进行中的请求
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

import aiohttp
from pydantic import ValidationError

from fee_service import __version__
from fee_service.config import settings
from fee_service.errors import UpstreamStale, UpstreamUnavailable
from fee_service.models.protocol import AggregateSnapshot, RawProtocolRecord

logger = logging.getLogger(__name__)

_HEADERS = {"User-Agent": f"cryptofees/{__version__}", "Accept": "application/json"}


@dataclass(frozen=True)
class SnapshotState:
    """快照缓存状态；每次更新都整体替换"""

    snapshot: Optional[AggregateSnapshot] = None
    fetched_at: float = 0.0
    last_error: Optional[UpstreamStale] = None


def parse_snapshot(payload: Any) -> AggregateSnapshot:
    """校验上游响应体，结构不符时视为上游不可用"""
    if not isinstance(payload, dict):
        raise UpstreamUnavailable(f"上游返回结构异常: {type(payload).__name__}")
    try:
        return AggregateSnapshot.model_validate(payload)
    except ValidationError as exc:
        raise UpstreamUnavailable(f"上游返回结构异常: {exc.error_count()} 处校验错误") from exc


def find_protocol(snapshot: AggregateSnapshot, protocol_id: str) -> Optional[RawProtocolRecord]:
    """按 slug / module / 名称（忽略大小写）查找协议"""
    lowered = protocol_id.lower()
    for record in snapshot.protocols:
        if record.slug == protocol_id or record.module == protocol_id:
            return record
        if record.name.lower() == lowered:
            return record
    return None


class SnapshotFetcher:
    """上游快照获取器，持有进程内快照缓存"""

    def __init__(
        self,
        url: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._url = url or settings.UPSTREAM_FEES_URL
        self._ttl = settings.SNAPSHOT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._timeout = timeout_seconds or settings.UPSTREAM_TIMEOUT_SECONDS
        self._clock = clock
        self._session = session
        self._owns_session = session is None
        self._state = SnapshotState()
        self._inflight: Optional["asyncio.Future[AggregateSnapshot]"] = None

    # ── 状态 ──────────────────────────────────────────────

    @property
    def state(self) -> SnapshotState:
        return self._state

    def age(self) -> Optional[float]:
        if self._state.snapshot is None:
            return None
        return self._clock() - self._state.fetched_at

    def is_fresh(self) -> bool:
        age = self.age()
        return age is not None and age < self._ttl

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def limit_timeout(self, seconds: float) -> None:
        """将上游请求超时收紧到不超过 seconds（只缩短，不放宽）"""
        if seconds < self._timeout:
            logger.info(f"上游请求超时由 {self._timeout}s 收紧为 {seconds}s")
            self._timeout = seconds

    # ── 生命周期 ──────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=_HEADERS)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """释放 HTTP 会话并清空快照缓存"""
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._state = SnapshotState()

    # ── 获取 ──────────────────────────────────────────────

    async def fetch_snapshot(self, force_refresh: bool = False) -> AggregateSnapshot:
        """
        获取聚合快照

        Raises:
            UpstreamUnavailable: 刷新失败且从未成功获取过快照
        """
        state = self._state
        if not force_refresh and state.snapshot is not None and self.is_fresh():
            return state.snapshot
        return await self.refresh()

    async def refresh(self) -> AggregateSnapshot:
        """刷新快照；进行中的刷新会被复用"""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._refresh())
            self._inflight.add_done_callback(_consume_result)
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> AggregateSnapshot:
        started = self._clock()
        try:
            snapshot = await self._request()
        except UpstreamUnavailable as exc:
            previous = self._state
            if previous.snapshot is None:
                logger.error(f"❌ 上游快照获取失败，且无可用缓存: {exc}")
                raise
            stale = UpstreamStale(f"刷新失败，继续使用 {started - previous.fetched_at:.0f}s 前的快照: {exc}")
            self._state = replace(previous, last_error=stale)
            logger.warning(f"⚠️ {stale}")
            return previous.snapshot

        self._state = SnapshotState(snapshot=snapshot, fetched_at=started)
        logger.info(f"✅ 上游快照已刷新，共 {len(snapshot.protocols)} 个协议")
        return snapshot

    async def _request(self) -> AggregateSnapshot:
        session = await self._get_session()
        try:
            payload = await asyncio.wait_for(self._get_json(session), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailable("上游接口请求超时") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamUnavailable(f"上游接口请求失败: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable(f"上游返回内容无法解析: {exc}") from exc
        return parse_snapshot(payload)

    async def _get_json(self, session: aiohttp.ClientSession) -> Any:
        async with session.get(
            self._url, timeout=aiohttp.ClientTimeout(total=self._timeout)
        ) as response:
            if not 200 <= response.status < 300:
                raise UpstreamUnavailable(f"上游接口返回 HTTP {response.status}")
            return await response.json(content_type=None)


def _consume_result(future: "asyncio.Future") -> None:
    # 外层调用方超时离开后，异常仍需被取走，避免 "never retrieved" 警告
    if not future.cancelled():
        future.exception()
