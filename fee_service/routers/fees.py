"""
协议费用路由
GET /api/v1/fees                 - 标准化协议费用列表（支持分类 / 链过滤与打包）
GET /api/v1/fees/{protocol_id}   - 单个协议费用
GET /api/v1/protocols            - 协议列表（轻量）
GET /api/v1/feesByDay            - 指定日期各协议的缓存值
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from fee_service.config import settings
from fee_service.models.protocol import FilterSpec
from fee_service.models.response import (
    FeesByDayResponse,
    FeesResponse,
    ProtocolListResponse,
    ProtocolResponse,
)
from fee_service.services.protocol_service import (
    DEFAULT_ATTRIBUTE,
    ProtocolService,
    get_protocol_service,
)

router = APIRouter(prefix="/api/v1", tags=["协议费用"])


def _cache_control(response: Response, s_maxage: int, stale_while_revalidate: int) -> None:
    response.headers["Cache-Control"] = (
        f"max-age=0, s-maxage={s_maxage}, stale-while-revalidate={stale_while_revalidate}"
    )


def _split(values: Optional[List[str]]) -> List[str]:
    """同时支持 ?category=a&category=b 与 ?category=a,b 两种写法"""
    result: List[str] = []
    for value in values or []:
        result.extend(v.strip() for v in value.split(",") if v.strip())
    return result


def validate_day(day: str) -> str:
    try:
        return date.fromisoformat(day).isoformat()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"日期格式错误: {day}，应为 YYYY-MM-DD",
        )


@router.get("/fees", response_model=FeesResponse)
async def get_fees(
    response: Response,
    category: Optional[List[str]] = Query(default=None, description="标准分类，如 dex,lending"),
    chain: Optional[List[str]] = Query(default=None, description="主链，如 ethereum"),
    bundle: bool = Query(default=False, description="是否按 bundle 合并"),
    force_refresh: bool = Query(default=False),
    svc: ProtocolService = Depends(get_protocol_service),
):
    """获取协议费用列表（按 24h 费用降序）"""
    _cache_control(response, settings.FEES_SMAXAGE, settings.FEES_SWR)
    filters = FilterSpec(categories=_split(category), chains=_split(chain))
    protocols, tags = await svc.get_protocol_fees(
        filters=filters, bundle=bundle, force_refresh=force_refresh
    )
    return FeesResponse(protocols=protocols, tags=tags)


@router.get("/fees/{protocol_id}", response_model=ProtocolResponse)
async def get_protocol_fees(
    protocol_id: str,
    response: Response,
    svc: ProtocolService = Depends(get_protocol_service),
):
    """获取单个协议的费用数据"""
    _cache_control(response, settings.FEES_SMAXAGE, settings.FEES_SWR)
    protocol = await svc.get_protocol(protocol_id)
    if protocol is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"协议 '{protocol_id}' 不存在或无费用数据",
        )
    return ProtocolResponse(protocol=protocol)


@router.get("/protocols", response_model=ProtocolListResponse)
async def list_protocols(
    response: Response,
    svc: ProtocolService = Depends(get_protocol_service),
):
    """获取协议列表（协议列表变化较慢，缓存时间更长）"""
    _cache_control(response, settings.PROTOCOLS_SMAXAGE, settings.PROTOCOLS_SWR)
    return ProtocolListResponse(protocols=await svc.list_protocols())


@router.get("/feesByDay", response_model=FeesByDayResponse)
async def get_fees_by_day(
    response: Response,
    day: str = Query(..., alias="date", description="日期 YYYY-MM-DD"),
    attribute: str = Query(default=DEFAULT_ATTRIBUTE),
    svc: ProtocolService = Depends(get_protocol_service),
):
    """获取指定日期各协议的缓存费用值（仅包含已缓存的协议）"""
    day = validate_day(day)
    _cache_control(response, settings.FEES_BY_DAY_SMAXAGE, settings.FEES_BY_DAY_SWR)
    values = await svc.get_fees_by_day(day, attribute=attribute)
    return FeesByDayResponse(date=day, attribute=attribute, protocols=values)
