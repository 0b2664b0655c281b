"""
值缓存管理路由
GET    /api/cache/stats                              - 各缓存后端统计
GET    /api/cache/value/{protocol}/{attribute}/{date} - 读取（读穿透）
PUT    /api/cache/value/{protocol}/{attribute}/{date} - 写入（写穿透）
DELETE /api/cache/value/{protocol}/{attribute}/{date} - 删除
"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from fee_service.models.response import ApiResponse
from fee_service.routers.fees import validate_day
from fee_service.services.protocol_service import ProtocolService, get_protocol_service

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


class ValueRequest(BaseModel):
    value: float


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(svc: ProtocolService = Depends(get_protocol_service)):
    """获取缓存统计信息（各后端键数量）"""
    stats = await svc.cache.stats()
    return ApiResponse.ok(data=stats)


@router.get("/value/{protocol}/{attribute}/{day}", response_model=ApiResponse)
async def get_value(
    protocol: str,
    attribute: str,
    day: str,
    svc: ProtocolService = Depends(get_protocol_service),
):
    """读取缓存值；value 为 null 表示两级缓存均未命中"""
    day = validate_day(day)
    value = await svc.get_value(protocol, attribute, day)
    return ApiResponse.ok(
        data={"protocol": protocol, "attribute": attribute, "date": day, "value": value},
        message="命中" if value is not None else "未命中",
    )


@router.put("/value/{protocol}/{attribute}/{day}", response_model=ApiResponse)
async def set_value(
    protocol: str,
    attribute: str,
    day: str,
    body: ValueRequest,
    svc: ProtocolService = Depends(get_protocol_service),
):
    """写入缓存值；仅当持久层写入成功时返回成功"""
    day = validate_day(day)
    ok = await svc.set_value(protocol, attribute, day, body.value)
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="持久层写入失败，缓存值未落库",
        )
    return ApiResponse.ok(
        data={"protocol": protocol, "attribute": attribute, "date": day, "value": body.value},
        message="写入成功",
    )


@router.delete("/value/{protocol}/{attribute}/{day}", response_model=ApiResponse)
async def delete_value(
    protocol: str,
    attribute: str,
    day: str,
    svc: ProtocolService = Depends(get_protocol_service),
):
    """从所有层级删除缓存值"""
    day = validate_day(day)
    await svc.delete_value(protocol, attribute, day)
    return ApiResponse.ok(message=f"缓存已清理: {protocol}-{attribute}-{day}")
