"""健康检查路由"""

import time

from fastapi import APIRouter, Depends

from fee_service import __version__
from fee_service.db import check_health
from fee_service.services.protocol_service import ProtocolService, get_protocol_service

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(svc: ProtocolService = Depends(get_protocol_service)):
    """服务健康检查（含缓存层与上游快照状态）"""
    db_health = await check_health()
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "CryptoFees FeeService",
            "databases": db_health,
            "snapshot": svc.snapshot_status(),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz():
    """Kubernetes readiness probe"""
    return {"ready": True}
