"""
CryptoFees 协议费用数据服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn fee_service.main:app --host 0.0.0.0 --port 8001
    python -m fee_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fee_service import __version__
from fee_service.config import settings
from fee_service.db import init_mongodb, init_redis, close_connections
from fee_service.errors import RequestTimeout, UpstreamUnavailable
from fee_service.models.response import ApiResponse
from fee_service.routers import health, fees, cache
from fee_service.services.protocol_service import build_protocol_service

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 CryptoFees FeeService v{__version__} 启动中")
    logger.info(f"   Upstream  : {settings.UPSTREAM_FEES_URL}")
    logger.info(f"   MongoDB   : {'已配置' if settings.mongo_configured else '未配置'}")
    logger.info(f"   Redis     : {'已配置' if settings.redis_configured else '未配置'}")
    logger.info("=" * 60)

    # 预热缓存层连接（失败不阻断启动，降级运行）
    mongo_ok = await init_mongodb()
    redis_ok = await init_redis()

    if mongo_ok and redis_ok:
        logger.info("✅ 所有缓存层连接就绪")
    elif mongo_ok:
        logger.warning("⚠️ Redis 不可用，值缓存降级为仅 MongoDB")
    elif redis_ok:
        logger.warning("⚠️ MongoDB 不可用，值缓存降级为仅 Redis（写入不会落库）")
    else:
        logger.warning("⚠️ 缓存层均不可用，值缓存查询将全部未命中")

    app.state.protocol_service = build_protocol_service()

    yield

    logger.info("🔄 费用数据服务正在关闭...")
    await app.state.protocol_service.close()
    await close_connections()
    logger.info("✅ 费用数据服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="CryptoFees 协议费用数据服务",
    description=(
        "协议费用数据微服务，提供以下功能：\n"
        "- 📊 协议费用列表（24h / 7 日均值，按日值降序）\n"
        "- 🧩 分类 / 链过滤与 bundle 合并\n"
        "- 🗄️ 两级值缓存（Redis → MongoDB）\n"
        "- ♻️ 上游快照 5 分钟缓存，上游故障时返回旧快照\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← 拉取上游聚合快照\n"
        "Cache Layer        ← Redis / MongoDB 两级值缓存\n"
        "Processing Layer   ← 过滤、分类映射、近似日序列\n"
        "Aggregation Layer  ← 过滤标签、bundle 合并\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
@app.exception_handler(UpstreamUnavailable)
async def upstream_unavailable_handler(request: Request, exc: UpstreamUnavailable):
    logger.error(f"上游数据不可用: {exc}")
    return JSONResponse(
        status_code=503,
        content=ApiResponse.fail(error="上游数据不可用", message=str(exc)).model_dump(),
    )


@app.exception_handler(RequestTimeout)
async def request_timeout_handler(request: Request, exc: RequestTimeout):
    return JSONResponse(
        status_code=504,
        content=ApiResponse.fail(error="请求超时", message=str(exc)).model_dump(),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ApiResponse.fail(error="内部服务错误", message=str(exc)).model_dump(),
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(fees.router)
app.include_router(cache.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "CryptoFees FeeService",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "fee_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
