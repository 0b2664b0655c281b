"""
费用数据服务配置模块
支持从环境变量 / .env 读取配置；MONGO_URI、REDIS_URL 未配置时对应缓存层自动禁用
"""

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeeServiceSettings(BaseSettings):
    """费用数据服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8001)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── MongoDB 配置（持久层，未配置 URI 即禁用） ──────────
    MONGO_URI: str = Field(default="")
    MONGODB_DATABASE: str = Field(default="cryptofees")
    MONGODB_COLLECTION: str = Field(default="fee_cache")
    MONGODB_ENABLED: bool = Field(default=True)
    MONGO_MAX_CONNECTIONS: int = Field(default=50)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=30000)
    MONGO_SOCKET_TIMEOUT_MS: int = Field(default=60000)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    @property
    def mongo_configured(self) -> bool:
        return self.MONGODB_ENABLED and bool(self.MONGO_URI)

    # ── Redis 配置（快速层，未配置 URL 即禁用） ────────────
    REDIS_URL: str = Field(default="")
    REDIS_ENABLED: bool = Field(default=True)
    REDIS_MAX_CONNECTIONS: int = Field(default=20)

    @property
    def redis_configured(self) -> bool:
        return self.REDIS_ENABLED and bool(self.REDIS_URL)

    # ── 上游数据源配置 ─────────────────────────────────────
    UPSTREAM_FEES_URL: str = Field(default="https://api.llama.fi/overview/fees")
    UPSTREAM_TIMEOUT_SECONDS: float = Field(default=8.0)      # 须小于 API_TIMEOUT_MS
    SNAPSHOT_TTL_SECONDS: int = Field(default=300)     # 快照进程内缓存 5 分钟

    # ── 请求预算 ──────────────────────────────────────────
    API_TIMEOUT_MS: int = Field(default=10000)

    # ── HTTP 缓存头（秒） ─────────────────────────────────
    FEES_SMAXAGE: int = Field(default=60 * 15)
    FEES_SWR: int = Field(default=60 * 5)
    PROTOCOLS_SMAXAGE: int = Field(default=60 * 60)
    PROTOCOLS_SWR: int = Field(default=60 * 30)
    FEES_BY_DAY_SMAXAGE: int = Field(default=60 * 10)
    FEES_BY_DAY_SWR: int = Field(default=60 * 5)

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")


@lru_cache
def get_settings() -> FeeServiceSettings:
    """获取全局配置（单例）"""
    return FeeServiceSettings()


settings = get_settings()
