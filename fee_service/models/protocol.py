"""
协议费用数据模型

RawProtocolRecord   上游原始记录（结构不可信，只读）
ProtocolMetric      标准化后的协议指标（内部规范形态）
BundleMetadata      打包（bundle）元数据
"""

from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(str, Enum):
    L1 = "l1"
    L2 = "l2"
    DEX = "dex"
    LENDING = "lending"
    XCHAIN = "xchain"
    OTHER = "other"


# ── 上游快照 ─────────────────────────────────────────────

class RawProtocolRecord(BaseModel):
    """上游聚合接口返回的单条协议记录"""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    defillama_id: Optional[str] = Field(default=None, alias="defillamaId")
    name: str = ""
    display_name: Optional[str] = Field(default=None, alias="displayName")
    module: Optional[str] = None
    slug: Optional[str] = None
    category: Optional[str] = None
    logo: Optional[str] = None
    chains: List[str] = Field(default_factory=list)
    total24h: Optional[float] = None
    total7d: Optional[float] = None
    total30d: Optional[float] = None
    methodology: Optional[Dict[str, Any]] = None
    methodology_url: Optional[str] = Field(default=None, alias="methodologyURL")
    parent_protocol: Optional[str] = Field(default=None, alias="parentProtocol")

    @field_validator("total24h", "total7d", "total30d", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> Optional[float]:
        # 个别记录的脏数值按缺失处理，不影响整份快照
        if value is None or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator(
        "defillama_id", "display_name", "module", "slug", "category", "logo",
        "methodology_url", "parent_protocol",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return None

    @field_validator("methodology", mode="before")
    @classmethod
    def _coerce_methodology(cls, value: Any) -> Optional[Dict[str, Any]]:
        return value if isinstance(value, dict) else None

    @field_validator("chains", mode="before")
    @classmethod
    def _coerce_chains(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [chain for chain in value if isinstance(chain, str)]

    @property
    def identifier(self) -> str:
        return self.slug or self.module or self.name


class AggregateSnapshot(BaseModel):
    """上游一次完整查询结果，整体替换，不做原地修改"""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    protocols: List[RawProtocolRecord]
    total24h: Optional[float] = None
    total7d: Optional[float] = None
    total30d: Optional[float] = None
    all_chains: List[str] = Field(default_factory=list, alias="allChains")


# ── 标准化指标 ───────────────────────────────────────────

class DailyFee(BaseModel):
    """
    近似日费用点

    上游只提供 24h / 7d 聚合值，没有逐日明细；estimated=True 的点是
    由 7 日均值推算出来的，不能当作真实历史数据使用。
    """

    date: str
    value: float
    estimated: bool = True


class FeeSource(BaseModel):
    name: str
    url: str


class ProtocolMetric(BaseModel):
    """标准化协议指标；打包后的聚合记录同样使用此结构"""

    id: str
    name: str
    short_name: Optional[str] = None
    category: Category = Category.OTHER
    bundle: Optional[str] = None
    description: Optional[str] = None
    fee_description: Optional[str] = None
    icon: Optional[str] = None
    website: Optional[str] = None
    blockchain: Optional[str] = None
    source: Optional[FeeSource] = None
    adapter: Optional[str] = None
    protocol_launch: Optional[str] = None
    one_day: float = 0.0
    seven_day_average: float = 0.0
    fees: List[DailyFee] = Field(default_factory=list)
    bundle_data: Optional[List["ProtocolMetric"]] = None

    # 行情字段由其他子系统填充，本流水线始终为 None
    price: Optional[float] = None
    market_cap: Optional[float] = None
    fdv: Optional[float] = None
    ps_ratio: Optional[float] = None
    ps_ratio_fdv: Optional[float] = None


class BundleMetadata(BaseModel):
    name: Optional[str] = None
    category: Category = Category.OTHER
    adapter: Optional[str] = None
    protocol_launch: Optional[str] = None


class ProtocolSummary(BaseModel):
    """协议列表接口使用的轻量视图"""

    id: str
    name: str
    category: Optional[str] = None
    chains: List[str] = Field(default_factory=list)
    logo: Optional[str] = None
    slug: Optional[str] = None


class FilterSpec(BaseModel):
    categories: List[str] = Field(default_factory=list)
    chains: List[str] = Field(default_factory=list)


# ── 值缓存键 ─────────────────────────────────────────────

class CacheKey(NamedTuple):
    protocol: str
    attribute: str
    date: str

    @property
    def text(self) -> str:
        return f"{self.protocol}-{self.attribute}-{self.date}"
