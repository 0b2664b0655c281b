"""
Layer 3 – 数据处理层
将上游原始协议记录标准化为 ProtocolMetric：
  过滤 24h 费用缺失 / 非正数的记录 → 分类映射 → 派生日值与 7 日均值
  → 生成近似 7 日序列 → 按日值降序排列
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from fee_service.models.protocol import (
    BundleMetadata,
    Category,
    DailyFee,
    FeeSource,
    ProtocolMetric,
    ProtocolSummary,
    RawProtocolRecord,
)

logger = logging.getLogger(__name__)

SERIES_DAYS = 7
SOURCE_NAME = "DefiLlama"
ADAPTER = "defillama"

# 上游分类 → 标准分类；按顺序精确匹配，未命中归为 other
CATEGORY_TABLE: Tuple[Tuple[str, Category], ...] = (
    ("Dexs", Category.DEX),
    ("Dexes", Category.DEX),
    ("Lending", Category.LENDING),
    ("Bridge", Category.XCHAIN),
    ("Chain", Category.L1),
    ("Liquid Staking", Category.OTHER),
    ("Derivatives", Category.DEX),
    ("CDP", Category.LENDING),
    ("Yield Aggregator", Category.OTHER),
    ("Yield", Category.OTHER),
    ("Options", Category.DEX),
    ("Prediction", Category.OTHER),
    ("NFT", Category.OTHER),
    ("Gaming", Category.OTHER),
    ("RWA", Category.OTHER),
    ("L2", Category.L2),
    ("Rollup", Category.L2),
)


def map_category(label: Optional[str]) -> Category:
    for upstream, category in CATEGORY_TABLE:
        if label == upstream:
            return category
    return Category.OTHER


def build_series(one_day: float, daily_average: float, today: date) -> List[DailyFee]:
    """
    生成截止今天的 7 个日费用点（旧 → 新）

    最后一个点是真实的 24h 值；前 6 个点都是 7 日均值，属于近似推算。
    """
    series = []
    for offset in range(SERIES_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        if offset == 0:
            series.append(DailyFee(date=day.isoformat(), value=one_day, estimated=False))
        else:
            series.append(DailyFee(date=day.isoformat(), value=daily_average, estimated=True))
    return series


class ProcessingLayer:
    """数据处理层：过滤 + 分类映射 + 指标派生"""

    def to_frame(self, records: Sequence[RawProtocolRecord]) -> pd.DataFrame:
        """抽取参与计算的数值列，position 指向原始记录下标"""
        df = pd.DataFrame({
            "position": range(len(records)),
            "total24h": [r.total24h for r in records],
            "total7d": [r.total7d for r in records],
        })
        for col in ("total24h", "total7d"):
            df[col] = (
                pd.to_numeric(df[col], errors="coerce")
                .astype("float64")
                .replace([float("inf"), float("-inf")], float("nan"))
            )
        return df

    def derive_metrics(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        派生 one_day / seven_day_average 并排序

        7 日总值缺失（或为负）时，7 日均值回退为当日值，而不是 0。
        """
        df = df[df["total24h"] > 0].copy()
        # total7d 为 0 视为上游给出的真实值（均值为 0），只有缺失或为负才回退
        weekly = df["total7d"].where(df["total7d"] >= 0)
        df["one_day"] = df["total24h"]
        df["seven_day_average"] = (weekly / SERIES_DAYS).fillna(df["one_day"])
        df = df[(df["one_day"] > 0) | (df["seven_day_average"] > 0)]
        # 同值时保持上游顺序
        return df.sort_values("one_day", ascending=False, kind="stable")

    def normalize(
        self,
        records: Sequence[RawProtocolRecord],
        today: Optional[date] = None,
    ) -> List[ProtocolMetric]:
        """原始记录 → 按 24h 费用降序排列的标准化指标列表"""
        if today is None:
            today = datetime.now(tz=timezone.utc).date()
        df = self.derive_metrics(self.to_frame(records))
        metrics = [
            self._to_metric(
                records[int(row.position)],
                float(row.one_day),
                float(row.seven_day_average),
                today,
            )
            for row in df.itertuples(index=False)
        ]
        logger.debug(f"标准化完成：{len(records)} 条原始记录 → {len(metrics)} 条指标")
        return metrics

    def _to_metric(
        self,
        record: RawProtocolRecord,
        one_day: float,
        seven_day_average: float,
        today: date,
    ) -> ProtocolMetric:
        methodology = record.methodology or {}
        fee_description = methodology.get("Fees")
        if not isinstance(fee_description, str):
            fee_description = None
        name = record.display_name or record.name
        return ProtocolMetric(
            id=record.identifier,
            name=name,
            short_name=record.name[:12] + "..." if len(record.name) > 15 else None,
            category=map_category(record.category),
            bundle=record.parent_protocol,
            description=fee_description or f"{record.name} protocol fees",
            fee_description=fee_description,
            icon=record.logo,
            website=(
                f"https://defillama.com/protocol/{record.identifier}"
                if record.methodology_url else None
            ),
            blockchain=record.chains[0] if record.chains else None,
            source=FeeSource(name=SOURCE_NAME, url=f"https://defillama.com/fees/{record.identifier}"),
            adapter=ADAPTER,
            one_day=one_day,
            seven_day_average=seven_day_average,
            fees=build_series(one_day, seven_day_average, today),
        )

    def collect_bundles(self, metrics: Sequence[ProtocolMetric]) -> Dict[str, BundleMetadata]:
        """从声明了 bundle 的指标中收集打包元数据（后写覆盖先写）"""
        bundles: Dict[str, BundleMetadata] = {}
        for metric in metrics:
            if metric.bundle:
                bundles[metric.bundle] = BundleMetadata(
                    name=metric.name,
                    category=metric.category,
                    adapter=metric.adapter,
                    protocol_launch=metric.protocol_launch,
                )
        return bundles

    def summarize(self, records: Sequence[RawProtocolRecord]) -> List[ProtocolSummary]:
        """协议列表视图，保持上游顺序"""
        df = self.to_frame(records)
        positions = df.loc[df["total24h"] > 0, "position"].tolist()
        summaries = []
        for position in positions:
            record = records[int(position)]
            summaries.append(ProtocolSummary(
                id=record.identifier,
                name=record.display_name or record.name,
                category=record.category,
                chains=list(record.chains),
                logo=record.logo,
                slug=record.slug,
            ))
        return summaries


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
