"""
Layer 4 – 聚合层
在处理层输出的标准化指标上做过滤与打包：
  - 过滤：维度之间取交集（分类 AND 链），维度内部取并集；空条件不过滤
  - 打包：同一 bundle 且有元数据的记录合并为一条聚合记录（日值求和）
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from fee_service.models.protocol import BundleMetadata, FilterSpec, ProtocolMetric

logger = logging.getLogger(__name__)

CATEGORY_OPTIONS: List[Dict[str, str]] = [
    {"value": "l1", "label": "Layer 1"},
    {"value": "l2", "label": "Layer 2"},
    {"value": "dex", "label": "DEX"},
    {"value": "lending", "label": "Lending"},
    {"value": "xchain", "label": "Cross-chain"},
    {"value": "other", "label": "Other"},
]

CHAIN_OPTIONS: List[Dict[str, str]] = [
    {"value": "ethereum", "label": "Ethereum"},
    {"value": "bsc", "label": "BSC"},
    {"value": "polygon", "label": "Polygon"},
    {"value": "avalanche", "label": "Avalanche"},
    {"value": "arbitrum", "label": "Arbitrum"},
    {"value": "optimism", "label": "Optimism"},
    {"value": "solana", "label": "Solana"},
]


def _labels(values: Sequence[str], options: Sequence[Dict[str, str]]) -> str:
    lookup = {o["value"]: o["label"] for o in options}
    return ", ".join(lookup.get(v, v) for v in values)


class AggregationLayer:
    """聚合层：分类 / 链过滤 + 打包汇总"""

    # ── 过滤 ──────────────────────────────────────────────

    def filter_categories(
        self,
        records: Sequence[ProtocolMetric],
        categories: Sequence[str],
        options: Sequence[Dict[str, str]] = CATEGORY_OPTIONS,
    ) -> Tuple[List[ProtocolMetric], str]:
        """按分类过滤，返回 (记录, 标签)；未指定分类时原样返回、标签为空"""
        if not categories:
            return list(records), ""
        wanted = set(categories)
        filtered = [r for r in records if r.category.value in wanted]
        return filtered, f"Category: {_labels(categories, options)}"

    def filter_chains(
        self,
        records: Sequence[ProtocolMetric],
        chains: Sequence[str],
        options: Sequence[Dict[str, str]] = CHAIN_OPTIONS,
    ) -> Tuple[List[ProtocolMetric], str]:
        """按主链过滤；没有 blockchain 的记录不会命中任何链"""
        if not chains:
            return list(records), ""
        wanted = set(chains)
        filtered = [r for r in records if r.blockchain and r.blockchain in wanted]
        return filtered, f"Chain: {_labels(chains, options)}"

    def apply_filters(
        self,
        records: Sequence[ProtocolMetric],
        filters: FilterSpec,
    ) -> Tuple[List[ProtocolMetric], List[str]]:
        """依次应用分类、链过滤，标签顺序与过滤顺序一致"""
        result = list(records)
        tags: List[str] = []

        result, tag = self.filter_categories(result, filters.categories)
        if tag:
            tags.append(tag)

        result, tag = self.filter_chains(result, filters.chains)
        if tag:
            tags.append(tag)

        return result, tags

    # ── 打包 ──────────────────────────────────────────────

    def bundle(
        self,
        records: Sequence[ProtocolMetric],
        bundles: Dict[str, BundleMetadata],
    ) -> List[ProtocolMetric]:
        """
        按 bundle 分组汇总

        输出顺序：各 bundle 组（按首次出现顺序）在前，未声明 bundle 的记录在后。
        缺少元数据的组不合并，成员原样输出。
        """
        groups: Dict[str, List[ProtocolMetric]] = {}
        unbundled: List[ProtocolMetric] = []
        for record in records:
            if record.bundle:
                groups.setdefault(record.bundle, []).append(record)
            else:
                unbundled.append(record)

        bundled: List[ProtocolMetric] = []
        for bundle_id, members in groups.items():
            metadata = bundles.get(bundle_id)
            if metadata is None:
                logger.debug(f"bundle {bundle_id} 缺少元数据，{len(members)} 个成员不合并")
                bundled.extend(members)
                continue
            bundled.append(self._aggregate(bundle_id, metadata, members))

        return bundled + unbundled

    @staticmethod
    def _aggregate(
        bundle_id: str,
        metadata: BundleMetadata,
        members: List[ProtocolMetric],
    ) -> ProtocolMetric:
        return ProtocolMetric(
            id=bundle_id,
            name=metadata.name or bundle_id,
            category=metadata.category,
            adapter=metadata.adapter,
            protocol_launch=metadata.protocol_launch,
            one_day=sum(m.one_day for m in members),
            seven_day_average=sum(m.seven_day_average for m in members),
            bundle_data=list(members),
        )


# ── 模块级别单例 ──────────────────────────────────────────
_aggregation: Optional[AggregationLayer] = None


def get_aggregation_layer() -> AggregationLayer:
    global _aggregation
    if _aggregation is None:
        _aggregation = AggregationLayer()
    return _aggregation
