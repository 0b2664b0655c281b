"""
CryptoFees 协议费用数据服务
独立的费用数据微服务，提供 HTTP 接口

架构分层：
  数据获取层 (Acquisition)  → 拉取上游聚合快照（进程内 TTL 缓存 + 过期兜底）
  缓存层     (Cache)        → Redis / MongoDB 两级值缓存（读穿透 + 写穿透）
  处理层     (Processing)   → 原始记录标准化、分类映射、近似日序列生成
  聚合层     (Aggregation)  → 分组打包、分类 / 链过滤
"""

__version__ = "1.0.0"
