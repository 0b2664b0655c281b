"""
数据流分层架构
  Layer 1 – Acquisition  : 上游聚合快照获取（TTL 缓存 + 过期兜底）
  Layer 2 – Cache        : 两级值缓存（Redis → MongoDB）
  Layer 3 – Processing   : 原始记录标准化
  Layer 4 – Aggregation  : 过滤与 bundle 合并
"""
