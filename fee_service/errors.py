"""
费用数据服务异常定义

只有 UpstreamUnavailable（冷启动且无兜底快照）与 RequestTimeout 会穿过核心边界，
其余情况均在本地降级为过期数据或空值。
"""


class FeeServiceError(Exception):
    """服务异常基类"""


class UpstreamUnavailable(FeeServiceError):
    """上游数据源不可用，且从未成功获取过快照"""


class UpstreamStale(FeeServiceError):
    """刷新失败，但存在可用的旧快照（只记录，不向调用方抛出）"""


class StoreUnavailable(FeeServiceError):
    """缓存层后端未启用或不可达"""

    def __init__(self, store: str, reason: str = ""):
        self.store = store
        self.reason = reason
        super().__init__(f"{store} 不可用: {reason}" if reason else f"{store} 不可用")


class RequestTimeout(FeeServiceError):
    """请求超出时间预算"""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"请求超时（{timeout_ms}ms）")
