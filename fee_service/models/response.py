"""统一 API 响应模型"""

from typing import Any, List, Optional
from pydantic import BaseModel, Field

from fee_service.models.protocol import ProtocolMetric, ProtocolSummary


class ApiResponse(BaseModel):
    """标准 API 响应封装"""
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str = "failed") -> "ApiResponse":
        return cls(success=False, error=error, message=message)


class FeesResponse(BaseModel):
    success: bool = True
    protocols: List[ProtocolMetric] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class ProtocolResponse(BaseModel):
    success: bool = True
    protocol: ProtocolMetric


class ProtocolListResponse(BaseModel):
    success: bool = True
    protocols: List[ProtocolSummary] = Field(default_factory=list)


class DailyValue(BaseModel):
    id: str
    name: str
    value: float


class FeesByDayResponse(BaseModel):
    success: bool = True
    date: str
    attribute: str
    protocols: List[DailyValue] = Field(default_factory=list)
