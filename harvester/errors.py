"""
错误类型

只有速率限制、传输层和参数校验错误会传播给调用方；
全文提取失败一律在数据源内部吸收，转成 text_extraction_failed 标记。
"""

from enum import Enum
from typing import List, Optional, Dict, Any


class ErrorCode(str, Enum):
    NOT_AVAILABLE = "NotAvailable"
    PARTIAL_SUCCESS = "PartialSuccess"
    RATE_LIMITED = "RateLimited"
    SOURCE_DOWN = "SourceDown"
    INVALID_QUERY = "InvalidQuery"


class HarvestError(Exception):
    """所有对外错误的基类"""

    code: ErrorCode = ErrorCode.SOURCE_DOWN

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.suggestions:
            result["suggestions"] = list(self.suggestions)
        return result


class RateLimitedError(HarvestError):
    """令牌桶拒绝或上游返回429，调用方应在 retry_after 秒后重试"""

    code = ErrorCode.RATE_LIMITED

    def __init__(self, message: str, retry_after: float = 0, suggestions: Optional[List[str]] = None):
        super().__init__(message, suggestions)
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["retryAfter"] = self.retry_after
        return result


class NotAvailableError(HarvestError):
    """内容不可达或不存在，对该条目是终态"""

    code = ErrorCode.NOT_AVAILABLE


class SourceDownError(HarvestError):
    """上游5xx或网络故障（传输层已做有限次退避重试）"""

    code = ErrorCode.SOURCE_DOWN

    def __init__(self, message: str, status: Optional[int] = None, suggestions: Optional[List[str]] = None):
        super().__init__(message, suggestions)
        self.status = status


class InvalidQueryError(HarvestError):
    """参数非法或组合不受支持，不重试"""

    code = ErrorCode.INVALID_QUERY
