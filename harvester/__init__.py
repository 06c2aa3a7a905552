"""
论文采集核心包

模块：
- models: 统一数据模型
- errors: 对外错误类型
- rate_limiter: 按数据源划分的令牌桶
- http_client: 基于 requests 的传输层
- extractors: 文本清洗、HTML 与 PDF 正文提取
- sources: 各数据源驱动
- harvest_agent: 对外的操作层
"""

from .errors import (
    ErrorCode,
    HarvestError,
    InvalidQueryError,
    NotAvailableError,
    RateLimitedError,
    SourceDownError,
)
from .models import PaperMetadata, Source, TextExtractionResult
from .rate_limiter import RateLimiter
from .harvest_agent import HarvestAgent

__all__ = [
    "ErrorCode",
    "HarvestError",
    "InvalidQueryError",
    "NotAvailableError",
    "RateLimitedError",
    "SourceDownError",
    "PaperMetadata",
    "Source",
    "TextExtractionResult",
    "RateLimiter",
    "HarvestAgent",
]
