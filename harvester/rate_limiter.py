"""
令牌桶速率限制器

每个数据源一个令牌桶，进程内只创建一次，由调度器注入到所有数据源实例。
拒绝而不排队：被拒绝的调用方自行在 retry_after 秒后重试。
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from config import RateLimitConfig

logger = logging.getLogger(__name__)

# 浮点累加误差容忍度，保证整数秒边界上的补充结果稳定
_EPSILON = 1e-9


@dataclass
class RateLimiterState:
    """单个数据源的令牌桶状态，不变式 0 <= tokens <= max_tokens"""
    tokens: float
    last_refill: float
    max_tokens: int
    refill_rate: float  # 每秒补充的令牌数


class RateLimiter:
    """
    按数据源划分的令牌桶。

    批量转换在线程池中并发执行，因此补充与扣减必须在同一把锁内完成，
    否则同一补充窗口内的多个任务可能同时看到"有令牌"。
    """

    def __init__(
        self,
        limits: Mapping[str, RateLimitConfig],
        clock: Optional[Callable[[], float]] = None
    ):
        """
        参数:
            limits: {数据源键: 令牌桶参数}
            clock: 单调时钟（秒），测试中可注入假时钟
        """
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        now = self._clock()
        self.state: Dict[str, RateLimiterState] = {
            key: RateLimiterState(
                tokens=float(cfg.max_tokens),
                last_refill=now,
                max_tokens=cfg.max_tokens,
                refill_rate=cfg.refill_rate,
            )
            for key, cfg in limits.items()
        }

    @staticmethod
    def _key(source) -> str:
        return getattr(source, "value", source)

    def _refill(self, limiter: RateLimiterState) -> None:
        now = self._clock()
        elapsed = max(0.0, now - limiter.last_refill)
        limiter.tokens = min(float(limiter.max_tokens), limiter.tokens + elapsed * limiter.refill_rate)
        limiter.last_refill = now

    def check_and_consume(self, source) -> bool:
        """
        检查并消耗一个令牌。

        参数:
            source: 数据源（Source 枚举或字符串键）

        返回:
            bool: True 表示放行（已扣减一个令牌），False 表示被限流
        """
        key = self._key(source)
        with self._lock:
            limiter = self.state.get(key)
            if limiter is None:
                # 未配置的数据源：放行但记录，属于配置缺口而非安全边界
                logger.warning(f"未配置速率限制的数据源，默认放行: {key}")
                return True

            self._refill(limiter)

            if limiter.tokens >= 1 - _EPSILON:
                limiter.tokens = max(0.0, limiter.tokens - 1)
                return True

            logger.warning(
                f"[{key}] 触发速率限制: 剩余令牌 {limiter.tokens:.3f}, "
                f"{(1 - limiter.tokens) / limiter.refill_rate:.1f} 秒后可重试"
            )
            return False

    def remaining_tokens(self, source) -> float:
        """获取指定数据源剩余的令牌数"""
        with self._lock:
            limiter = self.state.get(self._key(source))
            return limiter.tokens if limiter else 0.0

    def retry_after_seconds(self, source) -> int:
        """距离至少有一个令牌还需要的秒数（向上取整，不小于0）"""
        with self._lock:
            limiter = self.state.get(self._key(source))
            if limiter is None or limiter.refill_rate <= 0:
                return 0
            return max(0, math.ceil((1 - limiter.tokens) / limiter.refill_rate - _EPSILON))
