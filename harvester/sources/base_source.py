"""
论文数据源抽象基类

定义所有数据源必须实现的统一接口，并把"浏览走元数据、取内容才提取正文"
的策略集中在基类中实现：
- list_categories / fetch_latest / fetch_top_cited 只返回元数据，text 为 ""
- fetch_content 获取权威元数据后，按数据源声明的全文位置类型选择 HTML 或 PDF 提取器
- 正文提取的任何失败都在这里吸收，转成 text_extraction_failed 标记
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import InvalidQueryError, RateLimitedError
from ..extractors import HtmlExtractor, PdfExtractor, TextCleaner, TextExtractor, enforce_length, failed_result
from ..http_client import HttpClient
from ..models import (
    Category,
    ContentKind,
    ContentLocation,
    PaperMetadata,
    Source,
    TextExtractionResult,
)
from ..rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class BasePaperSource(ABC):
    """
    论文数据源抽象基类。

    所有具体的数据源（arXiv、OpenAlex 等）都必须继承此类并实现抽象方法。

    职责：
    - 每次网络调用前检查共享的速率限制器，拒绝时抛出 RateLimitedError
    - 批量记录转换在线程池中并发执行，保持原有顺序
    - 为 fetch_content 附加正文，失败时仍返回完整元数据
    """

    # 批量转换的最大并发数
    MAX_WORKERS = 8

    def __init__(
        self,
        source: Source,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None
    ):
        """
        初始化数据源。

        参数:
            source: 数据源枚举
            rate_limiter: 进程内共享的速率限制器
            http: 共享的 HTTP 客户端
            extraction_config: 全文提取配置
            pdf_options: PDF 管线参数（数据源内部调用时不存在应答方，强制非交互）
        """
        self.source = source
        self.rate_limiter = rate_limiter
        self.http = http
        self.extraction_config = extraction_config
        self.text_cleaner = TextCleaner(extraction_config.cleaning_options)
        self.html_extractor: TextExtractor = HtmlExtractor(extraction_config, http)

        pdf_options = pdf_options or PdfExtractionOptions()
        self.pdf_extractor: TextExtractor = PdfExtractor(
            extraction_config,
            http,
            pdf_options.model_copy(update={"interactive": False}),
        )

    @property
    def display_name(self) -> str:
        """数据源的显示名称"""
        return self.source.display_name

    # ======================================================================
    # 对外接口
    # ======================================================================

    @abstractmethod
    def list_categories(self) -> List[Category]:
        """列出该数据源可用的分类/概念"""
        pass

    @abstractmethod
    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        """
        获取指定分类的最新论文（仅元数据）。

        参数:
            category: 分类ID或概念名
            count: 期望返回的数量

        返回:
            List[PaperMetadata]: text 全部为 "" 的论文列表
        """
        pass

    def fetch_top_cited(self, concept: str, since: str, count: int) -> List[PaperMetadata]:
        """
        获取某概念自指定日期以来被引最多的论文（仅元数据）。

        默认不支持，只有提供引用排序的数据源才覆盖此方法。
        """
        raise InvalidQueryError(
            f"{self.display_name} 不支持按引用数排序",
            suggestions=["使用 source=openalex 获取高被引论文"],
        )

    @abstractmethod
    def fetch_content(self, paper_id: str) -> PaperMetadata:
        """
        获取单篇论文的元数据并尝试提取正文。

        参数:
            paper_id: 数据源内的论文ID

        返回:
            PaperMetadata: 提取失败时 text 为 "" 且 text_extraction_failed 为 True
        """
        pass

    # ======================================================================
    # 子类钩子
    # ======================================================================

    @abstractmethod
    def _to_paper(self, record: Any) -> Optional[PaperMetadata]:
        """把一条原始记录转换成元数据（不访问网络），无效记录返回 None"""
        pass

    @abstractmethod
    def _content_location(self, record: Any) -> ContentLocation:
        """解析全文位置，只在 fetch_content 路径上调用"""
        pass

    def _fallback_text(self, record: Any) -> Optional[str]:
        """正文提取失败时的替代文本，默认没有"""
        return None

    # ======================================================================
    # 公共工具
    # ======================================================================

    def _check_rate_limit(self, action: str = "request"):
        """
        消耗一个令牌，被拒绝时抛出 RateLimitedError。

        参数:
            action: 用于日志的操作描述
        """
        if self.rate_limiter.check_and_consume(self.source):
            return

        retry_after = self.rate_limiter.retry_after_seconds(self.source)
        logger.warning(f"[{self.display_name}] {action} 被限流，{retry_after} 秒后可重试")
        raise RateLimitedError(
            f"Rate limited. Retry after {retry_after} seconds",
            retry_after=retry_after,
            suggestions=[f"等待 {retry_after} 秒后重试", "减少请求频率或改用其他数据源"],
        )

    def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        action: str = "request"
    ) -> Any:
        """经过速率检查的 JSON 请求，每次网络调用消耗一个令牌"""
        self._check_rate_limit(action)
        return self.http.get_json(url, params=params, timeout=timeout)

    def _convert_batch(self, records: Iterable[Any], include_text: bool = False) -> List[PaperMetadata]:
        """
        并发转换一批原始记录，结果保持输入顺序，无效记录被丢弃。

        参数:
            records: 原始记录
            include_text: 是否附加正文（浏览类调用必须为 False）
        """
        records = list(records)
        if not records:
            return []

        workers = min(self.MAX_WORKERS, len(records))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            papers = list(executor.map(lambda record: self._safe_convert(record, include_text), records))

        return [paper for paper in papers if paper is not None]

    def _safe_convert(self, record: Any, include_text: bool) -> Optional[PaperMetadata]:
        try:
            return self._convert_record(record, include_text)
        except Exception as e:
            logger.warning(f"[{self.display_name}] 记录解析失败，已跳过: {e}")
            return None

    def _convert_record(self, record: Any, include_text: bool) -> Optional[PaperMetadata]:
        paper = self._to_paper(record)
        if paper is not None and include_text:
            self._attach_text(paper, record)
        return paper

    def _attach_text(self, paper: PaperMetadata, record: Any):
        """
        为论文附加正文，所有失败都吸收为 text_extraction_failed。

        单独做一次速率检查，被拒绝时同样视为提取失败而不是抛出异常。
        """
        try:
            result = self._extract(paper, record)
        except Exception as e:
            logger.error(f"[{self.display_name}] 正文提取异常: {paper.id}: {e}")
            result = failed_result(error=str(e))

        if result.extraction_success:
            paper.text = result.text
            if result.truncated:
                paper.text_truncated = True
            logger.info(
                f"[{self.display_name}] 正文提取成功: {paper.id}, "
                f"{len(paper.text)} 字符, 来源 {result.source.value}, 截断={result.truncated}"
            )
            return

        fallback = self._fallback_text(record)
        if fallback:
            fallback, truncated = enforce_length(
                self.text_cleaner.clean(fallback),
                self.extraction_config.max_text_length,
            )
        if fallback:
            paper.text = fallback
            if truncated:
                paper.text_truncated = True
            logger.info(f"[{self.display_name}] 正文提取失败，使用摘要代替: {paper.id}")
            return

        paper.text = ""
        paper.text_extraction_failed = True
        logger.warning(f"[{self.display_name}] 正文提取失败: {paper.id} ({result.metadata})")

    def _extract(self, paper: PaperMetadata, record: Any) -> TextExtractionResult:
        location = self._content_location(record)
        if location.kind is ContentKind.NONE or not location.url:
            logger.info(f"[{self.display_name}] 未找到全文位置: {paper.id} (路径: {location.resolver_path})")
            return failed_result(reason="no full-text location", resolverPath=location.resolver_path)

        if location.kind is ContentKind.PDF and not self.extraction_config.enable_pdf_extraction:
            logger.info(f"[{self.display_name}] 全文只有PDF且PDF提取已关闭: {paper.id}")
            return failed_result(reason="pdf extraction disabled", resolverPath=location.resolver_path)

        if not self.rate_limiter.check_and_consume(self.source):
            logger.warning(f"[{self.display_name}] 正文提取被限流: {paper.id}")
            return failed_result(reason="rate limited", resolverPath=location.resolver_path)

        if location.kind is ContentKind.PDF:
            return self.pdf_extractor.extract_text(location.url)
        return self.html_extractor.extract_text(location.url)
