"""
论文采集调度器

HarvestAgent 是对外的操作层：校验参数、选择数据源、整理响应和警告。
进程内只创建一个速率限制器，在构造时注入到所有数据源。
"""

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import Settings, settings as default_settings
from .errors import ErrorCode, InvalidQueryError
from .extractors import PdfExtractionChannels, PdfExtractor
from .http_client import HttpClient
from .models import (
    CategoryList,
    HarvestResponse,
    PaperMetadata,
    PdfConfirmationRequest,
    PdfContentResult,
    PdfMetadata,
    Source,
    TextExtractionResult,
)
from .rate_limiter import RateLimiter
from .sources import (
    ArxivSource,
    BasePaperSource,
    BioRxivSource,
    CoreSource,
    EuropePmcSource,
    OpenAlexSource,
    PmcSource,
)

logger = logging.getLogger(__name__)

# 自动确认的PDF大小上限（MB），超过则拒绝
AUTO_CONFIRM_LIMIT_MB = 30


# ==========================================================================
# 请求参数模型
# ==========================================================================

class _Request(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class ListCategoriesRequest(_Request):
    source: Source


class FetchLatestRequest(_Request):
    source: Source
    category: str = Field(min_length=1)
    count: Optional[int] = Field(default=None, ge=1, le=200)


class FetchTopCitedRequest(_Request):
    source: Source = Source.OPENALEX
    concept: str = Field(min_length=1)
    since: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    count: Optional[int] = Field(default=None, ge=1, le=200)


class FetchContentRequest(_Request):
    source: Source
    id: str = Field(min_length=1)


class FetchPdfContentRequest(_Request):
    url: str = Field(pattern=r"^https?://\S+$")
    max_size_mb: float = Field(default=50, ge=1, le=100)
    max_pages: int = Field(default=100, ge=1, le=500)
    timeout: float = Field(default=120, ge=10, le=300)
    confirm_large_files: bool = True


def _validate(model: type, **params) -> BaseModel:
    """校验参数，失败时转成 InvalidQueryError"""
    try:
        return model(**params)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise InvalidQueryError(
            f"Invalid parameters: {details}",
            suggestions=[f"支持的数据源: {', '.join(s.value for s in Source)}"],
        ) from e


def assess_context_impact(size_mb: float) -> str:
    """根据PDF大小评估对下游上下文的影响"""
    if size_mb <= 10:
        return "low"
    if size_mb <= 25:
        return "medium"
    return "high"


class HarvestAgent:
    """
    论文采集调度器。

    职责：
    - 为每个数据源构造一个驱动，共享同一个 HTTP 客户端和速率限制器
    - 浏览类操作返回的批量结果数量不足时附加 PartialSuccess 警告
    - 序列化后的响应超过大小上限时附加警告
    - 独立的 PDF 提取工具，支持按 URL 取消
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        http: Optional[HttpClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sources: Optional[Dict[Source, BasePaperSource]] = None
    ):
        """
        初始化调度器。

        参数:
            config: 全局配置，默认使用 config.settings
            http: 共享的 HTTP 客户端
            rate_limiter: 共享的速率限制器
            sources: 数据源驱动表，默认构造全部数据源
        """
        self.config = config or default_settings
        self.http = http or HttpClient(self.config.NETWORK)
        self.rate_limiter = rate_limiter or RateLimiter(self.config.RATE_LIMITS)
        self.sources = sources if sources is not None else self._build_sources()

        self._active_extractions: Dict[str, PdfExtractionChannels] = {}
        self._active_lock = threading.Lock()

        logger.info(f"调度器已初始化，数据源: {', '.join(s.value for s in self.sources)}")

    def _build_sources(self) -> Dict[Source, BasePaperSource]:
        args = (self.rate_limiter, self.http, self.config.EXTRACTION, self.config.PDF)
        return {
            Source.ARXIV: ArxivSource(*args),
            Source.OPENALEX: OpenAlexSource(*args),
            Source.PMC: PmcSource(*args),
            Source.EUROPEPMC: EuropePmcSource(*args),
            Source.BIORXIV: BioRxivSource(*args),
            Source.CORE: CoreSource(*args),
        }

    def __enter__(self):
        """支持上下文管理器"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self.http.close()

    def _driver(self, source: Source) -> BasePaperSource:
        driver = self.sources.get(source)
        if driver is None:
            raise InvalidQueryError(f"数据源未启用: {source.value}")
        return driver

    def _resolve_count(self, count: Optional[int]) -> int:
        if count is None:
            return self.config.DEFAULT_PAPER_COUNT
        if count > self.config.MAX_PAPER_COUNT:
            raise InvalidQueryError(f"count 不能超过 {self.config.MAX_PAPER_COUNT}")
        return count

    # ======================================================================
    # 浏览与取内容
    # ======================================================================

    def list_categories(self, source: str) -> CategoryList:
        """
        列出数据源的分类。

        参数:
            source: 数据源名称

        返回:
            CategoryList: 数据源和分类列表
        """
        request = _validate(ListCategoriesRequest, source=source)
        categories = self._driver(request.source).list_categories()
        logger.info(f"[{request.source.display_name}] 返回 {len(categories)} 个分类")
        return CategoryList(source=request.source, categories=categories)

    def fetch_latest(self, source: str, category: str, count: Optional[int] = None) -> HarvestResponse:
        """
        获取指定分类的最新论文（仅元数据）。

        参数:
            source: 数据源名称
            category: 分类ID或概念名
            count: 论文数量（1-200，默认50）
        """
        request = _validate(FetchLatestRequest, source=source, category=category, count=count)
        requested = self._resolve_count(request.count)

        papers = self._driver(request.source).fetch_latest(request.category, requested)
        return self._batch_response(papers, requested)

    def fetch_top_cited(
        self,
        concept: str,
        since: str,
        count: Optional[int] = None,
        source: str = Source.OPENALEX.value
    ) -> HarvestResponse:
        """
        获取某概念自指定日期以来被引最多的论文（仅元数据）。

        参数:
            concept: 概念ID或名称
            since: 起始日期 YYYY-MM-DD
            count: 论文数量（1-200，默认50）
            source: 数据源名称，只有 openalex 支持
        """
        request = _validate(FetchTopCitedRequest, source=source, concept=concept, since=since, count=count)
        requested = self._resolve_count(request.count)

        papers = self._driver(request.source).fetch_top_cited(request.concept, request.since, requested)
        return self._batch_response(papers, requested)

    def fetch_content(self, source: str, paper_id: str) -> HarvestResponse:
        """
        获取单篇论文的元数据和正文。

        正文提取失败不会抛出异常，返回的论文带 text_extraction_failed 标记。
        """
        request = _validate(FetchContentRequest, source=source, id=paper_id)
        paper = self._driver(request.source).fetch_content(request.id)

        warnings = []
        if paper.text_extraction_failed:
            warnings.append(f"{ErrorCode.NOT_AVAILABLE.value}: full text is not available for {paper.id}")
        return self._check_size(HarvestResponse(content=paper, warnings=warnings))

    def _batch_response(self, papers: List[PaperMetadata], requested: int) -> HarvestResponse:
        warnings = []
        if len(papers) < requested:
            warnings.append(
                f"{ErrorCode.PARTIAL_SUCCESS.value}: returned {len(papers)} of {requested} requested papers"
            )
            logger.warning(f"部分成功: 请求 {requested} 篇，返回 {len(papers)} 篇")
        return self._check_size(HarvestResponse(content=papers, warnings=warnings))

    def _check_size(self, response: HarvestResponse) -> HarvestResponse:
        size = len(json.dumps(response.to_dict(), ensure_ascii=False).encode("utf-8"))
        if size > self.config.MAX_RESPONSE_SIZE:
            limit_mb = self.config.MAX_RESPONSE_SIZE / (1024 * 1024)
            logger.warning(f"响应大小 {size / (1024 * 1024):.1f}MB 超过上限 {limit_mb:.0f}MB")
            response.warnings.append(
                f"Response size {size} bytes exceeds the {limit_mb:.0f}MB limit; consider requesting fewer papers"
            )
        return response

    # ======================================================================
    # 独立 PDF 提取
    # ======================================================================

    def fetch_pdf_content(
        self,
        url: str,
        max_size_mb: float = 50,
        max_pages: int = 100,
        timeout: float = 120,
        confirm_large_files: bool = True
    ) -> PdfContentResult:
        """
        直接从 URL 提取 PDF 正文。

        提取在工作线程中运行，当前线程消费进度事件并应答确认请求；
        运行期间可通过 cancel_pdf_extraction(url) 取消。

        参数:
            url: PDF 地址
            max_size_mb: 大小上限（1-100MB）
            max_pages: 最多处理页数（1-500）
            timeout: 下载超时（10-300秒）
            confirm_large_files: 大文件是否需要确认

        返回:
            PdfContentResult: 提取结果
        """
        request = _validate(
            FetchPdfContentRequest,
            url=url,
            max_size_mb=max_size_mb,
            max_pages=max_pages,
            timeout=timeout,
            confirm_large_files=confirm_large_files,
        )
        logger.info(
            f"开始PDF提取: {request.url} (上限 {request.max_size_mb}MB, {request.max_pages} 页)"
        )

        options = self.config.PDF.model_copy(update={
            "max_size_mb": request.max_size_mb,
            "max_pages": request.max_pages,
            "timeout_seconds": request.timeout,
            "require_confirmation": request.confirm_large_files,
            "interactive": True,
        })
        extractor = PdfExtractor(self.config.EXTRACTION, self.http, options)
        channels = PdfExtractionChannels()

        with self._active_lock:
            self._active_extractions[request.url] = channels

        try:
            with ThreadPoolExecutor(max_workers=1) as executor:
                future = executor.submit(extractor.extract_text, request.url, channels)
                for event in channels.iter_events():
                    if isinstance(event, PdfConfirmationRequest):
                        channels.reply(self._confirm_large_pdf(event.metadata))
                    else:
                        logger.info(f"PDF提取进度 [{event.phase.value}] {event.progress}%: {event.message}")
                result = future.result()
        finally:
            with self._active_lock:
                if self._active_extractions.get(request.url) is channels:
                    del self._active_extractions[request.url]

        return self._to_pdf_content_result(result)

    @staticmethod
    def _confirm_large_pdf(metadata: PdfMetadata) -> bool:
        """大文件确认策略：不超过30MB自动接受，否则拒绝"""
        impact = assess_context_impact(metadata.size_mb)
        logger.warning(
            f"检测到大体积PDF，需要确认: {metadata.url} ({metadata.size_mb:.1f}MB, 上下文影响 {impact})"
        )
        if metadata.size_mb > AUTO_CONFIRM_LIMIT_MB:
            logger.warning(f"PDF 超过 {AUTO_CONFIRM_LIMIT_MB}MB，自动拒绝")
            return False
        logger.info("PDF 大小可接受，继续提取")
        return True

    @staticmethod
    def _to_pdf_content_result(result: TextExtractionResult) -> PdfContentResult:
        if not result.extraction_success:
            if result.user_cancelled:
                return PdfContentResult(
                    success=False,
                    cancelled=True,
                    error=result.metadata.get("reason") or "Extraction cancelled by user",
                )
            return PdfContentResult(
                success=False,
                error=result.metadata.get("error") or "PDF extraction failed",
            )

        metadata = {
            "pageCount": result.metadata.get("pageCount"),
            "sizeBytes": result.metadata.get("sizeBytes"),
            "sizeMB": result.metadata.get("pdfSize"),
            "extractionTime": result.metadata.get("extractionTime"),
            "extractionSource": "pdf",
            "textTruncated": result.truncated,
        }
        for key in ("contextWarning", "cancelIgnored"):
            if result.metadata.get(key):
                metadata[key] = result.metadata[key]

        return PdfContentResult(success=True, text=result.text, metadata=metadata)

    def cancel_pdf_extraction(self, url: str) -> bool:
        """
        取消正在进行的PDF提取。

        返回:
            bool: 找到并发出取消信号时为 True
        """
        with self._active_lock:
            channels = self._active_extractions.pop(url, None)
        if channels is None:
            return False
        channels.cancel()
        logger.info(f"已请求取消PDF提取: {url}")
        return True

    def active_extractions(self) -> List[str]:
        """正在进行的PDF提取URL列表"""
        with self._active_lock:
            return list(self._active_extractions)
