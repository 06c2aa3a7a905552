"""
ArXiv 论文数据源

通过官方 arxiv Python 库访问 arXiv API，正文来自 arXiv HTML 页面（失败时回退到 ar5iv 镜像）。
"""

import logging
import re
from typing import Any, List, Optional

import arxiv
import requests

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import NotAvailableError, SourceDownError
from ..extractors.html_extractor import ARXIV_HTML_BASE
from ..http_client import HttpClient
from ..models import Category, ContentKind, ContentLocation, PaperMetadata, Source
from ..rate_limiter import RateLimiter
from .base_source import BasePaperSource

logger = logging.getLogger(__name__)

# 常用分类（arXiv 没有分类列表接口，使用静态列表，不消耗令牌）
ARXIV_CATEGORIES = [
    Category("cs.AI", "Artificial Intelligence",
             "Covers all areas of AI except Vision, Robotics, Machine Learning, "
             "Multiagent Systems, and Computation and Language"),
    Category("cs.LG", "Machine Learning", "Papers on all aspects of machine learning research"),
    Category("cs.CL", "Computation and Language",
             "Covers natural language processing, computational linguistics, and related areas"),
    Category("cs.CV", "Computer Vision and Pattern Recognition",
             "Covers image processing, computer vision, pattern recognition, and scene understanding"),
    Category("cs.RO", "Robotics", "Roughly includes material in ACM Subject Class I.2.9"),
    Category("physics.gen-ph", "General Physics", "General physics"),
    Category("quant-ph", "Quantum Physics", "Quantum mechanics, quantum information and computation"),
    Category("math.CO", "Combinatorics",
             "Discrete mathematics, graph theory, enumeration, algebraic combinatorics"),
    Category("stat.ML", "Machine Learning (Statistics)", "Machine learning papers with a statistics focus"),
]

# arXiv API 单页上限
ARXIV_MAX_PAGE_SIZE = 2000

_ID_PREFIX_RE = re.compile(r"^(?:https?://(?:export\.)?arxiv\.org/(?:abs|pdf)/|arxiv:)", re.IGNORECASE)
_VERSION_RE = re.compile(r"v\d+$")


def clean_arxiv_id(paper_id: str) -> str:
    """
    规范化 arXiv ID：去掉 "arXiv:" 前缀、abs/pdf URL 前缀、".pdf" 后缀和版本号。

    示例: "arXiv:2401.12345v2" -> "2401.12345"
    """
    cleaned = _ID_PREFIX_RE.sub("", paper_id.strip())
    if cleaned.endswith(".pdf"):
        cleaned = cleaned[:-4]
    return _VERSION_RE.sub("", cleaned)


class SinglePageClient(arxiv.Client):
    """
    每次检索只发一个请求的 arxiv.Client。

    页大小取 max_results（不超过 API 上限），一次浏览调用对应一次网络请求、一次令牌；
    库内重试关闭，失败交给调用方按限流规则重试。
    """

    def __init__(self, delay_seconds: float = 3.0):
        super().__init__(page_size=ARXIV_MAX_PAGE_SIZE, delay_seconds=delay_seconds, num_retries=0)

    def _format_url(self, search: arxiv.Search, start: int, page_size: int) -> str:
        if search.max_results:
            page_size = min(page_size, search.max_results)
        return super()._format_url(search, start, page_size)


class ArxivSource(BasePaperSource):
    """
    ArXiv 论文数据源。

    特点：
    - 支持按领域分类（如 cs.AI, quant-ph）抓取最新论文
    - 不提供引用数排序
    - 正文走主站/镜像族的 HTML 提取
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None,
        client: Optional[arxiv.Client] = None
    ):
        """
        初始化 ArXiv 数据源。

        参数:
            client: 可注入的 arxiv.Client，默认使用 SinglePageClient
        """
        super().__init__(Source.ARXIV, rate_limiter, http, extraction_config, pdf_options)
        self.client = client or SinglePageClient()

    def list_categories(self) -> List[Category]:
        logger.info("[ArXiv] 列出分类")
        return list(ARXIV_CATEGORIES)

    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        """
        从 ArXiv 抓取指定分类的最新论文。

        参数:
            category: ArXiv 领域分类，如 "cs.AI"
            count: 论文数量

        返回:
            List[PaperMetadata]: 按提交日期倒序的论文元数据
        """
        self._check_rate_limit("获取最新论文")
        logger.info(f"[ArXiv] 开始抓取最新论文: 分类 {category}, 数量 {count}")

        search = arxiv.Search(
            query=f"cat:{category}",
            max_results=count,
            sort_by=arxiv.SortCriterion.SubmittedDate,
            sort_order=arxiv.SortOrder.Descending,
        )
        results = self._run_search(search, f"分类 {category}")
        papers = self._convert_batch(results)

        logger.info(f"[ArXiv] 分类 {category}: 获取 {len(papers)} 篇论文")
        return papers

    def fetch_content(self, paper_id: str) -> PaperMetadata:
        self._check_rate_limit("获取论文内容")
        clean_id = clean_arxiv_id(paper_id)
        logger.info(f"[ArXiv] 获取论文内容: {clean_id}")

        search = arxiv.Search(id_list=[clean_id], max_results=1)
        results = self._run_search(search, f"论文 {clean_id}")
        if not results:
            raise NotAvailableError(f"Paper with ID {paper_id} not found on arXiv")

        paper = self._convert_record(results[0], include_text=True)
        if paper is None:
            raise NotAvailableError(f"Paper with ID {paper_id} not found on arXiv")

        logger.info(f"[ArXiv] 成功获取论文: {paper.title[:50]}")
        return paper

    # ======================================================================
    # 内部实现
    # ======================================================================

    def _run_search(self, search: arxiv.Search, description: str) -> List[arxiv.Result]:
        """执行检索并把 arxiv 库的异常映射为统一错误类型"""
        try:
            return list(self.client.results(search))
        except arxiv.HTTPError as e:
            logger.error(f"[ArXiv] {description} 请求失败: HTTP {e.status}")
            if e.status >= 500:
                raise SourceDownError("arXiv API server error", status=e.status) from e
            raise NotAvailableError(f"arXiv API 返回 HTTP {e.status}") from e
        except arxiv.UnexpectedEmptyPageError:
            logger.warning(f"[ArXiv] {description} 返回空页，按无结果处理")
            return []
        except requests.exceptions.Timeout as e:
            raise SourceDownError("arXiv API request timed out") from e
        except requests.exceptions.RequestException as e:
            raise SourceDownError(f"arXiv API 请求失败: {e}") from e

    def _to_paper(self, record: Any) -> Optional[PaperMetadata]:
        title = " ".join((record.title or "").split())
        if not title or record.published is None:
            return None

        return PaperMetadata(
            id=clean_arxiv_id(record.get_short_id()),
            title=title,
            authors=[author.name for author in record.authors],
            date=record.published.date().isoformat(),
            pdf_url=record.pdf_url,
        )

    def _content_location(self, record: Any) -> ContentLocation:
        arxiv_id = clean_arxiv_id(record.get_short_id())
        return ContentLocation(
            kind=ContentKind.HTML,
            url=f"{ARXIV_HTML_BASE}/{arxiv_id}",
            resolver_path="arxiv_html",
        )
