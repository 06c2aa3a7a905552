"""
HTML 全文提取器

按主机族选择策略：
- 主站/镜像族（arxiv.org、ar5iv）：先取主站，失败时按论文ID回退到 ar5iv 镜像，
  正文容器按固定优先级取第一个非空匹配
- 通用族（出版社落地页、Europe PMC、bioRxiv 等）：无镜像，
  在所有候选容器中取最长的有效匹配
任何异常都转成失败结果，不向外抛出。
"""

import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from config import ExtractionConfig, NetworkConfig
from ..errors import HarvestError
from ..http_client import HttpClient
from ..models import ExtractionSource, TextExtractionResult
from .base_extractor import enforce_length, failed_result
from .text_cleaner import TextCleaner

logger = logging.getLogger(__name__)

ARXIV_HTML_BASE = "https://arxiv.org/html"
AR5IV_HTML_BASE = "https://ar5iv.labs.arxiv.org/html"

_PRIMARY_HOSTS = ("arxiv.org", "ar5iv.labs.arxiv.org", "ar5iv.org")

_ARXIV_ID_RE = re.compile(
    r"(?:arxiv\.org/(?:html|abs|pdf)/|ar5iv(?:\.labs\.arxiv)?\.org/(?:html|abs)/)"
    r"(\d{4}\.\d{4,5}|[a-z\-]+(?:\.[A-Z]{2})?/\d{7})"
)

# 非正文元素
_NOISE_SELECTOR = "nav, header, footer, aside, script, style, .sidebar, .navigation"

# 主站族：LaTeX 文档根 → 语义化文章容器
_PRIMARY_SELECTORS = [".ltx_document", "article", "main", '[role="main"]', "#content"]

# 通用族：常见学术页面正文容器
_GENERIC_SELECTORS = [
    "article",
    '[role="main"]',
    ".paper-content",
    ".article-body",
    ".content",
    "main",
    "#content",
    ".paper-text",
    ".fulltext",
]

# 通用族候选的最小有效长度（字符）
_MIN_CONTENT_LENGTH = 50


def is_primary_family(url: str) -> bool:
    """URL 是否属于有镜像的主站族"""
    host = (urlparse(url).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in _PRIMARY_HOSTS)


def extract_arxiv_id(url: str) -> str:
    """
    从 arXiv/ar5iv URL 中解析论文ID。

    异常:
        ValueError: 无法解析
    """
    match = _ARXIV_ID_RE.search(url)
    if not match:
        raise ValueError(f"无法从URL解析arXiv ID: {url}")
    return match.group(1)


class HtmlExtractor:
    """
    HTML 全文提取器。

    只持有注入的配置和 HTTP 客户端，调用之间不保留状态。
    """

    def __init__(self, config: ExtractionConfig, http: HttpClient, network: Optional[NetworkConfig] = None):
        """
        参数:
            config: 全文提取配置
            http: 共享的 HTTP 客户端
            network: 网络配置（默认取 http 客户端的配置）
        """
        self.config = config
        self.http = http
        self.network = network or http.network
        self.text_cleaner = TextCleaner(config.cleaning_options)

    def extract_text(self, url: str) -> TextExtractionResult:
        """
        提取网页正文。

        参数:
            url: 论文HTML页面地址

        返回:
            TextExtractionResult: 成功或失败结果，永不抛出异常
        """
        try:
            logger.info(f"开始HTML正文提取: {url}")
            if is_primary_family(url):
                return self._extract_primary(url)
            return self._extract_generic(url)
        except Exception as e:
            logger.error(f"HTML正文提取异常: {url}: {e}")
            return failed_result(url=url, error=str(e))

    # ======================================================================
    # 抓取策略
    # ======================================================================

    def _fetch_html(self, url: str) -> str:
        return self.http.get_text(url, timeout=self.network.html_timeout, retries=0)

    def _extract_primary(self, url: str) -> TextExtractionResult:
        source = ExtractionSource.HTML_PRIMARY
        try:
            html = self._fetch_html(url)
        except HarvestError as primary_error:
            if not self.config.enable_arxiv_fallback:
                logger.warning(f"arXiv HTML 获取失败且未启用镜像回退: {url}")
                return failed_result(url=url, primaryError=primary_error.message)

            try:
                arxiv_id = extract_arxiv_id(url)
            except ValueError as e:
                logger.warning(str(e))
                return failed_result(url=url, primaryError=primary_error.message, error=str(e))

            mirror_url = f"{AR5IV_HTML_BASE}/{arxiv_id}"
            logger.info(f"尝试 ar5iv 镜像: {url} -> {mirror_url}")
            try:
                html = self._fetch_html(mirror_url)
            except HarvestError as mirror_error:
                logger.error(
                    f"arXiv 与 ar5iv 均获取失败: {url} "
                    f"(主站: {primary_error.message}; 镜像: {mirror_error.message})"
                )
                return failed_result(
                    url=url,
                    primaryError=primary_error.message,
                    mirrorError=mirror_error.message,
                )
            source = ExtractionSource.HTML_MIRROR

        return self._build_result(self._select_primary_content(html), source, url)

    def _extract_generic(self, url: str) -> TextExtractionResult:
        if not self.config.enable_openalex_extraction:
            logger.warning(f"通用网页正文提取已关闭: {url}")
            return failed_result(url=url, error="generic HTML extraction disabled")

        try:
            html = self._fetch_html(url)
        except HarvestError as e:
            logger.error(f"通用网页获取失败: {url}: {e.message}")
            return failed_result(url=url, error=e.message)

        return self._build_result(self._select_generic_content(html), ExtractionSource.GENERIC_HTML, url)

    # ======================================================================
    # 正文选择
    # ======================================================================

    @staticmethod
    def _parse(html: str) -> BeautifulSoup:
        soup = BeautifulSoup(html, "lxml")
        for element in soup.select(_NOISE_SELECTOR):
            element.decompose()
        return soup

    @staticmethod
    def _body_text(soup: BeautifulSoup) -> str:
        body = soup.body or soup
        return body.get_text()

    def _select_primary_content(self, html: str) -> str:
        """按优先级取第一个非空容器，都没有时退回去噪后的 body"""
        soup = self._parse(html)
        for selector in _PRIMARY_SELECTORS:
            element = soup.select_one(selector)
            if element is not None:
                text = element.get_text()
                if text.strip():
                    return text
        return self._body_text(soup)

    def _select_generic_content(self, html: str) -> str:
        """在所有候选容器中取最长的有效匹配，都不满足时退回去噪后的 body"""
        soup = self._parse(html)
        candidates: List[Tuple[int, str]] = []
        for selector in _GENERIC_SELECTORS:
            for element in soup.select(selector):
                text = element.get_text()
                length = len(text.strip())
                if length >= _MIN_CONTENT_LENGTH:
                    candidates.append((length, text))

        if candidates:
            return max(candidates, key=lambda item: item[0])[1]
        return self._body_text(soup)

    def _build_result(self, content: str, source: ExtractionSource, url: str) -> TextExtractionResult:
        cleaned_text = self.text_cleaner.clean(content)
        if not cleaned_text:
            logger.warning(f"页面未提取到正文: {url}")
            return failed_result(url=url, error="empty content")

        text, truncated = enforce_length(cleaned_text, self.config.max_text_length)

        logger.info(
            f"HTML正文提取成功 [{source.value}]: 原始 {len(content)} 字符, "
            f"清洗后 {len(cleaned_text)} 字符, 最终 {len(text)} 字符, 截断={truncated}"
        )

        return TextExtractionResult(
            text=text,
            truncated=truncated,
            extraction_success=True,
            source=source,
            metadata={"url": url},
        )
