"""
CORE 论文数据源

通过 CORE API v3 检索开放获取论文（公共额度，不带 API key）。
正文优先从 CORE 的下载地址提取，其次是原始全文地址，都失败时以摘要代替。
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import NotAvailableError
from ..http_client import HttpClient
from ..models import Category, ContentKind, ContentLocation, PaperMetadata, Source
from ..rate_limiter import RateLimiter
from .base_source import BasePaperSource

logger = logging.getLogger(__name__)

CORE_API_BASE = "https://api.core.ac.uk/v3"

# CORE 单次检索最多 100 条
MAX_PAGE_SIZE = 100

CORE_CATEGORIES = [
    Category("computer_science", "Computer Science", "Computing and information technology research"),
    Category("mathematics", "Mathematics", "Mathematical research and analysis"),
    Category("physics", "Physics", "Physical sciences and astronomy"),
    Category("chemistry", "Chemistry", "Chemical sciences and molecular research"),
    Category("biology", "Biology", "Biological sciences and life sciences"),
    Category("medicine", "Medicine", "Medical and health sciences"),
    Category("engineering", "Engineering", "Engineering and technology"),
    Category("social_sciences", "Social Sciences", "Social and behavioral sciences"),
    Category("economics", "Economics", "Economic research and business studies"),
    Category("psychology", "Psychology", "Psychological research and cognitive sciences"),
    Category("education", "Education", "Educational research and pedagogy"),
    Category("linguistics", "Linguistics", "Language and linguistic studies"),
    Category("philosophy", "Philosophy", "Philosophical research and ethics"),
    Category("history", "History", "Historical research and cultural studies"),
    Category("geography", "Geography", "Geographic and environmental studies"),
    Category("law", "Law", "Legal studies and jurisprudence"),
    Category("arts", "Arts", "Arts, literature, and cultural studies"),
    Category("agriculture", "Agriculture", "Agricultural sciences and food security"),
    Category("environmental_science", "Environmental Science", "Environmental and sustainability research"),
    Category("political_science", "Political Science", "Political research and governance studies"),
]

CATEGORY_TERMS = {
    "computer_science": ["computer science", "computing", "artificial intelligence", "machine learning"],
    "mathematics": ["mathematics", "mathematical", "statistics", "probability"],
    "physics": ["physics", "astronomy", "astrophysics", "quantum"],
    "chemistry": ["chemistry", "chemical", "biochemistry", "molecular"],
    "biology": ["biology", "biological", "genetics", "molecular biology"],
    "medicine": ["medicine", "medical", "health", "clinical"],
    "engineering": ["engineering", "technology", "mechanical", "electrical"],
    "social_sciences": ["social science", "sociology", "anthropology", "social"],
    "economics": ["economics", "economic", "business", "finance"],
    "psychology": ["psychology", "psychological", "cognitive", "behavioral"],
    "education": ["education", "educational", "learning", "pedagogy"],
    "linguistics": ["linguistics", "language", "linguistic", "phonetics"],
    "philosophy": ["philosophy", "philosophical", "ethics", "logic"],
    "history": ["history", "historical", "cultural studies", "heritage"],
    "geography": ["geography", "geographic", "environmental", "spatial"],
    "law": ["law", "legal", "jurisprudence", "justice"],
    "arts": ["arts", "literature", "cultural", "humanities"],
    "agriculture": ["agriculture", "agricultural", "farming", "food security"],
    "environmental_science": ["environmental", "sustainability", "ecology", "climate"],
    "political_science": ["political science", "politics", "governance", "policy"],
}


def build_search_query(category: str) -> str:
    """分类转成 CORE 检索式，只保留有全文的论文"""
    category = category.strip()
    terms = CATEGORY_TERMS.get(category.lower())
    if terms:
        subjects = "subjects:(" + " OR ".join(f'"{term}"' for term in terms) + ")"
    else:
        subjects = f'subjects:"{category}"'
    return f"{subjects} AND _exists_:fullText"


def _looks_like_pdf(url: str) -> bool:
    lowered = url.lower()
    return lowered.endswith(".pdf") or "core.ac.uk/download/" in lowered


class CoreSource(BasePaperSource):
    """CORE 数据源：聚合各机构仓储的开放获取论文"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None
    ):
        super().__init__(Source.CORE, rate_limiter, http, extraction_config, pdf_options)

    def list_categories(self) -> List[Category]:
        logger.info("[CORE] 列出分类")
        return list(CORE_CATEGORIES)

    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        query = build_search_query(category)
        logger.info(f"[CORE] 获取最新论文: {category}, 数量 {count}")

        data = self._get_json(
            f"{CORE_API_BASE}/search/works",
            params={
                "q": query,
                "limit": min(count, MAX_PAGE_SIZE),
                "offset": 0,
                "sort": "publishedDate:desc",
            },
            action="获取最新论文",
        )
        results = (data or {}).get("results")
        if results is None:
            logger.warning(f"[CORE] 响应格式异常: {query}")
            return []

        valid = [r for r in results if r.get("id") and r.get("title")]
        if not valid:
            logger.warning(f"[CORE] 分类 {category} 没有找到论文")

        papers = self._convert_batch(valid)
        logger.info(f"[CORE] 分类 {category}: 获取 {len(papers)} 篇论文")
        return papers

    def fetch_content(self, paper_id: str) -> PaperMetadata:
        paper_id = paper_id.strip()
        logger.info(f"[CORE] 获取论文内容: {paper_id}")

        record = self._get_json(f"{CORE_API_BASE}/works/{quote(paper_id, safe='')}", action="获取论文内容")
        paper = self._convert_record(record, include_text=True) if record else None
        if paper is None:
            raise NotAvailableError(f"Paper with ID {paper_id} not found in CORE")

        logger.info(f"[CORE] 成功获取论文: {paper.title[:50]}")
        return paper

    # ======================================================================
    # 内部实现
    # ======================================================================

    @staticmethod
    def _pdf_url(record: Dict[str, Any]) -> Optional[str]:
        """下载地址 > 下载类链接中的PDF > 原始全文地址"""
        if record.get("downloadUrl"):
            return record["downloadUrl"]
        for link in record.get("links") or []:
            url = link.get("url") or ""
            if link.get("type") == "download" and ".pdf" in url.lower():
                return url
        source_urls = record.get("sourceFulltextUrls") or []
        return source_urls[0] if source_urls else None

    @staticmethod
    def _date(record: Dict[str, Any]) -> str:
        published = record.get("publishedDate")
        if published and len(published) >= 10:
            return published[:10]
        year = record.get("yearPublished")
        return f"{year}-01-01" if year else ""

    def _to_paper(self, record: Dict[str, Any]) -> Optional[PaperMetadata]:
        title = " ".join((record.get("title") or "").split())
        if not title or record.get("id") is None:
            return None

        return PaperMetadata(
            id=str(record["id"]),
            title=title,
            authors=[a.get("name") for a in record.get("authors") or [] if a.get("name")],
            date=self._date(record),
            pdf_url=self._pdf_url(record),
        )

    def _content_location(self, record: Dict[str, Any]) -> ContentLocation:
        url = self._pdf_url(record)
        if not url:
            return ContentLocation.none("core_no_fulltext")
        if _looks_like_pdf(url):
            return ContentLocation(ContentKind.PDF, url, "core_download->pdf")
        return ContentLocation(ContentKind.HTML, url, "core_source_url->html")

    def _fallback_text(self, record: Dict[str, Any]) -> Optional[str]:
        abstract = (record.get("abstract") or "").strip()
        return f"Abstract: {abstract}" if abstract else None
