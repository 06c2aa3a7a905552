"""
PubMed Central (PMC) 论文数据源

通过 NCBI E-utilities 检索 PMC 开放获取文献：esearch 取ID列表，esummary 取元数据。
正文来自 PMC 文章 HTML 页面。
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import NotAvailableError
from ..http_client import HttpClient
from ..models import Category, ContentKind, ContentLocation, PaperMetadata, Source
from ..rate_limiter import RateLimiter
from .base_source import BasePaperSource

logger = logging.getLogger(__name__)

EUTILS_BASE = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
PMC_ARTICLE_BASE = "https://pmc.ncbi.nlm.nih.gov/articles"
TOOL_NAME = "paper-harvester"

# NCBI 建议 esummary 的 GET 请求一次不超过 200 个ID
MAX_PAGE_SIZE = 200

PMC_CATEGORIES = [
    Category("medicine", "Medicine", "General medical research"),
    Category("biology", "Biology", "Biological sciences"),
    Category("biochemistry", "Biochemistry", "Biochemical research"),
    Category("genetics", "Genetics", "Genetic studies"),
    Category("immunology", "Immunology", "Immune system research"),
    Category("neuroscience", "Neuroscience", "Neurological studies"),
    Category("oncology", "Oncology", "Cancer research"),
    Category("cardiology", "Cardiology", "Cardiovascular research"),
    Category("pharmacology", "Pharmacology", "Drug research"),
    Category("microbiology", "Microbiology", "Microbial studies"),
    Category("bioinformatics", "Bioinformatics", "Computational biology"),
    Category("public_health", "Public Health", "Population health studies"),
]

# 分类到 Entrez 检索式的映射，未收录的分类做全字段短语检索
CATEGORY_QUERIES = {
    "medicine": '"medicine"[MeSH Terms] OR "clinical medicine"[All Fields]',
    "biology": '"biology"[MeSH Terms] OR "biological science"[All Fields]',
    "biochemistry": '"biochemistry"[MeSH Terms] OR "biochemical"[All Fields]',
    "genetics": '"genetics"[MeSH Terms] OR "genetic"[All Fields]',
    "immunology": '"immunology"[MeSH Terms] OR "immune"[All Fields]',
    "neuroscience": '"neuroscience"[MeSH Terms] OR "neurological"[All Fields]',
    "oncology": '"oncology"[MeSH Terms] OR "cancer"[All Fields]',
    "cardiology": '"cardiology"[MeSH Terms] OR "cardiovascular"[All Fields]',
    "pharmacology": '"pharmacology"[MeSH Terms] OR "drug"[All Fields]',
    "microbiology": '"microbiology"[MeSH Terms] OR "microbial"[All Fields]',
    "bioinformatics": '"bioinformatics"[MeSH Terms] OR "computational biology"[All Fields]',
    "public_health": '"public health"[MeSH Terms] OR "epidemiology"[All Fields]',
}

# esummary 的日期形如 "2024 Jan 15"、"2024 Jan"、"2024/01/15" 或 "2024"
_PUBDATE_FORMATS = ("%Y %b %d", "%Y %b", "%Y/%m/%d", "%Y-%m-%d", "%Y")
_YEAR_RE = re.compile(r"^(\d{4})")


def build_search_query(category: str) -> str:
    category = category.strip()
    return CATEGORY_QUERIES.get(category.lower(), f'"{category}"[All Fields]')


def clean_pmc_id(paper_id: str) -> str:
    """去掉 PMC 前缀，得到 esummary 使用的数字ID"""
    paper_id = paper_id.strip()
    if paper_id.upper().startswith("PMC"):
        paper_id = paper_id[3:]
    return paper_id


def parse_pubdate(value: Optional[str]) -> str:
    """
    把 esummary 的日期转成 ISO 格式。

    只有月份或年份时补齐为当月/当年第一天，无法解析时返回 ""。
    """
    if not value:
        return ""
    value = value.strip()
    for fmt in _PUBDATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date().isoformat()
        except ValueError:
            continue

    # 季节或区间写法（如 "2024 Spring"、"2024 Jan-Feb"）只保留年份
    match = _YEAR_RE.match(value)
    return f"{match.group(1)}-01-01" if match else ""


class PmcSource(BasePaperSource):
    """PubMed Central 数据源：静态学科分类，esearch + esummary 两步检索"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None
    ):
        super().__init__(Source.PMC, rate_limiter, http, extraction_config, pdf_options)
        self.email = http.network.polite_pool_email

    def list_categories(self) -> List[Category]:
        logger.info("[PMC] 列出分类")
        return list(PMC_CATEGORIES)

    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        """
        获取指定分类的最新论文。

        两次网络调用（esearch、esummary）各消耗一个令牌。
        """
        query = build_search_query(category)
        logger.info(f"[PMC] 获取最新论文: {category}, 数量 {count}")

        data = self._get_json(
            f"{EUTILS_BASE}/esearch.fcgi",
            params=self._params(term=query, retmax=min(count, MAX_PAGE_SIZE), sort="pub_date"),
            action="检索论文ID",
        )
        id_list = ((data or {}).get("esearchresult") or {}).get("idlist") or []
        if not id_list:
            logger.warning(f"[PMC] 分类 {category} 没有找到论文 (检索式: {query})")
            return []

        summaries = self._summaries(id_list, action="获取论文摘要")
        records = [summaries[uid] for uid in id_list if uid in summaries]

        papers = self._convert_batch(records)
        logger.info(f"[PMC] 分类 {category}: 获取 {len(papers)} 篇论文")
        return papers

    def fetch_content(self, paper_id: str) -> PaperMetadata:
        clean_id = clean_pmc_id(paper_id)
        logger.info(f"[PMC] 获取论文内容: PMC{clean_id}")

        if not clean_id.isdigit():
            raise NotAvailableError(f"Paper with PMC ID {paper_id} not found")

        record = self._summaries([clean_id], action="获取论文内容").get(clean_id)
        paper = self._convert_record(record, include_text=True) if record else None
        if paper is None:
            raise NotAvailableError(f"Paper with PMC ID {paper_id} not found")

        logger.info(f"[PMC] 成功获取论文: {paper.title[:50]}")
        return paper

    # ======================================================================
    # 内部实现
    # ======================================================================

    def _params(self, **params) -> Dict[str, Any]:
        return {"db": "pmc", "retmode": "json", "tool": TOOL_NAME, "email": self.email, **params}

    def _summaries(self, ids: List[str], action: str) -> Dict[str, Dict[str, Any]]:
        """esummary 批量取元数据，返回 {uid: 记录}，出错的记录被跳过"""
        data = self._get_json(f"{EUTILS_BASE}/esummary.fcgi", params=self._params(id=",".join(ids)), action=action)
        result = (data or {}).get("result") or {}
        summaries = {}
        for uid in result.get("uids", ids):
            record = result.get(uid)
            if isinstance(record, dict) and "error" not in record:
                summaries[uid] = record
        return summaries

    @staticmethod
    def _pmcid(record: Dict[str, Any]) -> str:
        for article_id in record.get("articleids") or []:
            if article_id.get("idtype") == "pmcid" and article_id.get("value"):
                return article_id["value"]
        return f"PMC{record.get('uid')}"

    def _to_paper(self, record: Dict[str, Any]) -> Optional[PaperMetadata]:
        title = " ".join((record.get("title") or "").split())
        if not title or not record.get("uid"):
            return None

        pmcid = self._pmcid(record)
        authors = [
            author.get("name")
            for author in record.get("authors") or []
            if author.get("authtype", "Author") == "Author" and author.get("name")
        ]

        return PaperMetadata(
            id=pmcid,
            title=title,
            authors=authors,
            date=parse_pubdate(record.get("epubdate") or record.get("pubdate")),
            pdf_url=f"{PMC_ARTICLE_BASE}/{pmcid}/pdf/",
        )

    def _content_location(self, record: Dict[str, Any]) -> ContentLocation:
        return ContentLocation(ContentKind.HTML, f"{PMC_ARTICLE_BASE}/{self._pmcid(record)}/", "pmc_article_html")
