"""
Europe PMC 论文数据源

通过 Europe PMC REST API 检索有全文的生命科学文献，正文来自 Europe PMC 文章落地页。
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import NotAvailableError
from ..http_client import HttpClient
from ..models import Category, ContentKind, ContentLocation, PaperMetadata, Source
from ..rate_limiter import RateLimiter
from .base_source import BasePaperSource

logger = logging.getLogger(__name__)

EUROPEPMC_API_BASE = "https://www.ebi.ac.uk/europepmc/webservices/rest"
EUROPEPMC_ARTICLE_BASE = "https://europepmc.org/article"

# Europe PMC 单页最多 100 条
MAX_PAGE_SIZE = 100

EUROPEPMC_CATEGORIES = [
    Category("life_sciences", "Life Sciences", "General life science research"),
    Category("medicine", "Medicine", "Medical and clinical research"),
    Category("biology", "Biology", "Biological sciences"),
    Category("biochemistry", "Biochemistry", "Biochemical studies"),
    Category("genetics", "Genetics", "Genetic research"),
    Category("molecular_biology", "Molecular Biology", "Molecular biological studies"),
    Category("cell_biology", "Cell Biology", "Cellular research"),
    Category("neuroscience", "Neuroscience", "Neurological studies"),
    Category("immunology", "Immunology", "Immune system research"),
    Category("cancer", "Cancer Research", "Oncological studies"),
    Category("pharmacology", "Pharmacology", "Drug research and development"),
    Category("bioinformatics", "Bioinformatics", "Computational biology"),
    Category("structural_biology", "Structural Biology", "Protein and molecular structure"),
    Category("ecology", "Ecology", "Environmental and ecological studies"),
]

# 分类到检索式的映射，未收录的分类按短语检索
CATEGORY_QUERIES = {
    "life_sciences": '(MESH:"Life Sciences" OR "life science*")',
    "medicine": '(MESH:"Medicine" OR "medical" OR "clinical")',
    "biology": '(MESH:"Biology" OR "biological science*")',
    "biochemistry": '(MESH:"Biochemistry" OR "biochemical")',
    "genetics": '(MESH:"Genetics" OR "genetic*")',
    "molecular_biology": '(MESH:"Molecular Biology" OR "molecular biological")',
    "cell_biology": '(MESH:"Cell Biology" OR "cellular")',
    "neuroscience": '(MESH:"Neurosciences" OR "neuroscience" OR "neurological")',
    "immunology": '(MESH:"Immunology" OR "immune*" OR "immunological")',
    "cancer": '(MESH:"Neoplasms" OR "cancer" OR "oncology" OR "tumor")',
    "pharmacology": '(MESH:"Pharmacology" OR "drug*" OR "pharmaceutical")',
    "bioinformatics": '("bioinformatics" OR "computational biology")',
    "structural_biology": '("structural biology" OR "protein structure")',
    "ecology": '(MESH:"Ecology" OR "ecological" OR "environmental")',
}

_AUTHOR_SPLIT_RE = re.compile(r"[,;]|\sand\s")


def build_search_query(category: str) -> str:
    return CATEGORY_QUERIES.get(category.strip().lower(), f'"{category.strip()}"')


def classify_id(paper_id: str) -> Tuple[str, str]:
    """
    判断ID类型。

    返回:
        (类型, 规范化ID)，类型为 PMC / MED / DOI / EXT
    """
    paper_id = paper_id.strip()
    if paper_id.upper().startswith("PMC"):
        return "PMC", "PMC" + paper_id[3:]
    if paper_id.isdigit():
        return "MED", paper_id
    if "10." in paper_id:
        return "DOI", paper_id
    return "EXT", paper_id


def build_id_query(paper_id: str) -> str:
    """按ID类型生成 Europe PMC 检索式"""
    id_type, clean_id = classify_id(paper_id)
    if id_type == "PMC":
        return f"PMCID:{clean_id}"
    if id_type == "MED":
        return f"EXT_ID:{clean_id} AND SRC:MED"
    if id_type == "DOI":
        return f'DOI:"{clean_id}"'
    return f"EXT_ID:{clean_id}"


class EuropePmcSource(BasePaperSource):
    """Europe PMC 数据源：静态学科分类，只返回有全文的文献"""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None
    ):
        super().__init__(Source.EUROPEPMC, rate_limiter, http, extraction_config, pdf_options)

    def list_categories(self) -> List[Category]:
        logger.info("[Europe PMC] 列出分类")
        return list(EUROPEPMC_CATEGORIES)

    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        query = f"{build_search_query(category)} AND has_fulltext:y"
        logger.info(f"[Europe PMC] 获取最新论文: {category}, 数量 {count}")

        results = self._search(query, page_size=min(count, MAX_PAGE_SIZE), sort="date desc", action="获取最新论文")
        valid = [r for r in results if r.get("title") and r.get("hasFullText", "Y") == "Y"]
        if not valid:
            logger.warning(f"[Europe PMC] 分类 {category} 没有找到有全文的论文")

        papers = self._convert_batch(valid)
        logger.info(f"[Europe PMC] 分类 {category}: 获取 {len(papers)} 篇论文")
        return papers

    def fetch_content(self, paper_id: str) -> PaperMetadata:
        query = build_id_query(paper_id)
        logger.info(f"[Europe PMC] 获取论文内容: {paper_id} (检索式: {query})")

        results = self._search(query, page_size=1, action="获取论文内容")
        if not results:
            raise NotAvailableError(f"Paper with ID {paper_id} not found in Europe PMC")

        paper = self._convert_record(results[0], include_text=True)
        if paper is None:
            raise NotAvailableError(f"Paper with ID {paper_id} not found in Europe PMC")

        logger.info(f"[Europe PMC] 成功获取论文: {paper.title[:50]}")
        return paper

    # ======================================================================
    # 内部实现
    # ======================================================================

    def _search(self, query: str, page_size: int, action: str, sort: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {
            "query": query,
            "format": "json",
            "pageSize": page_size,
            "resultType": "core",
        }
        if sort:
            params["sort"] = sort

        data = self._get_json(f"{EUROPEPMC_API_BASE}/search", params=params, action=action)
        result_list = (data or {}).get("resultList") or {}
        results = result_list.get("result")
        if results is None:
            logger.warning(f"[Europe PMC] 响应格式异常: {query}")
            return []
        return results

    @staticmethod
    def _authors(record: Dict[str, Any]) -> List[str]:
        author_list = (record.get("authorList") or {}).get("author") or []
        if author_list:
            authors = []
            for author in author_list:
                name = author.get("fullName") or f"{author.get('firstName', '')} {author.get('lastName', '')}".strip()
                if name:
                    authors.append(name)
            return authors

        author_string = record.get("authorString") or ""
        return [a.strip().rstrip(".") for a in _AUTHOR_SPLIT_RE.split(author_string) if a.strip()]

    @staticmethod
    def _date(record: Dict[str, Any]) -> str:
        first_publication = record.get("firstPublicationDate")
        if first_publication:
            return first_publication
        pub_year = record.get("pubYear")
        return f"{pub_year}-01-01" if pub_year else ""

    @staticmethod
    def _landing_url(record: Dict[str, Any]) -> str:
        pmcid = record.get("pmcid")
        if pmcid:
            return f"{EUROPEPMC_ARTICLE_BASE}/PMC/{pmcid[3:]}"
        pmid = record.get("pmid")
        if pmid:
            return f"{EUROPEPMC_ARTICLE_BASE}/MED/{pmid}"
        return f"{EUROPEPMC_ARTICLE_BASE}/{(record.get('source') or 'EXT').upper()}/{record.get('id')}"

    def _to_paper(self, record: Dict[str, Any]) -> Optional[PaperMetadata]:
        paper_id = record.get("pmcid") or record.get("pmid") or record.get("id")
        if not paper_id:
            return None

        pmcid = record.get("pmcid")
        pdf_url = f"{EUROPEPMC_ARTICLE_BASE}/PMC/{pmcid[3:]}/pdf" if pmcid else None

        return PaperMetadata(
            id=paper_id,
            title=record.get("title") or "Untitled",
            authors=self._authors(record),
            date=self._date(record),
            pdf_url=pdf_url,
        )

    def _content_location(self, record: Dict[str, Any]) -> ContentLocation:
        return ContentLocation(ContentKind.HTML, self._landing_url(record), "europepmc_landing_page")
