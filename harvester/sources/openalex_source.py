"""
OpenAlex 论文数据源

通过 OpenAlex REST API（礼貌池）获取概念列表、最新论文和高被引论文。
全文位置按 best_oa_location → primary_location → locations 中的 HTML 来源 → DOI 解析器
的顺序确定；DOI 解析只在 fetch_content 路径上进行。
"""

import logging
import re
from typing import Any, Dict, List, Optional

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import NotAvailableError
from ..http_client import HttpClient
from ..models import Category, ContentKind, ContentLocation, PaperMetadata, Source
from ..rate_limiter import RateLimiter
from .base_source import BasePaperSource
from .doi_resolver import DoiResolver

logger = logging.getLogger(__name__)

OPENALEX_API_BASE = "https://api.openalex.org"
OPENALEX_ID_PREFIX = "https://openalex.org/"

WORK_FIELDS = (
    "id,title,display_name,publication_date,doi,authorships,primary_location,"
    "best_oa_location,locations,open_access,cited_by_count,concepts"
)

# OpenAlex 单页最多 200 条
MAX_PER_PAGE = 200

# 常用学科名到概念精确显示名的映射
CONCEPT_DISPLAY_NAMES = {
    "computer science": "Computer science",
    "medicine": "Medicine",
    "biology": "Biology",
    "physics": "Physics",
    "chemistry": "Chemistry",
    "economics": "Economics",
    "mathematics": "Mathematics",
    "psychology": "Psychology",
    "engineering": "Engineering",
    "philosophy": "Philosophy",
    "political science": "Political science",
    "materials science": "Materials science",
    "art": "Art",
    "geography": "Geography",
    "business": "Business",
    "sociology": "Sociology",
    "geology": "Geology",
    "history": "History",
    "environmental science": "Environmental science",
}

_CONCEPT_ID_RE = re.compile(r"^C\d+$")
_FILTER_SPECIAL_RE = re.compile(r"[,&|]")


def build_concept_filter(category: str) -> str:
    """
    构建 OpenAlex 概念过滤条件。

    - "C41008148" -> concepts.id:https://openalex.org/C41008148
    - 完整 OpenAlex URL 原样使用
    - 常用学科名 -> 精确显示名匹配
    - 其他 -> 显示名模糊搜索（去掉会导致 403 的 , & | 字符）
    """
    term = category.strip()

    if _CONCEPT_ID_RE.match(term):
        return f"concepts.id:{OPENALEX_ID_PREFIX}{term}"
    if term.startswith(f"{OPENALEX_ID_PREFIX}C"):
        return f"concepts.id:{term}"

    display_name = CONCEPT_DISPLAY_NAMES.get(term.lower())
    if display_name:
        return f'concepts.display_name:"{display_name}"'

    return f"concepts.display_name.search:{_FILTER_SPECIAL_RE.sub('', term)}"


def strip_openalex_id(openalex_id: str) -> str:
    """URL 形式的 OpenAlex ID 转为短ID，如 https://openalex.org/W2741809807 -> W2741809807"""
    if openalex_id.startswith(OPENALEX_ID_PREFIX):
        return openalex_id[len(OPENALEX_ID_PREFIX):]
    return openalex_id.rstrip("/").rsplit("/", 1)[-1]


class OpenAlexSource(BasePaperSource):
    """
    OpenAlex 论文数据源。

    特点：
    - 分类来自实时的一级概念列表（需要网络，消耗令牌）
    - 唯一支持按引用数排序的数据源
    - 全文可能是 HTML 落地页，也可能是 PDF
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None,
        doi_resolver: Optional[DoiResolver] = None
    ):
        super().__init__(Source.OPENALEX, rate_limiter, http, extraction_config, pdf_options)
        self.email = http.network.polite_pool_email
        self.doi_resolver = doi_resolver or DoiResolver(http, rate_limiter, self.email)

    def _params(self, **extra) -> Dict[str, Any]:
        params = {"mailto": self.email}
        params.update(extra)
        return params

    # ======================================================================
    # 对外接口
    # ======================================================================

    def list_categories(self) -> List[Category]:
        """获取一级概念（按作品数倒序）"""
        logger.info("[OpenAlex] 获取概念列表")
        data = self._get_json(
            f"{OPENALEX_API_BASE}/concepts",
            params=self._params(
                filter="level:0",
                sort="works_count:desc",
                per_page=50,
                select="id,display_name,description,level,works_count",
            ),
            timeout=self.http.network.category_timeout,
            action="获取概念列表",
        )

        categories = []
        for concept in data.get("results", []):
            description = concept.get("description") or f"{concept.get('works_count', 0):,} works"
            categories.append(Category(
                id=strip_openalex_id(concept["id"]),
                name=concept.get("display_name", ""),
                description=description,
            ))

        logger.info(f"[OpenAlex] 获取 {len(categories)} 个概念")
        return categories

    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        concept_filter = build_concept_filter(category)
        logger.info(f"[OpenAlex] 获取最新论文: {category} (过滤条件: {concept_filter}), 数量 {count}")
        return self._fetch_works(concept_filter, "publication_date:desc", count, "获取最新论文")

    def fetch_top_cited(self, concept: str, since: str, count: int) -> List[PaperMetadata]:
        """
        获取某概念自 since 以来被引最多的论文。

        参数:
            concept: 概念ID或名称
            since: 起始日期 YYYY-MM-DD（不含当天）
            count: 论文数量
        """
        combined_filter = f"{build_concept_filter(concept)},publication_date:>{since}"
        logger.info(f"[OpenAlex] 获取高被引论文: {concept} 自 {since}, 数量 {count}")
        return self._fetch_works(combined_filter, "cited_by_count:desc", count, "获取高被引论文")

    def fetch_content(self, paper_id: str) -> PaperMetadata:
        work_id = strip_openalex_id(paper_id.strip())
        logger.info(f"[OpenAlex] 获取论文内容: {work_id}")

        if work_id.upper().startswith("W"):
            url = f"{OPENALEX_API_BASE}/works/{work_id}"
        else:
            url = f"{OPENALEX_API_BASE}/works/{paper_id.strip()}"

        work = self._get_json(url, params=self._params(select=WORK_FIELDS), action="获取论文内容")
        paper = self._convert_record(work, include_text=True)
        if paper is None:
            raise NotAvailableError(f"Paper with ID {paper_id} not found on OpenAlex")

        logger.info(f"[OpenAlex] 成功获取论文: {paper.title[:50]}")
        return paper

    # ======================================================================
    # 内部实现
    # ======================================================================

    def _fetch_works(self, work_filter: str, sort: str, count: int, action: str) -> List[PaperMetadata]:
        data = self._get_json(
            f"{OPENALEX_API_BASE}/works",
            params=self._params(
                filter=work_filter,
                sort=sort,
                per_page=min(count, MAX_PER_PAGE),
                select=WORK_FIELDS,
            ),
            action=action,
        )
        papers = self._convert_batch(data.get("results", []))
        logger.info(f"[OpenAlex] {action}: 获取 {len(papers)} 篇论文")
        return papers

    def _to_paper(self, record: Dict[str, Any]) -> Optional[PaperMetadata]:
        if not record.get("id"):
            return None

        authors = []
        for authorship in record.get("authorships") or []:
            display_name = (authorship.get("author") or {}).get("display_name")
            if display_name:
                authors.append(display_name)

        # 浏览路径不做 DOI 解析，只使用作品自带的 PDF 地址
        best = record.get("best_oa_location") or {}
        primary = record.get("primary_location") or {}
        pdf_url = best.get("pdf_url") or primary.get("pdf_url")

        return PaperMetadata(
            id=strip_openalex_id(record["id"]),
            title=record.get("title") or record.get("display_name") or "Untitled",
            authors=authors,
            date=record.get("publication_date") or "",
            pdf_url=pdf_url,
        )

    def _content_location(self, record: Dict[str, Any]) -> ContentLocation:
        resolver_path = []

        for key in ("best_oa_location", "primary_location"):
            location = record.get(key)
            if not location:
                continue
            resolver_path.append(key)
            resolved = self._location_from(location, ",".join(resolver_path))
            if resolved is not None:
                return resolved

        locations = record.get("locations") or []
        if locations:
            resolver_path.append("locations_array")
            for i, location in enumerate(locations):
                if location.get("source_type") == "html" and location.get("landing_page_url"):
                    return ContentLocation(
                        ContentKind.HTML,
                        location["landing_page_url"],
                        f"{','.join(resolver_path)}->location[{i}]->landing_page_url",
                    )

        doi = record.get("doi")
        if doi:
            resolver_path.append("doi_resolver")
            resolution = self.doi_resolver.resolve(doi)
            return resolution.to_location(",".join(resolver_path))

        return ContentLocation.none(",".join(resolver_path) or "no_sources")

    @staticmethod
    def _location_from(location: Dict[str, Any], resolver_path: str) -> Optional[ContentLocation]:
        if location.get("pdf_url"):
            return ContentLocation(ContentKind.PDF, location["pdf_url"], f"{resolver_path}->pdf_url")
        if location.get("landing_page_url") and location.get("source_type") == "html":
            return ContentLocation(
                ContentKind.HTML,
                location["landing_page_url"],
                f"{resolver_path}->landing_page_url",
            )
        return None
