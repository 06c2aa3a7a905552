"""
DOI 解析器

OpenAlex 作品没有可用的全文位置时，把 DOI 解析为开放获取地址。
依次尝试 Unpaywall -> Crossref -> Semantic Scholar，任一服务给出地址即停止；
每个服务有独立的令牌桶，被限流的服务直接跳过。
结果（包括"未找到"）缓存24小时。
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from cachetools import TTLCache

from ..errors import HarvestError
from ..http_client import HttpClient
from ..models import ContentKind, ContentLocation
from ..rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

UNPAYWALL_API_BASE = "https://api.unpaywall.org/v2"
CROSSREF_API_BASE = "https://api.crossref.org/works"
SEMANTIC_SCHOLAR_API_BASE = "https://api.semanticscholar.org/graph/v1"

SEMANTIC_SCHOLAR_FIELDS = "paperId,externalIds,openAccessPdf,url,isOpenAccess"

DEFAULT_CACHE_SIZE = 10000
DEFAULT_CACHE_TTL = 24 * 60 * 60


@dataclass
class DoiResolution:
    """一次 DOI 解析的结果"""
    doi: str
    pdf_url: Optional[str] = None
    landing_page_url: Optional[str] = None
    is_open_access: bool = False
    license: Optional[str] = None
    source: str = "none"         # 给出地址的服务：unpaywall / crossref / semanticscholar / none
    resolver_path: str = ""      # 实际请求过的服务，逗号分隔
    cached: bool = False

    @property
    def found(self) -> bool:
        return bool(self.pdf_url or self.landing_page_url)

    def to_location(self, resolver_path: str) -> ContentLocation:
        """PDF 地址优先于落地页"""
        if self.pdf_url:
            return ContentLocation(ContentKind.PDF, self.pdf_url, f"{resolver_path}->{self.source}->pdf")
        if self.landing_page_url:
            return ContentLocation(ContentKind.HTML, self.landing_page_url, f"{resolver_path}->{self.source}->html")
        return ContentLocation.none(f"{resolver_path}->{self.resolver_path or 'no_attempts'}->none")


def normalize_doi(doi: str) -> str:
    """去掉 https://doi.org/ 与 doi: 前缀并转小写"""
    normalized = doi.strip()
    for prefix in ("https://doi.org/", "http://doi.org/", "https://dx.doi.org/", "http://dx.doi.org/", "doi:"):
        if normalized.lower().startswith(prefix):
            normalized = normalized[len(prefix):]
            break
    return normalized.lower()


class DoiResolver:
    """
    DOI 解析链。

    任何失败（限流、网络错误、未收录）都只让链条继续往下走，最终返回"未找到"，不抛出异常。
    """

    def __init__(
        self,
        http: HttpClient,
        rate_limiter: RateLimiter,
        email: str,
        cache_size: int = DEFAULT_CACHE_SIZE,
        cache_ttl: int = DEFAULT_CACHE_TTL
    ):
        """
        参数:
            http: 共享的 HTTP 客户端
            rate_limiter: 共享的速率限制器（unpaywall / crossref / semanticscholar 三个键）
            email: Unpaywall 要求的联系邮箱，也用于 Crossref 礼貌池
            cache_size: 缓存条目上限
            cache_ttl: 缓存有效期（秒）
        """
        self.http = http
        self.rate_limiter = rate_limiter
        self.email = email
        self._cache: TTLCache = TTLCache(maxsize=cache_size, ttl=cache_ttl)
        self._cache_lock = threading.Lock()

        # (令牌桶键, 解析函数)，按顺序尝试
        self.steps: List[Tuple[str, Callable[[str], DoiResolution]]] = [
            ("unpaywall", self._resolve_with_unpaywall),
            ("crossref", self._resolve_with_crossref),
            ("semanticscholar", self._resolve_with_semantic_scholar),
        ]

    def resolve(self, doi: str) -> DoiResolution:
        """
        解析 DOI。

        参数:
            doi: 任意格式的 DOI

        返回:
            DoiResolution: 未找到时 found 为 False
        """
        normalized = normalize_doi(doi)

        with self._cache_lock:
            cached = self._cache.get(normalized)
        if cached is not None:
            logger.debug(f"DOI 解析命中缓存: {normalized}")
            return replace(cached, cached=True)

        attempted: List[str] = []
        skipped = False
        for key, step in self.steps:
            if not self.rate_limiter.check_and_consume(key):
                logger.warning(f"[{key}] 被限流，跳过 DOI 解析: {normalized}")
                skipped = True
                continue

            attempted.append(key)
            try:
                result = step(normalized)
            except HarvestError as e:
                logger.warning(f"[{key}] DOI 解析失败: {normalized}: {e.message}")
                continue

            if result.found:
                result = replace(result, resolver_path=",".join(attempted))
                self._store(normalized, result)
                logger.info(f"DOI 解析成功 ({key}): {normalized} -> {result.pdf_url or result.landing_page_url}")
                return result

        result = DoiResolution(doi=normalized, resolver_path=",".join(attempted))
        # 有服务因限流被跳过时结论不完整，不写缓存
        if not skipped:
            self._store(normalized, result)
        logger.info(f"DOI 未找到开放获取地址: {normalized} (已尝试: {result.resolver_path or '无'})")
        return result

    def _store(self, doi: str, result: DoiResolution):
        with self._cache_lock:
            self._cache[doi] = result

    # ======================================================================
    # 各服务
    # ======================================================================

    def _resolve_with_unpaywall(self, doi: str) -> DoiResolution:
        """best_oa_location 优先，没有时取 oa_locations 的第一项"""
        data = self.http.get_json(
            f"{UNPAYWALL_API_BASE}/{doi}",
            params={"email": self.email},
            retries=0,
        )
        location = data.get("best_oa_location")
        if not location:
            oa_locations = data.get("oa_locations") or []
            location = oa_locations[0] if oa_locations else {}

        return DoiResolution(
            doi=doi,
            pdf_url=location.get("url_for_pdf"),
            landing_page_url=location.get("url_for_landing_page"),
            is_open_access=bool(data.get("is_oa")),
            license=location.get("license"),
            source="unpaywall",
        )

    def _resolve_with_crossref(self, doi: str) -> DoiResolution:
        """
        Crossref 作品记录：优先用面向文本挖掘或 PDF 的全文链接，否则用 DOI 落地页。

        有许可证信息即视为开放获取。
        """
        data = self.http.get_json(
            f"{CROSSREF_API_BASE}/{doi}",
            params={"mailto": self.email},
            retries=0,
        )
        work: Dict[str, Any] = data.get("message") or {}

        pdf_url = None
        landing_page_url = work.get("URL")
        for link in work.get("link") or []:
            content_type = link.get("content-type")
            if link.get("intended-application") == "text-mining" or content_type == "application/pdf":
                if content_type == "application/pdf":
                    pdf_url = link.get("URL")
                else:
                    landing_page_url = link.get("URL") or landing_page_url
                break

        licenses = work.get("license") or []
        license_url = licenses[0].get("URL") if licenses else None

        return DoiResolution(
            doi=doi,
            pdf_url=pdf_url,
            landing_page_url=landing_page_url,
            is_open_access=bool(license_url),
            license=license_url,
            source="crossref",
        )

    def _resolve_with_semantic_scholar(self, doi: str) -> DoiResolution:
        """Semantic Scholar 学术图谱的 openAccessPdf，没有时退回论文页面"""
        data = self.http.get_json(
            f"{SEMANTIC_SCHOLAR_API_BASE}/paper/DOI:{doi}",
            params={"fields": SEMANTIC_SCHOLAR_FIELDS},
            retries=0,
        )
        open_access_pdf = data.get("openAccessPdf") or {}
        pdf_url = open_access_pdf.get("url") or None

        return DoiResolution(
            doi=doi,
            pdf_url=pdf_url,
            landing_page_url=data.get("url"),
            is_open_access=bool(data.get("isOpenAccess") or pdf_url),
            source="semanticscholar",
        )
