"""
bioRxiv/medRxiv 预印本数据源

通过 bioRxiv details API 按日期区间获取预印本，分类为带服务器前缀的静态列表
（如 "biorxiv:genomics"、"medrxiv:epidemiology"）。
正文来自预印本的 .full HTML 页面，提取失败时退回摘要文本。
"""

import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import HarvestError, NotAvailableError, RateLimitedError
from ..http_client import HttpClient
from ..models import Category, ContentKind, ContentLocation, PaperMetadata, Source
from ..rate_limiter import RateLimiter
from .base_source import BasePaperSource

logger = logging.getLogger(__name__)

API_BASES = {
    "biorxiv": "https://api.biorxiv.org",
    "medrxiv": "https://api.medrxiv.org",
}

# 最新论文的检索窗口（天）
LATEST_WINDOW_DAYS = 30
MAX_RESULTS = 100

BIORXIV_SUBJECTS = [
    ("animal-behavior-and-cognition", "Animal Behavior and Cognition", "Studies of animal behavior and cognitive processes"),
    ("biochemistry", "Biochemistry", "Biochemical research and molecular biology"),
    ("bioengineering", "Bioengineering", "Biological engineering and biotechnology"),
    ("bioinformatics", "Bioinformatics", "Computational biology and data analysis"),
    ("biophysics", "Biophysics", "Physical principles in biological systems"),
    ("cancer-biology", "Cancer Biology", "Cancer research and oncology"),
    ("cell-biology", "Cell Biology", "Cellular processes and mechanisms"),
    ("developmental-biology", "Developmental Biology", "Organism development and growth"),
    ("ecology", "Ecology", "Ecological studies and environmental biology"),
    ("evolutionary-biology", "Evolutionary Biology", "Evolution and phylogenetics"),
    ("genetics", "Genetics", "Genetic studies and genomics"),
    ("genomics", "Genomics", "Genome-wide studies and analysis"),
    ("immunology", "Immunology", "Immune system research"),
    ("microbiology", "Microbiology", "Studies of microorganisms"),
    ("molecular-biology", "Molecular Biology", "Molecular mechanisms and processes"),
    ("neuroscience", "Neuroscience", "Nervous system and brain research"),
    ("paleontology", "Paleontology", "Fossil studies and ancient life"),
    ("pathology", "Pathology", "Disease mechanisms and pathology"),
    ("pharmacology-and-toxicology", "Pharmacology and Toxicology", "Drug action and toxicity studies"),
    ("physiology", "Physiology", "Physiological processes and function"),
    ("plant-biology", "Plant Biology", "Plant science and botany"),
    ("scientific-communication-and-education", "Scientific Communication and Education",
     "Science communication and pedagogy"),
    ("synthetic-biology", "Synthetic Biology", "Engineering biological systems"),
    ("systems-biology", "Systems Biology", "Systems-level biological analysis"),
    ("zoology", "Zoology", "Animal biology and zoological studies"),
]

MEDRXIV_SUBJECTS = [
    ("addiction-medicine", "Addiction Medicine", "Substance abuse and addiction treatment"),
    ("allergy-and-immunology", "Allergy and Immunology", "Allergic diseases and immunological disorders"),
    ("cardiovascular-medicine", "Cardiovascular Medicine", "Heart and vascular diseases"),
    ("dermatology", "Dermatology", "Skin diseases and dermatological conditions"),
    ("emergency-medicine", "Emergency Medicine", "Emergency care and acute medicine"),
    ("endocrinology", "Endocrinology", "Hormonal and metabolic disorders"),
    ("epidemiology", "Epidemiology", "Disease patterns and public health"),
    ("gastroenterology", "Gastroenterology", "Digestive system diseases"),
    ("genetic-and-genomic-medicine", "Genetic and Genomic Medicine", "Medical genetics and genomics"),
    ("health-informatics", "Health Informatics", "Medical informatics and digital health"),
    ("health-policy", "Health Policy", "Healthcare policy and systems"),
    ("hematology", "Hematology", "Blood disorders and hematological diseases"),
    ("infectious-diseases", "Infectious Diseases", "Microbial infections and treatments"),
    ("nephrology", "Nephrology", "Kidney diseases and renal medicine"),
    ("neurology", "Neurology", "Neurological diseases and disorders"),
    ("nutrition", "Nutrition", "Nutritional science and dietetics"),
    ("oncology", "Oncology", "Cancer medicine and treatment"),
    ("pediatrics", "Pediatrics", "Children's health and pediatric medicine"),
    ("psychiatry-and-clinical-psychology", "Psychiatry and Clinical Psychology",
     "Mental health and psychological disorders"),
    ("public-and-global-health", "Public and Global Health", "Population health and global health issues"),
    ("radiology-and-imaging", "Radiology and Imaging", "Medical imaging and radiology"),
]

_AUTHOR_SPLIT_RE = re.compile(r"[,;]|\sand\s")


def parse_category(category: str) -> Tuple[str, str]:
    """
    解析分类为 (服务器, 学科)。

    "biorxiv:genomics" -> ("biorxiv", "genomics")；
    "biology"/"biorxiv" 与 "medicine"/"medrxiv" 表示该服务器的全部学科；
    其余默认按 bioRxiv 学科处理。
    """
    term = category.strip().lower()
    for server in ("biorxiv", "medrxiv"):
        if term.startswith(f"{server}:"):
            return server, term[len(server) + 1:]
    if term in ("biology", "biorxiv"):
        return "biorxiv", "all"
    if term in ("medicine", "medrxiv"):
        return "medrxiv", "all"
    return "biorxiv", term


def servers_for_doi(doi: str) -> List[str]:
    """根据DOI判断服务器，无法判断时两个都试（bioRxiv优先）"""
    lower = doi.lower()
    if "medrxiv" in lower:
        return ["medrxiv"]
    if "biorxiv" in lower:
        return ["biorxiv"]
    return ["biorxiv", "medrxiv"]


def split_authors(authors: str) -> List[str]:
    """bioRxiv 作者串以分号分隔（"Smith, J.; Doe, A."），没有分号时按逗号/and 切分"""
    parts = authors.split(";") if ";" in authors else _AUTHOR_SPLIT_RE.split(authors)
    return [part.strip() for part in parts if part.strip()]


class BioRxivSource(BasePaperSource):
    """
    bioRxiv/medRxiv 数据源。

    特点：
    - 一个数据源同时覆盖两个服务器
    - 最新论文取最近30天的窗口并在本地按学科过滤
    - 正文 HTML 提取失败时使用 "Abstract: ..." 作为正文
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http: HttpClient,
        extraction_config: ExtractionConfig,
        pdf_options: Optional[PdfExtractionOptions] = None
    ):
        super().__init__(Source.BIORXIV, rate_limiter, http, extraction_config, pdf_options)

    def list_categories(self) -> List[Category]:
        logger.info("[bioRxiv] 列出分类")
        categories = [
            Category(f"biorxiv:{sid}", name, f"[bioRxiv] {desc}") for sid, name, desc in BIORXIV_SUBJECTS
        ]
        categories.extend(
            Category(f"medrxiv:{sid}", name, f"[medRxiv] {desc}") for sid, name, desc in MEDRXIV_SUBJECTS
        )
        return categories

    def fetch_latest(self, category: str, count: int) -> List[PaperMetadata]:
        server, subject = parse_category(category)
        to_date = date.today()
        from_date = to_date - timedelta(days=LATEST_WINDOW_DAYS)
        logger.info(f"[bioRxiv] 获取最新论文: {server}/{subject}, {from_date} ~ {to_date}, 数量 {count}")

        data = self._get_json(
            f"{API_BASES[server]}/details/{server}/{from_date.isoformat()}/{to_date.isoformat()}/0",
            action="获取最新论文",
        )
        records = (data or {}).get("collection") or []

        if subject != "all":
            # API 中的学科名使用空格或下划线，统一成连字符比较
            records = [
                r for r in records
                if subject in (r.get("category") or "").lower().replace(" ", "-").replace("_", "-")
            ]

        records = [r for r in records if r.get("title") and r.get("doi")]
        records.sort(key=lambda r: r.get("date") or "", reverse=True)
        records = records[:min(count, MAX_RESULTS)]

        if not records:
            logger.warning(f"[bioRxiv] {server}/{subject} 没有找到论文")

        papers = self._convert_batch(records)
        logger.info(f"[bioRxiv] {server}/{subject}: 获取 {len(papers)} 篇论文")
        return papers

    def fetch_content(self, paper_id: str) -> PaperMetadata:
        doi = paper_id.strip()
        if not doi.startswith("10."):
            doi = f"10.1101/{doi}"
        logger.info(f"[bioRxiv] 获取论文内容: {doi}")

        for server in servers_for_doi(doi):
            try:
                data = self._get_json(f"{API_BASES[server]}/details/{server}/{doi}", action="获取论文内容")
            except RateLimitedError:
                raise
            except HarvestError as e:
                logger.warning(f"[bioRxiv] 从 {server} 获取失败: {doi}: {e.message}")
                continue

            collection = (data or {}).get("collection") or []
            if not collection:
                continue

            # 同一DOI可能有多个版本，取最新版本
            record = max(collection, key=lambda r: int(r.get("version") or 0))
            record.setdefault("server", server)
            paper = self._convert_record(record, include_text=True)
            if paper is not None:
                logger.info(f"[bioRxiv] 成功获取论文 ({server}): {paper.title[:50]}")
                return paper

        raise NotAvailableError(f"Paper with DOI {paper_id} not found on bioRxiv or medRxiv")

    # ======================================================================
    # 内部实现
    # ======================================================================

    @staticmethod
    def _server(record: Dict[str, Any]) -> str:
        server = (record.get("server") or "").lower()
        if server in API_BASES:
            return server
        return "medrxiv" if "medrxiv" in (record.get("doi") or "").lower() else "biorxiv"

    def _content_url(self, record: Dict[str, Any]) -> str:
        version = record.get("version")
        suffix = f"v{version}" if version else ""
        return f"https://www.{self._server(record)}.org/content/{record['doi']}{suffix}"

    def _to_paper(self, record: Dict[str, Any]) -> Optional[PaperMetadata]:
        if not record.get("doi"):
            return None
        return PaperMetadata(
            id=record["doi"],
            title=" ".join((record.get("title") or "Untitled").split()),
            authors=split_authors(record.get("authors") or ""),
            date=record.get("date") or "",
            pdf_url=f"{self._content_url(record)}.full.pdf",
        )

    def _content_location(self, record: Dict[str, Any]) -> ContentLocation:
        return ContentLocation(ContentKind.HTML, f"{self._content_url(record)}.full", "biorxiv_full_html")

    def _fallback_text(self, record: Dict[str, Any]) -> Optional[str]:
        abstract = (record.get("abstract") or "").strip()
        return f"Abstract: {abstract}" if abstract else None
