"""
统一数据模型

所有数据源、提取器和调度器之间传递的数据结构。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Optional, Any


class Source(str, Enum):
    """
    支持的文献数据源（固定的枚举集合）。

    既是速率限制器的键，也决定了全文提取策略。
    """
    ARXIV = "arxiv"
    OPENALEX = "openalex"
    PMC = "pmc"
    EUROPEPMC = "europepmc"
    BIORXIV = "biorxiv"
    CORE = "core"

    @property
    def display_name(self) -> str:
        return {
            Source.ARXIV: "arXiv",
            Source.OPENALEX: "OpenAlex",
            Source.PMC: "PubMed Central",
            Source.EUROPEPMC: "Europe PMC",
            Source.BIORXIV: "bioRxiv/medRxiv",
            Source.CORE: "CORE",
        }[self]


class ExtractionSource(str, Enum):
    """提取结果的来源标记：实际成功的是哪一种策略"""
    HTML_PRIMARY = "html-primary"
    HTML_MIRROR = "html-mirror"
    GENERIC_HTML = "generic-html"
    PDF = "pdf"
    FAILED = "failed"


class ContentKind(str, Enum):
    """数据源声明的全文位置类型"""
    HTML = "html"
    PDF = "pdf"
    NONE = "none"


class ExtractionPhase(str, Enum):
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    COMPLETE = "complete"


@dataclass
class Category:
    """分类/概念"""
    id: str                                # 如 "cs.AI" 或 OpenAlex 概念ID
    name: str                              # 可读名称
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {"id": self.id, "name": self.name}
        if self.description:
            result["description"] = self.description
        return result


@dataclass
class PaperMetadata:
    """
    统一的论文元数据格式。

    浏览类调用（fetch_latest / fetch_top_cited）只填元数据，text 保持 ""；
    只有 fetch_content 才会尝试填充全文。返回后不再修改。
    """
    id: str                                # 唯一标识符（arXiv ID、OpenAlex ID、DOI 等）
    title: str                             # 论文标题
    authors: List[str]                     # 作者列表（有序）
    date: str                              # ISO 日期 YYYY-MM-DD
    pdf_url: Optional[str] = None          # PDF下载链接（如果可用）
    text: str = ""                         # 清洗后的正文
    text_truncated: Optional[bool] = None  # 正文是否被截断
    text_extraction_failed: Optional[bool] = None  # 正文提取是否失败

    def get_authors_string(self) -> str:
        """获取作者字符串（逗号分隔）"""
        return ", ".join(self.authors)

    def to_dict(self) -> Dict[str, Any]:
        """转换为对外的字典格式（沿用线上字段名，缺省的标记不输出）"""
        result = {
            "id": self.id,
            "title": self.title,
            "authors": self.authors,
            "date": self.date,
            "text": self.text,
        }
        if self.pdf_url:
            result["pdf_url"] = self.pdf_url
        if self.text_truncated:
            result["textTruncated"] = True
        if self.text_extraction_failed:
            result["textExtractionFailed"] = True
        return result


@dataclass
class TextExtractionResult:
    """
    单次全文提取的结果。

    不变式：extraction_success 为 False 时 text 必须为空。
    """
    text: str
    truncated: bool
    extraction_success: bool
    source: ExtractionSource
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.extraction_success:
            self.text = ""
            self.truncated = False

    @property
    def user_cancelled(self) -> bool:
        return bool(self.metadata.get("userCancelled"))


@dataclass
class ContentLocation:
    """数据源解析出的全文位置"""
    kind: ContentKind
    url: Optional[str] = None
    resolver_path: str = ""

    @classmethod
    def none(cls, resolver_path: str = "no_sources") -> "ContentLocation":
        return cls(kind=ContentKind.NONE, url=None, resolver_path=resolver_path)


@dataclass
class PdfMetadata:
    """大小探测得到的PDF信息，只在一次提取调用内使用"""
    url: str
    size_bytes: int
    size_mb: float
    page_count: Optional[int] = None
    title: Optional[str] = None


@dataclass
class PdfExtractionProgress:
    """PDF 管线的阶段事件"""
    phase: ExtractionPhase
    progress: int           # 0-100，单调递增
    message: str
    cancellable: bool


@dataclass
class PdfConfirmationRequest:
    """确认闸门发出的请求，应答通过回复通道送回"""
    metadata: PdfMetadata


@dataclass
class CategoryList:
    source: Source
    categories: List[Category]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.value,
            "categories": [c.to_dict() for c in self.categories],
        }


@dataclass
class HarvestResponse:
    """调度层的统一响应：内容 + 非致命警告"""
    content: Any
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.content, list):
            content = [item.to_dict() for item in self.content]
        else:
            content = self.content.to_dict()
        result = {"content": content}
        if self.warnings:
            result["warnings"] = list(self.warnings)
        return result


@dataclass
class PdfContentResult:
    """独立 PDF 提取工具的返回"""
    success: bool
    text: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.text is not None:
            result["text"] = self.text
        if self.metadata:
            result["metadata"] = self.metadata
        if self.error:
            result["error"] = self.error
        if self.cancelled:
            result["cancelled"] = True
        return result
