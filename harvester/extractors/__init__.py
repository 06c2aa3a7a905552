"""
全文提取模块

- TextCleaner：文本清洗
- HtmlExtractor：HTML 正文提取（主站/镜像回退链与通用页面）
- PdfExtractor：分阶段、可取消的 PDF 正文提取
"""

from .base_extractor import TextExtractor, enforce_length, failed_result
from .text_cleaner import TextCleaner
from .html_extractor import HtmlExtractor
from .pdf_extractor import PdfExtractor, PdfExtractionChannels, CHANNEL_CLOSED

__all__ = [
    "TextExtractor",
    "enforce_length",
    "failed_result",
    "TextCleaner",
    "HtmlExtractor",
    "PdfExtractor",
    "PdfExtractionChannels",
    "CHANNEL_CLOSED",
]
