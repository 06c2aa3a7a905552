"""
PDF 全文提取器

五阶段管线：checking → downloading → parsing → extracting → complete，
失败/取消可以在任意阶段结束管线。

与调用方的交互走三条显式通道（PdfExtractionChannels）：
- events：按顺序发出阶段事件和确认请求，管线结束时发出 CHANNEL_CLOSED
- replies：调用方对确认请求的应答（bool）
- cancel_event：取消信号，在每个阶段边界和下载分块之间检查

进入 extracting 阶段后取消不再生效，结果中会标记 cancelIgnored。
"""

import logging
import queue
import re
import threading
import time
from typing import List, Optional, Tuple

import fitz  # pymupdf

from config import ExtractionConfig, PdfExtractionOptions
from ..errors import HarvestError
from ..http_client import DownloadCancelledError, HttpClient
from ..models import (
    ExtractionPhase,
    ExtractionSource,
    PdfConfirmationRequest,
    PdfExtractionProgress,
    PdfMetadata,
    TextExtractionResult,
)
from .base_extractor import enforce_length, failed_result
from .text_cleaner import TextCleaner

logger = logging.getLogger(__name__)

CHANNEL_CLOSED = None

# 等待确认应答的最长时间（秒），超时视为拒绝
CONFIRMATION_TIMEOUT = 300
_POLL_INTERVAL = 0.2

_FILENAME_RE = re.compile(r'filename="?([^";]+)"?')

CONTEXT_WARNING = "Large text extraction may consume significant context window space"


class ExtractionCancelled(Exception):
    """在阶段边界观察到取消信号"""


class PdfTooLargeError(Exception):
    """探测到的大小超过硬性上限"""


class PdfExtractionChannels:
    """
    单次 PDF 提取的通道组。

    管线在工作线程中运行时，调用方在自己的线程里消费 events，
    对 PdfConfirmationRequest 通过 reply() 应答，需要时调用 cancel()。
    """

    def __init__(self):
        self.events: "queue.Queue" = queue.Queue()
        self.replies: "queue.Queue[bool]" = queue.Queue()
        self.cancel_event = threading.Event()

    def reply(self, confirmed: bool):
        self.replies.put(bool(confirmed))

    def cancel(self):
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def iter_events(self):
        """按顺序产出事件，直到管线关闭通道"""
        while True:
            event = self.events.get()
            if event is CHANNEL_CLOSED:
                return
            yield event


def cancelled_result(reason: str, **metadata) -> TextExtractionResult:
    """用户取消的结果，与普通失败可区分"""
    return failed_result(userCancelled=True, reason=reason, **metadata)


class PdfExtractor:
    """
    PDF 全文提取器。

    每次调用独立，实例只持有注入的配置。
    """

    def __init__(self, config: ExtractionConfig, http: HttpClient, options: PdfExtractionOptions):
        """
        参数:
            config: 全文提取配置（长度上限与清洗选项）
            http: 共享的 HTTP 客户端
            options: PDF 管线参数
        """
        self.config = config
        self.http = http
        self.options = options
        self.text_cleaner = TextCleaner(config.cleaning_options)

    @property
    def max_bytes(self) -> int:
        return int(self.options.max_size_mb * 1024 * 1024)

    def extract_text(self, url: str, channels: Optional[PdfExtractionChannels] = None) -> TextExtractionResult:
        """
        下载并提取 PDF 正文。

        参数:
            url: PDF 地址
            channels: 事件/应答/取消通道，为 None 时不发事件，也无法应答确认请求

        返回:
            TextExtractionResult: 成功、失败或用户取消的结果，永不抛出异常
        """
        cancel_event = channels.cancel_event if channels else threading.Event()

        try:
            # 阶段1：探测大小
            self._emit(channels, ExtractionPhase.CHECKING, 0, "Checking PDF size and metadata...", True)
            try:
                metadata = self._check_pdf_metadata(url)
            except PdfTooLargeError as e:
                logger.warning(str(e))
                return failed_result(url=url, error=str(e), sizeLimitExceeded=True)
            self._raise_if_cancelled(cancel_event)

            # 确认闸门
            if self._needs_confirmation(metadata):
                if not self._await_confirmation(metadata, channels, cancel_event):
                    self._raise_if_cancelled(cancel_event)
                    logger.info(f"用户拒绝提取大体积PDF: {url} ({metadata.size_mb:.1f}MB)")
                    return cancelled_result(
                        "PDF too large, user declined extraction",
                        pdfSize=metadata.size_mb,
                    )
                self._raise_if_cancelled(cancel_event)

            # 阶段2：下载
            self._emit(
                channels,
                ExtractionPhase.DOWNLOADING,
                20,
                f"Downloading PDF ({metadata.size_mb:.1f}MB)...",
                True,
            )
            pdf_bytes = self.http.download(
                url,
                max_bytes=self.max_bytes,
                timeout=self.options.timeout_seconds,
                cancel_event=cancel_event,
            )
            self._raise_if_cancelled(cancel_event)

            # 阶段3：解析
            self._emit(channels, ExtractionPhase.PARSING, 60, "Parsing PDF structure...", True)
            page_texts, page_count = self._parse_pdf(pdf_bytes)
            self._raise_if_cancelled(cancel_event)

            # 阶段4：提取与清洗（此后不再响应取消）
            self._emit(
                channels,
                ExtractionPhase.EXTRACTING,
                80,
                f"Extracting text from {len(page_texts)} pages...",
                False,
            )
            result = self._process_extracted_text(page_texts, page_count, url, metadata, len(pdf_bytes))
            if cancel_event.is_set():
                logger.warning(f"取消请求到达时已进入提取阶段，无法取消: {url}")
                result.metadata["cancelIgnored"] = True

            self._emit(channels, ExtractionPhase.COMPLETE, 100, "PDF extraction complete", False)
            return result

        except (DownloadCancelledError, ExtractionCancelled):
            logger.info(f"PDF提取已被用户取消: {url}")
            return cancelled_result("Extraction cancelled by user")
        except HarvestError as e:
            logger.error(f"PDF下载失败: {url}: {e.message}")
            return failed_result(url=url, error=e.message, extractionFailed=True, fallbackAvailable=True)
        except Exception as e:
            logger.error(f"PDF提取失败: {url}: {e}")
            return failed_result(url=url, error=str(e), extractionFailed=True, fallbackAvailable=True)
        finally:
            if channels is not None:
                channels.events.put(CHANNEL_CLOSED)

    # ======================================================================
    # 阶段实现
    # ======================================================================

    @staticmethod
    def _emit(
        channels: Optional[PdfExtractionChannels],
        phase: ExtractionPhase,
        progress: int,
        message: str,
        cancellable: bool
    ):
        if channels is not None:
            channels.events.put(PdfExtractionProgress(phase, progress, message, cancellable))

    @staticmethod
    def _raise_if_cancelled(cancel_event: threading.Event):
        if cancel_event.is_set():
            raise ExtractionCancelled()

    def _check_pdf_metadata(self, url: str) -> PdfMetadata:
        """
        HEAD 探测 PDF 大小。

        探测失败时返回大小为0的元数据继续提取；探测成功且超过上限时抛出 PdfTooLargeError。
        """
        try:
            response = self.http.head(url)
        except HarvestError as e:
            logger.warning(f"无法探测PDF大小，继续下载: {url}: {e.message}")
            return PdfMetadata(url=url, size_bytes=0, size_mb=0.0)

        try:
            size_bytes = int(response.headers.get("Content-Length", "0") or 0)
        except ValueError:
            size_bytes = 0
        size_mb = size_bytes / (1024 * 1024)

        if size_mb > self.options.max_size_mb:
            raise PdfTooLargeError(
                f"PDF too large: {size_mb:.1f}MB (limit: {self.options.max_size_mb}MB)"
            )

        title = None
        disposition = response.headers.get("Content-Disposition")
        if disposition:
            match = _FILENAME_RE.search(disposition)
            if match:
                title = match.group(1)

        return PdfMetadata(url=url, size_bytes=size_bytes, size_mb=size_mb, title=title)

    def _needs_confirmation(self, metadata: PdfMetadata) -> bool:
        return (
            self.options.require_confirmation
            and self.options.interactive
            and metadata.size_mb > self.options.confirm_threshold_mb
        )

    @staticmethod
    def _await_confirmation(
        metadata: PdfMetadata,
        channels: Optional[PdfExtractionChannels],
        cancel_event: threading.Event
    ) -> bool:
        """发出确认请求并阻塞等待应答；无通道、超时或取消都视为拒绝"""
        if channels is None:
            logger.warning(f"需要确认但没有应答通道，放弃提取: {metadata.url}")
            return False

        channels.events.put(PdfConfirmationRequest(metadata=metadata))
        deadline = time.monotonic() + CONFIRMATION_TIMEOUT
        while time.monotonic() < deadline:
            if cancel_event.is_set():
                return False
            try:
                return channels.replies.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue

        logger.warning(f"等待确认超时，放弃提取: {metadata.url}")
        return False

    def _parse_pdf(self, pdf_bytes: bytes) -> Tuple[List[str], int]:
        """
        解析PDF，只读取前 max_pages 页。

        返回:
            (每页文本列表, 总页数)
        """
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        try:
            page_count = doc.page_count
            limit = min(page_count, self.options.max_pages)
            page_texts = [doc.load_page(i).get_text() for i in range(limit)]
        finally:
            doc.close()
        return page_texts, page_count

    def _process_extracted_text(
        self,
        page_texts: List[str],
        page_count: int,
        url: str,
        metadata: PdfMetadata,
        downloaded_bytes: int
    ) -> TextExtractionResult:
        extracted_text = "\n".join(page_texts)
        cleaned_text = self.text_cleaner.clean(extracted_text)
        if not cleaned_text:
            logger.warning(f"PDF中没有可提取的文本（可能是扫描件）: {url}")
            return failed_result(url=url, error="no extractable text", pageCount=page_count)

        text, truncated = enforce_length(cleaned_text, self.config.max_text_length)

        context_warning = None
        if len(text) > self.options.large_text_threshold:
            context_warning = CONTEXT_WARNING

        size_bytes = metadata.size_bytes or downloaded_bytes
        logger.info(
            f"PDF正文提取成功: {url}, 页数 {page_count} (处理 {len(page_texts)}), "
            f"原始 {len(extracted_text)} 字符, 最终 {len(text)} 字符, 截断={truncated}"
        )

        result_metadata = {
            "pageCount": page_count,
            "pagesProcessed": len(page_texts),
            "pdfSize": size_bytes / (1024 * 1024),
            "sizeBytes": size_bytes,
            "extractionTime": time.time(),
        }
        if context_warning:
            result_metadata["contextWarning"] = context_warning

        return TextExtractionResult(
            text=text,
            truncated=truncated,
            extraction_success=True,
            source=ExtractionSource.PDF,
            metadata=result_metadata,
        )
