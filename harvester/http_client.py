"""
HTTP 传输层

基于 requests.Session 的 GET/HEAD/流式下载封装：
- 每次调用有独立的超时
- 5xx 与网络错误做有限次指数退避重试，最终抛出 SourceDownError
- 状态码映射到统一的错误类型
- 流式下载在分块之间检查取消信号并强制字节上限
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from config import NetworkConfig
from .errors import (
    HarvestError,
    InvalidQueryError,
    NotAvailableError,
    RateLimitedError,
    SourceDownError,
)

logger = logging.getLogger(__name__)


class DownloadCancelledError(Exception):
    """下载过程中收到取消信号"""


class PayloadTooLargeError(NotAvailableError):
    """响应体超过允许的字节上限"""


class HttpClient:
    """
    共享的 HTTP 客户端。

    所有数据源和提取器通过它访问网络，便于统一 User-Agent、超时和重试策略，
    测试时也只需替换 session。
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        network: NetworkConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        参数:
            network: 网络配置（超时、重试次数、User-Agent）
            session: 可注入的 requests.Session
            sleep: 退避等待函数，测试中可替换为空操作
        """
        self.network = network
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": network.user_agent})
        self._sleep = sleep

    def __enter__(self):
        """支持上下文管理器"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """退出时关闭Session"""
        self.close()

    def close(self):
        """关闭网络连接"""
        if self.session:
            self.session.close()
            logger.debug("HTTP Session已关闭")

    # ======================================================================
    # 状态码映射
    # ======================================================================

    @staticmethod
    def _raise_for_status(response: requests.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 429:
            retry_after = response.headers.get("Retry-After", "0")
            try:
                retry_seconds = float(retry_after)
            except ValueError:
                retry_seconds = 0
            raise RateLimitedError(f"上游限流 (429): {url}", retry_after=retry_seconds)
        if status in (401, 402, 403, 404, 410, 451):
            raise NotAvailableError(f"HTTP {status}: {url}")
        if status >= 500:
            raise SourceDownError(f"上游服务错误 HTTP {status}: {url}", status=status)
        raise InvalidQueryError(f"HTTP {status}: {url}")

    # ======================================================================
    # 请求
    # ======================================================================

    def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        retries: Optional[int] = None,
        **kwargs
    ) -> requests.Response:
        """
        发送请求，对 5xx 和网络错误做指数退避重试。

        参数:
            method: "GET" 或 "HEAD"
            url: 请求地址
            timeout: 超时（秒）
            retries: 最大重试次数，None 表示使用配置值

        返回:
            requests.Response: 状态码 < 400 的响应
        """
        max_retries = self.network.max_retries if retries is None else retries
        attempt = 0

        while True:
            try:
                response = self.session.request(method, url, timeout=timeout, **kwargs)
                try:
                    self._raise_for_status(response, url)
                except HarvestError:
                    # 错误响应不再读取，释放连接后再重试或抛出
                    response.close()
                    raise
                return response

            except SourceDownError as e:
                last_error: HarvestError = e
            except requests.exceptions.Timeout as e:
                last_error = SourceDownError(f"请求超时 ({timeout}s): {url}")
                last_error.__cause__ = e
            except requests.exceptions.RequestException as e:
                last_error = SourceDownError(f"网络请求失败: {url}: {e}")
                last_error.__cause__ = e

            if attempt >= max_retries:
                raise last_error

            attempt += 1
            wait_time = self.network.backoff_base_seconds * (2 ** (attempt - 1))
            logger.warning(f"{last_error.message}，{wait_time:.1f} 秒后第 {attempt} 次重试...")
            self._sleep(wait_time)

    def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        retries: Optional[int] = None
    ) -> requests.Response:
        return self._request(
            "GET",
            url,
            timeout=timeout or self.network.metadata_timeout,
            retries=retries,
            params=params,
            headers=headers,
        )

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None
    ) -> Any:
        response = self.get(
            url,
            params=params,
            timeout=timeout,
            headers={"Accept": "application/json"},
            retries=retries,
        )
        try:
            return response.json()
        except ValueError as e:
            raise SourceDownError(f"响应不是合法JSON: {url}") from e

    def get_text(self, url: str, timeout: Optional[float] = None, retries: Optional[int] = None) -> str:
        response = self.get(url, timeout=timeout or self.network.html_timeout, retries=retries)
        return response.text

    def head(self, url: str, timeout: Optional[float] = None) -> requests.Response:
        return self._request(
            "HEAD",
            url,
            timeout=timeout or self.network.head_timeout,
            retries=0,
            allow_redirects=True,
        )

    def download(
        self,
        url: str,
        max_bytes: int,
        timeout: float,
        cancel_event: Optional[threading.Event] = None
    ) -> bytes:
        """
        流式下载二进制内容。

        参数:
            url: 下载地址
            max_bytes: 字节上限，即使 HEAD 探测少报也以此为准
            timeout: 超时（秒）
            cancel_event: 取消信号，在每个分块之间检查

        返回:
            bytes: 下载的完整内容

        异常:
            DownloadCancelledError: 收到取消信号，已缓冲的数据全部丢弃
            PayloadTooLargeError: 超过字节上限
        """
        if cancel_event is not None and cancel_event.is_set():
            raise DownloadCancelledError(url)

        response = self._request("GET", url, timeout=timeout, retries=0, stream=True)
        chunks = []
        total_size = 0
        try:
            for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                if cancel_event is not None and cancel_event.is_set():
                    chunks.clear()
                    raise DownloadCancelledError(url)
                if not chunk:
                    continue
                total_size += len(chunk)
                if total_size > max_bytes:
                    chunks.clear()
                    raise PayloadTooLargeError(
                        f"下载内容超过上限 {max_bytes / (1024 * 1024):.1f}MB: {url}"
                    )
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            raise SourceDownError(f"下载中断: {url}: {e}") from e
        finally:
            response.close()

        return b"".join(chunks)
