import json
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import fitz
import pytest
from requests.structures import CaseInsensitiveDict

from config import ExtractionConfig, NetworkConfig, PdfExtractionOptions, RateLimitConfig
from harvester.http_client import HttpClient
from harvester.rate_limiter import RateLimiter


class FakeResponse:
    """requests.Response 的最小替身"""

    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        json_data: Any = None,
        content: bytes = b"",
        headers: Optional[Dict[str, str]] = None,
        on_chunk: Optional[Callable[[int], None]] = None,
        chunk_size: Optional[int] = None
    ):
        self.status_code = status_code
        self.text = text
        self._json = json_data
        self.content = content
        self.headers = CaseInsensitiveDict(headers or {})
        self.on_chunk = on_chunk
        self.chunk_size = chunk_size
        self.closed = False

    def json(self):
        if self._json is not None:
            return self._json
        return json.loads(self.text)

    def iter_content(self, chunk_size=1):
        size = self.chunk_size or chunk_size
        for index, start in enumerate(range(0, len(self.content), size)):
            if self.on_chunk is not None:
                self.on_chunk(index)
            yield self.content[start:start + size]

    def close(self):
        self.closed = True


class FakeSession:
    """
    按 (方法, URL) 路由的假 Session。

    路由值可以是 FakeResponse、异常实例或二者的列表（按调用顺序依次返回）。
    未注册的地址返回 404。
    """

    def __init__(self):
        self.headers: Dict[str, str] = {}
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.prefix_routes: List[Tuple[str, str, List[Any]]] = []
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def add(self, method: str, url: str, *responses, prefix: bool = False):
        if prefix:
            self.prefix_routes.append((method.upper(), url, list(responses)))
        else:
            self.routes[(method.upper(), url)] = list(responses)

    def _lookup(self, method: str, url: str) -> Optional[List[Any]]:
        queue = self.routes.get((method, url))
        if queue is not None:
            return queue
        for route_method, route_url, route_queue in self.prefix_routes:
            if route_method == method and url.startswith(route_url):
                return route_queue
        return None

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
            queue = self._lookup(method.upper(), url)
            if not queue:
                response = FakeResponse(404)
            elif len(queue) > 1:
                response = queue.pop(0)
            else:
                response = queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def urls(self, method: Optional[str] = None) -> List[str]:
        return [c["url"] for c in self.calls if method is None or c["method"] == method]

    def close(self):
        pass


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_pdf(*pages: str) -> bytes:
    """生成每页包含给定文本的PDF"""
    doc = fitz.open()
    try:
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text)
        return doc.tobytes()
    finally:
        doc.close()


def pdf_routes(session: FakeSession, url: str, pdf_bytes: bytes, head_size: Optional[int] = None, **get_kwargs):
    size = len(pdf_bytes) if head_size is None else head_size
    session.add("HEAD", url, FakeResponse(200, headers={"Content-Length": str(size)}))
    session.add("GET", url, FakeResponse(200, content=pdf_bytes, **get_kwargs))


GENEROUS_LIMITS = {
    key: RateLimitConfig(max_tokens=1000, refill_rate=1000)
    for key in (
        "arxiv", "openalex", "pmc", "europepmc", "biorxiv", "core",
        "unpaywall", "crossref", "semanticscholar",
    )
}


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def network():
    return NetworkConfig(max_retries=2, backoff_base_seconds=1.0)


@pytest.fixture
def http(session, network, sleeps):
    return HttpClient(network, session=session, sleep=sleeps.append)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(GENEROUS_LIMITS, clock=clock)


@pytest.fixture
def extraction_config():
    return ExtractionConfig()


@pytest.fixture
def pdf_options():
    return PdfExtractionOptions()
