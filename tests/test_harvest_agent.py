import pytest

from config import Settings
from harvester import HarvestAgent, InvalidQueryError
from harvester.harvest_agent import assess_context_impact
from harvester.models import Source

from conftest import FakeResponse, make_pdf, pdf_routes

WORKS_URL = "https://api.openalex.org/works"
PDF_URL = "https://files.example.org/standalone.pdf"
MB = 1024 * 1024


def works(count: int):
    return {"results": [
        {
            "id": f"https://openalex.org/W{i}",
            "title": f"Work {i}",
            "publication_date": "2024-01-01",
            "authorships": [],
        }
        for i in range(count)
    ]}


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def agent(settings, http, limiter):
    return HarvestAgent(settings, http=http, rate_limiter=limiter)


# ==========================================================================
# 参数校验
# ==========================================================================

@pytest.mark.parametrize("kwargs", [
    {"source": "scopus", "category": "cs.AI"},
    {"source": "arxiv", "category": "   "},
    {"source": "arxiv", "category": "cs.AI", "count": 0},
    {"source": "arxiv", "category": "cs.AI", "count": 201},
])
def test_fetch_latest_validation(agent, session, kwargs):
    with pytest.raises(InvalidQueryError) as exc_info:
        agent.fetch_latest(**kwargs)

    assert exc_info.value.to_dict()["code"] == "InvalidQuery"
    assert session.calls == []


def test_top_cited_validation(agent):
    with pytest.raises(InvalidQueryError):
        agent.fetch_top_cited("physics", since="2024/01/01")


def test_top_cited_only_on_openalex(agent):
    with pytest.raises(InvalidQueryError):
        agent.fetch_top_cited("cs.AI", since="2024-01-01", source="arxiv")


@pytest.mark.parametrize("kwargs", [
    {"url": "ftp://files.example.org/a.pdf"},
    {"url": PDF_URL, "max_size_mb": 101},
    {"url": PDF_URL, "max_pages": 501},
    {"url": PDF_URL, "timeout": 5},
])
def test_pdf_content_validation(agent, kwargs):
    with pytest.raises(InvalidQueryError):
        agent.fetch_pdf_content(**kwargs)


def test_disabled_source(settings, http, limiter):
    agent = HarvestAgent(settings, http=http, rate_limiter=limiter, sources={})

    with pytest.raises(InvalidQueryError):
        agent.list_categories("arxiv")


# ==========================================================================
# 浏览与取内容
# ==========================================================================

def test_list_categories(agent, session):
    category_list = agent.list_categories("arxiv")

    assert category_list.source is Source.ARXIV
    data = category_list.to_dict()
    assert data["source"] == "arxiv"
    assert {"id", "name"} <= set(data["categories"][0])
    assert session.calls == []


@pytest.mark.parametrize("source", [s.value for s in Source])
def test_every_source_is_registered(agent, session, source):
    session.add("GET", "https://api.openalex.org/concepts", FakeResponse(200, json_data={"results": [
        {"id": "https://openalex.org/C41008148", "display_name": "Computer science", "works_count": 10},
    ]}))

    category_list = agent.list_categories(source)

    assert category_list.source is Source(source)
    assert set(agent.sources) == set(Source)


def test_full_batch_has_no_warnings(agent, session):
    session.add("GET", WORKS_URL, FakeResponse(200, json_data=works(5)))

    response = agent.fetch_latest("openalex", "physics", 5)

    assert len(response.content) == 5
    assert response.warnings == []
    assert "warnings" not in response.to_dict()


def test_short_batch_is_partial_success(agent, session):
    session.add("GET", WORKS_URL, FakeResponse(200, json_data=works(3)))

    response = agent.fetch_latest("openalex", "physics", 5)

    assert len(response.content) == 3
    assert response.warnings == ["PartialSuccess: returned 3 of 5 requested papers"]


def test_default_count(agent, session, settings):
    session.add("GET", WORKS_URL, FakeResponse(200, json_data=works(3)))

    response = agent.fetch_top_cited("physics", since="2023-06-01")

    assert session.calls[0]["params"]["per_page"] == settings.DEFAULT_PAPER_COUNT
    assert response.warnings[0].startswith("PartialSuccess")


def test_content_failure_is_warning(agent, session):
    record = works(1)["results"][0]
    session.add("GET", f"{WORKS_URL}/W0", FakeResponse(200, json_data=record))

    response = agent.fetch_content("openalex", "W0")

    assert response.content.text_extraction_failed is True
    assert response.warnings == ["NotAvailable: full text is not available for W0"]
    assert response.to_dict()["content"]["textExtractionFailed"] is True


def test_oversized_response_warning(settings, http, limiter, session):
    settings.MAX_RESPONSE_SIZE = 200
    agent = HarvestAgent(settings, http=http, rate_limiter=limiter)
    session.add("GET", WORKS_URL, FakeResponse(200, json_data=works(5)))

    response = agent.fetch_latest("openalex", "physics", 5)

    assert any("exceeds" in warning for warning in response.warnings)


# ==========================================================================
# 独立 PDF 提取
# ==========================================================================

@pytest.mark.parametrize("size_mb, impact", [(5, "low"), (10, "low"), (20, "medium"), (40, "high")])
def test_assess_context_impact(size_mb, impact):
    assert assess_context_impact(size_mb) == impact


def test_pdf_content_success(agent, session):
    pdf_routes(session, PDF_URL, make_pdf("Standalone PDF text", "Second page"))

    result = agent.fetch_pdf_content(PDF_URL)

    assert result.success
    assert "Standalone PDF text" in result.text
    assert result.metadata["pageCount"] == 2
    assert result.metadata["extractionSource"] == "pdf"
    assert result.metadata["textTruncated"] is False
    assert agent.active_extractions() == []


def test_pdf_content_auto_confirms_medium_files(agent, session):
    pdf_routes(session, PDF_URL, make_pdf("medium file"), head_size=20 * MB)

    result = agent.fetch_pdf_content(PDF_URL)

    assert result.success
    assert result.metadata["sizeBytes"] == 20 * MB


def test_pdf_content_declines_very_large_files(agent, session):
    pdf_routes(session, PDF_URL, make_pdf("large file"), head_size=40 * MB)

    result = agent.fetch_pdf_content(PDF_URL)

    assert not result.success
    assert result.cancelled
    assert result.error == "PDF too large, user declined extraction"
    assert session.urls("GET") == []


def test_pdf_content_without_confirmation(agent, session):
    pdf_routes(session, PDF_URL, make_pdf("large file"), head_size=40 * MB)

    result = agent.fetch_pdf_content(PDF_URL, confirm_large_files=False)

    assert result.success


def test_pdf_content_size_ceiling(agent, session):
    pdf_routes(session, PDF_URL, make_pdf("huge"), head_size=60 * MB)

    result = agent.fetch_pdf_content(PDF_URL)

    assert not result.success
    assert not result.cancelled
    assert result.error.startswith("PDF too large")


def test_cancel_running_extraction(agent, session):
    seen_active = []

    def cancel_on_second_chunk(index):
        if index == 1:
            seen_active.extend(agent.active_extractions())
            assert agent.cancel_pdf_extraction(PDF_URL)

    pdf_routes(
        session, PDF_URL, make_pdf("cancel me") + b"\0" * 4096,
        chunk_size=256,
        on_chunk=cancel_on_second_chunk,
    )

    result = agent.fetch_pdf_content(PDF_URL)

    assert seen_active == [PDF_URL]
    assert result.cancelled
    assert result.error == "Extraction cancelled by user"
    assert result.to_dict()["cancelled"] is True
    assert agent.active_extractions() == []


def test_cancel_unknown_extraction(agent):
    assert agent.cancel_pdf_extraction(PDF_URL) is False
