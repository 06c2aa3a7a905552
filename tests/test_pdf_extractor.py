import threading

import pytest

from config import ExtractionConfig, PdfExtractionOptions
from harvester.extractors import CHANNEL_CLOSED, PdfExtractionChannels, PdfExtractor
from harvester.extractors.pdf_extractor import CONTEXT_WARNING
from harvester.models import ExtractionPhase, ExtractionSource, PdfConfirmationRequest, PdfExtractionProgress

from conftest import FakeResponse, make_pdf, pdf_routes

PDF_URL = "https://files.example.org/paper.pdf"
MB = 1024 * 1024


def drain(channels: PdfExtractionChannels):
    events = []
    while not channels.events.empty():
        events.append(channels.events.get_nowait())
    return events


def run_with_replies(extractor: PdfExtractor, channels: PdfExtractionChannels, answer: bool):
    """在工作线程中运行提取，当前线程应答确认请求"""
    outcome = {}
    worker = threading.Thread(target=lambda: outcome.update(result=extractor.extract_text(PDF_URL, channels)))
    worker.start()
    events = []
    for event in channels.iter_events():
        events.append(event)
        if isinstance(event, PdfConfirmationRequest):
            channels.reply(answer)
    worker.join(timeout=10)
    return outcome["result"], events


def test_success_emits_ordered_phases(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf("First page text", "Second page text"))
    channels = PdfExtractionChannels()

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL, channels)

    assert result.extraction_success
    assert result.source is ExtractionSource.PDF
    assert "First page text" in result.text
    assert "Second page text" in result.text
    assert result.metadata["pageCount"] == 2
    assert result.metadata["pagesProcessed"] == 2
    assert "contextWarning" not in result.metadata

    events = drain(channels)
    assert events[-1] is CHANNEL_CLOSED
    progress = [e for e in events[:-1] if isinstance(e, PdfExtractionProgress)]
    assert [e.phase for e in progress] == [
        ExtractionPhase.CHECKING,
        ExtractionPhase.DOWNLOADING,
        ExtractionPhase.PARSING,
        ExtractionPhase.EXTRACTING,
        ExtractionPhase.COMPLETE,
    ]
    assert [e.progress for e in progress] == [0, 20, 60, 80, 100]
    assert [e.cancellable for e in progress] == [True, True, True, False, False]


def test_works_without_channels(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf("Hello PDF"))

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL)

    assert result.extraction_success
    assert "Hello PDF" in result.text


def test_max_pages_limits_processing(session, http, extraction_config):
    pdf_routes(session, PDF_URL, make_pdf("page one", "page two", "page three"))
    options = PdfExtractionOptions(max_pages=2)

    result = PdfExtractor(extraction_config, http, options).extract_text(PDF_URL)

    assert result.metadata["pageCount"] == 3
    assert result.metadata["pagesProcessed"] == 2
    assert "page two" in result.text
    assert "page three" not in result.text


def test_size_ceiling_aborts_before_download(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf("big"), head_size=60 * MB)

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL)

    assert not result.extraction_success
    assert result.metadata["sizeLimitExceeded"] is True
    assert session.urls("GET") == []


def test_failed_size_check_continues(session, http, extraction_config, pdf_options):
    session.add("HEAD", PDF_URL, FakeResponse(405))
    session.add("GET", PDF_URL, FakeResponse(200, content=make_pdf("size check failed but text is fine")))

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL)

    assert result.extraction_success
    assert result.metadata["sizeBytes"] > 0


def test_download_limit_enforced_when_head_underreports(session, http, extraction_config):
    session.add("HEAD", PDF_URL, FakeResponse(200))
    session.add("GET", PDF_URL, FakeResponse(200, content=b"x" * (2 * MB), chunk_size=64 * 1024))
    options = PdfExtractionOptions(max_size_mb=1)

    result = PdfExtractor(extraction_config, http, options).extract_text(PDF_URL)

    assert not result.extraction_success
    assert result.metadata["extractionFailed"] is True
    assert result.metadata["fallbackAvailable"] is True


def test_corrupt_pdf_is_failure(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, b"this is not a pdf")

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL)

    assert not result.extraction_success
    assert not result.user_cancelled
    assert result.text == ""


def test_blank_pdf_has_no_text(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf(""))

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL)

    assert not result.extraction_success
    assert result.metadata["error"] == "no extractable text"


def test_cancel_during_download(session, http, extraction_config, pdf_options):
    channels = PdfExtractionChannels()
    content = make_pdf("never parsed") + b"\0" * 4096
    pdf_routes(
        session, PDF_URL, content,
        chunk_size=256,
        on_chunk=lambda index: channels.cancel() if index == 1 else None,
    )

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL, channels)

    assert not result.extraction_success
    assert result.user_cancelled
    assert result.metadata["reason"] == "Extraction cancelled by user"
    phases = [e.phase for e in drain(channels) if isinstance(e, PdfExtractionProgress)]
    assert ExtractionPhase.PARSING not in phases


def test_cancel_before_start(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf("text"))
    channels = PdfExtractionChannels()
    channels.cancel()

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL, channels)

    assert result.user_cancelled
    assert session.urls("GET") == []


def test_cancel_during_extracting_is_ignored(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf("late cancel"))
    channels = PdfExtractionChannels()
    extractor = PdfExtractor(extraction_config, http, pdf_options)
    process = extractor._process_extracted_text

    def cancel_then_process(*args):
        channels.cancel()
        return process(*args)

    extractor._process_extracted_text = cancel_then_process
    result = extractor.extract_text(PDF_URL, channels)

    assert result.extraction_success
    assert result.metadata["cancelIgnored"] is True
    assert "late cancel" in result.text


@pytest.fixture
def interactive_options():
    return PdfExtractionOptions(confirm_threshold_mb=10, interactive=True)


def test_large_pdf_declined(session, http, extraction_config, interactive_options):
    pdf_routes(session, PDF_URL, make_pdf("large"), head_size=20 * MB)
    extractor = PdfExtractor(extraction_config, http, interactive_options)

    result, events = run_with_replies(extractor, PdfExtractionChannels(), answer=False)

    assert result.user_cancelled
    assert result.metadata["reason"] == "PDF too large, user declined extraction"
    assert result.metadata["pdfSize"] == pytest.approx(20)
    confirmations = [e for e in events if isinstance(e, PdfConfirmationRequest)]
    assert len(confirmations) == 1
    assert confirmations[0].metadata.size_mb == pytest.approx(20)
    assert session.urls("GET") == []


def test_large_pdf_confirmed(session, http, extraction_config, interactive_options):
    pdf_routes(session, PDF_URL, make_pdf("confirmed content"), head_size=20 * MB)
    extractor = PdfExtractor(extraction_config, http, interactive_options)

    result, events = run_with_replies(extractor, PdfExtractionChannels(), answer=True)

    assert result.extraction_success
    assert "confirmed content" in result.text
    assert result.metadata["sizeBytes"] == 20 * MB
    assert isinstance(events[1], PdfConfirmationRequest)
    assert events[2].phase is ExtractionPhase.DOWNLOADING


def test_cancel_while_awaiting_confirmation(session, http, extraction_config, interactive_options):
    pdf_routes(session, PDF_URL, make_pdf("large"), head_size=20 * MB)
    extractor = PdfExtractor(extraction_config, http, interactive_options)
    channels = PdfExtractionChannels()
    outcome = {}
    worker = threading.Thread(target=lambda: outcome.update(result=extractor.extract_text(PDF_URL, channels)))
    worker.start()

    for event in channels.iter_events():
        if isinstance(event, PdfConfirmationRequest):
            channels.cancel()
    worker.join(timeout=10)

    result = outcome["result"]
    assert result.user_cancelled
    assert result.metadata["reason"] == "Extraction cancelled by user"
    assert session.urls("GET") == []


def test_confirmation_without_channels_is_declined(session, http, extraction_config, interactive_options):
    pdf_routes(session, PDF_URL, make_pdf("large"), head_size=20 * MB)

    result = PdfExtractor(extraction_config, http, interactive_options).extract_text(PDF_URL)

    assert result.user_cancelled


def test_non_interactive_skips_confirmation(session, http, extraction_config, pdf_options):
    pdf_routes(session, PDF_URL, make_pdf("no gate"), head_size=20 * MB)
    channels = PdfExtractionChannels()

    result = PdfExtractor(extraction_config, http, pdf_options).extract_text(PDF_URL, channels)

    assert result.extraction_success
    assert not any(isinstance(e, PdfConfirmationRequest) for e in drain(channels))


def test_context_warning_for_large_text(session, http, extraction_config):
    pdf_routes(session, PDF_URL, make_pdf("A reasonably long line of extracted text"))
    options = PdfExtractionOptions(large_text_threshold=10)

    result = PdfExtractor(extraction_config, http, options).extract_text(PDF_URL)

    assert result.metadata["contextWarning"] == CONTEXT_WARNING


def test_length_cap_applies_to_pdf_text(session, http):
    pdf_routes(session, PDF_URL, make_pdf("\n".join(["word word word word"] * 10)))
    config = ExtractionConfig(max_text_length=50)

    result = PdfExtractor(config, http, PdfExtractionOptions()).extract_text(PDF_URL)

    assert result.extraction_success
    assert result.truncated
    assert len(result.text) <= 50
