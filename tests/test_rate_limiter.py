import threading

from config import RateLimitConfig, default_rate_limits
from harvester.models import Source
from harvester.rate_limiter import RateLimiter

from conftest import FakeClock


def arxiv_limiter(clock):
    return RateLimiter({"arxiv": RateLimitConfig(max_tokens=5, refill_rate=5 / 60)}, clock=clock)


def test_burst_then_denied():
    clock = FakeClock()
    limiter = arxiv_limiter(clock)

    assert all(limiter.check_and_consume(Source.ARXIV) for _ in range(5))
    assert limiter.check_and_consume(Source.ARXIV) is False


def test_one_token_every_twelve_seconds():
    clock = FakeClock()
    limiter = arxiv_limiter(clock)
    for _ in range(5):
        limiter.check_and_consume("arxiv")

    assert limiter.retry_after_seconds("arxiv") == 12

    clock.advance(6)
    assert limiter.check_and_consume("arxiv") is False
    assert limiter.retry_after_seconds("arxiv") == 6

    clock.advance(6)
    assert limiter.check_and_consume("arxiv") is True
    assert limiter.check_and_consume("arxiv") is False


def test_refill_is_capped_at_max_tokens():
    clock = FakeClock()
    limiter = arxiv_limiter(clock)
    limiter.check_and_consume("arxiv")

    clock.advance(10_000)
    limiter.check_and_consume("arxiv")

    assert limiter.remaining_tokens("arxiv") == 4


def test_denial_does_not_consume():
    clock = FakeClock()
    limiter = RateLimiter({"openalex": RateLimitConfig(max_tokens=1, refill_rate=0.5)}, clock=clock)
    assert limiter.check_and_consume("openalex")

    clock.advance(1)
    assert not limiter.check_and_consume("openalex")
    assert limiter.remaining_tokens("openalex") == 0.5

    clock.advance(1)
    assert limiter.check_and_consume("openalex")


def test_unknown_source_is_allowed():
    limiter = RateLimiter({}, clock=FakeClock())

    assert limiter.check_and_consume("somewhere-else")
    assert limiter.retry_after_seconds("somewhere-else") == 0
    assert limiter.remaining_tokens("somewhere-else") == 0.0


def test_default_limits_cover_every_source():
    limits = default_rate_limits()

    for source in Source:
        assert source.value in limits
    for service in ("unpaywall", "crossref", "semanticscholar"):
        assert service in limits
    assert limits["arxiv"].max_tokens == 5
    assert limits["openalex"].refill_rate == 10


def test_concurrent_checks_never_overdraw():
    limiter = arxiv_limiter(FakeClock())
    barrier = threading.Barrier(50)
    granted = []

    def worker():
        barrier.wait()
        granted.append(limiter.check_and_consume("arxiv"))

    threads = [threading.Thread(target=worker) for _ in range(50)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(granted) == 50
    assert granted.count(True) == 5
    assert limiter.remaining_tokens("arxiv") == 0
