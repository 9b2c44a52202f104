import string
import pytest
from starlette.requests import Request
from visitor_stats.core.i18n import get_locale, parse_accept_language, translate
from visitor_stats.middleware.rate_limit import RateLimiter
from visitor_stats.services.sessions import issue_session_id


def make_request(query: str = "", headers: dict | None = None) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
    })


def test_session_id_shape():
    session_id = issue_session_id()

    assert len(session_id) == 32
    assert set(session_id) <= set(string.hexdigits.lower())


def test_session_ids_do_not_repeat():
    issued = {issue_session_id() for _ in range(1000)}
    assert len(issued) == 1000


@pytest.mark.asyncio
async def test_memory_bucket_limits_per_key():
    limiter = RateLimiter(rate=2, period=60)

    assert await limiter.is_allowed("ip:1.2.3.4")
    assert await limiter.is_allowed("ip:1.2.3.4")
    assert not await limiter.is_allowed("ip:1.2.3.4")
    assert await limiter.get_remaining("ip:1.2.3.4") == 0

    # Other clients have their own bucket
    assert await limiter.is_allowed("ip:5.6.7.8")
    assert await limiter.get_remaining("ip:9.9.9.9") == 2


@pytest.mark.asyncio
async def test_idle_buckets_are_pruned():
    limiter = RateLimiter(rate=2, period=60)
    await limiter.is_allowed("ip:idle")

    # Pretend a whole period went by without requests from that client
    limiter.buckets["ip:idle"]["last_update"] -= 120
    limiter._last_prune -= 120
    await limiter.is_allowed("ip:active")

    assert set(limiter.buckets) == {"ip:active"}
    assert await limiter.get_remaining("ip:idle") == 2


@pytest.mark.asyncio
async def test_unreachable_redis_falls_back_to_memory():
    limiter = RateLimiter(rate=5, period=60, redis_url="redis://127.0.0.1:1/0")

    assert await limiter.is_allowed("ip:1.2.3.4")
    assert limiter.use_redis is False
    assert await limiter.get_remaining("ip:1.2.3.4") == 4


def test_parse_accept_language_orders_by_quality():
    header = "en;q=0.5, ar-EG, fr;q=0.8, de;q=0"
    assert parse_accept_language(header) == ["ar", "fr", "en"]


def test_locale_resolution():
    assert get_locale(make_request("lang=ar")) == "ar"
    assert get_locale(make_request("lang=xx", {"Accept-Language": "ar-SA,ar;q=0.9"})) == "ar"
    assert get_locale(make_request(headers={"Accept-Language": "fr-FR,de;q=0.7"})) == "en"
    assert get_locale(make_request()) == "en"


def test_translate_falls_back_to_english_then_key():
    assert translate("visit_tracked", "ar") == "تم تسجيل الزيارة بنجاح"
    assert translate("visit_tracked", "xx") == "Visit tracked successfully"
    assert translate("no_such_message", "ar") == "no_such_message"
