import json
from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from situation_monitor.cache import CacheStore
from situation_monitor.models import Provenance, SourceDescriptor
from situation_monitor.pipeline import FetchPipeline
from situation_monitor.polymarket import (
    DATASET_KEY,
    build_sources,
    dataset,
    map_markets,
    market_url,
    parse_yes_probability,
    to_prediction,
    top_by_category,
)
from situation_monitor.proxy import ProxyFallbackAdapter

from .fakes import FALLBACK, PRIMARY, FakeResponse, FakeSession

SRC = SourceDescriptor(name="polymarket-tag-2", url="https://gamma.test/markets")


def _market(id, question, volume=None, prices='["0.5","0.5"]', slug=None, events=None):
    m = {"id": id, "question": question, "outcomePrices": prices, "outcomes": '["Yes","No"]'}
    if volume is not None:
        m["volumeNum"] = volume
    if slug is not None:
        m["slug"] = slug
    if events is not None:
        m["events"] = events
    return m


class TestParseYesProbability:
    def test_yes_outcome_index(self):
        assert parse_yes_probability('["0.65","0.35"]', '["Yes","No"]') == 65
        assert parse_yes_probability('["0.2","0.8"]', '["No","Yes"]') == 80

    def test_first_price_without_yes_outcome(self):
        assert parse_yes_probability('["0.125","0.875"]', '["Up","Down"]') == 13

    def test_accepts_decoded_lists(self):
        assert parse_yes_probability(["0.5", "0.5"], ["Yes", "No"]) == 50

    @pytest.mark.parametrize(
        "prices,outcomes",
        [(None, None), ("not json", '["Yes"]'), ("[]", '["Yes"]'), ('["abc"]', '["Yes"]'), ("{}", "[]")],
    )
    def test_malformed_is_zero(self, prices, outcomes):
        assert parse_yes_probability(prices, outcomes) == 0


class TestMapping:
    def test_volume_defaults_to_zero(self):
        pred = to_prediction(_market("1", "Will X happen?"))
        assert pred.volume == 0
        assert pred.yes == 50

    def test_volume_accepts_numeric_strings(self):
        assert to_prediction(_market("1", "Q?", volume="1234.5")).volume == 1234.5

    def test_url_prefers_event_slug(self):
        m = _market("1", "Q?", slug="market-slug", events=[{"slug": "event-slug"}])
        assert market_url(m) == "https://polymarket.com/event/event-slug"
        m = _market("1", "Q?", slug="market-slug")
        assert market_url(m) == "https://polymarket.com/event/market-slug"

    def test_unusable_markets_dropped(self):
        payload = [_market("1", "Q?"), {"question": "no id"}, {"id": "2"}, "junk"]
        assert [p.id for p in map_markets(SRC, payload)] == ["1"]

    def test_non_list_payload_is_a_failure(self):
        with pytest.raises(ValueError):
            map_markets(SRC, {"error": "rate limited"})


def test_sources_one_per_tag(settings):
    sources = build_sources(settings)
    assert [s.name for s in sources] == ["polymarket-tag-2", "polymarket-tag-120"]
    qs = parse_qs(urlsplit(sources[0].full_url()).query)
    assert qs == {
        "tag_id": ["2"],
        "closed": ["false"],
        "order": ["volumeNum"],
        "ascending": ["false"],
        "limit": ["50"],
    }
    assert all(s.via_proxy for s in sources)


def test_top_by_category():
    preds = [
        to_prediction(_market(str(i), q))
        for i, q in enumerate(["a", "b", "c"])
    ]
    preds[2].category = "tech"
    grouped = top_by_category(preds, limit=1)
    assert [p.id for p in grouped["politics"]] == ["0"]
    assert [p.id for p in grouped["tech"]] == ["2"]


def _tag_of(url):
    target = unquote(url.split("url=", 1)[1])
    return parse_qs(urlsplit(target).query)["tag_id"][0]


@pytest.mark.asyncio
async def test_dataset_merges_excludes_classifies_and_ranks(settings, clock):
    pages = {
        "2": [
            _market("m1", "Will Russia and Ukraine agree to a ceasefire?", 5000),
            _market("m2", "Who will win the presidential election?", 9000),
            _market("nba", "Will the Lakers win the NBA championship?", 99999),
        ],
        "120": [
            _market("m1", "duplicate copy from another tag", 1),
            _market("m3", "Will OpenAI release GPT-6 this year?", 7000),
        ],
    }

    def handler(url):
        if url.startswith(PRIMARY):
            return FakeResponse(200, json.dumps(pages[_tag_of(url)]))
        return FakeResponse(500, "unexpected")

    session = FakeSession(handler)
    adapter = ProxyFallbackAdapter(session, PRIMARY, FALLBACK)
    pipeline = FetchPipeline(CacheStore(clock=clock))

    result = await pipeline.aggregate(dataset(settings, adapter))

    assert result.key == DATASET_KEY
    assert result.provenance is Provenance.FRESH
    assert [p.id for p in result.items] == ["m2", "m3", "m1"]
    assert [p.category for p in result.items] == ["elections", "tech", "geopolitics"]
    assert result.items[2].question.startswith("Will Russia")


@pytest.mark.asyncio
async def test_dataset_caps_items(settings, clock):
    settings.polymarket_max_items = 3
    settings.polymarket_tags = [2]
    page = [_market(str(i), f"Question {i}?", i) for i in range(10)]
    session = FakeSession(lambda url: FakeResponse(200, json.dumps(page)))
    adapter = ProxyFallbackAdapter(session, PRIMARY, FALLBACK)

    result = await FetchPipeline(CacheStore(clock=clock)).aggregate(dataset(settings, adapter))

    assert [p.id for p in result.items] == ["9", "8", "7"]


@pytest.mark.asyncio
async def test_dataset_falls_back_when_both_proxies_fail(settings, clock):
    session = FakeSession(lambda url: FakeResponse(403, "Domain not allowed"))
    adapter = ProxyFallbackAdapter(session, PRIMARY, FALLBACK)

    result = await FetchPipeline(CacheStore(clock=clock)).aggregate(dataset(settings, adapter))

    assert result.provenance is Provenance.EMPTY_FALLBACK
    assert set(result.errors) == {"polymarket-tag-2", "polymarket-tag-120"}


@pytest.mark.asyncio
async def test_dataset_reaches_secondary_when_primary_hangs(settings, clock):
    settings.polymarket_tags = [2]
    settings.markets_timeout_sec = 0.2
    page = [_market("m1", "Will the Fed cut rates?", 10)]

    def handler(url):
        if url.startswith(PRIMARY):
            return FakeResponse(200, "[]", delay=30.0)
        return FakeResponse(200, json.dumps(page))

    session = FakeSession(handler)
    adapter = ProxyFallbackAdapter(session, PRIMARY, FALLBACK, timeout=30.0)

    result = await FetchPipeline(CacheStore(clock=clock)).aggregate(dataset(settings, adapter))

    assert result.provenance is Provenance.FRESH
    assert [p.id for p in result.items] == ["m1"]
    assert session.calls[-1].startswith(FALLBACK)
