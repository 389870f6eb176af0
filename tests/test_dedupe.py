from situation_monitor.dedupe import (
    dedupe_by_id,
    dedupe_titles,
    filter_news,
    is_near_duplicate,
    normalize_title,
    short_hash,
    title_similarity,
)
from situation_monitor.models import NewsItem, Record

DAY = 24 * 60 * 60
NOW = 1_700_000_000.0


def _news(id, title, source="A", age=0.0):
    return NewsItem(
        id=id, title=title, link=f"https://x/{id}", timestamp=NOW - age,
        source=source, category="politics",
    )


def test_dedupe_prefers_first_occurrence():
    items = [Record("1", "from source one"), Record("2", "b"), Record("1", "from source two")]
    out = dedupe_by_id(items)
    assert [r.id for r in out] == ["1", "2"]
    assert out[0].text == "from source one"


def test_dedupe_accepts_dicts_and_keeps_idless():
    items = [{"id": "a"}, {"id": "a"}, {"title": "no id"}, {"id": "b"}]
    out = dedupe_by_id(items)
    assert len(out) == 3


def test_dedupe_custom_key():
    out = dedupe_by_id(["Apple", "apple", "pear"], key=str.lower)
    assert out == ["Apple", "pear"]


def test_normalize_title():
    assert normalize_title("  Breaking:  Markets   FALL!! ") == "breaking markets fall"
    assert normalize_title(None) == ""


def test_short_hash_is_stable():
    assert short_hash("https://a") == short_hash("https://a")
    assert short_hash("https://a") != short_hash("https://b")
    assert len(short_hash("x")) == 10


def test_title_similarity_ignores_short_words():
    assert title_similarity("Fed holds rates steady", "Fed holds rates steady") == 1.0
    # only words longer than three characters count
    assert title_similarity("a an the", "a an the") == 0.0
    assert title_similarity("Russia Ukraine talks", "Weather today") == 0.0


def test_near_duplicate_threshold_is_strict():
    # 3 shared of 5 distinct significant words is exactly 0.6: not a duplicate
    a = "alpha bravo charlie delta"
    b = "alpha bravo charlie echo"
    assert title_similarity(a, b) == 0.6
    assert is_near_duplicate(a, [b], threshold=0.6) is False
    assert is_near_duplicate(a, [a], threshold=0.6) is True


def test_dedupe_titles_keeps_first():
    items = [
        _news("1", "Massive earthquake strikes central Turkey"),
        _news("2", "Massive earthquake strikes central Turkey today", source="B"),
        _news("3", "Oil prices climb after OPEC meeting"),
    ]
    out = dedupe_titles(items)
    assert [it.id for it in out] == ["1", "3"]


def test_filter_news_drops_old_and_spreads_sources():
    items = [
        _news("a1", "Alpha first story here", source="A", age=10),
        _news("a2", "Bravo second story here", source="A", age=20),
        _news("a3", "Charlie third story here", source="A", age=30),
        _news("b1", "Delta fourth story here", source="B", age=40),
        _news("old", "Echo ancient story here", source="C", age=8 * DAY),
    ]
    out = filter_news(items, max_items=2, now=NOW)
    assert [it.id for it in out] == ["a1", "b1"]


def test_filter_news_fills_remaining_slots_newest_first():
    items = [
        _news("a1", "Alpha first story here", source="A", age=10),
        _news("a2", "Bravo second story here", source="A", age=20),
        _news("b1", "Delta fourth story here", source="B", age=40),
    ]
    out = filter_news(items, max_items=3, now=NOW)
    assert [it.id for it in out] == ["a1", "a2", "b1"]


def test_filter_news_threshold_controls_title_collapse():
    items = [
        _news("1", "Massive earthquake strikes central Turkey", source="A", age=10),
        _news("2", "Massive earthquake strikes central Turkey today", source="B", age=20),
    ]
    assert [it.id for it in filter_news(items, now=NOW)] == ["1"]
    assert [it.id for it in filter_news(items, now=NOW, threshold=0.9)] == ["1", "2"]
