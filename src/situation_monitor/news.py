"""News headlines per category from RSS feeds and the GDELT doc API.

Each news category is its own dataset (``news_<category>``).  Some categories
are served from curated RSS feeds only, ``intel`` mixes RSS with GDELT, and the
rest come from a GDELT keyword query.  Items are tagged with alert keywords,
region and topics, aged out after a week and collapsed on near-duplicate
titles; the newest ``news_max_items`` are kept, with one slot reserved for
each of the first ``news_max_sources`` sources.
"""

from __future__ import annotations

import html
import re
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp
import feedparser  # type: ignore
from bs4 import BeautifulSoup
from dateutil import parser as dtparse

from .config import Settings
from .dedupe import filter_news, short_hash
from .keywords import contains_alert_keyword, detect_region, detect_topics
from .logging_utils import get_logger
from .models import NewsItem, SourceDescriptor
from .pipeline import DatasetSpec
from .proxy import ProxyFallbackAdapter, http_get

log = get_logger("news")

RSS_ACCEPT = "application/rss+xml, application/xml, text/xml, */*"
DESCRIPTION_MAX_CHARS = 200

# (name, url) per category; order is merge priority within a category.
NEWS_FEEDS: Dict[str, List[Tuple[str, str]]] = {
    "politics": [
        ("BBC World", "https://feeds.bbci.co.uk/news/world/rss.xml"),
        ("NYT World", "https://rss.nytimes.com/services/xml/rss/nyt/World.xml"),
        ("Washington Post", "https://feeds.washingtonpost.com/rss/politics"),
        ("The Guardian", "https://www.theguardian.com/world/rss"),
        ("NPR News", "https://feeds.npr.org/1001/rss.xml"),
        ("Foreign Affairs", "https://www.foreignaffairs.com/rss.xml"),
        ("Politico", "https://rss.politico.com/politics-news.xml"),
        ("Foreign Policy", "https://foreignpolicy.com/feed/"),
        ("The Economist", "https://www.economist.com/the-world-this-week/rss.xml"),
        ("Al Jazeera", "https://www.aljazeera.com/xml/rss/all.xml"),
    ],
    "tech": [
        ("Hacker News", "https://hnrss.org/frontpage"),
        ("Ars Technica", "https://feeds.arstechnica.com/arstechnica/technology-lab"),
        ("The Verge", "https://www.theverge.com/rss/index.xml"),
        ("MIT Tech Review", "https://www.technologyreview.com/feed/"),
        ("ArXiv AI", "https://rss.arxiv.org/rss/cs.AI"),
        ("OpenAI Blog", "https://openai.com/news/rss.xml"),
    ],
    "finance": [
        ("CNBC", "https://www.cnbc.com/id/100003114/device/rss/rss.html"),
        ("MarketWatch", "https://feeds.marketwatch.com/marketwatch/topstories"),
        ("Yahoo Finance", "https://finance.yahoo.com/news/rssindex"),
        ("BBC Business", "https://feeds.bbci.co.uk/news/business/rss.xml"),
        ("FT", "https://www.ft.com/rss/home"),
    ],
    "gov": [
        ("White House", "https://www.whitehouse.gov/news/feed/"),
        ("Federal Reserve", "https://www.federalreserve.gov/feeds/press_all.xml"),
        ("SEC Announcements", "https://www.sec.gov/news/pressreleases.rss"),
        (
            "DoD News",
            "https://www.defense.gov/DesktopModules/ArticleCS/RSS.ashx"
            "?max=10&ContentType=1&Site=945",
        ),
    ],
    "ai": [
        ("OpenAI Blog", "https://openai.com/news/rss.xml"),
        ("ArXiv AI", "https://rss.arxiv.org/rss/cs.AI"),
    ],
    "intel": [
        ("Defense One", "https://www.defenseone.com/rss/all/"),
        ("Breaking Defense", "https://breakingdefense.com/feed/"),
        ("War on the Rocks", "https://warontherocks.com/feed/"),
        (
            "Defense News",
            "https://www.defensenews.com/arc/outboundfeeds/rss/?outputType=xml",
        ),
        ("The War Zone", "https://www.thedrive.com/the-war-zone/feed"),
        ("RealClearDefense", "https://www.realcleardefense.com/index.xml"),
        ("CSIS", "https://www.csis.org/analysis/feed"),
        ("Bellingcat", "https://www.bellingcat.com/feed/"),
        ("Chatham House", "https://www.chathamhouse.org/rss/all"),
        ("IISS", "https://www.iiss.org/rss"),
        (
            "Military.com",
            "https://www.military.com/rss-feeds/content?feed=news-headlines.xml",
        ),
    ],
    "brazil": [
        ("G1 Brasil", "https://g1.globo.com/rss/g1/"),
        ("Folha de S.Paulo", "https://feeds.folha.uol.com.br/emcimadahora/rss091.xml"),
        ("Reuters Brazil", "https://www.reuters.com/world/americas/rss"),
        ("G1 Politica", "https://g1.globo.com/rss/g1/politica/"),
        ("Gazeta do Povo", "https://www.gazetadopovo.com.br/feed/rss/republica.xml"),
        ("CNN Brasil", "https://www.cnnbrasil.com.br/politica/feed/"),
        ("Poder360", "https://www.poder360.com.br/feed/"),
        (
            "Agencia Brasil",
            "https://agenciabrasil.ebc.com.br/rss/ultimasnoticias/feed.xml",
        ),
        ("G1 Economia", "https://g1.globo.com/rss/g1/economia/"),
        ("InfoMoney", "https://www.infomoney.com.br/feed/"),
        ("Gazeta Economia", "https://www.gazetadopovo.com.br/feed/rss/economia.xml"),
        ("Valor Economico", "https://valor.globo.com/feed/"),
        ("DefesaNet", "https://www.defesanet.com.br/feed/"),
        ("Zona Militar", "https://www.zona-militar.com/feed/"),
        ("Breaking Defense LATAM", "https://breakingdefense.com/tag/latin-america/feed/"),
    ],
    "latam": [
        ("Reuters Latin America", "https://www.reuters.com/world/americas/rss"),
        ("Americas Quarterly", "https://www.americasquarterly.org/feed/"),
        (
            "El Pais America",
            "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/america/portada",
        ),
    ],
    "iran": [
        ("Tehran Times", "https://www.tehrantimes.com/rss"),
        ("Al-Monitor", "https://www.al-monitor.com/rss"),
        ("Radio Farda", "https://en.radiofarda.com/api/zp_qmtl-vomx-tpe_bimr"),
        ("Mehr News", "https://en.mehrnews.com/rss"),
        ("ISNA", "https://en.isna.ir/rss"),
        ("IFP News", "https://ifpnews.com/feed"),
        ("IranWire", "https://iranwire.com/en/feed"),
    ],
    "venezuela": [
        ("Caracas Chronicles", "https://www.caracaschronicles.com/feed"),
        ("El Nacional", "https://www.elnacional.com/feed"),
        ("Venezuelanalysis", "https://venezuelanalysis.com/feed"),
        ("VOA Americas", "https://www.vozdeamerica.com/api/zt-pemyvi"),
        ("Reuters Americas", "https://www.reuters.com/world/americas/rss"),
    ],
    "greenland": [
        ("Arctic Today", "https://www.arctictoday.com/feed"),
        ("High North News", "https://en.highnorthnews.com/feed"),
        ("The Arctic Institute", "https://www.thearcticinstitute.org/feed"),
        ("Arctic Council", "https://arctic-council.org/feed"),
        ("Eye on the Arctic", "https://www.rcinet.ca/eye-on-the-arctic/feed/"),
    ],
}

GDELT_QUERIES: Dict[str, str] = {
    "politics": "(politics OR government OR election OR congress)",
    "tech": '(technology OR software OR startup OR "silicon valley")',
    "finance": '(finance OR "stock market" OR economy OR banking)',
    "gov": '("federal government" OR "white house" OR congress OR regulation)',
    "ai": '("artificial intelligence" OR "machine learning" OR AI OR ChatGPT)',
    "intel": "(intelligence OR security OR military OR defense)",
    "brazil": '(Brazil OR Brasilia OR "Sao Paulo" OR Lula OR Bolsonaro)',
    "latam": '("Latin America" OR Mexico OR Argentina OR Colombia OR Chile OR Peru)',
    "iran": (
        '(Iran OR Tehran OR IRGC OR Khamenei OR "Iranian government" '
        'OR "Persian Gulf")'
    ),
    "venezuela": (
        '(Venezuela OR Maduro OR Caracas OR "Venezuelan government" '
        'OR "Venezuelan crisis")'
    ),
    "greenland": (
        '(Greenland OR Arctic OR "Danish territory" OR Nuuk '
        'OR "Arctic council" OR "polar region")'
    ),
}

NEWS_CATEGORIES: Tuple[str, ...] = tuple(NEWS_FEEDS)
RSS_ONLY_CATEGORIES = frozenset({"politics", "brazil", "latam", "finance"})
RSS_PLUS_GDELT_CATEGORIES = frozenset({"intel"})

_GDELT_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$")


def dataset_key(category: str) -> str:
    return f"news_{category}"


def check_category(category: str) -> str:
    if category not in NEWS_FEEDS:
        raise ValueError(f"unknown news category: {category!r}")
    return category


# --- Parsing helpers ---------------------------------------------------------


def clean_html(text: Optional[str]) -> str:
    """Decode entities, drop tags and collapse whitespace."""
    if not text:
        return ""
    soup = BeautifulSoup(html.unescape(text), "html.parser")
    return re.sub(r"\s+", " ", soup.get_text(separator=" ")).strip()


def parse_timestamp(value: Optional[str], now: Optional[float] = None) -> float:
    """Epoch seconds for an RSS/Atom date; ``now`` when missing or unparseable."""
    fallback = time.time() if now is None else now
    if not value:
        return fallback
    try:
        d = dtparse.parse(value)
    except (ValueError, OverflowError, TypeError):
        log.debug("timestamp_parse_failed value=%s", value)
        return fallback
    if d.tzinfo is None:
        d = d.replace(tzinfo=timezone.utc)
    return d.timestamp()


def parse_gdelt_date(value: Optional[str], now: Optional[float] = None) -> float:
    """GDELT ``seendate`` (``20251202T224500Z``) to epoch seconds."""
    m = _GDELT_DATE_RE.match(value or "")
    if m:
        d = datetime(*(int(g) for g in m.groups()), tzinfo=timezone.utc)
        return d.timestamp()
    return parse_timestamp(value, now)


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def _entry_description(entry: Any) -> str:
    raw = entry.get("summary") or entry.get("description") or ""
    if not raw:
        content = entry.get("content") or []
        if content:
            raw = content[0].get("value", "")
    return clean_html(raw)[:DESCRIPTION_MAX_CHARS]


def parse_rss(text: str, source: str, category: str) -> List[NewsItem]:
    """Parse an RSS 2.0 or Atom document into unenriched news items.

    Entries without a title or link are skipped.  A document feedparser
    cannot make sense of at all raises ``ValueError``.
    """
    parsed = feedparser.parse(text)
    entries = list(parsed.entries or [])
    if parsed.get("bozo") and not entries:
        exc = parsed.get("bozo_exception")
        raise ValueError(f"unparseable feed from {source}: {exc}")

    now = time.time()
    out: List[NewsItem] = []
    for e in entries:
        title = clean_html(e.get("title"))
        link = (e.get("link") or "").strip()
        if not title or not link:
            continue
        pub_date = (e.get("published") or e.get("updated") or "").strip()
        out.append(
            NewsItem(
                id=f"rss-{category}-{_slug(source)}-{short_hash(link)}",
                title=title,
                link=link,
                pub_date=pub_date,
                timestamp=parse_timestamp(pub_date, now),
                description=_entry_description(e),
                source=source,
                category=category,
            )
        )
    return out


def parse_gdelt(payload: Any, category: str) -> List[NewsItem]:
    if not isinstance(payload, dict):
        raise ValueError("GDELT payload is not an object")
    articles = payload.get("articles") or []
    now = time.time()
    out: List[NewsItem] = []
    for idx, article in enumerate(articles):
        if not isinstance(article, dict):
            continue
        title = (article.get("title") or "").strip()
        url = article.get("url") or ""
        if not title or not url:
            continue
        seendate = article.get("seendate") or ""
        out.append(
            NewsItem(
                id=f"gdelt-{category}-{short_hash(url)}-{idx}",
                title=title,
                link=url,
                pub_date=seendate,
                timestamp=parse_gdelt_date(seendate, now),
                source=article.get("domain") or "News",
                category=category,
            )
        )
    return out


# --- Classification / post-processing ---------------------------------------


def enrich(item: NewsItem) -> NewsItem:
    """Alert keyword from the title; region and topics from title + description."""
    alert = contains_alert_keyword(item.title)
    text = item.text
    return replace(
        item,
        is_alert=alert.is_alert,
        alert_keyword=alert.keyword,
        region=detect_region(text),
        topics=detect_topics(text),
    )


def make_post_process(
    settings: Settings, clock: Callable[[], float] = time.time
) -> Callable[[List[NewsItem]], List[NewsItem]]:
    def post_process(items: List[NewsItem]) -> List[NewsItem]:
        return filter_news(
            items,
            max_items=settings.news_max_items or len(items),
            max_age_days=settings.news_max_age_days,
            max_sources=settings.news_max_sources,
            now=clock(),
            threshold=settings.news_title_similarity,
        )

    return post_process


# --- Sources -----------------------------------------------------------------


def rss_sources(category: str) -> List[SourceDescriptor]:
    return [
        SourceDescriptor(name=name, url=url, kind="rss")
        for name, url in NEWS_FEEDS.get(category, [])
    ]


def gdelt_source(category: str, settings: Settings) -> SourceDescriptor:
    query = f"{GDELT_QUERIES[category]} sourcelang:english"
    return SourceDescriptor(
        name=f"gdelt-{category}",
        url=settings.gdelt_base_url,
        params=(
            ("query", query),
            ("timespan", "7d"),
            ("mode", "artlist"),
            ("maxrecords", str(settings.gdelt_max_records)),
            ("format", "json"),
            ("sort", "date"),
        ),
        limit=settings.gdelt_max_records,
        kind="gdelt",
        via_proxy=True,
    )


def build_sources(category: str, settings: Settings) -> List[SourceDescriptor]:
    check_category(category)
    if category in RSS_ONLY_CATEGORIES:
        return rss_sources(category)
    if category in RSS_PLUS_GDELT_CATEGORIES:
        return rss_sources(category) + [gdelt_source(category, settings)]
    return [gdelt_source(category, settings)]


def make_mapper(category: str) -> Callable[[SourceDescriptor, Any], List[NewsItem]]:
    def map_records(source: SourceDescriptor, payload: Any) -> List[NewsItem]:
        if source.kind == "gdelt":
            return parse_gdelt(payload, category)
        return parse_rss(payload, source.name, category)

    return map_records


def dataset(
    category: str,
    settings: Settings,
    session: aiohttp.ClientSession,
    adapter: ProxyFallbackAdapter,
    clock: Callable[[], float] = time.time,
) -> DatasetSpec:
    """Dataset definition for one news category.

    RSS feeds are fetched directly; GDELT goes through the proxy adapter and
    must answer with JSON, anything else counts as a failed source.
    """
    check_category(category)
    hop_timeout = settings.source_timeout_sec / 2

    async def fetch(source: SourceDescriptor) -> Any:
        if source.via_proxy:
            resp = await adapter.request(
                source.full_url(), accept="application/json", timeout=hop_timeout
            )
        else:
            resp = await http_get(
                session,
                source.full_url(),
                timeout=settings.source_timeout_sec,
                accept=RSS_ACCEPT,
                user_agent=settings.user_agent,
            )
        resp.raise_for_status(source.name)
        if source.kind == "gdelt":
            ctype = (resp.content_type or "").lower()
            if ctype and "json" not in ctype:
                raise ValueError(f"{source.name}: non-JSON response ({ctype})")
            return resp.json()
        return resp.text

    return DatasetSpec(
        key=dataset_key(category),
        sources=build_sources(category, settings),
        fetch=fetch,
        map_records=make_mapper(category),
        ttl=settings.cache_ttl_news_sec,
        rank=lambda it: it.timestamp,
        max_items=settings.news_max_items,
        enrich=enrich,
        post_process=make_post_process(settings, clock),
        timeout=settings.source_timeout_sec,
    )
