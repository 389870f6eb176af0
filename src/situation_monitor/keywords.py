"""Keyword rule tables and the text classifiers built on them.

Every rule is a case-insensitive alternation of literal terms, each bounded
on both sides so that a term never matches inside a longer word: ``war``
matches "war" and "War," but not "software", "hardware" or "award".  A
boundary is any character that is not a Unicode letter, digit or
underscore, so accented words and hyphenated terms behave as expected.

Tables are ordered; order is priority wherever a single label is returned.
All functions are pure and never raise for ``None`` or empty text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

DEFAULT_CATEGORY = "politics"


@dataclass(frozen=True)
class KeywordRule:
    label: str
    terms: Tuple[str, ...]
    pattern: "re.Pattern[str]"
    # one compiled pattern per term, parallel to ``terms``
    term_patterns: Tuple["re.Pattern[str]", ...] = ()

    def matches(self, text: str) -> bool:
        return bool(text) and self.pattern.search(text) is not None

    def first_term(self, text: str) -> Optional[str]:
        """Return the table spelling of the first term found in ``text``."""
        if not text:
            return None
        for term, pat in zip(self.terms, self.term_patterns):
            if pat.search(text):
                return term
        return None


# Exclusion rules share the shape; a match drops the record.
ExclusionRule = KeywordRule


def _term_regex(term: str) -> str:
    normalized = term.strip()
    if not normalized:
        raise ValueError("keyword terms must be non-empty")
    # Internal whitespace matches any run of whitespace.
    return r"\s+".join(re.escape(part) for part in normalized.split())


def build_keyword_pattern(*terms: str) -> "re.Pattern[str]":
    """Compile ``terms`` into one word-bounded, case-insensitive pattern."""
    if not terms:
        raise ValueError("at least one term is required")
    # Longest first so "trade war" wins over "trade" inside the alternation.
    ordered = sorted(terms, key=len, reverse=True)
    body = "|".join(_term_regex(t) for t in ordered)
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)


def compile_rule(label: str, terms: Iterable[str]) -> KeywordRule:
    terms = tuple(terms)
    return KeywordRule(
        label=label,
        terms=terms,
        pattern=build_keyword_pattern(*terms),
        term_patterns=tuple(build_keyword_pattern(t) for t in terms),
    )


def compile_table(table: Dict[str, Sequence[str]]) -> List[KeywordRule]:
    return [compile_rule(label, terms) for label, terms in table.items()]


def find_substring_conflicts(
    rules: Iterable[KeywordRule], words: Iterable[str]
) -> List[Tuple[str, str]]:
    """Return ``(label, word)`` pairs where a rule fires on a standalone word.

    ``words`` should be common words unrelated to any label ("software",
    "award").  A valid table yields an empty list.
    """
    words = list(words)
    return [(rule.label, w) for rule in rules for w in words if rule.matches(w)]


# --- Tables -----------------------------------------------------------------

ALERT_KEYWORDS: Tuple[str, ...] = (
    "war",
    "invasion",
    "military",
    "nuclear",
    "sanctions",
    "missile",
    "attack",
    "troops",
    "conflict",
    "strike",
    "bomb",
    "casualties",
    "ceasefire",
    "treaty",
    "nato",
    "coup",
    "martial law",
    "emergency",
    "assassination",
    "terrorist",
    "hostage",
    "evacuation",
)

REGION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "EUROPE": (
        "nato",
        "eu",
        "european",
        "ukraine",
        "russia",
        "germany",
        "france",
        "uk",
        "britain",
        "poland",
    ),
    "MENA": (
        "iran",
        "israel",
        "saudi",
        "syria",
        "iraq",
        "gaza",
        "lebanon",
        "yemen",
        "houthi",
        "middle east",
    ),
    "APAC": (
        "china",
        "taiwan",
        "japan",
        "korea",
        "indo-pacific",
        "south china sea",
        "asean",
        "philippines",
    ),
    "AMERICAS": ("us", "america", "canada", "mexico", "brazil", "venezuela", "latin"),
    "AFRICA": ("africa", "sahel", "niger", "sudan", "ethiopia", "somalia"),
}

TOPIC_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "CYBER": ("cyber", "hack", "ransomware", "malware", "breach", "apt", "vulnerability"),
    "NUCLEAR": ("nuclear", "icbm", "warhead", "nonproliferation", "uranium", "plutonium"),
    "CONFLICT": (
        "war",
        "military",
        "troops",
        "invasion",
        "strike",
        "missile",
        "combat",
        "offensive",
    ),
    "INTEL": ("intelligence", "espionage", "spy", "cia", "mossad", "fsb", "covert"),
    "DEFENSE": ("pentagon", "dod", "defense", "military", "army", "navy", "air force"),
    "DIPLO": ("diplomat", "embassy", "treaty", "sanctions", "talks", "summit", "bilateral"),
    "ECON": (
        "economy",
        "economic",
        "inflation",
        "recession",
        "gdp",
        "interest rate",
        "fiscal",
        "currency",
        "central bank",
        "imf",
        "world bank",
        "unemployment",
    ),
    "ELECTIONS": (
        "election",
        "vote",
        "ballot",
        "candidate",
        "campaign",
        "runoff",
        "referendum",
        "incumbent",
        "polling",
    ),
    "UNREST": (
        "protest",
        "riot",
        "uprising",
        "unrest",
        "crackdown",
        "dissident",
        "revolt",
        "demonstration",
    ),
    "TRADE": (
        "tariff",
        "trade war",
        "embargo",
        "mercosur",
        "brics",
        "free trade",
        "export ban",
        "trade deal",
        "trade agreement",
    ),
    "ENERGY": (
        "oil",
        "pipeline",
        "opec",
        "petroleum",
        "mining",
        "lithium",
        "renewable",
        "natural gas",
        "energy crisis",
    ),
}

# Prediction-market categories in priority order.  Dict order is the order
# categorize_market() evaluates them in.
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "elections": (
        "election", "vote", "ballot", "primary", "electoral", "polling",
        "candidate", "democrat", "republican", "GOP", "senate", "congress",
        "governor", "mayor", "presidency", "presidential",
    ),
    "geopolitics": (
        "war", "invasion", "military", "NATO", "UN", "sanction", "treaty",
        "border", "conflict", "nuclear", "missile", "troops", "ceasefire",
        "territory", "occupation", "China", "Russia", "Ukraine", "Taiwan",
        "Israel", "Gaza", "Iran", "Korea", "Syria",
    ),
    "tech": (
        "AI", "artificial intelligence", "GPT", "OpenAI", "Anthropic", "Google",
        "Apple", "Microsoft", "Meta", "Amazon", "Tesla", "SpaceX", "crypto",
        "bitcoin", "ethereum", "blockchain", "chip", "semiconductor", "quantum",
        "robot",
    ),
    "finance": (
        "Fed", "interest rate", "inflation", "GDP", "recession", "stock", "S&P",
        "Nasdaq", "Dow", "bond", "treasury", "bank", "economy", "trade",
        "tariff", "debt", "default", "market", "dollar", "euro", "yuan",
    ),
    "politics": (
        "Trump", "Biden", "president", "White House", "Congress", "Senate",
        "House", "Supreme Court", "DOJ", "FBI", "CIA", "policy", "legislation",
        "bill", "law", "government", "federal", "executive order",
    ),
}

# Off-topic domains that would otherwise land in a real category.
EXCLUSION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "sports": (
        "NFL", "NBA", "MLB", "NHL", "soccer", "football", "tennis", "golf",
        "boxing", "UFC", "MMA", "F1", "NASCAR", "Premier League",
        "Champions League", "World Cup", "Super Bowl", "playoffs", "championship",
    ),
    "meme_assets": ("meme coin", "memecoin", "shib", "doge", "pepe", "bonk", "floki"),
    "entertainment": (
        "movie", "tv show", "grammy", "oscar", "emmy", "golden globe",
        "billboard", "spotify", "netflix", "disney", "marvel",
    ),
    "social": ("tiktok", "youtube", "streamer", "influencer", "pewdiepie", "mrbeast"),
    "reality_tv": (
        "bachelor", "bachelorette", "survivor", "big brother", "american idol",
        "the voice",
    ),
}

ALERT_RULE = compile_rule("ALERT", ALERT_KEYWORDS)
REGION_RULES = compile_table(REGION_KEYWORDS)
TOPIC_RULES = compile_table(TOPIC_KEYWORDS)
CATEGORY_RULES = compile_table(CATEGORY_KEYWORDS)
EXCLUSION_RULES = compile_table(EXCLUSION_KEYWORDS)

CATEGORY_ORDER: Tuple[str, ...] = tuple(r.label for r in CATEGORY_RULES)


# --- Classifiers ------------------------------------------------------------


@dataclass(frozen=True)
class AlertMatch:
    is_alert: bool
    keyword: Optional[str] = None


def contains_alert_keyword(text: Optional[str]) -> AlertMatch:
    """First alert keyword (table order) found in ``text``."""
    keyword = ALERT_RULE.first_term(text or "")
    return AlertMatch(is_alert=keyword is not None, keyword=keyword)


def detect_topics(text: Optional[str]) -> List[str]:
    """All topics with at least one word-bounded hit, in table order."""
    text = text or ""
    return [rule.label for rule in TOPIC_RULES if rule.matches(text)]


def detect_region(text: Optional[str]) -> Optional[str]:
    text = text or ""
    for rule in REGION_RULES:
        if rule.matches(text):
            return rule.label
    return None


def categorize_market(text: Optional[str]) -> str:
    """Category for a market question.

    Rules are checked elections, geopolitics, tech, finance, politics; the
    first hit wins and ``politics`` is returned when nothing matches.
    """
    text = text or ""
    for rule in CATEGORY_RULES:
        if rule.matches(text):
            return rule.label
    return DEFAULT_CATEGORY


def exclusion_reason(text: Optional[str]) -> Optional[str]:
    text = text or ""
    for rule in EXCLUSION_RULES:
        if rule.matches(text):
            return rule.label
    return None


def should_exclude(text: Optional[str]) -> bool:
    return exclusion_reason(text) is not None
