"""Situation Monitor content engine.

Fetches prediction markets and news headlines from unreliable upstreams,
caches them with a time-to-live and stale fallback, and classifies free text
into topics, regions and categories with word-bounded keyword rules.
"""

__all__: list[str] = []
