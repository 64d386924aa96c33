"""
Closed label sets for extracted attributes.

These are read-only process-wide constants; pass them where a vocabulary is
needed instead of mutating them.
"""

from __future__ import annotations

THEMES: tuple[str, ...] = (
    "Workers",
    "R2",
    "D1",
    "KV",
    "Pages",
    "AI",
    "CDN",
    "Security",
    "Performance",
    "DNS",
    "SSL/TLS",
    "Analytics",
    "Streaming",
    "API",
    "Edge Computing",
    "WAF",
    "Rate Limiting",
    "Zero Trust",
)

URGENCY_LEVELS: tuple[str, ...] = ("low", "medium", "high", "critical")
SENTIMENTS: tuple[str, ...] = ("positive", "neutral", "negative")

DEFAULT_URGENCY = "medium"
DEFAULT_VALUE = 50
DEFAULT_SENTIMENT = "neutral"

VALUE_MIN = 0
VALUE_MAX = 100


def default_attributes() -> dict:
    """
    Fresh, mutable copy of the fallback attributes.
    """
    return {
        "themes": [],
        "urgency": DEFAULT_URGENCY,
        "value": DEFAULT_VALUE,
        "sentiment": DEFAULT_SENTIMENT,
    }
