"""
Prompt builders for attribute extraction.
"""

from __future__ import annotations

from typing import Iterable

from . import vocabulary


def system_prompt(themes: Iterable[str] = vocabulary.THEMES) -> str:
    """
    Ask for a single JSON object restricted to the closed label sets.
    """
    themes_list = ", ".join(themes)
    urgency = ", ".join(vocabulary.URGENCY_LEVELS)
    sentiments = ", ".join(vocabulary.SENTIMENTS)
    return (
        "You are a feedback analysis assistant. Analyze the following feedback and extract:\n"
        f"1. Themes: Select relevant themes from this predefined list: {themes_list}\n"
        f"2. Urgency: Determine urgency level ({urgency})\n"
        "3. Value: Score the value/importance of this feedback from 0-100 "
        "(where 0 is low value and 100 is high value)\n"
        f"4. Sentiment: Determine sentiment ({sentiments})\n\n"
        "Return your response as a JSON object with these exact keys: "
        "themes (array), urgency (string), value (number), sentiment (string).\n\n"
        "Example format:\n"
        "{\n"
        '  "themes": ["Workers", "Performance"],\n'
        '  "urgency": "medium",\n'
        '  "value": 75,\n'
        '  "sentiment": "neutral"\n'
        "}"
    )


def user_prompt(*, title: str | None, content: str, source: str, author: str | None) -> str:
    return (
        f"Feedback Title: {title or 'N/A'}\n"
        f"Feedback Content: {content}\n"
        f"Source: {source}\n"
        f"Author: {author or 'N/A'}\n\n"
        "Analyze this feedback and provide the extracted data in JSON format."
    )
