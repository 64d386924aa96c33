"""
Feedback record schemas (inbound record, extracted attributes, stored record).
"""

from __future__ import annotations

import math
import time
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from extraction import vocabulary

Source = Literal["support", "discord", "github", "email", "twitter", "forum"]
Status = Literal["pending", "processing", "processed"]
Urgency = Literal["low", "medium", "high", "critical"]
Sentiment = Literal["positive", "neutral", "negative"]


class Feedback(BaseModel):
    id: str = Field(..., min_length=1)
    source: Source
    source_id: str | None = None
    title: str | None = None
    content: str = Field(..., min_length=1)
    author: str | None = None
    author_email: str | None = None
    status: Status | None = None
    metadata: dict[str, Any] | None = None
    created_at: int
    updated_at: int

    @model_validator(mode="before")
    @classmethod
    def _default_timestamps(cls, data: Any) -> Any:
        # Missing timestamps count as set so they survive `exclude_unset` dumps.
        if isinstance(data, dict) and ("created_at" not in data or "updated_at" not in data):
            now = int(time.time())
            data = dict(data)
            data.setdefault("created_at", now)
            data.setdefault("updated_at", data["created_at"])
        return data

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _truncate_fractional_seconds(cls, value: Any) -> Any:
        if isinstance(value, float) and math.isfinite(value):
            return int(value)
        return value


class ExtractedAttributes(BaseModel):
    themes: list[str] = Field(default_factory=list)
    urgency: Urgency = vocabulary.DEFAULT_URGENCY
    value: int = Field(default=vocabulary.DEFAULT_VALUE, ge=vocabulary.VALUE_MIN, le=vocabulary.VALUE_MAX)
    sentiment: Sentiment = vocabulary.DEFAULT_SENTIMENT

    @field_validator("themes")
    @classmethod
    def _themes_in_vocabulary(cls, themes: list[str]) -> list[str]:
        unknown = [t for t in themes if t not in vocabulary.THEMES]
        if unknown:
            raise ValueError(f"Unknown themes: {unknown}")
        return themes


class ProcessedFeedback(Feedback):
    extracted: ExtractedAttributes
