"""
Merge an inbound record with its extracted attributes.
"""

from __future__ import annotations

import time
from typing import Any

from .schemas import ExtractedAttributes, Feedback, ProcessedFeedback


def compose(
    feedback: Feedback,
    extracted: dict[str, Any] | ExtractedAttributes,
    *,
    now: int | None = None,
) -> ProcessedFeedback:
    """
    Build the stored record: the input fields as given, plus `extracted` and a
    fresh `updated_at`.

    `status` is copied unchanged. Moving a record to "processed" is decided
    elsewhere, not by a successful write.
    """
    attributes = ExtractedAttributes.model_validate(extracted)
    data = feedback.model_dump(exclude_unset=True)
    data["extracted"] = attributes.model_dump()
    data["updated_at"] = int(time.time()) if now is None else now
    return ProcessedFeedback.model_validate(data)
