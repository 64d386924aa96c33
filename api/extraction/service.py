"""
Attribute extraction stage.

Flow:
1) Build the system + user prompts
2) Ask the inference endpoint once
3) Find the first JSON object in the reply
4) Normalize it into valid attributes

Every failure falls back to the default attributes; this stage never raises.
"""

from __future__ import annotations

import logging
from typing import Any

from core import inference
from feedback.schemas import Feedback

from . import normalizer, prompts, vocabulary

logger = logging.getLogger(__name__)


async def extract_attributes(feedback: Feedback) -> dict[str, Any]:
    try:
        text = await inference.run_chat(
            system_prompt=prompts.system_prompt(vocabulary.THEMES),
            user_prompt=prompts.user_prompt(
                title=feedback.title,
                content=feedback.content,
                source=feedback.source,
                author=feedback.author,
            ),
        )
    except Exception as exc:
        logger.warning("extraction_defaulted feedback_id=%s reason=%s", feedback.id, exc)
        return vocabulary.default_attributes()

    try:
        data = normalizer.parse_model_output(text)
        if data is None:
            logger.warning("extraction_defaulted feedback_id=%s reason=no_json_object", feedback.id)
            return vocabulary.default_attributes()
        return normalizer.normalize_attributes(data, themes=vocabulary.THEMES)
    except Exception as exc:
        logger.warning("extraction_defaulted feedback_id=%s reason=%s", feedback.id, type(exc).__name__)
        return vocabulary.default_attributes()
