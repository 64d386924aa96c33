"""
Workers AI HTTP client.

Used endpoint:
- POST {base}/accounts/{account_id}/ai/run/{model}
    body:  {"messages": [{"role": ..., "content": ...}, ...]}
    reply: {"result": {"response": "..."}, "success": true, ...}
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from . import config


# Inference failures are explicit and separable from other runtime errors.
class InferenceError(RuntimeError):
    pass


def _run_url(*, base_url: str, account_id: str, model: str) -> str:
    base_url = (base_url or "").strip().rstrip("/")
    if not base_url:
        raise InferenceError("INFERENCE_BASE_URL is empty.")
    if not account_id:
        raise InferenceError("CF_ACCOUNT_ID is not set.")
    model = (model or "").strip()
    if not model:
        raise InferenceError("Inference model name is empty.")
    return f"{base_url}/accounts/{account_id}/ai/run/{model}"


def _response_text(data: Any) -> str:
    """
    Pull the generated text out of either reply envelope.

    Some models answer with a parsed object instead of a string; it is
    re-serialized so callers always scan text.
    """
    if not isinstance(data, dict):
        raise InferenceError("Inference returned a non-object body.")

    result = data.get("result")
    candidates = [result.get("response") if isinstance(result, dict) else None, data.get("response")]
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
        if isinstance(candidate, dict):
            return json.dumps(candidate)

    raise InferenceError("Inference returned an empty response.")


async def run_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    model: str | None = None,
    timeout_s: float | None = None,
) -> str:
    """
    Send one system + user message pair and return the assistant text.

    Exactly one request is made; there is no streaming and no retry here.
    """
    url = _run_url(
        base_url=config.inference_base_url(),
        account_id=config.cf_account_id(),
        model=model or config.inference_model(),
    )
    token = config.cf_api_token()
    if not token:
        raise InferenceError("CF_API_TOKEN is not set.")

    payload = {
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
    }

    try:
        async with httpx.AsyncClient(timeout=timeout_s or config.inference_timeout_s()) as client:
            resp = await client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
    except httpx.HTTPError as exc:
        raise InferenceError(f"Inference request failed: {exc}") from exc

    if not resp.is_success:
        # Avoid dumping huge bodies; include a small snippet.
        body = resp.text[:500]
        raise InferenceError(f"Inference request failed: {resp.status_code} {body}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise InferenceError("Inference returned a non-JSON body.") from exc

    return _response_text(data)
