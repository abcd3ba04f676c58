from __future__ import annotations

import logging
from typing import Any

import httpx

from app.services.connectors.base import SourceFault, SourceMalformed, SourceTimeout

logger = logging.getLogger(__name__)

USER_AGENT = "home-archive-search/0.1"


def build_async_client(base_url: str, *, timeout: float = 10.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        follow_redirects=True,
    )


def _body_preview(response: httpx.Response, limit: int = 300) -> str:
    text = (response.text or "").replace("\r", " ").replace("\n", " ").strip()
    if len(text) > limit:
        return text[:limit].rstrip() + "..."
    return text


async def get_json(
    client: httpx.AsyncClient,
    source: str,
    path: str,
    *,
    params: dict[str, Any],
    timeout: float,
) -> dict[str, Any]:
    logger.debug("request | source=%s | path=%s | params=%s", source, path, params)
    try:
        response = await client.get(path, params=params, timeout=timeout)
    except httpx.TimeoutException as exc:
        raise SourceTimeout(source, f"timed out after {timeout}s") from exc
    except httpx.HTTPError as exc:
        raise SourceFault(source, f"request failed: {exc}") from exc

    if response.status_code >= 400:
        logger.warning(
            "non-success response | source=%s | status=%s | body=%s",
            source,
            response.status_code,
            _body_preview(response),
        )
        raise SourceFault(source, f"HTTP {response.status_code}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise SourceMalformed(source, "response is not JSON") from exc
    if not isinstance(payload, dict):
        raise SourceMalformed(source, f"expected a JSON object, got {type(payload).__name__}")
    return payload
