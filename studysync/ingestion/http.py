"""Shared httpx helpers for provider clients."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from studysync.core.config import settings
from studysync.core.logging import get_logger

log = get_logger("ingestion.http")

# Canvas caps per_page at 100; a runaway Link chain stops here
MAX_PAGES = 50


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Accept": "application/json"}


@asynccontextmanager
async def client_session(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True) as owned:
        yield owned


def decode_json(resp: httpx.Response) -> Any:
    """Parse a response body, treating a non-JSON 200 (login or maintenance page) as a transport failure."""
    try:
        return resp.json()
    except ValueError as exc:
        raise httpx.DecodingError(f"Response from {resp.request.url} is not JSON: {exc}", request=resp.request) from exc


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Any = None,
) -> Any:
    resp = await client.get(url, headers=headers, params=params)
    resp.raise_for_status()
    return decode_json(resp)


async def get_link_paginated(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    params: Any = None,
) -> List[Any]:
    """Collect every page of a collection that paginates with ``Link: rel="next"``.

    The next URL already carries the query string, so params are only sent
    with the first request.
    """
    results: List[Any] = []
    next_url: Optional[str] = url
    next_params = params
    pages = 0

    while next_url and pages < MAX_PAGES:
        resp = await client.get(next_url, headers=headers, params=next_params)
        resp.raise_for_status()
        page = decode_json(resp)
        if isinstance(page, list):
            results.extend(page)
        else:
            results.append(page)

        pages += 1
        next_url = resp.links.get("next", {}).get("url")
        next_params = None

    if next_url:
        log.warning(f"Stopped following pagination after {MAX_PAGES} pages: {url}")
    return results


async def get_token_paginated(
    client: httpx.AsyncClient,
    url: str,
    collection_key: str,
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, Any]] = None,
) -> List[Any]:
    """Collect every page of a Google API list call (``nextPageToken`` cursor)."""
    results: List[Any] = []
    query: Dict[str, Any] = dict(params or {})
    pages = 0

    while pages < MAX_PAGES:
        resp = await client.get(url, headers=headers, params=query)
        resp.raise_for_status()
        payload = decode_json(resp) or {}
        results.extend(payload.get(collection_key) or [])
        pages += 1

        token = payload.get("nextPageToken")
        if not token:
            break
        query["pageToken"] = token

    return results
