"""Shared httpx plumbing for calls to paid upstream APIs."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

import config
from errors import UpstreamError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_client(client: httpx.AsyncClient | None = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield `client` if given (caller owns it), else a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_S) as owned:
        yield owned


def _decode(resp: httpx.Response) -> Any:
    if resp.status_code < 200 or resp.status_code >= 300:
        raise UpstreamError(f"HTTP {resp.status_code}", status=str(resp.status_code))
    try:
        return resp.json()
    except ValueError as e:
        raise UpstreamError(f"Malformed JSON from {resp.request.url.host}: {e}") from e


async def get_json(client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> Any:
    """GET and decode JSON. Non-2xx or undecodable bodies raise UpstreamError."""
    resp = await client.get(url, params=params)
    logger.debug("GET %s -> %d", url, resp.status_code)
    return _decode(resp)


async def post_json(client: httpx.AsyncClient, url: str, payload: dict[str, Any], headers: dict[str, str], timeout: float | None = None) -> Any:
    resp = await client.post(url, json=payload, headers=headers, timeout=timeout or config.HTTP_TIMEOUT_S)
    logger.debug("POST %s -> %d", url, resp.status_code)
    if resp.status_code < 200 or resp.status_code >= 300:
        raise UpstreamError(f"HTTP {resp.status_code}: {resp.text[:200]}", status=str(resp.status_code))
    return _decode(resp)
