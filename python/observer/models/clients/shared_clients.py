"""
Shared HTTP clients for the model providers.

Provider adapters are created per model attempt, so they must not each open
their own connection pool. This module hands out one ``AsyncOpenAI`` client
for the streaming family and one ``httpx.AsyncClient`` for the single-shot
family, created lazily on first use.

Usage:
    client = await get_shared_openai_client(settings)
    http = await get_shared_http_client()
    ...
    await close_shared_clients()  # at shutdown
"""

import asyncio
from typing import Optional

import httpx
from openai import AsyncOpenAI

from ...config import Settings
from ...logs import get_logger

logger = get_logger("provider")

_shared_openai_client: Optional[AsyncOpenAI] = None
_shared_openai_lock = asyncio.Lock()

_shared_http_client: Optional[httpx.AsyncClient] = None
_shared_http_lock = asyncio.Lock()

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 120.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 10.0

MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 20


def _create_timeout() -> httpx.Timeout:
  return httpx.Timeout(
    connect=DEFAULT_CONNECT_TIMEOUT,
    read=DEFAULT_READ_TIMEOUT,
    write=DEFAULT_WRITE_TIMEOUT,
    pool=DEFAULT_POOL_TIMEOUT,
  )


def _create_limits() -> httpx.Limits:
  return httpx.Limits(
    max_connections=MAX_CONNECTIONS,
    max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
  )


async def get_shared_openai_client(settings: Settings) -> AsyncOpenAI:
  """
  Get the shared AsyncOpenAI client, creating it on first call.

  :param settings: Supplies the API key and base URL on first call
  :return: Shared client instance
  """
  global _shared_openai_client

  if _shared_openai_client is not None:
    return _shared_openai_client

  async with _shared_openai_lock:
    if _shared_openai_client is not None:
      return _shared_openai_client

    timeout = _create_timeout()
    _shared_openai_client = AsyncOpenAI(
      api_key=settings.openai_api_key,
      base_url=settings.openai_base_url,
      timeout=timeout,
      max_retries=0,
      http_client=httpx.AsyncClient(timeout=timeout, limits=_create_limits()),
    )

    logger.debug(
      f"Initialized shared OpenAI client for {settings.openai_base_url} "
      f"(max_connections={MAX_CONNECTIONS}, max_keepalive={MAX_KEEPALIVE_CONNECTIONS})"
    )
    return _shared_openai_client


async def get_shared_http_client() -> httpx.AsyncClient:
  """Get the shared httpx client used for plain JSON providers."""
  global _shared_http_client

  if _shared_http_client is not None:
    return _shared_http_client

  async with _shared_http_lock:
    if _shared_http_client is None:
      _shared_http_client = httpx.AsyncClient(timeout=_create_timeout(), limits=_create_limits())
      logger.debug("Initialized shared HTTP client")
    return _shared_http_client


async def close_shared_clients() -> None:
  """
  Close the shared clients and release their connection pools.

  Call during application shutdown.
  """
  global _shared_openai_client, _shared_http_client

  if _shared_openai_client is not None:
    await _shared_openai_client.close()
    _shared_openai_client = None
    logger.info("Closed shared OpenAI client")

  if _shared_http_client is not None:
    await _shared_http_client.aclose()
    _shared_http_client = None
    logger.info("Closed shared HTTP client")


def reset_shared_clients() -> None:
  """
  Forget the shared clients without closing them (for tests).
  """
  global _shared_openai_client, _shared_http_client
  _shared_openai_client = None
  _shared_http_client = None
