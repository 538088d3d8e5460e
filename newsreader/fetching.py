"""HTTP retrieval shared by feed adapters and full stories."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

import requests

from .errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
USER_AGENT = "newsreader/1.0"

T = TypeVar("T")


def _get(url: str, timeout: float, read: Callable[[requests.Response], T]) -> T:
    logger.debug("GET %s (timeout %.1fs)", url, timeout)
    try:
        with requests.get(
            url,
            timeout=timeout,
            stream=True,
            headers={"User-Agent": USER_AGENT},
        ) as response:
            response.raise_for_status()
            return read(response)
    except requests.RequestException as exc:
        raise FetchError(f"Failed to fetch {url}", exc) from exc


def get_content(url: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Issue a single GET and return the response body as bytes."""
    return _get(url, timeout, lambda response: response.content)


def get_text(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Issue a single GET and return the decoded response body."""
    return _get(url, timeout, lambda response: response.text)
