"""Policy-driven cleanup of untrusted feed markup."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional

import bleach
from bs4 import BeautifulSoup

from .errors import SanitizationError

logger = logging.getLogger(__name__)

TITLE_POLICY = "title"
DESCRIPTION_POLICY = "description"

_REMOVED_ELEMENTS = ("script", "style", "iframe", "object", "embed", "noscript")


@dataclass(frozen=True)
class SanitizationPolicy:
    """Named rule set limiting the markup allowed through."""

    name: str
    tags: FrozenSet[str] = frozenset()
    attributes: Mapping[str, List[str]] = field(default_factory=dict)
    protocols: FrozenSet[str] = frozenset({"http", "https", "mailto"})
    text_only: bool = False


POLICIES: Dict[str, SanitizationPolicy] = {
    TITLE_POLICY: SanitizationPolicy(name=TITLE_POLICY, text_only=True),
    DESCRIPTION_POLICY: SanitizationPolicy(
        name=DESCRIPTION_POLICY,
        tags=frozenset(
            {
                "a",
                "b",
                "blockquote",
                "br",
                "code",
                "em",
                "i",
                "li",
                "ol",
                "p",
                "strong",
                "ul",
            }
        ),
        attributes={"a": ["href", "title"]},
    ),
}


def sanitize(html: Optional[str], policy: str) -> str:
    """Clean ``html`` under the named policy.

    Never raises: any failure, including an unknown policy, yields an empty
    string so unsanitized input cannot leak through.
    """
    if not html:
        return ""
    try:
        return _apply(html, _lookup(policy))
    except Exception as exc:  # noqa: BLE001 - fail closed on library internals
        logger.warning("Sanitization under policy '%s' failed: %s", policy, exc)
        return ""


def _lookup(policy: str) -> SanitizationPolicy:
    try:
        return POLICIES[policy]
    except KeyError:
        raise SanitizationError(f"Unknown sanitization policy '{policy}'") from None


def _apply(html: str, policy: SanitizationPolicy) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(_REMOVED_ELEMENTS):
        element.decompose()

    if policy.text_only:
        return bleach.clean(_collapse_text(soup), tags=set(), strip=True)

    cleaned = bleach.clean(
        str(soup),
        tags=set(policy.tags),
        attributes=dict(policy.attributes),
        protocols=set(policy.protocols),
        strip=True,
    )
    return cleaned.strip()


def _collapse_text(soup: BeautifulSoup) -> str:
    text = soup.get_text(separator=" ", strip=True)
    text = re.sub(r"\s+([.,;:!?])", r"\1", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()
