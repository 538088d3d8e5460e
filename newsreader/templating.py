"""Jinja2 environment for newsreader templates."""

from __future__ import annotations

from importlib import resources

from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, select_autoescape

_ENV: Environment | None = None


def _plain(value: str | None) -> str:
    """Reduce sanitized markup to plain text for terminal output."""
    if not value:
        return ""
    return BeautifulSoup(value, "html.parser").get_text(separator=" ", strip=True)


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        _ENV.filters["plain"] = _plain
    return _ENV
