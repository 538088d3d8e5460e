"""Configuration loading for the news reader."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from xml.etree import ElementTree as ET

from .adapters import SYNDICATION, SYNDICATION_FULL_STORY
from .models import FeedDefinition

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_STRING = "sqlite:///newsreader.db"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class DatabaseConfig:
    connection_string: str = DEFAULT_CONNECTION_STRING


@dataclass
class AppConfig:
    definitions_file: Optional[str] = None
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    concurrency: int = 10
    fetch_timeout: float = 10.0
    task_timeout: float = 15.0
    render_timeout: float = 30.0
    admin_role: str = "newsAdmin"
    news_set: str = "default"


def parse_definitions_config(path: str) -> List[FeedDefinition]:
    """Parse an OPML file of administrator-curated feeds.

    Each ``outline`` with ``type="rss"`` and an ``xmlUrl`` becomes a
    predefined definition. ``roles`` is a comma separated list of roles that
    receive the feed by default; ``fname`` is its stable key (the URL when
    absent); ``fullStory="true"`` selects the full-story adapter.
    """
    logger.info("Loading predefined feed definitions from %s", path)
    tree = ET.parse(path)
    root = tree.getroot()
    body = root.find("body")
    definitions: List[FeedDefinition] = []

    def walk(outline: ET.Element, inherited_roles: List[str]) -> None:
        title = outline.attrib.get("title") or outline.attrib.get("text")
        feed_url = outline.attrib.get("xmlUrl")
        roles = _split_roles(outline.attrib.get("roles")) or inherited_roles

        if outline.attrib.get("type") == "rss" and feed_url:
            full_story = outline.attrib.get("fullStory", "false").lower() == "true"
            definitions.append(
                FeedDefinition.predefined(
                    SYNDICATION_FULL_STORY if full_story else SYNDICATION,
                    title or feed_url,
                    url=feed_url,
                    default_roles=roles,
                    fname=outline.attrib.get("fname") or feed_url,
                )
            )
            logger.debug(
                "Registered predefined feed '%s' for roles %s", feed_url, sorted(roles)
            )
            return

        for child in outline.findall("outline"):
            walk(child, roles)

    if body is None:
        raise ValueError("Definitions file is missing the <body> section.")

    for outline in body.findall("outline"):
        walk(outline, [])

    logger.info("Loaded %d predefined feed definitions", len(definitions))
    return definitions


def _split_roles(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [role.strip() for role in value.split(",") if role.strip()]


def _beside(config_path: Path, value: str) -> str:
    """Anchor a relative path from the config file at the file's directory."""
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (config_path.parent / path).resolve()
    return str(path)


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    tree = ET.parse(config_path)
    root = tree.getroot()

    definitions_file = root.findtext("definitions")
    if definitions_file and definitions_file.strip():
        definitions_file = _beside(config_path, definitions_file.strip())
    else:
        definitions_file = None

    db_config = DatabaseConfig()
    db_node = root.find("database")
    if db_node is not None:
        connection_string = db_node.findtext("connection-string")
        if connection_string:
            db_config.connection_string = connection_string.strip()

    logging_config = LoggingConfig()
    log_node = root.find("logging")
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _beside(config_path, log_file)

    concurrency = int(root.findtext("concurrency", "10"))
    if concurrency <= 0:
        raise ValueError("<concurrency> must be positive.")

    fetch_timeout = float(root.findtext("fetch-timeout", "10"))
    task_timeout = float(root.findtext("task-timeout", "15"))
    render_timeout = float(root.findtext("render-timeout", "30"))
    if min(fetch_timeout, task_timeout, render_timeout) <= 0:
        raise ValueError("Timeouts must be positive.")

    return AppConfig(
        definitions_file=definitions_file,
        database=db_config,
        logging=logging_config,
        concurrency=concurrency,
        fetch_timeout=fetch_timeout,
        task_timeout=task_timeout,
        render_timeout=render_timeout,
        admin_role=root.findtext("admin-role", "newsAdmin").strip(),
        news_set=root.findtext("news-set", "default").strip(),
    )
