"""Command-line interface for the newsreader application."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import pprint
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .adapters import AdapterRegistry, default_registry
from .aggregation import AggregationService
from .config import AppConfig, parse_app_config, parse_definitions_config
from .db import NewsStore
from .errors import NewsReaderError
from .fullstory import FullStoryResolver
from .models import RequestContext
from .preferences import PreferencesService
from .renderers import build_json, build_text
from .resolver import ConfigurationResolver

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Services:
    """Explicitly constructed object graph for one process."""

    store: NewsStore
    registry: AdapterRegistry
    resolver: ConfigurationResolver
    preferences: PreferencesService
    aggregation: AggregationService


def build_services(config: AppConfig, store: Optional[NewsStore] = None) -> Services:
    """Wire the store, resolver and services from configuration."""
    store = store or NewsStore.from_connection_string(config.database.connection_string)
    registry = default_registry(timeout=config.fetch_timeout)
    resolver = ConfigurationResolver(store)
    preferences = PreferencesService(store, resolver, admin_role=config.admin_role)
    aggregation = AggregationService(
        resolver,
        registry,
        full_story_resolver=FullStoryResolver(timeout=config.fetch_timeout),
        max_workers=config.concurrency,
        task_timeout=config.task_timeout,
        render_timeout=config.render_timeout,
    )
    return Services(
        store=store,
        registry=registry,
        resolver=resolver,
        preferences=preferences,
        aggregation=aggregation,
    )


def import_definitions(store: NewsStore, path: str) -> int:
    """Insert or update predefined definitions keyed by their fname."""
    count = 0
    for definition in parse_definitions_config(path):
        existing = store.get_predefined_definition_by_fname(definition.fname)
        if existing is not None:
            definition.id = existing.id
        store.store_definition(definition)
        count += 1
    logger.info("Imported %d predefined definitions from %s", count, path)
    return count


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Render a user's aggregated news set from configured feeds."
    )
    parser.add_argument(
        "--config",
        default="configs/config.xml",
        help="Path to the main configuration XML file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )
    parser.add_argument("--user", required=True, help="User id to render for.")
    parser.add_argument(
        "--role",
        action="append",
        default=[],
        help="Role held by the user. May be given more than once.",
    )
    parser.add_argument(
        "--news-set",
        default=None,
        help="News set name. Overrides config.",
    )
    parser.add_argument(
        "--import-definitions",
        metavar="PATH",
        help="Load predefined feeds from an OPML file before rendering.",
    )
    parser.add_argument(
        "--add-feed",
        nargs=2,
        metavar=("NAME", "URL"),
        help="Add a feed of your own to the news set before rendering.",
    )
    parser.add_argument(
        "--format",
        choices=("json", "text"),
        default="json",
        help="Output format.",
    )
    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Replace the root handlers with console and optional file output."""
    log_level = logging.getLevelName(level_name.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    logger.debug(
        "Logging at %s to %s",
        logging.getLevelName(log_level),
        log_file or "the console",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config)

        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file)

        config_dict = dataclasses.asdict(app_config)
        config_dict["database"]["connection_string"] = "***MASKED***"
        logger.info("Active Configuration:\n%s", pprint.pformat(config_dict))

        services = build_services(app_config)

        definitions_file = args.import_definitions or app_config.definitions_file
        if definitions_file:
            import_definitions(services.store, definitions_file)

        news_set_name = args.news_set or app_config.news_set
        context = RequestContext(user_id=args.user, roles=frozenset(args.role))

        if args.add_feed:
            name, url = args.add_feed
            services.preferences.add_user_feed(context, news_set_name, name, url)

        rendered = services.aggregation.render(
            context.user_id, context.roles, news_set_name, context=context
        )
    except ValueError as exc:
        parser.error(str(exc))
    except (NewsReaderError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1

    if args.format == "text":
        print(build_text(rendered))
    else:
        print(build_json(rendered))
    return 0
