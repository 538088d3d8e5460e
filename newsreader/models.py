"""Shared data models for newsreader."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, List, Optional, Set

if TYPE_CHECKING:  # pragma: no cover
    from .fullstory import FullStoryHandle


class DefinitionKind(str, Enum):
    """Variant tag shared by definitions and the configurations using them."""

    PREDEFINED = "predefined"
    USER_DEFINED = "user"


@dataclass
class FeedDefinition:
    """Registration of a feed and the adapter used to retrieve it.

    Predefined definitions are administered centrally and handed out by role
    through ``default_roles``. User-defined definitions belong to
    ``owner_id`` and are created when that user adds a feed by URL.
    """

    kind: DefinitionKind
    adapter_kind: str
    display_name: str
    parameters: Dict[str, str] = field(default_factory=dict)
    id: Optional[int] = None
    default_roles: Set[str] = field(default_factory=set)
    fname: Optional[str] = None
    owner_id: Optional[str] = None

    @classmethod
    def predefined(
        cls,
        adapter_kind: str,
        display_name: str,
        url: Optional[str] = None,
        default_roles: Iterable[str] = (),
        fname: Optional[str] = None,
    ) -> "FeedDefinition":
        parameters = {"url": url} if url else {}
        return cls(
            kind=DefinitionKind.PREDEFINED,
            adapter_kind=adapter_kind,
            display_name=display_name,
            parameters=parameters,
            default_roles=set(default_roles),
            fname=fname,
        )

    @classmethod
    def user_defined(
        cls, adapter_kind: str, display_name: str, url: str, owner_id: str
    ) -> "FeedDefinition":
        return cls(
            kind=DefinitionKind.USER_DEFINED,
            adapter_kind=adapter_kind,
            display_name=display_name,
            parameters={"url": url},
            owner_id=owner_id,
        )

    @property
    def is_predefined(self) -> bool:
        return self.kind is DefinitionKind.PREDEFINED

    @property
    def url(self) -> Optional[str]:
        return self.parameters.get("url")

    def sort_key(self):
        return (self.display_name or "", self.id or -1)


@dataclass
class FeedConfiguration:
    """A definition placed into a news set, with per-user visibility."""

    definition: FeedDefinition
    news_set_id: Optional[int] = None
    displayed: bool = True
    position: int = 0
    id: Optional[int] = None
    owner_id: Optional[str] = None

    @property
    def kind(self) -> DefinitionKind:
        return self.definition.kind

    @property
    def is_predefined(self) -> bool:
        return self.definition.is_predefined


@dataclass
class NewsSet:
    """Named, per-user collection of feed configurations."""

    user_id: str
    name: str
    id: Optional[int] = None
    configurations: List[FeedConfiguration] = field(default_factory=list)
    dismissed_definition_ids: Set[int] = field(default_factory=set)

    def configured_definition_ids(self) -> Set[int]:
        return {
            cfg.definition.id
            for cfg in self.configurations
            if cfg.definition.id is not None
        }


@dataclass
class RawEntry:
    """Entry as produced by a feed adapter, before sanitization."""

    title: Optional[str]
    link: Optional[str]
    published_at: Optional[datetime] = None
    description: Optional[str] = None


@dataclass
class NormalizedEntry:
    """Sanitized entry ready for display; produced fresh on every render."""

    title: str
    link: Optional[str]
    published_at: Optional[datetime]
    summary: str
    full_story: Optional["FullStoryHandle"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "link": self.link,
            "published": self.published_at.isoformat() if self.published_at else None,
            "summary": self.summary,
            "full_story": self.full_story.to_dict() if self.full_story else None,
        }


@dataclass
class FeedResult:
    """Outcome of retrieving one configuration's feed."""

    configuration: FeedConfiguration
    entries: List[NormalizedEntry] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        definition = self.configuration.definition
        return {
            "configuration_id": self.configuration.id,
            "name": definition.display_name,
            "kind": definition.kind.value,
            "error": self.error,
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass
class RenderedNewsSet:
    """Aggregated view of a news set for one render."""

    news_set: NewsSet
    results: List[FeedResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "news_set": self.news_set.name,
            "user": self.news_set.user_id,
            "feeds": [result.to_dict() for result in self.results],
        }


@dataclass(frozen=True)
class RequestContext:
    """Identity of the acting user, passed explicitly through each call."""

    user_id: str
    roles: FrozenSet[str] = frozenset()
    remote_addr: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "roles", frozenset(self.roles))

    def has_role(self, role: str) -> bool:
        return role in self.roles
