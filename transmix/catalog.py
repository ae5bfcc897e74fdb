"""Read-only source catalog.

Maps content labels (location, mood) to candidate layer sources. The
catalog contents come from external configuration; this module only
resolves labels to candidates the way the episode builder needs them:

- ambience by location, falling back to the ``unknown`` location
- music by mood, falling back to ``mysterious``
- transmission effects from the ``static`` group
- the first configured intro and outro
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import logging

logger = logging.getLogger("transmix.catalog")


DEFAULT_LOCATION = "unknown"
DEFAULT_MOOD = "mysterious"
DEFAULT_EFFECT_GROUP = "static"


@dataclass(frozen=True)
class SourceRef:
    """Resolved source handle, optionally with a known duration in seconds."""

    uri: str
    duration: Optional[float] = None

    def __str__(self) -> str:
        return self.uri


SourceLike = Union[SourceRef, str, Mapping[str, Any]]


def as_source(value: SourceLike) -> SourceRef:
    """Accept a ``SourceRef``, a plain path/URI or ``{"uri", "duration"}``."""

    if isinstance(value, SourceRef):
        return value
    if isinstance(value, Mapping):
        duration = value.get("duration")
        return SourceRef(uri=str(value["uri"]), duration=float(duration) if duration is not None else None)
    return SourceRef(uri=str(value))


@dataclass(frozen=True)
class ContentHints:
    """Labels produced by the content-analysis collaborator."""

    location: Optional[str] = None
    mood: Optional[str] = None
    keywords: Tuple[str, ...] = ()
    sentiment: Optional[float] = None
    effect_group: Optional[str] = None


@dataclass(frozen=True)
class LayerCandidates:
    """Per-role candidate sources for one episode."""

    ambience: Tuple[SourceRef, ...] = ()
    music: Tuple[SourceRef, ...] = ()
    effects: Tuple[SourceRef, ...] = ()
    intro: Optional[SourceRef] = None
    outro: Optional[SourceRef] = None

    @classmethod
    def build(
        cls,
        *,
        ambience: Sequence[SourceLike] = (),
        music: Sequence[SourceLike] = (),
        effects: Sequence[SourceLike] = (),
        intro: Optional[SourceLike] = None,
        outro: Optional[SourceLike] = None,
    ) -> "LayerCandidates":
        return cls(
            ambience=tuple(as_source(s) for s in ambience),
            music=tuple(as_source(s) for s in music),
            effects=tuple(as_source(s) for s in effects),
            intro=as_source(intro) if intro is not None else None,
            outro=as_source(outro) if outro is not None else None,
        )


def _freeze(groups: Optional[Mapping[str, Sequence[SourceLike]]]) -> Mapping[str, Tuple[SourceRef, ...]]:
    frozen: Dict[str, Tuple[SourceRef, ...]] = {}
    for key, items in (groups or {}).items():
        frozen[key.lower()] = tuple(as_source(s) for s in items)
    return MappingProxyType(frozen)


@dataclass(frozen=True)
class SourceCatalog:
    locations: Mapping[str, Tuple[SourceRef, ...]] = field(default_factory=dict)
    moods: Mapping[str, Tuple[SourceRef, ...]] = field(default_factory=dict)
    effects: Mapping[str, Tuple[SourceRef, ...]] = field(default_factory=dict)
    intros: Tuple[SourceRef, ...] = ()
    outros: Tuple[SourceRef, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SourceCatalog":
        """Build a catalog from plain data.

        Expected keys: ``locations`` (label -> list), ``moods`` (label ->
        list), ``effects`` (group -> list), ``intro`` and ``outro`` (lists).
        """

        return cls(
            locations=_freeze(data.get("locations")),
            moods=_freeze(data.get("moods")),
            effects=_freeze(data.get("effects")),
            intros=tuple(as_source(s) for s in data.get("intro", ())),
            outros=tuple(as_source(s) for s in data.get("outro", ())),
        )

    def candidates_for(self, hints: Optional[ContentHints] = None) -> LayerCandidates:
        hints = hints or ContentHints()

        location = (hints.location or DEFAULT_LOCATION).lower()
        ambience = self.locations.get(location)
        if not ambience:
            ambience = self.locations.get(DEFAULT_LOCATION, ())

        mood = (hints.mood or DEFAULT_MOOD).lower()
        music = self.moods.get(mood)
        if not music:
            music = self.moods.get(DEFAULT_MOOD, ())

        effects = self.effects.get((hints.effect_group or DEFAULT_EFFECT_GROUP).lower(), ())

        candidates = LayerCandidates(
            ambience=tuple(ambience),
            music=tuple(music),
            effects=tuple(effects),
            intro=self.intros[0] if self.intros else None,
            outro=self.outros[0] if self.outros else None,
        )
        logger.info(
            "[CATALOG] location=%s mood=%s -> ambience=%d music=%d effects=%d intro=%s outro=%s",
            location,
            mood,
            len(candidates.ambience),
            len(candidates.music),
            len(candidates.effects),
            candidates.intro,
            candidates.outro,
        )
        return candidates
