"""Mixer settings.

Plain dataclasses with sensible podcast defaults. Values can be overridden
from ``TRANSMIX_*`` environment variables (``MixSettings.from_env``) or
from a nested mapping such as a JSON request body
(``MixSettings.from_mapping``).
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional


@dataclass
class ProcessingSettings:
    sample_rate: int = 44100
    frame_size: int = 2048
    container: str = "mp3"
    codec: str = "libmp3lame"
    bitrate: str = "192k"
    channels: int = 2
    target_lufs: float = -16.0
    true_peak_db: float = -1.5
    loudness_range: float = 7.0


@dataclass
class MixingSettings:
    """Linear gains per layer role plus fade defaults for looping beds."""

    voice_volume: float = 1.0
    intro_volume: float = 1.0
    outro_volume: float = 1.0
    ambience_volume: float = 0.15
    music_volume: float = 0.1
    transmission_effect_volume: float = 0.2
    ambience_fade_in: float = 1.0
    ambience_fade_out: float = 1.0
    music_fade_in: float = 2.0
    music_fade_out: float = 2.0


@dataclass
class DuckingSettings:
    enabled: bool = True
    threshold_db: float = -24.0
    ratio: float = 4.0
    attack_ms: float = 5.0
    release_ms: float = 250.0


@dataclass
class VoiceEqSettings:
    """Static presence EQ applied to the voice bus."""

    enabled: bool = True
    frequency_hz: float = 3000.0
    width_hz: float = 200.0
    gain_db: float = 2.0


@dataclass
class MasteringSettings:
    normalize_loudness: bool = True
    limiter_enabled: bool = True
    limiter_threshold_db: float = -1.0
    limiter_attack_ms: float = 5.0
    limiter_release_ms: float = 50.0


@dataclass
class MixSettings:
    processing: ProcessingSettings = field(default_factory=ProcessingSettings)
    mixing: MixingSettings = field(default_factory=MixingSettings)
    ducking: DuckingSettings = field(default_factory=DuckingSettings)
    voice_eq: VoiceEqSettings = field(default_factory=VoiceEqSettings)
    mastering: MasteringSettings = field(default_factory=MasteringSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "MixSettings":
        """Build settings from a nested mapping, keeping defaults for gaps.

        Unknown sections or keys raise ``ValueError`` so typos in request
        bodies do not silently fall back to defaults.
        """

        settings = cls()
        if not data:
            return settings

        sections = {f.name for f in fields(cls)}
        for section_name, values in data.items():
            if section_name not in sections:
                raise ValueError(f"Unknown settings section: {section_name}")
            section = getattr(settings, section_name)
            setattr(settings, section_name, _update_section(section, values or {}))
        return settings

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MixSettings":
        """Apply ``TRANSMIX_<SECTION>_<KEY>`` overrides on top of defaults.

        e.g. ``TRANSMIX_DUCKING_ENABLED=false`` or
        ``TRANSMIX_PROCESSING_TARGET_LUFS=-14``.
        """

        env = os.environ if environ is None else environ
        settings = cls()
        for section_field in fields(cls):
            section = getattr(settings, section_field.name)
            overrides: Dict[str, Any] = {}
            for item in fields(section):
                key = f"TRANSMIX_{section_field.name}_{item.name}".upper()
                raw = env.get(key)
                if raw is not None:
                    overrides[item.name] = raw
            if overrides:
                setattr(settings, section_field.name, _update_section(section, overrides))
        return settings


def _update_section(section: Any, values: Mapping[str, Any]) -> Any:
    known = {f.name: f for f in fields(section)}
    changes: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown setting {type(section).__name__}.{key}")
        current = getattr(section, key)
        changes[key] = _coerce(value, current, key)
    return replace(section, **changes)


def _coerce(value: Any, current: Any, key: str) -> Any:
    """Coerce ``value`` to the type of the current default."""

    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in {"1", "true", "yes", "on"}:
            return True
        if text in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"Invalid boolean for {key}: {value!r}")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return str(value)
