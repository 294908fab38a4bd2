"""Tunable constants for extraction, tracking, scheduling and highlighting.

Defaults reproduce the behaviour the outline addresses were minted with;
changing the extraction limits changes which elements get which ordinals,
so addresses from a differently-configured pass will not resolve the same.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import orjson


@dataclass(frozen=True, slots=True)
class OutlineSettings:
    """Session-wide configuration. Load from JSON with ``from_json``."""

    # Extraction (per-turn strategy cascade)
    heading_label_limit: int = 60
    heading_placeholder: str = "Untitled Section"
    emphasis_min_chars: int = 3          # exclusive
    emphasis_max_chars: int = 50         # exclusive
    emphasis_label_limit: int = 50
    emphasis_level: int = 6
    paragraph_turn_min_chars: int = 500  # exclusive, whole-turn text length
    paragraph_min_chars: int = 20        # exclusive, per paragraph
    paragraph_label_limit: int = 40
    paragraph_level: int = 7
    ellipsis: str = "..."

    # Turn segmentation
    user_label_limit: int = 50
    fallback_turn_label: str = "AI RESPONSE"

    # Active-node tracking
    active_threshold_fraction: float = 0.15

    # Scheduling (seconds)
    extraction_debounce: float = 1.0
    initial_retry_delay: float = 2.0
    cache_write_debounce: float = 0.8
    fragment_retry_interval: float = 0.2
    fragment_max_attempts: int = 10

    # Highlight animation (seconds)
    pulse_interval: float = 0.2
    pulse_count: int = 6
    fade_out_at: float = 1.8
    fade_duration: float = 0.3

    def __post_init__(self) -> None:
        if not 0.0 <= self.active_threshold_fraction <= 1.0:
            raise ValueError(
                "active_threshold_fraction must be within [0, 1], "
                f"got {self.active_threshold_fraction}"
            )
        for name in (
            "extraction_debounce", "initial_retry_delay", "cache_write_debounce",
            "fragment_retry_interval", "pulse_interval", "fade_out_at",
            "fade_duration",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.fragment_max_attempts < 1:
            raise ValueError(
                f"fragment_max_attempts must be >= 1, got {self.fragment_max_attempts}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutlineSettings:
        """Build from a mapping; unknown keys are rejected."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            default = getattr(cls(), key)
            # Cast through the default's type so "0.5" or 1 load as floats
            kwargs[key] = type(default)(value)
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: Path) -> OutlineSettings:
        """Load from a settings JSON file (a flat object)."""
        data = orjson.loads(path.read_bytes())
        if not isinstance(data, dict):
            raise ValueError(f"Invalid settings payload in {path}")
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
