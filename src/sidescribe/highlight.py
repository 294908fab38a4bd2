"""Highlight animation for a resolved target element.

Per element state machine::

    IDLE -> PULSING -> FADING_OUT -> IDLE

The animation works on the element's inline ``style`` attribute.  The
original value is captured when an animation starts and written back when
it ends.  Starting a new animation on an element that is still animating
first cancels every pending step and restores the original style, so the
new animation never captures a half-highlighted style as "original".
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from bs4.element import Tag

from sidescribe.scheduler import TimerBackend, TimerHandle
from sidescribe.settings import OutlineSettings

PULSE_ON_STYLE = "outline: 2px solid rgba(59, 130, 246, 0.9); box-shadow: 0 0 0 6px rgba(59, 130, 246, 0.15)"
PULSE_OFF_STYLE = "outline: 2px solid rgba(59, 130, 246, 0.4); box-shadow: 0 0 0 2px rgba(59, 130, 246, 0.05)"
FADE_STYLE = "outline: none; box-shadow: none"
TRANSITION_STYLE = (
    "transition: outline 0.2s ease, box-shadow 0.2s ease, outline-offset 0.2s ease; "
    "outline-offset: 4px"
)


class HighlightState(StrEnum):
    IDLE = "idle"
    PULSING = "pulsing"
    FADING_OUT = "fading_out"


@dataclass(slots=True)
class _Animation:
    element: Tag
    original_style: str | None
    state: HighlightState = HighlightState.PULSING
    timers: list[TimerHandle] = field(default_factory=list[TimerHandle])


def _compose(original: str | None, extra: str) -> str:
    base = (original or "").strip().rstrip(";")
    return f"{base}; {extra}" if base else extra


class Highlighter:
    """Runs highlight animations; one active animation per element."""

    def __init__(
        self,
        timers: TimerBackend,
        settings: OutlineSettings | None = None,
    ) -> None:
        self._timers = timers
        self._settings = settings or OutlineSettings()
        self._active: dict[int, _Animation] = {}

    def state(self, element: Tag) -> HighlightState:
        anim = self._active.get(id(element))
        return anim.state if anim is not None else HighlightState.IDLE

    def active_count(self) -> int:
        return len(self._active)

    def highlight(self, element: Tag) -> None:
        """Start (or restart) the pulse-then-fade animation on *element*."""
        self.cancel(element)

        original = element.get("style")
        anim = _Animation(
            element=element,
            original_style=str(original) if original is not None else None,
        )
        self._active[id(element)] = anim

        s = self._settings
        self._apply(anim, PULSE_ON_STYLE)
        for step in range(1, s.pulse_count + 1):
            style = PULSE_OFF_STYLE if step % 2 else PULSE_ON_STYLE
            anim.timers.append(self._timers.call_later(
                step * s.pulse_interval,
                lambda a=anim, st=style: self._apply(a, st),
            ))
        anim.timers.append(self._timers.call_later(
            s.fade_out_at, lambda a=anim: self._fade(a),
        ))

    def cancel(self, element: Tag) -> bool:
        """Stop any animation on *element* and restore its original style."""
        anim = self._active.get(id(element))
        if anim is None:
            return False
        for timer in anim.timers:
            timer.cancel()
        self._restore(anim)
        return True

    def cancel_all(self) -> None:
        for anim in list(self._active.values()):
            self.cancel(anim.element)

    def _apply(self, anim: _Animation, style: str) -> None:
        anim.element["style"] = _compose(
            anim.original_style, f"{TRANSITION_STYLE}; {style}",
        )

    def _fade(self, anim: _Animation) -> None:
        anim.state = HighlightState.FADING_OUT
        self._apply(anim, FADE_STYLE)
        anim.timers.append(self._timers.call_later(
            self._settings.fade_duration, lambda: self._restore(anim),
        ))

    def _restore(self, anim: _Animation) -> None:
        if anim.original_style is None:
            if "style" in anim.element.attrs:
                del anim.element["style"]
        else:
            anim.element["style"] = anim.original_style
        anim.state = HighlightState.IDLE
        if self._active.get(id(anim.element)) is anim:
            del self._active[id(anim.element)]
