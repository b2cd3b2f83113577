from __future__ import annotations
from enum import Enum
from typing import Dict, FrozenSet, Optional, Any

from beat_party.core.debug import debug_error
from beat_party.core.models import Beat, SongSection


class EffectKind(Enum):
    LIGHTING = "lighting"
    CAMERA_PULSE = "camera_pulse"


class EffectEvent(Enum):
    SECTION = "section"
    BEAT = "beat"


# which music events each kind of driver reacts to
HANDLES: Dict[EffectKind, FrozenSet[EffectEvent]] = {
    EffectKind.LIGHTING: frozenset({EffectEvent.SECTION}),
    EffectKind.CAMERA_PULSE: frozenset({EffectEvent.BEAT}),
}


class EffectRegistry:
    def __init__(self):
        self._drivers: Dict[EffectKind, Any] = {}
        self._enabled: Dict[EffectKind, bool] = {}

    def register(self, kind: EffectKind, driver):
        self._drivers[kind] = driver
        self._enabled[kind] = True

    def get(self, kind: EffectKind) -> Optional[Any]:
        return self._drivers.get(kind)

    def set_enabled(self, kind: EffectKind, enabled: bool):
        if kind in self._drivers:
            self._enabled[kind] = bool(enabled)

    def _targets(self, event: EffectEvent):
        for kind, driver in self._drivers.items():
            if self._enabled.get(kind) and event in HANDLES.get(kind, ()):
                yield kind, driver

    def dispatch_section(self, old: Optional[SongSection], new: Optional[SongSection]):
        for kind, driver in self._targets(EffectEvent.SECTION):
            try:
                driver.on_section_changed(old, new)
            except Exception as e:
                debug_error(f"[FX] {kind.value} failed on section change", e)

    def dispatch_beat(self, beat: Beat):
        for kind, driver in self._targets(EffectEvent.BEAT):
            try:
                driver.on_beat(beat)
            except Exception as e:
                debug_error(f"[FX] {kind.value} failed on beat", e)

    def update(self, dt: float):
        for driver in self._drivers.values():
            driver.update(dt)
