from __future__ import annotations

from beat_party.core import config as C
from beat_party.core.models import Beat


class CameraPulse:
    """Field-of-view kick on each beat, decaying back to base over a fixed time."""
    def __init__(self, base_fov: float = C.BASE_FOV, scale: float = C.FOV_PULSE_SCALE,
                 duration: float = C.FOV_PULSE_TIME):
        self.base_fov = float(base_fov)
        self.scale = float(scale)
        self.duration = float(duration)
        self._magnitude = 0.0
        self._elapsed = self.duration

    def pulse(self, intensity: float):
        self._magnitude = self.scale * max(0.0, float(intensity))
        self._elapsed = 0.0

    def on_beat(self, beat: Beat):
        self.pulse(C.DOWNBEAT_INTENSITY if beat.beat_number == 1 else C.BEAT_INTENSITY)

    def update(self, dt: float):
        self._elapsed = min(self.duration, self._elapsed + dt)

    @property
    def fov(self) -> float:
        if self.duration <= 0 or self._elapsed >= self.duration:
            return self.base_fov
        remaining = 1.0 - self._elapsed / self.duration
        return self.base_fov + self._magnitude * remaining * remaining  # ease-out
