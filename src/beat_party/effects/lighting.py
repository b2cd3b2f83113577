from __future__ import annotations
import zlib
from typing import Dict, Optional, Sequence, Tuple

import pygame

from beat_party.core import config as C
from beat_party.core.models import SongSection

RGB = Tuple[int, int, int]


def normalize_section_name(name: str) -> str:
    return str(name or "").strip().lower()


def fallback_index(key: str, size: int) -> int:
    return zlib.crc32(key.encode("utf-8")) % size


class SectionPalette:
    """
    Section name -> ambient color. Names we don't know pick a fallback color
    from a CRC of the normalized name, so every client agrees on it.
    """
    def __init__(self, colors: Optional[Dict[str, RGB]] = None,
                 fallback: Optional[Sequence[RGB]] = None):
        src = C.SECTION_COLORS if colors is None else colors
        self.colors = {normalize_section_name(k): v for k, v in src.items()}
        self.fallback = list(C.FALLBACK_PALETTE if fallback is None else fallback)

    def color_for(self, name: str) -> pygame.Color:
        key = normalize_section_name(name)
        if key in self.colors:
            return pygame.Color(*self.colors[key])
        if not self.fallback:
            return pygame.Color(*C.AMBIENT_DEFAULT)
        return pygame.Color(*self.fallback[fallback_index(key, len(self.fallback))])


class LightingDriver:
    """Cross-fades the ambient color whenever the song section changes."""
    def __init__(self, palette: Optional[SectionPalette] = None,
                 transition_time: float = C.LIGHT_TRANSITION_TIME,
                 initial: RGB = C.AMBIENT_DEFAULT):
        self.palette = palette or SectionPalette()
        self.transition_time = float(transition_time)
        self._from = pygame.Color(*initial)
        self._to = pygame.Color(*initial)
        self._elapsed = self.transition_time

    def on_section_changed(self, old: Optional[SongSection], new: Optional[SongSection]):
        target = self.palette.color_for(new.name) if new is not None else pygame.Color(*C.AMBIENT_DEFAULT)
        self._from = self.color
        self._to = target
        self._elapsed = 0.0

    def update(self, dt: float):
        self._elapsed = min(self.transition_time, self._elapsed + dt)

    @property
    def progress(self) -> float:
        if self.transition_time <= 0:
            return 1.0
        return min(1.0, self._elapsed / self.transition_time)

    @property
    def target(self) -> pygame.Color:
        return pygame.Color(self._to.r, self._to.g, self._to.b)

    @property
    def color(self) -> pygame.Color:
        return self._from.lerp(self._to, self.progress)
