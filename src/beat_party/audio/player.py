from __future__ import annotations
import os
from typing import Optional

import pygame
import soundfile as sf

from beat_party.core import config as C
from beat_party.core.debug import debug_info, debug_error


class PlaybackSource:
    """Host playback boundary: where the song is, and whether it's running."""
    def position(self) -> float:
        raise NotImplementedError

    def is_playing(self) -> bool:
        raise NotImplementedError


class ManualClock(PlaybackSource):
    """Position advanced by hand; used headless and in tests."""
    def __init__(self, start: float = 0.0, playing: bool = True):
        self.t = float(start)
        self.playing = playing

    def advance(self, dt: float):
        if self.playing:
            self.t += dt

    def seek(self, t: float):
        self.t = float(t)

    def position(self) -> float:
        return self.t

    def is_playing(self) -> bool:
        return self.playing


class SongPlayer(PlaybackSource):
    """Background music on pygame.mixer.music; position is start offset + mixer clock."""
    def __init__(self):
        if pygame.mixer.get_init() is None:
            pygame.mixer.init(frequency=C.ENGINE_SR, size=-16, channels=2, buffer=1024)
        self.current: Optional[str] = None
        self.duration = 0.0
        self._start_offset = 0.0

    def play(self, wav_path: str, start: float = 0.0, fade_ms: int = 0) -> bool:
        if not os.path.isfile(wav_path):
            debug_error(f"[PLAYER] missing audio file {wav_path}")
            return False
        try:
            self.duration = float(sf.info(wav_path).duration)
        except RuntimeError as e:
            debug_error(f"[PLAYER] could not read the duration of {wav_path}", e)
            self.duration = 0.0
        try:
            pygame.mixer.music.load(wav_path)
            pygame.mixer.music.play(loops=0, start=max(0.0, start), fade_ms=max(0, int(fade_ms)))
        except pygame.error as e:
            debug_error(f"[PLAYER] could not start {wav_path}", e)
            return False
        self.current = wav_path
        self._start_offset = max(0.0, start)
        debug_info(f"[PLAYER] playing {wav_path} ({self.duration:.1f}s) from {start:.2f}s")
        return True

    def stop(self, fade_ms: int = 200):
        if pygame.mixer.music.get_busy():
            pygame.mixer.music.fadeout(max(0, int(fade_ms)))
        self.current = None
        self._start_offset = 0.0

    def position(self) -> float:
        if self.current is None:
            return 0.0
        ms = pygame.mixer.music.get_pos()
        if ms < 0:
            return self._start_offset
        return self._start_offset + ms / 1000.0

    def is_playing(self) -> bool:
        return self.current is not None and pygame.mixer.music.get_busy()
