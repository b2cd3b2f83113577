from __future__ import annotations
from typing import Dict, List, Optional

from beat_party.core import config as C


class AnimationTrack:
    """
    One loaded clip on a character rig: looping playback with a weight fade.
    """
    def __init__(self, clip_ref: str, length: float):
        self.clip_ref = clip_ref
        self.length = max(0.0, float(length))
        self.time_position = 0.0
        self.speed = 1.0
        self.weight = 0.0
        self.is_playing = False
        self._fade_target = 0.0
        self._fade_rate = 0.0   # weight units per second; 0 = snap

    def play(self, fade_time: float = C.DANCE_FADE_TIME, speed: float = 1.0):
        self.is_playing = True
        self.speed = float(speed)
        self._start_fade(1.0, fade_time)

    def stop(self, fade_time: float = C.DANCE_FADE_TIME):
        self._start_fade(0.0, fade_time)
        if fade_time <= 0:
            self.is_playing = False

    def adjust_speed(self, speed: float):
        self.speed = float(speed)

    def set_time_position(self, t: float):
        if self.length > 0:
            self.time_position = float(t) % self.length
        else:
            self.time_position = 0.0

    def _start_fade(self, target: float, fade_time: float):
        self._fade_target = target
        if fade_time <= 0:
            self.weight = target
            self._fade_rate = 0.0
        else:
            self._fade_rate = abs(target - self.weight) / float(fade_time)

    def advance(self, dt: float):
        if not self.is_playing:
            return
        if self.length > 0:
            self.time_position = (self.time_position + dt * self.speed) % self.length
        if self.weight != self._fade_target:
            step = self._fade_rate * dt
            if self._fade_rate <= 0 or abs(self._fade_target - self.weight) <= step:
                self.weight = self._fade_target
            elif self.weight < self._fade_target:
                self.weight += step
            else:
                self.weight -= step
        if self._fade_target == 0.0 and self.weight == 0.0:
            self.is_playing = False


class Animator:
    """Host animation boundary: one per character rig."""
    def load_clip(self, clip_ref: str, length: float) -> AnimationTrack:
        raise NotImplementedError

    def unload(self, track: AnimationTrack):
        raise NotImplementedError


class RigAnimator(Animator):
    """In-process rig; the demo draws from its tracks' weights and positions."""
    def __init__(self, name: str = "rig"):
        self.name = name
        self.tracks: List[AnimationTrack] = []

    def load_clip(self, clip_ref: str, length: float) -> AnimationTrack:
        track = AnimationTrack(clip_ref, length)
        self.tracks.append(track)
        return track

    def unload(self, track: AnimationTrack):
        track.stop(0)
        if track in self.tracks:
            self.tracks.remove(track)

    def playing_tracks(self) -> List[AnimationTrack]:
        return [t for t in self.tracks if t.is_playing]

    def dominant_track(self) -> Optional[AnimationTrack]:
        playing = self.playing_tracks()
        if not playing:
            return None
        return max(playing, key=lambda t: t.weight)

    def update(self, dt: float):
        for t in list(self.tracks):
            t.advance(dt)
