from __future__ import annotations
from enum import Enum
from typing import List, Optional

from beat_party.core.models import DanceConfig
from beat_party.core.scheduler import ScheduledTask
from beat_party.dance.rig import Animator, AnimationTrack


class ChannelState(Enum):
    NOT_READY = "not_ready"   # no character rig yet
    IDLE = "idle"
    LOADING = "loading"       # waiting on a clip length (or a rig, with a timeout)
    PLAYING = "playing"


class DanceChannel:
    """Per-player dance playback. Deferred work checks is_current() before touching it."""
    def __init__(self, player_id: str, animator: Optional[Animator] = None, *, is_local: bool = False):
        self.player_id = player_id
        self.animator = animator
        self.is_local = is_local
        self.state = ChannelState.IDLE if animator is not None else ChannelState.NOT_READY
        self.active_track: Optional[AnimationTrack] = None
        self.dance_config: Optional[DanceConfig] = None
        self.fade_in = 0.0
        self.generation = 0
        self.alive = True
        self.pending_tasks: List[ScheduledTask] = []
        self.release_tasks: List[ScheduledTask] = []
        self.fading_tracks: List[AnimationTrack] = []

    @property
    def ready(self) -> bool:
        return self.alive and self.animator is not None

    def bump(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return self.alive and self.generation == generation

    def cancel_pending(self):
        for task in self.pending_tasks:
            task.cancel()
        self.pending_tasks.clear()

    def cancel_all(self):
        self.cancel_pending()
        for task in self.release_tasks:
            task.cancel()
        self.release_tasks.clear()

    def __repr__(self):
        dance = self.dance_config.id if self.dance_config else None
        return f"DanceChannel({self.player_id!r}, {self.state.value}, dance={dance}, gen={self.generation})"
