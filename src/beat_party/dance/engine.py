# engine.py
from __future__ import annotations
import math
from typing import Dict, Optional

from beat_party.core import config as C
from beat_party.core.debug import debug_info, debug_warning, debug_error
from beat_party.core.models import Beat
from beat_party.core.scheduler import Scheduler
from beat_party.dance.catalog import get_dance
from beat_party.dance.channel import ChannelState, DanceChannel
from beat_party.dance.clips import ClipLibrary
from beat_party.dance.rig import Animator, AnimationTrack


def resolve_bpm(bpm) -> float:
    """Usable tempo; anything missing or non-positive falls back to DEFAULT_BPM."""
    try:
        v = float(bpm)
    except (TypeError, ValueError):
        return C.DEFAULT_BPM
    if not math.isfinite(v) or v <= 0:
        return C.DEFAULT_BPM
    return v


def compute_speed_multiplier(clip_length: float, beats_per_loop: int, bpm,
                             damping: float = C.SPEED_DAMPING) -> float:
    """
    Playback rate that stretches a clip of clip_length seconds over
    beats_per_loop beats at bpm:  speed = L / ((60 / bpm) * B).

    damping shaves a hair off the result to soak up frame-timing overshoot.
    """
    if clip_length is None or clip_length <= 0 or beats_per_loop <= 0:
        return 1.0
    loop_duration = (60.0 / resolve_bpm(bpm)) * beats_per_loop
    return (float(clip_length) / loop_duration) * (1.0 - damping)


def start_fraction(current_beat: Optional[int], beats_per_loop: int) -> float:
    """Where in the loop a dance joining on current_beat should begin (0..1)."""
    if not current_beat or beats_per_loop <= 0:
        return 0.0
    return ((int(current_beat) - 1) % beats_per_loop) / float(beats_per_loop)


class DanceEngine:
    """
    Per-player dance channels kept phase-locked to the song.

    Channels go NOT_READY/IDLE -> LOADING -> PLAYING -> IDLE. Everything that
    completes later (clip measurement, fade release, rig wait timeout) carries
    the channel generation it was issued under and is dropped if that moved on.
    """
    def __init__(self, scheduler: Scheduler, clips: ClipLibrary, *,
                 local_player_id: str = "local", bpm=None,
                 beats_per_bar: int = C.BEATS_PER_BAR,
                 character_timeout: float = C.CHARACTER_WAIT_TIMEOUT,
                 fade_time: float = C.DANCE_FADE_TIME):
        self.scheduler = scheduler
        self.clips = clips
        self.bpm = resolve_bpm(bpm)
        self.beats_per_bar = beats_per_bar
        self.character_timeout = character_timeout
        self.fade_time = fade_time
        self.local_player_id = local_player_id
        self.channels: Dict[str, DanceChannel] = {}
        self.current_beat: Optional[int] = None   # authoritative, from the local clock
        self.add_player(local_player_id, is_local=True)

    # --------- players / characters ---------
    @property
    def local_channel(self) -> Optional[DanceChannel]:
        return self.channels.get(self.local_player_id)

    def add_player(self, player_id: str, animator: Optional[Animator] = None, *,
                   is_local: bool = False) -> DanceChannel:
        channel = self.channels.get(player_id)
        if channel is None:
            channel = DanceChannel(player_id, is_local=is_local or player_id == self.local_player_id)
            self.channels[player_id] = channel
            debug_info(f"[DANCE] channel added for {player_id}")
        if animator is not None:
            self.attach_character(player_id, animator)
        return channel

    def remove_player(self, player_id: str):
        channel = self.channels.pop(player_id, None)
        if channel is None:
            return
        channel.cancel_all()
        channel.bump()
        channel.alive = False
        if channel.animator is not None:
            for track in [channel.active_track] + channel.fading_tracks:
                if track is not None:
                    channel.animator.unload(track)
        channel.active_track = None
        channel.fading_tracks.clear()
        channel.dance_config = None
        channel.animator = None
        channel.state = ChannelState.NOT_READY
        debug_info(f"[DANCE] channel removed for {player_id}")

    def attach_character(self, player_id: str, animator: Animator) -> DanceChannel:
        """A character (and its rig) appeared or was replaced; resume any active dance on it."""
        channel = self.add_player(player_id)
        if channel.animator is animator:
            return channel
        channel.cancel_all()
        gen = channel.bump()
        # tracks on the previous rig went away with it
        channel.active_track = None
        channel.fading_tracks.clear()
        channel.animator = animator
        if channel.dance_config is not None:
            channel.fade_in = 0.0
            self._begin_loading(channel, gen)
        else:
            channel.state = ChannelState.IDLE
        return channel

    def detach_character(self, player_id: str):
        """Character removed but the player is still here; keep the dance choice for the respawn."""
        channel = self.channels.get(player_id)
        if channel is None:
            return
        channel.cancel_all()
        channel.bump()
        channel.animator = None
        channel.active_track = None
        channel.fading_tracks.clear()
        channel.state = ChannelState.NOT_READY

    def dance_of(self, player_id: str) -> Optional[str]:
        channel = self.channels.get(player_id)
        if channel is None or channel.dance_config is None:
            return None
        return channel.dance_config.id

    # --------- dance control ---------
    def start_dance(self, player_id: str, dance_id, *, on_beat_boundary: bool = False) -> bool:
        config = get_dance(dance_id)
        if config is None:
            debug_warning(f"[DANCE] unknown dance {dance_id!r} for {player_id}; ignoring")
            return False
        if config.beats_per_loop <= 0:
            debug_warning(f"[DANCE] dance {config.id} has beats_per_loop={config.beats_per_loop}; ignoring")
            return False

        channel = self.add_player(player_id)
        fade = 0.0 if on_beat_boundary else self.fade_time
        channel.cancel_pending()
        self._release_active(channel, fade)
        gen = channel.bump()
        channel.dance_config = config
        channel.fade_in = fade

        if not channel.ready:
            channel.state = ChannelState.NOT_READY
            task = self.scheduler.delay(self.character_timeout,
                                        lambda: self._character_timeout(channel, gen),
                                        name=f"wait-rig-{player_id}")
            channel.pending_tasks.append(task)
            debug_info(f"[DANCE] {player_id} has no rig yet; dance {config.id} waiting")
            return True

        self._begin_loading(channel, gen)
        return True

    def stop_dance(self, player_id: str, fade_time: Optional[float] = None) -> bool:
        channel = self.channels.get(player_id)
        if channel is None or (channel.dance_config is None and channel.active_track is None):
            return False
        channel.cancel_pending()
        channel.bump()
        self._release_active(channel, self.fade_time if fade_time is None else fade_time)
        channel.dance_config = None
        channel.state = ChannelState.IDLE if channel.ready else ChannelState.NOT_READY
        debug_info(f"[DANCE] {player_id} stopped dancing")
        return True

    # --------- music events ---------
    def on_tempo_changed(self, bpm):
        new_bpm = resolve_bpm(bpm)
        if new_bpm == C.DEFAULT_BPM and bpm != C.DEFAULT_BPM:
            debug_warning(f"[DANCE] unusable tempo {bpm!r}; using {new_bpm:.1f} BPM")
        self.bpm = new_bpm
        for channel in self.channels.values():
            if channel.state is ChannelState.PLAYING and channel.active_track is not None:
                channel.active_track.adjust_speed(self._speed_for(channel))

    def on_beat(self, beat: Beat):
        self.current_beat = beat.beat_number
        if beat.beat_number == 1:
            self.on_beat_one()

    def on_beat_one(self):
        """Snap every looping clip that is due at this downbeat back to 0."""
        for channel in self.channels.values():
            track = channel.active_track
            if channel.state is not ChannelState.PLAYING or track is None:
                continue
            if not self._loop_boundary_due(channel, track):
                continue
            track.play(fade_time=0.0, speed=self._speed_for(channel))
            track.set_time_position(0.0)

    # --------- internals ---------
    def _speed_for(self, channel: DanceChannel) -> float:
        config = channel.dance_config
        track = channel.active_track
        if config is None or track is None:
            return 1.0
        length = track.length or self.clips.cache.get(config.clip_reference) or 0.0
        return compute_speed_multiplier(length, config.beats_per_loop, self.bpm)

    def _loop_boundary_due(self, channel: DanceChannel, track: AnimationTrack) -> bool:
        # Loops longer than a bar only wrap on every other (or later) downbeat:
        # restart when the clip is within half a bar of its loop point.
        beats = channel.dance_config.beats_per_loop
        if beats <= self.beats_per_bar or track.length <= 0:
            return True
        phase = track.time_position / track.length
        beats_from_wrap = min(phase, 1.0 - phase) * beats
        return beats_from_wrap < self.beats_per_bar / 2.0

    def _character_timeout(self, channel: DanceChannel, gen: int):
        if not channel.is_current(gen) or channel.ready:
            return
        debug_warning(f"[DANCE] {channel.player_id} never got a rig; dropping dance "
                      f"{channel.dance_config.id if channel.dance_config else None}")
        channel.dance_config = None

    def _begin_loading(self, channel: DanceChannel, gen: int):
        config = channel.dance_config
        channel.state = ChannelState.LOADING
        length = self.clips.cache.get(config.clip_reference)
        if length is not None:
            self._start_playing(channel, gen, length)
            return
        self.clips.measure(config.clip_reference,
                           lambda _ref, measured: self._on_clip_measured(channel, gen, measured))

    def _on_clip_measured(self, channel: DanceChannel, gen: int, length: Optional[float]):
        if not channel.is_current(gen) or channel.state is not ChannelState.LOADING:
            debug_info(f"[DANCE] stale clip length for {channel.player_id}; ignored")
            return
        if length is None or length <= 0:
            debug_warning(f"[DANCE] clip {channel.dance_config.clip_reference} has no usable length; "
                          f"not starting dance for {channel.player_id}")
            channel.dance_config = None
            channel.state = ChannelState.IDLE
            return
        self._start_playing(channel, gen, length)

    def _start_playing(self, channel: DanceChannel, gen: int, length: float):
        config = channel.dance_config
        try:
            track = channel.animator.load_clip(config.clip_reference, length)
        except Exception as e:
            debug_error(f"[DANCE] could not load {config.clip_reference} for {channel.player_id}", e)
            channel.dance_config = None
            channel.state = ChannelState.IDLE
            return
        speed = compute_speed_multiplier(length, config.beats_per_loop, self.bpm)
        track.play(fade_time=channel.fade_in, speed=speed)
        track.set_time_position(start_fraction(self.current_beat, config.beats_per_loop) * length)
        channel.active_track = track
        channel.state = ChannelState.PLAYING
        debug_info(f"[DANCE] {channel.player_id} dancing {config.id} (speed {speed:.3f}, gen {gen})")

    def _release_active(self, channel: DanceChannel, fade: float):
        track = channel.active_track
        if track is None:
            return
        channel.active_track = None
        track.stop(fade)
        animator = channel.animator
        if animator is None:
            return
        if fade <= 0:
            animator.unload(track)
            return

        channel.fading_tracks.append(track)
        task = None

        def _release():
            if task in channel.release_tasks:
                channel.release_tasks.remove(task)
            if not channel.alive or channel.animator is not animator:
                return
            if track in channel.fading_tracks:
                channel.fading_tracks.remove(track)
            animator.unload(track)

        task = self.scheduler.delay(fade, _release, name=f"release-{channel.player_id}")
        channel.release_tasks.append(task)
