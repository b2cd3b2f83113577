from __future__ import annotations
import threading
from typing import Optional

from beat_party.core import config as C
from beat_party.core.debug import debug_info, debug_warning, debug_error
from beat_party.core.models import Beat, SongData
from beat_party.core.scheduler import Scheduler
from beat_party.api.client import MusicApiClient
from beat_party.audio.player import PlaybackSource, ManualClock
from beat_party.commands import parse_chat_command, STOP
from beat_party.dance.clips import AnimationLengthCache, ClipLibrary
from beat_party.dance.engine import DanceEngine
from beat_party.dance.rig import Animator
from beat_party.effects.camera import CameraPulse
from beat_party.effects.lighting import LightingDriver
from beat_party.effects.registry import EffectKind, EffectRegistry
from beat_party.net.sync import DanceBroadcaster, DanceRelay, DanceSyncMessage
from beat_party.sync.tracker import BeatSectionTracker


class ClientSession:
    """
    Everything one client needs for a song: fetch timing data, follow the
    playback clock every frame, and fan beats/sections out to dances and effects.

    The length cache lives exactly as long as the session.
    """
    def __init__(self, *, player_id: str = "local",
                 api: Optional[MusicApiClient] = None,
                 playback: Optional[PlaybackSource] = None,
                 relay: Optional[DanceRelay] = None,
                 scheduler: Optional[Scheduler] = None,
                 threaded: bool = True):
        self.player_id = player_id
        self.threaded = threaded
        self.scheduler = scheduler or Scheduler()
        self.length_cache = AnimationLengthCache()
        self.clips = ClipLibrary(self.length_cache, self.scheduler, threaded=threaded)
        self.tracker = BeatSectionTracker()
        self.engine = DanceEngine(self.scheduler, self.clips, local_player_id=player_id)

        self.lighting = LightingDriver()
        self.camera = CameraPulse()
        self.effects = EffectRegistry()
        self.effects.register(EffectKind.LIGHTING, self.lighting)
        self.effects.register(EffectKind.CAMERA_PULSE, self.camera)

        self.api = api
        self.playback = playback or ManualClock(playing=False)
        self.sync = DanceBroadcaster(player_id, relay)
        self.sync.add_receiver(self._on_remote_dance)

        self.song: Optional[SongData] = None
        self._song_token = 0
        self._tempo_dirty = False
        self._pending_bpm = None

        self.tracker.add_section_listener(self.effects.dispatch_section)
        self.tracker.add_beat_listener(self._on_beat)

    # ---------- songs ----------
    def request_song(self, song_id) -> bool:
        """Fetch timing data off the frame tick; it is applied on a later update()."""
        if self.api is None:
            debug_warning(f"[SESSION] no music API configured; can't fetch song {song_id}")
            return False
        self._song_token += 1
        token = self._song_token

        def _fetch():
            try:
                song, err = self.api.get_song_data(song_id)
            except Exception as e:
                debug_error(f"[SESSION] fetching song {song_id} failed", e)
                song, err = None, str(e)
            self.scheduler.post(lambda: self._on_song_fetched(token, song_id, song, err))

        if self.threaded:
            threading.Thread(target=_fetch, name=f"song-{song_id}", daemon=True).start()
        else:
            self.scheduler.post(_fetch)
        return True

    def _on_song_fetched(self, token: int, song_id, song: Optional[SongData], err: Optional[str]):
        if token != self._song_token:
            debug_info(f"[SESSION] song {song_id} arrived after a newer request; ignored")
            return
        if song is None:
            debug_warning(f"[SESSION] no timing data for song {song_id}: {err}")
            self.song = None
            self.tracker.load_song(None, None)
            self.set_tempo(None)
            return
        self.load_song_data(song)

    def load_song_data(self, song: SongData):
        self.song = song
        self.tracker.load_song(song.beat_grid, song.song_sections)
        self.engine.current_beat = None
        if song.beat_grid is not None and not song.beat_grid.is_empty:
            top = max(b.beat_number for b in song.beat_grid.beats)
            self.engine.beats_per_bar = top if top > 0 else C.BEATS_PER_BAR
        else:
            self.engine.beats_per_bar = C.BEATS_PER_BAR
        bpm = song.tempo()
        if bpm is None:
            debug_warning(f"[SESSION] song {song.asset_id} has no tempo; using {C.DEFAULT_BPM:.0f} BPM")
        self.set_tempo(bpm)

    def set_tempo(self, bpm):
        """Queue a tempo change; it's applied at the start of the next tick, before beats."""
        self._pending_bpm = bpm
        self._tempo_dirty = True

    # ---------- frame tick ----------
    def update(self, dt: float = 0.0):
        self.scheduler.update()

        if self._tempo_dirty:
            self._tempo_dirty = False
            self.engine.on_tempo_changed(self._pending_bpm)

        try:
            playing = self.playback.is_playing()
            position = self.playback.position() if playing else None
        except Exception as e:
            debug_error("[SESSION] playback clock unavailable", e)
            position = None
        if position is not None:
            self.tracker.poll(position, wall_time=self.scheduler.now())

        self.effects.update(dt)

    def _on_beat(self, beat: Beat):
        self.engine.on_beat(beat)
        self.effects.dispatch_beat(beat)

    # ---------- players ----------
    def player_joined(self, player_id: str, animator: Optional[Animator] = None):
        self.engine.add_player(player_id, animator)

    def player_left(self, player_id: str):
        self.engine.remove_player(player_id)

    def character_added(self, player_id: str, animator: Animator):
        self.engine.attach_character(player_id, animator)

    def character_removed(self, player_id: str):
        self.engine.detach_character(player_id)

    # ---------- dancing ----------
    def start_local_dance(self, dance_id) -> bool:
        if not self.engine.start_dance(self.player_id, dance_id):
            return False
        self.sync.broadcast(self.engine.dance_of(self.player_id))
        return True

    def stop_local_dance(self) -> bool:
        if not self.engine.stop_dance(self.player_id):
            return False
        self.sync.broadcast(None)
        return True

    def handle_chat(self, text: str) -> bool:
        cmd = parse_chat_command(text)
        if cmd is None:
            return False
        if cmd == STOP:
            return self.stop_local_dance()
        return self.start_local_dance(cmd)

    def _on_remote_dance(self, msg: DanceSyncMessage):
        if msg.player == self.player_id:
            return
        if msg.dance_id is None:
            self.engine.stop_dance(msg.player)
        else:
            self.engine.start_dance(msg.player, msg.dance_id)

    # ---------- teardown ----------
    def close(self):
        for player_id in list(self.engine.channels.keys()):
            self.engine.remove_player(player_id)
        self.scheduler.clear()
        self.tracker.reset()
        self.length_cache.clear()
        self.sync.close()
        if self.api is not None:
            self.api.close()
        debug_info("[SESSION] closed")
