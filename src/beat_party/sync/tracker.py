from __future__ import annotations
import math
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Any

from beat_party.core import config as C
from beat_party.core.debug import debug_info, debug_warning, debug_error
from beat_party.core.models import Beat, BeatGrid, SongSection, sort_sections

SectionListener = Callable[[Optional[SongSection], Optional[SongSection]], None]
BeatListener = Callable[[Beat], None]


@dataclass
class TrackerState:
    beat_grid: Optional[BeatGrid] = None
    sections: Optional[List[SongSection]] = None
    current_beat_index: Optional[int] = None
    current_section: Optional[SongSection] = None
    last_poll_time: Optional[float] = None
    # section lookup is throttled separately from the per-frame beat lookup
    last_section_poll: Optional[float] = None
    section_starts: List[float] = field(default_factory=list)


@dataclass
class PollResult:
    time: float
    section: Optional[SongSection] = None
    section_changed: bool = False
    previous_section: Optional[SongSection] = None
    beat: Optional[Beat] = None
    beat_changed: bool = False


def _section_name(s: Optional[SongSection]) -> Optional[str]:
    return s.name if s is not None else None


class BeatSectionTracker:
    """
    Turns a sampled playback position into beat / section transitions.

    poll() never raises; listeners that blow up are logged and skipped so the
    audio loop keeps running.
    """
    def __init__(self, section_poll_interval: float = C.SECTION_POLL_INTERVAL,
                 beat_tolerance: float = C.BEAT_CHANGE_TOLERANCE):
        self.section_poll_interval = float(section_poll_interval)
        self.beat_tolerance = float(beat_tolerance)
        self.state = TrackerState()
        self._section_listeners: List[SectionListener] = []
        self._beat_listeners: List[BeatListener] = []

    # --- listeners ---
    def add_section_listener(self, fn: SectionListener):
        self._section_listeners.append(fn)

    def add_beat_listener(self, fn: BeatListener):
        self._beat_listeners.append(fn)

    # --- song lifecycle ---
    def load_song(self, beat_grid: Optional[BeatGrid], sections: Optional[Sequence[Any]]):
        """Drop everything from the previous song and start tracking a new one."""
        state = TrackerState()
        if beat_grid is None:
            debug_warning("[TRACKER] no beat grid for this song; beat events disabled")
        elif beat_grid.is_empty:
            debug_warning("[TRACKER] beat grid is empty; beat events disabled")
        state.beat_grid = beat_grid

        try:
            state.sections = sort_sections(sections)
        except TypeError as e:
            debug_error("[TRACKER] unusable section list; section events disabled", e)
            state.sections = None
        if state.sections is None:
            debug_info("[TRACKER] song has no sections")
        else:
            state.section_starts = [s.start_time for s in state.sections]

        self.state = state
        debug_info(f"[TRACKER] loaded song: {len(beat_grid) if beat_grid else 0} beats, "
                   f"{len(state.sections) if state.sections else 0} sections")

    def reset(self):
        self.state = TrackerState()

    @property
    def current_beat(self) -> Optional[Beat]:
        st = self.state
        if st.beat_grid is None or st.current_beat_index is None:
            return None
        return st.beat_grid[st.current_beat_index]

    @property
    def current_section(self) -> Optional[SongSection]:
        return self.state.current_section

    # --- lookups ---
    def section_at(self, t: float) -> Optional[SongSection]:
        sections = self.state.sections
        if not sections:
            return None
        if t < sections[0].start_time:
            return sections[0]  # pre-roll
        i = bisect_right(self.state.section_starts, t) - 1
        if i >= 0 and sections[i].contains(t):
            return sections[i]
        return None

    def beat_index_at(self, t: float) -> Optional[int]:
        grid = self.state.beat_grid
        if grid is None or grid.is_empty:
            return None
        i = bisect_right(grid.times, t) - 1
        return i if i >= 0 else None

    # --- tick ---
    def poll(self, current_time: float, wall_time: Optional[float] = None) -> PollResult:
        """
        Resolve section and beat for one sampled position.

        wall_time, when given, throttles the section lookup to once per
        section_poll_interval; beats are resolved on every call.
        """
        st = self.state
        try:
            t = float(current_time)
        except (TypeError, ValueError):
            t = math.nan
        if not math.isfinite(t):
            debug_error(f"[TRACKER] unusable playback position {current_time!r}")
            return PollResult(time=t, section=st.current_section)
        result = PollResult(time=t)
        try:
            if self._section_due(wall_time):
                st.last_section_poll = wall_time
                self._resolve_section(result)
            else:
                result.section = st.current_section
            self._resolve_beat(result)
        except Exception as e:
            debug_error(f"[TRACKER] poll failed at t={t:.3f}", e)
        st.last_poll_time = wall_time if wall_time is not None else t

        if result.section_changed:
            self._emit_section(result.previous_section, result.section)
        if result.beat_changed and result.beat is not None:
            self._emit_beat(result.beat)
        return result

    def _section_due(self, wall_time: Optional[float]) -> bool:
        last = self.state.last_section_poll
        if wall_time is None or last is None:
            return True
        return (wall_time - last) >= self.section_poll_interval

    def _resolve_section(self, result: PollResult):
        st = self.state
        sec = self.section_at(result.time)
        result.section = sec
        if _section_name(sec) != _section_name(st.current_section):
            result.section_changed = True
            result.previous_section = st.current_section
        st.current_section = sec

    def _resolve_beat(self, result: PollResult):
        st = self.state
        idx = self.beat_index_at(result.time)
        if idx is None:
            # before the first beat (or no grid): nothing to report
            st.current_beat_index = None
            return
        beat = st.beat_grid[idx]
        result.beat = beat
        prev = self.current_beat
        if (prev is None
                or prev.beat_number != beat.beat_number
                or abs(prev.timestamp - beat.timestamp) > self.beat_tolerance):
            result.beat_changed = True
        st.current_beat_index = idx

    def _emit_section(self, old: Optional[SongSection], new: Optional[SongSection]):
        debug_info(f"[TRACKER] section {_section_name(old)} -> {_section_name(new)}")
        for fn in list(self._section_listeners):
            try:
                fn(old, new)
            except Exception as e:
                debug_error("[TRACKER] section listener failed", e)

    def _emit_beat(self, beat: Beat):
        for fn in list(self._beat_listeners):
            try:
                fn(beat)
            except Exception as e:
                debug_error("[TRACKER] beat listener failed", e)
