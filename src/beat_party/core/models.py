from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional, Tuple, List, Dict, Any, Sequence

import numpy as np

from beat_party.core import config as C
from beat_party.core.debug import debug_warning
from beat_party.core.errors import SongDataError


@dataclass(frozen=True)
class Beat:
    beat_number: int        # 1-based, cycles 1..N per bar
    timestamp: float        # seconds into the song


@dataclass(frozen=True)
class BeatGrid:
    beats: Tuple[Beat, ...] = ()

    def __post_init__(self):
        # sorted by time no matter what the server sent
        ordered = tuple(sorted(self.beats, key=lambda b: b.timestamp))
        object.__setattr__(self, "beats", ordered)
        object.__setattr__(self, "_times", tuple(b.timestamp for b in ordered))

    @property
    def times(self) -> Tuple[float, ...]:
        return self._times

    def __len__(self) -> int:
        return len(self.beats)

    def __getitem__(self, i: int) -> Beat:
        return self.beats[i]

    @property
    def is_empty(self) -> bool:
        return not self.beats

    @staticmethod
    def from_arrays(beat_nums: Sequence[Any], beat_times: Sequence[Any]) -> "BeatGrid":
        """Build from the API's parallel arrays, dropping anything unusable."""
        nums = list(beat_nums or [])
        times = list(beat_times or [])
        if len(nums) != len(times):
            debug_warning(f"[GRID] beat_nums/beat_times length mismatch ({len(nums)} vs {len(times)}); truncating")
        beats: List[Beat] = []
        for n, t in zip(nums, times):
            try:
                num, ts = int(n), float(t)
            except (TypeError, ValueError, OverflowError):
                debug_warning(f"[GRID] dropping malformed beat ({n!r}, {t!r})")
                continue
            if not math.isfinite(ts):
                continue
            beats.append(Beat(num, ts))
        return BeatGrid(tuple(beats))

    @staticmethod
    def from_tempo(bpm: float, first_beat_offset: float, num_bars: int,
                   beats_per_bar: int = C.BEATS_PER_BAR,
                   first_downbeat: Optional[float] = None) -> "BeatGrid":
        """Regular grid for songs that only ship a tempo. Beat 1 lands on first_downbeat if known."""
        if bpm is None or bpm <= 0 or beats_per_bar <= 0:
            return BeatGrid()
        if not 0 < num_bars <= C.MAX_SONG_BARS:
            debug_warning(f"[GRID] refusing to synthesize {num_bars} bars")
            return BeatGrid()
        beat_len = 60.0 / float(bpm)
        offset = float(first_beat_offset or 0.0)
        downbeat_idx = 0
        if first_downbeat is not None:
            downbeat_idx = int(round((float(first_downbeat) - offset) / beat_len))
        total = int(num_bars) * int(beats_per_bar)
        beats = tuple(
            Beat(((i - downbeat_idx) % beats_per_bar) + 1, offset + i * beat_len)
            for i in range(total)
        )
        return BeatGrid(beats)

    def estimate_bpm(self) -> Optional[float]:
        if len(self.beats) < 2:
            return None
        intervals = np.diff(np.asarray(self._times, dtype=np.float64))
        intervals = intervals[intervals > 1e-6]
        if intervals.size == 0:
            return None
        return float(60.0 / np.median(intervals))


@dataclass(frozen=True)
class SongSection:
    name: str
    start_time: float
    end_time: float

    def contains(self, t: float) -> bool:
        return self.start_time <= t < self.end_time


def sort_sections(raw: Optional[Sequence[Any]]) -> Optional[List[SongSection]]:
    """Parse and order a section list by start_time; None stays None."""
    if raw is None:
        return None
    out: List[SongSection] = []
    for item in raw:
        if isinstance(item, SongSection):
            sec = item
        else:
            try:
                sec = SongSection(str(item["name"]), float(item["start_time"]), float(item["end_time"]))
            except (KeyError, TypeError, ValueError):
                debug_warning(f"[SECTIONS] dropping malformed section {item!r}")
                continue
        if sec.end_time <= sec.start_time:
            debug_warning(f"[SECTIONS] dropping empty section '{sec.name}' ({sec.start_time}..{sec.end_time})")
            continue
        out.append(sec)
    out.sort(key=lambda s: s.start_time)
    return out


def _opt_float(d: Dict[str, Any], key: str) -> Optional[float]:
    v = d.get(key)
    if v is None:
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        debug_warning(f"[SONG] ignoring non-numeric {key}={v!r}")
        return None
    if not math.isfinite(f):
        debug_warning(f"[SONG] ignoring non-finite {key}={v!r}")
        return None
    return f


@dataclass
class SongData:
    asset_id: str
    beat_grid: Optional[BeatGrid] = None
    song_sections: Optional[List[SongSection]] = None
    num_bars: Optional[int] = None
    asset_first_beat_offset: Optional[float] = None
    asset_first_downbeat: Optional[float] = None
    asset_bpm: Optional[float] = None
    grid_synthesized: bool = False

    @staticmethod
    def from_json(d: Any) -> "SongData":
        if not isinstance(d, dict):
            raise SongDataError(f"expected an object, got {type(d).__name__}")
        asset_id = d.get("asset_id")
        if asset_id is None:
            raise SongDataError("missing asset_id")

        bpm = _opt_float(d, "asset_bpm")
        offset = _opt_float(d, "asset_first_beat_offset")
        downbeat = _opt_float(d, "asset_first_downbeat")
        bars = _opt_float(d, "num_bars")
        num_bars = int(bars) if bars is not None else None
        if num_bars is not None and not 0 < num_bars <= C.MAX_SONG_BARS:
            debug_warning(f"[SONG] {asset_id}: num_bars={num_bars} out of range; ignoring")
            num_bars = None

        grid = None
        raw_grid = d.get("beat_grid")
        if isinstance(raw_grid, dict):
            grid = BeatGrid.from_arrays(raw_grid.get("beat_nums"), raw_grid.get("beat_times"))
        elif raw_grid is not None:
            debug_warning(f"[SONG] {asset_id}: beat_grid is not an object; ignoring")

        synthesized = False
        if grid is None and bpm and bpm > 0 and num_bars:
            grid = BeatGrid.from_tempo(bpm, offset or 0.0, num_bars, first_downbeat=downbeat)
            synthesized = True

        raw_sections = d.get("song_sections")
        if raw_sections is not None and not isinstance(raw_sections, list):
            debug_warning(f"[SONG] {asset_id}: song_sections is not a list; ignoring")
            raw_sections = None

        return SongData(
            asset_id=str(asset_id),
            beat_grid=grid,
            song_sections=sort_sections(raw_sections),
            num_bars=num_bars,
            asset_first_beat_offset=offset,
            asset_first_downbeat=downbeat,
            asset_bpm=bpm,
            grid_synthesized=synthesized,
        )

    def tempo(self) -> Optional[float]:
        if self.asset_bpm is not None and self.asset_bpm > 0:
            return self.asset_bpm
        if self.beat_grid is not None:
            return self.beat_grid.estimate_bpm()
        return None


@dataclass(frozen=True)
class DanceConfig:
    id: str
    clip_reference: str
    beats_per_loop: int
    title: str = ""
