from __future__ import annotations
import json
import os
import threading
from typing import Callable, Dict, List, Optional

from beat_party.core.debug import debug_info, debug_warning, debug_error
from beat_party.core.errors import ClipLoadError
from beat_party.core.resources import clips_dir
from beat_party.core.scheduler import Scheduler

LengthCallback = Callable[[str, Optional[float]], None]


class AnimationLengthCache:
    """
    clip reference -> measured length in seconds.

    Created with the client session and cleared when it ends. Writes are
    idempotent, so two racing first measurements just overwrite each other.
    """
    def __init__(self):
        self._lengths: Dict[str, float] = {}

    def get(self, clip_ref: str) -> Optional[float]:
        return self._lengths.get(clip_ref)

    def set(self, clip_ref: str, length: float):
        self._lengths[clip_ref] = float(length)

    def __contains__(self, clip_ref: str) -> bool:
        return clip_ref in self._lengths

    def __len__(self) -> int:
        return len(self._lengths)

    def clear(self):
        self._lengths.clear()


def resolve_clip_path(clip_ref: str) -> str:
    if os.path.isabs(clip_ref):
        return clip_ref
    return clips_dir(clip_ref)


def load_clip_metadata(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            meta = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ClipLoadError(f"could not read clip metadata {path}: {e}") from e
    if not isinstance(meta, dict):
        raise ClipLoadError(f"clip metadata {path} is not an object")
    return meta


def measure_clip_length(path: str) -> float:
    """Latest keyframe or marker time in the clip."""
    meta = load_clip_metadata(path)
    latest = 0.0
    for key in ("keyframes", "markers"):
        for item in meta.get(key) or []:
            try:
                latest = max(latest, float(item["time"]))
            except (KeyError, TypeError, ValueError):
                continue
    if latest <= 0.0:
        raise ClipLoadError(f"clip {path} has no timed keyframes")
    return latest


class ClipLibrary:
    """
    Measures clip lengths off the frame tick and reports back through the
    scheduler, so callbacks always run on the main thread.
    """
    def __init__(self, cache: AnimationLengthCache, scheduler: Scheduler, *,
                 resolver: Callable[[str], str] = resolve_clip_path,
                 loader: Callable[[str], float] = measure_clip_length,
                 threaded: bool = True):
        self.cache = cache
        self.scheduler = scheduler
        self.resolver = resolver
        self.loader = loader
        self.threaded = threaded
        self._waiting: Dict[str, List[LengthCallback]] = {}

    def measure(self, clip_ref: str, callback: LengthCallback):
        cached = self.cache.get(clip_ref)
        if cached is not None:
            self.scheduler.post(lambda: callback(clip_ref, cached))
            return

        if clip_ref in self._waiting:
            self._waiting[clip_ref].append(callback)
            return
        self._waiting[clip_ref] = [callback]

        if self.threaded:
            t = threading.Thread(target=self._work, args=(clip_ref,), name=f"clip-{clip_ref}", daemon=True)
            t.start()
        else:
            self.scheduler.post(lambda: self._work(clip_ref))

    def in_flight(self) -> int:
        return len(self._waiting)

    def _work(self, clip_ref: str):
        length: Optional[float] = None
        try:
            length = self.loader(self.resolver(clip_ref))
        except ClipLoadError as e:
            debug_warning(f"[CLIPS] {e}")
        except Exception as e:
            debug_error(f"[CLIPS] measuring {clip_ref} failed", e)
        self.scheduler.post(lambda: self._deliver(clip_ref, length))

    def _deliver(self, clip_ref: str, length: Optional[float]):
        if length is not None and length > 0:
            self.cache.set(clip_ref, length)
            debug_info(f"[CLIPS] {clip_ref} = {length:.3f}s")
        else:
            length = None
        for cb in self._waiting.pop(clip_ref, []):
            try:
                cb(clip_ref, length)
            except Exception as e:
                debug_error(f"[CLIPS] length callback for {clip_ref} failed", e)
