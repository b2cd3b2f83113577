from __future__ import annotations
from typing import Optional, Tuple

import requests

from beat_party.core import config as C
from beat_party.core.debug import debug_info, debug_warning, debug_error
from beat_party.core.errors import SongDataError
from beat_party.core.models import SongData


class MusicApiClient:
    """
    Thin wrapper over the music-analysis service.
    Calls return (result, error) and never raise into the caller.
    """
    def __init__(self, base_url: str = C.API_BASE_URL, timeout: float = C.API_TIMEOUT,
                 session: Optional[requests.Session] = None, api_key: Optional[str] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    def song_url(self, song_id) -> str:
        return f"{self.base_url}/songs/{song_id}"

    def get_song_data(self, song_id) -> Tuple[Optional[SongData], Optional[str]]:
        url = self.song_url(song_id)
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as e:
            debug_warning(f"[API] GET {url} failed: {e}")
            return None, f"request failed: {e}"
        except ValueError as e:
            debug_warning(f"[API] GET {url} returned invalid JSON: {e}")
            return None, f"invalid JSON: {e}"

        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            payload = payload["data"]  # enveloped responses
        try:
            song = SongData.from_json(payload)
        except SongDataError as e:
            debug_warning(f"[API] song {song_id}: {e}")
            return None, str(e)
        except Exception as e:
            debug_error(f"[API] song {song_id}: could not parse payload", e)
            return None, f"unusable song data: {e}"

        debug_info(f"[API] song {song_id}: asset={song.asset_id} "
                   f"beats={len(song.beat_grid) if song.beat_grid else 0} "
                   f"sections={len(song.song_sections) if song.song_sections else 0} bpm={song.asset_bpm}")
        return song, None

    def close(self):
        self.session.close()
