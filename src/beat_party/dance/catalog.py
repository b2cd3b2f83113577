from typing import Dict, Optional

from beat_party.core.models import DanceConfig

# Keyed by the number typed after ":dance" in chat.
DANCES: Dict[str, DanceConfig] = {
    "1": DanceConfig("1", "two_step.json",    beats_per_loop=8,  title="Two Step"),
    "2": DanceConfig("2", "robot.json",       beats_per_loop=4,  title="Robot"),
    "3": DanceConfig("3", "moonwalk.json",    beats_per_loop=8,  title="Moonwalk"),
    "4": DanceConfig("4", "orbit_shuffle.json", beats_per_loop=16, title="Orbit Shuffle"),
}

def get_dance(dance_id) -> Optional[DanceConfig]:
    if dance_id is None:
        return None
    return DANCES.get(str(dance_id).strip())

def dance_ids():
    return sorted(DANCES.keys(), key=lambda k: (len(k), k))
