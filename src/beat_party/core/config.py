import os

# Display / timing
SCREEN_W, SCREEN_H = 960, 540
FPS = 60
ENGINE_SR = 44100

# Debug settings
DEBUG_MODE = True  # Set to False to silence info-level logging

# External music-analysis API
API_BASE_URL = os.environ.get("BEAT_PARTY_API_URL", "http://localhost:8000/api")
API_TIMEOUT = float(os.environ.get("BEAT_PARTY_API_TIMEOUT", "10"))

# Tracker
SECTION_POLL_INTERVAL = 0.1     # seconds of wall time between section lookups
BEAT_CHANGE_TOLERANCE = 0.001   # timestamps closer than this are the same beat

# Tempo
DEFAULT_BPM = 120.0
BEATS_PER_BAR = 4
MAX_SONG_BARS = 4096             # caps synthesized grids; ~2.7 h at 90 BPM in 4/4

# Dance
DANCE_FADE_TIME = 0.3           # crossfade on start/stop
SPEED_DAMPING = 0.0005          # calibration: trims frame-timing overshoot
CHARACTER_WAIT_TIMEOUT = 5.0    # how long a dance waits for a missing rig

# Lighting
LIGHT_TRANSITION_TIME = 1.5
AMBIENT_DEFAULT = (40, 40, 60)
SECTION_COLORS = {
    "intro":      (80, 120, 255),
    "verse":      (120, 80, 255),
    "prechorus":  (255, 140, 60),
    "chorus":     (255, 60, 120),
    "bridge":     (60, 220, 160),
    "breakdown":  (30, 30, 90),
    "drop":       (255, 255, 255),
    "outro":      (90, 60, 140),
}
FALLBACK_PALETTE = [
    (255, 90, 90),
    (255, 200, 60),
    (90, 255, 140),
    (60, 200, 255),
    (200, 110, 255),
    (255, 120, 220),
]

# Camera
BASE_FOV = 70.0
FOV_PULSE_SCALE = 4.0           # degrees at intensity 1.0
FOV_PULSE_TIME = 0.15
DOWNBEAT_INTENSITY = 1.0
BEAT_INTENSITY = 0.4
