import re
from typing import Optional

_DANCE_CMD = re.compile(r"^:dance(\d*)$", re.IGNORECASE)
_STOP_CMD = re.compile(r"^:(stop|undance)$", re.IGNORECASE)

STOP = "stop"

def parse_chat_command(text: str) -> Optional[str]:
    """':dance' / ':dance3' -> dance id ('1' by default); ':stop' -> STOP; anything else -> None."""
    s = (text or "").strip()
    m = _DANCE_CMD.match(s)
    if m:
        return m.group(1) or "1"
    if _STOP_CMD.match(s):
        return STOP
    return None
