from __future__ import annotations
import json
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Optional

from beat_party.core.debug import debug_info, debug_warning, debug_error


@dataclass(frozen=True)
class DanceSyncMessage:
    player: str
    dance_id: Optional[str] = None     # None = stopped dancing

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @staticmethod
    def from_json(s: str) -> "DanceSyncMessage":
        d = json.loads(s)
        if not isinstance(d, dict) or not d.get("player"):
            raise ValueError(f"not a dance message: {s!r}")
        dance_id = d.get("dance_id")
        return DanceSyncMessage(player=str(d["player"]),
                                dance_id=None if dance_id is None else str(dance_id))


Receiver = Callable[[DanceSyncMessage], None]


class DanceRelay:
    """
    Server side of dance sync: forwards whatever a client sends, unchanged,
    to every other connected client. Fire-and-forget; a receiver that fails
    just misses that message.
    """
    def __init__(self):
        self._clients: Dict[str, Callable[[str], None]] = {}

    def connect(self, player: str, deliver: Callable[[str], None]):
        self._clients[player] = deliver
        debug_info(f"[RELAY] {player} connected ({len(self._clients)} online)")

    def disconnect(self, player: str):
        if self._clients.pop(player, None) is not None:
            debug_info(f"[RELAY] {player} disconnected")

    def publish(self, sender: str, raw: str) -> int:
        sent = 0
        for player, deliver in list(self._clients.items()):
            if player == sender:
                continue
            try:
                deliver(raw)
                sent += 1
            except Exception as e:
                debug_error(f"[RELAY] delivery to {player} failed", e)
        return sent


class DanceBroadcaster:
    """Client side: encodes local dance changes and decodes ones relayed from others."""
    def __init__(self, player: str, relay: Optional[DanceRelay] = None):
        self.player = player
        self.relay = relay
        self._receivers: list = []
        if relay is not None:
            relay.connect(player, self.receive_raw)

    def add_receiver(self, fn: Receiver):
        self._receivers.append(fn)

    def broadcast(self, dance_id: Optional[str]):
        if self.relay is None:
            return
        self.relay.publish(self.player, DanceSyncMessage(self.player, dance_id).to_json())

    def receive_raw(self, raw: str):
        try:
            msg = DanceSyncMessage.from_json(raw)
        except ValueError as e:
            debug_warning(f"[SYNC] dropping malformed message: {e}")
            return
        if msg.player == self.player:
            return
        for fn in list(self._receivers):
            fn(msg)

    def close(self):
        if self.relay is not None:
            self.relay.disconnect(self.player)
            self.relay = None
