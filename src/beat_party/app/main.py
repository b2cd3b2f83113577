from __future__ import annotations
import argparse
import os
import random
import sys

import pygame

from beat_party.core import config as C
from beat_party.core.debug import set_debug_mode, close_log, debug_info
from beat_party.core.models import SongData
from beat_party.core.resources import runtime_dir
from beat_party.api.client import MusicApiClient
from beat_party.audio.player import ManualClock, SongPlayer
from beat_party.dance.catalog import dance_ids
from beat_party.dance.rig import RigAnimator
from beat_party.net.sync import DanceBroadcaster, DanceRelay
from beat_party.session import ClientSession

BOT_NAMES = ("zib", "quorra")

# Offline song used when no API is given: tempo-only, so the grid gets synthesized.
DEMO_SONG = {
    "asset_id": "demo",
    "asset_bpm": 118,
    "num_bars": 96,
    "asset_first_beat_offset": 0.25,
    "song_sections": [
        {"name": "Intro",  "start_time": 0.0,   "end_time": 16.5},
        {"name": "Verse",  "start_time": 16.5,  "end_time": 49.0},
        {"name": "Chorus", "start_time": 49.0,  "end_time": 81.5},
        {"name": "Space Jam", "start_time": 81.5, "end_time": 130.0},
        {"name": "Outro",  "start_time": 130.0, "end_time": 195.0},
    ],
}


def _parse_args(argv=None):
    p = argparse.ArgumentParser(description="Beat-synced dance party demo")
    p.add_argument("--song-id", help="fetch beat/section data for this song from the music API")
    p.add_argument("--api-url", default=C.API_BASE_URL)
    p.add_argument("--wav", help="play this file as the background music")
    p.add_argument("--bots", type=int, default=2, help="simulated remote dancers")
    p.add_argument("--auto-close", type=float, default=0.0, help="quit after N seconds (0 = never)")
    return p.parse_args(argv)


def _draw_rig(screen, font, x, y, name, rig: RigAnimator, fov_scale: float):
    track = rig.dominant_track()
    phase = 0.0
    label = name
    if track is not None and track.length > 0:
        phase = track.time_position / track.length
        label = f"{name}  {os.path.splitext(track.clip_ref)[0]}  x{track.speed:.2f}"
    bob = int(18 * abs(((phase * 4.0) % 2.0) - 1.0))
    radius = int(26 * fov_scale)
    pygame.draw.circle(screen, (235, 235, 255), (x, y - bob), radius)
    pygame.draw.circle(screen, (20, 20, 30), (x, y - bob), radius, width=3)
    s = font.render(label, True, (240, 240, 255))
    screen.blit(s, s.get_rect(midtop=(x, y + 40)))


def run(argv=None):
    args = _parse_args(argv)
    if C.DEBUG_MODE:
        set_debug_mode(True, os.path.join(runtime_dir(), "debug.log"))

    pygame.init()
    screen = pygame.display.set_mode((C.SCREEN_W, C.SCREEN_H))
    pygame.display.set_caption("Beat Party")
    font = pygame.font.SysFont("consolas", 18, bold=True)
    clock = pygame.time.Clock()

    playback = ManualClock(playing=True)
    if args.wav:
        player = SongPlayer()
        if player.play(args.wav):
            playback = player

    relay = DanceRelay()
    api = MusicApiClient(args.api_url) if args.song_id else None
    session = ClientSession(player_id="you", api=api, playback=playback, relay=relay)
    session.character_added("you", RigAnimator("you"))

    bots = {}
    for name in BOT_NAMES[:max(0, args.bots)]:
        session.player_joined(name, RigAnimator(name))
        bots[name] = DanceBroadcaster(name, relay)

    if args.song_id:
        session.request_song(args.song_id)
    else:
        session.load_song_data(SongData.from_json(DEMO_SONG))

    rng = random.Random(7)
    bars_seen = 0
    start_ms = pygame.time.get_ticks()
    running = True
    try:
        while running:
            dt = clock.tick(C.FPS) / 1000.0
            if args.auto_close > 0 and (pygame.time.get_ticks() - start_ms) / 1000.0 >= args.auto_close:
                running = False

            for ev in pygame.event.get():
                if ev.type == pygame.QUIT:
                    running = False
                elif ev.type == pygame.KEYDOWN:
                    if ev.key == pygame.K_ESCAPE:
                        running = False
                    elif ev.key == pygame.K_0:
                        session.handle_chat(":stop")
                    elif ev.unicode and ev.unicode in dance_ids():
                        session.handle_chat(f":dance{ev.unicode}")

            if isinstance(playback, ManualClock):
                playback.advance(dt)

            beat_before = session.engine.current_beat
            session.update(dt)
            if session.engine.current_beat == 1 and beat_before != 1:
                bars_seen += 1
                # every 4 bars one bot switches dance
                if bots and bars_seen % 4 == 0:
                    name = rng.choice(list(bots))
                    bots[name].broadcast(rng.choice(dance_ids()))

            for ch in session.engine.channels.values():
                if isinstance(ch.animator, RigAnimator):
                    ch.animator.update(dt)

            # --- draw ---
            screen.fill(session.lighting.color)
            fov_scale = session.camera.fov / C.BASE_FOV
            names = list(session.engine.channels.keys())
            W, H = screen.get_size()
            for i, name in enumerate(names):
                ch = session.engine.channels[name]
                if isinstance(ch.animator, RigAnimator):
                    x = int(W * (i + 1) / (len(names) + 1))
                    _draw_rig(screen, font, x, H // 2, name, ch.animator, fov_scale)

            sec = session.tracker.current_section
            hud = (f"t={playback.position():6.2f}s  beat={session.engine.current_beat or '-'}  "
                   f"section={sec.name if sec else '-'}  bpm={session.engine.bpm:.1f}  "
                   f"fov={session.camera.fov:.1f}   [1-{len(dance_ids())}] dance  [0] stop")
            screen.blit(font.render(hud, True, (250, 250, 255)), (16, 14))
            pygame.display.flip()
    finally:
        debug_info("[APP] shutting down")
        for b in bots.values():
            b.close()
        if isinstance(playback, SongPlayer):
            playback.stop()
        session.close()
        close_log()
        pygame.quit()


def main():
    try:
        run()
    except SystemExit:
        raise
    except Exception as e:
        print("Fatal error:", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
