"""Shared fakes for the beat_party test suite"""

import os
import sys
import time

# Make the src/ layout importable without an install, like the old game tests did
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, dt: float):
        self.t += dt


def pump_until(tick, done, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Call tick() until done() holds or timeout seconds of real time pass"""
    deadline = time.monotonic() + timeout
    while True:
        tick()
        if done():
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)
