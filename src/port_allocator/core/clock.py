"""Logical clock shared by every component.

The core only ever reads ``now()``. Something outside the core (a block
feed, a scheduler tick, the admin API) advances it.
"""
from __future__ import annotations

import threading
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...


class LogicalClock:
    """In-process monotonically non-decreasing tick counter."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("clock cannot start below zero")
        self._tick = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._tick

    def advance(self, ticks: int = 1) -> int:
        if ticks < 0:
            raise ValueError("logical time never moves backwards")
        with self._lock:
            self._tick += int(ticks)
            return self._tick
