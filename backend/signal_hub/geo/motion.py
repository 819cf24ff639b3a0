"""
Motion Simulator

Moves a simulated vehicle along a route when no live GPS feed exists.
Positions are produced by an async generator so the consumer decides the
pace of consumption and can stop at any tick.
"""

import asyncio
import math
from typing import AsyncIterator, Iterator, List, Sequence

from signal_hub.models import Coordinate


DEFAULT_STEP_INTERVAL_MS = 30
DEFAULT_STEP_FACTOR = 0.0001  # degrees travelled per tick on long legs
DEFAULT_MIN_STEPS = 10


class MotionSimulator:
    """
    Linear interpolation along an ordered path

    Each leg between consecutive points is split into
    max(min_steps, round(leg_length / step_factor)) steps, where leg_length is
    the planar degree distance. The final path point is emitted last, so the
    sequence ends exactly at the destination.

    A simulator is single-use: run() may be called once.

    Usage:
        simulator = MotionSimulator(path, step_interval_ms=30)
        async for position in simulator.run():
            ...
        simulator.cancel()  # from anywhere, stops at the next tick
    """

    def __init__(
        self,
        path: Sequence[Coordinate],
        step_interval_ms: int = DEFAULT_STEP_INTERVAL_MS,
        step_factor: float = DEFAULT_STEP_FACTOR,
        min_steps: int = DEFAULT_MIN_STEPS
    ):
        if step_interval_ms < 0:
            raise ValueError("step_interval_ms must be >= 0")
        if step_factor <= 0:
            raise ValueError("step_factor must be positive")

        self.path: List[Coordinate] = list(path)
        self.step_interval_ms = step_interval_ms
        self.step_factor = step_factor
        self.min_steps = max(1, min_steps)

        self.ticks_emitted = 0
        self._started = False
        self._cancelled = False
        self._finished = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_finished(self) -> bool:
        return self._finished

    def steps_for(self, start: Coordinate, end: Coordinate) -> int:
        """Number of ticks used to cross one leg"""
        distance = math.hypot(end.lat - start.lat, end.lng - start.lng)
        return max(self.min_steps, int(round(distance / self.step_factor)))

    def positions(self) -> Iterator[Coordinate]:
        """The full interpolated sequence, without timing"""
        if not self.path:
            return

        for start, end in zip(self.path, self.path[1:]):
            if start == end:
                continue

            total_steps = self.steps_for(start, end)
            for step in range(total_steps):
                yield Coordinate(
                    lat=start.lat + (end.lat - start.lat) * step / total_steps,
                    lng=start.lng + (end.lng - start.lng) * step / total_steps,
                )

        yield self.path[-1]

    async def run(self) -> AsyncIterator[Coordinate]:
        """
        Emit one position per tick

        Raises:
            RuntimeError: if the simulator was already started
        """
        if self._started:
            raise RuntimeError("MotionSimulator is single-use; create a new one for a new path")
        self._started = True

        interval = self.step_interval_ms / 1000.0
        first = True

        try:
            for position in self.positions():
                if not first:
                    await asyncio.sleep(interval)
                first = False

                if self._cancelled:
                    return

                self.ticks_emitted += 1
                yield position
        finally:
            self._finished = True

    def cancel(self):
        """Stop emitting; takes effect at the next tick"""
        self._cancelled = True
