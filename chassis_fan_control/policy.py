"""Speed policy: temperature interval -> fan duty cycle lookup"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .errors import PolicyResolutionError


@dataclass(frozen=True)
class SpeedStep:
    """One row of the speed table

    Covers `low <= t < high`. The highest step of a table also covers
    `t == high` so that the table's upper bound is reachable.
    """

    low: float
    high: float
    percent: int


class SpeedPolicy:
    """Ordered, immutable speed table; first matching step wins

    Construction rejects tables that cannot produce a meaningful answer:
    empty tables, inverted ranges, percentages outside 0-100, and gaps or
    overlaps between consecutive steps.
    """

    def __init__(self, steps: Sequence[SpeedStep]):
        self.logger = logging.getLogger(self.__class__.__name__)

        if not steps:
            raise ValueError("Speed table is empty")

        for step in steps:
            if not step.low < step.high:
                raise ValueError(
                    f"Invalid range {step.low}..{step.high}: low must be below high"
                )
            if isinstance(step.percent, bool) or not isinstance(step.percent, int):
                raise ValueError(f"Percent must be an integer, got {step.percent!r}")
            if not 0 <= step.percent <= 100:
                raise ValueError(f"Percent out of range 0-100: {step.percent}")

        self.steps: List[SpeedStep] = list(steps)
        self._lows = np.array([s.low for s in self.steps], dtype=float)
        self._highs = np.array([s.high for s in self.steps], dtype=float)
        self._percents = np.array([s.percent for s in self.steps], dtype=int)

        # Each step must start exactly where the previous one ends
        seams = self._lows[1:] - self._highs[:-1]
        broken = np.flatnonzero(seams != 0)
        if broken.size:
            i = int(broken[0])
            kind = "gap" if seams[i] > 0 else "overlap"
            raise ValueError(
                f"Speed steps are not contiguous: {kind} between "
                f"{self._highs[i]:g} and {self._lows[i + 1]:g}"
            )

        if np.any(np.diff(self._percents) < 0):
            self.logger.warning(
                "Speed table lowers fan speed as temperature rises: %s",
                self._percents.tolist(),
            )

    @property
    def lower_bound(self) -> float:
        return float(self._lows[0])

    @property
    def upper_bound(self) -> float:
        return float(self._highs[-1])

    def resolve(self, temp: float) -> int:
        """Target duty cycle percent for the given temperature

        Raises:
            PolicyResolutionError: No step covers the temperature
        """
        covered = (self._lows <= temp) & (temp < self._highs)
        covered[-1] |= temp == self._highs[-1]

        matches = np.flatnonzero(covered)
        if matches.size == 0:
            raise PolicyResolutionError(
                f"No speed step covers {temp:.1f}°C "
                f"(configured range {self.lower_bound:g}..{self.upper_bound:g}°C)"
            )
        return int(self._percents[matches[0]])

    def __len__(self) -> int:
        return len(self.steps)
