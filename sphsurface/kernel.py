"""SPH kernel functions in three dimensions."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence

Vector3 = tuple[float, float, float]


class SymmetricKernel3d(ABC):
    """Radially symmetric kernel function in three dimensions."""

    @abstractmethod
    def evaluate(self, r: float) -> float:
        """Evaluate the kernel at the radial distance ``r`` from the origin."""

    @abstractmethod
    def evaluate_gradient(self, x: Sequence[float]) -> Vector3:
        """Evaluate the kernel gradient at the position ``x`` relative to the origin."""

    @abstractmethod
    def evaluate_gradient_norm(self, r: float) -> float:
        """Evaluate the (signed) radial derivative of the kernel at distance ``r``."""


class CubicSplineKernel(SymmetricKernel3d):
    """The commonly used cubic spline kernel."""

    def __init__(self, compact_support_radius: float) -> None:
        h = float(compact_support_radius)
        self.compact_support_radius = h
        self.normalization = 8.0 / (h * h * h)

    @staticmethod
    def _cubic_function(q: float) -> float:
        if q < 1.0:
            return (3.0 / (2.0 * math.pi)) * ((2.0 / 3.0) - q * q + 0.5 * q * q * q)
        if q < 2.0:
            x = 2.0 - q
            return (1.0 / (4.0 * math.pi)) * x * x * x
        return 0.0

    @staticmethod
    def _cubic_function_dq(q: float) -> float:
        if q < 1.0:
            return (3.0 / (4.0 * math.pi)) * (-4.0 * q + 3.0 * q * q)
        if q < 2.0:
            x = 2.0 - q
            return -(3.0 / (4.0 * math.pi)) * x * x
        return 0.0

    def evaluate(self, r: float) -> float:
        q = (r + r) / self.compact_support_radius
        return self.normalization * self._cubic_function(q)

    def evaluate_gradient_norm(self, r: float) -> float:
        q = (r + r) / self.compact_support_radius
        dfdq = self._cubic_function_dq(q)
        dqdr = 2.0 / self.compact_support_radius
        return self.normalization * dfdq * dqdr

    def evaluate_gradient(self, x: Sequence[float]) -> Vector3:
        # df/dq * dq/dr * dr/dx, where dr/dx is the normalized position
        r = math.sqrt(sum(c * c for c in x))
        if r == 0.0:
            return (math.nan, math.nan, math.nan)
        factor = self.evaluate_gradient_norm(r)
        xs = tuple(c / r * factor for c in x)
        return (xs[0], xs[1], xs[2])


def _round_half_away_from_zero(x: float) -> float:
    magnitude = abs(x)
    floor = math.floor(magnitude)
    rounded = floor + (1.0 if magnitude - floor >= 0.5 else 0.0)
    return math.copysign(rounded, x)


class DiscreteSquaredDistanceCubicKernel:
    """Precomputed cubic spline kernel evaluated by squared distance.

    The squared compact support ``[0, h*h]`` is split into ``n`` equal segments;
    the kernel is sampled at the midpoint of each segment.
    """

    def __init__(self, n: int, h: float) -> None:
        if n <= 0:
            raise ValueError("number of discrete kernel steps `n` must be positive")
        h = float(h)
        kernel = CubicSplineKernel(h)
        self.dr = (h * h) / n
        self.values = [kernel.evaluate(math.sqrt(self.dr * (i + 0.5))) for i in range(n)]

    def evaluate(self, r_squared: float) -> float:
        """Return the approximate kernel value at radius ``sqrt(r_squared)``."""
        normalized = _round_half_away_from_zero(r_squared / self.dr)
        if not math.isfinite(normalized) or normalized < 0:
            raise ValueError(f"squared radius {r_squared} cannot be mapped to a kernel bin")
        bin_index = min(int(normalized), len(self.values) - 1)
        return self.values[bin_index]