"""
Reference path y = f(x) described by a polynomial in the vehicle frame.

Coefficients are stored in ascending powers: f(x) = c0 + c1*x + c2*x^2 + ...
All evaluations accept floats or casadi symbols.
"""

from typing import Sequence, Union

import numpy as np
import casadi as ca


# Curvature radius used for a locally straight path (f'' == 0) [m].
FLAT_CURVATURE_RADIUS_M = 1000.0


def is_symbolic(value) -> bool:
    """True for casadi expressions (SX/MX) and numeric casadi matrices."""
    return isinstance(value, (ca.SX, ca.MX, ca.DM))


class ReferencePath:
    """
    Immutable polynomial reference path.

    Needs at least two coefficients so that the slope term (and hence the
    desired heading) is defined. The coefficients may also be a casadi
    symbol vector, which lets a solver take the path as an NLP parameter.
    """

    def __init__(self, coeffs: Union[Sequence[float], ca.SX, ca.MX]):
        if isinstance(coeffs, (ca.SX, ca.MX)):
            if coeffs.numel() < 2:
                raise ValueError(
                    f"Reference path needs at least 2 coefficients, got {coeffs.numel()}."
                )
            self._coeffs = coeffs
            self._terms = [coeffs[i] for i in range(coeffs.numel())]
            return

        coeffs = np.asarray(coeffs, dtype=float).flatten()
        if coeffs.size < 2:
            raise ValueError(
                f"Reference path needs at least 2 coefficients, got {coeffs.size}."
            )
        if not np.all(np.isfinite(coeffs)):
            raise ValueError("Reference path coefficients must be finite.")
        coeffs.setflags(write=False)
        self._coeffs = coeffs
        self._terms = [float(c) for c in coeffs]

    @classmethod
    def from_waypoints(cls, xs: Sequence[float], ys: Sequence[float], degree: int = 3) -> "ReferencePath":
        """
        Least-squares polynomial fit through waypoints given in the vehicle frame.

        Args:
            xs, ys: waypoint coordinates
            degree: polynomial degree (>= 1)

        Returns:
            ReferencePath with degree + 1 coefficients
        """
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        if xs.shape != ys.shape:
            raise ValueError(f"xs and ys must have same shape, got {xs.shape} vs {ys.shape}")
        if degree < 1:
            raise ValueError("degree must be at least 1.")
        if xs.size <= degree:
            raise ValueError(f"Need more than {degree} waypoints for a degree {degree} fit.")
        return cls(np.polynomial.polynomial.polyfit(xs, ys, degree))

    @property
    def coeffs(self):
        return self._coeffs

    @property
    def degree(self) -> int:
        return len(self._terms) - 1

    def evaluate(self, x):
        """Path value f(x)."""
        result = self._terms[0]
        for i in range(1, len(self._terms)):
            result += self._terms[i] * x**i
        return result

    def slope(self, x):
        """First derivative f'(x)."""
        result = self._terms[1]
        for i in range(2, len(self._terms)):
            result += i * self._terms[i] * x**(i - 1)
        return result

    def second_derivative(self, x):
        """Second derivative f''(x)."""
        result = 0.0
        for i in range(2, len(self._terms)):
            result += i * (i - 1) * self._terms[i] * x**(i - 2)
        return result

    def desired_heading(self, x):
        """Path tangent direction atan(f'(x)) [rad]."""
        slope = self.slope(x)
        if not is_symbolic(slope):
            return float(np.arctan(slope))
        return ca.atan(slope)

    def curvature_radius(self, x, sentinel: float = FLAT_CURVATURE_RADIUS_M):
        """
        Radius of curvature (1 + f'^2)^1.5 / |f''| at x.

        Where f'' is exactly zero the path is treated as straight and the
        sentinel radius is returned instead.
        """
        if self.degree < 2:
            return sentinel

        d2 = self.second_derivative(x)
        if not is_symbolic(d2):
            if d2 == 0:
                return sentinel
            return (1 + self.slope(x)**2)**1.5 / abs(d2)

        is_flat = d2 == 0
        # Keep the unused branch finite so derivatives stay well defined.
        denom = ca.if_else(is_flat, 1.0, ca.fabs(d2))
        radius = (1 + self.slope(x)**2)**1.5 / denom
        return ca.if_else(is_flat, sentinel, radius)

    def sharpness(self, x, sentinel: float = FLAT_CURVATURE_RADIUS_M):
        """
        Inverse curvature radius, or zero once the radius reaches the sentinel.
        """
        if self.degree < 2:
            return 0.0

        radius = self.curvature_radius(x, sentinel)
        if not is_symbolic(radius):
            return 0.0 if radius >= sentinel else 1.0 / radius
        return ca.if_else(radius >= sentinel, 0.0, 1.0 / radius)

    def __len__(self) -> int:
        return len(self._terms)

    def __repr__(self) -> str:
        if is_symbolic(self._coeffs):
            return f"ReferencePath(coeffs={self._coeffs})"
        return f"ReferencePath(coeffs={self._coeffs.tolist()})"
