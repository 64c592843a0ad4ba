"""Gauss-Legendre quadrature on the reference cube [-1, 1]^dim."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class GaussLegendre:
    """Tensor-product Gauss-Legendre rule.

    Attributes
    ----------
    knots : np.ndarray, shape (Q, dim)
        Local coordinates of the integration points.
    weights : np.ndarray, shape (Q,)
        Integration weights; they sum to 2^dim.
    """

    knots: np.ndarray
    weights: np.ndarray

    @classmethod
    def build(cls, n_points: int, dim: int = 1) -> "GaussLegendre":
        """Rule with ``n_points`` points per direction (exact to degree 2n-1)."""
        if n_points < 1:
            raise ValueError(f"n_points must be >= 1, got {n_points}")
        if dim < 1:
            raise ValueError(f"dim must be >= 1, got {dim}")

        pts, wts = np.polynomial.legendre.leggauss(n_points)  # (n,), (n,)

        # First local coordinate varies fastest
        grids = np.meshgrid(*([pts] * dim), indexing="ij")
        knots = np.column_stack([g.ravel(order="F") for g in grids])  # (n^dim, dim)
        wgrids = np.meshgrid(*([wts] * dim), indexing="ij")
        weights = np.prod(
            np.column_stack([g.ravel(order="F") for g in wgrids]), axis=1,
        )  # (n^dim,)
        return cls(knots=knots, weights=weights)

    @property
    def nweight(self) -> int:
        """Number of integration points."""
        return len(self.weights)

    @property
    def dim(self) -> int:
        return self.knots.shape[1]

    def knot(self, ipt: int) -> np.ndarray:
        """Local coordinate of integration point ``ipt``, shape (dim,)."""
        return self.knots[ipt]

    def weight(self, ipt: int) -> float:
        return float(self.weights[ipt])
