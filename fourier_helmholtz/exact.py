"""Analytic outgoing-wave solutions of the Fourier-decomposed Helmholtz equation.

Outgoing spherical multipole (spherical coordinates rho, theta about the
symmetry axis; theta is the zenith angle, cos(theta) = z / rho):

    U(r, z) = h_n^(1)(k rho) P_n^N(cos theta),   h_n^(1) = j_n + i y_n

Radiated power through any sphere rho = R (with the same normalisation as
PowerMonitorElement):

    P = pi/k * 2/(2n+1) * (n+N)!/(n-N)!

which follows from the Wronskian j_n y_n' - j_n' y_n = 1/x^2 and is
independent of R.

Reference
---------
    Abramowitz M., Stegun I. (1964) "Handbook of Mathematical Functions", 10.1
"""

import math
from dataclasses import dataclass

import numpy as np
from scipy.special import lpmv, spherical_jn, spherical_yn

from fourier_helmholtz.elements import HelmholtzParameters


@dataclass
class OutgoingMultipole:
    """Outgoing spherical multipole of degree n and azimuthal order N.

    Attributes
    ----------
    k : float
        Wavenumber.
    degree : int
        Degree n of the spherical Hankel function / Legendre function.
    order : int
        Azimuthal order N (the Fourier wavenumber), 0 <= N <= n.
    """

    k: float
    degree: int = 0
    order: int = 0

    @classmethod
    def from_parameters(cls, params: HelmholtzParameters, degree: int) -> "OutgoingMultipole":
        """Multipole solving the problem described by ``params``.

        k = sqrt(k_squared) and the azimuthal order is the Fourier wavenumber N.
        """
        params.validate()
        return cls(k=math.sqrt(params.k_squared), degree=degree, order=int(params.fourier_wavenumber))

    def validate(self) -> None:
        if self.k <= 0.0:
            raise ValueError(f"k must be positive, got {self.k}")
        if self.degree < 0:
            raise ValueError(f"degree must be >= 0, got {self.degree}")
        if not 0 <= self.order <= self.degree:
            raise ValueError(f"order must satisfy 0 <= N <= n, got N={self.order}, n={self.degree}")

    def _spherical(self, x: np.ndarray):
        x = np.asarray(x, dtype=float)
        rho = np.sqrt(x[..., 0] ** 2 + x[..., 1] ** 2)
        cos_theta = x[..., 1] / rho
        return rho, cos_theta

    def hankel(self, arg: np.ndarray, derivative: bool = False) -> np.ndarray:
        """Spherical Hankel function of the first kind h_n^(1)(arg)."""
        n = self.degree
        return (spherical_jn(n, arg, derivative=derivative)
                + 1j * spherical_yn(n, arg, derivative=derivative))

    def __call__(self, x: np.ndarray) -> np.ndarray:
        """U at x = (r, z); x may have shape (..., 2)."""
        rho, cos_theta = self._spherical(x)
        return self.hankel(self.k * rho) * lpmv(self.order, self.degree, cos_theta)

    def radial_derivative(self, x: np.ndarray) -> np.ndarray:
        """dU/drho at x = (r, z)."""
        rho, cos_theta = self._spherical(x)
        return (self.k * self.hankel(self.k * rho, derivative=True)
                * lpmv(self.order, self.degree, cos_theta))

    def power(self) -> float:
        """Exact time-averaged radiated power."""
        n, N = self.degree, self.order
        return (math.pi / self.k * 2.0 / (2 * n + 1)
                * math.factorial(n + N) / math.factorial(n - N))
